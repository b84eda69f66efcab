# utils/throttle.py
import time
from functools import wraps
from fastapi import Request, HTTPException


def throttle(limit: int, window: int = 60):
    """
    Fixed-window per-IP limit for one endpoint. Counters live in-process; the
    check-and-increment has no await in it, so the event loop makes it atomic.
    Endpoints using this must declare a `request: Request` parameter.
    """
    buckets = {}

    def decorator(fn):
        @wraps(fn)
        async def wrapper(*args, **kwargs):
            request = kwargs.get("request")
            if not isinstance(request, Request):
                request = next((a for a in args if isinstance(a, Request)), None)
            ip = request.client.host if request is not None and request.client else "unknown"
            now_bucket = int(time.time() // window)

            key = (ip, now_bucket)
            buckets[key] = buckets.get(key, 0) + 1
            if len(buckets) > 5000:
                for k in [k for k in buckets if k[1] < now_bucket]:
                    buckets.pop(k, None)
            if buckets[key] > limit:
                raise HTTPException(status_code=429, detail="Too many requests")
            return await fn(*args, **kwargs)
        return wrapper
    return decorator
