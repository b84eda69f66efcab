# chatbot.py
import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from settings import get_automation
from services.errors import AutomationError

logger = logging.getLogger("uvicorn.error")

router = APIRouter(tags=["chat"])


class ChatIn(BaseModel):
    message: str = Field(..., min_length=1, max_length=2000, description="Free-text cooking question")
    sessionId: Optional[str] = Field(None, max_length=200)


@router.post("/chat")
async def chat(body: ChatIn, automation=Depends(get_automation)):
    """
    Relay a chat message to the recipe workflow and hand back whatever it answers.
    The workflow receives {"chatInput": ..., "sessionId": ...}.
    """
    message = body.message.strip()
    if not message:
        raise HTTPException(status_code=400, detail="Empty message")
    if automation is None or not automation.chat_url:
        raise HTTPException(status_code=503, detail="Chat is not configured")

    session_id = (body.sessionId or "").strip() or f"user-session-{uuid.uuid4().hex}"
    try:
        answer = await automation.chat(message, session_id)
    except AutomationError as e:
        logger.warning("chat relay failed for session %s: %s", session_id, e)
        return JSONResponse({"error": "Chat service unavailable"}, status_code=502)

    if isinstance(answer, dict):
        return {**answer, "sessionId": answer.get("sessionId", session_id)}
    return {"output": answer, "sessionId": session_id}
