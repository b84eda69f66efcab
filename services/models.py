# services/models.py
"""
Typed records for rows coming back from the collaborator store, plus the two
result shapes the resolvers hand to the routers.

Rows are never trusted as-is: every raw mapping (asyncpg.Record, PostgREST
JSON object, automation webhook item) goes through one of the *_from_mapping
functions below, which also accept the column names used by the secondary
free-text catalogue (product_name / brand_name, lat / lon).
"""
from __future__ import annotations

import math
import re
import unicodedata
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Optional, Tuple


# ------------------------------ helpers ------------------------------------- #

def _first(m: Mapping[str, Any], *keys: str) -> Any:
    for k in keys:
        try:
            v = m[k]
        except (KeyError, IndexError):
            continue
        if v is not None:
            return v
    return None


def _text(v: Any) -> str:
    if v is None:
        return ""
    return re.sub(r"\s+", " ", str(v)).strip()


def fold(s: Optional[str]) -> str:
    """
    Case- and accent-insensitive form of a name, used for dedup keys and
    in-memory substring matching. 'BİM', 'Bim ' and 'bim' all fold to 'bim'.
    """
    s = unicodedata.normalize("NFKD", _text(s).lower())
    return "".join(ch for ch in s if not unicodedata.combining(ch))


def as_product_id(v: Any) -> Optional[int]:
    """Return v as an integer id when it is a finite whole number, else None."""
    if v is None or isinstance(v, bool):
        return None
    if isinstance(v, int):
        return v
    if isinstance(v, float):
        return int(v) if math.isfinite(v) and v.is_integer() else None
    if isinstance(v, str):
        s = v.strip()
        if re.fullmatch(r"[+-]?\d+", s):
            return int(s)
    return None


def _as_float(v: Any) -> Optional[float]:
    try:
        f = float(v)
    except (TypeError, ValueError):
        return None
    return f if math.isfinite(f) else None


def _quantities(v: Any) -> Tuple[int, ...]:
    """
    Accepts the shapes stock arrives in: an int array (Postgres array_agg),
    a list of {"quantity": n} objects (PostgREST embedding), one such object,
    or an already summed scalar.
    """
    if v is None:
        return ()
    if not isinstance(v, (list, tuple)):
        v = [v]
    out = []
    for item in v:
        q = item.get("quantity") if isinstance(item, Mapping) else item
        if q is None or isinstance(q, bool):
            continue
        try:
            out.append(max(0, int(q)))
        except (TypeError, ValueError):
            continue
    return tuple(out)


# ------------------------------ records ------------------------------------- #

@dataclass(frozen=True)
class Product:
    id: int
    name: str
    brand: str = ""
    category: str = ""
    image_url: Optional[str] = None


@dataclass(frozen=True)
class Store:
    id: int
    name: str
    latitude: float
    longitude: float
    address: Optional[str] = None


@dataclass(frozen=True)
class ProductRow:
    """One candidate row for search. id is None when the source had no usable numeric id."""
    id: Optional[int]
    name: str
    brand: str = ""
    category: str = ""
    logo: Optional[str] = None
    quantities: Tuple[int, ...] = ()

    @property
    def composite_key(self) -> Tuple[str, str]:
        return (fold(self.name), fold(self.brand))


@dataclass
class SearchResult:
    id: Optional[int]
    name: str
    brand: str
    category: str
    total_quantity: Optional[int] = None
    logo: Optional[str] = None

    def add_quantities(self, quantities: Iterable[int]) -> None:
        for q in quantities:
            self.total_quantity = (self.total_quantity or 0) + q

    def as_row(self) -> ProductRow:
        qs = () if self.total_quantity is None else (self.total_quantity,)
        return ProductRow(self.id, self.name, self.brand, self.category, self.logo, qs)


@dataclass(frozen=True)
class RankedStore:
    id: int
    name: str
    address: Optional[str]
    latitude: float
    longitude: float
    distance_km: float
    quantity: Optional[int] = field(default=None)


# ------------------------------ mapping ------------------------------------- #

def product_row_from_mapping(m: Mapping[str, Any]) -> ProductRow:
    return ProductRow(
        id=as_product_id(_first(m, "id", "product_id", "brands3_id")),
        name=_text(_first(m, "name", "product_name")),
        brand=_text(_first(m, "brand", "brand_name")),
        category=_text(_first(m, "category")),
        logo=_first(m, "image_url", "brandLogo", "logo") or None,
        quantities=_quantities(_first(m, "quantities", "stock", "totalQuantity", "total_quantity")),
    )


def product_from_mapping(m: Mapping[str, Any]) -> Optional[Product]:
    pid = as_product_id(_first(m, "id", "product_id"))
    if pid is None:
        return None
    return Product(
        id=pid,
        name=_text(_first(m, "name", "product_name")),
        brand=_text(_first(m, "brand", "brand_name")),
        category=_text(_first(m, "category")),
        image_url=_first(m, "image_url", "brandLogo") or None,
    )


def store_from_mapping(m: Mapping[str, Any]) -> Optional[Store]:
    """Stores without an id or without finite coordinates cannot be ranked and map to None."""
    sid = as_product_id(_first(m, "id", "store_id"))
    lat = _as_float(_first(m, "latitude", "lat"))
    lon = _as_float(_first(m, "longitude", "lng", "lon"))
    if sid is None or lat is None or lon is None:
        return None
    address = _first(m, "address")
    return Store(
        id=sid,
        name=_text(_first(m, "name")),
        latitude=lat,
        longitude=lon,
        address=_text(address) if address is not None else None,
    )
