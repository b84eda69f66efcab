# services/search_service.py
from __future__ import annotations

import re
from typing import Dict, Iterable, List, Optional, Tuple

from services.catalog import Catalog
from services.errors import DataUnavailable, SearchUnavailable
from services.models import ProductRow, SearchResult

MAX_CANDIDATES = 50  # rows considered before dedup

# LIKE wildcards and PostgREST filter syntax have no business in a search term
_UNSAFE = re.compile(r"[%_*,()\\]")


def clean_query(q: Optional[str]) -> str:
    """Trimmed search term with wildcard/filter characters removed. '' means reject."""
    s = _UNSAFE.sub("", q or "")
    return re.sub(r"\s+", " ", s).strip()


def dedupe_rows(rows: Iterable[ProductRow]) -> List[SearchResult]:
    """
    Merge rows describing the same product and order by stock.

    Pass 1 handles rows with a numeric id: a repeated id is folded into its
    entry. Pass 2 handles rows without one, merged on (name, brand) folded.
    In both passes a (name, brand) key that already has an entry absorbs the
    row, so no two results share an id or a key.

    Results keep first-seen order, then are stably sorted by total quantity
    descending with unknown totals last.
    """
    rows = list(rows)
    by_id: Dict[int, SearchResult] = {}
    by_key: Dict[Tuple[str, str], SearchResult] = {}
    first_seen: Dict[int, int] = {}  # id(entry) -> index of its first row
    entries: List[SearchResult] = []

    def _new(idx: int, row: ProductRow) -> SearchResult:
        entry = SearchResult(row.id, row.name, row.brand, row.category, None, row.logo)
        entry.add_quantities(row.quantities)
        entries.append(entry)
        first_seen[id(entry)] = idx
        by_key[row.composite_key] = entry
        return entry

    def _fold(entry: SearchResult, idx: int, row: ProductRow) -> None:
        entry.add_quantities(row.quantities)
        if entry.logo is None and row.logo:
            entry.logo = row.logo
        first_seen[id(entry)] = min(first_seen[id(entry)], idx)

    # pass 1: numeric ids
    for idx, row in enumerate(rows):
        if row.id is None:
            continue
        entry = by_id.get(row.id) or by_key.get(row.composite_key)
        if entry is None:
            entry = _new(idx, row)
        else:
            _fold(entry, idx, row)
        by_id[row.id] = entry
        by_key.setdefault(row.composite_key, entry)

    # pass 2: composite key fallback
    for idx, row in enumerate(rows):
        if row.id is not None:
            continue
        entry = by_key.get(row.composite_key)
        if entry is None:
            _new(idx, row)
        else:
            _fold(entry, idx, row)

    entries.sort(key=lambda e: first_seen[id(e)])
    entries.sort(key=lambda e: (e.total_quantity is None, -(e.total_quantity or 0)))
    return entries


async def search(catalog: Catalog, query: str, limit: int = MAX_CANDIDATES) -> List[SearchResult]:
    """
    Product search: substring match on name, brand and category, stock summed
    per product across stores, duplicates merged.

    The caller is expected to have rejected empty queries already; an empty
    term here returns no results rather than the whole catalogue.
    """
    term = clean_query(query)
    if not term:
        return []
    limit = max(1, min(int(limit), MAX_CANDIDATES))
    try:
        rows = await catalog.search_products(term, limit)
    except DataUnavailable as e:
        raise SearchUnavailable(str(e)) from e
    return dedupe_rows(rows[:limit])
