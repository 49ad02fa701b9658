from __future__ import annotations

import re

from models import FuelPriceRecord, LookupAmbiguous, LookupNotFound, LookupResolved, LookupResult
from scrapers.common import collapse_whitespace, normalize_locality_key
from store import SQLiteFuelStore, storage_locality_name

MAX_QUERY_TOKENS = 8
MAX_CANDIDATES = 50


def normalize_query(text: str | None) -> str:
    return collapse_whitespace((text or "").replace("-", " "))


def query_pattern(query: str) -> re.Pattern | None:
    """Tokens in order, anything in between: "navi mumbai" matches "Navi Mumbai (Thane)"."""
    tokens = normalize_locality_key(query).split()[:MAX_QUERY_TOKENS]
    if not tokens:
        return None
    return re.compile(".*".join(re.escape(token) for token in tokens))


def matching_candidates(rows: list[FuelPriceRecord], pattern: re.Pattern) -> list[FuelPriceRecord]:
    hits = [row for row in rows if pattern.search(normalize_locality_key(row.locality))]
    return hits[:MAX_CANDIDATES]


def resolve_locality(store: SQLiteFuelStore, query: str | None, region: str | None = None) -> LookupResult:
    text = normalize_query(query)
    code = (region or "").upper().strip() or None
    if code:
        text = storage_locality_name(code, text)
    pattern = query_pattern(text)
    if pattern is None:
        return LookupNotFound()

    latest = store.latest_date()
    if latest is None:
        return LookupNotFound()

    candidates = matching_candidates(store.snapshots_for_date(latest, code), pattern)
    if not candidates:
        return LookupNotFound()

    if code:
        wanted = normalize_locality_key(text)
        exact = next((c for c in candidates if normalize_locality_key(c.locality) == wanted), None)
        if exact is not None:
            return LookupResolved(snapshot=exact, candidates=candidates)
        if len(candidates) == 1:
            return LookupResolved(snapshot=candidates[0], candidates=candidates)
        return LookupAmbiguous(candidates=candidates)

    if len({c.region_code for c in candidates}) == 1:
        return LookupResolved(snapshot=candidates[0], candidates=candidates)
    return LookupAmbiguous(candidates=candidates)
