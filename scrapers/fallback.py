"""Deciding which localities get their detail page re-read for a fuel.

Listing tables are cheap (one page per fuel) but noisy; detail pages are reliable but cost
one request per locality and fuel. A fuel only reaches for detail pages when its table left
values missing, out of range or far from the regional median, or when a small sample of
gas prices disagrees with the localities' own pages. Either way the number of pages is
capped so a broken listing page cannot fan out into hundreds of requests.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Iterable, Mapping, Sequence

from .pricing import CROSS_CHECK_MISMATCH, FuelStats, is_valid_price, relative_mismatch, suspect_keys
from .seeds import slugify_locality
from .types import GAS_FUELS

FALLBACK_CONCURRENCY = 2
MAX_FULL_FALLBACK = 80
MAX_TARGETED_FALLBACK = 25
CROSS_CHECK_SAMPLE_SIZE = 2

logger = logging.getLogger(__name__)

PriceReader = Callable[[str], "float | None"]


@dataclass
class RefetchPlan:
    fuel: str
    keys: list[str] = field(default_factory=list)
    full: bool = False


@dataclass
class SlugResolver:
    """Detail-page slug for a locality key: table link, listing anchor, seed entry, then the name."""

    table_slugs: dict[str, str] = field(default_factory=dict)
    anchor_slugs: dict[str, str] = field(default_factory=dict)
    seed_slugs: dict[str, str] = field(default_factory=dict)

    def resolve(self, key: str, name: str | None = None) -> str | None:
        for source in (self.table_slugs, self.anchor_slugs, self.seed_slugs):
            slug = source.get(key)
            if slug:
                return slug
        return slugify_locality(name or key)


def seeded_first(keys: Iterable[str], seeded_keys: Iterable[str]) -> list[str]:
    seeded = set(seeded_keys)
    ordered = list(dict.fromkeys(keys))
    return sorted(ordered, key=lambda key: 0 if key in seeded else 1)


def _window(prices: Mapping[str, float | None], keys: Sequence[str]) -> dict[str, float | None]:
    return {key: prices.get(key) for key in keys}


def needs_refetch(fuel: str, prices: Mapping[str, float | None], all_keys: Sequence[str]) -> bool:
    keys = list(dict.fromkeys(all_keys))
    if not keys:
        return False
    window = _window(prices, keys)
    stats = FuelStats.from_prices(fuel, window, known_count=len(keys))
    if stats.low_coverage:
        return True
    if any(not is_valid_price(fuel, value) for value in window.values()):
        return True
    return bool(suspect_keys(fuel, window, stats))


def plan_fuel_refetch(
    fuel: str,
    prices: Mapping[str, float | None],
    all_keys: Sequence[str],
    seeded_keys: Iterable[str] = (),
    mismatch: bool = False,
) -> RefetchPlan:
    keys = list(dict.fromkeys(all_keys))
    if not keys:
        return RefetchPlan(fuel=fuel)
    seeded = set(seeded_keys)
    window = _window(prices, keys)
    stats = FuelStats.from_prices(fuel, window, known_count=len(keys))

    if mismatch or stats.low_coverage:
        plan = RefetchPlan(fuel=fuel, keys=seeded_first(keys, seeded)[:MAX_FULL_FALLBACK], full=True)
        logger.debug("%s full fallback over %d localities (coverage %.2f)", fuel, len(plan.keys), stats.coverage)
        return plan

    missing = seeded_first([key for key in keys if not is_valid_price(fuel, window[key])], seeded)
    flagged = suspect_keys(fuel, window, stats)
    outliers = [key for key in keys if key in flagged]
    plan = RefetchPlan(fuel=fuel, keys=(missing + outliers)[:MAX_TARGETED_FALLBACK])
    if plan.keys:
        logger.debug("%s targeted fallback: %d missing, %d outliers", fuel, len(missing), len(outliers))
    return plan


def cross_check_sample(
    fuel: str,
    prices: Mapping[str, float | None],
    keys: Sequence[str],
    slug_for: Callable[[str], str | None],
) -> list[tuple[str, str]]:
    sample: list[tuple[str, str]] = []
    for key in keys:
        if len(sample) >= CROSS_CHECK_SAMPLE_SIZE:
            break
        if not is_valid_price(fuel, prices.get(key)):
            continue
        slug = slug_for(key)
        if slug:
            sample.append((key, slug))
    return sample


def is_mismatch(fuel: str, listed: float | None, page_price: float | None) -> bool:
    if not is_valid_price(fuel, listed) or not is_valid_price(fuel, page_price):
        return False
    return relative_mismatch(float(listed), float(page_price)) > CROSS_CHECK_MISMATCH[fuel]  # type: ignore[arg-type]


def cross_check(
    fuel: str,
    prices: Mapping[str, float | None],
    keys: Sequence[str],
    slug_for: Callable[[str], str | None],
    read_price: PriceReader,
) -> bool:
    """True when a sampled table price disagrees with the locality's own page."""
    if fuel not in GAS_FUELS:
        return False
    for key, slug in cross_check_sample(fuel, prices, keys, slug_for):
        page_price = read_price(slug)
        if is_mismatch(fuel, prices.get(key), page_price):
            logger.info("%s listing price for %s disagrees with its page (%s vs %s)", fuel, key, prices.get(key), page_price)
            return True
    return False
