"""Per-fuel plausibility ranges and the regional median outlier policy."""
from __future__ import annotations

import math
import re
import statistics
from dataclasses import dataclass
from typing import Iterable, Mapping

LPG_CYLINDER_KG = 14.2

FUEL_PRICE_RANGES = {
    "petrol": (30.0, 300.0),
    "diesel": (30.0, 300.0),
    "lpg": (100.0, 2500.0),
    "cng": (10.0, 300.0),
}

# Relative deviation from the regional median above which a price is suspect.
SUSPECT_DEVIATION = {
    "petrol": 0.25,
    "diesel": 0.25,
    "lpg": 0.35,
    "cng": 0.5,
}

# Listing-table vs detail-page disagreement that escalates to a full re-fetch.
CROSS_CHECK_MISMATCH = {
    "petrol": 0.25,
    "diesel": 0.25,
    "lpg": 0.25,
    "cng": 0.35,
}

MIN_SUSPECT_SAMPLE = 10
MIN_SUSPECT_COVERAGE = 0.25


def is_valid_price(fuel: str, price: float | None) -> bool:
    if price is None:
        return False
    try:
        value = float(price)
    except (TypeError, ValueError):
        return False
    if not math.isfinite(value):
        return False
    lower, upper = FUEL_PRICE_RANGES[fuel]
    return lower <= value <= upper


def validate_price(fuel: str, price: float | None) -> float | None:
    if not is_valid_price(fuel, price):
        return None
    return float(price)  # type: ignore[arg-type]


def price_to_kg(cylinder_price: float) -> float:
    return cylinder_price / LPG_CYLINDER_KG


def price_from_kg(kg_price: float) -> float:
    return kg_price * LPG_CYLINDER_KG


def quoted_per_kg(text: str | None) -> bool:
    lowered = (text or "").lower()
    return re.search(r"\bkg\b", lowered) is not None and "14.2" not in lowered


def maybe_cylinder_price(fuel: str, value: float, context: str | None = None) -> float:
    """Per-kg LPG quote to the cylinder price, only when the unit text reads per kg."""
    if fuel != "lpg" or value >= FUEL_PRICE_RANGES["lpg"][0] or not quoted_per_kg(context):
        return value
    converted = price_from_kg(value)
    if is_valid_price("lpg", converted):
        return converted
    return value


def median(values: Iterable[float]) -> float | None:
    finite = [v for v in values if v is not None and math.isfinite(v)]
    if not finite:
        return None
    return float(statistics.median(finite))


def is_suspect(fuel: str, price: float, reference: float | None) -> bool:
    if reference is None or reference <= 0 or not math.isfinite(price):
        return False
    return abs(price - reference) / reference > SUSPECT_DEVIATION[fuel]


def relative_mismatch(a: float, b: float) -> float:
    larger = max(a, b)
    if larger <= 0:
        return 0.0
    return abs(a - b) / larger


@dataclass
class FuelStats:
    fuel: str
    valid_count: int
    known_count: int
    median: float | None

    @classmethod
    def from_prices(cls, fuel: str, prices: Mapping[str, float | None], known_count: int | None = None) -> "FuelStats":
        valid = [float(p) for p in prices.values() if is_valid_price(fuel, p)]  # type: ignore[arg-type]
        known = len(prices) if known_count is None else known_count
        return cls(fuel=fuel, valid_count=len(valid), known_count=known, median=median(valid))

    @property
    def coverage(self) -> float:
        if not self.known_count:
            return 0.0
        return self.valid_count / self.known_count

    @property
    def filter_applies(self) -> bool:
        return self.valid_count >= MIN_SUSPECT_SAMPLE and self.coverage >= MIN_SUSPECT_COVERAGE

    @property
    def low_coverage(self) -> bool:
        return self.coverage < MIN_SUSPECT_COVERAGE

    def is_suspect(self, price: float) -> bool:
        return is_suspect(self.fuel, price, self.median)


def suspect_keys(fuel: str, prices: Mapping[str, float | None], stats: FuelStats) -> set[str]:
    """Range-valid keys that deviate from the median, regardless of the sample-size gate."""
    return {
        key
        for key, price in prices.items()
        if is_valid_price(fuel, price) and stats.is_suspect(float(price))  # type: ignore[arg-type]
    }


def classify_suspects(fuel: str, prices: Mapping[str, float | None], known_count: int | None = None) -> set[str]:
    """Keys whose price should be nulled as a regional outlier; empty when the sample is too thin."""
    stats = FuelStats.from_prices(fuel, prices, known_count)
    if not stats.filter_applies:
        return set()
    return suspect_keys(fuel, prices, stats)


# Fuels never sold in a region; always stored and served as absent.
FUEL_AVAILABILITY_OVERRIDES = {
    "LD": frozenset({"lpg", "cng"}),
}


def unavailable_fuels(region: str) -> frozenset[str]:
    return FUEL_AVAILABILITY_OVERRIDES.get((region or "").upper(), frozenset())


def apply_availability_overrides(region: str, prices: Mapping[str, float | None]) -> dict[str, float | None]:
    blocked = unavailable_fuels(region)
    return {fuel: (None if fuel in blocked else price) for fuel, price in prices.items()}
