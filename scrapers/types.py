from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date

FUELS = ("petrol", "diesel", "lpg", "cng")
GAS_FUELS = ("lpg", "cng")


@dataclass(frozen=True)
class RegionPage:
    code: str
    name: str
    listing_url: str

    def listing_url_for(self, fuel: str) -> str:
        return self.listing_url.replace("/petrol-price-in-", f"/{fuel}-price-in-")


@dataclass(frozen=True)
class Locality:
    region: str
    name: str
    slug: str | None = None


@dataclass
class FuelPriceObservation:
    fuel: str
    price: float
    source_updated_on: date | None = None


@dataclass
class TableEntry:
    name: str
    price: float
    slug: str | None = None


@dataclass
class PageReading:
    price: float | None
    updated_on: date | None = None


@dataclass
class DailySnapshot:
    region: str
    locality: str
    date: date
    prices: dict[str, float | None] = field(default_factory=dict)

    def price(self, fuel: str) -> float | None:
        return self.prices.get(fuel)

    def is_empty(self) -> bool:
        return all(self.prices.get(fuel) is None for fuel in FUELS)
