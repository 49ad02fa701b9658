from __future__ import annotations

import datetime as dt
from typing import Literal, Union

from pydantic import BaseModel, Field

from scrapers.types import DailySnapshot


class FuelPriceRecord(BaseModel):
    region_code: str = Field(min_length=2, max_length=2)
    locality: str = Field(min_length=1)
    date: dt.date
    petrol_price: float | None = None
    diesel_price: float | None = None
    lpg_price: float | None = None
    cng_price: float | None = None

    @classmethod
    def from_snapshot(cls, snapshot: DailySnapshot) -> "FuelPriceRecord":
        return cls(
            region_code=snapshot.region,
            locality=snapshot.locality,
            date=snapshot.date,
            petrol_price=snapshot.price("petrol"),
            diesel_price=snapshot.price("diesel"),
            lpg_price=snapshot.price("lpg"),
            cng_price=snapshot.price("cng"),
        )

    def price(self, fuel: str) -> float | None:
        return getattr(self, f"{fuel}_price")

    def is_empty(self) -> bool:
        return all(self.price(fuel) is None for fuel in ("petrol", "diesel", "lpg", "cng"))


class RegionRecord(BaseModel):
    code: str
    name: str


class RunError(BaseModel):
    scope: Literal["discovery", "region", "locality", "persistence"]
    region: str | None = None
    locality: str | None = None
    reason: str


class RunSummary(BaseModel):
    mode: Literal["regions", "seed"] = "regions"
    regions_processed: int = 0
    localities: int = 0
    fetched: int = 0
    upserts: int = 0
    errors: list[RunError] = Field(default_factory=list)


class SeedRunSummary(BaseModel):
    fetched: int = 0
    upserts: int = 0
    errors: list[RunError] = Field(default_factory=list)


class ChartSeries(BaseModel):
    labels: list[str] = Field(default_factory=list)
    values: list[float] = Field(default_factory=list)


class HistoryRow(BaseModel):
    date: dt.date
    petrol_price: float | None = None
    diesel_price: float | None = None
    lpg_price: float | None = None
    cng_price: float | None = None


class FuelPricesResponse(BaseModel):
    today: FuelPriceRecord | None = None
    yesterday: FuelPriceRecord | None = None
    history: list[HistoryRow] = Field(default_factory=list)
    chart_data: ChartSeries
    chart_data_by_fuel: dict[str, ChartSeries]


class PetrolPricePoint(BaseModel):
    locality: str
    region_code: str
    price: float


class CheapestPetrolSummary(BaseModel):
    date: dt.date
    count: int
    national_average: float | None = None
    cheapest: PetrolPricePoint | None = None
    most_expensive: PetrolPricePoint | None = None
    top5: list[PetrolPricePoint] = Field(default_factory=list)


class LookupResolved(BaseModel):
    kind: Literal["resolved"] = "resolved"
    snapshot: FuelPriceRecord
    candidates: list[FuelPriceRecord]


class LookupAmbiguous(BaseModel):
    kind: Literal["ambiguous"] = "ambiguous"
    candidates: list[FuelPriceRecord]


class LookupNotFound(BaseModel):
    kind: Literal["not_found"] = "not_found"


LookupResult = Union[LookupResolved, LookupAmbiguous, LookupNotFound]
