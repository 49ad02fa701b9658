from __future__ import annotations

import os
from datetime import timedelta
from pathlib import Path

from fastapi import Depends, FastAPI, HTTPException, Query

from api.lookup import resolve_locality
from models import ChartSeries, CheapestPetrolSummary, FuelPriceRecord, FuelPricesResponse, HistoryRow, PetrolPricePoint
from scrapers.common import region_today
from scrapers.types import FUELS
from store import DEFAULT_DB_PATH, SQLiteFuelStore, display_locality_name

DB_PATH = Path(os.getenv("FUEL_DB_PATH", str(DEFAULT_DB_PATH)))
DEFAULT_HISTORY_DAYS = 7
CHEAPEST_PETROL_BOUNDS = (40.0, 250.0)

app = FastAPI(title="India Daily Fuel Prices API", version="1.0.0")


def get_store() -> SQLiteFuelStore:
    return SQLiteFuelStore(DB_PATH)


def build_chart_data(history: list[FuelPriceRecord], fuel: str) -> ChartSeries:
    by_date: dict[str, float] = {}
    for row in sorted(history, key=lambda r: r.date):
        value = row.price(fuel)
        if value is not None:
            by_date[row.date.isoformat()] = value
    return ChartSeries(labels=list(by_date), values=list(by_date.values()))


def _history_row(record: FuelPriceRecord) -> HistoryRow:
    return HistoryRow(**record.model_dump(include={"date", "petrol_price", "diesel_price", "lpg_price", "cng_price"}))


@app.get("/v1/regions")
def regions(store: SQLiteFuelStore = Depends(get_store)) -> dict:
    return {"items": [r.model_dump() for r in store.list_regions()]}


@app.get("/v1/localities")
def localities(
    region: str | None = Query(default=None),
    store: SQLiteFuelStore = Depends(get_store),
) -> dict:
    if not region:
        raise HTTPException(status_code=400, detail="Missing region.")
    code = region.upper()
    names = store.localities_for_latest(code) or [display_locality_name(code, n) for n in store.list_localities(code)]
    return {"region": code, "items": names}


@app.get("/v1/fuel-prices")
def fuel_prices(
    region: str | None = Query(default=None),
    locality: str | None = Query(default=None),
    days: int = Query(default=DEFAULT_HISTORY_DAYS, ge=1, le=366),
    fuel: str = Query(default="petrol"),
    store: SQLiteFuelStore = Depends(get_store),
) -> dict:
    if not region or not locality:
        raise HTTPException(status_code=400, detail="Missing region or locality.")
    code = region.upper()
    fuel = fuel.lower() if fuel.lower() in FUELS else "petrol"
    today = region_today()

    current = store.snapshot(code, locality, today)
    previous = store.snapshot(code, locality, today - timedelta(days=1))
    history = store.history(code, locality, days, today)
    if current is None and not history:
        raise HTTPException(status_code=404, detail="No data yet for this locality.")

    by_fuel = {name: build_chart_data(history, name) for name in FUELS}
    response = FuelPricesResponse(
        today=current,
        yesterday=previous,
        history=[_history_row(row) for row in history],
        chart_data=by_fuel[fuel],
        chart_data_by_fuel=by_fuel,
    )
    return response.model_dump(mode="json")


@app.get("/v1/localities/resolve")
def localities_resolve(
    q: str | None = Query(default=None),
    region: str | None = Query(default=None),
    store: SQLiteFuelStore = Depends(get_store),
) -> dict:
    if not q:
        raise HTTPException(status_code=400, detail="Missing q.")
    return resolve_locality(store, q, region).model_dump(mode="json")


@app.get("/v1/cheapest-petrol")
def cheapest_petrol(store: SQLiteFuelStore = Depends(get_store)) -> dict:
    latest = store.latest_date()
    if latest is None:
        raise HTTPException(status_code=404, detail="No snapshot available.")

    lower, upper = CHEAPEST_PETROL_BOUNDS
    points = sorted(
        (
            PetrolPricePoint(locality=row.locality, region_code=row.region_code, price=row.petrol_price)
            for row in store.snapshots_for_date(latest)
            if row.petrol_price is not None and lower < row.petrol_price < upper
        ),
        key=lambda p: p.price,
    )
    summary = CheapestPetrolSummary(
        date=latest,
        count=len(points),
        national_average=sum(p.price for p in points) / len(points) if points else None,
        cheapest=points[0] if points else None,
        most_expensive=points[-1] if points else None,
        top5=points[:5],
    )
    return {"summary": summary.model_dump(mode="json")}
