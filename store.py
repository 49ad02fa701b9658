from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from datetime import date, timedelta
from pathlib import Path
from typing import Iterable, Iterator, Protocol

from models import FuelPriceRecord, RegionRecord
from scrapers.common import normalize_locality_key, region_today
from scrapers.pricing import apply_availability_overrides
from scrapers.types import FUELS

DEFAULT_DB_PATH = Path("data") / "fuel_prices.db"

# Listing pages and stored rows use one spelling, callers may use another.
LOCALITY_STORAGE_ALIASES = {
    "AP": {"kadapa": "Cuddapah"},
}


def storage_locality_name(region_code: str, name: str) -> str:
    aliases = LOCALITY_STORAGE_ALIASES.get(region_code.upper(), {})
    return aliases.get(normalize_locality_key(name), name.strip())


def display_locality_name(region_code: str, name: str) -> str:
    aliases = LOCALITY_STORAGE_ALIASES.get(region_code.upper(), {})
    for display_key, stored in aliases.items():
        if normalize_locality_key(stored) == normalize_locality_key(name):
            return display_key.title()
    return name.strip()


class FuelStore(Protocol):
    def upsert_regions(self, regions: Iterable[RegionRecord]) -> None: ...

    def replace_locality_roster(self, region_code: str, names: list[str]) -> None: ...

    def delete_snapshots(self, region_code: str, day: date) -> None: ...

    def upsert_snapshot(self, record: FuelPriceRecord) -> None: ...

    def upsert_snapshots(self, records: list[FuelPriceRecord]) -> None: ...

    def get_last_known_valid_prices(
        self, region_code: str, fuel: str, lookback_days: int, today: date | None = None
    ) -> dict[str, float]: ...


def _record(row: sqlite3.Row) -> FuelPriceRecord:
    prices = apply_availability_overrides(row["region_code"], {fuel: row[f"{fuel}_price"] for fuel in FUELS})
    return FuelPriceRecord(
        region_code=row["region_code"],
        locality=row["locality"],
        date=date.fromisoformat(row["date"]),
        **{f"{fuel}_price": price for fuel, price in prices.items()},
    )


class SQLiteFuelStore:
    def __init__(self, path: Path = DEFAULT_DB_PATH) -> None:
        self.path = Path(path)
        self.ensure_schema()

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self.path)
        conn.row_factory = sqlite3.Row
        try:
            with conn:
                yield conn
        finally:
            conn.close()

    def ensure_schema(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self._connect() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS regions (
                    code TEXT PRIMARY KEY,
                    name TEXT NOT NULL
                );
                CREATE TABLE IF NOT EXISTS localities (
                    region_code TEXT NOT NULL,
                    name TEXT NOT NULL,
                    PRIMARY KEY (region_code, name)
                );
                CREATE TABLE IF NOT EXISTS fuel_prices (
                    region_code TEXT NOT NULL,
                    locality TEXT NOT NULL,
                    date TEXT NOT NULL,
                    petrol_price REAL,
                    diesel_price REAL,
                    lpg_price REAL,
                    cng_price REAL,
                    PRIMARY KEY (region_code, locality, date)
                );
                CREATE INDEX IF NOT EXISTS idx_fuel_prices_date ON fuel_prices (date);
                """
            )

    # writes

    def upsert_regions(self, regions: Iterable[RegionRecord]) -> None:
        rows = [(r.code, r.name) for r in regions]
        if not rows:
            return
        with self._connect() as conn:
            conn.executemany("INSERT OR REPLACE INTO regions (code, name) VALUES (?, ?)", rows)

    def replace_locality_roster(self, region_code: str, names: list[str]) -> None:
        with self._connect() as conn:
            conn.execute("DELETE FROM localities WHERE region_code = ?", (region_code,))
            conn.executemany(
                "INSERT OR REPLACE INTO localities (region_code, name) VALUES (?, ?)",
                [(region_code, name) for name in dict.fromkeys(names)],
            )

    def delete_snapshots(self, region_code: str, day: date) -> None:
        with self._connect() as conn:
            conn.execute(
                "DELETE FROM fuel_prices WHERE region_code = ? AND date = ?",
                (region_code, day.isoformat()),
            )

    def upsert_snapshot(self, record: FuelPriceRecord) -> None:
        self.upsert_snapshots([record])

    def upsert_snapshots(self, records: list[FuelPriceRecord]) -> None:
        if not records:
            return
        rows = [
            (
                r.region_code,
                r.locality,
                r.date.isoformat(),
                r.petrol_price,
                r.diesel_price,
                r.lpg_price,
                r.cng_price,
            )
            for r in records
        ]
        with self._connect() as conn:
            conn.executemany(
                "INSERT OR REPLACE INTO fuel_prices "
                "(region_code, locality, date, petrol_price, diesel_price, lpg_price, cng_price) "
                "VALUES (?, ?, ?, ?, ?, ?, ?)",
                rows,
            )

    # reads

    def get_last_known_valid_prices(
        self, region_code: str, fuel: str, lookback_days: int, today: date | None = None
    ) -> dict[str, float]:
        """Most recent non-null price per locality key within the lookback window."""
        if fuel not in FUELS:
            raise ValueError(f"Unknown fuel: {fuel}")
        column = f"{fuel}_price"
        since = (today or region_today()) - timedelta(days=max(2, lookback_days) - 1)
        with self._connect() as conn:
            rows = conn.execute(
                f"SELECT locality, {column} AS price FROM fuel_prices "
                f"WHERE region_code = ? AND {column} IS NOT NULL AND date >= ? "
                "ORDER BY date DESC LIMIT 2000",
                (region_code, since.isoformat()),
            ).fetchall()
        latest: dict[str, float] = {}
        for row in rows:
            key = normalize_locality_key(row["locality"])
            if key and key not in latest:
                latest[key] = float(row["price"])
        return latest

    def list_regions(self) -> list[RegionRecord]:
        with self._connect() as conn:
            rows = conn.execute("SELECT code, name FROM regions ORDER BY name ASC").fetchall()
        return [RegionRecord(code=row["code"], name=row["name"]) for row in rows]

    def list_localities(self, region_code: str) -> list[str]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT name FROM localities WHERE region_code = ? ORDER BY name ASC",
                (region_code,),
            ).fetchall()
        return [row["name"] for row in rows]

    def latest_date(self, region_code: str | None = None) -> date | None:
        query = "SELECT MAX(date) AS latest FROM fuel_prices"
        params: tuple = ()
        if region_code:
            query += " WHERE region_code = ?"
            params = (region_code,)
        with self._connect() as conn:
            row = conn.execute(query, params).fetchone()
        if row is None or row["latest"] is None:
            return None
        return date.fromisoformat(row["latest"])

    def localities_for_latest(self, region_code: str) -> list[str]:
        latest = self.latest_date(region_code)
        if latest is None:
            return []
        names = [record.locality for record in self.snapshots_for_date(latest, region_code)]
        return list(dict.fromkeys(display_locality_name(region_code, name) for name in names))

    def snapshots_for_date(self, day: date, region_code: str | None = None) -> list[FuelPriceRecord]:
        query = "SELECT * FROM fuel_prices WHERE date = ?"
        params: list = [day.isoformat()]
        if region_code:
            query += " AND region_code = ?"
            params.append(region_code)
        query += " ORDER BY region_code ASC, locality ASC"
        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return [_record(row) for row in rows]

    def snapshot(self, region_code: str, locality: str, day: date) -> FuelPriceRecord | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM fuel_prices WHERE region_code = ? AND locality = ? AND date = ?",
                (region_code, storage_locality_name(region_code, locality), day.isoformat()),
            ).fetchone()
        return _record(row) if row is not None else None

    def history(self, region_code: str, locality: str, days: int, today: date | None = None) -> list[FuelPriceRecord]:
        since = (today or region_today()) - timedelta(days=max(2, days) - 1)
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM fuel_prices WHERE region_code = ? AND locality = ? AND date >= ? ORDER BY date ASC",
                (region_code, storage_locality_name(region_code, locality), since.isoformat()),
            ).fetchall()
        return [_record(row) for row in rows]
