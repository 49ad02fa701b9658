from __future__ import annotations

import argparse
import logging
import math
import os
import re
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path

from pydantic import ValidationError

from models import FuelPriceRecord, RegionRecord, RunError, RunSummary, SeedRunSummary
from scrapers import (
    FUELS,
    DailySnapshot,
    FetchError,
    Locality,
    RegionPage,
    SeedLocalities,
    SlugResolver,
    TableEntry,
    collect_locality_slugs,
    cross_check,
    discover_regions,
    extract_locality_prices,
    fetch_locality_price,
    fetch_locality_snapshot,
    fetch_url,
    load_seed_localities,
    needs_refetch,
    parse_simple_price_table,
    plan_fuel_refetch,
    region_locality_links,
    region_hour,
    region_today,
    slugify_locality,
)
from scrapers.common import SITE_BASE, Fetcher, normalize_locality_key
from scrapers.fallback import FALLBACK_CONCURRENCY, RefetchPlan
from scrapers.pricing import FuelStats, apply_availability_overrides, is_valid_price, unavailable_fuels, validate_price
from store import DEFAULT_DB_PATH, FuelStore, SQLiteFuelStore

DATA_DIR = Path("data")
SEED_PATH = DATA_DIR / "seed_localities.json"

UPSERT_BATCH_SIZE = 500
DEFAULT_SHARD_SIZE = 2
MAX_SHARD_SIZE = 10

BACKFILL_LOOKBACK_DAYS = {
    "petrol": 3,
    "diesel": 3,
    "lpg": 120,
    "cng": 120,
}

# Region-wide tables that are more reliable than the listing page for some fuels.
REGION_SUPPLEMENTARY_TABLES = {
    "KL": {
        "lpg": f"{SITE_BASE}/lpg-price-in-kerala-s18.html",
        "cng": f"{SITE_BASE}/cng-price-in-kerala-s18.html",
    },
}

logger = logging.getLogger(__name__)

FuelPrices = dict[str, dict[str, "float | None"]]


@dataclass
class ScrapeContext:
    store: FuelStore
    seeds: SeedLocalities = field(default_factory=SeedLocalities)
    fetch: Fetcher = fetch_url
    today: date = field(default_factory=region_today)
    fallback_delay: float = 0.0


@dataclass
class RegionResult:
    code: str
    localities: int = 0
    fetched: int = 0
    upserts: int = 0
    errors: list[RunError] = field(default_factory=list)


def chunked(items: list, size: int) -> list[list]:
    return [items[i : i + size] for i in range(0, len(items), size)]


def select_shard(codes: list[str], shard_size: int, hour: int) -> list[str]:
    """Round-robin slice of region codes for one hourly invocation."""
    ordered = sorted(set(codes))
    if not ordered:
        return []
    size = shard_size if 0 < shard_size <= MAX_SHARD_SIZE else DEFAULT_SHARD_SIZE
    batch_count = max(1, math.ceil(len(ordered) / size))
    start = (hour % batch_count) * size
    return ordered[start : start + size]


def normalize_region_codes(codes: list[str] | None) -> set[str]:
    cleaned = {str(code or "").upper().strip() for code in codes or []}
    return {code for code in cleaned if re.fullmatch(r"[A-Z]{2}", code)}


def discover_region_codes(fetch: Fetcher = fetch_url) -> list[str]:
    try:
        pages = discover_regions(fetch)
    except FetchError as err:
        logger.warning("region discovery failed: %s", err)
        return []
    return sorted({page.code for page in pages})


def fetch_supplementary_prices(code: str, fetch: Fetcher) -> dict[str, dict[str, float]]:
    tables: dict[str, dict[str, float]] = {}
    for fuel, url in REGION_SUPPLEMENTARY_TABLES.get(code, {}).items():
        try:
            tables[fuel] = parse_simple_price_table(fetch(url))
        except FetchError as err:
            logger.warning("supplementary %s table for %s unavailable: %s", fuel, code, err)
    return tables


def apply_supplementary_prices(prices: FuelPrices, keys: list[str], tables: dict[str, dict[str, float]]) -> None:
    for fuel, table in tables.items():
        for key in keys:
            value = table.get(key)
            if is_valid_price(fuel, value):
                prices[fuel][key] = value


def build_record(snapshot: DailySnapshot) -> FuelPriceRecord:
    prices = {fuel: validate_price(fuel, snapshot.price(fuel)) for fuel in FUELS}
    prices = apply_availability_overrides(snapshot.region, prices)
    return FuelPriceRecord.from_snapshot(
        DailySnapshot(region=snapshot.region, locality=snapshot.locality, date=snapshot.date, prices=prices)
    )


def persist_records(store: FuelStore, code: str, records: list[FuelPriceRecord]) -> tuple[int, list[RunError]]:
    """Batch upsert; a failing batch is retried row by row to isolate the bad rows."""
    upserts = 0
    errors: list[RunError] = []
    for batch in chunked(records, UPSERT_BATCH_SIZE):
        try:
            store.upsert_snapshots(batch)
            upserts += len(batch)
            continue
        except Exception as err:
            logger.warning("batch upsert for %s failed, retrying row by row: %s", code, err)
        for record in batch:
            try:
                store.upsert_snapshot(record)
                upserts += 1
            except Exception as err:
                errors.append(RunError(scope="persistence", region=code, locality=record.locality, reason=str(err)))
    return upserts, errors


class RegionScrape:
    """One region's listing pages merged into validated daily snapshots."""

    def __init__(self, ctx: ScrapeContext, page: RegionPage) -> None:
        self.ctx = ctx
        self.page = page
        self.code = page.code
        self.result = RegionResult(code=page.code)
        self.tables: dict[str, dict[str, TableEntry]] = {fuel: {} for fuel in FUELS}
        self.petrol_html: str | None = None
        self.keys: list[str] = []
        self.seeded_keys: list[str] = []
        self.names: dict[str, str] = {}
        self.prices: FuelPrices = {fuel: {} for fuel in FUELS}

    def error(self, scope: str, reason: str, locality: str | None = None) -> None:
        self.result.errors.append(RunError(scope=scope, region=self.code, locality=locality, reason=reason))

    def fetch_tables(self) -> None:
        def read(fuel: str) -> tuple[str, str | None, str | None]:
            try:
                return fuel, self.ctx.fetch(self.page.listing_url_for(fuel)), None
            except FetchError as err:
                return fuel, None, str(err)

        with ThreadPoolExecutor(max_workers=len(FUELS)) as pool:
            results = list(pool.map(read, FUELS))

        for fuel, html, err in results:
            if html is None:
                logger.warning("%s %s listing unavailable: %s", self.code, fuel, err)
                self.error("region", f"{fuel} listing unavailable: {err}")
                continue
            if fuel == "petrol":
                self.petrol_html = html
            self.tables[fuel] = extract_locality_prices(html, fuel, self.page.name)

    def build_roster(self) -> None:
        anchors = region_locality_links(self.petrol_html, self.page.name) if self.petrol_html else []
        anchor_names = {normalize_locality_key(name): name for name, _ in anchors}
        keys = [key for fuel in FUELS for key in self.tables[fuel]] + list(anchor_names)
        self.seeded_keys = self.ctx.seeds.keys_for(self.code)
        self.keys = list(dict.fromkeys(keys + self.seeded_keys))

        seed_names = self.ctx.seeds.names_for(self.code)
        for key in self.keys:
            name = next((self.tables[fuel][key].name for fuel in FUELS if key in self.tables[fuel]), None)
            self.names[key] = name or anchor_names.get(key) or seed_names.get(key) or key
        for fuel in FUELS:
            self.prices[fuel] = {key: entry.price for key, entry in self.tables[fuel].items()}

    def slug_resolver(self) -> SlugResolver:
        table_slugs: dict[str, str] = {}
        for fuel in FUELS:
            for key, entry in self.tables[fuel].items():
                if entry.slug:
                    table_slugs.setdefault(key, entry.slug)
        anchors = collect_locality_slugs(self.petrol_html, self.page.name) if self.petrol_html else {}
        return SlugResolver(
            table_slugs=table_slugs,
            anchor_slugs=anchors,
            seed_slugs=self.ctx.seeds.slugs_for(self.code),
        )

    def plan_fallback(self, resolver: SlugResolver) -> list[RefetchPlan]:
        plans: list[RefetchPlan] = []
        blocked = unavailable_fuels(self.code)
        for fuel in FUELS:
            if fuel in blocked or not needs_refetch(fuel, self.prices[fuel], self.keys):
                continue
            stats = FuelStats.from_prices(fuel, {key: self.prices[fuel].get(key) for key in self.keys}, len(self.keys))
            mismatch = not stats.low_coverage and cross_check(
                fuel,
                self.prices[fuel],
                self.keys,
                lambda key: resolver.resolve(key, self.names.get(key)),
                lambda slug, fuel=fuel: fetch_locality_price(slug, fuel, self.ctx.fetch).price,
            )
            plan = plan_fuel_refetch(fuel, self.prices[fuel], self.keys, self.seeded_keys, mismatch)
            if plan.keys:
                plans.append(plan)
        return plans

    def run_fallback(self) -> None:
        resolver = self.slug_resolver()
        plans = self.plan_fallback(resolver)
        if not plans:
            return
        fuels_by_key: dict[str, list[str]] = {}
        for plan in plans:
            for key in plan.keys:
                fuels_by_key.setdefault(key, []).append(plan.fuel)

        def refetch(key: str) -> tuple[str, dict[str, float | None]]:
            slug = resolver.resolve(key, self.names.get(key))
            if not slug:
                return key, {}
            return key, {fuel: fetch_locality_price(slug, fuel, self.ctx.fetch).price for fuel in fuels_by_key[key]}

        keys = list(fuels_by_key)
        logger.info("%s fallback: %d detail pages across %d localities", self.code, sum(map(len, fuels_by_key.values())), len(keys))
        batches = chunked(keys, FALLBACK_CONCURRENCY)
        with ThreadPoolExecutor(max_workers=FALLBACK_CONCURRENCY) as pool:
            for index, batch in enumerate(batches):
                for key, found in pool.map(refetch, batch):
                    for fuel, price in found.items():
                        if is_valid_price(fuel, price):
                            self.prices[fuel][key] = price
                if self.ctx.fallback_delay > 0 and index < len(batches) - 1:
                    time.sleep(self.ctx.fallback_delay)

    def backfill(self) -> None:
        blocked = unavailable_fuels(self.code)
        for fuel in FUELS:
            if fuel in blocked:
                continue
            missing = [key for key in self.keys if not is_valid_price(fuel, self.prices[fuel].get(key))]
            if not missing:
                continue
            try:
                last_known = self.ctx.store.get_last_known_valid_prices(
                    self.code, fuel, BACKFILL_LOOKBACK_DAYS[fuel], self.ctx.today
                )
            except Exception as err:
                logger.warning("last known %s prices for %s unavailable: %s", fuel, self.code, err)
                continue
            for key in missing:
                value = last_known.get(key)
                if is_valid_price(fuel, value):
                    self.prices[fuel][key] = value

    def filter_suspects(self) -> None:
        for fuel in FUELS:
            validated = {key: validate_price(fuel, self.prices[fuel].get(key)) for key in self.keys}
            stats = FuelStats.from_prices(fuel, validated, known_count=len(self.keys))
            if stats.filter_applies:
                for key, value in validated.items():
                    if value is not None and stats.is_suspect(value):
                        logger.debug("%s %s price %.2f for %s dropped as outlier", self.code, fuel, value, key)
                        validated[key] = None
            self.prices[fuel] = validated

    def snapshots(self) -> list[DailySnapshot]:
        out: list[DailySnapshot] = []
        for key in self.keys:
            prices = apply_availability_overrides(self.code, {fuel: self.prices[fuel].get(key) for fuel in FUELS})
            snapshot = DailySnapshot(region=self.code, locality=self.names[key], date=self.ctx.today, prices=prices)
            if not snapshot.is_empty():
                out.append(snapshot)
        return out

    def persist(self, snapshots: list[DailySnapshot]) -> None:
        records: list[FuelPriceRecord] = []
        for snapshot in snapshots:
            try:
                records.append(build_record(snapshot))
            except ValidationError as err:
                self.error("locality", str(err), snapshot.locality)
        store = self.ctx.store
        store.replace_locality_roster(self.code, [self.names[key] for key in self.keys])
        store.delete_snapshots(self.code, self.ctx.today)
        upserts, errors = persist_records(store, self.code, records)
        self.result.upserts += upserts
        self.result.errors.extend(errors)

    def run(self) -> RegionResult:
        self.fetch_tables()
        self.build_roster()
        if not self.keys:
            self.error("region", "no localities")
            return self.result

        tables = fetch_supplementary_prices(self.code, self.ctx.fetch)
        apply_supplementary_prices(self.prices, self.keys, tables)
        self.run_fallback()
        self.backfill()
        self.filter_suspects()

        snapshots = self.snapshots()
        self.result.localities = len(self.keys)
        self.result.fetched = len(snapshots)
        self.persist(snapshots)
        logger.info(
            "%s: %d localities, %d snapshots, %d upserts",
            self.code,
            self.result.localities,
            self.result.fetched,
            self.result.upserts,
        )
        return self.result


def scrape_region(ctx: ScrapeContext, page: RegionPage) -> RegionResult:
    try:
        return RegionScrape(ctx, page).run()
    except Exception as err:
        logger.exception("region %s failed", page.code)
        return RegionResult(code=page.code, errors=[RunError(scope="region", region=page.code, reason=str(err))])


def scrape_and_upsert_all_regions(
    store: FuelStore,
    concurrency: int = 3,
    delay: float = 0.3,
    only_codes: list[str] | None = None,
    seeds: SeedLocalities | None = None,
    fetch: Fetcher = fetch_url,
    today: date | None = None,
) -> RunSummary:
    ctx = ScrapeContext(
        store=store,
        seeds=seeds or SeedLocalities(),
        fetch=fetch,
        today=today or region_today(),
        fallback_delay=delay,
    )
    try:
        pages = discover_regions(fetch)
    except FetchError as err:
        pages = []
        reason = f"discovery unavailable: {err}"
    else:
        reason = "discovery unavailable: no regions found"

    if not pages:
        logger.warning("%s, falling back to the seed list", reason)
        seed_summary = scrape_and_upsert_seed_list(store, delay=delay, seeds=ctx.seeds, fetch=fetch, today=ctx.today)
        return RunSummary(
            mode="seed",
            fetched=seed_summary.fetched,
            upserts=seed_summary.upserts,
            errors=[RunError(scope="discovery", reason=reason), *seed_summary.errors],
        )

    wanted = normalize_region_codes(only_codes)
    if wanted:
        pages = [page for page in pages if page.code in wanted]
    first_by_code: dict[str, RegionPage] = {}
    for page in pages:
        first_by_code.setdefault(page.code, page)
    pages = list(first_by_code.values())
    summary = RunSummary(regions_processed=len(pages))
    if not pages:
        return summary

    store.upsert_regions(RegionRecord(code=page.code, name=page.name) for page in pages)

    def task(page: RegionPage) -> RegionResult:
        result = scrape_region(ctx, page)
        if delay > 0:
            time.sleep(delay)
        return result

    with ThreadPoolExecutor(max_workers=max(1, concurrency)) as pool:
        for result in pool.map(task, pages):
            summary.localities += result.localities
            summary.fetched += result.fetched
            summary.upserts += result.upserts
            summary.errors.extend(result.errors)
    return summary


def scrape_and_upsert_seed_list(
    store: FuelStore,
    concurrency: int = 5,
    delay: float = 0.25,
    seeds: SeedLocalities | None = None,
    fetch: Fetcher = fetch_url,
    today: date | None = None,
) -> SeedRunSummary:
    seeds = seeds or SeedLocalities()
    day = today or region_today()
    summary = SeedRunSummary()
    supplementary = {code: fetch_supplementary_prices(code, fetch) for code in seeds.regions() if code in REGION_SUPPLEMENTARY_TABLES}

    def task(locality: Locality) -> tuple[FuelPriceRecord | None, RunError | None]:
        try:
            slug = locality.slug or slugify_locality(locality.name) or ""
            snapshot = fetch_locality_snapshot(locality.region, locality.name, slug, day, fetch)
            if snapshot is None:
                return None, RunError(scope="locality", region=locality.region, locality=locality.name, reason="no data")
            key = normalize_locality_key(locality.name)
            for fuel, table in supplementary.get(locality.region, {}).items():
                value = table.get(key)
                if is_valid_price(fuel, value):
                    snapshot.prices[fuel] = value
            record = build_record(snapshot)
            if record.is_empty():
                return None, RunError(scope="locality", region=locality.region, locality=locality.name, reason="no valid prices")
            return record, None
        except ValidationError as err:
            return None, RunError(scope="locality", region=locality.region, locality=locality.name, reason=str(err))
        finally:
            if delay > 0:
                time.sleep(delay)

    with ThreadPoolExecutor(max_workers=max(1, concurrency)) as pool:
        results = list(pool.map(task, seeds.all()))

    for record, err in results:
        if err is not None:
            summary.errors.append(err)
            continue
        summary.fetched += 1
        try:
            store.upsert_snapshot(record)
            summary.upserts += 1
        except Exception as exc:
            summary.errors.append(
                RunError(scope="persistence", region=record.region_code, locality=record.locality, reason=str(exc))
            )
    return summary


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, default))
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, default))
    except ValueError:
        return default


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Scrape daily fuel prices and store per-locality snapshots.")
    parser.add_argument("--mode", choices=["regions", "seed"], default=os.getenv("SCRAPE_MODE", "regions"))
    parser.add_argument("--db", type=Path, default=Path(os.getenv("FUEL_DB_PATH", str(DEFAULT_DB_PATH))))
    parser.add_argument("--seeds", type=Path, default=Path(os.getenv("SEED_LOCALITIES_PATH", str(SEED_PATH))))
    parser.add_argument("--concurrency", type=int, default=None)
    parser.add_argument("--delay", type=float, default=None)
    parser.add_argument("--region", action="append", dest="regions", default=None, help="Region code, repeatable or comma separated.")
    parser.add_argument("--shard", action="store_true", help="Only scrape this hour's shard of regions.")
    parser.add_argument("--shard-size", type=int, default=_env_int("SCRAPE_SHARD_SIZE", DEFAULT_SHARD_SIZE))
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    store = SQLiteFuelStore(args.db)
    seeds = load_seed_localities(args.seeds)

    if args.mode == "seed":
        seed_summary = scrape_and_upsert_seed_list(
            store,
            concurrency=args.concurrency or _env_int("SCRAPE_CONCURRENCY", 5),
            delay=args.delay if args.delay is not None else _env_float("SCRAPE_DELAY_SECONDS", 0.25),
            seeds=seeds,
        )
        summary = RunSummary(mode="seed", fetched=seed_summary.fetched, upserts=seed_summary.upserts, errors=seed_summary.errors)
    else:
        only_codes = [code for raw in args.regions or [] for code in raw.split(",")]
        if args.shard and not only_codes:
            only_codes = select_shard(discover_region_codes(), args.shard_size, region_hour())
            print(f"Shard: {', '.join(only_codes) or 'none'}")
        summary = scrape_and_upsert_all_regions(
            store,
            concurrency=args.concurrency or _env_int("SCRAPE_CONCURRENCY", 3),
            delay=args.delay if args.delay is not None else _env_float("SCRAPE_DELAY_SECONDS", 0.3),
            only_codes=only_codes or None,
            seeds=seeds,
        )

    print(f"Run mode: {summary.mode}")
    print(
        "Summary: "
        f"regions={summary.regions_processed} localities={summary.localities} "
        f"fetched={summary.fetched} upserts={summary.upserts} errors={len(summary.errors)}"
    )
    if summary.errors:
        print("Errors:")
        for err in summary.errors:
            where = "/".join(part for part in (err.region, err.locality) if part)
            print(f"- [{err.scope}] {where or '-'}: {err.reason}")
    return 0 if summary.upserts > 0 or not summary.errors else 1


if __name__ == "__main__":
    raise SystemExit(main())
