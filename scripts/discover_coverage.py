from __future__ import annotations

import argparse
import json
import logging
import sys
import time
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from scrapers import FetchError, Locality, SeedLocalities, discover_regions, extract_locality_prices, fetch_url, slugify_locality
from scrapers.common import Fetcher
from scrapers.region_tables import collect_locality_links

DEFAULT_OUTPUT = Path("data/seed_localities.json")
DEFAULT_DELAY_SECONDS = 0.5

logger = logging.getLogger("discover_coverage")


def localities_from_listing(code: str, region_name: str, html: str) -> list[Locality]:
    links = collect_locality_links(html, region_name)
    if links:
        return [Locality(region=code, name=name, slug=slug) for name, slug in links]
    # No detail links: fall back to table names and derived slugs.
    entries = extract_locality_prices(html, "petrol", region_name).values()
    return [Locality(region=code, name=e.name, slug=slugify_locality(e.name)) for e in entries]


def discover_coverage(fetch: Fetcher = fetch_url, delay: float = DEFAULT_DELAY_SECONDS) -> tuple[SeedLocalities, list[str]]:
    pages = discover_regions(fetch)
    by_region: dict[str, tuple[Locality, ...]] = {}
    failures: list[str] = []
    for page in pages:
        if page.code in by_region:
            continue
        try:
            html = fetch(page.listing_url)
        except FetchError as err:
            logger.warning("%s listing unavailable: %s", page.code, err)
            failures.append(page.code)
            continue
        found = localities_from_listing(page.code, page.name, html)
        if found:
            by_region[page.code] = tuple(found)
        logger.info("%s (%s): %d localities", page.code, page.name, len(found))
        if delay > 0:
            time.sleep(delay)
    return SeedLocalities(by_region=by_region), failures


def main() -> int:
    parser = argparse.ArgumentParser(description="Crawl every region listing page and write a fresh seed locality file.")
    parser.add_argument("--output", type=Path, default=DEFAULT_OUTPUT, help="Seed JSON path to write.")
    parser.add_argument("--delay", type=float, default=DEFAULT_DELAY_SECONDS, help="Seconds to wait between regions.")
    args = parser.parse_args()
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    try:
        seeds, failures = discover_coverage(delay=args.delay)
    except FetchError as err:
        print(f"Discovery failed: {err}")
        return 1

    args.output.parent.mkdir(parents=True, exist_ok=True)
    args.output.write_text(json.dumps(seeds.to_mapping(), indent=2, ensure_ascii=False) + "\n")
    print(f"Discovery complete: regions={len(seeds.regions())}, localities={len(seeds)}, failed={len(failures)}, output={args.output}")
    if failures:
        print(f"Failed regions: {', '.join(failures)}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
