from .common import FetchError, fetch_url, region_hour, region_today
from .fallback import RefetchPlan, SlugResolver, cross_check, needs_refetch, plan_fuel_refetch
from .locality_page import fetch_locality_price, fetch_locality_snapshot, read_locality_page
from .pricing import classify_suspects, is_valid_price, validate_price
from .region_tables import collect_locality_slugs, extract_locality_prices, parse_simple_price_table, region_locality_links
from .regions import discover_regions, parse_region_index
from .seeds import SeedLocalities, load_seed_localities, slugify_locality
from .types import FUELS, DailySnapshot, FuelPriceObservation, Locality, RegionPage, TableEntry

__all__ = [
    "FUELS",
    "DailySnapshot",
    "FetchError",
    "FuelPriceObservation",
    "Locality",
    "RefetchPlan",
    "RegionPage",
    "SeedLocalities",
    "SlugResolver",
    "TableEntry",
    "classify_suspects",
    "collect_locality_slugs",
    "cross_check",
    "discover_regions",
    "extract_locality_prices",
    "fetch_locality_price",
    "fetch_locality_snapshot",
    "fetch_url",
    "is_valid_price",
    "load_seed_localities",
    "needs_refetch",
    "parse_region_index",
    "parse_simple_price_table",
    "plan_fuel_refetch",
    "read_locality_page",
    "region_locality_links",
    "region_hour",
    "region_today",
    "slugify_locality",
    "validate_price",
]
