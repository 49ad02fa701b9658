"""Single-locality detail page reader.

Each strategy is a pure function of the parsed page and the fuel, returning an
observation only when it found an in-range price. The first strategy that succeeds
wins; when none does the page yields no price, never a number lifted from tickers or
unrelated tables elsewhere on the page.
"""
from __future__ import annotations

import logging
import re
from concurrent.futures import ThreadPoolExecutor
from datetime import date
from typing import Callable

from bs4 import BeautifulSoup, Tag

from .common import SITE_BASE, Fetcher, FetchError, collapse_whitespace, fetch_url, parse_price, parse_updated_date
from .pricing import FUEL_PRICE_RANGES, is_valid_price, maybe_cylinder_price, price_from_kg, quoted_per_kg
from .types import FUELS, DailySnapshot, FuelPriceObservation, PageReading

logger = logging.getLogger(__name__)

_AMOUNT = r"([0-9]{1,4}(?:,[0-9]{3})*(?:\.\d+)?)"
UNIT_WINDOW = 24

LABEL_PATTERNS = {
    "petrol": (
        re.compile(r"petrol\s+price[^₹]{0,220}₹\s*" + _AMOUNT, re.IGNORECASE),
        re.compile(r"₹\s*" + _AMOUNT + r"[^0-9]{0,60}ltr", re.IGNORECASE),
    ),
    "diesel": (
        re.compile(r"diesel\s+price[^₹]{0,220}₹\s*" + _AMOUNT, re.IGNORECASE),
        re.compile(r"₹\s*" + _AMOUNT + r"[^0-9]{0,60}ltr", re.IGNORECASE),
    ),
    "lpg": (
        re.compile(r"lpg\s+price[^₹]{0,220}₹\s*" + _AMOUNT, re.IGNORECASE),
        re.compile(r"₹\s*" + _AMOUNT + r"[^0-9]{0,60}14\.2", re.IGNORECASE),
        re.compile(r"14\.2[^₹]{0,60}₹\s*" + _AMOUNT, re.IGNORECASE),
    ),
    "cng": (
        re.compile(r"cng\s+price[^₹]{0,220}₹\s*" + _AMOUNT, re.IGNORECASE),
        re.compile(r"₹\s*" + _AMOUNT + r"[^0-9]{0,60}kg", re.IGNORECASE),
    ),
}


def detail_url(fuel: str, slug: str) -> str:
    return f"{SITE_BASE}/{fuel}-price-in-{slug}.html"


def unit_matches(fuel: str, text: str) -> bool:
    lowered = text.lower()
    if fuel in ("petrol", "diesel"):
        return re.search(r"\bltr\b", lowered) is not None
    if fuel == "cng":
        return re.search(r"\bkg\b", lowered) is not None and "14.2" not in lowered
    return "14.2" in lowered and "kg" in lowered


def _observation(fuel: str, value: float | None, context: str, updated_on: date | None = None) -> FuelPriceObservation | None:
    if value is None:
        return None
    if fuel == "lpg" and value < FUEL_PRICE_RANGES["lpg"][0] and quoted_per_kg(context):
        value = price_from_kg(value)
    if not is_valid_price(fuel, value):
        return None
    return FuelPriceObservation(fuel=fuel, price=value, source_updated_on=updated_on)


def _price_blocks(soup: BeautifulSoup) -> list[Tag]:
    blocks = soup.select(".gd-fuel-priceblock-container .gd-fuel-price")
    return blocks or soup.select(".gd-fuel-priceblock .gd-fuel-price")


def page_updated_date(soup: BeautifulSoup) -> date | None:
    node = soup.select_one(".gd-fuel-updated-date")
    return parse_updated_date(node.get_text(" ")) if node else None


def from_price_block(soup: BeautifulSoup, fuel: str) -> FuelPriceObservation | None:
    blocks = _price_blocks(soup)
    if not blocks:
        return None
    chosen = next((b for b in blocks if unit_matches(fuel, b.get_text(" "))), blocks[0])
    updated_on = None
    container = chosen.find_parent(class_="gd-fuel-priceblock")
    if container is not None:
        updated = container.select_one(".gd-fuel-updated-date")
        if updated is not None:
            updated_on = parse_updated_date(updated.get_text(" "))
    text = collapse_whitespace(chosen.get_text(" "))
    return _observation(fuel, parse_price(text), text, updated_on)


def from_intro_bold(soup: BeautifulSoup, fuel: str) -> FuelPriceObservation | None:
    # "Today's petrol price in Gadchiroli is at ₹<b>105.06</b> per litre ..."
    intro = soup.select_one("#gr_top_intro_content")
    if intro is None:
        return None
    bold = intro.find("b")
    if bold is None:
        return None
    return _observation(fuel, parse_price(bold.get_text()), intro.get_text(" "))


def from_labelled_text(soup: BeautifulSoup, fuel: str) -> FuelPriceObservation | None:
    body = soup.body or soup
    text = collapse_whitespace(body.get_text(" "))
    lower, upper = FUEL_PRICE_RANGES[fuel]
    for pattern in LABEL_PATTERNS[fuel]:
        match = pattern.search(text)
        if not match:
            continue
        value = parse_price(match.group(1))
        if value is None:
            continue
        value = maybe_cylinder_price(fuel, value, text[match.start() : match.end() + UNIT_WINDOW])
        if lower <= value <= upper:
            return FuelPriceObservation(fuel=fuel, price=value)
    return None


PageStrategy = Callable[[BeautifulSoup, str], FuelPriceObservation | None]

PAGE_STRATEGIES: tuple[PageStrategy, ...] = (
    from_price_block,
    from_intro_bold,
    from_labelled_text,
)


def read_locality_page(html: str, fuel: str) -> PageReading:
    soup = BeautifulSoup(html, "html.parser")
    page_date = page_updated_date(soup)
    for strategy in PAGE_STRATEGIES:
        observation = strategy(soup, fuel)
        if observation is not None:
            return PageReading(price=observation.price, updated_on=observation.source_updated_on or page_date)
    return PageReading(price=None, updated_on=page_date)


def fetch_locality_price(slug: str, fuel: str, fetch: Fetcher = fetch_url) -> PageReading:
    url = detail_url(fuel, slug)
    try:
        html = fetch(url)
    except FetchError as err:
        logger.warning("locality page fetch failed: %s", err)
        return PageReading(price=None)
    return read_locality_page(html, fuel)


def fetch_locality_snapshot(
    region: str,
    locality: str,
    slug: str,
    today: date,
    fetch: Fetcher = fetch_url,
) -> DailySnapshot | None:
    """All four fuels for one locality; dated by the page when it is newer than today."""
    with ThreadPoolExecutor(max_workers=len(FUELS)) as pool:
        readings = dict(zip(FUELS, pool.map(lambda fuel: fetch_locality_price(slug, fuel, fetch), FUELS)))

    if all(reading.price is None for reading in readings.values()):
        return None

    page_date = next((r.updated_on for r in readings.values() if r.updated_on is not None), None)
    effective = page_date if page_date is not None and page_date > today else today
    return DailySnapshot(
        region=region,
        locality=locality,
        date=effective,
        prices={fuel: reading.price for fuel, reading in readings.items()},
    )
