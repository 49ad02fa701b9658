"""Region listing page parser.

A region's listing page carries several tables: the region's own locality table (usually
with links to every locality's detail page), "major cities" tables covering the whole
country, and sometimes tables for neighbouring regions. Each candidate table is scored for
relevance to the region being scraped, so prices from another region never leak into it.

Three strategies run in order and the first non-empty result wins:

1. anchor tables: tables linking to locality detail pages, scored by link count and
   caption/heading relevance;
2. header-matched tables: any table whose header names a price and a city/district/town
   column, scored the same way;
3. unscored fallback: every header-matched table that is neither an aggregate table nor
   about another region.
"""
from __future__ import annotations

import re
from typing import Callable

from bs4 import BeautifulSoup, Tag

from .common import collapse_whitespace, normalize_locality_key, normalize_region_name, parse_price
from .pricing import is_valid_price, maybe_cylinder_price
from .regions import REGION_NAME_TO_CODE
from .types import TableEntry

PRICE_LINK_RE = re.compile(r"(petrol|diesel|lpg|cng)-price-in-([^./]+)\.html", re.IGNORECASE)
REGION_LINK_RE = re.compile(r"-price-in-.*-s\d+\.html", re.IGNORECASE)
AGGREGATE_RE = re.compile(r"major cities|metro cities|top cities|india", re.IGNORECASE)
HEADER_ROW_RE = re.compile(r"city|district|town", re.IGNORECASE)
HEADER_CELL_RE = re.compile(r"\b(city|district|town|price)\b", re.IGNORECASE)
LETTER_RE = re.compile(r"[^\W\d_]")
HEADINGS = ["h1", "h2", "h3", "h4"]

REGION_MATCH_BONUS = 50
OTHER_REGION_PENALTY = -200
AGGREGATE_PENALTY = -1000
MAX_ROW_BONUS = 30

LocalityPrices = dict[str, TableEntry]


class _RegionContext:
    def __init__(self, fuel: str, region_name: str | None) -> None:
        self.fuel = fuel
        self.region_norm = normalize_region_name(region_name)
        self.region_code = REGION_NAME_TO_CODE.get(self.region_norm)

    def is_other_region(self, normalized: str) -> bool:
        code = REGION_NAME_TO_CODE.get(normalized)
        if code is None or not self.region_norm:
            return False
        return normalized != self.region_norm and code != self.region_code

    def mentions_other_region(self, context_norm: str) -> bool:
        if not self.region_norm or not context_norm:
            return False
        padded = f" {context_norm} "
        for name, code in REGION_NAME_TO_CODE.items():
            if name == self.region_norm or code == self.region_code:
                continue
            if f" {name} " in padded:
                return True
        return False

    def score_context(self, table: Tag) -> int:
        context = _table_context(table)
        context_norm = normalize_region_name(context)
        score = 0
        if self.region_norm and f" {self.region_norm} " in f" {context_norm} ":
            score += REGION_MATCH_BONUS
        if self.mentions_other_region(context_norm):
            score += OTHER_REGION_PENALTY
        if AGGREGATE_RE.search(context):
            score += AGGREGATE_PENALTY
        return score

    def excluded(self, table: Tag) -> bool:
        context = _table_context(table)
        return bool(AGGREGATE_RE.search(context)) or self.mentions_other_region(normalize_region_name(context))


def _text(node: Tag | None) -> str:
    if node is None:
        return ""
    return collapse_whitespace(node.get_text(" "))


def _heading_text(table: Tag) -> str:
    for node in (table, table.parent):
        if not isinstance(node, Tag):
            continue
        text = _text(node.find_previous_sibling(HEADINGS))
        if text:
            return text
    container = table.find_parent(["section", "div"])
    if container is None:
        return ""
    return _text(container.find_previous_sibling(HEADINGS))


def _table_context(table: Tag) -> str:
    return f"{_text(table.find('caption'))} {_heading_text(table)}".strip()


def _header_text(table: Tag) -> str:
    header_row = None
    thead = table.find("thead")
    if thead is not None:
        header_row = thead.find("tr")
    if header_row is None:
        header_row = table.find("tr")
    if header_row is None:
        return ""
    return " ".join(_text(cell) for cell in header_row.find_all(["th", "td"])).lower()


def _is_price_table(table: Tag) -> bool:
    header = _header_text(table)
    return "price" in header and any(word in header for word in ("city", "district", "town"))


def _cells(row: Tag) -> list[str]:
    return [_text(cell) for cell in row.find_all(["td", "th"])]


def row_price(fuel: str, cells: list[str], header: str = "") -> float | None:
    """Largest in-range amount in a row, preferring cells marked with a rupee sign.

    LPG amounts are read per kg only when the cell or the column header says so.
    """
    marked: list[float] = []
    unmarked: list[float] = []
    for cell in cells:
        value = parse_price(cell)
        if value is None:
            continue
        value = maybe_cylinder_price(fuel, value, f"{cell} {header}")
        if not is_valid_price(fuel, value):
            continue
        (marked if "₹" in cell else unmarked).append(value)
    pool = marked or unmarked
    return max(pool) if pool else None


def _locality_link_name(anchor: Tag, ctx: _RegionContext) -> str | None:
    href = anchor.get("href") or ""
    if not href or REGION_LINK_RE.search(href) or not PRICE_LINK_RE.search(href):
        return None
    name = _text(anchor)
    if not name or ctx.is_other_region(normalize_region_name(name)):
        return None
    return name


def _link_slug(anchor: Tag) -> str | None:
    match = PRICE_LINK_RE.search(anchor.get("href") or "")
    return match.group(2) if match else None


def _locality_links(node: Tag, ctx: _RegionContext) -> list[Tag]:
    return [a for a in node.select("a[href*='-price-in-']") if _locality_link_name(a, ctx)]


def parse_generic_row(fuel: str, cells: list[str], ctx: _RegionContext, header: str = "") -> TableEntry | None:
    parts = [c for c in cells if c]
    if len(parts) < 2:
        return None
    joined = " ".join(parts).lower()
    if HEADER_ROW_RE.search(joined) and "price" in joined:
        return None
    name = next((p for p in parts if LETTER_RE.search(p) and not HEADER_CELL_RE.search(p)), None)
    if name is None or ctx.is_other_region(normalize_region_name(name)):
        return None
    price = row_price(fuel, parts, header)
    if price is None:
        return None
    return TableEntry(name=name, price=price)


def _add_rows(table: Tag, ctx: _RegionContext, out: LocalityPrices) -> None:
    header = _header_text(table)
    for row in table.find_all("tr"):
        entry = parse_generic_row(ctx.fuel, _cells(row), ctx, header)
        if entry is None:
            continue
        key = normalize_locality_key(entry.name)
        if key and key not in out:
            out[key] = entry


def _best_anchor_table(soup: BeautifulSoup, ctx: _RegionContext) -> Tag | None:
    scored: list[tuple[int, Tag]] = []
    for table in soup.find_all("table"):
        links = _locality_links(table, ctx)
        if not links:
            continue
        scored.append((len(links) + ctx.score_context(table), table))
    if not scored:
        return None
    score, best = max(scored, key=lambda item: item[0])
    return best if score > 0 else None


def anchor_table_prices(soup: BeautifulSoup, ctx: _RegionContext) -> LocalityPrices:
    best = _best_anchor_table(soup, ctx)
    if best is None:
        return {}

    header = _header_text(best)
    out: LocalityPrices = {}
    for row in best.find_all("tr"):
        links = _locality_links(row, ctx)
        if not links:
            continue
        name = _locality_link_name(links[0], ctx)
        key = normalize_locality_key(name)
        if not name or not key or key in out:
            continue
        price = row_price(ctx.fuel, _cells(row), header)
        if price is None:
            continue
        out[key] = TableEntry(name=name, price=price, slug=_link_slug(links[0]))
    return out


def header_table_prices(soup: BeautifulSoup, ctx: _RegionContext) -> LocalityPrices:
    scored: list[tuple[int, Tag]] = []
    for table in soup.find_all("table"):
        if not _is_price_table(table):
            continue
        rows = table.select("tbody tr") or table.find_all("tr")
        scored.append((ctx.score_context(table) + min(MAX_ROW_BONUS, len(rows)), table))
    if not scored:
        return {}
    score, best = max(scored, key=lambda item: item[0])
    out: LocalityPrices = {}
    if score > 0:
        _add_rows(best, ctx, out)
    return out


def unscored_table_prices(soup: BeautifulSoup, ctx: _RegionContext) -> LocalityPrices:
    out: LocalityPrices = {}
    for table in soup.find_all("table"):
        if not _is_price_table(table) or ctx.excluded(table):
            continue
        _add_rows(table, ctx, out)
    return out


TableStrategy = Callable[[BeautifulSoup, _RegionContext], LocalityPrices]

TABLE_STRATEGIES: tuple[TableStrategy, ...] = (
    anchor_table_prices,
    header_table_prices,
    unscored_table_prices,
)


def extract_locality_prices(html: str, fuel: str, region_name: str | None = None) -> LocalityPrices:
    soup = BeautifulSoup(html, "html.parser")
    ctx = _RegionContext(fuel, region_name)
    for strategy in TABLE_STRATEGIES:
        found = strategy(soup, ctx)
        if found:
            return found
    return {}


def _unique_links(node: Tag, ctx: _RegionContext) -> list[tuple[str, str]]:
    links: list[tuple[str, str]] = []
    seen: set[str] = set()
    for anchor in _locality_links(node, ctx):
        name = _locality_link_name(anchor, ctx) or ""
        key = normalize_locality_key(name)
        slug = _link_slug(anchor)
        if key and slug and key not in seen:
            seen.add(key)
            links.append((name, slug))
    return links


def collect_locality_links(html: str, region_name: str | None = None) -> list[tuple[str, str]]:
    """(name, slug) for every locality detail link on a listing page, first link per locality."""
    return _unique_links(BeautifulSoup(html, "html.parser"), _RegionContext("petrol", region_name))


def collect_locality_slugs(html: str, region_name: str | None = None) -> dict[str, str]:
    return {normalize_locality_key(name): slug for name, slug in collect_locality_links(html, region_name)}


def region_locality_links(html: str, region_name: str | None = None) -> list[tuple[str, str]]:
    """(name, slug) for every linked locality in the region's own table, priced or not."""
    soup = BeautifulSoup(html, "html.parser")
    ctx = _RegionContext("petrol", region_name)
    best = _best_anchor_table(soup, ctx)
    return _unique_links(best, ctx) if best is not None else []


def parse_simple_price_table(html: str) -> dict[str, float]:
    """Two-column locality/price tables, used for region supplementary tables."""
    soup = BeautifulSoup(html, "html.parser")
    out: dict[str, float] = {}
    for row in soup.select("table.tbldata01 tbody tr, table.table tr, table.fuel_table tr"):
        cells = [_text(td) for td in row.find_all("td")]
        if len(cells) < 2:
            continue
        joined = " ".join(cells).lower()
        if HEADER_ROW_RE.search(joined) and "price" in joined:
            continue
        key = normalize_locality_key(cells[0])
        cleaned = re.sub(r"[^\d.]", "", cells[1])
        try:
            value = float(cleaned)
        except ValueError:
            continue
        if key:
            out[key] = value

    if not out:
        body = soup.body.get_text(" ") if soup.body else soup.get_text(" ")
        pattern = re.compile(r"([^\W\d_][^\W\d_.\- ]*(?:[ .\-][^\W\d_]+)*)\s*(?:₹)?\s*(\d{1,4}(?:,\d{3})*(?:\.\d+)?)")
        for match in pattern.finditer(body):
            key = normalize_locality_key(match.group(1))
            value = parse_price(match.group(2))
            if key and value is not None:
                out[key] = value
    return out
