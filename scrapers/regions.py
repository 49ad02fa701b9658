"""Region discovery from the site's petrol price index page."""
from __future__ import annotations

import re

from bs4 import BeautifulSoup

from .common import SITE_BASE, Fetcher, absolute_url, collapse_whitespace, fetch_url, normalize_region_name
from .types import RegionPage

PETROL_INDEX_URL = f"{SITE_BASE}/petrol-price.html"
REGION_LISTING_RE = re.compile(r"petrol-price-in-.*-s\d+\.html", re.IGNORECASE)

REGION_NAME_TO_CODE = {
    "andaman nicobar": "AN",
    "andaman nicobar islands": "AN",
    "andaman nicobar island": "AN",
    "andaman and nicobar": "AN",
    "andaman and nicobar islands": "AN",
    "andhra pradesh": "AP",
    "arunachal pradesh": "AR",
    "assam": "AS",
    "bihar": "BR",
    "chandigarh": "CH",
    "chhattisgarh": "CG",
    "chhatisgarh": "CG",
    "dadra and nagar haveli and daman and diu": "DN",
    "delhi": "DL",
    "goa": "GA",
    "gujarat": "GJ",
    "haryana": "HR",
    "himachal pradesh": "HP",
    "jammu kashmir": "JK",
    "jammu and kashmir": "JK",
    "jharkhand": "JH",
    "karnataka": "KA",
    "kerala": "KL",
    "ladakh": "LA",
    "lakshadweep": "LD",
    "madhya pradesh": "MP",
    "maharashtra": "MH",
    "manipur": "MN",
    "meghalaya": "ML",
    "mizoram": "MZ",
    "nagaland": "NL",
    "odisha": "OD",
    "orissa": "OD",
    "pondicherry": "PY",
    "puducherry": "PY",
    "punjab": "PB",
    "rajasthan": "RJ",
    "sikkim": "SK",
    "tamil nadu": "TN",
    "telangana": "TS",
    "tripura": "TR",
    "uttar pradesh": "UP",
    "uttarakhand": "UK",
    "uttaranchal": "UK",
    "west bengal": "WB",
}


def region_code_for_name(name: str | None) -> str | None:
    return REGION_NAME_TO_CODE.get(normalize_region_name(name))


def parse_region_index(html: str) -> list[RegionPage]:
    soup = BeautifulSoup(html, "html.parser")
    pages: list[RegionPage] = []
    seen: set[str] = set()
    for anchor in soup.select("a[href*='petrol-price-in-']"):
        href = anchor.get("href") or ""
        text = collapse_whitespace(anchor.get_text())
        if not href or not text or not REGION_LISTING_RE.search(href):
            continue
        code = region_code_for_name(text)
        if code is None:
            continue
        url = absolute_url(href)
        if url in seen:
            continue
        seen.add(url)
        pages.append(RegionPage(code=code, name=text, listing_url=url))
    return pages


def discover_regions(fetch: Fetcher = fetch_url) -> list[RegionPage]:
    """Raises FetchError when the index page is unavailable."""
    return parse_region_index(fetch(PETROL_INDEX_URL))
