from __future__ import annotations

import logging
import re
import time
import urllib.request
from datetime import date, datetime, timezone
from typing import Callable
from zoneinfo import ZoneInfo

DEFAULT_TIMEOUT_SECONDS = 20
USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0 Safari/537.36"
SITE_BASE = "https://www.goodreturns.in"
REGION_TIMEZONE = ZoneInfo("Asia/Kolkata")

Fetcher = Callable[[str], str]

logger = logging.getLogger(__name__)

_MONTHS = {
    "jan": 1,
    "january": 1,
    "feb": 2,
    "february": 2,
    "mar": 3,
    "march": 3,
    "apr": 4,
    "april": 4,
    "may": 5,
    "jun": 6,
    "june": 6,
    "jul": 7,
    "july": 7,
    "aug": 8,
    "august": 8,
    "sep": 9,
    "sept": 9,
    "september": 9,
    "oct": 10,
    "october": 10,
    "nov": 11,
    "november": 11,
    "dec": 12,
    "december": 12,
}


class FetchError(Exception):
    pass


def region_today(now: datetime | None = None) -> date:
    """Civil date in Asia/Kolkata."""
    if now is None:
        now = datetime.now(timezone.utc)
    return now.astimezone(REGION_TIMEZONE).date()


def region_hour(now: datetime | None = None) -> int:
    if now is None:
        now = datetime.now(timezone.utc)
    return now.astimezone(REGION_TIMEZONE).hour


def fetch_url(url: str, timeout: int = DEFAULT_TIMEOUT_SECONDS, retries: int = 1) -> str:
    last_err: Exception | None = None
    for attempt in range(retries + 1):
        try:
            headers = {
                "User-Agent": USER_AGENT,
                "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
                "Accept-Language": "en-US,en;q=0.9",
            }
            req = urllib.request.Request(url, headers=headers)
            with urllib.request.urlopen(req, timeout=timeout) as response:
                return response.read().decode("utf-8", errors="ignore")
        except Exception as err:  # pragma: no cover - network dependent
            last_err = err
            logger.debug("fetch %s failed on attempt %d: %s", url, attempt + 1, err)
            if attempt < retries:
                time.sleep(1.5 * (attempt + 1))
    raise FetchError(f"Failed to fetch URL: {url}: {last_err}")


def absolute_url(href: str) -> str:
    if href.startswith("http"):
        return href
    return SITE_BASE + (href if href.startswith("/") else f"/{href}")


def normalize_region_name(value: str | None) -> str:
    text = (value or "").lower().replace("&", " and ")
    return re.sub(r"[\W_]+", " ", text).strip()


def normalize_locality_key(value: str | None) -> str:
    return re.sub(r"[\W_]+", " ", (value or "").lower()).strip()


def collapse_whitespace(value: str | None) -> str:
    return re.sub(r"\s+", " ", value or "").strip()


def parse_number(text: str) -> float | None:
    try:
        return float(text.replace(",", ""))
    except ValueError:
        return None


def parse_price(text: str | None) -> float | None:
    """First rupee-marked amount in the text, else the first number."""
    if not text:
        return None
    rupee = re.search(r"₹\s*(-?\d[\d,]*(?:\.\d+)?)", text)
    if rupee:
        return parse_number(rupee.group(1))
    match = re.search(r"-?\d[\d,]*(?:\.\d+)?", text)
    if not match:
        return None
    return parse_number(match.group(0))


def parse_updated_date(text: str | None) -> date | None:
    # "13th Dec, 2025", "12th December, 2025"
    cleaned = collapse_whitespace(text)
    if not cleaned:
        return None
    match = re.search(r"(\d{1,2})(?:st|nd|rd|th)?\s+([A-Za-z]+),?\s+(\d{4})", cleaned)
    if not match:
        return None
    month = _MONTHS.get(match.group(2).lower())
    if month is None:
        return None
    try:
        return date(int(match.group(3)), month, int(match.group(1)))
    except ValueError:
        return None
