from __future__ import annotations

import unittest
from datetime import date

from scrapers.common import FetchError
from scrapers.locality_page import detail_url, fetch_locality_price, fetch_locality_snapshot, read_locality_page


def price_block_page(amount: str, unit: str, updated: str = "13th Dec, 2025") -> str:
    return f"""
    <html><body>
      <div class="ticker">Sensex 85,000 Nifty 26,000</div>
      <div class="gd-fuel-priceblock">
        <div class="gd-fuel-priceblock-container">
          <div class="gd-fuel-price">&#8377; {amount} <span>/{unit}</span></div>
        </div>
        <div class="gd-fuel-updated-date">Updated on: {updated}</div>
      </div>
    </body></html>
    """


INTRO_PAGE = """
<html><body>
  <div id="gr_top_intro_content">
    <p>Today's petrol price in Gadchiroli is at &#8377;<b>105.06</b> per litre.</p>
  </div>
</body></html>
"""

LABELLED_PAGE = "<html><body><p>The CNG price in Pune today is &#8377; 92.00 per kg.</p></body></html>"

TICKER_ONLY_PAGE = "<html><body><div class='ticker'>Sensex 85,000 Gold &#8377; 7,800</div></body></html>"


class LocalityPageTests(unittest.TestCase):
    def test_price_block_with_updated_date(self) -> None:
        reading = read_locality_page(price_block_page("107.35", "Ltr"), "petrol")
        self.assertEqual(107.35, reading.price)
        self.assertEqual(date(2025, 12, 13), reading.updated_on)

    def test_lpg_per_kg_block_converted(self) -> None:
        reading = read_locality_page(price_block_page("56.55", "Kg"), "lpg")
        self.assertAlmostEqual(56.55 * 14.2, reading.price)

    def test_intro_bold_number(self) -> None:
        self.assertEqual(105.06, read_locality_page(INTRO_PAGE, "petrol").price)

    def test_labelled_text(self) -> None:
        self.assertEqual(92.0, read_locality_page(LABELLED_PAGE, "cng").price)

    def test_unrelated_numbers_are_not_prices(self) -> None:
        self.assertIsNone(read_locality_page(TICKER_ONLY_PAGE, "petrol").price)

    def test_out_of_range_block_yields_nothing(self) -> None:
        reading = read_locality_page(price_block_page("9999", "Ltr"), "diesel")
        self.assertIsNone(reading.price)
        self.assertEqual(date(2025, 12, 13), reading.updated_on)

    def test_fetch_error_yields_empty_reading(self) -> None:
        def fetch(url: str) -> str:
            raise FetchError(f"Failed to fetch URL: {url}: timed out")

        reading = fetch_locality_price("pune", "petrol", fetch)
        self.assertIsNone(reading.price)
        self.assertIsNone(reading.updated_on)

    def test_snapshot_dated_by_newer_page(self) -> None:
        pages = {
            detail_url("petrol", "pune"): price_block_page("104.20", "Ltr"),
            detail_url("diesel", "pune"): price_block_page("90.75", "Ltr"),
            detail_url("cng", "pune"): price_block_page("92.00", "Kg"),
        }

        def fetch(url: str) -> str:
            if url not in pages:
                raise FetchError(f"Failed to fetch URL: {url}: 404")
            return pages[url]

        snapshot = fetch_locality_snapshot("MH", "Pune", "pune", date(2025, 12, 12), fetch)
        self.assertEqual(date(2025, 12, 13), snapshot.date)
        self.assertEqual({"petrol": 104.2, "diesel": 90.75, "lpg": None, "cng": 92.0}, snapshot.prices)

    def test_snapshot_none_when_every_fuel_missing(self) -> None:
        def fetch(url: str) -> str:
            return TICKER_ONLY_PAGE

        self.assertIsNone(fetch_locality_snapshot("MH", "Pune", "pune", date(2025, 12, 12), fetch))


if __name__ == "__main__":
    unittest.main()
