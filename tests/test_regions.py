from __future__ import annotations

import unittest

from scrapers.common import FetchError
from scrapers.regions import PETROL_INDEX_URL, discover_regions, parse_region_index, region_code_for_name

INDEX_HTML = """
<html><body>
  <ul class="state-list">
    <li><a href="/petrol-price-in-kerala-s18.html">Kerala</a></li>
    <li><a href="https://www.goodreturns.in/petrol-price-in-maharashtra-s21.html">Maharashtra</a></li>
    <li><a href="/petrol-price-in-kerala-s18.html">Kerala</a></li>
    <li><a href="/petrol-price-in-atlantis-s99.html">Atlantis</a></li>
    <li><a href="/petrol-price-in-andaman-nicobar-s1.html">Andaman &amp; Nicobar</a></li>
  </ul>
  <a href="/petrol-price-in-kochi.html">Kochi</a>
</body></html>
"""


class RegionDiscoveryTests(unittest.TestCase):
    def test_parse_region_index_maps_known_names(self) -> None:
        pages = parse_region_index(INDEX_HTML)
        self.assertEqual(["KL", "MH", "AN"], [p.code for p in pages])
        self.assertEqual("https://www.goodreturns.in/petrol-price-in-kerala-s18.html", pages[0].listing_url)

    def test_listing_url_for_other_fuels(self) -> None:
        page = parse_region_index(INDEX_HTML)[1]
        self.assertEqual(
            "https://www.goodreturns.in/cng-price-in-maharashtra-s21.html",
            page.listing_url_for("cng"),
        )

    def test_region_code_aliases(self) -> None:
        self.assertEqual("OD", region_code_for_name("Orissa"))
        self.assertEqual("JK", region_code_for_name("Jammu & Kashmir"))
        self.assertIsNone(region_code_for_name("Atlantis"))

    def test_discover_regions_fetches_index(self) -> None:
        seen: list[str] = []

        def fetch(url: str) -> str:
            seen.append(url)
            return INDEX_HTML

        self.assertEqual(3, len(discover_regions(fetch)))
        self.assertEqual([PETROL_INDEX_URL], seen)

    def test_discover_regions_propagates_fetch_error(self) -> None:
        def fetch(url: str) -> str:
            raise FetchError(f"Failed to fetch URL: {url}: 503")

        with self.assertRaises(FetchError):
            discover_regions(fetch)


if __name__ == "__main__":
    unittest.main()
