from __future__ import annotations

import unittest

from scrapers.region_tables import (
    collect_locality_links,
    collect_locality_slugs,
    extract_locality_prices,
    parse_simple_price_table,
    region_locality_links,
)

KERALA_PETROL_HTML = """
<html><body>
  <h2>Petrol Price in Kerala Cities</h2>
  <table>
    <tr><th>City</th><th>Price</th><th>Change</th></tr>
    <tr><td><a href="/petrol-price-in-ernakulam.html">Ernakulam</a></td><td>&#8377; 107.35</td><td>0.12</td></tr>
    <tr><td><a href="/petrol-price-in-kollam.html">Kollam</a></td><td>&#8377; 108.50</td><td>0.00</td></tr>
    <tr><td><a href="/petrol-price-in-idukki.html">Idukki</a></td><td>-</td><td>-</td></tr>
    <tr><td><a href="/petrol-price-in-kerala-s18.html">Kerala</a></td><td>&#8377; 107.90</td></tr>
  </table>
  <h2>Petrol Price in Major Cities of India</h2>
  <table>
    <tr><th>City</th><th>Price</th></tr>
    <tr><td><a href="/petrol-price-in-new-delhi.html">New Delhi</a></td><td>&#8377; 94.72</td></tr>
    <tr><td><a href="/petrol-price-in-mumbai.html">Mumbai</a></td><td>&#8377; 103.44</td></tr>
    <tr><td><a href="/petrol-price-in-chennai.html">Chennai</a></td><td>&#8377; 100.75</td></tr>
  </table>
</body></html>
"""

KERALA_DIESEL_HTML = """
<html><body>
  <h3>Diesel price in Kerala districts</h3>
  <table>
    <thead><tr><th>District</th><th>Price (Rs/Ltr)</th></tr></thead>
    <tbody>
      <tr><td>Ernakulam</td><td>96.20</td></tr>
      <tr><td>Kollam</td><td>97.31</td></tr>
    </tbody>
  </table>
  <h3>Diesel price in Tamil Nadu</h3>
  <table>
    <thead><tr><th>City</th><th>Price</th></tr></thead>
    <tbody><tr><td>Chennai</td><td>92.34</td></tr></tbody>
  </table>
</body></html>
"""

KERALA_LPG_HTML = """
<html><body>
  <h2>LPG Price in Kerala</h2>
  <table>
    <tr><th>City</th><th>Price</th></tr>
    <tr><td><a href="/lpg-price-in-ernakulam.html">Ernakulam</a></td><td>&#8377; 71.20 per kg</td></tr>
    <tr><td><a href="/lpg-price-in-kollam.html">Kollam</a></td><td>&#8377; 1,012.00</td></tr>
  </table>
</body></html>
"""

KERALA_LPG_CHANGE_HTML = """
<html><body>
  <h2>LPG Price in Kerala</h2>
  <table>
    <tr><th>City</th><th>Price</th><th>Change</th></tr>
    <tr><td><a href="/lpg-price-in-idukki.html">Idukki</a></td><td>-</td><td>&#8377; 12.50</td></tr>
    <tr><td><a href="/lpg-price-in-kollam.html">Kollam</a></td><td>&#8377; 1,012.00</td><td>&#8377; 0.00</td></tr>
  </table>
</body></html>
"""

KERALA_LPG_PER_KG_HEADER_HTML = """
<html><body>
  <h2>LPG Price in Kerala</h2>
  <table>
    <tr><th>City</th><th>LPG Price (&#8377;/kg)</th></tr>
    <tr><td>Ernakulam</td><td>&#8377; 71.20</td></tr>
  </table>
</body></html>
"""

KERALA_WITH_MAJOR_CITIES_HTML = KERALA_PETROL_HTML.replace(
    "</body>",
    """<h2>Petrol Price in Major Cities</h2>
  <table>
    <tr><th>City</th><th>Price</th></tr>
    <tr><td><a href="/petrol-price-in-chennai.html">Chennai</a></td><td>&#8377; 100.80</td></tr>
  </table>
</body>""",
)

SUPPLEMENTARY_HTML = """
<table class="tbldata01"><tbody>
  <tr><td>City</td><td>Price</td></tr>
  <tr><td>Ernakulam</td><td>&#8377; 1,010.50</td></tr>
  <tr><td>Kollam</td><td>&#8377; 1,012.00</td></tr>
</tbody></table>
"""


class RegionTableTests(unittest.TestCase):
    def test_anchor_table_for_region_wins_over_national_table(self) -> None:
        prices = extract_locality_prices(KERALA_PETROL_HTML, "petrol", "Kerala")
        self.assertEqual({"ernakulam", "kollam"}, set(prices))
        self.assertEqual(107.35, prices["ernakulam"].price)
        self.assertEqual("ernakulam", prices["ernakulam"].slug)
        self.assertEqual("Kollam", prices["kollam"].name)

    def test_header_table_skips_other_region(self) -> None:
        prices = extract_locality_prices(KERALA_DIESEL_HTML, "diesel", "Kerala")
        self.assertEqual({"ernakulam": 96.2, "kollam": 97.31}, {k: v.price for k, v in prices.items()})
        self.assertIsNone(prices["ernakulam"].slug)

    def test_lpg_per_kg_row_converted_to_cylinder(self) -> None:
        prices = extract_locality_prices(KERALA_LPG_HTML, "lpg", "Kerala")
        self.assertAlmostEqual(71.20 * 14.2, prices["ernakulam"].price)
        self.assertEqual(1012.0, prices["kollam"].price)

    def test_small_lpg_amount_without_kg_unit_is_not_a_price(self) -> None:
        prices = extract_locality_prices(KERALA_LPG_CHANGE_HTML, "lpg", "Kerala")
        self.assertEqual({"kollam": 1012.0}, {k: v.price for k, v in prices.items()})

    def test_lpg_per_kg_header_converts_row(self) -> None:
        prices = extract_locality_prices(KERALA_LPG_PER_KG_HEADER_HTML, "lpg", "Kerala")
        self.assertAlmostEqual(71.20 * 14.2, prices["ernakulam"].price)

    def test_no_tables_yields_empty_map(self) -> None:
        self.assertEqual({}, extract_locality_prices("<html><body><p>Sensex 85,000</p></body></html>", "petrol", "Kerala"))

    def test_collect_locality_slugs_skips_region_links(self) -> None:
        slugs = collect_locality_slugs(KERALA_PETROL_HTML, "Kerala")
        self.assertEqual("idukki", slugs["idukki"])
        self.assertNotIn("kerala", slugs)
        self.assertEqual(("Ernakulam", "ernakulam"), collect_locality_links(KERALA_PETROL_HTML, "Kerala")[0])

    def test_region_locality_links_include_unpriced_rows_only_from_region_table(self) -> None:
        links = region_locality_links(KERALA_WITH_MAJOR_CITIES_HTML, "Kerala")
        self.assertEqual([("Ernakulam", "ernakulam"), ("Kollam", "kollam"), ("Idukki", "idukki")], links)
        self.assertIn("chennai", collect_locality_slugs(KERALA_WITH_MAJOR_CITIES_HTML, "Kerala"))

    def test_parse_simple_price_table(self) -> None:
        self.assertEqual({"ernakulam": 1010.5, "kollam": 1012.0}, parse_simple_price_table(SUPPLEMENTARY_HTML))


if __name__ == "__main__":
    unittest.main()
