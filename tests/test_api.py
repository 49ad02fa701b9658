from __future__ import annotations

import tempfile
import unittest
from datetime import timedelta
from pathlib import Path

from fastapi.testclient import TestClient

from api.main import app, get_store
from models import FuelPriceRecord, RegionRecord
from scrapers.common import region_today
from store import SQLiteFuelStore


class ApiContractTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.store = SQLiteFuelStore(Path(self._tmp.name) / "fuel.db")
        self.today = region_today()
        yesterday = self.today - timedelta(days=1)

        self.store.upsert_regions(
            [
                RegionRecord(code="MH", name="Maharashtra"),
                RegionRecord(code="KL", name="Kerala"),
                RegionRecord(code="DL", name="Delhi"),
            ]
        )

        def row(code: str, locality: str, day=None, **prices) -> FuelPriceRecord:
            return FuelPriceRecord(region_code=code, locality=locality, date=day or self.today, **prices)

        self.store.upsert_snapshots(
            [
                row("MH", "Mumbai", petrol_price=103.44, diesel_price=89.97, lpg_price=852.5, cng_price=77.0),
                row("MH", "Mumbai", yesterday, petrol_price=103.5, diesel_price=90.03),
                row("MH", "Navi Mumbai", petrol_price=103.6),
                row("MH", "Aurangabad", petrol_price=104.5),
                row("BR", "Aurangabad", petrol_price=107.0),
                row("KL", "Kochi", petrol_price=107.5),
                row("DL", "New Delhi", petrol_price=94.77),
                row("LD", "Kavaratti", petrol_price=102.0, lpg_price=1200.0),
                row("AP", "Cuddapah", petrol_price=109.0),
                row("GJ", "Typo Town", petrol_price=260.0),
            ]
        )
        app.dependency_overrides[get_store] = lambda: self.store
        self.client = TestClient(app)

    def tearDown(self) -> None:
        app.dependency_overrides.clear()
        self._tmp.cleanup()

    def test_regions_endpoint(self) -> None:
        resp = self.client.get("/v1/regions")
        self.assertEqual(200, resp.status_code)
        names = [item["name"] for item in resp.json()["items"]]
        self.assertEqual(["Delhi", "Kerala", "Maharashtra"], names)

    def test_localities_requires_region(self) -> None:
        resp = self.client.get("/v1/localities")
        self.assertEqual(400, resp.status_code)

    def test_localities_for_latest_date(self) -> None:
        resp = self.client.get("/v1/localities", params={"region": "mh"})
        self.assertEqual(200, resp.status_code)
        body = resp.json()
        self.assertEqual("MH", body["region"])
        self.assertEqual(["Aurangabad", "Mumbai", "Navi Mumbai"], body["items"])

    def test_localities_use_display_alias(self) -> None:
        resp = self.client.get("/v1/localities", params={"region": "AP"})
        self.assertEqual(["Kadapa"], resp.json()["items"])

    def test_fuel_prices_requires_region_and_locality(self) -> None:
        self.assertEqual(400, self.client.get("/v1/fuel-prices", params={"region": "MH"}).status_code)
        self.assertEqual(400, self.client.get("/v1/fuel-prices", params={"locality": "Mumbai"}).status_code)

    def test_fuel_prices_unknown_locality(self) -> None:
        resp = self.client.get("/v1/fuel-prices", params={"region": "MH", "locality": "Atlantis"})
        self.assertEqual(404, resp.status_code)

    def test_fuel_prices_today_yesterday_and_history(self) -> None:
        resp = self.client.get("/v1/fuel-prices", params={"region": "MH", "locality": "Mumbai"})
        self.assertEqual(200, resp.status_code)
        body = resp.json()
        self.assertEqual(103.44, body["today"]["petrol_price"])
        self.assertEqual(103.5, body["yesterday"]["petrol_price"])
        self.assertEqual(2, len(body["history"]))
        self.assertEqual([103.5, 103.44], body["chart_data"]["values"])
        self.assertEqual(
            [(self.today - timedelta(days=1)).isoformat(), self.today.isoformat()],
            body["chart_data"]["labels"],
        )
        self.assertEqual({"petrol", "diesel", "lpg", "cng"}, set(body["chart_data_by_fuel"]))
        self.assertEqual([852.5], body["chart_data_by_fuel"]["lpg"]["values"])

    def test_fuel_prices_chart_follows_selected_fuel(self) -> None:
        resp = self.client.get("/v1/fuel-prices", params={"region": "MH", "locality": "Mumbai", "fuel": "diesel"})
        self.assertEqual([90.03, 89.97], resp.json()["chart_data"]["values"])

    def test_fuel_prices_alias_and_unavailable_fuels(self) -> None:
        kadapa = self.client.get("/v1/fuel-prices", params={"region": "AP", "locality": "Kadapa"}).json()
        self.assertEqual(109.0, kadapa["today"]["petrol_price"])

        kavaratti = self.client.get("/v1/fuel-prices", params={"region": "LD", "locality": "Kavaratti"}).json()
        self.assertEqual(102.0, kavaratti["today"]["petrol_price"])
        self.assertIsNone(kavaratti["today"]["lpg_price"])
        self.assertEqual([], kavaratti["chart_data_by_fuel"]["lpg"]["values"])

    def test_resolve_requires_query(self) -> None:
        self.assertEqual(400, self.client.get("/v1/localities/resolve").status_code)

    def test_resolve_exact_match_within_region(self) -> None:
        body = self.client.get("/v1/localities/resolve", params={"q": "mumbai", "region": "MH"}).json()
        self.assertEqual("resolved", body["kind"])
        self.assertEqual("Mumbai", body["snapshot"]["locality"])
        self.assertEqual(["Mumbai", "Navi Mumbai"], [c["locality"] for c in body["candidates"]])

    def test_resolve_single_region_without_region_hint(self) -> None:
        body = self.client.get("/v1/localities/resolve", params={"q": "navi-mumbai"}).json()
        self.assertEqual("resolved", body["kind"])
        self.assertEqual("Navi Mumbai", body["snapshot"]["locality"])

    def test_resolve_ambiguous_across_regions(self) -> None:
        body = self.client.get("/v1/localities/resolve", params={"q": "Aurangabad"}).json()
        self.assertEqual("ambiguous", body["kind"])
        self.assertEqual({"BR", "MH"}, {c["region_code"] for c in body["candidates"]})

    def test_resolve_not_found(self) -> None:
        body = self.client.get("/v1/localities/resolve", params={"q": "atlantis"}).json()
        self.assertEqual({"kind": "not_found"}, body)

    def test_cheapest_petrol_summary(self) -> None:
        resp = self.client.get("/v1/cheapest-petrol")
        self.assertEqual(200, resp.status_code)
        summary = resp.json()["summary"]
        self.assertEqual(self.today.isoformat(), summary["date"])
        self.assertEqual(8, summary["count"])
        self.assertEqual("New Delhi", summary["cheapest"]["locality"])
        self.assertEqual("Cuddapah", summary["most_expensive"]["locality"])
        self.assertEqual([94.77, 102.0, 103.44, 103.6, 104.5], [p["price"] for p in summary["top5"]])

    def test_cheapest_petrol_without_data(self) -> None:
        empty = SQLiteFuelStore(Path(self._tmp.name) / "empty.db")
        app.dependency_overrides[get_store] = lambda: empty
        self.assertEqual(404, self.client.get("/v1/cheapest-petrol").status_code)


if __name__ == "__main__":
    unittest.main()
