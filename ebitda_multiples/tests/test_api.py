import asyncio
import functools
import os
import tempfile
import unittest
from unittest.mock import patch

from fastapi import HTTPException

from ebitda_multiples import main as backend_main
from ebitda_multiples import naics_catalog
from ebitda_multiples.main import ValuationRequest
from ebitda_multiples.naics_multipliers import MultiplierDataError


def _make_body(**overrides):
    payload = {
        "ebitda": {
            "netIncome": "500000",
            "interest": "20000",
            "taxes": "80000",
            "depreciation": "30000",
            "amortization": "10000",
        },
        "adjustments": {
            "ownerSalary": "100000",
            "personalExpenses": "15000",
            "oneTimeExpenses": "5000",
            "otherAdjustments": "",
        },
        "valueDrivers": {
            "financialPerformance": "A",
            "customerConcentration": "A",
            "managementTeam": "A",
            "ownerDependency": "A",
        },
    }
    payload.update(overrides)
    return ValuationRequest(**payload)


class GradeEndpointTests(unittest.TestCase):
    def test_list_grades(self):
        payload = asyncio.run(backend_main.list_grades())
        grades = payload["grades"]
        self.assertEqual([g["grade"] for g in grades], ["A", "B", "C", "D", "E"])
        self.assertEqual(grades[0]["multiplier"], 7.5)
        self.assertEqual(grades[-1]["label"], "Poor")

    def test_grade_for_score(self):
        payload = asyncio.run(backend_main.grade_for_score(4.5))
        self.assertEqual(payload["grade"], "A")
        self.assertEqual(payload["multiplier"], 7.5)
        self.assertEqual(payload["score"], 4.5)

    def test_grade_for_non_finite_score(self):
        with self.assertRaises(HTTPException) as ctx:
            asyncio.run(backend_main.grade_for_score(float("nan")))
        self.assertEqual(ctx.exception.status_code, 400)


class NaicsEndpointTests(unittest.TestCase):
    def test_multiplier_for_known_code(self):
        payload = asyncio.run(backend_main.naics_multiplier("238160", score=4.0))
        self.assertAlmostEqual(payload["multiplier"], 8.5)
        self.assertEqual(payload["source"], "naics")
        self.assertEqual(payload["grade"], "B")

    def test_multiplier_for_unknown_code(self):
        payload = asyncio.run(backend_main.naics_multiplier("999999", score=3.0))
        self.assertAlmostEqual(payload["multiplier"], 3.7)
        self.assertEqual(payload["source"], "default")

    def test_invalid_code_rejected(self):
        for code in ("abc", "1", "1234567", ""):
            with self.assertRaises(HTTPException) as ctx:
                asyncio.run(backend_main.naics_multiplier(code, score=3.0))
            self.assertEqual(ctx.exception.status_code, 400)

    def test_lookup_with_multipliers(self):
        payload = asyncio.run(backend_main.naics_lookup("238160"))
        self.assertEqual(payload["title"], "Roofing Contractors")
        self.assertEqual(payload["parentCode"], "23816")
        self.assertEqual(payload["children"], [])
        self.assertEqual(payload["multipliers"]["baseRange"], {"min": 5.9, "max": 8.4})
        self.assertEqual(payload["source"], "naics")

    def test_lookup_without_multipliers(self):
        payload = asyncio.run(backend_main.naics_lookup("5415"))
        self.assertIsNone(payload["multipliers"])
        self.assertEqual(payload["source"], "sector")
        self.assertEqual([child["code"] for child in payload["children"]], ["54151"])

    def test_lookup_unknown_code(self):
        with self.assertRaises(HTTPException) as ctx:
            asyncio.run(backend_main.naics_lookup("999999"))
        self.assertEqual(ctx.exception.status_code, 404)

    def test_lookup_catalog_unavailable(self):
        with patch.object(backend_main, "get_catalog", side_effect=MultiplierDataError("gone")):
            with self.assertRaises(HTTPException) as ctx:
                asyncio.run(backend_main.naics_lookup("238160"))
        self.assertEqual(ctx.exception.status_code, 503)

    def test_lookup_catalog_empty_file(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "naics.csv")
            open(path, "w", encoding="utf-8").close()
            loader = functools.partial(naics_catalog.load_naics_catalog, path)
            with patch.object(naics_catalog, "_CATALOG", None), patch.object(
                naics_catalog, "load_naics_catalog", loader
            ):
                with self.assertRaises(HTTPException) as ctx:
                    asyncio.run(backend_main.naics_lookup("238160"))
        self.assertEqual(ctx.exception.status_code, 503)


class ValuationEndpointTests(unittest.TestCase):
    def test_grade_path_from_value_drivers(self):
        payload = asyncio.run(backend_main.post_valuation(_make_body()))
        self.assertEqual(payload["baseEbitda"], 640000.0)
        self.assertEqual(payload["adjustedEbitda"], 760000.0)
        self.assertEqual(payload["overallScore"], 5.0)
        self.assertEqual(payload["overallGrade"], "A")
        self.assertEqual(payload["gradeLabel"], "Excellent")
        self.assertEqual(payload["valuationMethod"], "grade")
        self.assertIsNone(payload["naicsCode"])
        self.assertEqual(
            payload["valuation"],
            {"lowEstimate": 4_560_000, "midEstimate": 5_700_000, "highEstimate": 6_840_000, "multiplier": 7.5},
        )

    def test_explicit_grade_wins(self):
        payload = asyncio.run(backend_main.post_valuation(_make_body(grade="D+")))
        self.assertEqual(payload["overallGrade"], "D+")
        self.assertEqual(payload["valuation"]["multiplier"], 3.5)

    def test_no_drivers_means_average(self):
        payload = asyncio.run(backend_main.post_valuation(_make_body(valueDrivers={})))
        self.assertEqual(payload["overallScore"], 3.0)
        self.assertEqual(payload["overallGrade"], "C")

    def test_naics_path(self):
        payload = asyncio.run(
            backend_main.post_valuation(_make_body(naicsCode="238160", performanceScore=4.0))
        )
        self.assertEqual(payload["valuationMethod"], "naics:naics")
        self.assertEqual(payload["overallGrade"], "B")
        self.assertEqual(payload["valuation"]["multiplier"], 8.5)
        self.assertEqual(payload["valuation"]["midEstimate"], 6_460_000)

    def test_naics_sector_fallback(self):
        payload = asyncio.run(
            backend_main.post_valuation(_make_body(naicsCode=" 238999 ", performanceScore=3.0))
        )
        self.assertEqual(payload["naicsCode"], "238999")
        self.assertEqual(payload["valuationMethod"], "naics:sector")
        self.assertAlmostEqual(payload["valuation"]["multiplier"], 3.7)
        self.assertEqual(payload["valuation"]["midEstimate"], 2_812_000)

    def test_invalid_naics_code(self):
        with self.assertRaises(HTTPException) as ctx:
            asyncio.run(backend_main.post_valuation(_make_body(naicsCode="roofing")))
        self.assertEqual(ctx.exception.status_code, 400)

    def test_non_finite_score(self):
        with self.assertRaises(HTTPException) as ctx:
            asyncio.run(backend_main.post_valuation(_make_body(performanceScore=float("inf"))))
        self.assertEqual(ctx.exception.status_code, 400)

    def test_overflowing_ebitda_is_rejected(self):
        body = _make_body(ebitda={"netIncome": "1e308", "interest": "1e308"})
        with self.assertRaises(HTTPException) as ctx:
            asyncio.run(backend_main.post_valuation(body))
        self.assertEqual(ctx.exception.status_code, 400)

    def test_overflowing_valuation_is_rejected(self):
        for body in (
            _make_body(naicsCode="238160", performanceScore=1e308),
            _make_body(ebitda={"netIncome": "1e308"}, grade="A"),
        ):
            with self.assertRaises(HTTPException) as ctx:
                asyncio.run(backend_main.post_valuation(body))
            self.assertEqual(ctx.exception.status_code, 400)


if __name__ == "__main__":
    unittest.main()
