import logging
import math
import os
import re
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from .ebitda import (
    EbitdaInputs,
    OwnerAdjustments,
    average_driver_score,
    compute_adjusted_ebitda,
    compute_base_ebitda,
)
from .grade_multipliers import (
    calculate_grade_based_valuation,
    get_all_grade_multipliers,
    get_description_for_grade,
    get_label_for_grade,
    get_multiplier_for_grade,
    score_to_grade,
)
from .naics_catalog import get_catalog, get_children_of_code, get_naics_by_code, to_hierarchical_records
from .naics_multipliers import (
    MultiplierDataError,
    calculate_naics_based_valuation,
    get_naics_entry,
    get_naics_multiplier,
    multiplier_source,
)
from .valuation import valuation_is_finite

logger = logging.getLogger(__name__)

ALLOWED_ORIGINS = os.environ.get(
    "ALLOWED_ORIGINS",
    "http://localhost:5173,http://localhost:5174,http://127.0.0.1:5173,http://127.0.0.1:5174",
)


def _parse_origins(raw: str) -> List[str]:
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


app = FastAPI()

origins = _parse_origins(ALLOWED_ORIGINS)

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_NAICS_RE = re.compile(r"^\d{2,6}$")


def _normalize_naics_code(raw: str) -> str:
    value = (raw or "").strip()
    if not _NAICS_RE.match(value):
        logger.warning("Rejected NAICS code %r", raw)
        raise HTTPException(status_code=400, detail="Invalid NAICS code")
    return value


def _require_finite(value: float, name: str) -> float:
    if value is None or not math.isfinite(value):
        raise HTTPException(status_code=400, detail=f"{name} must be a finite number")
    return value


def _grade_payload(grade: str) -> Dict[str, Any]:
    return {
        "grade": grade,
        "label": get_label_for_grade(grade),
        "description": get_description_for_grade(grade),
        "multiplier": get_multiplier_for_grade(grade),
    }


class ValuationRequest(BaseModel):
    ebitda: Dict[str, Any] = Field(default_factory=dict)
    adjustments: Dict[str, Any] = Field(default_factory=dict)
    valueDrivers: Dict[str, Optional[str]] = Field(default_factory=dict)
    grade: Optional[str] = None
    naicsCode: Optional[str] = None
    performanceScore: Optional[float] = None


@app.get("/")
async def root():
    return {"message": "Valuation backend is running. See /api/grades and /api/valuation."}


@app.get("/api/grades")
async def list_grades():
    return {
        "grades": [
            {
                "grade": entry.grade,
                "multiplier": entry.multiplier,
                "label": entry.label,
                "description": entry.description,
            }
            for entry in get_all_grade_multipliers()
        ]
    }


@app.get("/api/grades/{score}")
async def grade_for_score(score: float):
    _require_finite(score, "score")
    payload = _grade_payload(score_to_grade(score))
    payload["score"] = score
    return payload


@app.get("/api/naics/{code}/multiplier")
async def naics_multiplier(code: str, score: float = 3.0):
    naics_code = _normalize_naics_code(code)
    _require_finite(score, "score")
    return {
        "naicsCode": naics_code,
        "performanceScore": score,
        "multiplier": get_naics_multiplier(naics_code, score),
        "source": multiplier_source(naics_code),
        "grade": score_to_grade(score),
    }


@app.get("/api/naics/{code}")
async def naics_lookup(code: str):
    naics_code = _normalize_naics_code(code)
    try:
        catalog = get_catalog()
    except MultiplierDataError:
        logger.exception("NAICS catalog unavailable")
        raise HTTPException(status_code=503, detail="NAICS catalog unavailable")

    record = get_naics_by_code(catalog, naics_code)
    if record is None:
        raise HTTPException(status_code=404, detail="NAICS code not found")

    entry = get_naics_entry(naics_code)
    multipliers = None
    if entry is not None:
        multipliers = {
            "industry": entry.industry,
            "baseRange": {"min": entry.base_range.min, "max": entry.base_range.max},
            "premiumRange": {"min": entry.premium_range.min, "max": entry.premium_range.max},
            "notes": entry.notes,
        }
    return {
        **record,
        "children": to_hierarchical_records(get_children_of_code(catalog, naics_code)),
        "multipliers": multipliers,
        "source": multiplier_source(naics_code),
    }


@app.post("/api/valuation")
async def post_valuation(body: ValuationRequest):
    inputs = EbitdaInputs.from_mapping(body.ebitda)
    adjustments = OwnerAdjustments.from_mapping(body.adjustments)
    base_ebitda = compute_base_ebitda(inputs)
    adjusted_ebitda = _require_finite(compute_adjusted_ebitda(inputs, adjustments), "adjustedEbitda")

    if body.performanceScore is not None:
        score = _require_finite(body.performanceScore, "performanceScore")
    else:
        score = average_driver_score(body.valueDrivers.values())
    grade = body.grade or score_to_grade(score)

    naics_code = _normalize_naics_code(body.naicsCode) if body.naicsCode else None
    if naics_code:
        multiplier = get_naics_multiplier(naics_code, score)
    else:
        multiplier = get_multiplier_for_grade(grade)
    if not valuation_is_finite(adjusted_ebitda, multiplier):
        logger.warning("Valuation overflow for EBITDA %r at %rx", adjusted_ebitda, multiplier)
        raise HTTPException(status_code=400, detail="Valuation is out of range")

    if naics_code:
        valuation = calculate_naics_based_valuation(adjusted_ebitda, naics_code, score)
        method = f"naics:{multiplier_source(naics_code)}"
    else:
        valuation = calculate_grade_based_valuation(adjusted_ebitda, grade)
        method = "grade"

    return {
        "baseEbitda": base_ebitda,
        "adjustedEbitda": adjusted_ebitda,
        "overallScore": score,
        "overallGrade": grade,
        "gradeLabel": get_label_for_grade(grade),
        "naicsCode": naics_code,
        "valuationMethod": method,
        "valuation": valuation.to_dict(),
    }
