import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from .valuation import ValuationEstimate, build_estimate

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GradeMultiplier:
    grade: str
    multiplier: float
    label: str
    description: str


# Free assessment scale, 3x-8x EBITDA.
GRADE_MULTIPLIERS: Tuple[GradeMultiplier, ...] = (
    GradeMultiplier("A", 7.5, "Excellent", "Strong operational performance across all areas"),
    GradeMultiplier("B", 6.0, "Good", "Above average performance with minor improvement areas"),
    GradeMultiplier("C", 4.5, "Average", "Typical business performance with room for enhancement"),
    GradeMultiplier("D", 3.5, "Below Average", "Performance challenges requiring attention"),
    GradeMultiplier("E", 3.0, "Poor", "Significant operational improvements needed"),
)
_BY_GRADE: Dict[str, GradeMultiplier] = {entry.grade: entry for entry in GRADE_MULTIPLIERS}

DEFAULT_GRADE = "C"

# (lower bound, grade), checked top-down.
_SCORE_THRESHOLDS: Tuple[Tuple[float, str], ...] = (
    (4.5, "A"),
    (3.5, "B"),
    (2.5, "C"),
    (1.5, "D"),
)
LOWEST_GRADE = "E"


def score_to_grade(score: float) -> str:
    """Map a 0-5 performance score onto a letter grade."""
    for lower_bound, grade in _SCORE_THRESHOLDS:
        if score >= lower_bound:
            return grade
    return LOWEST_GRADE


def _lookup(grade: str) -> Optional[GradeMultiplier]:
    # "+"/"-" modifiers carry no weight; only the base letter is looked up.
    base_grade = grade[:1]
    entry = _BY_GRADE.get(base_grade)
    if entry is None:
        logger.debug("Unknown grade %r; using %s defaults", grade, DEFAULT_GRADE)
    return entry


def _resolve(grade: str) -> GradeMultiplier:
    return _lookup(grade) or _BY_GRADE[DEFAULT_GRADE]


def get_multiplier_for_grade(grade: str) -> float:
    return _resolve(grade).multiplier


def get_label_for_grade(grade: str) -> str:
    return _resolve(grade).label


def get_description_for_grade(grade: str) -> str:
    return _resolve(grade).description


def get_all_grade_multipliers() -> List[GradeMultiplier]:
    """Return every grade row, A through E, for display."""
    return list(GRADE_MULTIPLIERS)


def calculate_grade_based_valuation(adjusted_ebitda: float, grade: str) -> ValuationEstimate:
    """Low/mid/high valuation from adjusted EBITDA and an operational grade."""
    multiplier = get_multiplier_for_grade(grade)
    return build_estimate(adjusted_ebitda, multiplier)
