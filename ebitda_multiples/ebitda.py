import logging
import math
import re
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional

logger = logging.getLogger(__name__)

# Leading numeric prefix, the way a browser form's parseFloat reads it.
_NUMBER_PREFIX_RE = re.compile(r"^\s*[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")

VALUE_DRIVER_SCORES = {
    "A": 5,
    "B": 4,
    "C": 3,
    "D": 2,
    "E": 1,
    "F": 1,
}
DEFAULT_DRIVER_SCORE = 3.0


def to_amount(value: Any) -> float:
    """Coerce a form value to a float; anything unusable counts as zero."""
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        try:
            number = float(value)
        except OverflowError:
            return 0.0
    else:
        match = _NUMBER_PREFIX_RE.match(str(value))
        if not match:
            return 0.0
        number = float(match.group(0))
    if not math.isfinite(number):
        return 0.0
    return number


def _pick(data: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in data:
            return data[key]
    return None


@dataclass(frozen=True)
class EbitdaInputs:
    net_income: float = 0.0
    interest: float = 0.0
    taxes: float = 0.0
    depreciation: float = 0.0
    amortization: float = 0.0

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]]) -> "EbitdaInputs":
        data = data or {}
        return cls(
            net_income=to_amount(_pick(data, "netIncome", "net_income")),
            interest=to_amount(_pick(data, "interest")),
            taxes=to_amount(_pick(data, "taxes")),
            depreciation=to_amount(_pick(data, "depreciation")),
            amortization=to_amount(_pick(data, "amortization")),
        )


@dataclass(frozen=True)
class OwnerAdjustments:
    owner_salary: float = 0.0
    personal_expenses: float = 0.0
    one_time_expenses: float = 0.0
    other_adjustments: float = 0.0

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]]) -> "OwnerAdjustments":
        data = data or {}
        return cls(
            owner_salary=to_amount(_pick(data, "ownerSalary", "owner_salary")),
            personal_expenses=to_amount(_pick(data, "personalExpenses", "personal_expenses")),
            one_time_expenses=to_amount(_pick(data, "oneTimeExpenses", "one_time_expenses")),
            other_adjustments=to_amount(_pick(data, "otherAdjustments", "other_adjustments")),
        )


def compute_base_ebitda(inputs: EbitdaInputs) -> float:
    """Net income plus interest, taxes, depreciation and amortization."""
    return inputs.net_income + inputs.interest + inputs.taxes + inputs.depreciation + inputs.amortization


def compute_total_adjustments(adjustments: OwnerAdjustments) -> float:
    return (
        adjustments.owner_salary
        + adjustments.personal_expenses
        + adjustments.one_time_expenses
        + adjustments.other_adjustments
    )


def compute_adjusted_ebitda(inputs: EbitdaInputs, adjustments: OwnerAdjustments) -> float:
    """Base EBITDA with owner add-backs applied."""
    return compute_base_ebitda(inputs) + compute_total_adjustments(adjustments)


def average_driver_score(grades: Iterable[Optional[str]]) -> float:
    """
    Average the 1-5 score of a set of value-driver grades.

    Blank entries are skipped and unrecognised letters score as a C. With no
    graded drivers at all the business is treated as average.
    """
    scores = []
    for grade in grades:
        if not grade:
            continue
        score = VALUE_DRIVER_SCORES.get(str(grade)[:1])
        if score is None:
            logger.debug("Unrecognised value-driver grade %r; scoring as C", grade)
            score = DEFAULT_DRIVER_SCORE
        scores.append(float(score))
    if not scores:
        return DEFAULT_DRIVER_SCORE
    return sum(scores) / len(scores)
