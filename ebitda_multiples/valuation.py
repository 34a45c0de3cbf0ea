import logging
import math
from dataclasses import dataclass
from typing import Dict, Union

logger = logging.getLogger(__name__)

LOW_ESTIMATE_FACTOR = 0.8
HIGH_ESTIMATE_FACTOR = 1.2


def round_half_up(value: float) -> int:
    """Round to the nearest integer, ties toward +inf (JavaScript ``Math.round``).

    Infinite or NaN values have no integer form and round to 0.
    """
    if value is None or not math.isfinite(value):
        return 0
    return int(math.floor(value + 0.5))


def valuation_is_finite(adjusted_ebitda: float, multiplier: float) -> bool:
    """True when every point of the low/mid/high band fits in a float."""
    return math.isfinite(adjusted_ebitda * multiplier * HIGH_ESTIMATE_FACTOR)


@dataclass(frozen=True)
class ValuationEstimate:
    low_estimate: int
    mid_estimate: int
    high_estimate: int
    multiplier: float

    def to_dict(self) -> Dict[str, Union[int, float]]:
        return {
            "lowEstimate": self.low_estimate,
            "midEstimate": self.mid_estimate,
            "highEstimate": self.high_estimate,
            "multiplier": self.multiplier,
        }


def build_estimate(adjusted_ebitda: float, multiplier: float) -> ValuationEstimate:
    """
    Apply a multiplier to adjusted EBITDA and widen the result into a
    low/mid/high band. Non-positive EBITDA is passed through untouched;
    a band that overflows a float is reported as zeros.
    """
    if not valuation_is_finite(adjusted_ebitda, multiplier):
        logger.warning(
            "Valuation of EBITDA %r at %rx is not finite; estimates reported as 0",
            adjusted_ebitda,
            multiplier,
        )
        return ValuationEstimate(0, 0, 0, round(multiplier, 1))
    mid = round_half_up(adjusted_ebitda * multiplier)
    return ValuationEstimate(
        low_estimate=round_half_up(mid * LOW_ESTIMATE_FACTOR),
        mid_estimate=mid,
        high_estimate=round_half_up(mid * HIGH_ESTIMATE_FACTOR),
        multiplier=round(multiplier, 1),
    )
