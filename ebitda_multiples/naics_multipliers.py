import json
import logging
import math
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from .valuation import ValuationEstimate, build_estimate

logger = logging.getLogger(__name__)

DATA_DIR = Path(__file__).resolve().parent / "data"
NAICS_MULTIPLIERS_PATH = os.environ.get(
    "NAICS_MULTIPLIERS_PATH",
    str(DATA_DIR / "naics_multipliers.json"),
)

PREMIUM_SCORE_THRESHOLD = 4.0
# Exact-match base tier spans scores 0-3.9; sector fallback spans 0-4.0.
BASE_SCORE_SPAN = 3.9
SECTOR_BASE_SCORE_SPAN = 4.0


class MultiplierDataError(RuntimeError):
    """Raised when a multiplier data file is missing or malformed."""
    pass


@dataclass(frozen=True)
class MultiplierRange:
    min: float
    max: float

    def interpolate(self, fraction: float) -> float:
        return self.min + (self.max - self.min) * fraction


@dataclass(frozen=True)
class NAICSMultiplier:
    industry: str
    base_range: MultiplierRange
    premium_range: MultiplierRange
    notes: str = ""


@dataclass(frozen=True)
class SectorDefault:
    base: float
    premium: float


# Conservative two-digit sector fallbacks for codes without industry data.
SECTOR_DEFAULTS: Dict[str, SectorDefault] = {
    "11": SectorDefault(3.0, 5.0),   # Agriculture
    "21": SectorDefault(4.0, 7.0),   # Mining
    "22": SectorDefault(5.0, 8.0),   # Utilities
    "23": SectorDefault(4.0, 7.0),   # Construction
    "31": SectorDefault(4.5, 7.5),   # Manufacturing
    "32": SectorDefault(4.5, 7.5),   # Manufacturing
    "33": SectorDefault(4.5, 7.5),   # Manufacturing
    "42": SectorDefault(3.5, 6.0),   # Wholesale Trade
    "44": SectorDefault(3.0, 5.5),   # Retail Trade
    "45": SectorDefault(3.0, 5.5),   # Retail Trade
    "48": SectorDefault(3.5, 6.0),   # Transportation
    "49": SectorDefault(3.5, 6.0),   # Transportation
    "51": SectorDefault(7.0, 12.0),  # Information
    "52": SectorDefault(6.0, 10.0),  # Finance
    "53": SectorDefault(5.0, 8.0),   # Real Estate
    "54": SectorDefault(6.5, 11.0),  # Professional Services
    "55": SectorDefault(5.5, 9.0),   # Management of Companies
    "56": SectorDefault(4.0, 7.0),   # Administrative and Support
    "61": SectorDefault(4.5, 7.5),   # Educational Services
    "62": SectorDefault(5.5, 9.0),   # Health Care
    "71": SectorDefault(3.5, 6.0),   # Arts and Entertainment
    "72": SectorDefault(3.0, 5.0),   # Accommodation and Food
    "81": SectorDefault(3.5, 6.0),   # Other Services
    "92": SectorDefault(4.0, 7.0),   # Public Administration
}
CATCH_ALL_DEFAULT = SectorDefault(4.0, 7.0)


def _parse_range(code: str, name: str, raw: Any) -> MultiplierRange:
    if not isinstance(raw, Mapping):
        raise MultiplierDataError(f"NAICS {code}: {name} must be an object with min/max")
    try:
        low = float(raw["min"])
        high = float(raw["max"])
    except (KeyError, TypeError, ValueError) as exc:
        raise MultiplierDataError(f"NAICS {code}: invalid {name}: {raw!r}") from exc
    if not (math.isfinite(low) and math.isfinite(high)) or low <= 0 or high <= 0:
        raise MultiplierDataError(f"NAICS {code}: {name} bounds must be positive numbers")
    if low > high:
        raise MultiplierDataError(f"NAICS {code}: {name} min {low} exceeds max {high}")
    return MultiplierRange(min=low, max=high)


def parse_naics_multipliers(data: Mapping[str, Any]) -> Dict[str, NAICSMultiplier]:
    """Validate the raw ``{code: entry}`` mapping and build typed entries."""
    if not isinstance(data, Mapping):
        raise MultiplierDataError("NAICS multiplier data must be an object keyed by code")
    table: Dict[str, NAICSMultiplier] = {}
    for code, raw in data.items():
        if not isinstance(raw, Mapping):
            raise MultiplierDataError(f"NAICS {code}: entry must be an object")
        entry = NAICSMultiplier(
            industry=str(raw.get("industry") or ""),
            base_range=_parse_range(code, "base_range", raw.get("base_range")),
            premium_range=_parse_range(code, "premium_range", raw.get("premium_range")),
            notes=str(raw.get("notes") or ""),
        )
        if entry.premium_range.min < entry.base_range.max:
            logger.warning(
                "NAICS %s premium range starts at %.2f below base max %.2f",
                code,
                entry.premium_range.min,
                entry.base_range.max,
            )
        table[str(code)] = entry
    return table


def load_naics_multipliers(path: str | Path = NAICS_MULTIPLIERS_PATH) -> Dict[str, NAICSMultiplier]:
    """Read the packaged (or overridden) NAICS multiplier JSON file."""
    source = Path(path)
    try:
        data = json.loads(source.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise MultiplierDataError(f"NAICS multiplier file not found: {source}") from exc
    except json.JSONDecodeError as exc:
        raise MultiplierDataError(f"NAICS multiplier file is not valid JSON: {source}") from exc
    table = parse_naics_multipliers(data)
    logger.info("Loaded %d NAICS multiplier entries from %s", len(table), source)
    return table


NAICS_MULTIPLIERS: Dict[str, NAICSMultiplier] = load_naics_multipliers()


def get_naics_entry(
    naics_code: str, table: Optional[Mapping[str, NAICSMultiplier]] = None
) -> Optional[NAICSMultiplier]:
    lookup = NAICS_MULTIPLIERS if table is None else table
    return lookup.get(naics_code)


def get_sector_default(naics_code: str) -> SectorDefault:
    """Two-digit sector fallback, or the catch-all for unknown sectors."""
    sector = naics_code[:2]
    sector_data = SECTOR_DEFAULTS.get(sector)
    if sector_data is None:
        logger.debug("No sector default for %r; using catch-all", naics_code)
        return CATCH_ALL_DEFAULT
    return sector_data


def multiplier_source(naics_code: str, table: Optional[Mapping[str, NAICSMultiplier]] = None) -> str:
    """Name the tier that resolves ``naics_code``: naics, sector or default."""
    if get_naics_entry(naics_code, table) is not None:
        return "naics"
    if naics_code[:2] in SECTOR_DEFAULTS:
        return "sector"
    return "default"


def _sector_default_multiplier(naics_code: str, performance_score: float) -> float:
    sector_data = get_sector_default(naics_code)
    if performance_score >= PREMIUM_SCORE_THRESHOLD:
        normalized_score = (performance_score - PREMIUM_SCORE_THRESHOLD) / 1.0
        # Premium starts halfway between base and premium, not at base.
        blend = 0.5 + normalized_score * 0.5
        return sector_data.base + (sector_data.premium - sector_data.base) * blend
    normalized_score = performance_score / SECTOR_BASE_SCORE_SPAN
    return sector_data.base * (0.7 + normalized_score * 0.3)


def get_naics_multiplier(
    naics_code: str,
    performance_score: float,
    table: Optional[Mapping[str, NAICSMultiplier]] = None,
) -> float:
    """
    EBITDA multiplier for an industry and a 0-5 performance score.

    Scores of 4.0 and above interpolate across the premium range (4.0-5.0),
    lower scores across the base range (0-3.9). Codes with no industry data
    fall back to sector defaults. Scores are not clamped, so values outside
    0-5 extrapolate linearly.
    """
    entry = get_naics_entry(naics_code, table)
    if entry is None:
        logger.debug("No NAICS data for %r; using sector defaults", naics_code)
        return _sector_default_multiplier(naics_code, performance_score)

    if performance_score >= PREMIUM_SCORE_THRESHOLD:
        normalized_score = (performance_score - PREMIUM_SCORE_THRESHOLD) / 1.0
        return entry.premium_range.interpolate(normalized_score)
    normalized_score = performance_score / BASE_SCORE_SPAN
    return entry.base_range.interpolate(normalized_score)


def calculate_naics_based_valuation(
    adjusted_ebitda: float,
    naics_code: str,
    performance_score: float,
    table: Optional[Mapping[str, NAICSMultiplier]] = None,
) -> ValuationEstimate:
    multiplier = get_naics_multiplier(naics_code, performance_score, table)
    return build_estimate(adjusted_ebitda, multiplier)
