import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import pandas as pd

from .naics_multipliers import DATA_DIR, MultiplierDataError

logger = logging.getLogger(__name__)

NAICS_CATALOG_PATH = os.environ.get(
    "NAICS_CATALOG_PATH",
    str(DATA_DIR / "naics_2022.csv"),
)

REQUIRED_COLUMNS = ("level", "code", "title")
CATALOG_COLUMNS = ["code", "title", "level", "parent_code", "notes"]

LEVEL_NAMES = {
    2: "sectors",
    3: "subsectors",
    4: "industryGroups",
    5: "industries",
    6: "nationalIndustries",
}

# The official file lists some sectors as ranges ("31-33"); each prefix
# still needs its own sector row for parent lookups.
VIRTUAL_SECTOR_NAMES = {
    "31": "Manufacturing (31)",
    "32": "Manufacturing (32)",
    "33": "Manufacturing (33)",
    "44": "Retail Trade (44)",
    "45": "Retail Trade (45)",
    "48": "Transportation and Warehousing (48)",
    "49": "Transportation and Warehousing (49)",
    "53": "Real Estate and Rental and Leasing",
    "54": "Professional, Scientific, and Technical Services",
    "71": "Arts, Entertainment, and Recreation",
}

_CATALOG: Optional[pd.DataFrame] = None


def _parent_code(code: str, level: int) -> str:
    if level <= 2:
        return ""
    return code[: level - 1]


def _virtual_sectors(frame: pd.DataFrame) -> pd.DataFrame:
    present = set(frame.loc[frame["level"] == 2, "code"])
    prefixes = sorted(set(frame["code"].str[:2]) - present)
    rows = [
        {
            "code": prefix,
            "title": VIRTUAL_SECTOR_NAMES.get(prefix, f"Sector {prefix}"),
            "level": 2,
            "notes": "Virtual sector",
        }
        for prefix in prefixes
    ]
    if rows:
        logger.debug("Adding virtual sectors: %s", ",".join(prefixes))
    return pd.DataFrame(rows, columns=["code", "title", "level", "notes"])


def load_naics_catalog(path: str | Path = NAICS_CATALOG_PATH) -> pd.DataFrame:
    """
    Load the NAICS code list (``level,code,title,notes``) into a hierarchy.

    Rows without a numeric level, code or title are dropped, as are range
    codes such as ``31-33``. Sector prefixes that have children but no sector
    row get a virtual one so every code has a resolvable parent.
    """
    source = Path(path)
    try:
        raw = pd.read_csv(source, dtype=str, keep_default_na=False)
    except FileNotFoundError as exc:
        raise MultiplierDataError(f"NAICS catalog not found: {source}") from exc
    except (pd.errors.EmptyDataError, pd.errors.ParserError, UnicodeDecodeError) as exc:
        raise MultiplierDataError(f"NAICS catalog is not a readable CSV: {source}") from exc

    raw.columns = [str(col).strip().lower() for col in raw.columns]
    missing = [col for col in REQUIRED_COLUMNS if col not in raw.columns]
    if missing:
        raise MultiplierDataError(f"NAICS catalog {source} missing columns: {','.join(missing)}")

    frame = pd.DataFrame(
        {
            "code": raw["code"].str.strip(),
            "title": raw["title"].str.strip(),
            "level": pd.to_numeric(raw["level"].str.strip(), errors="coerce"),
            "notes": raw["notes"].str.strip() if "notes" in raw.columns else "",
        }
    )
    frame = frame[frame["level"].notna() & (frame["code"] != "") & (frame["title"] != "")]
    numeric_codes = frame["code"].str.fullmatch(r"\d+")
    dropped = int((~numeric_codes).sum())
    if dropped:
        logger.debug("Dropping %d range codes from NAICS catalog", dropped)
    frame = frame[numeric_codes].copy()
    frame["level"] = frame["level"].astype(int)

    frame = pd.concat([frame, _virtual_sectors(frame)], ignore_index=True)
    frame["level"] = frame["level"].astype(int)
    frame["parent_code"] = [_parent_code(code, level) for code, level in zip(frame["code"], frame["level"])]
    frame = frame.sort_values(["code", "level"], kind="stable").reset_index(drop=True)
    logger.info("Loaded %d NAICS catalog codes from %s", len(frame), source)
    return frame[CATALOG_COLUMNS]


def get_catalog() -> pd.DataFrame:
    global _CATALOG
    if _CATALOG is None:
        _CATALOG = load_naics_catalog()
    return _CATALOG


def _record(row: pd.Series) -> Dict[str, Any]:
    record: Dict[str, Any] = {
        "code": str(row["code"]),
        "title": str(row["title"]),
        "level": int(row["level"]),
    }
    if row["parent_code"]:
        record["parentCode"] = str(row["parent_code"])
    return record


def to_hierarchical_records(frame: pd.DataFrame) -> List[Dict[str, Any]]:
    """JSON-ready rows; ``parentCode`` is present only below sector level."""
    return [_record(row) for _, row in frame.iterrows()]


def get_naics_by_level(catalog: pd.DataFrame, level: int) -> pd.DataFrame:
    return catalog[catalog["level"] == level].reset_index(drop=True)


def get_naics_by_code(catalog: pd.DataFrame, code: str) -> Optional[Dict[str, Any]]:
    match = catalog[catalog["code"] == code]
    if match.empty:
        return None
    return _record(match.iloc[0])


def get_children_of_code(catalog: pd.DataFrame, parent_code: str) -> pd.DataFrame:
    return catalog[catalog["parent_code"] == parent_code].reset_index(drop=True)


def get_six_digit_codes(catalog: pd.DataFrame) -> pd.DataFrame:
    return get_naics_by_level(catalog, 6)


def naics_stats(catalog: pd.DataFrame) -> Dict[str, int]:
    counts = catalog["level"].value_counts()
    stats = {"totalCodes": int(len(catalog))}
    for level, name in LEVEL_NAMES.items():
        stats[name] = int(counts.get(level, 0))
    return stats
