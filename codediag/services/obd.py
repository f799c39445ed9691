import json
import re
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

DATA_DIR = Path(__file__).resolve().parent.parent / "data"
CANONICAL_PATH = DATA_DIR / "dtc_definitions.json"
TITLES_PATH = DATA_DIR / "dtc_titles.json"

DEFAULT_SOURCE = "SAE J2012 / ISO 15031-6"

# Dataset keys are decimal; hex-digit codes like P0A80 are never stored.
_LOOKUP_REGEX = re.compile(r"^([PBCU])(\d{4})$")

SYSTEM_BY_PREFIX = {
    "P": "Powertrain",
    "B": "Body",
    "C": "Chassis",
    "U": "Network/Communication",
}


@dataclass(frozen=True)
class GenericDefinition:
    code: str
    system: str
    standard: str
    title: str
    description: str
    notes: Optional[str]
    source: str


def system_for_prefix(letter: str) -> str:
    return SYSTEM_BY_PREFIX.get((letter or "")[:1].upper(), "Unknown")


def standard_for_code(code: str) -> str:
    return "OBD2" if code[1:2] == "0" else "Manufacturer"


def _load_json(path: Path) -> Dict[str, Any]:
    with path.open(encoding="utf-8") as fp:
        return json.load(fp)


@lru_cache
def _canonical_table() -> Dict[str, Dict[str, Any]]:
    return _load_json(CANONICAL_PATH)


@lru_cache
def _titles_table() -> Dict[str, str]:
    return _load_json(TITLES_PATH)


def _from_canonical(code: str) -> Optional[GenericDefinition]:
    rec = _canonical_table().get(code)
    if not rec:
        return None
    return GenericDefinition(
        code=rec.get("code") or code,
        system=rec.get("system") or system_for_prefix(code),
        standard=rec.get("standard") or standard_for_code(code),
        title=rec["title"],
        description=rec.get("description") or rec["title"],
        notes=rec.get("notes"),
        source=rec.get("source") or DEFAULT_SOURCE,
    )


def _from_titles(code: str) -> Optional[GenericDefinition]:
    title = _titles_table().get(code)
    if not title:
        return None
    return GenericDefinition(
        code=code,
        system=system_for_prefix(code),
        standard=standard_for_code(code),
        title=title,
        description=title,
        notes=None,
        source=DEFAULT_SOURCE,
    )


# Tried in order, first hit wins.
LOOKUP_SOURCES: List[Callable[[str], Optional[GenericDefinition]]] = [
    _from_canonical,
    _from_titles,
]


def validate_obd_code(code: str) -> bool:
    return bool(_LOOKUP_REGEX.match((code or "").strip().upper()))


def lookup_generic(code: str) -> Optional[GenericDefinition]:
    """
    Return the verified definition for a generic DTC, or None.

    The canonical dataset wins over the title-only dataset. A miss in both
    is None; callers must treat that as unknown and never make up a title.
    """
    normalized = (code or "").strip().upper()
    if not validate_obd_code(normalized):
        return None
    for source in LOOKUP_SOURCES:
        found = source(normalized)
        if found is not None:
            return found
    return None
