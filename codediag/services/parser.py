import re
from enum import Enum
from typing import NamedTuple

_GENERIC_PATTERN = re.compile(r"^[PBCU][0-9A-F]{4}$")
_MANUFACTURER_HEX_PATTERN = re.compile(r"^[0-9A-F]{4,6}$")
_STRIP_PATTERN = re.compile(r"[\s\-]")


class CodeKind(str, Enum):
    GENERIC = "generic"
    MANUFACTURER_HEX = "manufacturer_hex"
    UNRECOGNIZED = "unrecognized"


class ParsedCode(NamedTuple):
    normalized: str
    kind: CodeKind


def normalize_code(raw: str) -> str:
    """Uppercase and drop whitespace and hyphens ("p 03-00" -> "P0300")."""
    return _STRIP_PATTERN.sub("", (raw or "").strip().upper())


def is_generic(code: str) -> bool:
    return bool(_GENERIC_PATTERN.match(normalize_code(code)))


def is_manufacturer_hex(code: str) -> bool:
    return bool(_MANUFACTURER_HEX_PATTERN.match(normalize_code(code)))


def classify(raw: str) -> ParsedCode:
    """
    Normalize then classify a user-typed code:
      P/B/C/U + 4 hex digits   -> generic
      4-6 hex digits, no prefix -> manufacturer_hex
      anything else             -> unrecognized
    Never raises.
    """
    normalized = normalize_code(raw)
    if not normalized:
        return ParsedCode("", CodeKind.UNRECOGNIZED)

    # Generic must be tried first: B/C are hex digits too.
    if is_generic(normalized):
        return ParsedCode(normalized, CodeKind.GENERIC)
    if is_manufacturer_hex(normalized):
        return ParsedCode(normalized, CodeKind.MANUFACTURER_HEX)
    return ParsedCode(normalized, CodeKind.UNRECOGNIZED)
