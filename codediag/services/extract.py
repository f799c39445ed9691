import re
from typing import Any, Dict, List, NamedTuple

from codediag.services.obd import lookup_generic, system_for_prefix

_DTC_PATTERN = re.compile(r"\b([PBCU]\d{4})\b", re.IGNORECASE)


class ExtractedCode(NamedTuple):
    code: str
    title: str
    found: bool

    def to_dict(self) -> Dict[str, Any]:
        return self._asdict()


def extract_codes(text: str) -> List[str]:
    """Generic-looking codes mentioned in free text, uppercased, first-seen order, no repeats."""
    seen = set()
    out: List[str] = []
    for m in _DTC_PATTERN.finditer(text or ""):
        code = m.group(1).upper()
        if code not in seen:
            seen.add(code)
            out.append(code)
    return out


def classify_extracted(code: str) -> ExtractedCode:
    """
    Verified title when the code is in the reference data. Otherwise only a
    category label, flagged with found=False so it is never shown as a meaning.
    """
    normalized = (code or "").strip().upper()
    d = lookup_generic(normalized)
    if d is not None:
        return ExtractedCode(normalized, d.title, True)

    category = system_for_prefix(normalized[:1])
    if len(normalized) == 5 and normalized[1] in "123":
        label = f"Manufacturer-Specific {category} Code"
    else:
        label = f"Unknown {category} Code"
    return ExtractedCode(normalized, label, False)


def classify_all(codes: List[str]) -> List[ExtractedCode]:
    return [classify_extracted(c) for c in codes]
