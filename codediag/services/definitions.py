"""
Single entry point for the meaning of a code.

OBD-II codes come from the bundled datasets, manufacturer hex codes from the
verified manufacturer table. Nothing here ever produces a meaning that is not
in one of those two sources.
"""
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

from codediag.services.obd import lookup_generic
from codediag.services.oem import ManufacturerCodeStore, get_store
from codediag.services.parser import CodeKind, ParsedCode, classify


@dataclass(frozen=True)
class Definition:
    kind: str  # "obd2" | "oem"
    code: str
    title: str
    description: str
    source: Optional[str]
    make: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "codeType": self.kind,
            "code": self.code,
            "title": self.title,
            "description": self.description,
            "source": self.source,
        }
        if self.make is not None:
            out["make"] = self.make
        return out


@dataclass(frozen=True)
class Found:
    definition: Definition
    parse_kind: CodeKind
    found = True


@dataclass(frozen=True)
class GenericNotFound:
    code: str
    parse_kind = CodeKind.GENERIC
    found = False


@dataclass(frozen=True)
class ManufacturerNeedsMake:
    code: str
    parse_kind = CodeKind.MANUFACTURER_HEX
    found = False
    needs_make = True


@dataclass(frozen=True)
class ManufacturerNotFound:
    code: str
    make: str
    parse_kind = CodeKind.MANUFACTURER_HEX
    found = False
    needs_make = False


@dataclass(frozen=True)
class Unrecognized:
    code: str
    parse_kind = CodeKind.UNRECOGNIZED
    found = False


LookupResult = Union[Found, GenericNotFound, ManufacturerNeedsMake, ManufacturerNotFound, Unrecognized]


def result_to_dict(result: LookupResult) -> Dict[str, Any]:
    out: Dict[str, Any] = {"found": result.found, "parseType": result.parse_kind.value}
    if isinstance(result, Found):
        out["definition"] = result.definition.to_dict()
    elif isinstance(result, (ManufacturerNeedsMake, ManufacturerNotFound)):
        out["needsMake"] = result.needs_make
    return out


def parse_only(raw_code: str) -> ParsedCode:
    return classify(raw_code)


async def resolve(
    raw_code: str,
    make: Optional[str] = None,
    store: Optional[ManufacturerCodeStore] = None,
) -> LookupResult:
    """
    Classify ``raw_code`` and look it up in the matching verified source.

    Manufacturer hex codes need a make; without one no lookup is attempted.
    ReferenceStoreError from the manufacturer store is not caught: a store
    that cannot be read is not the same as a code that is absent.
    """
    parsed = classify(raw_code)

    if parsed.kind is CodeKind.GENERIC:
        d = lookup_generic(parsed.normalized)
        if d is None:
            return GenericNotFound(code=parsed.normalized)
        return Found(
            definition=Definition(
                kind="obd2",
                code=d.code,
                title=d.title,
                description=d.description,
                source=d.source,
            ),
            parse_kind=CodeKind.GENERIC,
        )

    if parsed.kind is CodeKind.MANUFACTURER_HEX:
        make_trim = (make or "").strip()
        if not make_trim:
            return ManufacturerNeedsMake(code=parsed.normalized)
        oem = await (store or get_store()).lookup(make_trim, parsed.normalized)
        if oem is None:
            return ManufacturerNotFound(code=parsed.normalized, make=make_trim)
        return Found(
            definition=Definition(
                kind="oem",
                code=oem.code,
                title=oem.title,
                description=oem.description or oem.title,
                source=oem.source,
                make=oem.make,
            ),
            parse_kind=CodeKind.MANUFACTURER_HEX,
        )

    return Unrecognized(code=parsed.normalized)
