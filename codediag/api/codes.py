import logging
from typing import Optional

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from codediag.services.definitions import Found, Unrecognized, parse_only, resolve, result_to_dict
from codediag.services.extract import classify_all, extract_codes
from codediag.services.obd import lookup_generic
from codediag.services.oem import ManufacturerCodeStore, ReferenceStoreError, get_store

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["codes"])

EXPECTED_OBD2 = {
    "P0300": "Random/Multiple Cylinder Misfire Detected",
    "P0420": "Catalyst System Efficiency Below Threshold (Bank 1)",
    "P0171": "System Too Lean (Bank 1)",
    "P0455": "Evaporative Emission System Leak Detected (Gross Leak)",
}
EXPECTED_OEM = {
    "code": "480A12",
    "make": "BMW",
    "title": "Rear brake pad wear sensor: wear limit reached / circuit open",
}


class ExtractBody(BaseModel):
    text: str = ""


def _store_unavailable() -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Code database is unavailable. Try again later."},
    )


@router.get("/codes/{code}/parse")
async def parse_code(code: str):
    parsed = parse_only(code)
    return {"normalized": parsed.normalized, "type": parsed.kind.value}


@router.get("/codes/{code}")
async def get_code(
    code: str,
    make: Optional[str] = None,
    store: ManufacturerCodeStore = Depends(get_store),
):
    try:
        result = await resolve(code, make, store=store)
    except ReferenceStoreError:
        logger.exception("[codes] lookup failed code=%s", code)
        return _store_unavailable()

    body = result_to_dict(result)
    if isinstance(result, Found):
        return body
    if isinstance(result, Unrecognized) or getattr(result, "needs_make", False):
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=body)
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content=body)


@router.post("/codes/extract")
async def extract(body: ExtractBody):
    codes = extract_codes(body.text)
    return {"codes": [e.to_dict() for e in classify_all(codes)]}


@router.get("/dtc/verify")
async def verify(store: ManufacturerCodeStore = Depends(get_store)):
    """Compare a few known codes against their expected verified titles."""
    results = []
    for code, expected in EXPECTED_OBD2.items():
        d = lookup_generic(code)
        actual = d.title if d else None
        results.append({"code": code, "expected": expected, "actual": actual, "pass": actual == expected, "type": "obd2"})

    try:
        oem = await resolve(EXPECTED_OEM["code"], EXPECTED_OEM["make"], store=store)
    except ReferenceStoreError:
        logger.exception("[verify] oem lookup failed")
        return _store_unavailable()
    oem_actual = oem.definition.title if isinstance(oem, Found) else None
    results.append({
        "code": f"{EXPECTED_OEM['code']} ({EXPECTED_OEM['make']})",
        "expected": EXPECTED_OEM["title"],
        "actual": oem_actual,
        "pass": oem_actual == EXPECTED_OEM["title"],
        "type": "oem",
    })

    all_pass = all(r["pass"] for r in results)
    return JSONResponse(
        status_code=status.HTTP_200_OK if all_pass else status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "ok": all_pass,
            "message": "All code definitions match the expected dataset."
            if all_pass
            else "One or more definitions do not match.",
            "results": results,
        },
    )
