import json
import logging
from typing import Any, Dict, List, Literal, Optional, Protocol

from pydantic import BaseModel, Field, ValidationError, field_validator

from codediag.ai.prompts import (
    build_system_prompt,
    build_user_prompt,
    resolve_language,
    vehicle_line,
)
from codediag.services.definitions import (
    Definition,
    Found,
    GenericNotFound,
    ManufacturerNeedsMake,
    ManufacturerNotFound,
    Unrecognized,
    resolve,
)
from codediag.services.extract import classify_all, extract_codes
from codediag.services.oem import ManufacturerCodeStore

logger = logging.getLogger(__name__)

DEBUG_EXCERPT_CHARS = 500


class TextGenerator(Protocol):
    async def generate(self, system: str, user: str) -> str:
        ...


class DiagnosisError(Exception):
    """A failure reported to the caller as ``{error, ...}`` with an HTTP status."""

    def __init__(self, status_code: int, error: str, **extra: Any):
        super().__init__(error)
        self.status_code = status_code
        self.error = error
        self.extra = {k: v for k, v in extra.items() if v is not None}

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.error, **self.extra}


class DiagnosisRequest(BaseModel):
    code: str = ""
    symptoms: str = ""
    year: str = ""
    make: str = ""
    model: str = ""
    engine: str = ""
    lang: str = "en"

    @field_validator("*", mode="before")
    @classmethod
    def _as_trimmed_str(cls, v: Any) -> str:
        if v is None:
            return ""
        return str(v).strip()


class Cause(BaseModel):
    title: str
    why: str
    severity: Literal["high", "medium", "low"]
    difficulty: str
    confirm: List[str] = Field(min_length=1)
    fix: List[str] = Field(min_length=1)

    @field_validator("severity", mode="before")
    @classmethod
    def _lower(cls, v: Any) -> Any:
        return v.strip().lower() if isinstance(v, str) else v


def split_codes(raw: str) -> List[str]:
    codes = [c.strip() for c in (raw or "").split(",") if c.strip()]
    if not codes and (raw or "").strip():
        codes = [raw.strip()]
    return codes


def parse_model_json(text: str) -> Optional[Dict[str, Any]]:
    """Strict parse first, then the outermost {...} span. None when neither is a JSON object."""
    text = text or ""
    candidates = [text]
    start = text.find("{")
    end = text.rfind("}")
    if start != -1 and end > start:
        candidates.append(text[start:end + 1])
    for raw in candidates:
        try:
            data = json.loads(raw)
        except ValueError:
            continue
        if isinstance(data, dict):
            return data
    return None


def _unexpected_format(text: str) -> DiagnosisError:
    return DiagnosisError(
        500,
        "AI returned unexpected format. Try again with more symptoms.",
        debug=(text or "")[:DEBUG_EXCERPT_CHARS],
    )


class DiagnosisBuilder:
    def __init__(self, generator: TextGenerator, store: Optional[ManufacturerCodeStore] = None):
        self.generator = generator
        self.store = store

    async def _verified_definitions(self, codes: List[str], make: str) -> List[Definition]:
        definitions: List[Definition] = []
        seen = set()
        # Input order; the first failure aborts the whole request.
        for raw in codes:
            result = await resolve(raw, make, store=self.store)
            if isinstance(result, Found):
                key = (result.definition.code, result.definition.make)
                if key not in seen:
                    seen.add(key)
                    definitions.append(result.definition)
            elif isinstance(result, ManufacturerNeedsMake):
                raise DiagnosisError(
                    400,
                    f"{result.code} looks like a manufacturer-specific code. Select the vehicle make to look it up.",
                    code=result.code,
                    next="choose_make",
                )
            elif isinstance(result, ManufacturerNotFound):
                raise DiagnosisError(
                    404,
                    f"{result.code} is not in our verified {result.make} database yet. "
                    "Try describing the symptoms instead.",
                    code=result.code,
                    make=result.make,
                    next="try_symptoms",
                )
            elif isinstance(result, GenericNotFound):
                raise DiagnosisError(
                    404,
                    f"{result.code} is not in our code database. Try describing the symptoms instead.",
                    code=result.code,
                    next="try_symptoms",
                )
            elif isinstance(result, Unrecognized):
                raise DiagnosisError(
                    400,
                    f"\"{raw}\" is not a recognized trouble code format. "
                    "Use an OBD-II code like P0300 or a manufacturer hex code like 480A12.",
                    code=result.code or None,
                    next="check_format",
                )
            else:
                raise TypeError(f"unhandled lookup result {result!r}")
        return definitions

    async def build_and_run(self, req: DiagnosisRequest) -> Dict[str, Any]:
        if not req.year or not req.make or not req.model:
            raise DiagnosisError(400, "Year, Make, and Model are required.")
        if not req.code and not req.symptoms:
            raise DiagnosisError(400, "Enter a trouble code OR describe symptoms.")

        codes = split_codes(req.code)
        definitions = await self._verified_definitions(codes, req.make) if codes else []

        language = resolve_language(req.lang)
        vehicle = vehicle_line(req.year, req.make, req.model, req.engine)
        system = build_system_prompt(language, has_definitions=bool(definitions))
        user = build_user_prompt(vehicle, codes, req.symptoms, definitions, language)

        logger.info(
            "[diagnose] vehicle=%r codes=%d verified=%d lang=%s",
            vehicle, len(codes), len(definitions), language,
        )
        text = await self.generator.generate(system, user)

        parsed = parse_model_json(text)
        if parsed is None or not isinstance(parsed.get("causes"), list) or not parsed["causes"]:
            logger.warning("[diagnose] unparseable model output chars=%d", len(text or ""))
            raise _unexpected_format(text)
        try:
            causes = [Cause.model_validate(c) for c in parsed["causes"]]
        except ValidationError as e:
            logger.warning("[diagnose] model output failed validation errors=%d", e.error_count())
            raise _unexpected_format(text) from e

        out: Dict[str, Any] = {
            "vehicle": vehicle,
            "input": {"code": req.code, "symptoms": req.symptoms},
            "causes": [c.model_dump() for c in causes],
        }
        summary_title = parsed.get("summary_title")
        if isinstance(summary_title, str) and summary_title.strip():
            out["summary_title"] = summary_title.strip()

        # Verified meaning always replaces whatever the model said about the code.
        if definitions:
            out["code_definition"] = definitions[0].to_dict()
            out["code_definitions"] = [d.to_dict() for d in definitions]

        mentioned = [c for c in extract_codes(req.symptoms) if c not in {d.code for d in definitions}]
        if mentioned:
            out["dtcLookup"] = [e.to_dict() for e in classify_all(mentioned)]
        return out
