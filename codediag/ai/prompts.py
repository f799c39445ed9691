import json
from typing import Dict, List, Optional

from codediag.services.definitions import Definition

LANGUAGES: Dict[str, str] = {
    "en": "English",
    "es": "Spanish",
    "fr": "French",
    "ar": "Arabic",
    "pt": "Portuguese",
    "de": "German",
    "zh": "Chinese",
}


def resolve_language(lang: Optional[str]) -> str:
    return LANGUAGES.get((lang or "en").strip().lower(), "English")


def build_system_prompt(language: str, has_definitions: bool) -> str:
    rules = [
        "You are an automotive diagnostic assistant.",
        "Return ONLY valid JSON. No markdown, no backticks, no extra text.",
        f"IMPORTANT: All text values in the JSON (summary_title, title, why, confirm steps, fix steps, difficulty) MUST be written in {language}.",
        "",
        "Rules:",
        "- Provide 4-6 likely causes, ranked from most to least likely.",
        "- Each cause must have UNIQUE confirm steps and fix steps tailored to that cause (avoid repeating generic advice).",
        "- Exactly 3 confirm steps and 3 fix steps per cause.",
        "- Confirm steps should be things a DIY person can do.",
        "- Fix steps should be practical and safe.",
        "- Keep each bullet short (1 line).",
        '- For severity: use "high" (most likely cause), "medium" (possible cause), or "low" (less likely).',
        '- Keep the severity value as the English token "high", "medium" or "low"; do NOT translate it.',
        "- Do NOT include any prices or cost estimates.",
        '- For difficulty: use "DIY Easy" (anyone can do it), "DIY Moderate" (needs some tools/knowledge), '
        f'or "Mechanic Recommended" (professional needed). Translate the difficulty label into {language}.',
    ]
    if has_definitions:
        rules.append(
            "- The code definitions given by the user are verified. Do NOT redefine, rename or reinterpret them. "
            "Only add causes, severity and repair guidance around them."
        )
    return "\n".join(rules) + "\n"


def vehicle_line(year: str, make: str, model: str, engine: str = "") -> str:
    return f"{year} {make} {model}" + (f" ({engine})" if engine else "")


def _definitions_block(definitions: List[Definition]) -> str:
    lines = ["Verified code definitions (use verbatim, do not change):"]
    for d in definitions:
        label = f"{d.code} ({d.make})" if d.make else d.code
        lines.append(f"- {label}: {d.title}")
        if d.description and d.description != d.title:
            lines.append(f"  {d.description}")
    return "\n".join(lines)


def build_user_prompt(
    vehicle: str,
    codes: List[str],
    symptoms: str,
    definitions: List[Definition],
    language: str,
) -> str:
    parts = [f"Vehicle: {vehicle}"]
    if definitions:
        parts.append(_definitions_block(definitions))
    if codes:
        parts.append(f"Trouble code(s): {', '.join(codes)}")
    if symptoms:
        parts.append(f"Symptoms: {symptoms}")

    schema = {
        "vehicle": vehicle,
        "input": {"code": ", ".join(codes), "symptoms": symptoms},
        "summary_title": f"string (A concise title describing the issue in {language})",
        "causes": [
            {
                "title": "string",
                "why": "string (1 sentence)",
                "severity": "high | medium | low",
                "difficulty": f"string (translated to {language})",
                "confirm": ["string", "string", "string"],
                "fix": ["string", "string", "string"],
            }
        ],
    }
    parts.append(
        f"Output JSON in this exact schema (all text values in {language}):\n"
        + json.dumps(schema, indent=2, ensure_ascii=False)
    )
    return "\n\n".join(parts) + "\n"
