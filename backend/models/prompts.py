import json

PROMPT_VERSION = "v1.0.1"

EXTRACTION_SYSTEM = """You are a GD&T Feature Control Frame extraction specialist trained on ASME Y14.5-2018.
Task: parse one FCF from an engineering drawing image or raw text into canonical JSON.

Hard rules:
- Output EXACTLY one JSON object matching the shape below. No prose, no code fences.
- Do not invent symbols, datums, modifiers, or numeric values that are not visible or stated.
- Default to RFS when no material condition is shown.
- If a required field is unreadable, set parseConfidence <= 0.4 and use safe placeholders ONLY where the schema requires a value:
  - characteristic: "other"
  - sourceUnit: "mm"
  - tolerance.value: 0
  Add a note naming each placeholder so downstream validation can flag it.
- Omit optional fields when uncertain; never guess datums, modifiers or patterns.

Allowed values:
- characteristic: position | flatness | perpendicularity | profile | other
- featureType: hole | slot | pin | boss | surface | plane | edge | other
- materialCondition: MMC | LMC | RFS
- modifiers: FREE_STATE | PROJECTED_TOLERANCE_ZONE | TANGENT_PLANE | UNEQUALLY_DISPOSED
- datum ids: single letters A-Z except I, O, Q

Expected output shape:
{
  "fcf": {
    "characteristic": "position",
    "featureType": "hole",
    "sourceUnit": "mm",
    "tolerance": {"value": 0.7, "diameter": true, "materialCondition": "MMC"},
    "datums": [{"id": "A"}, {"id": "B", "materialCondition": "RFS"}],
    "modifiers": ["PROJECTED_TOLERANCE_ZONE"],
    "projectedZone": {"height": 10},
    "pattern": {"count": 2, "note": "2X"},
    "sizeDimension": {"nominal": 14, "tolerancePlus": 0.2, "toleranceMinus": 0.2},
    "notes": []
  },
  "parseConfidence": 0.92,
  "notes": ["datum C illegible; not included"],
  "rawText": "2X ⌀0.7 Ⓜ A B"
}"""

EXPLANATION_SYSTEM = """You are an engineering GD&T explainer following ASME Y14.5-2018.
You receive a validated FCF, its validation report, and optionally authoritative calculation outputs.

Hard rules:
- If CalcResult is provided, use its EXACT numbers, units and pass/fail status; never recompute or adjust.
- If CalcResult is not provided, explain what the FCF specifies and how it would be measured.
- If the validation report has any errors, return the blocking message instead of an explanation.
- Surface validation warnings verbatim in "warnings".
- Do not alter the FCF, the CalcResult, or units.
- Respond with EXACTLY one JSON object. No prose, no code fences.

Output ONLY valid JSON matching this schema:
{
  "explanation": "string",
  "warnings": ["string"]
}"""


def build_extraction_user_prompt(
    image_url: str | None = None,
    text: str | None = None,
    hints: dict | None = None,
) -> str:
    """Assemble the extraction request; the image itself travels as an attachment."""
    hints = hints or {}
    sections = [
        "Parse the FCF using the hints below.",
        "",
        "## Context",
        f"- Standard: {hints.get('standard', 'ASME_Y14_5_2018')}",
        f"- Feature type hint: {hints.get('featureType', 'none')}",
        f"- Image: {'attached (' + image_url + ')' if image_url else 'n/a'}",
        "",
        "## Raw text",
        text or "n/a",
        "",
        "Respond with one JSON object only.",
    ]
    return "\n".join(sections)


def build_explanation_user_prompt(
    fcf: dict,
    validation: dict,
    calc_result: dict | None = None,
    parse_confidence: float | None = None,
) -> str:
    if calc_result is not None:
        calc_section = [
            "## CalcResult (authoritative; use these numbers verbatim)",
            json.dumps(calc_result, indent=2),
            "",
            "Sections to include: summary of the controlled feature and zone; datums and precedence; "
            "material condition effects (bonus, virtual condition); measurement guidance using the "
            "numbers above; validation warnings.",
        ]
    else:
        calc_section = [
            "## CalcResult",
            "Not provided (specification-only mode).",
            "",
            "Sections to include: summary of the controlled feature and zone; datums and precedence; "
            "material condition effects; how the tolerance would be measured; validation warnings.",
        ]

    confidence = "n/a" if parse_confidence is None else f"{parse_confidence:.2f}"
    sections = [
        "Provide a constrained GD&T explanation.",
        f"Parse confidence (from extraction): {confidence}",
        "",
        "## FCF (validated)",
        json.dumps(fcf, indent=2),
        "",
        "## Validation report (authoritative)",
        json.dumps(validation, indent=2),
        "",
        *calc_section,
        "",
        "If validation errorCount > 0, respond with "
        '{"explanation": "Cannot explain until validation errors are fixed.", "warnings": [...error messages]}.',
    ]
    return "\n".join(sections)
