from typing import Literal

from .rules import ValidationReport

Confidence = Literal["high", "medium", "low"]

DEFAULT_LOW_CONFIDENCE_THRESHOLD = 0.7


def derive_confidence(
    report: ValidationReport,
    parse_confidence: float = 1.0,
    threshold: float = DEFAULT_LOW_CONFIDENCE_THRESHOLD,
) -> Confidence:
    """Confidence tier from a validation report and extraction confidence.

    Always recomputed, never stored: low on any error or when parse
    confidence is below ``threshold``, medium on any warning, else high.
    """
    if report.errors or parse_confidence < threshold:
        return "low"
    if report.warnings:
        return "medium"
    return "high"
