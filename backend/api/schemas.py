from typing import Any

from pydantic import Field, model_validator

from gdt.interpreter import (  # noqa: F401  re-exported for route signatures
    CalculationRequest,
    InterpretFailure,
    InterpretRequest,
    InterpretSuccess,
)
from gdt.rules import WireModel


class ValidateRequest(WireModel):
    fcf: Any


class CalculateRequest(WireModel):
    characteristic: str
    input: dict = {}
    # Frame to fill defaults (tolerance, material condition, ...) from.
    fcf: Any = None


class ExtractRequest(WireModel):
    image_url: str | None = None
    text: str | None = None
    hints: dict | None = None

    @model_validator(mode="after")
    def _needs_input(self):
        if not self.image_url and not self.text:
            raise ValueError("imageUrl or text is required")
        return self


class ExtractResponse(WireModel):
    fcf: dict
    parse_confidence: float = Field(ge=0.0, le=1.0)
    notes: list[str] = []
    raw_text: str | None = None


class RuleInfo(WireModel):
    code: str
    category: str
    severity: str
    description: str
