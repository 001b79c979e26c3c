"""Types shared by the tolerance calculators."""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .frame import Unit
from .limits import DEFAULT_PRECISION, round_to

# "indeterminate" when there is no measurement to judge against the zone.
CalcStatus = Literal["pass", "fail", "indeterminate"]


class CalcModel(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class CalcInput(CalcModel):
    unit: Unit = Unit.MM
    precision: int = Field(default=DEFAULT_PRECISION, ge=1, le=6)


class CalcOutput(CalcModel):
    status: CalcStatus
    summary: str
    unit: Unit


class CalculatorIssue(CalcModel):
    code: str
    message: str
    field: str | None = None


class CalculationInputError(ValueError):
    """Numeric preconditions for a calculation were not met.

    Carries every problem found, not just the first.
    """

    def __init__(self, errors: list[CalculatorIssue]):
        self.errors = errors
        super().__init__("; ".join(e.message for e in errors))


def percent_consumed(measured: float, allowable: float) -> float:
    if allowable <= 0:
        return 0.0
    return round_to(measured / allowable * 100, 1)
