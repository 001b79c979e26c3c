"""Dispatch from characteristic to calculator.

``calculate`` handles every Characteristic member explicitly; a new member
that is not wired in trips ``assert_never``.
"""

import logging
from typing import Any, assert_never

from pydantic import ValidationError

from .calc_types import CalcModel, CalculationInputError, CalculatorIssue
from .flatness import FlatnessInput, FlatnessResult, calculate_flatness
from .frame import Characteristic
from .perpendicularity import (
    PerpendicularityInput,
    PerpendicularityResult,
    calculate_perpendicularity,
)
from .position import PositionInput, PositionResult, calculate_position
from .profile import ProfileInput, ProfileResult, calculate_profile

logger = logging.getLogger(__name__)

CalcOutputModel = PositionResult | FlatnessResult | PerpendicularityResult | ProfileResult


class UnsupportedCharacteristicError(ValueError):
    """No calculator exists for the characteristic."""

    def __init__(self, characteristic: Any):
        self.characteristic = characteristic
        super().__init__(f"No tolerance calculator for characteristic '{characteristic}'")


class CalcResult(CalcModel):
    characteristic: Characteristic
    result: CalcOutputModel


def _input_errors(exc: ValidationError) -> list[CalculatorIssue]:
    return [
        CalculatorIssue(
            code="INVALID_INPUT",
            message=err["msg"],
            field=".".join(str(part) for part in err["loc"]) or None,
        )
        for err in exc.errors()
    ]


def _parse(model: type[CalcModel], payload: Any) -> Any:
    if isinstance(payload, model):
        return payload
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        raise CalculationInputError(_input_errors(e)) from e


def calculate(characteristic: Characteristic | str, payload: Any) -> CalcResult:
    """Run the calculator for ``characteristic`` over ``payload``.

    ``payload`` is a dict (camelCase or snake_case keys) or the matching input
    model. Raises CalculationInputError for unmet numeric preconditions and
    UnsupportedCharacteristicError when there is no formula.
    """
    try:
        characteristic = Characteristic(characteristic)
    except ValueError as e:
        raise UnsupportedCharacteristicError(characteristic) from e

    match characteristic:
        case Characteristic.POSITION:
            result = calculate_position(_parse(PositionInput, payload))
        case Characteristic.FLATNESS:
            result = calculate_flatness(_parse(FlatnessInput, payload))
        case Characteristic.PERPENDICULARITY:
            result = calculate_perpendicularity(_parse(PerpendicularityInput, payload))
        case Characteristic.PROFILE:
            result = calculate_profile(_parse(ProfileInput, payload))
        case Characteristic.OTHER:
            raise UnsupportedCharacteristicError(characteristic.value)
        case _:
            assert_never(characteristic)

    logger.debug("Calculated %s: %s", characteristic.value, result.status)
    return CalcResult(characteristic=characteristic, result=result)
