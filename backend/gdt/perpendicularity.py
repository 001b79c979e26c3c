"""Perpendicularity: orientation to a datum, planar or cylindrical zone."""

import math
from typing import Literal

from .calc_types import (
    CalcInput,
    CalcOutput,
    CalculationInputError,
    CalculatorIssue,
    percent_consumed,
)
from .frame import FeatureType, MaterialCondition, SizeDimension
from .limits import (
    SizeLimits,
    bonus_tolerance,
    feature_class,
    round_to,
    size_limits,
    virtual_condition,
)

ZoneKind = Literal["planar", "cylindrical"]


class PerpendicularityInput(CalcInput):
    tolerance: float
    material_condition: MaterialCondition = MaterialCondition.RFS
    feature_type: FeatureType
    zone_shape: ZoneKind = "planar"
    size_dimension: SizeDimension | None = None
    actual_size: float | None = None
    linear_deviation: float | None = None
    angular_deviation: float | None = None  # degrees
    measurement_length: float | None = None


class PerpendicularityResult(CalcOutput):
    stated_tolerance: float
    material_condition: MaterialCondition
    zone_shape: ZoneKind
    size_limits: SizeLimits | None = None
    bonus_tolerance: float
    total_allowable_tolerance: float
    virtual_condition: float | None = None
    measured_deviation: float | None = None
    tolerance_consumed: float | None = None


def angular_to_linear(angle_degrees: float, length: float) -> float:
    return length * math.tan(math.radians(angle_degrees))


def linear_to_angular(linear_deviation: float, length: float) -> float:
    return math.degrees(math.atan(linear_deviation / length))


def _check_input(inp: PerpendicularityInput) -> list[CalculatorIssue]:
    errors = []
    if inp.tolerance <= 0:
        errors.append(CalculatorIssue(
            code="INVALID_TOLERANCE",
            message="Perpendicularity tolerance must be greater than zero",
            field="tolerance",
        ))

    mc = inp.material_condition
    if mc != MaterialCondition.RFS:
        if feature_class(inp.feature_type) is None:
            errors.append(CalculatorIssue(
                code="INVALID_MATERIAL_CONDITION",
                message=f"Feature type '{inp.feature_type.value}' does not support {mc.value}",
                field="materialCondition",
            ))
        if inp.size_dimension is None:
            errors.append(CalculatorIssue(
                code="MISSING_SIZE_DIMENSION",
                message="Size dimension is required for MMC/LMC calculations",
                field="sizeDimension",
            ))
    elif inp.actual_size is not None and inp.size_dimension is None:
        errors.append(CalculatorIssue(
            code="MISSING_SIZE_DIMENSION",
            message="Size dimension is required to check an actual size",
            field="sizeDimension",
        ))

    if inp.angular_deviation is not None and inp.linear_deviation is None:
        if inp.measurement_length is None:
            errors.append(CalculatorIssue(
                code="MISSING_MEASUREMENT_LENGTH",
                message="Measurement length is required when using angular deviation",
                field="measurementLength",
            ))
        elif inp.measurement_length <= 0:
            errors.append(CalculatorIssue(
                code="INVALID_MEASUREMENT_LENGTH",
                message="Measurement length must be greater than zero",
                field="measurementLength",
            ))
    return errors


def calculate_perpendicularity(inp: PerpendicularityInput) -> PerpendicularityResult:
    errors = _check_input(inp)
    if errors:
        raise CalculationInputError(errors)

    p = inp.precision
    mc = inp.material_condition
    cls = feature_class(inp.feature_type)

    limits = None
    bonus = 0.0
    vc = None
    if inp.size_dimension is not None and cls is not None:
        limits = size_limits(inp.size_dimension, inp.feature_type, p)
        if inp.actual_size is not None:
            bonus = bonus_tolerance(inp.actual_size, limits, mc, cls, p)
        vc = virtual_condition(limits, inp.tolerance, mc, cls, p)
    total = round_to(inp.tolerance + bonus, p)

    measured = None
    if inp.linear_deviation is not None:
        measured = inp.linear_deviation
    elif inp.angular_deviation is not None:
        measured = angular_to_linear(inp.angular_deviation, inp.measurement_length)

    if measured is None:
        return PerpendicularityResult(
            status="indeterminate",
            summary=f"Perpendicularity allowable {total:.4f} ({inp.zone_shape} zone); no measurement supplied.",
            unit=inp.unit,
            stated_tolerance=inp.tolerance,
            material_condition=mc,
            zone_shape=inp.zone_shape,
            size_limits=limits,
            bonus_tolerance=bonus,
            total_allowable_tolerance=total,
            virtual_condition=vc,
        )

    measured = round_to(abs(measured), p)
    passed = measured <= total
    consumed = percent_consumed(measured, total)
    summary = (
        f"{'PASS' if passed else 'FAIL'}: Perpendicularity {measured:.4f} "
        f"{'is within' if passed else 'exceeds'} allowable {total:.4f} "
        f"({consumed:.1f}% consumed)"
    )
    if bonus > 0:
        summary += f" Includes {bonus:.4f} bonus at {mc.value}."
    return PerpendicularityResult(
        status="pass" if passed else "fail",
        summary=summary,
        unit=inp.unit,
        stated_tolerance=inp.tolerance,
        material_condition=mc,
        zone_shape=inp.zone_shape,
        size_limits=limits,
        bonus_tolerance=bonus,
        total_allowable_tolerance=total,
        virtual_condition=vc,
        measured_deviation=measured,
        tolerance_consumed=consumed,
    )
