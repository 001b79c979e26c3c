"""Position tolerance: bonus, virtual/resultant condition, true-position deviation."""

import math

from .calc_types import (
    CalcInput,
    CalcModel,
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
    resultant_condition,
    round_to,
    size_limits,
    virtual_condition,
)


class TruePosition(CalcModel):
    basic_x: float
    basic_y: float
    basic_z: float | None = None


class MeasuredPosition(CalcModel):
    actual_x: float | None = None
    actual_y: float | None = None
    actual_z: float | None = None
    actual_size: float | None = None


class PositionInput(CalcInput):
    geometric_tolerance: float
    material_condition: MaterialCondition = MaterialCondition.RFS
    feature_type: FeatureType
    size_dimension: SizeDimension | None = None
    true_position: TruePosition | None = None
    measured: MeasuredPosition | None = None
    diametral_zone: bool = True


class PositionDeviation(CalcModel):
    dx: float
    dy: float
    dz: float | None = None
    radial: float
    diametral: float


class PositionResult(CalcOutput):
    stated_tolerance: float
    material_condition: MaterialCondition
    size_limits: SizeLimits | None = None
    actual_size: float | None = None
    bonus_tolerance: float
    total_allowable_tolerance: float
    virtual_condition: float | None = None
    resultant_condition: float | None = None
    deviation_x: float | None = None
    deviation_y: float | None = None
    deviation_z: float | None = None
    radial_deviation: float | None = None
    actual_position_tolerance: float | None = None
    tolerance_consumed: float | None = None
    size_conformance: bool | None = None
    position_conformance: bool | None = None


def position_deviation(
    measured: MeasuredPosition,
    true_position: TruePosition,
    diametral: bool = True,
    precision: int = 4,
) -> PositionDeviation:
    """Offset of the measured feature axis from its basic location.

    A cylindrical zone is specified by diameter, so the reported position
    tolerance is twice the radial offset.
    """
    dx = round_to(measured.actual_x - true_position.basic_x, precision)
    dy = round_to(measured.actual_y - true_position.basic_y, precision)
    dz = None
    if measured.actual_z is not None and true_position.basic_z is not None:
        dz = round_to(measured.actual_z - true_position.basic_z, precision)

    radial = math.sqrt(dx * dx + dy * dy + (dz * dz if dz is not None else 0.0))
    zone_value = 2 * radial if diametral else radial
    return PositionDeviation(
        dx=dx,
        dy=dy,
        dz=dz,
        radial=round_to(radial, precision),
        diametral=round_to(zone_value, precision),
    )


def _check_input(inp: PositionInput) -> list[CalculatorIssue]:
    errors = []
    if inp.geometric_tolerance <= 0:
        errors.append(CalculatorIssue(
            code="INVALID_TOLERANCE",
            message="Geometric tolerance must be greater than zero",
            field="geometricTolerance",
        ))

    size = inp.size_dimension
    if size is not None and size.nominal <= 0:
        errors.append(CalculatorIssue(
            code="INVALID_SIZE",
            message="Nominal size must be greater than zero",
            field="sizeDimension.nominal",
        ))

    actual_size = inp.measured.actual_size if inp.measured else None
    if actual_size is not None and actual_size <= 0:
        errors.append(CalculatorIssue(
            code="INVALID_ACTUAL_SIZE",
            message="Actual measured size must be greater than zero",
            field="measured.actualSize",
        ))

    if inp.material_condition != MaterialCondition.RFS:
        if feature_class(inp.feature_type) is None:
            errors.append(CalculatorIssue(
                code="INVALID_FEATURE_TYPE",
                message=(
                    f"Feature type '{inp.feature_type.value}' is not valid for "
                    f"{inp.material_condition.value} calculations"
                ),
                field="featureType",
            ))
        if size is None:
            errors.append(CalculatorIssue(
                code="MISSING_SIZE_DIMENSION",
                message="Size dimension is required for MMC/LMC calculations",
                field="sizeDimension",
            ))

    if inp.measured is not None and inp.true_position is not None:
        if inp.measured.actual_x is None or inp.measured.actual_y is None:
            errors.append(CalculatorIssue(
                code="INCOMPLETE_MEASUREMENT",
                message="Measured X and Y are required to evaluate position",
                field="measured",
            ))
    return errors


def calculate_position(inp: PositionInput) -> PositionResult:
    errors = _check_input(inp)
    if errors:
        raise CalculationInputError(errors)

    p = inp.precision
    mc = inp.material_condition
    stated = inp.geometric_tolerance
    cls = feature_class(inp.feature_type)
    actual_size = inp.measured.actual_size if inp.measured else None

    limits = None
    if inp.size_dimension is not None and cls is not None:
        limits = size_limits(inp.size_dimension, inp.feature_type, p)

    bonus = 0.0
    vc = rc = None
    if limits is not None:
        if actual_size is not None:
            bonus = bonus_tolerance(actual_size, limits, mc, cls, p)
        vc = virtual_condition(limits, stated, mc, cls, p)
        rc = resultant_condition(limits, stated, mc, cls, p)
    total = round_to(stated + bonus, p)

    size_ok = None
    if limits is not None and actual_size is not None:
        size_ok = limits.contains(actual_size)

    deviation = None
    if (
        inp.measured is not None
        and inp.true_position is not None
        and inp.measured.actual_x is not None
    ):
        deviation = position_deviation(inp.measured, inp.true_position, inp.diametral_zone, p)

    position_ok = None
    consumed = None
    if deviation is not None:
        position_ok = deviation.diametral <= total
        consumed = percent_consumed(deviation.diametral, total)

    if position_ok is None:
        status = "fail" if size_ok is False else "indeterminate"
    else:
        status = "pass" if position_ok and size_ok is not False else "fail"

    return PositionResult(
        status=status,
        summary=_summary(status, deviation, total, bonus, mc, size_ok, position_ok),
        unit=inp.unit,
        stated_tolerance=stated,
        material_condition=mc,
        size_limits=limits,
        actual_size=round_to(actual_size, p) if actual_size is not None else None,
        bonus_tolerance=bonus,
        total_allowable_tolerance=total,
        virtual_condition=vc,
        resultant_condition=rc,
        deviation_x=deviation.dx if deviation else None,
        deviation_y=deviation.dy if deviation else None,
        deviation_z=deviation.dz if deviation else None,
        radial_deviation=deviation.radial if deviation else None,
        actual_position_tolerance=deviation.diametral if deviation else None,
        tolerance_consumed=consumed,
        size_conformance=size_ok,
        position_conformance=position_ok,
    )


def _summary(status, deviation, total, bonus, mc, size_ok, position_ok) -> str:
    if status == "pass":
        lines = ["PASS: Position tolerance satisfied."]
    elif status == "fail":
        lines = ["FAIL: Position tolerance exceeded."]
    else:
        lines = ["Position tolerance zone computed; no measured location supplied."]

    if deviation is not None:
        lines.append(f"Actual position: Ø{deviation.diametral:.4f} vs Allowable: Ø{total:.4f}")
    else:
        lines.append(f"Allowable: Ø{total:.4f}")
    if bonus > 0:
        lines.append(f"Bonus tolerance at {mc.value}: {bonus:.4f}")
    if size_ok is False:
        lines.append("Actual size is outside size limits.")
    if position_ok is False:
        lines.append("Feature location exceeds the total allowable tolerance.")
    return " ".join(lines)
