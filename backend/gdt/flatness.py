"""Flatness: two parallel planes bounding every point of the surface.

Always RFS and never datum-referenced, so the zone is simply the stated value.
"""

import numpy as np

from .calc_types import (
    CalcInput,
    CalcModel,
    CalcOutput,
    CalculationInputError,
    CalculatorIssue,
    percent_consumed,
)
from .limits import round_to

MIN_PLANE_POINTS = 3


class SurfacePoint(CalcModel):
    x: float
    y: float
    z: float


class FlatnessInput(CalcInput):
    tolerance: float
    measured_points: list[SurfacePoint] = []
    total_indicator_reading: float | None = None


class FlatnessResult(CalcOutput):
    stated_tolerance: float
    tolerance_zone: float
    measured_flatness: float | None = None
    max_deviation: float | None = None
    min_deviation: float | None = None
    tolerance_consumed: float | None = None
    point_count: int = 0


def plane_deviations(points: list[SurfacePoint]) -> np.ndarray:
    """Signed distances of each point from its least-squares plane.

    The plane normal is the right singular vector of the centred point cloud
    with the smallest singular value.
    """
    xyz = np.array([[p.x, p.y, p.z] for p in points], dtype=float)
    centred = xyz - xyz.mean(axis=0)
    _, _, vt = np.linalg.svd(centred, full_matrices=False)
    normal = vt[-1]
    # Orient the normal along +z so "high" points read as positive.
    if normal[2] < 0:
        normal = -normal
    return centred @ normal


def _check_input(inp: FlatnessInput) -> list[CalculatorIssue]:
    errors = []
    if inp.tolerance <= 0:
        errors.append(CalculatorIssue(
            code="INVALID_TOLERANCE",
            message="Flatness tolerance must be greater than zero",
            field="tolerance",
        ))
    tir = inp.total_indicator_reading
    if tir is not None and tir < 0:
        errors.append(CalculatorIssue(
            code="INVALID_TIR",
            message="Total indicator reading cannot be negative",
            field="totalIndicatorReading",
        ))
    if tir is None and 0 < len(inp.measured_points) < MIN_PLANE_POINTS:
        errors.append(CalculatorIssue(
            code="INSUFFICIENT_POINTS",
            message=f"At least {MIN_PLANE_POINTS} surface points are needed to fit a plane",
            field="measuredPoints",
        ))
    return errors


def calculate_flatness(inp: FlatnessInput) -> FlatnessResult:
    """Evaluate flatness from a TIR or a surface point cloud.

    A TIR, when given, is used as-is. With neither a TIR nor points the result
    reports the stated zone and an indeterminate status.
    """
    errors = _check_input(inp)
    if errors:
        raise CalculationInputError(errors)

    p = inp.precision
    zone = round_to(inp.tolerance, p)

    if inp.total_indicator_reading is not None:
        tir = inp.total_indicator_reading
        high, low = tir / 2, -tir / 2
        measured = tir
    elif inp.measured_points:
        deviations = plane_deviations(inp.measured_points)
        high, low = float(deviations.max()), float(deviations.min())
        measured = high - low
    else:
        return FlatnessResult(
            status="indeterminate",
            summary=f"Flatness zone {zone:.4f} wide; no measurements supplied.",
            unit=inp.unit,
            stated_tolerance=inp.tolerance,
            tolerance_zone=zone,
        )

    measured = round_to(measured, p)
    consumed = percent_consumed(measured, inp.tolerance)
    passed = measured <= inp.tolerance
    verdict = "is within" if passed else "exceeds"
    return FlatnessResult(
        status="pass" if passed else "fail",
        summary=(
            f"{'PASS' if passed else 'FAIL'}: Flatness {measured:.4f} {verdict} "
            f"tolerance {inp.tolerance:.4f} ({consumed:.1f}% consumed)"
        ),
        unit=inp.unit,
        stated_tolerance=inp.tolerance,
        tolerance_zone=zone,
        measured_flatness=measured,
        max_deviation=round_to(high, p),
        min_deviation=round_to(low, p),
        tolerance_consumed=consumed,
        point_count=len(inp.measured_points),
    )
