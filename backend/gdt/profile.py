"""Profile of a surface/line: a band offset around the true profile.

Only the stated zone is used; MMC/LMC on profile is rejected as input.
"""

from typing import Literal

from .calc_types import (
    CalcInput,
    CalcModel,
    CalcOutput,
    CalculationInputError,
    CalculatorIssue,
    percent_consumed,
)
from .frame import MaterialCondition
from .limits import round_to

ZoneType = Literal["bilateral", "unilateral-outside", "unilateral-inside", "unequally-disposed"]


class ProfilePoint(CalcModel):
    position: float
    # + outside the true profile (added material), - inside
    deviation: float


class ProfileInput(CalcInput):
    tolerance: float
    zone_type: ZoneType = "bilateral"
    outside_amount: float | None = None
    material_condition: MaterialCondition | None = None
    measured_points: list[ProfilePoint] = []
    form_only: bool = False


class ProfileResult(CalcOutput):
    stated_tolerance: float
    zone_type: ZoneType
    allowable_outside: float
    allowable_inside: float
    max_deviation_outside: float | None = None
    max_deviation_inside: float | None = None
    total_measured_zone: float | None = None
    tolerance_consumed: float | None = None
    point_count: int = 0
    non_conforming_points: list[int] = []
    # No datum reference frame: the zone bounds form only, not orientation or location.
    form_only: bool = False


def zone_boundaries(
    tolerance: float,
    zone_type: ZoneType,
    outside_amount: float | None = None,
) -> tuple[float, float]:
    """Return (allowable outside, allowable inside) for a zone distribution."""
    match zone_type:
        case "bilateral":
            return tolerance / 2, tolerance / 2
        case "unilateral-outside":
            return tolerance, 0.0
        case "unilateral-inside":
            return 0.0, tolerance
        case "unequally-disposed":
            if outside_amount is None:
                raise ValueError("unequally-disposed zone requires an outside amount")
            return outside_amount, tolerance - outside_amount
    raise ValueError(f"Unknown profile zone type: {zone_type}")


def _check_input(inp: ProfileInput) -> list[CalculatorIssue]:
    errors = []
    if inp.tolerance <= 0:
        errors.append(CalculatorIssue(
            code="INVALID_TOLERANCE",
            message="Profile tolerance must be greater than zero",
            field="tolerance",
        ))
    if inp.zone_type == "unequally-disposed":
        if inp.outside_amount is None:
            errors.append(CalculatorIssue(
                code="MISSING_OUTSIDE_AMOUNT",
                message="Outside amount is required for unequally disposed zones",
                field="outsideAmount",
            ))
        elif not 0 <= inp.outside_amount <= inp.tolerance:
            errors.append(CalculatorIssue(
                code="INVALID_OUTSIDE_AMOUNT",
                message="Outside amount must be between 0 and total tolerance",
                field="outsideAmount",
            ))
    if inp.material_condition in (MaterialCondition.MMC, MaterialCondition.LMC):
        errors.append(CalculatorIssue(
            code="UNSUPPORTED_MATERIAL_CONDITION",
            message=f"Profile is calculated at the stated zone only; {inp.material_condition.value} bonus is not supported",
            field="materialCondition",
        ))
    return errors


def calculate_profile(inp: ProfileInput) -> ProfileResult:
    errors = _check_input(inp)
    if errors:
        raise CalculationInputError(errors)

    p = inp.precision
    outside, inside = zone_boundaries(inp.tolerance, inp.zone_type, inp.outside_amount)

    if not inp.measured_points:
        return ProfileResult(
            status="indeterminate",
            summary=(
                f"Profile zone {inp.tolerance:.4f} ({inp.zone_type}): "
                f"+{outside:.4f} / -{inside:.4f}; no measurements supplied"
                f"{'; form only' if inp.form_only else ''}."
            ),
            unit=inp.unit,
            stated_tolerance=inp.tolerance,
            zone_type=inp.zone_type,
            allowable_outside=round_to(outside, p),
            allowable_inside=round_to(inside, p),
            form_only=inp.form_only,
        )

    max_out = max_in = 0.0
    bad = []
    for i, point in enumerate(inp.measured_points):
        d = point.deviation
        if d > 0:
            max_out = max(max_out, d)
            if d > outside:
                bad.append(i)
        else:
            max_in = max(max_in, -d)
            if -d > inside:
                bad.append(i)

    max_out = round_to(max_out, p)
    max_in = round_to(max_in, p)
    ratios = [0.0]
    if outside > 0:
        ratios.append(max_out / outside)
    if inside > 0:
        ratios.append(max_in / inside)
    consumed = percent_consumed(max(ratios), 1.0)

    passed = not bad
    summary = (
        f"{'PASS' if passed else 'FAIL'}: Profile deviations +{max_out:.4f} / -{max_in:.4f} "
        f"against allowable +{outside:.4f} / -{inside:.4f} ({inp.zone_type})"
    )
    if bad:
        summary += f"; {len(bad)} point(s) out of tolerance"
    if inp.form_only:
        summary += "; form only, no datum reference frame"
    return ProfileResult(
        status="pass" if passed else "fail",
        summary=summary,
        unit=inp.unit,
        stated_tolerance=inp.tolerance,
        zone_type=inp.zone_type,
        allowable_outside=round_to(outside, p),
        allowable_inside=round_to(inside, p),
        max_deviation_outside=max_out,
        max_deviation_inside=max_in,
        total_measured_zone=round_to(max_out + max_in, p),
        tolerance_consumed=consumed,
        point_count=len(inp.measured_points),
        non_conforming_points=bad,
        form_only=inp.form_only,
    )
