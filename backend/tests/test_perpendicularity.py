import pytest
from gdt.calc_types import CalculationInputError
from gdt.perpendicularity import (
    PerpendicularityInput,
    angular_to_linear,
    calculate_perpendicularity,
    linear_to_angular,
)


def _input(**overrides) -> PerpendicularityInput:
    data = {"tolerance": 0.05, "featureType": "surface"}
    data.update(overrides)
    return PerpendicularityInput.model_validate(data)


def test_linear_deviation_passes():
    result = calculate_perpendicularity(_input(linearDeviation=0.03))
    assert result.status == "pass"
    assert result.measured_deviation == 0.03
    assert result.tolerance_consumed == 60.0


def test_negative_deviation_uses_magnitude():
    result = calculate_perpendicularity(_input(linearDeviation=-0.06))
    assert result.measured_deviation == 0.06
    assert result.status == "fail"


def test_angular_deviation_over_length():
    result = calculate_perpendicularity(_input(angularDeviation=0.1, measurementLength=20))
    assert result.measured_deviation == pytest.approx(0.0349, abs=1e-4)
    assert result.status == "pass"


def test_angular_deviation_needs_length():
    with pytest.raises(CalculationInputError) as exc:
        calculate_perpendicularity(_input(angularDeviation=0.1))
    assert exc.value.errors[0].code == "MISSING_MEASUREMENT_LENGTH"


def test_mmc_bonus_on_pin():
    result = calculate_perpendicularity(_input(
        featureType="pin",
        zoneShape="cylindrical",
        materialCondition="MMC",
        sizeDimension={"nominal": 10, "tolerance": 0.05},
        actualSize=10.0,
        linearDeviation=0.08,
    ))
    assert result.size_limits.mmc == 10.05
    assert result.bonus_tolerance == 0.05
    assert result.total_allowable_tolerance == 0.1
    assert result.virtual_condition == 10.1
    assert result.status == "pass"


def test_mmc_on_surface_rejected():
    with pytest.raises(CalculationInputError) as exc:
        calculate_perpendicularity(_input(materialCondition="MMC", linearDeviation=0.01))
    codes = {e.code for e in exc.value.errors}
    assert codes == {"INVALID_MATERIAL_CONDITION", "MISSING_SIZE_DIMENSION"}


def test_no_measurement_is_indeterminate():
    result = calculate_perpendicularity(_input())
    assert result.status == "indeterminate"
    assert result.total_allowable_tolerance == 0.05


def test_invalid_tolerance():
    with pytest.raises(CalculationInputError):
        calculate_perpendicularity(_input(tolerance=0))


def test_angle_conversions_are_inverse():
    linear = angular_to_linear(0.5, 50)
    assert linear_to_angular(linear, 50) == pytest.approx(0.5)
