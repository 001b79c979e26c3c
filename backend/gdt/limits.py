"""Size limits and material-condition boundaries.

MMC/LMC direction depends on whether a feature is internal (hole, slot: MMC is
the smallest size) or external (pin, boss: MMC is the largest size). The
mapping lives in FEATURE_CLASSES and nowhere else.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from .frame import FeatureType, MaterialCondition, SizeDimension

DEFAULT_PRECISION = 4


class FeatureClass(str, Enum):
    INTERNAL = "internal"
    EXTERNAL = "external"


FEATURE_CLASSES: dict[FeatureType, FeatureClass] = {
    FeatureType.HOLE: FeatureClass.INTERNAL,
    FeatureType.SLOT: FeatureClass.INTERNAL,
    FeatureType.PIN: FeatureClass.EXTERNAL,
    FeatureType.BOSS: FeatureClass.EXTERNAL,
}


class SizeLimits(BaseModel):
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    nominal: float
    mmc: float
    lmc: float
    upper_limit: float
    lower_limit: float

    def contains(self, size: float) -> bool:
        return self.lower_limit <= size <= self.upper_limit


def round_to(value: float, precision: int = DEFAULT_PRECISION) -> float:
    return round(value, precision)


def feature_class(feature_type: FeatureType | None) -> FeatureClass | None:
    if feature_type is None:
        return None
    return FEATURE_CLASSES.get(feature_type)


def size_limits(
    size: SizeDimension,
    feature_type: FeatureType,
    precision: int = DEFAULT_PRECISION,
) -> SizeLimits:
    """Derive MMC/LMC from a size dimension for a feature of size.

    >>> size_limits(SizeDimension(nominal=10, tolerance_plus=0.1, tolerance_minus=0.05), FeatureType.HOLE).mmc
    9.95
    """
    cls = feature_class(feature_type)
    if cls is None:
        raise ValueError(f"Feature type '{feature_type}' is not a feature of size")

    upper = round_to(size.upper_limit, precision)
    lower = round_to(size.lower_limit, precision)
    if cls is FeatureClass.INTERNAL:
        mmc, lmc = lower, upper
    else:
        mmc, lmc = upper, lower

    return SizeLimits(
        nominal=round_to(size.nominal, precision),
        mmc=mmc,
        lmc=lmc,
        upper_limit=upper,
        lower_limit=lower,
    )


def bonus_tolerance(
    actual_size: float,
    limits: SizeLimits,
    material_condition: MaterialCondition,
    cls: FeatureClass,
    precision: int = DEFAULT_PRECISION,
) -> float:
    """Bonus earned as the actual size departs from the MMC (or LMC) boundary.

    Never negative: a feature outside its size limits earns no bonus.
    """
    if material_condition == MaterialCondition.RFS:
        return 0.0
    if material_condition == MaterialCondition.MMC:
        if cls is FeatureClass.INTERNAL:
            bonus = actual_size - limits.mmc
        else:
            bonus = limits.mmc - actual_size
    else:
        if cls is FeatureClass.INTERNAL:
            bonus = limits.lmc - actual_size
        else:
            bonus = actual_size - limits.lmc
    return round_to(max(0.0, bonus), precision)


def virtual_condition(
    limits: SizeLimits,
    tolerance: float,
    material_condition: MaterialCondition,
    cls: FeatureClass,
    precision: int = DEFAULT_PRECISION,
) -> float | None:
    """Worst-case boundary a mating part or gage must clear; None for RFS."""
    if material_condition == MaterialCondition.RFS:
        return None
    if material_condition == MaterialCondition.MMC:
        if cls is FeatureClass.INTERNAL:
            vc = limits.mmc - tolerance
        else:
            vc = limits.mmc + tolerance
    else:
        if cls is FeatureClass.INTERNAL:
            vc = limits.lmc + tolerance
        else:
            vc = limits.lmc - tolerance
    return round_to(vc, precision)


def resultant_condition(
    limits: SizeLimits,
    tolerance: float,
    material_condition: MaterialCondition,
    cls: FeatureClass,
    precision: int = DEFAULT_PRECISION,
) -> float | None:
    if material_condition == MaterialCondition.RFS:
        return None
    if material_condition == MaterialCondition.MMC:
        if cls is FeatureClass.INTERNAL:
            rc = limits.lmc + tolerance
        else:
            rc = limits.lmc - tolerance
    else:
        if cls is FeatureClass.INTERNAL:
            rc = limits.mmc - tolerance
        else:
            rc = limits.mmc + tolerance
    return round_to(rc, precision)
