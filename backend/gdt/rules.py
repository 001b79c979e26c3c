"""Deterministic ASME Y14.5-2018 rule engine for Feature Control Frames.

Every applicable rule is evaluated on every call; issues are accumulated and
returned together so a caller sees the complete set in one response. Rules
never mutate the frame.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Literal

from pydantic import BaseModel, ConfigDict, computed_field
from pydantic.alias_generators import to_camel

from .frame import (
    Characteristic,
    FeatureControlFrame,
    FeatureType,
    FrameModifier,
    MaterialCondition,
)

Severity = Literal["error", "warning"]

ERROR_CODES: dict[str, str] = {
    "E001": "MMC/LMC not permitted for this characteristic",
    "E002": "Datums not allowed for this form tolerance",
    "E003": "Geometric characteristic missing or unrecognized",
    "E004": "Invalid composite configuration",
    "E005": "Modifier incompatible with the selected feature type",
    "E006": "Datum reference required for this characteristic",
    "E007": "Material condition requires a feature of size",
    "E008": "Projected tolerance zone and projected modifier must be declared together",
    "E009": "Composite frames currently supported for position only",
    "E017": "Datum reference frame cannot repeat a datum letter",
    "E031": "Tolerance value must be greater than zero",
    "E034": "Projected zone height must be positive",
    "W001": "RFS is implicit in ASME Y14.5-2018",
    "W002": "Position with only a primary datum may allow rotation",
    "W003": "Composite position typically applies to patterns",
    "W004": "Profile without datums controls form only",
    "W005": "Material condition on a datum requires a datum feature of size",
    "W006": "Datum reference frame typically uses at most three datums",
}


class RuleCategory(str, Enum):
    MATERIAL_CONDITION = "material-condition"
    DATUM_REQUIREMENTS = "datum-requirements"
    COMPOSITE_CONFIGURATION = "composite-configuration"
    TOLERANCE_ZONE = "tolerance-zone"
    MODIFIER_COMPATIBILITY = "modifier-compatibility"
    CHARACTERISTIC = "characteristic"


@dataclass(frozen=True)
class CharacteristicProfile:
    requires_datums: bool
    forbids_datums: bool
    allows_material_condition: bool
    allows_composite: bool


# One entry per Characteristic member; tests assert the table is complete.
CHARACTERISTIC_PROFILES: dict[Characteristic, CharacteristicProfile] = {
    Characteristic.POSITION: CharacteristicProfile(
        requires_datums=True, forbids_datums=False,
        allows_material_condition=True, allows_composite=True,
    ),
    Characteristic.FLATNESS: CharacteristicProfile(
        requires_datums=False, forbids_datums=True,
        allows_material_condition=False, allows_composite=False,
    ),
    Characteristic.PERPENDICULARITY: CharacteristicProfile(
        requires_datums=True, forbids_datums=False,
        allows_material_condition=True, allows_composite=False,
    ),
    Characteristic.PROFILE: CharacteristicProfile(
        requires_datums=False, forbids_datums=False,
        allows_material_condition=True, allows_composite=False,
    ),
    Characteristic.OTHER: CharacteristicProfile(
        requires_datums=False, forbids_datums=False,
        allows_material_condition=True, allows_composite=False,
    ),
}

FEATURES_OF_SIZE = frozenset({FeatureType.HOLE, FeatureType.SLOT, FeatureType.PIN, FeatureType.BOSS})
PLANAR_FEATURES = frozenset({FeatureType.SURFACE, FeatureType.PLANE, FeatureType.EDGE})


class WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class IssueContext(WireModel):
    characteristic: str | None = None
    feature_type: str | None = None
    suggestion: str | None = None


class ValidationIssue(WireModel):
    code: str
    message: str
    path: str
    severity: Severity
    context: IssueContext | None = None


class ValidationSummary(WireModel):
    error_count: int
    warning_count: int


class ValidationReport(WireModel):
    issues: list[ValidationIssue] = []

    @computed_field
    @property
    def valid(self) -> bool:
        return not self.errors

    @computed_field
    @property
    def summary(self) -> ValidationSummary:
        return ValidationSummary(error_count=len(self.errors), warning_count=len(self.warnings))

    @property
    def errors(self) -> list[ValidationIssue]:
        return [i for i in self.issues if i.severity == "error"]

    @property
    def warnings(self) -> list[ValidationIssue]:
        return [i for i in self.issues if i.severity == "warning"]

    def codes(self) -> list[str]:
        return [i.code for i in self.issues]


@dataclass(frozen=True)
class Rule:
    code: str
    category: RuleCategory
    description: str
    severity: Severity
    applies: Callable[[FeatureControlFrame], bool]
    evaluate: Callable[[FeatureControlFrame], list[ValidationIssue]]


def _issue(
    code: str,
    path: str,
    severity: Severity = "error",
    message: str | None = None,
    characteristic: Characteristic | str | None = None,
    feature_type: FeatureType | None = None,
    suggestion: str | None = None,
) -> ValidationIssue:
    context = None
    if characteristic is not None or feature_type is not None or suggestion is not None:
        context = IssueContext(
            characteristic=getattr(characteristic, "value", characteristic),
            feature_type=feature_type.value if feature_type else None,
            suggestion=suggestion,
        )
    return ValidationIssue(
        code=code,
        message=message or ERROR_CODES[code],
        path=path,
        severity=severity,
        context=context,
    )


def _profile(fcf: FeatureControlFrame) -> CharacteristicProfile | None:
    c = fcf.known_characteristic
    return CHARACTERISTIC_PROFILES[c] if c is not None else None


def _mmc_or_lmc(mc: MaterialCondition | None) -> bool:
    return mc in (MaterialCondition.MMC, MaterialCondition.LMC)


# --- material condition ---


def _form_material_condition(fcf: FeatureControlFrame) -> list[ValidationIssue]:
    issues = []
    if fcf.tolerance.uses_mmc_or_lmc:
        issues.append(_issue(
            "E001", "tolerance.materialCondition",
            characteristic=fcf.characteristic,
            suggestion="Remove the material condition modifier; form tolerances apply RFS",
        ))
    for i, d in enumerate(fcf.datums):
        if _mmc_or_lmc(d.material_condition):
            issues.append(_issue("E001", f"datums[{i}].materialCondition", characteristic=fcf.characteristic))
    return issues


def _material_condition_needs_size(fcf: FeatureControlFrame) -> list[ValidationIssue]:
    if fcf.feature_type in FEATURES_OF_SIZE:
        return []
    return [_issue(
        "E007", "tolerance.materialCondition",
        feature_type=fcf.feature_type,
        suggestion="Set featureType to hole, slot, pin, or boss for MMC/LMC",
    )]


def _datum_material_condition(fcf: FeatureControlFrame) -> list[ValidationIssue]:
    return [
        _issue(
            "W005", f"datums[{i}].materialCondition", "warning",
            suggestion=f"Verify datum {d.id} is a feature of size to use {d.material_condition.value}",
        )
        for i, d in enumerate(fcf.datums)
        if _mmc_or_lmc(d.material_condition)
    ]


def _explicit_rfs(fcf: FeatureControlFrame) -> list[ValidationIssue]:
    return [_issue(
        "W001", "tolerance.materialCondition", "warning",
        suggestion="RFS is the default; explicit RFS notation is redundant per ASME Y14.5-2018",
    )]


# --- characteristic ---


def _missing_characteristic(fcf: FeatureControlFrame) -> list[ValidationIssue]:
    if fcf.characteristic is None:
        message = ERROR_CODES["E003"]
    else:
        message = f"Unrecognized geometric characteristic '{fcf.characteristic}'"
    return [_issue(
        "E003", "characteristic", message=message,
        suggestion="Select one of: " + ", ".join(c.value for c in Characteristic),
    )]


# --- datum requirements ---


def _form_datums(fcf: FeatureControlFrame) -> list[ValidationIssue]:
    if not fcf.datums:
        return []
    return [_issue(
        "E002", "datums",
        characteristic=fcf.characteristic,
        suggestion="Remove datum references; form tolerances are datum-independent",
    )]


def _required_datums(fcf: FeatureControlFrame) -> list[ValidationIssue]:
    if fcf.datums:
        return []
    return [_issue(
        "E006", "datums",
        characteristic=fcf.characteristic,
        suggestion="Add at least a primary datum reference",
    )]


def _duplicate_datums(fcf: FeatureControlFrame) -> list[ValidationIssue]:
    seen: set[str] = set()
    issues = []
    for i, d in enumerate(fcf.datums):
        if d.id in seen:
            issues.append(_issue(
                "E017", f"datums[{i}]",
                suggestion=f"Datum {d.id} appears multiple times; each datum should be unique",
            ))
        seen.add(d.id)
    return issues


def _too_many_datums(fcf: FeatureControlFrame) -> list[ValidationIssue]:
    return [_issue(
        "W006", "datums", "warning",
        suggestion="Consider whether every datum reference is necessary (primary, secondary, tertiary)",
    )]


def _single_datum_position(fcf: FeatureControlFrame) -> list[ValidationIssue]:
    return [_issue(
        "W002", "datums", "warning",
        suggestion="Consider adding a secondary datum to constrain rotation",
    )]


def _profile_without_datums(fcf: FeatureControlFrame) -> list[ValidationIssue]:
    return [_issue(
        "W004", "datums", "warning",
        suggestion="Add datums to control orientation and location as well as form",
    )]


# --- composite ---


def _composite_characteristic(fcf: FeatureControlFrame) -> list[ValidationIssue]:
    profile = _profile(fcf)
    if profile is None or profile.allows_composite:
        return []
    return [_issue(
        "E009", "composite",
        characteristic=fcf.characteristic,
        suggestion="Composite tolerancing is specific to position; use a single frame",
    )]


def _composite_structure(fcf: FeatureControlFrame) -> list[ValidationIssue]:
    segments = fcf.composite.segments
    if len(segments) < 2:
        return [_issue(
            "E004", "composite.segments",
            message="Composite configuration requires at least 2 segments",
            suggestion="Add a second segment or remove the composite structure",
        )]

    issues = []
    for i in range(1, len(segments)):
        upper = segments[i - 1].tolerance.value
        lower = segments[i].tolerance.value
        if upper is not None and lower is not None and lower >= upper:
            issues.append(_issue(
                "E004", f"composite.segments[{i}].tolerance.value",
                message="Lower composite segment tolerance must be tighter than upper",
                suggestion=f"Segment {i + 1} tolerance ({lower}) must be less than segment {i} ({upper})",
            ))

    upper_datums = segments[0].datums
    first_primary = upper_datums[0].id if upper_datums else None
    for i in range(1, len(segments)):
        seg_datums = segments[i].datums
        if (
            fcf.composite.type == "composite"
            and first_primary
            and seg_datums
            and seg_datums[0].id != first_primary
        ):
            issues.append(_issue(
                "E004", f"composite.segments[{i}].datums[0]",
                message="Composite segments must share the primary datum",
                suggestion=f"Primary datum must be {first_primary} to match the upper segment",
            ))
        if len(seg_datums) > len(upper_datums):
            issues.append(_issue(
                "E004", f"composite.segments[{i}].datums",
                message="Lower composite segment cannot have more datums than upper",
                suggestion=(
                    f"Lower segment has {len(seg_datums)} datums but upper has "
                    f"{len(upper_datums)}; lower cannot exceed upper"
                ),
            ))
    return issues


def _composite_without_pattern(fcf: FeatureControlFrame) -> list[ValidationIssue]:
    return [_issue(
        "W003", "pattern", "warning",
        suggestion="Composite tolerancing is typically used with feature patterns; add a pattern spec",
    )]


# --- tolerance zone ---


def _tolerance_value(fcf: FeatureControlFrame) -> list[ValidationIssue]:
    issues = []
    if not fcf.tolerance.value:
        issues.append(_issue(
            "E031", "tolerance.value",
            suggestion="Enter the stated geometric tolerance; it is never defaulted",
        ))
    if fcf.composite:
        for i, seg in enumerate(fcf.composite.segments):
            if not seg.tolerance.value:
                issues.append(_issue("E031", f"composite.segments[{i}].tolerance.value"))
    return issues


def _projected_zone_declaration(fcf: FeatureControlFrame) -> list[ValidationIssue]:
    has_modifier = FrameModifier.PROJECTED_TOLERANCE_ZONE in fcf.modifiers
    if fcf.projected_zone is not None and not has_modifier:
        return [_issue(
            "E008", "modifiers",
            suggestion="Add PROJECTED_TOLERANCE_ZONE to modifiers when using projectedZone",
        )]
    if has_modifier and fcf.projected_zone is None:
        return [_issue(
            "E008", "projectedZone",
            suggestion="Declare the projected zone height or remove the projected modifier",
        )]
    return []


def _projected_zone_height(fcf: FeatureControlFrame) -> list[ValidationIssue]:
    if fcf.projected_zone.height > 0:
        return []
    return [_issue(
        "E034", "projectedZone.height",
        suggestion="Projected zone height must be greater than zero",
    )]


# --- modifier / feature type compatibility ---


def _planar_feature_modifiers(fcf: FeatureControlFrame) -> list[ValidationIssue]:
    issues = []
    if fcf.tolerance.cylindrical:
        issues.append(_issue(
            "E005", "tolerance.diameter",
            feature_type=fcf.feature_type,
            suggestion=f"{fcf.feature_type.value} cannot use a cylindrical tolerance zone; use a planar zone",
        ))
    if FrameModifier.PROJECTED_TOLERANCE_ZONE in fcf.modifiers:
        issues.append(_issue(
            "E005", "modifiers",
            feature_type=fcf.feature_type,
            suggestion="Projected tolerance zones apply to holes, pins, and studs, not planar features",
        ))
    return issues


_RULES: list[Rule] = [
    # characteristic
    Rule(
        "E003", RuleCategory.CHARACTERISTIC,
        "Characteristic must be present and recognized", "error",
        applies=lambda fcf: fcf.known_characteristic is None,
        evaluate=_missing_characteristic,
    ),
    # material condition
    Rule(
        "E001", RuleCategory.MATERIAL_CONDITION,
        "Form tolerances cannot use MMC/LMC modifiers", "error",
        applies=lambda fcf: (p := _profile(fcf)) is not None and not p.allows_material_condition,
        evaluate=_form_material_condition,
    ),
    Rule(
        "E007", RuleCategory.MATERIAL_CONDITION,
        "Material condition (MMC/LMC) requires a feature of size", "error",
        applies=lambda fcf: fcf.tolerance.uses_mmc_or_lmc,
        evaluate=_material_condition_needs_size,
    ),
    Rule(
        "W005", RuleCategory.MATERIAL_CONDITION,
        "Material condition on a datum requires a datum feature of size", "warning",
        applies=lambda fcf: any(_mmc_or_lmc(d.material_condition) for d in fcf.datums),
        evaluate=_datum_material_condition,
    ),
    Rule(
        "W001", RuleCategory.MATERIAL_CONDITION,
        "RFS is implicit in ASME Y14.5-2018", "warning",
        applies=lambda fcf: fcf.tolerance.material_condition == MaterialCondition.RFS,
        evaluate=_explicit_rfs,
    ),
    # datum requirements
    Rule(
        "E002", RuleCategory.DATUM_REQUIREMENTS,
        "Form tolerances cannot reference datums", "error",
        applies=lambda fcf: (p := _profile(fcf)) is not None and p.forbids_datums,
        evaluate=_form_datums,
    ),
    Rule(
        "E006", RuleCategory.DATUM_REQUIREMENTS,
        "Orientation/location tolerances require a datum reference", "error",
        applies=lambda fcf: (p := _profile(fcf)) is not None and p.requires_datums,
        evaluate=_required_datums,
    ),
    Rule(
        "E017", RuleCategory.DATUM_REQUIREMENTS,
        "Datum reference frame cannot have duplicate datum letters", "error",
        applies=lambda fcf: len(fcf.datums) > 1,
        evaluate=_duplicate_datums,
    ),
    Rule(
        "W006", RuleCategory.DATUM_REQUIREMENTS,
        "Standard datum reference frame limited to 3 datums", "warning",
        applies=lambda fcf: len(fcf.datums) > 3,
        evaluate=_too_many_datums,
    ),
    Rule(
        "W002", RuleCategory.DATUM_REQUIREMENTS,
        "Position with only primary datum may allow rotation", "warning",
        applies=lambda fcf: (
            fcf.known_characteristic == Characteristic.POSITION
            and len(fcf.datums) == 1
            and fcf.composite is None
        ),
        evaluate=_single_datum_position,
    ),
    Rule(
        "W004", RuleCategory.DATUM_REQUIREMENTS,
        "Profile without datums controls form only", "warning",
        applies=lambda fcf: fcf.known_characteristic == Characteristic.PROFILE and not fcf.datums,
        evaluate=_profile_without_datums,
    ),
    # composite
    Rule(
        "E009", RuleCategory.COMPOSITE_CONFIGURATION,
        "Composite frames only valid for position characteristic", "error",
        applies=lambda fcf: fcf.composite is not None,
        evaluate=_composite_characteristic,
    ),
    Rule(
        "E004", RuleCategory.COMPOSITE_CONFIGURATION,
        "Composite tiers must be structurally consistent", "error",
        applies=lambda fcf: fcf.composite is not None,
        evaluate=_composite_structure,
    ),
    Rule(
        "W003", RuleCategory.COMPOSITE_CONFIGURATION,
        "Composite position typically applies to patterns", "warning",
        applies=lambda fcf: fcf.composite is not None and fcf.pattern is None,
        evaluate=_composite_without_pattern,
    ),
    # tolerance zone
    Rule(
        "E031", RuleCategory.TOLERANCE_ZONE,
        "Tolerance value must be present and greater than zero", "error",
        applies=lambda fcf: True,
        evaluate=_tolerance_value,
    ),
    Rule(
        "E034", RuleCategory.TOLERANCE_ZONE,
        "Projected zone height must be positive", "error",
        applies=lambda fcf: fcf.projected_zone is not None,
        evaluate=_projected_zone_height,
    ),
    Rule(
        "E008", RuleCategory.TOLERANCE_ZONE,
        "Projected zone and PROJECTED_TOLERANCE_ZONE modifier must appear together", "error",
        applies=lambda fcf: (
            fcf.projected_zone is not None
            or FrameModifier.PROJECTED_TOLERANCE_ZONE in fcf.modifiers
        ),
        evaluate=_projected_zone_declaration,
    ),
    # feature type / modifier compatibility
    Rule(
        "E005", RuleCategory.MODIFIER_COMPATIBILITY,
        "Zone modifiers must suit the declared feature type", "error",
        applies=lambda fcf: fcf.feature_type in PLANAR_FEATURES,
        evaluate=_planar_feature_modifiers,
    ),
]


def validate_fcf(fcf: FeatureControlFrame) -> ValidationReport:
    """Run every applicable rule and collect all issues in catalogue order."""
    issues = [issue for rule in _RULES if rule.applies(fcf) for issue in rule.evaluate(fcf)]
    return ValidationReport(issues=issues)


def validate_fcf_strict(fcf: FeatureControlFrame) -> bool:
    return validate_fcf(fcf).valid


def validate_by_category(fcf: FeatureControlFrame, category: RuleCategory) -> list[ValidationIssue]:
    return [
        issue
        for rule in _RULES
        if rule.category == category and rule.applies(fcf)
        for issue in rule.evaluate(fcf)
    ]


def get_rules() -> tuple[Rule, ...]:
    return tuple(_RULES)


def get_rules_by_category(category: RuleCategory) -> tuple[Rule, ...]:
    return tuple(r for r in _RULES if r.category == category)
