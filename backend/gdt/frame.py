"""Canonical Feature Control Frame model.

Loosely-typed input (builder state, JSON payloads, AI extraction output) is
parsed into immutable pydantic models. Structural problems raise
``FcfSchemaError``; semantic ASME Y14.5 checks live in ``gdt.rules``.
"""

from enum import Enum
from typing import Any, Literal

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel


class Characteristic(str, Enum):
    POSITION = "position"
    FLATNESS = "flatness"
    PERPENDICULARITY = "perpendicularity"
    PROFILE = "profile"
    OTHER = "other"


class FeatureType(str, Enum):
    HOLE = "hole"
    SLOT = "slot"
    PIN = "pin"
    BOSS = "boss"
    SURFACE = "surface"
    PLANE = "plane"
    EDGE = "edge"
    OTHER = "other"


class MaterialCondition(str, Enum):
    MMC = "MMC"
    LMC = "LMC"
    RFS = "RFS"


class Unit(str, Enum):
    MM = "mm"
    INCH = "inch"


class InputType(str, Enum):
    BUILDER = "builder"
    IMAGE = "image"
    JSON = "json"
    TEXT = "text"


class FrameModifier(str, Enum):
    FREE_STATE = "FREE_STATE"
    PROJECTED_TOLERANCE_ZONE = "PROJECTED_TOLERANCE_ZONE"
    TANGENT_PLANE = "TANGENT_PLANE"
    UNEQUALLY_DISPOSED = "UNEQUALLY_DISPOSED"


class ZoneShape(str, Enum):
    CYLINDRICAL = "cylindrical"
    SPHERICAL = "spherical"
    TWO_PARALLEL_PLANES = "twoParallelPlanes"
    TWO_PARALLEL_LINES = "twoParallelLines"


# Datum letters I, O and Q are not used per Y14.5 (confusable with 1 and 0).
DATUM_LETTERS = frozenset("ABCDEFGHJKLMNPRSTUVWXYZ")


class FrameModel(BaseModel):
    """Immutable base: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class Tolerance(FrameModel):
    value: float | None = Field(default=None, ge=0)
    diameter: bool = False
    material_condition: MaterialCondition | None = None
    zone_shape: ZoneShape | None = None

    @property
    def uses_mmc_or_lmc(self) -> bool:
        return self.material_condition in (MaterialCondition.MMC, MaterialCondition.LMC)

    @property
    def cylindrical(self) -> bool:
        return self.diameter or self.zone_shape == ZoneShape.CYLINDRICAL


class DatumReference(FrameModel):
    id: str
    material_condition: MaterialCondition | None = None

    @field_validator("id")
    @classmethod
    def _single_letter(cls, v: str) -> str:
        v = v.strip().upper()
        if len(v) != 1 or v not in DATUM_LETTERS:
            raise ValueError("datum id must be a single letter A-Z (excluding I, O, Q)")
        return v


class SizeDimension(FrameModel):
    """Size of a feature, normalised to ``nominal + plus / - minus``.

    Accepts three notations on input:

    * symmetric: ``{"nominal": 10, "tolerance": 0.1}``
    * asymmetric: ``{"nominal": 10, "tolerancePlus": 0.1, "toleranceMinus": 0.05}``
    * limits: ``{"upperLimit": 10.1, "lowerLimit": 9.95}``
    """

    nominal: float
    tolerance_plus: float = Field(default=0.0, ge=0)
    tolerance_minus: float = Field(default=0.0, ge=0)
    unit: Unit | None = None
    note: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _normalize_notation(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        symmetric = data.pop("tolerance", None)
        upper = data.pop("upperLimit", data.pop("upper_limit", None))
        lower = data.pop("lowerLimit", data.pop("lower_limit", None))

        if upper is not None or lower is not None:
            if upper is None or lower is None:
                raise ValueError("limit notation requires both upperLimit and lowerLimit")
            if "nominal" in data or symmetric is not None:
                raise ValueError("limit notation cannot be combined with nominal/tolerance")
            try:
                upper, lower = float(upper), float(lower)
            except (TypeError, ValueError):
                raise ValueError("upperLimit and lowerLimit must be numbers") from None
            if upper < lower:
                raise ValueError("upperLimit must not be below lowerLimit")
            data["nominal"] = lower
            data["tolerancePlus"] = upper - lower
            data["toleranceMinus"] = 0.0
        elif symmetric is not None:
            if any(k in data for k in ("tolerancePlus", "toleranceMinus", "tolerance_plus", "tolerance_minus")):
                raise ValueError("symmetric tolerance cannot be combined with plus/minus tolerances")
            data["tolerancePlus"] = symmetric
            data["toleranceMinus"] = symmetric
        return data

    @property
    def upper_limit(self) -> float:
        return self.nominal + self.tolerance_plus

    @property
    def lower_limit(self) -> float:
        return self.nominal - self.tolerance_minus


class Source(FrameModel):
    input_type: InputType
    file_url: str | None = None


class Pattern(FrameModel):
    count: int | None = Field(default=None, ge=1)
    note: str | None = None


class ProjectedZone(FrameModel):
    height: float
    unit: Unit | None = None


class CompositeSegment(FrameModel):
    tolerance: Tolerance
    datums: list[DatumReference] = []


class Composite(FrameModel):
    type: Literal["composite", "multiple"] = "composite"
    segments: list[CompositeSegment] = []


class FeatureControlFrame(FrameModel):
    name: str | None = None
    # Kept as a raw string when unrecognised so the rule engine can report E003.
    characteristic: Characteristic | str | None = None
    feature_type: FeatureType | None = None
    source_unit: Unit = Unit.MM
    source: Source | None = None
    tolerance: Tolerance
    datums: list[DatumReference] = []
    modifiers: list[FrameModifier] = []
    pattern: Pattern | None = None
    size_dimension: SizeDimension | None = None
    projected_zone: ProjectedZone | None = None
    composite: Composite | None = None
    notes: list[str] = []

    @field_validator("characteristic", mode="before")
    @classmethod
    def _coerce_characteristic(cls, v: Any) -> Any:
        if isinstance(v, str):
            v = v.strip()
            try:
                return Characteristic(v.lower())
            except ValueError:
                return v or None
        return v

    @property
    def known_characteristic(self) -> Characteristic | None:
        if isinstance(self.characteristic, Characteristic):
            return self.characteristic
        return None


class FcfSchemaError(ValueError):
    """Raised when input does not structurally conform to the FCF model."""

    def __init__(self, message: str, details: list[dict] | None = None):
        super().__init__(message)
        self.details = details or []


def _error_details(exc: ValidationError) -> list[dict]:
    details = []
    for err in exc.errors():
        path = ""
        for part in err["loc"]:
            if isinstance(part, int):
                path += f"[{part}]"
            else:
                path += f".{part}" if path else str(part)
        details.append({"path": path, "message": err["msg"]})
    return details


def parse_fcf(data: Any) -> FeatureControlFrame:
    """Parse loosely-typed input into a FeatureControlFrame.

    Raises FcfSchemaError with per-field details on structural non-conformance.
    An already-parsed frame is returned unchanged.
    """
    if isinstance(data, FeatureControlFrame):
        return data
    if not isinstance(data, dict):
        raise FcfSchemaError(
            "FCF payload must be a JSON object",
            [{"path": "", "message": f"expected object, got {type(data).__name__}"}],
        )
    try:
        return FeatureControlFrame.model_validate(data)
    except ValidationError as e:
        raise FcfSchemaError("FCF payload failed schema validation", _error_details(e)) from e


def is_fcf(data: Any) -> bool:
    try:
        parse_fcf(data)
    except FcfSchemaError:
        return False
    return True


def serialize_fcf(fcf: FeatureControlFrame) -> dict:
    """Canonical JSON projection (camelCase, unset optionals omitted)."""
    return fcf.model_dump(mode="json", by_alias=True, exclude_none=True)
