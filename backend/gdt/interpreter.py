"""Interpretation pipeline: acquire -> schema -> validate -> calculate -> explain.

Only acquisition and schema failures are terminal. Validation issues,
calculation problems and explanation failures are reported alongside
whatever else was determined.
"""

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from typing import Any, Literal, Protocol, assert_never
from uuid import uuid4

from pydantic import Field

from config import Settings

from .calculators import CalcResult, UnsupportedCharacteristicError, calculate
from .calc_types import CalculationInputError, CalculatorIssue
from .confidence import Confidence, derive_confidence
from .frame import (
    Characteristic,
    FcfSchemaError,
    FeatureControlFrame,
    FrameModifier,
    parse_fcf,
    serialize_fcf,
)
from .rules import ValidationReport, WireModel, validate_fcf

logger = logging.getLogger(__name__)

DIRECT_PARSE_CONFIDENCE = 1.0


class Extractor(Protocol):
    async def extract_fcf(
        self,
        image_url: str | None = None,
        text: str | None = None,
        hints: dict | None = None,
    ) -> Any: ...


class Explainer(Protocol):
    async def explain_fcf(
        self,
        fcf: dict,
        validation: dict,
        calc_result: dict | None = None,
        parse_confidence: float | None = None,
    ) -> dict: ...


class CalculationRequest(WireModel):
    characteristic: str
    input: dict = {}


class InterpretRequest(WireModel):
    # Left untyped so a non-object frame reaches parse_fcf and fails at the schema stage.
    fcf: Any = None
    image_url: str | None = None
    text: str | None = None
    hints: dict | None = None
    calculation_input: CalculationRequest | None = None
    parse_confidence_override: float | None = Field(default=None, ge=0.0, le=1.0)
    correlation_id: str | None = None
    explain: bool = True


class Explanation(WireModel):
    explanation: str
    warnings: list[str] = []


class CalculationFailure(WireModel):
    code: Literal["CHARACTERISTIC_MISMATCH", "INVALID_INPUT", "UNSUPPORTED_CHARACTERISTIC"]
    message: str
    errors: list[CalculatorIssue] = []


class InterpretSuccess(WireModel):
    status: Literal["ok"] = "ok"
    fcf: FeatureControlFrame
    parse_confidence: float
    validation: ValidationReport
    calc_result: CalcResult | None = None
    calculation_error: CalculationFailure | None = None
    explanation: Explanation | None = None
    confidence: Confidence
    prompt_version: str | None = None
    notes: list[str] = []
    correlation_id: str


class InterpretFailure(WireModel):
    status: Literal["error", "invalid"]
    stage: Literal["extraction", "schema", "validation"]
    message: str
    details: list[dict] | None = None
    correlation_id: str


InterpretResult = InterpretSuccess | InterpretFailure


def dump(model: WireModel) -> dict:
    """camelCase JSON projection with unset optionals omitted."""
    return model.model_dump(mode="json", by_alias=True, exclude_none=True)


def _fill(payload: dict, key: str, value: Any) -> None:
    snake = "".join(f"_{c.lower()}" if c.isupper() else c for c in key)
    if value is None or key in payload or snake in payload:
        return
    payload[key] = value.value if hasattr(value, "value") else value


def calculation_payload(
    fcf: FeatureControlFrame,
    characteristic: Characteristic,
    payload: dict,
    precision: int | None = None,
) -> dict:
    """Fill calculator inputs the frame already states; caller values win."""
    payload = dict(payload)
    tol = fcf.tolerance
    size = fcf.size_dimension.model_dump(by_alias=True, exclude_none=True) if fcf.size_dimension else None
    _fill(payload, "unit", fcf.source_unit)
    _fill(payload, "precision", precision)

    match characteristic:
        case Characteristic.POSITION:
            _fill(payload, "geometricTolerance", tol.value)
            _fill(payload, "materialCondition", tol.material_condition)
            _fill(payload, "featureType", fcf.feature_type)
            _fill(payload, "sizeDimension", size)
            _fill(payload, "diametralZone", tol.cylindrical)
        case Characteristic.FLATNESS:
            _fill(payload, "tolerance", tol.value)
        case Characteristic.PERPENDICULARITY:
            _fill(payload, "tolerance", tol.value)
            _fill(payload, "materialCondition", tol.material_condition)
            _fill(payload, "featureType", fcf.feature_type)
            _fill(payload, "sizeDimension", size)
            _fill(payload, "zoneShape", "cylindrical" if tol.cylindrical else "planar")
        case Characteristic.PROFILE:
            _fill(payload, "tolerance", tol.value)
            if FrameModifier.UNEQUALLY_DISPOSED in fcf.modifiers:
                _fill(payload, "zoneType", "unequally-disposed")
            _fill(payload, "formOnly", not fcf.datums)
        case Characteristic.OTHER:
            pass
        case _:
            assert_never(characteristic)
    return payload


class FcfInterpreter:
    def __init__(
        self,
        extractor: Extractor | None = None,
        explainer: Explainer | None = None,
        settings: Settings | None = None,
    ):
        self.extractor = extractor
        self.explainer = explainer
        self.settings = settings or Settings()

    async def interpret(self, request: InterpretRequest) -> InterpretResult:
        """Run the full pipeline and return its terminal result."""
        result = None
        async for event, payload in self.stages(request):
            if event in ("interpretation_complete", "error"):
                result = payload
        return result

    async def stages(self, request: InterpretRequest) -> AsyncIterator[tuple[str, Any]]:
        """Yield ``(event, payload)`` per pipeline stage.

        The last event is ``interpretation_complete`` with an InterpretSuccess
        or ``error`` with an InterpretFailure.
        """
        cid = request.correlation_id or str(uuid4())
        notes: list[str] = []
        timings: dict[str, int] = {}

        # Stage 1: acquire a candidate frame
        if request.fcf is not None:
            raw_fcf = request.fcf
            parse_confidence = DIRECT_PARSE_CONFIDENCE
            if request.image_url or request.text:
                logger.info("[%s] fcf supplied with imageUrl/text; using fcf", cid)
                notes.append("Direct fcf supplied; imageUrl/text ignored and extraction skipped.")
        elif request.image_url or request.text:
            yield "progress", {"stage": "extraction", "message": "Extracting FCF...", "step": 1, "total": 5}
            if self.extractor is None:
                yield "error", self._failure(cid, "error", "extraction", "No extraction adapter configured")
                return
            t0 = time.monotonic()
            try:
                outcome = await asyncio.wait_for(
                    self.extractor.extract_fcf(
                        image_url=request.image_url, text=request.text, hints=request.hints
                    ),
                    timeout=self.settings.extraction_timeout_seconds,
                )
            except asyncio.TimeoutError:
                logger.error("[%s] Extraction timed out after %.1fs", cid, self.settings.extraction_timeout_seconds)
                yield "error", self._failure(cid, "error", "extraction", "Extraction timed out")
                return
            except Exception as e:
                logger.error("[%s] Extraction failed: %s", cid, e, exc_info=True)
                yield "error", self._failure(cid, "error", "extraction", f"Extraction failed: {e}")
                return
            timings["extraction_ms"] = int((time.monotonic() - t0) * 1000)
            logger.info("[%s] Extraction: completed in %dms", cid, timings["extraction_ms"])

            raw_fcf = outcome.fcf
            parse_confidence = outcome.parse_confidence
            notes.extend(outcome.notes)
            yield "extraction", {
                "parseConfidence": parse_confidence,
                "notes": list(outcome.notes),
                "rawText": outcome.raw_text,
            }
        else:
            yield "error", self._failure(
                cid, "invalid", "extraction", "Request must include fcf, imageUrl or text"
            )
            return

        if request.parse_confidence_override is not None:
            parse_confidence = request.parse_confidence_override

        # Stage 2: schema
        try:
            fcf = parse_fcf(raw_fcf)
        except FcfSchemaError as e:
            logger.info("[%s] Schema check failed: %d problem(s)", cid, len(e.details))
            yield "error", self._failure(cid, "invalid", "schema", str(e), e.details)
            return
        yield "fcf", serialize_fcf(fcf)

        # Stage 3: validation
        yield "progress", {"stage": "validation", "message": "Validating against ASME Y14.5...", "step": 2, "total": 5}
        report = validate_fcf(fcf)
        logger.info(
            "[%s] Validation: %d error(s), %d warning(s)",
            cid, len(report.errors), len(report.warnings),
        )
        yield "validation", dump(report)

        # Stage 4: calculation
        calc_result = None
        calc_error = None
        if request.calculation_input is not None:
            yield "progress", {"stage": "calculation", "message": "Calculating tolerances...", "step": 3, "total": 5}
            calc_result, calc_error = self._calculate(fcf, request.calculation_input)
            if calc_error is not None:
                logger.info("[%s] Calculation skipped: %s", cid, calc_error.message)
                yield "calculation", {"calculationError": dump(calc_error)}
            else:
                yield "calculation", {"calcResult": dump(calc_result)}

        # Stage 5: explanation
        explanation = None
        prompt_version = None
        if request.explain and self.settings.explanation_enabled and self.explainer is not None:
            yield "progress", {"stage": "explanation", "message": "Generating explanation...", "step": 4, "total": 5}
            t0 = time.monotonic()
            try:
                data = await asyncio.wait_for(
                    self.explainer.explain_fcf(
                        serialize_fcf(fcf),
                        dump(report),
                        dump(calc_result) if calc_result else None,
                        parse_confidence,
                    ),
                    timeout=self.settings.explanation_timeout_seconds,
                )
                explanation = Explanation.model_validate(data)
                prompt_version = data.get("promptVersion")
                timings["explanation_ms"] = int((time.monotonic() - t0) * 1000)
                logger.info("[%s] Explanation: completed in %dms", cid, timings["explanation_ms"])
                yield "explanation", dump(explanation)
            except asyncio.TimeoutError:
                logger.warning("[%s] Explanation timed out; omitting", cid)
                notes.append("Explanation timed out and was omitted.")
            except Exception as e:
                logger.warning("[%s] Explanation failed; omitting: %s", cid, e)
                notes.append("Explanation unavailable and was omitted.")

        confidence = derive_confidence(report, parse_confidence, self.settings.low_confidence_threshold)
        yield "progress", {"stage": "finalize", "message": "Finalizing results...", "step": 5, "total": 5}
        logger.info(
            "[%s] Interpretation complete: confidence=%s total=%dms",
            cid, confidence, sum(timings.values()),
        )
        yield "interpretation_complete", InterpretSuccess(
            fcf=fcf,
            parse_confidence=parse_confidence,
            validation=report,
            calc_result=calc_result,
            calculation_error=calc_error,
            explanation=explanation,
            confidence=confidence,
            prompt_version=prompt_version,
            notes=notes,
            correlation_id=cid,
        )

    def _calculate(
        self, fcf: FeatureControlFrame, req: CalculationRequest
    ) -> tuple[CalcResult | None, CalculationFailure | None]:
        try:
            characteristic = Characteristic(req.characteristic.lower())
        except ValueError:
            return None, CalculationFailure(
                code="UNSUPPORTED_CHARACTERISTIC",
                message=f"No tolerance calculator for characteristic '{req.characteristic}'",
            )
        if characteristic != fcf.known_characteristic:
            return None, CalculationFailure(
                code="CHARACTERISTIC_MISMATCH",
                message=(
                    f"Calculation requested for '{characteristic.value}' but the frame "
                    f"controls '{fcf.characteristic}'"
                ),
            )

        payload = calculation_payload(fcf, characteristic, req.input, self.settings.calc_precision)
        try:
            return calculate(characteristic, payload), None
        except CalculationInputError as e:
            return None, CalculationFailure(code="INVALID_INPUT", message=str(e), errors=e.errors)
        except UnsupportedCharacteristicError as e:
            return None, CalculationFailure(code="UNSUPPORTED_CHARACTERISTIC", message=str(e))

    @staticmethod
    def _failure(cid, status, stage, message, details=None) -> InterpretFailure:
        return InterpretFailure(
            status=status, stage=stage, message=message, details=details, correlation_id=cid
        )
