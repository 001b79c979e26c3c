import logging

from fastapi import APIRouter, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from sse_starlette.sse import EventSourceResponse

from gdt.calc_types import CalculationInputError
from gdt.calculators import UnsupportedCharacteristicError, calculate
from gdt.frame import Characteristic, FcfSchemaError, parse_fcf, serialize_fcf
from gdt.interpreter import InterpretResult, calculation_payload, dump
from gdt.rules import RuleCategory, get_rules, get_rules_by_category, validate_fcf
from models.ollama import ModelClientError, OllamaUnavailableError

from .schemas import (
    CalculateRequest,
    ExtractRequest,
    ExtractResponse,
    InterpretRequest,
    RuleInfo,
    ValidateRequest,
)
from .streaming import sse_error, sse_event, sse_progress

logger = logging.getLogger(__name__)

router = APIRouter()


def _status_code(result: InterpretResult) -> int:
    if result.status == "ok":
        return 200
    if result.status == "invalid":
        return 422
    return 502


def _schema_error(e: FcfSchemaError) -> JSONResponse:
    return JSONResponse(
        {"status": "invalid", "stage": "schema", "message": str(e), "details": e.details},
        status_code=422,
    )


@router.post("/fcf/interpret")
async def interpret(request: Request, body: InterpretRequest):
    """Full interpretation pipeline as a single JSON response."""
    result = await request.app.state.interpreter.interpret(body)
    return JSONResponse(dump(result), status_code=_status_code(result))


@router.post("/fcf/interpret/stream")
async def interpret_stream(request: Request, body: InterpretRequest):
    """Interpretation pipeline as an SSE stream, one event per stage."""
    interpreter = request.app.state.interpreter

    async def event_generator():
        try:
            async for event, payload in interpreter.stages(body):
                if event == "progress":
                    yield sse_progress(**payload)
                else:
                    yield sse_event(event, payload)
        except Exception as e:
            logger.error("Pipeline error: %s", e, exc_info=True)
            yield sse_error(f"Pipeline error: {e}", stage="unknown")

    return EventSourceResponse(event_generator())


@router.post("/fcf/validate")
async def validate(body: ValidateRequest):
    """Schema check plus ASME Y14.5 rule validation, no AI involved."""
    try:
        fcf = parse_fcf(body.fcf)
    except FcfSchemaError as e:
        return _schema_error(e)
    return {"fcf": serialize_fcf(fcf), "validation": dump(validate_fcf(fcf))}


@router.post("/fcf/calculate")
async def calculate_tolerance(request: Request, body: CalculateRequest):
    """Run a tolerance calculator, optionally filling inputs from a frame."""
    try:
        characteristic = Characteristic(body.characteristic.lower())
    except ValueError:
        raise HTTPException(422, f"No tolerance calculator for characteristic '{body.characteristic}'")

    payload = body.input
    if body.fcf is not None:
        try:
            fcf = parse_fcf(body.fcf)
        except FcfSchemaError as e:
            return _schema_error(e)
        precision = request.app.state.settings.calc_precision
        payload = calculation_payload(fcf, characteristic, payload, precision)

    try:
        result = calculate(characteristic, payload)
    except CalculationInputError as e:
        return JSONResponse(
            {"message": str(e), "errors": [dump(err) for err in e.errors]},
            status_code=422,
        )
    except UnsupportedCharacteristicError as e:
        raise HTTPException(422, str(e))
    return dump(result)


@router.post("/ai/extract-fcf")
async def extract_fcf(request: Request, body: ExtractRequest):
    """Extraction adapter only: image or text to a schema-checked frame."""
    ollama = request.app.state.ollama
    try:
        outcome = await ollama.extract_fcf(image_url=body.image_url, text=body.text, hints=body.hints)
    except ModelClientError as e:
        logger.error("Extraction failed: %s", e)
        raise HTTPException(502, f"Extraction failed: {e}")

    try:
        fcf = parse_fcf(outcome.fcf)
    except FcfSchemaError as e:
        logger.warning("Extracted FCF failed schema check: %s", e.details)
        return JSONResponse(
            {"message": "Extracted FCF failed schema validation", "details": e.details, "raw": outcome.fcf},
            status_code=502,
        )

    return dump(ExtractResponse(
        fcf=serialize_fcf(fcf),
        parse_confidence=outcome.parse_confidence,
        notes=outcome.notes,
        raw_text=outcome.raw_text,
    ))


@router.get("/rules")
async def list_rules(category: RuleCategory | None = Query(None)):
    """Catalogue of validation codes."""
    rules = get_rules_by_category(category) if category else get_rules()
    return {
        "rules": [
            dump(RuleInfo(
                code=r.code,
                category=r.category.value,
                severity=r.severity,
                description=r.description,
            ))
            for r in rules
        ]
    }


@router.get("/health")
async def health(request: Request):
    """Liveness check -- confirms Ollama + models are loaded."""
    ollama = request.app.state.ollama
    try:
        tags = await ollama.health_check()
        models = [m["name"] for m in tags.get("models", [])]
        return {
            "status": "healthy",
            "ollama": "connected",
            "models_loaded": models,
        }
    except OllamaUnavailableError as e:
        return {"status": "degraded", "ollama": str(e), "models_loaded": []}
