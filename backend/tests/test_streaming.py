import json
from api.streaming import sse_event, sse_error, sse_progress, SSE_EVENT_TYPES
from gdt.interpreter import InterpretFailure


def test_sse_event_types_defined():
    assert "progress" in SSE_EVENT_TYPES
    assert "extraction" in SSE_EVENT_TYPES
    assert "fcf" in SSE_EVENT_TYPES
    assert "validation" in SSE_EVENT_TYPES
    assert "calculation" in SSE_EVENT_TYPES
    assert "explanation" in SSE_EVENT_TYPES
    assert "interpretation_complete" in SSE_EVENT_TYPES
    assert "error" in SSE_EVENT_TYPES


def test_sse_event_format():
    event = sse_event("validation", {"valid": True})
    assert event["event"] == "validation"
    data = json.loads(event["data"])
    assert data["valid"] is True


def test_sse_event_dumps_models_with_wire_names():
    failure = InterpretFailure(status="invalid", stage="schema", message="bad", correlation_id="c1")
    data = json.loads(sse_event("error", failure)["data"])
    assert data["correlationId"] == "c1"
    assert "details" not in data


def test_sse_progress_format():
    event = sse_progress("validation", "Validating...", 2, 5)
    assert event["event"] == "progress"
    data = json.loads(event["data"])
    assert data == {"stage": "validation", "message": "Validating...", "step": 2, "total": 5}


def test_sse_error_format():
    event = sse_error("Ollama not reachable", stage="extraction")
    assert event["event"] == "error"
    data = json.loads(event["data"])
    assert data["error"] == "Ollama not reachable"
    assert data["stage"] == "extraction"


def test_sse_error_no_stage():
    event = sse_error("Unknown failure")
    data = json.loads(event["data"])
    assert "stage" not in data
