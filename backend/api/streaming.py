import json

from pydantic import BaseModel

SSE_EVENT_TYPES = [
    "progress",
    "extraction",
    "fcf",
    "validation",
    "calculation",
    "explanation",
    "interpretation_complete",
    "error",
]


def sse_event(event_type: str, data: dict | BaseModel) -> dict:
    """Create a typed SSE event dict for EventSourceResponse."""
    if isinstance(data, BaseModel):
        data = data.model_dump(mode="json", by_alias=True, exclude_none=True)
    return {
        "event": event_type,
        "data": json.dumps(data),
    }


def sse_progress(stage: str, message: str, step: int, total: int) -> dict:
    return sse_event("progress", {"stage": stage, "message": message, "step": step, "total": total})


def sse_error(message: str, stage: str | None = None) -> dict:
    """Create an error SSE event."""
    payload = {"error": message}
    if stage:
        payload["stage"] = stage
    return {
        "event": "error",
        "data": json.dumps(payload),
    }
