import json
import pytest
from unittest.mock import AsyncMock, patch
import httpx
from httpx import AsyncClient, ASGITransport
from fastapi import FastAPI
from api.routes import router
from config import Settings
from gdt.interpreter import FcfInterpreter
from models.ollama import ExtractionOutcome, OllamaClient, OllamaParseError, OllamaUnavailableError

POSITION_FCF = {
    "characteristic": "position",
    "featureType": "hole",
    "tolerance": {"value": 0.1, "diameter": True, "materialCondition": "MMC"},
    "datums": [{"id": "A"}, {"id": "B"}, {"id": "C"}],
    "sizeDimension": {"nominal": 10, "tolerancePlus": 0.1, "toleranceMinus": 0.05},
}


def _make_app(ollama=None):
    """Create a test FastAPI app with a mocked Ollama client."""
    app = FastAPI()
    app.include_router(router, prefix="/api")

    if ollama is None:
        ollama = AsyncMock()
        ollama.extract_fcf = AsyncMock(return_value=ExtractionOutcome(
            fcf={k: v for k, v in POSITION_FCF.items() if k != "sizeDimension"},
            parse_confidence=0.9,
            notes=[],
            raw_text="⌀0.1 Ⓜ A B C",
        ))
        ollama.explain_fcf = AsyncMock(return_value={
            "explanation": "The hole axis must lie within a ⌀0.1 zone at MMC.",
            "warnings": [],
            "promptVersion": "v1.0.1",
        })
        ollama.health_check = AsyncMock(return_value={"models": [{"name": "gemma3:4b"}]})

    settings = Settings(extraction_timeout_seconds=1.0, explanation_timeout_seconds=1.0)
    app.state.settings = settings
    app.state.ollama = ollama
    app.state.interpreter = FcfInterpreter(extractor=ollama, explainer=ollama, settings=settings)
    return app


@pytest.mark.asyncio
async def test_health_endpoint():
    app = _make_app()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        resp = await client.get("/api/health")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "healthy"
        assert data["models_loaded"] == ["gemma3:4b"]


@pytest.mark.asyncio
async def test_health_endpoint_degraded():
    ollama = AsyncMock()
    ollama.health_check = AsyncMock(side_effect=OllamaUnavailableError("refused"))
    app = _make_app(ollama)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        resp = await client.get("/api/health")
        assert resp.json()["status"] == "degraded"


@pytest.mark.asyncio
async def test_interpret_direct_fcf():
    app = _make_app()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        resp = await client.post(
            "/api/fcf/interpret",
            json={
                "fcf": POSITION_FCF,
                "calculationInput": {"characteristic": "position", "input": {"measured": {"actualSize": 9.98}}},
                "correlationId": "req-1",
            },
        )
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "ok"
        assert data["confidence"] == "high"
        assert data["validation"]["valid"] is True
        assert data["calcResult"]["result"]["totalAllowableTolerance"] == 0.13
        assert data["explanation"]["explanation"].startswith("The hole axis")
        assert data["promptVersion"] == "v1.0.1"
        assert data["correlationId"] == "req-1"


@pytest.mark.asyncio
async def test_interpret_text_uses_extraction():
    app = _make_app()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        resp = await client.post("/api/fcf/interpret", json={"text": "⌀0.1 M A B C"})
        assert resp.status_code == 200
        assert resp.json()["parseConfidence"] == 0.9
    app.state.ollama.extract_fcf.assert_awaited_once()


@pytest.mark.asyncio
async def test_interpret_schema_failure_is_422():
    app = _make_app()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        resp = await client.post(
            "/api/fcf/interpret",
            json={"fcf": {**POSITION_FCF, "tolerance": {"value": -1}}},
        )
        assert resp.status_code == 422
        data = resp.json()
        assert data["status"] == "invalid"
        assert data["stage"] == "schema"


@pytest.mark.asyncio
async def test_interpret_extraction_failure_is_502():
    ollama = AsyncMock()
    ollama.extract_fcf = AsyncMock(side_effect=OllamaUnavailableError("refused"))
    app = _make_app(ollama)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        resp = await client.post("/api/fcf/interpret", json={"imageUrl": "https://example.com/fcf.png"})
        assert resp.status_code == 502
        data = resp.json()
        assert data["status"] == "error"
        assert data["stage"] == "extraction"


@pytest.mark.asyncio
async def test_interpret_returns_sse_stream():
    app = _make_app()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        resp = await client.post(
            "/api/fcf/interpret/stream",
            json={"text": "⌀0.1 M A B C"},
        )
        assert resp.status_code == 200
        assert "text/event-stream" in resp.headers["content-type"]

        events = _parse_sse(resp.text)
        event_types = [e["event"] for e in events]

        assert "progress" in event_types
        assert "extraction" in event_types
        assert "fcf" in event_types
        assert "validation" in event_types
        assert "explanation" in event_types
        assert event_types[-1] == "interpretation_complete"

        data = json.loads(events[-1]["data"])
        assert data["status"] == "ok"


@pytest.mark.asyncio
async def test_interpret_stream_ends_with_error_event():
    app = _make_app()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        resp = await client.post("/api/fcf/interpret/stream", json={})
        events = _parse_sse(resp.text)
        assert events[-1]["event"] == "error"
        data = json.loads(events[-1]["data"])
        assert data["stage"] == "extraction"


@pytest.mark.asyncio
async def test_validate_reports_issues():
    app = _make_app()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        resp = await client.post("/api/fcf/validate", json={"fcf": {**POSITION_FCF, "datums": []}})
        assert resp.status_code == 200
        validation = resp.json()["validation"]
        assert validation["valid"] is False
        assert "E006" in [i["code"] for i in validation["issues"]]


@pytest.mark.asyncio
async def test_validate_schema_error():
    app = _make_app()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        resp = await client.post("/api/fcf/validate", json={"fcf": {"characteristic": "position"}})
        assert resp.status_code == 422
        assert resp.json()["stage"] == "schema"


@pytest.mark.asyncio
async def test_calculate_flatness():
    app = _make_app()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        resp = await client.post(
            "/api/fcf/calculate",
            json={"characteristic": "flatness", "input": {"tolerance": 0.05, "totalIndicatorReading": 0.04}},
        )
        assert resp.status_code == 200
        data = resp.json()
        assert data["characteristic"] == "flatness"
        assert data["result"]["status"] == "pass"


@pytest.mark.asyncio
async def test_calculate_fills_from_fcf():
    app = _make_app()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        resp = await client.post(
            "/api/fcf/calculate",
            json={"characteristic": "position", "fcf": POSITION_FCF, "input": {"measured": {"actualSize": 9.98}}},
        )
        assert resp.status_code == 200
        assert resp.json()["result"]["bonusTolerance"] == 0.03


@pytest.mark.asyncio
async def test_calculate_invalid_input_is_422():
    app = _make_app()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        resp = await client.post(
            "/api/fcf/calculate",
            json={"characteristic": "flatness", "input": {"tolerance": -1}},
        )
        assert resp.status_code == 422
        assert resp.json()["errors"][0]["code"] == "INVALID_TOLERANCE"


@pytest.mark.asyncio
@pytest.mark.parametrize("characteristic", ["cylindricity", "other", "bogus"])
async def test_calculate_unsupported_characteristic(characteristic):
    app = _make_app()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        resp = await client.post(
            "/api/fcf/calculate",
            json={"characteristic": characteristic, "input": {}},
        )
        assert resp.status_code == 422


@pytest.mark.asyncio
async def test_extract_fcf():
    app = _make_app()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        resp = await client.post("/api/ai/extract-fcf", json={"text": "⌀0.1 M A B C"})
        assert resp.status_code == 200
        data = resp.json()
        assert data["fcf"]["characteristic"] == "position"
        assert data["parseConfidence"] == 0.9


@pytest.mark.asyncio
async def test_extract_fcf_model_error_is_502():
    ollama = AsyncMock()
    ollama.extract_fcf = AsyncMock(side_effect=OllamaParseError("bad json"))
    app = _make_app(ollama)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        resp = await client.post("/api/ai/extract-fcf", json={"text": "x"})
        assert resp.status_code == 502


@pytest.mark.asyncio
async def test_extract_fcf_schema_failure_is_502():
    ollama = AsyncMock()
    ollama.extract_fcf = AsyncMock(return_value=ExtractionOutcome(
        fcf={"characteristic": "position"}, parse_confidence=0.3,
    ))
    app = _make_app(ollama)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        resp = await client.post("/api/ai/extract-fcf", json={"text": "x"})
        assert resp.status_code == 502
        assert resp.json()["raw"] == {"characteristic": "position"}


@pytest.mark.asyncio
async def test_extract_fcf_requires_input():
    app = _make_app()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        resp = await client.post("/api/ai/extract-fcf", json={})
        assert resp.status_code == 422


@pytest.mark.asyncio
async def test_rules_catalogue():
    app = _make_app()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        resp = await client.get("/api/rules")
        assert resp.status_code == 200
        codes = [r["code"] for r in resp.json()["rules"]]
        assert "E001" in codes
        assert "E009" in codes

        resp = await client.get("/api/rules?category=datum-requirements")
        rules = resp.json()["rules"]
        assert rules
        assert all(r["category"] == "datum-requirements" for r in rules)


def _parse_sse(text: str) -> list[dict]:
    """Parse raw SSE text into a list of {event, data} dicts."""
    events = []
    current = {}
    for line in text.strip().split("\n"):
        line = line.strip()
        if line.startswith("event:"):
            current["event"] = line[len("event:"):].strip()
        elif line.startswith("data:"):
            current["data"] = line[len("data:"):].strip()
        elif line == "" and current:
            events.append(current)
            current = {}
    if current:
        events.append(current)
    return events


@pytest.mark.asyncio
async def test_interpret_non_object_fcf_is_schema_failure():
    app = _make_app()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        resp = await client.post("/api/fcf/interpret", json={"fcf": "position 0.1 A B C"})
        assert resp.status_code == 422
        data = resp.json()
        assert data["status"] == "invalid"
        assert data["stage"] == "schema"


@pytest.mark.asyncio
@pytest.mark.parametrize("fcf", ["position 0.1 A B C", [1, 2], 42])
async def test_validate_non_object_fcf_is_schema_failure(fcf):
    app = _make_app()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        resp = await client.post("/api/fcf/validate", json={"fcf": fcf})
        assert resp.status_code == 422
        assert resp.json()["stage"] == "schema"


@pytest.mark.asyncio
async def test_calculate_non_object_fcf_is_schema_failure():
    app = _make_app()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        resp = await client.post(
            "/api/fcf/calculate", json={"characteristic": "flatness", "fcf": "flatness 0.05"}
        )
        assert resp.status_code == 422
        assert resp.json()["stage"] == "schema"


@pytest.mark.asyncio
@pytest.mark.parametrize("reply", [
    httpx.Response(200, json={"done": True}),
    httpx.Response(200, text="<html>bad gateway</html>"),
])
async def test_extract_fcf_malformed_model_reply_is_502(reply):
    ollama = OllamaClient(base_url="http://localhost:11434", extraction_model="gemma3:4b")
    reply.request = httpx.Request("POST", "http://localhost:11434/api/chat")
    app = _make_app(ollama)
    transport = ASGITransport(app=app)
    with patch.object(ollama.client, "post", new_callable=AsyncMock, return_value=reply):
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            resp = await client.post("/api/ai/extract-fcf", json={"text": "⌀0.1 M A B C"})
    assert resp.status_code == 502
    assert "Extraction failed" in resp.json()["detail"]
