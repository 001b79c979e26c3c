import pytest
from pydantic import ValidationError
from api.schemas import (
    CalculateRequest,
    ExtractRequest,
    ExtractResponse,
    InterpretRequest,
    RuleInfo,
)


def test_interpret_request_defaults():
    req = InterpretRequest()
    assert req.fcf is None
    assert req.image_url is None
    assert req.text is None
    assert req.calculation_input is None
    assert req.parse_confidence_override is None
    assert req.explain is True


def test_interpret_request_from_wire():
    req = InterpretRequest.model_validate({
        "imageUrl": "https://example.com/fcf.png",
        "calculationInput": {"characteristic": "position", "input": {"measured": {"actualSize": 9.98}}},
        "parseConfidenceOverride": 0.8,
        "correlationId": "abc",
    })
    assert req.image_url == "https://example.com/fcf.png"
    assert req.calculation_input.characteristic == "position"
    assert req.correlation_id == "abc"


@pytest.mark.parametrize("value", [-0.1, 1.5])
def test_parse_confidence_override_bounded(value):
    with pytest.raises(ValidationError):
        InterpretRequest(parseConfidenceOverride=value)


def test_calculate_request_defaults():
    req = CalculateRequest(characteristic="flatness")
    assert req.input == {}
    assert req.fcf is None


def test_extract_request_requires_input():
    with pytest.raises(ValidationError):
        ExtractRequest()
    assert ExtractRequest(text="⌀0.1 A").text == "⌀0.1 A"


def test_extract_response_wire_names():
    resp = ExtractResponse(fcf={"characteristic": "position"}, parse_confidence=0.9, raw_text="x")
    data = resp.model_dump(by_alias=True)
    assert data["parseConfidence"] == 0.9
    assert data["rawText"] == "x"


def test_rule_info():
    info = RuleInfo(code="E006", category="datum-requirements", severity="error", description="d")
    assert info.code == "E006"
