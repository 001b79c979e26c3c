import pytest
from gdt.frame import (
    Characteristic,
    FcfSchemaError,
    FeatureControlFrame,
    FeatureType,
    MaterialCondition,
    SizeDimension,
    is_fcf,
    parse_fcf,
    serialize_fcf,
)


def _position_fcf(**overrides) -> dict:
    data = {
        "characteristic": "position",
        "featureType": "hole",
        "tolerance": {"value": 0.1, "diameter": True, "materialCondition": "MMC"},
        "datums": [{"id": "A"}, {"id": "B"}, {"id": "C"}],
    }
    data.update(overrides)
    return data


def test_parse_camel_case_payload():
    fcf = parse_fcf(_position_fcf())
    assert fcf.characteristic == Characteristic.POSITION
    assert fcf.feature_type == FeatureType.HOLE
    assert fcf.tolerance.material_condition == MaterialCondition.MMC
    assert [d.id for d in fcf.datums] == ["A", "B", "C"]


def test_parse_accepts_snake_case():
    fcf = parse_fcf({
        "characteristic": "flatness",
        "feature_type": "surface",
        "tolerance": {"value": 0.05},
    })
    assert fcf.feature_type == FeatureType.SURFACE


def test_characteristic_is_case_insensitive():
    fcf = parse_fcf(_position_fcf(characteristic="Position"))
    assert fcf.known_characteristic == Characteristic.POSITION


def test_unknown_characteristic_kept_raw():
    fcf = parse_fcf(_position_fcf(characteristic="runout"))
    assert fcf.characteristic == "runout"
    assert fcf.known_characteristic is None


def test_empty_characteristic_becomes_none():
    fcf = parse_fcf(_position_fcf(characteristic=""))
    assert fcf.characteristic is None


def test_datum_id_uppercased():
    fcf = parse_fcf(_position_fcf(datums=[{"id": "a"}]))
    assert fcf.datums[0].id == "A"


@pytest.mark.parametrize("bad_id", ["I", "O", "Q", "AB", "1", ""])
def test_invalid_datum_id_is_schema_error(bad_id):
    with pytest.raises(FcfSchemaError) as exc:
        parse_fcf(_position_fcf(datums=[{"id": bad_id}]))
    assert exc.value.details[0]["path"] == "datums[0].id"


def test_negative_tolerance_is_schema_error():
    with pytest.raises(FcfSchemaError) as exc:
        parse_fcf(_position_fcf(tolerance={"value": -0.1}))
    assert exc.value.details[0]["path"] == "tolerance.value"


def test_missing_tolerance_is_schema_error():
    data = _position_fcf()
    del data["tolerance"]
    with pytest.raises(FcfSchemaError) as exc:
        parse_fcf(data)
    assert any(d["path"] == "tolerance" for d in exc.value.details)


def test_unknown_modifier_is_schema_error():
    with pytest.raises(FcfSchemaError):
        parse_fcf(_position_fcf(modifiers=["MAGIC"]))


def test_non_object_payload_rejected():
    with pytest.raises(FcfSchemaError) as exc:
        parse_fcf(["position"])
    assert "list" in exc.value.details[0]["message"]


def test_parse_returns_existing_frame_unchanged():
    fcf = parse_fcf(_position_fcf())
    assert parse_fcf(fcf) is fcf


def test_is_fcf():
    assert is_fcf(_position_fcf())
    assert not is_fcf({"characteristic": "position"})
    assert not is_fcf("position 0.1 A B C")


def test_frame_is_immutable():
    fcf = parse_fcf(_position_fcf())
    with pytest.raises(Exception):
        fcf.name = "changed"


def test_extra_fields_ignored():
    fcf = parse_fcf(_position_fcf(symbol="⊕"))
    assert "symbol" not in serialize_fcf(fcf)


def test_serialize_uses_wire_names_and_omits_unset():
    out = serialize_fcf(parse_fcf(_position_fcf()))
    assert out["featureType"] == "hole"
    assert out["tolerance"]["materialCondition"] == "MMC"
    assert "sizeDimension" not in out
    assert "source" not in out


def test_round_trip_preserves_frame():
    data = _position_fcf(
        name="4X bolt holes",
        source={"inputType": "image", "fileUrl": "https://example.com/d.png"},
        modifiers=["PROJECTED_TOLERANCE_ZONE"],
        projectedZone={"height": 12.0, "unit": "mm"},
        pattern={"count": 4, "note": "4X"},
        sizeDimension={"nominal": 6.6, "tolerancePlus": 0.1, "toleranceMinus": 0.0},
        composite={
            "type": "composite",
            "segments": [
                {"tolerance": {"value": 0.5, "diameter": True}, "datums": [{"id": "A"}, {"id": "B"}]},
                {"tolerance": {"value": 0.1, "diameter": True}, "datums": [{"id": "A"}]},
            ],
        },
        notes=["from drawing rev C"],
    )
    fcf = parse_fcf(data)
    assert parse_fcf(serialize_fcf(fcf)) == fcf


def test_size_dimension_symmetric_notation():
    size = SizeDimension.model_validate({"nominal": 10, "tolerance": 0.1})
    assert size.tolerance_plus == 0.1
    assert size.tolerance_minus == 0.1
    assert size.upper_limit == pytest.approx(10.1)
    assert size.lower_limit == pytest.approx(9.9)


def test_size_dimension_limit_notation():
    size = SizeDimension.model_validate({"upperLimit": 10.1, "lowerLimit": 9.95})
    assert size.nominal == 9.95
    assert size.upper_limit == pytest.approx(10.1)
    assert size.lower_limit == pytest.approx(9.95)


def test_size_dimension_rejects_inverted_limits():
    with pytest.raises(FcfSchemaError):
        parse_fcf(_position_fcf(sizeDimension={"upperLimit": 9.9, "lowerLimit": 10.0}))


@pytest.mark.parametrize("upper,lower", [("10.1", "9.95"), ("10.1", 9.95), (10.1, "9.95")])
def test_size_dimension_limit_notation_coerces_numeric_strings(upper, lower):
    fcf = parse_fcf(_position_fcf(sizeDimension={"upperLimit": upper, "lowerLimit": lower}))
    assert fcf.size_dimension.upper_limit == pytest.approx(10.1)
    assert fcf.size_dimension.lower_limit == pytest.approx(9.95)


@pytest.mark.parametrize("upper,lower", [("ten", 9.95), (None, 9.95), ([10.1], 9.95)])
def test_size_dimension_non_numeric_limits_are_schema_errors(upper, lower):
    with pytest.raises(FcfSchemaError) as exc:
        parse_fcf(_position_fcf(sizeDimension={"upperLimit": upper, "lowerLimit": lower}))
    assert exc.value.details[0]["path"].startswith("sizeDimension")


def test_size_dimension_rejects_mixed_notation():
    with pytest.raises(FcfSchemaError):
        parse_fcf(_position_fcf(sizeDimension={"nominal": 10, "tolerance": 0.1, "tolerancePlus": 0.2}))


def test_cylindrical_from_zone_shape():
    fcf = FeatureControlFrame.model_validate({
        "characteristic": "perpendicularity",
        "tolerance": {"value": 0.05, "zoneShape": "cylindrical"},
    })
    assert fcf.tolerance.cylindrical
