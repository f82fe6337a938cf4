import json
import re
from datetime import datetime, timezone

from pixel_sender.services.dispatcher import build_payload, build_payload_dict, extract_fico
from pixel_sender.services.validator import validate_events
from pixel_sender.utils.time import pixel_timestamp


def test_fico_extracted_after_marker():
    assert extract_fico("parent:xyz;fico:ABC123") == "ABC123"


def test_fico_absent_is_none():
    assert extract_fico("Empty") is None
    assert extract_fico("") is None


def test_fico_takes_first_occurrence():
    assert extract_fico("fico:A;fico:B") == "A;fico:B"


def test_pixel_timestamp_pads_milliseconds_to_nanoseconds():
    ts = datetime(2025, 3, 1, 10, 20, 30, 123456, tzinfo=timezone.utc)
    assert pixel_timestamp(ts) == "2025-03-01T10:20:30.123000000Z"
    assert re.fullmatch(r"\d{4}-\d\d-\d\dT\d\d:\d\d:\d\d\.\d{9}Z", pixel_timestamp())


def test_payload_structure(make_item):
    (event,) = validate_events([make_item(
        "brand-sale-456",
        amount=550,
        commission_amount=110,
        event="SALE",
        token=42,
        parent_api_call="parent:xyz;fico:ABC123",
    )])
    now = datetime(2025, 3, 1, 10, 20, 30, 5000, tzinfo=timezone.utc)
    payload = build_payload_dict(event, "3000", now=now)

    assert payload["trackInfo"] == {
        "tokenId": "",
        "track_type": "event",
        "date": "2025-02-01 10:00:00",
        "timestamp": "2025-03-01T10:20:30.005000000Z",
    }
    assert payload["params"] == {"commission_amount": 110, "currency": "USD", "amount": 550, "ioId": "io-77"}
    assert payload["trxId"] == "brand-sale-456"
    assert payload["eventName"] == "sale"
    assert payload["source_token"] == "42"
    assert json.loads(payload["parent_api_call"]) == {
        "parent_api_call": "parent:xyz;fico:ABC123",
        "script_id": "3000",
        "fico": "ABC123",
    }


def test_payload_without_fico_carries_null(make_item):
    (event,) = validate_events([make_item("x-1", parent_api_call="Empty")])
    nested = json.loads(build_payload_dict(event, "77")["parent_api_call"])
    assert nested["fico"] is None
    assert nested["script_id"] == "77"


def test_wire_payload_is_compact_and_deterministic(make_item):
    (event,) = validate_events([make_item("x-1", currency="€")])
    now = datetime(2025, 1, 1, tzinfo=timezone.utc)
    first = build_payload(event, "3000", now=now)
    assert first == build_payload(event, "3000", now=now)
    assert ", " not in first and ": " not in first
    assert "€" in first


def test_fico_marker_without_colon_slices_after_four_chars():
    assert extract_fico("ficoXYZ") == "XYZ"


def test_integral_float_amounts_go_out_as_integers(make_item):
    (event,) = validate_events([make_item("int-amt", amount=100.0, commission_amount=10.0)])
    wire = build_payload(event, "3000")
    assert '"commission_amount":10,' in wire
    assert '"amount":100,' in wire

    (fractional,) = validate_events([make_item("frac-amt", amount="19.99", commission_amount=0.5)])
    params = json.loads(build_payload(fractional, "3000"))["params"]
    assert (params["amount"], params["commission_amount"]) == (19.99, 0.5)
