import logging
from decimal import Decimal

import pytest

from pixel_sender.integrations.base import StoredRecord
from pixel_sender.models.db.enums import Classification
from pixel_sender.services.errors import RecordLookupError
from pixel_sender.services.reconciler import (
    DuplicateEvent,
    NewEvent,
    UpdatedEvent,
    classify_event,
    reconcile,
)
from pixel_sender.services.validator import validate_events


def _record(trx_id, amount, commission):
    return StoredRecord(trx_id=trx_id, amount=Decimal(str(amount)), commission_amount=Decimal(str(commission)))


class RecordingLookup:
    def __init__(self, records):
        self.records = records
        self.calls = []

    def __call__(self, trx_ids):
        self.calls.append(set(trx_ids))
        return [r for r in self.records if r.trx_id in trx_ids]


def test_no_record_is_new(make_item):
    (event,) = validate_events([make_item("n-1")])
    result = classify_event(event, None)
    assert isinstance(result, NewEvent)
    assert result.status == Classification.NEW
    assert not hasattr(result, "record")


def test_equal_amounts_are_duplicate_despite_other_fields(make_item):
    (event,) = validate_events([make_item("d-1", amount=100, commission_amount=20, currency="EUR", event="Lead", token="other")])
    result = classify_event(event, _record("d-1", "100.00", "20.0000"))
    assert isinstance(result, DuplicateEvent)
    assert not result.needs_send


def test_float_vs_decimal_equality(make_item):
    (event,) = validate_events([make_item("d-2", amount=99.9, commission_amount=0.1)])
    assert isinstance(classify_event(event, _record("d-2", "99.9000", "0.1")), DuplicateEvent)


@pytest.mark.parametrize("amount,commission", [(101, 10), (100, 11), (0, 0)])
def test_any_difference_is_updated(make_item, amount, commission):
    (event,) = validate_events([make_item("u-1", amount=amount, commission_amount=commission)])
    result = classify_event(event, _record("u-1", 100, 10))
    assert isinstance(result, UpdatedEvent)
    changes = result.changes(include_first_seen=False)
    assert changes == {
        "old_amount": 100,
        "new_amount": amount,
        "old_commission": 10,
        "new_commission": commission,
    }


def test_lookup_is_one_call_with_distinct_ids(make_item):
    events = validate_events([make_item("a"), make_item("b"), make_item("a", amount=5)])
    lookup = RecordingLookup([_record("a", 100, 10)])
    result = reconcile(events, lookup)
    assert lookup.calls == [{"a", "b"}]
    assert [i.status for i in result.items] == [Classification.DUPLICATE, Classification.NEW, Classification.UPDATED]


def test_transmission_set_is_new_plus_updated_in_order(make_item):
    events = validate_events([
        make_item("n1"), make_item("dup"), make_item("upd", amount=1), make_item("n2"),
    ])
    lookup = RecordingLookup([_record("dup", 100, 10), _record("upd", 100, 10)])
    result = reconcile(events, lookup)
    assert [i.event.trx_id for i in result.to_send] == ["n1", "upd", "n2"]
    assert len(result.to_send) == len(result.new) + len(result.updated)
    assert result.records_found == 2


def test_matching_is_exact_and_case_sensitive(make_item):
    events = validate_events([make_item("ABC"), make_item(" abc")])
    result = reconcile(events, RecordingLookup([_record("abc", 100, 10)]))
    assert [i.status for i in result.items] == [Classification.NEW, Classification.NEW]


def test_skip_dedup_never_calls_lookup(make_item):
    events = validate_events([make_item("a"), make_item("b")])
    lookup = RecordingLookup([_record("a", 100, 10)])
    result = reconcile(events, lookup, skip_dedup=True)
    assert lookup.calls == []
    assert result.skipped_lookup
    assert all(i.status == Classification.NEW for i in result.items)


def test_lookup_failure_is_wrapped(make_item):
    events = validate_events([make_item("a")])

    def broken(_ids):
        raise ConnectionError("connection refused")

    with pytest.raises(RecordLookupError) as exc_info:
        reconcile(events, broken)
    assert "connection refused" in exc_info.value.message


def test_scenario_a_counts(make_item):
    items = []
    records = []
    for i in range(8):
        items.append(make_item(f"dup-{i}", amount=200, commission_amount=20))
        records.append(_record(f"dup-{i}", 200, 20))
    for i in range(7):
        items.append(make_item(f"upd-{i}", amount=300, commission_amount=30))
        records.append(_record(f"upd-{i}", 250, 25))
    for i in range(35):
        items.append(make_item(f"new-{i}"))
    result = reconcile(validate_events(items), RecordingLookup(records))
    assert len(result.new) == 35
    assert len(result.duplicates) == 8
    assert len(result.updated) == 7
    assert len(result.to_send) == 42


def test_repeated_ids_are_classified_independently_in_order(make_item, caplog):
    events = validate_events([
        make_item("rep", amount=100, commission_amount=10),
        make_item("rep", amount=120, commission_amount=12),
        make_item("solo"),
        make_item("twin"),
        make_item("twin"),
    ])
    lookup = RecordingLookup([_record("rep", 100, 10)])

    reconciler_logger = logging.getLogger("pixel_sender.services.reconciler")
    reconciler_logger.addHandler(caplog.handler)
    try:
        with caplog.at_level(logging.WARNING, logger="pixel_sender.services.reconciler"):
            result = reconcile(events, lookup)
    finally:
        reconciler_logger.removeHandler(caplog.handler)

    assert lookup.calls == [{"rep", "solo", "twin"}]
    assert [(i.event.trx_id, i.status) for i in result.items] == [
        ("rep", Classification.DUPLICATE),
        ("rep", Classification.UPDATED),
        ("solo", Classification.NEW),
        ("twin", Classification.NEW),
        ("twin", Classification.NEW),
    ]
    assert [i.event.trx_id for i in result.to_send] == ["rep", "solo", "twin", "twin"]

    warnings = [r for r in caplog.records if "repeated trx_ids" in r.getMessage()]
    assert len(warnings) == 1
    assert warnings[0].fields["trx_ids"] == ["rep", "twin"]
    assert warnings[0].fields["repeated_count"] == 2


def test_amounts_compare_at_stored_scale(make_item):
    (event,) = validate_events([make_item("s-1", amount=19.99999, commission_amount=2.00004)])
    stored = _record("s-1", "20.0000", "2.0000")
    assert isinstance(classify_event(event, stored), DuplicateEvent)

    (changed,) = validate_events([make_item("s-1", amount=19.9999, commission_amount=2)])
    assert isinstance(classify_event(changed, stored), UpdatedEvent)
