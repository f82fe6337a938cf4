from datetime import datetime, timezone
from decimal import Decimal

import pytest

from pixel_sender.integrations.base import RecordStore, StoredRecord
from pixel_sender.models.db.enums import DispatchStatus
from pixel_sender.services.dispatcher import DispatchOutcome, Dispatched
from pixel_sender.services.errors import MutationError
from pixel_sender.services.mutation_planner import MutationPlan, apply_mutations, plan_mutations
from pixel_sender.services.reconciler import DuplicateEvent, NewEvent, UpdatedEvent
from pixel_sender.services.validator import validate_events

NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)
OK = DispatchOutcome(DispatchStatus.SUCCESS)
ERR = DispatchOutcome(DispatchStatus.FAILURE, error="Invalid io_id")


def _stored(trx_id):
    return StoredRecord(trx_id=trx_id, amount=Decimal("1"), commission_amount=Decimal("1"))


@pytest.fixture()
def events(make_item):
    return {e.trx_id: e for e in validate_events([
        make_item("new-ok", amount=10, commission_amount=1),
        make_item("new-err"),
        make_item("upd-ok", amount=550, commission_amount=110),
        make_item("upd-err"),
    ])}


def test_only_successful_sends_are_planned(events):
    dispatched = [
        Dispatched(NewEvent(events["new-ok"]), OK),
        Dispatched(NewEvent(events["new-err"]), ERR),
        Dispatched(UpdatedEvent(events["upd-ok"], _stored("upd-ok")), OK),
        Dispatched(UpdatedEvent(events["upd-err"], _stored("upd-err")), ERR),
    ]
    plan = plan_mutations(dispatched, now=NOW)

    assert [(r.trx_id, r.amount, r.commission_amount, r.stream, r.created_at) for r in plan.inserts] == [
        ("new-ok", 10, 1, "scraper", NOW),
    ]
    assert [(r.trx_id, r.amount, r.commission_amount, r.written_at) for r in plan.updates] == [
        ("upd-ok", 550, 110, NOW),
    ]


def test_duplicates_never_produce_mutations(events):
    dispatched = [Dispatched(DuplicateEvent(events["new-ok"], _stored("new-ok")), OK)]
    assert plan_mutations(dispatched, now=NOW).is_empty


class ScriptedStore(RecordStore):
    def __init__(self, fail_update_on=None, fail_insert=False):
        self.fail_update_on = fail_update_on
        self.fail_insert = fail_insert
        self.inserted = []
        self.updated = []

    def lookup(self, trx_ids):
        return []

    def insert_many(self, rows):
        if self.fail_insert:
            raise RuntimeError("Duplicate entry")
        self.inserted.extend(r.trx_id for r in rows)

    def update_one(self, row):
        if row.trx_id == self.fail_update_on:
            raise RuntimeError("lock wait timeout")
        self.updated.append(row.trx_id)


def _plan(events, updates=("upd-ok", "upd-err")):
    dispatched = [Dispatched(NewEvent(events["new-ok"]), OK), Dispatched(NewEvent(events["new-err"]), OK)]
    dispatched += [Dispatched(UpdatedEvent(events[t], _stored(t)), OK) for t in updates]
    return plan_mutations(dispatched, now=NOW)


def test_apply_inserts_as_one_batch_then_updates_in_order(events):
    store = ScriptedStore()
    counts = apply_mutations(store, _plan(events))
    assert store.inserted == ["new-ok", "new-err"]
    assert store.updated == ["upd-ok", "upd-err"]
    assert (counts.inserted, counts.updated) == (2, 2)


def test_update_failure_stops_and_reports_progress(events):
    store = ScriptedStore(fail_update_on="upd-err")
    with pytest.raises(MutationError) as exc_info:
        apply_mutations(store, _plan(events, updates=("upd-ok", "upd-err", "new-ok")))
    err = exc_info.value
    assert (err.inserted, err.updated) == (2, 1)
    assert err.details["db_inserted"] == 2 and err.details["db_updated"] == 1
    assert store.updated == ["upd-ok"]


def test_insert_failure_applies_nothing(events):
    store = ScriptedStore(fail_insert=True)
    with pytest.raises(MutationError) as exc_info:
        apply_mutations(store, _plan(events))
    assert (exc_info.value.inserted, exc_info.value.updated) == (0, 0)
    assert store.updated == []


def test_empty_plan_touches_nothing():
    store = ScriptedStore(fail_insert=True)
    counts = apply_mutations(store, MutationPlan())
    assert (counts.inserted, counts.updated) == (0, 0)


def test_store_mutation_error_cause_is_not_nested(events):
    class RejectingStore(ScriptedStore):
        def insert_many(self, rows):
            raise MutationError("Batch insert failed: IntegrityError", details="UNIQUE constraint failed: scraper_tokens.trx_id")

    with pytest.raises(MutationError) as exc_info:
        apply_mutations(RejectingStore(), _plan(events))
    assert exc_info.value.details == {
        "db_inserted": 0,
        "db_updated": 0,
        "cause": "UNIQUE constraint failed: scraper_tokens.trx_id",
    }
