from datetime import date, datetime, timedelta
from decimal import Decimal

import pytest
from sqlalchemy import update
from sqlalchemy.orm.attributes import set_committed_value

from exceptions import (
    BatchStateError,
    DuplicateBatchError,
    InsufficientStockError,
    ItemNotFoundError,
    ValidationError,
)
from models.batch_mixin import BATCH_ACTIVE, BATCH_DEPLETED, BATCH_EXPIRED
from models.medication_batch import MedicationBatch
from models.stock_audit import StockAudit
from services import stock_ledger
from services.item_families import MEDICATION, VACCINE
from services.legacy_migration import FAR_FUTURE_EXPIRY
from services.stock_status import STATUS_AVAILABLE, STATUS_LOW_STOCK, STATUS_OUT_OF_STOCK
from utils import time_utils
from utils.time_utils import today


def _receive(db, item, number, quantity, days=180, **extra):
    data = {
        "batch_number": number,
        "quantity_received": quantity,
        "expiry_date": today() + timedelta(days=days),
    }
    data.update(extra)
    return stock_ledger.receive_batch(db, MEDICATION, item.id, data, changed_by="nurse.joy")


def _remaining(db, batch_id):
    db.expire_all()
    return db.get(MedicationBatch, batch_id).quantity_remaining


def _audits(db, change_type):
    return db.query(StockAudit).filter(StockAudit.change_type == change_type).all()


def test_receive_batch_initialises_remaining(db, make_medication):
    item = make_medication(unit_cost=Decimal("3.50"))
    batch = _receive(db, item, "AMX-001", 120, supplier="Zuellig")

    assert batch.quantity_received == 120
    assert batch.quantity_remaining == 120
    assert batch.status == BATCH_ACTIVE
    assert batch.unit_cost == Decimal("3.50")
    assert batch.received_date == today()
    assert batch.created_by == "nurse.joy"

    audit = _audits(db, "receive")
    assert len(audit) == 1
    assert audit[0].change_amount == 120
    assert audit[0].batch_id == batch.id


def test_receive_batch_reconciles_item_status(db, make_medication):
    item = make_medication(minimum_stock=50)
    _receive(db, item, "AMX-001", 200)
    db.refresh(item)
    assert item.status == STATUS_AVAILABLE
    assert item.total_stock == 200


@pytest.mark.parametrize("quantity", [0, -5, None, "10", 2.5])
def test_receive_batch_rejects_non_positive_or_non_integer_quantity(db, make_medication, quantity):
    item = make_medication()
    with pytest.raises(ValidationError):
        _receive(db, item, "BAD-1", quantity)
    assert db.query(MedicationBatch).count() == 0


def test_receive_batch_requires_expiry(db, make_medication):
    item = make_medication()
    with pytest.raises(ValidationError):
        stock_ledger.receive_batch(db, MEDICATION, item.id, {"batch_number": "X", "quantity_received": 10})


def test_batch_number_is_unique_per_item_only(db, make_medication):
    first = make_medication(name="Amoxicillin")
    second = make_medication(name="Mefenamic Acid")
    _receive(db, first, "LOT-42", 10)

    with pytest.raises(DuplicateBatchError):
        _receive(db, first, "LOT-42", 5)
    other = _receive(db, second, "LOT-42", 5)
    assert other.batch_number == "LOT-42"


def test_receive_for_unknown_item(db):
    with pytest.raises(ItemNotFoundError):
        stock_ledger.receive_batch(db, MEDICATION, 999, {"batch_number": "X", "quantity_received": 1, "expiry_date": today()})


def test_fifo_consumption_drains_soonest_expiry_first(db, make_medication):
    item = make_medication(minimum_stock=50)
    late = _receive(db, item, "B", 10, days=400)
    early = _receive(db, item, "A", 10, days=60)

    allocations = stock_ledger.consume_stock(db, MEDICATION, item.id, 15)

    assert [(a.batch_number, a.quantity, a.remaining) for a in allocations] == [("A", 10, 0), ("B", 5, 5)]
    db.expire_all()
    assert db.get(MedicationBatch, early.id).quantity_remaining == 0
    assert db.get(MedicationBatch, early.id).status == BATCH_DEPLETED
    assert db.get(MedicationBatch, late.id).quantity_remaining == 5
    db.refresh(item)
    assert item.total_stock == 5
    assert item.status == STATUS_LOW_STOCK


def test_fifo_consumption_with_fixed_expiry_dates(db, make_medication, add_batch, monkeypatch):
    monkeypatch.setattr(time_utils, "now", lambda: datetime(2025, 11, 15, 9, 0))
    item = make_medication()
    a = add_batch(item, "A", 10, expiry_date=date(2026, 1, 1))
    b = add_batch(item, "B", 10, expiry_date=date(2027, 1, 1))

    stock_ledger.consume_stock(db, MEDICATION, item.id, 15)

    assert _remaining(db, a.id) == 0
    assert db.get(MedicationBatch, a.id).status == BATCH_DEPLETED
    assert _remaining(db, b.id) == 5


def test_fifo_breaks_expiry_ties_by_received_date(db, make_medication, add_batch):
    item = make_medication()
    expiry = today() + timedelta(days=90)
    newer = add_batch(item, "NEW", 10, expiry_date=expiry, received_date=today())
    older = add_batch(item, "OLD", 10, expiry_date=expiry, received_date=today() - timedelta(days=20))

    stock_ledger.consume_stock(db, MEDICATION, item.id, 4)

    assert _remaining(db, older.id) == 6
    assert _remaining(db, newer.id) == 10


def test_insufficient_stock_leaves_batch_unchanged(db, make_medication):
    item = make_medication()
    batch = _receive(db, item, "ONLY", 5)

    with pytest.raises(InsufficientStockError) as excinfo:
        stock_ledger.consume_stock(db, MEDICATION, item.id, 10)

    assert excinfo.value.requested == 10
    assert excinfo.value.available == 5
    assert _remaining(db, batch.id) == 5
    assert _audits(db, "consume") == []


def test_insufficient_stock_across_batches_changes_nothing(db, make_medication):
    item = make_medication()
    a = _receive(db, item, "A", 10, days=30)
    b = _receive(db, item, "B", 10, days=90)

    with pytest.raises(InsufficientStockError):
        stock_ledger.consume_stock(db, MEDICATION, item.id, 25)

    assert _remaining(db, a.id) == 10
    assert _remaining(db, b.id) == 10


def test_targeted_consumption_touches_only_that_batch(db, make_medication):
    item = make_medication()
    early = _receive(db, item, "EARLY", 10, days=30)
    late = _receive(db, item, "LATE", 10, days=300)

    allocations = stock_ledger.consume_stock(db, MEDICATION, item.id, 4, batch_id=late.id)

    assert len(allocations) == 1
    assert _remaining(db, late.id) == 6
    assert _remaining(db, early.id) == 10


def test_targeted_consumption_beyond_batch_fails(db, make_medication):
    item = make_medication()
    _receive(db, item, "EARLY", 50, days=30)
    small = _receive(db, item, "SMALL", 3, days=300)

    with pytest.raises(InsufficientStockError) as excinfo:
        stock_ledger.consume_stock(db, MEDICATION, item.id, 4, batch_id=small.id)
    assert excinfo.value.batch_id == small.id
    assert _remaining(db, small.id) == 3


def test_conditional_decrement_rejects_stale_read(db, make_medication):
    item = make_medication()
    batch = _receive(db, item, "RACE", 10)

    # another request consumed 8 units after this session read the batch
    db.execute(update(MedicationBatch).where(MedicationBatch.id == batch.id).values(quantity_remaining=2))
    db.commit()
    stale = db.get(MedicationBatch, batch.id)
    set_committed_value(stale, "quantity_remaining", 10)

    with pytest.raises(InsufficientStockError):
        stock_ledger.consume_stock(db, MEDICATION, item.id, 5, batch_id=batch.id)
    assert _remaining(db, batch.id) == 2


def test_round_trip_depletes_batch(db, make_medication):
    item = make_medication()
    batch = _receive(db, item, "RT", 40)

    stock_ledger.consume_stock(db, MEDICATION, item.id, 40)

    db.expire_all()
    batch = db.get(MedicationBatch, batch.id)
    assert batch.quantity_remaining == 0
    assert batch.status == BATCH_DEPLETED
    db.refresh(item)
    assert item.total_stock == 0
    assert item.status == STATUS_OUT_OF_STOCK


def test_expired_batches_are_not_consumed(db, make_medication):
    item = make_medication()
    batch = _receive(db, item, "OLD", 30, days=-10)
    assert batch.status == BATCH_EXPIRED

    with pytest.raises(InsufficientStockError):
        stock_ledger.consume_stock(db, MEDICATION, item.id, 1)
    with pytest.raises(BatchStateError):
        stock_ledger.consume_stock(db, MEDICATION, item.id, 1, batch_id=batch.id)


def test_unswept_past_expiry_batch_is_not_dispensed(db, make_medication, add_batch):
    item = make_medication()
    stale = add_batch(item, "STALE", 20, expiry_date=today() - timedelta(days=30))
    fresh = add_batch(item, "FRESH", 10, expiry_date=today() + timedelta(days=30))

    allocations = stock_ledger.consume_stock(db, MEDICATION, item.id, 5)

    assert [(a.batch_number, a.quantity) for a in allocations] == [("FRESH", 5)]
    assert _remaining(db, stale.id) == 20
    assert _remaining(db, fresh.id) == 5

    with pytest.raises(InsufficientStockError) as excinfo:
        stock_ledger.consume_stock(db, MEDICATION, item.id, 6)
    assert excinfo.value.available == 5


def test_targeted_consumption_refuses_unswept_past_expiry_batch(db, make_medication, add_batch):
    item = make_medication()
    stale = add_batch(item, "STALE", 20, expiry_date=today() - timedelta(days=1))

    with pytest.raises(BatchStateError):
        stock_ledger.consume_stock(db, MEDICATION, item.id, 5, batch_id=stale.id)

    assert _remaining(db, stale.id) == 20
    assert db.get(MedicationBatch, stale.id).status == BATCH_ACTIVE
    assert _audits(db, "consume") == []


def test_consumption_writes_audit_per_batch(db, make_medication):
    item = make_medication()
    _receive(db, item, "A", 10, days=30)
    _receive(db, item, "B", 10, days=90)

    stock_ledger.consume_stock(db, MEDICATION, item.id, 12, changed_by="midwife.ana", note="Prenatal clinic")

    audits = _audits(db, "consume")
    assert sorted(a.change_amount for a in audits) == [-10, -2]
    assert {a.changed_by for a in audits} == {"midwife.ana"}
    assert {a.note for a in audits} == {"Prenatal clinic"}


def test_add_stock_inherits_soonest_expiry(db, make_medication):
    item = make_medication()
    existing = _receive(db, item, "A", 10, days=45)

    batch = stock_ledger.add_stock(db, MEDICATION, item.id, 25)

    assert batch.expiry_date == existing.expiry_date
    assert batch.quantity_remaining == 25
    assert batch.batch_number.startswith(f"MED-{item.id}-")
    db.refresh(item)
    assert item.total_stock == 35


def test_add_stock_without_any_expiry_uses_placeholder(db, make_medication):
    item = make_medication()
    batch = stock_ledger.add_stock(db, MEDICATION, item.id, 5)
    assert batch.expiry_date == FAR_FUTURE_EXPIRY
    assert "Expiry date not supplied" in batch.notes


def test_add_stock_does_not_inherit_a_past_expiry(db, make_medication, add_batch):
    item = make_medication(minimum_stock=10)
    add_batch(item, "STALE", 20, expiry_date=today() - timedelta(days=1))
    before = item.total_stock

    batch = stock_ledger.add_stock(db, MEDICATION, item.id, 100)

    assert batch.status == BATCH_ACTIVE
    assert batch.expiry_date == FAR_FUTURE_EXPIRY
    db.refresh(item)
    assert item.total_stock == before + 100


def test_add_stock_skips_past_expiries_when_inheriting(db, make_medication, add_batch):
    item = make_medication(legacy_expiry_date=today() - timedelta(days=5))
    add_batch(item, "STALE", 20, expiry_date=today() - timedelta(days=1))
    fresh = add_batch(item, "FRESH", 20, expiry_date=today() + timedelta(days=40))

    batch = stock_ledger.add_stock(db, MEDICATION, item.id, 10)

    assert batch.expiry_date == fresh.expiry_date
    assert batch.status == BATCH_ACTIVE


def test_receive_rejects_number_taken_by_carried_legacy_batch(db, make_medication):
    item = make_medication(
        legacy_stock=40,
        legacy_batch_number="OLD-7",
        legacy_expiry_date=today() + timedelta(days=120),
    )

    with pytest.raises(DuplicateBatchError):
        _receive(db, item, "OLD-7", 10)

    assert db.query(MedicationBatch).count() == 0
    assert _receive(db, item, "NEW-1", 10).batch_number == "NEW-1"
    db.refresh(item)
    assert sorted(b.batch_number for b in item.batches) == ["NEW-1", "OLD-7"]
    assert item.total_stock == 50


def test_legacy_stock_is_carried_before_first_batch(db, make_medication):
    item = make_medication(
        legacy_stock=40,
        legacy_batch_number="OLD-7",
        legacy_expiry_date=today() + timedelta(days=200),
    )

    _receive(db, item, "NEW-1", 100)

    db.refresh(item)
    assert sorted(b.batch_number for b in item.batches) == ["NEW-1", "OLD-7"]
    assert item.total_stock == 140
    assert len(_audits(db, "migration")) == 1


def test_legacy_stock_is_carried_before_consumption(db, make_vaccine):
    item = make_vaccine(legacy_stock=30, legacy_expiry_date=today() + timedelta(days=60))

    stock_ledger.consume_stock(db, VACCINE, item.id, 12)

    db.refresh(item)
    assert len(item.batches) == 1
    assert item.batches[0].quantity_received == 30
    assert item.batches[0].quantity_remaining == 18
    assert item.batches[0].batch_number.startswith(f"VAC-{item.id}-")


def test_update_batch_correction(db, make_medication):
    item = make_medication()
    batch = _receive(db, item, "FIX", 20)

    updated = stock_ledger.update_batch(db, MEDICATION, batch.id, {"quantity_remaining": 3, "notes": "Recount"})

    assert updated.quantity_remaining == 3
    audit = _audits(db, "correction")
    assert len(audit) == 1
    assert audit[0].change_amount == -17


def test_update_batch_rejects_remaining_above_received(db, make_medication):
    item = make_medication()
    batch = _receive(db, item, "FIX", 20)
    with pytest.raises(ValidationError):
        stock_ledger.update_batch(db, MEDICATION, batch.id, {"quantity_remaining": 21})
    assert _remaining(db, batch.id) == 20


def test_update_batch_refreshes_status(db, make_medication):
    item = make_medication()
    batch = _receive(db, item, "FIX", 20)

    updated = stock_ledger.update_batch(db, MEDICATION, batch.id, {"expiry_date": today() - timedelta(days=1)})
    assert updated.status == BATCH_EXPIRED

    updated = stock_ledger.update_batch(db, MEDICATION, batch.id, {"expiry_date": today() + timedelta(days=100)})
    assert updated.status == BATCH_ACTIVE

    updated = stock_ledger.update_batch(db, MEDICATION, batch.id, {"quantity_remaining": 0})
    assert updated.status == BATCH_DEPLETED


def test_dispose_refuses_unexpired_batch(db, make_medication):
    item = make_medication()
    batch = _receive(db, item, "GOOD", 20)
    with pytest.raises(BatchStateError):
        stock_ledger.dispose_batch(db, MEDICATION, batch.id)
    assert _remaining(db, batch.id) == 20


def test_dispose_expired_batch(db, make_medication):
    item = make_medication()
    batch = _receive(db, item, "STALE", 20, days=-3, notes="Cold chain break")

    disposed = stock_ledger.dispose_batch(db, MEDICATION, batch.id, changed_by="pharmacist")

    assert disposed.quantity_remaining == 0
    assert disposed.status == BATCH_EXPIRED
    assert disposed.notes.startswith("Cold chain break | Disposed on ")
    assert _audits(db, "dispose")[0].change_amount == -20
    with pytest.raises(BatchStateError):
        stock_ledger.dispose_batch(db, MEDICATION, batch.id)


def test_dispose_refuses_depleted_batch(db, make_medication, add_batch):
    item = make_medication()
    empty = add_batch(
        item, "EMPTY", 0, received=10, status=BATCH_DEPLETED,
        expiry_date=today() - timedelta(days=3),
    )

    with pytest.raises(BatchStateError):
        stock_ledger.dispose_batch(db, MEDICATION, empty.id)

    db.expire_all()
    assert db.get(MedicationBatch, empty.id).status == BATCH_DEPLETED
    assert _audits(db, "dispose") == []


def test_expire_batches_sweeps_active_past_expiry(db, make_medication, add_batch):
    item = make_medication(minimum_stock=5)
    stale = add_batch(item, "STALE", 30, expiry_date=today() - timedelta(days=2))
    fresh = add_batch(item, "FRESH", 30, expiry_date=today() + timedelta(days=60))

    assert stock_ledger.expire_batches(db, MEDICATION) == 1

    db.expire_all()
    assert db.get(MedicationBatch, stale.id).status == BATCH_EXPIRED
    assert db.get(MedicationBatch, fresh.id).status == BATCH_ACTIVE
    db.refresh(item)
    assert item.total_stock == 30
    assert stock_ledger.expire_batches(db, MEDICATION) == 0
