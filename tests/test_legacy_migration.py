import re
from datetime import timedelta

from models.batch_mixin import BATCH_ACTIVE, BATCH_EXPIRED
from models.medication_batch import MedicationBatch
from models.vaccine_batch import VaccineBatch
from services import legacy_migration
from services.item_families import MEDICATION, VACCINE
from services.legacy_migration import FAR_FUTURE_EXPIRY, migrate_legacy_stock
from services.stock_status import STATUS_AVAILABLE, STATUS_OUT_OF_STOCK
from utils.time_utils import today


def _seed_medications(make_medication):
    return {
        "lot": make_medication(
            name="Paracetamol 500mg",
            legacy_stock=1200,
            legacy_batch_number="PCM-2024-118",
            legacy_expiry_date=today() + timedelta(days=300),
        ),
        "bare": make_medication(name="Amoxicillin 500mg", legacy_stock=300),
        "expired": make_medication(
            name="Salbutamol Nebule",
            legacy_stock=80,
            legacy_expiry_date=today() - timedelta(days=10),
        ),
        "empty": make_medication(name="ORS", legacy_stock=0),
    }


def test_dry_run_writes_nothing(db, make_medication):
    _seed_medications(make_medication)

    report = migrate_legacy_stock(db, MEDICATION)

    assert report.dry_run is True
    assert report.migrated_count == 3
    assert report.skipped_count == 0
    assert report.error_count == 0
    assert db.query(MedicationBatch).count() == 0


def test_dry_run_is_the_default_and_reports_planned_batches(db, make_medication):
    items = _seed_medications(make_medication)

    report = migrate_legacy_stock(db, MEDICATION)
    planned = {o.item_id: o for o in report.outcomes}

    assert planned[items["lot"].id].batch_number == "PCM-2024-118"
    assert planned[items["lot"].id].quantity == 1200
    assert planned[items["expired"].id].batch_status == BATCH_EXPIRED
    assert items["empty"].id not in planned


def test_execute_creates_one_batch_per_item(db, make_medication):
    items = _seed_medications(make_medication)

    report = migrate_legacy_stock(db, MEDICATION, execute=True)

    assert report.migrated_count == 3
    assert report.to_dict()["totalQuantity"] == 1580
    db.expire_all()

    lot = items["lot"]
    assert len(lot.batches) == 1
    batch = lot.batches[0]
    assert batch.batch_number == "PCM-2024-118"
    assert batch.quantity_received == batch.quantity_remaining == 1200
    assert batch.received_date == today()
    assert batch.status == BATCH_ACTIVE
    assert "legacy" in batch.notes
    assert today().isoformat() in batch.notes
    assert lot.status == STATUS_AVAILABLE

    bare = items["bare"].batches[0]
    assert re.fullmatch(rf"MED-{items['bare'].id}-\d+", bare.batch_number)
    assert bare.expiry_date == FAR_FUTURE_EXPIRY

    expired = items["expired"].batches[0]
    assert expired.status == BATCH_EXPIRED
    assert items["expired"].total_stock == 0
    assert items["expired"].status == STATUS_OUT_OF_STOCK

    assert items["empty"].batches == []


def test_second_run_skips_everything(db, make_medication):
    _seed_medications(make_medication)
    migrate_legacy_stock(db, MEDICATION, execute=True)

    report = migrate_legacy_stock(db, MEDICATION, execute=True)

    assert report.migrated_count == 0
    assert report.skipped_count == 3
    assert report.skipped_count == len(report.outcomes)
    assert db.query(MedicationBatch).count() == 3


def test_items_with_existing_batches_are_skipped(db, make_medication, add_batch):
    item = make_medication(name="Cotrimoxazole", legacy_stock=50)
    add_batch(item, "REAL-1", 10)

    report = migrate_legacy_stock(db, MEDICATION, execute=True)

    assert report.skipped_count == 1
    assert report.migrated_count == 0
    db.expire_all()
    assert [b.batch_number for b in item.batches] == ["REAL-1"]


def test_failures_are_collected_and_run_continues(db, make_medication, monkeypatch):
    items = _seed_medications(make_medication)
    broken_id = items["bare"].id
    original = legacy_migration.carry_legacy_stock

    def flaky_carry(db, family, item, **kwargs):
        if item.id == broken_id:
            raise RuntimeError("disk full")
        return original(db, family, item, **kwargs)

    monkeypatch.setattr(legacy_migration, "carry_legacy_stock", flaky_carry)

    report = migrate_legacy_stock(db, MEDICATION, execute=True)

    assert report.migrated_count == 2
    assert report.error_count == 1
    assert report.errors[0].item_id == broken_id
    assert report.errors[0].item_name == "Amoxicillin 500mg"
    assert "disk full" in report.errors[0].reason
    assert db.query(MedicationBatch).count() == 2


def test_vaccines_use_the_same_procedure(db, make_vaccine):
    vaccine = make_vaccine(name="Measles-Rubella", legacy_stock=80)

    report = migrate_legacy_stock(db, VACCINE, execute=True)

    assert report.family == "vaccine"
    assert report.migrated_count == 1
    batch = db.query(VaccineBatch).one()
    assert batch.item_id == vaccine.id
    assert re.fullmatch(rf"VAC-{vaccine.id}-\d+", batch.batch_number)
    assert batch.quantity_remaining == 80


def test_batch_coverage(db, make_medication):
    _seed_medications(make_medication)

    before = legacy_migration.batch_coverage(db, MEDICATION)
    assert before["itemsWithLegacyStock"] == 3
    assert before["itemsWithoutBatches"] == 3

    migrate_legacy_stock(db, MEDICATION, execute=True)
    db.expire_all()

    after = legacy_migration.batch_coverage(db, MEDICATION)
    assert after["itemsWithBatches"] == 3
    assert after["stockMatches"] == 3
    assert after["stockMismatches"] == 0
    assert after["totalItems"] == 4
