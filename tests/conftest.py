import os
import tempfile
from datetime import timedelta
from decimal import Decimal

# must be set before settings/database are imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["LOG_DIR"] = os.path.join(tempfile.gettempdir(), "barangay-health-test-logs")

import pytest
from fastapi.testclient import TestClient

import models  # noqa: F401
from database import Base, SessionLocal, engine
from models.batch_mixin import BATCH_ACTIVE
from models.medication import Medication
from models.vaccine import Vaccine
from utils.time_utils import today


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client(db):
    from main import app
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def make_medication(db):
    def _make(name="Paracetamol 500mg", minimum_stock=50, **kwargs):
        kwargs.setdefault("unit_cost", Decimal("2.00"))
        item = Medication(name=name, minimum_stock=minimum_stock, **kwargs)
        db.add(item)
        db.commit()
        db.refresh(item)
        return item
    return _make


@pytest.fixture
def make_vaccine(db):
    def _make(name="BCG", minimum_stock=50, **kwargs):
        item = Vaccine(name=name, minimum_stock=minimum_stock, **kwargs)
        db.add(item)
        db.commit()
        db.refresh(item)
        return item
    return _make


@pytest.fixture
def add_batch(db):
    """Insert a batch row as-is (no status refresh), for setting up exact states."""
    def _add(item, batch_number, remaining, expiry_date=None, received=None, status=BATCH_ACTIVE, unit_cost="10.00", received_date=None):
        batch_model = type(item).batches.property.mapper.class_
        batch = batch_model(
            item_id=item.id,
            batch_number=batch_number,
            quantity_received=received if received is not None else max(remaining, 1),
            quantity_remaining=remaining,
            unit_cost=Decimal(unit_cost),
            expiry_date=expiry_date or today() + timedelta(days=365),
            received_date=received_date or today(),
            status=status,
        )
        db.add(batch)
        db.commit()
        db.refresh(batch)
        return batch
    return _add
