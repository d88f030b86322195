"""
The JSON files under ``settings.LEGACY_DATA_DIR`` predate the database.

They are imported once into the item tables (stock, lot number and expiry go
into the legacy flat columns, to be carried into batches by the migration) and
afterwards only ever written, as snapshots exported from the database. No
request path reads them.
"""

import json
import logging
import os
from decimal import Decimal, InvalidOperation
from typing import List, Optional

from sqlalchemy.orm import Session, selectinload

import settings
from crud.inventory_items import get_item_by_name
from services.item_families import MEDICATION, VACCINE, ItemFamily
from utils.time_utils import now, parse_date

logger = logging.getLogger("legacy_store")

# legacy JSON key -> item attribute, per family
COMMON_FIELDS = {
    "name": "name",
    "category": "category",
    "manufacturer": "manufacturer",
    "minimumStock": "minimum_stock",
    "unitCost": "unit_cost",
    "notes": "notes",
    "batchNumber": "legacy_batch_number",
    "expiryDate": "legacy_expiry_date",
}

FAMILY_FIELDS = {
    MEDICATION.key: {
        "genericName": "generic_name",
        "brandName": "brand_name",
        "dosage": "dosage",
        "form": "form",
        "strength": "strength",
        "sellingPrice": "selling_price",
        "isPrescriptionRequired": "is_prescription_required",
    },
    VACCINE.key: {
        "dosage": "dosage",
        "administrationRoute": "administration_route",
        "dosesPerVial": "doses_per_vial",
        "storageTemp": "storage_temperature",
        "storageTemperature": "storage_temperature",
        "ageGroup": "age_group",
    },
}

DATE_ATTRIBUTES = ("legacy_expiry_date",)
DECIMAL_ATTRIBUTES = ("unit_cost", "selling_price")
INTEGER_ATTRIBUTES = ("minimum_stock", "doses_per_vial")


def legacy_file_path(family: ItemFamily, data_dir: Optional[str] = None) -> str:
    return os.path.join(data_dir or settings.LEGACY_DATA_DIR, family.legacy_json_file)


def _coerce(attribute: str, value):
    if value is None or value == "":
        return None
    if attribute in DATE_ATTRIBUTES:
        return parse_date(value)
    if attribute in DECIMAL_ATTRIBUTES:
        try:
            return Decimal(str(value))
        except InvalidOperation:
            return None
    if attribute in INTEGER_ATTRIBUTES:
        try:
            return int(value)
        except (TypeError, ValueError):
            return None
    return value


def legacy_record_to_fields(family: ItemFamily, record: dict) -> dict:
    """Map one legacy JSON record to item attributes (unknown keys are ignored)."""
    mapping = dict(COMMON_FIELDS)
    mapping.update(FAMILY_FIELDS[family.key])
    fields = {}
    for json_key, attribute in mapping.items():
        if json_key in record:
            value = _coerce(attribute, record[json_key])
            if value is not None:
                fields[attribute] = value

    stock = record.get(family.legacy_stock_field, record.get("quantityInStock", 0))
    try:
        fields["legacy_stock"] = max(int(stock or 0), 0)
    except (TypeError, ValueError):
        fields["legacy_stock"] = 0
    return fields


def read_legacy_file(path: str) -> List[dict]:
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, list):
        raise ValueError(f"{path} does not contain a JSON list")
    return data


def import_legacy_items(db: Session, family: ItemFamily, records: List[dict], changed_by: Optional[str] = None) -> dict:
    """
    Create an item row for every legacy record whose name is not in the
    database yet. Returns counts of imported and skipped records.
    """
    imported, skipped, invalid = 0, 0, 0
    try:
        for record in records:
            name = (record.get("name") or "").strip()
            if not name:
                invalid += 1
                logger.warning(f"Skipping legacy {family.key} record without a name: {record.get('id')}")
                continue
            if get_item_by_name(db, family, name) is not None:
                skipped += 1
                continue
            fields = legacy_record_to_fields(family, record)
            fields["name"] = name
            db.add(family.item_model(**fields, created_by=changed_by, updated_by=changed_by))
            db.flush()
            imported += 1
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info(f"Imported {imported} legacy {family.plural} ({skipped} already present, {invalid} invalid)")
    return {"family": family.key, "imported": imported, "skipped": skipped, "invalid": invalid}


def item_snapshot(family: ItemFamily, item) -> dict:
    """Legacy-shaped JSON record for an item, with stock taken from its batches."""
    mapping = dict(COMMON_FIELDS)
    mapping.update(FAMILY_FIELDS[family.key])
    record = {"id": item.id}
    for json_key, attribute in mapping.items():
        if attribute.startswith("legacy_") or json_key in record:
            continue
        value = getattr(item, attribute, None)
        if isinstance(value, Decimal):
            value = float(value)
        record[json_key] = value

    next_expiry = item.next_expiry_date
    record.update({
        family.legacy_stock_field: item.total_stock,
        "quantityInStock": item.total_stock,
        "expiryDate": next_expiry.isoformat() if next_expiry else None,
        "batchCount": item.batch_count,
        "status": item.derived_status,
    })
    return record


def export_snapshot(db: Session, family: ItemFamily, data_dir: Optional[str] = None) -> str:
    """Regenerate the family's JSON file from the database; returns the path written."""
    model = family.item_model
    items = db.query(model).options(selectinload(model.batches)).order_by(model.id).all()
    records = [item_snapshot(family, item) for item in items]

    path = legacy_file_path(family, data_dir)
    os.makedirs(os.path.dirname(path), exist_ok=True)
    tmp_path = f"{path}.tmp"
    with open(tmp_path, "w", encoding="utf-8") as f:
        json.dump(records, f, indent=2)
    os.replace(tmp_path, path)
    logger.info(f"Exported {len(records)} {family.plural} to {path} at {now().isoformat()}")
    return path
