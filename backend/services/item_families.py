"""
Medication and vaccine inventories behave identically; they differ only in
table names and in what the old flat stock field was called. ``ItemFamily``
captures those differences so stock, status and migration code is written once.
"""

from dataclasses import dataclass

from exceptions import ValidationError
from models.medication import Medication
from models.medication_batch import MedicationBatch
from models.vaccine import Vaccine
from models.vaccine_batch import VaccineBatch


@dataclass(frozen=True)
class ItemFamily:
    key: str
    plural: str
    label: str
    item_model: type
    batch_model: type
    batch_prefix: str
    legacy_stock_field: str  # flat stock key in legacy JSON and DB column name
    legacy_json_file: str

    def __str__(self):
        return self.key


MEDICATION = ItemFamily(
    key="medication",
    plural="medications",
    label="Medication",
    item_model=Medication,
    batch_model=MedicationBatch,
    batch_prefix="MED",
    legacy_stock_field="unitsInStock",
    legacy_json_file="medications.json",
)

VACCINE = ItemFamily(
    key="vaccine",
    plural="vaccines",
    label="Vaccine",
    item_model=Vaccine,
    batch_model=VaccineBatch,
    batch_prefix="VAC",
    legacy_stock_field="dosesInStock",
    legacy_json_file="vaccines.json",
)

FAMILIES = {family.key: family for family in (MEDICATION, VACCINE)}


def get_family(name: str) -> ItemFamily:
    """Resolve "medication", "medications", "vaccine" or "vaccines"."""
    key = (name or "").strip().lower()
    if key.endswith("s"):
        key = key[:-1]
    family = FAMILIES.get(key)
    if family is None:
        raise ValidationError('Invalid type. Must be "vaccine" or "medication"')
    return family
