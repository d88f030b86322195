from models.medication import Medication
from models.medication_batch import MedicationBatch
from models.vaccine import Vaccine
from models.vaccine_batch import VaccineBatch
from models.stock_audit import StockAudit
from models.audit_log import AuditLog

__all__ = ['AuditLog', 'Medication', 'MedicationBatch', 'StockAudit', 'Vaccine', 'VaccineBatch',]
