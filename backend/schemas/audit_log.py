from pydantic import BaseModel
from typing import Optional, Dict, Any
from datetime import datetime
from schemas.common import CamelModel

class AuditLogCreate(BaseModel):
    table_name: str
    record_id: int
    changed_by: Optional[str] = None
    action: str
    old_values: Optional[Dict[str, Any]] = None
    new_values: Optional[Dict[str, Any]] = None

class AuditLog(CamelModel):
    id: int
    table_name: str
    record_id: int
    changed_at: Optional[datetime] = None
    changed_by: Optional[str] = None
    action: str
    old_values: Optional[Dict[str, Any]] = None
    new_values: Optional[Dict[str, Any]] = None
