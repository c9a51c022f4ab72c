"""
Status Change Model
Audit row written to `status_changes` for every resolved transition
"""
from pydantic import BaseModel
from typing import Optional
from datetime import datetime


class StatusChange(BaseModel):
    """History entry of a lead status transition"""
    id: Optional[str] = None
    tenant_id: str
    lead_id: str
    old_status: Optional[str] = None
    new_status: str
    changed_by: Optional[str] = None
    changed_at: Optional[datetime] = None
    reason: Optional[str] = None
    notes: Optional[str] = None

    model_config = {"extra": "ignore"}
