"""
Leads API Endpoints
Lead updates, phone outcomes and appointment booking through the status engine
"""
import logging
from typing import Optional, List, Dict, Any
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from leadflow.api.v1.dependencies import get_current_user, get_engine, raise_for_result, CurrentUser
from leadflow.domain.models.lead import PhoneStatus
from leadflow.services.engine import EngineServices

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/leads", tags=["Leads"])


# =============================================================================
# Request/Response Models
# =============================================================================

class UpdateLeadRequest(BaseModel):
    """Partial lead update; only the fields present are changed"""
    patch: Dict[str, Any] = Field(..., description="Lead fields to change")
    reason: Optional[str] = Field(None, description="Reason stored in the status history")


class PhoneOutcomeRequest(BaseModel):
    """Result of one contact attempt"""
    phone_status: PhoneStatus


class BookAppointmentRequest(BaseModel):
    """Appointment to book for a lead"""
    start_time: datetime
    title: Optional[str] = None
    duration_minutes: int = Field(60, ge=15, le=480)
    notes: Optional[str] = None


class LeadUpdateResponse(BaseModel):
    """Outcome of a lead mutation"""
    success: bool
    lead: Dict[str, Any]
    old_status: str
    new_status: str
    tasks: List[Dict[str, Any]] = Field(default_factory=list)
    workflow_triggered: bool = False
    warnings: List[str] = Field(default_factory=list)
    appointment: Optional[Dict[str, Any]] = None


def _to_response(result: Dict[str, Any]) -> LeadUpdateResponse:
    raise_for_result(result)
    return LeadUpdateResponse(
        success=True,
        lead=result["lead"].model_dump(mode="json"),
        old_status=result["old_status"],
        new_status=result["new_status"],
        tasks=[t.model_dump(mode="json") for t in result["tasks"]],
        workflow_triggered=result["workflow_triggered"],
        warnings=result["warnings"],
        appointment=result.get("appointment"),
    )


# =============================================================================
# Endpoints
# =============================================================================

@router.patch("/{lead_id}", response_model=LeadUpdateResponse)
async def update_lead(
    lead_id: str,
    request: UpdateLeadRequest,
    current_user: CurrentUser = Depends(get_current_user),
    engine: EngineServices = Depends(get_engine)
) -> LeadUpdateResponse:
    """
    Update a lead.

    The next status is resolved from the patch; follow-up tasks, the
    outbound workflow and notifications are derived from the transition.
    """
    if "force_status" in request.patch:
        raise HTTPException(status_code=400, detail="force_status is not accepted from clients")
    try:
        result = await engine.leads.update_lead(
            tenant_id=current_user.tenant_id,
            user_id=current_user.id,
            lead_id=lead_id,
            patch=request.patch,
            reason=request.reason,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _to_response(result)


@router.post("/{lead_id}/phone-outcome", response_model=LeadUpdateResponse)
async def record_phone_outcome(
    lead_id: str,
    request: PhoneOutcomeRequest,
    current_user: CurrentUser = Depends(get_current_user),
    engine: EngineServices = Depends(get_engine)
) -> LeadUpdateResponse:
    """Record a contact attempt (reached / not reached / callback / appointment set)."""
    try:
        result = await engine.leads.record_phone_outcome(
            current_user.tenant_id, current_user.id, lead_id, request.phone_status
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _to_response(result)


@router.post("/{lead_id}/appointments", response_model=LeadUpdateResponse)
async def book_appointment(
    lead_id: str,
    request: BookAppointmentRequest,
    current_user: CurrentUser = Depends(get_current_user),
    engine: EngineServices = Depends(get_engine)
) -> LeadUpdateResponse:
    """Book an appointment; the lead moves to appointment_scheduled."""
    result = await engine.leads.book_appointment(
        tenant_id=current_user.tenant_id,
        user_id=current_user.id,
        lead_id=lead_id,
        start_time=request.start_time,
        title=request.title,
        duration_minutes=request.duration_minutes,
        notes=request.notes,
    )
    return _to_response(result)


@router.get("/{lead_id}/statuses")
async def get_available_statuses(
    lead_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    engine: EngineServices = Depends(get_engine)
):
    """Statuses offered in the status picker for this lead."""
    result = raise_for_result(await engine.leads.available_statuses(current_user.tenant_id, lead_id))
    return {"current": result["current"], "statuses": result["statuses"]}


@router.get("/{lead_id}/history")
async def get_status_history(
    lead_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    engine: EngineServices = Depends(get_engine)
):
    """Status change history, newest first."""
    result = raise_for_result(await engine.leads.status_history(current_user.tenant_id, lead_id))
    return {"history": result["history"]}
