"""
SLA API Endpoints
Breach evaluation plus the per-user snooze and acknowledge actions
"""
import logging
from typing import Optional
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from leadflow.api.v1.dependencies import get_current_user, get_engine, raise_for_result, CurrentUser
from leadflow.domain.models.notification import SnoozePreset
from leadflow.services.engine import EngineServices

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sla", tags=["SLA"])


class BreachSnoozeRequest(BaseModel):
    preset: SnoozePreset = SnoozePreset.ONE_HOUR
    until: Optional[datetime] = Field(None, description="Wake-up time for the custom preset")


@router.get("/breaches")
async def list_breaches(
    current_user: CurrentUser = Depends(get_current_user),
    engine: EngineServices = Depends(get_engine)
):
    """
    Recompute SLA breaches for the tenant.

    Breaches the user snoozed or acknowledged are left out; `new` lists
    the breaches this user sees for the first time.
    """
    result = raise_for_result(
        await engine.sla.evaluate(current_user.tenant_id, session_id=current_user.id)
    )
    return {
        "breaches": [b.model_dump(mode="json") for b in result["breaches"]],
        "new": [b.key for b in result["new"]],
        "suppressed": result["suppressed"],
    }


@router.post("/breaches/{lead_id}/{breach_type}/snooze")
async def snooze_breach(
    lead_id: str,
    breach_type: str,
    request: BreachSnoozeRequest,
    current_user: CurrentUser = Depends(get_current_user),
    engine: EngineServices = Depends(get_engine)
):
    try:
        result = await engine.sla.snooze(
            current_user.tenant_id,
            lead_id,
            breach_type,
            request.preset,
            custom=request.until,
            session_id=current_user.id,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    result = raise_for_result(result)
    return {"success": True, "snoozed_until": result["snoozed_until"].isoformat()}


@router.post("/breaches/{lead_id}/{breach_type}/acknowledge")
async def acknowledge_breach(
    lead_id: str,
    breach_type: str,
    current_user: CurrentUser = Depends(get_current_user),
    engine: EngineServices = Depends(get_engine)
):
    """Hide a breach until the acknowledgement is cleared."""
    try:
        result = await engine.sla.acknowledge(
            current_user.tenant_id, lead_id, breach_type, session_id=current_user.id
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return raise_for_result(result)


@router.delete("/breaches/{lead_id}/{breach_type}/acknowledge")
async def clear_acknowledgement(
    lead_id: str,
    breach_type: str,
    current_user: CurrentUser = Depends(get_current_user),
    engine: EngineServices = Depends(get_engine)
):
    try:
        result = await engine.sla.clear_acknowledgement(
            current_user.tenant_id, lead_id, breach_type, session_id=current_user.id
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return raise_for_result(result)
