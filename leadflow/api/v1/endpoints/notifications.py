"""
Notifications API Endpoints
Inbox, read state, snooze (single and bulk) and resolve
"""
import logging
from typing import Optional
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from leadflow.api.v1.dependencies import get_current_user, get_engine, raise_for_result, CurrentUser
from leadflow.domain.models.notification import SnoozePreset, NotificationCategory
from leadflow.services.engine import EngineServices

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/notifications", tags=["Notifications"])


class SnoozeRequest(BaseModel):
    """Snooze preset; `until` is required for `custom`"""
    preset: SnoozePreset
    until: Optional[datetime] = Field(None, description="Wake-up time for the custom preset")


class BulkSnoozeRequest(SnoozeRequest):
    category: Optional[NotificationCategory] = Field(None, description="Only this inbox tab")


@router.get("/")
async def get_inbox(
    current_user: CurrentUser = Depends(get_current_user),
    engine: EngineServices = Depends(get_engine)
):
    """Active and snoozed notifications, unread count over active items."""
    result = raise_for_result(await engine.notifications.inbox(current_user.id, current_user.tenant_id))
    return result["inbox"].model_dump(mode="json")


@router.get("/unread-count")
async def get_unread_count(
    current_user: CurrentUser = Depends(get_current_user),
    engine: EngineServices = Depends(get_engine)
):
    return {"unread_count": await engine.notifications.unread_count(current_user.id, current_user.tenant_id)}


@router.post("/read-all")
async def mark_all_read(
    current_user: CurrentUser = Depends(get_current_user),
    engine: EngineServices = Depends(get_engine)
):
    result = raise_for_result(await engine.notifications.mark_all_read(current_user.id, current_user.tenant_id))
    return {"success": True, "updated": result["updated"]}


@router.post("/bulk-snooze")
async def bulk_snooze(
    request: BulkSnoozeRequest,
    current_user: CurrentUser = Depends(get_current_user),
    engine: EngineServices = Depends(get_engine)
):
    """Snooze every active notification (optionally one category) to the same time."""
    try:
        result = await engine.notifications.bulk_snooze(
            current_user.id,
            current_user.tenant_id,
            request.preset,
            custom=request.until,
            category=request.category.value if request.category else None,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if "snoozed" not in result:
        raise_for_result(result)
    return {
        "success": result["success"],
        "snoozed": result["snoozed"],
        "failed": result["failed"],
        "snoozed_until": result["snoozed_until"].isoformat(),
    }


@router.post("/{notification_id}/read")
async def mark_read(
    notification_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    engine: EngineServices = Depends(get_engine)
):
    raise_for_result(await engine.notifications.mark_read(current_user.id, notification_id))
    return {"success": True}


@router.post("/{notification_id}/snooze")
async def snooze(
    notification_id: str,
    request: SnoozeRequest,
    current_user: CurrentUser = Depends(get_current_user),
    engine: EngineServices = Depends(get_engine)
):
    try:
        result = await engine.notifications.snooze(
            current_user.id, notification_id, request.preset, custom=request.until
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    raise_for_result(result)
    return {"success": True, "snoozed_until": result["snoozed_until"].isoformat()}


@router.delete("/{notification_id}/snooze")
async def unsnooze(
    notification_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    engine: EngineServices = Depends(get_engine)
):
    raise_for_result(await engine.notifications.unsnooze(current_user.id, notification_id))
    return {"success": True}


@router.post("/{notification_id}/resolve")
async def resolve(
    notification_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    engine: EngineServices = Depends(get_engine)
):
    """
    Resolve the underlying condition and mark the notification read.

    Resolving an already-read notification does nothing.
    """
    result = raise_for_result(await engine.notifications.resolve(current_user.id, notification_id))
    side_effect = result.get("side_effect") or {}
    return {
        "success": True,
        "skipped": result["skipped"],
        "side_effect_success": side_effect.get("success") if side_effect else None,
    }
