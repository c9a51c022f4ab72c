"""
Snooze Rules
Resolves snooze presets to absolute timestamps and splits an inbox into active and snoozed items
"""
from datetime import datetime, timedelta
from typing import Iterable, Optional, Union

import pytz

from leadflow.domain.models.notification import Notification, SnoozePreset, InboxView
from leadflow.domain.services.business_calendar import add_calendar_days, at_local_time, ensure_aware, to_local
from leadflow.domain.services.status_engine import InvalidTransitionError

# Morning hour the day-based presets wake up at
WAKE_HOUR = 9


def _parse_preset(preset: Union[SnoozePreset, str]) -> str:
    try:
        return SnoozePreset(preset).value
    except ValueError:
        raise InvalidTransitionError(f"Unknown snooze preset: {preset!r}")


def resolve_snooze_until(
    preset: Union[SnoozePreset, str],
    now: Optional[datetime] = None,
    custom: Optional[datetime] = None,
    tz=None,
) -> datetime:
    """
    Absolute wake-up time for a snooze preset.

    `tomorrow9` is the next calendar day at 09:00 and `nextweek` the next
    Monday at 09:00, both in `tz` (a Monday rolls over to the Monday after).
    The result is always timezone-aware UTC.

    Raises:
        InvalidTransitionError: Unknown preset, or `custom` without a timestamp
    """
    preset = _parse_preset(preset)
    tz = tz or pytz.UTC
    now = ensure_aware(now or datetime.now(pytz.UTC))

    if preset == SnoozePreset.ONE_HOUR.value:
        until = now + timedelta(hours=1)
    elif preset == SnoozePreset.FOUR_HOURS.value:
        until = now + timedelta(hours=4)
    elif preset == SnoozePreset.TOMORROW_9.value:
        local = to_local(now, tz)
        until = at_local_time(add_calendar_days(local.date(), 1), WAKE_HOUR, 0, tz)
    elif preset == SnoozePreset.NEXT_WEEK.value:
        local = to_local(now, tz)
        days_ahead = (7 - local.weekday()) % 7 or 7
        until = at_local_time(add_calendar_days(local.date(), days_ahead), WAKE_HOUR, 0, tz)
    else:
        if custom is None:
            raise InvalidTransitionError("Custom snooze requires a timestamp")
        until = ensure_aware(custom)

    return until.astimezone(pytz.UTC)


def is_active(notification: Notification, now: datetime) -> bool:
    """Visible now: never snoozed, or `now >= snoozed_until`."""
    until = ensure_aware(notification.snoozed_until)
    return until is None or ensure_aware(now) >= until


def split_inbox(notifications: Iterable[Notification], now: datetime) -> InboxView:
    """Computed inbox view; nothing is rewritten when a snooze elapses."""
    view = InboxView()
    for notification in notifications:
        if is_active(notification, now):
            view.active.append(notification)
            if not notification.read:
                view.unread_count += 1
            category = notification.resolved_category
            view.count_by_category[category] = view.count_by_category.get(category, 0) + 1
        else:
            view.snoozed.append(notification)
    return view
