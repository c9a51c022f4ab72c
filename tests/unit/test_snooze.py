"""
Unit tests for snooze presets and the computed inbox view
"""
import pytest
from datetime import datetime, timedelta

import pytz

from leadflow.domain.models.notification import Notification, category_for
from leadflow.domain.services.snooze import resolve_snooze_until, is_active, split_inbox
from leadflow.domain.services.status_engine import InvalidTransitionError

BERLIN = pytz.timezone("Europe/Berlin")
# Monday 2026-10-19, 14:00 in Berlin
NOW = pytz.UTC.localize(datetime(2026, 10, 19, 12, 0))


def make_notification(**overrides) -> Notification:
    data = {
        "id": "n-1",
        "user_id": "user-1",
        "tenant_id": "tenant-1",
        "type": "lead_status_change",
        "title": "Lead status changed",
        "message": "Status changed",
    }
    data.update(overrides)
    return Notification(**data)


class TestResolveSnoozeUntil:
    """Tests for resolve_snooze_until"""

    def test_one_hour(self):
        assert resolve_snooze_until("1h", now=NOW) == NOW + timedelta(hours=1)

    def test_four_hours(self):
        assert resolve_snooze_until("4h", now=NOW) == NOW + timedelta(hours=4)

    def test_tomorrow_nine_local(self):
        until = resolve_snooze_until("tomorrow9", now=NOW, tz=BERLIN)
        assert until == BERLIN.localize(datetime(2026, 10, 20, 9, 0))
        assert until.tzinfo == pytz.UTC

    def test_next_week_from_monday_is_following_monday(self):
        until = resolve_snooze_until("nextweek", now=NOW, tz=BERLIN)
        assert until == BERLIN.localize(datetime(2026, 10, 26, 9, 0))

    def test_next_week_from_wednesday(self):
        wednesday = pytz.UTC.localize(datetime(2026, 10, 21, 8, 0))
        until = resolve_snooze_until("nextweek", now=wednesday, tz=BERLIN)
        assert until == BERLIN.localize(datetime(2026, 10, 26, 9, 0))

    def test_next_week_across_dst_change(self):
        """The week of the October DST switch still wakes at 09:00 local"""
        until = resolve_snooze_until("nextweek", now=NOW + timedelta(days=3), tz=BERLIN)
        assert until.astimezone(BERLIN).hour == 9

    def test_custom(self):
        custom = datetime(2026, 12, 1, 8, 30)
        assert resolve_snooze_until("custom", now=NOW, custom=custom) == pytz.UTC.localize(custom)

    def test_custom_without_timestamp_rejected(self):
        with pytest.raises(InvalidTransitionError):
            resolve_snooze_until("custom", now=NOW)

    def test_unknown_preset_rejected(self):
        with pytest.raises(InvalidTransitionError):
            resolve_snooze_until("forever", now=NOW)


class TestInboxView:
    """Tests for is_active and split_inbox"""

    def test_snoozed_for_an_hour_comes_back(self):
        """Inactive right away, active again after the hour, row untouched"""
        notification = make_notification(snoozed_until=resolve_snooze_until("1h", now=NOW))
        before = notification.model_dump()
        assert not is_active(notification, NOW)
        assert is_active(notification, NOW + timedelta(hours=1))
        assert notification.model_dump() == before

    def test_unread_count_excludes_snoozed(self):
        notifications = [
            make_notification(id="a"),
            make_notification(id="b", read=True),
            make_notification(id="c", snoozed_until=NOW + timedelta(hours=4)),
        ]
        view = split_inbox(notifications, NOW)
        assert [n.id for n in view.active] == ["a", "b"]
        assert [n.id for n in view.snoozed] == ["c"]
        assert view.unread_count == 1

    def test_count_by_category(self):
        notifications = [
            make_notification(id="a", type="sla_breach"),
            make_notification(id="b", type="workflow_error"),
            make_notification(id="c"),
            make_notification(id="d"),
        ]
        view = split_inbox(notifications, NOW)
        assert view.count_by_category == {"sla": 1, "system": 1, "leads": 2}

    def test_naive_snooze_is_utc(self):
        notification = make_notification(snoozed_until=datetime(2026, 10, 19, 13, 0))
        assert not is_active(notification, NOW)


class TestCategory:
    """Tests for category_for"""

    def test_stored_category_wins(self):
        assert category_for("lead_status_change", "sla") == "sla"

    def test_derived_from_type(self):
        assert category_for("sla_breach") == "sla"
        assert category_for("system_maintenance") == "system"
        assert category_for("followup_due") == "leads"
