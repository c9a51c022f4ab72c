"""
Unit tests for the per-device alert state store
"""
import json
from datetime import datetime, timedelta

import pytz

from leadflow.infrastructure.alert_state.local_store import (
    LocalAlertStateStore,
    MAX_SEARCH_HISTORY,
    ScopedAlertStateStore,
    breach_state_key,
)

NOW = pytz.UTC.localize(datetime(2026, 10, 19, 12, 0))


class TestSnoozeAndAcknowledge:
    """Snooze/acknowledge persistence"""

    def test_key_format(self):
        assert breach_state_key("lead-1", "contact_24h") == "lead-1_contact_24h"

    def test_snooze_round_trip_through_file(self, tmp_path):
        """A new store on the same file sees the snooze"""
        path = str(tmp_path / "alerts.json")
        LocalAlertStateStore(path).snooze("lead-1", "offer_48h", NOW + timedelta(hours=1))

        reopened = LocalAlertStateStore(path)
        assert reopened.snoozed_until("lead-1", "offer_48h") == NOW + timedelta(hours=1)
        assert reopened.is_suppressed("lead-1", "offer_48h", NOW)
        assert not reopened.is_suppressed("lead-1", "offer_48h", NOW + timedelta(hours=2))

    def test_file_uses_prefixed_keys(self, tmp_path):
        path = tmp_path / "alerts.json"
        store = LocalAlertStateStore(str(path))
        store.acknowledge("lead-1", "contact_24h", NOW)
        data = json.loads(path.read_text(encoding="utf-8"))
        assert "sla_ack_lead-1_contact_24h" in data

    def test_acknowledge_is_indefinite(self):
        store = LocalAlertStateStore()
        store.acknowledge("lead-1", "contact_24h", NOW)
        assert store.is_suppressed("lead-1", "contact_24h", NOW + timedelta(days=365))

    def test_clear_acknowledgement(self):
        store = LocalAlertStateStore()
        store.acknowledge("lead-1", "contact_24h", NOW)
        store.clear_acknowledgement("lead-1", "contact_24h")
        assert store.acknowledged_at("lead-1", "contact_24h") is None
        assert not store.is_suppressed("lead-1", "contact_24h", NOW)

    def test_clear_snooze(self):
        store = LocalAlertStateStore()
        store.snooze("lead-1", "contact_24h", NOW + timedelta(hours=4))
        store.clear_snooze("lead-1", "contact_24h")
        assert store.snoozed_until("lead-1", "contact_24h") is None

    def test_corrupt_file_starts_empty(self, tmp_path):
        path = tmp_path / "alerts.json"
        path.write_text("{not json", encoding="utf-8")
        store = LocalAlertStateStore(str(path))
        assert store.snoozed_until("lead-1", "contact_24h") is None
        store.acknowledge("lead-1", "contact_24h", NOW)
        assert json.loads(path.read_text(encoding="utf-8"))

    def test_naive_timestamps_are_utc(self):
        store = LocalAlertStateStore()
        store.snooze("lead-1", "contact_24h", datetime(2026, 10, 19, 13, 0))
        assert store.snoozed_until("lead-1", "contact_24h") == NOW + timedelta(hours=1)


class TestScopedAlertStateStore:
    """Several users sharing one backing store"""

    def test_users_do_not_see_each_other(self, tmp_path):
        path = tmp_path / "alerts.json"
        shared = LocalAlertStateStore(str(path))
        alice = ScopedAlertStateStore(shared, "alice")
        bob = ScopedAlertStateStore(shared, "bob")

        alice.acknowledge("lead-1", "contact_24h", NOW)
        bob.snooze("lead-1", "contact_24h", NOW + timedelta(hours=1))

        assert alice.is_suppressed("lead-1", "contact_24h", NOW + timedelta(hours=2))
        assert not bob.is_suppressed("lead-1", "contact_24h", NOW + timedelta(hours=2))
        assert shared.acknowledged_at("lead-1", "contact_24h") is None
        assert "sla_ack_alice:lead-1_contact_24h" in json.loads(path.read_text(encoding="utf-8"))

    def test_clear_is_scoped(self):
        shared = LocalAlertStateStore()
        alice = ScopedAlertStateStore(shared, "alice")
        bob = ScopedAlertStateStore(shared, "bob")
        alice.acknowledge("lead-1", "offer_48h", NOW)
        bob.acknowledge("lead-1", "offer_48h", NOW)

        alice.clear_acknowledgement("lead-1", "offer_48h")

        assert alice.acknowledged_at("lead-1", "offer_48h") is None
        assert bob.acknowledged_at("lead-1", "offer_48h") == NOW


class TestSearchHistory:
    """Recent search terms"""

    def test_most_recent_first_and_bounded(self):
        store = LocalAlertStateStore()
        for term in ["a", "b", "c", "d", "e", "f"]:
            store.add_search(term)
        assert store.recent_searches() == ["f", "e", "d", "c", "b"]
        assert len(store.recent_searches()) == MAX_SEARCH_HISTORY

    def test_duplicates_move_to_front(self):
        store = LocalAlertStateStore()
        store.add_search("mueller")
        store.add_search("schmidt")
        assert store.add_search("mueller") == ["mueller", "schmidt"]

    def test_blank_terms_ignored(self):
        store = LocalAlertStateStore()
        store.add_search("   ")
        assert store.recent_searches() == []

    def test_clear(self, tmp_path):
        path = str(tmp_path / "alerts.json")
        store = LocalAlertStateStore(path)
        store.add_search("weber")
        store.clear_searches()
        assert LocalAlertStateStore(path).recent_searches() == []
