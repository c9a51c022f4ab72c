"""
Per-Device Alert State
Snooze and acknowledge timestamps for SLA breaches plus recent search history.

This state is local to one device or user: it is not shared between users
of a tenant. ScopedAlertStateStore keeps several users apart inside one
backing store. A server-side implementation (e.g. an `alerts_ack` table)
can replace LocalAlertStateStore by implementing AlertStateStore.
"""
import json
import logging
import os
import threading
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, List, Optional

import pytz

from leadflow.domain.services.business_calendar import ensure_aware

logger = logging.getLogger(__name__)

SNOOZE_PREFIX = "sla_snooze_"
ACK_PREFIX = "sla_ack_"
SEARCH_HISTORY_KEY = "search_history"
MAX_SEARCH_HISTORY = 5


def breach_state_key(lead_id: str, breach_type: str) -> str:
    return f"{lead_id}_{breach_type}"


class AlertStateStore(ABC):
    """Suppression state for SLA breaches, keyed by lead + breach type"""

    @abstractmethod
    def snooze(self, lead_id: str, breach_type: str, until: datetime) -> None:
        pass

    @abstractmethod
    def acknowledge(self, lead_id: str, breach_type: str, at: Optional[datetime] = None) -> None:
        pass

    @abstractmethod
    def clear_acknowledgement(self, lead_id: str, breach_type: str) -> None:
        pass

    @abstractmethod
    def snoozed_until(self, lead_id: str, breach_type: str) -> Optional[datetime]:
        pass

    @abstractmethod
    def acknowledged_at(self, lead_id: str, breach_type: str) -> Optional[datetime]:
        pass

    def is_suppressed(self, lead_id: str, breach_type: str, now: datetime) -> bool:
        """Acknowledged at any time, or snoozed past `now`."""
        if self.acknowledged_at(lead_id, breach_type) is not None:
            return True
        until = self.snoozed_until(lead_id, breach_type)
        return until is not None and until > ensure_aware(now)


class ScopedAlertStateStore(AlertStateStore):
    """One user's view of a shared store; keys are prefixed with `scope`"""

    def __init__(self, inner: AlertStateStore, scope: str):
        self.inner = inner
        self.scope = scope

    def _lead(self, lead_id: str) -> str:
        return f"{self.scope}:{lead_id}"

    def snooze(self, lead_id: str, breach_type: str, until: datetime) -> None:
        self.inner.snooze(self._lead(lead_id), breach_type, until)

    def acknowledge(self, lead_id: str, breach_type: str, at: Optional[datetime] = None) -> None:
        self.inner.acknowledge(self._lead(lead_id), breach_type, at)

    def clear_acknowledgement(self, lead_id: str, breach_type: str) -> None:
        self.inner.clear_acknowledgement(self._lead(lead_id), breach_type)

    def snoozed_until(self, lead_id: str, breach_type: str) -> Optional[datetime]:
        return self.inner.snoozed_until(self._lead(lead_id), breach_type)

    def acknowledged_at(self, lead_id: str, breach_type: str) -> Optional[datetime]:
        return self.inner.acknowledged_at(self._lead(lead_id), breach_type)


class LocalAlertStateStore(AlertStateStore):
    """
    JSON-file backed alert state.

    With `path=None` the state lives in memory only. Timestamps are stored
    as ISO strings. A corrupt or unreadable file starts an empty state.
    """

    def __init__(self, path: Optional[str] = None):
        self.path = path
        self._lock = threading.Lock()
        self._state: Dict[str, object] = self._load()

    def _load(self) -> Dict[str, object]:
        if not self.path or not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Ignoring unreadable alert state file {self.path}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def _save(self) -> None:
        if not self.path:
            return
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        tmp_path = f"{self.path}.tmp"
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(self._state, f, indent=2)
        os.replace(tmp_path, self.path)

    def _set(self, key: str, value) -> None:
        with self._lock:
            self._state[key] = value
            self._save()

    def _pop(self, key: str) -> None:
        with self._lock:
            if self._state.pop(key, None) is not None:
                self._save()

    def _get_time(self, key: str) -> Optional[datetime]:
        raw = self._state.get(key)
        if not isinstance(raw, str):
            return None
        try:
            return ensure_aware(datetime.fromisoformat(raw))
        except ValueError:
            return None

    def snooze(self, lead_id: str, breach_type: str, until: datetime) -> None:
        self._set(SNOOZE_PREFIX + breach_state_key(lead_id, breach_type), ensure_aware(until).isoformat())

    def acknowledge(self, lead_id: str, breach_type: str, at: Optional[datetime] = None) -> None:
        at = at or datetime.now(pytz.UTC)
        self._set(ACK_PREFIX + breach_state_key(lead_id, breach_type), ensure_aware(at).isoformat())

    def clear_acknowledgement(self, lead_id: str, breach_type: str) -> None:
        self._pop(ACK_PREFIX + breach_state_key(lead_id, breach_type))

    def clear_snooze(self, lead_id: str, breach_type: str) -> None:
        self._pop(SNOOZE_PREFIX + breach_state_key(lead_id, breach_type))

    def snoozed_until(self, lead_id: str, breach_type: str) -> Optional[datetime]:
        return self._get_time(SNOOZE_PREFIX + breach_state_key(lead_id, breach_type))

    def acknowledged_at(self, lead_id: str, breach_type: str) -> Optional[datetime]:
        return self._get_time(ACK_PREFIX + breach_state_key(lead_id, breach_type))

    # Search history

    def add_search(self, term: str) -> List[str]:
        """Record a search term; most recent first, de-duplicated, at most 5."""
        term = (term or "").strip()
        if not term:
            return self.recent_searches()
        history = [t for t in self.recent_searches() if t != term]
        history.insert(0, term)
        history = history[:MAX_SEARCH_HISTORY]
        self._set(SEARCH_HISTORY_KEY, history)
        return history

    def recent_searches(self) -> List[str]:
        history = self._state.get(SEARCH_HISTORY_KEY)
        if not isinstance(history, list):
            return []
        return [str(t) for t in history][:MAX_SEARCH_HISTORY]

    def clear_searches(self) -> None:
        self._pop(SEARCH_HISTORY_KEY)
