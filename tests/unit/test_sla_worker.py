"""
Unit tests for the SLA monitor worker
"""
import pytest
from datetime import datetime, timedelta
from unittest.mock import AsyncMock

import pytz

from leadflow.core.config import Settings, ConfigManager
from leadflow.infrastructure.alert_state.local_store import LocalAlertStateStore
from leadflow.infrastructure.storage.record_store import ChangeEvent, InMemoryRecordStore, TABLE_LEADS
from leadflow.infrastructure.workflow.webhook_client import WorkflowClient
from leadflow.services.engine import build_engine
from leadflow.workers.sla_worker import SlaMonitorWorker

NOW = pytz.UTC.localize(datetime(2026, 10, 19, 12, 0))
TENANT = "tenant-1"


def make_engine():
    store = InMemoryRecordStore({
        TABLE_LEADS: [
            {"id": "lead-1", "tenant_id": TENANT, "name": "Late Lead",
             "status": "new", "status_since": NOW - timedelta(hours=30)},
        ]
    })
    return build_engine(
        store=store,
        settings=Settings(),
        config=ConfigManager(),
        workflows=WorkflowClient(None),
        state_store=LocalAlertStateStore(),
    )


class TestSlaMonitorWorker:
    """Tests for SlaMonitorWorker"""

    @pytest.mark.asyncio
    async def test_requires_tenant(self):
        worker = SlaMonitorWorker(engine=make_engine())
        with pytest.raises(RuntimeError):
            await worker.initialize()

    @pytest.mark.asyncio
    async def test_run_once_counts_new_breaches_once(self):
        worker = SlaMonitorWorker(tenant_id=TENANT, engine=make_engine())
        await worker.initialize()

        await worker.run_once(now=NOW)
        await worker.run_once(now=NOW + timedelta(seconds=30))

        stats = worker.get_stats()
        assert stats["evaluations"] == 2
        assert stats["breaches_announced"] == 1
        assert stats["active_breaches"] == 1
        await worker.shutdown()

    @pytest.mark.asyncio
    async def test_failed_evaluation_raises(self):
        engine = make_engine()
        engine.sla.evaluate = AsyncMock(return_value={"success": False, "error": "store offline"})
        worker = SlaMonitorWorker(tenant_id=TENANT, engine=engine)

        with pytest.raises(RuntimeError, match="store offline"):
            await worker.run_once(now=NOW)
        assert worker.get_stats()["failures"] == 1

    def test_change_from_other_tenant_is_ignored(self):
        worker = SlaMonitorWorker(tenant_id=TENANT, engine=make_engine())

        worker._on_change(ChangeEvent(table=TABLE_LEADS, event_type="UPDATE", record={"tenant_id": "tenant-2"}))
        assert not worker._wake.is_set()

        worker._on_change(ChangeEvent(table=TABLE_LEADS, event_type="DELETE", old_record={"tenant_id": TENANT}))
        assert worker._wake.is_set()

    @pytest.mark.asyncio
    async def test_store_changes_wake_until_shutdown(self):
        """Writes through the store wake the loop; shutdown unsubscribes"""
        engine = make_engine()
        worker = SlaMonitorWorker(tenant_id=TENANT, engine=engine)
        await worker.initialize()

        await engine.store.update(TABLE_LEADS, {"id": "lead-1"}, {"status": "contacted"})
        assert worker._wake.is_set()

        await worker.shutdown()
        worker._wake.clear()
        await engine.store.update(TABLE_LEADS, {"id": "lead-1"}, {"status": "in_progress"})
        assert not worker._wake.is_set()

    @pytest.mark.asyncio
    async def test_run_loop_stops_when_asked(self):
        worker = SlaMonitorWorker(tenant_id=TENANT, engine=make_engine(), poll_interval=0.01)

        def stop():
            worker.running = False
            return {"success": True, "breaches": [], "new": []}

        worker.run_once = AsyncMock(side_effect=stop)
        await worker.run()

        worker.run_once.assert_awaited_once()
        assert worker.get_stats()["running"] is False
