"""
Workers Package
Background workers for SLA monitoring
"""
from leadflow.workers.sla_worker import SlaMonitorWorker

__all__ = [
    "SlaMonitorWorker"
]
