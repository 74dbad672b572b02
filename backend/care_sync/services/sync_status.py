"""
Real-time Sync Status Tracking.
Allows monitoring of member sync progress via API.
"""

import logging
import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from care_sync.utils.time import utc_now

logger = logging.getLogger(__name__)


class SyncPhase(str, Enum):
    """Sync phases."""
    IDLE = "idle"
    LOADING_TENANTS = "loading_tenants"
    SYNCING = "syncing"
    PERSISTING = "persisting"
    COMPLETED = "completed"
    ERROR = "error"


def _empty_progress() -> Dict[str, Any]:
    return {
        "tenants_total": 0,
        "tenants_finished": 0,
        "pages_fetched": 0,
        "members_fetched": 0,
        "current_tenants": [],
    }


class SyncStatusTracker:
    """
    Tracks the progress of the current sync run.

    One instance lives on the application state and is shared between the
    cron trigger and the status endpoint.
    """

    def __init__(self):
        self._initialize()

    def _initialize(self):
        """Initialize status tracking."""
        self.status = {
            "run_id": None,
            "phase": SyncPhase.IDLE,
            "started_at": None,
            "current_step": "Waiting to start...",
            "progress": _empty_progress(),
            "tenants": {},
            "errors": [],
            "completed_at": None,
            "duration_seconds": 0.0,
            "result_status": None,
        }

    def start_sync(self, run_id: uuid.UUID, started_at: Optional[datetime] = None):
        """Mark sync as started."""
        self._initialize()
        self.status.update({
            "run_id": str(run_id),
            "phase": SyncPhase.LOADING_TENANTS,
            "started_at": (started_at or utc_now()).isoformat(),
            "current_step": "Loading organizations...",
        })
        logger.info(f"🚀 SYNC STARTED - run {run_id}")

    def update_phase(self, phase: SyncPhase, step: str):
        """Update current phase."""
        self.status["phase"] = phase
        self.status["current_step"] = step
        logger.info(f"📍 PHASE: {phase.value.upper()} - {step}")

    def set_tenants(self, tenants: Dict[str, str]):
        """Registers the tenants of this run (id -> name)."""
        self.status["progress"]["tenants_total"] = len(tenants)
        self.status["tenants"] = {
            tenant_id: {"name": name, "status": "not_attempted", "pages": 0, "members": 0}
            for tenant_id, name in tenants.items()
        }

    def tenant_started(self, tenant_id: str):
        self.status["tenants"].setdefault(tenant_id, {"name": "", "pages": 0, "members": 0})
        self.status["tenants"][tenant_id]["status"] = "running"
        self.status["progress"]["current_tenants"].append(tenant_id)

    def update_page(self, tenant_id: str, page: int, count: int):
        """Update fetching progress."""
        tenant = self.status["tenants"].setdefault(tenant_id, {"name": "", "status": "running", "members": 0})
        tenant["pages"] = page
        tenant["members"] = tenant.get("members", 0) + count
        self.status["progress"]["pages_fetched"] += 1
        self.status["progress"]["members_fetched"] += count
        self.status["current_step"] = f"Syncing {tenant.get('name') or tenant_id}... page {page} ({count} members)"
        logger.debug(f"📥 FETCHING: tenant {tenant_id} page {page} - {count} members")

    def tenant_finished(self, tenant_id: str, status: str):
        if tenant_id in self.status["tenants"]:
            self.status["tenants"][tenant_id]["status"] = status
        current = self.status["progress"]["current_tenants"]
        if tenant_id in current:
            current.remove(tenant_id)
        self.status["progress"]["tenants_finished"] += 1

    def add_error(self, error: str):
        """Add error to tracking."""
        self.status["errors"].append({
            "timestamp": utc_now().isoformat(),
            "error": error
        })

    def complete_sync(self, result_status: str, success: bool = True):
        """Mark sync as completed."""
        self.status["phase"] = SyncPhase.COMPLETED if success else SyncPhase.ERROR
        self.status["completed_at"] = utc_now().isoformat()
        self.status["result_status"] = result_status
        self.status["progress"]["current_tenants"] = []

        if self.status["started_at"]:
            start = datetime.fromisoformat(self.status["started_at"])
            end = datetime.fromisoformat(self.status["completed_at"])
            self.status["duration_seconds"] = (end - start).total_seconds()

        if success:
            self.status["current_step"] = f"✅ Sync finished ({result_status})"
            logger.info(f"✅ SYNC COMPLETED ({result_status}) - Duration: {self.status['duration_seconds']:.1f}s")
        else:
            self.status["current_step"] = "❌ Sync failed"
            logger.error("❌ SYNC FAILED")

    def get_status(self) -> Dict[str, Any]:
        """Get current status."""
        status = self.status.copy()
        status["progress"] = dict(self.status["progress"])
        status["tenants"] = {key: dict(value) for key, value in self.status["tenants"].items()}
        status["errors"] = list(self.status["errors"])
        return status

    def is_running(self) -> bool:
        """Check if sync is currently running."""
        return self.status["phase"] not in [SyncPhase.IDLE, SyncPhase.COMPLETED, SyncPhase.ERROR]
