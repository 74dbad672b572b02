"""
Sync domain types shared by the orchestrator, the member store and the API.
"""

import enum
import uuid
from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from care_sync.integrations.inchurch.schema import Address
from care_sync.utils.time import ensure_utc, utc_now


class CanonicalMember(BaseModel):
    """
    The locally persisted, authoritative member record of one tenant.

    Identity for reconciliation is (tenant_id, external_id).
    """

    model_config = ConfigDict(from_attributes=True, validate_assignment=True)

    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    tenant_id: uuid.UUID
    external_id: Optional[str] = None
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    birth_date: Optional[date] = None
    marital_status: Optional[str] = None
    address: Optional[Address] = None
    profile_data: Dict[str, Any] = Field(default_factory=dict)
    sync_source: Optional[str] = None
    last_synced_at: Optional[datetime] = None
    # Time of a local edit the sync kept over the remote value
    local_edited_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @field_validator("last_synced_at", "local_edited_at", "created_at", "updated_at")
    @classmethod
    def _aware_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(value)


class ChangeType:
    """ChangeEvent type names."""
    CREATED = "person.created"
    DELETED = "person.deleted"
    CONFLICT = "person.conflict"
    UPDATED_PREFIX = "person.updated."

    @classmethod
    def updated(cls, field_name: str) -> str:
        return f"{cls.UPDATED_PREFIX}{field_name}"


@dataclass
class ChangeEvent:
    """
    Durable, append-only record of one committed change.

    Only `processed_at` may be set afterwards, by a downstream consumer.
    """
    person_id: uuid.UUID
    change_type: str
    old_value: Any
    new_value: Any
    urgency_score: int
    detected_at: datetime = field(default_factory=utc_now)
    ai_analysis: Optional[Dict[str, Any]] = None
    processed_at: Optional[datetime] = None
    id: uuid.UUID = field(default_factory=uuid.uuid4)


@dataclass
class FieldConflict:
    """One field of a conflict report."""
    field: str
    local_value: Any
    remote_value: Any
    recommended_resolution: str


@dataclass
class ConflictReport:
    """Diagnostic record for a change set that needs human review."""
    person_id: uuid.UUID
    tenant_id: uuid.UUID
    remote_member_id: str
    reason: str
    local_last_updated: Optional[datetime]
    local_sync_source: Optional[str]
    remote_last_updated: Optional[datetime]
    local_values: Dict[str, Any]
    remote_values: Dict[str, Any]
    conflicts: List[FieldConflict]
    detected_at: datetime = field(default_factory=utc_now)
    id: uuid.UUID = field(default_factory=uuid.uuid4)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class SyncRunStatus(str, enum.Enum):
    """Lifecycle of a sync run."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    PARTIAL_SUCCESS = "partial_success"
    FAILED = "failed"


class TenantSyncStatus(str, enum.Enum):
    """Outcome of one tenant within a sync run."""
    NOT_ATTEMPTED = "not_attempted"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"


@dataclass
class SyncError:
    """An error recorded during a sync run."""
    tenant_id: Optional[uuid.UUID]
    message: str
    scope: str = "tenant"  # run | tenant | page | member
    external_id: Optional[str] = None
    page: Optional[int] = None


@dataclass
class TenantSyncReport:
    """Counters for one tenant."""
    tenant_id: uuid.UUID
    tenant_name: str = ""
    status: TenantSyncStatus = TenantSyncStatus.NOT_ATTEMPTED
    pages_fetched: int = 0
    total_records: int = 0
    created: int = 0
    updated: int = 0
    unchanged: int = 0
    deleted: int = 0
    conflicts: int = 0
    failed: int = 0
    change_events: int = 0
    error_count: int = 0


@dataclass
class SyncRunResult:
    """Aggregate result of one sync run across all tenants."""
    id: uuid.UUID = field(default_factory=uuid.uuid4)
    sync_type: str = "daily_polling"
    status: SyncRunStatus = SyncRunStatus.PENDING
    started_at: datetime = field(default_factory=utc_now)
    completed_at: Optional[datetime] = None
    organizations_processed: int = 0
    total_records_synced: int = 0
    records_created: int = 0
    records_updated: int = 0
    records_deleted: int = 0
    conflicts: int = 0
    change_events: int = 0
    errors: List[SyncError] = field(default_factory=list)
    tenants: List[TenantSyncReport] = field(default_factory=list)

    @property
    def execution_time_ms(self) -> Optional[int]:
        if self.completed_at is None:
            return None
        return int((self.completed_at - self.started_at).total_seconds() * 1000)

    @property
    def is_success(self) -> bool:
        """Check if sync was fully successful."""
        return self.status == SyncRunStatus.COMPLETED

    @property
    def is_partial_success(self) -> bool:
        """Check if sync had partial success."""
        return self.status == SyncRunStatus.PARTIAL_SUCCESS

    def tenant(self, tenant_id: uuid.UUID) -> Optional[TenantSyncReport]:
        for report in self.tenants:
            if report.tenant_id == tenant_id:
                return report
        return None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["execution_time_ms"] = self.execution_time_ms
        return data
