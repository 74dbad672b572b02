"""
Abstract Member Store Interface.
Defines the persistence contract the sync orchestrator depends on.
"""

import uuid
from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional

from care_sync.core.tenants import TenantConfig
from care_sync.schemas.sync import (
    CanonicalMember,
    ChangeEvent,
    ConflictReport,
    SyncRunResult,
)


class MemberStoreError(Exception):
    """Raised when the member store cannot complete an operation."""
    pass


class DuplicateMemberError(MemberStoreError):
    """Raised when (tenant_id, external_id) is already taken."""
    pass


class MemberStore(ABC):
    """
    Persistence collaborator of the sync engine.

    The orchestrator only needs CRUD on canonical members, append-only
    writes for change events and conflict reports, and run logging. How
    the data is stored is up to the implementation.
    """

    @abstractmethod
    async def list_tenants(self) -> List[TenantConfig]:
        """Returns every organization with its InChurch credentials."""
        ...

    @abstractmethod
    async def get_member(self, member_id: uuid.UUID) -> Optional[CanonicalMember]:
        """Fetches a member by local id."""
        ...

    @abstractmethod
    async def get_member_by_external_id(
        self, tenant_id: uuid.UUID, external_id: str
    ) -> Optional[CanonicalMember]:
        """Fetches a member by its reconciliation key."""
        ...

    @abstractmethod
    async def create_member(self, member: CanonicalMember) -> CanonicalMember:
        """
        Inserts a new member.

        Raises:
            DuplicateMemberError: If (tenant_id, external_id) already exists
        """
        ...

    @abstractmethod
    async def update_member(self, member: CanonicalMember) -> CanonicalMember:
        """Overwrites an existing member by id."""
        ...

    @abstractmethod
    async def upsert_member(self, member: CanonicalMember) -> CanonicalMember:
        """Inserts or updates by (tenant_id, external_id)."""
        ...

    @abstractmethod
    async def append_change_event(self, event: ChangeEvent) -> ChangeEvent:
        """Appends a change event to the downstream stream."""
        ...

    @abstractmethod
    async def append_conflict_report(self, report: ConflictReport) -> ConflictReport:
        """Persists a conflict report for human review."""
        ...

    @abstractmethod
    async def save_sync_run(self, result: SyncRunResult) -> None:
        """Persists the final result of a sync run."""
        ...

    @abstractmethod
    async def has_local_edits_since(self, member_id: uuid.UUID, since: datetime) -> bool:
        """
        True when the member was edited outside of the sync after `since`
        (e.g. a user edit recorded as a change event from another source).
        """
        ...

    @abstractmethod
    async def list_unprocessed_changes(
        self, tenant_id: Optional[uuid.UUID] = None, limit: int = 100
    ) -> List[ChangeEvent]:
        """Returns change events not yet marked processed, oldest first."""
        ...

    @abstractmethod
    async def mark_change_processed(
        self, event_id: uuid.UUID, processed_at: Optional[datetime] = None
    ) -> bool:
        """Stamps processed_at on a change event. Returns False if unknown."""
        ...
