"""
SQLAlchemy Member Store.

Postgres-backed implementation of the MemberStore interface used by the
sync orchestrator and the change-feed API.
"""

import logging
import uuid
from datetime import datetime
from typing import Any, List, Optional

from pydantic_core import to_jsonable_python
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from care_sync.core.interfaces.member_store import (
    DuplicateMemberError,
    MemberStore,
    MemberStoreError,
)
from care_sync.core.tenants import TenantConfig
from care_sync.models import Organization, Person, PersonChange, SyncConflict, SyncLog
from care_sync.schemas.sync import (
    CanonicalMember,
    ChangeEvent,
    ConflictReport,
    SyncRunResult,
)
from care_sync.utils.time import ensure_utc, utc_now

logger = logging.getLogger(__name__)


def _to_json(value: Any) -> Any:
    """Converts dates, UUIDs and pydantic models into JSON-safe values."""
    return to_jsonable_python(value)


def _member_from_row(row: Person) -> CanonicalMember:
    return CanonicalMember(
        id=row.id,
        tenant_id=row.organization_id,
        external_id=row.inchurch_member_id,
        name=row.name,
        email=row.email,
        phone=row.phone,
        birth_date=row.birth_date,
        marital_status=row.marital_status,
        address=row.address,
        profile_data=row.profile_data or {},
        sync_source=row.sync_source,
        last_synced_at=ensure_utc(row.last_synced_at),
        local_edited_at=ensure_utc(row.local_edited_at),
        created_at=ensure_utc(row.created_at),
        updated_at=ensure_utc(row.updated_at),
    )


def _apply_member(row: Person, member: CanonicalMember) -> None:
    row.organization_id = member.tenant_id
    row.inchurch_member_id = member.external_id
    row.name = member.name
    row.email = member.email
    row.phone = member.phone
    row.birth_date = member.birth_date
    row.marital_status = member.marital_status
    row.address = _to_json(member.address) if member.address is not None else None
    row.profile_data = _to_json(member.profile_data)
    row.sync_source = member.sync_source
    row.last_synced_at = member.last_synced_at
    row.local_edited_at = member.local_edited_at
    row.created_at = member.created_at
    row.updated_at = member.updated_at


def _event_from_row(row: PersonChange) -> ChangeEvent:
    return ChangeEvent(
        id=row.id,
        person_id=row.person_id,
        change_type=row.change_type,
        old_value=row.old_value,
        new_value=row.new_value,
        urgency_score=row.urgency_score,
        detected_at=ensure_utc(row.detected_at),
        ai_analysis=row.ai_analysis,
        processed_at=ensure_utc(row.processed_at),
    )


class SqlAlchemyMemberStore(MemberStore):
    """
    MemberStore on top of an async SQLAlchemy session factory.

    Every operation runs in its own short transaction, so a failing member
    never rolls back the writes of the members before it.
    """

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self.session_maker = session_maker

    # -------------------------------------------------------------------------
    # Tenants
    # -------------------------------------------------------------------------

    async def list_tenants(self) -> List[TenantConfig]:
        async with self.session_maker() as session:
            result = await session.execute(select(Organization).order_by(Organization.name))
            return [TenantConfig.model_validate(row) for row in result.scalars().all()]

    # -------------------------------------------------------------------------
    # Members
    # -------------------------------------------------------------------------

    async def get_member(self, member_id: uuid.UUID) -> Optional[CanonicalMember]:
        async with self.session_maker() as session:
            row = await session.get(Person, member_id)
            return _member_from_row(row) if row else None

    async def get_member_by_external_id(
        self, tenant_id: uuid.UUID, external_id: str
    ) -> Optional[CanonicalMember]:
        async with self.session_maker() as session:
            row = await self._find_by_external_id(session, tenant_id, external_id)
            return _member_from_row(row) if row else None

    @staticmethod
    async def _find_by_external_id(
        session: AsyncSession, tenant_id: uuid.UUID, external_id: Optional[str]
    ) -> Optional[Person]:
        if external_id is None:
            return None
        result = await session.execute(
            select(Person).where(
                Person.organization_id == tenant_id,
                Person.inchurch_member_id == external_id,
            )
        )
        return result.scalar_one_or_none()

    async def create_member(self, member: CanonicalMember) -> CanonicalMember:
        async with self.session_maker() as session:
            row = Person(id=member.id)
            _apply_member(row, member)
            session.add(row)
            try:
                await session.commit()
            except IntegrityError as e:
                await session.rollback()
                raise DuplicateMemberError(
                    f"Member {member.external_id} already exists in tenant {member.tenant_id}"
                ) from e
            return _member_from_row(row)

    async def update_member(self, member: CanonicalMember) -> CanonicalMember:
        async with self.session_maker() as session:
            row = await session.get(Person, member.id)
            if row is None:
                raise MemberStoreError(f"Member {member.id} not found")
            _apply_member(row, member)
            await session.commit()
            return _member_from_row(row)

    async def upsert_member(self, member: CanonicalMember) -> CanonicalMember:
        async with self.session_maker() as session:
            row = await self._find_by_external_id(session, member.tenant_id, member.external_id)
            if row is None:
                row = Person(id=member.id)
                session.add(row)
            else:
                member = member.model_copy(update={"id": row.id, "created_at": row.created_at})
            _apply_member(row, member)
            await session.commit()
            return _member_from_row(row)

    async def has_local_edits_since(self, member_id: uuid.UUID, since: datetime) -> bool:
        async with self.session_maker() as session:
            row = await session.get(Person, member_id)
            if row is None:
                return False
            updated_at = ensure_utc(row.updated_at)
            last_synced_at = ensure_utc(row.last_synced_at)
            if updated_at is None or updated_at <= ensure_utc(since):
                return False
            return last_synced_at is None or updated_at > last_synced_at

    # -------------------------------------------------------------------------
    # Change events & conflicts
    # -------------------------------------------------------------------------

    async def append_change_event(self, event: ChangeEvent) -> ChangeEvent:
        async with self.session_maker() as session:
            session.add(
                PersonChange(
                    id=event.id,
                    person_id=event.person_id,
                    change_type=event.change_type,
                    old_value=_to_json(event.old_value),
                    new_value=_to_json(event.new_value),
                    detected_at=event.detected_at,
                    processed_at=event.processed_at,
                    urgency_score=event.urgency_score,
                    ai_analysis=event.ai_analysis,
                )
            )
            await session.commit()
        return event

    async def append_conflict_report(self, report: ConflictReport) -> ConflictReport:
        async with self.session_maker() as session:
            session.add(
                SyncConflict(
                    id=report.id,
                    person_id=report.person_id,
                    organization_id=report.tenant_id,
                    inchurch_member_id=report.remote_member_id,
                    reason=report.reason,
                    local_data=_to_json({
                        "values": report.local_values,
                        "last_updated": report.local_last_updated,
                        "sync_source": report.local_sync_source,
                    }),
                    remote_data=_to_json({
                        "values": report.remote_values,
                        "last_updated": report.remote_last_updated,
                    }),
                    conflicts=_to_json(report.conflicts),
                    detected_at=report.detected_at,
                )
            )
            await session.commit()
        return report

    async def list_unprocessed_changes(
        self, tenant_id: Optional[uuid.UUID] = None, limit: int = 100
    ) -> List[ChangeEvent]:
        query = select(PersonChange).where(PersonChange.processed_at.is_(None))
        if tenant_id is not None:
            query = query.join(Person, Person.id == PersonChange.person_id).where(
                Person.organization_id == tenant_id
            )
        query = query.order_by(PersonChange.detected_at).limit(limit)

        async with self.session_maker() as session:
            result = await session.execute(query)
            return [_event_from_row(row) for row in result.scalars().all()]

    async def mark_change_processed(
        self, event_id: uuid.UUID, processed_at: Optional[datetime] = None
    ) -> bool:
        async with self.session_maker() as session:
            row = await session.get(PersonChange, event_id)
            if row is None:
                return False
            row.processed_at = processed_at or utc_now()
            await session.commit()
            return True

    # -------------------------------------------------------------------------
    # Run log
    # -------------------------------------------------------------------------

    async def save_sync_run(self, result: SyncRunResult) -> None:
        error_message = "; ".join(error.message for error in result.errors[:15]) or None
        async with self.session_maker() as session:
            try:
                await session.merge(
                    SyncLog(
                        id=result.id,
                        sync_type=result.sync_type,
                        status=result.status.value,
                        organizations_processed=result.organizations_processed,
                        records_processed=result.total_records_synced,
                        records_created=result.records_created,
                        records_updated=result.records_updated,
                        records_deleted=result.records_deleted,
                        conflicts=result.conflicts,
                        error_message=error_message,
                        errors=_to_json(result.errors),
                        tenant_reports=_to_json(result.tenants),
                        execution_time_ms=result.execution_time_ms,
                        started_at=result.started_at,
                        completed_at=result.completed_at,
                    )
                )
                await session.commit()
            except SQLAlchemyError as e:
                await session.rollback()
                raise MemberStoreError(f"Could not save sync run {result.id}: {e}") from e
        logger.info(f"📝 Sync run {result.id} logged ({result.status.value})")
