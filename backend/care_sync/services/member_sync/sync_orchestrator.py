"""
Member Sync Orchestrator.

Coordinates the daily InChurch polling sync across all tenants.
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional

from care_sync.core.config import DAILY_POLLING_SYNC_SOURCE, Settings, get_settings
from care_sync.core.interfaces.member_store import MemberStore
from care_sync.core.tenants import TenantConfig, select_syncable_tenants
from care_sync.integrations.inchurch import InChurchClient, InChurchError, RemoteMember
from care_sync.schemas.sync import (
    CanonicalMember,
    ChangeEvent,
    ChangeType,
    SyncRunResult,
    SyncRunStatus,
    TenantSyncReport,
    TenantSyncStatus,
)
from care_sync.services.member_sync.conflict_resolver import ConflictPolicy, ConflictResolver
from care_sync.services.member_sync.delta_detector import TRACKED_FIELDS, DeltaDetector, ingest_value
from care_sync.services.member_sync.error_tracker import ErrorTracker
from care_sync.services.member_sync.urgency import calculate_urgency_score
from care_sync.services.sync_status import SyncPhase, SyncStatusTracker
from care_sync.utils.time import utc_now

logger = logging.getLogger(__name__)

ClientFactory = Callable[[TenantConfig], InChurchClient]


class SyncOrchestrator:
    """
    Orchestrates the daily member sync.

    Responsibilities:
    - Select tenants with complete InChurch credentials
    - Page through each tenant's members with its own rate limited client
    - Detect, resolve and persist changes and append change events
    - Isolate member, page and tenant failures and aggregate the run result
    """

    def __init__(
        self,
        store: MemberStore,
        settings: Optional[Settings] = None,
        client_factory: Optional[ClientFactory] = None,
        status_tracker: Optional[SyncStatusTracker] = None,
        detector: Optional[DeltaDetector] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], datetime] = utc_now,
    ):
        """
        Initialize the sync orchestrator.

        Args:
            store: Member store
            settings: Application settings (page size, delays, concurrency)
            client_factory: Builds the InChurch client of a tenant
            status_tracker: Progress tracker exposed by the status endpoint
            detector: Delta detector
            sleep: Awaitable sleep used for the inter-page delay
            clock: Current UTC time
        """
        self.store = store
        self.settings = settings or get_settings()
        self.client_factory = client_factory or self._default_client_factory
        self.status_tracker = status_tracker or SyncStatusTracker()
        self.detector = detector or DeltaDetector()
        self._sleep = sleep
        self._clock = clock

    def _default_client_factory(self, tenant: TenantConfig) -> InChurchClient:
        return InChurchClient.from_settings(
            self.settings,
            api_key=tenant.inchurch_api_key,
            api_secret=tenant.inchurch_secret,
            base_url=tenant.api_url_override,
        )

    # -------------------------------------------------------------------------
    # Run
    # -------------------------------------------------------------------------

    async def run_daily_sync(
        self,
        timeout: Optional[float] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> SyncRunResult:
        """
        Execute the daily polling sync over every syncable tenant.

        Workflow:
        1. Load tenants and keep those with complete credentials
        2. Sync tenants through a bounded worker pool
        3. Aggregate tenant reports and errors
        4. Persist and return the run result

        Args:
            timeout: Run deadline in seconds (defaults to SYNC_RUN_TIMEOUT_SECONDS)
            cancel_event: Setting this event cancels the run

        Returns:
            SyncRunResult. Never raises for tenant-level failures.
        """
        result = SyncRunResult(sync_type=DAILY_POLLING_SYNC_SOURCE, started_at=self._clock())
        result.status = SyncRunStatus.RUNNING
        errors = ErrorTracker()
        self.status_tracker.start_sync(result.id, result.started_at)
        logger.info(f"🔄 Member Sync: starting run {result.id}")

        # === PRE-FLIGHT: Load tenants ===
        try:
            tenants = select_syncable_tenants(await self.store.list_tenants())
        except Exception as e:
            logger.error(f"❌ Could not load tenants: {e}", exc_info=True)
            errors.track_tenant_error(None, e, scope="run")
            result.status = SyncRunStatus.FAILED
            return await self._finish(result, errors)

        logger.info(f"🏛️ {len(tenants)} tenant(s) with InChurch credentials")
        result.tenants = [TenantSyncReport(tenant_id=tenant.id, tenant_name=tenant.name) for tenant in tenants]
        self.status_tracker.set_tenants({str(tenant.id): tenant.name for tenant in tenants})
        self.status_tracker.update_phase(SyncPhase.SYNCING, f"Syncing {len(tenants)} organization(s)...")

        # === SYNC: Bounded tenant pool ===
        semaphore = asyncio.Semaphore(max(1, self.settings.sync_max_concurrent_tenants))

        async def worker(tenant: TenantConfig, report: TenantSyncReport):
            async with semaphore:
                await self._run_tenant(tenant, report, errors)

        tasks = [
            asyncio.create_task(worker(tenant, report))
            for tenant, report in zip(tenants, result.tenants)
        ]

        if timeout is None:
            timeout = self.settings.sync_run_timeout_seconds
        interruption = await self._wait_for_tenants(tasks, timeout, cancel_event)

        if interruption is not None:
            self._mark_interrupted(result, errors, interruption)

        # === FINISH ===
        result.status = SyncRunStatus.PARTIAL_SUCCESS if errors.has_errors() else SyncRunStatus.COMPLETED
        return await self._finish(result, errors)

    async def _wait_for_tenants(
        self,
        tasks: List[asyncio.Task],
        timeout: Optional[float],
        cancel_event: Optional[asyncio.Event],
    ) -> Optional[TenantSyncStatus]:
        """
        Waits for every tenant task, the deadline or the cancel event.

        Returns:
            None when all tenants finished, else TIMED_OUT or CANCELLED
        """
        all_done = asyncio.gather(*tasks, return_exceptions=True)
        waiters = {all_done}
        cancel_waiter = None
        if cancel_event is not None:
            cancel_waiter = asyncio.ensure_future(cancel_event.wait())
            waiters.add(cancel_waiter)

        try:
            done, _ = await asyncio.wait(waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            for task in tasks:
                task.cancel()
            raise
        finally:
            if cancel_waiter is not None and not cancel_waiter.done():
                cancel_waiter.cancel()

        if all_done in done:
            for outcome in all_done.result():
                if isinstance(outcome, Exception):
                    logger.error(f"❌ Tenant worker crashed: {outcome!r}")
            return None

        interruption = (
            TenantSyncStatus.CANCELLED
            if cancel_waiter is not None and cancel_waiter in done
            else TenantSyncStatus.TIMED_OUT
        )
        for task in tasks:
            task.cancel()
        await all_done
        return interruption

    def _mark_interrupted(
        self, result: SyncRunResult, errors: ErrorTracker, interruption: TenantSyncStatus
    ):
        reason = "cancelled" if interruption == TenantSyncStatus.CANCELLED else "timed out"
        logger.warning(f"⏱️ Sync run {result.id} {reason}")
        errors.track_tenant_error(None, RuntimeError(f"Sync run {reason}"), scope="run")

        for report in result.tenants:
            if report.status == TenantSyncStatus.RUNNING:
                report.status = interruption
                errors.track_tenant_error(
                    report.tenant_id, RuntimeError(f"Tenant sync {reason} after {report.pages_fetched} page(s)")
                )
                self.status_tracker.tenant_finished(str(report.tenant_id), report.status.value)

    async def _finish(self, result: SyncRunResult, errors: ErrorTracker) -> SyncRunResult:
        """Aggregates counters, persists the run and updates the status tracker."""
        result.errors = list(errors.errors)
        for report in result.tenants:
            report.error_count = len(errors.errors_for(report.tenant_id))
            if report.status != TenantSyncStatus.NOT_ATTEMPTED:
                result.organizations_processed += 1
            result.total_records_synced += report.total_records
            result.records_created += report.created
            result.records_updated += report.updated
            result.records_deleted += report.deleted
            result.conflicts += report.conflicts
            result.change_events += report.change_events
        result.completed_at = self._clock()

        self.status_tracker.update_phase(SyncPhase.PERSISTING, "Saving sync log...")
        try:
            await self.store.save_sync_run(result)
        except Exception as e:
            logger.error(f"❌ Could not save sync run {result.id}: {e}", exc_info=True)
            self.status_tracker.add_error(f"Sync log not saved: {e}")

        for message in errors.get_summary().get_error_messages():
            self.status_tracker.add_error(message)
        self.status_tracker.complete_sync(
            result.status.value, success=result.status != SyncRunStatus.FAILED
        )

        logger.info(
            f"📊 Sync run {result.id} {result.status.value}: "
            f"{result.organizations_processed} organization(s), {result.total_records_synced} records, "
            f"{result.records_created} created, {result.records_updated} updated, "
            f"{result.conflicts} conflict(s), {len(result.errors)} error(s) "
            f"in {result.execution_time_ms}ms"
        )
        return result

    # -------------------------------------------------------------------------
    # Tenant
    # -------------------------------------------------------------------------

    async def _run_tenant(self, tenant: TenantConfig, report: TenantSyncReport, errors: ErrorTracker):
        """Runs one tenant and converts its failure into a recorded outcome."""
        report.status = TenantSyncStatus.RUNNING
        self.status_tracker.tenant_started(str(tenant.id))
        try:
            await self._sync_tenant(tenant, report, errors)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"❌ Tenant {tenant.id} ({tenant.name}) sync failed: {e}", exc_info=True)
            report.status = TenantSyncStatus.FAILED
            errors.track_tenant_error(tenant.id, e, context={"tenant_name": tenant.name})
        self.status_tracker.tenant_finished(str(tenant.id), report.status.value)

    async def _sync_tenant(self, tenant: TenantConfig, report: TenantSyncReport, errors: ErrorTracker):
        """
        Pages through the tenant's members until has_more is false.

        A page fetch failure aborts the tenant; a member failure does not.
        """
        policy = ConflictPolicy.from_mapping(
            tenant.conflict_policy_config,
            recency_hours=self.settings.sync_conflict_recency_hours,
        )
        resolver = ConflictResolver(policy)
        page_size = self.settings.sync_page_size
        page_delay = self.settings.sync_page_delay_ms / 1000

        logger.info(f"⛪ Syncing tenant {tenant.id} ({tenant.name})")

        async with self.client_factory(tenant) as client:
            page = 1
            while True:
                try:
                    member_page = await client.fetch_member_page(page=page, limit=page_size)
                except InChurchError as e:
                    report.status = TenantSyncStatus.FAILED
                    errors.track_page_error(
                        tenant.id, page, e, context={"code": e.code, "status": e.status}
                    )
                    return

                members = member_page.members
                pagination = member_page.pagination
                record_count = len(members) + len(member_page.invalid)
                report.pages_fetched += 1
                self.status_tracker.update_page(str(tenant.id), page, record_count)

                for invalid in member_page.invalid:
                    report.total_records += 1
                    report.failed += 1
                    errors.track_member_error(
                        tenant.id,
                        invalid.external_id,
                        invalid.error,
                        context={"page": page, "error_type": type(invalid.error).__name__},
                    )

                for remote in members:
                    report.total_records += 1
                    try:
                        await self._sync_member(tenant, remote, resolver, report)
                    except asyncio.CancelledError:
                        raise
                    except Exception as e:
                        report.failed += 1
                        errors.track_member_error(
                            tenant.id, remote.id, e, context={"page": page, "error_type": type(e).__name__}
                        )

                if not pagination.has_more or not record_count:
                    break

                page += 1
                await self._sleep(page_delay)

        report.status = TenantSyncStatus.COMPLETED
        logger.info(
            f"✅ Tenant {tenant.id} ({tenant.name}): {report.total_records} records, "
            f"{report.created} created, {report.updated} updated, {report.unchanged} unchanged, "
            f"{report.conflicts} conflict(s), {report.failed} failed"
        )

    # -------------------------------------------------------------------------
    # Member
    # -------------------------------------------------------------------------

    async def _sync_member(
        self,
        tenant: TenantConfig,
        remote: RemoteMember,
        resolver: ConflictResolver,
        report: TenantSyncReport,
    ):
        now = self._clock()
        local = await self.store.get_member_by_external_id(tenant.id, remote.id)

        if local is None:
            await self._create_member(tenant, remote, now, report)
            return

        changes = self.detector.detect(local, remote)
        if not changes:
            report.unchanged += 1
            return

        local_edit_detected = await self.store.has_local_edits_since(
            local.id, now - resolver.policy.recency_window
        )
        resolution = resolver.resolve(local, remote, changes, now=now, local_edit_detected=local_edit_detected)

        if not resolution.applied_changes and not resolution.has_conflict:
            report.unchanged += 1
            return

        await self._update_member(resolution.member, remote, now)
        report.updated += 1

        for change in resolution.applied_changes:
            change_type = ChangeType.updated(change.field)
            await self._emit(
                ChangeEvent(
                    person_id=local.id,
                    change_type=change_type,
                    old_value=change.old_value,
                    new_value=change.new_value,
                    urgency_score=calculate_urgency_score(change_type, change.field),
                    detected_at=now,
                ),
                report,
            )

        if resolution.conflict_report is not None:
            conflict = resolution.conflict_report
            conflict.detected_at = now
            await self.store.append_conflict_report(conflict)
            report.conflicts += 1
            await self._emit(
                ChangeEvent(
                    person_id=local.id,
                    change_type=ChangeType.CONFLICT,
                    old_value=conflict.local_values,
                    new_value=conflict.remote_values,
                    urgency_score=calculate_urgency_score(ChangeType.CONFLICT),
                    detected_at=now,
                    ai_analysis={
                        "conflict_id": str(conflict.id),
                        "reason": conflict.reason,
                        "fields": [item.field for item in conflict.conflicts],
                    },
                ),
                report,
            )

    async def _create_member(
        self, tenant: TenantConfig, remote: RemoteMember, now: datetime, report: TenantSyncReport
    ):
        address = remote.address if remote.address is not None and not remote.address.is_empty() else None
        member = CanonicalMember(
            tenant_id=tenant.id,
            external_id=remote.id,
            name=remote.name,
            email=ingest_value("email", remote.email),
            phone=ingest_value("phone", remote.phone),
            birth_date=remote.birth_date,
            marital_status=remote.marital_status,
            address=address,
            profile_data=self._profile_payload(remote),
            sync_source=DAILY_POLLING_SYNC_SOURCE,
            last_synced_at=now,
            created_at=now,
            updated_at=now,
        )
        saved = await self.store.create_member(member)
        report.created += 1
        logger.debug(f"➕ Created member {remote.id} in tenant {tenant.id}")

        await self._emit(
            ChangeEvent(
                person_id=saved.id,
                change_type=ChangeType.CREATED,
                old_value=None,
                new_value={name: getattr(saved, name) for name in TRACKED_FIELDS},
                urgency_score=calculate_urgency_score(ChangeType.CREATED),
                detected_at=now,
            ),
            report,
        )

    async def _update_member(self, member: CanonicalMember, remote: RemoteMember, now: datetime):
        # updated_at and last_synced_at move together so sync writes never
        # look like local edits
        member.profile_data = self._profile_payload(remote)
        member.sync_source = DAILY_POLLING_SYNC_SOURCE
        member.last_synced_at = now
        member.updated_at = now
        await self.store.update_member(member)
        logger.debug(f"✏️ Updated member {remote.id} in tenant {member.tenant_id}")

    async def _emit(self, event: ChangeEvent, report: TenantSyncReport):
        await self.store.append_change_event(event)
        report.change_events += 1

    @staticmethod
    def _profile_payload(remote: RemoteMember) -> Dict[str, Any]:
        return remote.model_dump(mode="json", by_alias=True, exclude_none=True)
