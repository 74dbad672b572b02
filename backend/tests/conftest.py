"""
Shared fixtures for the sync tests.

FakeMemberStore keeps everything in memory; FakeInChurchApi serves member
pages over httpx.MockTransport, keyed by the tenant's API key.
"""

import copy
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx
import pytest

from care_sync.core.config import Settings
from care_sync.core.interfaces.member_store import DuplicateMemberError, MemberStore, MemberStoreError
from care_sync.core.tenants import TenantConfig
from care_sync.integrations.inchurch import InChurchClient
from care_sync.schemas.sync import CanonicalMember, ChangeEvent, ConflictReport, SyncRunResult

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


class FakeMemberStore(MemberStore):
    """In-memory MemberStore."""

    def __init__(self, tenants: Optional[List[TenantConfig]] = None):
        self.tenants = list(tenants or [])
        self.members: Dict[uuid.UUID, CanonicalMember] = {}
        self.events: List[ChangeEvent] = []
        self.conflicts: List[ConflictReport] = []
        self.runs: List[SyncRunResult] = []
        self.local_edits: set = set()
        self.fail_on_external_ids: set = set()
        self.list_tenants_error: Optional[Exception] = None

    async def list_tenants(self) -> List[TenantConfig]:
        if self.list_tenants_error:
            raise self.list_tenants_error
        return list(self.tenants)

    async def get_member(self, member_id):
        member = self.members.get(member_id)
        return member.model_copy(deep=True) if member else None

    async def get_member_by_external_id(self, tenant_id, external_id):
        if external_id in self.fail_on_external_ids:
            raise MemberStoreError(f"lookup failed for {external_id}")
        for member in self.members.values():
            if member.tenant_id == tenant_id and member.external_id == external_id:
                return member.model_copy(deep=True)
        return None

    async def create_member(self, member):
        if await self.get_member_by_external_id(member.tenant_id, member.external_id):
            raise DuplicateMemberError(member.external_id)
        self.members[member.id] = member.model_copy(deep=True)
        return member

    async def update_member(self, member):
        if member.id not in self.members:
            raise MemberStoreError(f"Member {member.id} not found")
        self.members[member.id] = member.model_copy(deep=True)
        return member

    async def upsert_member(self, member):
        existing = await self.get_member_by_external_id(member.tenant_id, member.external_id)
        if existing:
            member = member.model_copy(update={"id": existing.id})
        self.members[member.id] = member.model_copy(deep=True)
        return member

    async def append_change_event(self, event):
        self.events.append(copy.deepcopy(event))
        return event

    async def append_conflict_report(self, report):
        self.conflicts.append(copy.deepcopy(report))
        return report

    async def save_sync_run(self, result):
        self.runs.append(result)

    async def has_local_edits_since(self, member_id, since):
        return member_id in self.local_edits

    async def list_unprocessed_changes(self, tenant_id=None, limit=100):
        events = [event for event in self.events if event.processed_at is None]
        if tenant_id is not None:
            events = [
                event for event in events
                if self.members.get(event.person_id) and self.members[event.person_id].tenant_id == tenant_id
            ]
        return sorted(events, key=lambda event: event.detected_at)[:limit]

    async def mark_change_processed(self, event_id, processed_at=None):
        for event in self.events:
            if event.id == event_id:
                event.processed_at = processed_at or NOW
                return True
        return False

    def members_of(self, tenant_id) -> List[CanonicalMember]:
        return [member for member in self.members.values() if member.tenant_id == tenant_id]


def member_payload(member_id: str, name: str, **fields: Any) -> Dict[str, Any]:
    """Builds a camelCase member payload as InChurch returns it."""
    payload = {"id": member_id, "name": name, "updatedAt": "2024-05-31T10:00:00Z"}
    payload.update(fields)
    return payload


class FakeInChurchApi:
    """
    Serves paginated /members per API key.

    `failures` maps an API key to a status code returned for every request
    of that key.
    """

    def __init__(self):
        self.members: Dict[str, List[Dict[str, Any]]] = {}
        self.failures: Dict[str, int] = {}
        self.requests: List[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        api_key = request.headers.get("X-API-Key")

        if api_key in self.failures:
            status = self.failures[api_key]
            return httpx.Response(status, json={"message": "boom"})

        if request.url.path.endswith("/members"):
            page = int(request.url.params.get("page", 1))
            limit = int(request.url.params.get("limit", 100))
            members = self.members.get(api_key, [])
            start = (page - 1) * limit
            chunk = members[start:start + limit]
            return httpx.Response(200, json={
                "success": True,
                "data": chunk,
                "pagination": {
                    "page": page,
                    "limit": limit,
                    "total": len(members),
                    "hasMore": start + limit < len(members),
                },
            })

        return httpx.Response(404, json={"message": "not found"})

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


class FakeSleep:
    """Records sleeps instead of waiting."""

    def __init__(self):
        self.calls: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


def make_tenant(name: str, api_key: Optional[str] = None, secret: Optional[str] = "secret", **settings) -> TenantConfig:
    return TenantConfig(
        id=uuid.uuid4(),
        name=name,
        inchurch_api_key=api_key,
        inchurch_secret=secret,
        settings=settings,
    )


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        SYNC_PAGE_SIZE=2,
        SYNC_PAGE_DELAY_MS=300,
        INCHURCH_MAX_RETRIES=1,
    )


@pytest.fixture
def fake_api() -> FakeInChurchApi:
    return FakeInChurchApi()


@pytest.fixture
def fake_sleep() -> FakeSleep:
    return FakeSleep()


@pytest.fixture
def client_factory(settings, fake_api, fake_sleep):
    def factory(tenant: TenantConfig) -> InChurchClient:
        return InChurchClient.from_settings(
            settings,
            api_key=tenant.inchurch_api_key,
            api_secret=tenant.inchurch_secret,
            base_url="https://inchurch.test/v1",
            transport=fake_api.transport,
            sleep=fake_sleep,
        )
    return factory
