"""
Tests for the member sync building blocks.

Unit tests for change detection, conflict resolution, urgency scoring
and error tracking.
"""

import uuid
from datetime import date, datetime, timedelta, timezone

import pytest

from care_sync.integrations.inchurch import Address, RemoteMember
from care_sync.schemas.sync import CanonicalMember, ChangeType
from care_sync.services.member_sync import (
    ConflictPolicy,
    ConflictPolicyError,
    ConflictResolver,
    DeltaDetector,
    ErrorTracker,
    ResolutionStrategy,
    calculate_urgency_score,
)
from care_sync.services.member_sync.delta_detector import normalize_field
from care_sync.utils.contact import normalize_email, normalize_phone

from conftest import NOW

TENANT_ID = uuid.uuid4()


def local_member(**fields) -> CanonicalMember:
    data = {
        "tenant_id": TENANT_ID,
        "external_id": "m1",
        "name": "João Silva",
        "sync_source": "daily_polling",
        "last_synced_at": NOW - timedelta(days=2),
        "created_at": NOW - timedelta(days=30),
        "updated_at": NOW - timedelta(days=2),
    }
    data.update(fields)
    return CanonicalMember(**data)


def remote_member(**fields) -> RemoteMember:
    data = {"id": "m1", "name": "João Silva", "updated_at": NOW - timedelta(hours=1)}
    data.update(fields)
    return RemoteMember(**data)


class TestDeltaDetector:
    """Tests for DeltaDetector."""

    def test_no_changes_for_identical_records(self):
        detector = DeltaDetector()

        assert detector.detect(local_member(email="a@b.com"), remote_member(email="a@b.com")) == []

    def test_name_change(self):
        detector = DeltaDetector()

        changes = detector.detect(local_member(name="John"), remote_member(name="John Smith"))

        assert len(changes) == 1
        assert changes[0].field == "name"
        assert changes[0].old_value == "John"
        assert changes[0].new_value == "John Smith"

    def test_case_and_whitespace_are_ignored(self):
        detector = DeltaDetector()

        changes = detector.detect(
            local_member(name="JOÃO SILVA", email=" Joao@Example.com "),
            remote_member(name="joão silva", email="joao@example.com"),
        )

        assert changes == []

    @pytest.mark.parametrize("left,right", [(None, ""), ("", "   "), (None, None)])
    def test_null_equivalence(self, left, right):
        detector = DeltaDetector()

        assert detector.detect(local_member(phone=left), remote_member(phone=right)) == []

    def test_detection_is_symmetric_on_changed_fields(self):
        detector = DeltaDetector()
        local = local_member(phone="111", marital_status="single")
        remote = remote_member(phone="222", marital_status="married")
        flipped_local = local_member(phone="222", marital_status="married")
        flipped_remote = remote_member(phone="111", marital_status="single")

        forward = {change.field for change in detector.detect(local, remote)}
        backward = {change.field for change in detector.detect(flipped_local, flipped_remote)}

        assert forward == backward == {"phone", "marital_status"}

    def test_changes_follow_tracked_field_order(self):
        detector = DeltaDetector()

        changes = detector.detect(
            local_member(name="A", address=Address(city="Recife"), email="x@y.z"),
            remote_member(name="B", address=Address(city="Olinda"), email="w@y.z"),
        )

        assert [change.field for change in changes] == ["name", "email", "address"]

    def test_address_compares_structurally(self):
        detector = DeltaDetector()

        unchanged = detector.detect(
            local_member(address=Address(street="Rua A", city="Recife")),
            remote_member(address={"street": "rua a ", "city": "RECIFE", "zipCode": ""}),
        )
        changed = detector.detect(
            local_member(address=Address(street="Rua A", city="Recife")),
            remote_member(address={"street": "Rua B", "city": "Recife"}),
        )

        assert unchanged == []
        assert [change.field for change in changed] == ["address"]

    def test_empty_address_equals_missing_address(self):
        assert normalize_field("address", Address()) is None
        assert normalize_field("address", None) is None

    def test_birth_date_accepts_strings_and_dates(self):
        assert normalize_field("birth_date", "1990-05-01") == date(1990, 5, 1)
        assert not DeltaDetector.has_field_changed("birth_date", date(1990, 5, 1), "1990-05-01T00:00:00Z")

    def test_missing_tenant_is_rejected(self):
        detector = DeltaDetector()
        local = local_member()
        local.__dict__["tenant_id"] = None

        with pytest.raises(ValueError):
            detector.detect(local, remote_member())

    def test_missing_record_is_rejected(self):
        with pytest.raises(ValueError):
            DeltaDetector().detect(None, remote_member())

    @pytest.mark.parametrize("fields,expected", [
        ({"marital_status": ("single", "married")}, "high"),
        ({"address": (None, Address(city="Recife"))}, "high"),
        ({"phone": ("1", "2")}, "medium"),
        ({"name": ("a", "b"), "birth_date": (None, date(2000, 1, 1))}, "low"),
    ])
    def test_significance(self, fields, expected):
        local = local_member(**{name: old for name, (old, _) in fields.items()})
        remote = remote_member(**{name: new for name, (_, new) in fields.items()})

        changes = DeltaDetector().detect(local, remote)

        assert DeltaDetector.calculate_significance(changes) == expected


class TestContactNormalization:
    """Tests for phone and e-mail normalization."""

    @pytest.mark.parametrize("raw,expected", [
        ("(11) 98765-4321", "+5511987654321"),
        ("11 3456-7890", "+551134567890"),
        ("+55 11 98765-4321", "+5511987654321"),
        ("5511987654321", "+5511987654321"),
        ("+1 415 555 0100", "+14155550100"),
        ("ramal 12", "ramal 12"),
        ("   ", None),
        (None, None),
    ])
    def test_normalize_phone(self, raw, expected):
        assert normalize_phone(raw) == expected

    @pytest.mark.parametrize("raw,expected", [
        (" Maria@Example.COM ", "maria@example.com"),
        ("not-an-email", None),
        ("", None),
        (None, None),
    ])
    def test_normalize_email(self, raw, expected):
        assert normalize_email(raw) == expected

    def test_phone_formats_are_not_a_change(self):
        detector = DeltaDetector()

        changes = detector.detect(
            local_member(phone="+5511987654321"),
            remote_member(phone="(11) 98765-4321"),
        )

        assert changes == []

    def test_changes_carry_normalized_remote_values(self):
        changes = DeltaDetector().detect(
            local_member(phone="+5511987654321", email="old@example.com"),
            remote_member(phone="(21) 99999-0000", email=" New@Example.com"),
        )

        assert [(change.field, change.new_value) for change in changes] == [
            ("email", "new@example.com"),
            ("phone", "+5521999990000"),
        ]


class TestConflictPolicy:
    """Tests for ConflictPolicy configuration."""

    def test_defaults(self):
        policy = ConflictPolicy()

        assert policy.strategy_for("name") == ResolutionStrategy.REMOTE_WINS
        assert policy.strategy_for("phone") == ResolutionStrategy.NEWEST_WINS
        assert policy.strategy_for("email") == ResolutionStrategy.NEWEST_WINS
        assert policy.strategy_for("address") == ResolutionStrategy.MANUAL_REVIEW
        assert policy.strategy_for("marital_status") == ResolutionStrategy.MANUAL_REVIEW
        assert policy.recency_window == timedelta(hours=24)

    def test_overrides_from_mapping(self):
        policy = ConflictPolicy.from_mapping(
            {"default": "local_wins", "fields": {"address": "remote_wins"}, "recency_hours": 6}
        )

        assert policy.strategy_for("name") == ResolutionStrategy.LOCAL_WINS
        assert policy.strategy_for("address") == ResolutionStrategy.REMOTE_WINS
        assert policy.strategy_for("marital_status") == ResolutionStrategy.MANUAL_REVIEW
        assert policy.recency_window == timedelta(hours=6)

    @pytest.mark.parametrize("config", [
        {"default": "coin_flip"},
        {"fields": {"shoe_size": "remote_wins"}},
        {"fields": ["phone"]},
        {"recency_hours": "soon"},
        {"recency_hours": -1},
    ])
    def test_invalid_configuration(self, config):
        with pytest.raises(ConflictPolicyError):
            ConflictPolicy.from_mapping(config)


class TestConflictResolver:
    """Tests for ConflictResolver."""

    def test_remote_wins_without_conflict(self):
        resolver = ConflictResolver()
        local = local_member(name="John")
        remote = remote_member(name="John Smith")
        changes = DeltaDetector().detect(local, remote)

        resolution = resolver.resolve(local, remote, changes, now=NOW)

        assert resolution.member.name == "John Smith"
        assert [change.field for change in resolution.applied_changes] == ["name"]
        assert resolution.has_conflict is False
        assert resolution.conflict_report is None
        assert local.name == "John"

    def test_marital_status_goes_to_manual_review(self):
        resolver = ConflictResolver()
        local = local_member(marital_status="single", email="j@x.com")
        remote = remote_member(marital_status="married", email="j@x.com")
        changes = DeltaDetector().detect(local, remote)

        resolution = resolver.resolve(local, remote, changes, now=NOW)

        assert resolution.has_conflict is True
        assert resolution.member.marital_status == "married"
        report = resolution.conflict_report
        assert report.reason == "manual_review_field"
        assert report.local_values["marital_status"] == "single"
        assert report.remote_values["marital_status"] == "married"
        assert report.local_values["email"] == "j@x.com"
        assert report.conflicts[0].field == "marital_status"
        assert report.conflicts[0].recommended_resolution == "manual_review"

    def test_recent_local_edit_flags_conflict(self):
        resolver = ConflictResolver()
        local = local_member(name="John", updated_at=NOW - timedelta(hours=2))
        remote = remote_member(name="Johnny")
        changes = DeltaDetector().detect(local, remote)

        assert resolver.check_for_conflicts(local, remote, changes, now=NOW) is True

    def test_recent_sync_write_is_not_a_local_edit(self):
        resolver = ConflictResolver()
        synced = NOW - timedelta(hours=2)
        local = local_member(name="John", updated_at=synced, last_synced_at=synced)
        remote = remote_member(name="Johnny")
        changes = DeltaDetector().detect(local, remote)

        assert resolver.check_for_conflicts(local, remote, changes, now=NOW) is False
        assert resolver.check_for_conflicts(local, remote, changes, now=NOW, local_edit_detected=True) is True

    def test_old_local_edit_is_outside_recency_window(self):
        resolver = ConflictResolver()
        local = local_member(name="John", updated_at=NOW - timedelta(hours=30), last_synced_at=None)
        remote = remote_member(name="Johnny")
        changes = DeltaDetector().detect(local, remote)

        assert resolver.check_for_conflicts(local, remote, changes, now=NOW) is False

    def test_newest_wins_keeps_newer_local_phone(self):
        resolver = ConflictResolver()
        local = local_member(
            phone="111",
            updated_at=NOW - timedelta(minutes=10),
            last_synced_at=NOW - timedelta(days=1),
        )
        remote = remote_member(phone="222", updated_at=NOW - timedelta(hours=3))
        changes = DeltaDetector().detect(local, remote)

        resolution = resolver.resolve(local, remote, changes, now=NOW)

        assert resolution.member.phone == "111"
        assert [change.field for change in resolution.retained_changes] == ["phone"]
        assert resolution.applied_changes == []
        assert resolution.member.local_edited_at == NOW - timedelta(minutes=10)

    def test_kept_local_edit_outlives_sync_write(self):
        """After the sync rewrites the record, local_edited_at still wins against older remote data."""
        resolver = ConflictResolver()
        local = local_member(
            phone="111",
            updated_at=NOW,
            last_synced_at=NOW,
            local_edited_at=NOW - timedelta(minutes=10),
        )
        remote = remote_member(phone="222", updated_at=NOW - timedelta(hours=3))
        changes = DeltaDetector().detect(local, remote)

        resolution = resolver.resolve(local, remote, changes, now=NOW)

        assert resolver.is_remote_newer(local, remote) is False
        assert resolution.applied_changes == []
        assert resolution.has_conflict is False
        assert resolution.member.local_edited_at == NOW - timedelta(minutes=10)

    def test_adopting_remote_clears_kept_edit(self):
        resolver = ConflictResolver()
        local = local_member(
            phone="111",
            updated_at=NOW - timedelta(days=1),
            last_synced_at=NOW - timedelta(days=1),
            local_edited_at=NOW - timedelta(days=3),
        )
        remote = remote_member(phone="222", updated_at=NOW - timedelta(hours=1))
        changes = DeltaDetector().detect(local, remote)

        resolution = resolver.resolve(local, remote, changes, now=NOW)

        assert resolution.member.phone == "222"
        assert resolution.member.local_edited_at is None

    def test_newest_wins_takes_newer_remote_phone(self):
        resolver = ConflictResolver()
        local = local_member(phone="111")
        remote = remote_member(phone="222")
        changes = DeltaDetector().detect(local, remote)

        resolution = resolver.resolve(local, remote, changes, now=NOW)

        assert resolution.member.phone == "222"

    def test_local_wins_policy(self):
        resolver = ConflictResolver(ConflictPolicy.from_mapping({"default": "local_wins"}))
        local = local_member(name="John")
        remote = remote_member(name="Johnny")
        changes = DeltaDetector().detect(local, remote)

        resolution = resolver.resolve(local, remote, changes, now=NOW)

        assert resolution.member.name == "John"
        assert resolution.applied_changes == []

    def test_missing_remote_timestamp_defaults_to_remote(self):
        resolver = ConflictResolver()
        local = local_member(updated_at=NOW, last_synced_at=None)

        assert resolver.is_remote_newer(local, remote_member(updated_at=None)) is True


class TestUrgencyAndErrors:
    """Tests for urgency scoring and ErrorTracker."""

    @pytest.mark.parametrize("change_type,field_name,score", [
        (ChangeType.updated("marital_status"), "marital_status", 7),
        (ChangeType.updated("address"), "address", 7),
        (ChangeType.updated("phone"), "phone", 5),
        (ChangeType.updated("email"), "email", 5),
        (ChangeType.CREATED, None, 6),
        (ChangeType.updated("name"), "name", 4),
        (ChangeType.CONFLICT, None, 4),
    ])
    def test_urgency_table(self, change_type, field_name, score):
        assert calculate_urgency_score(change_type, field_name) == score

    def test_error_scopes(self):
        tracker = ErrorTracker()
        tenant_id = uuid.uuid4()

        tracker.track_member_error(tenant_id, "m1", Exception("bad row"), {"page": 2})
        tracker.track_page_error(tenant_id, 3, Exception("timeout"))
        tracker.track_tenant_error(None, Exception("db down"), scope="run")

        summary = tracker.get_summary()
        assert summary.total_member_errors == 1
        assert summary.total_page_errors == 1
        assert summary.total_tenant_errors == 1
        assert summary.errors[0].page == 2
        assert summary.get_error_messages() == ["Member m1: bad row", "Page 3: timeout", "db down"]
        assert len(tracker.errors_for(tenant_id)) == 2

    def test_clear_errors(self):
        tracker = ErrorTracker()

        tracker.track_tenant_error(uuid.uuid4(), Exception("x"))
        tracker.clear()

        assert not tracker.has_errors()
