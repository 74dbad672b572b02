"""
Conflict Resolver for Member Sync.

Decides whether a change set needs human review and computes the resolved
member record under a per-field strategy policy.
"""

import enum
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Mapping, Optional

from care_sync.integrations.inchurch.schema import RemoteMember
from care_sync.schemas.sync import CanonicalMember, ConflictReport, FieldConflict
from care_sync.services.member_sync.delta_detector import TRACKED_FIELDS, FieldChange
from care_sync.utils.time import ensure_utc, utc_now

logger = logging.getLogger(__name__)


class ConflictPolicyError(ValueError):
    """Raised when a conflict policy is misconfigured."""
    pass


class ResolutionStrategy(str, enum.Enum):
    """How a disagreement on one field is settled."""
    REMOTE_WINS = "remote_wins"
    LOCAL_WINS = "local_wins"
    NEWEST_WINS = "newest_wins"
    MANUAL_REVIEW = "manual_review"


def _parse_strategy(value: Any) -> ResolutionStrategy:
    try:
        return ResolutionStrategy(value)
    except ValueError:
        allowed = ", ".join(strategy.value for strategy in ResolutionStrategy)
        raise ConflictPolicyError(f"Unknown resolution strategy '{value}' (allowed: {allowed})")


def _default_field_strategies() -> Dict[str, ResolutionStrategy]:
    return {
        "phone": ResolutionStrategy.NEWEST_WINS,
        "email": ResolutionStrategy.NEWEST_WINS,
        "address": ResolutionStrategy.MANUAL_REVIEW,
        "marital_status": ResolutionStrategy.MANUAL_REVIEW,
    }


@dataclass
class ConflictPolicy:
    """
    Per-field resolution strategies.

    InChurch is the source of truth by default (remote_wins). Contact
    fields follow the newest edit, and address / marital status changes
    always go through manual review.
    """
    default: ResolutionStrategy = ResolutionStrategy.REMOTE_WINS
    field_strategies: Dict[str, ResolutionStrategy] = field(default_factory=_default_field_strategies)
    recency_window: timedelta = timedelta(hours=24)

    def strategy_for(self, field_name: str) -> ResolutionStrategy:
        return self.field_strategies.get(field_name, self.default)

    @classmethod
    def from_mapping(
        cls,
        config: Optional[Mapping[str, Any]],
        recency_hours: Optional[float] = None,
    ) -> "ConflictPolicy":
        """
        Builds a policy from a tenant settings mapping.

        Field overrides are merged over the default overrides.

        Example:
            {"default": "remote_wins", "fields": {"phone": "local_wins"}, "recency_hours": 12}

        Raises:
            ConflictPolicyError: On unknown strategies, fields or bad values
        """
        policy = cls()
        if recency_hours is not None:
            policy.recency_window = timedelta(hours=recency_hours)
        if not config:
            return policy
        if not isinstance(config, Mapping):
            raise ConflictPolicyError(f"Conflict policy must be a mapping, got {type(config).__name__}")

        if "default" in config:
            policy.default = _parse_strategy(config["default"])

        overrides = config.get("fields") or {}
        if not isinstance(overrides, Mapping):
            raise ConflictPolicyError("Conflict policy 'fields' must be a mapping")
        for field_name, strategy in overrides.items():
            if field_name not in TRACKED_FIELDS:
                raise ConflictPolicyError(f"Conflict policy references untracked field '{field_name}'")
            policy.field_strategies[field_name] = _parse_strategy(strategy)

        if "recency_hours" in config:
            try:
                hours = float(config["recency_hours"])
            except (TypeError, ValueError):
                raise ConflictPolicyError(f"Invalid recency_hours: {config['recency_hours']!r}")
            if hours < 0:
                raise ConflictPolicyError("recency_hours must not be negative")
            policy.recency_window = timedelta(hours=hours)

        return policy


@dataclass
class Resolution:
    """Outcome of resolving one change set."""
    member: CanonicalMember
    applied_changes: List[FieldChange]
    retained_changes: List[FieldChange]
    has_conflict: bool
    conflict_report: Optional[ConflictReport] = None


class ConflictResolver:
    """
    Applies a ConflictPolicy to detected changes.

    Pure: builds the resolved record and the optional conflict report, and
    never writes anything itself.
    """

    def __init__(self, policy: Optional[ConflictPolicy] = None):
        self.policy = policy or ConflictPolicy()

    # -------------------------------------------------------------------------
    # Conflict detection
    # -------------------------------------------------------------------------

    @staticmethod
    def unsynced_edit_time(local: CanonicalMember) -> Optional[datetime]:
        """
        When the record was edited locally since the last sync write.

        The sync stamps updated_at and last_synced_at together, so an
        updated_at after last_synced_at can only come from another writer.
        A record that was never synced has no sync write to compare to.
        """
        updated_at = ensure_utc(local.updated_at)
        last_synced_at = ensure_utc(local.last_synced_at)
        if updated_at is None:
            return None
        if last_synced_at is None or updated_at > last_synced_at:
            return updated_at
        return None

    @classmethod
    def local_edit_time(cls, local: CanonicalMember) -> Optional[datetime]:
        """
        When the record was last edited locally, outside of the sync.

        Falls back to local_edited_at, the edit a previous run kept over
        the remote value, once the sync has written the record again.
        """
        return cls.unsynced_edit_time(local) or ensure_utc(local.local_edited_at)

    def has_recent_local_changes(
        self,
        local: CanonicalMember,
        now: Optional[datetime] = None,
        local_edit_detected: bool = False,
    ) -> bool:
        """
        True when updated_at falls inside the recency window and there is
        independent evidence of a local edit.

        Args:
            local: Canonical member
            now: Reference time (defaults to current UTC time)
            local_edit_detected: Evidence from the store (e.g. user edits
                tracked separately from the sync's own writes)
        """
        now = ensure_utc(now) or utc_now()
        updated_at = ensure_utc(local.updated_at)
        if updated_at is None or now - updated_at >= self.policy.recency_window:
            return False
        return local_edit_detected or self.unsynced_edit_time(local) is not None

    def check_for_conflicts(
        self,
        local: CanonicalMember,
        remote: RemoteMember,
        changes: List[FieldChange],
        now: Optional[datetime] = None,
        local_edit_detected: bool = False,
    ) -> bool:
        """
        Decides whether the change set needs manual review.

        Returns:
            True if there was a recent local edit, or any changed field is
            governed by manual_review
        """
        return bool(self._conflict_reasons(local, changes, now, local_edit_detected))

    def _conflict_reasons(
        self,
        local: CanonicalMember,
        changes: List[FieldChange],
        now: Optional[datetime],
        local_edit_detected: bool,
    ) -> List[str]:
        if not changes:
            return []

        reasons = []
        if self.has_recent_local_changes(local, now, local_edit_detected):
            reasons.append("recent_local_edit")
        if any(
            self.policy.strategy_for(change.field) == ResolutionStrategy.MANUAL_REVIEW
            for change in changes
        ):
            reasons.append("manual_review_field")
        return reasons

    # -------------------------------------------------------------------------
    # Resolution
    # -------------------------------------------------------------------------

    def is_remote_newer(self, local: CanonicalMember, remote: RemoteMember) -> bool:
        """
        Compares the local edit time with the remote updated_at.

        Defaults to the remote side when either timestamp is missing or
        when there was no local edit since the last sync.
        """
        local_edited_at = self.local_edit_time(local)
        remote_updated_at = ensure_utc(remote.updated_at)

        if local_edited_at is None or remote_updated_at is None:
            return True
        return remote_updated_at > local_edited_at

    def resolve(
        self,
        local: CanonicalMember,
        remote: RemoteMember,
        changes: List[FieldChange],
        now: Optional[datetime] = None,
        local_edit_detected: bool = False,
    ) -> Resolution:
        """
        Applies each change's strategy and builds the resolved record.

        Args:
            local: Canonical member as persisted
            remote: InChurch member
            changes: Output of DeltaDetector.detect(local, remote)
            now: Reference time for the recency check
            local_edit_detected: Store evidence of a recent local edit

        Returns:
            Resolution with the resolved member copy, applied/retained
            changes (detection order) and the optional conflict report
        """
        resolved = local.model_copy(deep=True)
        applied: List[FieldChange] = []
        retained: List[FieldChange] = []

        for change in changes:
            strategy = self.policy.strategy_for(change.field)

            if strategy == ResolutionStrategy.LOCAL_WINS:
                adopt_remote = False
            elif strategy == ResolutionStrategy.NEWEST_WINS:
                adopt_remote = self.is_remote_newer(local, remote)
            else:
                # remote_wins, and manual_review provisionally
                adopt_remote = True

            if adopt_remote:
                setattr(resolved, change.field, change.new_value)
                applied.append(change)
            else:
                retained.append(change)
                logger.debug(f"Member {remote.id}: keeping local {change.field} ({strategy.value})")

        # local_edited_at carries a kept local edit across sync writes
        resolved.local_edited_at = self.local_edit_time(local) if retained else None

        reasons = self._conflict_reasons(local, changes, now, local_edit_detected)
        report = None
        if reasons:
            report = self.create_conflict_report(local, remote, changes, reasons)
            logger.info(
                f"⚠️ Conflict on member {remote.id} ({', '.join(reasons)}): "
                f"{', '.join(change.field for change in changes)}"
            )

        return Resolution(
            member=resolved,
            applied_changes=applied,
            retained_changes=retained,
            has_conflict=bool(reasons),
            conflict_report=report,
        )

    def create_conflict_report(
        self,
        local: CanonicalMember,
        remote: RemoteMember,
        changes: List[FieldChange],
        reasons: Optional[List[str]] = None,
    ) -> ConflictReport:
        """Builds the audit record with both sides and the recommended resolutions."""
        return ConflictReport(
            person_id=local.id,
            tenant_id=local.tenant_id,
            remote_member_id=remote.id,
            reason=",".join(reasons or []),
            local_last_updated=ensure_utc(local.updated_at),
            local_sync_source=local.sync_source,
            remote_last_updated=ensure_utc(remote.updated_at),
            local_values={name: getattr(local, name, None) for name in TRACKED_FIELDS},
            remote_values={name: getattr(remote, name, None) for name in TRACKED_FIELDS},
            conflicts=[
                FieldConflict(
                    field=change.field,
                    local_value=change.old_value,
                    remote_value=change.new_value,
                    recommended_resolution=self.policy.strategy_for(change.field).value,
                )
                for change in changes
            ],
        )
