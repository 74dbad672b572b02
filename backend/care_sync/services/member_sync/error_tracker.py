"""
Error Tracker for Member Sync Operations.

Collects member, page and tenant errors of a sync run with context for
debugging, and turns them into the run's error list.
"""

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from care_sync.schemas.sync import SyncError

logger = logging.getLogger(__name__)


@dataclass
class ErrorSummary:
    """Summary of all errors during a sync run."""
    errors: List[SyncError]
    total_member_errors: int
    total_page_errors: int
    total_tenant_errors: int

    def get_error_messages(self, limit: int = 15) -> List[str]:
        """
        Get formatted error messages for API response.

        Args:
            limit: Maximum number of error messages to return

        Returns:
            List of formatted error messages
        """
        messages = []
        for err in self.errors[:limit]:
            if err.scope == "member":
                messages.append(f"Member {err.external_id}: {err.message}")
            elif err.scope == "page":
                messages.append(f"Page {err.page}: {err.message}")
            else:
                messages.append(err.message)
        return messages


class ErrorTracker:
    """
    Tracks errors during member sync operations.

    Tenants may run concurrently; each tracked error carries its tenant id
    so the list stays attributable.
    """

    def __init__(self):
        self.errors: List[SyncError] = []
        self.context: Dict[int, Dict[str, Any]] = {}

    def _track(self, error: SyncError, context: Optional[Dict[str, Any]]) -> SyncError:
        self.errors.append(error)
        if context:
            self.context[len(self.errors) - 1] = context
        return error

    def track_member_error(
        self,
        tenant_id: uuid.UUID,
        external_id: str,
        error: Exception,
        context: Dict[str, Any] = None
    ) -> SyncError:
        """
        Track a failure to sync one member. The page carries on.

        Args:
            tenant_id: Organization id
            external_id: InChurch member id
            error: Exception that occurred
            context: Additional context (e.g., page number, operation)
        """
        logger.error(
            f"❌ Member error: tenant {tenant_id} member {external_id}: {error}",
            extra={"tenant_id": str(tenant_id), "external_id": external_id, "context": context}
        )
        return self._track(
            SyncError(
                tenant_id=tenant_id,
                message=str(error),
                scope="member",
                external_id=external_id,
                page=(context or {}).get("page"),
            ),
            context,
        )

    def track_page_error(
        self,
        tenant_id: uuid.UUID,
        page: int,
        error: Exception,
        context: Dict[str, Any] = None
    ) -> SyncError:
        """
        Track a page fetch failure. The tenant is aborted.

        Args:
            tenant_id: Organization id
            page: Page number that could not be fetched
            error: Exception that occurred
            context: Additional context (e.g., error code, status)
        """
        logger.error(
            f"❌ Page error: tenant {tenant_id} page {page}: {error}",
            extra={"tenant_id": str(tenant_id), "page": page, "context": context}
        )
        return self._track(
            SyncError(tenant_id=tenant_id, message=str(error), scope="page", page=page),
            context,
        )

    def track_tenant_error(
        self,
        tenant_id: Optional[uuid.UUID],
        error: Exception,
        context: Dict[str, Any] = None,
        scope: str = "tenant"
    ) -> SyncError:
        """
        Track a tenant-level (or, with scope="run", run-level) failure.

        Args:
            tenant_id: Organization id, None for run-level errors
            error: Exception that occurred
            context: Additional context
            scope: "tenant" or "run"
        """
        logger.error(
            f"❌ {scope.capitalize()} error: {tenant_id or '-'}: {error}",
            extra={"tenant_id": str(tenant_id) if tenant_id else None, "context": context}
        )
        return self._track(
            SyncError(tenant_id=tenant_id, message=str(error) or type(error).__name__, scope=scope),
            context,
        )

    def errors_for(self, tenant_id: uuid.UUID) -> List[SyncError]:
        return [err for err in self.errors if err.tenant_id == tenant_id]

    def get_summary(self) -> ErrorSummary:
        """
        Get error summary.

        Returns:
            ErrorSummary with all tracked errors
        """
        return ErrorSummary(
            errors=list(self.errors),
            total_member_errors=sum(1 for err in self.errors if err.scope == "member"),
            total_page_errors=sum(1 for err in self.errors if err.scope == "page"),
            total_tenant_errors=sum(1 for err in self.errors if err.scope in ("tenant", "run")),
        )

    def has_errors(self) -> bool:
        """Check if any errors were tracked."""
        return len(self.errors) > 0

    def clear(self):
        """Clear all tracked errors."""
        self.errors.clear()
        self.context.clear()
