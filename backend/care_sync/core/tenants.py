"""
Tenant (organization) sync configuration.

A tenant takes part in the sync only when both halves of its InChurch
credentials are configured.
"""

import logging
import uuid
from typing import Any, Dict, Iterable, List, Optional

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)


class TenantConfig(BaseModel):
    """Credentials and per-tenant settings of one organization."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: uuid.UUID
    name: str = ""
    inchurch_api_key: Optional[str] = Field(default=None, repr=False)
    inchurch_secret: Optional[str] = Field(default=None, repr=False)
    settings: Dict[str, Any] = Field(default_factory=dict)

    @property
    def has_credentials(self) -> bool:
        """True when both API key and secret are non-blank."""
        return bool(
            self.inchurch_api_key and self.inchurch_api_key.strip()
            and self.inchurch_secret and self.inchurch_secret.strip()
        )

    @property
    def api_url_override(self) -> Optional[str]:
        """Optional per-tenant InChurch base URL."""
        return self.settings.get("inchurch_api_url") or None

    @property
    def conflict_policy_config(self) -> Optional[Dict[str, Any]]:
        """Optional per-tenant conflict policy overrides."""
        return self.settings.get("conflict_policy") or None


def select_syncable_tenants(tenants: Iterable[TenantConfig]) -> List[TenantConfig]:
    """
    Filters tenants down to those with complete credentials.

    Tenants missing either credential half are skipped, not reported as errors.
    """
    selected = []
    for tenant in tenants:
        if tenant.has_credentials:
            selected.append(tenant)
        else:
            logger.debug(f"Skipping tenant {tenant.id} ({tenant.name}): InChurch credentials incomplete")
    return selected
