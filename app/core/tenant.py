from __future__ import annotations

import re

from app.core.errors import RequestValidationFailed
from app.core.settings import settings

ORG_ID_MIN_LENGTH = 2
ORG_ID_MAX_LENGTH = 64
_ORG_ID_RE = re.compile(r"^[a-z0-9][a-z0-9_-]*$")


def normalize_org_id(value: str) -> str:
    cleaned = value.strip().lower()
    if not ORG_ID_MIN_LENGTH <= len(cleaned) <= ORG_ID_MAX_LENGTH or not _ORG_ID_RE.fullmatch(
        cleaned
    ):
        raise RequestValidationFailed(
            f"Invalid tenant id '{value}'",
            code="invalid_tenant",
            details={"tenantId": value},
        )
    return cleaned


def org_from_host(host: str | None) -> str | None:
    """Leftmost label of an allowed ``<org>.<domain>.<tld>`` host, port stripped."""
    hostname = (host or "").split(":")[0]
    if settings.allowed_tenant_hosts and hostname not in settings.allowed_tenant_hosts:
        return None
    parts = hostname.split(".")
    if len(parts) >= 3:
        return parts[0]
    return None


def resolve_org_id(header_value: str | None, host: str | None) -> str:
    """Org that scopes every query, chat and sanctioned-case read for the request.

    Single-tenant deployments always use ``DEFAULT_ORG_ID``. In multi mode the
    ``X-Tenant-ID`` header wins over the subdomain.
    """
    if settings.tenancy_mode != "multi":
        return settings.default_org_id
    candidate = (header_value or "").strip() or org_from_host(host)
    if not candidate:
        raise RequestValidationFailed(
            "Tenant resolution failed: provide X-Tenant-ID header or subdomain",
            code="tenant_required",
        )
    return normalize_org_id(candidate)
