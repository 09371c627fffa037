from dataclasses import dataclass

from fastapi import Depends, Header, Request

from app.core.context import set_tenant_id, set_user_role
from app.core.errors import PermissionDenied
from app.core.permissions import PermissionCode, TeamRole, role_has_permission
from app.core.tenant import resolve_org_id
from app.services.chat_subscribers import ChatSubscriberRegistry
from app.services.query_cache import QueryCache
from app.services.query_numbering import QueryNumberSequence


@dataclass(slots=True)
class TenantContext:
    org_id: str


@dataclass(slots=True)
class CallerContext:
    """Who is calling, as asserted by the upstream gateway headers."""

    role: TeamRole | None
    user_id: str | None = None
    user_name: str | None = None
    raw_role: str | None = None

    @property
    def display_name(self) -> str:
        if self.user_name:
            return self.user_name
        if self.role:
            return f"{self.role.value.title()} User"
        return "Unknown User"


async def get_tenant_context(
    request: Request,
    tenant_id: str | None = Header(default=None, alias="X-Tenant-ID"),
) -> TenantContext:
    org_id = resolve_org_id(tenant_id, request.headers.get("host"))
    set_tenant_id(org_id)
    return TenantContext(org_id=org_id)


async def get_caller(
    user_role: str | None = Header(default=None, alias="X-User-Role"),
    user_id: str | None = Header(default=None, alias="X-User-Id"),
    user_name: str | None = Header(default=None, alias="X-User-Name"),
) -> CallerContext:
    role = TeamRole.parse(user_role)
    set_user_role(role.value if role else "-")
    return CallerContext(
        role=role,
        user_id=(user_id or "").strip() or None,
        user_name=(user_name or "").strip() or None,
        raw_role=user_role,
    )


def require_permission(permission_code: PermissionCode | str):
    async def dependency(caller: CallerContext = Depends(get_caller)) -> CallerContext:
        if not role_has_permission(caller.role, permission_code):
            raise PermissionDenied(
                "Your team is not allowed to perform this action",
                details={
                    "permission": str(PermissionCode(permission_code).value),
                    "role": caller.raw_role,
                },
            )
        return caller

    return dependency


def get_query_cache(request: Request) -> QueryCache:
    return request.app.state.query_cache


def get_query_numbers(request: Request) -> QueryNumberSequence:
    return request.app.state.query_numbers


def get_chat_subscribers(request: Request) -> ChatSubscriberRegistry:
    return request.app.state.chat_subscribers
