from enum import Enum


class TeamRole(str, Enum):
    OPERATIONS = "operations"
    SALES = "sales"
    CREDIT = "credit"

    @classmethod
    def parse(cls, value: str | None) -> "TeamRole | None":
        if value is None:
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


class PermissionCode(str, Enum):
    QUERY_CREATE = "query.create"


# Resolving queries and chatting are open to every team; only raising queries is gated.
ROLE_PERMISSIONS: dict[TeamRole, frozenset[PermissionCode]] = {
    TeamRole.OPERATIONS: frozenset({PermissionCode.QUERY_CREATE}),
    TeamRole.SALES: frozenset(),
    TeamRole.CREDIT: frozenset(),
}


def role_has_permission(role: TeamRole | None, permission_code: PermissionCode | str) -> bool:
    if role is None:
        return False
    try:
        code = PermissionCode(permission_code)
    except ValueError:
        return False
    return code in ROLE_PERMISSIONS.get(role, frozenset())
