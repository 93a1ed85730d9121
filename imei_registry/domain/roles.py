from __future__ import annotations

from enum import StrEnum


class AccountRole(StrEnum):
    SUPER_ADMIN = "SuperAdmin"
    ADMIN = "Admin"
    USER = "User"


ADMIN_ROLES = frozenset({AccountRole.SUPER_ADMIN, AccountRole.ADMIN})


def is_admin_role(role: AccountRole | str) -> bool:
    return role in ADMIN_ROLES
