# Overview: Role ranking and the single capability check used by every protected route.

"""
Role-based authorization.

Every protected route asks one question through ``authorize``: does this
session hold at least ``required_role``, and (for branch-scoped actions) is
it acting inside its own branch? The answer is a typed
``AuthorizationDecision`` rather than a bare boolean so callers can log and
report the reason.

ROLES (ascending):
- Cashier: POS operations in own branch
- Manager: branch user management and table configuration in own branch
- Admin: head office administrator, any branch
"""

from __future__ import annotations

from dataclasses import dataclass

from ..errors import AuthorizationError


ROLE_CASHIER = "Cashier"
ROLE_MANAGER = "Manager"
ROLE_ADMIN = "Admin"

ROLE_RANK = {
    ROLE_CASHIER: 1,
    ROLE_MANAGER: 2,
    ROLE_ADMIN: 3,
}

# Roles a branch user record may hold
BRANCH_USER_ROLES = (ROLE_MANAGER, ROLE_CASHIER)


@dataclass(frozen=True)
class AuthorizationDecision:
    allowed: bool
    reason: str | None = None

    def __bool__(self) -> bool:
        return self.allowed


def role_at_least(role: str | None, required_role: str) -> bool:
    if role not in ROLE_RANK:
        return False
    return ROLE_RANK[role] >= ROLE_RANK[required_role]


def authorize(context, required_role: str, branch_id: int | None = None) -> AuthorizationDecision:
    """
    Decide whether ``context`` (a SessionContext) may perform an action.

    Admins may act on any branch. Everyone else must hold the required role
    and, when ``branch_id`` is given, belong to that branch.
    """
    if context is None:
        return AuthorizationDecision(False, "Authentication required")

    if not role_at_least(context.role, required_role):
        return AuthorizationDecision(False, f"Requires role {required_role} or higher")

    if context.role == ROLE_ADMIN:
        return AuthorizationDecision(True)

    if branch_id is not None and context.branch_id != branch_id:
        return AuthorizationDecision(False, "Access to this branch is not permitted")

    return AuthorizationDecision(True)


def require(context, required_role: str, branch_id: int | None = None) -> None:
    """Raise AuthorizationError unless ``authorize`` allows the action."""
    decision = authorize(context, required_role, branch_id)
    if not decision:
        raise AuthorizationError(
            "Permission denied",
            details={"reason": decision.reason, "required_role": required_role},
        )
