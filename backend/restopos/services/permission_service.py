# Overview: Role-based capability checks on an explicit CallerContext.

"""
Permission Checking

Capabilities come from the role defaults in restopos.permissions plus the
per-user can_void grant. They are resolved once per request into the
CallerContext; core operations only ever consult the context.

DESIGN PRINCIPLES:
- Fail closed: deny unless the role (or a user grant) carries the code
- Log denials only
"""

from __future__ import annotations

from flask import current_app, has_app_context

from ..context import CallerContext
from ..errors import PermissionDeniedError
from ..models import User
from ..permissions import DEFAULT_ROLE_PERMISSIONS, validate_permission_code

VOID_PERMISSION = "VOID_ORDER"


def get_role_permissions(role: str | None) -> frozenset[str]:
    return DEFAULT_ROLE_PERMISSIONS.get(role or "", frozenset())


def get_user_permissions(user: User) -> frozenset[str]:
    permissions = set(get_role_permissions(user.role))
    if user.can_void:
        permissions.add(VOID_PERMISSION)
    return frozenset(permissions)


def build_context(user: User, branch_id: int | None) -> CallerContext:
    """branch_id comes from the session, captured at login."""
    return CallerContext(
        user_id=user.id,
        role=user.role,
        branch_id=branch_id,
        permissions=get_user_permissions(user),
    )


def require_permission(ctx: CallerContext, permission_code: str) -> None:
    """
    Raise PermissionDeniedError unless the caller holds permission_code.

    Usage:
        require_permission(ctx, "VOID_ORDER")
    """
    if not validate_permission_code(permission_code):
        raise ValueError(f"Unknown permission code: {permission_code}")

    if ctx.has(permission_code):
        return

    if has_app_context():
        current_app.logger.warning(
            "Permission denied: user_id=%s role=%s branch_id=%s permission=%s",
            ctx.user_id,
            ctx.role,
            ctx.branch_id,
            permission_code,
        )
    if not ctx.is_authenticated:
        raise PermissionDeniedError("Authentication required", {"permission": permission_code})
    raise PermissionDeniedError(f"Permission denied: {permission_code}", {"permission": permission_code})


def can_void(ctx: CallerContext) -> bool:
    return ctx.has(VOID_PERMISSION)
