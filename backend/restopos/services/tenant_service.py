"""
Branch Scoping Helpers

Every core operation receives an explicit CallerContext. This module turns
that context into the branch a read or write is allowed to touch.

SECURITY INVARIANTS:
1. Scoped (non-owner) callers always act on ctx.branch_id; a branch_id from
   client input never widens their scope
2. Owner-level callers must name the branch explicitly on writes
3. Entities outside the caller's scope are reported exactly like missing
   ones ("not found or access denied")

USAGE:
    branch = resolve_write_branch(ctx, requested_branch_id)
    order = get_scoped(Order, order_id, read_scope(ctx), "Order")
"""

from __future__ import annotations

from flask import current_app, has_app_context

from ..context import CallerContext
from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import Branch


def require_active_branch(branch_id: int) -> Branch:
    branch = db.session.get(Branch, branch_id)
    if branch is None or not branch.is_active:
        raise NotFoundError.scoped("Branch", branch_id)
    return branch


def resolve_write_branch(ctx: CallerContext, requested_branch_id: int | None = None) -> Branch:
    """
    Branch a write must land in.

    - owner: requested_branch_id is required
    - scoped staff: ctx.branch_id, client input ignored
    - guest (WEB ordering): requested_branch_id is required
    """
    if ctx.is_owner:
        if requested_branch_id is None:
            raise ValidationError("branch_id is required for owner-level users")
        return require_active_branch(requested_branch_id)

    if ctx.is_authenticated:
        if ctx.branch_id is None:
            raise ValidationError("User is not assigned to a branch")
        if requested_branch_id is not None and requested_branch_id != ctx.branch_id:
            _log_cross_branch_attempt(ctx, requested_branch_id)
        return require_active_branch(ctx.branch_id)

    if requested_branch_id is None:
        raise ValidationError("branch_id is required")
    return require_active_branch(requested_branch_id)


def read_scope(ctx: CallerContext, requested_branch_id: int | None = None) -> int | None:
    """
    Branch filter for reads. None means "all branches" and is only ever
    returned for owners who did not ask for a specific branch.
    """
    if ctx.is_owner:
        return requested_branch_id
    if ctx.is_authenticated and requested_branch_id is not None and requested_branch_id != ctx.branch_id:
        _log_cross_branch_attempt(ctx, requested_branch_id)
    return ctx.branch_id


def scoped_query(model, branch_id: int | None):
    """
    Base query limited to one branch (or unfiltered for branch_id=None).

    Usage:
        tables = scoped_query(DiningTable, branch_id).filter_by(is_active=True).all()
    """
    query = db.session.query(model)
    if branch_id is not None:
        query = query.filter(model.branch_id == branch_id)
    return query


def get_scoped(model, entity_id: int, branch_id: int | None, entity_name: str):
    """Fetch one row inside the scope or raise the uniform not-found error."""
    entity = scoped_query(model, branch_id).filter(model.id == entity_id).first()
    if entity is None:
        raise NotFoundError.scoped(entity_name, entity_id)
    return entity


def paginate(query, page: int, limit: int) -> tuple[list, dict]:
    total = query.order_by(None).count()
    items = query.offset((page - 1) * limit).limit(limit).all()
    return items, {
        "page": page,
        "limit": limit,
        "total": total,
        "pages": (total + limit - 1) // limit if limit else 1,
    }


def _log_cross_branch_attempt(ctx: CallerContext, requested_branch_id: int) -> None:
    if has_app_context():
        current_app.logger.warning(
            "Cross-branch access attempt: user_id=%s branch_id=%s requested_branch_id=%s",
            ctx.user_id,
            ctx.branch_id,
            requested_branch_id,
        )
