# Overview: Explicit caller identity and branch scope threaded into every core operation.

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class CallerContext:
    """
    Who is calling and which branch they may touch.

    branch_id is None only for owner-level callers (cross-branch) and for
    anonymous guests before a branch has been chosen.
    """
    user_id: int | None
    role: str | None
    branch_id: int | None
    permissions: frozenset[str] = field(default_factory=frozenset)

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None

    @property
    def is_owner(self) -> bool:
        return self.is_authenticated and self.role == "owner"

    def has(self, permission_code: str) -> bool:
        return permission_code in self.permissions

    @classmethod
    def guest(cls, branch_id: int | None = None) -> "CallerContext":
        """Unauthenticated customer (WEB ordering, public tracking)."""
        return cls(user_id=None, role=None, branch_id=branch_id)
