"""AccessScopeResolver — which records of a resource type a caller may see.

Business logic:
  - Global roles see everything of a resource type; which roles are
    global differs per type (HR is *denied* tickets outright).
  - Manager-tier roles (admin, manager) see records owned by anyone in
    their reporting subtree, themselves included.
  - Everyone else sees only their own records.
  - Technicians see tickets assigned to them or raised by them.
  - A missing caller gets a deny-all scope.

The resolver returns a declarative ``ScopeFilter``; callers turn it into
a SQL clause with ``to_clause(Model)`` or test a loaded row with
``allows(row)``.  It never raises for role problems.
"""

from __future__ import annotations

import enum
import uuid
from dataclasses import dataclass, field
from typing import Any, Optional

import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncSession

from backend.auth.dependencies import Caller
from backend.common.constants import MANAGER_TIER_ROLES, ResourceType, UserRole
from backend.core_hr.hierarchy import HierarchyResolver


class ScopeKind(str, enum.Enum):
    unrestricted = "unrestricted"
    deny = "deny"
    membership = "membership"


@dataclass(frozen=True)
class ScopeFilter:
    """Row predicate: any of ``fields`` is in ``ids`` (OR-ed)."""

    kind: ScopeKind
    fields: tuple[str, ...] = ()
    ids: frozenset[uuid.UUID] = field(default_factory=frozenset)

    @classmethod
    def unrestricted(cls) -> "ScopeFilter":
        return cls(ScopeKind.unrestricted)

    @classmethod
    def deny(cls) -> "ScopeFilter":
        return cls(ScopeKind.deny)

    @classmethod
    def members(cls, fields: tuple[str, ...], ids: set[uuid.UUID]) -> "ScopeFilter":
        return cls(ScopeKind.membership, fields, frozenset(ids))

    @property
    def is_unrestricted(self) -> bool:
        return self.kind is ScopeKind.unrestricted

    def to_clause(self, model: Any) -> sa.ColumnElement[bool]:
        """Render as a WHERE clause against *model*."""
        if self.kind is ScopeKind.unrestricted:
            return sa.true()
        if self.kind is ScopeKind.deny or not self.ids:
            return sa.false()
        return sa.or_(*(getattr(model, name).in_(list(self.ids)) for name in self.fields))

    def allows(self, obj: Any) -> bool:
        """Test a single loaded record against the filter."""
        if self.kind is ScopeKind.unrestricted:
            return True
        if self.kind is ScopeKind.deny:
            return False
        return any(getattr(obj, name, None) in self.ids for name in self.fields)

    def allows_id(self, value: Optional[uuid.UUID]) -> bool:
        """Whether a record owned by *value* would pass the filter."""
        if self.kind is ScopeKind.unrestricted:
            return True
        if self.kind is ScopeKind.deny:
            return False
        return value in self.ids


# ── Per-resource rules ──────────────────────────────────────────────

@dataclass(frozen=True)
class _ResourceRule:
    global_roles: frozenset[UserRole]
    owner_field: str
    denied_roles: frozenset[UserRole] = frozenset()


_RULES: dict[ResourceType, _ResourceRule] = {
    ResourceType.attendance: _ResourceRule(
        frozenset({UserRole.super_admin, UserRole.hr}), "employee_id",
    ),
    ResourceType.user_list: _ResourceRule(
        frozenset({UserRole.super_admin, UserRole.hr}), "id",
    ),
    ResourceType.leave: _ResourceRule(
        frozenset({UserRole.super_admin, UserRole.hr}), "employee_id",
    ),
    ResourceType.timesheet: _ResourceRule(
        frozenset({UserRole.super_admin, UserRole.hr}), "employee_id",
    ),
    ResourceType.ticket: _ResourceRule(
        frozenset({UserRole.super_admin}),
        "created_by_id",
        denied_roles=frozenset({UserRole.hr}),
    ),
}


class AccessScopeResolver:
    """Turns (caller, resource type) into a ScopeFilter."""

    @staticmethod
    async def scope_for(
        db: AsyncSession,
        caller: Optional[Caller],
        resource_type: ResourceType,
    ) -> ScopeFilter:
        if caller is None:
            return ScopeFilter.deny()

        rule = _RULES[resource_type]
        if caller.role in rule.global_roles:
            return ScopeFilter.unrestricted()
        # A denied role stays denied even with the technician flag
        if caller.role in rule.denied_roles:
            return ScopeFilter.deny()

        if resource_type is ResourceType.ticket and caller.is_technician:
            return ScopeFilter.members(
                ("assigned_to_id", "created_by_id"), {caller.id},
            )

        if caller.role in MANAGER_TIER_ROLES:
            subtree = await HierarchyResolver.subtree_of(db, caller.id)
            # Caller may be unknown to the directory; self is always in scope
            subtree.add(caller.id)
            return ScopeFilter.members((rule.owner_field,), subtree)

        return ScopeFilter.members((rule.owner_field,), {caller.id})
