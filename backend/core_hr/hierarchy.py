"""HierarchyResolver — reporting-line traversal over ``reports_to_id``.

Business logic:
  - The subtree of a user is the user plus everyone who transitively
    reports to them, at any depth.
  - The adjacency map is loaded once per call; traversal is breadth-first
    over it with no further queries.
  - Reaching an already-visited node means the stored graph has a cycle,
    which is a data-integrity failure rather than a silently-truncated
    result.
  - Writes to ``reports_to_id`` are guarded so that no new cycle can be
    introduced through the API.
"""

from __future__ import annotations

import logging
import uuid
from collections import defaultdict, deque
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.common.exceptions import DataIntegrityError, ValidationException
from backend.core_hr.models import Employee

logger = logging.getLogger(__name__)


class HierarchyResolver:
    """Read-only queries over the reporting graph."""

    @staticmethod
    async def _load_graph(
        db: AsyncSession,
    ) -> tuple[set[uuid.UUID], dict[uuid.UUID, list[uuid.UUID]]]:
        """(all employee ids, manager id -> direct report ids)."""
        rows = await db.execute(select(Employee.id, Employee.reports_to_id))
        known: set[uuid.UUID] = set()
        children: dict[uuid.UUID, list[uuid.UUID]] = defaultdict(list)
        for emp_id, manager_id in rows.all():
            known.add(emp_id)
            if manager_id is not None:
                children[manager_id].append(emp_id)
        return known, children

    @staticmethod
    def walk(
        children: dict[uuid.UUID, list[uuid.UUID]],
        root: uuid.UUID,
    ) -> set[uuid.UUID]:
        """BFS from *root* over an in-memory children map.

        Raises DataIntegrityError when a node is reached twice.
        """
        visited: set[uuid.UUID] = {root}
        queue: deque[uuid.UUID] = deque([root])
        while queue:
            node = queue.popleft()
            for child in children.get(node, ()):
                if child in visited:
                    logger.error(
                        "Reporting cycle detected under %s at %s", root, child,
                    )
                    raise DataIntegrityError(
                        f"Reporting hierarchy contains a cycle at employee '{child}'.",
                    )
                visited.add(child)
                queue.append(child)
        return visited

    @staticmethod
    async def subtree_of(
        db: AsyncSession,
        user_id: uuid.UUID,
    ) -> set[uuid.UUID]:
        """Return *user_id* plus all transitive reports; empty if unknown."""
        known, children = await HierarchyResolver._load_graph(db)
        if user_id not in known:
            return set()
        return HierarchyResolver.walk(children, user_id)

    @staticmethod
    async def direct_reports(
        db: AsyncSession,
        user_id: uuid.UUID,
    ) -> list[Employee]:
        result = await db.execute(
            select(Employee)
            .where(Employee.reports_to_id == user_id)
            .order_by(Employee.first_name, Employee.last_name)
        )
        return list(result.scalars().all())

    @staticmethod
    async def assert_can_report_to(
        db: AsyncSession,
        employee_id: uuid.UUID,
        manager_id: Optional[uuid.UUID],
    ) -> None:
        """Refuse a reporting edge that would close a cycle."""
        if manager_id is None:
            return
        if manager_id == employee_id:
            raise ValidationException(
                {"reports_to_id": ["An employee cannot report to themselves."]},
            )
        subtree = await HierarchyResolver.subtree_of(db, employee_id)
        if manager_id in subtree:
            raise ValidationException(
                {"reports_to_id": ["The new manager reports (directly or indirectly) to this employee."]},
            )
