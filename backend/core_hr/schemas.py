"""Core HR Pydantic v2 schemas — request / response validation.

Naming conventions:
  - *Update             → request bodies (write)
  - *Summary / *Team    → read representations
"""


import uuid
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


# ═════════════════════════════════════════════════════════════════════
# Employee
# ═════════════════════════════════════════════════════════════════════


class EmployeeSummary(BaseModel):
    """Directory entry as seen by anyone with the employee in scope."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_code: str
    first_name: str
    last_name: str
    full_name: str
    email: str
    designation: Optional[str] = None
    role: str
    is_technician: bool = False
    reports_to_id: Optional[uuid.UUID] = None
    is_active: Optional[bool] = True


class TeamResponse(BaseModel):
    """A manager's direct reports plus everyone below them."""

    manager: EmployeeSummary
    direct_reports: list[EmployeeSummary]
    subtree_size: int = Field(..., description="Members below the manager, self excluded")
    members: list[EmployeeSummary]


class ReportsToUpdate(BaseModel):
    """Move an employee under a new manager; ``null`` makes them a root."""

    reports_to_id: Optional[uuid.UUID] = None
