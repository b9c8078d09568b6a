"""Core HR module — Employee model, reporting hierarchy, people views."""

from backend.core_hr.models import Employee

__all__ = ["Employee"]
