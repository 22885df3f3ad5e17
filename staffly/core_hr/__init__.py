"""Core HR module — Employee and Department models plus balance endpoints."""

from staffly.core_hr.models import Department, Employee

__all__ = ["Employee", "Department"]
