"""
Plan validation module.

This module provides:
- Query plan checks against the vocabulary schemas
- Display-only SQL previews
"""

from .plan_validator import PlanValidator, ValidationResult
from .sql_preview import render_sql_preview

__all__ = [
    "PlanValidator",
    "ValidationResult",
    "render_sql_preview",
]
