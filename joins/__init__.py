"""
Join planning module.

This module provides:
- Primary table selection
- One-hop join planning over the fixed relationship table
"""

from .planner import JoinPath, TableJoinPlanner, TablePlan

__all__ = [
    "JoinPath",
    "TableJoinPlanner",
    "TablePlan",
]
