"""
Query execution module.

This module provides:
- The executor contract and its error type
- A Supabase REST (PostgREST) executor
"""

from .executor import ExecutionResult, QueryExecutionError, QueryExecutor, describe_filters
from .postgrest_client import PostgrestExecutor, build_params

__all__ = [
    "ExecutionResult",
    "QueryExecutionError",
    "QueryExecutor",
    "describe_filters",
    "PostgrestExecutor",
    "build_params",
]
