"""
Query executor contract.

The executor is the only component that talks to the database. It takes a
QueryPlan and returns rows, or raises QueryExecutionError; an empty result is
a success, never an error.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from filters.filter_builder import QueryPlan


class QueryExecutionError(Exception):
    """Raised when the database could not answer a plan."""

    def __init__(self, message: str, plan: Optional[QueryPlan] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.plan = plan
        self.status_code = status_code

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": str(self),
            "statusCode": self.status_code,
            "plan": self.plan.to_dict() if self.plan else None,
        }


@dataclass
class ExecutionResult:
    """Rows returned for a plan."""
    rows: List[Dict[str, Any]] = field(default_factory=list)
    applied_filters: List[str] = field(default_factory=list)

    @property
    def row_count(self) -> int:
        return len(self.rows)

    @property
    def columns(self) -> List[str]:
        return list(self.rows[0].keys()) if self.rows else []

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rows": self.rows,
            "rowCount": self.row_count,
            "columns": self.columns,
            "appliedFilters": self.applied_filters,
        }


def describe_filters(plan: QueryPlan) -> List[str]:
    """Human-readable description of every filter in a plan."""
    described = []
    filters = plan.filters
    for f in filters.text:
        described.append(f"{f.column} contains '{f.value}'")
    for f in filters.numeric:
        described.append(f"{f.column} {f.operator} {f.value}")
    for f in filters.temporal:
        if f.is_range:
            described.append(f"{f.column} from {f.start} to {f.end}")
        else:
            described.append(f"{f.column} = {f.equals}")
    if filters.identity is not None:
        described.append(f"{filters.identity.column} = '{filters.identity.value}'")
    return described


class QueryExecutor(ABC):
    """Executes query plans against a data source."""

    @abstractmethod
    def execute(self, plan: QueryPlan, limit: int = 20) -> ExecutionResult:
        """
        Run `plan` and return at most `limit` rows.

        Raises:
            QueryExecutionError: If the data source fails
        """
        raise NotImplementedError
