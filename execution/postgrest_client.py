"""
Supabase REST (PostgREST) executor.

Translates a QueryPlan into a single GET request:

    GET /rest/v1/sales?select=*,customers!inner(*)
        &customers.name=ilike.*Ahmed Hassan*
        &total_amount=gt.500
        &sale_date=gte.2026-10-18&sale_date=lt.2026-10-19
        &limit=20
"""
import logging
from typing import Any, Dict, List, Optional, Tuple

import httpx

from config.app_config import SupabaseConfig, get_supabase_config
from filters.filter_builder import QueryPlan
from .executor import ExecutionResult, QueryExecutionError, QueryExecutor, describe_filters

logger = logging.getLogger(__name__)


NUMERIC_OPERATORS = {"<": "lt", ">": "gt"}


def build_params(plan: QueryPlan, limit: int) -> List[Tuple[str, str]]:
    """Build PostgREST query parameters for a plan."""
    primary = plan.primary_table

    def key(table: str, column: str) -> str:
        return column if table == primary else f"{table}.{column}"

    select = "*"
    for join in plan.joins:
        select += f",{join.right_table}!inner(*)"
    params: List[Tuple[str, str]] = [("select", select)]

    filters = plan.filters
    for f in filters.text:
        params.append((key(f.table, f.field), f"ilike.*{f.value}*"))
    for f in filters.numeric:
        params.append((key(f.table, f.field), f"{NUMERIC_OPERATORS[f.operator]}.{f.value}"))
    for f in filters.temporal:
        if f.is_range:
            params.append((key(f.table, f.field), f"gte.{f.start}"))
            params.append((key(f.table, f.field), f"lt.{f.end}"))
        else:
            params.append((key(f.table, f.field), f"eq.{f.equals}"))
    if filters.identity is not None:
        identity = filters.identity
        params.append((key(identity.table, identity.field), f"eq.{identity.value}"))

    params.append(("limit", str(limit)))
    return params


class PostgrestExecutor(QueryExecutor):
    """Execute plans through the Supabase REST API."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        schema: str = "public",
        timeout: float = 30.0,
        client: Optional[httpx.Client] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.schema = schema
        self._http = client or httpx.Client(timeout=timeout)

    @classmethod
    def from_config(cls, config: Optional[SupabaseConfig] = None) -> "PostgrestExecutor":
        """Build from environment configuration; raises ConfigurationError if unset."""
        config = config or get_supabase_config()
        return cls(
            base_url=config.url,
            api_key=config.anon_key,
            schema=config.schema,
            timeout=config.timeout_seconds,
        )

    def _headers(self) -> Dict[str, str]:
        return {
            "apikey": self.api_key,
            "Authorization": f"Bearer {self.api_key}",
            "Accept": "application/json",
            "Accept-Profile": self.schema,
        }

    def execute(self, plan: QueryPlan, limit: int = 20) -> ExecutionResult:
        if not plan.has_table:
            raise QueryExecutionError("Plan has no primary table", plan=plan)

        params = build_params(plan, limit)
        url = f"{self.base_url}/rest/v1/{plan.primary_table}"
        logger.info(f"Querying {plan.primary_table} with {len(params) - 2} filter params")

        try:
            r = self._http.get(url, headers=self._headers(), params=params)
            r.raise_for_status()
            rows: Any = r.json()
        except httpx.HTTPStatusError as e:
            detail = e.response.text[:300]
            raise QueryExecutionError(
                f"Database returned HTTP {e.response.status_code} for {plan.primary_table}: {detail}",
                plan=plan,
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            raise QueryExecutionError(f"Database request failed: {e}", plan=plan) from e
        except ValueError as e:
            raise QueryExecutionError(f"Database returned invalid JSON: {e}", plan=plan) from e

        if not isinstance(rows, list):
            raise QueryExecutionError("Database returned a non-list response", plan=plan)

        logger.info(f"Found {len(rows)} records in {plan.primary_table}")
        return ExecutionResult(rows=rows, applied_filters=describe_filters(plan))
