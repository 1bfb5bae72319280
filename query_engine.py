"""
Unified Query Engine for natural language database queries.

This module provides the core orchestration logic that can be used by:
- REST API (chatbot/api_server.py)
- CLI tools
- Other integration layers

The QueryEngine is designed to be:
- Stateless (every request is processed from scratch)
- Reusable (all steps can be called independently)
- Injectable (vocabulary, executor and clock are constructor arguments)

Architecture:
    QueryEngine (this file)
        ├── Entity Extraction (scanner, fuzzy resolver, temporal, pronouns)
        ├── Table Planning (primary table, one-hop joins)
        ├── Filter Building (text, numeric, temporal, identity)
        ├── Plan Validation (schema checks, SQL preview)
        └── Execution (Supabase REST)

Usage:
    from query_engine import QueryEngine

    engine = QueryEngine()

    # Full pipeline
    response = engine.process_query("my tasks due this week", current_user="Ahmed Hassan")

    # Or step by step
    extraction = engine.extract_entities("laptop stock below 10")
    plan = engine.plan_query(extraction)
    result = engine.execute_plan(plan)
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from dotenv import load_dotenv
load_dotenv()

from execution import ExecutionResult, PostgrestExecutor, QueryExecutionError, QueryExecutor
from filters import FilterBuilder, QueryPlan
from joins import TableJoinPlanner
from nlu import EntityExtractor, ExtractionResult, Vocabulary, default_vocabulary
from validation import PlanValidator, ValidationResult, render_sql_preview

logger = logging.getLogger(__name__)


# =============================================================================
# Data Classes
# =============================================================================

@dataclass
class QueryResponse:
    """Everything returned for one natural language query."""
    text: str
    extraction: ExtractionResult
    plan: QueryPlan
    summary: str
    sql_preview: Optional[str] = None
    result: Optional[ExecutionResult] = None
    validation: Optional[ValidationResult] = None
    executed: bool = False

    @property
    def rows(self) -> List[Dict[str, Any]]:
        return self.result.rows if self.result else []

    def to_dict(self) -> Dict[str, Any]:
        return {
            "query": self.text,
            "entities": [e.to_dict() for e in self.extraction.entities],
            "data": self.rows,
            "recordCount": len(self.rows),
            "summary": self.summary,
            "plan": self.plan.to_dict(),
            "primaryTable": self.plan.primary_table,
            "joinTables": list(self.plan.join_tables),
            "appliedFilters": self.result.applied_filters if self.result else [],
            "sqlQuery": self.sql_preview,
            "validation": self.validation.to_dict() if self.validation else None,
            "executed": self.executed,
            "currentUser": self.extraction.current_user,
            "currentDate": self.extraction.reference_time,
        }


# =============================================================================
# Query Engine
# =============================================================================

class QueryEngine:
    """
    Core query engine for natural language database queries.

    This class provides a unified interface for:
    - Entity extraction
    - Table and join planning
    - Filter building and validation
    - Query execution
    """

    def __init__(
        self,
        vocabulary: Optional[Vocabulary] = None,
        executor: Optional[QueryExecutor] = None,
        clock: Optional[Callable[[], datetime]] = None,
        row_limit: int = 20,
    ):
        """
        Initialize the query engine.

        Args:
            vocabulary: Rule tables; defaults to the built-in vocabulary
            executor: Query executor; built from configuration on first use if None
            clock: Reference time source for relative dates
            row_limit: Maximum rows returned per query
        """
        self.vocabulary = vocabulary or default_vocabulary()
        self.row_limit = row_limit
        self._executor = executor
        self.extractor = EntityExtractor(self.vocabulary, clock=clock)
        self.planner = TableJoinPlanner(self.vocabulary)
        self.filter_builder = FilterBuilder(self.vocabulary)
        self.validator = PlanValidator(self.vocabulary)

    # =========================================================================
    # Lazy Loading Helpers
    # =========================================================================

    def _get_executor(self) -> QueryExecutor:
        """Lazy load the executor; raises ConfigurationError if unconfigured."""
        if self._executor is None:
            self._executor = PostgrestExecutor.from_config()
        return self._executor

    # =========================================================================
    # Pipeline Steps
    # =========================================================================

    def extract_entities(self, text: str, current_user: Optional[str] = None) -> ExtractionResult:
        """Extract typed, scored entities from the query text."""
        return self.extractor.extract(text, current_user=current_user)

    def plan_query(self, extraction: ExtractionResult) -> QueryPlan:
        """Choose tables and joins, then build filters."""
        table_plan = self.planner.plan(extraction.entities)
        return self.filter_builder.build(extraction.entities, table_plan)

    def validate_plan(self, plan: QueryPlan) -> ValidationResult:
        """Check the plan against the schemas, then check its SQL preview parses."""
        validation = self.validator.validate(plan)
        sql = self.preview_sql(plan) if validation.is_valid else None
        if sql is not None:
            preview = self.validator.validate_preview(plan, sql)
            if not preview.is_valid:
                validation.is_valid = False
                validation.errors.extend(preview.errors)
        return validation

    def preview_sql(self, plan: QueryPlan) -> Optional[str]:
        return render_sql_preview(plan, row_limit=self.row_limit)

    def execute_plan(self, plan: QueryPlan) -> ExecutionResult:
        """
        Execute a plan.

        Raises:
            QueryExecutionError: If validation fails or the database errors
        """
        validation = self.validate_plan(plan)
        if not validation.can_execute:
            raise QueryExecutionError(
                f"Plan failed validation: {'; '.join(validation.errors)}",
                plan=plan,
            )
        return self._get_executor().execute(plan, limit=self.row_limit)

    # =========================================================================
    # Full Pipeline
    # =========================================================================

    def process_query(
        self,
        text: str,
        current_user: Optional[str] = None,
        execute: bool = True,
    ) -> QueryResponse:
        """
        Run the full pipeline for one query.

        When no primary table can be determined the executor is not called
        and the summary suggests tables to mention instead.

        Raises:
            QueryExecutionError: If execution was attempted and failed
        """
        extraction = self.extract_entities(text, current_user=current_user)
        plan = self.plan_query(extraction)

        if not plan.has_table:
            return QueryResponse(
                text=text,
                extraction=extraction,
                plan=plan,
                summary=self._no_table_summary(plan),
            )

        validation = self.validate_plan(plan)
        sql_preview = self.preview_sql(plan)
        response = QueryResponse(
            text=text,
            extraction=extraction,
            plan=plan,
            summary=f"Planned query on {plan.primary_table}",
            sql_preview=sql_preview,
            validation=validation,
        )
        if not execute:
            return response

        result = self.execute_plan(plan)
        response.result = result
        response.executed = True
        response.summary = self._result_summary(plan, result)
        logger.info(response.summary)
        return response

    def suggest(self, partial: str, limit: int = 10) -> List[Dict[str, Any]]:
        """Vocabulary suggestions for a partial term."""
        return self.extractor.resolver.suggest(partial, limit=limit)

    def describe_tables(self) -> List[Dict[str, Any]]:
        """Summary of every known table for clients."""
        tables = []
        for name in self.vocabulary.table_priority:
            schema = self.vocabulary.schema(name)
            if schema is None:
                continue
            tables.append({
                "name": name,
                "displayField": schema.display_field,
                "searchableFields": schema.searchable_fields,
                "dateColumn": schema.date_column,
                "joinsWith": sorted(self.vocabulary.neighbours(name)),
            })
        return tables

    # =========================================================================
    # Summaries
    # =========================================================================

    def _no_table_summary(self, plan: QueryPlan) -> str:
        tables = ", ".join(self.vocabulary.table_priority)
        summary = f"I couldn't tell which data you want. Try mentioning one of: {tables}."
        if plan.ambiguous_entities:
            hints = "; ".join(
                f"'{e.text}' could be {', '.join(e.suggestions)}" for e in plan.ambiguous_entities
            )
            summary += f" ({hints})"
        return summary

    @staticmethod
    def _result_summary(plan: QueryPlan, result: ExecutionResult) -> str:
        summary = f"Found {result.row_count} records in {plan.primary_table}"
        if plan.join_tables:
            summary += f" (joined with {', '.join(plan.join_tables)})"
        if result.applied_filters:
            summary += f" where {' and '.join(result.applied_filters)}"
        return summary


# Global instance
_engine_instance: Optional[QueryEngine] = None


def get_query_engine() -> QueryEngine:
    """Get the global QueryEngine instance, configured from the environment."""
    global _engine_instance
    if _engine_instance is None:
        from config import get_config_manager, load_config

        config = load_config()
        vocabulary = get_config_manager(
            config.vocabulary_path, config.relationships_path
        ).build_vocabulary()
        _engine_instance = QueryEngine(vocabulary=vocabulary, row_limit=config.row_limit)
    return _engine_instance


def reset_query_engine():
    """Reset the global QueryEngine instance."""
    global _engine_instance
    _engine_instance = None
