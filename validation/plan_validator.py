"""
Query plan validation before execution.

Validates:
1. Tables exist in the vocabulary schemas
2. Every join follows a known one-hop relationship
3. Filter columns exist on their tables (numeric filters on numeric columns)
4. Filters only touch planned tables
5. The SQL preview parses and references only planned tables
"""
import logging
from typing import Dict, List, Optional
from dataclasses import dataclass, field

import sqlglot
from sqlglot import exp
from sqlglot.errors import ParseError

from filters.filter_builder import QueryPlan
from nlu.vocabulary import Vocabulary, default_vocabulary

logger = logging.getLogger(__name__)


@dataclass
class ValidationResult:
    """Result of plan validation."""
    is_valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    suggestions: List[str] = field(default_factory=list)

    @property
    def can_execute(self) -> bool:
        """Check if the plan can be executed (no blocking errors)."""
        return self.is_valid

    def to_dict(self) -> Dict:
        return {
            "is_valid": self.is_valid,
            "errors": self.errors,
            "warnings": self.warnings,
            "suggestions": self.suggestions,
            "can_execute": self.can_execute
        }


class PlanValidator:
    """
    Validate query plans against the vocabulary schemas.

    Plans built from the default vocabulary always pass; failures point at
    an inconsistent custom vocabulary (a field name that is not a column,
    a relationship on an unknown table).
    """

    def __init__(self, vocabulary: Optional[Vocabulary] = None, dialect: str = "postgres"):
        self.vocabulary = vocabulary or default_vocabulary()
        self.dialect = dialect

    def validate(self, plan: QueryPlan) -> ValidationResult:
        errors: List[str] = []
        warnings: List[str] = []
        suggestions: List[str] = []

        if not plan.has_table:
            return ValidationResult(
                is_valid=False,
                errors=["No primary table"],
                suggestions=[f"Mention one of: {', '.join(self.vocabulary.table_names)}"],
            )

        for table in plan.tables:
            if self.vocabulary.schema(table) is None:
                errors.append(f"Unknown table: {table}")

        for join in plan.joins:
            if join.left_table != plan.primary_table:
                errors.append(f"Join {join.left_table} -> {join.right_table} does not start at the primary table")
            if self.vocabulary.relationship(join.left_table, join.right_table) is None:
                errors.append(f"No relationship between {join.left_table} and {join.right_table}")

        filters = plan.filters
        for f in filters.text:
            self._check_column(plan, f.table, f.field, errors)
        for f in filters.numeric:
            col = self._check_column(plan, f.table, f.field, errors)
            if col is not None and not col.is_numeric:
                errors.append(f"Numeric filter on non-numeric column {f.column}")
            if f.operator not in ("<", ">"):
                errors.append(f"Unsupported numeric operator {f.operator!r}")
        for f in filters.temporal:
            col = self._check_column(plan, f.table, f.field, errors)
            if col is not None and not col.is_date:
                errors.append(f"Date filter on non-date column {f.column}")
        if filters.identity is not None:
            self._check_column(plan, filters.identity.table, filters.identity.field, errors)

        if plan.unresolved_entities:
            warnings.append(
                "Ignored terms with no direct relationship to "
                f"{plan.primary_table}: {', '.join(e.text for e in plan.unresolved_entities)}"
            )
        if plan.ambiguous_entities:
            for e in plan.ambiguous_entities:
                suggestions.append(f"'{e.text}' is ambiguous; did you mean {', '.join(e.suggestions)}?")
        if filters.count == 0:
            warnings.append(f"No filters; returning the first rows of {plan.primary_table}")

        result = ValidationResult(
            is_valid=len(errors) == 0,
            errors=errors,
            warnings=warnings,
            suggestions=suggestions,
        )
        if not result.is_valid:
            logger.warning(f"Plan validation failed: {errors}")
        return result

    def validate_preview(self, plan: QueryPlan, sql: str) -> ValidationResult:
        """Parse a rendered SQL preview and check it only touches planned tables."""
        try:
            parsed = sqlglot.parse_one(sql, dialect=self.dialect)
        except ParseError as e:
            return ValidationResult(is_valid=False, errors=[f"SQL preview does not parse: {e}"])

        referenced = {t.name for t in parsed.find_all(exp.Table) if t.name}
        extra = referenced - set(plan.tables)
        if extra:
            return ValidationResult(
                is_valid=False,
                errors=[f"SQL preview references unplanned tables: {', '.join(sorted(extra))}"],
            )
        return ValidationResult(is_valid=True)

    def _check_column(self, plan: QueryPlan, table: str, column: str, errors: List[str]):
        if table not in plan.tables:
            errors.append(f"Filter on {table}.{column} but {table} is not in the plan")
            return None
        schema = self.vocabulary.schema(table)
        if schema is None:
            return None
        col = schema.column(column)
        if col is None:
            errors.append(f"Unknown column {table}.{column}")
        return col
