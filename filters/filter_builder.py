"""
Structured filter construction.

Turns classified entities plus a table plan into a QueryPlan: text filters
(case-insensitive substring), numeric comparisons, date ranges on the
primary table's date column, and at most one identity filter for
first-person pronouns.
"""
import logging
from dataclasses import dataclass, field, asdict
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Sequence, Union

from joins.planner import JoinPath, TablePlan
from nlu.candidates import Entity, EntityType, MULTIPLE_TABLES
from nlu.vocabulary import Vocabulary, default_vocabulary

logger = logging.getLogger(__name__)


# =============================================================================
# Data Classes
# =============================================================================

@dataclass
class TextFilter:
    """Case-insensitive substring match."""
    table: str
    field: str
    value: str
    operator: str = "ilike"

    @property
    def column(self) -> str:
        return f"{self.table}.{self.field}"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class NumericFilter:
    """Numeric comparison."""
    table: str
    field: str
    operator: str                       # "<" or ">"
    value: Union[int, float]

    @property
    def column(self) -> str:
        return f"{self.table}.{self.field}"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class TemporalFilter:
    """Date filter: half-open range [start, end) or equality with a point."""
    table: str
    field: str
    start: Optional[str] = None
    end: Optional[str] = None
    equals: Optional[str] = None

    @property
    def column(self) -> str:
        return f"{self.table}.{self.field}"

    @property
    def is_range(self) -> bool:
        return self.equals is None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class IdentityFilter:
    """Equality against the current user's identity."""
    table: str
    field: str
    value: str
    via: Optional[str] = None           # owner column on the primary table, e.g. "tasks.assigned_to"

    @property
    def column(self) -> str:
        return f"{self.table}.{self.field}"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class FilterSet:
    """All filters of a plan, grouped by kind."""
    text: List[TextFilter] = field(default_factory=list)
    numeric: List[NumericFilter] = field(default_factory=list)
    temporal: List[TemporalFilter] = field(default_factory=list)
    identity: Optional[IdentityFilter] = None

    @property
    def count(self) -> int:
        return len(self.text) + len(self.numeric) + len(self.temporal) + (1 if self.identity else 0)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "text": [f.to_dict() for f in self.text],
            "numeric": [f.to_dict() for f in self.numeric],
            "temporal": [f.to_dict() for f in self.temporal],
            "identity": self.identity.to_dict() if self.identity else None,
        }


@dataclass
class QueryPlan:
    """Everything the executor needs: primary table, joins and filters."""
    primary_table: Optional[str]
    join_tables: List[str] = field(default_factory=list)
    joins: List[JoinPath] = field(default_factory=list)
    filters: FilterSet = field(default_factory=FilterSet)
    unresolved_entities: List[Entity] = field(default_factory=list)
    ambiguous_entities: List[Entity] = field(default_factory=list)

    @property
    def tables(self) -> List[str]:
        return ([self.primary_table] if self.primary_table else []) + self.join_tables

    @property
    def has_table(self) -> bool:
        return self.primary_table is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "primaryTable": self.primary_table,
            "joinTables": list(self.join_tables),
            "joins": [j.to_dict() for j in self.joins],
            "filters": self.filters.to_dict(),
            "unresolvedEntities": [e.to_dict() for e in self.unresolved_entities],
            "ambiguousEntities": [e.to_dict() for e in self.ambiguous_entities],
        }


# =============================================================================
# Builder
# =============================================================================

class FilterBuilder:
    """Build a QueryPlan from entities and a TablePlan."""

    def __init__(self, vocabulary: Optional[Vocabulary] = None):
        self.vocabulary = vocabulary or default_vocabulary()

    def build(self, entities: Sequence[Entity], table_plan: TablePlan) -> QueryPlan:
        plan = QueryPlan(
            primary_table=table_plan.primary_table,
            join_tables=list(table_plan.join_tables),
            joins=list(table_plan.joins),
            unresolved_entities=list(table_plan.unresolved_entities),
        )
        if not plan.has_table:
            plan.ambiguous_entities = [e for e in entities if e.is_ambiguous]
            return plan

        for entity in entities:
            if entity.is_table_mention:
                continue
            if entity.type == EntityType.TEMPORAL:
                self._add_temporal(plan, entity)
            elif entity.type == EntityType.PRONOUN:
                self._add_identity(plan, entity)
            elif entity.type == EntityType.NUMERIC_FILTER:
                self._add_numeric(plan, entity)
            elif entity.is_ambiguous:
                plan.ambiguous_entities.append(entity)
            else:
                self._add_text(plan, entity)

        logger.info(f"Built {plan.filters.count} filters for {plan.primary_table}")
        return plan

    # -------------------------------------------------------------------------
    # Per-kind rules
    # -------------------------------------------------------------------------

    def _add_text(self, plan: QueryPlan, entity: Entity) -> None:
        if entity.table == MULTIPLE_TABLES:
            reading = self._reading_in_plan(plan, entity)
            if reading is None:
                self._mark_unresolved(plan, entity)
                return
            table, column, value = reading.table, reading.field, reading.canonical
        else:
            if entity.table not in plan.tables:
                return
            schema = self.vocabulary.schema(entity.table)
            table = entity.table
            column = entity.field or (schema.display_field if schema else None)
            value = entity.value if entity.value is not None else entity.text
            if column is None:
                self._mark_unresolved(plan, entity)
                return

        text_filter = TextFilter(table=table, field=column, value=str(value))
        if text_filter not in plan.filters.text:
            plan.filters.text.append(text_filter)

    def _add_numeric(self, plan: QueryPlan, entity: Entity) -> None:
        if entity.table not in plan.tables or entity.field is None:
            return
        numeric_filter = NumericFilter(
            table=entity.table,
            field=entity.field,
            operator=entity.operator,
            value=entity.value,
        )
        if numeric_filter not in plan.filters.numeric:
            plan.filters.numeric.append(numeric_filter)

    def _add_temporal(self, plan: QueryPlan, entity: Entity) -> None:
        schema = self.vocabulary.schema(plan.primary_table)
        if schema is None or not schema.has_column(schema.date_column):
            self._mark_unresolved(plan, entity)
            return

        column = schema.column(schema.date_column)
        if entity.range_start:
            temporal = TemporalFilter(
                table=plan.primary_table, field=column.name,
                start=entity.range_start, end=entity.range_end,
            )
        elif column.column_type == "date":
            # A clock time means nothing to a date column; use the whole day.
            day = datetime.fromisoformat(entity.value).date()
            temporal = TemporalFilter(
                table=plan.primary_table, field=column.name,
                start=day.isoformat(), end=(day + timedelta(days=1)).isoformat(),
            )
        else:
            temporal = TemporalFilter(table=plan.primary_table, field=column.name, equals=entity.value)
        plan.filters.temporal.append(temporal)

    def _add_identity(self, plan: QueryPlan, entity: Entity) -> None:
        if not entity.value or plan.filters.identity is not None:
            return

        schema = self.vocabulary.schema(plan.primary_table)
        if schema is None or not schema.owner_column:
            logger.debug(f"{plan.primary_table} has no owner column; pronoun ignored")
            return

        if not schema.owner_references_users:
            plan.filters.identity = IdentityFilter(
                table=plan.primary_table, field=schema.owner_column, value=entity.value,
            )
        elif "users" in plan.join_tables:
            users = self.vocabulary.schema("users")
            plan.filters.identity = IdentityFilter(
                table="users",
                field=users.display_field if users else "full_name",
                value=entity.value,
                via=f"{plan.primary_table}.{schema.owner_column}",
            )

    def _reading_in_plan(self, plan: QueryPlan, entity: Entity):
        """Pick the reading of a multi-table term that lives on a planned table."""
        for table in plan.tables:
            for reading in entity.readings:
                if reading.table == table:
                    return reading
        if entity.category:
            for table in plan.tables:
                column = self.vocabulary.descriptor_fields.get(entity.category, {}).get(table)
                if column:
                    return _DescriptorReading(table, column, entity.value)
        return None

    @staticmethod
    def _mark_unresolved(plan: QueryPlan, entity: Entity) -> None:
        if entity not in plan.unresolved_entities:
            plan.unresolved_entities.append(entity)


@dataclass(frozen=True)
class _DescriptorReading:
    table: str
    field: str
    canonical: str
