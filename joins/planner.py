"""
Table and join planning.

Primary table selection (first rule that yields a table wins):
1. Tables named explicitly in the text ("sales", "inventory")
2. Tables implied by entity-typed matches
3. Tables implied by info-typed and numeric matches
Ties inside a rule break by the canonical table priority.

Every other implied table is joined only when a one-hop relationship to the
primary table exists; anything else is reported as unresolved.
"""
import logging
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional, Sequence

from nlu.candidates import Entity, EntityType
from nlu.vocabulary import Vocabulary, default_vocabulary

logger = logging.getLogger(__name__)


@dataclass
class JoinPath:
    """A join from the primary table to a neighbouring table."""
    left_table: str
    right_table: str
    left_column: str
    right_column: str
    join_type: str = "inner"

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["sql"] = self.to_sql_clause()
        return data

    def to_sql_clause(self) -> str:
        """Generate SQL JOIN clause."""
        return (
            f"{self.join_type.upper()} JOIN {self.right_table} "
            f"ON {self.left_table}.{self.left_column} = {self.right_table}.{self.right_column}"
        )


@dataclass
class TablePlan:
    """Primary table, its joins, and entities the plan could not place."""
    primary_table: Optional[str]
    join_tables: List[str] = field(default_factory=list)
    joins: List[JoinPath] = field(default_factory=list)
    unresolved_entities: List[Entity] = field(default_factory=list)

    @property
    def tables(self) -> List[str]:
        return ([self.primary_table] if self.primary_table else []) + self.join_tables

    def includes(self, table: Optional[str]) -> bool:
        return table is not None and table in self.tables


class TableJoinPlanner:
    """Choose the primary table and the one-hop joins a query needs."""

    def __init__(self, vocabulary: Optional[Vocabulary] = None):
        self.vocabulary = vocabulary or default_vocabulary()

    def choose_primary(self, entities: Sequence[Entity]) -> Optional[str]:
        explicit = [e.table for e in entities if e.is_table_mention]
        entity_typed = [
            e.table for e in entities
            if e.type == EntityType.ENTITY and e.has_concrete_table and not e.is_table_mention
        ]
        info_typed = [
            e.table for e in entities
            if e.type in (EntityType.INFO, EntityType.NUMERIC_FILTER) and e.has_concrete_table
        ]

        for pool in (explicit, entity_typed, info_typed):
            known = {t for t in pool if t in self.vocabulary.tables}
            if known:
                return min(known, key=self.vocabulary.priority_rank)
        return None

    def plan(self, entities: Sequence[Entity]) -> TablePlan:
        primary = self.choose_primary(entities)
        if primary is None:
            logger.info("No primary table could be determined")
            return TablePlan(primary_table=None, unresolved_entities=[
                e for e in entities if e.has_concrete_table
            ])

        result = TablePlan(primary_table=primary)
        implied = []
        for e in entities:
            if e.has_concrete_table and e.table != primary and e.table not in implied:
                implied.append(e.table)

        if self._needs_user_join(primary, entities) and "users" not in implied:
            implied.append("users")

        for table in implied:
            rel = self.vocabulary.relationship(primary, table)
            if rel is None:
                logger.info(f"No direct relationship {primary} -> {table}; leaving unresolved")
                continue
            result.join_tables.append(table)
            result.joins.append(JoinPath(
                left_table=rel.left_table,
                right_table=rel.right_table,
                left_column=rel.left_column,
                right_column=rel.right_column,
                join_type=rel.join_type,
            ))

        result.unresolved_entities = [
            e for e in entities if e.has_concrete_table and not result.includes(e.table)
        ]
        logger.info(
            f"Planned primary={primary} joins={result.join_tables} "
            f"unresolved={len(result.unresolved_entities)}"
        )
        return result

    def _needs_user_join(self, primary: str, entities: Sequence[Entity]) -> bool:
        """A resolved pronoun on a table owned through users.id needs users joined."""
        schema = self.vocabulary.schema(primary)
        if schema is None or not schema.owner_references_users:
            return False
        return any(e.type == EntityType.PRONOUN and e.value for e in entities)
