"""
Display-only SQL rendering of a query plan.

The executor never runs this SQL; it is shown to the user so they can see
what the plan means.
"""
from typing import List, Optional

import sqlglot
from sqlglot import exp

from filters.filter_builder import QueryPlan


def _literal(value) -> exp.Expression:
    if isinstance(value, (int, float)):
        return exp.Literal.number(value)
    return exp.Literal.string(str(value))


def plan_conditions(plan: QueryPlan) -> List[exp.Expression]:
    """Translate every filter of the plan into a sqlglot condition."""
    conditions: List[exp.Expression] = []
    filters = plan.filters

    for f in filters.text:
        conditions.append(exp.ILike(
            this=exp.column(f.field, table=f.table),
            expression=exp.Literal.string(f"%{f.value}%"),
        ))

    for f in filters.numeric:
        comparison = exp.LT if f.operator == "<" else exp.GT
        conditions.append(comparison(this=exp.column(f.field, table=f.table), expression=_literal(f.value)))

    for f in filters.temporal:
        col = exp.column(f.field, table=f.table)
        if f.is_range:
            conditions.append(exp.GTE(this=col, expression=_literal(f.start)))
            conditions.append(exp.LT(this=col.copy(), expression=_literal(f.end)))
        else:
            conditions.append(exp.EQ(this=col, expression=_literal(f.equals)))

    if filters.identity is not None:
        identity = filters.identity
        conditions.append(exp.EQ(
            this=exp.column(identity.field, table=identity.table),
            expression=_literal(identity.value),
        ))

    return conditions


def render_sql_preview(plan: QueryPlan, row_limit: int = 20, dialect: str = "postgres") -> Optional[str]:
    """Render the plan as a SELECT statement; None when there is no table."""
    if not plan.has_table:
        return None

    query = sqlglot.select("*").from_(plan.primary_table)
    for join in plan.joins:
        query = query.join(
            join.right_table,
            on=f"{join.left_table}.{join.left_column} = {join.right_table}.{join.right_column}",
            join_type=join.join_type,
        )

    conditions = plan_conditions(plan)
    if conditions:
        query = query.where(exp.and_(*conditions))

    return query.limit(row_limit).sql(dialect=dialect)
