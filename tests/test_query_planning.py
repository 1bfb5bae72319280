"""
Tests for table/join planning, filter building and plan validation.

Tests cover:
- Primary table selection and canonical priority
- One-hop join restriction and unresolved entities
- Text, numeric, temporal and identity filters
- Plan validation and SQL previews

Run with: pytest tests/test_query_planning.py -v
"""
import pytest
import os
import sys
from datetime import datetime

# Add parent directory to path for imports
PARENT_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if PARENT_DIR not in sys.path:
    sys.path.insert(0, PARENT_DIR)


FIXED_NOW = datetime(2026, 10, 14, 10, 0)


# =============================================================================
# Test Fixtures
# =============================================================================

@pytest.fixture
def plan_for():
    """Return a function that extracts, plans and builds filters for a query."""
    from nlu.entity_extractor import EntityExtractor
    from joins.planner import TableJoinPlanner
    from filters.filter_builder import FilterBuilder

    extractor = EntityExtractor(clock=lambda: FIXED_NOW)
    planner = TableJoinPlanner()
    builder = FilterBuilder()

    def _plan(text, user=None):
        entities = extractor.extract(text, current_user=user).entities
        return builder.build(entities, planner.plan(entities))

    return _plan


# =============================================================================
# Table & Join Planner
# =============================================================================

class TestTableJoinPlanner:
    """Test primary table selection and joins."""

    def test_explicit_table_is_primary(self, plan_for):
        """Test that a named table wins and its value tables are joined."""
        plan = plan_for("laptop stock below 10")

        assert plan.primary_table == "stock"
        assert plan.join_tables == ["products"]
        assert plan.joins[0].to_sql_clause() == (
            "INNER JOIN products ON stock.product_id = products.id"
        )

    def test_canonical_priority_breaks_ties(self, plan_for):
        """Test that sales outranks attendance and attendance is unresolved."""
        plan = plan_for("sales and attendance")

        assert plan.primary_table == "sales"
        assert plan.join_tables == []
        assert [e.table for e in plan.unresolved_entities] == ["attendance"]

    def test_joins_are_one_hop_only(self, plan_for):
        """Test that every join starts at the primary table."""
        plan = plan_for("orders for john with gaming laptop and tasks")

        assert plan.primary_table == "sales"
        assert set(plan.join_tables) <= {"customers", "products"}
        assert all(j.left_table == "sales" for j in plan.joins)
        assert "tasks" in [e.table for e in plan.unresolved_entities]

    def test_value_term_implies_table(self, plan_for):
        """Test that a lone customer name selects customers."""
        plan = plan_for("john smith")

        assert plan.primary_table == "customers"
        assert plan.filters.text[0].value == "John Smith"

    def test_no_table(self, plan_for):
        """Test that nothing recognisable yields no primary table."""
        plan = plan_for("what is up")

        assert plan.primary_table is None
        assert plan.filters.count == 0

    def test_ambiguous_term_alone_has_no_table(self, plan_for):
        """Test that an unresolved cross-table name is reported, not guessed."""
        plan = plan_for("ahmed")

        assert plan.primary_table is None
        assert [e.text for e in plan.ambiguous_entities] == ["ahmed"]


# =============================================================================
# Filter Builder
# =============================================================================

class TestFilterBuilder:
    """Test structured filter construction."""

    def test_stock_filters(self, plan_for):
        """Test text and numeric filters for 'laptop stock below 10'."""
        filters = plan_for("laptop stock below 10").filters

        assert [(f.table, f.field, f.value) for f in filters.text] == [("products", "name", "laptop")]
        assert [(f.column, f.operator, f.value) for f in filters.numeric] == [
            ("stock.quantity_available", "<", 10)
        ]

    def test_my_tasks_this_week_with_user(self, plan_for):
        """Test identity and date range filters for a resolved pronoun."""
        plan = plan_for("my tasks due this week", user="Ahmed Hassan")

        assert plan.primary_table == "tasks"
        assert plan.join_tables == ["users"]
        temporal = plan.filters.temporal[0]
        assert temporal.column == "tasks.due_date"
        assert (temporal.start, temporal.end) == ("2026-10-12", "2026-10-19")

        identity = plan.filters.identity
        assert identity.value == "Ahmed Hassan"
        assert identity.column == "users.full_name"
        assert identity.via == "tasks.assigned_to"

    def test_my_tasks_without_user(self, plan_for):
        """Test that no identity filter exists without a current user."""
        plan = plan_for("my tasks due this week")

        assert plan.filters.identity is None
        assert plan.join_tables == []
        assert len(plan.filters.temporal) == 1

    def test_sales_for_customer_yesterday(self, plan_for):
        """Test a joined text filter plus a one-day range on sale_date."""
        plan = plan_for("sales for ahmed yesterday")

        assert plan.primary_table == "sales"
        assert plan.join_tables == ["customers"]
        assert [(f.column, f.value) for f in plan.filters.text] == [("customers.name", "Ahmed Hassan")]
        temporal = plan.filters.temporal[0]
        assert temporal.column == "sales.sale_date"
        assert (temporal.start, temporal.end) == ("2026-10-13", "2026-10-14")

    def test_descriptor_on_primary(self, plan_for):
        """Test that a status word filters the primary table's status column."""
        plan = plan_for("pending tasks")

        assert [(f.column, f.value) for f in plan.filters.text] == [("tasks.status", "pending")]

    def test_location_descriptor(self, plan_for):
        """Test that a warehouse name filters stock.warehouse_location."""
        plan = plan_for("inventory in main warehouse")

        assert plan.primary_table == "stock"
        assert [(f.column, f.value) for f in plan.filters.text] == [
            ("stock.warehouse_location", "main warehouse")
        ]

    def test_point_time_on_date_column_becomes_day(self, plan_for):
        """Test that a clock time on a date column filters the whole day."""
        plan = plan_for("shifts tomorrow at 3pm")

        temporal = plan.filters.temporal[0]
        assert temporal.column == "shifts.shift_date"
        assert (temporal.start, temporal.end) == ("2026-10-15", "2026-10-16")

    def test_fuzzy_ambiguity_is_not_filtered(self):
        """Test that an ambiguous entity is listed, not turned into a filter."""
        from filters.filter_builder import FilterBuilder
        from joins.planner import TablePlan
        from nlu.candidates import Entity, EntityType

        entity = Entity(
            text="moniter", type=EntityType.INFO, start_index=0, end_index=7,
            confidence=0.5, table="products", suggestions=("monitor", "printer"),
        )
        plan = FilterBuilder().build([entity], TablePlan(primary_table="products"))

        assert plan.filters.text == []
        assert plan.ambiguous_entities == [entity]

    def test_to_dict_shape(self, plan_for):
        """Test the serialised plan keys."""
        data = plan_for("laptop stock below 10").to_dict()

        assert data["primaryTable"] == "stock"
        assert data["joinTables"] == ["products"]
        assert set(data["filters"]) == {"text", "numeric", "temporal", "identity"}
        assert data["joins"][0]["sql"] == "INNER JOIN products ON stock.product_id = products.id"


# =============================================================================
# Validation
# =============================================================================

class TestPlanValidator:
    """Test plan validation and SQL previews."""

    def test_valid_plan(self, plan_for):
        """Test that a built plan validates."""
        from validation.plan_validator import PlanValidator

        result = PlanValidator().validate(plan_for("sales for ahmed yesterday"))

        assert result.is_valid
        assert result.can_execute
        assert result.errors == []

    def test_unknown_column_is_error(self):
        """Test that a filter on a missing column is rejected."""
        from filters.filter_builder import NumericFilter, QueryPlan
        from validation.plan_validator import PlanValidator

        plan = QueryPlan(primary_table="stock")
        plan.filters.numeric.append(NumericFilter(table="stock", field="weight", operator="<", value=3))
        result = PlanValidator().validate(plan)

        assert not result.is_valid
        assert any("stock.weight" in e for e in result.errors)

    def test_no_table_is_invalid(self):
        """Test that an empty plan cannot execute."""
        from filters.filter_builder import QueryPlan
        from validation.plan_validator import PlanValidator

        result = PlanValidator().validate(QueryPlan(primary_table=None))

        assert not result.can_execute
        assert result.suggestions

    def test_unresolved_is_warning(self, plan_for):
        """Test that unresolved entities only warn."""
        from validation.plan_validator import PlanValidator

        result = PlanValidator().validate(plan_for("sales and attendance"))

        assert result.is_valid
        assert any("attendance" in w for w in result.warnings)

    def test_sql_preview(self, plan_for):
        """Test that the preview joins, filters and limits."""
        from validation.plan_validator import PlanValidator
        from validation.sql_preview import render_sql_preview

        plan = plan_for("sales for ahmed yesterday")
        sql = render_sql_preview(plan, row_limit=20)

        assert "JOIN customers" in sql
        assert "ILIKE" in sql
        assert "%Ahmed Hassan%" in sql
        assert "LIMIT 20" in sql
        assert PlanValidator().validate_preview(plan, sql).is_valid

    def test_sql_preview_without_table(self):
        """Test that no SQL is rendered without a table."""
        from filters.filter_builder import QueryPlan
        from validation.sql_preview import render_sql_preview

        assert render_sql_preview(QueryPlan(primary_table=None)) is None
