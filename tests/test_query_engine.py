"""
Tests for the QueryEngine, the REST executor and configuration.

Tests cover:
- Full pipeline with a mocked executor
- No-table path (executor never called)
- Execution failures surfacing as QueryExecutionError
- PostgREST request construction (httpx.MockTransport)
- Environment configuration and vocabulary overrides

Run with: pytest tests/test_query_engine.py -v
"""
import pytest
import json
import os
import sys
from datetime import datetime
from unittest.mock import Mock, patch

import httpx

# Add parent directory to path for imports
PARENT_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if PARENT_DIR not in sys.path:
    sys.path.insert(0, PARENT_DIR)


FIXED_NOW = datetime(2026, 10, 14, 10, 0)


# =============================================================================
# Test Fixtures
# =============================================================================

@pytest.fixture
def mock_executor():
    """Executor returning two stock rows."""
    from execution.executor import ExecutionResult, QueryExecutor

    executor = Mock(spec=QueryExecutor)
    executor.execute.return_value = ExecutionResult(
        rows=[{"id": 1, "quantity_available": 3}, {"id": 2, "quantity_available": 8}],
        applied_filters=["stock.quantity_available < 10"],
    )
    return executor


@pytest.fixture
def engine(mock_executor):
    """QueryEngine with a mocked executor and fixed clock."""
    from query_engine import QueryEngine
    return QueryEngine(executor=mock_executor, clock=lambda: FIXED_NOW, row_limit=20)


@pytest.fixture
def stock_plan():
    """A stock plan with a joined text filter and a numeric filter."""
    from filters.filter_builder import NumericFilter, QueryPlan, TextFilter
    from joins.planner import JoinPath

    plan = QueryPlan(
        primary_table="stock",
        join_tables=["products"],
        joins=[JoinPath("stock", "products", "product_id", "id")],
    )
    plan.filters.text.append(TextFilter(table="products", field="name", value="laptop"))
    plan.filters.numeric.append(NumericFilter(table="stock", field="quantity_available", operator="<", value=10))
    return plan


# =============================================================================
# Query Engine
# =============================================================================

class TestQueryEngine:
    """Test the orchestration pipeline."""

    def test_process_query(self, engine, mock_executor):
        """Test the full pipeline for a stock query."""
        response = engine.process_query("laptop stock below 10")

        assert response.executed
        assert response.plan.primary_table == "stock"
        assert len(response.rows) == 2
        assert response.summary.startswith("Found 2 records in stock")
        mock_executor.execute.assert_called_once()
        plan_arg = mock_executor.execute.call_args[0][0]
        assert plan_arg.primary_table == "stock"
        assert mock_executor.execute.call_args[1]["limit"] == 20

    def test_response_dict(self, engine):
        """Test the serialised response shape."""
        data = engine.process_query("laptop stock below 10").to_dict()

        assert data["recordCount"] == 2
        assert data["primaryTable"] == "stock"
        assert data["sqlQuery"].startswith("SELECT")
        assert {e["text"] for e in data["entities"]} == {"laptop", "stock", "below 10"}

    def test_no_table_skips_executor(self, engine, mock_executor):
        """Test that the executor is not called without a primary table."""
        response = engine.process_query("what is up")

        assert response.extraction.entities == []
        assert response.plan.primary_table is None
        assert not response.executed
        assert "customers" in response.summary
        mock_executor.execute.assert_not_called()

    def test_pronoun_only_skips_executor(self, engine, mock_executor):
        """Test that a pronoun alone does not choose a table."""
        response = engine.process_query("show me", current_user="Ahmed Hassan")

        assert response.plan.primary_table is None
        mock_executor.execute.assert_not_called()

    def test_plan_without_execution(self, engine, mock_executor):
        """Test execute=False returns a plan and SQL only."""
        response = engine.process_query("sales for ahmed yesterday", execute=False)

        assert not response.executed
        assert response.sql_preview is not None
        assert response.validation.is_valid
        mock_executor.execute.assert_not_called()

    def test_zero_rows_is_success(self, engine, mock_executor):
        """Test that an empty result is not an error."""
        from execution.executor import ExecutionResult

        mock_executor.execute.return_value = ExecutionResult(rows=[])
        response = engine.process_query("sales yesterday")

        assert response.executed
        assert response.rows == []
        assert response.summary.startswith("Found 0 records in sales")

    def test_execution_failure_propagates(self, engine, mock_executor):
        """Test that executor failures are raised, not turned into empty data."""
        from execution.executor import QueryExecutionError

        def fail(plan, limit=20):
            raise QueryExecutionError("database down", plan=plan, status_code=500)

        mock_executor.execute.side_effect = fail

        with pytest.raises(QueryExecutionError) as excinfo:
            engine.process_query("laptop stock below 10")
        assert excinfo.value.plan.primary_table == "stock"
        assert excinfo.value.status_code == 500

    def test_invalid_plan_is_not_executed(self, mock_executor):
        """Test that a plan failing validation never reaches the executor."""
        from execution.executor import QueryExecutionError
        from filters.filter_builder import QueryPlan, TextFilter
        from query_engine import QueryEngine

        plan = QueryPlan(primary_table="stock")
        plan.filters.text.append(TextFilter(table="customers", field="name", value="x"))

        with pytest.raises(QueryExecutionError):
            QueryEngine(executor=mock_executor).execute_plan(plan)
        mock_executor.execute.assert_not_called()

    def test_sql_preview_is_validated(self, engine, mock_executor):
        """Test that a preview touching an unplanned table blocks execution."""
        from execution.executor import QueryExecutionError

        plan = engine.process_query("laptop stock below 10", execute=False).plan
        assert engine.validate_plan(plan).is_valid

        with patch("query_engine.render_sql_preview", return_value="SELECT * FROM stock JOIN users ON 1 = 1"):
            validation = engine.validate_plan(plan)
            assert not validation.is_valid
            assert any("users" in e for e in validation.errors)

            with pytest.raises(QueryExecutionError):
                engine.process_query("laptop stock below 10")
        mock_executor.execute.assert_not_called()

    def test_describe_tables(self, engine):
        """Test the table summary used by clients."""
        tables = {t["name"]: t for t in engine.describe_tables()}

        assert set(tables) == {"customers", "products", "sales", "stock", "tasks",
                               "shifts", "attendance", "users"}
        assert tables["sales"]["joinsWith"] == ["customers", "products"]

    def test_singleton(self):
        """Test the process-wide engine accessor."""
        from query_engine import get_query_engine, reset_query_engine

        reset_query_engine()
        try:
            assert get_query_engine() is get_query_engine()
        finally:
            reset_query_engine()


# =============================================================================
# PostgREST Executor
# =============================================================================

class TestPostgrestExecutor:
    """Test the Supabase REST executor against a mock transport."""

    def _executor(self, handler):
        from execution.postgrest_client import PostgrestExecutor

        client = httpx.Client(transport=httpx.MockTransport(handler))
        return PostgrestExecutor("https://demo.supabase.co/", "anon-key", client=client)

    def test_request_shape(self, stock_plan):
        """Test URL, headers and filter parameters."""
        captured = []

        def handler(request):
            captured.append(request)
            return httpx.Response(200, json=[{"id": 1}])

        result = self._executor(handler).execute(stock_plan, limit=5)

        request = captured[0]
        assert request.url.path == "/rest/v1/stock"
        assert request.headers["apikey"] == "anon-key"
        assert request.headers["Authorization"] == "Bearer anon-key"
        params = request.url.params
        assert params["select"] == "*,products!inner(*)"
        assert params.get_list("products.name") == ["ilike.*laptop*"]
        assert params.get_list("quantity_available") == ["lt.10"]
        assert params["limit"] == "5"
        assert result.row_count == 1
        assert result.applied_filters == [
            "products.name contains 'laptop'",
            "stock.quantity_available < 10",
        ]

    def test_date_range_params(self):
        """Test that a range becomes gte and lt on the same column."""
        from execution.postgrest_client import build_params
        from filters.filter_builder import QueryPlan, TemporalFilter

        plan = QueryPlan(primary_table="sales")
        plan.filters.temporal.append(
            TemporalFilter(table="sales", field="sale_date", start="2026-10-13", end="2026-10-14")
        )

        params = build_params(plan, 20)
        assert ("sale_date", "gte.2026-10-13") in params
        assert ("sale_date", "lt.2026-10-14") in params

    def test_identity_param(self):
        """Test the identity filter on the joined users table."""
        from execution.postgrest_client import build_params
        from filters.filter_builder import IdentityFilter, QueryPlan
        from joins.planner import JoinPath

        plan = QueryPlan(
            primary_table="tasks",
            join_tables=["users"],
            joins=[JoinPath("tasks", "users", "assigned_to", "id")],
        )
        plan.filters.identity = IdentityFilter(
            table="users", field="full_name", value="Ahmed Hassan", via="tasks.assigned_to"
        )

        params = build_params(plan, 20)
        assert ("users.full_name", "eq.Ahmed Hassan") in params
        assert params[0] == ("select", "*,users!inner(*)")

    def test_http_error_raises(self, stock_plan):
        """Test that HTTP 500 raises QueryExecutionError carrying the plan."""
        from execution.executor import QueryExecutionError

        executor = self._executor(lambda request: httpx.Response(500, text="boom"))

        with pytest.raises(QueryExecutionError) as excinfo:
            executor.execute(stock_plan)
        assert excinfo.value.status_code == 500
        assert excinfo.value.plan is stock_plan

    def test_transport_error_raises(self, stock_plan):
        """Test that connection failures raise QueryExecutionError."""
        from execution.executor import QueryExecutionError

        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(QueryExecutionError):
            self._executor(handler).execute(stock_plan)

    def test_empty_result(self, stock_plan):
        """Test that an empty list is a successful result."""
        result = self._executor(lambda request: httpx.Response(200, json=[])).execute(stock_plan)

        assert result.rows == []
        assert result.row_count == 0


# =============================================================================
# Configuration
# =============================================================================

class TestConfiguration:
    """Test environment and vocabulary configuration."""

    @pytest.fixture(autouse=True)
    def clear_cache(self):
        from config.app_config import load_config
        load_config.cache_clear()
        yield
        load_config.cache_clear()

    def test_defaults(self, monkeypatch):
        """Test default values when optional variables are unset."""
        from config.app_config import load_config

        for name in ("QUERY_ROW_LIMIT", "CHATBOT_PORT", "LOG_LEVEL", "CORS_ORIGINS"):
            monkeypatch.delenv(name, raising=False)

        config = load_config()
        assert config.row_limit == 20
        assert config.server_port == 3001
        assert config.log_level == "INFO"
        assert config.cors_origins == ["*"]

    def test_missing_credentials(self, monkeypatch):
        """Test that executor configuration fails fast without credentials."""
        from config.app_config import ConfigurationError, get_supabase_config

        monkeypatch.delenv("SUPABASE_URL", raising=False)
        monkeypatch.delenv("SUPABASE_ANON_KEY", raising=False)

        with pytest.raises(ConfigurationError) as excinfo:
            get_supabase_config()
        assert "SUPABASE_URL" in str(excinfo.value)

    def test_credentials(self, monkeypatch):
        """Test that credentials and limits are read from the environment."""
        from config.app_config import get_supabase_config, load_config

        monkeypatch.setenv("SUPABASE_URL", "https://demo.supabase.co/")
        monkeypatch.setenv("SUPABASE_ANON_KEY", "secret")
        monkeypatch.setenv("QUERY_ROW_LIMIT", "50")

        supabase = get_supabase_config()
        assert supabase.url == "https://demo.supabase.co"
        assert supabase.is_configured
        assert load_config().row_limit == 50

    def test_bad_integer(self, monkeypatch):
        """Test that a malformed number is a configuration error."""
        from config.app_config import ConfigurationError, load_config

        monkeypatch.setenv("QUERY_ROW_LIMIT", "lots")

        with pytest.raises(ConfigurationError):
            load_config()

    def test_vocabulary_overrides(self, tmp_path):
        """Test JSON overrides and YAML relationships."""
        from config.vocabulary_config_manager import VocabularyConfigManager

        overrides = tmp_path / "vocabulary.json"
        overrides.write_text(json.dumps({
            "products": ["projector"],
            "customers": {"omar": "Omar Khalid"},
            "synonyms": {"projector": ["portable projector"]},
        }))
        relationships = tmp_path / "relationships.yaml"
        relationships.write_text(
            "relationships:\n"
            "  - left: sales\n"
            "    right: customers\n"
            "    columns: {left: customer_id, right: id}\n"
        )

        vocabulary = VocabularyConfigManager(str(overrides), str(relationships)).build_vocabulary()

        assert vocabulary.readings("projector")[0].table == "products"
        assert vocabulary.readings("portable projector")
        assert vocabulary.readings("omar")[0].canonical == "Omar Khalid"
        assert vocabulary.synonyms["projector"] == ("portable projector",)
        assert len(vocabulary.relationships) == 1
        assert vocabulary.relationship("customers", "sales").left_column == "id"

    def test_bundled_relationships_are_read(self, caplog):
        """Test that every entry of the bundled relationships.yaml parses."""
        from config.vocabulary_config_manager import VocabularyConfigManager
        from nlu.vocabulary import DEFAULT_RELATIONSHIPS

        caplog.set_level("WARNING", logger="config.vocabulary_config_manager")
        manager = VocabularyConfigManager()

        assert len(manager._relationships) == 7
        assert manager.relationships == list(DEFAULT_RELATIONSHIPS)
        assert caplog.records == []

    def test_unusable_relationships_warn(self, tmp_path, caplog):
        """Test that a file with no usable entry is reported before falling back."""
        from config.vocabulary_config_manager import VocabularyConfigManager

        relationships = tmp_path / "relationships.yaml"
        relationships.write_text(
            "relationships:\n"
            "  - left: sales\n"
            "    right: customers\n"
            "    on: {left: customer_id, right: id}\n"
        )
        caplog.set_level("WARNING", logger="config.vocabulary_config_manager")

        vocabulary = VocabularyConfigManager(relationships_path=str(relationships)).build_vocabulary()

        assert len(vocabulary.relationships) == 7
        messages = [r.getMessage() for r in caplog.records]
        assert any("Skipping incomplete relationship" in m for m in messages)
        assert any("No usable relationships" in m for m in messages)

    def test_malformed_overrides_fall_back(self, tmp_path):
        """Test that a broken JSON file leaves the defaults in place."""
        from config.vocabulary_config_manager import VocabularyConfigManager
        from nlu.vocabulary import default_vocabulary

        broken = tmp_path / "vocabulary.json"
        broken.write_text("{not json")

        vocabulary = VocabularyConfigManager(str(broken)).build_vocabulary()

        assert vocabulary.readings("laptop") == default_vocabulary().readings("laptop")
        assert len(vocabulary.relationships) == 7

    def test_custom_vocabulary_drives_extraction(self, tmp_path):
        """Test that an injected vocabulary is used by the engine."""
        from config.vocabulary_config_manager import VocabularyConfigManager
        from query_engine import QueryEngine

        overrides = tmp_path / "vocabulary.json"
        overrides.write_text(json.dumps({"products": ["projector"]}))
        vocabulary = VocabularyConfigManager(str(overrides)).build_vocabulary()

        plan = QueryEngine(vocabulary=vocabulary).process_query("projector", execute=False).plan

        assert plan.primary_table == "products"
        assert plan.filters.text[0].value == "projector"
