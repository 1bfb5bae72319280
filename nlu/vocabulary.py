"""
Vocabulary and schema tables used by entity extraction and query planning.

Everything the extractor knows about the business database lives here:
table keywords, column metadata, value terms (products, customers, users),
descriptor terms (status, priority, location), synonyms and the one-hop
relationship table. A Vocabulary is an immutable value; build a custom one
(or load overrides through config.vocabulary_config_manager) and pass it to
the extractor, planner and filter builder at construction.
"""
from dataclasses import dataclass, replace
from functools import lru_cache
from typing import Dict, FrozenSet, Iterable, List, Mapping, Optional, Set, Tuple


# =============================================================================
# Schema metadata
# =============================================================================

NUMERIC_TYPES = frozenset({"integer", "numeric"})
DATE_TYPES = frozenset({"date", "timestamp"})


@dataclass(frozen=True)
class ColumnInfo:
    """Column metadata for query building."""
    name: str
    column_type: str                    # "uuid", "text", "integer", "numeric", "date", "timestamp", "time"
    searchable: bool = False
    references: Optional[str] = None    # e.g. "users.id"

    @property
    def is_numeric(self) -> bool:
        return self.column_type in NUMERIC_TYPES

    @property
    def is_date(self) -> bool:
        return self.column_type in DATE_TYPES


@dataclass(frozen=True)
class TableSchema:
    """Table metadata for query building."""
    name: str
    columns: Tuple[ColumnInfo, ...]
    display_field: str
    date_column: str = "created_at"
    default_numeric_field: Optional[str] = None
    owner_column: Optional[str] = None  # column compared against the current user

    def column(self, name: str) -> Optional[ColumnInfo]:
        for col in self.columns:
            if col.name == name:
                return col
        return None

    def has_column(self, name: str) -> bool:
        return self.column(name) is not None

    @property
    def searchable_fields(self) -> List[str]:
        return [c.name for c in self.columns if c.searchable]

    @property
    def owner_references_users(self) -> bool:
        """True when the owner column is a foreign key into users."""
        if not self.owner_column:
            return False
        col = self.column(self.owner_column)
        return bool(col and col.references == "users.id")


@dataclass(frozen=True)
class Relationship:
    """A one-hop foreign-key relationship between two tables."""
    left_table: str
    right_table: str
    left_column: str
    right_column: str
    join_type: str = "inner"

    def involves(self, a: str, b: str) -> bool:
        return {self.left_table, self.right_table} == {a, b}

    def oriented_from(self, table: str) -> "Relationship":
        """Return the same relationship with `table` on the left side."""
        if self.left_table == table:
            return self
        return Relationship(
            left_table=self.right_table,
            right_table=self.left_table,
            left_column=self.right_column,
            right_column=self.left_column,
            join_type=self.join_type,
        )


@dataclass(frozen=True)
class ValueTerm:
    """
    One reading of a vocabulary word.

    A surface term can have several readings ("ahmed" is both a customer and
    a user, "pending" is both a task and a sale status).
    """
    term: str
    table: str
    field: str
    canonical: str
    category: str = "value"             # "value", "status", "priority", "location"

    @property
    def is_descriptor(self) -> bool:
        return self.category != "value"


# =============================================================================
# Vocabulary
# =============================================================================

@dataclass(frozen=True)
class Vocabulary:
    """Immutable rule tables shared by every stage of the pipeline."""
    tables: Mapping[str, TableSchema]
    table_keywords: Mapping[str, str]                 # keyword -> table
    value_terms: Mapping[str, Tuple[ValueTerm, ...]]  # term -> readings
    descriptor_fields: Mapping[str, Mapping[str, str]]  # category -> {table: field}
    synonyms: Mapping[str, Tuple[str, ...]]           # base term -> multi-word variants
    numeric_hints: Mapping[str, Tuple[str, str]]      # hint word -> (table, field)
    stop_words: FrozenSet[str]
    pronouns: FrozenSet[str]
    table_priority: Tuple[str, ...]
    relationships: Tuple[Relationship, ...]
    fuzzy_cutoff: float = 80.0
    fuzzy_margin: float = 5.0

    # -------------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------------

    @property
    def table_names(self) -> List[str]:
        return list(self.tables.keys())

    def schema(self, table: str) -> Optional[TableSchema]:
        return self.tables.get(table)

    def is_stop_word(self, token: str) -> bool:
        return len(token) <= 2 or token in self.stop_words

    def table_for_keyword(self, term: str) -> Optional[str]:
        return self.table_keywords.get(term)

    def readings(self, term: str) -> Tuple[ValueTerm, ...]:
        return self.value_terms.get(term, ())

    def all_terms(self) -> Set[str]:
        return set(self.table_keywords) | set(self.value_terms)

    def multi_word_terms(self) -> List[str]:
        """Multi-word terms, longest first so longer phrases claim text first."""
        terms = [t for t in self.all_terms() if " " in t]
        return sorted(terms, key=lambda t: (-len(t), t))

    def fuzzy_match_terms(self) -> List[str]:
        """Single-word names (products, customers, users); descriptors never match fuzzily."""
        return sorted(
            t for t, readings in self.value_terms.items()
            if " " not in t and any(not r.is_descriptor for r in readings)
        )

    def default_numeric_field(self, table: Optional[str]) -> Optional[str]:
        schema = self.tables.get(table) if table else None
        return schema.default_numeric_field if schema else None

    def relationship(self, a: str, b: str) -> Optional[Relationship]:
        for rel in self.relationships:
            if rel.involves(a, b):
                return rel.oriented_from(a)
        return None

    def neighbours(self, table: str) -> Set[str]:
        result = set()
        for rel in self.relationships:
            if rel.left_table == table:
                result.add(rel.right_table)
            elif rel.right_table == table:
                result.add(rel.left_table)
        return result

    def priority_rank(self, table: str) -> int:
        try:
            return self.table_priority.index(table)
        except ValueError:
            return len(self.table_priority)

    def with_overrides(self, **changes) -> "Vocabulary":
        return replace(self, **changes)


# =============================================================================
# Default vocabulary
# =============================================================================

def _col(name: str, column_type: str = "text", searchable: bool = False,
         references: Optional[str] = None) -> ColumnInfo:
    return ColumnInfo(name=name, column_type=column_type, searchable=searchable, references=references)


DEFAULT_TABLES = {
    "customers": TableSchema(
        name="customers",
        columns=(
            _col("id", "uuid"),
            _col("name", searchable=True),
            _col("email", searchable=True),
            _col("phone", searchable=True),
            _col("company", searchable=True),
            _col("address", searchable=True),
            _col("created_at", "timestamp"),
            _col("updated_at", "timestamp"),
        ),
        display_field="name",
    ),
    "products": TableSchema(
        name="products",
        columns=(
            _col("id", "uuid"),
            _col("name", searchable=True),
            _col("description", searchable=True),
            _col("price", "numeric"),
            _col("sku", searchable=True),
            _col("category", searchable=True),
            _col("stock_quantity", "integer"),
            _col("created_at", "timestamp"),
            _col("updated_at", "timestamp"),
        ),
        display_field="name",
        default_numeric_field="price",
    ),
    "sales": TableSchema(
        name="sales",
        columns=(
            _col("id", "uuid"),
            _col("customer_id", "uuid", references="customers.id"),
            _col("product_id", "uuid", references="products.id"),
            _col("quantity", "integer"),
            _col("unit_price", "numeric"),
            _col("total_amount", "numeric"),
            _col("sale_date", "date"),
            _col("status", searchable=True),
            _col("notes", searchable=True),
            _col("created_at", "timestamp"),
        ),
        display_field="id",
        date_column="sale_date",
        default_numeric_field="total_amount",
    ),
    "stock": TableSchema(
        name="stock",
        columns=(
            _col("id", "uuid"),
            _col("product_id", "uuid", references="products.id"),
            _col("warehouse_location", searchable=True),
            _col("quantity_available", "integer"),
            _col("reserved_quantity", "integer"),
            _col("reorder_level", "integer"),
            _col("last_restocked", "timestamp"),
            _col("created_at", "timestamp"),
            _col("updated_at", "timestamp"),
        ),
        display_field="id",
        date_column="last_restocked",
        default_numeric_field="quantity_available",
    ),
    "tasks": TableSchema(
        name="tasks",
        columns=(
            _col("id", "uuid"),
            _col("title", searchable=True),
            _col("description", searchable=True),
            _col("assigned_to", "uuid", references="users.id"),
            _col("status", searchable=True),
            _col("priority", searchable=True),
            _col("due_date", "date"),
            _col("completed_at", "timestamp"),
            _col("created_at", "timestamp"),
            _col("updated_at", "timestamp"),
        ),
        display_field="title",
        date_column="due_date",
        owner_column="assigned_to",
    ),
    "shifts": TableSchema(
        name="shifts",
        columns=(
            _col("id", "uuid"),
            _col("user_id", "uuid", references="users.id"),
            _col("shift_date", "date"),
            _col("start_time", "time"),
            _col("end_time", "time"),
            _col("break_duration", "integer"),
            _col("location", searchable=True),
            _col("notes", searchable=True),
            _col("created_at", "timestamp"),
        ),
        display_field="id",
        date_column="shift_date",
        owner_column="user_id",
    ),
    "attendance": TableSchema(
        name="attendance",
        columns=(
            _col("id", "uuid"),
            _col("user_id", "uuid", references="users.id"),
            _col("shift_id", "uuid", references="shifts.id"),
            _col("clock_in", "timestamp"),
            _col("clock_out", "timestamp"),
            _col("break_start", "timestamp"),
            _col("break_end", "timestamp"),
            _col("status", searchable=True),
            _col("notes", searchable=True),
            _col("created_at", "timestamp"),
        ),
        display_field="id",
        date_column="clock_in",
        owner_column="user_id",
    ),
    "users": TableSchema(
        name="users",
        columns=(
            _col("id", "uuid"),
            _col("email", searchable=True),
            _col("full_name", searchable=True),
            _col("role", searchable=True),
            _col("created_at", "timestamp"),
            _col("updated_at", "timestamp"),
        ),
        display_field="full_name",
        owner_column="full_name",
    ),
}

DEFAULT_TABLE_KEYWORDS = {
    "customers": ["customer", "customers", "client", "clients", "buyer", "buyers"],
    "products": ["product", "products", "item", "items", "catalog"],
    "sales": ["sale", "sales", "revenue", "order", "orders", "purchase", "purchases",
              "transaction", "transactions"],
    "stock": ["stock", "inventory", "warehouse", "stock levels"],
    "tasks": ["task", "tasks", "todo", "todos", "assignment", "assignments"],
    "users": ["user", "users", "employee", "employees", "staff", "team members"],
    "shifts": ["shift", "shifts", "schedule", "schedules", "rota"],
    "attendance": ["attendance", "clock in", "clock out", "clock-in", "clock-out"],
}

DEFAULT_PRODUCTS = [
    "laptop", "mouse", "keyboard", "monitor", "tablet", "phone", "headphones",
    "printer", "camera", "speaker", "webcam", "hub", "cable", "charger",
    "wireless mouse", "gaming mouse", "bluetooth mouse",
    "mechanical keyboard", "gaming keyboard", "wireless keyboard",
    "gaming laptop", "business laptop",
    "external monitor", "4k monitor",
    "wireless headphones", "noise cancelling headphones",
    "usb cable", "hdmi cable", "usb-c hub",
]

DEFAULT_SYNONYMS = {
    "mouse": ["wireless mouse", "gaming mouse", "bluetooth mouse"],
    "keyboard": ["mechanical keyboard", "gaming keyboard", "wireless keyboard"],
    "laptop": ["gaming laptop", "business laptop"],
    "monitor": ["external monitor", "4k monitor"],
    "headphones": ["wireless headphones", "noise cancelling headphones"],
    "cable": ["usb cable", "hdmi cable"],
}

DEFAULT_CUSTOMERS = {
    "ahmed": "Ahmed Hassan",
    "ahmed hassan": "Ahmed Hassan",
    "john": "John Smith",
    "john smith": "John Smith",
    "jane": "Jane Doe",
    "jane doe": "Jane Doe",
    "sarah": "Sarah Wilson",
    "sarah wilson": "Sarah Wilson",
    "mike": "Mike Johnson",
    "mike johnson": "Mike Johnson",
    "lisa": "Lisa Brown",
    "lisa brown": "Lisa Brown",
    "tech solutions": "Tech Solutions",
}

DEFAULT_USERS = {
    "ahmed": "Ahmed Hassan",
    "ahmed hassan": "Ahmed Hassan",
    "hassan": "Hassan Ali",
    "hassan ali": "Hassan Ali",
}

# category -> term -> tables the term is valid for
DEFAULT_DESCRIPTORS = {
    "status": {
        "pending": ["tasks", "sales"],
        "completed": ["tasks", "sales"],
        "in progress": ["tasks"],
        "in_progress": ["tasks"],
        "cancelled": ["tasks", "sales"],
        "processing": ["sales"],
        "shipped": ["sales"],
        "delivered": ["sales"],
        "present": ["attendance"],
        "absent": ["attendance"],
        "late": ["attendance"],
    },
    "priority": {
        "high": ["tasks"],
        "medium": ["tasks"],
        "low": ["tasks"],
        "urgent": ["tasks"],
        "high priority": ["tasks"],
        "low priority": ["tasks"],
    },
    "location": {
        "main warehouse": ["stock"],
        "secondary warehouse": ["stock"],
        "paris": ["stock", "customers"],
        "london": ["stock", "customers"],
        "new york": ["stock", "customers"],
        "office": ["shifts"],
        "remote": ["shifts"],
    },
}

DEFAULT_DESCRIPTOR_FIELDS = {
    "status": {"tasks": "status", "sales": "status", "attendance": "status"},
    "priority": {"tasks": "priority"},
    "location": {"stock": "warehouse_location", "customers": "address", "shifts": "location"},
}

DEFAULT_NUMERIC_HINTS = {
    "price": ("products", "price"),
    "priced": ("products", "price"),
    "cost": ("products", "price"),
    "amount": ("sales", "total_amount"),
    "total": ("sales", "total_amount"),
    "revenue": ("sales", "total_amount"),
    "quantity": ("stock", "quantity_available"),
    "qty": ("stock", "quantity_available"),
    "units": ("stock", "quantity_available"),
    "reorder": ("stock", "reorder_level"),
}

DEFAULT_STOP_WORDS = frozenset({
    "the", "and", "for", "with", "below", "above", "over", "under", "than",
    "less", "greater", "more", "from", "where", "when", "are", "show", "list",
    "get", "find", "all", "any", "that", "have", "has", "what", "which",
    "this", "these", "those", "into",
})

DEFAULT_PRONOUNS = frozenset({"me", "my", "mine", "myself", "i"})

DEFAULT_TABLE_PRIORITY = (
    "sales", "stock", "tasks", "customers", "products", "users", "shifts", "attendance",
)

DEFAULT_RELATIONSHIPS = (
    Relationship("sales", "customers", "customer_id", "id"),
    Relationship("sales", "products", "product_id", "id"),
    Relationship("stock", "products", "product_id", "id"),
    Relationship("tasks", "users", "assigned_to", "id"),
    Relationship("attendance", "users", "user_id", "id"),
    Relationship("attendance", "shifts", "shift_id", "id"),
    Relationship("shifts", "users", "user_id", "id"),
)


def _descriptor_value(category: str, term: str) -> str:
    """Stored column value for a descriptor term ("in progress" -> "in_progress")."""
    if category == "status":
        return term.replace(" ", "_")
    if category == "priority":
        return term.replace(" priority", "")
    return term


def build_value_terms(
    products: Iterable[str],
    customers: Mapping[str, str],
    users: Mapping[str, str],
    descriptors: Mapping[str, Mapping[str, Iterable[str]]],
    descriptor_fields: Mapping[str, Mapping[str, str]],
) -> Dict[str, Tuple[ValueTerm, ...]]:
    """Index every value and descriptor reading by its lower-case surface term."""
    index: Dict[str, List[ValueTerm]] = {}

    def add(reading: ValueTerm) -> None:
        index.setdefault(reading.term, []).append(reading)

    for term in products:
        term = term.lower()
        add(ValueTerm(term=term, table="products", field="name", canonical=term))
    for term, full_name in customers.items():
        add(ValueTerm(term=term.lower(), table="customers", field="name", canonical=full_name))
    for term, full_name in users.items():
        add(ValueTerm(term=term.lower(), table="users", field="full_name", canonical=full_name))

    for category, terms in descriptors.items():
        fields = descriptor_fields.get(category, {})
        for term, tables in terms.items():
            canonical = _descriptor_value(category, term)
            for table in tables:
                if table not in fields:
                    continue
                add(ValueTerm(
                    term=term.lower(),
                    table=table,
                    field=fields[table],
                    canonical=canonical,
                    category=category,
                ))

    return {term: tuple(readings) for term, readings in index.items()}


def build_keyword_index(table_keywords: Mapping[str, Iterable[str]]) -> Dict[str, str]:
    """Invert {table: [keywords]} into {keyword: table}."""
    index = {}
    for table, keywords in table_keywords.items():
        for keyword in keywords:
            index[keyword.lower()] = table
    return index


@lru_cache(maxsize=1)
def default_vocabulary() -> Vocabulary:
    """Build the built-in vocabulary for the eight business tables."""
    return Vocabulary(
        tables=dict(DEFAULT_TABLES),
        table_keywords=build_keyword_index(DEFAULT_TABLE_KEYWORDS),
        value_terms=build_value_terms(
            DEFAULT_PRODUCTS,
            DEFAULT_CUSTOMERS,
            DEFAULT_USERS,
            DEFAULT_DESCRIPTORS,
            DEFAULT_DESCRIPTOR_FIELDS,
        ),
        descriptor_fields={k: dict(v) for k, v in DEFAULT_DESCRIPTOR_FIELDS.items()},
        synonyms={k: tuple(v) for k, v in DEFAULT_SYNONYMS.items()},
        numeric_hints=dict(DEFAULT_NUMERIC_HINTS),
        stop_words=DEFAULT_STOP_WORDS,
        pronouns=DEFAULT_PRONOUNS,
        table_priority=DEFAULT_TABLE_PRIORITY,
        relationships=DEFAULT_RELATIONSHIPS,
    )
