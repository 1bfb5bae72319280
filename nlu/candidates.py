"""
Candidate and entity value types.

Scanners emit candidates (one dataclass per kind of match); the extractor
merges them into immutable Entity values, the unit the UI highlights and the
planner consumes.
"""
import dataclasses
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Tuple, Union


class EntityType(str, Enum):
    """Kind of a recognised span."""
    ENTITY = "entity"
    INFO = "info"
    TEMPORAL = "temporal"
    PRONOUN = "pronoun"
    NUMERIC_FILTER = "numeric_filter"


MULTIPLE_TABLES = "multiple"


# =============================================================================
# Candidates
# =============================================================================

@dataclass(frozen=True)
class TableMatch:
    """A table keyword ("customers", "inventory", "orders")."""
    start: int
    end: int
    text: str
    term: str
    table: str

    @property
    def multi_word(self) -> bool:
        return " " in self.term


@dataclass(frozen=True)
class InfoMatch:
    """
    A value or descriptor term, either exact or produced by the fuzzy resolver.

    `readings` lists every (table, field, canonical, category) the term can mean.
    Fuzzy typo matches carry `score` (0-100) and may carry several candidate
    terms in `suggestions` when no single winner exists.
    """
    start: int
    end: int
    text: str
    term: str
    readings: Tuple[Any, ...] = ()
    suggestions: Tuple[str, ...] = ()
    fuzzy: bool = False
    score: float = 100.0

    @property
    def multi_word(self) -> bool:
        return " " in self.term

    @property
    def tables(self) -> Tuple[str, ...]:
        seen = []
        for reading in self.readings:
            if reading.table not in seen:
                seen.append(reading.table)
        return tuple(seen)


@dataclass(frozen=True)
class TemporalMatch:
    """A relative date phrase with its resolved value."""
    start: int
    end: int
    text: str
    kind: str                           # "day", "week", "month", "year", "point"
    value: str                          # ISO date or datetime
    range_start: Optional[str] = None
    range_end: Optional[str] = None     # exclusive


@dataclass(frozen=True)
class PronounMatch:
    """A first-person pronoun."""
    start: int
    end: int
    text: str


@dataclass(frozen=True)
class NumericMatch:
    """A comparison phrase such as "below 10" or "more than 500"."""
    start: int
    end: int
    text: str
    operator: str                       # "<" or ">"
    value: Union[int, float]
    hint: Optional[str] = None          # word just before the phrase ("price", "quantity")


Candidate = Union[TableMatch, InfoMatch, TemporalMatch, PronounMatch, NumericMatch]


def spans_overlap(a: Tuple[int, int], b: Tuple[int, int]) -> bool:
    return a[0] < b[1] and b[0] < a[1]


# =============================================================================
# Entity
# =============================================================================

@dataclass(frozen=True)
class Entity:
    """A classified, scored span of the user's text."""
    text: str
    type: EntityType
    start_index: int
    end_index: int
    confidence: float                   # 0.0 - 1.0
    table: Optional[str] = None         # table name, "multiple", or None for temporal/pronoun
    field: Optional[str] = None
    value: Optional[Any] = None         # resolved canonical value
    operator: Optional[str] = None
    suggestions: Tuple[str, ...] = ()
    hover_text: Optional[str] = None
    matched_by: str = "vocabulary"      # "table_keyword", "vocabulary", "synonym", "fuzzy", ...
    category: Optional[str] = None      # descriptor category for info terms
    range_start: Optional[str] = None
    range_end: Optional[str] = None
    readings: Tuple[Any, ...] = dataclasses.field(default=(), compare=False, repr=False)

    @property
    def span(self) -> Tuple[int, int]:
        return self.start_index, self.end_index

    @property
    def is_ambiguous(self) -> bool:
        """Suggestions offered but nothing resolved."""
        return bool(self.suggestions) and self.value is None

    @property
    def is_table_mention(self) -> bool:
        return self.matched_by == "table_keyword"

    @property
    def has_concrete_table(self) -> bool:
        return bool(self.table) and self.table != MULTIPLE_TABLES

    def to_dict(self) -> Dict[str, Any]:
        return {
            "text": self.text,
            "type": self.type.value,
            "table": self.table,
            "field": self.field,
            "startIndex": self.start_index,
            "endIndex": self.end_index,
            "confidence": round(self.confidence, 2),
            "value": self.value,
            "actualValue": self.value,
            "operator": self.operator,
            "suggestions": list(self.suggestions),
            "hoverText": self.hover_text,
            "rangeStart": self.range_start,
            "rangeEnd": self.range_end,
        }
