"""
Extract typed, scored entities from natural language queries.

Pipeline:
    LexicalScanner        literal table keywords, value terms, numeric phrases
    FuzzyFieldResolver    synonym suggestions and typo tolerance
    TemporalParser        relative date phrases
    PronounResolver       first-person pronouns
    merge_candidates      non-overlapping spans by priority
    classify_entity_type  entity vs info
    scoring               confidence in [0, 1]
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence, Set, Tuple

from .candidates import (
    Candidate,
    Entity,
    EntityType,
    InfoMatch,
    MULTIPLE_TABLES,
    NumericMatch,
    PronounMatch,
    TableMatch,
    TemporalMatch,
    spans_overlap,
)
from .fuzzy_resolver import FuzzyFieldResolver
from .pronoun_resolver import PronounResolver
from .scanner import LexicalScanner
from .temporal_parser import TemporalParser
from .vocabulary import ValueTerm, Vocabulary, default_vocabulary

logger = logging.getLogger(__name__)


# =============================================================================
# Merge
# =============================================================================

# Higher wins when spans overlap.
PRIORITY_NUMERIC = 5
PRIORITY_MULTI_WORD = 4
PRIORITY_TEMPORAL = 3
PRIORITY_PRONOUN = 2
PRIORITY_SINGLE_WORD = 1
PRIORITY_FUZZY = 0


def candidate_priority(candidate: Candidate) -> int:
    if isinstance(candidate, NumericMatch):
        return PRIORITY_NUMERIC
    if isinstance(candidate, TemporalMatch):
        return PRIORITY_TEMPORAL
    if isinstance(candidate, PronounMatch):
        return PRIORITY_PRONOUN
    if isinstance(candidate, InfoMatch) and candidate.fuzzy:
        return PRIORITY_FUZZY
    if candidate.multi_word:
        return PRIORITY_MULTI_WORD
    return PRIORITY_SINGLE_WORD


def merge_candidates(candidates: Sequence[Candidate]) -> List[Candidate]:
    """
    Keep a non-overlapping subset of candidates, ordered by start index.

    Overlaps are settled by priority (numeric > multi-word > temporal >
    pronoun > single word > fuzzy), then by longer span, then earlier start.
    """
    ordered = sorted(
        candidates,
        key=lambda c: (-candidate_priority(c), -(c.end - c.start), c.start),
    )
    accepted: List[Candidate] = []
    for candidate in ordered:
        span = (candidate.start, candidate.end)
        if any(spans_overlap(span, (a.start, a.end)) for a in accepted):
            continue
        accepted.append(candidate)
    return sorted(accepted, key=lambda c: c.start)


# =============================================================================
# Classification
# =============================================================================

@dataclass
class ClassificationContext:
    """Facts about the whole query that individual decisions depend on."""
    explicit_tables: Set[str] = field(default_factory=set)
    neighbour_tables: Set[str] = field(default_factory=set)
    value_terms_per_table: Dict[str, Set[str]] = field(default_factory=dict)

    def is_sole_value_term(self, table: str, term: str) -> bool:
        return self.value_terms_per_table.get(table, set()) == {term}


def resolve_readings(match: InfoMatch, context: ClassificationContext) -> Tuple[ValueTerm, ...]:
    """
    Narrow a term's readings using the tables the query mentions.

    A reading on an explicitly named table wins; failing that, a reading one
    hop from an explicitly named table. Otherwise every reading is kept.
    """
    if len(match.tables) <= 1:
        return match.readings
    for pool in (context.explicit_tables, context.neighbour_tables):
        narrowed = tuple(r for r in match.readings if r.table in pool)
        if len({r.table for r in narrowed}) == 1:
            return narrowed
    return match.readings


def classify_entity_type(candidate: Candidate, context: ClassificationContext) -> EntityType:
    """
    Decide between ENTITY and INFO for a vocabulary candidate.

    Rules, first match wins:
    1. A table keyword is an ENTITY.
    2. A fuzzy match (typo-corrected or ambiguous) is INFO.
    3. A generic word with synonym variants ("mouse") is INFO.
    4. A descriptor (status, priority, location) is INFO.
    5. A value term is an ENTITY when it belongs to exactly one table and is
       the only value term of that table in the query; otherwise INFO.

    Temporal, pronoun and numeric candidates have their own fixed types.
    """
    if isinstance(candidate, TemporalMatch):
        return EntityType.TEMPORAL
    if isinstance(candidate, PronounMatch):
        return EntityType.PRONOUN
    if isinstance(candidate, NumericMatch):
        return EntityType.NUMERIC_FILTER
    if isinstance(candidate, TableMatch):
        return EntityType.ENTITY
    if candidate.fuzzy or candidate.suggestions:
        return EntityType.INFO

    readings = resolve_readings(candidate, context)
    if any(r.is_descriptor for r in readings):
        return EntityType.INFO
    tables = {r.table for r in readings}
    if len(tables) == 1:
        table = next(iter(tables))
        if context.is_sole_value_term(table, candidate.term):
            return EntityType.ENTITY
    return EntityType.INFO


def _clamp(score: float) -> float:
    return max(0.0, min(1.0, score))


def _short_penalty(text: str) -> float:
    return 0.1 if len(text.strip()) <= 3 else 0.0


# =============================================================================
# Extraction result
# =============================================================================

@dataclass
class ExtractionResult:
    """Entities found in one query."""
    text: str
    entities: List[Entity]
    current_user: Optional[str] = None
    reference_time: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "text": self.text,
            "entities": [e.to_dict() for e in self.entities],
            "currentUser": self.current_user,
            "referenceTime": self.reference_time,
        }


# =============================================================================
# Extractor
# =============================================================================

class EntityExtractor:
    """
    Extract entities from natural language queries.

    Stateless between calls: every rule table comes from the injected
    Vocabulary and the reference time from the injected clock.
    """

    def __init__(
        self,
        vocabulary: Optional[Vocabulary] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.vocabulary = vocabulary or default_vocabulary()
        self._clock = clock or datetime.now
        self.scanner = LexicalScanner(self.vocabulary)
        self.resolver = FuzzyFieldResolver(self.vocabulary)
        self.temporal = TemporalParser(self._clock)
        self.pronouns = PronounResolver(self.vocabulary.pronouns)

    def extract(self, text: str, current_user: Optional[str] = None,
                now: Optional[datetime] = None) -> ExtractionResult:
        """
        Extract entities from `text`.

        Args:
            text: The user's query
            current_user: Identity that first-person pronouns resolve to
            now: Reference time for relative dates (defaults to the clock)

        Returns:
            ExtractionResult with entities sorted by start index
        """
        text = text or ""
        now = now or self._clock()
        identity = self.pronouns.resolve(current_user)

        scan = self.scanner.scan(text)
        candidates: List[Candidate] = self.resolver.expand(
            scan.candidates, scan.unknown_tokens, text, scan.normalized
        )
        candidates.extend(self.temporal.parse(text, now=now))
        candidates.extend(self.pronouns.scan(text))

        merged = merge_candidates(candidates)
        context = self._build_context(merged)

        entities: List[Entity] = []
        numeric: List[NumericMatch] = []
        for candidate in merged:
            if isinstance(candidate, NumericMatch):
                numeric.append(candidate)
                continue
            entities.append(self._to_entity(candidate, context, identity))

        for match in numeric:
            entity = self._bind_numeric(match, entities)
            if entity is not None:
                entities.append(entity)

        entities.sort(key=lambda e: e.start_index)
        logger.info(f"Extracted {len(entities)} entities from query: {text!r}")
        for e in entities:
            logger.debug(f"  {e.type.value}: '{e.text}' table={e.table} field={e.field} "
                         f"confidence={e.confidence:.2f}")

        return ExtractionResult(
            text=text,
            entities=entities,
            current_user=identity,
            reference_time=now.isoformat(),
        )

    # -------------------------------------------------------------------------
    # Context
    # -------------------------------------------------------------------------

    def _build_context(self, merged: Sequence[Candidate]) -> ClassificationContext:
        context = ClassificationContext()
        for c in merged:
            if isinstance(c, TableMatch):
                context.explicit_tables.add(c.table)
        for table in context.explicit_tables:
            context.neighbour_tables |= self.vocabulary.neighbours(table)

        for c in merged:
            if not isinstance(c, InfoMatch):
                continue
            readings = resolve_readings(c, context)
            for r in readings:
                if not r.is_descriptor:
                    context.value_terms_per_table.setdefault(r.table, set()).add(c.term)
        return context

    # -------------------------------------------------------------------------
    # Entity construction
    # -------------------------------------------------------------------------

    def _to_entity(self, candidate: Candidate, context: ClassificationContext,
                   identity: Optional[str]) -> Entity:
        entity_type = classify_entity_type(candidate, context)

        if isinstance(candidate, TableMatch):
            return Entity(
                text=candidate.text,
                type=entity_type,
                start_index=candidate.start,
                end_index=candidate.end,
                confidence=_clamp((0.9 if candidate.multi_word else 1.0) - _short_penalty(candidate.text)),
                table=candidate.table,
                value=candidate.table,
                hover_text=f"Table: {candidate.table}",
                matched_by="table_keyword",
            )

        if isinstance(candidate, TemporalMatch):
            if candidate.range_start:
                hover = f"Date range: {candidate.range_start} to {candidate.range_end} (exclusive)"
            else:
                hover = f"Date/time: {candidate.value}"
            return Entity(
                text=candidate.text,
                type=entity_type,
                start_index=candidate.start,
                end_index=candidate.end,
                confidence=1.0,
                value=candidate.value,
                hover_text=hover,
                matched_by="temporal",
                range_start=candidate.range_start,
                range_end=candidate.range_end,
            )

        if isinstance(candidate, PronounMatch):
            return Entity(
                text=candidate.text,
                type=entity_type,
                start_index=candidate.start,
                end_index=candidate.end,
                confidence=1.0 if identity else 0.5,
                value=identity,
                hover_text=f"Current user: {identity}" if identity else "No current user to resolve pronoun",
                matched_by="pronoun",
            )

        return self._info_entity(candidate, entity_type, context)

    def _info_entity(self, match: InfoMatch, entity_type: EntityType,
                     context: ClassificationContext) -> Entity:
        readings = resolve_readings(match, context)
        tables = sorted({r.table for r in readings}, key=self.vocabulary.priority_rank)
        penalty = _short_penalty(match.text)

        if match.fuzzy:
            matched_by = "fuzzy"
            confidence = match.score / 100.0 * 0.7
        elif match.suggestions:
            matched_by = "synonym"
            confidence = 0.6
        else:
            matched_by = "vocabulary"
            confidence = 0.9 if match.multi_word else 1.0

        # Typo with several equally close terms: nothing is resolved.
        if not readings:
            suggested_tables = {
                r.table for term in match.suggestions for r in self.vocabulary.readings(term)
            }
            table = next(iter(suggested_tables)) if len(suggested_tables) == 1 else MULTIPLE_TABLES
            return Entity(
                text=match.text,
                type=entity_type,
                start_index=match.start,
                end_index=match.end,
                confidence=_clamp(confidence - penalty),
                table=table,
                suggestions=match.suggestions,
                hover_text=f"Did you mean: {', '.join(match.suggestions)}?",
                matched_by=matched_by,
            )

        if len(tables) == 1:
            reading = readings[0]
            hover = f"{reading.table}.{reading.field} ~ {reading.canonical}"
            if match.suggestions:
                hover += f" (also: {', '.join(match.suggestions)})"
            return Entity(
                text=match.text,
                type=entity_type,
                start_index=match.start,
                end_index=match.end,
                confidence=_clamp(confidence - penalty),
                table=reading.table,
                field=reading.field,
                value=reading.canonical,
                suggestions=match.suggestions,
                hover_text=hover,
                matched_by=matched_by,
                category=reading.category if reading.is_descriptor else None,
                readings=readings,
            )

        # Several tables remain after context narrowing.
        descriptor = all(r.is_descriptor for r in readings)
        canonicals = {r.canonical for r in readings}
        if descriptor and len(canonicals) == 1:
            return Entity(
                text=match.text,
                type=entity_type,
                start_index=match.start,
                end_index=match.end,
                confidence=_clamp(confidence - penalty),
                table=MULTIPLE_TABLES,
                value=readings[0].canonical,
                hover_text=f"{readings[0].category}: {readings[0].canonical} ({', '.join(tables)})",
                matched_by=matched_by,
                category=readings[0].category,
                readings=readings,
            )

        suggestions = tuple(f"{r.canonical} ({r.table})" for r in
                            sorted(readings, key=lambda r: self.vocabulary.priority_rank(r.table)))
        return Entity(
            text=match.text,
            type=entity_type,
            start_index=match.start,
            end_index=match.end,
            confidence=_clamp(0.5 - penalty),
            table=MULTIPLE_TABLES,
            suggestions=suggestions,
            hover_text=f"Could be: {', '.join(suggestions)}",
            matched_by=matched_by,
            readings=readings,
        )

    def _bind_numeric(self, match: NumericMatch, entities: Sequence[Entity]) -> Optional[Entity]:
        """
        Attach a comparison to a table and numeric field.

        A hint word ("price below 100") decides directly; otherwise the nearest
        preceding entity whose table has a default numeric field, then the
        nearest following one.
        """
        target = self.resolver.field_for_hint(match.hint)
        if target is not None:
            schema = self.vocabulary.schema(target[0])
            if schema is None or not schema.has_column(target[1]):
                target = None

        if target is None:
            preceding = [e for e in entities if e.end_index <= match.start]
            following = [e for e in entities if e.start_index >= match.end]
            for e in list(reversed(preceding)) + following:
                if not e.has_concrete_table:
                    continue
                numeric_field = self.resolver.default_numeric_field(e.table)
                if numeric_field:
                    target = (e.table, numeric_field)
                    break

        if target is None:
            logger.debug(f"No table for numeric phrase '{match.text}', skipping")
            return None

        table, numeric_field = target
        return Entity(
            text=match.text,
            type=EntityType.NUMERIC_FILTER,
            start_index=match.start,
            end_index=match.end,
            confidence=1.0,
            table=table,
            field=numeric_field,
            value=match.value,
            operator=match.operator,
            hover_text=f"{table}.{numeric_field} {match.operator} {match.value}",
            matched_by="numeric",
        )
