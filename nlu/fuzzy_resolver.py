"""
Fuzzy/field resolution for single-word terms.

Attaches synonym suggestions to generic product words ("mouse" may mean a
wireless, gaming or bluetooth mouse), tolerates typos with rapidfuzz, and
maps tables and hint words to the numeric field a comparison applies to.
"""
import logging
from dataclasses import replace
from typing import Dict, List, Optional, Sequence, Tuple

from rapidfuzz import fuzz, process

from .candidates import Candidate, InfoMatch
from .scanner import Token, occurrence_positions
from .vocabulary import Vocabulary, default_vocabulary

logger = logging.getLogger(__name__)


class FuzzyFieldResolver:
    """
    Resolve generic and misspelled single-word terms.

    Only single-word terms are expanded here; exact multi-word phrases are
    handled by the scanner and always take priority.
    """

    MIN_FUZZY_LENGTH = 4

    def __init__(self, vocabulary: Optional[Vocabulary] = None):
        self.vocabulary = vocabulary or default_vocabulary()

    def expand(self, candidates: Sequence[Candidate], unknown_tokens: Sequence[Token],
               text: str, normalized: str) -> List[Candidate]:
        """
        Return candidates with synonym suggestions attached plus typo matches.

        A single-word candidate is dropped when one of its multi-word variants
        appears literally anywhere in the text.
        """
        literal_variants = self._literal_variants(normalized)
        expanded: List[Candidate] = []

        for candidate in candidates:
            if isinstance(candidate, InfoMatch) and not candidate.multi_word:
                variants = self.vocabulary.synonyms.get(candidate.term, ())
                if variants:
                    if candidate.term in literal_variants:
                        logger.debug(f"Dropping '{candidate.term}': literal variant present")
                        continue
                    candidate = replace(candidate, suggestions=tuple(variants))
            expanded.append(candidate)

        for token in unknown_tokens:
            match = self.match_typo(token, text)
            if match is None:
                continue
            if match.term in literal_variants:
                continue
            expanded.append(match)

        return expanded

    def match_typo(self, token: Token, text: str) -> Optional[InfoMatch]:
        """Match an unknown token against single-word names; status and priority words are never guessed."""
        if len(token.text) < self.MIN_FUZZY_LENGTH:
            return None

        choices = self.vocabulary.fuzzy_match_terms()
        hits = process.extract(
            token.text,
            choices,
            scorer=fuzz.ratio,
            score_cutoff=self.vocabulary.fuzzy_cutoff,
            limit=5,
        )
        if not hits:
            return None

        best_term, best_score, _ = hits[0]
        close = [term for term, score, _ in hits
                 if best_score - score <= self.vocabulary.fuzzy_margin]
        span_text = text[token.start:token.end]

        if len(close) > 1:
            logger.debug(f"Ambiguous fuzzy match '{token.text}' -> {close}")
            return InfoMatch(
                start=token.start,
                end=token.end,
                text=span_text,
                term=token.text,
                readings=(),
                suggestions=tuple(close),
                fuzzy=True,
                score=best_score,
            )

        logger.debug(f"Fuzzy match '{token.text}' -> '{best_term}' ({best_score:.0f})")
        return InfoMatch(
            start=token.start,
            end=token.end,
            text=span_text,
            term=best_term,
            readings=tuple(r for r in self.vocabulary.readings(best_term) if not r.is_descriptor),
            suggestions=tuple(self.vocabulary.synonyms.get(best_term, ())),
            fuzzy=True,
            score=best_score,
        )

    def default_numeric_field(self, table: Optional[str]) -> Optional[str]:
        """stock -> quantity_available, sales -> total_amount, products -> price."""
        return self.vocabulary.default_numeric_field(table)

    def field_for_hint(self, hint: Optional[str]) -> Optional[Tuple[str, str]]:
        if not hint:
            return None
        return self.vocabulary.numeric_hints.get(hint)

    def suggest(self, query: str, limit: int = 10) -> List[Dict[str, object]]:
        """
        Suggest vocabulary terms for a partial or misspelled input.

        Prefix matches rank above fuzzy ones; each suggestion names the table
        and field it would search.
        """
        query = (query or "").strip().lower()
        if not query:
            return []

        scored: Dict[str, float] = {}
        for term in self.vocabulary.value_terms:
            if term.startswith(query):
                scored[term] = 100.0 + len(query) / max(len(term), 1)
        for term, score, _ in process.extract(
            query,
            list(self.vocabulary.value_terms),
            scorer=fuzz.WRatio,
            score_cutoff=70,
            limit=limit,
        ):
            scored.setdefault(term, score)

        suggestions = []
        for term in sorted(scored, key=lambda t: (-scored[t], t))[:limit]:
            for reading in self.vocabulary.readings(term):
                suggestions.append({
                    "term": term,
                    "table": reading.table,
                    "field": reading.field,
                    "value": reading.canonical,
                    "category": reading.category,
                    "score": round(min(scored[term], 100.0), 1),
                })
        return suggestions[:limit]

    def _literal_variants(self, normalized: str) -> Dict[str, str]:
        """Map base term -> variant for every synonym variant present in the text."""
        found = {}
        for base, variants in self.vocabulary.synonyms.items():
            for variant in variants:
                if occurrence_positions(normalized, variant):
                    found[base] = variant
                    break
        return found
