"""
Lexical entity scanner.

Finds every literal vocabulary hit in the user's text: table keywords,
multi-word phrases (longest first), single-word value terms and numeric
comparison phrases. Output is a raw candidate list; overlap resolution
happens later in the extractor.
"""
import re
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple, Union

from .candidates import Candidate, InfoMatch, NumericMatch, TableMatch, spans_overlap
from .vocabulary import Vocabulary, default_vocabulary

logger = logging.getLogger(__name__)


NUMERIC_PATTERN = re.compile(
    r"\b(below|above|over|under|less than|greater than|more than)\s*(\d{1,3}(?:,\d{3})+(?:\.\d+)?|\d+(?:\.\d+)?)\b(?!,\d)"
)

NUMERIC_OPERATORS = {
    "below": "<",
    "under": "<",
    "less than": "<",
    "above": ">",
    "over": ">",
    "greater than": ">",
    "more than": ">",
}

TOKEN_PATTERN = re.compile(r"[a-z0-9][a-z0-9_'\-]*[a-z0-9]|[a-z0-9]")

PRECEDING_WORDS = re.compile(r"([a-z_]+)\W+(?:(?:is|are|of|at)\W+)?$")


@dataclass(frozen=True)
class Token:
    """A word of the normalised text with its span in the original."""
    start: int
    end: int
    text: str


@dataclass
class ScanResult:
    """Raw scanner output."""
    normalized: str
    candidates: List[Candidate] = field(default_factory=list)
    unknown_tokens: List[Token] = field(default_factory=list)


def normalize_text(text: str) -> str:
    """
    Lower-case `text` without changing its length.

    Characters whose lower-case form is longer (e.g. "İ") are kept as-is so
    every index into the normalised string is valid for the original.
    """
    lowered = text.lower()
    if len(lowered) == len(text):
        return lowered
    return "".join(c.lower() if len(c.lower()) == 1 else c for c in text)


def occurrence_positions(haystack: str, term: str) -> List[int]:
    """All whole-word start positions of `term` in `haystack`, left to right."""
    positions = []
    start = haystack.find(term)
    while start != -1:
        end = start + len(term)
        before_ok = start == 0 or not haystack[start - 1].isalnum()
        after_ok = end == len(haystack) or not haystack[end].isalnum()
        if before_ok and after_ok:
            positions.append(start)
        start = haystack.find(term, start + 1)
    return positions


def parse_number(raw: str) -> Union[int, float]:
    """Parse a matched number, dropping thousands separators."""
    raw = raw.replace(",", "")
    return float(raw) if "." in raw else int(raw)


class LexicalScanner:
    """
    Scan text for literal vocabulary matches.

    Every occurrence of a repeated term is reported at its own position, so
    the k-th occurrence of a token binds to the k-th literal occurrence.
    """

    def __init__(self, vocabulary: Optional[Vocabulary] = None):
        self.vocabulary = vocabulary or default_vocabulary()

    def scan(self, text: str) -> ScanResult:
        normalized = normalize_text(text)
        result = ScanResult(normalized=normalized)

        claimed = self._scan_multi_word(text, normalized, result)
        self._scan_tokens(text, normalized, claimed, result)
        self._scan_numeric(text, normalized, result)

        logger.debug(
            f"Scanned {len(result.candidates)} candidates, "
            f"{len(result.unknown_tokens)} unknown tokens"
        )
        return result

    def tokenize(self, normalized: str) -> List[Token]:
        """Split into word tokens, trimming punctuation and possessive 's."""
        tokens = []
        for m in TOKEN_PATTERN.finditer(normalized):
            start, end = m.start(), m.end()
            word = m.group(0)
            if word.endswith("'s") and len(word) > 2:
                word = word[:-2]
                end -= 2
            tokens.append(Token(start=start, end=end, text=word))
        return tokens

    # -------------------------------------------------------------------------
    # Passes
    # -------------------------------------------------------------------------

    def _scan_multi_word(self, text: str, normalized: str,
                         result: ScanResult) -> List[Tuple[int, int]]:
        claimed: List[Tuple[int, int]] = []
        for term in self.vocabulary.multi_word_terms():
            for start in occurrence_positions(normalized, term):
                span = (start, start + len(term))
                if any(spans_overlap(span, c) for c in claimed):
                    continue
                candidate = self._make_candidate(text, span, term)
                if candidate is not None:
                    claimed.append(span)
                    result.candidates.append(candidate)
        return claimed

    def _scan_tokens(self, text: str, normalized: str,
                     claimed: List[Tuple[int, int]], result: ScanResult) -> None:
        vocab = self.vocabulary
        for token in self.tokenize(normalized):
            span = (token.start, token.end)
            if any(spans_overlap(span, c) for c in claimed):
                continue
            if vocab.is_stop_word(token.text) or token.text in vocab.pronouns:
                continue
            candidate = self._make_candidate(text, span, token.text)
            if candidate is not None:
                result.candidates.append(candidate)
            elif token.text.isalpha():
                result.unknown_tokens.append(token)

    def _scan_numeric(self, text: str, normalized: str, result: ScanResult) -> None:
        for m in NUMERIC_PATTERN.finditer(normalized):
            phrase = re.sub(r"\s+", " ", m.group(1))
            hint = None
            preceding = PRECEDING_WORDS.search(normalized[:m.start()])
            if preceding and preceding.group(1) in self.vocabulary.numeric_hints:
                hint = preceding.group(1)
            result.candidates.append(NumericMatch(
                start=m.start(),
                end=m.end(),
                text=text[m.start():m.end()],
                operator=NUMERIC_OPERATORS[phrase],
                value=parse_number(m.group(2)),
                hint=hint,
            ))

    def _make_candidate(self, text: str, span: Tuple[int, int],
                        term: str) -> Optional[Candidate]:
        start, end = span
        table = self.vocabulary.table_for_keyword(term)
        if table:
            return TableMatch(start=start, end=end, text=text[start:end], term=term, table=table)
        readings = self.vocabulary.readings(term)
        if readings:
            return InfoMatch(start=start, end=end, text=text[start:end], term=term, readings=readings)
        return None
