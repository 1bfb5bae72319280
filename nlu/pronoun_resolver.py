"""
First-person pronoun detection and resolution against the current user.
"""
import re
from typing import FrozenSet, List, Optional

from .candidates import PronounMatch
from .scanner import normalize_text
from .vocabulary import DEFAULT_PRONOUNS


class PronounResolver:
    """Find "me", "my", "mine", "myself" and "i" as whole words."""

    def __init__(self, pronouns: Optional[FrozenSet[str]] = None):
        words = sorted(pronouns or DEFAULT_PRONOUNS, key=len, reverse=True)
        self._pattern = re.compile(r"\b(" + "|".join(re.escape(w) for w in words) + r")\b")

    def scan(self, text: str) -> List[PronounMatch]:
        normalized = normalize_text(text)
        return [
            PronounMatch(start=m.start(), end=m.end(), text=text[m.start():m.end()])
            for m in self._pattern.finditer(normalized)
        ]

    @staticmethod
    def resolve(identity: Optional[str]) -> Optional[str]:
        """Return the current user's identity, or None when there is none."""
        if identity is None:
            return None
        identity = identity.strip()
        return identity or None
