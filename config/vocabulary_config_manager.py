"""
Vocabulary Configuration Manager

Loads the vocabulary used by entity extraction from two optional files:
- a JSON file of overrides (synonyms, products, customers, users, stop words)
- relationships.yaml, the one-hop join table

Anything missing falls back to the built-in defaults.
"""
import os
import json
import logging
from typing import Dict, List, Optional, Any

import yaml

from nlu.vocabulary import (
    DEFAULT_CUSTOMERS,
    DEFAULT_DESCRIPTOR_FIELDS,
    DEFAULT_DESCRIPTORS,
    DEFAULT_PRODUCTS,
    DEFAULT_RELATIONSHIPS,
    DEFAULT_SYNONYMS,
    DEFAULT_USERS,
    Relationship,
    Vocabulary,
    build_value_terms,
    default_vocabulary,
)
from .app_config import DEFAULT_RELATIONSHIPS_PATH

logger = logging.getLogger(__name__)


class VocabularyConfigManager:
    """
    Manages vocabulary overrides stored in JSON and relationships in YAML.

    The JSON overrides may include:
    - synonyms: {"mouse": ["wireless mouse", ...]} merged onto the defaults
    - products: extra product terms
    - customers / users: {"first name": "Full Name"} merged onto the defaults
    - stop_words: extra stop words
    """

    def __init__(self, config_path: Optional[str] = None, relationships_path: Optional[str] = None):
        """Initialize the config manager."""
        self.config_path = config_path
        self.relationships_path = relationships_path or DEFAULT_RELATIONSHIPS_PATH
        self._config: Dict[str, Any] = {}
        self._relationships: List[Dict[str, Any]] = []
        self._load_config()
        self._load_relationships()

    def _load_config(self) -> None:
        """Load overrides from the JSON file."""
        if not self.config_path or not os.path.exists(self.config_path):
            self._config = {}
            return
        try:
            with open(self.config_path, "r", encoding="utf-8") as f:
                loaded = json.load(f)
        except json.JSONDecodeError as e:
            logger.warning(f"Ignoring malformed vocabulary file {self.config_path}: {e}")
            loaded = {}
        self._config = loaded if isinstance(loaded, dict) else {}

    def _load_relationships(self) -> None:
        """Load relationships from YAML."""
        if not os.path.exists(self.relationships_path):
            logger.warning(f"{self.relationships_path} not found; using built-in relationships")
            self._relationships = []
            return
        with open(self.relationships_path, "r", encoding="utf-8") as f:
            obj = yaml.safe_load(f) or {}
        self._relationships = obj.get("relationships", []) or []

    @property
    def synonyms(self) -> Dict[str, List[str]]:
        merged = {k: list(v) for k, v in DEFAULT_SYNONYMS.items()}
        for term, variants in self._config.get("synonyms", {}).items():
            existing = merged.setdefault(term.lower(), [])
            for variant in variants:
                if variant.lower() not in existing:
                    existing.append(variant.lower())
        return merged

    @property
    def products(self) -> List[str]:
        products = list(DEFAULT_PRODUCTS)
        for term in self._config.get("products", []):
            if term.lower() not in products:
                products.append(term.lower())
        # Every synonym variant must be a product term of its own.
        for variants in self.synonyms.values():
            for variant in variants:
                if variant not in products:
                    products.append(variant)
        return products

    @property
    def customers(self) -> Dict[str, str]:
        return {**DEFAULT_CUSTOMERS, **{k.lower(): v for k, v in self._config.get("customers", {}).items()}}

    @property
    def users(self) -> Dict[str, str]:
        return {**DEFAULT_USERS, **{k.lower(): v for k, v in self._config.get("users", {}).items()}}

    @property
    def relationships(self) -> List[Relationship]:
        """Relationships from YAML, or the built-in ones when none are defined."""
        parsed = []
        for rel in self._relationships:
            columns = rel.get("columns") or {}
            left_col = columns.get("left", rel.get("left_column"))
            right_col = columns.get("right", rel.get("right_column"))
            if not rel.get("left") or not rel.get("right") or not left_col or not right_col:
                logger.warning(f"Skipping incomplete relationship: {rel}")
                continue
            parsed.append(Relationship(
                left_table=rel["left"],
                right_table=rel["right"],
                left_column=left_col,
                right_column=right_col,
                join_type=rel.get("type", "inner"),
            ))
        if not parsed:
            if self._relationships:
                logger.warning(
                    f"No usable relationships in {self.relationships_path}; using built-in relationships"
                )
            return list(DEFAULT_RELATIONSHIPS)
        return parsed

    def build_vocabulary(self) -> Vocabulary:
        """Build an immutable Vocabulary with the overrides applied."""
        base = default_vocabulary()
        extra_stop_words = {w.lower() for w in self._config.get("stop_words", [])}
        unknown = [r for r in self.relationships
                   if r.left_table not in base.tables or r.right_table not in base.tables]
        for r in unknown:
            logger.warning(f"Relationship {r.left_table} -> {r.right_table} references an unknown table")

        return base.with_overrides(
            value_terms=build_value_terms(
                self.products,
                self.customers,
                self.users,
                DEFAULT_DESCRIPTORS,
                DEFAULT_DESCRIPTOR_FIELDS,
            ),
            synonyms={k: tuple(v) for k, v in self.synonyms.items()},
            stop_words=base.stop_words | extra_stop_words,
            relationships=tuple(r for r in self.relationships if r not in unknown),
        )


# Global instance
_config_manager: Optional[VocabularyConfigManager] = None


def get_config_manager(config_path: Optional[str] = None,
                       relationships_path: Optional[str] = None) -> VocabularyConfigManager:
    """Get or create the global config manager instance."""
    global _config_manager
    if _config_manager is None:
        _config_manager = VocabularyConfigManager(config_path, relationships_path)
    return _config_manager
