"""
NLU (Natural Language Understanding) module for query analysis.

This module provides:
- Lexical scanning of table keywords, value terms and numeric phrases
- Fuzzy resolution of generic and misspelled terms
- Relative date and first-person pronoun resolution
- Entity classification and confidence scoring
"""

from .candidates import Entity, EntityType
from .entity_extractor import EntityExtractor, ExtractionResult, classify_entity_type
from .fuzzy_resolver import FuzzyFieldResolver
from .pronoun_resolver import PronounResolver
from .scanner import LexicalScanner
from .temporal_parser import TemporalParser
from .vocabulary import ColumnInfo, Relationship, TableSchema, Vocabulary, default_vocabulary

__all__ = [
    "Entity",
    "EntityType",
    "EntityExtractor",
    "ExtractionResult",
    "classify_entity_type",
    "FuzzyFieldResolver",
    "PronounResolver",
    "LexicalScanner",
    "TemporalParser",
    "ColumnInfo",
    "Relationship",
    "TableSchema",
    "Vocabulary",
    "default_vocabulary",
]
