"""
Filter construction module.
"""

from .filter_builder import (
    FilterBuilder,
    FilterSet,
    IdentityFilter,
    NumericFilter,
    QueryPlan,
    TemporalFilter,
    TextFilter,
)

__all__ = [
    "FilterBuilder",
    "FilterSet",
    "IdentityFilter",
    "NumericFilter",
    "QueryPlan",
    "TemporalFilter",
    "TextFilter",
]
