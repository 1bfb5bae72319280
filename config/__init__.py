"""
Configuration module for the query assistant.
"""

from .app_config import (
    AppConfig,
    ConfigurationError,
    SupabaseConfig,
    get_supabase_config,
    load_config,
)
from .vocabulary_config_manager import VocabularyConfigManager, get_config_manager

__all__ = [
    # Vocabulary config
    "VocabularyConfigManager",
    "get_config_manager",
    # App config
    "load_config",
    "ConfigurationError",
    "SupabaseConfig",
    "AppConfig",
    "get_supabase_config",
]
