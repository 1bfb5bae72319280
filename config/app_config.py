"""
Centralized configuration with secure credential handling.
All secrets must be provided via environment variables.
"""
import os
from typing import List, Optional
from dataclasses import dataclass, field
from functools import lru_cache

from dotenv import load_dotenv

load_dotenv()

DEFAULT_RELATIONSHIPS_PATH = os.path.join(os.path.dirname(__file__), "relationships.yaml")


@dataclass
class SupabaseConfig:
    """Hosted database (Supabase REST) connection configuration."""
    url: str
    anon_key: str
    schema: str = "public"
    timeout_seconds: float = 30.0

    @property
    def is_configured(self) -> bool:
        return bool(self.url and self.anon_key)


@dataclass
class AppConfig:
    """Main application configuration."""
    supabase: SupabaseConfig
    row_limit: int = 20
    vocabulary_path: Optional[str] = None
    relationships_path: str = DEFAULT_RELATIONSHIPS_PATH
    log_level: str = "INFO"
    server_port: int = 3001
    cors_origins: List[str] = field(default_factory=lambda: ["*"])


class ConfigurationError(Exception):
    """Raised when required configuration is missing."""
    pass


def _parse_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}")
    if value <= 0:
        raise ConfigurationError(f"{name} must be positive, got {value}")
    return value


def _parse_origins(raw: str) -> List[str]:
    """Parse comma-separated CORS origins."""
    origins = [o.strip() for o in raw.split(",") if o.strip()]
    return origins or ["*"]


@lru_cache(maxsize=1)
def load_config() -> AppConfig:
    """
    Load configuration from environment variables.

    Optional environment variables:
    - SUPABASE_URL: Base URL of the Supabase project (needed to execute queries)
    - SUPABASE_ANON_KEY: Anon/service key sent as apikey and bearer token
    - SUPABASE_SCHEMA: Schema exposed through the REST API (default: "public")
    - QUERY_TIMEOUT_SECONDS: HTTP timeout for query execution (default: "30")
    - QUERY_ROW_LIMIT: Maximum rows returned per query (default: "20")
    - VOCABULARY_PATH: JSON file with vocabulary overrides
    - RELATIONSHIPS_PATH: Path to relationships.yaml (default: bundled file)
    - LOG_LEVEL: Logging level (default: "INFO")
    - CHATBOT_PORT: API server port (default: "3001")
    - CORS_ORIGINS: Comma-separated allowed origins (default: "*")

    Raises:
        ConfigurationError: If a numeric variable is malformed
    """
    return AppConfig(
        supabase=SupabaseConfig(
            url=os.environ.get("SUPABASE_URL", "").rstrip("/"),
            anon_key=os.environ.get("SUPABASE_ANON_KEY", ""),
            schema=os.environ.get("SUPABASE_SCHEMA", "public"),
            timeout_seconds=float(_parse_int("QUERY_TIMEOUT_SECONDS", 30)),
        ),
        row_limit=_parse_int("QUERY_ROW_LIMIT", 20),
        vocabulary_path=os.environ.get("VOCABULARY_PATH") or None,
        relationships_path=os.environ.get("RELATIONSHIPS_PATH", DEFAULT_RELATIONSHIPS_PATH),
        log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        server_port=_parse_int("CHATBOT_PORT", 3001),
        cors_origins=_parse_origins(os.environ.get("CORS_ORIGINS", "*")),
    )


def get_supabase_config() -> SupabaseConfig:
    """
    Get the database configuration, failing fast if credentials are missing.

    Raises:
        ConfigurationError: If SUPABASE_URL or SUPABASE_ANON_KEY is unset
    """
    supabase = load_config().supabase
    if supabase.is_configured:
        return supabase

    missing = []
    if not supabase.url:
        missing.append("SUPABASE_URL")
    if not supabase.anon_key:
        missing.append("SUPABASE_ANON_KEY")

    raise ConfigurationError(
        f"Missing required environment variables: {', '.join(missing)}. "
        f"Please set them in your environment or .env file."
    )
