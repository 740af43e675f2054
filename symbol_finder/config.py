"""
Configuration — loads settings from .symfind.yaml, environment variables,
and built-in defaults (in that priority order: CLI args > env > YAML > defaults).
"""

import os

import yaml


_DEFAULTS = {
    "index_path": ".symfind/index.db",
    "default_limit": 20,
    "query_cache_ttl_seconds": 3600,
    "query_cache_backend": "memory",
    "query_cache_dir": ".symfind/cache",
    "workspace_cache_ttl_seconds": 300,
    "max_suggestions": 10,
    "typo_min_score": 0.7,
    "typo_threshold": 0.85,
    "vocabulary_limit": 5000,
    "search_timeout_seconds": 10.0,
    "workspace_path": "",
}

# Config file search locations
_CONFIG_FILENAMES = [".symfind.yaml", ".symfind.yml"]

_ENV_PREFIX = "SYMFIND_"

# Suggestion lists stay scannable no matter what the config says
MAX_SUGGESTIONS_CAP = 10


def _find_config_file(explicit_path: str | None = None) -> str | None:
    """Find the config file. Checks explicit path, CWD, then user home."""
    if explicit_path:
        if os.path.isfile(explicit_path):
            return explicit_path
        return None

    search_dirs = [os.getcwd(), os.path.expanduser("~")]
    for d in search_dirs:
        for name in _CONFIG_FILENAMES:
            path = os.path.join(d, name)
            if os.path.isfile(path):
                return path
    return None


def _load_yaml(path: str) -> dict:
    """Load YAML file, returns empty dict on failure."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
        return data if isinstance(data, dict) else {}
    except (OSError, yaml.YAMLError):
        return {}


class Config:
    """Symbol finder configuration.

    Settings are resolved in priority order:
    1. CLI arguments (handled by caller)
    2. ``SYMFIND_*`` environment variables
    3. .symfind.yaml config file
    4. Built-in defaults
    """

    def __init__(self, yaml_data: dict | None = None):
        yd = yaml_data or {}

        # Helper: env var > yaml > default
        def _get(key: str, cast=str):
            env_val = os.getenv(_ENV_PREFIX + key.upper())
            if env_val is not None:
                return cast(env_val)
            yaml_val = yd.get(key)
            if yaml_val is not None:
                return cast(yaml_val)
            return _DEFAULTS[key]

        self.INDEX_PATH: str = _get("index_path")
        self.DEFAULT_LIMIT: int = _get("default_limit", cast=int)

        # Query cache
        self.QUERY_CACHE_TTL_SECONDS: int = _get("query_cache_ttl_seconds", cast=int)
        self.QUERY_CACHE_BACKEND: str = _get("query_cache_backend").lower()
        if self.QUERY_CACHE_BACKEND not in ("memory", "disk"):
            self.QUERY_CACHE_BACKEND = _DEFAULTS["query_cache_backend"]
        self.QUERY_CACHE_DIR: str = _get("query_cache_dir")

        # Workspace scan cache
        self.WORKSPACE_CACHE_TTL_SECONDS: int = _get("workspace_cache_ttl_seconds",
                                                     cast=int)
        self.WORKSPACE_PATH: str = _get("workspace_path")

        # Suggestions
        self.MAX_SUGGESTIONS: int = min(_get("max_suggestions", cast=int),
                                        MAX_SUGGESTIONS_CAP)
        self.TYPO_MIN_SCORE: float = _get("typo_min_score", cast=float)
        self.TYPO_THRESHOLD: float = _get("typo_threshold", cast=float)
        self.VOCABULARY_LIMIT: int = _get("vocabulary_limit", cast=int)

        self.SEARCH_TIMEOUT_SECONDS: float = _get("search_timeout_seconds",
                                                  cast=float)

    @classmethod
    def load(cls, config_path: str | None = None) -> "Config":
        """Load config from YAML file (if found) + env vars + defaults."""
        path = _find_config_file(config_path)
        yaml_data = _load_yaml(path) if path else {}
        return cls(yaml_data)
