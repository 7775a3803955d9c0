"""Configuration loader for the hardware price tracker."""

import os
import re
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from dotenv import load_dotenv

from hwtracker.errors import ConfigError
from hwtracker.items import BrowserDrivenStore, HttpFetchStore, StoreConfig

DEFAULT_MCP_URL = "ws://localhost:8081/ws"


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """Load configuration from YAML file.

    Args:
        config_path: Path to config file. If None, uses default locations.

    Returns:
        Dictionary with configuration values.
    """
    # Load environment variables first
    load_dotenv()

    if config_path is None:
        locations = [
            "config.yaml",
            "config.yml",
            "../config.yaml",
            "../config.yml",
            "/app/config.yaml",
        ]
        for loc in locations:
            if Path(loc).exists():
                config_path = loc
                break

    if config_path is None or not Path(config_path).exists():
        raise FileNotFoundError("Configuration file not found. Please provide config.yaml")

    with open(config_path, "r", encoding="utf-8") as f:
        config = yaml.safe_load(f) or {}

    return _substitute_env_vars(config)


def _substitute_env_vars(obj: Any) -> Any:
    """Recursively substitute environment variables in config.

    Supports syntax: ${VAR_NAME} or ${VAR_NAME:default_value}
    """
    if isinstance(obj, dict):
        return {k: _substitute_env_vars(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [_substitute_env_vars(item) for item in obj]
    elif isinstance(obj, str):
        return _substitute_env_string(obj)
    else:
        return obj


def _substitute_env_string(value: str) -> str:
    """Substitute environment variables in a string."""
    pattern = r'\$\{([^}]+)\}'

    def replace(match):
        var_expr = match.group(1)
        if ':' in var_expr:
            var_name, default = var_expr.split(':', 1)
            return os.getenv(var_name, default)
        else:
            return os.getenv(var_expr, match.group(0))

    return re.sub(pattern, replace, value)


def parse_store(entry: Dict[str, Any]) -> StoreConfig:
    """Build a store descriptor from one `stores` entry.

    The `fetch` key selects the variant: `http` or `browser`.
    """
    if not isinstance(entry, dict):
        raise ConfigError(f"Store entry must be a mapping, got {type(entry).__name__}")

    fetch = str(entry.get("fetch", "")).strip().lower()
    name = str(entry.get("name") or "").strip()
    base_url = str(entry.get("base_url") or "").strip().rstrip("/")
    if not name or not base_url:
        raise ConfigError(f"Store entry requires 'name' and 'base_url': {entry!r}")

    if fetch == HttpFetchStore.kind:
        search_path = entry.get("search_path")
        search_param = entry.get("search_param")
        if not search_path or not search_param:
            raise ConfigError(f"HTTP store '{name}' requires 'search_path' and 'search_param'")
        return HttpFetchStore(
            name=name,
            base_url=base_url,
            search_path=str(search_path),
            search_param=str(search_param),
        )

    if fetch == BrowserDrivenStore.kind:
        return BrowserDrivenStore(
            name=name,
            base_url=base_url,
            search_input_selector=str(entry.get("search_input_selector") or "#searchFieldInputField"),
            search_path=str(entry.get("search_path") or ""),
            search_param=str(entry.get("search_param") or ""),
        )

    raise ConfigError(f"Store '{name}' has unknown fetch mode: {fetch or '<missing>'}")


def get_stores(config: Dict[str, Any]) -> List[StoreConfig]:
    """Get configured stores in declaration order."""
    entries = config.get("stores") or []
    if not isinstance(entries, list):
        raise ConfigError("'stores' must be a list")
    return [
        parse_store(entry)
        for entry in entries
        if not isinstance(entry, dict) or entry.get("enabled", True)
    ]


def get_search_terms(config: Dict[str, Any]) -> List[str]:
    """Get search terms in configured order, skipping blanks."""
    terms = config.get("search_terms") or []
    return [str(term).strip() for term in terms if term is not None and str(term).strip()]


def get_scraping_config(config: Dict[str, Any]) -> Dict[str, Any]:
    """Get scraping configuration."""
    return config.get("scraping", {}) or {}


def get_storage_config(config: Dict[str, Any]) -> Dict[str, Any]:
    """Get storage configuration."""
    return config.get("storage", {}) or {}


def get_mcp_config(config: Dict[str, Any]) -> Dict[str, Any]:
    """Get remote storage (MCP) configuration with defaults applied."""
    mcp = dict(config.get("mcp", {}) or {})
    mcp.setdefault("enabled", False)
    mcp["url"] = mcp.get("url") or os.getenv("MCP_SERVER_URL") or DEFAULT_MCP_URL
    mcp.setdefault("timeout", 30.0)
    mcp.setdefault("retry_attempts", 1)
    mcp.setdefault("retry_delay", 1.0)
    return mcp


def get_ai_config(config: Dict[str, Any]) -> Dict[str, Any]:
    """Get AI collaborator configuration."""
    return config.get("ai", {}) or {}


def ensure_directories(config: Dict[str, Any]):
    """Ensure all required directories exist."""
    storage = get_storage_config(config)

    sqlite_path = storage.get("sqlite", {}).get("database_path", "data/db.sqlite")
    Path(sqlite_path).parent.mkdir(parents=True, exist_ok=True)

    fallback_dir = storage.get("fallback_dir", "data/exports")
    Path(fallback_dir).mkdir(parents=True, exist_ok=True)

    log_path = config.get("logging", {}).get("file", "data/logs/tracker.log")
    Path(log_path).parent.mkdir(parents=True, exist_ok=True)
