"""
Configuration Management for the Research Agent

Loads configuration from ~/.research_agent/config.json and environment variables.
"""

import os
import json
import logging
from pathlib import Path
from dataclasses import dataclass, field

logger = logging.getLogger("research_agent.config")

# Default config paths
CONFIG_DIR = Path.home() / ".research_agent"
CONFIG_PATH = CONFIG_DIR / "config.json"
LOGS_DIR = CONFIG_DIR / "logs"
STORE_PATH = CONFIG_DIR / "research_store.json"

# Retrieval defaults
DEFAULT_VAULT_LIMIT = 20
DEFAULT_PUBLIC_LIMIT = 10
DEFAULT_MAX_TOTAL = 25


@dataclass
class RetrievalConfig:
    """Per-run retrieval limits"""
    vault_limit: int = DEFAULT_VAULT_LIMIT
    public_limit: int = DEFAULT_PUBLIC_LIMIT
    max_total: int = DEFAULT_MAX_TOTAL


@dataclass
class StoreConfig:
    """Row store configuration. An empty path keeps the store in memory."""
    path: str = str(STORE_PATH)


@dataclass
class ServerConfig:
    """MCP tool server configuration"""
    name: str = "research_agent"
    log_level: str = "INFO"


@dataclass
class ResearchConfig:
    """Main Research Agent configuration"""
    retrieval: RetrievalConfig = field(default_factory=RetrievalConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    server: ServerConfig = field(default_factory=ServerConfig)


def _parse_retrieval_config(data: dict) -> RetrievalConfig:
    """Parse retrieval section from config dict"""
    retrieval_data = data.get("retrieval", {})
    return RetrievalConfig(
        vault_limit=retrieval_data.get("vault_limit", DEFAULT_VAULT_LIMIT),
        public_limit=retrieval_data.get("public_limit", DEFAULT_PUBLIC_LIMIT),
        max_total=retrieval_data.get("max_total", DEFAULT_MAX_TOTAL),
    )


def _parse_store_config(data: dict) -> StoreConfig:
    """Parse store section from config dict"""
    store_data = data.get("store", {})
    return StoreConfig(path=store_data.get("path", str(STORE_PATH)))


def _parse_server_config(data: dict) -> ServerConfig:
    """Parse server section from config dict"""
    server_data = data.get("server", {})
    return ServerConfig(
        name=server_data.get("name", "research_agent"),
        log_level=server_data.get("log_level", "INFO"),
    )


def load_config() -> ResearchConfig:
    """
    Load configuration from file and environment variables.

    Priority (highest to lowest):
    1. Environment variables
    2. Config file (~/.research_agent/config.json)
    3. Default values
    """
    config = ResearchConfig()

    # Load from config file if exists
    if CONFIG_PATH.exists():
        try:
            with open(CONFIG_PATH) as f:
                data = json.load(f)

            config.retrieval = _parse_retrieval_config(data)
            config.store = _parse_store_config(data)
            config.server = _parse_server_config(data)
        except (json.JSONDecodeError, IOError) as e:
            logger.warning("Failed to load config file %s: %s", CONFIG_PATH, e)

    # Environment variable overrides
    if os.getenv("RESEARCH_VAULT_LIMIT"):
        config.retrieval.vault_limit = int(os.getenv("RESEARCH_VAULT_LIMIT"))
    if os.getenv("RESEARCH_PUBLIC_LIMIT"):
        config.retrieval.public_limit = int(os.getenv("RESEARCH_PUBLIC_LIMIT"))
    if os.getenv("RESEARCH_MAX_TOTAL"):
        config.retrieval.max_total = int(os.getenv("RESEARCH_MAX_TOTAL"))

    # An explicitly empty RESEARCH_STORE_PATH selects the in-memory store
    if os.getenv("RESEARCH_STORE_PATH") is not None:
        config.store.path = os.getenv("RESEARCH_STORE_PATH")

    if os.getenv("RESEARCH_SERVER_NAME"):
        config.server.name = os.getenv("RESEARCH_SERVER_NAME")
    if os.getenv("RESEARCH_LOG_LEVEL"):
        config.server.log_level = os.getenv("RESEARCH_LOG_LEVEL")

    return config


def save_config(config: ResearchConfig) -> None:
    """Save configuration to file."""
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)

    data = {
        "retrieval": {
            "vault_limit": config.retrieval.vault_limit,
            "public_limit": config.retrieval.public_limit,
            "max_total": config.retrieval.max_total,
        },
        "store": {
            "path": config.store.path,
        },
        "server": {
            "name": config.server.name,
            "log_level": config.server.log_level,
        },
    }

    with open(CONFIG_PATH, "w") as f:
        json.dump(data, f, indent=2)

    # Set secure permissions
    CONFIG_PATH.chmod(0o600)


def ensure_directories() -> None:
    """Ensure required directories exist"""
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    LOGS_DIR.mkdir(parents=True, exist_ok=True)
