"""
Configuration management for the Email Tracker.

Handles configuration loading with sensible defaults, a JSON config file in
the data directory and EMAIL_TRACKER_* environment overrides.
"""

import json
import logging
import os
from dataclasses import dataclass, asdict, field
from pathlib import Path
from typing import Dict, Any, Optional, List

ENV_PREFIX = "EMAIL_TRACKER_"


def _env(name: str) -> Optional[str]:
    return os.getenv(f"{ENV_PREFIX}{name}")


def _env_bool(name: str, default: bool) -> bool:
    value = _env(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class DatabaseConfig:
    """Aggregator database configuration."""

    url: str = "sqlite:///email_tracker.db"
    echo: bool = False
    log_queries: bool = False  # Enable query logging for performance analysis
    cas_max_retries: int = 50  # Compare-and-swap attempts per session update


@dataclass
class ServerConfig:
    """Aggregator HTTP server configuration."""

    host: str = "127.0.0.1"
    port: int = 3000
    debug: bool = False
    auto_reload: bool = False
    workers: int = 1
    # Backing store for the aggregator: "sqlalchemy" or "memory"
    store_backend: str = "sqlalchemy"
    public_base_url: str = "http://127.0.0.1:3000"


@dataclass
class ClientConfig:
    """Sending-side (local replica) configuration."""

    api_base_url: str = "http://127.0.0.1:3000"
    store_path: str = "data/tracking_data.json"
    sync_interval_secs: float = 300.0
    sync_timeout_secs: float = 30.0
    tracking_enabled: bool = True


@dataclass
class AppConfig:
    """Main application configuration."""

    app_name: str = "Email Tracker"
    version: str = "1.0.0"
    description: str = "Email open and click tracking with replica synchronization"

    data_dir: Optional[str] = None

    # Logging
    log_level: str = "INFO"
    log_to_file: bool = True
    log_dir: str = "logs"

    is_development: bool = False


@dataclass
class TrackerConfig:
    """Complete configuration for the Email Tracker."""

    app: AppConfig = field(default_factory=AppConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    client: ClientConfig = field(default_factory=ClientConfig)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "app": asdict(self.app),
            "server": asdict(self.server),
            "database": asdict(self.database),
            "client": asdict(self.client),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TrackerConfig":
        """Create from dictionary."""
        return cls(
            app=AppConfig(**data.get("app", {})),
            server=ServerConfig(**data.get("server", {})),
            database=DatabaseConfig(**data.get("database", {})),
            client=ClientConfig(**data.get("client", {})),
        )


class ConfigManager:
    """Manages configuration loading, saving, and environment overrides."""

    def __init__(self, config_file: Optional[Path] = None):
        self.config_file: Optional[Path] = config_file
        self.config: Optional[TrackerConfig] = None

    def get_config_file_path(self) -> Path:
        """Get the path for the config file."""
        data_dir = _env("DATA_DIR")
        config_dir = Path(data_dir) if data_dir else Path.cwd() / "data"
        config_dir.mkdir(parents=True, exist_ok=True)
        return config_dir / "config.json"

    def apply_environment(self, config: TrackerConfig) -> TrackerConfig:
        """Apply EMAIL_TRACKER_* environment overrides in place."""
        if _env("DATA_DIR"):
            config.app.data_dir = _env("DATA_DIR")
        if _env("LOG_LEVEL"):
            config.app.log_level = _env("LOG_LEVEL").upper()
        if _env("LOG_DIR"):
            config.app.log_dir = _env("LOG_DIR")
        config.app.is_development = _env_bool("DEV", config.app.is_development)

        if _env("DATABASE_URL"):
            config.database.url = _env("DATABASE_URL")

        if _env("HOST"):
            config.server.host = _env("HOST")
        if _env("PORT"):
            config.server.port = int(_env("PORT"))
        if _env("STORE_BACKEND"):
            config.server.store_backend = _env("STORE_BACKEND")
        if _env("PUBLIC_BASE_URL"):
            config.server.public_base_url = _env("PUBLIC_BASE_URL")
        config.server.debug = _env_bool("DEBUG", config.server.debug)

        if _env("API_URL"):
            config.client.api_base_url = _env("API_URL")
        if _env("STORE_PATH"):
            config.client.store_path = _env("STORE_PATH")
        if _env("SYNC_INTERVAL"):
            config.client.sync_interval_secs = float(_env("SYNC_INTERVAL"))
        if _env("SYNC_TIMEOUT"):
            config.client.sync_timeout_secs = float(_env("SYNC_TIMEOUT"))
        config.client.tracking_enabled = _env_bool(
            "TRACKING_ENABLED", config.client.tracking_enabled
        )

        if config.server.debug:
            config.app.log_level = "DEBUG"
        return config

    def load_config(self) -> TrackerConfig:
        """Load configuration from file or create default."""
        if self.config_file is None:
            self.config_file = self.get_config_file_path()

        if self.config_file.exists():
            try:
                with open(self.config_file, "r", encoding="utf-8") as f:
                    data = json.load(f)
                config = TrackerConfig.from_dict(data)
                logging.info(f"Loaded configuration from {self.config_file}")
            except (OSError, ValueError, TypeError) as e:
                logging.warning(f"Failed to load config from {self.config_file}: {e}")
                logging.info("Creating default configuration")
                config = TrackerConfig()
        else:
            logging.info("No config file found, using default configuration")
            config = TrackerConfig()

        self.config = self.apply_environment(config)
        return self.config

    def save_config(self, config: Optional[TrackerConfig] = None) -> bool:
        """Save configuration to file."""
        if config is None:
            config = self.config

        if config is None:
            logging.error("No configuration to save")
            return False

        try:
            if self.config_file is None:
                self.config_file = self.get_config_file_path()

            with open(self.config_file, "w", encoding="utf-8") as f:
                json.dump(config.to_dict(), f, indent=2, ensure_ascii=False)

            logging.info(f"Saved configuration to {self.config_file}")
            return True

        except OSError as e:
            logging.error(f"Failed to save config to {self.config_file}: {e}")
            return False

    def update_config(self, updates: Dict[str, Any]) -> bool:
        """Update configuration with new values.

        Keys are either section names mapping to dicts or dotted keys such
        as ``"client.tracking_enabled"``.
        """
        if self.config is None:
            self.load_config()

        try:
            config_dict = self.config.to_dict()

            for key, value in updates.items():
                if "." in key:
                    section, name = key.split(".", 1)
                    if section in config_dict:
                        config_dict[section][name] = value
                elif key in config_dict and isinstance(value, dict):
                    config_dict[key].update(value)

            self.config = TrackerConfig.from_dict(config_dict)
        except TypeError as e:
            logging.error(f"Failed to update configuration: {e}")
            return False

        return self.save_config()

    def validate_config(self) -> List[str]:
        """Validate configuration and return list of warnings."""
        if self.config is None:
            self.load_config()

        issues = []

        if self.config.client.sync_interval_secs <= 0:
            issues.append("client.sync_interval_secs must be positive")
        if self.config.client.sync_timeout_secs <= 0:
            issues.append("client.sync_timeout_secs must be positive")
        if self.config.client.sync_timeout_secs > self.config.client.sync_interval_secs:
            issues.append(
                "client.sync_timeout_secs exceeds the sync interval; "
                "round trips may overlap"
            )
        if self.config.server.store_backend not in ("sqlalchemy", "memory"):
            issues.append(
                f"Unknown server.store_backend: {self.config.server.store_backend}"
            )

        db_url = self.config.database.url
        if db_url.startswith("sqlite:///"):
            db_dir = Path(db_url.replace("sqlite:///", "")).parent
            if not db_dir.exists():
                try:
                    db_dir.mkdir(parents=True, exist_ok=True)
                except OSError as e:
                    issues.append(f"Cannot create database directory: {e}")
            elif not os.access(db_dir, os.W_OK):
                issues.append(f"Database directory is not writable: {db_dir}")

        return issues


# Process-wide config manager
config_manager = ConfigManager()


def get_config() -> TrackerConfig:
    """Get the current configuration, loading it on first use."""
    if config_manager.config is None:
        return config_manager.load_config()
    return config_manager.config
