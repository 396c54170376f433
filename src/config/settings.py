"""Application settings with Pydantic Settings validation.

Secrets (push access token, database password) are loaded from the
environment or a .env file. Non-sensitive configuration is loaded from
config/main.yaml and config/*.yaml files, merged and validated against
JSON schemas in config/schemas/.
"""

import json
from pathlib import Path
from typing import Any, Final, Literal, cast

import yaml
from jsonschema import ValidationError as JSONSchemaValidationError
from jsonschema import validate
from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from src.config.logging_config import get_logger
from src.domain.notification_constants import (
    DEBOUNCE_MAX_ENTRIES,
    DEBOUNCE_WINDOW_SECONDS,
    DRAIN_BATCH_SIZE,
    DRAIN_INTERVAL_SECONDS,
    ENQUEUE_DEDUP_WINDOW_SECONDS,
    EXPIRATION_LOOKAHEAD_SECONDS,
    EXPO_PUSH_URL,
    LEASE_SECONDS,
    PRESENCE_TTL_SECONDS,
    PUSH_BATCH_SIZE,
    PUSH_TIMEOUT_SECONDS,
    STALENESS_CUTOFF_HOURS,
)
from src.domain.notification_jobs import DEFAULT_MAX_ATTEMPTS
from src.observability.metrics import DEFAULT_METRICS_PORT

POSTGRES_MIN_CONNECTIONS_DEFAULT: Final[int] = 1
POSTGRES_MAX_CONNECTIONS_DEFAULT: Final[int] = 10
POSTGRES_STATEMENT_TIMEOUT_MS_DEFAULT: Final[int] = 10_000
POSTGRES_CONNECT_TIMEOUT_SECONDS_DEFAULT: Final[int] = 10
POSTGRES_APPLICATION_NAME_DEFAULT: Final[str] = "hooked_notifications"

CONFIG_DIR_DEFAULT: Final[str] = "config"

logger = cast(Any, get_logger(__name__))


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Deep merge two dictionaries.

    Args:
        base: Base dictionary
        override: Dictionary to merge into base (takes precedence)

    Returns:
        Merged dictionary
    """
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def load_schema(schema_name: str, config_dir: Path | str = CONFIG_DIR_DEFAULT) -> dict[str, Any]:
    """Load JSON Schema from ``<config_dir>/schemas/``.

    Returns:
        JSON Schema dictionary or empty dict if not found
    """
    schema_path = Path(config_dir) / "schemas" / f"{schema_name}.schema.json"
    if not schema_path.exists():
        return {}

    try:
        with open(schema_path, encoding="utf-8") as f:
            return json.load(f)
    except (json.JSONDecodeError, OSError) as e:
        logger.warning("config_schema_load_failed", schema=schema_name, error=str(e))
        return {}


def validate_config_section(
    config: dict[str, Any],
    schema_name: str,
    file_path: str = "",
    config_dir: Path | str = CONFIG_DIR_DEFAULT,
) -> None:
    """Validate config section against JSON Schema.

    Raises:
        ValueError: If validation fails
    """
    schema = load_schema(schema_name, config_dir)
    if not schema:
        return

    try:
        validate(instance=config, schema=schema)
        logger.debug("config_validation_succeeded", schema=schema_name)
    except JSONSchemaValidationError as e:
        error_msg = f"Config validation failed for {schema_name}"
        if file_path:
            error_msg += f" (file: {file_path})"
        error_msg += f": {e.message}"
        raise ValueError(error_msg) from e


def load_all_configs(config_dir: Path | str = CONFIG_DIR_DEFAULT) -> dict[str, Any]:
    """Load and merge all YAML configs from the config directory.

    Loading order (later overrides earlier):
    1. main.yaml
    2. All other *.yaml files (sorted alphabetically)

    Each file is validated against the schema named after its stem.

    Raises:
        ValueError: If a file fails schema validation
    """
    directory = Path(config_dir)
    merged_config: dict[str, Any] = {}
    if not directory.is_dir():
        logger.info("config_dir_missing", path=str(directory))
        return merged_config

    main_path = directory / "main.yaml"
    yaml_files = sorted(f for f in directory.glob("*.yaml") if f.name != "main.yaml")
    ordered = ([main_path] if main_path.exists() else []) + yaml_files

    for yaml_file in ordered:
        schema_name = yaml_file.stem
        try:
            with open(yaml_file, encoding="utf-8") as f:
                file_config = yaml.safe_load(f) or {}
        except (yaml.YAMLError, OSError) as e:
            logger.warning("config_file_load_failed", path=str(yaml_file), error=str(e))
            continue

        try:
            validate_config_section(file_config, schema_name, str(yaml_file), directory)
        except ValueError as e:
            logger.error(
                "config_validation_failed",
                path=str(yaml_file),
                schema=schema_name,
                error=str(e),
            )
            raise

        merged_config = deep_merge(merged_config, file_config)
        logger.debug("config_file_loaded", path=str(yaml_file), schema=schema_name)

    logger.info("config_load_complete", file_count=len(ordered))
    return merged_config


class Settings(BaseSettings):
    """Application settings.

    Secrets are loaded from the environment / .env file.
    Non-sensitive config is loaded from config/*.yaml with fallback to defaults.
    """

    model_config = SettingsConfigDict(
        env_file=".env" if Path(".env").exists() else None,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # === SECRETS (from environment) ===

    push_access_token: SecretStr | None = Field(
        default=None, description="Expo access token for enhanced push security"
    )
    postgres_password: SecretStr | None = Field(
        default=None, description="PostgreSQL password (only needed for postgres)"
    )

    # === NON-SENSITIVE CONFIG (from config/*.yaml or defaults) ===

    def __init__(self, config_dir: Path | str = CONFIG_DIR_DEFAULT, **data: Any):
        """Initialize settings with auto-loaded configs from all YAML files."""
        config = load_all_configs(config_dir)

        super().__init__(**data)
        self._apply_yaml_defaults(config)

    def _apply_yaml_defaults(self, config: dict[str, Any]) -> None:
        """Apply YAML-sourced defaults without overriding env-provided values."""

        fields_from_env = set(self.model_fields_set)

        def _assign(field_name: str, value: Any) -> None:
            if value is None:
                return
            if field_name in fields_from_env:
                return

            object.__setattr__(self, field_name, value)
            self.model_fields_set.add(field_name)

        push_config = config.get("push") or {}
        _assign("push_gateway_url", push_config.get("gateway_url"))
        _assign("push_batch_size", push_config.get("batch_size"))
        _assign("push_timeout_seconds", push_config.get("timeout_seconds"))

        suppression_config = config.get("suppression") or {}
        _assign("presence_ttl_seconds", suppression_config.get("presence_ttl_seconds"))
        _assign(
            "debounce_window_seconds", suppression_config.get("debounce_window_seconds")
        )
        _assign("debounce_max_entries", suppression_config.get("debounce_max_entries"))
        _assign(
            "enqueue_dedup_window_seconds",
            suppression_config.get("enqueue_dedup_window_seconds"),
        )

        queue_config = config.get("queue") or {}
        _assign("max_attempts", queue_config.get("max_attempts"))
        _assign("staleness_cutoff_hours", queue_config.get("staleness_cutoff_hours"))
        _assign("drain_batch_size", queue_config.get("drain_batch_size"))
        _assign("drain_interval_seconds", queue_config.get("drain_interval_seconds"))
        _assign("lease_seconds", queue_config.get("lease_seconds"))

        expiration_config = config.get("expiration") or {}
        _assign(
            "expiration_lookahead_seconds",
            expiration_config.get("lookahead_seconds"),
        )

        database_config = config.get("database") or {}
        _assign("database_type", database_config.get("type"))
        _assign("db_path", database_config.get("path"))

        postgres_config = database_config.get("postgres") or {}
        _assign("postgres_host", postgres_config.get("host"))
        _assign("postgres_port", postgres_config.get("port"))
        _assign("postgres_database", postgres_config.get("database"))
        _assign("postgres_user", postgres_config.get("user"))
        _assign("postgres_ssl_mode", postgres_config.get("ssl_mode"))

        logging_config = config.get("logging") or {}
        _assign("log_level", logging_config.get("level"))
        _assign("json_logs", logging_config.get("json"))

        observability_config = config.get("observability") or {}
        _assign("metrics_port", observability_config.get("metrics_port"))

    # Push gateway
    push_gateway_url: str = Field(
        default=EXPO_PUSH_URL, description="Expo push send endpoint"
    )
    push_batch_size: int = Field(
        default=PUSH_BATCH_SIZE,
        ge=1,
        le=PUSH_BATCH_SIZE,
        description="Messages per gateway request",
    )
    push_timeout_seconds: float = Field(
        default=PUSH_TIMEOUT_SECONDS, gt=0, description="Per-request gateway timeout"
    )

    # Suppression layers
    presence_ttl_seconds: float = Field(
        default=PRESENCE_TTL_SECONDS,
        gt=0,
        description="Presence records older than this count as background",
    )
    debounce_window_seconds: float = Field(
        default=DEBOUNCE_WINDOW_SECONDS, gt=0, description="Content debounce window"
    )
    debounce_max_entries: int = Field(
        default=DEBOUNCE_MAX_ENTRIES,
        ge=1,
        description="Debounce cache size that triggers a purge",
    )
    enqueue_dedup_window_seconds: float = Field(
        default=ENQUEUE_DEDUP_WINDOW_SECONDS,
        ge=0,
        description="Window for dropping near-duplicate jobs at enqueue",
    )

    # Queue / worker
    max_attempts: int = Field(
        default=DEFAULT_MAX_ATTEMPTS, ge=1, description="Failed attempts before giving up"
    )
    staleness_cutoff_hours: int = Field(
        default=STALENESS_CUTOFF_HOURS,
        ge=1,
        description="Jobs older than this fail without delivery",
    )
    drain_batch_size: int = Field(
        default=DRAIN_BATCH_SIZE, ge=1, description="Jobs leased per drain cycle"
    )
    drain_interval_seconds: float = Field(
        default=DRAIN_INTERVAL_SECONDS, gt=0, description="Scheduled drain cadence"
    )
    lease_seconds: float = Field(
        default=LEASE_SECONDS, gt=0, description="Job lease duration"
    )
    expiration_lookahead_seconds: float = Field(
        default=EXPIRATION_LOOKAHEAD_SECONDS,
        gt=0,
        description="Events ending within this window get an expiration notice",
    )

    # Database configuration
    database_type: Literal["sqlite", "postgres"] = Field(
        default="sqlite", description="Database type: sqlite or postgres"
    )
    db_path: str = Field(
        default="data/hooked_notifications.db", description="SQLite database path"
    )
    postgres_host: str = Field(default="localhost", description="PostgreSQL host")
    postgres_port: int = Field(default=5432, description="PostgreSQL port")
    postgres_database: str = Field(
        default="hooked", description="PostgreSQL database name"
    )
    postgres_user: str = Field(default="postgres", description="PostgreSQL user")
    postgres_min_connections: int = Field(
        default=POSTGRES_MIN_CONNECTIONS_DEFAULT,
        description="Minimum number of connections in PostgreSQL pool",
    )
    postgres_max_connections: int = Field(
        default=POSTGRES_MAX_CONNECTIONS_DEFAULT,
        description="Maximum number of connections in PostgreSQL pool",
    )
    postgres_statement_timeout_ms: int = Field(
        default=POSTGRES_STATEMENT_TIMEOUT_MS_DEFAULT,
        description="PostgreSQL statement timeout in milliseconds",
    )
    postgres_connect_timeout_seconds: int = Field(
        default=POSTGRES_CONNECT_TIMEOUT_SECONDS_DEFAULT,
        description="PostgreSQL connection timeout in seconds",
    )
    postgres_application_name: str = Field(
        default=POSTGRES_APPLICATION_NAME_DEFAULT,
        description="Application name for PostgreSQL connections",
    )
    postgres_ssl_mode: str | None = Field(
        default=None,
        description="Optional SSL mode for PostgreSQL connections (e.g., require)",
    )

    # Observability
    log_level: str = Field(default="INFO", description="Logging level")
    json_logs: bool = Field(default=False, description="Render logs as JSON")
    metrics_port: int = Field(
        default=DEFAULT_METRICS_PORT, description="Prometheus exporter port"
    )

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        normalized = value.upper()
        if normalized not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unsupported log level: {value}")
        return normalized


# Global settings instance
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get or create global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Drop the cached instance (tests and config reloads)."""
    global _settings
    _settings = None
