"""
Settings management using Pydantic.

Loads configuration from YAML files and environment variables.
Environment variables override YAML values.
"""

from __future__ import annotations

import logging
import os
from functools import lru_cache
from pathlib import Path

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)


class LedgerSettings(BaseModel):
    """Ledger node connection."""

    rpc_url: str = Field(default="http://127.0.0.1:8899", description="JSON-RPC endpoint of the ledger node")
    commitment: str = "confirmed"  # commitment used for reads (balances, anchors)
    request_timeout_seconds: float = Field(default=30.0, gt=0)


class CacheSettings(BaseModel):
    """Balance cache behaviour."""

    ttl_seconds: float = Field(default=3600.0, gt=0, description="Entries older than this are refetched")
    fetch_timeout_seconds: float = Field(default=10.0, gt=0)
    max_concurrent_fetches: int = Field(default=16, ge=1)


class TransferSettings(BaseModel):
    """Batch transfer pipeline."""

    sign_and_encode: bool = True
    check_balances: bool = True
    submit_timeout_seconds: float = Field(default=30.0, gt=0)
    max_concurrent_submissions: int = Field(default=16, ge=1)


class ConfirmationSettings(BaseModel):
    """Signature confirmation polling."""

    commitment: str = "finalized"
    poll_interval_seconds: float = Field(default=0.5, gt=0)
    timeout_seconds: float = Field(default=60.0, gt=0)


class VaultSettings(BaseModel):
    """In-memory account vault."""

    capacity: int = Field(default=10, ge=1)


class LoggingSettings(BaseModel):
    """Logging settings."""

    level: str = "INFO"
    json_enabled: bool = False
    json_file: str = "logs/multiwallet_json.jsonl"
    # Set to 0 to disable rotation.
    json_max_bytes: int = 50_000_000
    json_backup_count: int = 3


class Settings(BaseSettings):
    """
    Main settings container.

    Loads from YAML file based on environment, then applies env var overrides.
    """

    env: str = Field(default="development", alias="MULTIWALLET_ENV")

    ledger: LedgerSettings = Field(default_factory=LedgerSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    transfer: TransferSettings = Field(default_factory=TransferSettings)
    confirmation: ConfirmationSettings = Field(default_factory=ConfirmationSettings)
    vault: VaultSettings = Field(default_factory=VaultSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    model_config = {
        "env_prefix": "MULTIWALLET_",
        "env_nested_delimiter": "__",
        "extra": "ignore",
        "populate_by_name": True,
    }

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        # YAML values arrive as init kwargs; environment variables override them
        return env_settings, init_settings, dotenv_settings, file_secret_settings

    def validate_config(self) -> list[str]:
        """
        Check cross-field consistency.

        Returns:
            List of validation error messages. Empty list means all validations passed.
        """
        errors = []

        if not self.ledger.rpc_url:
            errors.append("ledger.rpc_url is required")
        elif not self.ledger.rpc_url.startswith(("http://", "https://")):
            errors.append(f"ledger.rpc_url must be an http(s) URL, got {self.ledger.rpc_url!r}")

        valid_commitments = ("processed", "confirmed", "finalized")
        if self.ledger.commitment not in valid_commitments:
            errors.append(f"ledger.commitment must be one of {valid_commitments}")
        if self.confirmation.commitment not in valid_commitments:
            errors.append(f"confirmation.commitment must be one of {valid_commitments}")

        if self.confirmation.poll_interval_seconds >= self.confirmation.timeout_seconds:
            errors.append("confirmation.poll_interval_seconds must be smaller than confirmation.timeout_seconds")

        if self.cache.fetch_timeout_seconds > self.cache.ttl_seconds:
            errors.append("cache.fetch_timeout_seconds should not exceed cache.ttl_seconds")

        return errors

    @classmethod
    def from_yaml(cls, env: str = "development", config_dir: Path | None = None) -> Settings:
        """
        Load settings from config.yaml, merged with <env>.yaml when present.

        The 'env' parameter is also stored as `settings.env`.
        """
        config_dir = config_dir or Path(__file__).parent
        data: dict = {}

        base_file = config_dir / "config.yaml"
        if base_file.exists():
            with open(base_file, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}

        env_file = config_dir / f"{env}.yaml"
        if env_file.exists():
            with open(env_file, encoding="utf-8") as f:
                env_data = yaml.safe_load(f) or {}
            data = _deep_merge(data, env_data)

        # Shorthand for the most commonly overridden value
        if os.getenv("MULTIWALLET_RPC_URL"):
            data.setdefault("ledger", {})
            data["ledger"]["rpc_url"] = os.getenv("MULTIWALLET_RPC_URL")

        data["env"] = env

        _warn_unknown_keys(data, cls)

        return cls(**data)


def _deep_merge(base: dict, override: dict) -> dict:
    """Deep merge two dicts, override wins on conflicts."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _collect_all_keys(data: dict, prefix: str = "") -> set[str]:
    """
    Recursively collect all keys from a nested dict.

    Returns keys in dot-notation format (e.g., "cache.ttl_seconds").
    """
    keys = set()
    for key, value in data.items():
        full_key = f"{prefix}.{key}" if prefix else key
        keys.add(full_key)
        if isinstance(value, dict):
            keys.update(_collect_all_keys(value, full_key))
    return keys


def _collect_model_fields(model_class: type[BaseModel], prefix: str = "") -> set[str]:
    """
    Recursively collect all field names from a Pydantic model.

    Returns field names in dot-notation format.
    """
    fields = set()
    for field_name, field_info in model_class.model_fields.items():
        full_key = f"{prefix}.{field_name}" if prefix else field_name
        fields.add(full_key)
        annotation = field_info.annotation
        if isinstance(annotation, type) and issubclass(annotation, BaseModel):
            fields.update(_collect_model_fields(annotation, full_key))
    return fields


def _warn_unknown_keys(data: dict, model_class: type[BaseModel]) -> None:
    """
    Warn about unknown keys in YAML config that don't match model fields.

    This prevents silent config bugs where typos in key names are ignored.
    """
    yaml_keys = _collect_all_keys(data)
    model_fields = _collect_model_fields(model_class)

    unknown_keys = yaml_keys - model_fields

    if unknown_keys:
        logger.warning(
            f"Unknown configuration keys found (will be ignored due to extra='ignore'): {sorted(unknown_keys)}. "
            f"This may indicate typos in config.yaml or outdated config keys."
        )


@lru_cache(maxsize=4)
def get_settings(env: str | None = None) -> Settings:
    """Get cached settings instance."""
    resolved_env = env or os.getenv("MULTIWALLET_ENV", "development")
    return Settings.from_yaml(env=resolved_env)
