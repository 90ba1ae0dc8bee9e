# =============================================================================
# masjeed_core/offline/config.py
# Offline Core Configuration
# =============================================================================
"""
Settings for the offline core, merged from (highest priority first):

1. An explicit TOML file
2. The ``[offline]`` section of Streamlit secrets
3. ``MASJEED_*`` environment variables
4. Defaults

Expected secrets.toml / config file format:
    [offline]
    api_base_url = "https://masjeed.example.com"
    db_path = "local_data/masjeed-offline.db"
    request_timeout = 30

    [offline.retry]
    max_retries = 3
    base_delay_ms = 1000
"""

from __future__ import annotations
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union
import logging

import streamlit as st
import toml

from masjeed_core.errors.exceptions import ConfigurationError
from masjeed_core.offline.local_store import LocalStore
from masjeed_core.offline.models import RetryConfig

logger = logging.getLogger(__name__)

SECTION = "offline"

ENV_VARS = {
    "api_base_url": "MASJEED_API_URL",
    "auth_prefix": "MASJEED_AUTH_PREFIX",
    "db_path": "MASJEED_DB_PATH",
    "request_timeout": "MASJEED_REQUEST_TIMEOUT",
    "probe_timeout": "MASJEED_PROBE_TIMEOUT",
    "startup_drain_delay_ms": "MASJEED_STARTUP_DRAIN_DELAY_MS",
    "max_retries": "MASJEED_MAX_RETRIES",
    "base_delay_ms": "MASJEED_BASE_DELAY_MS",
    "max_delay_ms": "MASJEED_MAX_DELAY_MS",
    "backoff_multiplier": "MASJEED_BACKOFF_MULTIPLIER",
}

RETRY_KEYS = {f.name for f in fields(RetryConfig)}


@dataclass(frozen=True)
class OfflineConfig:
    """Resolved settings for the offline client."""
    api_base_url: str = ""
    auth_prefix: str = "/api/auth/"
    db_path: str = str(LocalStore.DEFAULT_DB_PATH)
    request_timeout: float = 30.0
    probe_timeout: float = 5.0
    startup_drain_delay_ms: int = 1000
    retry: RetryConfig = field(default_factory=RetryConfig)

    def validate(self) -> OfflineConfig:
        """Raise ConfigurationError for values the core cannot work with."""
        if not self.auth_prefix.startswith("/"):
            raise ConfigurationError(
                "auth_prefix must be an absolute path",
                config_key="auth_prefix",
                expected_type="str",
            )
        for key in ("request_timeout", "probe_timeout"):
            if getattr(self, key) <= 0:
                raise ConfigurationError(f"{key} must be positive", config_key=key, expected_type="float")
        if self.startup_drain_delay_ms < 0:
            raise ConfigurationError(
                "startup_drain_delay_ms cannot be negative",
                config_key="startup_drain_delay_ms",
                expected_type="int",
            )

        retry = self.retry
        if retry.max_retries < 0:
            raise ConfigurationError("max_retries cannot be negative", config_key="retry.max_retries", expected_type="int")
        if retry.base_delay_ms < 0 or retry.max_delay_ms < retry.base_delay_ms:
            raise ConfigurationError(
                "Retry delays must satisfy 0 <= base_delay_ms <= max_delay_ms",
                config_key="retry.base_delay_ms",
                expected_type="int",
            )
        if retry.backoff_multiplier < 1:
            raise ConfigurationError(
                "backoff_multiplier must be at least 1",
                config_key="retry.backoff_multiplier",
                expected_type="float",
            )
        return self


def _coerce(key: str, value: Any, target: type) -> Any:
    if isinstance(value, target) and not (target is int and isinstance(value, bool)):
        return value
    try:
        if target is int and isinstance(value, float) and value.is_integer():
            return int(value)
        if target in (int, float) and isinstance(value, str):
            return target(value.strip())
        if target is float and isinstance(value, int) and not isinstance(value, bool):
            return float(value)
        if target is str and isinstance(value, (str, Path)):
            return str(value)
    except ValueError as e:
        raise ConfigurationError(
            f"Invalid value for {key}: {value!r}",
            config_key=key,
            expected_type=target.__name__,
        ) from e
    raise ConfigurationError(
        f"Invalid value for {key}: {value!r}",
        config_key=key,
        expected_type=target.__name__,
    )


def _read_env(environ: Mapping[str, str]) -> Dict[str, Any]:
    return {key: environ[var] for key, var in ENV_VARS.items() if environ.get(var)}


def _read_secrets() -> Dict[str, Any]:
    try:
        if SECTION in st.secrets:
            return _flatten(st.secrets[SECTION])
    except (FileNotFoundError, KeyError) as e:
        logger.debug(f"No Streamlit secrets for [{SECTION}]: {e}")
    return {}


def _read_file(path: Union[str, Path]) -> Dict[str, Any]:
    try:
        data = toml.load(str(path))
    except FileNotFoundError as e:
        raise ConfigurationError(f"Config file not found: {path}", config_key="config_file") from e
    except toml.TomlDecodeError as e:
        raise ConfigurationError(f"Config file is not valid TOML: {e}", config_key="config_file") from e
    return _flatten(data.get(SECTION, data))


def _flatten(section: Mapping[str, Any]) -> Dict[str, Any]:
    """Lift ``[offline.retry]`` keys to the top level."""
    flat = {}
    for key, value in dict(section).items():
        if key == "retry" and isinstance(value, Mapping):
            flat.update(dict(value))
        else:
            flat[key] = value
    return flat


def load_offline_config(
    config_file: Optional[Union[str, Path]] = None,
    environ: Optional[Mapping[str, str]] = None,
    use_secrets: bool = True,
) -> OfflineConfig:
    """
    Build the OfflineConfig from every available source.

    Args:
        config_file: Optional TOML file, highest priority
        environ: Environment mapping (defaults to os.environ)
        use_secrets: Read the Streamlit secrets ``[offline]`` section

    Returns:
        Validated OfflineConfig

    Raises:
        ConfigurationError: unknown keys or invalid values
    """
    merged: Dict[str, Any] = {}
    merged.update(_read_env(os.environ if environ is None else environ))
    if use_secrets:
        merged.update(_read_secrets())
    if config_file is not None:
        merged.update(_read_file(config_file))

    top_level = {f.name: f.type for f in fields(OfflineConfig) if f.name != "retry"}
    unknown = set(merged) - set(top_level) - RETRY_KEYS
    if unknown:
        raise ConfigurationError(f"Unknown offline settings: {sorted(unknown)}", config_key=sorted(unknown)[0])

    defaults = OfflineConfig()
    values: Dict[str, Any] = {}
    for key in top_level:
        if key in merged:
            values[key] = _coerce(key, merged[key], type(getattr(defaults, key)))

    retry_values = {}
    for key in RETRY_KEYS:
        if key in merged:
            retry_values[key] = _coerce(key, merged[key], type(getattr(defaults.retry, key)))

    config = OfflineConfig(retry=RetryConfig(**retry_values), **values)
    logger.debug(f"Offline config resolved: base_url={config.api_base_url!r}, db={config.db_path}")
    return config.validate()
