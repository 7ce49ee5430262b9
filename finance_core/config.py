# =============================================================================
# finance_core/config.py
# Data Layer Configuration
# =============================================================================
"""
Settings for the resilient data layer.

Supabase credentials are read from Streamlit secrets:

    [supabase]
    url = "https://your-project.supabase.co"
    key = "your-anon-key"

with SUPABASE_URL / SUPABASE_KEY environment variables as a fallback.
Every tuning constant (cache TTL, retry delays, escalation window) lives on
DataLayerSettings so tests can build isolated instances.
"""

from __future__ import annotations
import os
from dataclasses import dataclass, fields
from datetime import timedelta
from pathlib import Path
from typing import Optional, Tuple

import streamlit as st

from finance_core.errors import ConfigurationError
from finance_core.logging import get_logger

logger = get_logger(__name__)

DEFAULT_CACHE_FILE = Path(__file__).parent.parent / "local_data" / "local_storage.json"


@dataclass
class DataLayerSettings:
    """All tunables of the data layer."""

    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None

    # Local cache
    cache_ttl_minutes: int = 15
    cache_file: Path = DEFAULT_CACHE_FILE

    # Retry controller
    retry_max_attempts: int = 3
    retry_initial_delay_ms: int = 300
    retry_max_delay_ms: int = 10_000
    rate_limit_max_delay_ms: int = 30_000

    # Health monitor
    probe_table: str = "profiles"
    escalation_threshold: int = 3
    escalation_window_minutes: int = 5
    check_interval_healthy: float = 30.0
    check_interval_unhealthy: float = 10.0

    # Keys the Supabase auth client persists in local storage
    session_key_prefixes: Tuple[str, ...] = ("sb-", "supabase.auth.")

    # Logging (applied once by get_data_service)
    log_level: str = "INFO"
    log_to_file: bool = True
    log_dir: Optional[Path] = None

    # One in-flight remote call per cache key
    coalesce_requests: bool = False

    @property
    def cache_ttl(self) -> timedelta:
        return timedelta(minutes=self.cache_ttl_minutes)

    @property
    def escalation_window(self) -> timedelta:
        return timedelta(minutes=self.escalation_window_minutes)

    @property
    def has_credentials(self) -> bool:
        return bool(self.supabase_url and self.supabase_key)

    def require_credentials(self) -> Tuple[str, str]:
        """Return (url, key) or raise ConfigurationError."""
        if not self.supabase_url:
            raise ConfigurationError(
                "Supabase URL is not configured",
                config_key="supabase.url",
            )
        if not self.supabase_key:
            raise ConfigurationError(
                "Supabase key is not configured",
                config_key="supabase.key",
            )
        return self.supabase_url, self.supabase_key


def _read_secrets() -> dict:
    """Read the [supabase] table from Streamlit secrets, if any."""
    try:
        if "supabase" in st.secrets:
            return dict(st.secrets["supabase"])
    except Exception as e:
        # No secrets.toml outside a deployed app
        logger.debug(f"Streamlit secrets unavailable: {e}")
    return {}


def load_settings(**overrides) -> DataLayerSettings:
    """
    Build settings from Streamlit secrets, then environment variables.

    Args:
        **overrides: Field values that take precedence over both sources

    Returns:
        DataLayerSettings instance
    """
    secrets = _read_secrets()

    settings = DataLayerSettings(
        supabase_url=secrets.get("url") or os.getenv("SUPABASE_URL"),
        supabase_key=secrets.get("key") or os.getenv("SUPABASE_KEY"),
    )

    ttl = os.getenv("FINANCEHUB_CACHE_TTL_MINUTES")
    if ttl:
        try:
            settings.cache_ttl_minutes = int(ttl)
        except ValueError:
            raise ConfigurationError(
                f"Invalid cache TTL: {ttl!r}",
                config_key="FINANCEHUB_CACHE_TTL_MINUTES",
            )

    log_level = os.getenv("FINANCEHUB_LOG_LEVEL")
    if log_level:
        settings.log_level = log_level.upper()

    cache_file = os.getenv("FINANCEHUB_CACHE_FILE")
    if cache_file:
        settings.cache_file = Path(cache_file)

    for name, value in overrides.items():
        if name not in {f.name for f in fields(settings)}:
            raise ConfigurationError(f"Unknown setting: {name}", config_key=name)
        setattr(settings, name, value)

    return settings
