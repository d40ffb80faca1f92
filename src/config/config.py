import os
from dataclasses import dataclass
from typing import List

from utils.load_secrets import load_env_vars


def _parse_bool(value: str | None, default: bool) -> bool:
    if value is None or not value.strip():
        return default
    return value.strip().lower() == "true"


def _parse_float(value: str | None, default: float) -> float:
    try:
        return float(value) if value is not None and value.strip() else default
    except ValueError:
        return default


def _parse_int(value: str | None, default: int) -> int:
    try:
        return int(value) if value is not None and value.strip() else default
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    supabase_url: str
    supabase_anon_key: str
    app_name: str
    app_version: str
    log_level: str
    discovery_radius_km: float
    map_max_pins: int
    discovery_fetch_limit: int
    discovery_timeout_seconds: float
    sample_groups_enabled: bool
    message_history_limit: int
    max_message_length: int
    rate_limit_messages_per_minute: int
    realtime_enabled: bool
    device_storage_dir: str
    default_latitude: float
    default_longitude: float
    nearby_cache_ttl_hours: float

    def __init__(self):
        load_env_vars()
        object.__setattr__(
            self, "supabase_url", os.getenv("SUPABASE_URL", "").strip()
        )
        object.__setattr__(
            self, "supabase_anon_key", os.getenv("SUPABASE_ANON_KEY", "").strip()
        )
        object.__setattr__(self, "app_name", os.getenv("APP_NAME", "NearChat").strip())
        object.__setattr__(
            self, "app_version", os.getenv("APP_VERSION", "1.0.0").strip()
        )
        object.__setattr__(
            self, "log_level", os.getenv("LOG_LEVEL", "INFO").strip().upper()
        )
        object.__setattr__(
            self,
            "discovery_radius_km",
            _parse_float(os.getenv("DISCOVERY_RADIUS_KM"), 5.0),
        )
        object.__setattr__(
            self, "map_max_pins", _parse_int(os.getenv("MAP_MAX_PINS"), 50)
        )
        object.__setattr__(
            self,
            "discovery_fetch_limit",
            _parse_int(os.getenv("DISCOVERY_FETCH_LIMIT"), 100),
        )
        object.__setattr__(
            self,
            "discovery_timeout_seconds",
            _parse_float(os.getenv("DISCOVERY_TIMEOUT_SECONDS"), 8.0),
        )
        object.__setattr__(
            self,
            "sample_groups_enabled",
            _parse_bool(os.getenv("SAMPLE_GROUPS_ENABLED"), True),
        )
        object.__setattr__(
            self,
            "message_history_limit",
            _parse_int(os.getenv("MESSAGE_HISTORY_LIMIT"), 100),
        )
        object.__setattr__(
            self,
            "max_message_length",
            _parse_int(os.getenv("MAX_MESSAGE_LENGTH"), 1000),
        )
        object.__setattr__(
            self,
            "rate_limit_messages_per_minute",
            _parse_int(os.getenv("RATE_LIMIT_MESSAGES_PER_MINUTE"), 10),
        )
        object.__setattr__(
            self, "realtime_enabled", _parse_bool(os.getenv("REALTIME_ENABLED"), True)
        )
        object.__setattr__(
            self,
            "device_storage_dir",
            os.getenv("DEVICE_STORAGE_DIR", "~/.nearchat").strip(),
        )
        object.__setattr__(
            self,
            "default_latitude",
            _parse_float(os.getenv("DEFAULT_LATITUDE"), -33.8737),
        )
        object.__setattr__(
            self,
            "default_longitude",
            _parse_float(os.getenv("DEFAULT_LONGITUDE"), 151.0950),
        )
        object.__setattr__(
            self,
            "nearby_cache_ttl_hours",
            _parse_float(os.getenv("NEARBY_CACHE_TTL_HOURS"), 24.0),
        )

    def validate(self) -> List[str]:
        errors = []
        if not self.supabase_url:
            errors.append("SUPABASE_URL is required")
        if not self.supabase_anon_key:
            errors.append("SUPABASE_ANON_KEY is required")
        if self.discovery_radius_km <= 0:
            errors.append("DISCOVERY_RADIUS_KM must be greater than 0")
        if self.message_history_limit < 1:
            errors.append("MESSAGE_HISTORY_LIMIT must be greater than 0")
        if self.max_message_length < 1:
            errors.append("MAX_MESSAGE_LENGTH must be greater than 0")
        if self.rate_limit_messages_per_minute < 1:
            errors.append("RATE_LIMIT_MESSAGES_PER_MINUTE must be greater than 0")
        return errors


SETTINGS = Settings()
