"""
Configuration loader for the delayer.
Reads settings from a YAML file with ${ENV_VAR} substitution.
"""
from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml

from delayer.errors import ConfigError

ATOMIC_MODES = ("transaction", "script")


@dataclass
class RedisConfig:
    host: str = "127.0.0.1"
    port: int = 6379
    password: str = ""
    database: int = 0
    max_idle: int = 8
    max_active: int = 32
    idle_timeout: int = 180          # seconds
    conn_max_lifetime: int = 3600    # seconds
    socket_timeout: float = 5.0      # seconds, bounds every store round-trip


@dataclass
class DelayerConfig:
    timer_interval: int = 500        # milliseconds between ticks
    atomic_mode: str = "script"      # "script" (Lua) | "transaction" (MULTI/EXEC)
    resolve_concurrency: int = 64
    move_concurrency: int = 16


@dataclass
class LogConfig:
    level: str = "INFO"
    format: str = "json"             # "json" | "console"


@dataclass
class Settings:
    delayer: DelayerConfig = field(default_factory=DelayerConfig)
    redis: RedisConfig = field(default_factory=RedisConfig)
    log: LogConfig = field(default_factory=LogConfig)


_settings: Optional[Settings] = None


def _substitute_env_vars(value: str) -> str:
    """Replace ${VAR_NAME} patterns with environment variable values."""
    pattern = re.compile(r'\$\{(\w+)\}')
    def replacer(match):
        var_name = match.group(1)
        return os.environ.get(var_name, match.group(0))
    return pattern.sub(replacer, value)


def _process_values(obj: Any) -> Any:
    """Recursively substitute env vars in all string values."""
    if isinstance(obj, str):
        return _substitute_env_vars(obj)
    elif isinstance(obj, dict):
        return {k: _process_values(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [_process_values(v) for v in obj]
    return obj


def _as_int(section: str, name: str, value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{section}.{name} must be an integer, got {value!r}") from None


def validate(settings: Settings) -> Settings:
    d = settings.delayer
    if d.timer_interval <= 0:
        raise ConfigError(f"delayer.timer_interval must be > 0, got {d.timer_interval}")
    if d.atomic_mode not in ATOMIC_MODES:
        raise ConfigError(
            f"delayer.atomic_mode must be one of {ATOMIC_MODES}, got {d.atomic_mode!r}"
        )
    if d.resolve_concurrency <= 0 or d.move_concurrency <= 0:
        raise ConfigError("delayer concurrency limits must be > 0")
    if settings.redis.max_active <= 0:
        raise ConfigError("redis.max_active must be > 0")
    return settings


def load_settings(config_path: str = None) -> Settings:
    """Load settings from YAML file."""
    global _settings

    if config_path is None:
        config_path = os.environ.get("DELAYER_CONFIG", "delayer.yaml")

    settings = Settings()

    if Path(config_path).exists():
        with open(config_path) as f:
            raw = yaml.safe_load(f) or {}
        raw = _process_values(raw)

        if "delayer" in raw:
            d = raw["delayer"] or {}
            settings.delayer = DelayerConfig(
                timer_interval=_as_int("delayer", "timer_interval",
                                       d.get("timer_interval", settings.delayer.timer_interval)),
                atomic_mode=str(d.get("atomic_mode", settings.delayer.atomic_mode)),
                resolve_concurrency=_as_int("delayer", "resolve_concurrency",
                                            d.get("resolve_concurrency", settings.delayer.resolve_concurrency)),
                move_concurrency=_as_int("delayer", "move_concurrency",
                                         d.get("move_concurrency", settings.delayer.move_concurrency)),
            )

        if "redis" in raw:
            r = raw["redis"] or {}
            defaults = settings.redis
            settings.redis = RedisConfig(
                host=str(r.get("host", defaults.host)),
                port=_as_int("redis", "port", r.get("port", defaults.port)),
                password=str(r.get("password", defaults.password) or ""),
                database=_as_int("redis", "database", r.get("database", defaults.database)),
                max_idle=_as_int("redis", "max_idle", r.get("max_idle", defaults.max_idle)),
                max_active=_as_int("redis", "max_active", r.get("max_active", defaults.max_active)),
                idle_timeout=_as_int("redis", "idle_timeout", r.get("idle_timeout", defaults.idle_timeout)),
                conn_max_lifetime=_as_int("redis", "conn_max_lifetime",
                                          r.get("conn_max_lifetime", defaults.conn_max_lifetime)),
                socket_timeout=float(r.get("socket_timeout", defaults.socket_timeout)),
            )

        if "log" in raw:
            lg = raw["log"] or {}
            settings.log = LogConfig(
                level=str(lg.get("level", settings.log.level)),
                format=str(lg.get("format", settings.log.format)),
            )

    _settings = validate(settings)
    return settings


def get_settings() -> Settings:
    """Return cached settings or load from default path."""
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings
