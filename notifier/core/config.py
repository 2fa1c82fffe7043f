"""
Notifier configuration.

Sources, later ones winning:
    ~/.notifier/config.toml   user-wide settings
    ./notifier.toml           per-deployment settings
    NOTIFIER_* env vars       container / systemd overrides
    overrides=...             explicit values from code or tests

String values may reference other environment variables as ${NAME}, e.g.

    [telegram]
    token = "${ORGCHART_BOT_TOKEN}"
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any, Mapping

from pydantic import BaseModel, Field

from notifier.core.errors import ConfigError

# ━━━ Sections ━━━


class TelegramConfig(BaseModel):
    """Bot used to post notifications into chats."""

    token: str = ""
    parse_mode: str = "HTML"
    timeout: float = 10.0
    api_base: str = "https://api.telegram.org"

    @property
    def configured(self) -> bool:
        return bool(self.token)


class SchedulerConfig(BaseModel):
    """Polling loop settings."""

    enabled: bool = True
    autostart: bool = True
    poll_interval: int = Field(default=60, ge=1)  # seconds


class StoreConfig(BaseModel):
    db_path: str = "~/.notifier/notifier.db"


class ApiConfig(BaseModel):
    """Control endpoints served by `notifier run`."""

    host: str = "127.0.0.1"
    port: int = 8085
    prefix: str = "/notification-service"


class LoggingConfig(BaseModel):
    dir: str = "~/.notifier/logs"
    console_level: str = "WARNING"
    notifications_log: str = "~/.notifier/notifications.log"


# ━━━ Root ━━━


class NotifierConfig(BaseModel):
    """Everything a notifier process reads at startup."""

    telegram: TelegramConfig = Field(default_factory=TelegramConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
    api: ApiConfig = Field(default_factory=ApiConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def load(
        cls,
        overrides: dict[str, Any] | None = None,
        project_path: Path | None = None,
        user_path: Path | None = None,
    ) -> NotifierConfig:
        """
        Merge every config source into one validated config.

        Raises ConfigError for unreadable TOML or values that fail validation.
        """
        layers = [
            _read_toml(user_path or get_notifier_home() / "config.toml"),
            _read_toml(project_path or Path.cwd() / "notifier.toml"),
            _env_layer(os.environ),
            overrides or {},
        ]
        data: dict[str, Any] = {}
        for layer in layers:
            _merge_into(data, layer)
        _expand_env_refs(data)

        try:
            return cls(**data)
        except ValueError as e:
            raise ConfigError(f"Invalid configuration: {e}") from e

    def get_db_path(self) -> Path:
        return Path(self.store.db_path).expanduser()

    def get_log_dir(self) -> Path:
        return Path(self.logging.dir).expanduser()


def get_notifier_home() -> Path:
    """~/.notifier, where user config, the database and logs live by default."""
    return Path.home() / ".notifier"


# ━━━ Loading helpers ━━━

# env var -> (section, key)
ENV_VARS: dict[str, tuple[str, str]] = {
    "NOTIFIER_TELEGRAM_TOKEN": ("telegram", "token"),
    "NOTIFIER_TELEGRAM_PARSE_MODE": ("telegram", "parse_mode"),
    "NOTIFIER_SCHEDULER_ENABLED": ("scheduler", "enabled"),
    "NOTIFIER_SCHEDULER_AUTOSTART": ("scheduler", "autostart"),
    "NOTIFIER_POLL_INTERVAL": ("scheduler", "poll_interval"),
    "NOTIFIER_DB_PATH": ("store", "db_path"),
    "NOTIFIER_API_HOST": ("api", "host"),
    "NOTIFIER_API_PORT": ("api", "port"),
    "NOTIFIER_LOG_DIR": ("logging", "dir"),
    "NOTIFIER_LOG_LEVEL": ("logging", "console_level"),
}

# Kept as strings even when they look numeric (e.g. an all-digit token)
_STRING_KEYS = {("telegram", "token"), ("store", "db_path"), ("api", "host"), ("logging", "dir")}

_ENV_REF = re.compile(r"\$\{([^}]+)\}")


def _read_toml(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    try:
        import tomllib
    except ImportError:
        import tomli as tomllib  # type: ignore[no-redef]

    try:
        return tomllib.loads(path.read_text(encoding="utf-8"))
    except (OSError, tomllib.TOMLDecodeError) as e:
        raise ConfigError(f"Failed to load config from {path}: {e}") from e


def _env_layer(environ: Mapping[str, str]) -> dict[str, Any]:
    layer: dict[str, Any] = {}
    for name, (section, key) in ENV_VARS.items():
        raw = environ.get(name)
        if raw is None:
            continue
        value = raw if (section, key) in _STRING_KEYS else _coerce_env_value(raw)
        layer.setdefault(section, {})[key] = value
    return layer


def _coerce_env_value(raw: str) -> Any:
    """'yes'/'true' → True, 'no'/'false' → False, numerals → int/float."""
    lowered = raw.strip().lower()
    if lowered in ("true", "yes"):
        return True
    if lowered in ("false", "no"):
        return False
    for number in (int, float):
        try:
            return number(raw)
        except ValueError:
            continue
    return raw


def _merge_into(target: dict[str, Any], layer: dict[str, Any]) -> None:
    """Recursively overlay `layer` on `target`, in place."""
    for key, value in layer.items():
        current = target.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            _merge_into(current, value)
        else:
            target[key] = value


def _expand(text: str) -> str:
    return _ENV_REF.sub(lambda m: os.environ.get(m.group(1), ""), text)


def _expand_env_refs(data: dict[str, Any]) -> None:
    """Replace ${NAME} references in every string value, in place."""
    for key, value in data.items():
        if isinstance(value, dict):
            _expand_env_refs(value)
        elif isinstance(value, str):
            data[key] = _expand(value)
        elif isinstance(value, list):
            data[key] = [_expand(v) if isinstance(v, str) else v for v in value]
