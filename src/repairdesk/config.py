from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass
from pathlib import Path

DEFAULT_CONFIG_PATH = "config.toml"


class ConfigError(Exception):
    pass


@dataclass(frozen=True)
class DbConfig:
    host: str
    port: int
    name: str
    user: str
    password: str
    sslmode: str = "disable"
    connect_timeout: int = 10
    connect_retries: int = 3


@dataclass(frozen=True)
class BusinessConfig:
    require_actual_cost_on_completion: bool = True


@dataclass(frozen=True)
class AppConfig:
    name: str
    log_level: str
    log_format: str
    db: DbConfig
    business: BusinessConfig


def resolve_config_path(path: str | Path | None = None) -> Path:
    if path is not None:
        return Path(path)
    return Path(os.environ.get("REPAIRDESK_CONFIG", DEFAULT_CONFIG_PATH))


def load_config(path: str | Path | None = None) -> AppConfig:
    p = resolve_config_path(path)
    if not p.exists():
        raise ConfigError(f"Config file not found: {p.resolve()}")

    try:
        data = tomllib.loads(p.read_text(encoding="utf-8"))
    except (OSError, tomllib.TOMLDecodeError) as e:
        raise ConfigError(f"Failed to read config TOML: {e}") from e

    try:
        app = data.get("app", {})
        db = data["db"]
        business = data.get("business", {})
        cfg = AppConfig(
            name=str(app.get("name", "RepairDesk")),
            log_level=str(app.get("log_level", "INFO")).upper(),
            log_format=str(app.get("log_format", "console")).lower(),
            db=DbConfig(
                host=str(db["host"]),
                port=int(db.get("port", 5432)),
                name=str(db["name"]),
                user=str(db["user"]),
                password=str(db["password"]),
                sslmode=str(db.get("sslmode", "disable")),
                connect_timeout=int(db.get("connect_timeout", 10)),
                connect_retries=int(db.get("connect_retries", 3)),
            ),
            business=BusinessConfig(
                require_actual_cost_on_completion=bool(
                    business.get("require_actual_cost_on_completion", True)
                )
            ),
        )
    except KeyError as e:
        raise ConfigError(f"Missing config key: {e}") from e
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid config values: {e}") from e

    if cfg.log_format not in {"console", "json"}:
        raise ConfigError(f"Invalid log_format: {cfg.log_format!r} (expected 'console' or 'json')")
    if cfg.db.connect_retries < 0:
        raise ConfigError("db.connect_retries cannot be negative")
    return cfg
