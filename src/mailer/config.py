from __future__ import annotations

import json
import logging
import os
import re
import stat
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from mailer.errors import SETUP_HINT, ConfigurationMissingError

CONFIG_FILENAME = "db.config.json"

AUTH_MODES = ("windows", "sql")
DRIVERS = ("mssql", "sqlite")

# Serilog-style names kept in the settings file, mapped to stdlib levels.
LOG_LEVELS = {
    "Debug": logging.DEBUG,
    "Information": logging.INFO,
    "Warning": logging.WARNING,
    "Error": logging.ERROR,
}

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_REQUIRED_FIELDS = ("host", "database_name", "table_name")
_TOGGLE_FIELDS = ("file_logging_enabled", "db_logging_enabled", "history_enabled")


def parse_log_level(value: str) -> int:
    for name, level in LOG_LEVELS.items():
        if name.lower() == str(value).strip().lower():
            return level
    raise ConfigurationMissingError(
        f"Unknown log level: {value!r} (expected one of {', '.join(LOG_LEVELS)})"
    )


def is_valid_identifier(value: str) -> bool:
    return bool(_IDENTIFIER_RE.match(value or ""))


@dataclass(slots=True)
class Settings:
    root_dir: Path
    config_path: Path
    logs_dir: Path

    @classmethod
    def load(cls, base_dir: Path | None = None) -> Settings:
        load_dotenv(override=False)

        root_env = os.getenv("MAILER_HOME")
        root_dir = Path(root_env).expanduser().resolve() if root_env else (base_dir or Path.cwd()).resolve()

        config_path = Path(os.getenv("MAILER_CONFIG_PATH", root_dir / CONFIG_FILENAME)).expanduser().resolve()
        logs_dir = Path(os.getenv("MAILER_LOG_DIR", root_dir / "logs")).expanduser().resolve()

        return cls(root_dir=root_dir, config_path=config_path, logs_dir=logs_dir)

    def ensure_directories(self) -> None:
        for path in [self.root_dir, self.logs_dir, self.config_path.parent]:
            path.mkdir(parents=True, exist_ok=True)


@dataclass(frozen=True, slots=True)
class ConnectionSettings:
    host: str
    database_name: str
    table_name: str
    auth_mode: str = "windows"
    username: str = ""
    password: str = ""
    driver: str = "mssql"
    odbc_driver: str = "ODBC Driver 18 for SQL Server"
    file_logging_enabled: bool = True
    file_log_level: str = "Information"
    db_logging_enabled: bool = True
    db_log_level: str = "Debug"
    console_log_level: str = "Warning"
    history_enabled: bool = True

    def __post_init__(self) -> None:
        missing = [name for name in _REQUIRED_FIELDS if not str(getattr(self, name) or "").strip()]
        if self.driver == "sqlite" and "host" in missing:
            # sqlite only needs the database file path
            missing.remove("host")
        if missing:
            raise ConfigurationMissingError(
                f"Connection settings are incomplete, missing: {', '.join(missing)}\n{SETUP_HINT}"
            )
        if self.driver not in DRIVERS:
            raise ConfigurationMissingError(f"Unsupported database driver: {self.driver!r}")
        if self.auth_mode not in AUTH_MODES:
            raise ConfigurationMissingError(f"Unsupported auth mode: {self.auth_mode!r}")
        if self.auth_mode == "sql" and (not self.username or not self.password):
            raise ConfigurationMissingError(
                f"SQL authentication requires both username and password\n{SETUP_HINT}"
            )
        if not is_valid_identifier(self.table_name):
            raise ConfigurationMissingError(f"Invalid table name: {self.table_name!r}")
        for name in _TOGGLE_FIELDS:
            if not isinstance(getattr(self, name), bool):
                raise ConfigurationMissingError(
                    f"{name} must be true or false, got {getattr(self, name)!r}\n{SETUP_HINT}"
                )
        for level in (self.file_log_level, self.db_log_level, self.console_log_level):
            parse_log_level(level)

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> ConnectionSettings:
        known = {item.name for item in fields(cls)}
        try:
            return cls(**{key: value for key, value in payload.items() if key in known})
        except TypeError as exc:
            raise ConfigurationMissingError(f"Connection settings are incomplete: {exc}\n{SETUP_HINT}") from exc

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def load(cls, path: Path) -> ConnectionSettings:
        if not path.exists():
            raise ConfigurationMissingError(f"Connection settings file not found: {path}\n{SETUP_HINT}")
        try:
            payload = json.loads(path.read_text(encoding="utf-8-sig"))
        except (OSError, json.JSONDecodeError) as exc:
            raise ConfigurationMissingError(
                f"Cannot read connection settings file {path}: {exc}\n{SETUP_HINT}"
            ) from exc
        if not isinstance(payload, dict):
            raise ConfigurationMissingError(f"Connection settings file {path} must hold a JSON object")
        return cls.from_dict(payload)

    def save(self, path: Path, restrict_permissions: bool = False) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(self.to_dict(), indent=2), encoding="utf-8")
        if restrict_permissions:
            path.chmod(stat.S_IRUSR | stat.S_IWUSR)
        else:
            path.chmod(stat.S_IRUSR | stat.S_IWUSR | stat.S_IRGRP | stat.S_IROTH)
