# Budget Periods - Personal budgeting with monthly period rollover
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Configuration helpers for Budget Periods.

This module is responsible for:
- loading the application configuration from a TOML file,
- validating the budget period settings,
- exposing typed dataclasses used by the rest of the application.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

try:
    import tomllib  # Python 3.11+
except ModuleNotFoundError:  # pragma: no cover - fallback for older Python
    import tomli as tomllib  # type: ignore[import]

from .db import DatabaseConfig
from .periods import clamp_start_day

DEFAULT_CONFIG_FILE = "budget_periods_config.toml"
DEFAULT_DB_PATH = "data/db/budget_periods.sqlite"

_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


@dataclass(frozen=True)
class BudgetSettings:
    """Budget period settings."""

    start_day: int
    currency: str


@dataclass(frozen=True)
class AppConfig:
    """
    Application-wide configuration for Budget Periods.

    This aggregates:
    - the budget period settings (start day, display currency),
    - the default user id used by the CLI,
    - the database configuration,
    - the logging level.
    """

    budget: BudgetSettings
    default_uid: str
    database: DatabaseConfig
    log_level: str


def _load_toml(path: Path) -> dict[str, Any]:
    """
    Load a TOML file and return its content as a dictionary.

    Raises:
        FileNotFoundError: if the file does not exist.
        ValueError: if the TOML content cannot be parsed or is not a table.
    """
    if not path.is_file():
        raise FileNotFoundError(f"Config file not found: {path}")

    try:
        data = tomllib.loads(path.read_text(encoding="utf-8"))
    except Exception as exc:  # noqa: BLE001
        raise ValueError(f"Failed to parse TOML config file: {path}") from exc

    if not isinstance(data, dict):
        raise ValueError(f"Invalid TOML root type in {path}, expected a table.")

    return data


def _section(raw: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    section = raw.get(name) or {}
    if not isinstance(section, Mapping):
        raise ValueError(f"Config section [{name}] must be a table.")
    return section


def _parse_budget(raw: Mapping[str, Any]) -> BudgetSettings:
    """
    Extract and validate the [budget] section.

    Raises:
        ValueError: if start_day is not an integer >= 1.
    """
    budget_section = _section(raw, "budget")

    raw_start_day = budget_section.get("start_day", 1)
    if isinstance(raw_start_day, bool):
        raise ValueError("Invalid value for 'budget.start_day': expected an integer.")
    try:
        start_day = clamp_start_day(int(raw_start_day))
    except (TypeError, ValueError) as exc:
        raise ValueError(
            "Invalid value for 'budget.start_day' in the configuration. "
            "Expected an integer between 1 and 28."
        ) from exc

    currency = str(budget_section.get("currency") or "EUR")
    return BudgetSettings(start_day=start_day, currency=currency)


def _parse_log_level(raw: Mapping[str, Any]) -> str:
    logging_section = _section(raw, "logging")
    level = str(logging_section.get("level") or "WARNING").upper()
    if level not in _LOG_LEVELS:
        raise ValueError(
            f"Invalid value for 'logging.level': {level!r}. "
            f"Expected one of {', '.join(sorted(_LOG_LEVELS))}."
        )
    return level


def load_app_config(config_path: Optional[str] = None) -> AppConfig:
    """
    Load the Budget Periods application configuration from a TOML file.

    Expected top-level sections in the TOML file
    --------------------------------------------
    [budget]
        start_day (1..28, larger values are clamped to 28) and the display
        currency.

    [user]
        uid: default user id for CLI commands.

    [database]
        Database engine and SQLite file path.

    [logging]
        level: standard logging level name.

    All sections are optional. When `config_path` is None and
    'budget_periods_config.toml' does not exist in the current directory,
    built-in defaults are used. An explicit path that does not exist raises
    FileNotFoundError.

    File paths in the TOML are resolved relative to the directory of the
    TOML file itself.
    """
    if config_path is None:
        config_file = Path(DEFAULT_CONFIG_FILE).resolve()
        raw = _load_toml(config_file) if config_file.is_file() else {}
    else:
        config_file = Path(config_path).resolve()
        raw = _load_toml(config_file)

    base_dir = config_file.parent

    # 1) Budget settings
    budget = _parse_budget(raw)

    # 2) User section
    user_section = _section(raw, "user")
    default_uid = str(user_section.get("uid") or "local")

    # 3) Database section
    database_section = _section(raw, "database")
    db_engine = str(database_section.get("engine") or "sqlite")
    db_path_raw = database_section.get("path") or DEFAULT_DB_PATH
    db_path = (base_dir / str(db_path_raw)).resolve()

    # 4) Logging
    log_level = _parse_log_level(raw)

    return AppConfig(
        budget=budget,
        default_uid=default_uid,
        database=DatabaseConfig(engine=db_engine, path=db_path),
        log_level=log_level,
    )
