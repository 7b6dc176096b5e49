from __future__ import annotations

import configparser
from pathlib import Path
from typing import Optional

from isotrack_cli.exceptions import ConfigError
from isotrack_cli.models.config import (
    DEFAULT_COMPANY_NAME,
    DEFAULT_TIMEOUT,
    AppConfig,
    OrganizationSettings,
)
from isotrack_cli.models.profiles import CompanySize

CONFIG_FILENAME = ".isotrack-cli.ini"
STATUS_FILENAME = ".isotrack-status.yaml"
TASKS_FILENAME = ".isotrack-tasks.yaml"
_API_SECTION = "api"
_ORG_SECTION = "organization"


def config_exists(directory: Path) -> bool:
    return (directory / CONFIG_FILENAME).is_file()


def write_config(
    directory: Path,
    config: AppConfig,
    settings: Optional[OrganizationSettings] = None,
) -> None:
    cp = _read_parser(directory) if config_exists(directory) else _new_parser()
    cp[_API_SECTION] = {
        "api_url": config.api_url,
        "token": config.token or "",
        "timeout": _format_timeout(config.timeout),
    }
    if settings is not None:
        _set_settings(cp, settings)
    _write_parser(directory, cp)


def read_config(directory: Path) -> AppConfig:
    if not config_exists(directory):
        raise ConfigError(
            "Configuration not found. Run isotrack-cli init first."
        )

    cp = _read_parser(directory)
    if not cp.has_section(_API_SECTION):
        raise ConfigError(
            f"Configuration not found: no [{_API_SECTION}] section in {CONFIG_FILENAME}. "
            "Run isotrack-cli init first."
        )

    api_url = cp.get(_API_SECTION, "api_url", fallback="").strip()
    if not api_url:
        raise ConfigError(
            f"Invalid configuration: missing or empty 'api_url' in {CONFIG_FILENAME}. "
            "Run isotrack-cli init to reconfigure."
        )

    raw_timeout = cp.get(_API_SECTION, "timeout", fallback="").strip()
    try:
        timeout = float(raw_timeout) if raw_timeout else DEFAULT_TIMEOUT
    except ValueError as exc:
        raise ConfigError(
            f"Invalid configuration: 'timeout' must be a number in {CONFIG_FILENAME}."
        ) from exc

    token = cp.get(_API_SECTION, "token", fallback="").strip() or None
    return AppConfig(api_url=api_url, token=token, timeout=timeout)


class SettingsService:
    """Organization settings stored next to the API configuration.

    ``load`` never fails for a missing file or section; it falls back to the
    defaults. ``update`` writes the new values immediately.
    """

    def __init__(self, directory: Path) -> None:
        self.directory = directory

    def load(self) -> OrganizationSettings:
        if not config_exists(self.directory):
            return OrganizationSettings()
        cp = _read_parser(self.directory)
        if not cp.has_section(_ORG_SECTION):
            return OrganizationSettings()

        name = cp.get(_ORG_SECTION, "company_name", fallback="").strip()
        raw_size = cp.get(_ORG_SECTION, "company_size", fallback="").strip()
        return OrganizationSettings(
            company_name=name or DEFAULT_COMPANY_NAME,
            company_size=parse_company_size(raw_size) if raw_size else CompanySize.STARTUP,
        )

    def save(self, settings: OrganizationSettings) -> None:
        if config_exists(self.directory):
            cp = _read_parser(self.directory)
        else:
            cp = _new_parser()
        _set_settings(cp, settings)
        _write_parser(self.directory, cp)

    def update(
        self,
        company_name: Optional[str] = None,
        company_size: Optional[CompanySize] = None,
    ) -> OrganizationSettings:
        settings = self.load()
        changed = False
        if company_name is not None and company_name.strip() != settings.company_name:
            if not company_name.strip():
                raise ConfigError("Company name cannot be empty.")
            settings.company_name = company_name.strip()
            changed = True
        if company_size is not None and company_size is not settings.company_size:
            settings.company_size = company_size
            changed = True
        if changed:
            self.save(settings)
        return settings


def parse_company_size(value: str) -> CompanySize:
    try:
        return CompanySize(value.strip().lower())
    except ValueError as exc:
        choices = ", ".join(s.value for s in CompanySize)
        raise ConfigError(
            f"Unknown company size '{value}'. Choose one of: {choices}."
        ) from exc


def _set_settings(cp: configparser.ConfigParser, settings: OrganizationSettings) -> None:
    cp[_ORG_SECTION] = {
        "company_name": settings.company_name,
        "company_size": settings.company_size.value,
    }


def _format_timeout(timeout: float) -> str:
    return str(int(timeout)) if float(timeout).is_integer() else str(timeout)


def _read_parser(directory: Path) -> configparser.ConfigParser:
    cp = _new_parser()
    path = directory / CONFIG_FILENAME
    try:
        cp.read(str(path), encoding="utf-8")
    except configparser.Error as exc:
        raise ConfigError(
            f"Invalid configuration format in {CONFIG_FILENAME}. "
            "Run isotrack-cli init to reconfigure."
        ) from exc
    return cp


def _write_parser(directory: Path, cp: configparser.ConfigParser) -> None:
    path = directory / CONFIG_FILENAME
    with open(path, "w", encoding="utf-8") as f:
        cp.write(f)


def _new_parser() -> configparser.ConfigParser:
    return configparser.ConfigParser(interpolation=None)
