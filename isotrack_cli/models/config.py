from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from isotrack_cli.exceptions import ConfigError
from isotrack_cli.models.profiles import CompanySize

DEFAULT_API_URL = "http://localhost:8000/"
DEFAULT_TIMEOUT = 30.0
DEFAULT_COMPANY_NAME = "내 회사"


@dataclass
class AppConfig:
    api_url: str = DEFAULT_API_URL
    token: Optional[str] = None
    timeout: float = DEFAULT_TIMEOUT

    def __post_init__(self) -> None:
        if not self.api_url:
            raise ConfigError("API URL cannot be empty.")
        if not self.api_url.endswith("/"):
            self.api_url = self.api_url + "/"
        if self.token is not None and not self.token.strip():
            self.token = None
        if self.timeout <= 0:
            raise ConfigError("Timeout must be a positive number of seconds.")


@dataclass
class OrganizationSettings:
    company_name: str = DEFAULT_COMPANY_NAME
    company_size: CompanySize = CompanySize.STARTUP
