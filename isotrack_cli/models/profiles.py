from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Tuple


class CompanySize(str, Enum):
    STARTUP = "startup"
    SMALL = "small"
    MEDIUM = "medium"
    LARGE = "large"


@dataclass(frozen=True)
class CompanyProfile:
    size: CompanySize
    name: str
    name_ko: str
    description: str
    annex_a_controls: Tuple[str, ...]
    management_clauses: Tuple[str, ...]

    @property
    def item_count(self) -> int:
        return len(self.annex_a_controls) + len(self.management_clauses)
