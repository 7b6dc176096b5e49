from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Union

from isotrack_cli.exceptions import ValidationError


class ItemKind(str, Enum):
    ANNEX_A = "annex_a"
    CLAUSE = "clause"


class ControlStatus(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    NOT_APPLICABLE = "not_applicable"

    @property
    def label(self) -> str:
        return _STATUS_LABELS[self][0]

    @property
    def label_ko(self) -> str:
        return _STATUS_LABELS[self][1]


_STATUS_LABELS = {
    ControlStatus.NOT_STARTED: ("Not started", "시작 전"),
    ControlStatus.IN_PROGRESS: ("In progress", "진행 중"),
    ControlStatus.COMPLETED: ("Completed", "완료"),
    ControlStatus.NOT_APPLICABLE: ("Not applicable", "해당없음"),
}


@dataclass(frozen=True)
class AnnexControl:
    id: str
    category: str
    title: str
    title_ko: str
    description: str
    description_ko: str
    tip: Optional[str] = None
    evidence: Optional[str] = None
    kind: ItemKind = field(default=ItemKind.ANNEX_A, init=False)

    @property
    def group(self) -> str:
        return self.category


@dataclass(frozen=True)
class ManagementClause:
    id: str
    clause: str
    category: str
    category_ko: str
    title: str
    title_ko: str
    description: str
    description_ko: str
    tip: Optional[str] = None
    evidence: Optional[str] = None
    kind: ItemKind = field(default=ItemKind.CLAUSE, init=False)

    @property
    def group(self) -> str:
        return self.clause


ControlItem = Union[AnnexControl, ManagementClause]


@dataclass(frozen=True)
class Category:
    id: str
    name: str
    name_ko: str


@dataclass(frozen=True)
class StatusRecord:
    status: ControlStatus = ControlStatus.NOT_STARTED
    progress: int = 0

    def __post_init__(self) -> None:
        if not 0 <= self.progress <= 100:
            raise ValidationError(
                f"Progress must be between 0 and 100, got {self.progress}."
            )


DEFAULT_STATUS = StatusRecord()


@dataclass
class CategoryStat:
    id: str
    name: str
    name_ko: str
    completed: int
    total: int
    percentage: int


@dataclass
class OverallProgress:
    completed: int
    total: int
    percentage: int


@dataclass
class TipStep:
    text: str
    sub_items: List[str] = field(default_factory=list)
