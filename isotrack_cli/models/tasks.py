from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


class TaskStatus(str, Enum):
    TODO = "todo"
    IN_PROGRESS = "in_progress"
    REVIEW = "review"
    COMPLETED = "completed"

    @property
    def label_ko(self) -> str:
        return _TASK_STATUS_LABELS[self]


class TaskPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"

    @property
    def label_ko(self) -> str:
        return _TASK_PRIORITY_LABELS[self]


_TASK_STATUS_LABELS = {
    TaskStatus.TODO: "할 일",
    TaskStatus.IN_PROGRESS: "진행 중",
    TaskStatus.REVIEW: "검토 중",
    TaskStatus.COMPLETED: "완료",
}

_TASK_PRIORITY_LABELS = {
    TaskPriority.LOW: "낮음",
    TaskPriority.MEDIUM: "보통",
    TaskPriority.HIGH: "높음",
    TaskPriority.URGENT: "긴급",
}


@dataclass
class Task:
    id: str
    title: str
    status: TaskStatus
    priority: TaskPriority
    created_at: str
    updated_at: str
    description: Optional[str] = None
    control_id: Optional[str] = None
    assignee: Optional[str] = None
    due_date: Optional[str] = None
    tags: List[str] = field(default_factory=list)


@dataclass
class TaskStats:
    total: int
    completed: int
    in_progress: int
    overdue: int
