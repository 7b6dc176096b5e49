from __future__ import annotations

import logging
from dataclasses import asdict
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import yaml

from isotrack_cli.exceptions import NotFoundError, ValidationError
from isotrack_cli.models.tasks import Task, TaskPriority, TaskStats, TaskStatus

logger = logging.getLogger(__name__)

SAMPLE_TASKS_FILE = Path(__file__).parent / "data" / "sample_tasks.yaml"


class TaskBoard:
    def __init__(self, tasks: Optional[Iterable[Task]] = None) -> None:
        self._tasks: List[Task] = list(tasks or [])

    @property
    def tasks(self) -> List[Task]:
        return list(self._tasks)

    def get(self, task_id: str) -> Task:
        for task in self._tasks:
            if task.id == task_id:
                return task
        raise NotFoundError(f"Unknown task: {task_id}")

    def add_task(
        self,
        control_id: str,
        title: str,
        now: Optional[datetime] = None,
    ) -> Task:
        if not title.strip():
            raise ValidationError("Task title cannot be empty.")
        now = now or datetime.now()
        stamp = now.date().isoformat()
        task = Task(
            id=f"task-{control_id}-{int(now.timestamp() * 1000)}",
            title=title.strip(),
            status=TaskStatus.TODO,
            priority=TaskPriority.MEDIUM,
            control_id=control_id,
            created_at=stamp,
            updated_at=stamp,
        )
        self._tasks.append(task)
        logger.debug("Added task %s for %s", task.id, control_id)
        return task

    def set_status(
        self,
        task_id: str,
        status: TaskStatus,
        today: Optional[date] = None,
    ) -> Task:
        task = self.get(task_id)
        task.status = status
        task.updated_at = (today or date.today()).isoformat()
        return task

    def tasks_for_control(self, control_id: str) -> List[Task]:
        return [t for t in self._tasks if t.control_id == control_id]

    def filter_tasks(
        self,
        search: Optional[str] = None,
        status: Optional[TaskStatus] = None,
        priority: Optional[TaskPriority] = None,
    ) -> List[Task]:
        query = search.lower() if search else ""
        result: List[Task] = []
        for task in self._tasks:
            if status is not None and task.status is not status:
                continue
            if priority is not None and task.priority is not priority:
                continue
            if query and not _matches(task, query):
                continue
            result.append(task)
        return result

    @staticmethod
    def group_by_status(tasks: Iterable[Task]) -> Dict[TaskStatus, List[Task]]:
        columns: Dict[TaskStatus, List[Task]] = {s: [] for s in TaskStatus}
        for task in tasks:
            columns[task.status].append(task)
        return columns

    def stats(self, today: Optional[date] = None) -> TaskStats:
        today = today or date.today()
        return TaskStats(
            total=len(self._tasks),
            completed=sum(1 for t in self._tasks if t.status is TaskStatus.COMPLETED),
            in_progress=sum(1 for t in self._tasks if t.status is TaskStatus.IN_PROGRESS),
            overdue=sum(1 for t in self._tasks if is_overdue(t, today)),
        )

    @classmethod
    def load(cls, path: Path) -> "TaskBoard":
        if not path.is_file():
            return cls()
        try:
            with open(path, "r", encoding="utf-8") as f:
                raw = yaml.safe_load(f)
        except yaml.YAMLError as exc:
            raise ValidationError(f"Invalid task file {path.name}.") from exc
        if raw is None:
            return cls()
        if not isinstance(raw, list):
            raise ValidationError(f"Invalid task file {path.name}: expected a list.")
        return cls(_parse_task(entry, path.name) for entry in raw)

    @classmethod
    def sample(cls) -> "TaskBoard":
        return cls.load(SAMPLE_TASKS_FILE)

    def save(self, path: Path) -> None:
        data = [_task_to_dict(t) for t in self._tasks]
        with open(path, "w", encoding="utf-8") as f:
            yaml.dump(data, f, default_flow_style=False, allow_unicode=True, sort_keys=False)


def is_overdue(task: Task, today: date) -> bool:
    if not task.due_date or task.status is TaskStatus.COMPLETED:
        return False
    return _parse_date(task.due_date) < today


def due_label(task: Task, today: Optional[date] = None) -> Optional[str]:
    if not task.due_date:
        return None
    today = today or date.today()
    if is_overdue(task, today):
        return "마감일 지남"
    days_left = (_parse_date(task.due_date) - today).days
    if days_left == 0:
        return "오늘 마감"
    if days_left == 1:
        return "내일 마감"
    if days_left > 0:
        return f"D-{days_left}"
    return task.due_date


def _parse_date(value: str) -> date:
    try:
        return date.fromisoformat(value[:10])
    except ValueError as exc:
        raise ValidationError(f"Invalid date '{value}', expected YYYY-MM-DD.") from exc


def _matches(task: Task, query: str) -> bool:
    fields = (task.title, task.description, task.control_id, task.assignee)
    return any(value and query in value.lower() for value in fields)


def _parse_task(entry: Any, source: str) -> Task:
    if not isinstance(entry, dict):
        raise ValidationError(f"Invalid task entry in {source}.")
    try:
        return Task(
            id=str(entry["id"]),
            title=str(entry["title"]),
            status=TaskStatus(str(entry.get("status", "todo"))),
            priority=TaskPriority(str(entry.get("priority", "medium"))),
            created_at=str(entry["created_at"]),
            updated_at=str(entry.get("updated_at") or entry["created_at"]),
            description=entry.get("description"),
            control_id=entry.get("control_id"),
            assignee=entry.get("assignee"),
            due_date=_optional_date_str(entry.get("due_date")),
            tags=[str(t) for t in entry.get("tags") or []],
        )
    except (KeyError, ValueError) as exc:
        raise ValidationError(f"Invalid task entry in {source}: {exc}") from exc


def _optional_date_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


def _task_to_dict(task: Task) -> Dict[str, Any]:
    raw = asdict(task)
    raw["status"] = task.status.value
    raw["priority"] = task.priority.value
    return raw
