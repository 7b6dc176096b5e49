from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence

import yaml

from isotrack_cli.catalog import Catalog
from isotrack_cli.exceptions import ValidationError
from isotrack_cli.models.controls import (
    DEFAULT_STATUS,
    Category,
    CategoryStat,
    ControlItem,
    ControlStatus,
    ItemKind,
    OverallProgress,
    StatusRecord,
)
from isotrack_cli.models.profiles import CompanyProfile

logger = logging.getLogger(__name__)


def percentage(completed: int, total: int) -> int:
    """Completion percentage rounded half-up; 0 for an empty set."""
    if total <= 0:
        return 0
    return (200 * completed + total) // (2 * total)


class StatusBoard:
    """Mutable status map keyed by item id.

    Items without an entry read as ``not_started`` with 0% progress.
    """

    def __init__(self, records: Optional[Dict[str, StatusRecord]] = None) -> None:
        self._records: Dict[str, StatusRecord] = dict(records or {})

    def get(self, item_id: str) -> StatusRecord:
        return self._records.get(item_id, DEFAULT_STATUS)

    def set_status(self, item_id: str, status: ControlStatus) -> StatusRecord:
        if status is ControlStatus.COMPLETED:
            progress = 100
        elif status is ControlStatus.NOT_STARTED:
            progress = 0
        else:
            previous = self._records.get(item_id)
            progress = previous.progress if previous is not None else 0

        record = StatusRecord(status=status, progress=progress)
        self._records[item_id] = record
        logger.debug("Status of %s set to %s (%d%%)", item_id, status.value, progress)
        return record

    def records(self) -> Dict[str, StatusRecord]:
        return dict(self._records)

    def __len__(self) -> int:
        return len(self._records)

    @classmethod
    def load(cls, path: Path) -> "StatusBoard":
        if not path.is_file():
            return cls()
        try:
            with open(path, "r", encoding="utf-8") as f:
                raw = yaml.safe_load(f)
        except yaml.YAMLError as exc:
            raise ValidationError(f"Invalid status file {path.name}.") from exc

        if raw is None:
            return cls()
        if not isinstance(raw, dict):
            raise ValidationError(f"Invalid status file {path.name}: expected a mapping.")

        records: Dict[str, StatusRecord] = {}
        for item_id, entry in raw.items():
            if not isinstance(entry, dict):
                raise ValidationError(f"Invalid status entry for '{item_id}' in {path.name}.")
            try:
                status = ControlStatus(str(entry.get("status", "")))
                progress = int(entry.get("progress", 0))
            except (TypeError, ValueError) as exc:
                raise ValidationError(
                    f"Invalid status entry for '{item_id}' in {path.name}."
                ) from exc
            records[str(item_id)] = StatusRecord(status=status, progress=progress)
        return cls(records)

    def save(self, path: Path) -> None:
        data = {
            item_id: {"status": record.status.value, "progress": record.progress}
            for item_id, record in self._records.items()
        }
        with open(path, "w", encoding="utf-8") as f:
            yaml.dump(data, f, default_flow_style=False, allow_unicode=True, sort_keys=False)


class ComplianceRegistry:
    def __init__(self, catalog: Catalog, statuses: Optional[StatusBoard] = None) -> None:
        self.catalog = catalog
        self.statuses = statuses if statuses is not None else StatusBoard()

    def select_applicable_items(self, profile: CompanyProfile) -> List[ControlItem]:
        clause_ids = set(profile.management_clauses)
        annex_ids = set(profile.annex_a_controls)
        clauses = [c for c in self.catalog.clauses if c.id in clause_ids]
        annex = [c for c in self.catalog.annex_a if c.id in annex_ids]
        return [*clauses, *annex]

    def compute_status(self, item_id: str) -> StatusRecord:
        return self.statuses.get(item_id)

    def set_status(self, item_id: str, status: ControlStatus) -> StatusRecord:
        return self.statuses.set_status(item_id, status)

    def filter_items(
        self,
        items: Iterable[ControlItem],
        search: Optional[str] = None,
        category: Optional[str] = None,
        status: Optional[ControlStatus] = None,
        kind: Optional[ItemKind] = None,
    ) -> List[ControlItem]:
        query = search.lower() if search else ""
        result: List[ControlItem] = []
        for item in items:
            if kind is not None and item.kind is not kind:
                continue
            if category and item.group != category:
                continue
            if status is not None and self.compute_status(item.id).status is not status:
                continue
            if query and not _matches(item, query):
                continue
            result.append(item)
        return result

    def compute_category_stats(
        self,
        items: Sequence[ControlItem],
        categories: Iterable[Category],
        kind: ItemKind,
    ) -> List[CategoryStat]:
        stats: List[CategoryStat] = []
        for cat in categories:
            members = [i for i in items if i.kind is kind and i.group == cat.id]
            if not members:
                continue
            completed = self._count_completed(members)
            stats.append(
                CategoryStat(
                    id=cat.id,
                    name=cat.name,
                    name_ko=cat.name_ko,
                    completed=completed,
                    total=len(members),
                    percentage=percentage(completed, len(members)),
                )
            )
        return stats

    def overall_progress(self, items: Sequence[ControlItem]) -> OverallProgress:
        completed = self._count_completed(items)
        return OverallProgress(
            completed=completed,
            total=len(items),
            percentage=percentage(completed, len(items)),
        )

    def available_categories(
        self,
        items: Iterable[ControlItem],
        kind: ItemKind,
    ) -> List[Category]:
        present = {i.group for i in items if i.kind is kind}
        return [c for c in self.catalog.categories(kind) if c.id in present]

    def _count_completed(self, items: Iterable[ControlItem]) -> int:
        return sum(
            1 for i in items if self.compute_status(i.id).status is ControlStatus.COMPLETED
        )


def _matches(item: ControlItem, query: str) -> bool:
    return (
        query in item.id.lower()
        or query in item.title_ko.lower()
        or query in item.title.lower()
        or query in item.description_ko.lower()
    )
