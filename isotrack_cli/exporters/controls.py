from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from isotrack_cli.exporters.base import BaseExporter
from isotrack_cli.formatters.markdown_formatter import MarkdownFormatter
from isotrack_cli.models.config import OrganizationSettings
from isotrack_cli.models.controls import (
    CategoryStat,
    ControlItem,
    ControlStatus,
    ItemKind,
)
from isotrack_cli.registry import ComplianceRegistry
from isotrack_cli.tips import is_main_step, parse_tip

_KIND_TITLES = {
    ItemKind.CLAUSE: "관리 조항 (Clauses 4-10)",
    ItemKind.ANNEX_A: "부속서 A 통제 (Annex A)",
}


class ComplianceReportExporter(BaseExporter):
    """Per-category checklists, an index with overall progress and status.yaml."""

    def __init__(
        self,
        registry: ComplianceRegistry,
        settings: OrganizationSettings,
        output_dir: Path,
        *,
        force: bool = False,
        keep_raw_json: bool = False,
        now: Optional[datetime] = None,
    ) -> None:
        super().__init__(output_dir, force=force, keep_raw_json=keep_raw_json)
        self.registry = registry
        self.settings = settings
        self._now = now

    def export(self) -> None:
        self._ensure_output_dir()
        self._log("Exporting compliance report...")

        profile = self.registry.catalog.profile(self.settings.company_size)
        items = self.registry.select_applicable_items(profile)

        stems: List[str] = []
        stats_by_kind: Dict[ItemKind, List[CategoryStat]] = {}
        for kind in (ItemKind.CLAUSE, ItemKind.ANNEX_A):
            stats = self.registry.compute_category_stats(
                items, self.registry.catalog.categories(kind), kind,
            )
            stats_by_kind[kind] = stats
            for stat in stats:
                members = self.registry.filter_items(items, category=stat.id, kind=kind)
                stem = category_stem(kind, stat.id)
                self._export_category(stem, kind, stat, members)
                stems.append(stem)

        self._write_index(items, stats_by_kind)
        self._write_yaml("status", self._status_payload(items))

        self._log(
            "Exporting compliance report... "
            + ", ".join(stems)
            + f" done ({len(stems)} categories, {len(items)} items)"
        )

    def _export_category(
        self,
        stem: str,
        kind: ItemKind,
        stat: CategoryStat,
        members: Sequence[ControlItem],
    ) -> None:
        frontmatter: Dict[str, Any] = {
            "category": stat.id,
            "name": stat.name,
            "name_ko": stat.name_ko,
            "kind": kind,
            "completed": stat.completed,
            "total": stat.total,
            "percentage": stat.percentage,
        }

        body_parts: List[str] = [
            f"**진행률:** {MarkdownFormatter.progress_bar(stat.percentage)} "
            f"({stat.completed}/{stat.total})",
            "",
        ]
        for item in members:
            body_parts.extend(self._item_section(item))

        content = MarkdownFormatter.render(
            title=f"{stat.id} {stat.name_ko} ({stat.name})",
            body="\n".join(body_parts),
            frontmatter=frontmatter,
        )
        raw = {
            "category": stat,
            "items": [
                {"item": item, "status": self.registry.compute_status(item.id)}
                for item in members
            ],
        }
        self._write_markdown(stem, content, raw)

    def _item_section(self, item: ControlItem) -> List[str]:
        record = self.registry.compute_status(item.id)
        box = "x" if record.status is ControlStatus.COMPLETED else " "
        lines = [
            f"## [{box}] {item.id} {item.title_ko}",
            "",
            f"*{item.title}*",
            "",
            f"- **상태:** {record.status.label_ko} ({record.progress}%)",
            "",
            item.description_ko,
            "",
        ]

        steps = parse_tip(item.tip)
        if steps:
            lines.extend(["### 구현 팁", ""])
            for step in steps:
                lines.append(step.text if is_main_step(step) else f"- {step.text}")
                for sub in step.sub_items:
                    lines.append(f"    - {sub}")
            lines.append("")

        if item.evidence:
            lines.extend(["### 증거 자료", ""])
            for line in item.evidence.splitlines():
                if line.strip():
                    lines.append(f"- {line.strip().lstrip('-• ').strip()}")
            lines.append("")
        return lines

    def _write_index(
        self,
        items: Sequence[ControlItem],
        stats_by_kind: Dict[ItemKind, List[CategoryStat]],
    ) -> None:
        overall = self.registry.overall_progress(items)
        frontmatter: Dict[str, Any] = {
            "generated": self._generated(),
            "organization": self.settings.company_name,
            "company_size": self.settings.company_size,
            "completed": overall.completed,
            "total": overall.total,
            "percentage": overall.percentage,
        }

        body_parts: List[str] = [
            f"**전체 진행률:** {MarkdownFormatter.progress_bar(overall.percentage)} "
            f"({overall.completed}/{overall.total})",
            "",
        ]
        for kind, stats in stats_by_kind.items():
            if not stats:
                continue
            body_parts.extend([f"## {_KIND_TITLES[kind]}", ""])
            rows = [
                [
                    f"[{s.id}]({category_stem(kind, s.id)}.md)",
                    s.name_ko,
                    f"{s.completed}/{s.total}",
                    f"{s.percentage}%",
                ]
                for s in stats
            ]
            body_parts.append(
                MarkdownFormatter.table(["ID", "카테고리", "완료", "진행률"], rows)
            )
            body_parts.append("")

        profile = self.registry.catalog.profile(self.settings.company_size)
        content = MarkdownFormatter.render(
            title=f"ISO 27001 준수 현황: {self.settings.company_name} ({profile.name_ko})",
            body="\n".join(body_parts),
            frontmatter=frontmatter,
        )
        self._write_markdown("index", content, {"overall": overall, "categories": stats_by_kind})

    def _status_payload(self, items: Sequence[ControlItem]) -> Dict[str, Any]:
        overall = self.registry.overall_progress(items)
        return {
            "generated": self._generated(),
            "organization": self.settings.company_name,
            "company_size": self.settings.company_size,
            "overall": overall,
            "items": {
                item.id: self.registry.compute_status(item.id) for item in items
            },
        }

    def _generated(self) -> str:
        now = self._now or datetime.now(timezone.utc)
        return now.strftime("%Y-%m-%dT%H:%M:%SZ")


def category_stem(kind: ItemKind, category_id: str) -> str:
    if kind is ItemKind.CLAUSE:
        return f"clause-{category_id}"
    return category_id
