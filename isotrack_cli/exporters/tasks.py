from __future__ import annotations

from datetime import date
from pathlib import Path
from typing import Any, Dict, List, Optional

from isotrack_cli.exporters.base import BaseExporter
from isotrack_cli.formatters.markdown_formatter import MarkdownFormatter
from isotrack_cli.tasks import TaskBoard, due_label


class TaskReportExporter(BaseExporter):
    def __init__(
        self,
        board: TaskBoard,
        output_dir: Path,
        *,
        force: bool = False,
        keep_raw_json: bool = False,
        today: Optional[date] = None,
    ) -> None:
        super().__init__(output_dir, force=force, keep_raw_json=keep_raw_json)
        self.board = board
        self._today = today

    def export(self) -> None:
        self._ensure_output_dir()
        today = self._today or date.today()
        stats = self.board.stats(today)

        frontmatter: Dict[str, Any] = {
            "total": stats.total,
            "completed": stats.completed,
            "in_progress": stats.in_progress,
            "overdue": stats.overdue,
        }

        body_parts: List[str] = []
        for status, tasks in TaskBoard.group_by_status(self.board.tasks).items():
            body_parts.extend([f"## {status.label_ko} ({len(tasks)})", ""])
            if not tasks:
                body_parts.extend(["_작업 없음_", ""])
                continue
            rows = [
                [
                    t.id,
                    t.title,
                    t.priority.label_ko,
                    t.control_id or "",
                    t.assignee or "",
                    due_label(t, today) or "",
                ]
                for t in tasks
            ]
            body_parts.append(
                MarkdownFormatter.table(
                    ["ID", "제목", "우선순위", "통제", "담당자", "마감"], rows,
                )
            )
            body_parts.append("")

        content = MarkdownFormatter.render(
            title="작업 보드",
            body="\n".join(body_parts),
            frontmatter=frontmatter,
        )
        self._write_markdown("tasks", content, self.board.tasks)
        self._log(f"Exporting tasks... done ({stats.total} tasks)")
