from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path

import yaml

from isotrack_cli.formatters.base import to_plain
from isotrack_cli.formatters.json_formatter import JsonFormatter
from isotrack_cli.formatters.markdown_formatter import MarkdownFormatter
from isotrack_cli.formatters.yaml_formatter import YamlFormatter
from isotrack_cli.models.controls import ControlStatus, StatusRecord


class TestToPlain:
    def test_dataclass_with_enum(self) -> None:
        record = StatusRecord(ControlStatus.COMPLETED, 100)
        assert to_plain(record) == {"status": "completed", "progress": 100}

    def test_enum_keys_and_tuples(self) -> None:
        data = {ControlStatus.IN_PROGRESS: (1, 2)}
        assert to_plain(data) == {"in_progress": [1, 2]}


class TestJsonFormatter:
    def test_file_extension(self) -> None:
        assert JsonFormatter().file_extension() == ".json"

    def test_write_and_parse_back(self, tmp_path: Path) -> None:
        data = {"A.5.1": StatusRecord(ControlStatus.IN_PROGRESS, 40)}
        path = tmp_path / "out.json"
        JsonFormatter().write(data, path)

        parsed = json.loads(path.read_text(encoding="utf-8"))
        assert parsed == {"A.5.1": {"status": "in_progress", "progress": 40}}

    def test_no_ascii_escape_and_trailing_newline(self, tmp_path: Path) -> None:
        path = tmp_path / "out.json"
        JsonFormatter().write({"title": "정보보호 정책"}, path)

        content = path.read_text(encoding="utf-8")
        assert "정보보호 정책" in content
        assert content.endswith("\n")


class TestYamlFormatter:
    def test_file_extension(self) -> None:
        assert YamlFormatter().file_extension() == ".yaml"

    def test_enums_are_written_as_values(self, tmp_path: Path) -> None:
        path = tmp_path / "status.yaml"
        YamlFormatter().write({"A.5.1": StatusRecord(ControlStatus.COMPLETED, 100)}, path)

        content = path.read_text(encoding="utf-8")
        assert "!!python" not in content
        assert yaml.safe_load(content) == {"A.5.1": {"status": "completed", "progress": 100}}

    def test_keeps_key_order(self) -> None:
        dumped = YamlFormatter().dumps({"z": 1, "a": 2})
        assert dumped.index("z:") < dumped.index("a:")


class TestMarkdownFormatter:
    def test_file_extension(self) -> None:
        assert MarkdownFormatter().file_extension() == ".md"

    def test_render_full(self) -> None:
        result = MarkdownFormatter.render(
            title="A.5 조직적 통제",
            body="Some content here.",
            frontmatter={"category": "A.5", "status": ControlStatus.COMPLETED},
        )
        assert result.startswith("---\n")
        assert "category: A.5" in result
        assert "status: completed" in result
        assert "# A.5 조직적 통제" in result
        assert "Some content here." in result

    def test_render_no_frontmatter(self) -> None:
        result = MarkdownFormatter.render(title="Title", body="Body text.")
        assert "---" not in result
        assert "# Title" in result

    def test_render_empty(self) -> None:
        assert MarkdownFormatter.render(title="", body="") == ""

    def test_render_wraps_long_plain_lines(self) -> None:
        long_line = "word " * 40
        result = MarkdownFormatter.render(title="", body=long_line.strip())
        body_lines = [line for line in result.splitlines() if line]
        assert body_lines
        assert all(len(line) <= 120 for line in body_lines)

    def test_render_preserves_table_rows(self) -> None:
        row = "| " + " | ".join(["cell"] * 40) + " |"
        result = MarkdownFormatter.render(title="", body=row)
        assert row in result

    def test_write_string_data(self, tmp_path: Path) -> None:
        path = tmp_path / "out.md"
        MarkdownFormatter().write("raw markdown content", path)
        assert path.read_text(encoding="utf-8") == "raw markdown content"

    def test_write_dataclass_data(self, tmp_path: Path) -> None:
        @dataclass
        class Page:
            title: str
            body: str
            frontmatter: dict

        path = tmp_path / "page.md"
        MarkdownFormatter().write(Page("Index", "Body.", {"total": 3}), path)

        content = path.read_text(encoding="utf-8")
        assert content.startswith("---\ntotal: 3\n---\n")
        assert "# Index" in content

    def test_table_escapes_pipes(self) -> None:
        table = MarkdownFormatter.table(["ID", "Title"], [["A.5.1", "a|b"]])
        assert table.splitlines() == [
            "| ID | Title |",
            "|---|---|",
            "| A.5.1 | a\\|b |",
        ]

    def test_progress_bar(self) -> None:
        assert MarkdownFormatter.progress_bar(50) == "█" * 10 + "░" * 10 + " 50%"
        assert MarkdownFormatter.progress_bar(0).endswith(" 0%")
