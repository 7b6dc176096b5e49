from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from isotrack_cli.formatters.json_formatter import JsonFormatter
from isotrack_cli.formatters.markdown_formatter import MarkdownFormatter
from isotrack_cli.formatters.yaml_formatter import YamlFormatter


class BaseExporter(ABC):
    def __init__(
        self,
        output_dir: Path,
        *,
        force: bool = False,
        keep_raw_json: bool = False,
    ) -> None:
        self.output_dir = output_dir
        self.force = force
        self.keep_raw_json = keep_raw_json
        self._overwrite_all = False
        self._md_formatter = MarkdownFormatter()
        self._json_formatter = JsonFormatter()
        self._yaml_formatter = YamlFormatter()

    @abstractmethod
    def export(self) -> None:
        """Render the current state and write it to output_dir."""
        ...

    def _ensure_output_dir(self) -> None:
        self.output_dir.mkdir(parents=True, exist_ok=True)

    def _log(self, message: str) -> None:
        print(message)

    def _should_write(self, path: Path) -> bool:
        """Check whether *path* should be written, prompting if needed."""
        if not path.exists():
            return True
        if self.force or self._overwrite_all:
            return True
        while True:
            answer = input(
                f"Overwrite existing {path.name}? [Yes/No/All] "
            ).strip().lower()
            if answer in ("y", "yes"):
                return True
            if answer in ("n", "no"):
                return False
            if answer in ("a", "all"):
                self._overwrite_all = True
                return True

    def _write_markdown(self, stem: str, content: str, raw: Any = None) -> None:
        """Write *content* as Markdown and, with keep_raw_json, *raw* as JSON."""
        md_path = self.output_dir / (stem + ".md")
        if self._should_write(md_path):
            self._md_formatter.write(content, md_path)

        if self.keep_raw_json and raw is not None:
            json_path = self.output_dir / (stem + ".json")
            if self._should_write(json_path):
                self._json_formatter.write(raw, json_path)

    def _write_yaml(self, stem: str, data: Any) -> None:
        yaml_path = self.output_dir / (stem + ".yaml")
        if self._should_write(yaml_path):
            self._yaml_formatter.write(data, yaml_path)
