from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from isotrack_cli.formatters.base import BaseFormatter, to_plain


class JsonFormatter(BaseFormatter):
    def dumps(self, data: Any) -> str:
        return json.dumps(to_plain(data), indent=2, ensure_ascii=False)

    def write(self, data: Any, output_path: Path) -> None:
        with open(output_path, "w", encoding="utf-8") as f:
            f.write(self.dumps(data))
            f.write("\n")

    def file_extension(self) -> str:
        return ".json"
