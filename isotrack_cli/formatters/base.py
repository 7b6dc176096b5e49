from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import fields, is_dataclass
from enum import Enum
from pathlib import Path
from typing import Any


class BaseFormatter(ABC):
    @abstractmethod
    def write(self, data: Any, output_path: Path) -> None:
        ...

    @abstractmethod
    def file_extension(self) -> str:
        ...


def to_plain(data: Any) -> Any:
    """Convert dataclasses and enums into dicts, lists and scalars."""
    if isinstance(data, Enum):
        return data.value
    if is_dataclass(data) and not isinstance(data, type):
        return {f.name: to_plain(getattr(data, f.name)) for f in fields(data)}
    if isinstance(data, dict):
        return {str(to_plain(k)): to_plain(v) for k, v in data.items()}
    if isinstance(data, (list, tuple)):
        return [to_plain(v) for v in data]
    return data
