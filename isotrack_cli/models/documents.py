from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional


@dataclass
class Document:
    id: str
    name: str
    file_key: str
    file_size: int
    mime_type: str
    version: int
    organization_id: str
    uploaded_by_id: str
    created_at: str
    updated_at: str
    description: Optional[str] = None
    control_id: Optional[str] = None
    task_id: Optional[str] = None


@dataclass
class DocumentList:
    documents: List[Document] = field(default_factory=list)
    total: int = 0
    total_size: int = 0


@dataclass
class UploadSlot:
    upload_url: str
    file_key: str
    expires_in: int


class UploadState(str, Enum):
    IDLE = "idle"
    REQUESTING_SLOT = "requesting_slot"
    TRANSFERRING = "transferring"
    CONFIRMING = "confirming"
    UPLOADING = "uploading"
    SUCCESS = "success"
    FAILED = "failed"


@dataclass
class UploadOutcome:
    filename: str
    state: UploadState
    document: Optional[Document] = None
    error: Optional[Exception] = None
    file_key: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.state is UploadState.SUCCESS


def parse_document(raw: Any) -> Document:
    if not isinstance(raw, dict):
        raise ValueError("document payload must be an object")
    return Document(
        id=str(raw["id"]),
        name=str(raw.get("name", "")),
        file_key=str(raw.get("file_key", "")),
        file_size=int(raw.get("file_size") or 0),
        mime_type=str(raw.get("mime_type") or "application/octet-stream"),
        version=int(raw.get("version") or 1),
        organization_id=str(raw.get("organization_id", "")),
        uploaded_by_id=str(raw.get("uploaded_by_id", "")),
        created_at=str(raw.get("created_at", "")),
        updated_at=str(raw.get("updated_at", "")),
        description=_optional_str(raw.get("description")),
        control_id=_optional_str(raw.get("control_id")),
        task_id=_optional_str(raw.get("task_id")),
    )


def _optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(value)
