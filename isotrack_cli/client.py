from __future__ import annotations

import logging
from typing import Any, BinaryIO, Dict, Optional, Union

import requests

from isotrack_cli import __version__
from isotrack_cli.exceptions import (
    AuthenticationError,
    NetworkError,
    NotFoundError,
    UpstreamError,
)
from isotrack_cli.models.config import AppConfig
from isotrack_cli.models.documents import (
    Document,
    DocumentList,
    UploadSlot,
    parse_document,
)

logger = logging.getLogger(__name__)

_DOCUMENTS_PATH = "api/documents"

FileBody = Union[bytes, BinaryIO]


class IsoTrackClient:
    def __init__(self, config: AppConfig) -> None:
        self._base_url = config.api_url
        self._timeout = config.timeout
        self._session = requests.Session()
        self._session.headers.update({
            "User-Agent": f"isotrack-cli/{__version__}",
            "Accept": "application/json",
        })
        if config.token:
            self._session.headers["Authorization"] = f"Bearer {config.token}"
        # Presigned URLs already carry their own credentials.
        self._storage_session = requests.Session()

    def get(self, path: str, params: Optional[Dict[str, str]] = None) -> Any:
        return self._request("GET", path, params=params)

    def post(self, path: str, json: Optional[Dict[str, Any]] = None) -> Any:
        return self._request("POST", path, json=json)

    def patch(self, path: str, json: Optional[Dict[str, Any]] = None) -> Any:
        return self._request("PATCH", path, json=json)

    def delete(self, path: str) -> Any:
        return self._request("DELETE", path)

    def list_documents(
        self,
        control_id: Optional[str] = None,
        task_id: Optional[str] = None,
        search: Optional[str] = None,
    ) -> DocumentList:
        params: Dict[str, str] = {}
        if control_id:
            params["control_id"] = control_id
        if task_id:
            params["task_id"] = task_id
        if search:
            params["search"] = search

        data = self.get(_DOCUMENTS_PATH, params=params or None)
        if not isinstance(data, dict):
            raise UpstreamError("Invalid document list response from the backend.")
        raw_docs = data.get("documents") or []
        documents = [self._parse(raw) for raw in raw_docs]
        return DocumentList(
            documents=documents,
            total=int(data.get("total", len(documents)) or 0),
            total_size=int(data.get("total_size", 0) or 0),
        )

    def request_upload_slot(self, filename: str, content_type: str) -> UploadSlot:
        data = self.post(
            f"{_DOCUMENTS_PATH}/presigned-upload",
            json={"filename": filename, "content_type": content_type},
        )
        try:
            return UploadSlot(
                upload_url=str(data["upload_url"]),
                file_key=str(data["file_key"]),
                expires_in=int(data.get("expires_in", 0)),
            )
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            raise UpstreamError("Invalid upload slot response from the backend.") from exc

    def transfer_bytes(
        self,
        upload_url: str,
        body: FileBody,
        content_type: str,
    ) -> None:
        try:
            response = self._storage_session.put(
                upload_url,
                data=body,
                headers={"Content-Type": content_type},
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            raise NetworkError(
                "Cannot reach the object store. Check your network connection."
            ) from exc

        if not 200 <= response.status_code < 300:
            raise UpstreamError(
                f"Object store rejected the upload ({response.status_code}).",
                status_code=response.status_code,
            )

    def confirm_upload(
        self,
        name: str,
        file_key: str,
        file_size: int,
        mime_type: str,
        description: Optional[str] = None,
        control_id: Optional[str] = None,
        task_id: Optional[str] = None,
    ) -> Document:
        body: Dict[str, Any] = {
            "name": name,
            "file_key": file_key,
            "file_size": file_size,
            "mime_type": mime_type,
        }
        body.update(_present(description=description, control_id=control_id, task_id=task_id))
        return self._parse(self.post(f"{_DOCUMENTS_PATH}/confirm-upload", json=body))

    def upload_document(
        self,
        filename: str,
        body: FileBody,
        content_type: str,
        name: Optional[str] = None,
        description: Optional[str] = None,
        control_id: Optional[str] = None,
        task_id: Optional[str] = None,
    ) -> Document:
        fields = _present(
            name=name, description=description, control_id=control_id, task_id=task_id,
        )
        data = self._request(
            "POST",
            f"{_DOCUMENTS_PATH}/upload",
            files={"file": (filename, body, content_type)},
            data=fields,
        )
        return self._parse(data)

    def update_document(
        self,
        document_id: str,
        name: Optional[str] = None,
        description: Optional[str] = None,
        control_id: Optional[str] = None,
        task_id: Optional[str] = None,
    ) -> Document:
        body = _present(
            name=name, description=description, control_id=control_id, task_id=task_id,
        )
        return self._parse(self.patch(f"{_DOCUMENTS_PATH}/{document_id}", json=body))

    def delete_document(self, document_id: str) -> None:
        self.delete(f"{_DOCUMENTS_PATH}/{document_id}")

    def get_download_url(self, document_id: str) -> str:
        data = self.get(f"{_DOCUMENTS_PATH}/{document_id}/download")
        url = data.get("download_url") if isinstance(data, dict) else None
        if not url:
            raise UpstreamError(f"No download URL returned for document {document_id}.")
        return str(url)

    def _parse(self, raw: Any) -> Document:
        try:
            return parse_document(raw)
        except (KeyError, TypeError, ValueError) as exc:
            raise UpstreamError("Invalid document response from the backend.") from exc

    def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        normalized_path = path.lstrip("/")
        url = self._base_url + normalized_path
        logger.debug("%s %s", method, url)
        try:
            response = self._session.request(method, url, timeout=self._timeout, **kwargs)
        except requests.Timeout as exc:
            raise NetworkError(
                f"Request to {self._base_url} timed out after {self._timeout:g}s."
            ) from exc
        except requests.RequestException as exc:
            raise NetworkError(
                f"Cannot connect to {self._base_url}. "
                "Check your network connection and API URL."
            ) from exc

        if response.status_code in (401, 403):
            raise AuthenticationError(
                "Authentication failed. Your token may be missing or expired. "
                "Run isotrack-cli init to set a new token."
            )
        if response.status_code == 404:
            raise NotFoundError(f"Resource not found: {normalized_path}.")
        if not 200 <= response.status_code < 300:
            detail = _error_detail(response)
            message = f"Backend request failed ({response.status_code}) for {normalized_path}."
            if detail:
                message += f" {detail}"
            raise UpstreamError(message, status_code=response.status_code, detail=detail)

        content_type = response.headers.get("Content-Type", "")
        if "application/json" not in content_type:
            return {}
        try:
            return response.json()
        except ValueError as exc:
            raise UpstreamError(
                f"Invalid response from the backend for {normalized_path}. Expected JSON data.",
                status_code=response.status_code,
            ) from exc


def _present(**fields: Optional[str]) -> Dict[str, str]:
    return {key: value for key, value in fields.items() if value is not None}


def _error_detail(response: requests.Response) -> Optional[str]:
    try:
        data = response.json()
    except ValueError:
        return getattr(response, "reason", None) or None
    if isinstance(data, dict):
        detail = data.get("detail") or data.get("message")
        if detail:
            return str(detail)
    return None
