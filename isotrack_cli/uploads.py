from __future__ import annotations

import logging
import mimetypes
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Callable, Dict, List, Optional, Sequence, Tuple

from isotrack_cli.client import IsoTrackClient
from isotrack_cli.exceptions import (
    IsoTrackError,
    OrphanedObjectError,
    UploadCancelledError,
    UploadError,
)
from isotrack_cli.models.documents import Document, DocumentList, UploadOutcome, UploadState

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "application/octet-stream"
DIRECT = "direct"
PRESIGNED = "presigned"
UPLOAD_MODES = (DIRECT, PRESIGNED)

StateListener = Callable[[str, UploadState], None]

_TRANSITIONS: Dict[UploadState, Tuple[UploadState, ...]] = {
    UploadState.IDLE: (UploadState.UPLOADING, UploadState.REQUESTING_SLOT, UploadState.FAILED),
    UploadState.UPLOADING: (UploadState.SUCCESS, UploadState.FAILED),
    UploadState.REQUESTING_SLOT: (UploadState.TRANSFERRING, UploadState.FAILED),
    UploadState.TRANSFERRING: (UploadState.CONFIRMING, UploadState.FAILED),
    UploadState.CONFIRMING: (UploadState.SUCCESS, UploadState.FAILED),
    UploadState.SUCCESS: (),
    UploadState.FAILED: (),
}


@dataclass
class UploadFile:
    path: Path
    name: Optional[str] = None
    description: Optional[str] = None
    control_id: Optional[str] = None
    task_id: Optional[str] = None
    content_type: Optional[str] = None

    @property
    def filename(self) -> str:
        return self.path.name

    def resolved_content_type(self) -> str:
        if self.content_type:
            return self.content_type
        guessed, _ = mimetypes.guess_type(self.path.name)
        return guessed or DEFAULT_CONTENT_TYPE


class CancelToken:
    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, filename: str) -> None:
        if self._event.is_set():
            raise UploadCancelledError(f"Upload of {filename} was cancelled.")


class _CancellableReader:
    """File wrapper that stops a streaming transfer once the token is cancelled."""

    def __init__(self, fp: BinaryIO, size: int, token: CancelToken, filename: str) -> None:
        self._fp = fp
        self._size = size
        self._token = token
        self._filename = filename

    def read(self, size: int = -1) -> bytes:
        self._token.raise_if_cancelled(self._filename)
        return self._fp.read(size)

    def __len__(self) -> int:
        return self._size


class DocumentCache:
    """Document lists keyed by filter parameters.

    Concurrent ``get`` calls for the same key share one backend request.
    """

    def __init__(self, client: IsoTrackClient) -> None:
        self._client = client
        self._lock = threading.Lock()
        self._entries: Dict[Tuple[Optional[str], ...], DocumentList] = {}
        self._inflight: Dict[Tuple[Optional[str], ...], "Future[DocumentList]"] = {}
        self._generation = 0

    def get(
        self,
        control_id: Optional[str] = None,
        task_id: Optional[str] = None,
        search: Optional[str] = None,
    ) -> DocumentList:
        key = (control_id, task_id, search)
        with self._lock:
            cached = self._entries.get(key)
            if cached is not None:
                return cached
            pending = self._inflight.get(key)
            if pending is not None:
                owner = False
            else:
                pending = Future()
                self._inflight[key] = pending
                owner = True
            generation = self._generation

        if not owner:
            return pending.result()

        logger.debug("Fetching document list for %s", key)
        try:
            result = self._client.list_documents(
                control_id=control_id, task_id=task_id, search=search,
            )
        except Exception as exc:
            with self._lock:
                self._release(key, pending)
            pending.set_exception(exc)
            raise

        with self._lock:
            self._release(key, pending)
            if generation == self._generation:
                self._entries[key] = result
        pending.set_result(result)
        return result

    def invalidate(self) -> None:
        with self._lock:
            self._entries.clear()
            self._inflight.clear()
            self._generation += 1
        logger.debug("Document list invalidated")

    def _release(self, key: Tuple[Optional[str], ...], pending: "Future[DocumentList]") -> None:
        # a fetch started after invalidate() may own the slot by now
        if self._inflight.get(key) is pending:
            del self._inflight[key]


class _FileUpload:
    def __init__(self, file: UploadFile, listener: Optional[StateListener]) -> None:
        self.file = file
        self.state = UploadState.IDLE
        self._listener = listener

    def transition(self, new_state: UploadState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise UploadError(
                f"Illegal upload transition {self.state.value} -> {new_state.value} "
                f"for {self.file.filename}."
            )
        logger.debug("%s: %s -> %s", self.file.filename, self.state.value, new_state.value)
        self.state = new_state
        if self._listener is not None:
            self._listener(self.file.filename, new_state)


class UploadCoordinator:
    def __init__(
        self,
        client: IsoTrackClient,
        cache: Optional[DocumentCache] = None,
        max_workers: int = 4,
    ) -> None:
        self._client = client
        self.cache = cache if cache is not None else DocumentCache(client)
        self._max_workers = max_workers

    def upload_direct(
        self,
        file: UploadFile,
        cancel: Optional[CancelToken] = None,
        listener: Optional[StateListener] = None,
    ) -> UploadOutcome:
        outcome = self._run_direct(file, cancel or CancelToken(), listener)
        if outcome.succeeded:
            self.cache.invalidate()
        return outcome

    def upload_presigned(
        self,
        file: UploadFile,
        cancel: Optional[CancelToken] = None,
        listener: Optional[StateListener] = None,
    ) -> UploadOutcome:
        outcome = self._run_presigned(file, cancel or CancelToken(), listener)
        if outcome.succeeded:
            self.cache.invalidate()
        return outcome

    def upload_batch(
        self,
        files: Sequence[UploadFile],
        mode: str = DIRECT,
        cancel: Optional[CancelToken] = None,
        listener: Optional[StateListener] = None,
    ) -> List[UploadOutcome]:
        """Upload files concurrently; outcomes come back in input order.

        The document list is invalidated once, after every file has finished,
        and only when at least one of them succeeded.
        """
        if mode not in UPLOAD_MODES:
            raise UploadError(f"Unknown upload mode '{mode}'. Choose one of: {', '.join(UPLOAD_MODES)}.")
        if not files:
            return []

        token = cancel or CancelToken()
        run = self._run_direct if mode == DIRECT else self._run_presigned
        workers = max(1, min(self._max_workers, len(files)))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="upload") as executor:
            futures = [executor.submit(run, f, token, listener) for f in files]
            try:
                outcomes = [future.result() for future in futures]
            except KeyboardInterrupt:
                # Workers stop at their next checkpoint before the pool shuts down.
                token.cancel()
                raise

        succeeded = sum(1 for o in outcomes if o.succeeded)
        logger.info("Uploaded %d of %d file(s)", succeeded, len(outcomes))
        if succeeded:
            self.cache.invalidate()
        return outcomes

    def delete(self, document_id: str) -> None:
        self._client.delete_document(document_id)
        self.cache.invalidate()

    def update(
        self,
        document_id: str,
        name: Optional[str] = None,
        description: Optional[str] = None,
        control_id: Optional[str] = None,
        task_id: Optional[str] = None,
    ) -> Document:
        document = self._client.update_document(
            document_id,
            name=name,
            description=description,
            control_id=control_id,
            task_id=task_id,
        )
        self.cache.invalidate()
        return document

    def request_download_url(self, document_id: str) -> str:
        return self._client.get_download_url(document_id)

    def _run_direct(
        self,
        file: UploadFile,
        token: CancelToken,
        listener: Optional[StateListener],
    ) -> UploadOutcome:
        upload = _FileUpload(file, listener)
        content_type = file.resolved_content_type()
        try:
            token.raise_if_cancelled(file.filename)
            upload.transition(UploadState.UPLOADING)
            size = _file_size(file)
            with open(file.path, "rb") as fp:
                document = self._client.upload_document(
                    file.filename,
                    _CancellableReader(fp, size, token, file.filename),
                    content_type,
                    name=file.name,
                    description=file.description,
                    control_id=file.control_id,
                    task_id=file.task_id,
                )
        except (IsoTrackError, OSError) as exc:
            return _fail(upload, _cancelled_or(exc, token, file.filename))

        upload.transition(UploadState.SUCCESS)
        logger.info("Uploaded %s as document %s", file.filename, document.id)
        return UploadOutcome(
            filename=file.filename,
            state=upload.state,
            document=document,
            file_key=document.file_key,
        )

    def _run_presigned(
        self,
        file: UploadFile,
        token: CancelToken,
        listener: Optional[StateListener],
    ) -> UploadOutcome:
        upload = _FileUpload(file, listener)
        content_type = file.resolved_content_type()
        file_key: Optional[str] = None
        try:
            token.raise_if_cancelled(file.filename)
            size = _file_size(file)
            upload.transition(UploadState.REQUESTING_SLOT)
            slot = self._client.request_upload_slot(file.filename, content_type)

            token.raise_if_cancelled(file.filename)
            upload.transition(UploadState.TRANSFERRING)
            with open(file.path, "rb") as fp:
                self._client.transfer_bytes(
                    slot.upload_url,
                    _CancellableReader(fp, size, token, file.filename),
                    content_type,
                )
            file_key = slot.file_key

            token.raise_if_cancelled(file.filename)
            upload.transition(UploadState.CONFIRMING)
            try:
                document = self._client.confirm_upload(
                    name=file.name or file.filename,
                    file_key=slot.file_key,
                    file_size=size,
                    mime_type=content_type,
                    description=file.description,
                    control_id=file.control_id,
                    task_id=file.task_id,
                )
            except IsoTrackError as exc:
                raise OrphanedObjectError(
                    f"{file.filename} was stored as {slot.file_key} but could not be "
                    f"registered: {exc}",
                    file_key=slot.file_key,
                ) from exc
        except (IsoTrackError, OSError) as exc:
            error = exc if file_key is not None else _cancelled_or(exc, token, file.filename)
            if file_key is not None:
                logger.warning(
                    "Stored object %s for %s has no document record", file_key, file.filename,
                )
            return _fail(upload, error, file_key=file_key)

        upload.transition(UploadState.SUCCESS)
        logger.info("Uploaded %s as document %s", file.filename, document.id)
        return UploadOutcome(
            filename=file.filename,
            state=upload.state,
            document=document,
            file_key=file_key,
        )


def _file_size(file: UploadFile) -> int:
    if not file.path.is_file():
        raise UploadError(f"File not found: {file.path}")
    return file.path.stat().st_size


def _cancelled_or(exc: Exception, token: CancelToken, filename: str) -> Exception:
    if token.cancelled and not isinstance(exc, UploadCancelledError):
        cancelled = UploadCancelledError(f"Upload of {filename} was cancelled.")
        cancelled.__cause__ = exc
        return cancelled
    return exc


def _fail(
    upload: _FileUpload,
    error: Exception,
    file_key: Optional[str] = None,
) -> UploadOutcome:
    upload.transition(UploadState.FAILED)
    logger.info("Upload of %s failed: %s", upload.file.filename, error)
    return UploadOutcome(
        filename=upload.file.filename,
        state=upload.state,
        error=error,
        file_key=file_key,
    )
