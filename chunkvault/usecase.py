"""Chunked and direct upload workflows over a repository and the filesystem."""

from __future__ import annotations

import io
import os
import re
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import BinaryIO, Mapping, Optional, Protocol, Tuple, Union

from chunkvault.entities import StoredFile, Upload, UploadStatus
from chunkvault.fileutils import ensure_dir, get_file_extension
from chunkvault.logs import get_upload_logger
from chunkvault.repository import FileRepository, RecordNotFoundError

_BLOCK = 64 * 1024
_CONTENT_RANGE = re.compile(r"bytes\s*([+-]?\d+)-\s*([+-]?\d+)/\s*([+-]?\d+)")

ChunkSource = Union[bytes, bytearray, memoryview, BinaryIO]


class UploadError(Exception):
    """An upload operation could not be carried out."""


class UploadNotFoundError(UploadError, LookupError):
    """No upload exists with the given id."""


class UploadStateError(UploadError):
    """The upload is already completed or has failed."""


class IncompleteUploadError(UploadError):
    """Finalisation was requested before every byte arrived."""


class ObjectStorage(Protocol):
    """Destination that finalised files are copied to when enabled."""

    def put_object(
        self,
        bucket: str,
        name: str,
        stream: BinaryIO,
        size: int,
        content_type: str,
        metadata: Mapping[str, str],
    ) -> object:
        """Store size bytes read from stream as bucket/name."""


@dataclass(frozen=True)
class UploadSettings:
    """Directories and limits that govern uploads."""

    temp_dir: str
    final_dir: str
    max_file_size: int
    enable_object_storage: bool = False
    bucket: str = "uploads"


def parse_content_range(value: str) -> Tuple[int, int, int]:
    """Parse 'bytes start-end/total' into (start, end, total)."""
    match = _CONTENT_RANGE.match(value or "")
    if match is None:
        raise ValueError(f"invalid content range format: {value!r}")
    start, end, total = (int(group) for group in match.groups())
    return start, end, total


def _now() -> datetime:
    return datetime.now().astimezone()


def _as_stream(chunk: ChunkSource) -> BinaryIO:
    if isinstance(chunk, (bytes, bytearray, memoryview)):
        return io.BytesIO(bytes(chunk))
    return chunk


def _copy(source: BinaryIO, target: BinaryIO) -> int:
    written = 0
    while block := source.read(_BLOCK):
        target.write(block)
        written += len(block)
    return written


class FileUseCase:
    """Coordinates chunked uploads, finalisation and direct uploads."""

    def __init__(
        self,
        repository: FileRepository,
        settings: UploadSettings,
        storage: Optional[ObjectStorage] = None,
    ) -> None:
        if settings.enable_object_storage and storage is None:
            raise ValueError("object storage is enabled but no storage was given")
        self._repository = repository
        self._settings = settings
        self._storage = storage

    def _load(self, upload_id: uuid.UUID) -> Upload:
        try:
            return self._repository.get_upload(upload_id)
        except RecordNotFoundError as exc:
            raise UploadNotFoundError(f"upload not found: {exc}") from exc

    def _load_active(self, upload_id: uuid.UUID) -> Upload:
        upload = self._load(upload_id)
        if upload.status == UploadStatus.COMPLETED:
            raise UploadStateError("upload already completed")
        if upload.status == UploadStatus.FAILED:
            raise UploadStateError("upload has failed")
        return upload

    def _mark_failed(self, upload: Upload) -> None:
        upload.status = UploadStatus.FAILED
        try:
            self._repository.update_upload(upload)
        except Exception:
            pass

    def initiate_upload(self, original_name: str, total_size: int, mime_type: str) -> Upload:
        """Register a new upload and create its empty temporary file."""
        if total_size > self._settings.max_file_size:
            raise UploadError("file size exceeds maximum allowed size")

        upload_id = uuid.uuid4()
        file_name = f"{uuid.uuid4()}{get_file_extension(original_name)}"
        temp_path = os.path.join(self._settings.temp_dir, file_name)

        try:
            with open(temp_path, "wb"):
                pass
        except OSError as exc:
            raise UploadError(f"failed to create temporary file: {exc}") from exc

        now = _now()
        upload = Upload(
            id=upload_id,
            file_name=file_name,
            original_name=original_name,
            total_size=total_size,
            mime_type=mime_type,
            temp_path=temp_path,
            created_at=now,
            updated_at=now,
        )
        try:
            self._repository.create_upload(upload)
        except Exception as exc:
            try:
                os.remove(temp_path)
            except OSError:
                pass
            raise UploadError(f"failed to create upload record: {exc}") from exc
        return upload

    def process_chunk(
        self, upload_id: uuid.UUID, chunk: ChunkSource, content_range: str
    ) -> Upload:
        """Write one chunk at the offset given by its Content-Range value."""
        upload = self._load_active(upload_id)

        try:
            start, end, total = parse_content_range(content_range)
        except ValueError as exc:
            raise UploadError(str(exc)) from exc

        if total != upload.total_size:
            raise UploadError("total size mismatch")
        if start > upload.uploaded_size:
            raise UploadError("chunk out of order")

        try:
            target = open(upload.temp_path, "r+b")
        except OSError as exc:
            raise UploadError(f"failed to open temporary file: {exc}") from exc

        with target:
            try:
                target.seek(start)
            except (OSError, ValueError) as exc:
                raise UploadError(f"failed to seek in file: {exc}") from exc
            try:
                written = _copy(_as_stream(chunk), target)
            except OSError as exc:
                self._mark_failed(upload)
                raise UploadError(f"failed to write chunk: {exc}") from exc

        expected = end - start + 1
        if written != expected:
            self._mark_failed(upload)
            raise UploadError(f"chunk size mismatch: expected {expected}, got {written}")

        upload.uploaded_size = max(upload.uploaded_size, start + written)
        upload.status = UploadStatus.UPLOADING
        upload.updated_at = _now()
        try:
            self._repository.update_upload(upload)
        except Exception as exc:
            raise UploadError(f"failed to update upload record: {exc}") from exc
        return upload

    def finalize_upload(self, upload_id: uuid.UUID) -> StoredFile:
        """Move a complete upload to the final directory and record the file."""
        upload = self._load_active(upload_id)

        if upload.uploaded_size != upload.total_size:
            raise IncompleteUploadError(
                f"upload incomplete: expected {upload.total_size} bytes, "
                f"got {upload.uploaded_size} bytes"
            )

        final_path = os.path.join(self._settings.final_dir, upload.file_name)
        try:
            os.rename(upload.temp_path, final_path)
        except OSError as exc:
            self._mark_failed(upload)
            raise UploadError(f"failed to move file to final location: {exc}") from exc

        now = _now()
        upload.status = UploadStatus.COMPLETED
        upload.updated_at = now
        upload.completed_at = now
        try:
            self._repository.update_upload(upload)
        except Exception as exc:
            raise UploadError(f"failed to update upload record: {exc}") from exc

        stored = StoredFile(
            id=uuid.uuid4(),
            file_name=upload.file_name,
            original_name=upload.original_name,
            size=upload.total_size,
            mime_type=upload.mime_type,
            path=final_path,
            upload_id=upload.id,
            created_at=now,
            updated_at=now,
        )
        try:
            self._repository.create_file(stored)
        except Exception as exc:
            raise UploadError(f"failed to create file record: {exc}") from exc

        if self._settings.enable_object_storage:
            self._push_to_storage(upload, final_path)
        return stored

    def _push_to_storage(self, upload: Upload, final_path: str) -> None:
        try:
            source = open(final_path, "rb")
        except OSError as exc:
            self._mark_failed(upload)
            raise UploadError(f"failed to open file for object storage upload: {exc}") from exc

        with source:
            try:
                size = os.fstat(source.fileno()).st_size
            except OSError as exc:
                self._mark_failed(upload)
                raise UploadError(f"failed to stat file: {exc}") from exc
            try:
                self._storage.put_object(
                    self._settings.bucket,
                    upload.file_name,
                    source,
                    size,
                    upload.mime_type,
                    {"originalName": upload.original_name, "uploadID": str(upload.id)},
                )
            except Exception as exc:
                self._mark_failed(upload)
                get_upload_logger().error("failed to upload file to object storage: %s", exc)
                raise UploadError(f"failed to upload file to object storage: {exc}") from exc

    def get_upload_status(self, upload_id: uuid.UUID) -> Upload:
        """Return the stored state of an upload."""
        return self._load(upload_id)

    def direct_upload(
        self, stream: ChunkSource, filename: str, size: int, content_type: str
    ) -> StoredFile:
        """Store a whole file at once in the final directory."""
        if size > self._settings.max_file_size:
            raise UploadError("file size exceeds maximum allowed size")

        upload_id = uuid.uuid4()
        file_name = f"{uuid.uuid4()}{get_file_extension(filename)}"
        final_dir = self._settings.final_dir

        try:
            ensure_dir(final_dir)
        except OSError as exc:
            raise UploadError("failed to create directory") from exc

        final_path = os.path.join(final_dir, file_name)
        try:
            target = open(final_path, "wb")
        except OSError as exc:
            raise UploadError("failed to create file") from exc
        with target:
            try:
                _copy(_as_stream(stream), target)
            except OSError as exc:
                raise UploadError("failed to write file") from exc

        now = _now()
        stored = StoredFile(
            id=uuid.uuid4(),
            file_name=file_name,
            original_name=filename,
            size=size,
            mime_type=content_type,
            path=final_path,
            upload_id=upload_id,
            created_at=now,
            updated_at=now,
        )
        try:
            self._repository.create_file(stored)
        except Exception as exc:
            raise UploadError("failed to create file record") from exc
        return stored