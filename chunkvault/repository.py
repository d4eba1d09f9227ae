"""Persistence of uploads and stored files in SQLite."""

from __future__ import annotations

import os
import sqlite3
import threading
import uuid
from datetime import datetime
from typing import Optional, Union

from chunkvault.entities import StoredFile, Upload, UploadStatus

_SCHEMA = """
CREATE TABLE IF NOT EXISTS uploads (
    id TEXT PRIMARY KEY,
    file_name TEXT NOT NULL,
    original_name TEXT NOT NULL,
    total_size INTEGER NOT NULL,
    uploaded_size INTEGER NOT NULL,
    mime_type TEXT NOT NULL,
    status TEXT NOT NULL,
    temp_path TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    completed_at TEXT
);
CREATE TABLE IF NOT EXISTS files (
    id TEXT PRIMARY KEY,
    file_name TEXT NOT NULL,
    original_name TEXT NOT NULL,
    size INTEGER NOT NULL,
    mime_type TEXT NOT NULL,
    path TEXT NOT NULL,
    upload_id TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
"""

_UPLOAD_COLUMNS = (
    "id, file_name, original_name, total_size, uploaded_size, mime_type, "
    "status, temp_path, created_at, updated_at, completed_at"
)
_FILE_COLUMNS = (
    "id, file_name, original_name, size, mime_type, path, upload_id, created_at, updated_at"
)


class RecordNotFoundError(LookupError):
    """No record exists with the requested id."""

    def __init__(self, message: str = "record not found") -> None:
        super().__init__(message)


def _time_out(value: Optional[datetime]) -> Optional[str]:
    return None if value is None else value.isoformat()


def _time_in(value: Optional[str]) -> Optional[datetime]:
    return None if value is None else datetime.fromisoformat(value)


def _upload_row(upload: Upload) -> tuple:
    return (
        str(upload.id),
        upload.file_name,
        upload.original_name,
        upload.total_size,
        upload.uploaded_size,
        upload.mime_type,
        UploadStatus(upload.status).value,
        upload.temp_path,
        _time_out(upload.created_at),
        _time_out(upload.updated_at),
        _time_out(upload.completed_at),
    )


class FileRepository:
    """Stores uploads and files in an SQLite database."""

    def __init__(self, database: Union[str, os.PathLike] = ":memory:") -> None:
        self._conn = sqlite3.connect(os.fspath(database), check_same_thread=False)
        self._lock = threading.Lock()
        with self._lock, self._conn:
            self._conn.executescript(_SCHEMA)

    def create_upload(self, upload: Upload) -> None:
        """Insert a new upload; raises sqlite3.IntegrityError if the id exists."""
        with self._lock, self._conn:
            self._conn.execute(
                f"INSERT INTO uploads ({_UPLOAD_COLUMNS}) VALUES (?,?,?,?,?,?,?,?,?,?,?)",
                _upload_row(upload),
            )

    def get_upload(self, upload_id: uuid.UUID) -> Upload:
        """Fetch an upload by id."""
        with self._lock:
            row = self._conn.execute(
                f"SELECT {_UPLOAD_COLUMNS} FROM uploads WHERE id = ?", (str(upload_id),)
            ).fetchone()
        if row is None:
            raise RecordNotFoundError()
        return Upload(
            id=uuid.UUID(row[0]),
            file_name=row[1],
            original_name=row[2],
            total_size=row[3],
            uploaded_size=row[4],
            mime_type=row[5],
            status=UploadStatus(row[6]),
            temp_path=row[7],
            created_at=_time_in(row[8]),
            updated_at=_time_in(row[9]),
            completed_at=_time_in(row[10]),
        )

    def update_upload(self, upload: Upload) -> None:
        """Save every field of an upload, inserting it if it is not stored yet."""
        with self._lock, self._conn:
            self._conn.execute(
                f"INSERT OR REPLACE INTO uploads ({_UPLOAD_COLUMNS}) "
                "VALUES (?,?,?,?,?,?,?,?,?,?,?)",
                _upload_row(upload),
            )

    def create_file(self, stored_file: StoredFile) -> None:
        """Insert a new file record; raises sqlite3.IntegrityError if the id exists."""
        with self._lock, self._conn:
            self._conn.execute(
                f"INSERT INTO files ({_FILE_COLUMNS}) VALUES (?,?,?,?,?,?,?,?,?)",
                (
                    str(stored_file.id),
                    stored_file.file_name,
                    stored_file.original_name,
                    stored_file.size,
                    stored_file.mime_type,
                    stored_file.path,
                    str(stored_file.upload_id),
                    _time_out(stored_file.created_at),
                    _time_out(stored_file.updated_at),
                ),
            )

    def get_file(self, file_id: uuid.UUID) -> StoredFile:
        """Fetch a file record by id."""
        with self._lock:
            row = self._conn.execute(
                f"SELECT {_FILE_COLUMNS} FROM files WHERE id = ?", (str(file_id),)
            ).fetchone()
        if row is None:
            raise RecordNotFoundError()
        return StoredFile(
            id=uuid.UUID(row[0]),
            file_name=row[1],
            original_name=row[2],
            size=row[3],
            mime_type=row[4],
            path=row[5],
            upload_id=uuid.UUID(row[6]),
            created_at=_time_in(row[7]),
            updated_at=_time_in(row[8]),
        )

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            self._conn.close()

    def __enter__(self) -> "FileRepository":
        return self

    def __exit__(self, *args) -> None:
        self.close()