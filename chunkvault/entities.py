"""Domain records for uploads in progress and stored files."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class UploadStatus(str, Enum):
    """Lifecycle state of a chunked upload."""

    PENDING = "pending"
    UPLOADING = "uploading"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class Upload:
    """A chunked upload whose bytes are collected in a temporary file."""

    id: uuid.UUID
    file_name: str
    original_name: str
    total_size: int
    mime_type: str
    temp_path: str
    created_at: datetime
    updated_at: datetime
    uploaded_size: int = 0
    status: UploadStatus = UploadStatus.PENDING
    completed_at: Optional[datetime] = None

    def percent(self) -> float:
        """Share of the upload received so far, in percent."""
        if self.total_size == 0:
            return 0.0
        return self.uploaded_size / self.total_size * 100


@dataclass
class StoredFile:
    """A file that has reached its final location."""

    id: uuid.UUID
    file_name: str
    original_name: str
    size: int
    mime_type: str
    path: str
    upload_id: uuid.UUID
    created_at: datetime
    updated_at: datetime