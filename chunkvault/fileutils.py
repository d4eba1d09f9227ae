"""Helpers for working with files on disk."""

from __future__ import annotations

import hashlib
import os
import shutil
import tempfile
from typing import Optional

_CHUNK = 64 * 1024

_MIME_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".pdf": "application/pdf",
    ".txt": "text/plain",
    ".html": "text/html",
    ".htm": "text/html",
    ".css": "text/css",
    ".js": "application/javascript",
    ".json": "application/json",
    ".xml": "application/xml",
    ".zip": "application/zip",
    ".doc": "application/msword",
    ".docx": "application/msword",
    ".xls": "application/vnd.ms-excel",
    ".xlsx": "application/vnd.ms-excel",
    ".ppt": "application/vnd.ms-powerpoint",
    ".pptx": "application/vnd.ms-powerpoint",
    ".mp3": "audio/mpeg",
    ".mp4": "video/mp4",
    ".wav": "audio/wav",
    ".avi": "video/x-msvideo",
    ".svg": "image/svg+xml",
}


def calculate_file_hash(path) -> str:
    """Return the hex MD5 digest of a file's contents."""
    digest = hashlib.md5()
    with open(path, "rb") as handle:
        for block in iter(lambda: handle.read(_CHUNK), b""):
            digest.update(block)
    return digest.hexdigest()


def ensure_dir(path) -> None:
    """Create a directory and its parents if they do not exist."""
    os.makedirs(path, exist_ok=True)


def remove_file(path) -> None:
    """Remove a file; a missing file is not an error."""
    try:
        os.remove(path)
    except FileNotFoundError:
        pass


def get_file_extension(filename: str) -> str:
    """Return the extension of the last path element, dot included, or ''."""
    tail = filename.replace(os.sep, "/").rsplit("/", 1)[-1]
    dot = tail.rfind(".")
    return tail[dot:] if dot >= 0 else ""


def get_file_size(path) -> int:
    """Return the size of a file in bytes."""
    return os.stat(path).st_size


def get_file_name_without_extension(filename: str) -> str:
    """Return the filename with its extension removed."""
    extension = get_file_extension(filename)
    return filename[: len(filename) - len(extension)] if extension else filename


def copy_file(source, destination) -> None:
    """Copy contents and permission bits, syncing the copy to disk."""
    with open(source, "rb") as src, open(destination, "wb") as dst:
        shutil.copyfileobj(src, dst, _CHUNK)
        dst.flush()
        os.fsync(dst.fileno())
    shutil.copymode(source, destination)


def move_file(source, destination) -> None:
    """Move a file, falling back to copy and delete across filesystems."""
    try:
        os.rename(source, destination)
        return
    except OSError:
        pass
    copy_file(source, destination)
    os.remove(source)


def file_exists(path) -> bool:
    """True if the path exists and is not a directory."""
    return os.path.exists(path) and not os.path.isdir(path)


def dir_exists(path) -> bool:
    """True if the path is an existing directory."""
    return os.path.isdir(path)


def create_temp_file(prefix: str, content: Optional[bytes] = None) -> str:
    """Create a temporary file holding the given content and return its path."""
    fd, path = tempfile.mkstemp(prefix=prefix)
    try:
        with os.fdopen(fd, "wb") as handle:
            if content is not None:
                handle.write(content)
    except BaseException:
        os.remove(path)
        raise
    return path


def get_mime_type(filename: str) -> str:
    """Guess a MIME type from the file extension."""
    return _MIME_TYPES.get(get_file_extension(filename).lower(), "application/octet-stream")