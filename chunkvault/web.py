"""HTTP interface for chunked and direct file uploads."""

from __future__ import annotations

import os
import uuid
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

from flask import Flask, Response, jsonify, request

from chunkvault.entities import StoredFile, Upload
from chunkvault.usecase import (
    FileUseCase,
    IncompleteUploadError,
    UploadError,
    UploadNotFoundError,
    UploadStateError,
)

_CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Credentials": "true",
    "Access-Control-Allow-Headers": (
        "Content-Type, Content-Length, Accept-Encoding, X-CSRF-Token, "
        "Authorization, Content-Range, Range"
    ),
    "Access-Control-Allow-Methods": "POST, OPTIONS, GET, PUT, DELETE",
}

_CHUNK_ENDPOINT = "upload_chunk"


def _stamp(value: Optional[datetime]) -> Optional[str]:
    return None if value is None else value.isoformat()


def _error(message: str, status: int) -> Tuple[Response, int]:
    return jsonify({"error": message}), status


def _parse_id(raw: str) -> Optional[uuid.UUID]:
    try:
        return uuid.UUID(raw)
    except ValueError:
        return None


def _initiate_fields(body: Any) -> Tuple[str, int, str]:
    """Validate an initiate-upload body, raising ValueError on bad input."""
    if not isinstance(body, dict):
        raise ValueError("request body must be a JSON object")

    def required_text(key: str) -> str:
        value = body.get(key)
        if not isinstance(value, str) or not value:
            raise ValueError(f"field '{key}' is required")
        return value

    file_name = required_text("file_name")
    size = body.get("file_size")
    if isinstance(size, bool) or not isinstance(size, int):
        raise ValueError("field 'file_size' is required and must be an integer")
    if size < 1:
        raise ValueError("field 'file_size' must be at least 1")
    mime_type = required_text("mime_type")
    return file_name, size, mime_type


def _file_body(stored: StoredFile) -> Dict[str, Any]:
    return {
        "file_id": str(stored.id),
        "file_name": stored.original_name,
        "size": stored.size,
        "mime_type": stored.mime_type,
        "created_at": _stamp(stored.created_at),
    }


def _progress_body(upload: Upload) -> Dict[str, Any]:
    return {
        "upload_id": str(upload.id),
        "status": upload.status.value,
        "uploaded_size": upload.uploaded_size,
        "total_size": upload.total_size,
        "upload_percent": upload.percent(),
    }


def create_app(use_case: FileUseCase) -> Flask:
    """Build the Flask application serving the upload API under /api."""
    app = Flask(__name__)

    @app.before_request
    def _preflight_and_content_type():
        if request.method == "OPTIONS":
            return Response(status=204)
        if request.method == "POST" and request.endpoint == _CHUNK_ENDPOINT:
            if "multipart/form-data" not in (request.headers.get("Content-Type") or ""):
                return _error("Content-Type must be multipart/form-data", 400)
        return None

    @app.after_request
    def _cors(response: Response) -> Response:
        for name, value in _CORS_HEADERS.items():
            response.headers[name] = value
        return response

    @app.post("/api/uploads", endpoint="initiate_upload")
    def initiate_upload():
        try:
            file_name, size, mime_type = _initiate_fields(request.get_json(silent=True))
        except ValueError as exc:
            return _error(str(exc), 400)
        try:
            upload = use_case.initiate_upload(file_name, size, mime_type)
        except UploadError as exc:
            return _error(str(exc), 500)
        return (
            jsonify(
                {
                    "upload_id": str(upload.id),
                    "file_name": upload.original_name,
                    "total_size": upload.total_size,
                    "status": upload.status.value,
                    "created_at": _stamp(upload.created_at),
                }
            ),
            201,
        )

    @app.get("/api/uploads/<upload_id>", endpoint="upload_status")
    def upload_status(upload_id: str):
        parsed = _parse_id(upload_id)
        if parsed is None:
            return _error("invalid upload ID", 400)
        try:
            upload = use_case.get_upload_status(parsed)
        except UploadNotFoundError as exc:
            return _error(str(exc), 404)
        except UploadError as exc:
            return _error(str(exc), 500)
        body = _progress_body(upload)
        body.update(
            file_name=upload.original_name,
            created_at=_stamp(upload.created_at),
            updated_at=_stamp(upload.updated_at),
        )
        if upload.completed_at is not None:
            body["completed_at"] = _stamp(upload.completed_at)
        return jsonify(body), 200

    @app.post("/api/uploads/<upload_id>/chunks", endpoint=_CHUNK_ENDPOINT)
    def upload_chunk(upload_id: str):
        parsed = _parse_id(upload_id)
        if parsed is None:
            return _error("invalid upload ID", 400)
        content_range = request.headers.get("Content-Range", "")
        if not content_range:
            return _error("Content-Range header is required", 400)
        part = request.files.get("file")
        if part is None:
            return _error("file upload error: no file field in the form", 400)
        try:
            upload = use_case.process_chunk(parsed, part.stream, content_range)
        except UploadError as exc:
            return _error(str(exc), 500)
        return jsonify(_progress_body(upload)), 200

    @app.post("/api/uploads/<upload_id>/finalize", endpoint="finalize_upload")
    def finalize_upload(upload_id: str):
        parsed = _parse_id(upload_id)
        if parsed is None:
            return _error("invalid upload ID", 400)
        try:
            stored = use_case.finalize_upload(parsed)
        except (IncompleteUploadError, UploadStateError) as exc:
            return _error(str(exc), 400)
        except UploadNotFoundError as exc:
            return _error(str(exc), 404)
        except UploadError as exc:
            return _error(str(exc), 500)
        return jsonify(_file_body(stored)), 200

    @app.post("/api/files", endpoint="upload_file")
    def upload_file():
        part = request.files.get("file")
        if part is None:
            return _error("failed to get file: no file field in the form", 400)
        stream = part.stream
        stream.seek(0, os.SEEK_END)
        size = stream.tell()
        stream.seek(0)
        try:
            stored = use_case.direct_upload(
                stream, part.filename or "", size, part.content_type or ""
            )
        except UploadError as exc:
            return _error(f"failed to create file record: {exc}", 500)
        return jsonify(_file_body(stored)), 200

    return app