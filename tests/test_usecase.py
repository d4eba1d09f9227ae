import io
import os
import uuid

import pytest

from chunkvault.entities import UploadStatus
from chunkvault.repository import FileRepository
from chunkvault.usecase import (
    FileUseCase,
    IncompleteUploadError,
    UploadError,
    UploadNotFoundError,
    UploadSettings,
    UploadStateError,
    parse_content_range,
)


class _RecordingStorage:
    def __init__(self, fail=False):
        self.calls = []
        self.fail = fail

    def put_object(self, bucket, name, stream, size, content_type, metadata):
        if self.fail:
            raise RuntimeError("storage unavailable")
        self.calls.append((bucket, name, stream.read(), size, content_type, dict(metadata)))


class _BrokenRepository:
    def create_upload(self, upload):
        raise RuntimeError("database down")


@pytest.fixture
def dirs(tmp_path):
    temp_dir = tmp_path / "tmp"
    final_dir = tmp_path / "final"
    temp_dir.mkdir()
    final_dir.mkdir()
    return str(temp_dir), str(final_dir)


@pytest.fixture
def repo():
    with FileRepository(":memory:") as repository:
        yield repository


def _use_case(repo, dirs, max_size=1000, storage=None):
    settings = UploadSettings(
        temp_dir=dirs[0],
        final_dir=dirs[1],
        max_file_size=max_size,
        enable_object_storage=storage is not None,
    )
    return FileUseCase(repo, settings, storage)


def test_parse_content_range_example():
    assert parse_content_range("bytes 0-1023/10240") == (0, 1023, 10240)


@pytest.mark.parametrize("value", ["", "0-10/20", "bytes a-b/c", "items 0-1/2"])
def test_parse_content_range_rejects_bad_values(value):
    with pytest.raises(ValueError):
        parse_content_range(value)


def test_initiate_creates_empty_temp_file(repo, dirs):
    uc = _use_case(repo, dirs)
    upload = uc.initiate_upload("photo.PNG", 10, "image/png")
    assert upload.status == UploadStatus.PENDING
    assert upload.uploaded_size == 0
    assert upload.file_name.endswith(".PNG")
    assert os.path.dirname(upload.temp_path) == dirs[0]
    assert os.path.getsize(upload.temp_path) == 0
    assert repo.get_upload(upload.id) == upload


def test_initiate_rejects_oversized(repo, dirs):
    uc = _use_case(repo, dirs, max_size=5)
    with pytest.raises(UploadError, match="file size exceeds maximum allowed size"):
        uc.initiate_upload("a.txt", 6, "text/plain")
    assert os.listdir(dirs[0]) == []


def test_initiate_removes_temp_file_when_record_fails(dirs):
    settings = UploadSettings(temp_dir=dirs[0], final_dir=dirs[1], max_file_size=100)
    uc = FileUseCase(_BrokenRepository(), settings)
    with pytest.raises(UploadError, match="failed to create upload record"):
        uc.initiate_upload("a.txt", 3, "text/plain")
    assert os.listdir(dirs[0]) == []


def test_full_chunked_flow(repo, dirs):
    uc = _use_case(repo, dirs)
    data = b"hello world!"
    upload = uc.initiate_upload("greeting.txt", len(data), "text/plain")

    first = uc.process_chunk(upload.id, data[:5], f"bytes 0-4/{len(data)}")
    assert first.status == UploadStatus.UPLOADING
    assert first.uploaded_size == 5

    second = uc.process_chunk(
        upload.id, io.BytesIO(data[5:]), f"bytes 5-{len(data) - 1}/{len(data)}"
    )
    assert second.uploaded_size == len(data)
    assert second.percent() == 100.0

    stored = uc.finalize_upload(upload.id)
    assert stored.size == len(data)
    assert stored.original_name == "greeting.txt"
    assert stored.upload_id == upload.id
    assert stored.path == os.path.join(dirs[1], upload.file_name)
    with open(stored.path, "rb") as handle:
        assert handle.read() == data
    assert not os.path.exists(upload.temp_path)
    assert repo.get_file(stored.id) == stored

    status = uc.get_upload_status(upload.id)
    assert status.status == UploadStatus.COMPLETED
    assert status.completed_at == stored.created_at


def test_resent_chunk_does_not_shrink_progress(repo, dirs):
    uc = _use_case(repo, dirs)
    upload = uc.initiate_upload("a.bin", 8, "application/octet-stream")
    uc.process_chunk(upload.id, b"abcdef", "bytes 0-5/8")
    again = uc.process_chunk(upload.id, b"ab", "bytes 0-1/8")
    assert again.uploaded_size == 6


def test_chunk_out_of_order(repo, dirs):
    uc = _use_case(repo, dirs)
    upload = uc.initiate_upload("a.bin", 8, "application/octet-stream")
    with pytest.raises(UploadError, match="chunk out of order"):
        uc.process_chunk(upload.id, b"ab", "bytes 2-3/8")
    assert repo.get_upload(upload.id).status == UploadStatus.PENDING


def test_total_size_mismatch(repo, dirs):
    uc = _use_case(repo, dirs)
    upload = uc.initiate_upload("a.bin", 8, "application/octet-stream")
    with pytest.raises(UploadError, match="total size mismatch"):
        uc.process_chunk(upload.id, b"ab", "bytes 0-1/9")


def test_invalid_content_range(repo, dirs):
    uc = _use_case(repo, dirs)
    upload = uc.initiate_upload("a.bin", 8, "application/octet-stream")
    with pytest.raises(UploadError, match="invalid content range format"):
        uc.process_chunk(upload.id, b"ab", "garbage")


def test_chunk_size_mismatch_fails_upload(repo, dirs):
    uc = _use_case(repo, dirs)
    upload = uc.initiate_upload("a.bin", 8, "application/octet-stream")
    with pytest.raises(UploadError, match="chunk size mismatch"):
        uc.process_chunk(upload.id, b"abc", "bytes 0-1/8")
    assert repo.get_upload(upload.id).status == UploadStatus.FAILED
    with pytest.raises(UploadStateError, match="upload has failed"):
        uc.process_chunk(upload.id, b"ab", "bytes 0-1/8")
    with pytest.raises(UploadStateError, match="upload has failed"):
        uc.finalize_upload(upload.id)


def test_finalize_incomplete(repo, dirs):
    uc = _use_case(repo, dirs)
    upload = uc.initiate_upload("a.bin", 8, "application/octet-stream")
    uc.process_chunk(upload.id, b"abc", "bytes 0-2/8")
    with pytest.raises(IncompleteUploadError, match="upload incomplete: expected 8 bytes, got 3 bytes"):
        uc.finalize_upload(upload.id)


def test_finalize_twice(repo, dirs):
    uc = _use_case(repo, dirs)
    upload = uc.initiate_upload("a.bin", 2, "application/octet-stream")
    uc.process_chunk(upload.id, b"ab", "bytes 0-1/2")
    uc.finalize_upload(upload.id)
    with pytest.raises(UploadStateError, match="upload already completed"):
        uc.finalize_upload(upload.id)
    with pytest.raises(UploadStateError, match="upload already completed"):
        uc.process_chunk(upload.id, b"ab", "bytes 0-1/2")


def test_unknown_upload(repo, dirs):
    uc = _use_case(repo, dirs)
    missing = uuid.uuid4()
    with pytest.raises(UploadNotFoundError, match="not found"):
        uc.get_upload_status(missing)
    with pytest.raises(UploadNotFoundError):
        uc.process_chunk(missing, b"a", "bytes 0-0/1")
    with pytest.raises(UploadNotFoundError):
        uc.finalize_upload(missing)


def test_finalize_sends_to_storage(repo, dirs):
    storage = _RecordingStorage()
    uc = _use_case(repo, dirs, storage=storage)
    upload = uc.initiate_upload("doc.pdf", 4, "application/pdf")
    uc.process_chunk(upload.id, b"%PDF", "bytes 0-3/4")
    uc.finalize_upload(upload.id)
    assert storage.calls == [
        (
            "uploads",
            upload.file_name,
            b"%PDF",
            4,
            "application/pdf",
            {"originalName": "doc.pdf", "uploadID": str(upload.id)},
        )
    ]


def test_storage_failure_marks_upload_failed(repo, dirs, tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    uc = _use_case(repo, dirs, storage=_RecordingStorage(fail=True))
    upload = uc.initiate_upload("doc.pdf", 4, "application/pdf")
    uc.process_chunk(upload.id, b"%PDF", "bytes 0-3/4")
    with pytest.raises(UploadError, match="storage unavailable"):
        uc.finalize_upload(upload.id)
    assert repo.get_upload(upload.id).status == UploadStatus.FAILED


def test_storage_enabled_without_storage():
    settings = UploadSettings(
        temp_dir="t", final_dir="f", max_file_size=1, enable_object_storage=True
    )
    with pytest.raises(ValueError):
        FileUseCase(FileRepository(":memory:"), settings)


def test_direct_upload(repo, dirs, tmp_path):
    final_dir = str(tmp_path / "new" / "final")
    settings = UploadSettings(temp_dir=dirs[0], final_dir=final_dir, max_file_size=100)
    uc = FileUseCase(repo, settings)
    payload = b"<svg/>"
    stored = uc.direct_upload(io.BytesIO(payload), "icon.svg", len(payload), "image/svg+xml")
    assert stored.file_name.endswith(".svg")
    assert stored.original_name == "icon.svg"
    assert stored.mime_type == "image/svg+xml"
    assert os.path.dirname(stored.path) == final_dir
    with open(stored.path, "rb") as handle:
        assert handle.read() == payload
    assert repo.get_file(stored.id) == stored
    with pytest.raises(UploadNotFoundError):
        uc.get_upload_status(stored.upload_id)


def test_direct_upload_too_large(repo, dirs):
    uc = _use_case(repo, dirs, max_size=3)
    with pytest.raises(UploadError, match="file size exceeds maximum allowed size"):
        uc.direct_upload(b"abcd", "a.txt", 4, "text/plain")
    assert os.listdir(dirs[1]) == []