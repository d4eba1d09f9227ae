# chunkvault

chunkvault is a small library for taking in file uploads over HTTP. Large files
arrive in pieces, and each piece is described by a `Content-Range` header. It
records the progress of every upload in an SQLite database. When an upload is
finished, it moves the file to a final directory. If object storage is enabled, it
also copies the finished file to the object store you supply. It accepts ordinary
one-shot multipart uploads too.

Install it with `pip install .`. Install it with `pip install .[test]` if you also
want to run the tests.

## Modules

### `chunkvault.entities`

This module defines the records the package works with.

- `Upload` is an upload in progress. Its `percent()` method returns the share
  received so far, in percent. For a total size of 0 it returns `0.0`.
- `StoredFile` is a file that has reached its final location.
- `UploadStatus` is a string enum of the upload states: `pending`, `uploading`,
  `completed` and `failed`.

### `chunkvault.repository`

This module holds `FileRepository`, which stores uploads and files in SQLite.

- `FileRepository(database)` takes a path, or `":memory:"`, which is the default.
- Its methods are:
  - `create_upload`
  - `get_upload`
  - `update_upload`
  - `create_file`
  - `get_file`
  - `close`
- It can be used as a context manager.
- Looking up an unknown id raises `RecordNotFoundError`, which is a `LookupError`.

### `chunkvault.usecase`

This module holds `FileUseCase(repository, settings, storage=None)`, which runs the
upload workflow. Its methods are:

- `initiate_upload(original_name, total_size, mime_type)` checks the size limit. It
  creates an empty temporary file named with a random UUID and the original
  extension, and records a `pending` upload.
- `process_chunk(upload_id, chunk, content_range)` writes a chunk at the offset
  given by its range. The chunk can be bytes or a binary stream.
  - The range's total must equal the upload's size.
  - A chunk may not start past the bytes already received.
  - A chunk whose length does not match its range marks the upload `failed`.
- `finalize_upload(upload_id)` moves a complete upload into the final directory
  and marks it `completed`. It records a `StoredFile` and, if object storage is
  enabled, sends the file there.
- `get_upload_status(upload_id)` returns the stored `Upload`.
- `direct_upload(stream, filename, size, content_type)` writes a whole file
  straight into the final directory and records it.

`UploadSettings` holds these values:

- `temp_dir`
- `final_dir`
- `max_file_size`
- `enable_object_storage`, which defaults to `False`
- `bucket`, which defaults to `"uploads"`

Any object with `put_object(bucket, name, stream, size, content_type, metadata)`
can serve as the `ObjectStorage`. The metadata holds `originalName` and `uploadID`.
If object storage is enabled and no storage object is given, `FileUseCase` raises
`ValueError`. A failed storage upload is logged to the upload logger.

Failures raise `UploadError` or one of its subclasses:

- `UploadNotFoundError`
- `UploadStateError`, raised when the upload is already completed or has failed
- `IncompleteUploadError`

`parse_content_range(value)` turns `"bytes start-end/total"` into a tuple of three
integers. It raises `ValueError` on anything else.

### `chunkvault.web`

`create_app(use_case)` builds a Flask application around a `FileUseCase`.

### `chunkvault.fileutils`

This module has small file helpers:

- `calculate_file_hash`, which returns an MD5 hex digest
- `ensure_dir`
- `remove_file`, which does nothing if the file is missing
- `get_file_extension`
- `get_file_size`
- `get_file_name_without_extension`
- `copy_file`, which also keeps permission bits
- `move_file`, which falls back to copy and delete
- `file_exists`
- `dir_exists`
- `create_temp_file`
- `get_mime_type`, which guesses by extension and defaults to
  `application/octet-stream`

### `chunkvault.logs`

- `get_logger()` returns the application logger. It writes to stdout at INFO level
  in a `time="..." level=... msg=...` text format.
- `get_upload_logger(log_path="logs/upload.log")` returns the upload logger. It
  appends to `log_path`, and falls back to stdout if that file cannot be opened.

## HTTP API

| Method | Path                                  | Purpose                                        |
|--------|---------------------------------------|------------------------------------------------|
| POST   | `/api/uploads`                        | Start an upload. The JSON body holds `file_name`, `file_size` (an integer, at least 1) and `mime_type`. Returns `201`. |
| GET    | `/api/uploads/<upload_id>`            | Show status, sizes, `upload_percent` and timestamps. Returns `404` for an unknown id. |
| POST   | `/api/uploads/<upload_id>/chunks`     | Send a chunk as the multipart field `file`, with a `Content-Range` header. |
| POST   | `/api/uploads/<upload_id>/finalize`   | Finish an upload. Returns `400` if it is incomplete, completed or failed, and `404` if it is unknown. |
| POST   | `/api/files`                          | Upload a whole file as the multipart field `file`. |

Every response carries permissive CORS headers. `OPTIONS` requests get
`204 No Content`. A malformed upload id gets `400`. A chunk request that is not
`multipart/form-data`, or that lacks `Content-Range`, also gets `400`. Errors raised
while a chunk is being processed are returned as `500`. The body of every error
response is `{"error": "..."}`.

### A chunked upload

1. Send `POST /api/uploads` with
   `{"file_name": "report.pdf", "file_size": 2048, "mime_type": "application/pdf"}`.
   The response is `201` and holds an `upload_id`.
2. Send `POST /api/uploads/<upload_id>/chunks` with `Content-Range: bytes 0-1023/2048`
   and the first 1024 bytes.
3. Send `POST /api/uploads/<upload_id>/chunks` with
   `Content-Range: bytes 1024-2047/2048` and the remaining bytes.
4. Send `POST /api/uploads/<upload_id>/finalize`. The response holds a `file_id`.

## Using it

```python
import os

from chunkvault.repository import FileRepository
from chunkvault.usecase import FileUseCase, UploadSettings
from chunkvault.web import create_app

os.makedirs("data/tmp", exist_ok=True)
os.makedirs("data/files", exist_ok=True)

repository = FileRepository("data/uploads.db")
settings = UploadSettings(
    temp_dir="data/tmp",
    final_dir="data/files",
    max_file_size=100 * 1024 * 1024,
)
app = create_app(FileUseCase(repository, settings))
```

The result is a standard Flask (WSGI) application. Serve it with Flask's
development server or any WSGI server.

## What it does not do

- There is no command-line program. You build and serve the application yourself.
- It does not read configuration from the environment or from files. All settings
  are passed in through `UploadSettings`.
- `initiate_upload` does not create the temporary directory. Make sure it exists,
  along with the final directory.
- No object-storage client is included. To mirror finished files, you must supply
  an object with `put_object`.
- Stored files cannot be listed, downloaded or deleted over HTTP.