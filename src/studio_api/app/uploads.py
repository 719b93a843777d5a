"""Scratch storage for multipart uploads and the fine-tune upload gate.

Beginner terms:
- Scratch file: a temporary copy of an uploaded part on local disk. It is
  removed exactly once, whether the request succeeds or fails.
- Upload gate: validate first, forward to the upstream API only when valid.
"""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import IO, Any

from fastapi import UploadFile

from .errors import InvalidFormatError, MissingInputError
from .models import DEFAULT_PURPOSE, UploadedFileInfo
from .openai_gateway import UpstreamGateway
from .validator import validate_jsonl_file

logger = logging.getLogger(__name__)

COPY_CHUNK_BYTES = 1024 * 1024
JSONL_SUFFIX = ".jsonl"


class ScratchFile:
    """One uploaded part stored under the uploads directory."""

    def __init__(self, path: Path, original_filename: str) -> None:
        self.path = path
        self.original_filename = original_filename
        self._discarded = False

    @property
    def filename(self) -> str:
        return self.path.name

    def discard(self) -> None:
        """Delete the file; later calls do nothing."""
        if self._discarded:
            return
        self._discarded = True
        self.path.unlink(missing_ok=True)
        logger.debug("scratch event=discarded path=%s", self.path)


def require_jsonl(upload: UploadFile | None) -> UploadFile:
    if upload is None or not upload.filename:
        raise MissingInputError("No file uploaded")
    if Path(upload.filename).suffix != JSONL_SUFFIX:
        raise MissingInputError("Only .jsonl files are allowed for fine-tuning")
    return upload


def require_image(upload: UploadFile | None) -> UploadFile:
    if upload is None or not upload.filename:
        raise MissingInputError("Image is required")
    if not (upload.content_type or "").startswith("image/"):
        raise MissingInputError("Not an image! Please upload an image.")
    return upload


def store_upload(
    upload: UploadFile,
    uploads_dir: Path,
    *,
    max_bytes: int,
    prefix: str = "",
) -> ScratchFile:
    """Copy an uploaded part to disk, enforcing the size cap while copying."""
    original = Path(upload.filename or "upload").name
    uploads_dir.mkdir(parents=True, exist_ok=True)
    stamp = f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}"
    name = f"{prefix}-{stamp}{Path(original).suffix}" if prefix else f"{stamp}-{original}"
    scratch = ScratchFile(uploads_dir / name, original)
    try:
        _copy_capped(upload.file, scratch.path, max_bytes=max_bytes)
    except Exception:
        scratch.discard()
        raise
    return scratch


@contextmanager
def scratch_upload(
    upload: UploadFile,
    uploads_dir: Path,
    *,
    max_bytes: int,
    prefix: str = "",
) -> Iterator[ScratchFile]:
    scratch = store_upload(upload, uploads_dir, max_bytes=max_bytes, prefix=prefix)
    try:
        yield scratch
    finally:
        scratch.discard()


def upload_training_file(
    scratch: ScratchFile,
    gateway: UpstreamGateway,
    *,
    purpose: str | None = None,
) -> UploadedFileInfo:
    """Validate a stored JSONL file and forward it upstream when valid.

    The scratch file is discarded on every path: success, validation
    failure, or upstream failure.
    """
    try:
        validation = validate_jsonl_file(scratch.path)
        if not validation.is_valid:
            logger.info(
                "upload event=rejected filename=%s total_lines=%d errors=%d",
                scratch.original_filename,
                validation.total_lines,
                len(validation.errors),
            )
            raise InvalidFormatError(validation.errors)

        created: dict[str, Any] = gateway.create_file(
            scratch.path,
            filename=scratch.original_filename,
            purpose=(purpose or "").strip() or DEFAULT_PURPOSE,
        )
        logger.info(
            "upload event=forwarded file_id=%s total_lines=%d",
            created.get("id"),
            validation.total_lines,
        )
        return UploadedFileInfo(
            id=created["id"],
            purpose=created["purpose"],
            filename=created["filename"],
            bytes=created["bytes"],
            created_at=created["created_at"],
            status=created.get("status"),
            total_lines=validation.total_lines,
        )
    finally:
        scratch.discard()


def _copy_capped(source: IO[bytes], destination: Path, *, max_bytes: int) -> None:
    written = 0
    with destination.open("wb") as out:
        while True:
            chunk = source.read(COPY_CHUNK_BYTES)
            if not chunk:
                break
            written += len(chunk)
            if written > max_bytes:
                raise MissingInputError(
                    "File too large", message=f"Uploads are limited to {max_bytes} bytes"
                )
            out.write(chunk)
