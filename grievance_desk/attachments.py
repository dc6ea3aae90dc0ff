# Attachment storage: streams uploads to disk under per-grievance folders

import logging
import re
import secrets
import time
from pathlib import Path
from typing import List, Optional, Sequence

from fastapi import UploadFile

from . import errors
from .config import ALLOWED_CONTENT_TYPES, MAX_FILE_SIZE, MAX_FILES_PER_UPLOAD, UPLOAD_DIR
from .helpers import INVALID_TYPE_MESSAGE, format_file_size
from .models import Attachment
from .store import new_id, now_utc

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024
DEFAULT_FOLDER = "temp"

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]")

def safe_component(value: Optional[str], default: str = DEFAULT_FOLDER) -> str:
    """Reduce *value* to a single safe path segment."""
    cleaned = _UNSAFE_CHARS.sub("_", (value or "").strip())[:100]
    if not cleaned or set(cleaned) <= {"."}:
        return default
    return cleaned

def stored_filename(original: str) -> str:
    """``report.pdf`` -> ``report-<epoch ms>-<12 hex>.pdf``."""
    original_path = Path(original or "upload")
    ext = safe_component(original_path.suffix, "")
    stem = safe_component(original_path.stem, "upload")
    return f"{stem}-{int(time.time() * 1000)}-{secrets.token_hex(6)}{ext}"

class AttachmentStorage:
    def __init__(self, root: Path = UPLOAD_DIR, max_file_size: int = MAX_FILE_SIZE,
                 max_files: int = MAX_FILES_PER_UPLOAD,
                 allowed_types: Sequence[str] = ALLOWED_CONTENT_TYPES):
        self.root = Path(root)
        self.max_file_size = max_file_size
        self.max_files = max_files
        self.allowed_types = tuple(allowed_types)

    def ensure_root(self) -> None:
        self.root.mkdir(parents=True, exist_ok=True)

    def check_batch(self, files: Sequence[UploadFile]) -> None:
        if len(files) > self.max_files:
            raise errors.UploadError(
                f"Too many files. Maximum is {self.max_files} files per upload.",
                errors.TOO_MANY_FILES)
        for f in files:
            if f.content_type not in self.allowed_types:
                raise errors.UploadError(INVALID_TYPE_MESSAGE, errors.INVALID_FILE_TYPE)
        if not files:
            raise errors.UploadError("No files uploaded", errors.NO_FILES)

    async def save(self, files: Sequence[UploadFile], grievance_id: Optional[str],
                   description: str = "") -> List[Attachment]:
        """Validate and write a batch of uploads.

        Limits are checked before anything is written, except the size cap,
        which is enforced while streaming. A failure part-way through removes
        every file this call has already written.
        """
        self.check_batch(files)
        folder = self.root / safe_component(grievance_id)
        folder.mkdir(parents=True, exist_ok=True)

        saved: List[Attachment] = []
        try:
            for upload in files:
                saved.append(await self._write(upload, folder, grievance_id or DEFAULT_FOLDER, description))
        except BaseException:
            for attachment in saved:
                self.remove(attachment)
            raise
        return saved

    async def _write(self, upload: UploadFile, folder: Path, grievance_id: str,
                     description: str) -> Attachment:
        original = upload.filename or "upload"
        name = stored_filename(original)
        target = folder / name
        size = 0
        try:
            with open(target, "wb") as out:
                while True:
                    chunk = await upload.read(CHUNK_SIZE)
                    if not chunk:
                        break
                    size += len(chunk)
                    if size > self.max_file_size:
                        raise errors.UploadError(
                            f"File too large. Maximum size is {format_file_size(self.max_file_size)}.",
                            errors.FILE_TOO_LARGE)
                    out.write(chunk)
        except BaseException:
            target.unlink(missing_ok=True)
            raise
        logger.info("Stored %s (%d bytes) for grievance %s", original, size, grievance_id)
        return Attachment(
            id=new_id(), grievance_id=grievance_id, original_name=original,
            stored_name=name, path=str(target), content_type=upload.content_type,
            size=size, description=description or "", uploaded_at=now_utc())

    def exists(self, attachment: Attachment) -> bool:
        return Path(attachment.path).is_file()

    def remove(self, attachment: Attachment) -> None:
        Path(attachment.path).unlink(missing_ok=True)
