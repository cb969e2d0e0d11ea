"""
Document upload storage for application intake.

Files are streamed to disk in 8KB chunks with a per-file size limit. Stored
paths are returned relative to nothing; they are what gets persisted on the
application row. discard() removes files written for a submission whose
transaction did not commit.
"""

import logging
import uuid
from pathlib import Path
from typing import Dict, Iterable, Mapping

from starlette.datastructures import UploadFile

from config_manager import UploadConfig
from database.models import DocumentKind
from errors import ValidationError

logger = logging.getLogger(__name__)

CHUNK_SIZE = 8192


class FileTooLargeError(ValidationError):
    status_code = 413
    default_code = "FILE_TOO_LARGE"


class DocumentStore:
    """Writes uploaded documents under the configured upload directory."""

    def __init__(self, config: UploadConfig):
        self.config = config
        self.directory = Path(config.directory)
        self.max_size_bytes = int(config.max_file_size_mb * 1024 * 1024)

    def _extension(self, upload: UploadFile) -> str:
        return Path(upload.filename or "").suffix.lower()

    def check(self, files: Mapping[DocumentKind, UploadFile]) -> None:
        """
        Validate file types before anything is written.

        Raises:
            ValidationError: Extension not allowed
        """
        allowed = {ext.lower() for ext in self.config.allowed_extensions}
        bad = {
            kind.value: [f"Allowed types: {', '.join(sorted(allowed))}"]
            for kind, upload in files.items()
            if self._extension(upload) not in allowed
        }
        if bad:
            raise ValidationError("Unsupported document type", code="INVALID_FILE_TYPE", errors=bad)

    async def save(self, kind: DocumentKind, upload: UploadFile) -> str:
        """
        Stream one upload to disk.

        Raises:
            FileTooLargeError: Upload exceeds the size limit (partial file removed)
        """
        self.directory.mkdir(parents=True, exist_ok=True)
        target = self.directory / f"{kind.value}-{uuid.uuid4().hex}{self._extension(upload)}"

        # Stored name is generated, but keep the check in case the directory is a symlink
        if not target.resolve().is_relative_to(self.directory.resolve()):
            raise ValidationError("Invalid file path", code="INVALID_FILE_PATH")

        total_size = 0
        file_handle = None
        try:
            file_handle = open(target, "wb")
            while True:
                chunk = await upload.read(CHUNK_SIZE)
                if not chunk:
                    break
                total_size += len(chunk)
                if total_size > self.max_size_bytes:
                    file_handle.close()
                    file_handle = None
                    target.unlink(missing_ok=True)
                    raise FileTooLargeError(
                        f"File too large. Maximum size is {self.config.max_file_size_mb}MB",
                        errors={kind.value: ["File too large"]}
                    )
                file_handle.write(chunk)
        finally:
            if file_handle is not None:
                file_handle.close()

        logger.info("Document stored: kind=%s size=%d", kind.value, total_size)
        return target.as_posix()

    async def save_all(self, files: Mapping[DocumentKind, UploadFile]) -> Dict[DocumentKind, str]:
        """Store every upload; on failure remove the ones already written."""
        self.check(files)
        stored: Dict[DocumentKind, str] = {}
        try:
            for kind, upload in files.items():
                stored[kind] = await self.save(kind, upload)
        except Exception:
            self.discard(stored.values())
            raise
        return stored

    def discard(self, paths: Iterable[str]) -> None:
        """Best-effort removal of stored files."""
        for path in paths:
            try:
                Path(path).unlink(missing_ok=True)
            except OSError as e:
                logger.error("Failed to remove stored document: path=%s error=%s", path, e)
