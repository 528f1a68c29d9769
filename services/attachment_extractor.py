"""Pull the single optional file part out of a post submission."""

from __future__ import annotations

import logging
import unicodedata
from pathlib import Path
from typing import Optional

from fastapi import UploadFile

from models import Attachment

logger = logging.getLogger(__name__)


class AttachmentError(Exception):
    """Base exception for attachment errors."""


class AttachmentNotFoundError(AttachmentError):
    """Raised when the submission carries no file part."""


class AttachmentTooLargeError(AttachmentError):
    """Raised when the file part does not end within the size limit."""


class AttachmentReadError(AttachmentError):
    """Raised when the file part cannot be read."""


class AttachmentExtractor:
    """Reads at most `max_bytes` from an uploaded file."""

    CHUNK_SIZE = 64 * 1024

    def __init__(self, max_bytes: int) -> None:
        self.max_bytes = max_bytes

    async def extract(self, upload: Optional[UploadFile]) -> Attachment:
        if upload is None or not upload.filename:
            raise AttachmentNotFoundError("attached file not found")

        filename = self._sanitize_filename(upload.filename)
        chunks = []
        total = 0
        try:
            while total < self.max_bytes:
                chunk = await upload.read(min(self.CHUNK_SIZE, self.max_bytes - total))
                if not chunk:
                    break
                chunks.append(chunk)
                total += len(chunk)
            # A full read only counts as complete when the input ends right there.
            if total >= self.max_bytes and await upload.read(1):
                raise AttachmentTooLargeError(
                    f"Attachment {filename} exceeds allowed size of {self.max_bytes} bytes"
                )
        except AttachmentError:
            raise
        except Exception as exc:
            raise AttachmentReadError(f"Unable to read attachment {filename}: {exc}") from exc
        finally:
            await upload.close()

        logger.debug("Extracted attachment %s (%d bytes)", filename, total)
        return Attachment(filename=filename, data=b"".join(chunks))

    @staticmethod
    def _sanitize_filename(filename: str) -> str:
        normalized = unicodedata.normalize("NFC", filename or "")
        cleaned = "".join(ch for ch in normalized if unicodedata.category(ch)[0] != "C")
        candidate = Path(cleaned.replace("\\", "/")).name.strip(" ")
        return candidate[:120] or "attachment"
