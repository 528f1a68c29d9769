"""
Tests for services/attachment_extractor.py - bounded reads of the file part.
"""

import io
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import UploadFile

from services.attachment_extractor import (
    AttachmentExtractor,
    AttachmentNotFoundError,
    AttachmentReadError,
    AttachmentTooLargeError,
)

LIMIT = 1024


def make_upload(data: bytes, filename: str = "notes.txt") -> UploadFile:
    return UploadFile(file=io.BytesIO(data), filename=filename)


class TestExtract:

    @pytest.mark.asyncio
    async def test_no_upload_is_not_found(self):
        with pytest.raises(AttachmentNotFoundError):
            await AttachmentExtractor(LIMIT).extract(None)

    @pytest.mark.asyncio
    async def test_empty_filename_is_not_found(self):
        """
        Given: A file part submitted without choosing a file
        When: extract() is called
        Then: It is treated as no attachment
        """
        with pytest.raises(AttachmentNotFoundError):
            await AttachmentExtractor(LIMIT).extract(make_upload(b"", filename=""))

    @pytest.mark.asyncio
    async def test_exactly_at_limit_is_read_whole(self):
        """
        Given: A file of exactly the maximum size
        When: extract() is called
        Then: All bytes are returned
        """
        data = bytes(range(256)) * 4
        attachment = await AttachmentExtractor(LIMIT).extract(make_upload(data))
        assert attachment.data == data
        assert attachment.filename == "notes.txt"

    @pytest.mark.asyncio
    async def test_one_byte_over_limit_is_too_large(self):
        with pytest.raises(AttachmentTooLargeError):
            await AttachmentExtractor(LIMIT).extract(make_upload(b"a" * (LIMIT + 1)))

    @pytest.mark.asyncio
    async def test_reads_across_chunks(self):
        extractor = AttachmentExtractor(200_000)
        data = b"z" * 150_000
        attachment = await extractor.extract(make_upload(data))
        assert len(attachment.data) == 150_000

    @pytest.mark.asyncio
    async def test_filename_is_reduced_to_basename(self):
        attachment = await AttachmentExtractor(LIMIT).extract(make_upload(b"x", filename="C:\\tmp\\..\\evil\x07.png"))
        assert attachment.filename == "evil.png"

    @pytest.mark.asyncio
    async def test_read_failure_is_wrapped_and_upload_closed(self):
        """
        Given: An upload whose read() raises
        When: extract() is called
        Then: AttachmentReadError is raised and the upload is still closed
        """
        upload = MagicMock()
        upload.filename = "broken.bin"
        upload.read = AsyncMock(side_effect=OSError("connection reset"))
        upload.close = AsyncMock()

        with pytest.raises(AttachmentReadError):
            await AttachmentExtractor(LIMIT).extract(upload)
        upload.close.assert_awaited_once()
