"""
Tests for services/submission.py - record building, gating and the
end-to-end submission pipeline.
"""

import io
from unittest.mock import MagicMock

import pytest
from fastapi import UploadFile

from models import Attachment, PostForm, SubmissionSignal
from services.cache_store import CacheError
from services.records import Record
from services.spam_filter import SpamFilter
from services.submission import DEFAULT_SUFFIX, RecordBuilder, SubmissionGate
from services.text_utils import file_encode

NOW = 1_700_000_000
DATFILE = file_encode("thread", "news")


def make_upload(data: bytes, filename: str = "photo.PNG") -> UploadFile:
    return UploadFile(file=io.BytesIO(data), filename=filename)


class TestDetermineSuffix:
    """Tests for RecordBuilder.determine_suffix()."""

    @pytest.mark.parametrize(
        "explicit, filename, expected",
        [
            ("", None, DEFAULT_SUFFIX),
            ("AUTO", None, DEFAULT_SUFFIX),
            ("AUTO", "photo.PNG", "png"),
            ("", "archive.tar.gz", "gz"),
            ("", "README", DEFAULT_SUFFIX),
            ("jpg", "photo.png", "jpg"),
            (".JPG", None, "jpg"),
            ("p/n g!", None, "png"),
        ],
    )
    def test_suffix_resolution(self, explicit, filename, expected):
        attachment = Attachment(filename=filename, data=b"x") if filename else None
        assert RecordBuilder.determine_suffix(explicit, attachment) == expected


class TestRecordBuilder:

    def test_empty_submission_builds_nothing(self):
        assert RecordBuilder().build(DATFILE, NOW, PostForm(datfile=DATFILE), None) is None

    def test_text_is_escaped_single_line(self):
        """
        Given: A multi-line body with markup characters
        When: The record is built
        Then: The stored body is escaped and newlines become <br>
        """
        form = PostForm(datfile=DATFILE, body="<b>hi</b>\nthere")
        record = RecordBuilder().build(DATFILE, NOW, form, None)
        assert record.get("body") == "&lt;b&gt;hi&lt;/b&gt;<br>there"
        assert record.get("suffix") == ""

    def test_attachment_adds_attach_and_suffix(self):
        form = PostForm(datfile=DATFILE, suffix="AUTO")
        record = RecordBuilder().build(DATFILE, NOW, form, Attachment("a.gif", b"GIF89a"))
        assert record.get("attach") == b"GIF89a"
        assert record.get("suffix") == "gif"
        assert record.get("body") == ""


class TestSubmissionGate:
    """Tests for SubmissionGate.check()."""

    def _record(self, body="hello"):
        return Record.build(DATFILE, NOW, {"body": body})

    def test_accepts_within_limit(self, thread_cache):
        record = self._record()
        gate = SubmissionGate(record.size(), SpamFilter(patterns=[]))
        assert gate.check(record, thread_cache) is None

    def test_one_byte_over_limit_is_big_file(self, thread_cache):
        record = self._record()
        gate = SubmissionGate(record.size() - 1, SpamFilter(patterns=[]))
        assert gate.check(record, thread_cache) is SubmissionSignal.BIG_FILE

    def test_spam_pattern_matches_recstr(self, thread_cache):
        gate = SubmissionGate(10_000, SpamFilter(patterns=[r"buy\s+now"]))
        assert gate.check(self._record("please buy  now"), thread_cache) is SubmissionSignal.SPAM

    def test_missing_dataset_is_not_found(self, cache_store):
        gate = SubmissionGate(10_000, SpamFilter(patterns=[]))
        assert gate.check(self._record(), cache_store.get(DATFILE)) is SubmissionSignal.NOT_FOUND

    def test_size_checked_before_spam_and_existence(self, cache_store):
        gate = SubmissionGate(1, SpamFilter(patterns=["hello"]))
        assert gate.check(self._record(), cache_store.get(DATFILE)) is SubmissionSignal.BIG_FILE


class TestSubmissionPipeline:
    """End-to-end tests for SubmissionPipeline.submit()."""

    @pytest.mark.asyncio
    async def test_valid_post_commits_one_record(self, make_pipeline, thread_cache, visitor_caller, mock_queue):
        """
        Given: An existing dataset and a text post
        When: The post is submitted
        Then: Success with an 8-char id and exactly one new record; no distribution
        """
        pipeline = make_pipeline()
        form = PostForm(datfile=thread_cache.datfile, body="hello world")

        result = await pipeline.submit(form, None, visitor_caller, now=NOW)

        assert result.signal is SubmissionSignal.SUCCESS
        assert len(result.short_id) == 8
        assert len(thread_cache) == 1
        stored = list(thread_cache.records())[0]
        assert stored.short_id == result.short_id
        assert stored.stamp == NOW
        assert thread_cache.status()["records"] == 1
        mock_queue.append.assert_not_called()

    @pytest.mark.asyncio
    async def test_accepted_post_is_logged(self, make_pipeline, thread_cache, caplog):
        from models import Caller

        caller = Caller(remote_addr="198.51.100.4", forwarded_for="10.0.0.1", is_visitor=True)
        caplog.set_level("INFO", logger="services.submission")

        result = await make_pipeline().submit(
            PostForm(datfile=thread_cache.datfile, body="x"), None, caller, now=NOW
        )

        assert f"post {thread_cache.datfile}/{NOW}_{result.short_id} from 198.51.100.4/10.0.0.1" in caplog.text

    @pytest.mark.asyncio
    async def test_empty_post_is_null_article(self, make_pipeline, thread_cache, visitor_caller):
        result = await make_pipeline().submit(PostForm(datfile=thread_cache.datfile), None, visitor_caller)
        assert result.signal is SubmissionSignal.NULL_ARTICLE
        assert result.short_id is None
        assert len(thread_cache) == 0

    @pytest.mark.asyncio
    async def test_record_one_byte_over_limit_is_rejected(self, make_pipeline, thread_cache, visitor_caller):
        """
        Given: A post whose serialized record exceeds the limit by one byte
        When: Submitted
        Then: big_file and the record count is unchanged
        """
        form = PostForm(datfile=thread_cache.datfile, body="x" * 100)
        size = Record.build(thread_cache.datfile, NOW, {"body": form.body}).size()

        result = await make_pipeline(record_limit_bytes=size - 1).submit(form, None, visitor_caller, now=NOW)

        assert result.signal is SubmissionSignal.BIG_FILE
        assert len(thread_cache) == 0

    @pytest.mark.asyncio
    async def test_record_exactly_at_limit_is_accepted(self, make_pipeline, thread_cache, visitor_caller):
        form = PostForm(datfile=thread_cache.datfile, body="x" * 100)
        size = Record.build(thread_cache.datfile, NOW, {"body": form.body}).size()

        result = await make_pipeline(record_limit_bytes=size).submit(form, None, visitor_caller, now=NOW)

        assert result.signal is SubmissionSignal.SUCCESS

    @pytest.mark.asyncio
    async def test_oversized_attachment_is_big_file(self, make_pipeline, thread_cache, visitor_caller):
        form = PostForm(datfile=thread_cache.datfile, body="see file")
        upload = make_upload(b"\x00" * 5000)

        result = await make_pipeline(record_limit_bytes=4096).submit(form, upload, visitor_caller)

        assert result.signal is SubmissionSignal.BIG_FILE
        assert len(thread_cache) == 0

    @pytest.mark.asyncio
    async def test_attachment_only_post(self, make_pipeline, thread_cache, visitor_caller):
        form = PostForm(datfile=thread_cache.datfile, suffix="AUTO")
        result = await make_pipeline().submit(form, make_upload(b"PNGDATA"), visitor_caller, now=NOW)

        assert result.accepted
        stored = list(thread_cache.records())[0]
        assert stored.get("attach") == b"PNGDATA"
        assert stored.get("suffix") == "png"

    @pytest.mark.asyncio
    async def test_spam_is_rejected(self, make_pipeline, thread_cache, visitor_caller):
        pipeline = make_pipeline(spam_patterns=["casino"])
        result = await pipeline.submit(PostForm(datfile=thread_cache.datfile, body="cheap casino"), None, visitor_caller)
        assert result.signal is SubmissionSignal.SPAM
        assert len(thread_cache) == 0

    @pytest.mark.asyncio
    async def test_unknown_dataset_is_not_found(self, make_pipeline, cache_store, visitor_caller):
        datfile = file_encode("thread", "missing")
        result = await make_pipeline().submit(PostForm(datfile=datfile, body="hi"), None, visitor_caller)
        assert result.signal is SubmissionSignal.NOT_FOUND
        assert not cache_store.get(datfile).exists()

    @pytest.mark.asyncio
    async def test_dopost_hands_record_to_queue(self, make_pipeline, thread_cache, visitor_caller, mock_queue):
        """
        Given: A post with distribution requested
        When: Submitted
        Then: The committed record is appended and the drain triggered
        """
        form = PostForm(datfile=thread_cache.datfile, body="spread", distribute=True)

        result = await make_pipeline().submit(form, None, visitor_caller, now=NOW)

        mock_queue.append.assert_called_once_with(result.record)
        mock_queue.trigger.assert_called_once()

    @pytest.mark.asyncio
    async def test_obfuscated_stamp_differs_from_now(self, make_pipeline, thread_cache, visitor_caller):
        pipeline = make_pipeline()
        stamps = set()
        for i in range(5):
            form = PostForm(datfile=thread_cache.datfile, body=f"post {i}", obfuscate_stamp=True)
            result = await pipeline.submit(form, None, visitor_caller, now=NOW)
            stamps.add(result.record.stamp)
        assert stamps != {NOW}

    @pytest.mark.asyncio
    async def test_commit_failure_is_logged_and_raised(self, make_pipeline, visitor_caller, caplog):
        """
        Given: A dataset whose store fails on write
        When: A valid post is submitted
        Then: The failure is logged as a stage error and propagated
        """
        broken_cache = MagicMock()
        broken_cache.exists.return_value = True
        broken_cache.add_data.side_effect = CacheError("disk full")
        pipeline = make_pipeline()
        pipeline.cache_factory = lambda datfile: broken_cache

        with pytest.raises(CacheError):
            await pipeline.submit(PostForm(datfile=DATFILE, body="hi"), None, visitor_caller, now=NOW)

        assert "[ERROR]" in caplog.text
        assert "disk full" in caplog.text
