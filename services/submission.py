"""
Post submission pipeline
========================

attachment extraction -> timestamp -> record build -> gate -> commit

Every rejection is returned as a SubmissionSignal before anything touches
the dataset store; the commit step is the only place that writes.
"""

from __future__ import annotations

import logging
import re
from pathlib import PurePosixPath
from typing import Callable, Dict, Optional

from fastapi import UploadFile

from logging_utils import Stage, create_stage_logger
from models import (
    Attachment,
    Caller,
    DatasetCache,
    PostForm,
    SpamPredicate,
    SubmissionResult,
    SubmissionSignal,
)
from services.attachment_extractor import (
    AttachmentExtractor,
    AttachmentNotFoundError,
    AttachmentReadError,
    AttachmentTooLargeError,
)
from services.cache_store import CacheError
from services.distribution import DistributionQueue
from services.records import BodyValue, Record
from services.text_utils import escape_body
from services.timestamp_policy import TimestampPolicy

logger = logging.getLogger(__name__)

AUTO_SUFFIX = "AUTO"
DEFAULT_SUFFIX = "txt"
_NON_ALNUM = re.compile(r"[^0-9A-Za-z]")


class RecordBuilder:
    """Turns form fields and an optional attachment into a candidate Record."""

    @staticmethod
    def determine_suffix(explicit: str, attachment: Optional[Attachment]) -> str:
        suffix = explicit or ""
        if suffix in ("", AUTO_SUFFIX):
            suffix = DEFAULT_SUFFIX
            if attachment is not None:
                ext = PurePosixPath(attachment.filename).suffix
                if ext:
                    suffix = ext
        if suffix.startswith("."):
            suffix = suffix[1:]
        return _NON_ALNUM.sub("", suffix.lower())

    @staticmethod
    def build_body(text: str, attachment: Optional[Attachment], suffix: str) -> Dict[str, BodyValue]:
        body: Dict[str, BodyValue] = {}
        if text:
            body["body"] = escape_body(text)
        if attachment is not None:
            body["attach"] = attachment.data
            body["suffix"] = suffix.strip()
        return body

    def build(
        self,
        datfile: str,
        stamp: int,
        form: PostForm,
        attachment: Optional[Attachment],
    ) -> Optional[Record]:
        """Returns None for a submission with neither text nor attachment."""
        suffix = self.determine_suffix(form.suffix, attachment)
        body = self.build_body(form.body, attachment, suffix)
        if not body:
            return None
        return Record.build(datfile, stamp, body, form.passwd)


class SubmissionGate:
    """Size, spam and existence checks. Performs no writes."""

    def __init__(self, record_limit_bytes: int, spam_filter: SpamPredicate) -> None:
        self.record_limit_bytes = record_limit_bytes
        self.spam_filter = spam_filter

    def check(self, record: Record, cache: DatasetCache) -> Optional[SubmissionSignal]:
        """Return the rejection signal, or None when the record may be committed."""
        recstr = record.recstr()
        if len(recstr.encode("utf-8")) > self.record_limit_bytes:
            return SubmissionSignal.BIG_FILE
        if self.spam_filter.is_spam(recstr):
            return SubmissionSignal.SPAM
        if not cache.exists():
            return SubmissionSignal.NOT_FOUND
        return None


class CommitCoordinator:
    """Writes an accepted record and hands it to the distribution queue."""

    def __init__(self, queue: Optional[DistributionQueue]) -> None:
        self.queue = queue

    def commit(self, cache: DatasetCache, record: Record) -> None:
        cache.add_data(record)
        cache.sync_status()

    def distribute(self, record: Record) -> bool:
        """Queue record and start the worker without waiting for it."""
        if self.queue is None:
            logger.debug("No distribution queue; %s not propagated", record.idstr)
            return False
        if not self.queue.append(record):
            return False
        self.queue.trigger()
        return True


class SubmissionPipeline:
    """Orchestrates one post from form fields to committed record."""

    def __init__(
        self,
        *,
        extractor: AttachmentExtractor,
        timestamp_policy: TimestampPolicy,
        builder: RecordBuilder,
        gate: SubmissionGate,
        committer: CommitCoordinator,
        cache_factory: Callable[[str], DatasetCache],
        verbose: bool = False,
    ) -> None:
        self.extractor = extractor
        self.timestamp_policy = timestamp_policy
        self.builder = builder
        self.gate = gate
        self.committer = committer
        self.cache_factory = cache_factory
        self.verbose = verbose

    async def submit(
        self,
        form: PostForm,
        upload: Optional[UploadFile],
        caller: Caller,
        now: Optional[int] = None,
    ) -> SubmissionResult:
        stage_logger = create_stage_logger(form.datfile or "-", verbose=self.verbose)

        with stage_logger.stage(Stage.EXTRACT):
            attachment: Optional[Attachment] = None
            try:
                attachment = await self.extractor.extract(upload)
            except AttachmentTooLargeError as exc:
                stage_logger.log_decision("REJECTED", reason=str(exc))
                return SubmissionResult(SubmissionSignal.BIG_FILE)
            except AttachmentNotFoundError:
                stage_logger.info("no attachment, text-only post")
            except AttachmentReadError as exc:
                stage_logger.warning(f"attachment ignored: {exc}")

        with stage_logger.stage(Stage.STAMP):
            stamp = self.timestamp_policy.effective_stamp(now, obfuscate=form.obfuscate_stamp)

        with stage_logger.stage(Stage.BUILD):
            record = self.builder.build(form.datfile, stamp, form, attachment)
            if record is None:
                stage_logger.log_decision("REJECTED", reason=SubmissionSignal.NULL_ARTICLE.value)
                return SubmissionResult(SubmissionSignal.NULL_ARTICLE)
            stage_logger.info(f"built {record.idstr} ({record.size()} bytes)")

        cache = self.cache_factory(form.datfile)
        with stage_logger.stage(Stage.GATE):
            rejection = self.gate.check(record, cache)
            if rejection is not None:
                stage_logger.log_decision("REJECTED", reason=rejection.value)
                return SubmissionResult(rejection)

        with stage_logger.stage(Stage.COMMIT):
            try:
                self.committer.commit(cache, record)
            except CacheError as exc:
                stage_logger.error(f"commit of {record.idstr} failed: {exc}")
                raise

        if form.distribute:
            with stage_logger.stage(Stage.DISTRIBUTE):
                self.committer.distribute(record)

        logger.info(
            "post %s/%d_%s from %s/%s",
            record.datfile,
            record.stamp,
            record.short_id,
            caller.remote_addr,
            caller.forwarded_for,
        )
        stage_logger.log_decision("ACCEPTED")
        return SubmissionResult(SubmissionSignal.SUCCESS, short_id=record.short_id, record=record)
