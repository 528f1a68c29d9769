"""
Data Models for the Bulletin Gateway
====================================

Request/response models and the small value types shared by the
submission pipeline, the renderer and the routes.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Iterator, Optional, Protocol

from pydantic import BaseModel, Field

if TYPE_CHECKING:  # pragma: no cover
    from services.records import Record


class SubmissionSignal(str, Enum):
    """Outcome of a post submission, rendered as a distinct page"""
    SUCCESS = "success"
    NULL_ARTICLE = "null_article"
    BIG_FILE = "big_file"
    SPAM = "spam"
    NOT_FOUND = "not_found"


class LinkKind(str, Enum):
    """Destination kinds a bracket link can resolve to"""
    THREAD_RECORD = "thread_record"
    THREAD = "thread"
    APPLICATION_RECORD = "application_record"
    APPLICATION = "application"
    UNRESOLVED = "unresolved"


@dataclass(frozen=True)
class Attachment:
    """Single uploaded file extracted from a multipart submission."""

    filename: str
    data: bytes


@dataclass(frozen=True)
class LinkTarget:
    """Resolved destination of a [[...]] bracket link."""

    kind: LinkKind
    text: str
    board: Optional[str] = None
    record_id: Optional[str] = None

    @property
    def is_record_reference(self) -> bool:
        return self.kind in (LinkKind.THREAD_RECORD, LinkKind.APPLICATION_RECORD)


@dataclass(frozen=True)
class Caller:
    """Requesting client and the roles granted to its address."""

    remote_addr: str
    forwarded_for: str = ""
    is_admin: bool = False
    is_friend: bool = False
    is_visitor: bool = False

    @property
    def trusted(self) -> bool:
        return self.is_admin or self.is_friend


class PostForm(BaseModel):
    """Form fields of a post submission after HTTP decoding."""

    datfile: str = Field(default="", description="Target dataset identifier (form field 'file')")
    body: str = Field(default="", description="Plain-text post content")
    passwd: str = Field(default="", description="Opaque self-moderation password")
    suffix: str = Field(default="", description="Attachment suffix override or 'AUTO'")
    obfuscate_stamp: bool = Field(default=False, description="Set when the 'error' field is present")
    distribute: bool = Field(default=False, description="Set when the 'dopost' field is present")


@dataclass
class SubmissionResult:
    """Pipeline outcome. short_id is set only on success."""

    signal: SubmissionSignal
    short_id: Optional[str] = None
    record: Optional["Record"] = None

    @property
    def accepted(self) -> bool:
        return self.signal is SubmissionSignal.SUCCESS


class DatasetCache(Protocol):
    """Dataset store capability consumed by the submission pipeline."""

    datfile: str

    def exists(self) -> bool: ...

    def add_data(self, record: "Record") -> None: ...

    def sync_status(self) -> None: ...

    def search(self) -> bool: ...

    def records(self) -> Iterator["Record"]: ...

    def __len__(self) -> int: ...


class SpamPredicate(Protocol):
    def is_spam(self, recstr: str) -> bool: ...


class Distributor(Protocol):
    async def distribute(self, record: "Record") -> None: ...
