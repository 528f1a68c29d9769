"""Immutable post records and their canonical serialized form."""

from __future__ import annotations

import base64
import binascii
import hashlib
from dataclasses import dataclass, field
from typing import Dict, Mapping, Tuple, Union

FIELD_SEPARATOR = "<>"
SHORT_ID_LENGTH = 8

BodyValue = Union[str, bytes]


class RecordFormatError(ValueError):
    """Raised when a serialized record line cannot be parsed."""


def _encode_value(value: BodyValue) -> str:
    if isinstance(value, bytes):
        return base64.b64encode(value).decode("ascii")
    return value


def _body_string(body: Mapping[str, BodyValue]) -> str:
    return FIELD_SEPARATOR.join(f"{key}:{_encode_value(body[key])}" for key in sorted(body))


@dataclass(frozen=True)
class Record:
    """
    One post in a dataset.

    `body` maps field names to values; `attach` holds raw bytes and is base64
    encoded in the serialized form. The password is kept for
    self-moderation but never serialized.
    """

    datfile: str
    stamp: int
    id: str
    body: Tuple[Tuple[str, BodyValue], ...]
    passwd: str = field(default="", repr=False, compare=False)

    @classmethod
    def build(cls, datfile: str, stamp: int, body: Mapping[str, BodyValue], passwd: str = "") -> "Record":
        record_id = hashlib.md5(_body_string(body).encode("utf-8")).hexdigest()
        return cls(
            datfile=datfile,
            stamp=int(stamp),
            id=record_id,
            body=tuple(sorted(body.items())),
            passwd=passwd,
        )

    @classmethod
    def parse(cls, datfile: str, line: str) -> "Record":
        """Rebuild a record from its recstr."""
        parts = line.rstrip("\r\n").split(FIELD_SEPARATOR)
        if len(parts) < 2:
            raise RecordFormatError(f"record line has no id: {line[:40]!r}")
        try:
            stamp = int(parts[0])
        except ValueError as exc:
            raise RecordFormatError(f"invalid stamp {parts[0]!r}") from exc
        body: Dict[str, BodyValue] = {}
        for item in parts[2:]:
            key, sep, value = item.partition(":")
            if not sep:
                continue
            if key == "attach":
                try:
                    body[key] = base64.b64decode(value, validate=True)
                except (binascii.Error, ValueError) as exc:
                    raise RecordFormatError("attachment is not valid base64") from exc
            else:
                body[key] = value
        return cls(datfile=datfile, stamp=stamp, id=parts[1], body=tuple(sorted(body.items())))

    @property
    def short_id(self) -> str:
        return self.id[:SHORT_ID_LENGTH]

    @property
    def fields(self) -> Dict[str, BodyValue]:
        return dict(self.body)

    def get(self, key: str, default: BodyValue = "") -> BodyValue:
        return self.fields.get(key, default)

    @property
    def idstr(self) -> str:
        return f"{self.stamp}_{self.id}"

    def recstr(self) -> str:
        return FIELD_SEPARATOR.join((str(self.stamp), self.id, _body_string(self.fields)))

    def size(self) -> int:
        """Byte length of the serialized record."""
        return len(self.recstr().encode("utf-8"))
