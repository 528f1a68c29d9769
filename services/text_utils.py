"""Escaping and naming helpers shared by the submission pipeline and the renderer."""

from __future__ import annotations

import re
from urllib.parse import quote_plus

# "&" that already starts a character or entity reference is left alone so
# escaping an escaped body is a no-op.
_BARE_AMPERSAND = re.compile(r"&(?!#\d+;|#[xX][0-9A-Fa-f]+;|[A-Za-z0-9]+;)")
_NEWLINE = re.compile(r"\r\n|\r|\n")
_DATFILE_PATTERN = re.compile(r"^[A-Za-z0-9_]+$")


def escape(text: str) -> str:
    """HTML-escape text, preserving existing entity references."""
    text = _BARE_AMPERSAND.sub("&amp;", text)
    text = text.replace("<", "&lt;")
    text = text.replace(">", "&gt;")
    text = text.replace('"', "&quot;")
    text = text.replace("'", "&#39;")
    return text


def escape_body(text: str) -> str:
    """Escape a submitted body for storage: records are single-line, so newlines become <br>."""
    return _NEWLINE.sub("<br>", escape(text))


def escape_space(text: str) -> str:
    """Preserve runs of spaces and line breaks in rendered HTML."""
    text = text.replace("  ", "&nbsp; ")
    return text.replace("\n", "<br />\n")


def str_encode(text: str) -> str:
    """Encode text for use inside a URL query."""
    return quote_plus(text)


def file_encode(kind: str, title: str) -> str:
    """Dataset id for a title, e.g. ('thread', 'news') -> 'thread_6E657773'."""
    return f"{kind}_{title.encode('utf-8').hex().upper()}"


def file_decode(datfile: str) -> str:
    """Inverse of file_encode; returns '' for ids that are not hex-encoded."""
    _, sep, encoded = datfile.partition("_")
    if not sep:
        return ""
    try:
        return bytes.fromhex(encoded).decode("utf-8")
    except ValueError:
        return ""


def is_valid_datfile(datfile: str) -> bool:
    return bool(_DATFILE_PATTERN.match(datfile or ""))
