"""
Markup rendering for stored post bodies
=======================================

Turns a stored (already escaped, single-line) body into display HTML:

1. `<br>` markers back to newlines, tabs to eight spaces
2. HTML escaping (existing entity references survive)
3. bare http(s) URLs become anchors
4. `>>0123abcd` shorthand becomes a link to that record
5. `[[...]]` bracket links are resolved in one left-to-right scan
6. runs of spaces and newlines are preserved for the browser

Every stage runs once over the whole text and nothing a stage emits is
scanned again by the same stage, so rendering always terminates and never
shortens its input.
"""

from __future__ import annotations

import html
import re
from typing import List

from models import LinkKind, LinkTarget
from services.text_utils import escape, escape_space, str_encode

TAB_WIDTH = 8

# Escaped quotes and angle brackets end a URL just like their raw forms.
_URL_PATTERN = re.compile(
    r"https?://(?:(?!&(?:lt|gt|quot|#39);)[^\x00-\x20\"'()<>\[\]\x7f-\xff]){2,}"
)
_SHORTHAND_PATTERN = re.compile(r"&gt;&gt;([0-9a-f]{8})")
_ANGLE_PATTERN = re.compile(r"[<>]")

_THREAD_RECORD_LINK = re.compile(r"/(thread)/([^/]+)/([0-9a-f]{8})")
_THREAD_LINK = re.compile(r"/(thread)/([^/]+)")
_APPLICATION_RECORD_LINK = re.compile(r"([^/]+)/([0-9a-f]{8})")
_APPLICATION_LINK = re.compile(r"([^/]+)")

RECORD_LINK_CLASS = "reclink"
LOCAL_LINK_CLASS = "innerlink"


def resolve_link(inner: str) -> LinkTarget:
    """Classify the text between `[[` and `]]`; the first matching grammar wins."""
    m = _THREAD_RECORD_LINK.fullmatch(inner)
    if m:
        return LinkTarget(LinkKind.THREAD_RECORD, inner, board=m.group(2), record_id=m.group(3))
    m = _THREAD_LINK.fullmatch(inner)
    if m:
        return LinkTarget(LinkKind.THREAD, inner, board=m.group(2))
    m = _APPLICATION_RECORD_LINK.fullmatch(inner)
    if m:
        return LinkTarget(LinkKind.APPLICATION_RECORD, inner, board=m.group(1), record_id=m.group(2))
    m = _APPLICATION_LINK.fullmatch(inner)
    if m:
        return LinkTarget(LinkKind.APPLICATION, inner, board=m.group(1))
    return LinkTarget(LinkKind.UNRESOLVED, inner)


class MarkupRenderer:
    """Renders stored bodies for one gateway; `thread_url` is where /thread/ links point."""

    def __init__(self, thread_url: str = "/thread") -> None:
        self.thread_url = thread_url

    def render(
        self,
        plain: str,
        appli: str,
        title: str = "",
        absolute: bool = False,
        host: str = "",
    ) -> str:
        """
        Render one body.

        Args:
            plain: Stored body text
            appli: Application URL the body is shown under (e.g. "/thread")
            title: Title of the dataset the body belongs to
            absolute: Emit http://host-prefixed links (feeds, other origins)
            host: Host used in absolute mode
        """
        prefix = f"http://{host}" if absolute else ""
        buf = plain.replace("<br>", "\n")
        buf = buf.replace("\t", " " * TAB_WIDTH)
        buf = escape(buf)
        buf = _URL_PATTERN.sub(lambda m: f'<a href="{m.group(0)}">{m.group(0)}</a>', buf)
        buf = _SHORTHAND_PATTERN.sub(
            lambda m: self._record_anchor(m.group(1), appli, title, prefix, absolute) + m.group(0) + "</a>",
            buf,
        )
        buf = self._resolve_brackets(buf, appli, prefix, absolute)
        return escape_space(buf)

    @staticmethod
    def _class_attr(classes: List[str]) -> str:
        return f' class="{" ".join(classes)}"' if classes else ""

    def _record_anchor(self, record_id: str, appli: str, title: str, prefix: str, absolute: bool) -> str:
        href = f"{prefix}{appli}?{str_encode(title)}/{record_id}"
        classes = [] if absolute else [LOCAL_LINK_CLASS]
        return f'<a href="{href}"{self._class_attr(classes)}>'

    def bracket_anchor(self, target: LinkTarget, appli: str, prefix: str = "", absolute: bool = False) -> str:
        """HTML for a resolved bracket link; unresolved targets come back as literal text."""
        label = f"[[{target.text}]]"
        if target.kind is LinkKind.UNRESOLVED:
            return label
        base = self.thread_url if target.kind in (LinkKind.THREAD, LinkKind.THREAD_RECORD) else appli
        href = f"{prefix}{base}?{str_encode(html.unescape(target.board or ''))}"
        classes: List[str] = []
        if target.is_record_reference:
            href += f"/{target.record_id}"
            classes.append(RECORD_LINK_CLASS)
        if not absolute:
            classes.append(LOCAL_LINK_CLASS)
        return f'<a href="{href}"{self._class_attr(classes)}>{label}</a>'

    def _resolve_brackets(self, text: str, appli: str, prefix: str, absolute: bool) -> str:
        out: List[str] = []
        pos = 0
        while True:
            start = text.find("[[", pos)
            if start < 0:
                break
            end = text.find("]]", start + 2)
            if end < 0:
                break
            inner = text[start + 2:end]
            angle = _ANGLE_PATTERN.search(inner)
            if angle:
                # No link opening before this bracket can close without crossing it.
                cut = start + 2 + angle.start()
                out.append(text[pos:cut])
                pos = cut
                continue
            if not inner:
                out.append(text[pos:start + 1])
                pos = start + 1
                continue
            out.append(text[pos:start])
            out.append(self.bracket_anchor(resolve_link(inner), appli, prefix, absolute))
            pos = end + 2
        out.append(text[pos:])
        return "".join(out)
