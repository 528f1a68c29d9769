"""
Thread view: renders the records of one thread dataset.

The query string is `<title>` or `<title>/<8-hex id>`; the id narrows the
page to the records whose short id matches.
"""

import logging
import re
from typing import Optional, Tuple
from urllib.parse import unquote_plus

from fastapi import Depends, Request
from fastapi.responses import HTMLResponse

from models import Caller
from services.records import Record
from services.text_utils import file_encode, is_valid_datfile

from .app_state import GatewayServices, app, config, get_caller, get_services, templates

logger = logging.getLogger(__name__)

THREAD_URL = config.GATEWAY.thread_url
_RECORD_SUFFIX = re.compile(r"^(.+)/([0-9a-f]{8})$")


def parse_thread_query(query: str) -> Tuple[str, Optional[str]]:
    """Split a raw thread query into (title, record id or None)."""
    path = unquote_plus(query)
    m = _RECORD_SUFFIX.match(path)
    if m:
        return m.group(1), m.group(2)
    return path, None


def _record_view(record: Record, services: GatewayServices, title: str) -> dict:
    body = record.get("body")
    attach = record.get("attach", b"")
    return {
        "id": record.short_id,
        "stamp": record.stamp,
        "html": services.renderer.render(body, THREAD_URL, title=title) if body else "",
        "suffix": record.get("suffix"),
        "attach_size": len(attach) if isinstance(attach, bytes) else 0,
    }


@app.get(THREAD_URL, response_class=HTMLResponse)
async def show_thread(
    request: Request,
    caller: Caller = Depends(get_caller),
    services: GatewayServices = Depends(get_services),
):
    """Render a thread, optionally narrowed to one record."""
    title, record_id = parse_thread_query(request.url.query)
    datfile = file_encode("thread", title) if title else ""
    cache = services.cache_store.get(datfile)
    if not title or not is_valid_datfile(datfile) or not cache.exists():
        return templates.TemplateResponse(
            request=request,
            name="message.html",
            context={
                "title": "Not found",
                "paragraph": "No such thread on this node.",
                "next_url": None,
                "gateway_url": config.GATEWAY.gateway_url,
            },
            status_code=404,
        )

    records = [
        _record_view(record, services, title)
        for record in cache.records()
        if record_id is None or record.short_id == record_id
    ]
    logger.debug("Thread %s: %d records shown to %s", datfile, len(records), caller.remote_addr)
    return templates.TemplateResponse(
        request=request,
        name="thread.html",
        context={
            "title": title,
            "datfile": datfile,
            "records": records,
            "record_id": record_id,
            "gateway_url": config.GATEWAY.gateway_url,
            "thread_url": THREAD_URL,
        },
    )
