"""
Gateway routes: posting, guarded search, thread creation and the index page.
"""

import asyncio
import logging
from typing import Optional

from fastapi import Depends, Form, Request
from fastapi.responses import HTMLResponse
from starlette.datastructures import FormData
from starlette.datastructures import UploadFile as StarletteUploadFile
from starlette.exceptions import HTTPException as StarletteHTTPException

from models import Caller, PostForm, SubmissionSignal
from services.cache_store import CacheError
from services.search_lock import check_search_access, role_for
from services.text_utils import file_decode, file_encode, is_valid_datfile, str_encode

from .app_state import GatewayServices, app, config, get_caller, get_services, templates

logger = logging.getLogger(__name__)

GATEWAY_URL = config.GATEWAY.gateway_url
THREAD_URL = config.GATEWAY.thread_url

# (title, paragraph, HTTP status) per rejection signal
SIGNAL_PAGES = {
    SubmissionSignal.NULL_ARTICLE: ("Empty article", "Write a message or attach a file before posting.", 400),
    SubmissionSignal.BIG_FILE: ("File too large", "The post exceeds the size limit of this node.", 413),
    SubmissionSignal.SPAM: ("Rejected as spam", "The post matched the spam filter of this node.", 400),
    SubmissionSignal.NOT_FOUND: ("Not found", "The thread you posted to does not exist on this node.", 404),
}

# Allowance over the record ceiling for a single text part; escaping never shrinks a body.
FORM_PART_MARGIN = 64 * 1024


def _text_field(fields: FormData, name: str) -> str:
    value = fields.get(name)
    return value if isinstance(value, str) else ""


def render_message(
    request: Request,
    title: str,
    paragraph: str,
    status_code: int = 200,
    next_url: Optional[str] = None,
) -> HTMLResponse:
    return templates.TemplateResponse(
        request=request,
        name="message.html",
        context={"title": title, "paragraph": paragraph, "next_url": next_url, "gateway_url": GATEWAY_URL},
        status_code=status_code,
    )


def thread_link(datfile: str, record_id: Optional[str] = None) -> str:
    title = file_decode(datfile) or datfile
    link = f"{THREAD_URL}?{str_encode(title)}"
    if record_id:
        link += f"/{record_id}"
    return link


@app.get(GATEWAY_URL, response_class=HTMLResponse)
async def gateway_index(
    request: Request,
    caller: Caller = Depends(get_caller),
    services: GatewayServices = Depends(get_services),
):
    """List the datasets held by this node."""
    threads = []
    for datfile in services.cache_store.datasets():
        cache = services.cache_store.get(datfile)
        status = cache.status()
        threads.append(
            {
                "datfile": datfile,
                "title": file_decode(datfile) or datfile,
                "link": thread_link(datfile),
                "records": status.get("records", 0),
            }
        )
    return templates.TemplateResponse(
        request=request,
        name="index.html",
        context={
            "threads": threads,
            "gateway_url": GATEWAY_URL,
            "can_create": caller.trusted,
            "title_limit": services.settings.title_limit,
        },
    )


@app.post(f"{GATEWAY_URL}/post", response_class=HTMLResponse)
async def post_article(
    request: Request,
    caller: Caller = Depends(get_caller),
    services: GatewayServices = Depends(get_services),
):
    """
    Accept one post and render the outcome page.

    Form fields: file, body, passwd, suffix, error, dopost and the optional
    `attach` file part. Text parts may be as large as the record ceiling, so
    the form is parsed here with limits taken from the gateway settings
    rather than the framework defaults.
    """
    try:
        async with request.form(
            max_files=1,
            max_part_size=services.settings.record_limit_bytes + FORM_PART_MARGIN,
        ) as fields:
            form = PostForm(
                datfile=_text_field(fields, "file"),
                body=_text_field(fields, "body"),
                passwd=_text_field(fields, "passwd"),
                suffix=_text_field(fields, "suffix"),
                obfuscate_stamp=bool(_text_field(fields, "error")),
                distribute=bool(_text_field(fields, "dopost")),
            )
            attach = fields.get("attach")
            upload = attach if isinstance(attach, StarletteUploadFile) else None
            result = await services.pipeline.submit(form, upload, caller)
    except StarletteHTTPException as exc:
        # Raised while parsing the multipart body.
        logger.warning("Rejected post form from %s: %s", caller.remote_addr, exc.detail)
        if "maximum size" in str(exc.detail):
            title, paragraph, status_code = SIGNAL_PAGES[SubmissionSignal.BIG_FILE]
            return render_message(request, title, paragraph, status_code)
        return render_message(request, "Bad request", "The submitted form could not be read.", 400)
    except CacheError as exc:
        logger.exception("Commit to %s failed", form.datfile, exc_info=exc)
        return render_message(request, "Internal error", "The post could not be stored.", 500)

    if not result.accepted:
        title, paragraph, status_code = SIGNAL_PAGES[result.signal]
        return render_message(request, title, paragraph, status_code)

    return templates.TemplateResponse(
        request=request,
        name="message.html",
        context={
            "title": "Posted",
            "paragraph": f"Your post was stored as {result.short_id}.",
            "next_url": thread_link(form.datfile, result.short_id),
            "record_id": result.short_id,
            "gateway_url": GATEWAY_URL,
        },
    )


@app.post(f"{GATEWAY_URL}/search/{{datfile}}", response_class=HTMLResponse)
async def search_dataset(
    request: Request,
    datfile: str,
    caller: Caller = Depends(get_caller),
    services: GatewayServices = Depends(get_services),
):
    """Re-index one dataset, at most one search per role at a time."""
    allowed = check_search_access(
        services.search_lock,
        caller,
        request.headers.get("User-Agent"),
        services.settings.robot_pattern,
    )
    if not allowed:
        return render_message(request, "Forbidden", "Searching is not available right now.", 403)

    cache = services.cache_store.get(datfile)
    try:
        found = await asyncio.to_thread(cache.search)
    finally:
        services.search_lock.release(role_for(caller))

    if not found:
        return render_message(request, "Not found", "No records were found for this thread.", 404)
    return render_message(request, "Search finished", f"{len(cache)} records indexed.", next_url=thread_link(datfile))


@app.post(f"{GATEWAY_URL}/new", response_class=HTMLResponse)
async def new_thread(
    request: Request,
    title: str = Form("", description="Title of the new thread"),
    caller: Caller = Depends(get_caller),
    services: GatewayServices = Depends(get_services),
):
    """Create an empty thread dataset (admins and friends only)."""
    if not caller.trusted:
        return render_message(request, "Forbidden", "Only trusted hosts may create threads.", 403)
    title = title.strip()
    if not title or len(title) > services.settings.title_limit:
        return render_message(request, "Invalid title", "The title is empty or too long.", 400)
    datfile = file_encode("thread", title)
    if not is_valid_datfile(datfile):
        return render_message(request, "Invalid title", "The title cannot be stored.", 400)
    cache = services.cache_store.get(datfile)
    cache.create()
    logger.info("Created thread %s (%s) for %s", datfile, title, caller.remote_addr)
    return render_message(request, "Created", f"Thread {title} is ready.", next_url=thread_link(datfile))
