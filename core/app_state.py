"""
Bulletin Gateway - submission and rendering front end
=====================================================

Shared application state: the FastAPI app, logging setup, templates and
the lazily constructed services the routes depend on. Every service is
built from `config` here and handed its settings explicitly.
"""

import logging
from pathlib import Path
from typing import Optional

from fastapi import Depends, FastAPI, Request
from fastapi.templating import Jinja2Templates

from config import Config, config
from core.security import CallerClassifier, require_visitor
from models import Caller
from services.attachment_extractor import AttachmentExtractor
from services.cache_store import CacheStore
from services.distribution import DistributionQueue, HttpDistributor
from services.markup import MarkupRenderer
from services.search_lock import SearchLock
from services.spam_filter import SpamFilter
from services.submission import (
    CommitCoordinator,
    RecordBuilder,
    SubmissionGate,
    SubmissionPipeline,
)
from services.timestamp_policy import TimestampPolicy

# Setup logging
logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[
        logging.StreamHandler(),
    ],
)

# Silence noisy third-party loggers to avoid cluttering output
for _logger_name in ("httpcore", "httpx", "multipart", "python_multipart"):
    logging.getLogger(_logger_name).setLevel(logging.WARNING)

logger = logging.getLogger(__name__)

VERBOSE_ENV_VAR = "VERBOSE_STAGES"

TEMPLATES_DIR = Path(__file__).resolve().parent.parent / "templates"

app = FastAPI(
    title="Bulletin Gateway",
    description="Post submission, search gating and body rendering for a bulletin-board node",
    version="1.0.0",
)

templates = Jinja2Templates(directory=str(TEMPLATES_DIR))


class GatewayServices:
    """Everything the gateway routes need, wired from one Config."""

    def __init__(self, cfg: Config) -> None:
        settings = cfg.GATEWAY
        self.settings = settings
        self.classifier = CallerClassifier(settings)
        self.cache_store = CacheStore(settings.cache_dir)
        self.search_lock = SearchLock(settings.run_dir, settings.search_timeout_seconds)
        self.spam_filter = SpamFilter(path=settings.spam_list_path)
        self.renderer = MarkupRenderer(thread_url=settings.thread_url)
        self.distribution_queue = DistributionQueue(
            HttpDistributor(
                settings.nodes,
                settings.node_name,
                timeout_seconds=settings.distribution_timeout_seconds,
            ),
            maxsize=settings.queue_size,
        )
        self.pipeline = SubmissionPipeline(
            extractor=AttachmentExtractor(settings.record_limit_bytes),
            timestamp_policy=TimestampPolicy(settings.time_error_sigma),
            builder=RecordBuilder(),
            gate=SubmissionGate(settings.record_limit_bytes, self.spam_filter),
            committer=CommitCoordinator(self.distribution_queue),
            cache_factory=self.cache_store,
            verbose=cfg.VERBOSE_STAGES,
        )


_services: Optional[GatewayServices] = None


def get_services() -> GatewayServices:
    """Resolve or initialize the shared GatewayServices instance."""
    global _services
    if _services is None:
        _services = GatewayServices(config)
        logger.info(
            "Gateway services ready (cache=%s, run=%s, peers=%d)",
            config.GATEWAY.cache_dir,
            config.GATEWAY.run_dir,
            len(config.GATEWAY.nodes),
        )
    return _services


def get_caller(request: Request, services: GatewayServices = Depends(get_services)) -> Caller:
    """Classify the requesting client; refuses callers outside every role."""
    return require_visitor(services.classifier.classify(request))


@app.on_event("shutdown")
async def _drain_distribution_queue():
    if _services is not None:
        await _services.distribution_queue.wait_idle()


@app.get("/health")
async def health():
    return {"status": "ok"}
