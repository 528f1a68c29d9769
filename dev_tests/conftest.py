"""Shared pytest fixtures for Bulletin Gateway tests."""

import os
import random
import sys

import pytest
from unittest.mock import MagicMock

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))


# ============================================================================
# Settings Fixtures
# ============================================================================

@pytest.fixture
def gateway_settings(tmp_path):
    """GatewaySettings pointing at per-test run and cache directories."""
    from config import GatewaySettings

    return GatewaySettings(
        run_dir=str(tmp_path / "run"),
        cache_dir=str(tmp_path / "cache"),
        spam_list_path=str(tmp_path / "spam.txt"),
        record_limit_kb=4,
        time_error_sigma=60,
        nodes=[],
    )


@pytest.fixture
def cache_store(gateway_settings):
    from services.cache_store import CacheStore

    return CacheStore(gateway_settings.cache_dir)


@pytest.fixture
def thread_cache(cache_store):
    """An existing, empty thread dataset."""
    from services.text_utils import file_encode

    cache = cache_store.get(file_encode("thread", "news"))
    cache.create()
    return cache


# ============================================================================
# Caller Fixtures
# ============================================================================

@pytest.fixture
def admin_caller():
    from models import Caller

    return Caller(remote_addr="127.0.0.1", is_admin=True, is_friend=True, is_visitor=True)


@pytest.fixture
def friend_caller():
    from models import Caller

    return Caller(remote_addr="192.168.1.20", is_friend=True, is_visitor=True)


@pytest.fixture
def visitor_caller():
    from models import Caller

    return Caller(remote_addr="203.0.113.7", forwarded_for="", is_visitor=True)


# ============================================================================
# Pipeline Fixtures
# ============================================================================

@pytest.fixture
def mock_queue():
    """Distribution queue double that records appended records."""
    queue = MagicMock()
    queue.append.return_value = True
    return queue


@pytest.fixture
def make_pipeline(gateway_settings, cache_store, mock_queue):
    """Factory for a SubmissionPipeline with injectable spam patterns."""
    from services.attachment_extractor import AttachmentExtractor
    from services.spam_filter import SpamFilter
    from services.submission import (
        CommitCoordinator,
        RecordBuilder,
        SubmissionGate,
        SubmissionPipeline,
    )
    from services.timestamp_policy import TimestampPolicy

    def _make(spam_patterns=None, record_limit_bytes=None):
        limit = record_limit_bytes or gateway_settings.record_limit_bytes
        return SubmissionPipeline(
            extractor=AttachmentExtractor(limit),
            timestamp_policy=TimestampPolicy(gateway_settings.time_error_sigma, rng=random.Random(7)),
            builder=RecordBuilder(),
            gate=SubmissionGate(limit, SpamFilter(patterns=spam_patterns or [])),
            committer=CommitCoordinator(mock_queue),
            cache_factory=cache_store,
        )

    return _make
