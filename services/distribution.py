"""
Record distribution to peer nodes.

Accepted posts are queued and pushed to peers by a background drain task.
Delivery is best effort: a full queue drops the record, failures are logged
and never retried, and the request that enqueued the record never waits for
or observes the outcome.
"""

from __future__ import annotations

import asyncio
import logging
from typing import List, Optional, Sequence

import httpx

from models import Distributor
from services.records import Record

logger = logging.getLogger(__name__)


class HttpDistributor:
    """Announces a record to every peer with `GET <node>/update/<datfile>/<stamp>/<id>/<self>`."""

    def __init__(self, nodes: Sequence[str], node_name: str, timeout_seconds: float = 10.0) -> None:
        self.nodes: List[str] = [node.rstrip("/") for node in nodes if node.strip()]
        self.node_name = node_name
        self.timeout_seconds = timeout_seconds

    def update_url(self, node: str, record: Record) -> str:
        return f"{node}/update/{record.datfile}/{record.stamp}/{record.id}/{self.node_name}"

    async def distribute(self, record: Record) -> None:
        if not self.nodes:
            logger.debug("No peer nodes configured; %s stays local", record.idstr)
            return
        async with httpx.AsyncClient(timeout=self.timeout_seconds, follow_redirects=False) as client:
            for node in self.nodes:
                url = self.update_url(node, record)
                try:
                    response = await client.get(url)
                except httpx.HTTPError as exc:
                    logger.warning("Update to %s failed: %s", node, exc)
                    continue
                if response.status_code >= 400:
                    logger.warning("Update to %s answered HTTP %d", node, response.status_code)
                else:
                    logger.info("Announced %s/%s to %s", record.datfile, record.idstr, node)


class DistributionQueue:
    """Bounded queue drained by at most one background task at a time."""

    def __init__(self, distributor: Distributor, maxsize: int = 256) -> None:
        self.distributor = distributor
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._task: Optional[asyncio.Task] = None

    def __len__(self) -> int:
        return self._queue.qsize()

    def append(self, record: Record) -> bool:
        """Queue record; returns False (and logs) when the queue is full."""
        try:
            self._queue.put_nowait(record)
        except asyncio.QueueFull:
            logger.warning("Distribution queue full; dropping %s/%s", record.datfile, record.idstr)
            return False
        return True

    def trigger(self) -> None:
        """Start the drain task unless one is already running. Never blocks."""
        if self._task is not None and not self._task.done():
            return
        self._task = asyncio.get_running_loop().create_task(self.run())

    async def run(self) -> int:
        """Deliver queued records until the queue is empty; returns how many were attempted."""
        attempted = 0
        while True:
            try:
                record = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                return attempted
            attempted += 1
            try:
                await self.distributor.distribute(record)
            except Exception:
                logger.exception("Distribution of %s/%s failed", record.datfile, record.idstr)
            finally:
                self._queue.task_done()

    async def wait_idle(self) -> None:
        """Wait for the current drain task, if any (used at shutdown and in tests)."""
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)
