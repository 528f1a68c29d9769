"""
Filesystem search lock
======================

Keeps expensive search/re-index operations from running concurrently. A lock
is a file whose existence means "held" and whose mtime means "acquired at".
Admin and ordinary callers use separate files so they never contend.

Acquisition creates the file exclusively; only when that fails is the
existing file inspected and, if older than the timeout, taken over. The
takeover itself is still check-then-touch, so two callers racing on a stale
lock may both win: treat this as rate limiting, not a mutex.
"""

from __future__ import annotations

import logging
import os
import re
import time
from enum import Enum
from pathlib import Path
from typing import Callable, Optional

from models import Caller

logger = logging.getLogger(__name__)

ADMIN_LOCK_FILENAME = "admin_search.lock"
SEARCH_LOCK_FILENAME = "search.lock"


class LockRole(str, Enum):
    ADMIN = "admin"
    OTHER = "other"


class SearchLock:
    """Per-role lock files under a runtime directory."""

    def __init__(
        self,
        run_dir: str,
        timeout_seconds: float,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.run_dir = Path(run_dir)
        self.timeout_seconds = timeout_seconds
        self._clock = clock

    def path_for(self, role: LockRole) -> Path:
        name = ADMIN_LOCK_FILENAME if role is LockRole.ADMIN else SEARCH_LOCK_FILENAME
        return self.run_dir / name

    def acquire(self, role: LockRole) -> bool:
        """Take the lock for role; False while another holder's lock is fresh."""
        lockfile = self.path_for(role)
        self.run_dir.mkdir(parents=True, exist_ok=True)
        if self._create_exclusive(lockfile):
            return True
        return self._steal_if_stale(lockfile)

    def _steal_if_stale(self, lockfile: Path) -> bool:
        try:
            mtime = lockfile.stat().st_mtime
        except FileNotFoundError:
            # Released between our create attempt and the stat.
            return self._create_exclusive(lockfile)
        except OSError as exc:
            logger.warning("Cannot stat search lock %s: %s", lockfile, exc)
            return False
        age = self._clock() - mtime
        if age <= self.timeout_seconds:
            return False
        logger.info("Taking over stale search lock %s (age %.0fs)", lockfile, age)
        try:
            self._touch(lockfile)
        except FileNotFoundError:
            # Released between the stat and the touch.
            return self._create_exclusive(lockfile)
        return True

    def _create_exclusive(self, lockfile: Path) -> bool:
        try:
            fd = os.open(lockfile, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError:
            return False
        os.close(fd)
        self._touch(lockfile)
        return True

    def _touch(self, lockfile: Path) -> None:
        now = self._clock()
        os.utime(lockfile, (now, now))

    def release(self, role: LockRole) -> None:
        lockfile = self.path_for(role)
        try:
            lockfile.unlink()
        except FileNotFoundError:
            logger.warning("Search lock %s was already released", lockfile)

    def is_held(self, role: LockRole) -> bool:
        lockfile = self.path_for(role)
        try:
            age = self._clock() - lockfile.stat().st_mtime
        except FileNotFoundError:
            return False
        return age <= self.timeout_seconds


def role_for(caller: Caller) -> LockRole:
    return LockRole.ADMIN if caller.is_admin else LockRole.OTHER


def check_search_access(
    lock: SearchLock,
    caller: Caller,
    user_agent: Optional[str],
    robot_pattern: str,
) -> bool:
    """
    Decide whether caller may run a search now, taking the lock if so.

    Untrusted callers and crawlers are refused before the lock is touched.
    """
    if not caller.trusted:
        return False
    try:
        robot = re.compile(robot_pattern)
    except re.error as exc:
        logger.error("Invalid robot pattern %r: %s", robot_pattern, exc)
        return False
    if user_agent and robot.search(user_agent):
        return False
    return lock.acquire(role_for(caller))
