"""
Stage Logging for the Bulletin Gateway
======================================

Coloured, structured logging for the submission pipeline with per-stage
timing. No emojis in console output (Windows encoding issues).
"""

import logging
import time
from contextlib import contextmanager
from typing import Dict, Optional

from colorama import Fore, Style, init

# Initialize colorama for Windows
init(autoreset=True)


class Stage:
    """Stage constants for the submission pipeline"""
    EXTRACT = "ATTACHMENT_EXTRACTION"
    STAMP = "TIMESTAMP_POLICY"
    BUILD = "RECORD_BUILD"
    GATE = "SUBMISSION_GATE"
    COMMIT = "COMMIT"
    DISTRIBUTE = "DISTRIBUTION"


STAGE_COLORS = {
    Stage.EXTRACT: Fore.CYAN,
    Stage.STAMP: Fore.BLUE,
    Stage.BUILD: Fore.GREEN,
    Stage.GATE: Fore.YELLOW,
    Stage.COMMIT: Fore.MAGENTA,
    Stage.DISTRIBUTE: Fore.GREEN + Style.BRIGHT,
}

STAGE_ICONS = {
    Stage.EXTRACT: "[EXT]",
    Stage.STAMP: "[STM]",
    Stage.BUILD: "[BLD]",
    Stage.GATE: "[GTE]",
    Stage.COMMIT: "[CMT]",
    Stage.DISTRIBUTE: "[DST]",
}


class TimingTracker:
    """Track timing for stages"""

    def __init__(self):
        self._start_times: Dict[str, float] = {}

    def start(self, key: str):
        self._start_times[key] = time.perf_counter()

    def end(self, key: str) -> float:
        """End timing and return elapsed seconds"""
        if key not in self._start_times:
            return 0.0
        return time.perf_counter() - self._start_times.pop(key)


class StageLogger:
    """
    Logger that tags messages with the current pipeline stage.

    Usage:
        stage_logger = StageLogger(label="thread_41", verbose=True)

        with stage_logger.stage(Stage.GATE):
            stage_logger.info("checking size")
        stage_logger.log_decision("REJECTED", reason="spam")

    Stage banners and timings are only emitted when verbose is set; decisions,
    warnings and errors are always logged.
    """

    def __init__(self, label: str, verbose: bool = False, logger: Optional[logging.Logger] = None):
        self.label = label
        self.verbose = verbose
        self.logger = logger or logging.getLogger(__name__)
        self.timing_tracker = TimingTracker()
        self._current_stage: Optional[str] = None

    @contextmanager
    def stage(self, stage_name: str):
        previous = self._current_stage
        self._current_stage = stage_name
        self.timing_tracker.start(stage_name)
        try:
            yield self
        finally:
            elapsed = self.timing_tracker.end(stage_name)
            if self.verbose:
                self.logger.info(
                    f"{self._prefix()} {self.label}: done in {elapsed * 1000:.1f}ms{Style.RESET_ALL}"
                )
            self._current_stage = previous

    def _prefix(self) -> str:
        if not self._current_stage:
            return "[---]"
        color = STAGE_COLORS.get(self._current_stage, Fore.WHITE)
        icon = STAGE_ICONS.get(self._current_stage, "[???]")
        return f"{color}{icon}"

    def info(self, message: str):
        if self.verbose:
            self.logger.info(f"{self._prefix()}{Style.RESET_ALL} {self.label}: {message}")

    def warning(self, message: str):
        self.logger.warning(f"{Fore.YELLOW}[WARN] {self.label}: {message}{Style.RESET_ALL}")

    def error(self, message: str):
        self.logger.error(f"{Fore.RED}{Style.BRIGHT}[ERROR] {self.label}: {message}{Style.RESET_ALL}")

    def log_decision(self, decision: str, reason: Optional[str] = None):
        """Log the final outcome of a submission (ACCEPTED / REJECTED)."""
        if decision.upper() == "ACCEPTED":
            color = Fore.GREEN + Style.BRIGHT
            icon = "[OK]"
        else:
            color = Fore.RED + Style.BRIGHT
            icon = "[REJECT]"
        reason_str = f" ({reason})" if reason else ""
        self.logger.info(f"{color}{icon} {self.label}: {decision}{reason_str}{Style.RESET_ALL}")


def create_stage_logger(label: str, verbose: bool = False) -> StageLogger:
    return StageLogger(label=label, verbose=verbose)
