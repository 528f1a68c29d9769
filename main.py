"""
Entrypoint for the Bulletin Gateway.
This file wires the FastAPI application together by importing the core package,
which initializes shared state and registers all routes.
"""

from __future__ import annotations

import argparse
import os
import platform
import sys

import core  # noqa: F401  # Ensure route modules are imported for side effects
from core.app_state import (
    VERBOSE_ENV_VAR,
    app,
    config,
    logger,
)

__all__ = ["app"]


def is_linux() -> bool:
    """gunicorn only runs on POSIX; WSL counts as Linux."""
    if platform.system() != "Linux":
        return False
    if os.environ.get("WSL_DISTRO_NAME"):
        logger.info("Detected WSL via WSL_DISTRO_NAME env var")
    else:
        logger.info("Detected Linux environment")
    return True


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Bulletin Gateway")
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Trace every submission stage (extract, stamp, build, gate, commit, distribute)",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=int(os.environ.get("APP_WORKERS", "1")),
        help="Number of gunicorn workers (Linux only)",
    )
    args = parser.parse_args()

    if args.verbose:
        # Workers re-read the environment when they import config.
        os.environ[VERBOSE_ENV_VAR] = "true"
        config.VERBOSE_STAGES = True

    if is_linux():
        import subprocess

        # Search locks and the dataset store are plain files, so several
        # workers may share one run/cache directory. The distribution queue
        # is per worker.
        cmd = [
            sys.executable,
            "-m",
            "gunicorn",
            "main:app",
            "--workers",
            str(args.workers),
            "--worker-class",
            "uvicorn.workers.UvicornWorker",
            "--bind",
            f"{config.APP_HOST}:{config.APP_PORT}",
        ]

        if config.APP_RELOAD:
            cmd.append("--reload")

        logger.info("Starting with gunicorn - %d workers", args.workers)
        logger.info("Command: %s", " ".join(cmd))
        subprocess.run(cmd, check=False)
    else:
        import uvicorn

        logger.info("Starting with uvicorn")
        uvicorn.run(
            "main:app",
            host=config.APP_HOST,
            port=config.APP_PORT,
            reload=config.APP_RELOAD,
        )
