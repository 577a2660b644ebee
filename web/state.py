"""
Shared state for the web server.

The output root and model service are configured once at startup; every
request gets its own orchestrator and its own staging directory under the
root, so concurrent runs never touch each other's files. A run directory is
removed once its stream ends unless KEEP_RUN_DIRECTORIES is set.
"""

import logging
import os
import shutil
import time
import uuid
from typing import Optional

from agent import EnvironmentProbe, TeamOrchestrator
from backend import LocalBackend
from bedrock_service import BedrockService
from config import app_config

logger = logging.getLogger(__name__)

# ============================================================
# Globals
# ============================================================

_output_root: str = os.path.abspath(app_config.output_directory)
_service: Optional[BedrockService] = None
_keep_run_directories: bool = app_config.keep_run_directories

# One probe per server process; the environment does not change between requests
_probe = EnvironmentProbe()


def get_service() -> BedrockService:
    global _service
    if _service is None:
        _service = BedrockService()
    return _service


def new_run_directory() -> str:
    """Fresh staging directory for one request."""
    name = f"run-{time.strftime('%Y%m%d-%H%M%S')}-{uuid.uuid4().hex[:8]}"
    return os.path.join(_output_root, name)


def build_orchestrator() -> TeamOrchestrator:
    run_dir = new_run_directory()
    logger.info(f"New run staged at {run_dir}")
    return TeamOrchestrator(
        get_service(),
        backend=LocalBackend(run_dir),
        probe=_probe,
    )


def release_run_directory(run_dir: str) -> None:
    """Delete a finished run's staging directory. Only paths under the output root are touched."""
    if _keep_run_directories:
        return
    run_dir = os.path.abspath(run_dir)
    if os.path.dirname(run_dir) != os.path.abspath(_output_root):
        logger.warning(f"Not removing {run_dir}: outside the output root")
        return
    shutil.rmtree(run_dir, ignore_errors=True)
    logger.info(f"Removed run directory {run_dir}")
