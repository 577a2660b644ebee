"""
Execution-environment probe.

Produces the text block shown to every persona so designs only rely on what
the host can actually run. Computed lazily once per probe instance; each
orchestrator owns its own probe.
"""

import logging
import os
import platform
import shutil
import subprocess
import sys
from importlib.metadata import PackageNotFoundError, version
from typing import List, Optional

logger = logging.getLogger(__name__)

PROBED_PACKAGES = (
    "numpy", "pandas", "scipy", "scikit-learn", "torch", "tensorflow",
    "jax", "cupy", "numba", "matplotlib", "requests",
)


class EnvironmentProbe:
    """Lazily describes OS, interpreter, CPU, GPU and installed packages."""

    def __init__(self, packages=PROBED_PACKAGES, timeout: int = 10):
        self.packages = packages
        self.timeout = timeout
        self._block: Optional[str] = None

    def describe(self) -> str:
        if self._block is None:
            self._block = self._probe()
        return self._block

    def _probe(self) -> str:
        lines = [
            f"OS: {platform.system()} {platform.release()} ({platform.machine()})",
            f"Python: {platform.python_version()} ({sys.executable})",
            f"CPU cores: {os.cpu_count() or 'unknown'}",
            f"GPU: {self._gpu() or 'none detected'}",
        ]
        node = shutil.which("node")
        lines.append(f"Node.js: {'available' if node else 'not installed'}")
        installed = self._installed_packages()
        lines.append("Installed packages: " + (", ".join(installed) if installed else "(none of the common numeric packages)"))
        block = "\n".join(lines)
        logger.info(f"Environment probed:\n{block}")
        return block

    def _gpu(self) -> Optional[str]:
        if not shutil.which("nvidia-smi"):
            return None
        try:
            result = subprocess.run(
                ["nvidia-smi", "--query-gpu=name,memory.total,driver_version", "--format=csv,noheader"],
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.warning(f"nvidia-smi failed: {e}")
            return None
        if result.returncode != 0:
            return None
        gpus = [ln.strip() for ln in result.stdout.splitlines() if ln.strip()]
        return "; ".join(gpus) or None

    def _installed_packages(self) -> List[str]:
        found = []
        for name in self.packages:
            try:
                found.append(f"{name}=={version(name)}")
            except PackageNotFoundError:
                continue
        return found
