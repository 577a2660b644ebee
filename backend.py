"""
Backend abstraction for the staging filesystem and program execution.
Generated code is written under a single sandboxed root and run from there.
"""

import logging
import os
import shutil
import signal
import subprocess
import sys
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional

logger = logging.getLogger(__name__)

# Extension -> interpreter command prefix. Anything else is not runnable.
RUNNABLE_INTERPRETERS = {
    ".py": [sys.executable, "-u"],
    ".js": ["node"],
    ".mjs": ["node"],
    ".sh": ["bash"],
}


@dataclass
class ProcessResult:
    """Outcome of running one file"""
    exited_cleanly: bool
    stdout: str
    stderr: str
    returncode: int
    timed_out: bool = False
    truncated: bool = False


class Backend(ABC):
    """Abstract backend for the staging root and execution."""

    @property
    @abstractmethod
    def working_directory(self) -> str:
        """Return the staging root path."""

    @abstractmethod
    def reset(self) -> None:
        """Remove everything under the staging root and recreate it empty."""

    @abstractmethod
    def write_file(self, path: str, content: str) -> None:
        """Write content to a file (create dirs as needed)."""

    @abstractmethod
    def file_exists(self, path: str) -> bool:
        """Check if a file exists."""

    @abstractmethod
    def list_files(self) -> List[str]:
        """Relative paths of every file under the staging root."""

    @abstractmethod
    def run_file(self, path: str, timeout: int = 600, max_output_bytes: int = 1_000_000) -> ProcessResult:
        """Run a staged file with the interpreter for its extension."""

    def cancel_running_command(self) -> bool:
        """Kill the in-flight execution, if any. Returns True if something was killed."""
        return False

    def resolve_path(self, path: str) -> str:
        """Resolve a path relative to the staging root."""
        if os.path.isabs(path):
            return path
        return os.path.normpath(os.path.join(self.working_directory, path))

    def _ensure_under_working(self, resolved: str) -> None:
        """Raise ValueError if resolved path escapes the staging root. Overridden by backends."""
        pass


# ============================================================
# Local Backend
# ============================================================

def _interpreter_for(path: str) -> Optional[List[str]]:
    _, ext = os.path.splitext(path)
    return RUNNABLE_INTERPRETERS.get(ext.lower())


class LocalBackend(Backend):
    """Backend that stages and runs code on the local filesystem."""

    def __init__(self, working_directory: str = "./output"):
        self._working_directory = os.path.abspath(working_directory)
        self._active_process: Optional[subprocess.Popen] = None

    @property
    def working_directory(self) -> str:
        return self._working_directory

    def _ensure_under_working(self, resolved: str) -> None:
        real = os.path.abspath(resolved)
        wd = os.path.abspath(self._working_directory)
        if real != wd and not real.startswith(wd + os.sep):
            raise ValueError(f"Path escapes working directory: {resolved!r}")

    def reset(self) -> None:
        if os.path.isdir(self._working_directory):
            shutil.rmtree(self._working_directory)
        os.makedirs(self._working_directory, exist_ok=True)
        logger.info(f"Staging root reset: {self._working_directory}")

    def write_file(self, path: str, content: str) -> None:
        full = self.resolve_path(path)
        self._ensure_under_working(full)
        os.makedirs(os.path.dirname(full), exist_ok=True)
        with open(full, "w", encoding="utf-8") as f:
            f.write(content)

    def file_exists(self, path: str) -> bool:
        full = self.resolve_path(path)
        self._ensure_under_working(full)
        return os.path.exists(full)

    def list_files(self) -> List[str]:
        found = []
        if not os.path.isdir(self._working_directory):
            return found
        for root, dirs, files in os.walk(self._working_directory):
            dirs[:] = sorted(d for d in dirs if d != "__pycache__")
            for name in sorted(files):
                rel = os.path.relpath(os.path.join(root, name), self._working_directory)
                found.append(rel.replace(os.sep, "/"))
        return found

    def run_file(self, path: str, timeout: int = 600, max_output_bytes: int = 1_000_000) -> ProcessResult:
        full = self.resolve_path(path)
        self._ensure_under_working(full)
        interpreter = _interpreter_for(full)
        if interpreter is None:
            raise ValueError(f"No interpreter for {path!r}")

        env = dict(os.environ, PYTHONUNBUFFERED="1", PYTHONDONTWRITEBYTECODE="1")
        popen_kwargs = {}
        if os.name == "posix":
            popen_kwargs["preexec_fn"] = os.setsid  # process group for clean kill
        try:
            proc = subprocess.Popen(
                interpreter + [full],
                cwd=self._working_directory,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                errors="replace",
                env=env,
                **popen_kwargs,
            )
        except FileNotFoundError as e:
            return ProcessResult(False, "", f"Interpreter not found: {e}", -1)
        self._active_process = proc

        buffers = {"stdout": [], "stderr": []}
        sizes = {"stdout": 0, "stderr": 0}
        truncated = {"flag": False}

        def _reader(pipe, key: str):
            # Keep draining past the cap so the child never blocks on a full pipe
            for line in iter(pipe.readline, ""):
                if sizes[key] >= max_output_bytes:
                    truncated["flag"] = True
                    continue
                room = max_output_bytes - sizes[key]
                if len(line) > room:
                    line = line[:room]
                    truncated["flag"] = True
                buffers[key].append(line)
                sizes[key] += len(line)

        t_out = threading.Thread(target=_reader, args=(proc.stdout, "stdout"), daemon=True)
        t_err = threading.Thread(target=_reader, args=(proc.stderr, "stderr"), daemon=True)
        t_out.start()
        t_err.start()

        timed_out = False
        try:
            rc = proc.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            self._kill_process(proc)
            proc.wait()
            rc = -1
            timed_out = True
        finally:
            self._active_process = None
            t_out.join(timeout=1.0)
            t_err.join(timeout=1.0)
            for pipe in (proc.stdout, proc.stderr):
                try:
                    if pipe:
                        pipe.close()
                except OSError:
                    pass

        stdout = "".join(buffers["stdout"])
        stderr = "".join(buffers["stderr"])
        if truncated["flag"]:
            stdout += f"\n[output truncated at {max_output_bytes} bytes]\n"
        if timed_out:
            stderr = f"TimeoutError: Execution timed out after {timeout}s\n{stderr}"
            logger.warning(f"Execution of {path} timed out after {timeout}s")

        return ProcessResult(
            exited_cleanly=(rc == 0 and not timed_out),
            stdout=stdout,
            stderr=stderr,
            returncode=rc,
            timed_out=timed_out,
            truncated=truncated["flag"],
        )

    def cancel_running_command(self) -> bool:
        """Kill the currently running subprocess, if any. Returns True if killed."""
        proc = self._active_process
        if proc and proc.poll() is None:
            self._kill_process(proc)
            return True
        return False

    @staticmethod
    def _kill_process(proc: subprocess.Popen) -> None:
        """Kill a process and its entire process group."""
        try:
            os.killpg(os.getpgid(proc.pid), signal.SIGTERM)
        except (ProcessLookupError, OSError, AttributeError):
            pass
        try:
            proc.kill()
        except (ProcessLookupError, OSError):
            pass
