"""
Code artifact handling: pull fenced code out of Developer responses, stage it
under the backend's root, and pick the file to execute.
"""

import logging
import os
import posixpath
import re
from typing import List, Optional

from backend import Backend, RUNNABLE_INTERPRETERS

from .state import CodeArtifact

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```([\w+#.-]*)[ \t]*\r?\n(.*?)```", re.DOTALL)
_FILENAME_RE = re.compile(r"^\s*(?://|#|--|/\*|<!--)\s*filename:\s*(.+?)\s*(?:\*/|-->)?\s*$", re.IGNORECASE)
_UNSAFE_CHARS_RE = re.compile(r"[^A-Za-z0-9._/-]")

LANGUAGE_EXTENSIONS = {
    "python": "py", "py": "py", "python3": "py",
    "javascript": "js", "js": "js", "node": "js", "mjs": "mjs",
    "typescript": "ts", "ts": "ts",
    "bash": "sh", "sh": "sh", "shell": "sh", "zsh": "sh",
    "json": "json", "yaml": "yaml", "yml": "yaml", "toml": "toml",
    "html": "html", "css": "css", "sql": "sql",
    "markdown": "md", "md": "md",
    "c": "c", "cpp": "cpp", "c++": "cpp", "cuda": "cu",
    "java": "java", "go": "go", "rust": "rs",
    "plaintext": "txt", "text": "txt", "txt": "txt",
}

_NON_ENTRY_HINTS = ("test", "util", "helper", "__init__", "conftest", "setup")


def extract_code_blocks(text: str) -> List[CodeArtifact]:
    """Every fenced region in ``text``, in order. Untagged fences are plaintext."""
    blocks = []
    for match in _FENCE_RE.finditer(text or ""):
        language = (match.group(1) or "plaintext").lower()
        code = match.group(2).strip("\n")
        filename = None
        first, _, rest = code.partition("\n")
        marker = _FILENAME_RE.match(first)
        if marker:
            filename = marker.group(1).strip().strip("`'\"")
            code = rest
        code = code.strip("\n")
        if not code.strip():
            continue
        blocks.append(CodeArtifact(language=language, code=code + "\n", filename=filename or None))
    return blocks


def extension_for(language: str) -> str:
    return LANGUAGE_EXTENSIONS.get((language or "").lower(), "txt")


def sanitize_path(name: str) -> Optional[str]:
    """Relative posix path with traversal segments and odd characters removed.

    Returns None when nothing usable is left.
    """
    if not name:
        return None
    cleaned = name.replace("\\", "/").strip()
    parts = []
    for segment in cleaned.split("/"):
        segment = segment.strip()
        if segment in ("", ".", ".."):
            continue
        segment = _UNSAFE_CHARS_RE.sub("_", segment)
        if segment.strip("._"):
            parts.append(segment)
    if not parts:
        return None
    return posixpath.join(*parts)


def artifact_filename(artifact: CodeArtifact, index: int, total: int) -> str:
    """Name a block is saved under: its filename marker, else main.<ext> / file_<n>.<ext>."""
    named = sanitize_path(artifact.filename) if artifact.filename else None
    if named:
        return named
    ext = extension_for(artifact.language)
    if total == 1:
        return f"main.{ext}"
    return f"file_{index + 1}.{ext}"


def save_artifacts(backend: Backend, artifacts: List[CodeArtifact]) -> List[str]:
    """Write every artifact under the backend root and return the relative paths."""
    saved: List[str] = []
    total = len(artifacts)
    for i, artifact in enumerate(artifacts):
        rel = artifact_filename(artifact, i, total)
        backend.write_file(rel, artifact.code)
        artifact.saved_path = rel
        if rel not in saved:
            saved.append(rel)

    # Python packages need their marker files to import
    for rel in list(saved):
        if not rel.endswith(".py"):
            continue
        directory = posixpath.dirname(rel)
        while directory:
            marker = posixpath.join(directory, "__init__.py")
            if marker not in saved and not backend.file_exists(marker):
                backend.write_file(marker, "")
                saved.append(marker)
            directory = posixpath.dirname(directory)

    logger.info(f"Saved {len(saved)} file(s) under {backend.working_directory}")
    return saved


def is_runnable(path: str) -> bool:
    _, ext = os.path.splitext(path)
    return ext.lower() in RUNNABLE_INTERPRETERS


def select_entry_file(paths: List[str]) -> Optional[str]:
    """Pick the file to execute.

    Priority: exact ``main.<ext>`` (shallowest first), then any name containing
    "main", then the first runnable file that is not a test/util/init module,
    then the first runnable file at all.
    """
    runnable = [p for p in paths if is_runnable(p)]
    if not runnable:
        return None

    def base(p: str) -> str:
        return posixpath.basename(p).lower()

    exact = [p for p in runnable if os.path.splitext(base(p))[0] == "main"]
    if exact:
        return min(exact, key=lambda p: p.count("/"))

    for p in runnable:
        if "main" in base(p):
            return p

    for p in runnable:
        if not any(hint in base(p) for hint in _NON_ENTRY_HINTS):
            return p

    return runnable[0]


def format_artifacts(artifacts: List[CodeArtifact]) -> str:
    """Render the current code set back into fenced blocks for prompts."""
    total = len(artifacts)
    rendered = []
    for i, artifact in enumerate(artifacts):
        name = artifact.saved_path or artifact_filename(artifact, i, total)
        comment = "//" if extension_for(artifact.language) in ("js", "mjs", "ts", "c", "cpp", "cu", "java", "go", "rs") else "#"
        rendered.append(f"```{artifact.language}\n{comment} filename: {name}\n{artifact.code.rstrip()}\n```")
    return "\n\n".join(rendered)
