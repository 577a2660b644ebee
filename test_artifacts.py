"""
Tests for code block extraction, staging and entry file selection.
"""

import os

from backend import LocalBackend
from agent.artifacts import (
    extract_code_blocks,
    sanitize_path,
    save_artifacts,
    select_entry_file,
    format_artifacts,
)
from agent.state import CodeArtifact


RESPONSE = """Here is the implementation.

```python
# filename: app/util.py
def add(a, b):
    return a + b
```

And the entry point:

```python
# filename: main.py
from app.util import add
print(add(1, 2))
```
"""


def test_extracts_blocks_and_strips_filename_marker():
    blocks = extract_code_blocks(RESPONSE)
    assert [b.filename for b in blocks] == ["app/util.py", "main.py"]
    assert blocks[0].language == "python"
    assert blocks[0].code == "def add(a, b):\n    return a + b\n"
    assert "filename:" not in blocks[1].code


def test_untagged_fence_is_plaintext():
    blocks = extract_code_blocks("```\nhello world\n```")
    assert len(blocks) == 1
    assert blocks[0].language == "plaintext"
    assert blocks[0].filename is None


def test_js_filename_comment():
    blocks = extract_code_blocks("```javascript\n// filename: index.js\nconsole.log(1)\n```")
    assert blocks[0].filename == "index.js"
    assert blocks[0].code == "console.log(1)\n"


def test_no_blocks():
    assert extract_code_blocks("I could not write any code for this.") == []


def test_sanitize_path():
    assert sanitize_path("../../etc/passwd") == "etc/passwd"
    assert sanitize_path("/abs/x.py") == "abs/x.py"
    assert sanitize_path("my file!.py") == "my_file_.py"
    assert sanitize_path("a\\b\\c.py") == "a/b/c.py"
    assert sanitize_path("..") is None
    assert sanitize_path("") is None


def test_single_unnamed_block_is_main(tmp_path):
    backend = LocalBackend(str(tmp_path))
    paths = save_artifacts(backend, [CodeArtifact("python", "print(1)\n")])
    assert paths == ["main.py"]
    assert (tmp_path / "main.py").read_text() == "print(1)\n"


def test_multiple_unnamed_blocks_are_numbered(tmp_path):
    backend = LocalBackend(str(tmp_path))
    artifacts = [CodeArtifact("python", "a = 1\n"), CodeArtifact("bash", "echo hi\n")]
    paths = save_artifacts(backend, artifacts)
    assert paths == ["file_1.py", "file_2.sh"]
    assert artifacts[1].saved_path == "file_2.sh"


def test_package_markers_are_created(tmp_path):
    backend = LocalBackend(str(tmp_path))
    paths = save_artifacts(backend, extract_code_blocks(RESPONSE))
    assert "app/util.py" in paths
    assert "main.py" in paths
    assert "app/__init__.py" in paths
    assert os.path.isfile(tmp_path / "app" / "__init__.py")


def test_traversal_in_marker_stays_inside_root(tmp_path):
    backend = LocalBackend(str(tmp_path / "root"))
    backend.reset()
    artifact = CodeArtifact("python", "x = 1\n", filename="../../evil.py")
    paths = save_artifacts(backend, [artifact])
    assert paths == ["evil.py"]
    assert (tmp_path / "root" / "evil.py").exists()
    assert not (tmp_path / "evil.py").exists()


def test_entry_exact_main_wins():
    assert select_entry_file(["utils.py", "src/main.py", "main.py"]) == "main.py"


def test_entry_name_containing_main():
    assert select_entry_file(["app.py", "run_main.py"]) == "run_main.py"


def test_entry_skips_tests_and_utils():
    assert select_entry_file(["test_app.py", "utils.py", "app/__init__.py", "app.py"]) == "app.py"


def test_entry_falls_back_to_first_runnable():
    assert select_entry_file(["README.md", "test_app.py"]) == "test_app.py"


def test_entry_none_without_runnable_files():
    assert select_entry_file(["README.md", "data.json", "notes.txt"]) is None


def test_format_artifacts_round_trips_names():
    text = format_artifacts(extract_code_blocks(RESPONSE))
    assert "# filename: app/util.py" in text
    assert [b.filename for b in extract_code_blocks(text)] == ["app/util.py", "main.py"]
