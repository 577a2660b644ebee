"""
Tests for the execution environment probe.
"""

import agent.environment as environment
from agent.environment import EnvironmentProbe


def test_describe_without_gpu(monkeypatch):
    monkeypatch.setattr(environment.shutil, "which", lambda name: None)
    block = EnvironmentProbe(packages=("pytest", "surely-not-installed-pkg")).describe()

    assert block.startswith("OS: ")
    assert "GPU: none detected" in block
    assert "Node.js: not installed" in block
    assert "pytest==" in block
    assert "surely-not-installed-pkg" not in block


def test_describe_is_cached(monkeypatch):
    probe = EnvironmentProbe(packages=())
    calls = []

    def fake_probe():
        calls.append(1)
        return "OS: Test"

    monkeypatch.setattr(probe, "_probe", fake_probe)
    assert probe.describe() == "OS: Test"
    assert probe.describe() == "OS: Test"
    assert len(calls) == 1
