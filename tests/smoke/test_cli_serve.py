"""Smoke tests for the termium-serve CLI."""

from __future__ import annotations

import subprocess
import sys
from pathlib import Path

import pytest


def _run(*args: str, cwd: Path | None = None) -> subprocess.CompletedProcess[str]:
    return subprocess.run(
        [sys.executable, "-m", "termium_serve.cli", *args],
        capture_output=True,
        text=True,
        timeout=30,
        cwd=cwd,
    )


@pytest.mark.smoke
@pytest.mark.serve
def test_termium_serve_help() -> None:
    """Verify termium-serve --help runs successfully."""
    result = _run("--help")

    assert result.returncode == 0
    assert "termium server" in result.stdout
    assert "--browser" in result.stdout
    assert "--tcp" in result.stdout


@pytest.mark.smoke
@pytest.mark.serve
def test_termium_serve_version() -> None:
    """Verify termium-serve --version runs successfully."""
    result = _run("--version")

    assert result.returncode == 0
    assert "termium-serve" in result.stdout


@pytest.mark.smoke
@pytest.mark.serve
def test_validate_accepts_good_config(tmp_path: Path) -> None:
    config = tmp_path / "termium.yaml"
    config.write_text("stream_backpressure: pause\ntcp: 127.0.0.1:50051\n")

    result = _run("validate", "--config", str(config))

    assert result.returncode == 0
    assert "Configuration is valid" in result.stderr
    assert "pause" in result.stderr


@pytest.mark.smoke
@pytest.mark.serve
def test_validate_rejects_bad_config(tmp_path: Path) -> None:
    config = tmp_path / "termium.yaml"
    config.write_text("stream_backpressure: block\n")

    result = _run("validate", "--config", str(config))

    assert result.returncode == 1
    assert "Invalid configuration" in result.stderr
