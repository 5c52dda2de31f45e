"""Smoke tests for the termium-browse CLI."""

from __future__ import annotations

import subprocess
import sys

import pytest


@pytest.mark.smoke
@pytest.mark.browse
def test_termium_browse_help() -> None:
    """Verify termium-browse --help runs successfully."""
    result = subprocess.run(
        [sys.executable, "-m", "termium_browse.app", "--help"],
        capture_output=True,
        text=True,
        timeout=30,
    )

    assert result.returncode == 0
    assert "--viewport" in result.stdout
    assert "--stream-fps" in result.stdout


@pytest.mark.smoke
@pytest.mark.browse
def test_termium_browse_reports_unreachable_server(tmp_path) -> None:
    result = subprocess.run(
        [sys.executable, "-m", "termium_browse.app", "--socket", str(tmp_path / "none.sock")],
        capture_output=True,
        text=True,
        timeout=30,
    )

    assert result.returncode == 1
    assert "Cannot reach server" in result.stdout
