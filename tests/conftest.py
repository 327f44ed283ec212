"""Pytest configuration for hookview tests."""

import os

import pytest

from hookview.config import ViewerConfig


@pytest.fixture(autouse=True)
def clean_hookview_env(monkeypatch, tmp_path):
    """Clear HOOKVIEW_ environment variables and prevent .env loading for test isolation."""
    for var in [k for k in os.environ if k.startswith("HOOKVIEW_")]:
        monkeypatch.delenv(var, raising=False)

    # Change to temp directory to avoid loading a local .env file
    monkeypatch.chdir(tmp_path)

    yield


@pytest.fixture
def log_file(tmp_path):
    """Path of a hook log that does not exist yet."""
    return tmp_path / "logs" / "hooks-log.txt"


@pytest.fixture
def dist_dir(tmp_path):
    """Dashboard build directory with an index page and one asset."""
    dist = tmp_path / "dist"
    (dist / "assets").mkdir(parents=True)
    (dist / "index.html").write_text("<!doctype html><title>viewer</title>")
    (dist / "assets" / "app.js").write_text("console.log('viewer');")
    return dist


@pytest.fixture
def config(log_file, dist_dir):
    """Viewer config pointed at temp files, with fast polling and shutdown enabled."""
    return ViewerConfig(
        port=3999,
        log_file=log_file,
        dist_dir=dist_dir,
        poll_interval=0.05,
        rate_limit_max_connections=5,
        rate_limit_window_ms=1000,
        shutdown_token="test-token",
        shutdown_delay=0,
    )


@pytest.fixture
def append_lines():
    """Append raw lines to a log file, creating it if needed."""

    def _append(path, *lines: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "a", encoding="utf-8") as f:
            for line in lines:
                f.write(line + "\n")

    return _append
