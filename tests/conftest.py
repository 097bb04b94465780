import json
import logging
from datetime import UTC, datetime

import pytest

from costline.cache import CacheStore


@pytest.fixture(autouse=True)
def isolated_env(tmp_path, monkeypatch):
    """Keep tests away from the real home, cache and config directories."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.delenv("CLAUDE_CONFIG_DIR", raising=False)
    monkeypatch.delenv("XDG_CONFIG_HOME", raising=False)
    monkeypatch.delenv("COSTLINE_TOKEN", raising=False)
    monkeypatch.setattr("costline.cache.CACHE_DIR", tmp_path / "cache")
    monkeypatch.setattr("costline.logs.ERROR_LOG", tmp_path / "cache" / "error.log")
    monkeypatch.setattr("costline.auth.AUTH_FILE", tmp_path / "config" / "auth.json")
    monkeypatch.setattr("costline.cli.AUTH_FILE", tmp_path / "config" / "auth.json")
    return home


@pytest.fixture
def store(tmp_path):
    return CacheStore(tmp_path / "store")


@pytest.fixture(autouse=True)
def reset_costline_logger():
    """Drop log handlers a test (or a CLI invocation) attached to the costline logger."""
    log = logging.getLogger("costline")
    before = list(log.handlers)
    yield
    for h in list(log.handlers):
        if h not in before:
            log.removeHandler(h)
            h.close()


@pytest.fixture
def claude_dir(tmp_path, monkeypatch):
    d = tmp_path / "claude-config"
    monkeypatch.setenv("CLAUDE_CONFIG_DIR", str(d))
    return d


def entry(ts: datetime, cost: float, model="claude-sonnet-4-5-20250929", req_id="", msg_id="", session="s1"):
    return json.dumps({
        "timestamp": ts.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%S.%fZ"),
        "sessionId": session,
        "costUSD": cost,
        "requestId": req_id,
        "message": {
            "model": model,
            "id": msg_id,
            "usage": {"input_tokens": 100, "output_tokens": 50},
        },
    })


def write_transcript(base, *lines, project="test-project", name="transcript.jsonl"):
    project_dir = base / "projects" / project
    project_dir.mkdir(parents=True, exist_ok=True)
    path = project_dir / name
    path.write_text("".join(line + "\n" for line in lines))
    return path
