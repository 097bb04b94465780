"""Tests for the transcript cost aggregators."""

import os
from datetime import UTC, datetime, timedelta

import pytest
from conftest import entry, write_transcript

from costline.analytics import (
    NoTranscriptsError,
    burn_rate,
    calculate_burn_rate,
    daily_cost,
    model_breakdown,
    shorten_model_name,
)
from costline.cache import mtime_ns
from costline.models import Message, TranscriptRecord, Usage

NOW = datetime.now(UTC)


def record(ts, cost):
    return TranscriptRecord(timestamp=ts, cost_usd=cost, message=Message(usage=Usage()))


# --- Daily cost ---


def test_daily_cost(claude_dir, store):
    path = write_transcript(
        claude_dir,
        entry(NOW, 1.25, req_id="a"),
        entry(NOW, 0.75, req_id="b"),
    )
    assert daily_cost(path, store=store, now=NOW) == pytest.approx(2.0)


def test_daily_cost_yesterday_excluded(claude_dir, store):
    now = datetime(2026, 3, 2, 0, 30, tzinfo=UTC)
    path = write_transcript(
        claude_dir,
        entry(now - timedelta(hours=1), 5.00, req_id="yesterday"),  # 23:30 the day before
        entry(now, 0.50, req_id="today"),
    )
    assert daily_cost(path, store=store, now=now) == pytest.approx(0.50)


def test_daily_cost_skips_out_of_range_timestamp(claude_dir, store):
    far_future = (
        '{"timestamp": "9999-12-31T23:00:00-05:00", "costUSD": 9.0,'
        ' "message": {"id": "f", "usage": {"input_tokens": 1}}}'
    )
    path = write_transcript(claude_dir, far_future, entry(NOW, 0.25, req_id="ok"))
    assert daily_cost(path, store=store, now=NOW) == pytest.approx(0.25)


def test_daily_cost_includes_current_transcript(claude_dir, store, tmp_path):
    write_transcript(claude_dir, entry(NOW, 1.00, req_id="a"))
    current = write_transcript(tmp_path / "other", entry(NOW, 2.00, req_id="b"))
    assert daily_cost(current, store=store, now=NOW) == pytest.approx(3.00)


def test_daily_cost_no_transcripts(monkeypatch, store):
    monkeypatch.setenv("CLAUDE_CONFIG_DIR", "/nonexistent")
    with pytest.raises(NoTranscriptsError):
        daily_cost(store=store)


def test_daily_cost_served_from_cache(claude_dir, store):
    path = write_transcript(claude_dir, entry(NOW, 1.00, req_id="a"))
    assert daily_cost(path, store=store, now=NOW) == pytest.approx(1.00)

    # Same mtime: cached value wins even though the file content changed.
    mtime = mtime_ns(path)
    path.write_text(entry(NOW, 9.00, req_id="z") + "\n")
    os.utime(path, ns=(mtime, mtime))
    assert daily_cost(path, store=store, now=NOW) == pytest.approx(1.00)


def test_daily_cost_recomputed_when_transcript_changes(claude_dir, store):
    path = write_transcript(claude_dir, entry(NOW, 1.00, req_id="a"))
    assert daily_cost(path, store=store, now=NOW) == pytest.approx(1.00)

    with path.open("a") as f:
        f.write(entry(NOW, 2.00, req_id="b") + "\n")
    st = path.stat()
    os.utime(path, ns=(st.st_atime_ns, st.st_mtime_ns + 1_000_000_000))
    assert daily_cost(path, store=store, now=NOW) == pytest.approx(3.00)


# --- Burn rate ---


def test_calculate_burn_rate_block():
    t = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)
    records = [
        record(t - timedelta(hours=2), 0.50),
        record(t - timedelta(hours=1), 0.00),
        record(t, 0.50),
    ]
    assert calculate_burn_rate(records) == pytest.approx(0.50)


def test_calculate_burn_rate_excludes_previous_block():
    t = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)
    records = [
        record(t - timedelta(hours=8), 10.00),
        record(t - timedelta(hours=2), 0.50),
        record(t - timedelta(hours=1), 0.00),
        record(t, 0.50),
    ]
    assert calculate_burn_rate(records) == pytest.approx(0.50)


def test_calculate_burn_rate_single_entry():
    t = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)
    assert calculate_burn_rate([record(t, 0.75)]) == pytest.approx(0.75)


def test_calculate_burn_rate_empty():
    assert calculate_burn_rate([]) == 0.0


def test_burn_rate(claude_dir, store):
    t = NOW - timedelta(minutes=30)
    path = write_transcript(
        claude_dir,
        entry(t - timedelta(hours=1), 1.00, req_id="a"),
        entry(t, 1.00, req_id="b"),
    )
    assert burn_rate(path, store=store) == pytest.approx(2.00)


def test_burn_rate_no_transcripts(monkeypatch, store):
    monkeypatch.setenv("CLAUDE_CONFIG_DIR", "/nonexistent")
    with pytest.raises(NoTranscriptsError):
        burn_rate(store=store)


# --- Model breakdown ---


def test_model_breakdown(claude_dir, store):
    path = write_transcript(
        claude_dir,
        entry(NOW, 0.50, model="claude-sonnet-4-5-20250929", req_id="a"),
        entry(NOW, 2.00, model="claude-opus-4-6-20260101", req_id="b"),
        entry(NOW, 0.25, model="claude-sonnet-4-5-20250929", req_id="c"),
        entry(NOW, 9.99, model="", req_id="d"),
    )
    breakdown = model_breakdown(path, store=store)
    assert [(m.display_name, m.cost) for m in breakdown] == [
        ("opus4.6", pytest.approx(2.00)),
        ("sonnet4.5", pytest.approx(0.75)),
    ]


def test_model_breakdown_cached_round_trip(claude_dir, store):
    path = write_transcript(claude_dir, entry(NOW, 0.50, model="claude-haiku-4-5-20251001", req_id="a"))
    first = model_breakdown(path, store=store)
    second = model_breakdown(path, store=store)
    assert first == second
    assert store.get("model_breakdown", path) == [{"display_name": "haiku4.5", "cost": 0.5}]


def test_model_breakdown_no_transcripts(monkeypatch, store):
    monkeypatch.setenv("CLAUDE_CONFIG_DIR", "/nonexistent")
    with pytest.raises(NoTranscriptsError):
        model_breakdown(store=store)


@pytest.mark.parametrize(
    "model_id,expected",
    [
        ("claude-opus-4-6-20250514", "opus4.6"),
        ("claude-opus-4-5-20251101", "opus4.5"),
        ("claude-opus-4-1-20250805", "opus4.1"),
        ("claude-opus-4-20250514", "opus4"),
        ("claude-sonnet-4-6-20250514", "sonnet4.6"),
        ("claude-sonnet-4-5-20250929", "sonnet4.5"),
        ("claude-sonnet-4-20250514", "sonnet4"),
        ("claude-3-7-sonnet-20250219", "sonnet3.7"),
        ("claude-3-5-sonnet-20241022", "sonnet3.5"),
        ("claude-haiku-4-5-20251001", "haiku4.5"),
        ("claude-3-5-haiku-20241022", "haiku3.5"),
        ("claude-3-haiku-20240307", "haiku3"),
        ("claude-3-opus-20240229", "opus3"),
        ("claude-mystery-9-20300101", "mystery-9"),
        ("gpt-x", "gpt-x"),
    ],
)
def test_shorten_model_name(model_id, expected):
    assert shorten_model_name(model_id) == expected
