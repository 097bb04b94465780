"""Cost analytics derived from JSONL transcripts.

Each aggregator caches its result for a few seconds, invalidated early when
the current session's transcript changes, so repeated renders don't re-read
every transcript on disk.
"""

import logging
import os
import re
from collections import defaultdict
from datetime import UTC, datetime

from pydantic import TypeAdapter, ValidationError

from .cache import CacheStore, mtime_ns
from .config import ANALYTICS_TTL, BLOCK_GAP
from .models import ModelCost, TranscriptRecord
from .transcripts import collect_files, read_all

logger = logging.getLogger("costline")

DAILY_COST_KEY = "daily_cost"
BURN_RATE_KEY = "burn_rate"
MODEL_BREAKDOWN_KEY = "model_breakdown"

# Most specific prefixes first.
MODEL_SHORT_NAMES = [
    ("claude-opus-4-6", "opus4.6"),
    ("claude-opus-4-5", "opus4.5"),
    ("claude-opus-4-1", "opus4.1"),
    ("claude-opus-4", "opus4"),
    ("claude-sonnet-4-6", "sonnet4.6"),
    ("claude-sonnet-4-5", "sonnet4.5"),
    ("claude-sonnet-4", "sonnet4"),
    ("claude-3-7-sonnet", "sonnet3.7"),
    ("claude-3-5-sonnet", "sonnet3.5"),
    ("claude-3-sonnet", "sonnet3"),
    ("claude-haiku-4-5", "haiku4.5"),
    ("claude-3-5-haiku", "haiku3.5"),
    ("claude-3-haiku", "haiku3"),
    ("claude-3-opus", "opus3"),
]

_DATE_SUFFIX = re.compile(r"-\d{8}$")

_model_costs = TypeAdapter(list[ModelCost])


class NoTranscriptsError(Exception):
    """No JSONL transcript files could be found."""

    def __init__(self):
        super().__init__("no transcript files found")


def _load_records(transcript_path) -> list[TranscriptRecord]:
    files = collect_files(transcript_path)
    if not files:
        raise NoTranscriptsError()
    return read_all(files)


def _store_result(store: CacheStore, key: str, data, transcript_path):
    try:
        store.set(key, data, ANALYTICS_TTL, mtime_ns(transcript_path))
    except OSError as e:
        logger.warning("Failed to cache %s: %s", key, e)


# --- Daily cost ---


def daily_cost(
    transcript_path: str | os.PathLike = "",
    *,
    store: CacheStore | None = None,
    now: datetime | None = None,
) -> float:
    """Total cost of all transcript entries from today (UTC)."""
    store = store or CacheStore()
    cached = store.get(DAILY_COST_KEY, transcript_path)
    if isinstance(cached, dict) and isinstance(cached.get("cost"), (int, float)):
        return float(cached["cost"])

    records = _load_records(transcript_path)
    today = (now or datetime.now(UTC)).astimezone(UTC).date()
    total = sum(r.cost_usd for r in records if r.timestamp.date() == today)

    _store_result(store, DAILY_COST_KEY, {"cost": total}, transcript_path)
    return total


# --- Burn rate ---


def calculate_burn_rate(records: list[TranscriptRecord]) -> float:
    """Cost per hour of the activity block that ends at the last record.

    A block ends wherever consecutive entries are more than BLOCK_GAP apart.
    A block with no duration returns its cost as-is.
    """
    if not records:
        return 0.0

    block_start = 0
    for i in range(len(records) - 1, 0, -1):
        if records[i].timestamp - records[i - 1].timestamp > BLOCK_GAP:
            block_start = i
            break

    block = records[block_start:]
    cost = sum(r.cost_usd for r in block)
    duration = block[-1].timestamp - block[0].timestamp
    if duration.total_seconds() <= 0:
        return cost
    return cost / (duration.total_seconds() / 3600)


def burn_rate(transcript_path: str | os.PathLike = "", *, store: CacheStore | None = None) -> float:
    store = store or CacheStore()
    cached = store.get(BURN_RATE_KEY, transcript_path)
    if isinstance(cached, dict) and isinstance(cached.get("rate"), (int, float)):
        return float(cached["rate"])

    rate = calculate_burn_rate(_load_records(transcript_path))

    _store_result(store, BURN_RATE_KEY, {"rate": rate}, transcript_path)
    return rate


# --- Model breakdown ---


def shorten_model_name(model_id: str) -> str:
    """Turn a full model ID like ``claude-sonnet-4-5-20250929`` into ``sonnet4.5``."""
    for prefix, short in MODEL_SHORT_NAMES:
        if model_id.startswith(prefix):
            return short

    name = model_id.removeprefix("claude-")
    return _DATE_SUFFIX.sub("", name)


def model_breakdown(
    transcript_path: str | os.PathLike = "",
    *,
    store: CacheStore | None = None,
) -> list[ModelCost]:
    """Cost per model, most expensive first."""
    store = store or CacheStore()
    cached = store.get(MODEL_BREAKDOWN_KEY, transcript_path)
    if cached is not None:
        try:
            return _model_costs.validate_python(cached)
        except ValidationError:
            pass

    costs = defaultdict(float)
    for r in _load_records(transcript_path):
        if r.message.model:
            costs[r.message.model] += r.cost_usd

    breakdown = [ModelCost(display_name=shorten_model_name(m), cost=c) for m, c in costs.items()]
    breakdown.sort(key=lambda m: m.cost, reverse=True)

    _store_result(store, MODEL_BREAKDOWN_KEY, _model_costs.dump_python(breakdown), transcript_path)
    return breakdown
