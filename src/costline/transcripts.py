"""Discovery and parsing of Claude Code JSONL transcripts."""

import json
import logging
import os
from pathlib import Path

from pydantic import ValidationError

from .models import TranscriptRecord

logger = logging.getLogger("costline")

TRANSCRIPT_GLOB = "*/*.jsonl"


def config_dirs() -> list[Path]:
    """Claude config directories, highest priority first.

    1. $CLAUDE_CONFIG_DIR
    2. $XDG_CONFIG_HOME/claude
    3. ~/.claude
    """
    dirs = []
    if d := os.getenv("CLAUDE_CONFIG_DIR"):
        dirs.append(Path(d))
    if d := os.getenv("XDG_CONFIG_HOME"):
        dirs.append(Path(d) / "claude")
    try:
        dirs.append(Path.home() / ".claude")
    except RuntimeError:
        pass
    return dirs


def discover() -> list[Path]:
    """Return transcript files under every config directory's ``projects/``."""
    files = []
    for base in config_dirs():
        projects = base / "projects"
        try:
            files.extend(sorted(projects.glob(TRANSCRIPT_GLOB)))
        except OSError as e:
            logger.debug("Skipping transcript directory %s: %s", projects, e)
    return files


def collect_files(transcript_path: str | os.PathLike = "") -> list[Path]:
    """Discovered files plus the current session's transcript if discovery missed it."""
    files = discover()
    if transcript_path:
        current = Path(transcript_path)
        if current not in files:
            files.append(current)
    return files


def dedup_key(record: TranscriptRecord) -> str:
    msg_id = record.message.id if record.message else ""
    if not msg_id and not record.request_id:
        return ""
    return f"{msg_id}|{record.request_id}"


def _parse_line(line: str) -> TranscriptRecord | None:
    try:
        return TranscriptRecord.model_validate(json.loads(line))
    except (json.JSONDecodeError, ValueError, ValidationError):
        return None


def read_file(path: str | os.PathLike) -> list[TranscriptRecord]:
    """Read valid, deduplicated records from a transcript in file order.

    Malformed lines and records missing a timestamp or usage are skipped.
    Raises OSError if the file can't be opened.
    """
    seen = set()
    records = []
    with open(path, encoding="utf-8", errors="replace") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            record = _parse_line(line)
            if record is None or not record.is_valid:
                continue

            key = dedup_key(record)
            if key:
                if key in seen:
                    continue
                seen.add(key)

            records.append(record)
    return records


def read_all(files: list[Path]) -> list[TranscriptRecord]:
    """Concatenate records file by file, skipping files that can't be read."""
    records = []
    for path in files:
        try:
            records.extend(read_file(path))
        except OSError as e:
            logger.debug("Skipping transcript %s: %s", path, e)
    return records
