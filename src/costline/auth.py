"""OAuth credential resolution for the usage API.

Sources are tried in order and the first one holding an access token wins:

1. the ``COSTLINE_TOKEN`` environment variable
2. the platform secure store (macOS Keychain, Linux Secret Service)
3. Claude Code's ``~/.claude/.credentials.json``
4. costline's own ``auth.json`` in the user config directory

A missing or unreadable source is expected, so each one reports a
``SourceAttempt`` rather than raising; only when every source comes up empty
does ``resolve`` raise ``NoCredentialsError``.
"""

import json
import logging
import os
import subprocess
import sys
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Callable, Iterator, Mapping, Sequence

import httpx
from pydantic import BaseModel, ConfigDict, ValidationError

from .cache import atomic_write
from .config import (
    AUTH_FILE,
    CLAUDE_CREDENTIALS,
    KEYCHAIN_SERVICE,
    KEYCHAIN_TIMEOUT,
    REFRESH_TIMEOUT,
    REFRESH_URL,
    TOKEN_ENV_VAR,
)
from .models import TokenResult

logger = logging.getLogger("costline")

# Runs an external program and returns its stdout; raises on failure.
CommandRunner = Callable[[Sequence[str], float], bytes]

SECURE_STORES = {
    "darwin": ("macOS Keychain", ["security", "find-generic-password", "-s", KEYCHAIN_SERVICE, "-w"]),
    "linux": ("Secret Service", ["secret-tool", "lookup", "service", KEYCHAIN_SERVICE]),
}


class NoCredentialsError(Exception):
    """No credential source could provide a token."""

    def __init__(self, attempts: list["SourceAttempt"]):
        self.attempts = attempts
        tried = "; ".join(f"{a.source}: {a.reason}" for a in attempts)
        super().__init__(f"no credentials found: tried {tried}")


class TokenRefreshError(Exception):
    pass


def run_command(args: Sequence[str], timeout: float) -> bytes:
    return subprocess.run(list(args), capture_output=True, check=True, timeout=timeout).stdout


class AuthConfig(BaseModel):
    """Where to look for credentials. Defaults match the running system."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    run_command: CommandRunner | None = run_command
    platform: str = sys.platform
    env: Mapping[str, str] | None = None
    home: Path | None = None
    auth_file: Path | None = None


class SourceAttempt(BaseModel):
    """Outcome of trying one credential source: a token or a reason it failed."""

    source: str
    token: TokenResult | None = None
    reason: str = ""

    @classmethod
    def failed(cls, source: str, reason) -> "SourceAttempt":
        return cls(source=source, reason=str(reason))


def parse_credentials(raw: str, source: str) -> SourceAttempt:
    """Parse ``{"claudeAiOauth": {...}}`` credential JSON."""
    try:
        creds = json.loads(raw)
    except json.JSONDecodeError as e:
        return SourceAttempt.failed(source, f"parse: {e}")

    oauth = creds.get("claudeAiOauth") if isinstance(creds, dict) else None
    if not isinstance(oauth, dict) or not oauth.get("accessToken"):
        return SourceAttempt.failed(source, "no OAuth token found")

    try:
        expires_at = None
        expires_ms = oauth.get("expiresAt") or 0
        if isinstance(expires_ms, (int, float)) and expires_ms > 0:
            expires_at = datetime.fromtimestamp(expires_ms / 1000, UTC)

        token = TokenResult(
            access_token=oauth["accessToken"],
            refresh_token=oauth.get("refreshToken") or "",
            expires_at=expires_at,
            source=source,
        )
    except (ValidationError, ValueError, OverflowError, OSError) as e:
        return SourceAttempt.failed(source, f"parse: {e}")
    return SourceAttempt(source=source, token=token)


def _from_env(cfg: AuthConfig) -> SourceAttempt:
    env = os.environ if cfg.env is None else cfg.env
    token = env.get(TOKEN_ENV_VAR, "")
    if not token:
        return SourceAttempt.failed(f"{TOKEN_ENV_VAR} env var", "not set")
    return SourceAttempt(source=TOKEN_ENV_VAR, token=TokenResult(access_token=token, source=TOKEN_ENV_VAR))


def _from_secure_store(cfg: AuthConfig) -> SourceAttempt | None:
    if cfg.platform not in SECURE_STORES:
        return None
    name, args = SECURE_STORES[cfg.platform]
    if cfg.run_command is None:
        return SourceAttempt.failed(name, "no command runner configured")
    try:
        out = cfg.run_command(args, KEYCHAIN_TIMEOUT)
    except (OSError, subprocess.SubprocessError) as e:
        return SourceAttempt.failed(name, f"keychain read: {e}")
    return parse_credentials(out.decode("utf-8", errors="replace").strip(), name)


def _from_file(path: Path, source: str) -> SourceAttempt:
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        return SourceAttempt.failed(source, e.strerror or e)
    except UnicodeDecodeError as e:
        return SourceAttempt.failed(source, f"parse: {e}")
    return parse_credentials(raw, source)


def _from_claude_credentials(cfg: AuthConfig) -> SourceAttempt:
    home = cfg.home or Path.home()
    return _from_file(home / CLAUDE_CREDENTIALS, "~/.claude/.credentials.json")


def _from_auth_file(cfg: AuthConfig) -> SourceAttempt:
    path = cfg.auth_file or AUTH_FILE
    return _from_file(path, str(path))


def attempts(cfg: AuthConfig) -> Iterator[SourceAttempt]:
    """Try each credential source in priority order."""
    yield _from_env(cfg)
    secure = _from_secure_store(cfg)
    if secure is not None:
        yield secure
    yield _from_claude_credentials(cfg)
    yield _from_auth_file(cfg)


def resolve(cfg: AuthConfig | None = None) -> TokenResult:
    """Return the first available token. Raises NoCredentialsError."""
    tried = []
    for attempt in attempts(cfg or AuthConfig()):
        if attempt.token is not None:
            logger.debug("Using credentials from %s", attempt.source)
            return attempt.token
        tried.append(attempt)
    raise NoCredentialsError(tried)


# --- Token persistence and refresh ---


def save_token(result: TokenResult, path: Path | None = None) -> Path:
    """Write a token to costline's auth file (0600). Returns the path written."""
    path = path or AUTH_FILE
    path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
    oauth = {"accessToken": result.access_token}
    if result.refresh_token:
        oauth["refreshToken"] = result.refresh_token
    if result.expires_at is not None:
        oauth["expiresAt"] = int(result.expires_at.timestamp() * 1000)
    atomic_write(path, json.dumps({"claudeAiOauth": oauth}, indent=2).encode())
    return path


def refresh_token(
    refresh_tok: str,
    *,
    url: str = REFRESH_URL,
    transport: httpx.BaseTransport | None = None,
    auth_file: Path | None = None,
) -> TokenResult:
    """Exchange a refresh token for a new access token.

    The new token is cached in costline's auth file; Claude Code's own
    credential stores are never written.
    """
    if not refresh_tok:
        raise TokenRefreshError("no refresh token available; run 'claude auth' to re-authenticate")

    try:
        with httpx.Client(timeout=REFRESH_TIMEOUT, transport=transport) as client:
            resp = client.post(url, json={"grant_type": "refresh_token", "refresh_token": refresh_tok})
    except httpx.HTTPError as e:
        raise TokenRefreshError(f"refresh request: {e}") from e

    if resp.status_code != 200:
        logger.error("Token refresh failed with status %d; run 'claude auth' to re-authenticate", resp.status_code)
        raise TokenRefreshError(f"refresh failed (HTTP {resp.status_code}); run 'claude auth' to re-authenticate")

    try:
        data = resp.json()
    except ValueError as e:
        raise TokenRefreshError(f"parse refresh response: {e}") from e

    access = data.get("access_token") if isinstance(data, dict) else None
    if not access:
        raise TokenRefreshError("empty access token in refresh response")

    expires_at = None
    expires_in = data.get("expires_in") or 0
    if isinstance(expires_in, (int, float)) and expires_in > 0:
        expires_at = datetime.now(UTC) + timedelta(seconds=expires_in)

    result = TokenResult(
        access_token=access,
        refresh_token=data.get("refresh_token") or "",
        expires_at=expires_at,
        source="token refresh",
    )

    try:
        save_token(result, auth_file)
    except OSError as e:
        logger.warning("Failed to cache refreshed token: %s", e)

    return result
