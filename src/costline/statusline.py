"""Per-invocation wiring of credentials and the cached usage client."""

import logging
from typing import Callable

import httpx

from .auth import (
    AuthConfig,
    CommandRunner,
    NoCredentialsError,
    TokenRefreshError,
    refresh_token,
    resolve,
    run_command,
)
from .cache import CacheStore
from .models import UsageResponse
from .usage import CachedUsageClient, UsageClient

logger = logging.getLogger("costline")

UsageFetcher = Callable[[], UsageResponse]


def build_usage_fetcher(
    runner: CommandRunner | None = run_command,
    *,
    auth_config: AuthConfig | None = None,
    store: CacheStore | None = None,
    transport: httpx.BaseTransport | None = None,
) -> UsageFetcher:
    """Resolve a token and return a fetcher bound to a fresh CachedUsageClient.

    If no credentials exist the returned fetcher raises NoCredentialsError on
    every call, so callers can render an empty state instead of crashing.
    """
    cfg = auth_config or AuthConfig(run_command=runner)
    try:
        creds = resolve(cfg)
    except NoCredentialsError as e:
        logger.warning("Usage API credentials: %s", e)
        err = e

        def fail() -> UsageResponse:
            raise err

        return fail

    token = creds.access_token
    if creds.expired and creds.refresh_token:
        try:
            token = refresh_token(creds.refresh_token, transport=transport, auth_file=cfg.auth_file).access_token
        except TokenRefreshError as e:
            logger.warning("Usage API token refresh: %s", e)

    return CachedUsageClient(UsageClient(token, transport=transport), store=store).fetch
