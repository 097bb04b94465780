"""Client for the Anthropic OAuth usage API."""

import logging
import time
from datetime import datetime
from typing import Callable

import httpx
from pydantic import ValidationError

from .cache import CacheStore
from .config import (
    BETA_HEADER,
    MAX_CONSEC_FAILURES,
    RETRY_DELAY,
    USAGE_GRACE_PERIOD,
    USAGE_TIMEOUT,
    USAGE_TTL,
    USAGE_URL,
)
from .models import UsageResponse, _utcnow

logger = logging.getLogger("costline")

USAGE_CACHE_KEY = "usage"


class UsageAPIError(Exception):
    pass


class UnauthorizedError(UsageAPIError):
    """The API rejected the token itself (HTTP 401/403)."""

    def __init__(self, status_code: int):
        self.status_code = status_code
        super().__init__(f"usage API: unauthorized (HTTP {status_code}); run 'costline auth'")


class UsageClient:
    """Fetches usage windows with a bearer token. Retries once on 5xx."""

    def __init__(
        self,
        token: str,
        *,
        url: str = USAGE_URL,
        transport: httpx.BaseTransport | None = None,
        retry_delay: float = RETRY_DELAY,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.token = token
        self.url = url
        self.retry_delay = retry_delay
        self._sleep = sleep
        self._transport = transport

    def _request(self, client: httpx.Client) -> httpx.Response:
        headers = {"Authorization": f"Bearer {self.token}", "anthropic-beta": BETA_HEADER}
        try:
            return client.get(self.url, headers=headers)
        except httpx.TimeoutException as e:
            raise UsageAPIError(f"usage API: timeout: {e}") from e
        except httpx.HTTPError as e:
            raise UsageAPIError(f"usage API: request: {e}") from e

    def fetch(self) -> UsageResponse:
        with httpx.Client(timeout=httpx.Timeout(USAGE_TIMEOUT), transport=self._transport) as client:
            resp = self._request(client)
            if resp.status_code >= 500:
                logger.debug("Usage API returned %d; retrying once", resp.status_code)
                self._sleep(self.retry_delay)
                resp = self._request(client)

        if resp.status_code in (401, 403):
            logger.error("Usage API: %d - run 'costline auth' to re-authenticate", resp.status_code)
            raise UnauthorizedError(resp.status_code)

        if resp.status_code != 200:
            logger.error("Usage API: unexpected status %d", resp.status_code)
            raise UsageAPIError(f"usage API: HTTP {resp.status_code}")

        try:
            return UsageResponse.model_validate_json(resp.content)
        except ValidationError as e:
            raise UsageAPIError(f"usage API: parse response: {e}") from e


class CachedUsageClient:
    """Wraps UsageClient with a short disk cache and a stale-data grace period.

    One instance lives for one invocation; it remembers the last good response
    so that a failing fetch shortly after a success still has data to show.
    """

    def __init__(
        self,
        client: UsageClient,
        *,
        store: CacheStore | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.client = client
        self.store = store or CacheStore()
        self._clock = clock or _utcnow
        self.consec_fails = 0
        self.last_good: UsageResponse | None = None
        self.last_good_time: datetime | None = None

    def _cached(self) -> UsageResponse | None:
        cached = self.store.get(USAGE_CACHE_KEY)
        if cached is None:
            return None
        try:
            return UsageResponse.model_validate(cached)
        except ValidationError:
            return None

    def fetch(self) -> UsageResponse:
        usage = self._cached()
        if usage is not None:
            return usage

        try:
            usage = self.client.fetch()
        except UsageAPIError:
            self.consec_fails += 1
            if self.consec_fails >= MAX_CONSEC_FAILURES:
                logger.warning(
                    "Usage API: %d consecutive failures; run 'costline auth --status'", self.consec_fails
                )
            if self.last_good is not None and self._clock() - self.last_good_time < USAGE_GRACE_PERIOD:
                logger.warning("Usage API: using stale data (grace period)")
                return self.last_good
            raise

        self.consec_fails = 0
        self.last_good = usage
        self.last_good_time = self._clock()

        try:
            self.store.set(USAGE_CACHE_KEY, usage.model_dump(mode="json"), USAGE_TTL)
        except OSError as e:
            logger.warning("Failed to cache usage data: %s", e)

        return usage
