"""Pydantic models for costline transcripts, credentials and usage data."""

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


def _utcnow():
    return datetime.now(UTC)


class _NullAsDefault(BaseModel):
    """Reads JSON nulls as the field's default instead of failing validation."""

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("*", mode="before")
    @classmethod
    def _null_as_default(cls, value: Any, info: ValidationInfo) -> Any:
        if value is None:
            field = cls.model_fields[info.field_name]
            if not field.is_required():
                return field.get_default(call_default_factory=True)
        return value


# --- Cache ---


class CacheEntry(BaseModel):
    """One persisted cache file."""

    data: Any = None
    expires_at: datetime
    source_mtime: int = 0


# --- Transcripts ---


class Usage(_NullAsDefault):
    """Token counts from an API response."""

    input_tokens: int = 0
    output_tokens: int = 0
    cache_creation_tokens: int = Field(0, alias="cache_creation_input_tokens")
    cache_read_tokens: int = Field(0, alias="cache_read_input_tokens")


class Message(_NullAsDefault):
    model: str = ""
    id: str = ""
    usage: Usage | None = None


class TranscriptRecord(_NullAsDefault):
    """A single line of a Claude Code JSONL transcript."""

    timestamp: datetime | None = None
    session_id: str = Field("", alias="sessionId")
    version: str = ""
    cost_usd: float = Field(0.0, alias="costUSD")
    request_id: str = Field("", alias="requestId")
    cwd: str = ""
    message: Message | None = None

    @field_validator("timestamp")
    @classmethod
    def _as_utc(cls, value: datetime | None) -> datetime | None:
        """Naive timestamps are UTC; aware ones are converted to UTC."""
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        try:
            return value.astimezone(UTC)
        except OverflowError as e:
            raise ValueError(f"timestamp out of range: {value.isoformat()}") from e

    @property
    def is_valid(self) -> bool:
        if self.timestamp is None or self.timestamp.year <= 1 or self.timestamp == EPOCH:
            return False
        return self.message is not None and self.message.usage is not None


class ModelCost(BaseModel):
    display_name: str
    cost: float


# --- Credentials ---


class TokenResult(BaseModel):
    """A resolved OAuth token and where it came from."""

    model_config = ConfigDict(frozen=True)

    access_token: str
    refresh_token: str = ""
    expires_at: datetime | None = None  # None means no known expiry
    source: str = ""

    @property
    def expired(self) -> bool:
        return self.expires_at is not None and _utcnow() > self.expires_at


# --- Usage API ---


class UsageWindow(_NullAsDefault):
    utilization: float = 0.0
    resets_at: str | None = None

    def reset_time(self) -> datetime | None:
        if not self.resets_at:
            return None
        try:
            return datetime.fromisoformat(self.resets_at.replace("Z", "+00:00"))
        except ValueError:
            return None


class ExtraUsage(_NullAsDefault):
    """Overage credits; amounts are in cents."""

    is_enabled: bool = False
    monthly_limit: int | None = None
    used_credits: int | None = None
    utilization: float | None = None

    @property
    def monthly_limit_usd(self) -> float:
        return (self.monthly_limit or 0) / 100

    @property
    def used_credits_usd(self) -> float:
        return (self.used_credits or 0) / 100


class UsageResponse(_NullAsDefault):
    five_hour: UsageWindow | None = None
    seven_day: UsageWindow | None = None
    seven_day_opus: UsageWindow | None = None
    seven_day_sonnet: UsageWindow | None = None
    extra_usage: ExtraUsage | None = None

    def windows(self) -> dict[str, UsageWindow]:
        """Populated usage windows keyed by field name."""
        names = ("five_hour", "seven_day", "seven_day_sonnet", "seven_day_opus")
        return {name: getattr(self, name) for name in names if getattr(self, name) is not None}


# --- Pricing ---


class ModelPricing(_NullAsDefault):
    """Per-token costs for a single model, in USD."""

    input_cost_per_token: float = 0.0
    output_cost_per_token: float = 0.0
    cache_creation_input_token_cost: float = 0.0
    cache_read_input_token_cost: float = 0.0
    max_input_tokens: int = 0
    max_output_tokens: int = 0

    def cost(self, usage: Usage) -> float:
        return (
            usage.input_tokens * self.input_cost_per_token
            + usage.output_tokens * self.output_cost_per_token
            + usage.cache_creation_tokens * self.cache_creation_input_token_cost
            + usage.cache_read_tokens * self.cache_read_input_token_cost
        )
