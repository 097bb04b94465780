"""Claude model pricing, fetched from LiteLLM with a bundled fallback."""

import logging
import re

import httpx
from pydantic import TypeAdapter, ValidationError

from .cache import CacheStore
from .config import LITELLM_URL, PRICING_TIMEOUT, PRICING_TTL
from .models import ModelPricing

logger = logging.getLogger("costline")

PRICING_CACHE_KEY = "pricing"

_VERSION_SUFFIX = re.compile(r"-v\d[\d:]*$")

_pricing_table = TypeAdapter(dict[str, ModelPricing])


def _per_mtok(input_price: float, output_price: float) -> ModelPricing:
    """Pricing from $/MTok; cache writes bill at 1.25x input, cache reads at 0.1x."""
    return ModelPricing(
        input_cost_per_token=input_price / 1_000_000,
        output_cost_per_token=output_price / 1_000_000,
        cache_creation_input_token_cost=input_price * 1.25 / 1_000_000,
        cache_read_input_token_cost=input_price * 0.1 / 1_000_000,
        max_input_tokens=200_000,
    )


FALLBACK_PRICING: dict[str, ModelPricing] = {
    "claude-opus-4-6": _per_mtok(5.00, 25.00),
    "claude-opus-4-5": _per_mtok(5.00, 25.00),
    "claude-opus-4-1": _per_mtok(15.00, 75.00),
    "claude-opus-4": _per_mtok(15.00, 75.00),
    "claude-sonnet-4-6": _per_mtok(3.00, 15.00),
    "claude-sonnet-4-5": _per_mtok(3.00, 15.00),
    "claude-sonnet-4": _per_mtok(3.00, 15.00),
    "claude-3-7-sonnet": _per_mtok(3.00, 15.00),
    "claude-3-5-sonnet": _per_mtok(3.00, 15.00),
    "claude-haiku-4-5": _per_mtok(1.00, 5.00),
    "claude-3-5-haiku": _per_mtok(0.80, 4.00),
    "claude-3-haiku": _per_mtok(0.25, 1.25),
    "claude-3-opus": _per_mtok(15.00, 75.00),
}


def normalize_model_key(key: str) -> str:
    """Reduce a LiteLLM key to a bare model name.

    "us.anthropic.claude-opus-4-6-v1"             -> "claude-opus-4-6"
    "azure_ai/claude-haiku-4-5"                   -> "claude-haiku-4-5"
    "anthropic.claude-3-5-sonnet-20241022-v2:0"   -> "claude-3-5-sonnet-20241022"
    "vertex_ai/claude-haiku-4-5@20251001"         -> "claude-haiku-4-5"
    """
    key = key.rsplit(".", 1)[-1]
    key = key.rsplit("/", 1)[-1]
    key = _VERSION_SUFFIX.sub("", key)
    return key.split("@", 1)[0]


def filter_claude(raw: dict) -> dict[str, ModelPricing]:
    result = {}
    for key, value in raw.items():
        if "claude" not in key.lower() or not isinstance(value, dict):
            continue
        try:
            pricing = ModelPricing.model_validate(value)
        except ValidationError:
            continue
        if not pricing.input_cost_per_token and not pricing.output_cost_per_token:
            continue
        # First entry wins; later ones are regional duplicates.
        result.setdefault(normalize_model_key(key), pricing)
    return result


def fetch(transport: httpx.BaseTransport | None = None) -> dict[str, ModelPricing]:
    with httpx.Client(timeout=PRICING_TIMEOUT, transport=transport, follow_redirects=True) as client:
        resp = client.get(LITELLM_URL)
        resp.raise_for_status()
        raw = resp.json()
    if not isinstance(raw, dict):
        raise ValueError("pricing data is not a JSON object")
    return filter_claude(raw)


def get_pricing(
    *,
    store: CacheStore | None = None,
    transport: httpx.BaseTransport | None = None,
) -> dict[str, ModelPricing]:
    """Current pricing table: cached, then LiteLLM, then the bundled fallback."""
    store = store or CacheStore()
    cached = store.get(PRICING_CACHE_KEY)
    if cached is not None:
        try:
            return _pricing_table.validate_python(cached)
        except ValidationError:
            pass

    try:
        data = fetch(transport)
    except (httpx.HTTPError, ValueError) as e:
        logger.warning("Pricing: using bundled fallback (%s)", e)
        return dict(FALLBACK_PRICING)

    try:
        store.set(PRICING_CACHE_KEY, _pricing_table.dump_python(data), PRICING_TTL)
    except OSError as e:
        logger.warning("Pricing cache write: %s", e)
    return data


def lookup(data: dict[str, ModelPricing], model_id: str) -> ModelPricing | None:
    """Pricing for a model ID: exact match, else the first prefix match either way.

    When several keys match by prefix the table's insertion order decides.
    """
    if not model_id:
        return None
    if model_id in data:
        return data[model_id]
    for key, pricing in data.items():
        if model_id.startswith(key) or key.startswith(model_id):
            return pricing
    return None
