"""Resilient LLM access for feedback and diagnostic insights.

Every model call goes through resilient_llm_call(), which layers a response
cache, a per-provider circuit breaker, tenacity retries on transient errors
and a token/cost estimate around one of the provider adapters below.
ask_json() picks the configured provider and decodes the JSON object the
prompts ask for.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import re
import threading
import time
from collections import OrderedDict
from dataclasses import asdict, dataclass

from flask import current_app, has_app_context
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)

DEFAULT_PROVIDER = "openai"
DEFAULT_MODEL = "gpt-4o"
MAX_OUTPUT_TOKENS = 1000


# ── Response cache ──────────────────────────────────────────

class ResponseCache:
    """Expiring LRU cache of model responses.

    Entries are kept in recency order; when full, the least recently used
    entry is dropped. Expired entries are removed lazily on read or by
    purge_expired().
    """

    def __init__(self, max_entries: int = 500) -> None:
        self.max_entries = max_entries
        self.hits = 0
        self.misses = 0
        self._entries: OrderedDict[str, tuple[float, str]] = OrderedDict()
        self._lock = threading.Lock()

    @staticmethod
    def key_for(provider: str, model: str, system: str, prompt: str) -> str:
        digest = hashlib.sha256()
        for part in (provider, model, system, prompt):
            digest.update(part.encode())
            digest.update(b"\x00")
        return digest.hexdigest()

    def get(self, key: str) -> str | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or entry[0] <= time.monotonic():
                self._entries.pop(key, None)
                self.misses += 1
                return None
            self._entries.move_to_end(key)
            self.hits += 1
            return entry[1]

    def put(self, key: str, value: str, ttl: float) -> None:
        with self._lock:
            self._entries[key] = (time.monotonic() + ttl, value)
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)

    def purge_expired(self) -> int:
        now = time.monotonic()
        with self._lock:
            stale = [k for k, (expires, _) in self._entries.items() if expires <= now]
            for k in stale:
                del self._entries[k]
            return len(stale)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self.hits = self.misses = 0

    def __len__(self) -> int:
        return len(self._entries)


# ── Circuit breaker ─────────────────────────────────────────

class CircuitBreaker:
    """Stops calling a provider after repeated failures.

    A provider trips after `threshold` consecutive failures. While tripped,
    calls are refused for `cooldown` seconds; after that one trial call is
    let through (half open) and its outcome closes or re-trips the circuit.
    """

    def __init__(self, threshold: int = 3, cooldown: float = 60.0) -> None:
        self.threshold = threshold
        self.cooldown = cooldown
        self._failures: dict[str, int] = {}
        self._tripped_at: dict[str, float] = {}
        self._lock = threading.Lock()

    def state(self, provider: str) -> str:
        with self._lock:
            tripped_at = self._tripped_at.get(provider)
            if tripped_at is None:
                return "closed"
            if time.monotonic() - tripped_at < self.cooldown:
                return "open"
            return "half_open"

    def allows(self, provider: str) -> bool:
        return self.state(provider) != "open"

    def record_success(self, provider: str) -> None:
        with self._lock:
            self._failures.pop(provider, None)
            self._tripped_at.pop(provider, None)

    def record_failure(self, provider: str) -> None:
        with self._lock:
            count = self._failures.get(provider, 0) + 1
            self._failures[provider] = count
            if count >= self.threshold:
                if provider not in self._tripped_at:
                    logger.warning("circuit opened for provider=%s after %d failures", provider, count)
                self._tripped_at[provider] = time.monotonic()

    def reset(self) -> None:
        with self._lock:
            self._failures.clear()
            self._tripped_at.clear()


class CircuitOpenError(RuntimeError):
    """Raised instead of calling a provider whose circuit is open."""


# ── Usage estimate ──────────────────────────────────────────

# USD per 1M tokens as (input, output)
MODEL_PRICING: dict[str, tuple[float, float]] = {
    "gpt-4o": (2.50, 10.00),
    "gpt-4o-mini": (0.15, 0.60),
    "claude-sonnet-4-20250514": (3.00, 15.00),
    "gemini-2.0-flash": (0.10, 0.40),
}
FALLBACK_PRICING = (1.00, 1.00)


@dataclass
class Usage:
    provider: str
    model: str
    input_tokens_est: int
    output_tokens_est: int
    cost_estimate_usd: float
    latency_ms: int
    cache_hit: bool = False

    @property
    def total_tokens_est(self) -> int:
        return self.input_tokens_est + self.output_tokens_est

    def as_dict(self) -> dict:
        data = asdict(self)
        data["total_tokens_est"] = self.total_tokens_est
        return data


def estimate_tokens(text: str) -> int:
    # roughly 4 characters per token for English prose
    return max(1, len(text) // 4) if text else 0


def estimate_usage(provider: str, model: str, input_text: str, output_text: str,
                   latency_ms: int) -> Usage:
    tokens_in = estimate_tokens(input_text)
    tokens_out = estimate_tokens(output_text)
    price_in, price_out = MODEL_PRICING.get(model, FALLBACK_PRICING)
    cost = (tokens_in * price_in + tokens_out * price_out) / 1_000_000
    return Usage(provider, model, tokens_in, tokens_out, round(cost, 6), latency_ms)


# ── Providers ───────────────────────────────────────────────

def _api_key(name: str) -> str:
    if has_app_context() and current_app.config.get(name):
        return current_app.config[name]
    return os.getenv(name, "")


def _openai_complete(model: str, prompt: str, system: str) -> str:
    from openai import OpenAI

    client = OpenAI(api_key=_api_key("OPENAI_API_KEY"))
    messages = [{"role": "system", "content": system}] if system else []
    messages.append({"role": "user", "content": prompt})
    response = client.chat.completions.create(
        model=model, messages=messages, temperature=0.7, max_tokens=MAX_OUTPUT_TOKENS,
    )
    return response.choices[0].message.content or ""


def _claude_complete(model: str, prompt: str, system: str) -> str:
    import anthropic

    client = anthropic.Anthropic(api_key=_api_key("ANTHROPIC_API_KEY"))
    kwargs: dict = {
        "model": model,
        "max_tokens": MAX_OUTPUT_TOKENS,
        "messages": [{"role": "user", "content": prompt}],
    }
    if system:
        kwargs["system"] = system
    response = client.messages.create(**kwargs)
    return "".join(block.text for block in response.content if getattr(block, "type", "text") == "text")


def _gemini_complete(model: str, prompt: str, system: str) -> str:
    import google.generativeai as genai

    genai.configure(api_key=_api_key("GOOGLE_API_KEY"))
    generative = genai.GenerativeModel(model, system_instruction=system or None)
    return generative.generate_content(prompt).text


PROVIDERS = {
    "openai": _openai_complete,
    "claude": _claude_complete,
    "gemini": _gemini_complete,
}


def _do_call(provider: str, model: str, prompt: str, system: str) -> str:
    """One raw provider request; no cache, breaker or retry."""
    try:
        complete = PROVIDERS[provider]
    except KeyError:
        raise ValueError(f"Unknown AI provider: {provider}") from None
    return complete(model, prompt, system)


# ── Retry ───────────────────────────────────────────────────

RETRYABLE_STATUS = {408, 409, 429, 500, 502, 503, 504, 529}


class TransientLLMError(Exception):
    """A provider failure worth retrying (rate limit, overload, network)."""


def is_transient(exc: BaseException) -> bool:
    status = getattr(exc, "status_code", None) or getattr(exc, "code", None)
    if isinstance(status, int):
        return status in RETRYABLE_STATUS
    if isinstance(exc, (ConnectionError, TimeoutError)):
        return True
    name = type(exc).__name__
    return name.endswith(("ConnectionError", "TimeoutError", "RateLimitError", "ServiceUnavailable"))


@retry(
    retry=retry_if_exception_type(TransientLLMError),
    wait=wait_exponential(multiplier=1, min=1, max=20),
    stop=stop_after_attempt(3),
    before_sleep=before_sleep_log(logger, logging.WARNING),
    reraise=True,
)
def _call_with_retry(provider: str, model: str, prompt: str, system: str) -> str:
    try:
        return _do_call(provider, model, prompt, system)
    except Exception as exc:
        if is_transient(exc):
            raise TransientLLMError(f"{provider}: {exc}") from exc
        raise


# ── Entry points ────────────────────────────────────────────

_breaker = CircuitBreaker()
_cache = ResponseCache()


def resilient_llm_call(provider: str, model: str, prompt: str, system: str = "",
                       cache_ttl: int = 0) -> tuple[str, dict]:
    """Call a model with caching, circuit breaking and retries.

    Returns (text, usage) where usage holds token and cost estimates, the
    latency and whether the answer came from the cache. Raises
    CircuitOpenError while the provider is tripped; other provider errors
    propagate after retries are exhausted.
    """
    key = ResponseCache.key_for(provider, model, system, prompt)
    if cache_ttl > 0:
        cached = _cache.get(key)
        if cached is not None:
            return cached, Usage(provider, model, 0, 0, 0.0, 0, cache_hit=True).as_dict()

    if not _breaker.allows(provider):
        raise CircuitOpenError(f"AI provider {provider} is temporarily unavailable")

    started = time.monotonic()
    try:
        text = _call_with_retry(provider, model, prompt, system)
    except Exception:
        _breaker.record_failure(provider)
        raise
    _breaker.record_success(provider)

    if cache_ttl > 0:
        _cache.put(key, text, cache_ttl)

    latency_ms = int((time.monotonic() - started) * 1000)
    return text, estimate_usage(provider, model, system + prompt, text, latency_ms).as_dict()


_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


def parse_ai_json(text: str):
    """Decode JSON returned by a model, tolerating ```json fences around it.

    Raises ValueError when the text is not valid JSON.
    """
    cleaned = _FENCE_RE.sub("", (text or "").strip())
    return json.loads(cleaned)


def configured_model() -> tuple[str, str]:
    """(provider, model) from app config, falling back to the environment."""
    if has_app_context():
        return (
            current_app.config.get("AI_PROVIDER", DEFAULT_PROVIDER),
            current_app.config.get("AI_MODEL", DEFAULT_MODEL),
        )
    return os.getenv("AI_PROVIDER", DEFAULT_PROVIDER), os.getenv("AI_MODEL", DEFAULT_MODEL)


def ask_json(prompt: str, system: str = "", cache_ttl: int = 0):
    """Resilient call on the configured provider, decoded as JSON.

    Provider errors propagate; undecodable output raises ValueError.
    """
    provider, model = configured_model()
    text, usage = resilient_llm_call(provider, model, prompt, system=system, cache_ttl=cache_ttl)
    logger.info(
        "llm call provider=%s model=%s tokens=%s cost=%s cache_hit=%s",
        provider, model, usage["total_tokens_est"], usage["cost_estimate_usd"], usage["cache_hit"],
    )
    return parse_ai_json(text)


def get_circuit_breaker() -> CircuitBreaker:
    return _breaker


def get_cache() -> ResponseCache:
    return _cache
