"""LLM client: Google Gemini and OpenAI chat completions.

Used for script writing, character extraction and image prompt drafting.
Every caller has a static fallback, so this module only has to fail loudly
and cleanly.

Error handling:
  - 400-level errors (bad request, auth) are NOT retried; they won't fix themselves.
  - 429 (rate limit) and 5xx (server errors) ARE retried with exponential backoff.
  - All errors are extracted into clean, readable messages.
"""

from __future__ import annotations

import json
import logging
import re
import socket
from typing import Any

from tenacity import (
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

import config
from pipeline.provider_registry import is_usable_api_key

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Error helpers
# ---------------------------------------------------------------------------

class LLMError(Exception):
    """Clean error from an LLM call with a human-readable message."""

    def __init__(self, message: str, provider: str = "", model: str = "", cause: Exception | None = None):
        self.provider = provider
        self.model = model
        self.cause = cause
        super().__init__(message)


def _is_retryable(exc: BaseException) -> bool:
    """Return True if the error is transient and worth retrying.

    Retried: rate limits, server errors, connection and timeout errors.
    Not retried: bad requests, auth errors, unknown models, LLMError.
    """
    from openai import (
        APIConnectionError,
        APITimeoutError,
        InternalServerError,
        RateLimitError,
    )
    if isinstance(exc, (RateLimitError, InternalServerError, APIConnectionError, APITimeoutError)):
        return True

    from google.genai import errors as genai_errors
    if isinstance(exc, genai_errors.ServerError):
        return True
    if isinstance(exc, genai_errors.ClientError) and getattr(exc, "code", None) == 429:
        return True

    if isinstance(exc, (ConnectionError, TimeoutError, socket.timeout)):
        return True

    return False


def _extract_error_message(exc: Exception, provider: str, model: str) -> str:
    """Pull out a clean, human-readable error message from an API exception."""

    msg = str(exc)

    from openai import AuthenticationError, BadRequestError, NotFoundError, PermissionDeniedError
    if isinstance(exc, BadRequestError):
        body = getattr(exc, "body", None)
        if isinstance(body, dict):
            inner = body.get("error", {})
            msg = inner.get("message", msg)
        return f"[{provider}/{model}] Bad request: {msg}"
    if isinstance(exc, AuthenticationError):
        return f"[{provider}] Authentication failed. Check your OPENAI_API_KEY."
    if isinstance(exc, NotFoundError):
        return f"[{provider}] Model '{model}' not found. Check the model name in config.py or .env."
    if isinstance(exc, PermissionDeniedError):
        return f"[{provider}] Permission denied. Your API key may not have access to '{model}'."

    from google.genai import errors as genai_errors
    if isinstance(exc, genai_errors.ClientError):
        code = getattr(exc, "code", None)
        if code in (401, 403):
            return f"[{provider}] Authentication failed. Check your GOOGLE_API_KEY."
        if code == 404:
            return f"[{provider}] Model '{model}' not found."

    # Generic fallback; truncate very long messages
    if len(msg) > 300:
        msg = msg[:300] + "..."
    return f"[{provider}/{model}] {msg}"


# ---------------------------------------------------------------------------
# Provider clients (lazy-init, rebuilt when the key changes)
# ---------------------------------------------------------------------------

_openai_client = None
_openai_client_key = ""
_google_client = None
_google_client_key = ""


def _get_openai():
    global _openai_client, _openai_client_key
    if not is_usable_api_key(config.OPENAI_API_KEY):
        raise LLMError(
            "OPENAI_API_KEY is not set. Add it to your .env file.",
            provider="openai",
        )
    if _openai_client is None or _openai_client_key != config.OPENAI_API_KEY:
        from openai import OpenAI
        _openai_client = OpenAI(api_key=config.OPENAI_API_KEY)
        _openai_client_key = config.OPENAI_API_KEY
    return _openai_client


def _get_google():
    global _google_client, _google_client_key
    if not is_usable_api_key(config.GOOGLE_API_KEY):
        raise LLMError(
            "GOOGLE_API_KEY is not set. Add it to your .env file.",
            provider="google",
        )
    if _google_client is None or _google_client_key != config.GOOGLE_API_KEY:
        from google import genai
        _google_client = genai.Client(api_key=config.GOOGLE_API_KEY)
        _google_client_key = config.GOOGLE_API_KEY
    return _google_client


# ---------------------------------------------------------------------------
# Provider-specific call implementations
# ---------------------------------------------------------------------------

# Models that require max_completion_tokens instead of the legacy max_tokens.
_OPENAI_NEW_TOKEN_PARAM_PREFIXES = (
    "gpt-4o", "gpt-4.1", "gpt-4.5", "gpt-5", "o1", "o3", "o4",
)


def _call_openai(
    system_prompt: str,
    user_prompt: str,
    model: str,
    temperature: float,
    max_tokens: int,
) -> str:
    client = _get_openai()
    use_new_param = any(model.startswith(p) for p in _OPENAI_NEW_TOKEN_PARAM_PREFIXES)

    kwargs: dict = {
        "model": model,
        "messages": [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ],
        "temperature": temperature,
    }
    if use_new_param:
        kwargs["max_completion_tokens"] = max_tokens
    else:
        kwargs["max_tokens"] = max_tokens

    response = client.chat.completions.create(**kwargs)
    content = ""
    if response.choices:
        content = response.choices[0].message.content or ""
    logger.info("OpenAI [%s]: %d chars, usage=%s", model, len(content), getattr(response, "usage", None))
    return content


def _call_google(
    system_prompt: str,
    user_prompt: str,
    model: str,
    temperature: float,
    max_tokens: int,
) -> str:
    from google.genai import types

    client = _get_google()
    cfg = types.GenerateContentConfig(
        system_instruction=system_prompt,
        temperature=temperature,
        max_output_tokens=max_tokens,
    )
    response = client.models.generate_content(model=model, contents=user_prompt, config=cfg)
    content = response.text or ""
    logger.info("Google [%s]: %d chars, usage_meta=%s", model, len(content), getattr(response, "usage_metadata", None))
    return content


# Provider dispatch
_PROVIDERS = {
    "openai": _call_openai,
    "google": _call_google,
}

_DEFAULT_MODELS = {
    "openai": lambda: config.OPENAI_TEXT_MODEL,
    "google": lambda: config.GOOGLE_TEXT_MODEL,
}

_API_KEYS = {
    "openai": lambda: config.OPENAI_API_KEY,
    "google": lambda: config.GOOGLE_API_KEY,
}


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def is_llm_configured(provider: str | None = None) -> bool:
    provider = provider or config.DEFAULT_TEXT_PROVIDER
    key_fn = _API_KEYS.get(provider)
    if key_fn is None or config.FORCE_MOCK_GENERATION:
        return False
    return is_usable_api_key(key_fn())


@retry(
    retry=retry_if_exception(_is_retryable),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=30),
    reraise=True,
)
def _call_with_retry(
    call_fn,
    system_prompt: str,
    user_prompt: str,
    provider: str,
    model: str,
    temperature: float,
    max_tokens: int,
) -> str:
    try:
        return call_fn(system_prompt, user_prompt, model, temperature, max_tokens)
    except LLMError:
        raise
    except Exception as exc:
        clean_msg = _extract_error_message(exc, provider, model)
        logger.error("LLM call failed: %s", clean_msg)
        if _is_retryable(exc):
            raise  # let tenacity retry
        raise LLMError(clean_msg, provider=provider, model=model, cause=exc) from exc


def call_llm(
    system_prompt: str,
    user_prompt: str,
    provider: str | None = None,
    model: str | None = None,
    temperature: float = 0.7,
    max_tokens: int = 4_000,
) -> str:
    """Call an LLM and return raw text. Provider-agnostic.

    Retries on transient errors (rate limits, server errors). Every failure,
    including a transient one that outlasts the retries, surfaces as LLMError.
    """
    provider = provider or config.DEFAULT_TEXT_PROVIDER
    call_fn = _PROVIDERS.get(provider)
    if not call_fn:
        raise LLMError(
            f"Unknown provider: '{provider}'. Available: {list(_PROVIDERS.keys())}",
            provider=provider,
            model=model or "",
        )
    model = model or _DEFAULT_MODELS[provider]()
    if config.FORCE_MOCK_GENERATION:
        raise LLMError("Text generation disabled (FORCE_MOCK_GENERATION).", provider=provider, model=model)

    logger.info("LLM call: provider=%s, model=%s, temp=%.1f", provider, model, temperature)
    try:
        return _call_with_retry(call_fn, system_prompt, user_prompt, provider, model, temperature, max_tokens)
    except LLMError:
        raise
    except Exception as exc:
        clean_msg = _extract_error_message(exc, provider, model)
        raise LLMError(f"{clean_msg} (gave up after retries)", provider=provider, model=model, cause=exc) from exc


def strip_code_fences(raw: str) -> str:
    cleaned = str(raw or "").strip()
    cleaned = re.sub(r"^```\w*\n?", "", cleaned)
    cleaned = re.sub(r"\n?```\s*$", "", cleaned)
    return cleaned.strip()


def parse_json_payload(raw: str) -> Any:
    """Parse JSON with fallback repair for common LLM quirks.

    Handles: markdown fences, trailing commas, unquoted numeric keys, and
    prose around the payload. Raises ValueError when nothing parses.
    """
    cleaned = strip_code_fences(raw)

    try:
        return json.loads(cleaned)
    except json.JSONDecodeError:
        pass

    def _repair(text: str) -> str:
        text = re.sub(r'(?<=[\{,])\s*(\d+)\s*:', r' "\1":', text)
        return re.sub(r',\s*([}\]])', r'\1', text)

    try:
        return json.loads(_repair(cleaned))
    except json.JSONDecodeError:
        pass

    # Find the outermost array or object in the string (strip preamble/postamble)
    for pattern in (r"\[.*\]", r"\{.*\}"):
        match = re.search(pattern, cleaned, re.DOTALL)
        if match:
            try:
                return json.loads(_repair(match.group(0)))
            except json.JSONDecodeError:
                continue

    raise ValueError(f"Response is not valid JSON: {cleaned[:120]!r}")


def call_llm_json(system_prompt: str, user_prompt: str, **kwargs) -> Any:
    """`call_llm` followed by `parse_json_payload`; unparseable output raises LLMError."""
    raw = call_llm(system_prompt, user_prompt, **kwargs)
    try:
        return parse_json_payload(raw)
    except ValueError as exc:
        raise LLMError(str(exc), provider=kwargs.get("provider") or config.DEFAULT_TEXT_PROVIDER, cause=exc) from exc


def test_llm_connection() -> dict[str, Any]:
    """Round-trip a trivial prompt and report whether the text model answers."""
    try:
        reply = call_llm(
            "You are a connectivity check.",
            'Respond with "Connection successful" if you can read this message.',
            temperature=0,
            max_tokens=50,
        )
    except Exception as exc:
        logger.warning("LLM connection test failed: %s", exc)
        return {"success": False, "message": f"AI connection failed: {exc}"}

    if "successful" in reply.lower():
        return {"success": True, "message": "AI connection is working correctly!"}
    return {"success": True, "message": "AI is responding but may have issues."}


# Not a test case.
test_llm_connection.__test__ = False
