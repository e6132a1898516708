"""REST helpers for the Gemini ``generateContent`` endpoint."""

from typing import Any, Dict, Optional

import aiohttp

from exceptions import (
    ErrorKind,
    GenerationTimeoutError,
    ProviderError,
    RateLimitError,
    TokenLimitError,
)

BASE_URL = "https://generativelanguage.googleapis.com/v1beta"


def _error_message(data: Any, fallback: str) -> str:
    if isinstance(data, dict):
        err = data.get("error")
        if isinstance(err, dict):
            return str(err.get("message") or err)
        if err:
            return str(err)
    return fallback


def _handle_error(status: int, data: Any) -> None:
    """Map an HTTP error status to the exception hierarchy."""
    msg = _error_message(data, f"HTTP {status}")
    if status == 429:
        raise RateLimitError(msg)
    if status in (408, 504):
        raise GenerationTimeoutError(msg)
    if status in (500, 502, 503):
        raise ProviderError(msg, kind=ErrorKind.SERVICE_UNAVAILABLE)
    if status == 400 and "token" in msg.lower():
        raise TokenLimitError(msg)
    raise ProviderError(msg)


async def _post(session: aiohttp.ClientSession, url: str, headers: Dict[str, str], payload: Dict[str, Any]):
    async with session.post(url, headers=headers, json=payload) as resp:
        if resp.status >= 400:
            try:
                data = await resp.json(content_type=None)
            except (aiohttp.ContentTypeError, ValueError):
                data = await resp.text()
            _handle_error(resp.status, data)
        return await resp.json(content_type=None)


async def generate_content(
    api_key: str,
    model: str,
    payload: Dict[str, Any],
    *,
    base_url: Optional[str] = None,
    session: Optional[aiohttp.ClientSession] = None,
) -> Dict[str, Any]:
    """POST a ``generateContent`` request and return the decoded response."""
    url = f"{(base_url or BASE_URL).rstrip('/')}/models/{model}:generateContent"
    headers = {"x-goog-api-key": api_key, "Content-Type": "application/json"}
    try:
        if session is not None:
            return await _post(session, url, headers, payload)
        async with aiohttp.ClientSession() as owned:
            return await _post(owned, url, headers, payload)
    except aiohttp.ClientError as e:
        raise ProviderError(f"Network error: {e}", kind=ErrorKind.NETWORK_ERROR) from e


def extract_text(data: Dict[str, Any]) -> str:
    """Concatenate the text parts of the first candidate."""
    candidates = data.get("candidates") or []
    if not candidates:
        feedback = data.get("promptFeedback") or {}
        reason = feedback.get("blockReason")
        raise ProviderError(f"No candidates returned{f' (blocked: {reason})' if reason else ''}")
    parts = (candidates[0].get("content") or {}).get("parts") or []
    return "".join(p.get("text", "") for p in parts)
