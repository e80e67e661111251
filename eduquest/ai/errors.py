from __future__ import annotations

import json
import logging
from typing import Any, Optional

import requests

_log = logging.getLogger(__name__)

KIND_CONFIGURATION = "configuration"
KIND_CANCELLED = "cancelled"
KIND_TIMEOUT = "timeout"
KIND_RATE_LIMITED = "rate_limited"
KIND_PROVIDER = "provider"
KIND_UNSUPPORTED = "unsupported"
KIND_MALFORMED_RESPONSE = "malformed_response"

_RATE_LIMIT_STATUS = "resource_exhausted"
_RATE_LIMIT_PHRASES = ("quota", "rate limit")


class AiServiceError(Exception):
    kind = KIND_PROVIDER

    def __init__(self, message: str, *, provider: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = str(message or self.kind)
        self.provider = provider
        self.status_code = status_code


class ConfigurationError(AiServiceError):
    kind = KIND_CONFIGURATION


class OperationCancelled(AiServiceError):
    kind = KIND_CANCELLED

    def __init__(self, operation: str = "", message: str = ""):
        text = message or (f"AI operation '{operation}' was cancelled." if operation else "AI operation was cancelled.")
        super().__init__(text)
        self.operation = operation


class OperationTimeout(AiServiceError):
    kind = KIND_TIMEOUT

    def __init__(self, operation: str, timeout_sec: float):
        super().__init__(f"AI operation '{operation}' timed out after {timeout_sec:g} seconds.")
        self.operation = operation
        self.timeout_sec = float(timeout_sec)


class RateLimitedError(AiServiceError):
    kind = KIND_RATE_LIMITED


class ProviderError(AiServiceError):
    kind = KIND_PROVIDER


class UnsupportedFeatureError(ProviderError):
    kind = KIND_UNSUPPORTED


class MalformedResponseError(AiServiceError):
    kind = KIND_MALFORMED_RESPONSE


def _response_error_details(response: Any) -> tuple[str, str]:
    """Return (status, message) from a Gemini or OpenAI error body."""
    if response is None:
        return "", ""
    try:
        body = response.json()
    except Exception:
        _log.debug("error body is not JSON", exc_info=True)
        text = str(getattr(response, "text", "") or "")
        return "", text[:500]
    if not isinstance(body, dict):
        return "", json.dumps(body, ensure_ascii=False)[:500]
    err = body.get("error", body)
    if isinstance(err, str):
        return "", err
    if not isinstance(err, dict):
        return "", ""
    status = str(err.get("status") or err.get("code") or err.get("type") or "")
    message = str(err.get("message") or "")
    return status, message


def is_rate_limit_signature(status_code: Any, status_text: Any, message: Any) -> bool:
    if status_code == 429 or str(status_code) == "429":
        return True
    if str(status_text or "").strip().lower() == _RATE_LIMIT_STATUS:
        return True
    text = str(message or "").lower()
    return any(phrase in text for phrase in _RATE_LIMIT_PHRASES)


def is_rate_limit_error(exc: BaseException) -> bool:
    if isinstance(exc, AiServiceError):
        return exc.kind == KIND_RATE_LIMITED
    return False


def classify_provider_error(exc: BaseException, provider: Optional[str] = None) -> AiServiceError:
    """Map a transport/SDK failure onto the AiServiceError hierarchy."""
    if isinstance(exc, AiServiceError):
        return exc
    if isinstance(exc, requests.HTTPError):
        response = getattr(exc, "response", None)
        status_code = getattr(response, "status_code", None)
        status_text, message = _response_error_details(response)
        detail = message or str(exc)
        text = f"{provider or 'provider'} request failed with status {status_code}: {detail}"
        if is_rate_limit_signature(status_code, status_text, detail):
            return RateLimitedError(text, provider=provider, status_code=status_code)
        return ProviderError(text, provider=provider, status_code=status_code)
    if isinstance(exc, requests.Timeout):
        return ProviderError(f"{provider or 'provider'} request timed out: {exc}", provider=provider)
    # requests.JSONDecodeError is both a RequestException and a ValueError
    if isinstance(exc, (ValueError, KeyError, IndexError, TypeError)):
        return MalformedResponseError(f"{provider or 'provider'} returned an unusable response: {exc}", provider=provider)
    if isinstance(exc, requests.RequestException):
        return ProviderError(f"{provider or 'provider'} request failed: {exc}", provider=provider)
    message = str(exc)
    if is_rate_limit_signature(getattr(exc, "status_code", None), getattr(exc, "status", None), message):
        return RateLimitedError(message, provider=provider)
    return ProviderError(message or exc.__class__.__name__, provider=provider)


HTTP_STATUS_BY_KIND = {
    KIND_CONFIGURATION: 400,
    KIND_CANCELLED: 499,
    KIND_TIMEOUT: 504,
    KIND_RATE_LIMITED: 429,
    KIND_PROVIDER: 502,
    KIND_UNSUPPORTED: 422,
    KIND_MALFORMED_RESPONSE: 502,
}


def http_status_for(exc: AiServiceError) -> int:
    return HTTP_STATUS_BY_KIND.get(exc.kind, 502)
