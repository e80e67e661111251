from __future__ import annotations

import functools
import logging
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, TypeVar

from .cancellation import CancelSignal, is_cancelled, run_with_timeout
from .credentials import Credential
from .errors import ConfigurationError, OperationCancelled, ProviderError, UnsupportedFeatureError
from .retry_policy import DEFAULT_MAX_ATTEMPTS, generate_with_retry

_log = logging.getLogger(__name__)

T = TypeVar("T")

NO_CREDENTIALS_MESSAGE = "API Key is not configured. Please add your own key in Settings to use AI features."


@dataclass(frozen=True)
class OperationDescriptor:
    name: str
    timeout_sec: float
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    cancel: Any = None


class ProviderCall:
    """One credential's view of the providers, with rate-limit retries applied per request."""

    def __init__(
        self,
        adapter: Any,
        credential: Credential,
        cancel: Any,
        *,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        name: str = "",
        sleep: Optional[Callable[[float, Any], None]] = None,
    ):
        self.adapter = adapter
        self.credential = credential
        self.cancel = cancel
        self.max_attempts = max_attempts
        self.name = name
        self._sleep = sleep

    @property
    def provider(self) -> str:
        return self.credential.provider

    def generate(self, req: Any) -> Any:
        return generate_with_retry(
            lambda: self.adapter.generate(req),
            self.max_attempts,
            self.cancel,
            name=self.name,
            sleep=self._sleep,
        )

    def generate_image(self, prompt: str) -> str:
        return generate_with_retry(
            lambda: self.adapter.generate_image(prompt),
            self.max_attempts,
            self.cancel,
            name=f"{self.name}:image" if self.name else "image",
            sleep=self._sleep,
        )


def _run_with_credential(
    gateway: Any,
    credential: Credential,
    run: Callable[[ProviderCall], T],
    op: OperationDescriptor,
    sleep: Optional[Callable[[float, Any], None]],
    scoped: CancelSignal,
) -> T:
    adapter = gateway.adapter_for(credential, scoped)
    try:
        call = ProviderCall(adapter, credential, scoped, max_attempts=op.max_attempts, name=op.name, sleep=sleep)
        return run(call)
    finally:
        close = getattr(adapter, "close", None)
        if callable(close):
            close()


def ensure_credentials(credentials: List[Credential]) -> List[Credential]:
    if not credentials:
        raise ConfigurationError(NO_CREDENTIALS_MESSAGE)
    return credentials


def execute_with_fallbacks(
    credentials: List[Credential],
    run: Callable[[ProviderCall], T],
    op: OperationDescriptor,
    *,
    gateway: Any,
    sleep: Optional[Callable[[float, Any], None]] = None,
) -> T:
    """Try each credential in order until one produces a result.

    Each attempt runs under the operation's time budget. Cancellation ends the
    chain at once; any other failure moves on to the next credential, and the
    last failure is raised once every credential has been tried.
    """
    ensure_credentials(credentials)

    last_error: Optional[BaseException] = None
    for credential in credentials:
        if is_cancelled(op.cancel):
            raise OperationCancelled(op.name)
        log_extra = {"operation": op.name, "credential": credential.display_name, "provider": credential.provider}
        _log.info("Attempting %s with %s", op.name, credential.display_name, extra=log_extra)
        attempt = functools.partial(_run_with_credential, gateway, credential, run, op, sleep)
        try:
            result = run_with_timeout(attempt, op.timeout_sec, op.name, op.cancel)
        except OperationCancelled:
            _log.info("%s cancelled while using %s", op.name, credential.display_name, extra=log_extra)
            raise
        except Exception as exc:
            last_error = exc
            _log.warning("%s failed with %s: %s", op.name, credential.display_name, exc, extra=log_extra)
            continue
        _log.info("%s succeeded with %s", op.name, credential.display_name, extra=log_extra)
        return result

    _log.error("All configured API keys failed for %s", op.name, extra={"operation": op.name})
    if last_error is None:
        last_error = ProviderError(f"{op.name} failed with all available keys. Please check your keys in Settings.")
    raise last_error


def require_feature(credentials: List[Credential], feature: str, label: str, *, gateway: Any) -> List[Credential]:
    """Keep only credentials whose provider supports `feature`; fail fast when none does."""
    ensure_credentials(credentials)
    usable = [c for c in credentials if gateway.supports(c.provider, feature)]
    if not usable:
        raise UnsupportedFeatureError(
            f"{label} is not supported by the configured provider(s); a Gemini key is required.",
            provider=credentials[0].provider,
        )
    return usable
