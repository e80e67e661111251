from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional

PROVIDER_GEMINI = "gemini"
PROVIDER_OPENAI = "openai"

KIND_PRIMARY_USER = "primary-user"
KIND_SECONDARY_USER = "secondary-user"
KIND_SYSTEM_FALLBACK = "system-fallback"

_DISPLAY_NAMES = {
    PROVIDER_GEMINI: "Gemini",
    PROVIDER_OPENAI: "OpenAI",
}


@dataclass(frozen=True)
class Credential:
    kind: str
    provider: str
    secret: str = field(repr=False)
    display_name: str


@dataclass(frozen=True)
class UserKeys:
    """Keys a user supplied in Settings; either may be blank."""

    gemini_key: Optional[str] = field(default=None, repr=False)
    openai_key: Optional[str] = field(default=None, repr=False)


def _clean(value: Optional[str]) -> str:
    return str(value or "").strip()


def build_credentials(
    user_gemini_key: Optional[str],
    user_openai_key: Optional[str],
    system_key: Optional[str],
    system_provider: str = PROVIDER_GEMINI,
) -> List[Credential]:
    primary = _clean(user_gemini_key)
    secondary = _clean(user_openai_key)
    fallback = _clean(system_key)

    credentials: List[Credential] = []
    if primary:
        credentials.append(Credential(KIND_PRIMARY_USER, PROVIDER_GEMINI, primary, "User's Gemini Key"))
    if secondary:
        credentials.append(Credential(KIND_SECONDARY_USER, PROVIDER_OPENAI, secondary, "User's OpenAI Key"))
    if fallback and fallback != primary:
        provider = system_provider if system_provider in _DISPLAY_NAMES else PROVIDER_GEMINI
        credentials.append(Credential(KIND_SYSTEM_FALLBACK, provider, fallback, "System Fallback Key"))
    return credentials


def credentials_for_user(keys: Optional[UserKeys], system_key: Optional[str], system_provider: str) -> List[Credential]:
    keys = keys or UserKeys()
    return build_credentials(keys.gemini_key, keys.openai_key, system_key, system_provider)
