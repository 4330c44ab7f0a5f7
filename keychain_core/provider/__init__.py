# keychain_core/provider/__init__.py

import os

from .base import AuthOutcome, Authenticator, SecurityProvider
from .software import SoftwareProvider


def load_provider(config: dict | None = None) -> SecurityProvider:
    """
    Factory resolver for selecting the security provider.

    For now:
        - software (default)
        - memory (alias of software)
    """
    config = config or {}
    provider = (config.get("provider") or os.getenv("KEYCHAIN_CORE_PROVIDER", "software")).lower()

    if provider in ("software", "memory"):
        return SoftwareProvider(
            authenticator=config.get("authenticator"),
            default_keychain=config.get("default_keychain")
            or os.getenv("KEYCHAIN_CORE_DEFAULT_KEYCHAIN", "login.keychain-db"),
        )
    raise ValueError(f"Unknown security provider: {provider}")


__all__ = [
    "AuthOutcome",
    "Authenticator",
    "SecurityProvider",
    "SoftwareProvider",
    "load_provider",
]
