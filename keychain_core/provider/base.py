from __future__ import annotations
from enum import Enum
from typing import Any, Callable, Dict, Hashable, List, Optional, Tuple

from ..errors import ProviderStatusError

Handle = Hashable
NativeAttrs = Dict[str, Any]


class AuthOutcome(str, Enum):
    SUCCESS = "success"
    CANCELED = "canceled"
    FAILED = "failed"


# (policy, operation prompt) -> outcome; stands in for the platform auth UI
Authenticator = Callable[[Any, str], AuthOutcome]


class SecurityProvider:
    """
    Primitive contract of the secure-storage / crypto service.

    Failures are reported by raising ProviderStatusError with the native
    status code; the core translates them at the call site. Every primitive
    documented as create/copy returns handles carrying one claim that the
    caller must release.
    """
    name: str = "base"

    # keychains
    def create_keychain(self, path: str, password: Optional[str]) -> Handle:
        raise NotImplementedError

    def copy_default_keychain(self) -> Handle:
        raise NotImplementedError

    def delete_keychain(self, keychain: Handle) -> None:
        raise NotImplementedError

    # items
    def create_object(self, attrs: NativeAttrs, keychain: Optional[Handle] = None) -> Handle:
        raise NotImplementedError

    def copy_matching(self, query: NativeAttrs, many: bool, keychain: Optional[Handle] = None) -> List[Handle]:
        raise NotImplementedError

    def delete_matching(self, query: NativeAttrs, keychain: Optional[Handle] = None) -> int:
        raise NotImplementedError

    def delete_object(self, handle: Handle) -> None:
        raise NotImplementedError

    def copy_attributes(self, handle: Handle) -> NativeAttrs:
        raise NotImplementedError

    def copy_data(self, handle: Handle, prompt: Optional[str] = None) -> bytes:
        raise NotImplementedError

    # keys
    def generate_key_pair(self, attrs: NativeAttrs, keychain: Optional[Handle] = None) -> Tuple[Handle, Handle]:
        """Returns (public, private)."""
        raise NotImplementedError

    def import_key(self, data: bytes, attrs: NativeAttrs, keychain: Optional[Handle] = None) -> Handle:
        raise NotImplementedError

    def export_key(self, key: Handle) -> bytes:
        raise NotImplementedError

    def copy_public_key(self, key: Handle) -> Handle:
        raise NotImplementedError

    def create_signature(self, key: Handle, algorithm: str, data: bytes, prompt: Optional[str] = None) -> bytes:
        raise NotImplementedError

    def verify_signature(self, key: Handle, algorithm: str, data: bytes, signature: bytes) -> bool:
        raise NotImplementedError

    def encrypt(self, key: Handle, algorithm: str, plaintext: bytes) -> bytes:
        raise NotImplementedError

    def decrypt(self, key: Handle, algorithm: str, ciphertext: bytes, prompt: Optional[str] = None) -> bytes:
        raise NotImplementedError

    # reference counting
    def retain(self, handle: Handle) -> None:
        raise NotImplementedError

    def release(self, handle: Handle) -> None:
        raise NotImplementedError


__all__ = [
    "AuthOutcome",
    "Authenticator",
    "Handle",
    "NativeAttrs",
    "ProviderStatusError",
    "SecurityProvider",
]
