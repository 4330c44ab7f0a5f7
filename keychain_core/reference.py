"""
keychain_core.reference
-----------------------
Ownership wrapper for provider handles.

Provider primitives that create or copy an object hand back a handle that
already carries one claim (one retain). `OwnedRef` takes over that claim and
guarantees it is released exactly once: explicitly via `release()`, at the
end of a `with` block, or when the wrapper is garbage collected. `clone()`
issues a provider retain and returns a second wrapper with its own claim.

The provider's reference count is external state the interpreter knows
nothing about, so retain/release are always issued explicitly.
"""

from __future__ import annotations
import weakref
from enum import Enum
from typing import Any, Hashable

from .errors import InvalidParameterError, errSecInvalidItemRef


class HandleKind(str, Enum):
    KEYCHAIN = "keychain"
    KEY = "key"
    ITEM = "item"
    CERTIFICATE = "certificate"


class OwnedRef:
    kind = HandleKind.ITEM

    def __init__(self, provider: Any, handle: Hashable):
        self._provider = provider
        self._handle = handle
        self._finalizer = weakref.finalize(self, provider.release, handle)

    @classmethod
    def wrap(cls, provider: Any, handle: Hashable, **extra: Any) -> "OwnedRef":
        """Adopt a handle returned by a create/copy primitive."""
        return cls(provider, handle, **extra)

    @property
    def provider(self) -> Any:
        return self._provider

    @property
    def alive(self) -> bool:
        return self._finalizer.alive

    def borrow(self) -> Hashable:
        """
        Raw handle for the duration of a single provider call. The caller
        must not keep it: it stops being valid once this wrapper releases.
        """
        if not self._finalizer.alive:
            raise InvalidParameterError(
                errSecInvalidItemRef,
                f"{type(self).__name__}",
                "reference used after release",
            )
        return self._handle

    def clone(self) -> "OwnedRef":
        handle = self.borrow()
        self._provider.retain(handle)
        return self._sibling(handle)

    def _sibling(self, handle: Hashable) -> "OwnedRef":
        return type(self)(self._provider, handle)

    def release(self) -> None:
        # finalize runs its callback at most once
        self._finalizer()

    def same_object(self, other: "OwnedRef") -> bool:
        return self._provider is other._provider and self._handle == other._handle

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.release()

    def __repr__(self) -> str:
        state = "live" if self.alive else "released"
        return f"<{type(self).__name__} {self.kind.value} handle={self._handle!r} {state}>"


class Keychain(OwnedRef):
    kind = HandleKind.KEYCHAIN


class Item(OwnedRef):
    kind = HandleKind.ITEM


class Certificate(OwnedRef):
    kind = HandleKind.CERTIFICATE
