from __future__ import annotations
import os
from typing import Optional, Union

from .errors import translated
from .logger import get_logger
from .reference import Keychain

log = get_logger("Keychain.Keychains")


class KeychainManager:
    """Create, open and delete keychain containers."""

    def __init__(self, provider):
        self.provider = provider

    def create(self, path: Union[str, os.PathLike], password: Optional[str] = None) -> Keychain:
        """Fails with DuplicateItemError if a keychain already exists at `path`."""
        path = os.fspath(path)
        with translated(f"create keychain {path}"):
            handle = self.provider.create_keychain(path, password)
        log.info(f"[KEYCHAIN] create → {path}")
        return Keychain.wrap(self.provider, handle)

    def default(self) -> Keychain:
        with translated("copy default keychain"):
            handle = self.provider.copy_default_keychain()
        return Keychain.wrap(self.provider, handle)

    def delete(self, keychain: Keychain) -> None:
        """Delete the keychain and consume the reference."""
        try:
            with translated("delete keychain"):
                self.provider.delete_keychain(keychain.borrow())
        finally:
            keychain.release()
        log.info("[KEYCHAIN] delete")
