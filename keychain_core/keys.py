"""
keychain_core.keys
------------------
Key Manager: generate, import, export, find and delete asymmetric keys.

Each `Key` owns one provider claim and carries the attribute snapshot read
when it was created or fetched. The snapshot is a point-in-time read: the
provider may have changed (or deleted) the key since. Call
`KeyManager.attributes()` for a fresh read.
"""

from __future__ import annotations
from contextlib import suppress
from dataclasses import dataclass
from typing import Hashable, List, Optional, Union

from .attributes import Attr, AttributeDictionary, ItemClass, KeyClass, KeyType, TokenId
from .errors import (
    ItemNotFoundError, KeychainError, MissingEntitlementError,
    errSecMissingEntitlement, translated,
)
from .items import Limit, require
from .logger import get_logger
from .reference import HandleKind, Keychain, OwnedRef

log = get_logger("Keychain.Keys")


class Key(OwnedRef):
    kind = HandleKind.KEY

    def __init__(self, provider, handle: Hashable, attributes: Optional[AttributeDictionary] = None):
        super().__init__(provider, handle)
        self.attributes = attributes if attributes is not None else AttributeDictionary()

    def _sibling(self, handle: Hashable) -> "Key":
        return Key(self._provider, handle, self.attributes)

    @property
    def key_type(self) -> Optional[KeyType]:
        return self.attributes.get(Attr.KEY_TYPE)

    @property
    def key_class(self) -> Optional[KeyClass]:
        return self.attributes.get(Attr.KEY_CLASS)

    @property
    def key_size(self) -> Optional[int]:
        return self.attributes.get(Attr.KEY_SIZE)

    @property
    def label(self) -> Optional[str]:
        return self.attributes.get(Attr.LABEL)

    @property
    def application_tag(self) -> Optional[bytes]:
        return self.attributes.get(Attr.APPLICATION_TAG)

    @property
    def application_label(self) -> Optional[bytes]:
        return self.attributes.get(Attr.APPLICATION_LABEL)

    @property
    def is_private(self) -> bool:
        return self.key_class is KeyClass.PRIVATE


@dataclass
class KeyPair:
    public_key: Key
    private_key: Key

    def release(self) -> None:
        self.public_key.release()
        self.private_key.release()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.release()


class KeyManager:
    def __init__(self, provider, keychain: Optional[Keychain] = None):
        self.provider = provider
        self.keychain = keychain

    def _scope(self):
        return self.keychain.borrow() if self.keychain is not None else None

    def _adopt(self, handles) -> List[Key]:
        """
        Wrap every fresh handle before reading any snapshot, so a failed
        read still releases all of them.
        """
        keys = [Key(self.provider, h) for h in handles]
        try:
            with translated("copy key attributes"):
                for key in keys:
                    key.attributes = AttributeDictionary.from_native(self.provider.copy_attributes(key.borrow()))
        except BaseException:
            for key in keys:
                key.release()
            raise
        return keys

    def generate(self, attributes: AttributeDictionary) -> KeyPair:
        """
        Generate an asymmetric key pair. Needs key type and size, or the
        Secure Enclave token id (which implies 256-bit EC).
        """
        if attributes.get(Attr.TOKEN_ID) is not TokenId.SECURE_ENCLAVE:
            require(attributes, Attr.KEY_TYPE, Attr.KEY_SIZE, operation="generate key pair")
        with translated("generate key pair"):
            public_handle, private_handle = self.provider.generate_key_pair(attributes.to_native(), self._scope())
        public_key, private_key = self._adopt([public_handle, private_handle])
        log.info(f"[KEY] generate type={private_key.key_type.name} bits={private_key.key_size}")
        return KeyPair(public_key, private_key)

    def import_key(self, data: bytes, attributes: AttributeDictionary) -> Key:
        require(attributes, Attr.KEY_TYPE, Attr.KEY_CLASS, operation="import key")
        with translated("import key"):
            handle = self.provider.import_key(bytes(data), attributes.to_native(), self._scope())
        key = self._adopt([handle])[0]
        log.info(f"[KEY] import type={key.key_type.name} class={key.key_class.name}")
        return key

    def export(self, key: Key) -> bytes:
        """
        External representation of the key. Secure Enclave and
        non-extractable private keys fail with MissingEntitlementError
        before the provider is asked for anything.
        """
        if key.is_private and (
            key.attributes.get(Attr.TOKEN_ID) is TokenId.SECURE_ENCLAVE
            or key.attributes.get(Attr.IS_EXTRACTABLE) is False
        ):
            raise MissingEntitlementError(
                errSecMissingEntitlement, "export key", "private key is not extractable"
            )
        with translated("export key"):
            return self.provider.export_key(key.borrow())

    def public_key(self, key: Key) -> Key:
        with translated("copy public key"):
            handle = self.provider.copy_public_key(key.borrow())
        return self._adopt([handle])[0]

    def find(self, query: AttributeDictionary, limit: Limit = Limit.ONE) -> Union[Key, List[Key]]:
        query = query.merged(CLASS=ItemClass.KEY)
        many = limit is Limit.MANY
        try:
            with translated("find key"):
                handles = self.provider.copy_matching(query.to_native(), many, self._scope())
        except ItemNotFoundError:
            if many:
                return []
            raise
        keys = self._adopt(handles)
        log.debug(f"[KEY] find matches={len(keys)}")
        return keys if many else keys[0]

    def attributes(self, key: Key) -> AttributeDictionary:
        with translated("copy key attributes"):
            return AttributeDictionary.from_native(self.provider.copy_attributes(key.borrow()))

    def delete(self, key: Key) -> None:
        """Remove the key from its keychain and consume the reference."""
        try:
            with translated("delete key"):
                self.provider.delete_object(key.borrow())
        finally:
            key.release()
        log.info("[KEY] delete")

    def delete_pair(self, pair: KeyPair) -> None:
        """Delete both halves; the first failure is the one raised."""
        try:
            self.delete(pair.private_key)
        except BaseException:
            # the public reference is released whatever the provider answers
            with suppress(KeychainError):
                self.delete(pair.public_key)
            raise
        self.delete(pair.public_key)

