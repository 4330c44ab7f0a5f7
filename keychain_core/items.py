"""
keychain_core.items
-------------------
Item Store: create, find and delete keychain items (passwords,
certificates) described by attribute dictionaries.

`find` follows the provider's matching rules. With `Limit.ONE` a miss is an
ItemNotFoundError; with `Limit.MANY` a miss is simply an empty list.
"""

from __future__ import annotations
from enum import Enum
from typing import List, Optional, Union

from .attributes import Attr, AttributeDictionary, ItemClass
from .errors import InvalidParameterError, ItemNotFoundError, errSecParam, translated
from .logger import get_logger
from .reference import Certificate, Item, Keychain, OwnedRef

log = get_logger("Keychain.Items")


class Limit(str, Enum):
    ONE = "one"
    MANY = "all"


def require(attrs: AttributeDictionary, *required: Attr, operation: str) -> None:
    missing = [a.name for a in required if a not in attrs]
    if missing:
        raise InvalidParameterError(errSecParam, operation, f"missing required attribute(s): {', '.join(missing)}")


class ItemStore:
    """
    Keychain items. Pass `keychain` to scope creation and searches to one
    keychain; without it items are created in the default keychain and
    searches span all keychains.
    """

    def __init__(self, provider, keychain: Optional[Keychain] = None):
        self.provider = provider
        self.keychain = keychain

    def _scope(self):
        return self.keychain.borrow() if self.keychain is not None else None

    def create(self, attributes: AttributeDictionary) -> Item:
        require(attributes, Attr.CLASS, operation="create item")
        cls = Certificate if attributes[Attr.CLASS] is ItemClass.CERTIFICATE else Item
        with translated(f"create {attributes[Attr.CLASS].name} item"):
            handle = self.provider.create_object(attributes.to_native(), self._scope())
        log.debug(f"[ITEM] create class={attributes[Attr.CLASS].name}")
        return cls.wrap(self.provider, handle)

    def find(self, query: AttributeDictionary, limit: Limit = Limit.ONE) -> Union[Item, List[Item]]:
        require(query, Attr.CLASS, operation="find item")
        cls = Certificate if query[Attr.CLASS] is ItemClass.CERTIFICATE else Item
        many = limit is Limit.MANY
        try:
            with translated(f"find {query[Attr.CLASS].name} item"):
                handles = self.provider.copy_matching(query.to_native(), many, self._scope())
        except ItemNotFoundError:
            if many:
                return []
            raise
        refs = [cls.wrap(self.provider, h) for h in handles]
        log.debug(f"[ITEM] find class={query[Attr.CLASS].name} matches={len(refs)}")
        return refs if many else refs[0]

    def attributes(self, item: OwnedRef) -> AttributeDictionary:
        with translated("copy item attributes"):
            native = self.provider.copy_attributes(item.borrow())
        return AttributeDictionary.from_native(native)

    def data(self, item: OwnedRef, prompt: Optional[str] = None) -> bytes:
        """Secret payload (password bytes, certificate DER). May prompt."""
        with translated("copy item data"):
            return self.provider.copy_data(item.borrow(), prompt)

    def delete(self, query: AttributeDictionary) -> int:
        """Delete every match; returns how many were removed (0 is fine)."""
        require(query, Attr.CLASS, operation="delete items")
        try:
            with translated(f"delete {query[Attr.CLASS].name} items"):
                count = self.provider.delete_matching(query.to_native(), self._scope())
        except ItemNotFoundError:
            count = 0
        log.debug(f"[ITEM] delete class={query[Attr.CLASS].name} removed={count}")
        return count
