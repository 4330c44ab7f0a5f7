from __future__ import annotations
from typing import Optional

from .access import AccessControlPolicy
from .attributes import Attr, AttributeBuilder, ItemClass, Protocol
from .errors import InvalidParameterError, errSecDecode
from .items import ItemStore
from .reference import Item


class PasswordStore:
    """Generic and internet passwords on top of the Item Store."""

    def __init__(self, items: ItemStore):
        self.items = items

    def create_generic(self, service: str, account: str, password: str,
                       access_control: Optional[AccessControlPolicy] = None) -> Item:
        b = (AttributeBuilder()
             .item_class(ItemClass.GENERIC_PASSWORD)
             .service(service)
             .account(account)
             .value_data(password))
        if access_control is not None:
            b.access_control(access_control)
        return self.items.create(b.build())

    def find_generic(self, service: str, account: str) -> Item:
        query = (AttributeBuilder()
                 .item_class(ItemClass.GENERIC_PASSWORD)
                 .service(service)
                 .account(account)
                 .build())
        return self.items.find(query)

    def create_internet(self, server: str, account: str, password: str,
                        protocol: Optional[Protocol] = None) -> Item:
        b = (AttributeBuilder()
             .item_class(ItemClass.INTERNET_PASSWORD)
             .server(server)
             .account(account)
             .value_data(password))
        if protocol is not None:
            b.protocol(protocol)
        return self.items.create(b.build())

    def find_internet(self, server: str, account: str, protocol: Optional[Protocol] = None) -> Item:
        b = AttributeBuilder().item_class(ItemClass.INTERNET_PASSWORD).server(server).account(account)
        if protocol is not None:
            b.protocol(protocol)
        return self.items.find(b.build())

    def delete_generic(self, service: str, account: Optional[str] = None) -> int:
        b = AttributeBuilder().item_class(ItemClass.GENERIC_PASSWORD).service(service)
        if account is not None:
            b.account(account)
        return self.items.delete(b.build())

    # --- readers ---
    def service(self, item: Item) -> str:
        return self.items.attributes(item)[Attr.SERVICE]

    def account(self, item: Item) -> str:
        return self.items.attributes(item)[Attr.ACCOUNT]

    def server(self, item: Item) -> str:
        return self.items.attributes(item)[Attr.SERVER]

    def password(self, item: Item, prompt: Optional[str] = None) -> str:
        data = self.items.data(item, prompt)
        try:
            return data.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise InvalidParameterError(
                errSecDecode, "read password", "password data is not UTF-8; use password_bytes()"
            ) from exc

    def password_bytes(self, item: Item, prompt: Optional[str] = None) -> bytes:
        return self.items.data(item, prompt)
