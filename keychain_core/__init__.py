"""
Keychain Core
=============
Safe access layer over a secure credential and key store.

Provides:
- Owned references that pair every provider retain with exactly one release
- Typed attribute dictionaries for create/match/generate requests
- Keychain, item, password and key managers
- Sign/verify and encrypt/decrypt gated by access control policies
- A translated error taxonomy that keeps the native status code
"""

from dataclasses import dataclass
from typing import Optional

from .access import AccessControlPolicy, AccessFlag, Accessible, AuthenticationType
from .algorithms import KeyAlgorithm, KeyOperation
from .attributes import (
    Attr, AttributeBuilder, AttributeDictionary, ItemClass, KeyClass, KeyType,
    Protocol, TokenId, attrs,
)
from .errors import (
    AuthenticationFailedError, DuplicateItemError, ErrorKind, InvalidParameterError,
    ItemNotFoundError, KeychainError, MissingEntitlementError, UnimplementedError,
    UnknownError, UserCanceledError, translate,
)
from .items import ItemStore, Limit
from .keychain import KeychainManager
from .keys import Key, KeyManager, KeyPair
from .operations import decrypt, encrypt, is_supported, sign, verify
from .passwords import PasswordStore
from .provider import AuthOutcome, SecurityProvider, SoftwareProvider, load_provider
from .reference import Certificate, HandleKind, Item, Keychain, OwnedRef


@dataclass
class SecurityServices:
    provider: SecurityProvider
    keychains: KeychainManager
    items: ItemStore
    passwords: PasswordStore
    keys: KeyManager

    def scoped(self, keychain: Optional[Keychain]) -> "SecurityServices":
        """Same provider, items and keys confined to `keychain`."""
        return _services(self.provider, keychain)


def _services(provider: SecurityProvider, keychain: Optional[Keychain] = None) -> SecurityServices:
    items = ItemStore(provider, keychain)
    return SecurityServices(
        provider=provider,
        keychains=KeychainManager(provider),
        items=items,
        passwords=PasswordStore(items),
        keys=KeyManager(provider, keychain),
    )


def connect(config: Optional[dict] = None) -> SecurityServices:
    """Build every manager over one provider (see load_provider for config)."""
    return _services(load_provider(config))
