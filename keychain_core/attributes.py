"""
keychain_core.attributes
------------------------
Typed attribute dictionaries: the request/descriptor format consumed by
every provider call (create, match, generate, import).

Keys come from the fixed `Attr` domain and each key accepts exactly one
value type, checked when the value is inserted. Which keys are *required*
depends on the operation and is checked by the consuming component.
"""

from __future__ import annotations
from collections.abc import Mapping
from enum import Enum
from typing import Any, Dict, Iterator, Optional, Union

from .access import AccessControlPolicy, Accessible
from .errors import InvalidParameterError, errSecParam
from .utils import b64e


class Attr(str, Enum):
    # values are the native attribute codes
    CLASS = "class"
    LABEL = "labl"
    APPLICATION_TAG = "atag"
    APPLICATION_LABEL = "klbl"
    KEY_TYPE = "type"
    KEY_CLASS = "kcls"
    KEY_SIZE = "bsiz"
    ACCESS_CONTROL = "accc"
    ACCESSIBLE = "pdmn"
    TOKEN_ID = "tkid"
    IS_PERMANENT = "perm"
    IS_EXTRACTABLE = "extr"
    IS_SENSITIVE = "sens"
    SYNCHRONIZABLE = "sync"
    CAN_SIGN = "sign"
    CAN_VERIFY = "vrfy"
    CAN_ENCRYPT = "encr"
    CAN_DECRYPT = "decr"
    CAN_DERIVE = "drve"
    SERVICE = "svce"
    ACCOUNT = "acct"
    SERVER = "srvr"
    PROTOCOL = "ptcl"
    VALUE_DATA = "v_Data"
    CREATION_DATE = "cdat"


class ItemClass(str, Enum):
    GENERIC_PASSWORD = "genp"
    INTERNET_PASSWORD = "inet"
    CERTIFICATE = "cert"
    KEY = "keys"
    IDENTITY = "idnt"


class KeyType(str, Enum):
    RSA = "42"
    EC_SEC_PRIME_RANDOM = "73"
    AES = "2147483649"


class KeyClass(str, Enum):
    PUBLIC = "0"
    PRIVATE = "1"
    SYMMETRIC = "2"


class TokenId(str, Enum):
    SECURE_ENCLAVE = "com.apple.setoken"


class Protocol(str, Enum):
    FTP = "ftp "
    HTTP = "http"
    HTTPS = "htps"
    IMAP = "imap"
    IMAPS = "imps"
    LDAP = "ldap"
    POP3 = "pop3"
    SMTP = "smtp"
    SSH = "ssh "
    TELNET = "teln"
    SMB = "smb "


_STR = (str,)
_BOOL = (bool,)

VALUE_TYPES: Dict[Attr, tuple] = {
    Attr.CLASS: (ItemClass,),
    Attr.LABEL: _STR,
    Attr.APPLICATION_TAG: (bytes,),
    Attr.APPLICATION_LABEL: (bytes,),
    Attr.KEY_TYPE: (KeyType,),
    Attr.KEY_CLASS: (KeyClass,),
    Attr.KEY_SIZE: (int,),
    Attr.ACCESS_CONTROL: (AccessControlPolicy,),
    Attr.ACCESSIBLE: (Accessible,),
    Attr.TOKEN_ID: (TokenId,),
    Attr.IS_PERMANENT: _BOOL,
    Attr.IS_EXTRACTABLE: _BOOL,
    Attr.IS_SENSITIVE: _BOOL,
    Attr.SYNCHRONIZABLE: _BOOL,
    Attr.CAN_SIGN: _BOOL,
    Attr.CAN_VERIFY: _BOOL,
    Attr.CAN_ENCRYPT: _BOOL,
    Attr.CAN_DECRYPT: _BOOL,
    Attr.CAN_DERIVE: _BOOL,
    Attr.SERVICE: _STR,
    Attr.ACCOUNT: _STR,
    Attr.SERVER: _STR,
    Attr.PROTOCOL: (Protocol,),
    Attr.VALUE_DATA: (bytes,),
    Attr.CREATION_DATE: _STR,
}


def _validate(attr: Attr, value: Any) -> Any:
    expected = VALUE_TYPES[attr]
    # bool is an int subclass; a key size of True is a bug, not 1 bit
    if expected == (int,) and isinstance(value, bool):
        ok = False
    else:
        ok = isinstance(value, expected)
    if not ok:
        raise InvalidParameterError(
            errSecParam,
            f"attribute {attr.name}",
            f"expected {expected[0].__name__}, got {type(value).__name__}",
        )
    return value


class AttributeDictionary(Mapping):
    """Immutable mapping of Attr -> typed value."""

    __slots__ = ("_data",)

    def __init__(self, data: Optional[Dict[Attr, Any]] = None):
        self._data: Dict[Attr, Any] = {}
        for key, value in (data or {}).items():
            attr = Attr(key)
            self._data[attr] = _validate(attr, value)

    def __getitem__(self, key: Union[Attr, str]) -> Any:
        return self._data[Attr(key)]

    def __iter__(self) -> Iterator[Attr]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return f"AttributeDictionary({self.to_json_dict()!r})"

    def merged(self, **overrides: Any) -> "AttributeDictionary":
        """Copy with overrides applied, e.g. merged(CLASS=ItemClass.KEY)."""
        data = dict(self._data)
        for name, value in overrides.items():
            data[Attr[name]] = value
        return AttributeDictionary(data)

    def to_native(self) -> Dict[str, Any]:
        """Provider-facing dict keyed by native attribute codes."""
        return {attr.value: value for attr, value in self._data.items()}

    @classmethod
    def from_native(cls, native: Dict[str, Any]) -> "AttributeDictionary":
        data = {}
        for code, value in native.items():
            try:
                attr = Attr(code)
            except ValueError:
                continue  # provider-private attribute
            expected = VALUE_TYPES[attr][0]
            if issubclass(expected, Enum) and not isinstance(value, expected):
                value = expected(value)
            data[attr] = value
        return cls(data)

    def to_json_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        for attr, value in self._data.items():
            if isinstance(value, bytes):
                value = b64e(value)
            elif isinstance(value, Enum):
                value = value.name
            elif isinstance(value, AccessControlPolicy):
                value = {
                    "requires_authentication": value.requires_authentication,
                    "authentication_type": value.authentication_type.name,
                    "flags": sorted(f.name for f in value.flags),
                    "accessible": value.accessible.name,
                }
            out[attr.name] = value
        return out


class AttributeBuilder:
    """
    Accumulates (Attr, value) pairs. Setting a key twice keeps the last
    value. `build()` returns an immutable AttributeDictionary.
    """

    def __init__(self, base: Optional[Mapping] = None):
        self._data: Dict[Attr, Any] = {}
        for key, value in (base or {}).items():
            self.set(key, value)

    def set(self, attr: Union[Attr, str], value: Any) -> "AttributeBuilder":
        attr = Attr(attr)
        self._data[attr] = _validate(attr, value)
        return self

    def unset(self, attr: Attr) -> "AttributeBuilder":
        self._data.pop(attr, None)
        return self

    def build(self) -> AttributeDictionary:
        return AttributeDictionary(self._data)

    # --- helpers ---
    def item_class(self, value: ItemClass) -> "AttributeBuilder":
        return self.set(Attr.CLASS, value)

    def label(self, value: str) -> "AttributeBuilder":
        return self.set(Attr.LABEL, value)

    def application_tag(self, value: Union[bytes, str]) -> "AttributeBuilder":
        if isinstance(value, str):
            value = value.encode("utf-8")
        return self.set(Attr.APPLICATION_TAG, value)

    def application_label(self, value: bytes) -> "AttributeBuilder":
        return self.set(Attr.APPLICATION_LABEL, value)

    def key_type(self, value: KeyType) -> "AttributeBuilder":
        return self.set(Attr.KEY_TYPE, value)

    def key_class(self, value: KeyClass) -> "AttributeBuilder":
        return self.set(Attr.KEY_CLASS, value)

    def key_size(self, bits: int) -> "AttributeBuilder":
        return self.set(Attr.KEY_SIZE, bits)

    def access_control(self, policy: AccessControlPolicy) -> "AttributeBuilder":
        return self.set(Attr.ACCESS_CONTROL, policy)

    def accessible(self, value: Accessible) -> "AttributeBuilder":
        return self.set(Attr.ACCESSIBLE, value)

    def token_id(self, value: TokenId) -> "AttributeBuilder":
        return self.set(Attr.TOKEN_ID, value)

    def permanent(self, value: bool = True) -> "AttributeBuilder":
        return self.set(Attr.IS_PERMANENT, value)

    def extractable(self, value: bool = True) -> "AttributeBuilder":
        return self.set(Attr.IS_EXTRACTABLE, value)

    def sensitive(self, value: bool = True) -> "AttributeBuilder":
        return self.set(Attr.IS_SENSITIVE, value)

    def synchronizable(self, value: bool = True) -> "AttributeBuilder":
        return self.set(Attr.SYNCHRONIZABLE, value)

    def can_sign(self, value: bool = True) -> "AttributeBuilder":
        return self.set(Attr.CAN_SIGN, value)

    def can_verify(self, value: bool = True) -> "AttributeBuilder":
        return self.set(Attr.CAN_VERIFY, value)

    def can_encrypt(self, value: bool = True) -> "AttributeBuilder":
        return self.set(Attr.CAN_ENCRYPT, value)

    def can_decrypt(self, value: bool = True) -> "AttributeBuilder":
        return self.set(Attr.CAN_DECRYPT, value)

    def can_derive(self, value: bool = True) -> "AttributeBuilder":
        return self.set(Attr.CAN_DERIVE, value)

    def service(self, value: str) -> "AttributeBuilder":
        return self.set(Attr.SERVICE, value)

    def account(self, value: str) -> "AttributeBuilder":
        return self.set(Attr.ACCOUNT, value)

    def server(self, value: str) -> "AttributeBuilder":
        return self.set(Attr.SERVER, value)

    def protocol(self, value: Protocol) -> "AttributeBuilder":
        return self.set(Attr.PROTOCOL, value)

    def value_data(self, value: Union[bytes, str]) -> "AttributeBuilder":
        if isinstance(value, str):
            value = value.encode("utf-8")
        return self.set(Attr.VALUE_DATA, value)


def attrs(**named: Any) -> AttributeDictionary:
    """Shorthand: attrs(CLASS=ItemClass.KEY, LABEL="x")."""
    builder = AttributeBuilder()
    for name, value in named.items():
        builder.set(Attr[name], value)
    return builder.build()
