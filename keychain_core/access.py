"""
keychain_core.access
--------------------
Access control policies attached to keys and items at creation time.

A policy is a frozen value. It is never evaluated here: the provider checks
it lazily every time a gated operation (sign, decrypt, reading item data)
runs, which may put an authentication prompt in front of the user.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import FrozenSet, Iterable

from .errors import InvalidParameterError, errSecParam


class AuthenticationType(str, Enum):
    NONE = "none"
    BIOMETRY_ANY = "biometry-any"
    BIOMETRY_CURRENT_SET = "biometry-current-set"
    DEVICE_PASSCODE = "device-passcode"
    BIOMETRY_OR_PASSCODE = "biometry-or-passcode"


class AccessFlag(str, Enum):
    USER_PRESENCE = "user-presence"
    PRIVATE_KEY_USAGE = "private-key-usage"
    APPLICATION_PASSWORD = "application-password"


class Accessible(str, Enum):
    """Protection class: when the item's data may be read at all."""
    WHEN_PASSCODE_SET_THIS_DEVICE_ONLY = "akpu"
    WHEN_UNLOCKED_THIS_DEVICE_ONLY = "aku"
    WHEN_UNLOCKED = "ak"
    AFTER_FIRST_UNLOCK_THIS_DEVICE_ONLY = "cku"
    AFTER_FIRST_UNLOCK = "ck"


# native SecAccessControlCreateFlags bits
USER_PRESENCE = 1
BIOMETRY_ANY = 1 << 1
BIOMETRY_CURRENT_SET = 1 << 3
DEVICE_PASSCODE = 1 << 4
OR = 1 << 14
AND = 1 << 15
PRIVATE_KEY_USAGE = 1 << 30
APPLICATION_PASSWORD = 1 << 31

_TYPE_BITS = {
    AuthenticationType.NONE: 0,
    AuthenticationType.BIOMETRY_ANY: BIOMETRY_ANY,
    AuthenticationType.BIOMETRY_CURRENT_SET: BIOMETRY_CURRENT_SET,
    AuthenticationType.DEVICE_PASSCODE: DEVICE_PASSCODE,
    AuthenticationType.BIOMETRY_OR_PASSCODE: BIOMETRY_ANY | DEVICE_PASSCODE | OR,
}

_FLAG_BITS = {
    AccessFlag.USER_PRESENCE: USER_PRESENCE,
    AccessFlag.PRIVATE_KEY_USAGE: PRIVATE_KEY_USAGE,
    AccessFlag.APPLICATION_PASSWORD: APPLICATION_PASSWORD,
}


@dataclass(frozen=True)
class AccessControlPolicy:
    requires_authentication: bool = False
    authentication_type: AuthenticationType = AuthenticationType.NONE
    flags: FrozenSet[AccessFlag] = field(default_factory=frozenset)
    accessible: Accessible = Accessible.WHEN_UNLOCKED

    def __post_init__(self):
        # accept any iterable of flags, store it frozen
        object.__setattr__(self, "flags", frozenset(AccessFlag(f) for f in self.flags))
        gated = self.authentication_type is not AuthenticationType.NONE
        if self.requires_authentication != gated:
            raise InvalidParameterError(
                errSecParam,
                "AccessControlPolicy",
                "requires_authentication must be set exactly when an authentication type is given",
            )
        if AccessFlag.USER_PRESENCE in self.flags and not self.requires_authentication:
            raise InvalidParameterError(
                errSecParam,
                "AccessControlPolicy",
                "USER_PRESENCE needs requires_authentication",
            )

    @classmethod
    def none(cls, accessible: Accessible = Accessible.WHEN_UNLOCKED) -> "AccessControlPolicy":
        return cls(accessible=accessible)

    @classmethod
    def biometry(cls, current_set: bool = False, flags: Iterable[AccessFlag] = ()) -> "AccessControlPolicy":
        kind = AuthenticationType.BIOMETRY_CURRENT_SET if current_set else AuthenticationType.BIOMETRY_ANY
        return cls(True, kind, frozenset(flags), Accessible.WHEN_PASSCODE_SET_THIS_DEVICE_ONLY)

    @classmethod
    def biometry_or_passcode(cls, flags: Iterable[AccessFlag] = ()) -> "AccessControlPolicy":
        return cls(True, AuthenticationType.BIOMETRY_OR_PASSCODE, frozenset(flags),
                   Accessible.WHEN_PASSCODE_SET_THIS_DEVICE_ONLY)

    @classmethod
    def passcode(cls, flags: Iterable[AccessFlag] = ()) -> "AccessControlPolicy":
        return cls(True, AuthenticationType.DEVICE_PASSCODE, frozenset(flags),
                   Accessible.WHEN_PASSCODE_SET_THIS_DEVICE_ONLY)

    def option_flags(self) -> int:
        """Native bitmask for this policy."""
        bits = _TYPE_BITS[self.authentication_type]
        for flag in self.flags:
            bits |= _FLAG_BITS[flag]
        return bits
