"""
keychain_core.errors
--------------------
Error taxonomy for the keychain access layer.

Every provider call reports failure through a native integer status code.
`translate()` folds those codes into a small closed set of error kinds while
always keeping the original code, so callers can branch on
`ItemNotFoundError` instead of -25300 and still see the raw value in logs or
bug reports.
"""

from __future__ import annotations
from contextlib import contextmanager
from enum import Enum
from typing import Dict, Iterator, Tuple

# --------- Native status codes ----------
errSecSuccess = 0
errSecUnimplemented = -4
errSecParam = -50
errSecUserCanceled = -128
errSecAuthFailed = -25293
errSecNoSuchKeychain = -25294
errSecDuplicateKeychain = -25296
errSecDuplicateItem = -25299
errSecItemNotFound = -25300
errSecNoSuchAttr = -25303
errSecInvalidItemRef = -25304
errSecNoSuchClass = -25306
errSecNoDefaultKeychain = -25307
errSecInteractionNotAllowed = -25308
errSecKeySizeNotAllowed = -25311
errSecDecode = -26275
errSecMissingEntitlement = -34018


class ErrorKind(str, Enum):
    ITEM_NOT_FOUND = "ItemNotFound"
    DUPLICATE_ITEM = "DuplicateItem"
    MISSING_ENTITLEMENT = "MissingEntitlement"
    AUTHENTICATION_FAILED = "AuthenticationFailed"
    USER_CANCELED = "UserCanceled"
    INVALID_PARAMETER = "InvalidParameter"
    UNIMPLEMENTED = "Unimplemented"
    UNKNOWN = "Unknown"


class ProviderStatusError(Exception):
    """Raised by providers: a bare native status code, not yet translated."""

    def __init__(self, status: int, message: str = ""):
        super().__init__(f"{message or 'provider call failed'} (status={status})")
        self.status = status


class KeychainError(Exception):
    kind = ErrorKind.UNKNOWN

    def __init__(self, status: int, context: str = "", description: str = ""):
        self._status = status
        self._context = context
        self._description = description or "unknown status"
        super().__init__(self._render())

    @property
    def status(self) -> int:
        return self._status

    @property
    def context(self) -> str:
        return self._context

    @property
    def description(self) -> str:
        return self._description

    def _render(self) -> str:
        msg = f"{self.kind.value}: {self._description} [status={self._status}]"
        if self._context:
            msg = f"{self._context}: {msg}"
        return msg


class ItemNotFoundError(KeychainError):
    kind = ErrorKind.ITEM_NOT_FOUND


class DuplicateItemError(KeychainError):
    kind = ErrorKind.DUPLICATE_ITEM


class MissingEntitlementError(KeychainError):
    kind = ErrorKind.MISSING_ENTITLEMENT


class AuthenticationFailedError(KeychainError):
    kind = ErrorKind.AUTHENTICATION_FAILED


class UserCanceledError(KeychainError):
    kind = ErrorKind.USER_CANCELED


class InvalidParameterError(KeychainError, ValueError):
    kind = ErrorKind.INVALID_PARAMETER


class UnimplementedError(KeychainError, NotImplementedError):
    kind = ErrorKind.UNIMPLEMENTED


class UnknownError(KeychainError):
    kind = ErrorKind.UNKNOWN


_BY_KIND = {
    cls.kind: cls
    for cls in (
        ItemNotFoundError, DuplicateItemError, MissingEntitlementError,
        AuthenticationFailedError, UserCanceledError, InvalidParameterError,
        UnimplementedError, UnknownError,
    )
}

STATUS_TABLE: Dict[int, Tuple[ErrorKind, str]] = {
    errSecItemNotFound: (ErrorKind.ITEM_NOT_FOUND, "the item cannot be found (errSecItemNotFound)"),
    errSecNoSuchKeychain: (ErrorKind.ITEM_NOT_FOUND, "the keychain does not exist (errSecNoSuchKeychain)"),
    errSecNoDefaultKeychain: (ErrorKind.ITEM_NOT_FOUND, "no default keychain (errSecNoDefaultKeychain)"),
    errSecDuplicateItem: (ErrorKind.DUPLICATE_ITEM, "the item already exists (errSecDuplicateItem)"),
    errSecDuplicateKeychain: (ErrorKind.DUPLICATE_ITEM, "a keychain with the same name already exists (errSecDuplicateKeychain)"),
    errSecMissingEntitlement: (ErrorKind.MISSING_ENTITLEMENT, "missing application entitlement (errSecMissingEntitlement)"),
    errSecAuthFailed: (ErrorKind.AUTHENTICATION_FAILED, "authorization or authentication failed (errSecAuthFailed)"),
    errSecInteractionNotAllowed: (ErrorKind.AUTHENTICATION_FAILED, "user interaction is not allowed (errSecInteractionNotAllowed)"),
    errSecUserCanceled: (ErrorKind.USER_CANCELED, "the user canceled the operation (errSecUserCanceled)"),
    errSecParam: (ErrorKind.INVALID_PARAMETER, "one or more parameters are not valid (errSecParam)"),
    errSecKeySizeNotAllowed: (ErrorKind.INVALID_PARAMETER, "the key size is not allowed (errSecKeySizeNotAllowed)"),
    errSecInvalidItemRef: (ErrorKind.INVALID_PARAMETER, "the item reference is invalid (errSecInvalidItemRef)"),
    errSecNoSuchAttr: (ErrorKind.INVALID_PARAMETER, "the attribute does not exist (errSecNoSuchAttr)"),
    errSecNoSuchClass: (ErrorKind.INVALID_PARAMETER, "the item class does not exist (errSecNoSuchClass)"),
    errSecDecode: (ErrorKind.INVALID_PARAMETER, "unable to decode the provided data (errSecDecode)"),
    errSecUnimplemented: (ErrorKind.UNIMPLEMENTED, "function or operation not implemented (errSecUnimplemented)"),
}


def translate(status: int, context: str = "") -> KeychainError:
    """Map a native status code to a KeychainError. Pure; never raises."""
    kind, description = STATUS_TABLE.get(status, (ErrorKind.UNKNOWN, f"unmapped status {status}"))
    return _BY_KIND[kind](status, context, description)


def check(status: int, context: str = "") -> None:
    if status != errSecSuccess:
        raise translate(status, context)


@contextmanager
def translated(context: str) -> Iterator[None]:
    """Translate any ProviderStatusError raised inside the block."""
    try:
        yield
    except ProviderStatusError as exc:
        raise translate(exc.status, context) from exc
