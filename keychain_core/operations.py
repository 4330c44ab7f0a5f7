"""
keychain_core.operations
------------------------
Sign/verify and encrypt/decrypt with provider-held keys.

Private-key operations (sign, decrypt) may be gated by the key's access
control policy: the provider then shows an authentication prompt and blocks
until the user answers. Cancellation surfaces as UserCanceledError and a
failed or impossible authentication as AuthenticationFailedError. Nothing is
retried and nothing is cached between calls.
"""

from __future__ import annotations
from typing import Optional

from .algorithms import KeyAlgorithm, KeyOperation
from .attributes import KeyClass
from .errors import InvalidParameterError, errSecParam, translated
from .keys import Key
from .logger import get_logger

log = get_logger("Keychain.Crypto")

_NEEDS = {
    KeyOperation.SIGN: KeyClass.PRIVATE,
    KeyOperation.DECRYPT: KeyClass.PRIVATE,
    KeyOperation.VERIFY: KeyClass.PUBLIC,
    KeyOperation.ENCRYPT: KeyClass.PUBLIC,
}


def is_supported(key: Key, operation: KeyOperation, algorithm: KeyAlgorithm) -> bool:
    """Answer from the key's snapshot, without asking the provider."""
    return key.key_class is _NEEDS[operation] and algorithm.supports(key.key_type, operation)


def _check(key: Key, operation: KeyOperation, algorithm) -> KeyAlgorithm:
    try:
        algorithm = KeyAlgorithm(algorithm)
    except ValueError:
        raise InvalidParameterError(errSecParam, operation.value, f"unknown algorithm {algorithm!r}") from None
    if key.key_class is not _NEEDS[operation]:
        raise InvalidParameterError(
            errSecParam, operation.value, f"needs a {_NEEDS[operation].name.lower()} key"
        )
    if not algorithm.supports(key.key_type, operation):
        raise InvalidParameterError(
            errSecParam, operation.value,
            f"{algorithm.name} is incompatible with {key.key_type.name} keys",
        )
    return algorithm


# --------- Signatures ----------
def sign(key: Key, algorithm: KeyAlgorithm, data: bytes, prompt: Optional[str] = None) -> bytes:
    """
    Sign `data` (a digest or a message, depending on `algorithm`) with a
    private key. May trigger an authentication prompt.
    """
    alg = _check(key, KeyOperation.SIGN, algorithm)
    with translated(f"sign with {alg.name}"):
        signature = key.provider.create_signature(key.borrow(), alg.value, bytes(data), prompt)
    log.debug(f"[CRYPTO] sign alg={alg.name} bytes={len(signature)}")
    return signature


def verify(key: Key, algorithm: KeyAlgorithm, data: bytes, signature: bytes) -> bool:
    """False for a bad signature; errors only for provider-level failures."""
    alg = _check(key, KeyOperation.VERIFY, algorithm)
    with translated(f"verify with {alg.name}"):
        return key.provider.verify_signature(key.borrow(), alg.value, bytes(data), bytes(signature))


# --------- Encryption ----------
def encrypt(key: Key, algorithm: KeyAlgorithm, plaintext: bytes) -> bytes:
    alg = _check(key, KeyOperation.ENCRYPT, algorithm)
    with translated(f"encrypt with {alg.name}"):
        return key.provider.encrypt(key.borrow(), alg.value, bytes(plaintext))


def decrypt(key: Key, algorithm: KeyAlgorithm, ciphertext: bytes, prompt: Optional[str] = None) -> bytes:
    alg = _check(key, KeyOperation.DECRYPT, algorithm)
    with translated(f"decrypt with {alg.name}"):
        return key.provider.decrypt(key.borrow(), alg.value, bytes(ciphertext), prompt)
