"""
keychain_core.algorithms
------------------------
Algorithm selectors for crypto operations. Values are the provider's
algorithm identifiers; each one also knows which key type it works with,
which operation family it belongs to, its digest, and whether its input is
a precomputed digest or a raw message.
"""

from __future__ import annotations
from enum import Enum
from typing import Optional

from .attributes import KeyType


class KeyOperation(str, Enum):
    SIGN = "sign"
    VERIFY = "verify"
    ENCRYPT = "encrypt"
    DECRYPT = "decrypt"


class Family(str, Enum):
    SIGNATURE = "sign"
    ENCRYPTION = "encrypt"


_FAMILY_OPS = {
    Family.SIGNATURE: (KeyOperation.SIGN, KeyOperation.VERIFY),
    Family.ENCRYPTION: (KeyOperation.ENCRYPT, KeyOperation.DECRYPT),
}


class KeyAlgorithm(str, Enum):
    ECDSA_SIGNATURE_DIGEST_X962_SHA1 = "algid:sign:ECDSA:digest-X962:SHA1"
    ECDSA_SIGNATURE_DIGEST_X962_SHA224 = "algid:sign:ECDSA:digest-X962:SHA224"
    ECDSA_SIGNATURE_DIGEST_X962_SHA256 = "algid:sign:ECDSA:digest-X962:SHA256"
    ECDSA_SIGNATURE_DIGEST_X962_SHA384 = "algid:sign:ECDSA:digest-X962:SHA384"
    ECDSA_SIGNATURE_DIGEST_X962_SHA512 = "algid:sign:ECDSA:digest-X962:SHA512"
    ECDSA_SIGNATURE_MESSAGE_X962_SHA1 = "algid:sign:ECDSA:message-X962:SHA1"
    ECDSA_SIGNATURE_MESSAGE_X962_SHA224 = "algid:sign:ECDSA:message-X962:SHA224"
    ECDSA_SIGNATURE_MESSAGE_X962_SHA256 = "algid:sign:ECDSA:message-X962:SHA256"
    ECDSA_SIGNATURE_MESSAGE_X962_SHA384 = "algid:sign:ECDSA:message-X962:SHA384"
    ECDSA_SIGNATURE_MESSAGE_X962_SHA512 = "algid:sign:ECDSA:message-X962:SHA512"

    RSA_SIGNATURE_DIGEST_PKCS1V15_SHA1 = "algid:sign:RSA:digest-PKCS1v15:SHA1"
    RSA_SIGNATURE_DIGEST_PKCS1V15_SHA224 = "algid:sign:RSA:digest-PKCS1v15:SHA224"
    RSA_SIGNATURE_DIGEST_PKCS1V15_SHA256 = "algid:sign:RSA:digest-PKCS1v15:SHA256"
    RSA_SIGNATURE_DIGEST_PKCS1V15_SHA384 = "algid:sign:RSA:digest-PKCS1v15:SHA384"
    RSA_SIGNATURE_DIGEST_PKCS1V15_SHA512 = "algid:sign:RSA:digest-PKCS1v15:SHA512"
    RSA_SIGNATURE_MESSAGE_PKCS1V15_SHA1 = "algid:sign:RSA:message-PKCS1v15:SHA1"
    RSA_SIGNATURE_MESSAGE_PKCS1V15_SHA224 = "algid:sign:RSA:message-PKCS1v15:SHA224"
    RSA_SIGNATURE_MESSAGE_PKCS1V15_SHA256 = "algid:sign:RSA:message-PKCS1v15:SHA256"
    RSA_SIGNATURE_MESSAGE_PKCS1V15_SHA384 = "algid:sign:RSA:message-PKCS1v15:SHA384"
    RSA_SIGNATURE_MESSAGE_PKCS1V15_SHA512 = "algid:sign:RSA:message-PKCS1v15:SHA512"
    RSA_SIGNATURE_DIGEST_PSS_SHA1 = "algid:sign:RSA:digest-PSS:SHA1:SHA1:20"
    RSA_SIGNATURE_DIGEST_PSS_SHA224 = "algid:sign:RSA:digest-PSS:SHA224:SHA224:24"
    RSA_SIGNATURE_DIGEST_PSS_SHA256 = "algid:sign:RSA:digest-PSS:SHA256:SHA256:32"
    RSA_SIGNATURE_DIGEST_PSS_SHA384 = "algid:sign:RSA:digest-PSS:SHA384:SHA384:48"
    RSA_SIGNATURE_DIGEST_PSS_SHA512 = "algid:sign:RSA:digest-PSS:SHA512:SHA512:64"
    RSA_SIGNATURE_MESSAGE_PSS_SHA1 = "algid:sign:RSA:message-PSS:SHA1:SHA1:20"
    RSA_SIGNATURE_MESSAGE_PSS_SHA224 = "algid:sign:RSA:message-PSS:SHA224:SHA224:24"
    RSA_SIGNATURE_MESSAGE_PSS_SHA256 = "algid:sign:RSA:message-PSS:SHA256:SHA256:32"
    RSA_SIGNATURE_MESSAGE_PSS_SHA384 = "algid:sign:RSA:message-PSS:SHA384:SHA384:48"
    RSA_SIGNATURE_MESSAGE_PSS_SHA512 = "algid:sign:RSA:message-PSS:SHA512:SHA512:64"

    RSA_ENCRYPTION_PKCS1 = "algid:encrypt:RSA:PKCS1"
    RSA_ENCRYPTION_OAEP_SHA1 = "algid:encrypt:RSA:OAEP:SHA1"
    RSA_ENCRYPTION_OAEP_SHA224 = "algid:encrypt:RSA:OAEP:SHA224"
    RSA_ENCRYPTION_OAEP_SHA256 = "algid:encrypt:RSA:OAEP:SHA256"
    RSA_ENCRYPTION_OAEP_SHA384 = "algid:encrypt:RSA:OAEP:SHA384"
    RSA_ENCRYPTION_OAEP_SHA512 = "algid:encrypt:RSA:OAEP:SHA512"

    ECIES_ENCRYPTION_STANDARD_X963_SHA224_AESGCM = "algid:encrypt:ECIES:ECDH:KDFX963:SHA224:AESGCM"
    ECIES_ENCRYPTION_STANDARD_X963_SHA256_AESGCM = "algid:encrypt:ECIES:ECDH:KDFX963:SHA256:AESGCM"
    ECIES_ENCRYPTION_STANDARD_X963_SHA384_AESGCM = "algid:encrypt:ECIES:ECDH:KDFX963:SHA384:AESGCM"
    ECIES_ENCRYPTION_STANDARD_X963_SHA512_AESGCM = "algid:encrypt:ECIES:ECDH:KDFX963:SHA512:AESGCM"
    ECIES_ENCRYPTION_STANDARD_VARIABLE_IV_X963_SHA224_AESGCM = "algid:encrypt:ECIES:ECDH:KDFX963:SHA224:AESGCM-KDFIV"
    ECIES_ENCRYPTION_STANDARD_VARIABLE_IV_X963_SHA256_AESGCM = "algid:encrypt:ECIES:ECDH:KDFX963:SHA256:AESGCM-KDFIV"
    ECIES_ENCRYPTION_STANDARD_VARIABLE_IV_X963_SHA384_AESGCM = "algid:encrypt:ECIES:ECDH:KDFX963:SHA384:AESGCM-KDFIV"
    ECIES_ENCRYPTION_STANDARD_VARIABLE_IV_X963_SHA512_AESGCM = "algid:encrypt:ECIES:ECDH:KDFX963:SHA512:AESGCM-KDFIV"

    @property
    def family(self) -> Family:
        return Family.SIGNATURE if self.value.startswith("algid:sign:") else Family.ENCRYPTION

    @property
    def key_type(self) -> KeyType:
        return KeyType.RSA if ":RSA:" in self.value else KeyType.EC_SEC_PRIME_RANDOM

    @property
    def digest(self) -> Optional[str]:
        """Digest name (SHA1 .. SHA512), None for RSA PKCS#1 encryption."""
        for part in self.value.split(":"):
            if part.startswith("SHA"):
                return part
        return None

    @property
    def prehashed(self) -> bool:
        """True when the input is a digest computed by the caller."""
        return ":digest-" in self.value

    @property
    def variable_iv(self) -> bool:
        return self.value.endswith("-KDFIV")

    def supports(self, key_type: KeyType, operation: KeyOperation) -> bool:
        return self.key_type == key_type and operation in _FAMILY_OPS[self.family]
