"""
keychain_core.provider.software
-------------------------------
In-process reference provider.

Implements every provider primitive on top of `cryptography`: keychains
and items live in memory, keys are real EC/RSA keys, and handles are
reference-counted integers so the core's retain/release pairing can be
checked exactly. Access control is evaluated on every gated use by an
injectable authenticator that plays the role of the platform prompt.
"""

from __future__ import annotations
import itertools, os, threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from cryptography.exceptions import InvalidSignature, InvalidTag, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, padding, rsa
from cryptography.hazmat.primitives.asymmetric.utils import Prehashed
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.x963kdf import X963KDF

from ..algorithms import KeyAlgorithm, KeyOperation
from ..attributes import Attr, ItemClass, KeyClass, KeyType, TokenId
from ..errors import (
    ProviderStatusError, errSecAuthFailed, errSecDecode, errSecDuplicateItem,
    errSecDuplicateKeychain, errSecInteractionNotAllowed, errSecInvalidItemRef,
    errSecItemNotFound, errSecKeySizeNotAllowed, errSecMissingEntitlement,
    errSecNoDefaultKeychain, errSecNoSuchClass, errSecNoSuchKeychain, errSecParam,
    errSecUnimplemented, errSecUserCanceled,
)
from ..logger import get_logger
from ..utils import now_ts, sha1
from .base import AuthOutcome, Authenticator, Handle, NativeAttrs, SecurityProvider

log = get_logger("Keychain.Provider.Software")

DEFAULT_KEYCHAIN = "login.keychain-db"

_CURVES = {256: ec.SECP256R1, 384: ec.SECP384R1, 521: ec.SECP521R1}
_RSA_SIZES = (1024, 2048, 3072, 4096)
_HASHES = {
    "SHA1": hashes.SHA1,
    "SHA224": hashes.SHA224,
    "SHA256": hashes.SHA256,
    "SHA384": hashes.SHA384,
    "SHA512": hashes.SHA512,
}

_PRIMARY_KEYS = {
    ItemClass.GENERIC_PASSWORD: (Attr.SERVICE, Attr.ACCOUNT, Attr.SYNCHRONIZABLE),
    ItemClass.INTERNET_PASSWORD: (Attr.SERVER, Attr.ACCOUNT, Attr.PROTOCOL, Attr.SYNCHRONIZABLE),
    ItemClass.KEY: (Attr.KEY_CLASS, Attr.KEY_TYPE, Attr.KEY_SIZE, Attr.APPLICATION_LABEL, Attr.APPLICATION_TAG),
    ItemClass.CERTIFICATE: (Attr.VALUE_DATA,),
}

# never matched against, never returned by copy_attributes
_HIDDEN = (Attr.VALUE_DATA.value,)


def _fail(status: int, message: str = "") -> ProviderStatusError:
    return ProviderStatusError(status, message)


@dataclass(eq=False)
class _Keychain:
    path: str
    password: Optional[str]
    records: List["_Record"] = field(default_factory=list)


@dataclass(eq=False)
class _Record:
    attrs: Dict[str, Any]
    material: Any = None
    keychain: Optional[_Keychain] = None
    peer: Optional["_Record"] = None

    @property
    def item_class(self):
        return self.attrs.get(Attr.CLASS.value)

    @property
    def is_key(self) -> bool:
        return self.item_class == ItemClass.KEY

    @property
    def is_private(self) -> bool:
        return self.is_key and self.attrs.get(Attr.KEY_CLASS.value) == KeyClass.PRIVATE

    def primary_key(self) -> tuple:
        fields = _PRIMARY_KEYS.get(ItemClass(self.item_class), ())
        return (self.item_class,) + tuple(self.attrs.get(f.value) for f in fields)


class _Slot:
    __slots__ = ("target", "count")

    def __init__(self, target):
        self.target = target
        self.count = 1


class SoftwareProvider(SecurityProvider):
    name = "software"

    def __init__(self, authenticator: Optional[Authenticator] = None, default_keychain: str = DEFAULT_KEYCHAIN):
        self.authenticator = authenticator
        self._lock = threading.RLock()
        self._ids = itertools.count(1)
        self._slots: Dict[int, _Slot] = {}
        self._keychains: Dict[str, _Keychain] = {}
        self._default: Optional[_Keychain] = self._add_keychain(default_keychain, None)
        self.issued = 0
        self.retains = 0
        self.releases = 0
        self.auth_prompts = 0

    # ------------------------------------------------------------------
    # Reference counting
    # ------------------------------------------------------------------
    def _issue(self, target) -> int:
        with self._lock:
            handle = next(self._ids)
            self._slots[handle] = _Slot(target)
            self.issued += 1
            return handle

    def _deref(self, handle: Handle, expected: type):
        with self._lock:
            slot = self._slots.get(handle)
        if slot is None:
            raise _fail(errSecInvalidItemRef, f"unknown handle {handle!r}")
        if not isinstance(slot.target, expected):
            raise _fail(errSecParam, f"handle {handle!r} is not a {expected.__name__.strip('_').lower()}")
        return slot.target

    def retain(self, handle: Handle) -> None:
        with self._lock:
            slot = self._slots.get(handle)
            if slot is None:
                raise _fail(errSecInvalidItemRef, f"retain of unknown handle {handle!r}")
            slot.count += 1
            self.retains += 1

    def release(self, handle: Handle) -> None:
        with self._lock:
            slot = self._slots.get(handle)
            if slot is None:
                raise _fail(errSecInvalidItemRef, f"release of unknown handle {handle!r}")
            slot.count -= 1
            self.releases += 1
            if slot.count == 0:
                del self._slots[handle]

    def live_handles(self) -> int:
        with self._lock:
            return len(self._slots)

    def refcount(self, handle: Handle) -> int:
        with self._lock:
            slot = self._slots.get(handle)
            return slot.count if slot else 0

    # ------------------------------------------------------------------
    # Keychains
    # ------------------------------------------------------------------
    def _add_keychain(self, path: str, password: Optional[str]) -> _Keychain:
        key = os.path.abspath(path)
        if key in self._keychains:
            raise _fail(errSecDuplicateKeychain, f"keychain exists at {key}")
        kc = _Keychain(key, password)
        self._keychains[key] = kc
        return kc

    def create_keychain(self, path: str, password: Optional[str]) -> Handle:
        with self._lock:
            kc = self._add_keychain(path, password)
        log.info(f"[KEYCHAIN] created {kc.path}")
        return self._issue(kc)

    def copy_default_keychain(self) -> Handle:
        if self._default is None:
            raise _fail(errSecNoDefaultKeychain)
        return self._issue(self._default)

    def delete_keychain(self, keychain: Handle) -> None:
        kc = self._deref(keychain, _Keychain)
        with self._lock:
            if self._keychains.get(kc.path) is not kc:
                raise _fail(errSecNoSuchKeychain, kc.path)
            del self._keychains[kc.path]
            for rec in kc.records:
                rec.keychain = None
            kc.records.clear()
            if self._default is kc:
                self._default = None
        log.info(f"[KEYCHAIN] deleted {kc.path}")

    def _resolve(self, keychain: Optional[Handle]) -> _Keychain:
        if keychain is not None:
            kc = self._deref(keychain, _Keychain)
            if self._keychains.get(kc.path) is not kc:
                raise _fail(errSecNoSuchKeychain, kc.path)
            return kc
        if self._default is None:
            raise _fail(errSecNoDefaultKeychain)
        return self._default

    def _search_list(self, keychain: Optional[Handle]) -> List[_Keychain]:
        if keychain is not None:
            return [self._resolve(keychain)]
        return list(self._keychains.values())

    def _store(self, rec: _Record, kc: _Keychain) -> None:
        pk = rec.primary_key()
        if any(other.primary_key() == pk for other in kc.records):
            raise _fail(errSecDuplicateItem)
        rec.keychain = kc
        kc.records.append(rec)

    # ------------------------------------------------------------------
    # Items
    # ------------------------------------------------------------------
    @staticmethod
    def _require_class(attrs: NativeAttrs):
        cls = attrs.get(Attr.CLASS.value)
        if cls is None:
            raise _fail(errSecParam, "kSecClass is required")
        try:
            return ItemClass(cls)
        except ValueError:
            raise _fail(errSecNoSuchClass, f"unknown item class {cls!r}") from None

    def create_object(self, attrs: NativeAttrs, keychain: Optional[Handle] = None) -> Handle:
        cls = self._require_class(attrs)
        if cls in (ItemClass.KEY, ItemClass.IDENTITY):
            raise _fail(errSecUnimplemented, f"adding {cls.name} items directly")
        if cls is ItemClass.CERTIFICATE and Attr.VALUE_DATA.value not in attrs:
            raise _fail(errSecParam, "certificate items need value data")
        rec = _Record(dict(attrs))
        rec.attrs.setdefault(Attr.CREATION_DATE.value, now_ts())
        with self._lock:
            self._store(rec, self._resolve(keychain))
        return self._issue(rec)

    @staticmethod
    def _matches(rec: _Record, query: NativeAttrs) -> bool:
        return all(
            rec.attrs.get(code) == value
            for code, value in query.items()
            if code not in _HIDDEN
        )

    def _select(self, query: NativeAttrs, keychain: Optional[Handle]) -> List[_Record]:
        self._require_class(query)
        with self._lock:
            found = [
                rec
                for kc in self._search_list(keychain)
                for rec in kc.records
                if self._matches(rec, query)
            ]
        if not found:
            raise _fail(errSecItemNotFound)
        return found

    def copy_matching(self, query: NativeAttrs, many: bool, keychain: Optional[Handle] = None) -> List[Handle]:
        found = self._select(query, keychain)
        if not many:
            found = found[:1]
        return [self._issue(rec) for rec in found]

    def delete_matching(self, query: NativeAttrs, keychain: Optional[Handle] = None) -> int:
        found = self._select(query, keychain)
        with self._lock:
            for rec in found:
                rec.keychain.records.remove(rec)
                rec.keychain = None
        return len(found)

    def delete_object(self, handle: Handle) -> None:
        rec = self._deref(handle, _Record)
        with self._lock:
            if rec.keychain is not None:
                rec.keychain.records.remove(rec)
                rec.keychain = None

    def copy_attributes(self, handle: Handle) -> NativeAttrs:
        rec = self._deref(handle, _Record)
        return {code: value for code, value in rec.attrs.items() if code not in _HIDDEN}

    def copy_data(self, handle: Handle, prompt: Optional[str] = None) -> bytes:
        rec = self._deref(handle, _Record)
        data = rec.attrs.get(Attr.VALUE_DATA.value)
        if data is None:
            raise _fail(errSecParam, "item has no value data")
        self._authorize(rec, prompt or "read item data")
        return data

    # ------------------------------------------------------------------
    # Access control
    # ------------------------------------------------------------------
    def _authorize(self, rec: _Record, prompt: str) -> None:
        policy = rec.attrs.get(Attr.ACCESS_CONTROL.value)
        if policy is None or not policy.requires_authentication:
            return
        if self.authenticator is None:
            raise _fail(errSecInteractionNotAllowed, "no authentication UI available")
        self.auth_prompts += 1
        outcome = self.authenticator(policy, prompt)
        if outcome == AuthOutcome.SUCCESS:
            return
        if outcome == AuthOutcome.CANCELED:
            raise _fail(errSecUserCanceled)
        raise _fail(errSecAuthFailed)

    # ------------------------------------------------------------------
    # Keys
    # ------------------------------------------------------------------
    @staticmethod
    def _public_bytes(public) -> bytes:
        if isinstance(public, ec.EllipticCurvePublicKey):
            return public.public_bytes(serialization.Encoding.X962, serialization.PublicFormat.UncompressedPoint)
        return public.public_bytes(serialization.Encoding.DER, serialization.PublicFormat.PKCS1)

    def _key_record(self, material, key_class: KeyClass, attrs: NativeAttrs) -> _Record:
        public = material if key_class is KeyClass.PUBLIC else material.public_key()
        key_type = KeyType.EC_SEC_PRIME_RANDOM if isinstance(public, ec.EllipticCurvePublicKey) else KeyType.RSA
        out = {
            code: value for code, value in attrs.items()
            if code not in (Attr.IS_PERMANENT.value, Attr.VALUE_DATA.value)
        }
        out.update({
            Attr.CLASS.value: ItemClass.KEY,
            Attr.KEY_CLASS.value: key_class,
            Attr.KEY_TYPE.value: key_type,
            Attr.KEY_SIZE.value: public.curve.key_size if key_type is KeyType.EC_SEC_PRIME_RANDOM else public.key_size,
            Attr.APPLICATION_LABEL.value: sha1(self._public_bytes(public)),
            Attr.IS_PERMANENT.value: bool(attrs.get(Attr.IS_PERMANENT.value, False)),
            Attr.CREATION_DATE.value: now_ts(),
        })
        if key_class is KeyClass.PRIVATE:
            out.setdefault(Attr.CAN_SIGN.value, True)
            out.setdefault(Attr.CAN_DECRYPT.value, True)
            out.setdefault(Attr.IS_EXTRACTABLE.value, Attr.TOKEN_ID.value not in out)
        else:
            for code in (Attr.ACCESS_CONTROL.value, Attr.TOKEN_ID.value, Attr.CAN_SIGN.value, Attr.CAN_DECRYPT.value):
                out.pop(code, None)
            out.setdefault(Attr.CAN_VERIFY.value, True)
            out.setdefault(Attr.CAN_ENCRYPT.value, True)
            out[Attr.IS_EXTRACTABLE.value] = True
        return _Record(out, material)

    def generate_key_pair(self, attrs: NativeAttrs, keychain: Optional[Handle] = None) -> Tuple[Handle, Handle]:
        key_type = attrs.get(Attr.KEY_TYPE.value)
        size = attrs.get(Attr.KEY_SIZE.value)
        if attrs.get(Attr.TOKEN_ID.value) == TokenId.SECURE_ENCLAVE:
            key_type = key_type or KeyType.EC_SEC_PRIME_RANDOM
            size = size or 256
            if key_type != KeyType.EC_SEC_PRIME_RANDOM or size != 256:
                raise _fail(errSecParam, "secure enclave keys must be 256-bit EC")
        if key_type is None or size is None:
            raise _fail(errSecParam, "key type and size are required")

        if key_type == KeyType.EC_SEC_PRIME_RANDOM:
            if size not in _CURVES:
                raise _fail(errSecKeySizeNotAllowed, f"EC key size {size}")
            private = ec.generate_private_key(_CURVES[size]())
        elif key_type == KeyType.RSA:
            if size not in _RSA_SIZES:
                raise _fail(errSecKeySizeNotAllowed, f"RSA key size {size}")
            private = rsa.generate_private_key(public_exponent=65537, key_size=size)
        else:
            raise _fail(errSecParam, f"unsupported key type {key_type!r}")

        shared = dict(attrs)
        shared[Attr.KEY_TYPE.value] = key_type
        shared[Attr.KEY_SIZE.value] = size
        priv = self._key_record(private, KeyClass.PRIVATE, shared)
        pub = self._key_record(private.public_key(), KeyClass.PUBLIC, shared)
        priv.peer, pub.peer = pub, priv

        if attrs.get(Attr.IS_PERMANENT.value):
            with self._lock:
                kc = self._resolve(keychain)
                self._store(pub, kc)
                self._store(priv, kc)
        log.debug(f"[KEYGEN] type={KeyType(key_type).name} bits={size}")
        return self._issue(pub), self._issue(priv)

    @staticmethod
    def _load_key(data: bytes, key_type, key_class):
        if key_type == KeyType.EC_SEC_PRIME_RANDOM:
            for bits, curve in _CURVES.items():
                coord = (bits + 7) // 8
                point_len = 1 + 2 * coord
                if key_class == KeyClass.PUBLIC and len(data) == point_len:
                    return ec.EllipticCurvePublicKey.from_encoded_point(curve(), data)
                if key_class == KeyClass.PRIVATE and len(data) == point_len + coord:
                    scalar = int.from_bytes(data[point_len:], "big")
                    private = ec.derive_private_key(scalar, curve())
                    if SoftwareProvider._public_bytes(private.public_key()) != data[:point_len]:
                        raise ValueError("public point does not match private scalar")
                    return private
            raise ValueError(f"no curve for {len(data)} bytes")
        if key_type == KeyType.RSA:
            if key_class == KeyClass.PUBLIC:
                key = serialization.load_der_public_key(data)
                expected = rsa.RSAPublicKey
            else:
                key = serialization.load_der_private_key(data, password=None)
                expected = rsa.RSAPrivateKey
            if not isinstance(key, expected):
                raise ValueError("not an RSA key")
            return key
        raise ValueError(f"unsupported key type {key_type!r}")

    def import_key(self, data: bytes, attrs: NativeAttrs, keychain: Optional[Handle] = None) -> Handle:
        key_type = attrs.get(Attr.KEY_TYPE.value)
        key_class = attrs.get(Attr.KEY_CLASS.value)
        if key_type is None or key_class not in (KeyClass.PUBLIC, KeyClass.PRIVATE):
            raise _fail(errSecParam, "key type and an asymmetric key class are required")
        try:
            material = self._load_key(bytes(data), key_type, key_class)
        except (ValueError, TypeError, UnsupportedAlgorithm) as exc:
            raise _fail(errSecDecode, f"malformed key material: {exc}") from exc
        rec = self._key_record(material, KeyClass(key_class), attrs)
        if attrs.get(Attr.IS_PERMANENT.value):
            with self._lock:
                self._store(rec, self._resolve(keychain))
        return self._issue(rec)

    def _key(self, handle: Handle, private: Optional[bool] = None) -> _Record:
        rec = self._deref(handle, _Record)
        if not rec.is_key:
            raise _fail(errSecParam, "not a key")
        if private is not None and rec.is_private != private:
            raise _fail(errSecParam, "wrong key class for this operation")
        return rec

    def export_key(self, key: Handle) -> bytes:
        rec = self._key(key)
        if rec.is_private:
            if rec.attrs.get(Attr.TOKEN_ID.value) is not None or not rec.attrs.get(Attr.IS_EXTRACTABLE.value, True):
                raise _fail(errSecMissingEntitlement, "private key is not extractable")
            material = rec.material
            if isinstance(material, ec.EllipticCurvePrivateKey):
                coord = (material.curve.key_size + 7) // 8
                scalar = material.private_numbers().private_value.to_bytes(coord, "big")
                return self._public_bytes(material.public_key()) + scalar
            return material.private_bytes(
                serialization.Encoding.DER,
                serialization.PrivateFormat.TraditionalOpenSSL,
                serialization.NoEncryption(),
            )
        return self._public_bytes(rec.material)

    def copy_public_key(self, key: Handle) -> Handle:
        rec = self._key(key)
        if not rec.is_private:
            return self._issue(rec)
        if rec.peer is None:
            rec.peer = self._key_record(rec.material.public_key(), KeyClass.PUBLIC, rec.attrs)
            rec.peer.peer = rec
        return self._issue(rec.peer)

    @staticmethod
    def _algorithm(rec: _Record, algorithm: str, operation: KeyOperation) -> KeyAlgorithm:
        try:
            alg = KeyAlgorithm(algorithm)
        except ValueError:
            raise _fail(errSecParam, f"unknown algorithm {algorithm!r}") from None
        if not alg.supports(rec.attrs[Attr.KEY_TYPE.value], operation):
            raise _fail(errSecParam, f"{alg.name} cannot {operation.value} with this key")
        return alg

    @staticmethod
    def _usage(rec: _Record, attr: Attr) -> None:
        if rec.attrs.get(attr.value) is False:
            raise _fail(errSecParam, f"key usage {attr.name} is disabled")

    @staticmethod
    def _sig_params(alg: KeyAlgorithm, rec: _Record, data: bytes):
        digest = _HASHES[alg.digest]()
        if alg.prehashed and len(data) != digest.digest_size:
            raise _fail(errSecParam, f"{alg.name} expects a {digest.digest_size}-byte digest")
        chosen = Prehashed(digest) if alg.prehashed else digest
        if rec.attrs[Attr.KEY_TYPE.value] == KeyType.EC_SEC_PRIME_RANDOM:
            return (ec.ECDSA(chosen),)
        if ":digest-PSS:" in alg.value or ":message-PSS:" in alg.value:
            pad = padding.PSS(mgf=padding.MGF1(digest), salt_length=digest.digest_size)
        else:
            pad = padding.PKCS1v15()
        return pad, chosen

    def create_signature(self, key: Handle, algorithm: str, data: bytes, prompt: Optional[str] = None) -> bytes:
        rec = self._key(key, private=True)
        alg = self._algorithm(rec, algorithm, KeyOperation.SIGN)
        self._usage(rec, Attr.CAN_SIGN)
        params = self._sig_params(alg, rec, data)
        self._authorize(rec, prompt or "sign")
        try:
            return rec.material.sign(data, *params)
        except ValueError as exc:
            raise _fail(errSecParam, str(exc)) from exc

    def verify_signature(self, key: Handle, algorithm: str, data: bytes, signature: bytes) -> bool:
        rec = self._key(key, private=False)
        alg = self._algorithm(rec, algorithm, KeyOperation.VERIFY)
        self._usage(rec, Attr.CAN_VERIFY)
        params = self._sig_params(alg, rec, data)
        try:
            rec.material.verify(signature, data, *params)
        except InvalidSignature:
            return False
        return True

    @staticmethod
    def _oaep(alg: KeyAlgorithm):
        if alg.digest is None:
            return padding.PKCS1v15()
        digest = _HASHES[alg.digest]()
        return padding.OAEP(mgf=padding.MGF1(digest), algorithm=digest, label=None)

    @staticmethod
    def _ecies_keys(alg: KeyAlgorithm, shared: bytes, ephemeral: bytes, curve_bits: int) -> Tuple[bytes, bytes]:
        key_len = 16 if curve_bits <= 256 else 32
        length = key_len + 16 if alg.variable_iv else key_len
        derived = X963KDF(algorithm=_HASHES[alg.digest](), length=length, sharedinfo=ephemeral).derive(shared)
        iv = derived[key_len:] if alg.variable_iv else b"\x00" * 16
        return derived[:key_len], iv

    def encrypt(self, key: Handle, algorithm: str, plaintext: bytes) -> bytes:
        rec = self._key(key, private=False)
        alg = self._algorithm(rec, algorithm, KeyOperation.ENCRYPT)
        self._usage(rec, Attr.CAN_ENCRYPT)
        public = rec.material
        try:
            if isinstance(public, rsa.RSAPublicKey):
                return public.encrypt(plaintext, self._oaep(alg))
            ephemeral = ec.generate_private_key(public.curve)
            eph_bytes = self._public_bytes(ephemeral.public_key())
            shared = ephemeral.exchange(ec.ECDH(), public)
            aes_key, iv = self._ecies_keys(alg, shared, eph_bytes, public.curve.key_size)
            return eph_bytes + AESGCM(aes_key).encrypt(iv, plaintext, None)
        except ValueError as exc:
            raise _fail(errSecParam, str(exc)) from exc

    def decrypt(self, key: Handle, algorithm: str, ciphertext: bytes, prompt: Optional[str] = None) -> bytes:
        rec = self._key(key, private=True)
        alg = self._algorithm(rec, algorithm, KeyOperation.DECRYPT)
        self._usage(rec, Attr.CAN_DECRYPT)
        self._authorize(rec, prompt or "decrypt")
        private = rec.material
        try:
            if isinstance(private, rsa.RSAPrivateKey):
                return private.decrypt(ciphertext, self._oaep(alg))
            bits = private.curve.key_size
            point_len = 1 + 2 * ((bits + 7) // 8)
            eph_bytes, body = ciphertext[:point_len], ciphertext[point_len:]
            ephemeral = ec.EllipticCurvePublicKey.from_encoded_point(private.curve, eph_bytes)
            shared = private.exchange(ec.ECDH(), ephemeral)
            aes_key, iv = self._ecies_keys(alg, shared, eph_bytes, bits)
            return AESGCM(aes_key).decrypt(iv, body, None)
        except (ValueError, InvalidTag) as exc:
            raise _fail(errSecDecode, "ciphertext could not be decrypted") from exc
