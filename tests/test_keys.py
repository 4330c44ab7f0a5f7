import gc
import hashlib
import pytest

from keychain_core.access import AccessControlPolicy
from keychain_core.algorithms import KeyAlgorithm
from keychain_core.attributes import Attr, AttributeBuilder, KeyClass, KeyType, TokenId, attrs
from keychain_core.errors import (
    AuthenticationFailedError, InvalidParameterError, ItemNotFoundError, MissingEntitlementError,
    ProviderStatusError, errSecAuthFailed, errSecKeySizeNotAllowed, errSecMissingEntitlement,
    errSecParam,
)
from keychain_core.items import Limit
from keychain_core.keys import Key, KeyManager
from keychain_core.operations import sign, verify
from keychain_core.provider import SoftwareProvider


def ec_params(bits=256):
    return AttributeBuilder().key_type(KeyType.EC_SEC_PRIME_RANDOM).key_size(bits)


def rsa_params(bits=2048):
    return AttributeBuilder().key_type(KeyType.RSA).key_size(bits)


@pytest.fixture
def keys(provider):
    return KeyManager(provider)


def test_generate_ec_pair(keys):
    with keys.generate(ec_params().label("test").build()) as pair:
        assert pair.private_key.key_class is KeyClass.PRIVATE
        assert pair.public_key.key_class is KeyClass.PUBLIC
        assert pair.private_key.key_type is KeyType.EC_SEC_PRIME_RANDOM
        assert pair.private_key.key_size == 256
        assert pair.private_key.label == "test"
        # both halves share the public key fingerprint
        assert len(pair.public_key.application_label) == 20
        assert pair.private_key.application_label == pair.public_key.application_label


def test_generate_rsa_pair(keys):
    with keys.generate(rsa_params().build()) as pair:
        assert pair.public_key.key_type is KeyType.RSA
        assert pair.public_key.key_size == 2048


def test_generate_requires_type_and_size(keys):
    with pytest.raises(InvalidParameterError):
        keys.generate(attrs(KEY_TYPE=KeyType.RSA))
    with pytest.raises(InvalidParameterError):
        keys.generate(attrs(KEY_SIZE=256))


def test_generate_rejects_bad_parameters(keys):
    with pytest.raises(InvalidParameterError) as exc:
        keys.generate(ec_params(192).build())
    assert exc.value.status == errSecKeySizeNotAllowed
    with pytest.raises(InvalidParameterError):
        keys.generate(AttributeBuilder().key_type(KeyType.AES).key_size(256).build())
    with pytest.raises(InvalidParameterError):
        keys.generate(rsa_params().token_id(TokenId.SECURE_ENCLAVE).build())


def test_secure_enclave_private_key_is_not_exportable(keys, monkeypatch):
    pair = keys.generate(AttributeBuilder().token_id(TokenId.SECURE_ENCLAVE).build())
    assert pair.private_key.key_type is KeyType.EC_SEC_PRIME_RANDOM
    assert pair.private_key.key_size == 256

    public = keys.export(pair.public_key)
    assert len(public) == 65 and public[:1] == b"\x04"

    def refuse(handle):
        raise AssertionError("provider should not be asked")

    with monkeypatch.context() as m:
        m.setattr(keys.provider, "export_key", refuse)
        with pytest.raises(MissingEntitlementError) as exc:
            keys.export(pair.private_key)
    assert exc.value.status == errSecMissingEntitlement

    # the provider enforces it too
    with pytest.raises(ProviderStatusError) as raw:
        keys.provider.export_key(pair.private_key.borrow())
    assert raw.value.status == errSecMissingEntitlement
    pair.release()


def test_non_extractable_private_key(keys):
    with keys.generate(ec_params().extractable(False).build()) as pair:
        with pytest.raises(MissingEntitlementError):
            keys.export(pair.private_key)
        keys.export(pair.public_key)


def test_ec_export_import(keys):
    with keys.generate(ec_params(384).build()) as pair:
        public = keys.export(pair.public_key)
        assert len(public) == 97
        with keys.import_key(public, attrs(KEY_TYPE=KeyType.EC_SEC_PRIME_RANDOM,
                                           KEY_CLASS=KeyClass.PUBLIC)) as imported:
            assert imported.key_size == 384
            assert imported.application_label == pair.public_key.application_label

        private = keys.export(pair.private_key)
        assert len(private) == 97 + 48
        with keys.import_key(private, attrs(KEY_TYPE=KeyType.EC_SEC_PRIME_RANDOM,
                                            KEY_CLASS=KeyClass.PRIVATE)) as restored:
            digest = hashlib.sha384(b"round trip").digest()
            alg = KeyAlgorithm.ECDSA_SIGNATURE_DIGEST_X962_SHA384
            assert verify(pair.public_key, alg, digest, sign(restored, alg, digest))


def test_rsa_export_import(keys):
    with keys.generate(rsa_params().build()) as pair:
        public = keys.export(pair.public_key)
        with keys.import_key(public, attrs(KEY_TYPE=KeyType.RSA, KEY_CLASS=KeyClass.PUBLIC)) as imported:
            assert imported.key_size == 2048
            assert keys.export(imported) == public
        private = keys.export(pair.private_key)
        with keys.import_key(private, attrs(KEY_TYPE=KeyType.RSA, KEY_CLASS=KeyClass.PRIVATE)) as restored:
            assert restored.application_label == pair.private_key.application_label


def test_import_malformed(keys):
    with pytest.raises(InvalidParameterError):
        keys.import_key(b"\x04garbage", attrs(KEY_TYPE=KeyType.EC_SEC_PRIME_RANDOM,
                                             KEY_CLASS=KeyClass.PUBLIC))
    with pytest.raises(InvalidParameterError):
        keys.import_key(b"\x30\x00", attrs(KEY_TYPE=KeyType.RSA, KEY_CLASS=KeyClass.PRIVATE))
    with pytest.raises(InvalidParameterError):
        keys.import_key(b"\x04", attrs(KEY_TYPE=KeyType.RSA))


def test_public_key_of_private(keys):
    with keys.generate(ec_params().build()) as pair:
        with keys.public_key(pair.private_key) as public:
            assert public.key_class is KeyClass.PUBLIC
            assert keys.export(public) == keys.export(pair.public_key)


def test_clone_keeps_snapshot(keys):
    with keys.generate(ec_params().build()) as pair:
        with pair.private_key.clone() as copy:
            assert isinstance(copy, Key)
            assert copy.attributes == pair.private_key.attributes


def test_find_permanent_keys_by_tag(keys):
    tag = b"com.example.keys.find"
    pair = keys.generate(ec_params().application_tag(tag).permanent().build())
    with keys.find(attrs(APPLICATION_TAG=tag, KEY_CLASS=KeyClass.PRIVATE)) as found:
        assert found.is_private
        assert found.application_label == pair.private_key.application_label
    assert len(keys.find(attrs(APPLICATION_TAG=tag), Limit.MANY)) == 2
    keys.delete_pair(pair)
    assert keys.find(attrs(APPLICATION_TAG=tag), Limit.MANY) == []


def test_ephemeral_keys_are_not_stored(keys):
    tag = b"com.example.keys.ephemeral"
    with keys.generate(ec_params().application_tag(tag).build()):
        with pytest.raises(ItemNotFoundError):
            keys.find(attrs(APPLICATION_TAG=tag))


def test_snapshot_is_point_in_time(keys):
    tag = b"com.example.keys.snapshot"
    with keys.generate(ec_params().application_tag(tag).permanent().build()) as pair:
        found = keys.find(attrs(APPLICATION_TAG=tag, KEY_CLASS=KeyClass.PRIVATE))
        keys.delete(pair.private_key)
        # the handle and its snapshot outlive the stored item
        assert found.key_class is KeyClass.PRIVATE
        assert keys.attributes(found)[Attr.KEY_CLASS] is KeyClass.PRIVATE
        with pytest.raises(ItemNotFoundError):
            keys.find(attrs(APPLICATION_TAG=tag, KEY_CLASS=KeyClass.PRIVATE))
        found.release()


def test_generate_sign_verify_delete(keys):
    tag = b"com.example.keys.scenario"
    pair = keys.generate(
        ec_params()
        .application_tag(tag)
        .permanent()
        .access_control(AccessControlPolicy.none())
        .build()
    )
    digest = hashlib.sha256(b"Embed confidential information in items that you store").digest()
    alg = KeyAlgorithm.ECDSA_SIGNATURE_DIGEST_X962_SHA256
    signature = sign(pair.private_key, alg, digest)
    assert verify(pair.public_key, alg, digest, signature) is True

    keys.delete(pair.private_key)
    keys.delete(pair.public_key)
    assert not pair.private_key.alive
    with pytest.raises(ItemNotFoundError):
        keys.find(attrs(APPLICATION_TAG=tag))


class AttributeReadFails(SoftwareProvider):
    """copy_attributes fails once after `fail_next` is set."""

    fail_next = False

    def copy_attributes(self, handle):
        if self.fail_next:
            self.fail_next = False
            raise ProviderStatusError(errSecParam, "attribute read refused")
        return super().copy_attributes(handle)


def _assert_balanced(provider):
    gc.collect()
    assert provider.live_handles() == 0
    assert provider.issued + provider.retains == provider.releases


def test_failed_find_releases_every_match():
    provider = AttributeReadFails()
    keys = KeyManager(provider)
    tag = b"com.example.keys.unreadable"
    pair = keys.generate(ec_params().application_tag(tag).permanent().build())

    provider.fail_next = True
    with pytest.raises(InvalidParameterError):
        keys.find(attrs(APPLICATION_TAG=tag), Limit.MANY)
    pair.release()
    _assert_balanced(provider)


def test_failed_generate_releases_both_halves():
    provider = AttributeReadFails()
    provider.fail_next = True
    with pytest.raises(InvalidParameterError):
        KeyManager(provider).generate(ec_params().build())
    _assert_balanced(provider)


def test_delete_pair_raises_first_failure(keys, monkeypatch):
    pair = keys.generate(ec_params().permanent().build())
    statuses = [errSecAuthFailed, errSecParam]

    def refuse(handle):
        raise ProviderStatusError(statuses.pop(0))

    monkeypatch.setattr(keys.provider, "delete_object", refuse)
    with pytest.raises(AuthenticationFailedError):
        keys.delete_pair(pair)
    # both deletes were attempted and both references consumed
    assert statuses == []
    assert not pair.private_key.alive
    assert not pair.public_key.alive
