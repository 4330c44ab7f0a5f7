import logging
import pytest

from keychain_core.errors import (
    DuplicateItemError, InvalidParameterError, ItemNotFoundError,
    errSecDuplicateKeychain, errSecNoDefaultKeychain,
)
from keychain_core.keychain import KeychainManager


def test_create_and_delete(provider, tmp_path):
    mgr = KeychainManager(provider)
    path = tmp_path / "test.keychain"
    kc = mgr.create(path, "password")
    assert kc.alive
    mgr.delete(kc)
    assert not kc.alive

    # the path is free again
    again = mgr.create(str(path), "password")
    mgr.delete(again)


def test_create_duplicate(provider, tmp_path):
    mgr = KeychainManager(provider)
    kc = mgr.create(tmp_path / "dup.keychain", "password")
    with pytest.raises(DuplicateItemError) as exc:
        mgr.create(tmp_path / "dup.keychain", "other")
    assert exc.value.status == errSecDuplicateKeychain
    mgr.delete(kc)


def test_delete_consumes_reference(provider, tmp_path):
    mgr = KeychainManager(provider)
    kc = mgr.create(tmp_path / "once.keychain")
    mgr.delete(kc)
    with pytest.raises(InvalidParameterError):
        mgr.delete(kc)


def test_delete_default_keychain(provider):
    mgr = KeychainManager(provider)
    mgr.delete(mgr.default())
    with pytest.raises(ItemNotFoundError) as exc:
        mgr.default()
    assert exc.value.status == errSecNoDefaultKeychain


def test_keychain_lifecycle_is_logged(provider, tmp_path, caplog):
    caplog.set_level(logging.INFO, logger="Keychain.Keychains")
    mgr = KeychainManager(provider)
    mgr.delete(mgr.create(tmp_path / "logged.keychain"))
    assert "[KEYCHAIN] create" in caplog.text
    assert "[KEYCHAIN] delete" in caplog.text
