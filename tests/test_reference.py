import gc
import pytest

from keychain_core.errors import InvalidParameterError, ProviderStatusError, errSecInvalidItemRef
from keychain_core.keychain import KeychainManager


def test_release_is_balanced_and_idempotent(provider):
    kc = KeychainManager(provider).default()
    handle = kc.borrow()
    assert provider.refcount(handle) == 1
    kc.release()
    kc.release()
    assert provider.refcount(handle) == 0
    assert provider.releases == 1


def test_clone_retains_once_and_each_copy_releases_once(provider):
    kc = KeychainManager(provider).default()
    copy = kc.clone()
    assert copy.same_object(kc)
    assert copy is not kc
    assert provider.refcount(kc.borrow()) == 2

    kc.release()
    assert copy.alive
    assert provider.refcount(copy.borrow()) == 1
    copy.release()
    assert provider.retains == 1
    assert provider.releases == 2


def test_use_after_release(provider):
    kc = KeychainManager(provider).default()
    kc.release()
    with pytest.raises(InvalidParameterError) as exc:
        kc.borrow()
    assert exc.value.status == errSecInvalidItemRef
    with pytest.raises(InvalidParameterError):
        kc.clone()
    assert "released" in repr(kc)


def test_with_block_releases(provider):
    with KeychainManager(provider).default() as kc:
        handle = kc.borrow()
        assert kc.alive
    assert not kc.alive
    assert provider.refcount(handle) == 0


def test_dropped_reference_is_released(provider):
    kc = KeychainManager(provider).default()
    handle = kc.borrow()
    del kc
    gc.collect()
    assert provider.refcount(handle) == 0


def test_provider_rejects_unbalanced_release(provider):
    handle = provider.copy_default_keychain()
    provider.release(handle)
    with pytest.raises(ProviderStatusError) as exc:
        provider.release(handle)
    assert exc.value.status == errSecInvalidItemRef
