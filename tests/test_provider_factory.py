import json
import logging
import pytest

from keychain_core import ItemClass, Limit, attrs, connect
from keychain_core.errors import DuplicateItemError
from keychain_core.keychain import KeychainManager
from keychain_core.logger import get_logger
from keychain_core.provider import AuthOutcome, SoftwareProvider, load_provider


def test_default_provider(monkeypatch):
    monkeypatch.delenv("KEYCHAIN_CORE_PROVIDER", raising=False)
    p = load_provider()
    assert isinstance(p, SoftwareProvider)
    assert p.authenticator is None


def test_provider_from_env(monkeypatch):
    monkeypatch.setenv("KEYCHAIN_CORE_PROVIDER", "MEMORY")
    assert isinstance(load_provider(), SoftwareProvider)


def test_unknown_provider():
    with pytest.raises(ValueError):
        load_provider({"provider": "hsm"})


def test_default_keychain_from_config(tmp_path, monkeypatch):
    monkeypatch.delenv("KEYCHAIN_CORE_DEFAULT_KEYCHAIN", raising=False)
    path = tmp_path / "custom.keychain-db"
    p = load_provider({"default_keychain": str(path)})
    with pytest.raises(DuplicateItemError):
        KeychainManager(p).create(path)


def test_default_keychain_from_env(tmp_path, monkeypatch):
    path = tmp_path / "env.keychain-db"
    monkeypatch.setenv("KEYCHAIN_CORE_DEFAULT_KEYCHAIN", str(path))
    with pytest.raises(DuplicateItemError):
        KeychainManager(load_provider()).create(path)


def test_connect_wires_managers(tmp_path):
    services = connect({"provider": "software", "authenticator": lambda policy, prompt: AuthOutcome.SUCCESS})
    assert services.items.provider is services.provider
    assert services.keys.provider is services.provider

    services.passwords.create_generic("example.com", "me", "pw")
    with services.passwords.find_generic("example.com", "me") as item:
        assert services.passwords.password(item) == "pw"

    kc = services.keychains.create(tmp_path / "scoped.keychain")
    scoped = services.scoped(kc)
    assert scoped.items.keychain is kc
    assert scoped.items.find(attrs(CLASS=ItemClass.GENERIC_PASSWORD), Limit.MANY) == []
    services.keychains.delete(kc)


# --------- Logging ----------
def test_logger_emits_json(capsys):
    log = get_logger("Keychain.Test.Json")
    log.info("hello keychain")
    line = capsys.readouterr().out.strip().splitlines()[-1]
    record = json.loads(line)
    assert record["level"] == "INFO"
    assert record["name"] == "Keychain.Test.Json"
    assert record["msg"] == "hello keychain"


def test_logger_level_from_env(monkeypatch):
    monkeypatch.setenv("KEYCHAIN_CORE_LOG_LEVEL", "debug")
    assert get_logger("Keychain.Test.Env").level == logging.DEBUG


def test_logger_file_output(tmp_path):
    target = tmp_path / "logs" / "keychain.log"
    log = get_logger("Keychain.Test.File", to_file=str(target))
    log.warning("written to disk")
    for h in log.handlers:
        h.flush()
    assert "written to disk" in target.read_text()
