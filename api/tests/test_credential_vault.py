"""
Tests for credential encryption (AES-256-GCM, "nonce:tag:data" hex format).

Run: cd api && python -m pytest tests/test_credential_vault.py
"""

import re

import pytest

from integrations.core.errors import CorruptCredential
from integrations.core.tokens import CredentialVault

CIPHERTEXT_FORMAT = re.compile(r"^[0-9a-f]{32}:[0-9a-f]{32}:[0-9a-f]*$")


def test_round_trip(vault):
    ciphertext = vault.encrypt("ya29.secret-token")

    assert CIPHERTEXT_FORMAT.match(ciphertext), ciphertext
    assert "secret-token" not in ciphertext
    assert vault.decrypt(ciphertext) == "ya29.secret-token"


def test_round_trip_empty_and_unicode(vault):
    assert vault.decrypt(vault.encrypt("")) == ""
    assert vault.decrypt(vault.encrypt("tökén ✓")) == "tökén ✓"


def test_fresh_nonce_per_encryption(vault):
    first = vault.encrypt("same")
    second = vault.encrypt("same")

    assert first != second
    assert first.split(":")[0] != second.split(":")[0]


def test_any_single_character_change_fails(vault):
    ciphertext = vault.encrypt("page-token")

    for index, char in enumerate(ciphertext):
        if char == ":":
            continue
        replacement = "0" if char != "0" else "1"
        tampered = ciphertext[:index] + replacement + ciphertext[index + 1:]
        with pytest.raises(CorruptCredential):
            vault.decrypt(tampered)


def test_uppercase_hex_is_rejected(vault):
    ciphertext = vault.encrypt("token")

    with pytest.raises(CorruptCredential):
        vault.decrypt(ciphertext.upper())


@pytest.mark.parametrize("garbage", [
    "",
    "not-encrypted",
    "abcd:ef01",
    "zz" * 16 + ":" + "00" * 16 + ":00",
    "00" * 8 + ":" + "00" * 16 + ":00",
    "00" * 16 + ":" + "00" * 16 + ":0",
    "a:b:c:d",
])
def test_malformed_ciphertext(vault, garbage):
    with pytest.raises(CorruptCredential):
        vault.decrypt(garbage)


def test_wrong_key_fails_verification(vault):
    ciphertext = vault.encrypt("token")
    other = CredentialVault("another-passphrase")

    with pytest.raises(CorruptCredential):
        other.decrypt(ciphertext)


def test_hex_key_is_used_raw():
    hex_key = CredentialVault.generate_key()

    assert len(hex_key) == 64
    assert CredentialVault.derive_key(hex_key) == bytes.fromhex(hex_key)

    vault = CredentialVault(hex_key)
    assert vault.decrypt(vault.encrypt("x")) == "x"


def test_passphrase_is_hashed():
    key = CredentialVault.derive_key("short passphrase")

    assert len(key) == 32
    assert key == CredentialVault.derive_key("short passphrase")
    assert key != CredentialVault.derive_key("other passphrase")


def test_key_from_environment(monkeypatch):
    monkeypatch.setenv("INTEGRATION_ENCRYPTION_KEY", "env-passphrase")
    from_env = CredentialVault()
    explicit = CredentialVault("env-passphrase")

    assert explicit.decrypt(from_env.encrypt("token")) == "token"


def test_missing_key_raises(monkeypatch):
    monkeypatch.delenv("INTEGRATION_ENCRYPTION_KEY", raising=False)

    with pytest.raises(ValueError, match="INTEGRATION_ENCRYPTION_KEY"):
        CredentialVault()
