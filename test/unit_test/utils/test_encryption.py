import pytest

from juku_admin.utils.encryption import (
    DecryptionError,
    can_decrypt,
    credential_preview,
    decrypt,
    encrypt,
    is_encrypted,
    reveal,
)


def test_encrypt_decrypt():
    token = encrypt("channel-access-token-value")

    assert token != "channel-access-token-value"
    assert token.count(".") == 4
    assert decrypt(token) == "channel-access-token-value"


def test_encrypt_is_randomized():
    assert encrypt("same") != encrypt("same")


def test_is_encrypted():
    assert is_encrypted(encrypt("x"))
    assert not is_encrypted("plain-text-token")
    assert not is_encrypted("a.b.c.d.e")
    assert not is_encrypted(None)
    assert not is_encrypted("")


def test_wrong_key_cannot_decrypt():
    token = encrypt("secret", secret="old-key")

    assert is_encrypted(token)
    assert not can_decrypt(token)
    with pytest.raises(DecryptionError):
        decrypt(token)
    assert decrypt(token, secret="old-key") == "secret"


def test_reveal_handles_legacy_plaintext():
    assert reveal("legacy-plain") == "legacy-plain"
    assert reveal(encrypt("new")) == "new"


def test_credential_preview():
    assert credential_preview("abcdefghijkl") == "abcd...ijkl"
    assert credential_preview("abcdefgh") == "****"
    assert credential_preview("") == "****"
    assert credential_preview(None) == "****"
    assert credential_preview("0123456789abcdefghij0123456789", 10, 10) == "0123456789...0123456789"
