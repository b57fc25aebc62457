"""Unit tests for field-level encryption."""

import pytest
from structlog.testing import capture_logs

from stayfleet.config.settings import Settings
from stayfleet.models.errors import CipherError
from stayfleet.security.cipher import FieldCipher, derive_key


@pytest.fixture
def record():
    """Reservation-like record with sensitive fields."""
    return {
        "special_requests": "Late check-in, ground floor please",
        "payment_method": "credit_card",
        "guest_count": 2,
    }


FIELDS = ("special_requests", "payment_method")


def test_encrypt_then_decrypt_returns_plaintext(cipher, record):
    """Test values survive a write/read cycle unchanged."""
    cipher.encrypt_fields(record, FIELDS)

    assert record["special_requests"] != "Late check-in, ground floor please"
    assert record["special_requests"].startswith("gAAAAA")
    assert record["guest_count"] == 2

    cipher.decrypt_fields(record, FIELDS)

    assert record["special_requests"] == "Late check-in, ground floor please"
    assert record["payment_method"] == "credit_card"


def test_encrypting_twice_keeps_first_ciphertext(cipher, record):
    """Test already encrypted values are not encrypted again."""
    cipher.encrypt_fields(record, FIELDS)
    first = dict(record)

    cipher.encrypt_fields(record, FIELDS)

    assert record == first
    assert cipher.decrypt(record["payment_method"]) == "credit_card"


@pytest.mark.parametrize("empty", [None, ""])
def test_empty_values_are_left_alone(cipher, empty):
    """Test null and empty strings are neither encrypted nor decrypted."""
    record = {"special_requests": empty, "payment_method": empty}

    cipher.encrypt_fields(record, FIELDS)
    assert record == {"special_requests": empty, "payment_method": empty}

    cipher.decrypt_fields(record, FIELDS)
    assert record == {"special_requests": empty, "payment_method": empty}


def test_is_encrypted_detects_ciphertext(cipher):
    """Test only values decrypting under the key count as encrypted."""
    assert cipher.is_encrypted(cipher.encrypt("secret"))
    assert not cipher.is_encrypted("secret")
    assert not cipher.is_encrypted("")
    assert not cipher.is_encrypted(None)
    assert not cipher.is_encrypted(FieldCipher("another-key").encrypt("secret"))


def test_encrypt_without_key_raises(record):
    """Test sensitive writes fail rather than store plaintext."""
    cipher = FieldCipher("")

    with pytest.raises(CipherError):
        cipher.encrypt_fields(record, FIELDS)


def test_legacy_plaintext_is_returned_as_stored(cipher):
    """Test fail-open reads keep plaintext rows readable and warn."""
    record = {"special_requests": "Quiet room", "payment_method": None}

    with capture_logs() as logs:
        cipher.decrypt_fields(record, FIELDS)

    assert record["special_requests"] == "Quiet room"
    assert [entry["event"] for entry in logs] == ["field_decryption_skipped"]
    assert logs[0]["field"] == "special_requests"


def test_ciphertext_under_unknown_key_is_returned_as_stored(cipher):
    """Test a value written with another key does not break reads."""
    foreign = FieldCipher("someone-elses-key").encrypt("Vegan breakfast")
    record = {"special_requests": foreign, "payment_method": None}

    cipher.decrypt_fields(record, FIELDS)

    assert record["special_requests"] == foreign


def test_strict_cipher_raises_on_undecryptable_value():
    """Test strict mode refuses to hand out stored bytes."""
    cipher = FieldCipher("test-encryption-secret", strict=True)
    record = {"special_requests": "Quiet room", "payment_method": None}

    with pytest.raises(CipherError) as exc_info:
        cipher.decrypt_fields(record, FIELDS)

    assert exc_info.value.details["field"] == "special_requests"


def test_rotated_key_still_decrypts():
    """Test values written under a previous key stay readable after rotation."""
    old = FieldCipher("old-secret")
    token = old.encrypt("+358401234567")

    rotated = FieldCipher("new-secret", previous_keys=["old-secret"])

    assert rotated.decrypt(token) == "+358401234567"
    assert FieldCipher("new-secret").is_encrypted(rotated.encrypt("x"))


def test_cipher_from_settings():
    """Test settings supply key, previous keys and strictness."""
    settings = Settings(
        _env_file=None,
        database_url="sqlite+aiosqlite://",
        encryption_key="new-secret",
        encryption_previous_keys="old-secret, older-secret",
        strict_decryption=True,
    )

    cipher = FieldCipher.from_settings(settings)

    assert cipher.has_key
    assert cipher.strict
    assert cipher.decrypt(FieldCipher("older-secret").encrypt("x")) == "x"


def test_derived_key_is_valid_fernet_key():
    """Test any passphrase yields a 44 character url-safe key."""
    assert len(derive_key("short")) == 44
    assert derive_key("short") == derive_key("short")
    assert derive_key("short") != derive_key("other")
