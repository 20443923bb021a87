"""Tests for crypto.py — AES-256-GCM credential blobs."""
import pytest

from commerce_ingest.crypto import decrypt, encrypt, generate_key
from commerce_ingest.exceptions import CredentialsError

TEST_KEY = "00112233445566778899aabbccddeeff00112233445566778899aabbccddeeff"


def test_encrypt_decrypt():
    payload = encrypt('{"client_id": "abc"}', TEST_KEY)
    assert decrypt(payload, TEST_KEY) == '{"client_id": "abc"}'


def test_payload_format():
    iv, tag, data = encrypt("hello", TEST_KEY).split(":")
    assert len(iv) == 24
    assert len(tag) == 32
    assert len(data) == len("hello") * 2
    int(iv + tag + data, 16)


def test_fresh_iv_each_time():
    assert encrypt("same", TEST_KEY) != encrypt("same", TEST_KEY)


def test_wrong_key():
    payload = encrypt("secret", TEST_KEY)
    other = generate_key()

    with pytest.raises(CredentialsError, match="wrong key"):
        decrypt(payload, other)


def test_tampered_ciphertext():
    iv, tag, data = encrypt("secret", TEST_KEY).split(":")
    flipped = format(int(data[:2], 16) ^ 0xFF, "02x") + data[2:]

    with pytest.raises(CredentialsError):
        decrypt(f"{iv}:{tag}:{flipped}", TEST_KEY)


def test_malformed_payload():
    with pytest.raises(CredentialsError, match="Malformed"):
        decrypt("not-a-payload", TEST_KEY)


def test_missing_key():
    with pytest.raises(CredentialsError, match="not set"):
        encrypt("x", "")


def test_short_key():
    with pytest.raises(CredentialsError, match="32 bytes"):
        encrypt("x", "abcd")


def test_non_hex_key():
    with pytest.raises(CredentialsError, match="not valid hex"):
        encrypt("x", "z" * 64)


def test_generate_key():
    key = generate_key()
    assert len(key) == 64
    assert decrypt(encrypt("round", key), key) == "round"
