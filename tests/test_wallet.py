"""Tests for solscalp.wallet.custody — AES-GCM wallet secret storage."""

import base64

import pytest

from solscalp.errors import WalletError
from solscalp.wallet.custody import IV_LENGTH, TAG_LENGTH, WalletCustody

SECRET = "4vJ9JU1bJJE96FWSJKvHsmmFADCg4gpZQff4P3bkLKi5uvRyTYSWYo6SpXVBVdt7x4K7Mzm5jLG4FP1Vq4q8Nbf"


class TestWalletCustody:
    def test_decrypt_recovers_secret(self):
        custody = WalletCustody("encryption-key")
        assert custody.decrypt(custody.encrypt(SECRET)) == SECRET

    def test_layout_and_fresh_iv(self):
        custody = WalletCustody("encryption-key")
        first, second = custody.encrypt(SECRET), custody.encrypt(SECRET)
        assert first != second
        raw = base64.b64decode(first)
        assert len(raw) == IV_LENGTH + TAG_LENGTH + len(SECRET)

    def test_wrong_key(self):
        encrypted = WalletCustody("encryption-key").encrypt(SECRET)
        with pytest.raises(WalletError, match="could not be decrypted"):
            WalletCustody("another-key").decrypt(encrypted)

    def test_tampered_ciphertext(self):
        custody = WalletCustody("encryption-key")
        raw = bytearray(base64.b64decode(custody.encrypt(SECRET)))
        raw[-1] ^= 0x01
        with pytest.raises(WalletError):
            custody.decrypt(base64.b64encode(bytes(raw)).decode("ascii"))

    def test_truncated(self):
        custody = WalletCustody("encryption-key")
        short = base64.b64encode(b"\x00" * (IV_LENGTH + TAG_LENGTH)).decode("ascii")
        with pytest.raises(WalletError, match="truncated"):
            custody.decrypt(short)

    def test_not_base64(self):
        with pytest.raises(WalletError, match="base64"):
            WalletCustody("encryption-key").decrypt("***")

    def test_empty_key_rejected(self):
        with pytest.raises(WalletError):
            WalletCustody("")

    def test_error_never_contains_secret(self):
        encrypted = WalletCustody("encryption-key").encrypt(SECRET)
        with pytest.raises(WalletError) as exc_info:
            WalletCustody("another-key").decrypt(encrypted)
        assert SECRET not in str(exc_info.value)
