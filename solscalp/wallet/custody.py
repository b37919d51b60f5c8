"""Wallet custody — encrypted storage of the trading wallet's secret key.

Stored format: base64(iv[16] || tag[16] || ciphertext), AES-256-GCM with a
key derived from ``WALLET_ENCRYPTION_KEY`` via scrypt.
"""

import base64
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

from solscalp.errors import WalletError

IV_LENGTH = 16
TAG_LENGTH = 16
DEFAULT_SALT = b"solscalp-wallet-salt"


class WalletCustody:
    """Encrypts and decrypts wallet secrets. Plaintext never leaves the caller."""

    def __init__(self, encryption_key: str, salt: bytes = DEFAULT_SALT) -> None:
        if not encryption_key:
            raise WalletError("WALLET_ENCRYPTION_KEY not set")
        kdf = Scrypt(salt=salt, length=32, n=2**14, r=8, p=1)
        self._aes = AESGCM(kdf.derive(encryption_key.encode("utf-8")))

    def encrypt(self, secret: str) -> str:
        iv = os.urandom(IV_LENGTH)
        sealed = self._aes.encrypt(iv, secret.encode("utf-8"), None)
        # AESGCM appends the tag; store it ahead of the ciphertext
        ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]
        return base64.b64encode(iv + tag + ciphertext).decode("ascii")

    def decrypt(self, encrypted: str) -> str:
        """Return the plaintext secret.

        Raises:
            WalletError: malformed payload or wrong key.
        """
        try:
            combined = base64.b64decode(encrypted, validate=True)
        except ValueError as exc:
            raise WalletError("Encrypted wallet secret is not valid base64") from exc
        if len(combined) <= IV_LENGTH + TAG_LENGTH:
            raise WalletError("Encrypted wallet secret is truncated")

        iv = combined[:IV_LENGTH]
        tag = combined[IV_LENGTH:IV_LENGTH + TAG_LENGTH]
        ciphertext = combined[IV_LENGTH + TAG_LENGTH:]
        try:
            plaintext = self._aes.decrypt(iv, ciphertext + tag, None)
        except InvalidTag as exc:
            raise WalletError("Wallet secret could not be decrypted") from exc
        return plaintext.decode("utf-8")
