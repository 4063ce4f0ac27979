"""
Encryption for marketplace credentials at rest.

Access and refresh tokens of platform connections are stored Fernet-encrypted
(AES-128-CBC + HMAC-SHA256). The key comes from CREDENTIAL_ENCRYPTION_KEY and
may be either a Fernet key or an arbitrary passphrase, which is stretched to
a key with SHA-256.
"""

from __future__ import annotations

import base64
import hashlib
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken

from booking_ledger.config import CREDENTIAL_ENCRYPTION_KEY


class CredentialDecryptionError(Exception):
    """Stored credential could not be decrypted with the configured key."""


def _fernet(key: Optional[str] = None) -> Fernet:
    raw_key = key or CREDENTIAL_ENCRYPTION_KEY
    if not raw_key:
        raise RuntimeError(
            "CREDENTIAL_ENCRYPTION_KEY not configured. "
            "Generate one with: "
            "Fernet.generate_key() from the cryptography package"
        )
    try:
        return Fernet(raw_key.encode("ascii"))
    except ValueError:
        derived = base64.urlsafe_b64encode(hashlib.sha256(raw_key.encode("utf-8")).digest())
        return Fernet(derived)


def encrypt_secret(plaintext: str, key: Optional[str] = None) -> str:
    """
    Encrypt a credential for storage.

    Args:
        plaintext: Secret to encrypt
        key: Key override, defaults to CREDENTIAL_ENCRYPTION_KEY

    Returns:
        str: Fernet token (URL-safe base64)
    """
    return _fernet(key).encrypt(plaintext.encode("utf-8")).decode("ascii")


def decrypt_secret(ciphertext: str, key: Optional[str] = None) -> str:
    """
    Decrypt a stored credential.

    Raises:
        CredentialDecryptionError: If the ciphertext was tampered with or the
            key changed since it was written
    """
    try:
        return _fernet(key).decrypt(ciphertext.encode("ascii")).decode("utf-8")
    except InvalidToken as e:
        raise CredentialDecryptionError("Stored credential could not be decrypted") from e
