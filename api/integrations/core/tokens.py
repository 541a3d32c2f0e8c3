"""
Credential encryption.

Encrypts OAuth secrets at the application layer before they are written to
the integration store, using AES-256-GCM with a fresh random nonce per call.

Ciphertext format (all lowercase hex): nonce:tag:data
"""

import hashlib
import logging
import os
import re
from typing import Optional, Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .errors import CorruptCredential

logger = logging.getLogger(__name__)

NONCE_LENGTH = 16
TAG_LENGTH = 16
KEY_LENGTH = 32

_HEX = re.compile(r"^[0-9a-f]*$")


class CredentialVault:
    """
    Encrypts and decrypts integration secrets.

    The key is derived once at construction. A 64 character hex string is used
    as the raw 32-byte key; anything else is treated as a passphrase and run
    through SHA-256.

    Environment:
        INTEGRATION_ENCRYPTION_KEY: hex key or passphrase
    """

    def __init__(self, encryption_key: Optional[Union[str, bytes]] = None):
        """
        Initialize the vault.

        Args:
            encryption_key: Key material. If not provided, reads from
                           INTEGRATION_ENCRYPTION_KEY environment variable.
        """
        key = encryption_key or os.getenv("INTEGRATION_ENCRYPTION_KEY")

        if not key:
            raise ValueError(
                "INTEGRATION_ENCRYPTION_KEY environment variable is required. "
                "Generate one with: python -c 'import secrets; print(secrets.token_hex(32))'"
            )

        self._aesgcm = AESGCM(self.derive_key(key))

    @staticmethod
    def derive_key(secret: Union[str, bytes]) -> bytes:
        """Turn operator-supplied key material into a 32-byte AES key."""
        if isinstance(secret, bytes):
            if len(secret) == KEY_LENGTH:
                return secret
            return hashlib.sha256(secret).digest()

        if len(secret) == KEY_LENGTH * 2:
            try:
                return bytes.fromhex(secret)
            except ValueError:
                pass

        return hashlib.sha256(secret.encode("utf-8")).digest()

    def encrypt(self, plaintext: str) -> str:
        """
        Encrypt a secret for storage.

        Args:
            plaintext: The token to encrypt

        Returns:
            Self-describing ciphertext "nonce:tag:data"
        """
        nonce = os.urandom(NONCE_LENGTH)
        sealed = self._aesgcm.encrypt(nonce, plaintext.encode("utf-8"), None)
        data, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]
        return f"{nonce.hex()}:{tag.hex()}:{data.hex()}"

    def decrypt(self, ciphertext: str) -> str:
        """
        Decrypt a stored secret.

        Raises:
            CorruptCredential: If the format is wrong or the tag does not verify
        """
        if not isinstance(ciphertext, str):
            raise CorruptCredential("Invalid encrypted text format")

        parts = ciphertext.split(":")
        if len(parts) != 3 or not all(_HEX.match(part) for part in parts):
            raise CorruptCredential("Invalid encrypted text format")

        nonce_hex, tag_hex, data_hex = parts
        try:
            nonce = bytes.fromhex(nonce_hex)
            tag = bytes.fromhex(tag_hex)
            data = bytes.fromhex(data_hex)
        except ValueError:
            raise CorruptCredential("Invalid encrypted text format")

        if len(nonce) != NONCE_LENGTH or len(tag) != TAG_LENGTH:
            raise CorruptCredential("Invalid encrypted text format")

        try:
            plaintext = self._aesgcm.decrypt(nonce, data + tag, None)
        except InvalidTag:
            logger.error("[VAULT] Credential failed integrity check")
            raise CorruptCredential("Credential failed integrity check")

        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError:
            raise CorruptCredential("Credential is not valid UTF-8")

    @staticmethod
    def generate_key() -> str:
        """Generate a new random key suitable for INTEGRATION_ENCRYPTION_KEY."""
        return os.urandom(KEY_LENGTH).hex()


# Process-wide instance, built on first use from the environment
_vault: Optional[CredentialVault] = None


def get_vault() -> CredentialVault:
    """Get the global CredentialVault instance."""
    global _vault
    if _vault is None:
        _vault = CredentialVault()
    return _vault
