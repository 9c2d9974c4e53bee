"""
Encryption service for OAuth tokens.
Uses AES-256-CBC with a random IV per call; blobs are "hex(iv):hex(ciphertext)".
"""

import os

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from linkedin_pulse.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

KEY_LENGTH_BYTES = 32
IV_LENGTH_BYTES = 16
BLOB_SEPARATOR = ":"


class EncryptionError(Exception):
    """Base exception for encryption/decryption errors."""

    pass


class InvalidKeyError(EncryptionError):
    """The configured key is not a 32-byte hex string."""

    pass


class DecryptionError(EncryptionError):
    """A stored blob could not be decrypted."""

    pass


def _parse_key(key_hex: str | None) -> bytes:
    """
    Trim and hex-decode the key, enforcing the AES-256 key length.

    Raises:
        InvalidKeyError: If the key is missing, not hex, or not 32 bytes
    """
    if not key_hex:
        raise InvalidKeyError("TOKEN_ENCRYPTION_KEY not configured")

    clean_key = key_hex.strip()
    try:
        key_bytes = bytes.fromhex(clean_key)
    except ValueError as e:
        raise InvalidKeyError("Encryption key must be a hex string") from e

    if len(key_bytes) != KEY_LENGTH_BYTES:
        logger.error(
            "Invalid encryption key length",
            key_bytes=len(key_bytes),
            key_string_length=len(clean_key),
            expected_bytes=KEY_LENGTH_BYTES,
        )
        raise InvalidKeyError(
            f"Invalid key length: {len(key_bytes)} bytes "
            f"(expected {KEY_LENGTH_BYTES} bytes / {KEY_LENGTH_BYTES * 2} hex characters)"
        )

    return key_bytes


class TokenCipher:
    """
    Stateless symmetric cipher for short secrets.

    The key is validated once, at construction, so a misconfigured process
    fails at startup instead of producing unreadable ciphertext.
    """

    def __init__(self, key_hex: str | None):
        self._key = _parse_key(key_hex)

    def encrypt(self, plaintext: str) -> str:
        """
        Encrypt a token string for storage.

        Args:
            plaintext: Plain text token to encrypt

        Returns:
            str: "hex(iv):hex(ciphertext)"

        Raises:
            EncryptionError: If the input is not a non-empty string
        """
        if not plaintext or not isinstance(plaintext, str):
            raise EncryptionError("Token must be a non-empty string")

        iv = os.urandom(IV_LENGTH_BYTES)
        padder = padding.PKCS7(algorithms.AES.block_size).padder()
        padded = padder.update(plaintext.encode("utf-8")) + padder.finalize()

        encryptor = Cipher(algorithms.AES(self._key), modes.CBC(iv)).encryptor()
        ciphertext = encryptor.update(padded) + encryptor.finalize()

        return iv.hex() + BLOB_SEPARATOR + ciphertext.hex()

    def decrypt(self, blob: str) -> str:
        """
        Decrypt a stored "hex(iv):hex(ciphertext)" blob.

        Raises:
            DecryptionError: If the blob is malformed or was not produced with this key
        """
        if not blob or not isinstance(blob, str):
            raise DecryptionError("Encrypted token must be a non-empty string")

        parts = blob.split(BLOB_SEPARATOR)
        if len(parts) != 2:
            raise DecryptionError("Malformed encrypted token: expected iv:ciphertext")

        try:
            iv = bytes.fromhex(parts[0])
            ciphertext = bytes.fromhex(parts[1])
        except ValueError as e:
            raise DecryptionError("Malformed encrypted token: not hex encoded") from e

        if len(iv) != IV_LENGTH_BYTES:
            raise DecryptionError(f"Malformed encrypted token: IV is {len(iv)} bytes")
        if not ciphertext or len(ciphertext) % IV_LENGTH_BYTES:
            raise DecryptionError("Malformed encrypted token: bad ciphertext length")

        try:
            decryptor = Cipher(algorithms.AES(self._key), modes.CBC(iv)).decryptor()
            padded = decryptor.update(ciphertext) + decryptor.finalize()
            unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
            plaintext = unpadder.update(padded) + unpadder.finalize()
            return plaintext.decode("utf-8")
        except (ValueError, UnicodeDecodeError) as e:
            # Wrong key or corrupted blob both surface as bad padding / bytes
            raise DecryptionError("Invalid or corrupted token") from e

    def validate(self) -> bool:
        """
        Round-trip a probe value through the cipher.

        Returns:
            bool: True if encryption is working
        """
        try:
            probe = "encryption_probe_12345"
            is_valid = self.decrypt(self.encrypt(probe)) == probe
            if not is_valid:
                logger.error("Encryption validation failed - data mismatch")
            return is_valid
        except EncryptionError as e:
            logger.error("Encryption validation failed", error=str(e))
            return False


def generate_new_key() -> str:
    """
    Generate a new 32-byte key as 64 hex characters.

    Note:
        Use this for initial setup or key rotation.
        Store the result in TOKEN_ENCRYPTION_KEY.
    """
    return os.urandom(KEY_LENGTH_BYTES).hex()
