"""
Encryption of stored tokens using AES-256-CBC (symmetric, from cryptography).

Payloads are written as "<hex iv>:<hex ciphertext>". Records already in the
store were produced with exactly this format and key derivation, so neither
may change without a migration.

The key is derived from the operator secret by right-padding with "0" or
truncating to 32 bytes. This is not a real KDF (no salt, no stretching); it
is kept so previously written records stay readable.
"""
import os

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from errors import CorruptPayload, MissingKey

KEY_LENGTH = 32  # AES-256
IV_LENGTH = 16  # AES block size
KEY_FILLER = b"0"


def derive_key(secret: str) -> bytes:
    """Normalize the operator secret to exactly KEY_LENGTH bytes."""
    if not secret:
        raise MissingKey()
    raw = secret.encode("utf-8")
    if len(raw) < KEY_LENGTH:
        return raw.ljust(KEY_LENGTH, KEY_FILLER)
    return raw[:KEY_LENGTH]


def encrypt(plaintext: bytes | str, key: bytes) -> str:
    """Encrypt with a fresh random IV; returns hex(iv) + ":" + hex(ciphertext)."""
    if isinstance(plaintext, str):
        plaintext = plaintext.encode("utf-8")
    iv = os.urandom(IV_LENGTH)
    padder = padding.PKCS7(algorithms.AES.block_size).padder()
    padded = padder.update(plaintext) + padder.finalize()
    encryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).encryptor()
    ciphertext = encryptor.update(padded) + encryptor.finalize()
    return iv.hex() + ":" + ciphertext.hex()


def decrypt(text: str, key: bytes) -> bytes:
    """
    Decrypt a payload produced by encrypt. Raises CorruptPayload on a missing
    delimiter, bad hex, wrong IV or block length, or bad padding (which is
    also what a wrong key usually looks like).
    """
    parts = text.split(":")
    if len(parts) < 2:
        raise CorruptPayload("Invalid encrypted payload format")
    try:
        iv = bytes.fromhex(parts[0])
        ciphertext = bytes.fromhex(":".join(parts[1:]))
    except ValueError as exc:
        raise CorruptPayload("Encrypted payload is not valid hex") from exc
    try:
        decryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).decryptor()
        padded = decryptor.update(ciphertext) + decryptor.finalize()
        unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
        return unpadder.update(padded) + unpadder.finalize()
    except ValueError as exc:
        raise CorruptPayload("Encrypted payload could not be decrypted") from exc


class TokenCipher:
    """Holds the derived key for one operator secret. Never log the secret."""

    def __init__(self, secret: str) -> None:
        self._key = derive_key(secret)

    def encrypt(self, plaintext: bytes | str) -> str:
        return encrypt(plaintext, self._key)

    def decrypt(self, text: str) -> bytes:
        return decrypt(text, self._key)

    def __repr__(self) -> str:
        return "TokenCipher(<redacted>)"
