"""Envelope encryption for stored secrets.

An envelope is the on-disk form of one secret::

    base64( salt[16] || nonce[12] || ciphertext+tag )

The key is derived from the passphrase with PBKDF2-HMAC-SHA256 (4096
iterations, 32 bytes) using the envelope's own salt, and the value is sealed
with AES-256-GCM without associated data. There is no header or version byte:
changing any of these parameters makes existing envelopes unreadable.
"""

import base64
import binascii
import os
from typing import Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from .errors import AuthenticationError, DecodeError, FormatError

SALT_SIZE = 16
NONCE_SIZE = 12
KEY_SIZE = 32  # AES-256
ITERATIONS = 4096


def derive_key(passphrase: Union[str, bytes], salt: bytes) -> bytes:
    """
    Derive the 32-byte envelope key from a passphrase and salt.

    A str passphrase is keyed by its UTF-8 bytes; surrogate-escaped
    characters (what os.environ gives for non-UTF-8 bytes) map back to the
    original raw bytes.
    """
    if isinstance(passphrase, str):
        passphrase = passphrase.encode("utf-8", "surrogateescape")
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_SIZE,
        salt=salt,
        iterations=ITERATIONS,
    )
    return kdf.derive(passphrase)


def encrypt(plaintext: Union[str, bytes], passphrase: str) -> str:
    """
    Seal plaintext into envelope text.

    A fresh salt and nonce are drawn for every call, so encrypting the same
    value twice gives two unrelated envelopes.
    """
    if isinstance(plaintext, str):
        plaintext = plaintext.encode("utf-8")

    salt = os.urandom(SALT_SIZE)
    nonce = os.urandom(NONCE_SIZE)
    sealed = AESGCM(derive_key(passphrase, salt)).encrypt(nonce, plaintext, None)

    return base64.b64encode(salt + nonce + sealed).decode("ascii")


def decrypt(envelope: Union[str, bytes], passphrase: str) -> bytes:
    """
    Open envelope text and return the original plaintext bytes.

    Raises:
        DecodeError: envelope is not valid base64
        FormatError: decoded data is shorter than salt + nonce
        AuthenticationError: wrong passphrase or modified ciphertext
    """
    try:
        if isinstance(envelope, str):
            envelope = envelope.encode("ascii")
        # Line breaks and trailing newlines from editors are not part of the data
        raw = base64.b64decode(b"".join(envelope.split()), validate=True)
    except (UnicodeEncodeError, binascii.Error) as e:
        raise DecodeError(f"failed to decode base64: {e}") from e

    if len(raw) < SALT_SIZE + NONCE_SIZE:
        raise FormatError(
            f"envelope too short: {len(raw)} bytes, "
            f"need at least {SALT_SIZE + NONCE_SIZE}"
        )

    salt = raw[:SALT_SIZE]
    nonce = raw[SALT_SIZE:SALT_SIZE + NONCE_SIZE]
    sealed = raw[SALT_SIZE + NONCE_SIZE:]

    try:
        return AESGCM(derive_key(passphrase, salt)).decrypt(nonce, sealed, None)
    except InvalidTag:
        raise AuthenticationError("message authentication failed") from None
