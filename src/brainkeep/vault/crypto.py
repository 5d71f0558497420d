"""AES-256-GCM encryption with scrypt-derived keys.

The vault key is bound to the machine: it is derived from the host name and
the current user, so nothing is ever stored or asked for, and the same
machine and user always get the same key. Export containers may instead use
a passphrase with a random salt, which makes them portable.

Payloads are three hex fields joined by colons: nonce, auth tag, ciphertext.
"""

from __future__ import annotations

import getpass
import os
import socket
from functools import lru_cache

from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

CIPHER_NAME = "AES-256-GCM"
KEY_LENGTH = 32
NONCE_LENGTH = 12
TAG_LENGTH = 16
SALT_LENGTH = 16

SCRYPT_N = 2**14
SCRYPT_R = 8
SCRYPT_P = 1

MACHINE_SALT = b"brainkeep-salt-v1"


def _current_user() -> str:
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        # No login name in the environment or passwd database
        return str(os.getuid())


def machine_seed(hostname: str | None = None, username: str | None = None) -> str:
    return f"brainkeep-context:{hostname or socket.gethostname()}:{username or _current_user()}"


def derive_key(secret: str, salt: bytes) -> bytes:
    kdf = Scrypt(salt=salt, length=KEY_LENGTH, n=SCRYPT_N, r=SCRYPT_R, p=SCRYPT_P)
    return kdf.derive(secret.encode("utf-8"))


@lru_cache(maxsize=4)
def machine_key(seed: str) -> bytes:
    """Derived once per process for each machine identity."""
    return derive_key(seed, MACHINE_SALT)


def new_salt() -> bytes:
    return os.urandom(SALT_LENGTH)


class VaultCipher:
    """Authenticated encryption of text payloads."""

    name = CIPHER_NAME

    def __init__(self, key: bytes) -> None:
        self._aead = AESGCM(key)

    @classmethod
    def for_machine(cls, hostname: str | None = None, username: str | None = None) -> VaultCipher:
        return cls(machine_key(machine_seed(hostname, username)))

    @classmethod
    def for_passphrase(cls, passphrase: str, salt: bytes) -> VaultCipher:
        return cls(derive_key(passphrase, salt))

    def encrypt(self, plaintext: str) -> str:
        nonce = os.urandom(NONCE_LENGTH)
        sealed = self._aead.encrypt(nonce, plaintext.encode("utf-8"), None)
        ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]
        return f"{nonce.hex()}:{tag.hex()}:{ciphertext.hex()}"

    def decrypt(self, payload: str) -> str:
        """Decrypt a `nonce:tag:ciphertext` payload.

        Raises ValueError for a malformed payload and
        cryptography.exceptions.InvalidTag when authentication fails.
        """
        parts = payload.strip().split(":")
        if len(parts) != 3:
            raise ValueError("Invalid encrypted format")
        nonce, tag, ciphertext = (bytes.fromhex(p) for p in parts)
        if len(nonce) != NONCE_LENGTH or len(tag) != TAG_LENGTH:
            raise ValueError("Invalid encrypted format")
        plaintext = self._aead.decrypt(nonce, ciphertext + tag, None)
        return plaintext.decode("utf-8")
