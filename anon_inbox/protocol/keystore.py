"""
⚠️ DRAFT — requires crypto review before production use

Recipient key-pair export and import.

Key files are JSON. A protected file holds the key pair encrypted with
AES-256-GCM under a PBKDF2-HMAC-SHA256 key derived from a password.
"""

from __future__ import annotations

import base64
import binascii
import json
import re
from typing import List, Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from .config import (
    KEY_EXPORT_KDF_ITERATIONS,
    KEY_EXPORT_SALT_BYTES,
    KEY_EXPORT_VERSION,
    NONCE_SIZE_BYTES,
    SYMMETRIC_KEY_BYTES,
)
from .encryption import KeyPair
from .exceptions import KeyStoreError, PasswordRequiredError
from .security import RandomnessSource, default_randomness

MIN_PASSWORD_LENGTH = 8
MIN_CHARACTER_CLASSES = 3

_CHARACTER_CLASSES = (
    re.compile(r"[A-Z]"),
    re.compile(r"[a-z]"),
    re.compile(r"\d"),
    re.compile(r"[!@#$%^&*(),.?\":{}|<>]"),
)


def password_problems(password: str) -> List[str]:
    """
    Check a key-file password.

    Returns:
        Human-readable problems; empty when the password is acceptable
    """
    problems = []
    if len(password) < MIN_PASSWORD_LENGTH:
        problems.append(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters long"
        )
    classes = sum(1 for pattern in _CHARACTER_CLASSES if pattern.search(password))
    if classes < MIN_CHARACTER_CLASSES:
        problems.append(
            "Password must contain at least 3 of: uppercase, lowercase, "
            "numbers, special characters"
        )
    return problems


def _derive_key(password: str, salt: bytes) -> bytes:
    return PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=SYMMETRIC_KEY_BYTES,
        salt=salt,
        iterations=KEY_EXPORT_KDF_ITERATIONS,
    ).derive(password.encode("utf-8"))


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def export_key_pair(
    key_pair: KeyPair,
    password: Optional[str] = None,
    rng: Optional[RandomnessSource] = None,
) -> str:
    """
    Serialize a key pair, optionally password-protected.

    Raises:
        ValueError: If the password is too weak
    """
    if not password:
        data = key_pair.to_dict()
        data.update({"version": KEY_EXPORT_VERSION, "protected": False})
        return json.dumps(data)

    problems = password_problems(password)
    if problems:
        raise ValueError(problems[0])

    rng = rng or default_randomness()
    salt = rng.get_random_bytes(KEY_EXPORT_SALT_BYTES)
    iv = rng.get_random_bytes(NONCE_SIZE_BYTES)
    plaintext = json.dumps(key_pair.to_dict()).encode("utf-8")
    encrypted = AESGCM(_derive_key(password, salt)).encrypt(iv, plaintext, None)

    return json.dumps(
        {
            "encrypted": _b64(encrypted),
            "salt": _b64(salt),
            "iv": _b64(iv),
            "version": KEY_EXPORT_VERSION,
            "protected": True,
        }
    )


def import_key_pair(data: str, password: Optional[str] = None) -> KeyPair:
    """
    Load a key pair written by ``export_key_pair``.

    Raises:
        PasswordRequiredError: If the file is protected and no password is given
        KeyStoreError: If the file is invalid or the password is incorrect
    """
    try:
        parsed = json.loads(data)
    except (TypeError, json.JSONDecodeError):
        raise KeyStoreError("Invalid key file or incorrect password") from None
    if not isinstance(parsed, dict):
        raise KeyStoreError("Invalid key file or incorrect password")

    if not parsed.get("protected"):
        try:
            return KeyPair.from_dict(parsed)
        except ValueError:
            raise KeyStoreError("Invalid key file or incorrect password") from None

    if not password:
        raise PasswordRequiredError(
            "This key file is password-protected. Please provide the password."
        )

    try:
        salt = base64.b64decode(parsed["salt"], validate=True)
        iv = base64.b64decode(parsed["iv"], validate=True)
        encrypted = base64.b64decode(parsed["encrypted"], validate=True)
        plaintext = AESGCM(_derive_key(password, salt)).decrypt(iv, encrypted, None)
        return KeyPair.from_dict(json.loads(plaintext.decode("utf-8")))
    except (KeyError, TypeError, ValueError, binascii.Error, InvalidTag):
        raise KeyStoreError("Invalid key file or incorrect password") from None
