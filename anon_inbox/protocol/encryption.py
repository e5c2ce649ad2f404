"""
⚠️ DRAFT — requires crypto review before production use

Hybrid ECDH + AEAD codec for submission payloads.

- NIST P-256 ECDH between a fresh ephemeral key and the recipient key
- HKDF-SHA256 binding both public keys into the derived key
- AES-256-GCM with a fresh 12-byte nonce; the 16-byte tag is appended

Keys travel as base64-encoded JSON Web Keys (``kty=EC``, ``crv=P-256``).
Every decryption failure surfaces as the same ``DecryptionError`` so callers
cannot distinguish a wrong key from a tampered ciphertext.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from .config import (
    DOMAIN_SEPARATORS,
    NONCE_SIZE_BYTES,
    RECIPIENT_CURVE,
    RECIPIENT_KEY_TYPE,
    SYMMETRIC_KEY_BYTES,
)
from .exceptions import DecryptionError, EncryptionError, InvalidRecipientKeyError
from .security import RandomnessSource, default_randomness
from .types import EncryptedEnvelope

logger = logging.getLogger(__name__)

_COORDINATE_BYTES = 32

PublicKeyLike = Union[str, ec.EllipticCurvePublicKey]
PrivateKeyLike = Union[str, ec.EllipticCurvePrivateKey]


# ============================================================================
# JWK ENCODING
# ============================================================================


def _b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def _b64url_decode(text: str) -> bytes:
    if not isinstance(text, str):
        raise ValueError("coordinate must be a string")
    return base64.urlsafe_b64decode(text + "=" * (-len(text) % 4))


def _coordinate(jwk: Dict[str, Any], name: str) -> int:
    raw = _b64url_decode(jwk[name])
    if len(raw) != _COORDINATE_BYTES:
        raise ValueError(f"JWK coordinate {name!r} must be {_COORDINATE_BYTES} bytes")
    return int.from_bytes(raw, "big")


def _public_jwk(public_key: ec.EllipticCurvePublicKey) -> Dict[str, str]:
    numbers = public_key.public_numbers()
    return {
        "kty": RECIPIENT_KEY_TYPE,
        "crv": RECIPIENT_CURVE,
        "x": _b64url_encode(numbers.x.to_bytes(_COORDINATE_BYTES, "big")),
        "y": _b64url_encode(numbers.y.to_bytes(_COORDINATE_BYTES, "big")),
    }


def _encode_jwk(jwk: Dict[str, str]) -> str:
    return base64.b64encode(json.dumps(jwk).encode("utf-8")).decode("ascii")


def _decode_jwk(encoded: str) -> Dict[str, Any]:
    if not isinstance(encoded, str) or not encoded:
        raise ValueError("key must be a non-empty base64 string")
    try:
        raw = base64.b64decode(encoded, validate=True)
        jwk = json.loads(raw.decode("utf-8"))
    except (binascii.Error, UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ValueError("key is not a base64-encoded JWK") from exc
    if not isinstance(jwk, dict):
        raise ValueError("key is not a base64-encoded JWK")
    return jwk


def export_public_key(public_key: ec.EllipticCurvePublicKey) -> str:
    """Serialize a P-256 public key as base64 JWK."""
    return _encode_jwk(_public_jwk(public_key))


def export_private_key(private_key: ec.EllipticCurvePrivateKey) -> str:
    """Serialize a P-256 private key as base64 JWK (includes ``d``)."""
    jwk = _public_jwk(private_key.public_key())
    d = private_key.private_numbers().private_value
    jwk["d"] = _b64url_encode(d.to_bytes(_COORDINATE_BYTES, "big"))
    return _encode_jwk(jwk)


def describe_public_key_problem(encoded: str) -> Optional[str]:
    """
    Explain why a recipient key is unusable.

    Returns:
        None if the key is a valid P-256 public key, otherwise a reason
    """
    try:
        jwk = _decode_jwk(encoded)
    except ValueError as exc:
        return str(exc)

    if jwk.get("kty") != RECIPIENT_KEY_TYPE:
        return f"key type must be {RECIPIENT_KEY_TYPE}"
    if jwk.get("crv") != RECIPIENT_CURVE:
        return f"curve must be {RECIPIENT_CURVE}"
    missing = [name for name in ("x", "y") if not jwk.get(name)]
    if missing:
        return f"missing coordinates: {', '.join(missing)}"

    try:
        numbers = ec.EllipticCurvePublicNumbers(
            _coordinate(jwk, "x"), _coordinate(jwk, "y"), ec.SECP256R1()
        )
        numbers.public_key()
    except (ValueError, binascii.Error) as exc:
        return f"key does not import: {exc}"
    return None


def validate_public_key(encoded: str) -> bool:
    """Whether a base64 JWK is an importable P-256 public key."""
    return describe_public_key_problem(encoded) is None


def load_public_key(key: PublicKeyLike) -> ec.EllipticCurvePublicKey:
    """
    Import a recipient public key.

    Raises:
        InvalidRecipientKeyError: If the key is malformed or not on P-256
    """
    if isinstance(key, ec.EllipticCurvePublicKey):
        if not isinstance(key.curve, ec.SECP256R1):
            raise InvalidRecipientKeyError(f"curve must be {RECIPIENT_CURVE}")
        return key

    problem = describe_public_key_problem(key)
    if problem is not None:
        raise InvalidRecipientKeyError(problem)

    jwk = _decode_jwk(key)
    return ec.EllipticCurvePublicNumbers(
        _coordinate(jwk, "x"), _coordinate(jwk, "y"), ec.SECP256R1()
    ).public_key()


def load_private_key(key: PrivateKeyLike) -> ec.EllipticCurvePrivateKey:
    """
    Import a recipient private key.

    Raises:
        ValueError: If the key is malformed, not on P-256, or its public
            coordinates do not match ``d``
    """
    if isinstance(key, ec.EllipticCurvePrivateKey):
        if not isinstance(key.curve, ec.SECP256R1):
            raise ValueError(f"curve must be {RECIPIENT_CURVE}")
        return key

    jwk = _decode_jwk(key)
    if jwk.get("kty") != RECIPIENT_KEY_TYPE or jwk.get("crv") != RECIPIENT_CURVE:
        raise ValueError(f"key must be a {RECIPIENT_CURVE} {RECIPIENT_KEY_TYPE} key")
    if not jwk.get("d"):
        raise ValueError("private key is missing 'd'")

    try:
        private_key = ec.derive_private_key(_coordinate(jwk, "d"), ec.SECP256R1())
    except (KeyError, binascii.Error) as exc:
        raise ValueError("private key does not import") from exc

    if jwk.get("x") and jwk.get("y"):
        numbers = private_key.public_key().public_numbers()
        if (numbers.x, numbers.y) != (_coordinate(jwk, "x"), _coordinate(jwk, "y")):
            raise ValueError("private key does not match its public coordinates")
    return private_key


# ============================================================================
# KEY PAIRS
# ============================================================================


@dataclass(frozen=True)
class KeyPair:
    """
    Recipient key pair as base64 JWK strings.

    Attributes:
        public_key: Shareable key submitters encrypt to
        private_key: Recipient-only key (never logged)
    """

    public_key: str
    private_key: str = field(repr=False)

    def to_dict(self) -> Dict[str, str]:
        return {"publicKey": self.public_key, "privateKey": self.private_key}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "KeyPair":
        try:
            return cls(public_key=data["publicKey"], private_key=data["privateKey"])
        except (KeyError, TypeError) as exc:
            raise ValueError(f"Invalid key pair format: {exc}") from exc


def generate_key_pair() -> KeyPair:
    """Generate a fresh P-256 recipient key pair."""
    private_key = ec.generate_private_key(ec.SECP256R1())
    return KeyPair(
        public_key=export_public_key(private_key.public_key()),
        private_key=export_private_key(private_key),
    )


# ============================================================================
# CODEC
# ============================================================================


def _point_bytes(public_key: ec.EllipticCurvePublicKey) -> bytes:
    return public_key.public_bytes(
        serialization.Encoding.X962, serialization.PublicFormat.UncompressedPoint
    )


def _derive_key(
    shared_secret: bytes,
    ephemeral_public: ec.EllipticCurvePublicKey,
    recipient_public: ec.EllipticCurvePublicKey,
) -> bytes:
    info = (
        DOMAIN_SEPARATORS["hybrid_encryption"]
        + _point_bytes(ephemeral_public)
        + _point_bytes(recipient_public)
    )
    return HKDF(
        algorithm=hashes.SHA256(),
        length=SYMMETRIC_KEY_BYTES,
        salt=None,
        info=info,
    ).derive(shared_secret)


class HybridCodec:
    """
    ECDH(P-256) + HKDF-SHA256 + AES-256-GCM.

    Example:
        >>> pair = generate_key_pair()
        >>> codec = HybridCodec()
        >>> envelope = codec.encrypt(b"hello", pair.public_key)
        >>> codec.decrypt(envelope, pair.private_key)
        b'hello'
    """

    def __init__(self, rng: Optional[RandomnessSource] = None):
        self._rng = rng or default_randomness()

    def encrypt(
        self, message: bytes, recipient_public_key: PublicKeyLike
    ) -> EncryptedEnvelope:
        """
        Encrypt a message to a recipient.

        Raises:
            InvalidRecipientKeyError: If the recipient key is unusable
            EncryptionError: If a primitive fails
        """
        if not isinstance(message, (bytes, bytearray)):
            raise TypeError(f"message must be bytes, got {type(message)}")

        recipient = load_public_key(recipient_public_key)

        try:
            ephemeral = ec.generate_private_key(ec.SECP256R1())
            shared = ephemeral.exchange(ec.ECDH(), recipient)
            key = _derive_key(shared, ephemeral.public_key(), recipient)
            iv = self._rng.get_random_bytes(NONCE_SIZE_BYTES)
            ciphertext = AESGCM(key).encrypt(iv, bytes(message), None)
        except Exception as exc:
            logger.warning("Payload encryption failed: %s", type(exc).__name__)
            raise EncryptionError("payload encryption failed") from exc

        return EncryptedEnvelope(
            ciphertext=ciphertext,
            ephemeral_public_key=export_public_key(ephemeral.public_key()),
            iv=iv,
        )

    def decrypt(
        self,
        envelope: Union[EncryptedEnvelope, Dict[str, Any]],
        recipient_private_key: PrivateKeyLike,
    ) -> bytes:
        """
        Decrypt an envelope with the recipient private key.

        Raises:
            DecryptionError: For every failure, without detail
        """
        try:
            if not isinstance(envelope, EncryptedEnvelope):
                envelope = EncryptedEnvelope.from_dict(envelope)
            if len(envelope.iv) != NONCE_SIZE_BYTES:
                raise ValueError("bad nonce length")
            private_key = load_private_key(recipient_private_key)
            ephemeral = load_public_key(envelope.ephemeral_public_key)
            shared = private_key.exchange(ec.ECDH(), ephemeral)
            key = _derive_key(shared, ephemeral, private_key.public_key())
            return AESGCM(key).decrypt(envelope.iv, envelope.ciphertext, None)
        except InvalidTag:
            logger.debug("Payload decryption failed: authentication tag mismatch")
        except Exception as exc:
            logger.debug("Payload decryption failed: %s", type(exc).__name__)
        raise DecryptionError("unable to decrypt payload") from None


_default_codec: Optional[HybridCodec] = None


def _codec() -> HybridCodec:
    global _default_codec
    if _default_codec is None:
        _default_codec = HybridCodec()
    return _default_codec


def encrypt(message: bytes, recipient_public_key: PublicKeyLike) -> EncryptedEnvelope:
    """Encrypt with the default codec."""
    return _codec().encrypt(message, recipient_public_key)


def decrypt(
    envelope: Union[EncryptedEnvelope, Dict[str, Any]],
    recipient_private_key: PrivateKeyLike,
) -> bytes:
    """Decrypt with the default codec."""
    return _codec().decrypt(envelope, recipient_private_key)
