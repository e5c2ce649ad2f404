"""
⚠️ DRAFT — requires crypto review before production use

Protocol configuration for anonymous inbox submissions.

This is a PROTOTYPE implementation for testing and validation.
DO NOT use in production without security audit.

The hash and proof parameters below describe the *shape* a real proving
system must satisfy (BN254 scalar field, Groth16 envelope). The reference
hash and proof backends shipped with this package are structural stand-ins.
"""

# ============================================================================
# FIELD SELECTION
# ============================================================================

# BN254 (alt_bn128) scalar field, shared by every hashing operation.
FIELD_NAME = "bn254-fr"
FIELD_MODULUS = (
    21888242871839275222246405745257275088548364400416034343698204186575808495617
)
FIELD_BITS = 254
FIELD_ELEMENT_BYTES = 32

# Field elements rendered in proofs: "0x" + 64 hex digits
FIELD_HEX_DIGITS = FIELD_ELEMENT_BYTES * 2

# ============================================================================
# HASH PRIMITIVE
# ============================================================================

# Reference mixing hash (stand-in for Poseidon)
MIXING_SBOX_EXPONENT = 5
MIXING_ROUNDS = 8
MIXING_ROUND_MULTIPLIER = 0x1234567890ABCDEF

# Domain separator for the SHA3-based field hash
DOMAIN_SEPARATOR_PREFIX = b"ANON_INBOX_V1_"

DOMAIN_SEPARATORS = {
    "field_hash": DOMAIN_SEPARATOR_PREFIX + b"FIELD_HASH",
    "proof_element": DOMAIN_SEPARATOR_PREFIX + b"PROOF_ELEMENT",
    "hybrid_encryption": DOMAIN_SEPARATOR_PREFIX + b"HYBRID_ECDH_AESGCM",
}

# Message binding: SHA-256 digest truncated so the integer fits the field
MESSAGE_HASH_BYTES = 31

# ============================================================================
# PROOF ENVELOPE
# ============================================================================

PROOF_PROTOCOL = "groth16"
PROOF_CURVE = "bn254"
PUBLIC_SIGNAL_COUNT = 4

# Fixed order consumed by the verifier
PUBLIC_SIGNAL_ORDER = ("root", "epoch", "nullifier", "signal_hash")

# Serialization format for the binary envelope form
SERIALIZATION_FORMAT = "CBOR"
PROOF_VERSION = 1
RECORD_VERSION = 1

MAX_PROOF_SIZE_BYTES = 4 * 1024

# ============================================================================
# EPOCHS & NULLIFIERS
# ============================================================================

DEFAULT_EPOCH_DURATION_SECONDS = 24 * 60 * 60
DEFAULT_EPOCH_TOLERANCE = 0
DEFAULT_NULLIFIER_RETENTION_EPOCHS = 2

# ============================================================================
# HYBRID ENCRYPTION
# ============================================================================

RECIPIENT_KEY_TYPE = "EC"
RECIPIENT_CURVE = "P-256"
SYMMETRIC_KEY_BYTES = 32  # AES-256-GCM
NONCE_SIZE_BYTES = 12
GCM_TAG_SIZE_BYTES = 16

# Key export protection
KEY_EXPORT_KDF_ITERATIONS = 100_000
KEY_EXPORT_SALT_BYTES = 16
KEY_EXPORT_VERSION = "1.0"

# ============================================================================
# REPORT PAYLOADS
# ============================================================================

REPORT_FORMAT_VERSION = "1.0"
MAX_ATTACHMENT_BYTES = 5 * 1024 * 1024

# ============================================================================
# VALIDATION
# ============================================================================


def validate_config() -> bool:
    """
    Validate configuration parameters.

    Returns:
        True if configuration is valid

    Raises:
        AssertionError: If configuration is invalid
    """
    assert FIELD_MODULUS > 2**250, "Field modulus too small"
    assert FIELD_MODULUS.bit_length() == FIELD_BITS, "Field bit length mismatch"
    assert FIELD_MODULUS < 2 ** (FIELD_ELEMENT_BYTES * 8), "Field does not fit encoding"
    assert MESSAGE_HASH_BYTES * 8 < FIELD_BITS, "Message hash must fit the field"
    assert PUBLIC_SIGNAL_COUNT == len(PUBLIC_SIGNAL_ORDER), "Signal order mismatch"
    assert DEFAULT_EPOCH_DURATION_SECONDS > 0, "Epoch duration must be positive"
    assert NONCE_SIZE_BYTES == 12, "AES-GCM nonce must be 12 bytes"
    assert SYMMETRIC_KEY_BYTES in (16, 24, 32), "Invalid AES key size"
    assert KEY_EXPORT_KDF_ITERATIONS >= 100_000, "KDF iteration count too low"
    assert SERIALIZATION_FORMAT in ("CBOR", "JSON"), "Invalid serialization format"
    return True


# Auto-validate on import
validate_config()
