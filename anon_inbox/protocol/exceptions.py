"""
Custom exceptions for the anonymous inbox protocol.

These exceptions provide structured error handling for the submission
protocol. Codec errors are deliberately generic so callers cannot tell
which primitive failed.
"""


class InboxProtocolError(Exception):
    """Base exception for inbox protocol errors."""

    pass


class InvalidRecipientKeyError(InboxProtocolError):
    """Recipient public key is malformed, on the wrong curve, or does not import."""

    pass


class EncryptionError(InboxProtocolError):
    """Error during payload encryption."""

    pass


class DecryptionError(InboxProtocolError):
    """Payload could not be decrypted (wrong key, tampered data or bad tag)."""

    pass


class ProofGenerationError(InboxProtocolError):
    """Error during proof generation."""

    pass


class ProofVerificationError(InboxProtocolError):
    """Proof is malformed or stale, or its signals do not match."""

    pass


class DuplicateNullifierError(InboxProtocolError):
    """Nullifier was already registered for the epoch."""

    def __init__(self, epoch: int, message: str = "nullifier already used in this epoch"):
        super().__init__(message)
        self.epoch = epoch


class InvalidEpochError(InboxProtocolError):
    """Epoch is malformed or outside the accepted window."""

    pass


class EntropySourceError(InboxProtocolError):
    """Secure randomness source is unavailable."""

    pass


class ConfigurationError(InboxProtocolError):
    """Configuration error."""

    pass


class KeyStoreError(InboxProtocolError):
    """Key file is invalid or the password is incorrect."""

    pass


class PasswordRequiredError(KeyStoreError):
    """Key file is password-protected and no password was given."""

    pass


class SerializationError(InboxProtocolError):
    """Wire or binary form could not be encoded or decoded."""

    pass


class PersistenceError(InboxProtocolError):
    """Record sink failed or timed out; the nullifier was released."""

    pass
