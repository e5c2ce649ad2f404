"""
Anonymous Inbox - rate-limited, end-to-end-encrypted anonymous submissions.

⚠️  PROOF OF CONCEPT - NOT PRODUCTION READY
"""

__version__ = "0.1.0"

DISCLAIMER = """
⚠️  DISCLAIMER
The hash primitive and proof backend shipped with this package are
structural stand-ins. They are NOT cryptographically sound and provide no
anonymity or soundness guarantee. Replace them with a real Poseidon hash and
a pairing-based prover before handling real submissions.
"""


def print_disclaimer() -> None:
    """Print the prototype disclaimer."""
    print(DISCLAIMER)


__all__ = ["__version__", "DISCLAIMER", "print_disclaimer"]
