"""Exceptions raised by brainkeep components.

Not-found conditions (no sessions, unknown session, no vault) are not
errors; components return None or an empty result for those.
"""


class BrainkeepError(Exception):
    """Base exception for all application-specific errors."""


class ValidationError(BrainkeepError):
    """Raised for bad arguments, before any storage is touched."""


class StorageError(BrainkeepError):
    """Raised when a read or write against the filesystem fails."""


class VaultDecryptError(StorageError):
    """Raised when an encrypted vault cannot be decrypted with this machine's key."""

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(
            f"Failed to decrypt credentials at {path}: {reason}. "
            "File may be corrupted or created on a different machine."
        )


class TransferError(StorageError):
    """Raised when an export container is malformed or cannot be decrypted."""
