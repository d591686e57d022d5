class RelayError(Exception):
    """Base class for collaborator failures inside the relay pipeline."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class CryptoError(RelayError):
    """Signature mismatch, undecryptable envelope or crypto oracle failure."""


class SyncError(RelayError):
    """The remote mailbox sync call failed or never terminated."""


class GenerationError(RelayError):
    """The reply generator failed or returned an empty reply."""


class GatewayError(RelayError):
    """An outbound send, upload or token request to the messaging platform failed."""


class StorageError(RelayError):
    """The key-value store is unreachable or rejected the operation."""
