class RelayError(Exception):
    """Base class for errors raised while relaying a webhook message."""


class VerificationError(RelayError):
    """Webhook signature is missing or does not match."""


class MalformedInputError(RelayError):
    """Inbound payload lacks a sender or usable text."""


class CompletionProviderError(RelayError):
    """Language-model provider failed or timed out."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class PersistenceError(RelayError):
    """Conversation store could not read or write."""
