class AmazonSnsError(Exception):
    """Base class for all errors raised by the Amazon SNS app."""


class SignatureInvalid(AmazonSnsError):
    """An inbound message failed signature verification."""


class RemoteServiceError(AmazonSnsError):
    """A call to the SNS API failed (network, auth, throttling, unknown ARN)."""

    def __init__(self, message, code="", retryable=False):
        super().__init__(message)
        self.code = code
        self.retryable = retryable


class LocalPersistenceError(AmazonSnsError):
    """Saving local topic state failed after a successful remote call."""

    def __init__(self, message, original=None):
        super().__init__(message)
        self.original = original


class TopicNotFound(AmazonSnsError):
    """No local topic matches the given reference."""
