"""Exceptions raised across the qualification turn."""


class QualificationError(Exception):
    """Base class for qualification engine errors."""


class GenerationError(QualificationError):
    """The generation capability produced no usable reply (HTTP error, timeout, empty text)."""


class DeliveryError(QualificationError):
    """The outbound reply could not be delivered to the recipient."""

    def __init__(self, message: str, endpoint_id: str | None = None, recipient_id: str | None = None):
        super().__init__(message)
        self.endpoint_id = endpoint_id
        self.recipient_id = recipient_id


class MissingCredentialsError(QualificationError):
    """Neither the tenant profile nor the process defaults provide usable credentials."""
