class WebhookError(Exception):
    """Base class for errors raised by the webhook delivery subsystem."""


class UnknownEventError(WebhookError, ValueError):
    """Raised when subscribing to or emitting an event outside the catalogue."""


class InvalidSubscriptionError(WebhookError, ValueError):
    """Raised when a subscription is created or updated with bad data."""


class DeliveryNotFoundError(WebhookError, LookupError):
    """Raised when a delivery record does not exist."""


class DeliveryInProgressError(WebhookError, RuntimeError):
    """Raised when a delivery cannot be reset because an attempt holds its lease."""
