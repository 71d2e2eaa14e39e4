"""
Domain exceptions for webhook verification and subscription sync.

Routes map these to HTTP status codes; the response body never carries the
underlying reason.
"""


class WebhookVerificationError(ValueError):
    """Inbound webhook could not be authenticated or decoded."""


class WebhookSignatureError(WebhookVerificationError):
    """Signature header missing, malformed or not matching the payload."""


class WebhookPayloadError(WebhookVerificationError):
    """Signed body is not a JSON object or a recognized event is malformed."""


class SubscriptionSyncError(RuntimeError):
    """Writing a subscription transition to the tenant row failed."""

    def __init__(self, message: str, event_type: str = None):
        super().__init__(message)
        self.event_type = event_type
