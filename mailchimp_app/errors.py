# mailchimp_app/errors.py
"""
Exceptions raised by the Mailchimp client, batch and webhook modules.

Remote API failures (4xx/5xx with a JSON error body) are *not* raised; they are
returned as data and exposed through MailchimpClient.success() / get_last_error().
"""


class MailchimpError(Exception):
    """Base class for everything this package raises."""


class TransportError(MailchimpError):
    """The HTTP call itself failed (connection, TLS, timeout)."""

    def __init__(self, message: str, *, method: str = "", url: str = ""):
        super().__init__(message)
        self.method = method
        self.url = url


class InvalidArgument(MailchimpError, ValueError):
    """Caller error: unsupported verb, missing batch id, bad API key."""


class MalformedPayload(MailchimpError, ValueError):
    """Webhook body did not decode into a mapping with a `type` field."""
