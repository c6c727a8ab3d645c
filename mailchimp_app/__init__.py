# mailchimp_app/__init__.py
from .batch import Batch, BatchState, Operation, Verb
from .errors import InvalidArgument, MailchimpError, MalformedPayload, TransportError
from .mailchimp_client import MailchimpClient
from .webhook import WebhookRegistry, parse_form_body

__all__ = [
    "Batch",
    "BatchState",
    "Operation",
    "Verb",
    "MailchimpClient",
    "WebhookRegistry",
    "parse_form_body",
    "MailchimpError",
    "TransportError",
    "InvalidArgument",
    "MalformedPayload",
]
