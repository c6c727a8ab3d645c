# mailchimp_app/webhook.py
"""
Inbound Mailchimp webhooks.

Mailchimp POSTs a form-encoded body such as

    type=subscribe&fired_at=2024-01-01+10:00:00&data[email]=a@b.com&data[merges][FNAME]=Ann

Callbacks subscribe to an event type on a WebhookRegistry and are invoked once
with the decoded ``data`` mapping, after which the subscription is dropped.
A registry is meant to live for one inbound request; the router below builds a
fresh one per POST.

See https://mailchimp.com/developer/marketing/guides/sync-audience-data-webhooks/
"""
from __future__ import annotations

import logging
import re
import threading
from typing import Any, Callable, Dict, List, Optional, Union
from urllib.parse import parse_qsl

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.concurrency import run_in_threadpool

from .config import Settings, get_settings
from .errors import MalformedPayload

log = logging.getLogger(__name__)

Callback = Callable[[Any], None]

_KEY_RE = re.compile(r"^([^\[\]]+)((?:\[[^\[\]]*\])*)$")
_SEGMENT_RE = re.compile(r"\[([^\[\]]*)\]")
# Same cap as PHP parse_str (max_input_nesting_level)
MAX_NESTING = 64


# ─────────────────────────────
# Form body parsing
# ─────────────────────────────
def _split_key(key: str) -> List[str]:
    """'data[merges][FNAME]' -> ['data', 'merges', 'FNAME'];  'a[]' -> ['a', '']"""
    m = _KEY_RE.match(key)
    if not m:
        return [key]
    segments = _SEGMENT_RE.findall(m.group(2))
    if len(segments) > MAX_NESTING:
        raise MalformedPayload(f"Form key nested deeper than {MAX_NESTING} levels")
    return [m.group(1)] + segments


def _assign(root: Dict[str, Any], parts: List[str], value: str) -> None:
    node: Union[Dict[str, Any], List[Any]] = root
    for i, key in enumerate(parts[:-1]):
        want_list = parts[i + 1] == ""
        if isinstance(node, list):
            child: Union[Dict[str, Any], List[Any]] = [] if want_list else {}
            node.append(child)
        else:
            child = node.get(key)
            if want_list and not isinstance(child, list):
                child = node[key] = []
            elif not want_list and not isinstance(child, dict):
                child = node[key] = {}
        node = child

    if isinstance(node, list):
        node.append(value)
    else:
        node[parts[-1]] = value


def parse_form_body(raw: str) -> Dict[str, Any]:
    """Decode an x-www-form-urlencoded body, expanding bracketed keys into nested dicts/lists."""
    result: Dict[str, Any] = {}
    for key, value in parse_qsl(raw or "", keep_blank_values=True):
        if not key or key.startswith("["):
            continue
        _assign(result, _split_key(key), value)
    return result


def parse_webhook(raw: str) -> Dict[str, Any]:
    """Strict variant: raises MalformedPayload unless the body carries a string `type`."""
    parsed = parse_form_body(raw)
    if not isinstance(parsed.get("type"), str) or not parsed["type"]:
        raise MalformedPayload("Webhook body has no `type` field")
    return parsed


# ─────────────────────────────
# Registry
# ─────────────────────────────
class WebhookRegistry:
    """
    Event name -> callbacks, with one-shot dispatch.

    ``input_source`` is called for the raw body when receive() is given no
    input and nothing has been cached yet (e.g. a closure over the request body).
    """

    def __init__(self, input_source: Optional[Callable[[], Optional[Union[str, bytes]]]] = None):
        self._subscriptions: Dict[str, List[Callback]] = {}
        self._input_source = input_source
        self._lock = threading.RLock()
        self._dispatching = False
        self.last_payload: Optional[str] = None

    def subscribe(self, event: str, callback: Callback) -> None:
        with self._lock:
            self._subscriptions.setdefault(event, []).append(callback)
            # Subscribing from inside a callback waits for the next delivery.
            if not self._dispatching:
                self.receive()

    def subscriptions(self, event: str) -> List[Callback]:
        with self._lock:
            return list(self._subscriptions.get(event, []))

    def receive(self, raw_input: Optional[Union[str, bytes]] = None) -> Optional[Dict[str, Any]]:
        """
        Parse a webhook body and fire matching callbacks.
        Returns the parsed mapping, or None for empty/malformed input.
        """
        with self._lock:
            if raw_input is None:
                if self.last_payload is not None:
                    raw_input = self.last_payload
                elif self._input_source is not None:
                    raw_input = self._input_source()
            if isinstance(raw_input, bytes):
                raw_input = raw_input.decode("utf-8", errors="replace")
            if not raw_input:
                return None
            return self._process(raw_input)

    def _process(self, raw: str) -> Optional[Dict[str, Any]]:
        self.last_payload = raw
        try:
            parsed = parse_webhook(raw)
        except ValueError as e:
            log.warning("Ignoring malformed webhook body (%d bytes): %s", len(raw), e)
            return None
        self._dispatch(parsed["type"], parsed.get("data", {}))
        return parsed

    def _dispatch(self, event: str, data: Any) -> None:
        callbacks = self._subscriptions.pop(event, [])
        if not callbacks:
            log.debug("No subscribers for webhook event %r", event)
            return
        log.info("Dispatching webhook event %r to %d subscriber(s)", event, len(callbacks))
        errors: List[Exception] = []
        self._dispatching = True
        try:
            for cb in callbacks:
                try:
                    cb(data)
                except Exception as e:
                    log.exception("Webhook subscriber for %r failed", event)
                    errors.append(e)
        finally:
            self._dispatching = False
        if errors:
            raise errors[0]


# ─────────────────────────────
# HTTP endpoint
# ─────────────────────────────
router = APIRouter()

# Host setup hooks, run against each request's fresh registry before dispatch
_setup_hooks: List[Callable[[WebhookRegistry], None]] = []


def on_webhook(fn: Callable[[WebhookRegistry], None]) -> Callable[[WebhookRegistry], None]:
    """
    Register a function that subscribes callbacks for each inbound webhook:

        @on_webhook
        def _wire(registry):
            registry.subscribe("unsubscribe", handle_unsubscribe)
    """
    _setup_hooks.append(fn)
    return fn


def _dispatch_body(body: bytes) -> Optional[Dict[str, Any]]:
    registry = WebhookRegistry(input_source=lambda: body)
    for hook in list(_setup_hooks):
        hook(registry)
    return registry.receive()


@router.get("/webhooks/mailchimp")
def validate_mailchimp_webhook():
    # Mailchimp pings the URL with a GET when the webhook is created
    return {"ok": True}


@router.post("/webhooks/mailchimp")
async def receive_mailchimp_webhook(
    request: Request,
    secret: Optional[str] = Query(default=None),
    settings: Settings = Depends(get_settings),
):
    if settings.MAILCHIMP_WEBHOOK_SECRET and secret != settings.MAILCHIMP_WEBHOOK_SECRET:
        log.warning("Rejected Mailchimp webhook with bad secret")
        raise HTTPException(status_code=403, detail="Invalid webhook secret")

    body = await request.body()
    # Subscribers are plain sync callables (often blocking API calls)
    parsed = await run_in_threadpool(_dispatch_body, body)
    if parsed is None:
        return {"status": "ignored"}
    return {"status": "ok", "type": parsed["type"]}
