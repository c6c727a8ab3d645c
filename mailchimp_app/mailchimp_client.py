# mailchimp_app/mailchimp_client.py
from __future__ import annotations

import hashlib
import logging
from typing import Any, Callable, Dict, Optional
from urllib.parse import urlencode

import requests
from requests.auth import HTTPBasicAuth

from .batch import Batch, Verb
from .config import Settings, get_settings
from .errors import InvalidArgument, TransportError

log = logging.getLogger(__name__)

API_ENDPOINT_TEMPLATE = "https://{dc}.api.mailchimp.com/3.0"
DEFAULT_TIMEOUT = 10


# ─────────────────────────────
# Auth helper (Basic)
# ─────────────────────────────
def mailchimp_auth(user: str, api_key: str) -> HTTPBasicAuth:
    # Per Mailchimp, username can be any non-empty string; often "anystring" or "user"
    return HTTPBasicAuth(user, api_key)


def endpoint_for_key(api_key: str) -> str:
    """'abc123-us21' -> 'https://us21.api.mailchimp.com/3.0'"""
    if "-" not in (api_key or ""):
        raise InvalidArgument("Invalid Mailchimp API key supplied.")
    dc = api_key.split("-", 1)[1]
    return API_ENDPOINT_TEMPLATE.format(dc=dc)


class MailchimpClient:
    """
    Thin Mailchimp v3 client on top of requests.

    Every call returns the decoded JSON body (also for API errors), ``{}`` for an
    empty successful body, or ``None`` when the body could not be decoded.
    Network-level failures raise TransportError. The outcome of the most recent
    call is kept for inspection: success(), get_last_error(),
    get_last_response(), get_last_request().
    """

    def __init__(
        self,
        api_key: str,
        api_endpoint: Optional[str] = None,
        *,
        verify_ssl: bool = True,
        timeout: int = DEFAULT_TIMEOUT,
        session: Optional[requests.Session] = None,
    ):
        self.api_key = api_key
        self.api_endpoint = (api_endpoint or endpoint_for_key(api_key)).rstrip("/")
        self.verify_ssl = verify_ssl
        self.timeout = timeout
        self.session = session or requests.Session()

        self._request_successful = False
        self._last_error = ""
        self._last_request: Dict[str, Any] = {}
        self._last_response: Dict[str, Any] = {"headers": None, "body": None, "status_code": None}

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "MailchimpClient":
        s = settings or get_settings()
        return cls(
            s.MAILCHIMP_API_KEY,
            s.MAILCHIMP_API_ENDPOINT,
            verify_ssl=s.MAILCHIMP_VERIFY_SSL,
            timeout=s.MAILCHIMP_TIMEOUT,
        )

    # ── factories / helpers ───────────────────────────────────────────────────
    def new_batch(self, batch_id: Optional[str] = None) -> Batch:
        """New Batch bound to this client, optionally resuming a known batch id."""
        return Batch(self, batch_id)

    def get_api_endpoint(self) -> str:
        return self.api_endpoint

    @staticmethod
    def subscriber_hash(email: str) -> str:
        """Member resources are addressed by md5(lowercase(email))."""
        return hashlib.md5(email.lower().encode("utf-8")).hexdigest()

    # ── last call bookkeeping ─────────────────────────────────────────────────
    def success(self) -> bool:
        return self._request_successful

    def get_last_error(self):
        return self._last_error or False

    def get_last_response(self) -> Dict[str, Any]:
        return self._last_response

    def get_last_request(self) -> Dict[str, Any]:
        return self._last_request

    # ── verbs ─────────────────────────────────────────────────────────────────
    def delete(self, path: str, args: Optional[Dict[str, Any]] = None, timeout: Optional[int] = None):
        return self._make_request(Verb.DELETE, path, args, timeout)

    def get(self, path: str, args: Optional[Dict[str, Any]] = None, timeout: Optional[int] = None):
        return self._make_request(Verb.GET, path, args, timeout)

    def patch(self, path: str, args: Optional[Dict[str, Any]] = None, timeout: Optional[int] = None):
        return self._make_request(Verb.PATCH, path, args, timeout)

    def post(self, path: str, args: Optional[Dict[str, Any]] = None, timeout: Optional[int] = None):
        return self._make_request(Verb.POST, path, args, timeout)

    def put(self, path: str, args: Optional[Dict[str, Any]] = None, timeout: Optional[int] = None):
        return self._make_request(Verb.PUT, path, args, timeout)

    def query(self, verb, *segments: str, query_args: Optional[Dict[str, Any]] = None,
              payload: Optional[Dict[str, Any]] = None, timeout: Optional[int] = None):
        """
        Route a verb keyword to the matching call, e.g.
        query("get", "lists", list_id, "members", query_args={"count": 10}).
        """
        senders: Dict[Verb, Callable[..., Any]] = {
            Verb.GET: self.get,
            Verb.POST: self.post,
            Verb.PUT: self.put,
            Verb.PATCH: self.patch,
            Verb.DELETE: self.delete,
        }
        send = senders[Verb.coerce(verb)]

        path = "/".join(str(s).strip("/") for s in segments if str(s).strip("/"))
        if query_args:
            path = f"{path}?{urlencode(query_args)}"
        return send(path, payload, timeout)

    # ── transport ─────────────────────────────────────────────────────────────
    def _make_request(self, verb: Verb, path: str, args: Optional[Dict[str, Any]], timeout: Optional[int]):
        timeout = timeout or self.timeout
        url = f"{self.api_endpoint}/{path.lstrip('/')}"

        # Begin with clean containers
        self._last_error = ""
        self._request_successful = False
        self._last_response = {"headers": None, "body": None, "status_code": None}

        params = None
        body = None
        if verb is Verb.GET:
            params = args or None
        elif verb is not Verb.DELETE:
            body = args or {}

        self._last_request = {
            "method": verb.value,
            "url": url,
            "timeout": timeout,
            "verify": self.verify_ssl,
            "params": params,
            "body": body,
        }

        log.debug("Mailchimp %s %s (timeout=%ss)", verb.value, path, timeout)
        try:
            r = self.session.request(
                verb.value,
                url,
                params=params,
                json=body,
                auth=mailchimp_auth("user", self.api_key),
                headers={"Accept": "application/json"},
                timeout=timeout,
                verify=self.verify_ssl,
            )
        except requests.RequestException as e:
            self._last_error = f"{e.__class__.__name__}: {e}"
            log.warning("Mailchimp %s %s failed: %s", verb.value, path, self._last_error)
            raise TransportError(str(e), method=verb.value, url=url) from e

        self._last_response = {
            "headers": dict(r.headers),
            "body": r.text,
            "status_code": r.status_code,
        }
        return self._decode(r)

    def _decode(self, r: requests.Response):
        text = (r.text or "").strip()
        if not text:
            decoded = {} if r.ok else None
        else:
            try:
                decoded = r.json()
            except ValueError:
                decoded = None

        if r.ok and decoded is not None:
            self._request_successful = True
        elif r.ok:
            self._last_error = "Unable to decode response body"
        elif isinstance(decoded, dict):
            detail = decoded.get("detail") or decoded.get("title") or r.reason
            self._last_error = f"{r.status_code}: {detail}"
        else:
            self._last_error = f"{r.status_code}: {r.reason}"

        if self._last_error:
            log.warning("Mailchimp request unsuccessful: %s", self._last_error)
        return decoded
