# tests/conftest.py
import json
from typing import Any, Dict, List, Optional

import pytest
import requests

from mailchimp_app.mailchimp_client import MailchimpClient


class FakeAPIClient:
    """Records post/get calls and returns canned responses."""

    def __init__(self, post_result: Any = None, get_result: Any = None):
        self.post_result = post_result
        self.get_result = get_result
        self.calls: List[tuple] = []

    def post(self, path: str, args: Optional[Dict[str, Any]] = None, timeout: int = 10):
        self.calls.append(("POST", path, args, timeout))
        if isinstance(self.post_result, Exception):
            raise self.post_result
        return self.post_result

    def get(self, path: str, args: Optional[Dict[str, Any]] = None, timeout: int = 10):
        self.calls.append(("GET", path, args, timeout))
        return self.get_result


def make_response(status_code: int = 200, body: Any = None, reason: str = "OK") -> requests.Response:
    r = requests.Response()
    r.status_code = status_code
    r.reason = reason
    r.encoding = "utf-8"
    if body is None:
        r._content = b""
    elif isinstance(body, (bytes, str)):
        r._content = body.encode("utf-8") if isinstance(body, str) else body
    else:
        r._content = json.dumps(body).encode("utf-8")
        r.headers["Content-Type"] = "application/json"
    return r


class FakeSession:
    """Stands in for requests.Session; returns queued responses or raises."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests: List[Dict[str, Any]] = []

    def request(self, method, url, **kwargs):
        self.requests.append({"method": method, "url": url, **kwargs})
        nxt = self.responses.pop(0)
        if isinstance(nxt, Exception):
            raise nxt
        return nxt


@pytest.fixture
def fake_api():
    return FakeAPIClient()


@pytest.fixture
def session():
    return FakeSession()


@pytest.fixture
def client(session):
    return MailchimpClient("secret-us21", session=session)
