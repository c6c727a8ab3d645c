# tests/test_mailchimp_client.py
import hashlib

import pytest
import requests

from mailchimp_app.batch import Batch
from mailchimp_app.config import Settings
from mailchimp_app.errors import InvalidArgument, TransportError
from mailchimp_app.mailchimp_client import MailchimpClient, endpoint_for_key
from tests.conftest import FakeSession, make_response


def test_endpoint_derived_from_key():
    assert endpoint_for_key("abc123-us21") == "https://us21.api.mailchimp.com/3.0"
    assert MailchimpClient("abc-us6").get_api_endpoint() == "https://us6.api.mailchimp.com/3.0"


def test_explicit_endpoint_wins():
    c = MailchimpClient("no-dc-needed", "https://mock.local/3.0/")
    assert c.get_api_endpoint() == "https://mock.local/3.0"


def test_key_without_datacenter_rejected():
    with pytest.raises(InvalidArgument):
        MailchimpClient("nodash")


def test_from_settings():
    c = MailchimpClient.from_settings(Settings(MAILCHIMP_API_KEY="k-us2", MAILCHIMP_VERIFY_SSL=False))
    assert c.get_api_endpoint() == "https://us2.api.mailchimp.com/3.0"
    assert c.verify_ssl is False


def test_subscriber_hash_lowercases():
    expected = hashlib.md5(b"ann@example.com").hexdigest()
    assert MailchimpClient.subscriber_hash("Ann@Example.COM") == expected


def test_get_sends_query_params(client, session):
    session.responses.append(make_response(200, {"lists": []}))

    result = client.get("lists", {"count": 10}, timeout=5)

    assert result == {"lists": []}
    assert client.success() is True
    assert client.get_last_error() is False
    sent = session.requests[0]
    assert sent["method"] == "GET"
    assert sent["url"] == "https://us21.api.mailchimp.com/3.0/lists"
    assert sent["params"] == {"count": 10}
    assert sent["json"] is None
    assert sent["timeout"] == 5
    assert sent["auth"].username == "user"
    assert sent["auth"].password == "secret-us21"


def test_post_sends_json_body(client, session):
    session.responses.append(make_response(200, {"id": "b1"}))

    client.post("batches", {"operations": []})

    sent = session.requests[0]
    assert sent["json"] == {"operations": []}
    assert sent["params"] is None
    assert client.get_last_request()["body"] == {"operations": []}


def test_delete_sends_no_body(client, session):
    session.responses.append(make_response(204))

    assert client.delete("lists/abc/members/x", {"ignored": True}) == {}
    assert session.requests[0]["json"] is None
    assert client.success() is True


def test_remote_error_returned_as_data(client, session):
    error = {"title": "Resource Not Found", "status": 404, "detail": "The requested resource could not be found."}
    session.responses.append(make_response(404, error, reason="Not Found"))

    result = client.get("lists/missing")

    assert result == error
    assert client.success() is False
    assert client.get_last_error() == "404: The requested resource could not be found."
    assert client.get_last_response()["status_code"] == 404


def test_undecodable_body_is_failure(client, session):
    session.responses.append(make_response(200, "<html>oops</html>"))

    assert client.get("lists") is None
    assert client.success() is False
    assert client.get_last_error()


def test_transport_failure_raises(client, session):
    session.responses.append(requests.ConnectionError("boom"))

    with pytest.raises(TransportError) as exc:
        client.get("lists")

    assert exc.value.method == "GET"
    assert client.success() is False
    assert "boom" in client.get_last_error()


def test_containers_reset_between_calls(client, session):
    session.responses.extend([make_response(500, {"detail": "bad"}), make_response(200, {})])
    client.get("lists")
    client.get("lists")
    assert client.success() is True
    assert client.get_last_error() is False


def test_query_joins_segments_and_routes_verb(client, session):
    session.responses.append(make_response(200, {"members": []}))

    client.query("get", "lists", "abc", "members/", query_args={"status": "subscribed"})

    sent = session.requests[0]
    assert sent["method"] == "GET"
    assert sent["url"] == "https://us21.api.mailchimp.com/3.0/lists/abc/members?status=subscribed"


def test_query_with_payload(client, session):
    session.responses.append(make_response(200, {"id": "m1"}))

    client.query("PATCH", "lists", "abc", payload={"name": "x"})

    assert session.requests[0]["method"] == "PATCH"
    assert session.requests[0]["json"] == {"name": "x"}


def test_query_rejects_unknown_verb(client):
    with pytest.raises(InvalidArgument):
        client.query("TRACE", "lists")


def test_batch_round_trip_through_client():
    session = FakeSession(
        make_response(200, {"id": "abc123", "status": "pending"}),
        make_response(200, {"id": "abc123", "status": "finished", "total_operations": 1}),
    )
    client = MailchimpClient("k-us1", session=session)
    batch = client.new_batch()
    assert isinstance(batch, Batch)

    batch.put("op1", f"lists/L1/members/{client.subscriber_hash('a@b.com')}", {"status_if_new": "subscribed"})
    batch.execute()
    status = batch.check_status()

    assert status["status"] == "finished"
    assert session.requests[0]["url"].endswith("/batches")
    assert session.requests[1]["url"].endswith("/batches/abc123")
