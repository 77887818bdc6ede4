from urllib.parse import parse_qs, urlsplit

import pytest
from fastapi.testclient import TestClient

from oauthgate.auth.flow import CALLBACK_PATH, error_response, new_state
from oauthgate.errors import MissingCodeError, MissingStateError
from oauthgate.sessions import Session

from .conftest import APP_URL, CALLBACK_URL, DOMAIN, give_session, session_of

CALLBACK = f"https://oauth.{DOMAIN}{CALLBACK_PATH}"


def start_login(client, path="/private?x=1"):
    """Hit a protected page and return the state sent to the provider."""
    r = client.get(path)
    assert r.status_code == 302
    query = parse_qs(urlsplit(r.headers["location"]).query)
    return query["state"][0]


def test_new_state_is_random_and_long_enough():
    a, b = new_state(), new_state()
    assert a != b
    assert len(a) >= 40  # 32 bytes, base64
    assert "+" not in a and "/" not in a


def test_login_redirects_to_provider(client, store):
    r = client.get("/private?x=1")
    assert r.status_code == 302

    location = urlsplit(r.headers["location"])
    assert f"{location.scheme}://{location.netloc}{location.path}" == "https://provider.test/authorize"
    query = parse_qs(location.query)
    assert query["client_id"] == ["cid"]
    assert query["redirect_uri"] == [CALLBACK_URL]
    assert query["response_type"] == ["code"]
    assert query["access_type"] == ["offline"]

    session = session_of(client, store)
    assert session["state"] == query["state"][0]
    assert session["redir"] == f"{APP_URL}/private?x=1"
    assert "auth" not in session


def test_full_round_trip(client, store, downstream_calls):
    state = start_login(client)

    r = client.get(CALLBACK, params={"code": "good-code", "state": state})
    assert r.status_code == 302
    assert r.headers["location"] == f"{APP_URL}/private?x=1"

    session = session_of(client, store)
    assert session["auth"] is True
    assert session["user"] == "octocat"
    assert "state" not in session
    assert "redir" not in session

    r = client.get("/private?x=1")
    assert r.status_code == 200
    assert r.text == "hello /private"
    assert downstream_calls == [f"{APP_URL}/private?x=1"]


def test_state_is_single_use(client, store):
    state = start_login(client)
    assert client.get(CALLBACK, params={"code": "good-code", "state": state}).status_code == 302

    r = client.get(CALLBACK, params={"code": "good-code", "state": state})
    assert r.status_code == 500
    assert r.text == MissingStateError.message
    assert session_of(client, store).get("auth") is not True

    # fail closed: the replay also logged the browser out
    assert client.get("/private").status_code == 302


def test_state_mismatch_is_rejected_and_state_consumed(client, store):
    state = start_login(client)

    r = client.get(CALLBACK, params={"code": "good-code", "state": "forged"})
    assert r.status_code == 500
    assert r.text == "Something unexpected happened.  Please try again."
    session = session_of(client, store)
    assert "state" not in session
    assert "redir" not in session
    assert session.get("auth") is not True

    # the genuine state is gone too
    r = client.get(CALLBACK, params={"code": "good-code", "state": state})
    assert r.status_code == 500


def test_callback_without_stored_state(client, store):
    r = client.get(CALLBACK, params={"code": "good-code", "state": "anything"})
    assert r.status_code == 500
    assert session_of(client, store).get("auth") is not True


def test_callback_without_state_param(client):
    start_login(client)
    r = client.get(CALLBACK, params={"code": "good-code"})
    assert r.status_code == 500


@pytest.mark.parametrize("with_valid_state", [True, False])
def test_missing_code_is_a_client_error(client, store, with_valid_state):
    params = {"state": start_login(client) if with_valid_state else "bogus"}

    r = client.get(CALLBACK, params=params)
    assert r.status_code == 400
    assert r.text == "Missing authorization code."
    session = session_of(client, store)
    assert "state" not in session
    assert session.get("auth") is not True


def test_provider_error_redirect_is_missing_code(client):
    state = start_login(client)
    r = client.get(CALLBACK, params={"error": "access_denied", "state": state})
    assert r.status_code == 400


def test_rejected_code_is_unauthorized(client, store, downstream_calls):
    state = start_login(client)

    r = client.get(CALLBACK, params={"code": "bad-code", "state": state})
    assert r.status_code == 401
    assert r.text == "Unauthorized."

    session = session_of(client, store)
    assert session.get("auth") is not True
    assert "user" not in session
    assert "state" not in session
    assert "redir" not in session
    assert downstream_calls == []


@pytest.mark.parametrize("code", ["timeout-code", "broken-code"])
def test_authorizer_crash_is_unauthorized_and_consumes_state(client, store, downstream_calls, code):
    state = start_login(client)

    r = client.get(CALLBACK, params={"code": code, "state": state})
    assert r.status_code == 401
    assert r.text == "Unauthorized."

    session = session_of(client, store)
    assert session.get("auth") is not True
    assert "state" not in session
    assert "redir" not in session

    r = client.get(CALLBACK, params={"code": "good-code", "state": state})
    assert r.status_code == 500
    assert downstream_calls == []


def test_previously_authorized_session_is_cleared_by_failed_callback(client, store):
    give_session(client, store, {"auth": True, "user": "octocat", "state": "s1"})

    r = client.get(CALLBACK, params={"code": "bad-code", "state": "s1"})
    assert r.status_code == 401
    assert session_of(client, store).get("auth") is not True


def test_missing_redirect_url(client, store):
    give_session(client, store, {"state": "s1"})

    r = client.get(CALLBACK, params={"code": "good-code", "state": "s1"})
    assert r.status_code == 500
    assert r.text == "Not sure where you were going."
    # the user did authenticate; only the destination was lost
    session = session_of(client, store)
    assert session["auth"] is True
    assert session["user"] == "octocat"
    assert "state" not in session


def test_empty_redirect_url(client, store):
    give_session(client, store, {"state": "s1", "redir": ""})
    r = client.get(CALLBACK, params={"code": "good-code", "state": "s1"})
    assert r.status_code == 500


def test_login_fails_closed_when_session_cannot_be_saved(client, store, downstream_calls):
    # the redirect URL alone overflows the cookie
    r = client.get("/" + "a" * 5000)
    assert r.status_code == 500
    assert "location" not in r.headers
    assert session_of(client, store) == {}
    assert downstream_calls == []


def test_callback_only_answers_on_callback_path(gateway):
    client = TestClient(gateway, base_url=f"https://oauth.{DOMAIN}", follow_redirects=False)
    assert client.get("/elsewhere").status_code == 404


def test_error_response_uses_generic_message():
    r = error_response(MissingStateError("state 'abc' != 'def'"))
    assert r.status_code == 500
    assert r.body == MissingStateError.message.encode()

    r = error_response(MissingCodeError())
    assert r.status_code == 400


def test_session_repr_does_not_leak_values():
    session = Session("_s1", {"state": "secret-token"})
    assert "secret-token" not in repr(session)
