import asyncio

import pytest
from fastapi import FastAPI
from fastapi.responses import PlainTextResponse
from fastapi.testclient import TestClient
from starlette.routing import Route, Router, WebSocketRoute

from oauthgate.auth import AuthFlow, callback_router
from oauthgate.auth.providers import Authorizer
from oauthgate.errors import UnauthorizedError
from oauthgate.middleware import AuthMiddleware
from oauthgate.sessions import Session, SessionOptions, SessionStore

SECRET = b"test-secret-0123456789abcdef0123456789abcdef"
SESSION_NAME = "_stest"
DOMAIN = "example.com"
CALLBACK_URL = f"https://oauth.{DOMAIN}/authorized"
APP_URL = f"https://app.{DOMAIN}"


class FakeAuthorizer(Authorizer):
    """Knows a fixed set of authorization codes."""

    auth_url: str = "https://provider.test/authorize"
    token_url: str = "https://provider.test/token"
    users: dict[str, str] = {}

    async def authorize(self, code: str) -> str:
        if code == "timeout-code":
            raise asyncio.TimeoutError
        if code == "broken-code":
            raise TypeError("expected string or bytes-like object")
        try:
            return self.users[code]
        except KeyError:
            raise UnauthorizedError(f"unknown code {code!r}") from None


@pytest.fixture
def store():
    return SessionStore(SessionOptions(secret_key=SECRET, name=SESSION_NAME, domain=DOMAIN))


@pytest.fixture
def authorizer():
    return FakeAuthorizer(
        client_id="cid",
        client_secret="csecret",
        redirect_url=CALLBACK_URL,
        users={"good-code": "octocat"},
    )


@pytest.fixture
def flow(store, authorizer):
    return AuthFlow(store, authorizer)


@pytest.fixture
def downstream_calls():
    return []


@pytest.fixture
def gateway(flow, downstream_calls):
    """Callback host plus one protected host in front of a trivial app."""

    async def hello(request):
        downstream_calls.append(str(request.url))
        return PlainTextResponse(f"hello {request.url.path}")

    async def echo(websocket):
        await websocket.accept()
        await websocket.send_text(await websocket.receive_text())
        await websocket.close()

    downstream = Router(routes=[
        Route("/{path:path}", hello, methods=["GET", "POST"]),
        WebSocketRoute("/ws", echo),
    ])
    app = FastAPI()
    app.host(f"oauth.{DOMAIN}", callback_router(flow))
    app.host(f"app.{DOMAIN}", AuthMiddleware(downstream, flow=flow))
    return app


@pytest.fixture
def client(gateway):
    return TestClient(gateway, base_url=APP_URL, follow_redirects=False)


def session_of(client, store) -> dict:
    """Decoded session the client's cookie jar currently holds."""
    raw = client.cookies.get(SESSION_NAME)
    return store.decode(raw) if raw else {}


def give_session(client, store, values: dict) -> None:
    client.cookies.set(SESSION_NAME, store.encode(Session(SESSION_NAME, values)), domain=f".{DOMAIN}")
