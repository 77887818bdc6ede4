# oauthgate/middleware/auth.py
from fastapi import Request, status
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp, Receive, Scope, Send
from starlette.websockets import WebSocket

from ..auth.flow import AuthFlow
from ..sessions import REDIRECT_URL_KEY


def absolute_url(request: Request) -> str:
    """Scheme (https when the connection is encrypted), host, path and query."""
    return str(request.url)


class AuthMiddleware(BaseHTTPMiddleware):
    """
    Lets a request through only when its session is authorized; otherwise
    remembers where the browser was going and starts the login flow.
    """

    def __init__(self, app: ASGIApp, flow: AuthFlow):
        super().__init__(app)
        self.flow = flow

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "websocket":
            # an upgrade can't follow a login redirect, so just refuse it
            websocket = WebSocket(scope, receive, send)
            if not self.flow.store.load(websocket).authorized:
                await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
                return
            await self.app(scope, receive, send)
            return
        await super().__call__(scope, receive, send)

    async def dispatch(self, request: Request, call_next):
        session = self.flow.store.load(request)
        if session.authorized:
            return await call_next(request)

        session[REDIRECT_URL_KEY] = absolute_url(request)
        return self.flow.login(request, session)
