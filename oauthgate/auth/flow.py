# oauthgate/auth/flow.py
"""
Login redirect and OAuth2 callback.

The two halves of a login are tied together only by the browser's session:
`login` leaves a one-time `state` token there, `callback` consumes it (and the
`redir` left by the middleware) before deciding anything, so neither value can
ever be used twice.
"""
import logging
import secrets

from fastapi import APIRouter, Request, status
from fastapi.responses import PlainTextResponse, RedirectResponse, Response

from ..errors import (
    GatewayError,
    MissingCodeError,
    MissingRedirectURLError,
    MissingStateError,
    SessionError,
    UpstreamError,
)
from ..sessions import (
    AUTHORIZED_KEY,
    REDIRECT_URL_KEY,
    STATE_KEY,
    USER_KEY,
    Session,
    SessionStore,
)
from .providers import Authorizer

logger = logging.getLogger(__name__)

CALLBACK_PATH = "/authorized"
STATE_BYTES = 32


def new_state() -> str:
    return secrets.token_urlsafe(STATE_BYTES)


def error_response(exc: GatewayError) -> Response:
    return PlainTextResponse(exc.message, status_code=exc.status_code)


def _same_token(expected: object, given: str | None) -> bool:
    if not isinstance(expected, str) or not expected or not given:
        return False
    return secrets.compare_digest(expected.encode(), given.encode())


class AuthFlow:
    def __init__(self, store: SessionStore, authorizer: Authorizer):
        self.store = store
        self.authorizer = authorizer

    def login(self, request: Request, session: Session) -> Response:
        """Send the browser to the provider's consent page."""
        state = new_state()
        session[STATE_KEY] = state
        url = self.authorizer.oauth_config().auth_code_url(state)
        response = RedirectResponse(url, status_code=status.HTTP_302_FOUND)
        try:
            self.store.save(session, response)
        except SessionError as exc:
            # without the state in the cookie the callback can only fail
            logger.error("not redirecting %s to login: %s", request.url, exc.detail)
            return error_response(exc)
        return response

    async def callback(self, request: Request) -> Response:
        """Handle the provider's redirect back to CALLBACK_PATH."""
        session = self.store.load(request)
        session.pop(AUTHORIZED_KEY, None)
        stored_state = session.pop(STATE_KEY, None)
        redirect_url = session.pop(REDIRECT_URL_KEY, None)

        try:
            user = await self._authenticate(request, stored_state)
            session[USER_KEY] = user
            session[AUTHORIZED_KEY] = True
            if not redirect_url:
                raise MissingRedirectURLError(f"user {user!r} authorized but session has no redirect URL")
            logger.info("authorized %s, redirecting to %s", user, redirect_url)
            response = RedirectResponse(redirect_url, status_code=status.HTTP_302_FOUND)
        except GatewayError as exc:
            logger.warning("callback rejected with %d (%s): %s", exc.status_code, type(exc).__name__, exc.detail)
            response = error_response(exc)
        except Exception:
            # a misbehaving authorizer still must not leave state/redir in the cookie
            logger.exception("authorizer %s failed", type(self.authorizer).__name__)
            session.pop(AUTHORIZED_KEY, None)
            response = error_response(UpstreamError())

        # persisted on failures too, so consumed values stay consumed
        try:
            self.store.save(session, response)
        except SessionError as exc:
            logger.error("saving session after callback: %s", exc.detail)
            return error_response(exc)
        return response

    async def _authenticate(self, request: Request, stored_state: object) -> str:
        code = request.query_params.get("code")
        if not code:
            raise MissingCodeError(f"callback without code: {request.query_params.get('error', 'no error given')}")
        if not _same_token(stored_state, request.query_params.get("state")):
            raise MissingStateError("state parameter missing or does not match session")
        return await self.authorizer.authorize(code)


def callback_router(flow: AuthFlow) -> APIRouter:
    router = APIRouter()
    router.add_api_route(CALLBACK_PATH, flow.callback, methods=["GET"], include_in_schema=False)
    return router
