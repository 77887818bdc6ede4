# oauthgate/sessions.py
"""
Client-held session state.

The whole session lives in a single cookie: an HS256-signed JWT whose claims
*are* the session map. Nothing is stored server side, so every change has to
be written back onto the response with `SessionStore.save`.
"""
from __future__ import annotations

import logging
import secrets
from collections.abc import Iterator, MutableMapping
from dataclasses import dataclass, field
from typing import Any

import jwt
from starlette.requests import HTTPConnection
from starlette.responses import Response

from .errors import SessionError

logger = logging.getLogger(__name__)

# keys of the session map
AUTHORIZED_KEY = "auth"
USER_KEY = "user"
STATE_KEY = "state"
REDIRECT_URL_KEY = "redir"

SESSION_AGE = 24 * 60 * 60        # seconds
MAX_COOKIE_SIZE = 4096            # what browsers reliably keep per cookie
_ALGORITHM = "HS256"


def random_session_name() -> str:
    return f"_s{secrets.randbits(32)}"


@dataclass(frozen=True)
class SessionOptions:
    """Cookie attributes and signing key, built once at startup."""

    secret_key: bytes = field(default_factory=lambda: secrets.token_bytes(64), repr=False)
    name: str = field(default_factory=random_session_name)
    domain: str | None = None
    max_age: int = SESSION_AGE
    path: str = "/"
    secure: bool = True
    http_only: bool = True
    same_site: str = "lax"


class Session(MutableMapping):
    """Mutable view over one browser's session map."""

    def __init__(self, name: str, values: dict[str, Any] | None = None, is_new: bool = True):
        self.name = name
        self.is_new = is_new
        self._values: dict[str, Any] = dict(values or {})

    def __getitem__(self, key: str) -> Any:
        return self._values[key]

    def __setitem__(self, key: str, value: Any) -> None:
        self._values[key] = value

    def __delitem__(self, key: str) -> None:
        del self._values[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"Session({self.name!r}, keys={sorted(self._values)})"

    @property
    def authorized(self) -> bool:
        return self._values.get(AUTHORIZED_KEY) is True

    @property
    def user(self) -> str | None:
        return self._values.get(USER_KEY)


class SessionStore:
    def __init__(self, options: SessionOptions):
        self.options = options

    def load(self, conn: HTTPConnection) -> Session:
        """
        Return the session carried by the request (or websocket) cookies.
        A missing or unreadable cookie yields a new, empty session.
        """
        raw = conn.cookies.get(self.options.name)
        if not raw:
            return Session(self.options.name)
        try:
            values = self.decode(raw)
        except jwt.InvalidTokenError as exc:
            logger.debug("discarding unreadable session cookie: %s", exc)
            return Session(self.options.name)
        return Session(self.options.name, values, is_new=False)

    def encode(self, session: Session) -> str:
        try:
            token = jwt.encode(dict(session), self.options.secret_key, algorithm=_ALGORITHM)
        except (TypeError, ValueError) as exc:
            raise SessionError(f"encoding session {session.name}: {exc}") from exc
        if len(token) > MAX_COOKIE_SIZE:
            raise SessionError(f"session {session.name} is {len(token)} bytes encoded, limit is {MAX_COOKIE_SIZE}")
        return token

    def decode(self, raw: str) -> dict[str, Any]:
        return jwt.decode(raw, self.options.secret_key, algorithms=[_ALGORITHM])

    def save(self, session: Session, response: Response) -> None:
        """Encode `session` and set it as a cookie on `response`. Raises SessionError."""
        opts = self.options
        response.set_cookie(
            opts.name,
            self.encode(session),
            max_age=opts.max_age,
            path=opts.path,
            domain=opts.domain,
            secure=opts.secure,
            httponly=opts.http_only,
            samesite=opts.same_site,
        )
