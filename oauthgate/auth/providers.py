# oauthgate/auth/providers.py
"""
Identity-provider strategies.

An Authorizer knows two things about its provider: how to describe itself as an
OAuth2 client (`oauth_config`) and how to turn an authorization code into a
user identity the gateway trusts (`authorize`). Instances are frozen pydantic
models built once from configuration and shared by every request.
"""
from __future__ import annotations

import abc
import asyncio
import logging
import re
from dataclasses import dataclass, field
from typing import Any, ClassVar
from urllib.parse import urlencode

from aiohttp import ClientError, ClientResponse, ClientSession, ClientTimeout
from pydantic import BaseModel, ConfigDict, Field

from ..errors import UnauthorizedError, UpstreamError

logger = logging.getLogger(__name__)

# what a provider round trip can fail with below the HTTP layer
NETWORK_ERRORS = (ClientError, asyncio.TimeoutError)
REQUEST_TIMEOUT = 30  # seconds, per provider call


@dataclass(frozen=True)
class OAuthConfig:
    """OAuth2 client descriptor: endpoints, credentials and requested scopes."""

    client_id: str
    client_secret: str = field(repr=False)
    auth_url: str
    token_url: str
    redirect_url: str | None = None
    scopes: tuple[str, ...] = ()

    def auth_code_url(self, state: str, **extra: str) -> str:
        """URL of the provider's consent page, asking for offline access."""
        params = {
            "access_type": "offline",
            "client_id": self.client_id,
            "response_type": "code",
            "state": state,
        }
        if self.redirect_url:
            params["redirect_uri"] = self.redirect_url
        if self.scopes:
            params["scope"] = " ".join(self.scopes)
        params.update(extra)
        sep = "&" if "?" in self.auth_url else "?"
        return f"{self.auth_url}{sep}{urlencode(sorted(params.items()))}"


class Authorizer(BaseModel, abc.ABC):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    scopes: ClassVar[tuple[str, ...]] = ()

    client_id: str = Field(alias="ClientID")
    client_secret: str = Field(alias="ClientSecret", repr=False)
    redirect_url: str | None = Field(None, alias="RedirectURL")
    auth_url: str = Field(alias="AuthURL")
    token_url: str = Field(alias="TokenURL")
    timeout: float = Field(REQUEST_TIMEOUT, alias="Timeout", gt=0)

    @abc.abstractmethod
    async def authorize(self, code: str) -> str:
        """Exchange `code` and return the user's identity, or raise UnauthorizedError."""

    def oauth_config(self) -> OAuthConfig:
        return OAuthConfig(
            client_id=self.client_id,
            client_secret=self.client_secret,
            auth_url=self.auth_url,
            token_url=self.token_url,
            redirect_url=self.redirect_url,
            scopes=self.scopes,
        )

    def with_redirect_url(self, url: str) -> Authorizer:
        """Copy of this authorizer using `url` as callback, unless one is configured."""
        if self.redirect_url:
            return self
        return self.model_copy(update={"redirect_url": url})

    # ───── HTTP helpers shared by the providers ──────────────────────
    def _http(self) -> ClientSession:
        return ClientSession(timeout=ClientTimeout(total=self.timeout))

    async def _exchange(self, http: ClientSession, code: str) -> str:
        data = {
            "grant_type": "authorization_code",
            "code": code,
            "client_id": self.client_id,
            "client_secret": self.client_secret,
        }
        if self.redirect_url:
            data["redirect_uri"] = self.redirect_url
        async with http.post(self.token_url, data=data, headers={"Accept": "application/json"}) as resp:
            payload = await _json(resp)
        token = payload.get("access_token") if isinstance(payload, dict) else None
        if not token or not isinstance(token, str):
            reason = "no access_token in response"
            if isinstance(payload, dict):
                reason = payload.get("error_description") or payload.get("error") or reason
            raise UpstreamError(f"token exchange failed: {reason}")
        return token

    async def _get_json(self, http: ClientSession, url: str, token: str) -> Any:
        headers = {"Authorization": f"Bearer {token}", "Accept": "application/json"}
        async with http.get(url, headers=headers) as resp:
            return await _json(resp)


async def _json(resp: ClientResponse) -> Any:
    if resp.status != 200:
        body = await resp.text()
        raise UpstreamError(f"{resp.method} {resp.url}: {resp.status} {body[:200]}")
    try:
        return await resp.json(content_type=None)
    except ValueError as exc:
        raise UpstreamError(f"{resp.method} {resp.url}: invalid JSON: {exc}") from exc


# ───── GitHub organization membership ───────────────────────────────
class GithubOrgAuthorizer(Authorizer):
    scopes: ClassVar[tuple[str, ...]] = ("read:org",)

    org_id: int = Field(alias="OrgID")
    auth_url: str = Field("https://github.com/login/oauth/authorize", alias="AuthURL")
    token_url: str = Field("https://github.com/login/oauth/access_token", alias="TokenURL")
    api_url: str = Field("https://api.github.com", alias="APIURL")

    async def authorize(self, code: str) -> str:
        api = self.api_url.rstrip("/")
        try:
            async with self._http() as http:
                token = await self._exchange(http, code)
                user = await self._get_json(http, f"{api}/user", token)
                login = user.get("login") if isinstance(user, dict) else None
                if not isinstance(login, str) or not login:
                    raise UpstreamError(f"github: unexpected /user payload, login={login!r}")
                member = await self._is_member(http, f"{api}/user/orgs", token)
        except NETWORK_ERRORS as exc:
            raise UpstreamError(f"github: {exc!r}") from exc

        if not member:
            raise UnauthorizedError(f"github user {login!r} is not a member of org {self.org_id}")
        logger.debug("github user %s is a member of org %d", login, self.org_id)
        return login

    async def _is_member(self, http: ClientSession, url: str, token: str) -> bool:
        """Walk the user's organizations page by page, following Link: rel="next"."""
        headers = {"Authorization": f"Bearer {token}", "Accept": "application/json"}
        params: dict[str, str] | None = {"per_page": "100"}
        next_url: str | None = url
        while next_url:
            async with http.get(next_url, headers=headers, params=params) as resp:
                orgs = await _json(resp)
                next_link = resp.links.get("next")
            if not isinstance(orgs, list):
                raise UpstreamError("github: unexpected /user/orgs payload")
            if any(isinstance(org, dict) and org.get("id") == self.org_id for org in orgs):
                return True
            # the next link already carries the query
            next_url = str(next_link["url"]) if next_link else None
            params = None
        return False


# ───── Google account, email matched against a pattern ───────────────
class GoogleRegexAuthorizer(Authorizer):
    scopes: ClassVar[tuple[str, ...]] = ("https://www.googleapis.com/auth/userinfo.email",)

    email_pattern: re.Pattern = Field(alias="EmailPattern")
    auth_url: str = Field("https://accounts.google.com/o/oauth2/auth", alias="AuthURL")
    token_url: str = Field("https://oauth2.googleapis.com/token", alias="TokenURL")
    userinfo_url: str = Field("https://www.googleapis.com/oauth2/v2/userinfo", alias="UserInfoURL")

    async def authorize(self, code: str) -> str:
        try:
            async with self._http() as http:
                token = await self._exchange(http, code)
                info = await self._get_json(http, self.userinfo_url, token)
        except NETWORK_ERRORS as exc:
            raise UpstreamError(f"google: {exc!r}") from exc

        if not isinstance(info, dict):
            raise UpstreamError("google: unexpected userinfo payload")
        email = info.get("email")
        if email is not None and not isinstance(email, str):
            raise UpstreamError(f"google: email is a {type(email).__name__}, not a string")
        if not email or info.get("verified_email") is not True:
            raise UnauthorizedError(f"google account {email!r} has no verified email")
        if not self.email_pattern.search(email):
            raise UnauthorizedError(f"{email!r} does not match {self.email_pattern.pattern!r}")
        return email
