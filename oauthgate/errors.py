# oauthgate/errors.py
"""
Error vocabulary shared by the auth flow, the authorizers and the app factory.

Per-request errors carry the HTTP status and the generic message shown to the
client; the detail that explains *why* only ever goes to the server log.
"""
from fastapi import status


class GatewayError(Exception):
    """Base class for every error raised by the gateway."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    message: str = "Internal Server Error"

    def __init__(self, detail: str | None = None):
        super().__init__(detail or self.message)
        self.detail = detail or self.message


# ───── per-request (auth flow) ───────────────────────────────────────
class MissingCodeError(GatewayError):
    status_code = status.HTTP_400_BAD_REQUEST
    message = "Missing authorization code."


class MissingStateError(GatewayError):
    # state mismatch is treated as possible CSRF/replay: no detail for the client
    message = "Something unexpected happened.  Please try again."


class UnauthorizedError(GatewayError):
    status_code = status.HTTP_401_UNAUTHORIZED
    message = "Unauthorized."


class UpstreamError(UnauthorizedError):
    """The identity provider could not be reached or answered garbage."""


class MissingRedirectURLError(GatewayError):
    message = "Not sure where you were going."


class SessionError(GatewayError):
    message = "Could not save session."


# ───── startup (configuration) ───────────────────────────────────────
class ConfigError(GatewayError):
    message = "Invalid gateway configuration."


class UnknownAuthorizerTypeError(ConfigError):
    def __init__(self, type_name: str):
        super().__init__(f"unknown authorizer type {type_name!r}")
        self.type_name = type_name


class ConfigDecodeError(ConfigError):
    pass
