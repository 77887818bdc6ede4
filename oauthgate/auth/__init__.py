from .flow import CALLBACK_PATH, AuthFlow, callback_router
from .providers import Authorizer, GithubOrgAuthorizer, GoogleRegexAuthorizer, OAuthConfig
from .registry import construct, register, registered_types

__all__ = [
    "CALLBACK_PATH",
    "AuthFlow",
    "Authorizer",
    "GithubOrgAuthorizer",
    "GoogleRegexAuthorizer",
    "OAuthConfig",
    "callback_router",
    "construct",
    "register",
    "registered_types",
]
