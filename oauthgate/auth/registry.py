# oauthgate/auth/registry.py
from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError

from ..errors import ConfigDecodeError, UnknownAuthorizerTypeError
from .providers import Authorizer, GithubOrgAuthorizer, GoogleRegexAuthorizer

_authorizer_map: dict[str, type[Authorizer]] = {}


def register(type_name: str, cls: type[Authorizer]) -> type[Authorizer]:
    """Make `cls` constructible under `type_name`."""
    if not (isinstance(cls, type) and issubclass(cls, Authorizer)):
        raise TypeError(f"{cls!r} is not an Authorizer")
    _authorizer_map[type_name] = cls
    return cls


def registered_types() -> list[str]:
    return sorted(_authorizer_map)


def construct(type_name: str, config: Any) -> Authorizer:
    """
    Build the Authorizer registered as `type_name` from its JSON config
    (raw bytes/str, or an already-parsed mapping).
    """
    try:
        cls = _authorizer_map[type_name]
    except KeyError:
        raise UnknownAuthorizerTypeError(type_name) from None

    try:
        if isinstance(config, Mapping):
            return cls.model_validate(config)
        if isinstance(config, (bytes, bytearray, str)):
            return cls.model_validate_json(config)
    except ValidationError as exc:
        raise ConfigDecodeError(f"{type_name} authorizer config: {exc}") from exc
    raise ConfigDecodeError(f"{type_name} authorizer config: unsupported type {type(config).__name__}")


register("github-org", GithubOrgAuthorizer)
register("google-regex", GoogleRegexAuthorizer)
