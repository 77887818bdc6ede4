# oauthgate/config.py
import logging
import re
from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .auth.flow import CALLBACK_PATH
from .errors import ConfigError
from .sessions import SESSION_AGE, SessionOptions

logger = logging.getLogger(__name__)

RESERVED_SUBDOMAINS = frozenset({"oauth", "health"})
DEFAULT_SESSION_NAME = "_oauthgate"
_BACKEND_NAME = re.compile(r"^[a-z0-9]([a-z0-9-]*[a-z0-9])?$")


class Settings(BaseSettings):
    """Process settings, read from OAUTHGATE_* environment variables (or .env)."""

    model_config = SettingsConfigDict(env_prefix="OAUTHGATE_", env_file=".env", extra="ignore")

    config_file: Path = Path("oauthgate.json")

    # leave the secret unset to get a fresh random key and cookie name on every start
    session_secret: str | None = Field(None, repr=False)
    session_name: str | None = None
    session_max_age: int = SESSION_AGE
    cookie_secure: bool = True

    log_level: str = "INFO"
    log_json: bool = True

    host: str = "0.0.0.0"
    port: int = 8080
    forwarded_allow_ips: str = "127.0.0.1"


@lru_cache
def get_settings() -> Settings:
    return Settings()


# ───── gateway config file ───────────────────────────────────────────
class _ConfigModel(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)


class Backend(_ConfigModel):
    url: str = Field(alias="URL")
    auth: bool = Field(False, alias="Auth")
    health_check: str | None = Field(None, alias="HealthCheck")
    websocket: str | None = Field(None, alias="WebSocket")


class AuthorizerConfig(_ConfigModel):
    type: str = Field(alias="Type")
    # opaque here: only the authorizer named by `type` knows its shape,
    # so a malformed value is reported by auth.construct
    config: Any = Field(default_factory=dict, alias="Config")


class GatewayConfig(_ConfigModel):
    domain: str = Field(alias="Domain")
    backends: dict[str, Backend] = Field(default_factory=dict, alias="Backends")
    authorizer: AuthorizerConfig = Field(alias="Authorizer")

    @field_validator("domain")
    @classmethod
    def _normalize_domain(cls, v: str) -> str:
        v = v.strip().strip(".").lower()
        if not v:
            raise ValueError("Domain must not be empty")
        return v

    @field_validator("backends")
    @classmethod
    def _check_backend_names(cls, v: dict[str, Backend]) -> dict[str, Backend]:
        for name in v:
            if not _BACKEND_NAME.match(name):
                raise ValueError(f"backend name {name!r} is not a valid subdomain label")
            if name in RESERVED_SUBDOMAINS:
                raise ValueError(f"backend name {name!r} is reserved")
        return v

    @property
    def callback_url(self) -> str:
        return f"https://oauth.{self.domain}{CALLBACK_PATH}"


def load_config(path: Path | str) -> GatewayConfig:
    path = Path(path)
    try:
        raw = path.read_bytes()
    except OSError as exc:
        raise ConfigError(f"reading {path}: {exc}") from exc
    try:
        return GatewayConfig.model_validate_json(raw)
    except ValidationError as exc:
        raise ConfigError(f"{path}: {exc}") from exc


def session_options(settings: Settings, domain: str) -> SessionOptions:
    kwargs: dict[str, Any] = {
        "domain": domain,
        "max_age": settings.session_max_age,
        "secure": settings.cookie_secure,
    }
    if settings.session_secret:
        kwargs["secret_key"] = settings.session_secret.encode()
        # a stable key needs a stable cookie name, or sessions still end on restart
        kwargs["name"] = DEFAULT_SESSION_NAME
    else:
        logger.warning("no session secret configured, sessions will not survive a restart")
    if settings.session_name:
        kwargs["name"] = settings.session_name
    if not settings.cookie_secure:
        logger.warning("session cookie is not marked Secure; only do this for local development")
    return SessionOptions(**kwargs)
