# oauthgate/app.py
"""
Application factory.

Requests are routed on the Host header:

  oauth.<domain>/authorized   OAuth2 callback
  health.<domain>/check       backend health summary
  <backend>.<domain>/...      proxied to the backend, behind AuthMiddleware
                              when the backend is configured with "Auth"
"""
import logging

from fastapi import FastAPI

from .auth import AuthFlow, callback_router, construct
from .config import GatewayConfig, Settings, get_settings, session_options
from .health import health_router
from .middleware import AccessLogMiddleware, AuthMiddleware
from .proxy import BackendProxy
from .sessions import SessionStore

logger = logging.getLogger(__name__)


def create_app(config: GatewayConfig, settings: Settings | None = None) -> FastAPI:
    """
    Build the gateway. Raises ConfigError when the authorizer can't be
    constructed; nothing is served with a half-configured gateway.
    """
    settings = settings or get_settings()

    authorizer = construct(config.authorizer.type, config.authorizer.config)
    authorizer = authorizer.with_redirect_url(config.callback_url)
    store = SessionStore(session_options(settings, config.domain))
    flow = AuthFlow(store, authorizer)

    app = FastAPI(title="OAuth Gateway", docs_url=None, redoc_url=None, openapi_url=None)
    app.add_middleware(AccessLogMiddleware)
    app.state.flow = flow

    app.host(f"oauth.{config.domain}", callback_router(flow), name="oauth")
    app.host(f"health.{config.domain}", health_router(config.backends), name="health")
    for name, backend in config.backends.items():
        proxy = BackendProxy(name, backend)
        target = AuthMiddleware(proxy, flow=flow) if backend.auth else proxy
        app.host(f"{name}.{config.domain}", target, name=name)
        logger.info("backend %s.%s -> %s (auth=%s)", name, config.domain, backend.url, backend.auth)

    logger.info("authorizer %s, callback %s", config.authorizer.type, config.callback_url)
    return app
