from .access_log import AccessLogMiddleware
from .auth import AuthMiddleware, absolute_url

__all__ = ["AccessLogMiddleware", "AuthMiddleware", "absolute_url"]
