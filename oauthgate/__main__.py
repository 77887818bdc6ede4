import logging

import uvicorn

from .app import create_app
from .app_logging import setup_logger
from .config import get_settings, load_config
from .errors import ConfigError

logger = logging.getLogger("oauthgate")


def main() -> None:
    settings = get_settings()
    setup_logger(settings.log_level, settings.log_json)
    try:
        app = create_app(load_config(settings.config_file), settings)
    except ConfigError as exc:
        logger.critical("not starting: %s", exc.detail)
        raise SystemExit(1) from exc

    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        proxy_headers=True,
        forwarded_allow_ips=settings.forwarded_allow_ips,
        log_config=None,
    )


if __name__ == "__main__":
    main()
