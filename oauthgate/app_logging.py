import logging

from pythonjsonlogger import jsonlogger

_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def setup_logger(level: str = "INFO", json_format: bool = True) -> logging.Handler:
    log_handler = logging.StreamHandler()
    if json_format:
        formatter = jsonlogger.JsonFormatter(_FORMAT, rename_fields={"levelname": "level", "asctime": "timestamp"})
    else:
        formatter = logging.Formatter(_FORMAT)
    log_handler.setFormatter(formatter)
    logger = logging.getLogger()
    logger.addHandler(log_handler)
    logger.setLevel(level.upper())
    return log_handler
