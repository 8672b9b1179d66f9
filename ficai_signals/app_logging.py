import logging

from pythonjsonlogger.json import JsonFormatter

from ficai_signals.config import Settings


def setup_logging(settings: Settings) -> None:
    """
    Configure the root logger once at startup.

    JSON output is meant for log shipping in deployment; plain text is
    easier to read while developing.
    """
    handler = logging.StreamHandler()
    if settings.log_json:
        formatter = JsonFormatter(
            "%(asctime)s %(levelname)s %(name)s %(message)s",
            rename_fields={"levelname": "level", "asctime": "timestamp"},
        )
    else:
        formatter = logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s")
    handler.setFormatter(formatter)

    logger = logging.getLogger()
    logger.handlers = [handler]
    logger.setLevel(settings.log_level.upper())
