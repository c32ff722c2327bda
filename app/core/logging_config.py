# app/core/logging_config.py
import logging

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

def configure_logging(level: str = "INFO") -> None:
    """
    Configures the root logger once for the whole service.
    Uvicorn installs its own handlers, so only a level change is applied when
    the root logger is already set up.
    """
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=level.upper(), format=LOG_FORMAT)
    else:
        root.setLevel(level.upper())

    # httpx logs every request at INFO, which drowns out the service logs
    logging.getLogger("httpx").setLevel(logging.WARNING)
