import logging

from .config import get_settings

QUIET_LOGGERS = ("googleapiclient", "google.auth", "urllib3")

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(settings=None):
    """Configures logging to console and, if LOG_FILE is set, to a file."""
    settings = settings or get_settings()

    root_logger = logging.getLogger()
    root_logger.setLevel(settings.LOG_LEVEL)

    # setup_logging owns the root handlers; calling it twice must not double every line.
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)

    formatter = logging.Formatter(LOG_FORMAT)
    console = logging.StreamHandler()
    console.setFormatter(formatter)
    root_logger.addHandler(console)

    if settings.LOG_FILE:
        try:
            log_file = logging.FileHandler(settings.LOG_FILE)
        except OSError as e:
            root_logger.error(f"Cannot write log file {settings.LOG_FILE}, console only: {e}")
        else:
            log_file.setFormatter(formatter)
            root_logger.addHandler(log_file)

    # Request-level chatter from the Drive client stack.
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
