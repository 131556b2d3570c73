import logging

from pds_dns.core.config import settings

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"

logger = logging.getLogger("pds_dns")


def configure_logging(level: str = None, log_file: str = None):
    """Set up root logging once at process start (console, plus a file if configured)."""
    level = (level or settings.LOG_LEVEL).upper()
    log_file = settings.LOG_FILE if log_file is None else log_file

    handlers = [logging.StreamHandler()]  # Log to the console (stdout)
    if log_file:
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format=LOG_FORMAT,
        handlers=handlers,
    )
    # SQL echo goes through the sqlalchemy logger, keep it quiet unless asked
    if not settings.DB_ECHO:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    return logger
