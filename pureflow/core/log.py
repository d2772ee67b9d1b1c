import logging
from logging.handlers import RotatingFileHandler

from .config import settings

_configured = False


def configure_logging(log_file: str | None = None) -> None:
    global _configured
    if _configured:
        return

    logger = logging.getLogger()
    logger.setLevel(logging.INFO)

    fmt = logging.Formatter(
        "%(asctime)s %(levelname)s %(name)s - %(message)s"
    )

    # Console
    ch = logging.StreamHandler()
    ch.setFormatter(fmt)
    logger.addHandler(ch)

    # Rotating file
    fh = RotatingFileHandler(
        log_file or settings.log_file, maxBytes=2_000_000, backupCount=5
    )
    fh.setFormatter(fmt)
    logger.addHandler(fh)

    # Silence noisy httpx request logging
    logging.getLogger("httpx").setLevel(logging.WARNING)
    _configured = True


def token_prefix(token: object) -> str:
    """Loggable form of a device token: never the full value."""
    if not isinstance(token, str):
        return repr(token)
    return token[:10] + "..."
