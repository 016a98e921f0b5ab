import sys

from loguru import logger

from core.config import settings

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
    "<cyan>{extra[name]}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)

_configured = False


def _configure() -> None:
    global _configured
    if _configured:
        return
    logger.remove()
    logger.configure(extra={"name": "stockroom"})
    logger.add(sys.stderr, level=settings.log_level.upper(), format=LOG_FORMAT)
    _configured = True


def get_logger(name: str = None):
    """Return the application logger, bound to `name` when given."""
    _configure()
    if name:
        return logger.bind(name=name)
    return logger
