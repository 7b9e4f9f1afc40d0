import logging
import structlog
from shared.config import settings


def setup_logging(level: str | None = None):
    """Configure stdlib logging and structlog once at startup. JSON lines in production."""
    level_no = getattr(logging, (level or settings.LOG_LEVEL).upper(), logging.INFO)
    logging.basicConfig(level=level_no, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    # httpx logs every Telegram request URL, which embeds the bot token
    logging.getLogger("httpx").setLevel(logging.WARNING)

    if settings.ENVIRONMENT == "production":
        renderers = [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        renderers = [structlog.dev.ConsoleRenderer()]

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            *renderers,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level_no),
        logger_factory=structlog.PrintLoggerFactory(),
    )
