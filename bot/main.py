"""
Telegram admin bot: Runs inside the sentinel's event loop so commands act on
the live monitor instance.
"""
from telegram.ext import Application, ApplicationBuilder, CommandHandler
from shared.config import settings
from bot.handlers.admin import config_handler, help_handler, set_handler, status_handler
import structlog

logger = structlog.get_logger()


def create_bot(monitor, token: str) -> Application:
    """Create and configure the Telegram bot application."""
    if not token:
        raise RuntimeError("TELEGRAM_BOT_TOKEN not configured")

    app = ApplicationBuilder().token(token).build()
    app.bot_data["monitor"] = monitor

    app.add_handler(CommandHandler(["start", "help"], help_handler))
    app.add_handler(CommandHandler("status", status_handler))
    app.add_handler(CommandHandler("config", config_handler))
    app.add_handler(CommandHandler("set", set_handler))

    return app


async def start_admin_bot(monitor) -> Application | None:
    if not settings.ADMIN_CHAT_IDS:
        logger.info("admin_bot_disabled", reason="no ADMIN_CHAT_IDS")
        return None

    app = create_bot(monitor, monitor.config.current.telegram_bot_token)
    await app.initialize()
    await app.start()
    await app.updater.start_polling(drop_pending_updates=True)
    logger.info("admin_bot_started", admins=len(settings.ADMIN_CHAT_IDS))
    return app


async def stop_admin_bot(app: Application | None):
    if app is None:
        return
    try:
        await app.updater.stop()
        await app.stop()
        await app.shutdown()
    except Exception as e:
        logger.error("admin_bot_stop_failed", error=str(e))
    logger.info("admin_bot_stopped")
