"""
Admin handlers: Restricted commands for inspecting and reconfiguring the monitor.
"""
from telegram import Update
from telegram.ext import ContextTypes
from shared.auth import is_admin_chat
from agents.liquidation.config import ConfigError, Unauthorized
import structlog

logger = structlog.get_logger()

LIST_FIELDS = {"protocol_contract_addresses", "monitored_assets"}

HELP_MSG = """*Liquidation Sentinel admin*

/status - Cursor, lag and alert counters
/config - Current runtime configuration
/set <field> <value> - Change a setting
  e.g. /set min\\_liquidation\\_amount 5000000000000000000000
  lists are comma separated
"""


def _monitor(context: ContextTypes.DEFAULT_TYPE):
    return context.application.bot_data["monitor"]


def parse_setting(field: str, args: list[str]):
    raw = " ".join(args).strip()
    if field in LIST_FIELDS:
        return [part.strip() for part in raw.split(",") if part.strip()]
    return raw


async def help_handler(update: Update, context: ContextTypes.DEFAULT_TYPE):
    await update.message.reply_text(HELP_MSG, parse_mode="Markdown")


async def status_handler(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Show monitor progress. Admin only."""
    if not is_admin_chat(update.effective_chat.id):
        await update.message.reply_text("Unauthorized.")
        return

    s = _monitor(context).status()
    lag = s["lag_blocks"] if s["lag_blocks"] is not None else "?"
    msg = f"""*Liquidation Sentinel*

Phase: {s['phase']}
Cursor: {s['last_processed_block']}
Chain head: {s['chain_head'] or '?'}
Lag: {lag} blocks (queue {s['queue_depth']})
Blocks processed: {s['blocks_processed']} ({s['block_errors']} failed)
Reorgs: {s['reorgs_detected']}
Alerts: {s['alerts_sent']} sent, {s['alerts_dropped']} dropped
Dedup entries: {s['dedup_entries']}
"""
    await update.message.reply_text(msg, parse_mode="Markdown")


async def config_handler(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Show runtime configuration (credentials hidden). Admin only."""
    if not is_admin_chat(update.effective_chat.id):
        await update.message.reply_text("Unauthorized.")
        return

    view = _monitor(context).config.current.public_view()
    lines = [f"{key}: {value}" for key, value in view.items()]
    await update.message.reply_text("\n".join(lines))


async def set_handler(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Update one runtime setting."""
    chat_id = update.effective_chat.id
    if not context.args or len(context.args) < 2:
        await update.message.reply_text("Usage: /set <field> <value>")
        return

    field = context.args[0]
    value = parse_setting(field, context.args[1:])
    try:
        _monitor(context).config.update(
            {field: value}, is_admin=is_admin_chat(chat_id), actor=f"telegram:{chat_id}"
        )
    except Unauthorized:
        await update.message.reply_text("Unauthorized.")
        return
    except ConfigError as e:
        await update.message.reply_text(f"Rejected: {e}")
        return

    await update.message.reply_text(f"Updated {field}.")
