"""
Notifier: Formats liquidation alerts and dispatches them to Telegram.

Delivery is best-effort: transient failures are retried a few times, then the
alert is logged and dropped. dispatch() never raises, so a dead channel cannot
stall block processing.
"""
import html
from typing import Callable
from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_exponential
from shared.telegram_bot import TelegramChannel, TransportError
from agents.liquidation.config import BASE_CURRENCY_DECIMALS, ConfigStore, NOTIFY_MAX_ATTEMPTS
from agents.liquidation.models.schemas import LiquidationCandidate
from agents.liquidation.services.evaluator import format_fixed
import structlog

logger = structlog.get_logger()


def format_alert(candidate: LiquidationCandidate) -> str:
    lines = [
        "🚨 <b>LIQUIDATION OPPORTUNITY DETECTED</b>",
        "",
        f"👤 <b>User:</b> <code>{html.escape(candidate.user)}</code>",
        f"🪙 <b>Debt asset:</b> <code>{html.escape(candidate.asset)}</code>",
        f"💰 <b>Debt to cover:</b> {candidate.debt_to_cover}",
        f"🏦 <b>Est. collateral seized (110% heuristic):</b> {candidate.estimated_collateral_seized:f}",
    ]
    if candidate.health_factor is not None:
        lines.append(f"⚡ <b>Health factor:</b> {format_fixed(candidate.health_factor)}")
    if candidate.total_debt is not None:
        lines.append(f"📉 <b>Account debt:</b> ${format_fixed(candidate.total_debt, BASE_CURRENCY_DECIMALS, 2)}")
    if candidate.total_collateral is not None:
        lines.append(
            f"📈 <b>Account collateral:</b> ${format_fixed(candidate.total_collateral, BASE_CURRENCY_DECIMALS, 2)}"
        )
    lines.append(f"📦 <b>Block:</b> {candidate.detected_at_block}")
    if candidate.trigger_tx:
        lines.append(f"🔗 <b>Transaction:</b> <code>{html.escape(candidate.trigger_tx)}</code>")
    lines += ["", f"⏰ <b>Time:</b> {candidate.detected_at_time.isoformat()}"]
    return "\n".join(lines)


def _is_transient(exc: BaseException) -> bool:
    return isinstance(exc, TransportError) and exc.transient


class Notifier:
    def __init__(
        self,
        config: ConfigStore,
        channel_factory: Callable[[str, str], TelegramChannel] = TelegramChannel,
        max_attempts: int = NOTIFY_MAX_ATTEMPTS,
        retry_wait=None,
    ):
        self._config = config
        self._channel_factory = channel_factory
        self.max_attempts = max_attempts
        self.retry_wait = retry_wait if retry_wait is not None else wait_exponential(multiplier=1, max=10)
        self.sent = 0
        self.dropped = 0

    def _channel(self) -> TelegramChannel:
        cfg = self._config.current
        return self._channel_factory(cfg.telegram_bot_token, cfg.telegram_chat_id)

    async def send(self, text: str):
        """Send with bounded retries on transient transport errors. Raises TransportError."""
        channel = self._channel()
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=self.retry_wait,
            retry=retry_if_exception(_is_transient),
            reraise=True,
        ):
            with attempt:
                await channel.send(text)

    async def dispatch(self, candidate: LiquidationCandidate) -> bool:
        try:
            await self.send(format_alert(candidate))
        except TransportError as e:
            self.dropped += 1
            logger.error(
                "alert_dropped",
                user=candidate.user,
                asset=candidate.asset,
                block=candidate.detected_at_block,
                error=str(e),
            )
            return False
        except Exception as e:
            self.dropped += 1
            logger.error("alert_dispatch_failed", user=candidate.user, asset=candidate.asset, error=str(e))
            return False

        self.sent += 1
        logger.info(
            "alert_sent",
            user=candidate.user,
            asset=candidate.asset,
            debt_to_cover=candidate.debt_to_cover,
            block=candidate.detected_at_block,
        )
        return True
