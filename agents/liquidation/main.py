"""
Liquidation Sentinel Agent: FastAPI application (port 8005)

Watches Aave v3 account activity block by block, flags positions that have
become liquidatable, and sends Telegram alerts with per-position cooldown.
Signals only: nothing here executes liquidations.

Interfaces: HTTP API + Telegram admin bot
"""
import asyncio
from contextlib import asynccontextmanager
from fastapi import FastAPI
from shared.config import Settings, settings
from shared.database import async_session, engine
from shared.utils.logging import setup_logging
from shared.utils.scheduler import create_scheduler, start_scheduler, stop_scheduler
from shared.web3_client import get_web3
from agents.liquidation.config import ConfigStore, DEDUP_EVICTION_INTERVAL, load_monitor_config
from agents.liquidation.routes.api import router
from agents.liquidation.services.chain_feed import ChainFeed
from agents.liquidation.services.monitor import LiquidationMonitor, build_cursor
from agents.liquidation.services.notifier import Notifier
from agents.liquidation.services.opportunity_filter import OpportunityFilter
from agents.liquidation.services.protocol_client import ProtocolClient
from agents.liquidation.services.state_store import StateStore, create_tables
from bot.main import start_admin_bot, stop_admin_bot
import structlog

logger = structlog.get_logger()

SHUTDOWN_TIMEOUT = 60


async def build_monitor(settings: Settings) -> LiquidationMonitor:
    """Wire the pipeline. Raises ConfigError when required settings are missing."""
    config = ConfigStore(load_monitor_config(settings))

    w3 = get_web3(settings.RPC_URL)
    feed = ChainFeed(w3)
    client = ProtocolClient(w3, settings.AAVE_POOL_ADDRESS, settings.AAVE_POOL_DATA_PROVIDER_ADDRESS)

    store = None
    persisted = None
    if engine is not None:
        await create_tables(engine)
        store = StateStore(async_session)
        persisted = await store.load()

    cursor = await build_cursor(config, feed, persisted)
    opportunity_filter = OpportunityFilter(config, state=persisted.dedup if persisted else None)
    return LiquidationMonitor(
        feed=feed,
        client=client,
        cursor=cursor,
        opportunity_filter=opportunity_filter,
        notifier=Notifier(config),
        config=config,
        state_store=store,
    )


async def _housekeeping_job(monitor: LiquidationMonitor):
    try:
        evicted = await monitor.filter.evict_expired()
        logger.info("monitor_heartbeat", evicted=evicted, **monitor.status())
    except Exception as e:
        logger.error("housekeeping_job_failed", error=str(e))


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    logger.info(
        "liquidation_sentinel_starting",
        interfaces=["api", "telegram"],
        chain_id=settings.CHAIN_ID,
        persistence=engine is not None,
    )

    monitor = await build_monitor(settings)
    app.state.monitor = monitor
    task = asyncio.create_task(monitor.run())

    scheduler = create_scheduler()
    scheduler.add_job(
        _housekeeping_job, "interval", seconds=DEDUP_EVICTION_INTERVAL, args=[monitor], id="liq_housekeeping"
    )
    start_scheduler(scheduler)
    bot = await start_admin_bot(monitor)

    yield

    await stop_admin_bot(bot)
    stop_scheduler(scheduler)
    monitor.stop()
    try:
        await asyncio.wait_for(task, timeout=SHUTDOWN_TIMEOUT)
    except asyncio.TimeoutError:
        logger.warning("monitor_stop_timeout", timeout=SHUTDOWN_TIMEOUT)
    logger.info("liquidation_sentinel_stopped")


app = FastAPI(
    title="Liquidation Sentinel",
    description="Monitors Aave v3 positions block by block and alerts on liquidation "
                "candidates. Estimates are heuristics; no liquidations are executed.",
    version="1.0.0",
    lifespan=lifespan,
)

app.include_router(router)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("agents.liquidation.main:app", host="0.0.0.0", port=8005)
