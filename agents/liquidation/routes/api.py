"""
Liquidation Sentinel REST API routes.
"""
from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request
from shared.auth import is_admin_key, verify_api_key
from agents.liquidation.config import AGENT_NAME, ConfigError, Unauthorized
from agents.liquidation.models.schemas import (
    AlertResponse, ConfigUpdateRequest, HealthResponse, StatusResponse,
)
from agents.liquidation.services.monitor import LiquidationMonitor

router = APIRouter(prefix="/api/v1/liquidation", tags=["liquidation"])


def get_monitor(request: Request) -> LiquidationMonitor:
    monitor = getattr(request.app.state, "monitor", None)
    if monitor is None:
        raise HTTPException(status_code=503, detail="Monitor not started")
    return monitor


@router.get("/health", response_model=HealthResponse)
async def health(request: Request):
    monitor = getattr(request.app.state, "monitor", None)
    return HealthResponse(agent=AGENT_NAME, running=bool(monitor and monitor.running))


@router.get("/status", response_model=StatusResponse)
async def status(
    monitor: LiquidationMonitor = Depends(get_monitor),
    _key: bool = Depends(verify_api_key),
):
    """Cursor, chain head, processing lag and alert counters."""
    return StatusResponse(**monitor.status())


@router.get("/alerts", response_model=list[AlertResponse])
async def recent_alerts(
    limit: int = Query(20, ge=1, le=100),
    monitor: LiquidationMonitor = Depends(get_monitor),
    _key: bool = Depends(verify_api_key),
):
    """Most recent candidates that passed the filter, newest first."""
    alerts = list(monitor.recent_alerts)[-limit:]
    return [
        AlertResponse(
            user=c.user,
            asset=c.asset,
            debt_to_cover=str(c.debt_to_cover),
            debt_decimals=c.debt_decimals,
            estimated_collateral_seized=f"{c.estimated_collateral_seized:f}",
            detected_at_block=c.detected_at_block,
            detected_at_time=c.detected_at_time,
            health_factor=str(c.health_factor) if c.health_factor is not None else None,
            trigger_tx=c.trigger_tx,
            delivered=delivered,
        )
        for c, delivered in reversed(alerts)
    ]


@router.get("/config")
async def get_config(
    monitor: LiquidationMonitor = Depends(get_monitor),
    _key: bool = Depends(verify_api_key),
):
    return monitor.config.current.public_view()


@router.put("/config")
async def update_config(
    body: ConfigUpdateRequest,
    monitor: LiquidationMonitor = Depends(get_monitor),
    x_api_key: str | None = Header(None),
):
    """Change runtime configuration. Requires the admin API key."""
    changes = body.model_dump(exclude_none=True)
    if not changes:
        raise HTTPException(status_code=400, detail="No changes supplied")
    try:
        updated = monitor.config.update(changes, is_admin=is_admin_key(x_api_key), actor="api")
    except Unauthorized as e:
        raise HTTPException(status_code=403, detail=str(e))
    except ConfigError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return updated.public_view()
