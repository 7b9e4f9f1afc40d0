from sqlalchemy import Column, BigInteger, Integer, String, Float, Index
from shared.models.base import Base, TimestampMixin


class MonitorCursor(Base, TimestampMixin):
    """Single row: highest fully processed block."""
    __tablename__ = "liquidation_monitor_cursor"

    id = Column(Integer, primary_key=True)
    last_processed_block = Column(BigInteger, nullable=False)


class SeenBlockHash(Base):
    """Hash processed at each recent height, for reorg detection across restarts."""
    __tablename__ = "liquidation_seen_blocks"

    block_number = Column(BigInteger, primary_key=True, autoincrement=False)
    block_hash = Column(String(66), nullable=False)


class AlertDedup(Base):
    __tablename__ = "liquidation_alert_dedup"

    user_address = Column(String(42), primary_key=True)
    asset_address = Column(String(42), primary_key=True)
    alerted_at = Column(Float, nullable=False)  # unix timestamp
    block_number = Column(BigInteger, nullable=False)

    __table_args__ = (
        Index("idx_liq_dedup_alerted_at", "alerted_at"),
    )
