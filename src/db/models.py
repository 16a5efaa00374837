from sqlalchemy import Column, String, DateTime, Numeric, Boolean, BigInteger, Float, Index, func
from .database import Base

class SnipePosition(Base):
    __tablename__ = 'snipe_positions'

    id = Column(String(32), primary_key=True)
    run_id = Column(String, nullable=False)
    token_mint = Column(String, nullable=False)
    pool_address = Column(String, nullable=False)
    source = Column(String)
    status = Column(String, nullable=False)  # open partial closed

    entry_amount = Column(BigInteger, nullable=False)  # In lamports
    entry_token_amount = Column(Numeric, nullable=False)  # Raw token amount
    entry_price_per_token = Column(Float, nullable=False)
    entry_timestamp = Column(Float, nullable=False)
    entry_signature = Column(String, nullable=False)
    initial_pool_liquidity = Column(BigInteger, nullable=False)  # In lamports

    tier1_sold = Column(Boolean, nullable=False, default=False)
    tier1_signature = Column(String)
    tier2_sold = Column(Boolean, nullable=False, default=False)
    tier2_signature = Column(String)
    tier3_sold = Column(Boolean, nullable=False, default=False)
    tier3_signature = Column(String)

    total_recovered = Column(BigInteger, nullable=False, default=0)  # In lamports
    realized_profit = Column(BigInteger, nullable=False, default=0)  # In lamports
    exit_reason = Column(String)
    closed_at = Column(Float)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index('ix_snipe_positions_mint', 'token_mint'),
        Index('ix_snipe_positions_run', 'run_id'),
    )
