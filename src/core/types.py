from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Optional
import time
import uuid

class PoolSource(Enum):
    RAYDIUM = "raydium"
    PUMPFUN_GRADUATION = "pumpfun_graduation"

class PositionStatus(Enum):
    OPEN = "open"
    PARTIAL = "partial"
    CLOSED = "closed"

class ExitReason(Enum):
    TIER3 = "tier3"
    STOP_LOSS = "stop_loss"
    TIMEOUT = "timeout"
    RUG_DETECTED = "rug_detected"

    @property
    def is_loss(self) -> bool:
        return self is not ExitReason.TIER3

class ExitTier(Enum):
    """What a single sell was executed for"""
    TIER1 = "tier1"
    TIER2 = "tier2"
    TIER3 = "tier3"
    STOP_LOSS = "stop_loss"
    TIMEOUT = "timeout"
    RUG_DETECTED = "rug_detected"

    @property
    def liquidates(self) -> bool:
        return self not in (ExitTier.TIER1, ExitTier.TIER2)

    @property
    def exit_reason(self) -> Optional[ExitReason]:
        if not self.liquidates:
            return None
        return ExitReason(self.value)

@dataclass(frozen=True)
class PoolCreated:
    """A newly created native-quoted pool"""
    pool_address: str
    base_mint: str
    quote_mint: str
    initial_liquidity: int  # In lamports
    source: PoolSource
    signature: str
    slot: int
    detected_at: float
    lp_mint: Optional[str] = None

@dataclass
class SubScores:
    liquidity: int = 0
    holders: int = 0
    lp_lock: int = 0
    metadata: int = 0

    @property
    def total(self) -> int:
        return self.liquidity + self.holders + self.lp_lock + self.metadata

@dataclass
class SafetyMetrics:
    supply: int = 0
    top10_holder_pct: float = 100.0
    pool_age_seconds: float = 0.0
    initial_liquidity_sol: float = 0.0
    holder_count: int = 0
    mint_authority_revoked: bool = False
    freeze_authority_revoked: bool = False

@dataclass
class SafetyResult:
    mint: str
    passed: bool = False
    score: int = 0
    reject_reason: Optional[str] = None
    sub_scores: SubScores = field(default_factory=SubScores)
    metrics: SafetyMetrics = field(default_factory=SafetyMetrics)
    checked_at: float = field(default_factory=time.time)

@dataclass(frozen=True)
class SellFill:
    signature: Optional[str]  # None when a tier filled with nothing to sell
    sold_amount: int  # Raw token amount
    recovered: int  # In lamports

@dataclass
class Position:
    """A sniped holding, owned by the position registry"""
    token_mint: str
    pool_address: str
    entry_amount: int  # In lamports
    entry_token_amount: int  # Raw token amount
    entry_price_per_token: float  # Lamports per raw token unit
    entry_timestamp: float
    entry_signature: str
    initial_pool_liquidity: int  # In lamports
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    source: Optional[PoolSource] = None
    status: PositionStatus = PositionStatus.OPEN

    tier1_sold: bool = False
    tier1_signature: Optional[str] = None
    tier2_sold: bool = False
    tier2_signature: Optional[str] = None
    tier3_sold: bool = False
    tier3_signature: Optional[str] = None

    total_recovered: int = 0  # In lamports
    realized_profit: int = 0  # In lamports
    exit_reason: Optional[ExitReason] = None
    closed_at: Optional[float] = None

    @property
    def is_closed(self) -> bool:
        return self.status is PositionStatus.CLOSED

    @property
    def short_id(self) -> str:
        return self.id[:8]

    def snapshot(self) -> "Position":
        """Independent copy for readers outside the registry"""
        return replace(self)

    def to_record(self) -> dict:
        """Flat representation for storage"""
        return {
            'id': self.id,
            'token_mint': self.token_mint,
            'pool_address': self.pool_address,
            'source': self.source.value if self.source else None,
            'status': self.status.value,
            'entry_amount': self.entry_amount,
            'entry_token_amount': self.entry_token_amount,
            'entry_price_per_token': self.entry_price_per_token,
            'entry_timestamp': self.entry_timestamp,
            'entry_signature': self.entry_signature,
            'initial_pool_liquidity': self.initial_pool_liquidity,
            'tier1_sold': self.tier1_sold,
            'tier1_signature': self.tier1_signature,
            'tier2_sold': self.tier2_sold,
            'tier2_signature': self.tier2_signature,
            'tier3_sold': self.tier3_sold,
            'tier3_signature': self.tier3_signature,
            'total_recovered': self.total_recovered,
            'realized_profit': self.realized_profit,
            'exit_reason': self.exit_reason.value if self.exit_reason else None,
            'closed_at': self.closed_at,
        }
