from enum import Enum
from typing import Optional

class SniperError(Exception):
    """Base class for pipeline errors"""
    pass

class TransactionError(SniperError):
    """Raised when transaction-related operations fail"""
    pass

class NetworkError(SniperError):
    """Raised when network-related operations fail"""
    pass

class RateLimitedError(NetworkError):
    """Raised when a provider answers with a rate-limit response"""
    pass

class EntryFailure(Enum):
    WALLET_UNAVAILABLE = "wallet_unavailable"
    NO_ROUTE = "no_route"
    BUILD_FAILED = "build_failed"
    SIMULATION_FAILED = "simulation_failed"
    CONFIRM_FAILED = "confirm_failed"
    ZERO_TOKENS = "zero_tokens"

    @property
    def is_on_chain(self) -> bool:
        """On-chain rejections are never retried for the same pool"""
        return self in (EntryFailure.SIMULATION_FAILED, EntryFailure.CONFIRM_FAILED)

class EntryError(SniperError):
    """Terminal failure of a single entry attempt; no position is created"""

    def __init__(self, reason: EntryFailure, message: str = "", signature: Optional[str] = None):
        self.reason = reason
        self.message = message
        self.signature = signature
        super().__init__(f"{reason.value}: {message}" if message else reason.value)
