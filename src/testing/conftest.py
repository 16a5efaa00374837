import logging
from unittest.mock import AsyncMock, MagicMock
import pytest
from core.types import PoolCreated, PoolSource, Position
from execution.constants import LAMPORTS_PER_SOL, SOL_MINT
from testing.factories import NOW, new_address

@pytest.fixture
def logger():
    return logging.getLogger("sniper-tests")

@pytest.fixture
def make_pool():
    def _make(**overrides) -> PoolCreated:
        fields = dict(
            pool_address=new_address(),
            base_mint=new_address(),
            quote_mint=SOL_MINT,
            initial_liquidity=50 * LAMPORTS_PER_SOL,
            source=PoolSource.RAYDIUM,
            signature="5" * 64,
            slot=250_000_000,
            detected_at=NOW - 120,
            lp_mint=new_address(),
        )
        fields.update(overrides)
        return PoolCreated(**fields)
    return _make

@pytest.fixture
def make_position():
    def _make(**overrides) -> Position:
        fields = dict(
            token_mint=new_address(),
            pool_address=new_address(),
            entry_amount=100_000_000,
            entry_token_amount=1_000_000,
            entry_price_per_token=100.0,
            entry_timestamp=NOW,
            entry_signature="entry-sig",
            initial_pool_liquidity=10 * LAMPORTS_PER_SOL,
        )
        fields.update(overrides)
        return Position(**fields)
    return _make

@pytest.fixture
def rpc():
    """Chain RPC gateway with every call stubbed"""
    mock = MagicMock()
    mock.get_slot = AsyncMock(return_value=100)
    mock.get_signatures = AsyncMock(return_value=[])
    mock.get_transaction = AsyncMock(return_value=None)
    mock.get_account = AsyncMock(return_value=None)
    mock.get_largest_token_accounts = AsyncMock(return_value=[])
    mock.get_token_balance = AsyncMock(return_value=0)
    mock.get_balance = AsyncMock(return_value=5 * LAMPORTS_PER_SOL)
    mock.get_pool_liquidity = AsyncMock(return_value=None)
    mock.simulate = AsyncMock()
    mock.send_raw_transaction = AsyncMock(return_value="sig-1")
    mock.confirm = AsyncMock(return_value=None)
    mock.sign = MagicMock(side_effect=lambda tx, wallet: tx)
    mock.close = AsyncMock()
    return mock
