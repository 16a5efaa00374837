import json
from unittest.mock import AsyncMock, MagicMock
import pytest
from solders.keypair import Keypair
from core.position_registry import PositionRegistry
from core.types import PositionStatus
from execution.constants import SOL_MINT
from execution.errors import EntryError, EntryFailure, TransactionError
from execution.jupiter import JupiterClient, Quote
from execution.rpc import SimulationResult
from execution.snipe_executor import SnipeExecutor
from testing.factories import NOW
from utils.backoff import BackoffPolicy
from utils.config import EntrySettings, ExitSettings

ENTRY = 100_000_000

def quote(out_amount=2_000_000, input_mint=SOL_MINT, output_mint="token"):
    return Quote(
        input_mint=input_mint, output_mint=output_mint, in_amount=ENTRY, out_amount=out_amount,
        other_amount_threshold=out_amount * 85 // 100, price_impact_pct=0.5,
        route_plan=[{"swapInfo": {}}], raw={"outAmount": str(out_amount)},
    )

class FakeTransaction:
    def __bytes__(self):
        return b"signed-transaction"

@pytest.fixture
def jupiter():
    mock = MagicMock()
    mock.quote = AsyncMock(return_value=quote())
    mock.build_swap_transaction = AsyncMock(return_value=FakeTransaction())
    mock.close = AsyncMock()
    return mock

@pytest.fixture
def registry(logger):
    registry = PositionRegistry(logger)
    registry.spawn_monitor = MagicMock()
    return registry

@pytest.fixture
def executor(rpc, jupiter, registry, logger):
    rpc.simulate.return_value = SimulationResult(err=None)
    rpc.get_token_balance.return_value = 1_600_000
    return SnipeExecutor(
        rpc, jupiter, registry, Keypair(),
        EntrySettings(balance_settle_seconds=0),
        ExitSettings(),
        BackoffPolicy(max_attempts=3, base_delay=0, jitter=0),
        logger,
        clock=lambda: NOW,
    )

class TestEntry:
    @pytest.mark.asyncio
    async def test_successful_entry_registers_position(self, executor, registry, rpc, make_pool):
        pool = make_pool()

        position = await executor.enter(pool, ENTRY)

        assert position.status is PositionStatus.OPEN
        assert position.token_mint == pool.base_mint
        assert position.entry_token_amount == 1_600_000
        assert position.entry_price_per_token == ENTRY / 1_600_000
        assert position.entry_signature == "sig-1"
        assert position.initial_pool_liquidity == pool.initial_liquidity
        assert position.source is pool.source
        assert abs(position.entry_token_amount * position.entry_price_per_token - ENTRY) <= 1
        assert registry.open_count() == 1
        registry.spawn_monitor.assert_called_once()
        rpc.send_raw_transaction.assert_awaited_once_with(b"signed-transaction")

    @pytest.mark.asyncio
    async def test_missing_wallet(self, executor, jupiter, make_pool):
        executor.wallet = None

        with pytest.raises(EntryError) as error:
            await executor.enter(make_pool(), ENTRY)

        assert error.value.reason is EntryFailure.WALLET_UNAVAILABLE
        jupiter.quote.assert_not_called()

    @pytest.mark.asyncio
    async def test_no_route(self, executor, jupiter, make_pool):
        jupiter.quote.return_value = None

        with pytest.raises(EntryError) as error:
            await executor.enter(make_pool(), ENTRY)

        assert error.value.reason is EntryFailure.NO_ROUTE

    @pytest.mark.asyncio
    async def test_build_failure(self, executor, jupiter, make_pool):
        jupiter.build_swap_transaction.return_value = None

        with pytest.raises(EntryError) as error:
            await executor.enter(make_pool(), ENTRY)

        assert error.value.reason is EntryFailure.BUILD_FAILED

    @pytest.mark.asyncio
    async def test_simulation_error_never_submits(self, executor, rpc, registry, make_pool):
        rpc.simulate.return_value = SimulationResult(err={"InstructionError": [2, {"Custom": 6001}]})

        with pytest.raises(EntryError) as error:
            await executor.enter(make_pool(), ENTRY)

        assert error.value.reason is EntryFailure.SIMULATION_FAILED
        assert error.value.reason.is_on_chain
        rpc.send_raw_transaction.assert_not_called()
        assert registry.open_count() == 0

    @pytest.mark.asyncio
    async def test_submission_retried_then_succeeds(self, executor, rpc, make_pool):
        rpc.send_raw_transaction.side_effect = [TransactionError("blockhash"), "sig-2"]

        position = await executor.enter(make_pool(), ENTRY)

        assert position.entry_signature == "sig-2"
        assert rpc.send_raw_transaction.await_count == 2

    @pytest.mark.asyncio
    async def test_submission_exhausted(self, executor, rpc, make_pool):
        rpc.send_raw_transaction.side_effect = TransactionError("node rejected")

        with pytest.raises(EntryError) as error:
            await executor.enter(make_pool(), ENTRY)

        assert error.value.reason is EntryFailure.CONFIRM_FAILED
        assert rpc.send_raw_transaction.await_count == 3

    @pytest.mark.asyncio
    async def test_confirmation_timeout(self, executor, rpc, registry, make_pool):
        rpc.confirm.side_effect = TransactionError("Confirmation timed out after 30s")

        with pytest.raises(EntryError) as error:
            await executor.enter(make_pool(), ENTRY)

        assert error.value.reason is EntryFailure.CONFIRM_FAILED
        assert error.value.signature == "sig-1"
        assert rpc.send_raw_transaction.await_count == 1
        assert registry.open_count() == 0

    @pytest.mark.asyncio
    async def test_zero_tokens_received(self, executor, rpc, make_pool):
        rpc.get_token_balance.return_value = 0

        with pytest.raises(EntryError) as error:
            await executor.enter(make_pool(), ENTRY)

        assert error.value.reason is EntryFailure.ZERO_TOKENS

    @pytest.mark.asyncio
    async def test_balance_read_failure_falls_back_to_quote(self, executor, rpc, make_pool):
        rpc.get_token_balance.side_effect = ConnectionError("rpc down")

        position = await executor.enter(make_pool(), ENTRY)

        assert position.entry_token_amount == 2_000_000

class TestSellAndProbe:
    @pytest.mark.asyncio
    async def test_sell_returns_fill(self, executor, jupiter, rpc, make_position):
        jupiter.quote.return_value = quote(out_amount=55_000_000, input_mint="token", output_mint=SOL_MINT)
        position = make_position()

        result = await executor.sell(position, 500_000)

        assert result.signature == "sig-1"
        assert result.sold_amount == 500_000
        assert result.recovered == 55_000_000
        rpc.simulate.assert_not_called()
        jupiter.quote.assert_awaited_once_with(position.token_mint, SOL_MINT, 500_000, 1500)

    @pytest.mark.asyncio
    async def test_sell_without_route(self, executor, jupiter, make_position):
        jupiter.quote.return_value = None
        assert await executor.sell(make_position(), 1_000) is None

    @pytest.mark.asyncio
    async def test_sell_confirmation_failure(self, executor, rpc, make_position):
        rpc.confirm.side_effect = TransactionError("failed on-chain")
        assert await executor.sell(make_position(), 1_000) is None

    @pytest.mark.asyncio
    async def test_probe_quotes_one_percent(self, executor, jupiter):
        jupiter.quote.return_value = quote(out_amount=5_000)

        price = await executor.probe_price("token", 1_000_000)

        jupiter.quote.assert_awaited_once_with("token", SOL_MINT, 10_000, 1500)
        assert price == 0.5

    @pytest.mark.asyncio
    async def test_probe_small_balance_quotes_everything(self, executor, jupiter):
        jupiter.quote.return_value = quote(out_amount=900)

        price = await executor.probe_price("token", 900)

        jupiter.quote.assert_awaited_once_with("token", SOL_MINT, 900, 1500)
        assert price == 1.0

    @pytest.mark.asyncio
    async def test_probe_without_quote(self, executor, jupiter):
        jupiter.quote.return_value = None
        assert await executor.probe_price("token", 1_000_000) is None

class TestMalformedAggregatorResponses:
    @pytest.fixture
    def live_jupiter(self, logger):
        return JupiterClient("https://quote.example.com", BackoffPolicy(base_delay=0, jitter=0), logger=logger)

    @pytest.fixture
    def garbled(self):
        return json.JSONDecodeError("Expecting value", "<html>bad gateway</html>", 0)

    @pytest.mark.asyncio
    async def test_garbled_quote_is_no_route(self, executor, live_jupiter, garbled, make_pool):
        live_jupiter._get_json = AsyncMock(side_effect=garbled)
        executor.jupiter = live_jupiter

        with pytest.raises(EntryError) as error:
            await executor.enter(make_pool(), ENTRY)

        assert error.value.reason is EntryFailure.NO_ROUTE

    @pytest.mark.asyncio
    async def test_garbled_swap_build_is_build_failure(self, executor, live_jupiter, garbled, make_pool):
        live_jupiter.quote = AsyncMock(return_value=quote())
        live_jupiter._post_json = AsyncMock(side_effect=garbled)
        executor.jupiter = live_jupiter

        with pytest.raises(EntryError) as error:
            await executor.enter(make_pool(), ENTRY)

        assert error.value.reason is EntryFailure.BUILD_FAILED

    @pytest.mark.asyncio
    async def test_garbled_sell_quote_gives_none(self, executor, live_jupiter, garbled, make_position):
        live_jupiter._get_json = AsyncMock(side_effect=garbled)
        executor.jupiter = live_jupiter

        assert await executor.sell(make_position(), 1_000) is None
