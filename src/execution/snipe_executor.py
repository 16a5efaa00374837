from dataclasses import replace
from typing import Optional
import asyncio
import logging
import time
from solders.keypair import Keypair
from core.types import PoolCreated, Position, SellFill
from core.position_registry import PositionRegistry
from risk.exit_monitor import ExitMonitor
from utils.backoff import BackoffPolicy
from utils.config import EntrySettings, ExitSettings
from .constants import LAMPORTS_PER_SOL, SOL_MINT
from .errors import EntryError, EntryFailure
from .jupiter import JupiterClient
from .rpc import SolanaRpc

class SnipeExecutor:
    """Executes entry swaps and, for exit monitors, the exit sells"""

    def __init__(self, rpc: SolanaRpc, jupiter: JupiterClient, registry: PositionRegistry,
                 wallet: Optional[Keypair], entry_settings: EntrySettings,
                 exit_settings: ExitSettings, backoff: BackoffPolicy,
                 logger: Optional[logging.Logger] = None, clock=time.time):
        self.rpc = rpc
        self.jupiter = jupiter
        self.registry = registry
        self.wallet = wallet
        self.entry_settings = entry_settings
        self.exit_settings = exit_settings
        self.send_backoff = replace(backoff, max_attempts=entry_settings.send_attempts)
        self.logger = logger or logging.getLogger(__name__)
        self.clock = clock

    @property
    def wallet_pubkey(self) -> Optional[str]:
        return str(self.wallet.pubkey()) if self.wallet else None

    async def enter(self, pool: PoolCreated, entry_amount: int) -> Position:
        """Buy the pool's base token; raises EntryError on any failure"""
        mint = pool.base_mint
        if self.wallet is None:
            raise EntryError(EntryFailure.WALLET_UNAVAILABLE, "no trading wallet loaded")

        self.logger.info(f"Entering {mint} with {entry_amount / LAMPORTS_PER_SOL:.4f} SOL")

        quote = await self.jupiter.quote(SOL_MINT, mint, entry_amount, self.entry_settings.slippage_bps)
        if quote is None or quote.out_amount <= 0:
            raise EntryError(EntryFailure.NO_ROUTE, f"no route SOL -> {mint}")

        transaction = await self.jupiter.build_swap_transaction(quote, self.wallet_pubkey)
        if transaction is None:
            raise EntryError(EntryFailure.BUILD_FAILED, f"swap build failed for {mint}")

        try:
            simulation = await self.rpc.simulate(transaction)
        except Exception as e:
            raise EntryError(EntryFailure.SIMULATION_FAILED, f"simulation request failed: {str(e)}") from e
        if not simulation.ok:
            raise EntryError(EntryFailure.SIMULATION_FAILED, f"simulation error: {simulation.err}")

        signed = self.rpc.sign(transaction, self.wallet)
        try:
            signature = await self.send_backoff.run(
                self.rpc.send_raw_transaction, bytes(signed),
                logger=self.logger,
                label=f"entry submit {mint[:8]}",
            )
        except Exception as e:
            raise EntryError(EntryFailure.CONFIRM_FAILED, f"submission failed: {str(e)}") from e

        self.logger.info(f"Entry submitted for {mint}: {signature}")

        try:
            await self.rpc.confirm(signature, timeout=self.entry_settings.confirm_timeout_seconds)
        except Exception as e:
            raise EntryError(EntryFailure.CONFIRM_FAILED, str(e), signature=signature) from e

        tokens_received = await self._read_fill(mint, quote.out_amount)
        if tokens_received <= 0:
            raise EntryError(EntryFailure.ZERO_TOKENS, f"no {mint} tokens after fill", signature=signature)

        position = Position(
            token_mint=mint,
            pool_address=pool.pool_address,
            entry_amount=entry_amount,
            entry_token_amount=tokens_received,
            entry_price_per_token=entry_amount / tokens_received,
            entry_timestamp=self.clock(),
            entry_signature=signature,
            initial_pool_liquidity=pool.initial_liquidity,
            source=pool.source,
        )
        snapshot = await self.registry.add(position)

        monitor = ExitMonitor(position.id, self.registry, self, self.rpc, self.exit_settings, self.logger)
        self.registry.spawn_monitor(position.id, monitor)
        return snapshot

    async def _read_fill(self, mint: str, quoted_amount: int) -> int:
        """Actual tokens received, falling back to the quote if the read fails"""
        await asyncio.sleep(self.entry_settings.balance_settle_seconds)
        try:
            return await self.token_balance(mint)
        except Exception as e:
            self.logger.warning(f"Fill read failed for {mint}, using quoted {quoted_amount}: {str(e)}")
            return quoted_amount

    async def token_balance(self, mint: str) -> int:
        return await self.rpc.get_token_balance(self.wallet.pubkey(), mint)

    async def wallet_balance_sol(self) -> float:
        lamports = await self.rpc.get_balance(self.wallet.pubkey())
        return lamports / LAMPORTS_PER_SOL

    async def sell(self, position: Position, token_amount: int) -> Optional[SellFill]:
        """Sell tokens back to SOL without simulation; None on any failure"""
        if self.wallet is None:
            self.logger.error("Cannot sell without a trading wallet")
            return None

        quote = await self.jupiter.quote(
            position.token_mint, SOL_MINT, token_amount, self.exit_settings.slippage_bps
        )
        if quote is None:
            self.logger.warning(f"No sell route for {position.token_mint}")
            return None

        transaction = await self.jupiter.build_swap_transaction(quote, self.wallet_pubkey)
        if transaction is None:
            return None

        try:
            signed = self.rpc.sign(transaction, self.wallet)
            signature = await self.rpc.send_raw_transaction(bytes(signed))
            await self.rpc.confirm(signature, timeout=self.entry_settings.confirm_timeout_seconds)
        except Exception as e:
            self.logger.error(f"Sell failed for {position.short_id}: {str(e)}")
            return None

        return SellFill(signature=signature, sold_amount=token_amount, recovered=quote.out_amount)

    async def probe_price(self, mint: str, balance: int) -> Optional[float]:
        """Lamports per base unit, priced on a small slice of the balance"""
        probe_amount = balance if balance <= 1000 else balance // self.exit_settings.price_probe_divisor
        if probe_amount <= 0:
            return None

        quote = await self.jupiter.quote(mint, SOL_MINT, probe_amount, self.exit_settings.slippage_bps)
        if quote is None or quote.out_amount <= 0:
            return None
        return quote.out_amount / probe_amount
