from dataclasses import dataclass
from typing import Optional
import asyncio
import logging
import time
from core.types import ExitTier, Position, SellFill
from utils.config import ExitSettings

@dataclass
class ExitDecision:
    action: Optional[ExitTier] = None
    sell_amount: int = 0
    multiple: float = 0.0
    elapsed: float = 0.0
    reason: str = ""

def decide_exit(position: Position, balance: int, multiple: float, elapsed: float,
                pool_liquidity: Optional[int], settings: ExitSettings) -> ExitDecision:
    """Pick the first exit rule that applies, in priority order.

    Liquidating rules (stop-loss, timeout, rug) are checked before the
    profit tiers. `pool_liquidity` of None means it could not be read and
    the rug rule is skipped.
    """
    def decision(action, amount, reason):
        return ExitDecision(action, amount, multiple, elapsed, reason)

    stop_floor = 1 - settings.stop_loss_pct / 100
    if multiple < stop_floor:
        return decision(ExitTier.STOP_LOSS, balance,
                        f"price {multiple:.2f}x below stop-loss floor {stop_floor:.2f}x")

    if not position.tier1_sold and elapsed > settings.max_time_to_first_target_seconds:
        return decision(ExitTier.TIMEOUT, balance,
                        f"no tier 1 after {elapsed:.0f}s (max {settings.max_time_to_first_target_seconds:.0f}s)")

    if pool_liquidity is not None:
        liquidity_floor = position.initial_pool_liquidity * (1 - settings.liquidity_drop_pct / 100)
        if pool_liquidity < liquidity_floor:
            return decision(ExitTier.RUG_DETECTED, balance,
                            f"pool liquidity {pool_liquidity} below {liquidity_floor:.0f} "
                            f"(initial {position.initial_pool_liquidity})")

    if not position.tier1_sold and multiple >= settings.tier1_multiplier:
        return decision(ExitTier.TIER1, balance // 2,
                        f"{multiple:.2f}x reached tier 1 ({settings.tier1_multiplier}x)")

    if position.tier1_sold and not position.tier2_sold and multiple >= settings.tier2_multiplier:
        return decision(ExitTier.TIER2, min(position.entry_token_amount // 4, balance),
                        f"{multiple:.2f}x reached tier 2 ({settings.tier2_multiplier}x)")

    if (position.tier1_sold and position.tier2_sold and not position.tier3_sold
            and multiple >= settings.tier3_multiplier):
        return decision(ExitTier.TIER3, balance,
                        f"{multiple:.2f}x reached tier 3 ({settings.tier3_multiplier}x)")

    return decision(None, 0, "hold")

class ExitMonitor:
    """Drives one position through the tiered exit policy until it closes"""

    def __init__(self, position_id: str, registry, executor, rpc,
                 settings: ExitSettings, logger: Optional[logging.Logger] = None,
                 clock=time.time):
        self.position_id = position_id
        self.registry = registry
        self.executor = executor
        self.rpc = rpc
        self.settings = settings
        self.logger = logger or logging.getLogger(__name__)
        self.clock = clock
        self.ticks = 0

    async def run(self):
        self.logger.info(f"Exit monitor started for {self.position_id[:8]}")
        try:
            while True:
                await asyncio.sleep(self.settings.poll_interval_seconds)

                position = await self.registry.get(self.position_id)
                if position is None or position.is_closed:
                    break

                try:
                    await self.tick(position)
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    self.logger.error(f"Exit tick failed for {self.position_id[:8]}: {str(e)}")
        finally:
            self.logger.info(f"Exit monitor stopped for {self.position_id[:8]} after {self.ticks} ticks")

    async def tick(self, position: Position) -> Optional[ExitDecision]:
        """Evaluate one position once; returns the decision taken, if any"""
        self.ticks += 1

        try:
            balance = await self.executor.token_balance(position.token_mint)
        except Exception as e:
            self.logger.debug(f"Balance read failed for {position.short_id}: {str(e)}")
            return None

        if balance <= 0:
            self.logger.warning(f"Position {position.short_id} has no tokens left, closing")
            await self.registry.close(position.id, None)
            return None

        price = await self.executor.probe_price(position.token_mint, balance)
        if price is None:
            self.logger.debug(f"No price for {position.short_id} this tick")
            return None

        multiple = price / position.entry_price_per_token
        elapsed = self.clock() - position.entry_timestamp
        pool_liquidity = await self._read_pool_liquidity(position)

        decision = decide_exit(position, balance, multiple, elapsed, pool_liquidity, self.settings)
        if decision.action is None:
            self.logger.debug(f"Position {position.short_id}: {multiple:.2f}x after {elapsed:.0f}s, holding")
            return decision

        self.logger.info(f"Position {position.short_id} exit {decision.action.value}: {decision.reason}")
        await self._execute(position, decision)
        return decision

    async def _read_pool_liquidity(self, position: Position) -> Optional[int]:
        try:
            return await self.rpc.get_pool_liquidity(position.pool_address)
        except Exception as e:
            self.logger.debug(f"Pool liquidity read failed for {position.short_id}: {str(e)}")
            return None

    async def _execute(self, position: Position, decision: ExitDecision):
        if decision.sell_amount <= 0:
            if decision.action.liquidates:
                await self.registry.close(position.id, decision.action.exit_reason)
            else:
                # A profit tier with nothing to sell still counts as filled
                self.logger.info(f"{decision.action.value} rounds to zero tokens for {position.short_id}, skipping")
                await self.registry.record_sale(
                    position.id, decision.action, SellFill(signature=None, sold_amount=0, recovered=0)
                )
            return

        fill = await self.executor.sell(position, decision.sell_amount)
        if fill is None:
            self.logger.warning(
                f"{decision.action.value} sell failed for {position.short_id}, retrying next tick"
            )
            return

        await self.registry.record_sale(position.id, decision.action, fill)
