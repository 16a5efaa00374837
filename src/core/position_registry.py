from typing import Dict, List, Optional
import asyncio
import logging
import time
from core.types import ExitReason, ExitTier, Position, PositionStatus, SellFill

class PositionRegistry:
    """Single owner of all position state.

    Every mutation happens under one lock and publishes a snapshot of the
    changed position to `updates`. Readers only ever get snapshots.
    """

    def __init__(self, logger: Optional[logging.Logger] = None,
                 update_queue_size: int = 1000, clock=time.time):
        self.logger = logger or logging.getLogger(__name__)
        self.clock = clock

        # Core state tracking
        self._active: Dict[str, Position] = {}
        self._closed: Dict[str, Position] = {}
        self._monitors: Dict[str, asyncio.Task] = {}

        self._lock = asyncio.Lock()
        self.updates: asyncio.Queue = asyncio.Queue(maxsize=update_queue_size)
        self.dropped_updates = 0

    async def add(self, position: Position) -> Position:
        """Take ownership of a freshly entered position"""
        async with self._lock:
            if position.id in self._active or position.id in self._closed:
                raise ValueError(f"Position {position.id} already registered")
            if position.status is not PositionStatus.OPEN:
                raise ValueError(f"New position must be open, got {position.status.value}")

            self._active[position.id] = position
            snapshot = position.snapshot()

        self.logger.info(
            f"Position {position.short_id} opened: {position.token_mint} "
            f"tokens={position.entry_token_amount} cost={position.entry_amount} lamports"
        )
        self._publish(snapshot)
        return snapshot

    def spawn_monitor(self, position_id: str, monitor) -> asyncio.Task:
        """Start the exit monitor task for a position and keep track of it"""
        task = asyncio.create_task(monitor.run(), name=f"exit-monitor-{position_id[:8]}")
        self._monitors[position_id] = task
        task.add_done_callback(lambda t, pid=position_id: self._forget_monitor(pid, t))
        return task

    def _forget_monitor(self, position_id: str, task: asyncio.Task):
        if self._monitors.get(position_id) is task:
            del self._monitors[position_id]

    async def get(self, position_id: str) -> Optional[Position]:
        async with self._lock:
            position = self._active.get(position_id) or self._closed.get(position_id)
            return position.snapshot() if position else None

    async def active_positions(self) -> List[Position]:
        async with self._lock:
            return [p.snapshot() for p in self._active.values()]

    async def history(self) -> List[Position]:
        """Every position ever registered, open ones included"""
        async with self._lock:
            return [p.snapshot() for p in list(self._closed.values()) + list(self._active.values())]

    def open_count(self) -> int:
        return len(self._active)

    def holds_mint(self, mint: str) -> bool:
        return any(p.token_mint == mint for p in self._active.values())

    @property
    def monitor_count(self) -> int:
        return len(self._monitors)

    async def record_sale(self, position_id: str, tier: ExitTier, fill: SellFill) -> Optional[Position]:
        """Apply a confirmed sell; liquidating sells also close the position"""
        async with self._lock:
            position = self._active.get(position_id)
            if position is None:
                self.logger.warning(f"Sale for unknown or closed position {position_id[:8]} ignored")
                return None

            if tier is ExitTier.TIER2 and not position.tier1_sold:
                raise ValueError("Tier 2 cannot fill before tier 1")
            if tier is ExitTier.TIER3 and not (position.tier1_sold and position.tier2_sold):
                raise ValueError("Tier 3 cannot fill before tiers 1 and 2")

            position.total_recovered += fill.recovered
            position.realized_profit = position.total_recovered - position.entry_amount

            if tier is ExitTier.TIER1:
                position.tier1_sold = True
                position.tier1_signature = fill.signature
                position.status = PositionStatus.PARTIAL
            elif tier is ExitTier.TIER2:
                position.tier2_sold = True
                position.tier2_signature = fill.signature
                position.status = PositionStatus.PARTIAL
            elif tier is ExitTier.TIER3:
                position.tier3_sold = True
                position.tier3_signature = fill.signature

            if tier.liquidates:
                self._close_locked(position, tier.exit_reason)

            snapshot = position.snapshot()

        self.logger.info(
            f"Position {snapshot.short_id} sold {fill.sold_amount} tokens for {fill.recovered} lamports "
            f"({tier.value}), recovered {snapshot.total_recovered} total"
        )
        self._publish(snapshot)
        return snapshot

    async def close(self, position_id: str, reason: Optional[ExitReason]) -> Optional[Position]:
        """Close a position once; later calls are no-ops"""
        async with self._lock:
            position = self._active.get(position_id)
            if position is None:
                if position_id in self._closed:
                    self.logger.debug(f"Position {position_id[:8]} already closed")
                return None

            self._close_locked(position, reason)
            snapshot = position.snapshot()

        self._publish(snapshot)
        return snapshot

    def _close_locked(self, position: Position, reason: Optional[ExitReason]):
        position.status = PositionStatus.CLOSED
        if position.exit_reason is None:
            position.exit_reason = reason
        position.realized_profit = position.total_recovered - position.entry_amount
        position.closed_at = self.clock()

        del self._active[position.id]
        self._closed[position.id] = position

        self.logger.info(
            f"Position {position.short_id} closed ({reason.value if reason else 'balance gone'}): "
            f"profit={position.realized_profit / 1e9:.4f} SOL"
        )

    def _publish(self, snapshot: Position):
        """Hand a snapshot to the single consumer, dropping the oldest when full"""
        try:
            self.updates.put_nowait(snapshot)
        except asyncio.QueueFull:
            dropped = self.updates.get_nowait()
            self.updates.task_done()
            self.dropped_updates += 1
            self.logger.warning(f"Update queue full, dropped update for {dropped.short_id}")
            self.updates.put_nowait(snapshot)

    async def shutdown(self):
        """Cancel every exit monitor and wait for them to finish"""
        tasks = list(self._monitors.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._monitors.clear()
        self.logger.info(f"Stopped {len(tasks)} exit monitors, {len(self._active)} positions left open")
