from datetime import datetime
from typing import Callable, Dict, Optional, Set
import asyncio
import logging
import os
import pandas as pd
from core.types import Position

CSV_COLUMNS = [
    'id', 'token_mint', 'pool_address', 'source', 'entry_time', 'exit_time', 'hold_time',
    'entry_sol', 'recovered_sol', 'profit_sol', 'roi', 'exit_reason',
    'tier1_sold', 'tier2_sold', 'tier3_sold', 'entry_signature',
]

class PositionJournal:
    """Single consumer of the registry's update channel.

    Every snapshot is upserted to the database (when configured) and every
    close is appended once to the closed-trades CSV.
    """

    def __init__(self, updates: asyncio.Queue, csv_path: str,
                 logger: Optional[logging.Logger] = None,
                 db_service=None,
                 on_closed: Optional[Callable[[Position], None]] = None):
        self.updates = updates
        self.csv_path = csv_path
        self.logger = logger or logging.getLogger(__name__)
        self.db_service = db_service
        self.on_closed = on_closed

        self.latest: Dict[str, Position] = {}
        self._closed_written: Set[str] = set()
        self._task: Optional[asyncio.Task] = None

        self._initialize_csv()

    def _initialize_csv(self):
        """Create CSV with headers if it doesn't exist"""
        if not os.path.exists(self.csv_path):
            directory = os.path.dirname(self.csv_path)
            if directory:
                os.makedirs(directory, exist_ok=True)
            pd.DataFrame(columns=CSV_COLUMNS).to_csv(self.csv_path, index=False)

    def start(self) -> asyncio.Task:
        self._task = asyncio.create_task(self.run(), name="position-journal")
        return self._task

    async def run(self):
        while True:
            position = await self.updates.get()
            try:
                self.record(position)
            except Exception as e:
                self.logger.error(f"Failed to journal position {position.short_id}: {str(e)}")
            finally:
                self.updates.task_done()

    def record(self, position: Position):
        self.latest[position.id] = position

        if self.db_service:
            try:
                self.db_service.upsert_position(position)
            except Exception as e:
                self.logger.error(f"Database write failed for {position.short_id}: {str(e)}")

        if position.is_closed and position.id not in self._closed_written:
            self._closed_written.add(position.id)
            self._append_closed(position)
            if self.on_closed:
                self.on_closed(position)

    def _append_closed(self, position: Position):
        entry_time = datetime.fromtimestamp(position.entry_timestamp)
        exit_time = datetime.fromtimestamp(position.closed_at) if position.closed_at else None
        trade_data = {
            'id': position.id,
            'token_mint': position.token_mint,
            'pool_address': position.pool_address,
            'source': position.source.value if position.source else None,
            'entry_time': entry_time,
            'exit_time': exit_time,
            'hold_time': (exit_time - entry_time).total_seconds() / 60 if exit_time else None,  # In minutes
            'entry_sol': position.entry_amount / 1e9,
            'recovered_sol': position.total_recovered / 1e9,
            'profit_sol': position.realized_profit / 1e9,
            'roi': position.realized_profit / position.entry_amount * 100 if position.entry_amount else 0.0,
            'exit_reason': position.exit_reason.value if position.exit_reason else 'emptied',
            'tier1_sold': position.tier1_sold,
            'tier2_sold': position.tier2_sold,
            'tier3_sold': position.tier3_sold,
            'entry_signature': position.entry_signature,
        }
        try:
            pd.DataFrame([trade_data], columns=CSV_COLUMNS).to_csv(
                self.csv_path, mode='a', header=False, index=False
            )
        except Exception as e:
            self.logger.error(f"Failed to write closed trade {position.short_id} to CSV: {str(e)}")

    def summary(self) -> Dict:
        """Performance of the closed positions seen so far"""
        closed = [p.to_record() for p in self.latest.values() if p.is_closed]
        if not closed:
            return {
                'total_trades': 0, 'wins': 0, 'losses': 0, 'win_rate': 0.0,
                'total_profit_sol': 0.0, 'avg_profit_sol': 0.0,
                'best_trade_sol': 0.0, 'worst_trade_sol': 0.0,
                'by_exit_reason': {},
            }

        df = pd.DataFrame(closed)
        profit_sol = df['realized_profit'] / 1e9
        wins = int((df['realized_profit'] > 0).sum())
        return {
            'total_trades': len(df),
            'wins': wins,
            'losses': len(df) - wins,
            'win_rate': wins / len(df) * 100,
            'total_profit_sol': float(profit_sol.sum()),
            'avg_profit_sol': float(profit_sol.mean()),
            'best_trade_sol': float(profit_sol.max()),
            'worst_trade_sol': float(profit_sol.min()),
            'by_exit_reason': {
                str(reason): int(count)
                for reason, count in df['exit_reason'].fillna('emptied').value_counts().items()
            },
        }

    async def stop(self, timeout: float = 5.0):
        """Drain queued updates, then stop the consumer task"""
        if self._task is None:
            return
        try:
            await asyncio.wait_for(self.updates.join(), timeout=timeout)
        except asyncio.TimeoutError:
            self.logger.warning(f"Journal drain timed out with {self.updates.qsize()} updates pending")
        self._task.cancel()
        await asyncio.gather(self._task, return_exceptions=True)
        self._task = None
