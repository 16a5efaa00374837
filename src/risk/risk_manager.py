from collections import deque
from typing import Dict, Optional, Tuple
import logging
import time
from core.types import Position
from utils.config import CapitalRules

class RiskManager:
    """Capital rules checked before every snipe"""

    def __init__(self, rules: CapitalRules, logger: Optional[logging.Logger] = None,
                 clock=time.time):
        self.rules = rules
        self.logger = logger or logging.getLogger(__name__)
        self.clock = clock

        self.consecutive_losses = 0
        self.snipe_times: deque = deque()
        self.paused_until = 0.0
        self.halted_until = 0.0

    def can_enter_position(self, open_positions: int,
                           wallet_balance_sol: Optional[float]) -> Tuple[bool, str]:
        """Whether a new snipe is allowed right now, and why not if it isn't"""
        now = self.clock()

        if now < self.halted_until:
            return False, f"daily halt active for {self.halted_until - now:.0f}s"

        if now < self.paused_until:
            return False, f"loss pause active for {self.paused_until - now:.0f}s"

        if wallet_balance_sol is not None and wallet_balance_sol < self.rules.daily_halt_threshold_sol:
            self.halted_until = now + self.rules.daily_halt_seconds
            self.logger.critical(
                f"Wallet balance {wallet_balance_sol:.4f} SOL below "
                f"{self.rules.daily_halt_threshold_sol} SOL, halting for {self.rules.daily_halt_seconds:.0f}s"
            )
            return False, "wallet balance below halt threshold"

        while self.snipe_times and now - self.snipe_times[0] >= 3600:
            self.snipe_times.popleft()
        if len(self.snipe_times) >= self.rules.max_snipes_per_hour:
            return False, f"hourly snipe limit reached ({self.rules.max_snipes_per_hour})"

        if open_positions >= self.rules.max_concurrent_positions:
            return False, f"max concurrent positions reached ({self.rules.max_concurrent_positions})"

        return True, ""

    def record_snipe(self):
        self.snipe_times.append(self.clock())

    def record_close(self, position: Position):
        """Count losing closes; three in a row pause new entries.

        Any other close, including one with no exit reason, breaks the streak.
        """
        if position.exit_reason is None or not position.exit_reason.is_loss:
            self.consecutive_losses = 0
            return

        self.consecutive_losses += 1
        if self.consecutive_losses >= self.rules.consecutive_loss_limit:
            self.paused_until = self.clock() + self.rules.consecutive_loss_pause_seconds
            self.logger.warning(
                f"{self.consecutive_losses} consecutive losses, pausing entries for "
                f"{self.rules.consecutive_loss_pause_seconds:.0f}s"
            )
            self.consecutive_losses = 0

    def get_status(self) -> Dict:
        now = self.clock()
        return {
            'consecutive_losses': self.consecutive_losses,
            'snipes_last_hour': sum(1 for t in self.snipe_times if now - t < 3600),
            'paused': now < self.paused_until,
            'halted': now < self.halted_until,
        }
