import pytest
from core.types import ExitReason
from risk.risk_manager import RiskManager
from testing.factories import NOW
from utils.config import CapitalRules

class Clock:
    def __init__(self, now=NOW):
        self.now = now

    def __call__(self):
        return self.now

@pytest.fixture
def clock():
    return Clock()

@pytest.fixture
def risk_manager(clock, logger):
    return RiskManager(CapitalRules(), logger, clock=clock)

class TestCapitalRules:
    def test_allows_entry_by_default(self, risk_manager):
        allowed, reason = risk_manager.can_enter_position(0, 5.0)

        assert allowed
        assert reason == ""

    def test_concurrent_position_limit(self, risk_manager):
        allowed, reason = risk_manager.can_enter_position(3, 5.0)

        assert not allowed
        assert "concurrent" in reason

    def test_hourly_snipe_limit_rolls_off(self, risk_manager, clock):
        for _ in range(5):
            risk_manager.record_snipe()

        assert not risk_manager.can_enter_position(0, 5.0)[0]

        clock.now += 3600
        assert risk_manager.can_enter_position(0, 5.0)[0]

    def test_low_balance_halts_for_a_day(self, risk_manager, clock):
        allowed, _ = risk_manager.can_enter_position(0, 1.4)
        assert not allowed

        clock.now += 3600
        allowed, reason = risk_manager.can_enter_position(0, 10.0)
        assert not allowed
        assert "daily halt" in reason

        clock.now += 86_400
        assert risk_manager.can_enter_position(0, 10.0)[0]

    def test_unknown_balance_skips_halt_check(self, risk_manager):
        assert risk_manager.can_enter_position(0, None)[0]

    def test_three_losses_pause_entries(self, risk_manager, clock, make_position):
        for reason in (ExitReason.STOP_LOSS, ExitReason.TIMEOUT, ExitReason.RUG_DETECTED):
            risk_manager.record_close(make_position(exit_reason=reason))

        allowed, reason = risk_manager.can_enter_position(0, 5.0)
        assert not allowed
        assert "loss pause" in reason

        clock.now += 3601
        assert risk_manager.can_enter_position(0, 5.0)[0]

    def test_tier3_resets_loss_streak(self, risk_manager, make_position):
        risk_manager.record_close(make_position(exit_reason=ExitReason.STOP_LOSS))
        risk_manager.record_close(make_position(exit_reason=ExitReason.STOP_LOSS))
        risk_manager.record_close(make_position(exit_reason=ExitReason.TIER3))
        risk_manager.record_close(make_position(exit_reason=ExitReason.STOP_LOSS))

        assert risk_manager.consecutive_losses == 1
        assert risk_manager.can_enter_position(0, 5.0)[0]

    def test_emptied_close_resets_loss_streak(self, risk_manager, make_position):
        risk_manager.record_close(make_position(exit_reason=ExitReason.STOP_LOSS))
        risk_manager.record_close(make_position(exit_reason=ExitReason.TIMEOUT))
        risk_manager.record_close(make_position(exit_reason=None))
        risk_manager.record_close(make_position(exit_reason=ExitReason.STOP_LOSS))

        assert risk_manager.consecutive_losses == 1
        assert risk_manager.can_enter_position(0, 5.0)[0]
