"""
백테스트 포트폴리오 상태 테스트
"""

from datetime import date

import pytest

from factor_trading.data.portfolio import BacktestPortfolioState

D1 = date(2024, 1, 2)
D2 = date(2024, 1, 3)


@pytest.fixture
def state() -> BacktestPortfolioState:
    return BacktestPortfolioState(initial_cash=100_000)


class TestBuy:
    def test_buy_debits_cash(self, state):
        trade = state.execute_buy("bt", D1, "AAA", 100, 100.0, 1.0)
        assert trade is not None
        assert trade.amount == pytest.approx(10_001.0)
        assert trade.pnl is None
        assert state.cash == pytest.approx(89_999.0)
        position = state.get_position("AAA")
        assert position.quantity == 100
        assert position.average_price == pytest.approx(100.0)

    def test_average_price_is_cost_weighted(self, state):
        state.execute_buy("bt", D1, "AAA", 100, 100.0, 0.0)
        state.execute_buy("bt", D2, "AAA", 300, 120.0, 0.0)
        position = state.get_position("AAA")
        assert position.quantity == 400
        assert position.average_price == pytest.approx(115.0)

    def test_oversized_buy_rejected(self, state):
        trade = state.execute_buy("bt", D1, "AAA", 1_000, 100.0, 1.0)
        assert trade is None
        assert state.cash == 100_000
        assert state.get_position("AAA") is None
        assert state.trades == []

    def test_zero_quantity_is_noop(self, state):
        assert state.execute_buy("bt", D1, "AAA", 0, 100.0, 1.0) is None


class TestSell:
    def test_full_sell_realises_pnl_and_removes_position(self, state):
        state.execute_buy("bt", D1, "AAA", 100, 100.0, 1.0)
        trade = state.execute_sell("bt", D2, "AAA", 100, 110.0, 1.0)
        assert trade.pnl == pytest.approx(999.0)
        assert trade.side == "sell"
        assert "AAA" not in state.positions
        assert state.cash == pytest.approx(89_999.0 + 11_000.0 - 1.0)

    def test_partial_sell_keeps_average_price(self, state):
        state.execute_buy("bt", D1, "AAA", 100, 100.0, 0.0)
        state.execute_sell("bt", D2, "AAA", 40, 90.0, 0.0)
        position = state.get_position("AAA")
        assert position.quantity == 60
        assert position.average_price == pytest.approx(100.0)
        assert position.cost_basis == pytest.approx(6_000.0)

    def test_sell_more_than_held_rejected(self, state):
        state.execute_buy("bt", D1, "AAA", 10, 100.0, 0.0)
        assert state.execute_sell("bt", D2, "AAA", 11, 100.0, 0.0) is None
        assert state.execute_sell("bt", D2, "BBB", 1, 100.0, 0.0) is None
        assert state.held_quantity("AAA") == 10

    def test_sell_that_would_leave_negative_cash_rejected(self):
        state = BacktestPortfolioState(initial_cash=100.0)
        state.execute_buy("bt", D1, "AAA", 1, 100.0, 0.0)
        assert state.cash == 0.0
        assert state.execute_sell("bt", D2, "AAA", 1, 0.5, 1.0) is None
        assert state.held_quantity("AAA") == 1

    def test_daily_loss_tracked_and_reset(self, state):
        state.execute_buy("bt", D1, "AAA", 100, 100.0, 0.0)
        state.execute_sell("bt", D1, "AAA", 50, 90.0, 0.0)
        assert state.daily_loss == pytest.approx(500.0)
        state.start_day(D2)
        assert state.daily_loss == 0.0


class TestValuation:
    def test_mark_keeps_stale_price(self, state):
        state.execute_buy("bt", D1, "AAA", 10, 100.0, 0.0)
        state.execute_buy("bt", D1, "BBB", 10, 50.0, 0.0)
        total = state.mark_to_market({"AAA": 110.0})
        assert state.get_position("AAA").unrealized_pnl == pytest.approx(100.0)
        assert state.get_position("BBB").current_price == 50.0
        assert total == pytest.approx(state.cash + 1_100.0 + 500.0)

    def test_snapshots(self, state):
        first = state.take_snapshot(D1)
        assert first.daily_return == 0.0
        assert first.cumulative_return == 0.0

        state.execute_buy("bt", D2, "AAA", 100, 100.0, 0.0)
        state.mark_to_market({"AAA": 90.0})
        second = state.take_snapshot(D2)
        assert second.total_value == pytest.approx(99_000.0)
        assert second.daily_return == pytest.approx(-1_000.0)
        assert second.cumulative_return == pytest.approx(-1_000.0)
        assert state.daily_values == [100_000, pytest.approx(99_000.0)]

    def test_summary(self, state):
        state.execute_buy("bt", D1, "AAA", 10, 100.0, 0.0)
        summary = state.get_summary()
        assert summary["num_holdings"] == 1
        assert summary["num_trades"] == 1
        assert summary["total_value"] == pytest.approx(100_000)
