"""
백테스트 엔진 테스트
"""

from datetime import date

import pytest

from factor_trading.backtest.engine import BacktestError, BacktestSimulator, BacktestStatus
from factor_trading.core.data_provider import PriceHistoryProvider, bars_to_frame
from factor_trading.core.factor import FactorConfig
from factor_trading.core.trading_strategy import Signal, SignalType
from factor_trading.data.market_data import DataFrameProvider
from factor_trading.data.trade_sink import InMemoryTradeSink, TradeSink
from factor_trading.utils.config import BacktestConfig, StrategyConfig


class ScriptedSource:
    """날짜별로 정해진 시그널을 반환하는 시그널 소스."""

    def __init__(self, script: dict[date, list[tuple[str, SignalType]]], fail_on: date | None = None):
        self.script = script
        self.fail_on = fail_on
        self.seen: list[tuple[date, list[str]]] = []

    async def generate_signals(self, symbols, context_provider):
        contexts = [await context_provider(s) for s in symbols]
        today = contexts[0].timestamp if contexts else None
        self.seen.append((today, list(symbols)))
        if today == self.fail_on:
            raise RuntimeError("source down")
        return [
            Signal(symbol=symbol, signal_type=signal_type, strength=1.0, timestamp=today)
            for symbol, signal_type in self.script.get(today, [])
        ]


class FailingProvider(PriceHistoryProvider):
    def get_price_history(self, symbol, start_date, end_date):
        raise ConnectionError("database unavailable")

    def get_latest_price(self, symbol):
        return None

    def get_symbols(self):
        return []


class RecordingProvider(DataFrameProvider):
    def __init__(self):
        super().__init__()
        self.requests = []

    def get_price_history(self, symbol, start_date, end_date):
        self.requests.append((symbol, start_date, end_date))
        return super().get_price_history(symbol, start_date, end_date)


class BrokenSink(TradeSink):
    def append(self, trade):
        raise IOError("disk full")


@pytest.fixture
def flat_provider(make_bars) -> DataFrameProvider:
    """1월 1일부터 10일간 100원 고정."""
    provider = DataFrameProvider()
    provider.load_data("AAA", bars_to_frame(make_bars("AAA", [100.0] * 10)))
    return provider


class TestExecution:
    @pytest.mark.asyncio
    async def test_single_buy(self, flat_provider, backtest_config):
        """초기 자금 100,000 / 가격 100 / 수수료 1 → 100주 매수, 현금 89,999."""
        sink = InMemoryTradeSink()
        source = ScriptedSource({date(2024, 1, 1): [("AAA", SignalType.BUY)]})
        simulator = BacktestSimulator(flat_provider, trade_sink=sink, signal_source=source)

        performance = await simulator.run_backtest("bt-1", backtest_config, StrategyConfig(symbols=["AAA"]))

        trade = sink.trades[0]
        assert (trade.side, trade.quantity, trade.price) == ("buy", 100, 100.0)
        assert simulator.portfolio.cash == pytest.approx(89_999.0)
        assert simulator.portfolio.get_position("AAA").quantity == 100
        assert performance.total_trades == 1
        assert performance.total_return == pytest.approx(-1.0)

    @pytest.mark.asyncio
    async def test_slippage_is_adverse(self, flat_provider):
        config = BacktestConfig(start_date="2024-01-01", end_date="2024-01-10", commission=0.0, slippage=0.01)
        source = ScriptedSource({
            date(2024, 1, 1): [("AAA", SignalType.BUY)],
            date(2024, 1, 2): [("AAA", SignalType.SELL)],
        })
        sink = InMemoryTradeSink()
        simulator = BacktestSimulator(flat_provider, trade_sink=sink, signal_source=source)
        await simulator.run_backtest("bt-slip", config, StrategyConfig(symbols=["AAA"]))

        buy, sell = sink.trades
        assert buy.price == pytest.approx(101.0)
        assert sell.price == pytest.approx(99.0)
        assert sell.pnl < 0

    @pytest.mark.asyncio
    async def test_hold_and_unknown_symbols_ignored(self, flat_provider, backtest_config):
        source = ScriptedSource({date(2024, 1, 1): [("AAA", SignalType.HOLD), ("ZZZ", SignalType.BUY)]})
        simulator = BacktestSimulator(flat_provider, signal_source=source)
        performance = await simulator.run_backtest("bt-2", backtest_config, StrategyConfig(symbols=["AAA"]))
        assert performance.total_trades == 0

    @pytest.mark.asyncio
    async def test_sink_receives_every_fill(self, flat_provider, backtest_config):
        sink = InMemoryTradeSink()
        source = ScriptedSource({
            date(2024, 1, 1): [("AAA", SignalType.BUY)],
            date(2024, 1, 3): [("AAA", SignalType.BUY)],
            date(2024, 1, 5): [("AAA", SignalType.SELL)],
        })
        simulator = BacktestSimulator(flat_provider, trade_sink=sink, signal_source=source)
        await simulator.run_backtest("bt-3", backtest_config, StrategyConfig(symbols=["AAA"]))

        assert sink.for_backtest("bt-3") == simulator.portfolio.trades
        assert [t.side for t in sink.trades] == ["buy", "buy", "sell"]


class TestDayLoop:
    @pytest.mark.asyncio
    async def test_union_of_trading_days_and_stale_marks(self, make_bars, backtest_config):
        provider = DataFrameProvider()
        provider.load_data("AAA", bars_to_frame(make_bars("AAA", [100.0] * 10)))
        # BBB는 1월 1일과 3일에만 거래
        bbb = make_bars("BBB", [50.0, 60.0, 70.0])
        provider.load_data("BBB", bars_to_frame([bbb[0], bbb[2]]))

        source = ScriptedSource({date(2024, 1, 1): [("BBB", SignalType.BUY)]})
        simulator = BacktestSimulator(provider, signal_source=source)
        await simulator.run_backtest("bt-4", backtest_config, StrategyConfig(symbols=["AAA", "BBB"]))

        snapshots = simulator.portfolio.snapshots
        assert len(snapshots) == 10
        assert source.seen[1] == (date(2024, 1, 2), ["AAA"])
        # 2일: BBB 종가 없음 → 직전 가격 유지, 3일: 70으로 평가
        assert snapshots[1].positions_value == pytest.approx(snapshots[0].positions_value)
        assert snapshots[2].positions_value == pytest.approx(200 * 70.0)

    @pytest.mark.asyncio
    async def test_first_day_return_is_zero(self, flat_provider, backtest_config):
        simulator = BacktestSimulator(flat_provider, signal_source=ScriptedSource({}))
        await simulator.run_backtest("bt-5", backtest_config, StrategyConfig(symbols=["AAA"]))
        first = simulator.portfolio.snapshots[0]
        assert first.daily_return == 0.0
        assert first.total_value == 100_000

    @pytest.mark.asyncio
    async def test_source_failure_skips_day(self, flat_provider, backtest_config):
        source = ScriptedSource(
            {date(2024, 1, 2): [("AAA", SignalType.BUY)], date(2024, 1, 3): [("AAA", SignalType.BUY)]},
            fail_on=date(2024, 1, 2),
        )
        simulator = BacktestSimulator(flat_provider, signal_source=source)
        performance = await simulator.run_backtest("bt-6", backtest_config, StrategyConfig(symbols=["AAA"]))

        assert performance.total_trades == 1
        assert simulator.portfolio.trades[0].date == date(2024, 1, 3)
        assert len(simulator.portfolio.snapshots) == 10

    @pytest.mark.asyncio
    async def test_warmup_history_loaded(self, make_bars):
        provider = RecordingProvider()
        provider.load_data("AAA", bars_to_frame(make_bars("AAA", [100.0] * 40)))
        config = BacktestConfig(start_date="2024-01-21", end_date="2024-01-31", warmup_days=20)
        source = ScriptedSource({})
        simulator = BacktestSimulator(provider, signal_source=source)

        await simulator.run_backtest("bt-7", config, StrategyConfig(symbols=["AAA"]))

        assert provider.requests == [("AAA", date(2024, 1, 1), date(2024, 1, 31))]
        assert simulator.portfolio.snapshots[0].date == date(2024, 1, 21)
        assert len(simulator.portfolio.snapshots) == 11


class TestDefaultStrategySource:
    @pytest.mark.asyncio
    async def test_golden_cross_triggers_single_buy(self, make_bars):
        """1~20일 평탄, 21일부터 상승 → 21일 골든크로스 매수 1회."""
        closes = [100.0] * 20 + [101.0, 102.0, 103.0, 104.0, 105.0]
        provider = DataFrameProvider()
        provider.load_data("AAA", bars_to_frame(make_bars("AAA", closes)))

        strategy_config = StrategyConfig(
            name="ma",
            symbols=["AAA"],
            factors=[FactorConfig(name="MA_Crossover", params={"short": 5, "long": 20})],
        )
        config = BacktestConfig(
            start_date="2024-01-15", end_date="2024-01-25", warmup_days=14, commission=1.0, slippage=0.0,
        )
        sink = InMemoryTradeSink()
        simulator = BacktestSimulator(provider, trade_sink=sink)

        await simulator.run_backtest("bt-ma", config, strategy_config)

        assert len(sink.trades) == 1
        trade = sink.trades[0]
        assert trade.date == date(2024, 1, 21)
        assert trade.quantity == 99
        assert trade.signal.signal_type is SignalType.BUY
        assert trade.signal.factor_scores[0].metadata["crossover"] == "golden"


class TestFailures:
    @pytest.mark.asyncio
    async def test_provider_failure_is_load_error(self, backtest_config):
        simulator = BacktestSimulator(FailingProvider(), signal_source=ScriptedSource({}))
        with pytest.raises(BacktestError) as exc_info:
            await simulator.run_backtest("bt-8", backtest_config, StrategyConfig(symbols=["AAA"]))

        error = exc_info.value
        assert error.stage == "load"
        assert error.backtest_id == "bt-8"
        assert "bt-8" in str(error)
        assert isinstance(error.__cause__, ConnectionError)

        report = simulator.generate_report()
        assert report.status is BacktestStatus.FAILED
        assert report.error is not None

    @pytest.mark.asyncio
    async def test_no_data_in_range_is_fatal(self, flat_provider):
        config = BacktestConfig(start_date="2025-01-01", end_date="2025-01-31")
        simulator = BacktestSimulator(flat_provider, signal_source=ScriptedSource({}))
        with pytest.raises(BacktestError) as exc_info:
            await simulator.run_backtest("bt-9", config, StrategyConfig(symbols=["AAA"]))
        assert exc_info.value.stage == "load"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("overrides", [
        {"start_date": "2024-02-01", "end_date": "2024-01-01"},
        {"initial_cash": 0},
        {"slippage": 1.0},
        {"commission": -1.0},
        {"start_date": "not-a-date"},
        {"position_sizing": "kelly"},
    ])
    async def test_invalid_config(self, flat_provider, overrides):
        config = BacktestConfig(**{"start_date": "2024-01-01", "end_date": "2024-01-10", **overrides})
        simulator = BacktestSimulator(flat_provider, signal_source=ScriptedSource({}))
        with pytest.raises(BacktestError) as exc_info:
            await simulator.run_backtest("bt-10", config, StrategyConfig(symbols=["AAA"]))
        assert exc_info.value.stage == "config"

    @pytest.mark.asyncio
    async def test_disabled_strategy_is_config_error(self, flat_provider, backtest_config):
        """외부 시그널 소스를 써도 비활성 전략은 실행하지 않는다."""
        simulator = BacktestSimulator(flat_provider, signal_source=ScriptedSource({}))
        with pytest.raises(BacktestError) as exc_info:
            await simulator.run_backtest(
                "bt-12", backtest_config, StrategyConfig(symbols=["AAA"], enabled=False),
            )
        assert exc_info.value.stage == "config"
        assert simulator.portfolio is None

    @pytest.mark.asyncio
    async def test_sink_failure_is_persist_error(self, flat_provider, backtest_config):
        source = ScriptedSource({date(2024, 1, 1): [("AAA", SignalType.BUY)]})
        simulator = BacktestSimulator(flat_provider, trade_sink=BrokenSink(), signal_source=source)
        with pytest.raises(BacktestError) as exc_info:
            await simulator.run_backtest("bt-11", backtest_config, StrategyConfig(symbols=["AAA"]))
        assert exc_info.value.stage == "persist"


class TestReport:
    def test_report_before_run(self, flat_provider):
        with pytest.raises(RuntimeError):
            BacktestSimulator(flat_provider).generate_report()

    @pytest.mark.asyncio
    async def test_completed_report(self, flat_provider, backtest_config):
        source = ScriptedSource({date(2024, 1, 1): [("AAA", SignalType.BUY)]})
        simulator = BacktestSimulator(flat_provider, signal_source=source)
        await simulator.run_backtest("bt-12", backtest_config, StrategyConfig(symbols=["AAA"]))

        report = simulator.generate_report()
        assert report.status is BacktestStatus.COMPLETED
        assert report.performance.total_trades == 1
        assert len(report.snapshots) == 10
        data = report.to_dict()
        assert data["status"] == "completed"
        assert data["trades"][0]["signal"]["type"] == "BUY"
