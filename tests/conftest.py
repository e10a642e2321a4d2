"""
테스트 공통 픽스처.
"""

from datetime import date, timedelta
from typing import Sequence

import pytest

from factor_trading.core.data_provider import PriceBar
from factor_trading.core.factor import EvaluationContext, FactorConfig
from factor_trading.utils.config import BacktestConfig, StrategyConfig

START = date(2024, 1, 1)


def build_bars(symbol: str, closes: Sequence[float], start: date = START) -> list[PriceBar]:
    """종가 시퀀스 → 하루 간격 PriceBar 리스트."""
    return [
        PriceBar(
            symbol=symbol,
            date=start + timedelta(days=i),
            open=close,
            high=close * 1.01,
            low=close * 0.99,
            close=close,
            volume=1_000,
        )
        for i, close in enumerate(closes)
    ]


def build_context(symbol: str, closes: Sequence[float], start: date = START) -> EvaluationContext:
    bars = build_bars(symbol, closes, start)
    return EvaluationContext(
        symbol=symbol,
        timestamp=bars[-1].date if bars else start,
        current_price=bars[-1].close if bars else 1.0,
        history=tuple(bars),
    )


@pytest.fixture
def make_bars():
    return build_bars


@pytest.fixture
def make_context():
    return build_context


@pytest.fixture
def ma_config() -> FactorConfig:
    return FactorConfig(name="MA_Crossover", params={"short": 5, "long": 20})


@pytest.fixture
def rsi_config() -> FactorConfig:
    return FactorConfig(name="RSI", params={"period": 14, "oversold": 30, "overbought": 70})


@pytest.fixture
def strategy_config(ma_config, rsi_config) -> StrategyConfig:
    return StrategyConfig(name="test", symbols=["AAA"], factors=[ma_config, rsi_config])


@pytest.fixture
def backtest_config() -> BacktestConfig:
    return BacktestConfig(
        start_date="2024-01-01",
        end_date="2024-01-10",
        initial_cash=100_000,
        commission=1.0,
        slippage=0.0,
    )
