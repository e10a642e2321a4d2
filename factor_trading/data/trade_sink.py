"""
백테스트 체결 기록 저장소 (append-only).

[ 역할 ]
    BacktestSimulator가 체결이 발생할 때마다 append()로 전달.
    저장 방식(메모리, ClickHouse 등)은 구현체가 결정.

[ 구현체 ]
    InMemoryTradeSink                               리스트에 보관 (테스트/CLI용)
    data/clickhouse_provider.py::ClickHouseTradeSink backtest_trades 테이블에 INSERT
"""

from abc import ABC, abstractmethod

from factor_trading.data.portfolio import BacktestTrade


class TradeSink(ABC):
    """체결 기록 저장 추상 클래스."""

    @abstractmethod
    def append(self, trade: BacktestTrade) -> None:
        ...


class InMemoryTradeSink(TradeSink):
    """메모리 저장소."""

    def __init__(self):
        self.trades: list[BacktestTrade] = []

    def append(self, trade: BacktestTrade) -> None:
        self.trades.append(trade)

    def for_backtest(self, backtest_id: str) -> list[BacktestTrade]:
        return [t for t in self.trades if t.backtest_id == backtest_id]
