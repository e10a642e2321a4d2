"""
ClickHouse 기반 가격 이력 제공자 / 체결 기록 저장소 구현.

[ 역할 ]
    ClickHouse에 저장된 일봉 데이터를 조회하여 전략/백테스트에 제공.
    PriceHistoryProvider 인터페이스를 구현하여 백테스트 엔진과 호환.
    백테스트 체결 기록을 backtest_trades 테이블에 적재 (TradeSink 구현).

[ 의존성 ]
    - core/data_provider.py::PriceHistoryProvider (추상 클래스)
    - data/trade_sink.py::TradeSink (추상 클래스)
    - data/clickhouse_schema.py (연결 및 스키마)

[ 호출하는 곳 ]
    - run_backtest.py (--source clickhouse 옵션 사용 시)
"""

import json
from datetime import date
from typing import Optional

from clickhouse_connect.driver import Client

from factor_trading.core.data_provider import PriceBar, PriceHistoryProvider
from factor_trading.data.clickhouse_schema import get_client
from factor_trading.data.portfolio import BacktestTrade
from factor_trading.data.trade_sink import TradeSink

TRADE_COLUMNS = [
    "backtest_id", "date", "symbol", "side", "quantity",
    "price", "amount", "commission", "signal", "pnl",
]


class ClickHousePriceProvider(PriceHistoryProvider):
    """ClickHouse 기반 가격 이력 제공자.

    사용 예:
        provider = ClickHousePriceProvider.connect('localhost', 8123, password='password')
        bars = provider.get_price_history('AAPL', date(2024, 1, 1), date(2024, 12, 31))
    """

    def __init__(self, client: Client, use_adjusted_close: bool = True):
        """
        Args:
            client: ClickHouse 클라이언트 (data/clickhouse_schema.py::get_client)
            use_adjusted_close: True이면 adjusted_close를 사용, False이면 close 사용
        """
        self.client = client
        self.use_adjusted_close = use_adjusted_close

    @classmethod
    def connect(
        cls,
        host: str = "localhost",
        port: int = 8123,
        database: str = "default",
        user: str = "default",
        password: str = "password",
        use_adjusted_close: bool = True,
    ) -> "ClickHousePriceProvider":
        return cls(get_client(host, port, database, user, password), use_adjusted_close)

    @property
    def _close_column(self) -> str:
        return "adjusted_close" if self.use_adjusted_close else "close"

    def _to_bar(self, symbol: str, row: tuple) -> PriceBar:
        return PriceBar(
            symbol=symbol,
            date=row[0],
            open=float(row[1]),
            high=float(row[2]),
            low=float(row[3]),
            close=float(row[4]),
            volume=int(row[5]),
        )

    def get_price_history(
        self,
        symbol: str,
        start_date: date,
        end_date: date,
    ) -> list[PriceBar]:
        """기간 내 일봉 조회 (날짜 오름차순).

        close 값은 use_adjusted_close 옵션에 따라 adjusted_close 또는 close.
        """
        query = f"""
            SELECT
                date,
                open,
                high,
                low,
                {self._close_column} as close,
                volume
            FROM stock_ohlcv
            WHERE ticker = %(ticker)s
              AND date >= %(start_date)s
              AND date <= %(end_date)s
            ORDER BY date ASC
        """
        result = self.client.query(
            query,
            parameters={
                "ticker": symbol,
                "start_date": start_date,
                "end_date": end_date,
            },
        )
        return [self._to_bar(symbol, row) for row in result.result_rows]

    def get_latest_price(self, symbol: str) -> Optional[PriceBar]:
        """가장 최근 날짜의 일봉. 데이터가 없으면 None."""
        query = f"""
            SELECT
                date,
                open,
                high,
                low,
                {self._close_column} as close,
                volume
            FROM stock_ohlcv
            WHERE ticker = %(ticker)s
            ORDER BY date DESC
            LIMIT 1
        """
        result = self.client.query(query, parameters={"ticker": symbol})
        if not result.result_rows:
            return None
        return self._to_bar(symbol, result.result_rows[0])

    def get_symbols(self) -> list[str]:
        """조회 가능한 종목 코드 목록 (알파벳 순)."""
        result = self.client.query("SELECT DISTINCT ticker FROM stock_ohlcv ORDER BY ticker")
        return [row[0] for row in result.result_rows]

    def close(self):
        """ClickHouse 연결 종료."""
        if hasattr(self.client, "close"):
            self.client.close()


class ClickHouseTradeSink(TradeSink):
    """ClickHouse backtest_trades 테이블 저장소 (initialize_schema()로 생성)."""

    def __init__(self, client: Client, table: str = "backtest_trades"):
        self.client = client
        self.table = table

    def append(self, trade: BacktestTrade) -> None:
        signal = json.dumps(trade.signal.to_dict(), ensure_ascii=False) if trade.signal else ""
        row = [
            trade.backtest_id,
            trade.date,
            trade.symbol,
            trade.side,
            trade.quantity,
            trade.price,
            trade.amount,
            trade.commission,
            signal,
            trade.pnl,
        ]
        self.client.insert(self.table, [row], column_names=TRADE_COLUMNS)
