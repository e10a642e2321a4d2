"""
가격 이력 제공 추상 클래스 정의.

[ 역할 ]
    일봉(PriceBar) 데이터를 제공하는 인터페이스.
    데이터 소스(메모리 DataFrame, ClickHouse 등)에 독립적으로 전략/백테스트에 데이터 공급.
    코어는 이미 조회된 데이터만 받으며, 네트워크/속도제한 처리는 구현체의 몫.

[ 구현체 ]
    - data/market_data.py::DataFrameProvider       (DataFrame 기반, 테스트/샘플용)
    - data/clickhouse_provider.py::ClickHousePriceProvider (ClickHouse 저장소)

[ 호출하는 곳 ]
    - backtest/engine.py::BacktestSimulator가 백테스트 시작 시 전체 이력 로드
    - data/market_data.py::MarketDataManager가 캐싱하며 조회
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date
from typing import Optional

import pandas as pd

OHLCV_COLUMNS = ["date", "open", "high", "low", "close", "volume"]


@dataclass(frozen=True)
class PriceBar:
    """단일 일봉. 종목당 거래일마다 하나."""
    symbol: str
    date: date
    open: float      # 시가
    high: float      # 고가
    low: float       # 저가
    close: float     # 종가
    volume: int      # 거래량

    def __post_init__(self):
        for name in ("open", "high", "low", "close"):
            if not getattr(self, name) > 0:
                raise ValueError(f"{self.symbol} {self.date}: {name}는 양수여야 합니다 ({getattr(self, name)})")
        if self.volume < 0:
            raise ValueError(f"{self.symbol} {self.date}: volume은 음수일 수 없습니다 ({self.volume})")


def bars_from_frame(symbol: str, df: pd.DataFrame) -> list[PriceBar]:
    """OHLCV DataFrame → PriceBar 리스트 (날짜 오름차순)."""
    if df.empty:
        return []
    df = df.copy()
    df["date"] = pd.to_datetime(df["date"]).dt.date
    df = df.sort_values("date")
    return [
        PriceBar(
            symbol=symbol,
            date=row.date,
            open=float(row.open),
            high=float(row.high),
            low=float(row.low),
            close=float(row.close),
            volume=int(row.volume),
        )
        for row in df.itertuples(index=False)
    ]


def bars_to_frame(bars: list[PriceBar]) -> pd.DataFrame:
    """PriceBar 리스트 → OHLCV DataFrame."""
    return pd.DataFrame(
        [(b.date, b.open, b.high, b.low, b.close, b.volume) for b in bars],
        columns=OHLCV_COLUMNS,
    )


class PriceHistoryProvider(ABC):
    """가격 이력 제공 추상 클래스.

    모든 데이터 제공자 구현체는 이 클래스를 상속받아 아래 메서드를 구현해야 한다.
    """

    @abstractmethod
    def get_price_history(
        self,
        symbol: str,
        start_date: date,
        end_date: date,
    ) -> list[PriceBar]:
        """기간 내 일봉 조회.

        Args:
            symbol: 종목 코드
            start_date: 시작일 (포함)
            end_date: 종료일 (포함)

        Returns:
            날짜 오름차순 PriceBar 리스트 (데이터 없으면 빈 리스트)
        """
        ...

    @abstractmethod
    def get_latest_price(self, symbol: str) -> Optional[PriceBar]:
        """가장 최근 일봉. 없으면 None."""
        ...

    @abstractmethod
    def get_symbols(self) -> list[str]:
        """조회 가능한 종목 코드 목록."""
        ...
