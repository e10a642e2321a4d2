"""
시장 데이터 관리 모듈.

[ 역할 ]
    DataFrameProvider  - 미리 로드된 OHLCV DataFrame에서 PriceBar 제공
                         (PriceHistoryProvider 구현체, 샘플/테스트용)
    MarketDataManager  - 임의의 PriceHistoryProvider 위에 캐싱 +
                         평가 컨텍스트(EvaluationContext) 생성 기능 제공

[ 의존성 ]
    - core/data_provider.py::PriceHistoryProvider (데이터 소스 추상화)
    - core/factor.py::EvaluationContext

[ 호출하는 곳 ]
    - run_backtest.py (샘플 데이터)
    - strategies/engine.py::StrategyEngine.generate_signals()의 context_provider로
      make_context_provider() 결과 사용
"""

from collections import OrderedDict
from datetime import date, timedelta
from typing import Optional

import pandas as pd

from factor_trading.core.data_provider import (
    OHLCV_COLUMNS,
    PriceBar,
    PriceHistoryProvider,
    bars_from_frame,
)
from factor_trading.core.factor import EvaluationContext
from factor_trading.strategies.engine import ContextProvider


class DataFrameProvider(PriceHistoryProvider):
    """DataFrame 기반 가격 이력 제공자.

    사용법:
        provider = DataFrameProvider()
        provider.load_data("AAPL", aapl_df)  # columns: date, open, high, low, close, volume
        bars = provider.get_price_history("AAPL", start, end)
    """

    def __init__(self, data: Optional[dict[str, pd.DataFrame]] = None):
        self._bars: dict[str, list[PriceBar]] = {}   # symbol → 날짜 오름차순 PriceBar
        for symbol, df in (data or {}).items():
            self.load_data(symbol, df)

    def load_data(self, symbol: str, df: pd.DataFrame) -> None:
        """데이터 로드. 컬럼 검증 후 PriceBar로 변환."""
        missing = [c for c in OHLCV_COLUMNS if c not in df.columns]
        if missing:
            raise ValueError(f"{symbol}: 필수 컬럼 누락 {missing}")
        self._bars[symbol] = bars_from_frame(symbol, df)

    def get_price_history(
        self,
        symbol: str,
        start_date: date,
        end_date: date,
    ) -> list[PriceBar]:
        return [b for b in self._bars.get(symbol, []) if start_date <= b.date <= end_date]

    def get_latest_price(self, symbol: str) -> Optional[PriceBar]:
        bars = self._bars.get(symbol)
        return bars[-1] if bars else None

    def get_symbols(self) -> list[str]:
        return list(self._bars.keys())


class MarketDataManager:
    """PriceHistoryProvider 위에 캐싱 레이어를 추가한 매니저.

    사용 예:
        manager = MarketDataManager(provider)
        context = manager.get_context("AAPL", date(2024, 6, 3), lookback_days=365)

    캐시는 (종목, 시작일, 종료일) 단위로 최대 max_cache_entries개까지 보관하며,
    가득 차면 가장 오래 사용되지 않은 항목부터 제거한다 (LRU).
    """

    DEFAULT_MAX_CACHE_ENTRIES = 256

    def __init__(
        self,
        provider: PriceHistoryProvider,
        max_cache_entries: int = DEFAULT_MAX_CACHE_ENTRIES,
    ):
        if max_cache_entries < 1:
            raise ValueError(f"max_cache_entries는 1 이상이어야 합니다: {max_cache_entries}")
        self.provider = provider
        self.max_cache_entries = max_cache_entries
        self._cache: OrderedDict[tuple[str, date, date], list[PriceBar]] = OrderedDict()

    def get_price_history(
        self,
        symbol: str,
        start_date: date,
        end_date: date,
        use_cache: bool = True,
    ) -> list[PriceBar]:
        """가격 이력 조회 (캐싱 지원)."""
        key = (symbol, start_date, end_date)
        if use_cache and key in self._cache:
            self._cache.move_to_end(key)
            return self._cache[key]

        bars = self.provider.get_price_history(symbol, start_date, end_date)
        if use_cache:
            self._cache[key] = bars
            while len(self._cache) > self.max_cache_entries:
                self._cache.popitem(last=False)
        return bars

    def get_context(
        self,
        symbol: str,
        as_of: date,
        lookback_days: int = 365,
    ) -> EvaluationContext:
        """as_of일까지(포함) 이력으로 평가 컨텍스트 생성.

        Raises:
            ValueError: 기간 내 가격 데이터가 없는 경우
        """
        bars = self.get_price_history(symbol, as_of - timedelta(days=lookback_days), as_of)
        if not bars:
            raise ValueError(f"{symbol}: {as_of} 이전 {lookback_days}일 내 가격 데이터 없음")
        return EvaluationContext(
            symbol=symbol,
            timestamp=bars[-1].date,
            current_price=bars[-1].close,
            history=tuple(bars),
        )

    def make_context_provider(self, as_of: date, lookback_days: int = 365) -> ContextProvider:
        """StrategyEngine.generate_signals()용 비동기 컨텍스트 공급자."""
        async def provide(symbol: str) -> EvaluationContext:
            return self.get_context(symbol, as_of, lookback_days)
        return provide

    def clear_cache(self) -> None:
        """캐시 초기화."""
        self._cache.clear()
