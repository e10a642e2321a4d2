"""
백테스팅 엔진 모듈.

[ 역할 ]
    과거 데이터에 전략을 적용하여 가상 매매를 시뮬레이션하고 성과를 측정.
    시스템의 핵심 실행 루프를 담당.

[ 실행 흐름 ]
    run_backtest() 호출 시:
        0. 설정 검증 (실패 시 BacktestError stage="config")
        1. 종목별 가격 이력 로드 (warmup_days만큼 선행 이력 포함)
        2. 구간 내 모든 종목의 거래일 합집합 추출
        3. 각 거래일에 대해 순서대로:
           → 보유 포지션을 당일 종가로 평가 (mark)
           → 시그널 소스(기본: StrategyEngine)에 당일까지의 이력으로 시그널 요청
           → BUY/SELL 시그널을 슬리피지/수량 정책 적용 후 체결, 체결마다 trade_sink에 전달
           → 일별 스냅샷 기록
        4. metrics.calculate_performance()로 성과 지표 계산

[ 의존성 ]
    - core/data_provider.py::PriceHistoryProvider (가격 이력)
    - strategies/engine.py::StrategyEngine (기본 시그널 소스)
    - backtest/sizing.py::PositionSizer (주문 수량)
    - data/portfolio.py::BacktestPortfolioState (포지션/거래기록 관리)
    - data/trade_sink.py::TradeSink (체결 기록 저장)
    - backtest/metrics.py::calculate_performance() (성과 계산)

[ 호출하는 곳 ]
    - run_backtest.py (진입점)에서 생성 및 실행
"""

import bisect
import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from enum import Enum
from typing import Any, Awaitable, Optional, Protocol

from factor_trading.backtest.metrics import StrategyPerformance, calculate_performance
from factor_trading.backtest.sizing import PositionSizer, create_position_sizer
from factor_trading.core.data_provider import PriceBar, PriceHistoryProvider
from factor_trading.core.factor import EvaluationContext
from factor_trading.core.trading_strategy import Signal, SignalType
from factor_trading.data.portfolio import (
    BacktestPortfolioState,
    BacktestSnapshot,
    BacktestTrade,
)
from factor_trading.data.trade_sink import TradeSink
from factor_trading.strategies.engine import ContextProvider, StrategyEngine
from factor_trading.utils.config import BacktestConfig, StrategyConfig

logger = logging.getLogger("factor_trading.backtest")


class SignalSource(Protocol):
    """시그널 소스. StrategyEngine과 같은 generate_signals()를 제공하면 된다."""

    def generate_signals(
        self,
        symbols: list[str],
        context_provider: ContextProvider,
    ) -> Awaitable[list[Signal]]:
        ...


class BacktestError(RuntimeError):
    """실행 전체를 중단시키는 오류.

    stage:
        config   설정 검증 실패
        load     가격 이력 로드 실패 또는 구간 내 데이터 없음
        persist  체결 기록 저장 실패
    """

    def __init__(self, message: str, backtest_id: str, stage: str):
        super().__init__(f"[{backtest_id}] {stage} 단계 실패: {message}")
        self.backtest_id = backtest_id
        self.stage = stage


class BacktestStatus(Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class BacktestResult:
    """generate_report()의 반환값."""
    backtest_id: str
    status: BacktestStatus
    performance: Optional[StrategyPerformance] = None
    trades: list[BacktestTrade] = field(default_factory=list)
    snapshots: list[BacktestSnapshot] = field(default_factory=list)
    error: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "backtest_id": self.backtest_id,
            "status": self.status.value,
            "performance": self.performance.to_dict() if self.performance else None,
            "trade_count": len(self.trades),
            "trades": [t.to_dict() for t in self.trades],
            "error": self.error,
        }


class BacktestSimulator:
    """백테스팅 엔진. run_backtest()로 시뮬레이션 실행.

    사용 예:
        simulator = BacktestSimulator(provider, trade_sink=InMemoryTradeSink())
        performance = await simulator.run_backtest("bt-001", backtest_config, strategy_config)
        report = simulator.generate_report()
    """

    def __init__(
        self,
        provider: PriceHistoryProvider,
        trade_sink: Optional[TradeSink] = None,
        signal_source: Optional[SignalSource] = None,
        position_sizer: Optional[PositionSizer] = None,
    ):
        """
        Args:
            provider: 가격 이력 제공자
            trade_sink: 체결 기록 저장소 (None이면 저장하지 않음)
            signal_source: 시그널 소스 (None이면 실행마다 StrategyEngine 생성)
            position_sizer: 수량 정책 (None이면 BacktestConfig.position_sizing으로 생성)
        """
        self.provider = provider
        self.trade_sink = trade_sink
        self.signal_source = signal_source
        self.position_sizer = position_sizer

        # 백테스트 실행 후 채워지는 결과
        self.backtest_id: Optional[str] = None
        self.status: Optional[BacktestStatus] = None
        self.error: Optional[str] = None
        self.portfolio: Optional[BacktestPortfolioState] = None
        self.performance: Optional[StrategyPerformance] = None

    async def run_backtest(
        self,
        backtest_id: str,
        config: BacktestConfig,
        strategy_config: StrategyConfig,
    ) -> StrategyPerformance:
        """백테스트 실행.

        Args:
            backtest_id: 실행 식별자 (체결 기록과 로그에 포함)
            config: 기간, 초기 자금, 수수료, 슬리피지, 수량 정책
            strategy_config: 종목 유니버스와 팩터 구성

        Returns:
            StrategyPerformance: 성과 지표

        Raises:
            BacktestError: 설정 오류, 데이터 로드 실패, 체결 기록 저장 실패
        """
        self.backtest_id = backtest_id
        self.status = BacktestStatus.RUNNING
        self.error = None
        self.performance = None
        self.portfolio = None

        try:
            performance = await self._run(backtest_id, config, strategy_config)
        except BacktestError as e:
            self.status = BacktestStatus.FAILED
            self.error = str(e)
            logger.error(f"백테스트 실패: {e}")
            raise

        self.performance = performance
        self.status = BacktestStatus.COMPLETED
        logger.info(
            f"[{backtest_id}] 백테스트 완료. 총 수익률: {performance.total_return_percent:.2f}% "
            f"(체결 {performance.total_trades}건)"
        )
        return performance

    async def _run(
        self,
        backtest_id: str,
        config: BacktestConfig,
        strategy_config: StrategyConfig,
    ) -> StrategyPerformance:
        start, end = self._validate(backtest_id, config)
        if not strategy_config.enabled:
            raise BacktestError(f"비활성화된 전략입니다: {strategy_config.name}", backtest_id, "config")
        try:
            source = self.signal_source or StrategyEngine(strategy_config)
            sizer = self.position_sizer or create_position_sizer(config, strategy_config.risk_management)
        except ValueError as e:
            raise BacktestError(str(e), backtest_id, "config") from e

        history = self._load_history(backtest_id, strategy_config.symbols, start, end, config.warmup_days)
        trading_dates = sorted({
            bar.date for bars in history.values() for bar in bars if start <= bar.date <= end
        })
        if not trading_dates:
            raise BacktestError(f"{start} ~ {end} 구간에 가격 데이터가 없습니다", backtest_id, "load")

        logger.info(
            f"[{backtest_id}] 백테스트 시작: {trading_dates[0]} ~ {trading_dates[-1]} "
            f"({len(trading_dates)}일, {len(history)}종목)"
        )

        # 날짜 이분 탐색용 인덱스
        bar_dates = {symbol: [bar.date for bar in bars] for symbol, bars in history.items()}

        self.portfolio = BacktestPortfolioState(config.initial_cash)

        # 일별 시뮬레이션
        for current_date in trading_dates:
            await self._simulate_day(
                backtest_id, config, source, sizer, history, bar_dates, current_date,
            )

        return calculate_performance(
            snapshots=self.portfolio.snapshots,
            trades=self.portfolio.trades,
            initial_cash=config.initial_cash,
        )

    def _validate(self, backtest_id: str, config: BacktestConfig) -> tuple[date, date]:
        """설정 검증. 위반 시 BacktestError(stage="config")."""
        try:
            start, end = config.start, config.end
        except ValueError as e:
            raise BacktestError(f"날짜 형식 오류 ({e})", backtest_id, "config") from e

        if start > end:
            problem = f"시작일({start})이 종료일({end})보다 늦습니다"
        elif config.initial_cash <= 0:
            problem = f"initial_cash는 양수여야 합니다 ({config.initial_cash})"
        elif not 0 <= config.slippage < 1:
            problem = f"slippage는 [0, 1) 범위여야 합니다 ({config.slippage})"
        elif config.commission < 0:
            problem = f"commission은 음수일 수 없습니다 ({config.commission})"
        elif config.warmup_days < 0:
            problem = f"warmup_days는 음수일 수 없습니다 ({config.warmup_days})"
        else:
            return start, end
        raise BacktestError(problem, backtest_id, "config")

    def _load_history(
        self,
        backtest_id: str,
        symbols: list[str],
        start: date,
        end: date,
        warmup_days: int,
    ) -> dict[str, list[PriceBar]]:
        """종목별 가격 이력 로드. 실패는 실행 전체를 중단."""
        load_start = start - timedelta(days=warmup_days)
        history: dict[str, list[PriceBar]] = {}
        for symbol in symbols:
            try:
                bars = self.provider.get_price_history(symbol, load_start, end)
            except Exception as e:
                raise BacktestError(f"{symbol} 가격 이력 로드 실패 ({e})", backtest_id, "load") from e
            if not bars:
                logger.warning(f"[{backtest_id}] {symbol}: 가격 데이터 없음, 제외")
                continue
            history[symbol] = sorted(bars, key=lambda b: b.date)
        return history

    async def _simulate_day(
        self,
        backtest_id: str,
        config: BacktestConfig,
        source: SignalSource,
        sizer: PositionSizer,
        history: dict[str, list[PriceBar]],
        bar_dates: dict[str, list[date]],
        current_date: date,
    ) -> None:
        """하루 시뮬레이션. 평가 → 시그널 생성 → 주문 실행 → 스냅샷."""
        portfolio = self.portfolio
        portfolio.start_day(current_date)

        # 당일 데이터가 있는 종목만 (미래 데이터 누출 방지: 당일까지의 이력만 사용)
        contexts: dict[str, EvaluationContext] = {}
        for symbol, bars in history.items():
            idx = bisect.bisect_right(bar_dates[symbol], current_date)
            if idx == 0 or bars[idx - 1].date != current_date:
                continue
            today = bars[idx - 1]
            contexts[symbol] = EvaluationContext(
                symbol=symbol,
                timestamp=current_date,
                current_price=today.close,
                history=tuple(bars[:idx]),
            )
        closes = {symbol: ctx.current_price for symbol, ctx in contexts.items()}

        # 1. 평가
        portfolio.mark_to_market(closes)

        # 2. 시그널
        async def provide(symbol: str) -> EvaluationContext:
            return contexts[symbol]

        try:
            signals = await source.generate_signals(list(contexts), provide)
        except Exception:
            logger.exception(f"[{backtest_id}] {current_date} 시그널 생성 실패, 당일 매매 없음")
            signals = []

        # 3. 체결
        for signal in signals:
            if not signal.is_actionable:
                continue
            close = closes.get(signal.symbol)
            if close is None:
                continue
            try:
                trade = self._execute_signal(backtest_id, config, sizer, signal, close, current_date)
            except Exception:
                logger.exception(f"[{backtest_id}] {current_date} {signal.symbol} 시그널 실행 실패, 건너뜀")
                continue
            if trade is not None:
                self._persist(backtest_id, trade)

        # 4. 스냅샷
        portfolio.take_snapshot(current_date)

    def _execute_signal(
        self,
        backtest_id: str,
        config: BacktestConfig,
        sizer: PositionSizer,
        signal: Signal,
        close: float,
        current_date: date,
    ) -> Optional[BacktestTrade]:
        """시그널 1건 체결. 슬리피지는 항상 불리한 방향으로 적용."""
        if signal.signal_type is SignalType.BUY:
            exec_price = close * (1 + config.slippage)
        else:
            exec_price = close * (1 - config.slippage)

        quantity = sizer.size(signal.signal_type, signal.symbol, exec_price, self.portfolio)
        if quantity <= 0:
            return None

        if signal.signal_type is SignalType.BUY:
            trade = self.portfolio.execute_buy(
                backtest_id, current_date, signal.symbol, quantity, exec_price, config.commission, signal,
            )
            action = "매수"
        else:
            trade = self.portfolio.execute_sell(
                backtest_id, current_date, signal.symbol, quantity, exec_price, config.commission, signal,
            )
            action = "매도"

        if trade is None:
            logger.debug(f"[{current_date}] {action} 거부: {signal.symbol} {quantity}주 @ {exec_price:,.2f}")
        else:
            logger.debug(f"[{current_date}] {action}: {signal.symbol} {quantity}주 @ {exec_price:,.2f}")
        return trade

    def _persist(self, backtest_id: str, trade: BacktestTrade) -> None:
        if self.trade_sink is None:
            return
        try:
            self.trade_sink.append(trade)
        except Exception as e:
            raise BacktestError(f"체결 기록 저장 실패 ({e})", backtest_id, "persist") from e

    def generate_report(self) -> BacktestResult:
        """마지막 실행의 결과 리포트."""
        if self.backtest_id is None:
            raise RuntimeError("백테스트를 먼저 실행하세요.")

        portfolio = self.portfolio
        return BacktestResult(
            backtest_id=self.backtest_id,
            status=self.status,
            performance=self.performance,
            trades=list(portfolio.trades) if portfolio else [],
            snapshots=list(portfolio.snapshots) if portfolio else [],
            error=self.error,
        )
