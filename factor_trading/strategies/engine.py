"""
전략 엔진 모듈.

[ 역할 ]
    가중치가 부여된 팩터 집합을 보유하고, 종목별 팩터 점수를 하나의 결정
    (BUY/SELL/HOLD + 강도 + 근거)으로 결합.

[ 평가 흐름 ]
    evaluate_symbol(context) 호출 시:
        1. 활성 팩터 전체를 동시에 평가 (asyncio.gather, 팩터당 태스크 1개)
        2. 각 점수 × 자기 신뢰도 → 설정 가중치로 가중 평균 (combine_factors)
        3. SignalPolicy로 BUY/SELL/HOLD 분류, 강도 = |결합 점수|
        4. 손절/익절가 + 상위 3개 팩터 근거 문자열 생성

    generate_signals(symbols, context_provider) 호출 시:
        종목별 독립 평가 (동시 실행). 한 종목 실패는 로그만 남기고 제외.

[ 의존성 ]
    - factors/__init__.py::create_factor() (팩터 생성, 파라미터 검증)
    - strategies/policies.py::get_policy() (분류 임계값)

[ 호출하는 곳 ]
    - backtest/engine.py::BacktestSimulator (기본 시그널 소스)
    - strategies/__init__.py::test_strategy()
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from factor_trading.core.factor import BaseFactor, EvaluationContext, FactorScore
from factor_trading.core.trading_strategy import Signal, SignalMetadata, SignalType
from factor_trading.factors import create_factor
from factor_trading.strategies.policies import SignalPolicy, get_policy
from factor_trading.utils.calculations import combine_factor_scores
from factor_trading.utils.config import StrategyConfig

logger = logging.getLogger("factor_trading.strategy")

ContextProvider = Callable[[str], Awaitable[EvaluationContext]]

REASONING_TOP_N = 3


class StrategyEngine:
    """팩터 결합 전략 엔진."""

    def __init__(self, config: StrategyConfig, policy: Optional[SignalPolicy] = None):
        """
        Raises:
            ValueError: 비활성 전략, 알 수 없는 팩터/정책 이름, 잘못된 팩터 파라미터
        """
        if not config.enabled:
            raise ValueError(f"비활성화된 전략입니다: {config.name}")
        self.config = config
        self.policy = policy or get_policy(config.signal_policy)
        # 비활성 팩터는 생성하지 않는다 (평가 대상에서 영구 제외)
        self.factors: list[BaseFactor] = [
            create_factor(factor_config)
            for factor_config in config.factors
            if factor_config.enabled
        ]
        self._weights = {f.name: f.weight for f in self.factors}

    @property
    def name(self) -> str:
        return self.config.name

    async def generate_signals(
        self,
        symbols: list[str],
        context_provider: ContextProvider,
    ) -> list[Signal]:
        """여러 종목 시그널 생성. 실패한 종목은 결과에서 제외.

        Returns:
            성공한 종목의 시그널 (입력 순서 유지)
        """
        results = await asyncio.gather(*(
            self._evaluate_safely(symbol, context_provider) for symbol in symbols
        ))
        return [signal for signal in results if signal is not None]

    async def _evaluate_safely(
        self,
        symbol: str,
        context_provider: ContextProvider,
    ) -> Optional[Signal]:
        try:
            context = await context_provider(symbol)
            return await self.evaluate_symbol(context)
        except Exception:
            logger.exception(f"[{self.name}] {symbol} 평가 실패, 건너뜀")
            return None

    async def evaluate_symbol(self, context: EvaluationContext) -> Signal:
        """단일 종목 평가 → Signal."""
        factor_scores = await asyncio.gather(*(
            factor.evaluate(context) for factor in self.factors
        ))

        # gather는 입력 순서를 유지하므로 팩터와 점수를 위치로 짝지을 수 있다
        combined = self.combine_factors(factor_scores, self.factors)
        signal_type = self.policy.classify(combined)

        signal = Signal(
            symbol=context.symbol,
            signal_type=signal_type,
            strength=abs(combined),
            timestamp=context.timestamp,
            factor_scores=tuple(factor_scores),
            metadata=self.calculate_metadata(context.current_price, combined, signal_type, factor_scores),
            price=context.current_price,
        )
        logger.debug(
            f"[{self.name}] {context.symbol} {context.timestamp}: "
            f"{signal_type.value} (결합 점수 {combined:+.3f})"
        )
        return signal

    def combine_factors(
        self,
        scores: list[FactorScore],
        factors: Optional[list[BaseFactor]] = None,
    ) -> float:
        """점수 × 신뢰도를 팩터 가중치로 가중 평균. 점수가 없으면 0.

        factors가 주어지면 scores와 같은 위치의 팩터 가중치를 사용한다
        (같은 이름의 팩터를 여러 개 설정한 경우). 없으면 팩터 이름으로 조회.
        가중치가 0이거나 찾을 수 없으면 1.
        """
        if not scores:
            return 0.0
        if factors is not None:
            if len(factors) != len(scores):
                raise ValueError(f"팩터 수({len(factors)})와 점수 수({len(scores)})가 다릅니다")
            weights = [f.weight for f in factors]
        else:
            weights = [self._weights.get(s.factor_name) for s in scores]
        return combine_factor_scores(
            (s.score * s.confidence, weight or 1.0)
            for s, weight in zip(scores, weights)
        )

    def calculate_metadata(
        self,
        price: float,
        combined_score: float,
        signal_type: SignalType,
        factor_scores: list[FactorScore],
    ) -> SignalMetadata:
        """손절/익절가 + 근거 문자열."""
        risk = self.config.risk_management
        stop_loss = None
        take_profit = None

        if signal_type is SignalType.BUY:
            stop_loss = price * (1 - risk.stop_loss_percent)
            if risk.take_profit_percent:
                take_profit = price * (1 + risk.take_profit_percent)
        elif signal_type is SignalType.SELL:
            stop_loss = price * (1 + risk.stop_loss_percent)
            if risk.take_profit_percent:
                take_profit = price * (1 - risk.take_profit_percent)

        return SignalMetadata(
            stop_loss=stop_loss,
            take_profit=take_profit,
            reasoning=self.generate_reasoning(factor_scores, combined_score),
        )

    @staticmethod
    def generate_reasoning(factor_scores: list[FactorScore], combined_score: float) -> str:
        """|score| 상위 3개 팩터로 근거 문자열 생성. 입력 리스트는 변경하지 않는다."""
        top = sorted(factor_scores, key=lambda s: abs(s.score), reverse=True)[:REASONING_TOP_N]
        descriptions = [
            f"{s.factor_name} ({'bullish' if s.score > 0 else 'bearish'}, {abs(s.score) * 100:.0f}%)"
            for s in top
        ]
        overall = "bullish" if combined_score > 0 else "bearish"
        return f"Overall {overall} signal based on: {', '.join(descriptions)}"
