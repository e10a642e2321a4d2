"""
전략 모듈.

[ 구성 ]
    engine.py    StrategyEngine (팩터 결합 → 시그널)
    policies.py  SignalPolicy (BUY/SELL/HOLD 분류 임계값)

[ 전략 만들기 ]
    전략은 서브클래스가 아니라 설정(StrategyConfig)으로 정의한다.
    1. factors에 사용할 팩터와 가중치/파라미터 나열
    2. signal_policy에 분류 정책 이름 지정 (default, momentum)
    3. create_strategy(config)로 엔진 생성
"""

from factor_trading.strategies.engine import ContextProvider, StrategyEngine
from factor_trading.strategies.policies import get_policy, list_policies
from factor_trading.core.trading_strategy import Signal
from factor_trading.utils.config import StrategyConfig


def create_strategy(config: StrategyConfig) -> StrategyEngine:
    """설정으로 전략 엔진 생성.

    Raises:
        ValueError: 비활성 전략, 알 수 없는 팩터/정책 이름, 잘못된 팩터 파라미터
    """
    return StrategyEngine(config)


async def test_strategy(
    config: StrategyConfig,
    symbol: str,
    context_provider: ContextProvider,
) -> Signal:
    """단일 종목으로 전략을 시험 평가.

    Raises:
        ValueError: 시그널을 만들지 못한 경우
    """
    engine = create_strategy(config)
    signals = await engine.generate_signals([symbol], context_provider)
    if not signals:
        raise ValueError(f"{symbol}에 대한 시그널을 생성하지 못했습니다 (전략: {config.name})")
    return signals[0]


# pytest가 테스트 함수로 수집하지 않도록 표시
test_strategy.__test__ = False

__all__ = [
    "StrategyEngine",
    "create_strategy",
    "get_policy",
    "list_policies",
    "test_strategy",
]
