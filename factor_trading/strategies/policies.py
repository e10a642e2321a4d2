"""
시그널 분류 정책.

[ 역할 ]
    결합 점수를 BUY/SELL/HOLD로 분류하는 임계값 정책.
    전략별로 서브클래싱하지 않고, StrategyConfig.signal_policy 이름으로 선택한다.

[ 등록된 정책 ]
    default   결합 점수 > 0.3 → BUY, < -0.3 → SELL
    momentum  결합 점수 > 0.4 → BUY, < -0.4 → SELL (보수적)
"""

from dataclasses import dataclass

from factor_trading.core.trading_strategy import SignalType


@dataclass(frozen=True)
class SignalPolicy:
    """임계값 기반 분류 정책."""
    name: str
    buy_threshold: float
    sell_threshold: float

    def __post_init__(self):
        if self.sell_threshold > self.buy_threshold:
            raise ValueError(
                f"{self.name}: sell_threshold({self.sell_threshold})가 buy_threshold({self.buy_threshold})보다 큽니다"
            )

    def classify(self, combined_score: float) -> SignalType:
        if combined_score > self.buy_threshold:
            return SignalType.BUY
        if combined_score < self.sell_threshold:
            return SignalType.SELL
        return SignalType.HOLD


POLICY_REGISTRY: dict[str, SignalPolicy] = {
    "default": SignalPolicy("default", buy_threshold=0.3, sell_threshold=-0.3),
    "momentum": SignalPolicy("momentum", buy_threshold=0.4, sell_threshold=-0.4),
}


def get_policy(name: str) -> SignalPolicy:
    """이름으로 정책 조회.

    Raises:
        ValueError: 등록되지 않은 정책 이름
    """
    if name not in POLICY_REGISTRY:
        available = ", ".join(sorted(POLICY_REGISTRY.keys()))
        raise ValueError(f"알 수 없는 시그널 정책: '{name}'. 사용 가능: {available}")
    return POLICY_REGISTRY[name]


def list_policies() -> list[str]:
    """등록된 정책 이름 목록 반환."""
    return sorted(POLICY_REGISTRY.keys())
