"""
매매 시그널 정의.

[ 역할 ]
    전략 엔진이 반환하는 매수/매도/홀드 결정(Signal)의 자료형.
    (전략, 종목, 평가 시점)당 한 번 생성되며 이후 변경되지 않는다.

[ 생성하는 곳 ]
    - strategies/engine.py::StrategyEngine.evaluate_symbol()

[ 사용하는 곳 ]
    - backtest/engine.py::BacktestSimulator가 매일 시그널을 받아 주문으로 변환
    - data/portfolio.py::BacktestTrade에 체결을 유발한 시그널로 기록
"""

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Optional

from factor_trading.core.factor import FactorScore


class SignalType(Enum):
    """전략이 반환하는 시그널 종류."""
    BUY = "BUY"
    SELL = "SELL"
    HOLD = "HOLD"


@dataclass(frozen=True)
class SignalMetadata:
    """시그널 부가정보. 손절/익절가와 사람이 읽을 수 있는 근거."""
    stop_loss: Optional[float] = None
    take_profit: Optional[float] = None
    reasoning: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "stop_loss": self.stop_loss,
            "take_profit": self.take_profit,
            "reasoning": self.reasoning,
        }


@dataclass(frozen=True)
class Signal:
    """전략의 결정. strength = |결합 점수| ∈ [0, 1]."""
    symbol: str
    signal_type: SignalType
    strength: float
    timestamp: date
    factor_scores: tuple[FactorScore, ...] = ()
    metadata: SignalMetadata = field(default_factory=SignalMetadata)
    price: float = 0.0   # 평가 시점 가격

    @property
    def is_actionable(self) -> bool:
        return self.signal_type is not SignalType.HOLD

    def to_dict(self) -> dict[str, Any]:
        """직렬화용 딕셔너리 (거래 기록 저장 시 사용)."""
        return {
            "symbol": self.symbol,
            "type": self.signal_type.value,
            "strength": self.strength,
            "timestamp": self.timestamp.isoformat(),
            "price": self.price,
            "factor_scores": [
                {
                    "factor_name": s.factor_name,
                    "factor_type": s.factor_type.value,
                    "score": s.score,
                    "confidence": s.confidence,
                }
                for s in self.factor_scores
            ],
            "metadata": self.metadata.to_dict(),
        }
