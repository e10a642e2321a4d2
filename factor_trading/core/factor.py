"""
팩터(Factor) 추상 클래스 정의.

[ 역할 ]
    팩터는 평가 컨텍스트(종목 + 가격 이력)를 받아
    강세/약세 점수(-1 ~ 1)와 신뢰도(0 ~ 1)를 반환하는 플러그인.

[ 구현체 ]
    - factors/ma_crossover.py::MovingAverageCrossoverFactor (이동평균 교차)
    - factors/rsi.py::RSIFactor                              (RSI 과매수/과매도)
    - factors/macd.py::MACDFactor                            (MACD 모멘텀)

[ 호출하는 곳 ]
    - strategies/engine.py::StrategyEngine.evaluate_symbol()에서
      활성화된 모든 팩터의 evaluate()를 동시에 호출

[ 데이터 흐름 ]
    EvaluationContext → evaluate() → _evaluate() (구현체) → create_score() (클램프) → FactorScore
    점수 범위 보장은 구현체가 아니라 이 베이스 클래스가 책임진다.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any

import numpy as np

from factor_trading.core.data_provider import PriceBar
from factor_trading.utils.calculations import clamp


class FactorConfigError(ValueError):
    """팩터 설정(파라미터/가중치) 오류. 생성 시점에 즉시 발생."""


class FactorType(Enum):
    """팩터 종류."""
    TECHNICAL = "technical"
    FUNDAMENTAL = "fundamental"
    SENTIMENT = "sentiment"


@dataclass
class FactorConfig:
    """팩터 설정. config.yaml의 strategy.factors 항목 하나에 대응."""
    name: str                                        # 등록된 팩터 이름 (예: "RSI")
    type: FactorType = FactorType.TECHNICAL
    weight: float = 1.0                              # 상대 중요도 (0 이상)
    enabled: bool = True
    params: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if isinstance(self.type, str):
            self.type = FactorType(self.type)
        if self.weight < 0:
            raise FactorConfigError(f"{self.name}: weight는 0 이상이어야 합니다 ({self.weight})")


@dataclass(frozen=True)
class EvaluationContext:
    """팩터 평가 입력. 평가 중 변경되지 않는다."""
    symbol: str
    timestamp: date
    current_price: float
    history: tuple[PriceBar, ...] = ()   # 날짜 오름차순
    metadata: dict[str, Any] = field(default_factory=dict)

    def closes(self) -> np.ndarray:
        return np.array([bar.close for bar in self.history], dtype=float)

    def volumes(self) -> np.ndarray:
        return np.array([bar.volume for bar in self.history], dtype=float)


@dataclass(frozen=True)
class FactorScore:
    """evaluate()의 반환값. score ∈ [-1, 1], confidence ∈ [0, 1]."""
    factor_name: str
    factor_type: FactorType
    score: float
    confidence: float
    metadata: dict[str, Any] = field(default_factory=dict)


class BaseFactor(ABC):
    """팩터 추상 클래스.

    새 팩터를 만들려면 이 클래스를 상속받아 2개 메서드를 구현하면 된다:
    - validate_params(): 파라미터 검증 (생성자에서 1회 호출)
    - _evaluate(): 실제 점수 계산 (create_score()로 결과 생성)
    """

    def __init__(self, config: FactorConfig):
        self.name = config.name
        self.type = config.type
        self.weight = config.weight
        self.enabled = config.enabled
        self.params = dict(config.params)

        validation = self.validate_params(self.params)
        if validation is not True:
            raise FactorConfigError(f"팩터 설정 오류 ({self.name}): {validation}")

    @abstractmethod
    def validate_params(self, params: dict[str, Any]) -> bool | str:
        """파라미터 검증.

        Returns:
            유효하면 True, 아니면 오류 메시지
        """
        ...

    @abstractmethod
    def _evaluate(self, context: EvaluationContext) -> FactorScore:
        """팩터 점수 계산 (구현체 작성 부분)."""
        ...

    async def evaluate(self, context: EvaluationContext) -> FactorScore:
        """팩터 평가. 구현체 결과를 다시 클램프하여 범위를 보장한다."""
        result = self._evaluate(context)
        return self.create_score(result.score, result.confidence, result.metadata)

    def create_score(
        self,
        score: float,
        confidence: float,
        metadata: dict[str, Any] | None = None,
    ) -> FactorScore:
        """점수/신뢰도를 클램프하여 FactorScore 생성."""
        return FactorScore(
            factor_name=self.name,
            factor_type=self.type,
            score=clamp(score, -1.0, 1.0),
            confidence=clamp(confidence, 0.0, 1.0),
            metadata=dict(metadata or {}),
        )

    def insufficient_data(self, required: int, available: int) -> FactorScore:
        """데이터 부족 시 중립 점수 (오류 아님)."""
        return self.create_score(0.0, 0.0, {
            "error": "insufficient data",
            "required_bars": required,
            "available_bars": available,
        })

    def get_param(self, key: str) -> Any:
        """필수 파라미터 조회."""
        if key not in self.params:
            raise FactorConfigError(f"필수 파라미터 누락: {key}")
        return self.params[key]

    def get_param_or_default(self, key: str, default: Any) -> Any:
        """선택 파라미터 조회."""
        return self.params.get(key, default)
