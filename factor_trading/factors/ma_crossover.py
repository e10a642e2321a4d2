"""
이동평균 교차(MA Crossover) 팩터 구현.

[ 역할 ]
    core/factor.py::BaseFactor의 구현체. 추세 지표.
    단기 MA가 장기 MA를 상향 돌파 → 골든크로스 (강세)
    단기 MA가 장기 MA를 하향 돌파 → 데드크로스 (약세)

[ 평가 흐름 ]
    evaluate() 호출됨 (← strategies/engine.py에서)
        ├── 이력 < long → 중립 (데이터 부족)
        ├── 직전/현재 바의 단기·장기 SMA 비교
        │     ├── 아래→위 돌파 → +0.9 / 0.95
        │     └── 위→아래 돌파 → -0.9 / 0.95
        └── 교차 없음 → MA 괴리율(%)/10 로 추세 점수
              ├── 가격이 두 MA 위(강세) / 아래(약세)에서 추세 확인 → 점수·신뢰도 증폭
              └── 가격이 두 MA 사이 → 신뢰도 감쇠

[ 파라미터 ]
    short:                          단기 MA 기간 (2 ~ 200)
    long:                           장기 MA 기간 (2 ~ 500, short보다 커야 함)
    confirmation_score_boost:       추세 확인 시 점수 배수 (기본 1.2)
    confirmation_confidence_boost:  추세 확인 시 신뢰도 배수 (기본 1.1)
    mixed_confidence_damping:       가격이 MA 사이일 때 신뢰도 배수 (기본 0.7)
"""

from typing import Any

from factor_trading.core.factor import BaseFactor, EvaluationContext, FactorScore
from factor_trading.factors import register
from factor_trading.indicators.technical import get_last_value, get_value_back, sma
from factor_trading.utils.calculations import clamp, percent_diff

GOLDEN_CROSS_SCORE = 0.9
CROSSOVER_CONFIDENCE = 0.95
MAX_TREND_CONFIDENCE = 0.8


@register("MA_Crossover")
class MovingAverageCrossoverFactor(BaseFactor):
    """이동평균 교차 팩터."""

    CONFIRMATION_SCORE_BOOST = 1.2
    CONFIRMATION_CONFIDENCE_BOOST = 1.1
    MIXED_CONFIDENCE_DAMPING = 0.7

    def validate_params(self, params: dict[str, Any]) -> bool | str:
        short = params.get("short")
        long = params.get("long")

        if not isinstance(short, int) or short < 2 or short > 200:
            return "short must be between 2 and 200"
        if not isinstance(long, int) or long < 2 or long > 500:
            return "long must be between 2 and 500"
        if short >= long:
            return "short must be less than long"
        return True

    @property
    def short_period(self) -> int:
        return int(self.get_param("short"))

    @property
    def long_period(self) -> int:
        return int(self.get_param("long"))

    def _evaluate(self, context: EvaluationContext) -> FactorScore:
        closes = context.closes()
        if len(closes) < self.long_period:
            return self.insufficient_data(self.long_period, len(closes))

        short_ma = sma(closes, self.short_period)
        long_ma = sma(closes, self.long_period)

        current_short = get_last_value(short_ma)
        current_long = get_last_value(long_ma)
        prev_short = get_value_back(short_ma, 1)
        prev_long = get_value_back(long_ma, 1)
        price = context.current_price

        crossover = "none"
        if prev_short is not None and prev_long is not None:
            was_below = prev_short <= prev_long
            is_above = current_short > current_long
            if was_below and is_above:
                crossover = "golden"
            elif not was_below and not is_above:
                crossover = "death"

        ma_diff = percent_diff(current_short, current_long)

        if crossover == "golden":
            score, confidence = GOLDEN_CROSS_SCORE, CROSSOVER_CONFIDENCE
        elif crossover == "death":
            score, confidence = -GOLDEN_CROSS_SCORE, CROSSOVER_CONFIDENCE
        else:
            # 괴리율 10%를 최대 의미 구간으로 보고 [-1, 1]로 정규화
            score = clamp(ma_diff / 10, -1.0, 1.0)
            confidence = min(MAX_TREND_CONFIDENCE, abs(ma_diff) / 10)
            score, confidence = self._adjust_for_price_position(
                score, confidence, price, current_short, current_long,
            )

        return self.create_score(score, confidence, {
            "short_ma": current_short,
            "long_ma": current_long,
            "short_period": self.short_period,
            "long_period": self.long_period,
            "ma_diff": ma_diff,
            "price_position": self._price_position(price, current_short, current_long),
            "crossover": crossover,
            "interpretation": self._interpretation(crossover, current_short, current_long),
        })

    def _adjust_for_price_position(
        self,
        score: float,
        confidence: float,
        price: float,
        short_ma: float,
        long_ma: float,
    ) -> tuple[float, float]:
        """가격과 두 MA의 위치 관계로 점수/신뢰도 보정."""
        score_boost = float(self.get_param_or_default("confirmation_score_boost", self.CONFIRMATION_SCORE_BOOST))
        confidence_boost = float(self.get_param_or_default("confirmation_confidence_boost", self.CONFIRMATION_CONFIDENCE_BOOST))
        damping = float(self.get_param_or_default("mixed_confidence_damping", self.MIXED_CONFIDENCE_DAMPING))

        above_short = price > short_ma
        above_long = price > long_ma

        if above_short and above_long and score > 0:
            return clamp(score * score_boost, -1.0, 1.0), clamp(confidence * confidence_boost, 0.0, 1.0)
        if not above_short and not above_long and score < 0:
            return clamp(score * score_boost, -1.0, 1.0), clamp(confidence * confidence_boost, 0.0, 1.0)
        if above_short != above_long:
            return score, confidence * damping
        return score, confidence

    @staticmethod
    def _price_position(price: float, short_ma: float, long_ma: float) -> str:
        if price > short_ma and price > long_ma:
            return "above both"
        if price < short_ma and price < long_ma:
            return "below both"
        return "between"

    @staticmethod
    def _interpretation(crossover: str, short_ma: float, long_ma: float) -> str:
        if crossover == "golden":
            return "golden cross (bullish)"
        if crossover == "death":
            return "death cross (bearish)"
        return "uptrend" if short_ma > long_ma else "downtrend"
