"""
RSI(상대강도지수) 팩터 구현.

[ 역할 ]
    core/factor.py::BaseFactor의 구현체. 모멘텀 지표.
    RSI ≤ oversold   → 과매도
    RSI ≥ overbought → 과매수
    그 사이(중립 구간)는 중간값 대비 편차를 감쇠하여 약한 점수만 부여.

[ 파라미터 ]
    period:             RSI 기간 (2 ~ 100)
    oversold:           과매도 기준 (0 ~ 50)
    overbought:         과매수 기준 (50 ~ 100, oversold보다 커야 함)
    neutral_damping:    중립 구간 점수 감쇠 배수 (기본 0.5)
    neutral_confidence: 중립 구간 신뢰도 (기본 0.3)
"""

from typing import Any

from factor_trading.core.factor import BaseFactor, EvaluationContext, FactorScore
from factor_trading.factors import register
from factor_trading.indicators.technical import get_last_value, rsi
from factor_trading.utils.calculations import normalize_score


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


@register("RSI")
class RSIFactor(BaseFactor):
    """RSI 팩터."""

    NEUTRAL_DAMPING = 0.5
    NEUTRAL_CONFIDENCE = 0.3

    def validate_params(self, params: dict[str, Any]) -> bool | str:
        period = params.get("period")
        oversold = params.get("oversold")
        overbought = params.get("overbought")

        if not isinstance(period, int) or period < 2 or period > 100:
            return "period must be between 2 and 100"
        if not _is_number(oversold) or oversold <= 0 or oversold >= 50:
            return "oversold must be between 0 and 50"
        if not _is_number(overbought) or overbought <= 50 or overbought >= 100:
            return "overbought must be between 50 and 100"
        if oversold >= overbought:
            return "oversold must be less than overbought"
        return True

    def _evaluate(self, context: EvaluationContext) -> FactorScore:
        period = int(self.get_param("period"))
        oversold = float(self.get_param("oversold"))
        overbought = float(self.get_param("overbought"))

        closes = context.closes()
        if len(closes) < period + 1:
            return self.insufficient_data(period + 1, len(closes))

        current_rsi = get_last_value(rsi(closes, period))
        if current_rsi is None:
            return self.create_score(0.0, 0.0, {"error": "unable to calculate RSI"})

        if current_rsi <= oversold:
            # 과매도: RSI가 낮을수록 normalize 값이 작아져 점수가 커진다
            score = -normalize_score(current_rsi, 0, oversold)
            confidence = min(1.0, (oversold - current_rsi) / oversold)
            interpretation = "oversold"
        elif current_rsi >= overbought:
            score = -normalize_score(current_rsi, overbought, 100)
            confidence = min(1.0, (current_rsi - overbought) / (100 - overbought))
            interpretation = "overbought"
        else:
            damping = float(self.get_param_or_default("neutral_damping", self.NEUTRAL_DAMPING))
            mid = (oversold + overbought) / 2
            deviation = normalize_score(current_rsi, oversold, overbought) - normalize_score(mid, oversold, overbought)
            score = deviation * damping
            confidence = float(self.get_param_or_default("neutral_confidence", self.NEUTRAL_CONFIDENCE))
            interpretation = "neutral"

        return self.create_score(score, confidence, {
            "rsi": current_rsi,
            "period": period,
            "oversold": oversold,
            "overbought": overbought,
            "interpretation": interpretation,
        })
