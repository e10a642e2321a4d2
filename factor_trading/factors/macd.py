"""
MACD 팩터 구현.

[ 역할 ]
    core/factor.py::BaseFactor의 구현체. 모멘텀 + 추세 지표.
    히스토그램이 0을 상향 돌파 → 강세 교차, 하향 돌파 → 약세 교차.
    교차가 없으면 히스토그램 크기(최대 절댓값 대비)로 점수 부여.

[ 파라미터 ]
    fast:   단기 EMA 기간 (2 ~ 50)
    slow:   장기 EMA 기간 (2 ~ 100, fast보다 커야 함)
    signal: 시그널 EMA 기간 (2 ~ 50)
"""

from typing import Any

import numpy as np

from factor_trading.core.factor import BaseFactor, EvaluationContext, FactorScore
from factor_trading.factors import register
from factor_trading.indicators.technical import get_last_value, get_value_back, macd

CROSSOVER_SCORE = 0.8
CROSSOVER_CONFIDENCE = 0.9
MAX_HISTOGRAM_CONFIDENCE = 0.7


@register("MACD")
class MACDFactor(BaseFactor):
    """MACD 팩터."""

    def validate_params(self, params: dict[str, Any]) -> bool | str:
        fast = params.get("fast")
        slow = params.get("slow")
        signal = params.get("signal")

        if not isinstance(fast, int) or fast < 2 or fast > 50:
            return "fast must be between 2 and 50"
        if not isinstance(slow, int) or slow < 2 or slow > 100:
            return "slow must be between 2 and 100"
        if not isinstance(signal, int) or signal < 2 or signal > 50:
            return "signal must be between 2 and 50"
        if fast >= slow:
            return "fast must be less than slow"
        return True

    def _evaluate(self, context: EvaluationContext) -> FactorScore:
        fast = int(self.get_param("fast"))
        slow = int(self.get_param("slow"))
        signal = int(self.get_param("signal"))

        closes = context.closes()
        if len(closes) < slow + signal:
            return self.insufficient_data(slow + signal, len(closes))

        result = macd(closes, fast, slow, signal)
        current_macd = get_last_value(result.macd)
        current_signal = get_last_value(result.signal)
        current_hist = get_last_value(result.histogram)
        prev_hist = get_value_back(result.histogram, 1)

        if current_macd is None or current_signal is None or current_hist is None:
            return self.create_score(0.0, 0.0, {"error": "unable to calculate MACD"})

        crossover = "none"
        if prev_hist is not None:
            if prev_hist <= 0 < current_hist:
                crossover = "bullish"
            elif prev_hist >= 0 > current_hist:
                crossover = "bearish"

        if crossover == "bullish":
            score, confidence = CROSSOVER_SCORE, CROSSOVER_CONFIDENCE
        elif crossover == "bearish":
            score, confidence = -CROSSOVER_SCORE, CROSSOVER_CONFIDENCE
        else:
            score, confidence = 0.0, 0.5
            max_hist = float(np.nanmax(np.abs(result.histogram)))
            if max_hist > 0:
                score = current_hist / max_hist
                confidence = min(MAX_HISTOGRAM_CONFIDENCE, abs(score))

        # MACD-시그널 간격이 클수록 신뢰도 가산 (평균 종가 대비 정규화)
        separation = abs(current_macd - current_signal) / float(closes.mean())
        confidence = min(1.0, confidence + separation * 10)

        if current_hist > 0:
            interpretation = "bullish momentum"
        elif current_hist < 0:
            interpretation = "bearish momentum"
        else:
            interpretation = "neutral"

        return self.create_score(score, confidence, {
            "macd": current_macd,
            "signal": current_signal,
            "histogram": current_hist,
            "crossover": crossover,
            "interpretation": interpretation,
        })
