"""
공통 수치 계산 유틸리티.

[ 역할 ]
    팩터/전략/백테스트 전반에서 재사용되는 작은 계산 함수 모음.

[ 호출하는 곳 ]
    - core/factor.py::BaseFactor.create_score()  → clamp()
    - factors/rsi.py                             → normalize_score()
    - factors/ma_crossover.py                    → percent_diff()
    - strategies/engine.py                       → combine_factor_scores()
"""

import math
from typing import Iterable


def clamp(value: float, lower: float, upper: float) -> float:
    """value를 [lower, upper] 범위로 제한. NaN은 0으로 취급."""
    if value is None or math.isnan(value):
        value = 0.0
    return max(lower, min(upper, value))


def normalize_score(value: float, min_value: float, max_value: float) -> float:
    """[min_value, max_value] 구간을 [-1, 1]로 선형 변환.

    구간 폭이 0이면 0 반환.
    """
    if max_value == min_value:
        return 0.0
    return (value - min_value) / (max_value - min_value) * 2 - 1


def percent_diff(value: float, base: float) -> float:
    """base 대비 value의 차이 (%)."""
    if base == 0:
        return 0.0
    return (value - base) / base * 100


def combine_factor_scores(scores: Iterable[tuple[float, float]]) -> float:
    """(점수, 가중치) 목록의 가중 평균. 총 가중치가 0이면 0."""
    pairs = list(scores)
    total_weight = sum(weight for _, weight in pairs)
    if total_weight == 0:
        return 0.0
    return sum(score * weight for score, weight in pairs) / total_weight
