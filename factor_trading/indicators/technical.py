"""
기술적 지표 계산 모듈.

[ 역할 ]
    가격 시퀀스를 받아 지표 시퀀스를 반환하는 순수 함수 모음. 상태 없음.
    결과 배열은 입력과 길이가 같고, 계산 불가 구간(윈도우 부족)은 NaN.

[ 제공 지표 ]
    - sma()             단순 이동평균
    - ema()             지수 이동평균
    - rsi()             상대강도지수 (Wilder 평활)
    - macd()            MACD / 시그널 / 히스토그램
    - bollinger_bands() 볼린저 밴드
    - atr()             평균 실제 범위

[ 조회 헬퍼 ]
    get_last_value(), get_value(), get_value_back()
    범위 밖이거나 NaN이면 예외 대신 None 반환 → 호출측은 "데이터 부족"으로 처리.

[ 호출하는 곳 ]
    - factors/ma_crossover.py, factors/rsi.py, factors/macd.py
"""

import math
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np
from numpy.lib.stride_tricks import sliding_window_view

from factor_trading.core.data_provider import PriceBar


def _as_array(values: Sequence[float]) -> np.ndarray:
    return np.asarray(values, dtype=float)


def sma(values: Sequence[float], period: int) -> np.ndarray:
    """단순 이동평균. 앞쪽 period-1개는 NaN."""
    prices = _as_array(values)
    result = np.full(len(prices), np.nan)
    if period <= 0 or len(prices) < period:
        return result
    windows = sliding_window_view(prices, period)
    result[period - 1:] = windows.mean(axis=1)
    return result


def ema(values: Sequence[float], period: int) -> np.ndarray:
    """지수 이동평균. 첫 값은 최초 period개의 SMA로 시작."""
    prices = _as_array(values)
    result = np.full(len(prices), np.nan)
    if period <= 0 or len(prices) < period:
        return result

    multiplier = 2 / (period + 1)
    result[period - 1] = prices[:period].mean()
    for i in range(period, len(prices)):
        result[i] = (prices[i] - result[i - 1]) * multiplier + result[i - 1]
    return result


def rsi(values: Sequence[float], period: int = 14) -> np.ndarray:
    """RSI (Wilder 평활). period+1개 관측치부터 정의됨.

    평균 손실이 0이면 100으로 포화 (0 나눗셈 없음).
    평균 상승폭과 평균 손실이 모두 0이면 (가격 변동 없음) 50(중립).
    """
    prices = _as_array(values)
    result = np.full(len(prices), np.nan)
    if period <= 0 or len(prices) < period + 1:
        return result

    changes = np.diff(prices)
    gains = np.where(changes > 0, changes, 0.0)
    losses = np.where(changes < 0, -changes, 0.0)

    avg_gain = gains[:period].sum() / period
    avg_loss = losses[:period].sum() / period
    result[period] = _rsi_from_averages(avg_gain, avg_loss)

    for i in range(period, len(changes)):
        avg_gain = (avg_gain * (period - 1) + gains[i]) / period
        avg_loss = (avg_loss * (period - 1) + losses[i]) / period
        result[i + 1] = _rsi_from_averages(avg_gain, avg_loss)

    return result


def _rsi_from_averages(avg_gain: float, avg_loss: float) -> float:
    if avg_gain == 0 and avg_loss == 0:
        return 50.0
    if avg_loss == 0:
        return 100.0
    rs = avg_gain / avg_loss
    return 100 - 100 / (1 + rs)


@dataclass
class MACDResult:
    """macd() 반환값. 세 배열 모두 입력과 길이가 같다."""
    macd: np.ndarray
    signal: np.ndarray
    histogram: np.ndarray


def macd(
    values: Sequence[float],
    fast_period: int = 12,
    slow_period: int = 26,
    signal_period: int = 9,
) -> MACDResult:
    """MACD 라인(fast EMA - slow EMA), 시그널 라인(MACD의 EMA), 히스토그램."""
    prices = _as_array(values)
    macd_line = ema(prices, fast_period) - ema(prices, slow_period)

    # 시그널 라인은 MACD가 정의된 구간부터 계산 후 앞쪽을 NaN으로 채움
    start = slow_period - 1
    signal_line = np.full(len(prices), np.nan)
    if len(prices) > start:
        signal_line[start:] = ema(macd_line[start:], signal_period)

    return MACDResult(
        macd=macd_line,
        signal=signal_line,
        histogram=macd_line - signal_line,
    )


@dataclass
class BollingerBands:
    """bollinger_bands() 반환값."""
    upper: np.ndarray
    middle: np.ndarray
    lower: np.ndarray


def bollinger_bands(
    values: Sequence[float],
    period: int = 20,
    std_dev: float = 2.0,
) -> BollingerBands:
    """볼린저 밴드. 표준편차는 모집단 기준."""
    prices = _as_array(values)
    middle = sma(prices, period)
    width = np.full(len(prices), np.nan)
    if 0 < period <= len(prices):
        width[period - 1:] = sliding_window_view(prices, period).std(axis=1)
    return BollingerBands(
        upper=middle + std_dev * width,
        middle=middle,
        lower=middle - std_dev * width,
    )


def atr(bars: Sequence[PriceBar], period: int = 14) -> np.ndarray:
    """평균 실제 범위(ATR). True Range의 EMA."""
    true_ranges = []
    for i, bar in enumerate(bars):
        if i == 0:
            true_ranges.append(bar.high - bar.low)
            continue
        prev_close = bars[i - 1].close
        true_ranges.append(max(
            bar.high - bar.low,
            abs(bar.high - prev_close),
            abs(bar.low - prev_close),
        ))
    return ema(true_ranges, period)


# ─── 조회 헬퍼 ──────────────────────────────────────────────────────────────

def get_last_value(values: Sequence[float]) -> Optional[float]:
    """마지막으로 정의된(NaN 아닌) 값. 없으면 None."""
    for value in reversed(values):
        if not math.isnan(value):
            return float(value)
    return None


def get_value(values: Sequence[float], index: int) -> Optional[float]:
    """index 위치 값. 범위 밖이거나 NaN이면 None."""
    if index < 0 or index >= len(values):
        return None
    value = values[index]
    if math.isnan(value):
        return None
    return float(value)


def get_value_back(values: Sequence[float], n: int) -> Optional[float]:
    """끝에서 n칸 전 값 (n=0이면 마지막 원소). 범위 밖이거나 NaN이면 None."""
    if n < 0:
        return None
    return get_value(values, len(values) - 1 - n)
