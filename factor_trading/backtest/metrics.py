"""
백테스트 성과 지표 계산 모듈.

[ 역할 ]
    백테스트 결과(일별 스냅샷 + 체결 기록)를 받아 성과 지표를 계산.
    calculate_performance() 함수가 핵심.

[ 계산하는 지표 ]
    - 총 수익(금액) / 총 수익률 / 연환산 수익률
    - 샤프 비율 (일별 금액 수익의 평균 / 모표준편차 × √252)
    - MDD (최대 낙폭, %)
    - 승률, 평균 수익/손실, 수익 팩터 (매도 체결의 실현 손익 기준)
    - 연속 승/패

[ 호출하는 곳 ]
    - backtest/engine.py::BacktestSimulator.run_backtest() 완료 시 호출
"""

from dataclasses import asdict, dataclass
from typing import Any

import numpy as np

from factor_trading.data.portfolio import BacktestSnapshot, BacktestTrade

TRADING_DAYS_PER_YEAR = 252


@dataclass
class StrategyPerformance:
    """백테스트 성과 지표. 실행 종료 시 한 번 계산되는 읽기 전용 결과."""
    total_return: float = 0.0           # 총 수익 (금액)
    total_return_percent: float = 0.0   # 총 수익률 (%)
    annual_return: float = 0.0          # 연환산 수익률 (%)
    sharpe_ratio: float = 0.0
    max_drawdown: float = 0.0           # 최대 낙폭 MDD (%)
    win_rate: float = 0.0               # 승률 (%)
    profit_factor: float = 0.0          # 총이익 / 총손실
    total_trades: int = 0               # 전체 체결 수 (매수 + 매도)
    avg_trade_return: float = 0.0       # 총 수익 / 전체 체결 수
    winning_trades: int = 0
    losing_trades: int = 0
    avg_profit: float = 0.0
    avg_loss: float = 0.0
    max_consecutive_wins: int = 0
    max_consecutive_losses: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    def summary(self) -> str:
        """성과 요약 문자열."""
        lines = [
            "=" * 50,
            "백테스트 성과 리포트",
            "=" * 50,
            f"총 수익:         {self.total_return:>14,.2f}",
            f"총 수익률:       {self.total_return_percent:>13.2f}%",
            f"연환산 수익률:    {self.annual_return:>13.2f}%",
            f"샤프 비율:       {self.sharpe_ratio:>14.2f}",
            f"최대 낙폭(MDD):  {self.max_drawdown:>13.2f}%",
            "-" * 50,
            f"총 체결 횟수:    {self.total_trades:>14d}",
            f"승률:            {self.win_rate:>13.2f}%",
            f"수익 거래:       {self.winning_trades:>14d}",
            f"손실 거래:       {self.losing_trades:>14d}",
            f"평균 수익:       {self.avg_profit:>14,.2f}",
            f"평균 손실:       {self.avg_loss:>14,.2f}",
            f"수익 팩터:       {self.profit_factor:>14.2f}",
            f"체결당 평균 수익: {self.avg_trade_return:>14,.2f}",
            "-" * 50,
            f"최대 연속 수익:  {self.max_consecutive_wins:>14d}",
            f"최대 연속 손실:  {self.max_consecutive_losses:>14d}",
            "=" * 50,
        ]
        return "\n".join(lines)


def calculate_max_drawdown(values: list[float]) -> float:
    """고점 대비 최대 하락폭 (%)."""
    if not values:
        return 0.0
    peak = values[0]
    max_dd = 0.0
    for value in values:
        if value > peak:
            peak = value
        if peak > 0:
            max_dd = max(max_dd, (peak - value) / peak * 100)
    return max_dd


def calculate_sharpe_ratio(daily_returns: list[float]) -> float:
    """일별 수익의 평균 / 모표준편차 × √252. 표준편차가 0이면 0."""
    if not daily_returns:
        return 0.0
    returns = np.array(daily_returns, dtype=float)
    std = float(np.std(returns))
    if std <= 0:
        return 0.0
    return float(np.mean(returns) / std * np.sqrt(TRADING_DAYS_PER_YEAR))


def calculate_performance(
    snapshots: list[BacktestSnapshot],
    trades: list[BacktestTrade],
    initial_cash: float,
) -> StrategyPerformance:
    """성과 지표 계산. engine.py에서 백테스트 완료 후 호출됨.

    Args:
        snapshots: 일별 스냅샷 (날짜 오름차순)
        trades: 전체 체결 기록 (매수 + 매도)
        initial_cash: 초기 자금
    """
    performance = StrategyPerformance()

    if not snapshots:
        return performance

    # ─── 수익률 ─────────────────────────────────────────────────────────
    values = [s.total_value for s in snapshots]
    final_value = values[-1]
    performance.total_return = final_value - initial_cash
    if initial_cash > 0:
        performance.total_return_percent = performance.total_return / initial_cash * 100
        years = len(snapshots) / TRADING_DAYS_PER_YEAR
        if final_value > 0:
            try:
                performance.annual_return = ((final_value / initial_cash) ** (1 / years) - 1) * 100
            except OverflowError:
                # 초단기 구간의 연환산은 발산할 수 있음
                performance.annual_return = float("inf")

    # ─── 위험 지표 ──────────────────────────────────────────────────────
    performance.max_drawdown = calculate_max_drawdown(values)
    performance.sharpe_ratio = calculate_sharpe_ratio([s.daily_return for s in snapshots])

    # ─── 거래 기반 지표 ─────────────────────────────────────────────────
    performance.total_trades = len(trades)
    if trades:
        performance.avg_trade_return = performance.total_return / len(trades)

    # 실현 손익은 매도 체결에서만 발생
    realized = [t.pnl for t in trades if t.side == "sell" and t.pnl is not None]
    if realized:
        winners = [p for p in realized if p > 0]
        losers = [p for p in realized if p < 0]

        performance.winning_trades = len(winners)
        performance.losing_trades = len(losers)
        performance.win_rate = len(winners) / len(realized) * 100

        if winners:
            performance.avg_profit = sum(winners) / len(winners)
        if losers:
            performance.avg_loss = sum(losers) / len(losers)

        gross_profit = sum(winners)
        gross_loss = abs(sum(losers))
        if gross_loss > 0:
            performance.profit_factor = gross_profit / gross_loss
        elif gross_profit > 0:
            performance.profit_factor = float("inf")

        # 연속 승패
        wins = losses = 0
        for pnl in realized:
            if pnl > 0:
                wins += 1
                losses = 0
            elif pnl < 0:
                losses += 1
                wins = 0
            else:
                wins = losses = 0
            performance.max_consecutive_wins = max(performance.max_consecutive_wins, wins)
            performance.max_consecutive_losses = max(performance.max_consecutive_losses, losses)

    return performance
