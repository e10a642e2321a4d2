"""
포지션 크기(주문 수량) 결정 정책.

[ 역할 ]
    시그널 하나를 몇 주로 체결할지 결정. 백테스트 엔진에 주입 가능.

[ 등록된 정책 ]
    fixed_fraction  현금 × position_fraction / 체결가 (매수/매도 동일 공식, 기본 10%)
    risk_budget     RiskManagementConfig 반영
                    - 매수: 종목당 최대 비중, 최대 보유 종목 수, 최소 현금, 일일 손실 한도
                    - 매도: 보유 수량 전량

[ 호출하는 곳 ]
    - backtest/engine.py::BacktestSimulator._execute_signal()
"""

import math
from abc import ABC, abstractmethod

from factor_trading.core.trading_strategy import SignalType
from factor_trading.data.portfolio import BacktestPortfolioState
from factor_trading.utils.config import BacktestConfig, RiskManagementConfig


class PositionSizer(ABC):
    """주문 수량 결정 추상 클래스. 0을 반환하면 주문하지 않는다."""

    @abstractmethod
    def size(
        self,
        side: SignalType,
        symbol: str,
        execution_price: float,
        state: BacktestPortfolioState,
    ) -> int:
        ...


class FixedFractionSizer(PositionSizer):
    """현금의 고정 비율만큼 주문."""

    def __init__(self, fraction: float = 0.10):
        if not 0 < fraction <= 1:
            raise ValueError(f"fraction은 (0, 1] 범위여야 합니다 ({fraction})")
        self.fraction = fraction

    def size(self, side, symbol, execution_price, state) -> int:
        if execution_price <= 0:
            return 0
        return math.floor(state.cash * self.fraction / execution_price)


class RiskBudgetSizer(PositionSizer):
    """리스크 관리 설정을 반영한 수량 결정."""

    def __init__(self, risk: RiskManagementConfig):
        self.risk = risk

    def size(self, side, symbol, execution_price, state) -> int:
        if execution_price <= 0:
            return 0

        if side is SignalType.SELL:
            return state.held_quantity(symbol)

        risk = self.risk
        if risk.max_daily_loss is not None and state.daily_loss >= risk.max_daily_loss:
            return 0

        position = state.get_position(symbol)
        if position is None and len(state.positions) >= risk.max_positions:
            return 0

        # 종목당 목표 금액 - 기보유 평가금액
        budget = state.total_value * risk.max_position_size
        if position is not None:
            budget -= position.market_value
        available_cash = state.cash - (risk.min_cash_reserve or 0.0)

        amount = min(budget, available_cash)
        if amount <= 0:
            return 0
        return math.floor(amount / execution_price)


def create_position_sizer(config: BacktestConfig, risk: RiskManagementConfig) -> PositionSizer:
    """BacktestConfig.position_sizing 이름으로 정책 생성.

    Raises:
        ValueError: 알 수 없는 정책 이름
    """
    if config.position_sizing == "fixed_fraction":
        return FixedFractionSizer(config.position_fraction)
    if config.position_sizing == "risk_budget":
        return RiskBudgetSizer(risk)
    raise ValueError(
        f"알 수 없는 포지션 크기 정책: '{config.position_sizing}'. 사용 가능: fixed_fraction, risk_budget"
    )
