"""
백테스트 포트폴리오 상태 관리 모듈.

[ 역할 ]
    현금, 보유 종목(BacktestPosition), 거래 기록(BacktestTrade), 일별 스냅샷을 통합 관리.
    백테스트 엔진이 매수/매도 실행 시 이 클래스를 통해 상태를 갱신.
    한 번의 백테스트 실행이 단독 소유하며 실행 간 공유하지 않는다.

[ 주요 클래스 ]
    BacktestPosition        - 개별 종목 수량/평균가/평가금액 추적
    BacktestTrade           - 개별 체결 내역 (매도 시 실현 손익 포함)
    BacktestSnapshot        - 일별 자산 스냅샷
    BacktestPortfolioState  - 전체 상태 (현금 + 포지션 + 거래내역 + 스냅샷)

[ 불변식 ]
    - 포지션 맵에 존재 ⇒ 수량 > 0 (수량이 0이 되면 즉시 제거)
    - 매수 체결 후 현금 ≥ 0 (현금 부족 매수는 부분 체결 없이 거부)

[ 호출하는 곳 ]
    - backtest/engine.py::BacktestSimulator
    - backtest/sizing.py (수량 계산 시 상태 조회)
    - backtest/metrics.py (trades, snapshots로 성과 계산)
"""

from dataclasses import dataclass, field
from datetime import date
from typing import Any, Optional

from factor_trading.core.trading_strategy import Signal


@dataclass
class BacktestPosition:
    """개별 종목 포지션. 첫 매수 체결 시 생성."""
    symbol: str
    quantity: int = 0
    average_price: float = 0.0    # 평균 매수가 (매수 시마다 가중평균 갱신)
    current_price: float = 0.0
    cost_basis: float = 0.0       # 보유분 취득원가
    market_value: float = 0.0
    unrealized_pnl: float = 0.0

    def update_on_buy(self, quantity: int, price: float) -> None:
        """매수 시 포지션 업데이트 (취득원가 가중평균)."""
        self.cost_basis += quantity * price
        self.quantity += quantity
        self.average_price = self.cost_basis / self.quantity
        self.mark(price)

    def update_on_sell(self, quantity: int, price: float) -> None:
        """매도 시 포지션 업데이트. 평균가는 유지."""
        self.quantity -= quantity
        self.cost_basis -= quantity * self.average_price
        if self.quantity == 0:
            self.cost_basis = 0.0
        self.mark(price)

    def mark(self, price: float) -> None:
        """현재가 기준 평가금액/평가손익 갱신."""
        self.current_price = price
        self.market_value = self.quantity * price
        self.unrealized_pnl = self.market_value - self.cost_basis


@dataclass
class BacktestTrade:
    """개별 체결 기록. metrics.py에서 승률/수익 계산에 사용됨."""
    backtest_id: str
    date: date
    symbol: str
    side: str                     # "buy" or "sell"
    quantity: int
    price: float                  # 체결 가격 (슬리피지 적용 후)
    amount: float                 # quantity × price + commission
    commission: float = 0.0
    signal: Optional[Signal] = None
    pnl: Optional[float] = None   # 실현 손익 (매도 시에만)

    def to_dict(self) -> dict[str, Any]:
        return {
            "backtest_id": self.backtest_id,
            "date": self.date.isoformat(),
            "symbol": self.symbol,
            "side": self.side,
            "quantity": self.quantity,
            "price": self.price,
            "amount": self.amount,
            "commission": self.commission,
            "signal": self.signal.to_dict() if self.signal else None,
            "pnl": self.pnl,
        }


@dataclass
class BacktestSnapshot:
    """일별 스냅샷. daily_return/cumulative_return은 금액 기준 (비율 아님)."""
    date: date
    cash: float
    positions_value: float
    total_value: float
    daily_return: float
    cumulative_return: float


class BacktestPortfolioState:
    """백테스트 포트폴리오 상태.

    BacktestSimulator가 실행마다 새로 만들어 소유하며, 매수/매도 결과를 반영.
    trades/snapshots는 실행 종료 후 metrics 계산에 사용됨.
    """

    def __init__(self, initial_cash: float):
        self.initial_cash = initial_cash
        self.cash = initial_cash
        self.positions: dict[str, BacktestPosition] = {}   # symbol → BacktestPosition
        self.total_value = initial_cash
        self.daily_values: list[float] = []
        self.trades: list[BacktestTrade] = []
        self.snapshots: list[BacktestSnapshot] = []
        self._daily_loss: float = 0.0       # 당일 누적 실현 손실 (리스크 관리용)
        self._daily_loss_date: Optional[date] = None

    @property
    def positions_value(self) -> float:
        return sum(p.market_value for p in self.positions.values())

    @property
    def daily_loss(self) -> float:
        """당일 누적 실현 손실 금액."""
        return self._daily_loss

    def get_position(self, symbol: str) -> Optional[BacktestPosition]:
        """보유 포지션 조회. 미보유면 None."""
        return self.positions.get(symbol)

    def held_quantity(self, symbol: str) -> int:
        position = self.positions.get(symbol)
        return position.quantity if position else 0

    def mark_to_market(self, closes: dict[str, float]) -> float:
        """당일 종가로 보유 포지션 평가. 종가가 없는 종목은 직전 가격 유지.

        Returns:
            갱신된 총 자산 (현금 + 평가금액)
        """
        for symbol, position in self.positions.items():
            price = closes.get(symbol)
            if price is not None:
                position.mark(price)
        self.total_value = self.cash + self.positions_value
        return self.total_value

    def start_day(self, current_date: date) -> None:
        """날짜가 바뀌면 일일 손실 집계 초기화."""
        if current_date != self._daily_loss_date:
            self._daily_loss = 0.0
            self._daily_loss_date = current_date

    def execute_buy(
        self,
        backtest_id: str,
        current_date: date,
        symbol: str,
        quantity: int,
        price: float,
        commission: float,
        signal: Optional[Signal] = None,
    ) -> Optional[BacktestTrade]:
        """매수 실행. 현금 부족이면 None (부분 체결 없음)."""
        if quantity <= 0:
            return None
        amount = quantity * price + commission
        if amount > self.cash:
            return None

        self.cash -= amount
        position = self.positions.get(symbol)
        if position is None:
            position = BacktestPosition(symbol=symbol)
            self.positions[symbol] = position
        position.update_on_buy(quantity, price)
        self.total_value = self.cash + self.positions_value

        trade = BacktestTrade(
            backtest_id=backtest_id,
            date=current_date,
            symbol=symbol,
            side="buy",
            quantity=quantity,
            price=price,
            amount=amount,
            commission=commission,
            signal=signal,
        )
        self.trades.append(trade)
        return trade

    def execute_sell(
        self,
        backtest_id: str,
        current_date: date,
        symbol: str,
        quantity: int,
        price: float,
        commission: float,
        signal: Optional[Signal] = None,
    ) -> Optional[BacktestTrade]:
        """매도 실행. 보유 수량보다 많으면 None."""
        position = self.positions.get(symbol)
        if quantity <= 0 or position is None or quantity > position.quantity:
            return None
        # 수수료가 매도대금보다 커서 현금이 음수가 되는 체결은 거부
        if self.cash + quantity * price - commission < 0:
            return None

        pnl = (price - position.average_price) * quantity - commission
        self.cash += quantity * price - commission
        position.update_on_sell(quantity, price)
        if position.quantity == 0:
            del self.positions[symbol]
        self.total_value = self.cash + self.positions_value

        self.start_day(current_date)
        if pnl < 0:
            self._daily_loss += abs(pnl)

        trade = BacktestTrade(
            backtest_id=backtest_id,
            date=current_date,
            symbol=symbol,
            side="sell",
            quantity=quantity,
            price=price,
            amount=quantity * price + commission,
            commission=commission,
            signal=signal,
            pnl=pnl,
        )
        self.trades.append(trade)
        return trade

    def take_snapshot(self, current_date: date) -> BacktestSnapshot:
        """당일 마감 스냅샷 기록. 첫날 daily_return은 0."""
        positions_value = self.positions_value
        total_value = self.cash + positions_value
        previous = self.daily_values[-1] if self.daily_values else total_value
        self.daily_values.append(total_value)
        self.total_value = total_value

        snapshot = BacktestSnapshot(
            date=current_date,
            cash=self.cash,
            positions_value=positions_value,
            total_value=total_value,
            daily_return=total_value - previous,
            cumulative_return=total_value - self.daily_values[0],
        )
        self.snapshots.append(snapshot)
        return snapshot

    def get_summary(self) -> dict[str, Any]:
        """포트폴리오 요약."""
        return {
            "initial_cash": self.initial_cash,
            "current_cash": self.cash,
            "positions_value": self.positions_value,
            "total_value": self.total_value,
            "total_profit": self.total_value - self.initial_cash,
            "num_holdings": len(self.positions),
            "num_trades": len(self.trades),
        }
