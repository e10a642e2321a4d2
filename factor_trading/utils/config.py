"""
설정 관리 모듈.

[ 역할 ]
    config.yaml (또는 .json) 파일을 파싱하여 Config 객체로 변환.
    전략(팩터/리스크 관리/종목), 백테스트 파라미터, DB, 로깅 설정을 통합 관리.
    코어는 이 설정을 읽기 전용 입력으로만 사용한다.

[ 설정 파일 구조 (config.yaml) ]
    strategy:         → StrategyConfig
      factors:          → FactorConfig 리스트
      risk_management:  → RiskManagementConfig
    backtest:         → BacktestConfig
    database:         → DatabaseConfig
    log_level:        → "INFO" / "DEBUG"
    log_dir:          → 로그 디렉토리 경로

[ 호출하는 곳 ]
    - run_backtest.py에서 Config.from_yaml()로 로드
    - strategies/engine.py::StrategyEngine이 StrategyConfig를 사용
    - backtest/engine.py::BacktestSimulator가 BacktestConfig를 사용
"""

import json
from dataclasses import asdict, dataclass, field
from datetime import date
from enum import Enum
from pathlib import Path
from typing import Any, Optional

import yaml

from factor_trading.core.factor import FactorConfig


@dataclass
class RiskManagementConfig:
    """리스크 관리 설정. strategy.risk_management 섹션에 대응."""
    max_position_size: float = 0.1            # 종목당 최대 비중 (포트폴리오 대비 비율)
    max_positions: int = 10                   # 최대 동시 보유 종목 수
    stop_loss_percent: float = 0.05           # 손절 비율 (진입가 대비)
    take_profit_percent: Optional[float] = None
    max_daily_loss: Optional[float] = None    # 일일 최대 실현 손실 (금액)
    min_cash_reserve: Optional[float] = None  # 최소 보유 현금 (금액)


@dataclass
class StrategyConfig:
    """전략 설정. config.yaml의 strategy 섹션에 대응."""
    name: str = "default"
    symbols: list[str] = field(default_factory=list)   # 종목 유니버스
    factors: list[FactorConfig] = field(default_factory=list)
    risk_management: RiskManagementConfig = field(default_factory=RiskManagementConfig)
    signal_policy: str = "default"                      # strategies/policies.py 등록 이름
    enabled: bool = True

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "StrategyConfig":
        factors = [
            FactorConfig(**{k: v for k, v in f.items() if k in FactorConfig.__dataclass_fields__})
            for f in data.get("factors", [])
        ]
        risk_data = data.get("risk_management", {}) or {}
        risk = RiskManagementConfig(**{
            k: v for k, v in risk_data.items()
            if k in RiskManagementConfig.__dataclass_fields__
        })
        return cls(
            name=data.get("name", "default"),
            symbols=list(data.get("symbols", [])),
            factors=factors,
            risk_management=risk,
            signal_policy=data.get("signal_policy", "default"),
            enabled=bool(data.get("enabled", True)),
        )


@dataclass
class BacktestConfig:
    """백테스트 설정. config.yaml의 backtest 섹션에 대응."""
    start_date: str = "2024-01-01"
    end_date: str = "2024-12-31"
    initial_cash: float = 100_000
    commission: float = 1.0                  # 거래당 고정 수수료
    slippage: float = 0.001                  # 슬리피지 비율
    position_sizing: str = "fixed_fraction"  # backtest/sizing.py 등록 이름
    position_fraction: float = 0.10          # fixed_fraction: 1회 매수에 쓰는 현금 비율
    warmup_days: int = 0                     # 지표 계산용 선행 이력 (달력일)

    @property
    def start(self) -> date:
        return date.fromisoformat(str(self.start_date))

    @property
    def end(self) -> date:
        return date.fromisoformat(str(self.end_date))


@dataclass
class DatabaseConfig:
    """데이터베이스 설정. config.yaml의 database 섹션에 대응."""
    host: str = "localhost"
    port: int = 8123
    database: str = "default"
    user: str = "default"
    password: str = "password"
    use_adjusted_close: bool = True


@dataclass
class Config:
    """전체 설정. from_yaml() 또는 from_json()으로 파일에서 로드."""
    strategy: StrategyConfig = field(default_factory=StrategyConfig)
    backtest: BacktestConfig = field(default_factory=BacktestConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    log_level: str = "INFO"
    log_dir: str = "logs"

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Config":
        """YAML 파일에서 설정 로드."""
        path = Path(path)
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
        return cls._from_dict(data or {})

    @classmethod
    def from_json(cls, path: str | Path) -> "Config":
        """JSON 파일에서 설정 로드."""
        path = Path(path)
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        return cls._from_dict(data)

    @classmethod
    def _from_dict(cls, data: dict[str, Any]) -> "Config":
        """딕셔너리에서 Config 생성. 알 수 없는 키는 무시."""
        backtest_data = data.get("backtest", {}) or {}
        database_data = data.get("database", {}) or {}

        backtest = BacktestConfig(**{
            k: v for k, v in backtest_data.items()
            if k in BacktestConfig.__dataclass_fields__
        })
        # YAML은 날짜를 date 객체로 읽으므로 문자열로 통일
        backtest.start_date = str(backtest.start_date)
        backtest.end_date = str(backtest.end_date)

        database = DatabaseConfig(**{
            k: v for k, v in database_data.items()
            if k in DatabaseConfig.__dataclass_fields__
        })

        return cls(
            strategy=StrategyConfig.from_dict(data.get("strategy", {}) or {}),
            backtest=backtest,
            database=database,
            log_level=data.get("log_level", "INFO"),
            log_dir=data.get("log_dir", "logs"),
        )

    def to_dict(self) -> dict[str, Any]:
        """딕셔너리로 변환 (Enum은 값으로)."""
        return asdict(self, dict_factory=_enum_safe_dict)

    def save_yaml(self, path: str | Path) -> None:
        """YAML 파일로 저장."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            yaml.safe_dump(self.to_dict(), f, allow_unicode=True, default_flow_style=False, sort_keys=False)


def _enum_safe_dict(items: list[tuple[str, Any]]) -> dict[str, Any]:
    return {k: (v.value if isinstance(v, Enum) else v) for k, v in items}
