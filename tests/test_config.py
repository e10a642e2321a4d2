"""
설정 로드 / 저장 테스트
"""

import json
from datetime import date

import pytest

from factor_trading.core.factor import FactorConfigError, FactorType
from factor_trading.utils.config import BacktestConfig, Config
from factor_trading.utils.logger import setup_logger

YAML_TEXT = """
strategy:
  name: ma_rsi
  symbols: [AAA, BBB]
  signal_policy: momentum
  factors:
    - name: MA_Crossover
      type: technical
      weight: 2.0
      params: {short: 5, long: 20}
    - name: RSI
      enabled: false
      params: {period: 14, oversold: 30, overbought: 70}
      unknown_key: ignored
  risk_management:
    max_positions: 3
    take_profit_percent: 0.1
backtest:
  start_date: 2024-01-01
  end_date: 2024-06-30
  initial_cash: 50000
  warmup_days: 40
log_level: DEBUG
"""


@pytest.fixture
def yaml_path(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(YAML_TEXT, encoding="utf-8")
    return path


class TestLoad:
    def test_from_yaml(self, yaml_path):
        config = Config.from_yaml(yaml_path)
        strategy = config.strategy
        assert strategy.name == "ma_rsi"
        assert strategy.symbols == ["AAA", "BBB"]
        assert strategy.signal_policy == "momentum"
        assert [f.name for f in strategy.factors] == ["MA_Crossover", "RSI"]
        assert strategy.factors[0].weight == 2.0
        assert strategy.factors[0].type is FactorType.TECHNICAL
        assert strategy.factors[1].enabled is False
        assert strategy.risk_management.max_positions == 3
        assert strategy.risk_management.take_profit_percent == 0.1

    def test_yaml_dates_become_strings(self, yaml_path):
        backtest = Config.from_yaml(yaml_path).backtest
        assert backtest.start_date == "2024-01-01"
        assert backtest.start == date(2024, 1, 1)
        assert backtest.end == date(2024, 6, 30)
        assert backtest.warmup_days == 40
        assert backtest.initial_cash == 50000

    def test_defaults_when_sections_missing(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("", encoding="utf-8")
        config = Config.from_yaml(path)
        assert config.backtest == BacktestConfig()
        assert config.log_level == "INFO"

    def test_from_json(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"strategy": {"name": "j", "symbols": ["X"]}}), encoding="utf-8")
        assert Config.from_json(path).strategy.symbols == ["X"]

    def test_negative_weight_rejected(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("strategy:\n  factors:\n    - name: RSI\n      weight: -1\n", encoding="utf-8")
        with pytest.raises(FactorConfigError):
            Config.from_yaml(path)


class TestSave:
    def test_round_trip(self, yaml_path, tmp_path):
        config = Config.from_yaml(yaml_path)
        out = tmp_path / "nested" / "saved.yaml"
        config.save_yaml(out)

        reloaded = Config.from_yaml(out)
        assert reloaded == config

    def test_to_dict_uses_enum_values(self, yaml_path):
        data = Config.from_yaml(yaml_path).to_dict()
        assert data["strategy"]["factors"][0]["type"] == "technical"


class TestLogger:
    def test_file_and_console_handlers(self, tmp_path):
        logger = setup_logger(name="factor_trading.test_logger", level="DEBUG", log_dir=str(tmp_path))
        assert len(logger.handlers) == 2
        logger.info("기록")
        for handler in logger.handlers:
            handler.flush()
        assert list(tmp_path.glob("factor_trading.test_logger_*.log"))

        # 두 번째 호출은 핸들러를 중복 등록하지 않는다
        assert len(setup_logger(name="factor_trading.test_logger").handlers) == 2

    def test_without_file_handler(self):
        logger = setup_logger(name="factor_trading.console_only", log_dir=None)
        assert len(logger.handlers) == 1
