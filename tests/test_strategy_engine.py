"""
전략 엔진 / 시그널 정책 테스트
"""

from datetime import date

import pytest

from factor_trading import strategies
from factor_trading.core.factor import FactorConfig, FactorScore, FactorType
from factor_trading.core.trading_strategy import SignalType
from factor_trading.strategies import create_strategy
from factor_trading.strategies.engine import StrategyEngine
from factor_trading.strategies.policies import SignalPolicy, get_policy, list_policies
from factor_trading.utils.config import RiskManagementConfig, StrategyConfig


def _score(name: str, score: float, confidence: float = 1.0) -> FactorScore:
    return FactorScore(factor_name=name, factor_type=FactorType.TECHNICAL, score=score, confidence=confidence)


class TestSignalPolicy:
    def test_registered_policies(self):
        assert list_policies() == ["default", "momentum"]

    def test_default_thresholds(self):
        policy = get_policy("default")
        assert policy.classify(0.31) is SignalType.BUY
        assert policy.classify(0.3) is SignalType.HOLD
        assert policy.classify(-0.31) is SignalType.SELL

    def test_momentum_is_stricter(self):
        policy = get_policy("momentum")
        assert policy.classify(0.35) is SignalType.HOLD
        assert policy.classify(0.45) is SignalType.BUY
        assert policy.classify(-0.45) is SignalType.SELL

    def test_unknown_policy(self):
        with pytest.raises(ValueError):
            get_policy("aggressive")

    def test_inverted_thresholds_rejected(self):
        with pytest.raises(ValueError):
            SignalPolicy("bad", buy_threshold=-0.5, sell_threshold=0.5)


class TestCombination:
    def test_empty_combines_to_zero(self, strategy_config):
        engine = StrategyEngine(strategy_config)
        assert engine.combine_factors([]) == 0.0

    def test_score_times_confidence_weighted(self):
        config = StrategyConfig(factors=[
            FactorConfig(name="MA_Crossover", weight=3.0, params={"short": 5, "long": 20}),
            FactorConfig(name="RSI", weight=1.0, params={"period": 14, "oversold": 30, "overbought": 70}),
        ])
        engine = StrategyEngine(config)
        combined = engine.combine_factors([
            _score("MA_Crossover", 0.8, 0.5),
            _score("RSI", -0.4, 1.0),
        ])
        assert combined == pytest.approx((0.4 * 3 + -0.4 * 1) / 4)

    def test_zero_weight_counts_as_one(self):
        config = StrategyConfig(factors=[
            FactorConfig(name="RSI", weight=0.0, params={"period": 14, "oversold": 30, "overbought": 70}),
        ])
        engine = StrategyEngine(config)
        combined = engine.combine_factors([_score("RSI", 0.6), _score("unknown", 0.2)])
        assert combined == pytest.approx(0.4)

    def test_order_independent(self, strategy_config):
        engine = StrategyEngine(strategy_config)
        scores = [_score("MA_Crossover", 0.9, 0.95), _score("RSI", -0.2, 0.3)]
        assert engine.combine_factors(scores) == pytest.approx(engine.combine_factors(scores[::-1]))

    def test_same_name_factors_keep_own_weights(self):
        """같은 이름의 팩터가 여럿이면 위치별로 자기 가중치를 사용."""
        config = StrategyConfig(factors=[
            FactorConfig(name="MA_Crossover", weight=3.0, params={"short": 5, "long": 20}),
            FactorConfig(name="MA_Crossover", weight=1.0, params={"short": 10, "long": 50}),
        ])
        engine = StrategyEngine(config)
        combined = engine.combine_factors(
            [_score("MA_Crossover", 1.0), _score("MA_Crossover", 0.0)],
            engine.factors,
        )
        assert combined == pytest.approx(0.75)

    def test_factor_count_mismatch(self, strategy_config):
        engine = StrategyEngine(strategy_config)
        with pytest.raises(ValueError):
            engine.combine_factors([_score("MA_Crossover", 1.0)], engine.factors)

    @pytest.mark.asyncio
    async def test_same_name_weights_in_evaluation(self, make_context):
        """단기 MA(가중치 3)만 골든크로스, 장기 MA(가중치 1)는 데이터 부족 → 0."""
        config = StrategyConfig(factors=[
            FactorConfig(name="MA_Crossover", weight=3.0, params={"short": 5, "long": 20}),
            FactorConfig(name="MA_Crossover", weight=1.0, params={"short": 10, "long": 50}),
        ])
        engine = StrategyEngine(config)

        signal = await engine.evaluate_symbol(make_context("AAA", [100.0] * 20 + [101.0]))

        assert signal.strength == pytest.approx(0.9 * 0.95 * 3 / 4)
        assert signal.signal_type is SignalType.BUY


class TestEnabled:
    def test_disabled_strategy_rejected(self, ma_config):
        with pytest.raises(ValueError, match="비활성"):
            create_strategy(StrategyConfig(name="off", factors=[ma_config], enabled=False))


class TestReasoning:
    def test_top_three_without_mutation(self):
        scores = [
            _score("a", 0.1),
            _score("b", -0.9),
            _score("c", 0.5),
            _score("d", 0.3),
        ]
        original = list(scores)
        text = StrategyEngine.generate_reasoning(scores, -0.2)
        assert text == (
            "Overall bearish signal based on: "
            "b (bearish, 90%), c (bullish, 50%), d (bullish, 30%)"
        )
        assert scores == original


class TestEvaluateSymbol:
    def test_disabled_factor_not_built(self, ma_config):
        config = StrategyConfig(factors=[
            ma_config,
            FactorConfig(name="RSI", enabled=False, params={"period": 1}),
        ])
        engine = StrategyEngine(config)
        assert [f.name for f in engine.factors] == ["MA_Crossover"]

    def test_invalid_factor_fails_at_construction(self):
        config = StrategyConfig(factors=[FactorConfig(name="MA_Crossover", params={"short": 30, "long": 10})])
        with pytest.raises(ValueError):
            create_strategy(config)

    @pytest.mark.asyncio
    async def test_golden_cross_buy_signal(self, make_context):
        config = StrategyConfig(
            name="ma",
            factors=[FactorConfig(name="MA_Crossover", params={"short": 5, "long": 20})],
            risk_management=RiskManagementConfig(stop_loss_percent=0.05, take_profit_percent=0.1),
        )
        engine = StrategyEngine(config)
        context = make_context("AAA", [100.0] * 20 + [101.0])

        signal = await engine.evaluate_symbol(context)

        assert signal.signal_type is SignalType.BUY
        assert signal.strength == pytest.approx(0.9 * 0.95)
        assert signal.timestamp == context.timestamp
        assert signal.price == 101.0
        assert signal.metadata.stop_loss == pytest.approx(101.0 * 0.95)
        assert signal.metadata.take_profit == pytest.approx(101.0 * 1.1)
        assert signal.metadata.reasoning.startswith("Overall bullish signal based on: MA_Crossover")
        assert len(signal.factor_scores) == 1

    @pytest.mark.asyncio
    async def test_death_cross_sell_mirrors_levels(self, make_context):
        config = StrategyConfig(
            factors=[FactorConfig(name="MA_Crossover", params={"short": 5, "long": 20})],
            risk_management=RiskManagementConfig(stop_loss_percent=0.05, take_profit_percent=0.1),
        )
        engine = StrategyEngine(config)
        signal = await engine.evaluate_symbol(
            make_context("AAA", [float(p) for p in range(100, 125)] + [60.0])
        )
        assert signal.signal_type is SignalType.SELL
        assert signal.metadata.stop_loss == pytest.approx(60.0 * 1.05)
        assert signal.metadata.take_profit == pytest.approx(60.0 * 0.9)

    @pytest.mark.asyncio
    async def test_hold_has_no_levels(self, rsi_config, make_context):
        """등락이 번갈아 나오면 RSI 중립 구간 → HOLD."""
        engine = StrategyEngine(StrategyConfig(factors=[rsi_config]))
        signal = await engine.evaluate_symbol(make_context("AAA", [100.0 + (i % 2) for i in range(30)]))
        assert signal.signal_type is SignalType.HOLD
        assert signal.metadata.stop_loss is None
        assert not signal.is_actionable


class TestGenerateSignals:
    @pytest.mark.asyncio
    async def test_failing_symbol_excluded(self, strategy_config, make_context):
        engine = StrategyEngine(strategy_config)

        async def provider(symbol: str):
            if symbol == "BAD":
                raise LookupError("no data")
            return make_context(symbol, [100.0 + i for i in range(30)])

        signals = await engine.generate_signals(["AAA", "BAD", "CCC"], provider)

        assert [s.symbol for s in signals] == ["AAA", "CCC"]

    @pytest.mark.asyncio
    async def test_deterministic_replay(self, strategy_config, make_context):
        engine = StrategyEngine(strategy_config)

        async def provider(symbol: str):
            return make_context(symbol, [100.0 + (i % 5) for i in range(40)], start=date(2023, 6, 1))

        first = await engine.generate_signals(["AAA"], provider)
        second = await engine.generate_signals(["AAA"], provider)
        assert first == second

    @pytest.mark.asyncio
    async def test_single_symbol_helper(self, strategy_config, make_context):
        async def provider(symbol: str):
            return make_context(symbol, [100.0] * 30)

        signal = await strategies.test_strategy(strategy_config, "AAA", provider)
        assert signal.symbol == "AAA"

    @pytest.mark.asyncio
    async def test_single_symbol_helper_raises_when_no_signal(self, strategy_config):
        async def provider(symbol: str):
            raise LookupError(symbol)

        with pytest.raises(ValueError):
            await strategies.test_strategy(strategy_config, "AAA", provider)
