"""
백테스트 실행 스크립트 (시스템 진입점).

[ 사용법 ]
    # 기본 실행 (config.yaml의 전략 사용, 샘플 데이터)
    python run_backtest.py

    # 시그널 정책 지정
    python run_backtest.py --policy momentum

    # 백테스트 파라미터 오버라이드
    python run_backtest.py -p initial_cash=50000 -p position_sizing=risk_budget

    # ClickHouse 데이터 사용 (체결 기록도 저장하려면 --save-trades)
    python run_backtest.py --source clickhouse
    python run_backtest.py --source clickhouse --save-trades

    # 여러 정책 비교 (같은 데이터)
    python run_backtest.py --compare default momentum

    # 등록된 팩터/정책 목록 확인
    python run_backtest.py --list
"""

import argparse
import asyncio
import dataclasses
import zlib
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Optional

import numpy as np
import pandas as pd

from factor_trading.backtest.engine import BacktestError, BacktestResult, BacktestSimulator
from factor_trading.backtest.metrics import StrategyPerformance
from factor_trading.core.data_provider import PriceHistoryProvider
from factor_trading.core.factor import FactorConfig
from factor_trading.data.clickhouse_provider import ClickHousePriceProvider, ClickHouseTradeSink
from factor_trading.data.clickhouse_schema import initialize_schema
from factor_trading.data.market_data import DataFrameProvider
from factor_trading.data.trade_sink import InMemoryTradeSink, TradeSink
from factor_trading.factors import list_factors
from factor_trading.strategies import list_policies
from factor_trading.utils.config import Config
from factor_trading.utils.logger import setup_logger

DEFAULT_SYMBOLS = ["AAPL", "MSFT"]

DEFAULT_FACTORS = [
    FactorConfig(name="MA_Crossover", type="technical", weight=1.0, params={"short": 5, "long": 20}),
    FactorConfig(name="RSI", type="technical", weight=1.0,
                 params={"period": 14, "oversold": 30, "overbought": 70}),
]


def generate_sample_data(
    symbol: str,
    start_date: date,
    end_date: date,
    initial_price: float = 100.0,
    volatility: float = 0.02,
) -> pd.DataFrame:
    """백테스트용 샘플 주가 데이터 생성. 종목 코드별로 항상 같은 시계열."""
    rng = np.random.default_rng(zlib.crc32(symbol.encode()))

    dates = pd.bdate_range(start=start_date, end=end_date)
    n = len(dates)

    returns = rng.normal(0.0003, volatility, n)
    prices = initial_price * np.cumprod(1 + returns)

    data = []
    for i, d in enumerate(dates):
        close = prices[i]
        high = close * (1 + abs(rng.normal(0, 0.01)))
        low = close * (1 - abs(rng.normal(0, 0.01)))
        open_price = close * (1 + rng.normal(0, 0.005))

        data.append({
            "date": d.date(),
            "open": round(open_price, 2),
            "high": round(max(high, open_price, close), 2),
            "low": round(min(low, open_price, close), 2),
            "close": round(close, 2),
            "volume": int(rng.lognormal(12, 1)),
        })

    return pd.DataFrame(data)


def parse_param(param_str: str) -> tuple[str, object]:
    """'key=value' 문자열을 파싱하여 (key, value) 반환. 숫자면 자동 변환."""
    key, _, value = param_str.partition("=")
    key = key.strip()
    value = value.strip()

    # 숫자 자동 변환
    try:
        if "." in value:
            return key, float(value)
        return key, int(value)
    except ValueError:
        # bool 변환
        if value.lower() in ("true", "yes"):
            return key, True
        if value.lower() in ("false", "no"):
            return key, False
        return key, value


def build_provider(config: Config, source: str) -> Optional[PriceHistoryProvider]:
    """데이터 소스에 맞는 가격 이력 제공자 생성."""
    symbols = config.strategy.symbols
    start = config.backtest.start - timedelta(days=config.backtest.warmup_days)
    end = config.backtest.end

    if source == "sample":
        print("샘플 데이터 생성 중...")
        provider = DataFrameProvider()
        for i, symbol in enumerate(symbols):
            df = generate_sample_data(symbol, start, end, initial_price=100.0 * (i + 1))
            provider.load_data(symbol, df)
            print(f"  {symbol}: {len(df)}일 데이터")
        return provider

    print("ClickHouse에서 데이터 조회 중...")
    db = config.database
    provider = ClickHousePriceProvider.connect(
        host=db.host,
        port=db.port,
        database=db.database,
        user=db.user,
        password=db.password,
        use_adjusted_close=db.use_adjusted_close,
    )
    available = provider.get_symbols()
    print(f"  ClickHouse에 저장된 종목: {available}")

    missing = [s for s in symbols if s not in available]
    for symbol in missing:
        print(f"  [SKIP] {symbol}: ClickHouse에 데이터 없음")
    config.strategy.symbols = [s for s in symbols if s in available]
    if not config.strategy.symbols:
        print("\n오류: 백테스트할 데이터가 없습니다.")
        print("  --source sample 옵션으로 샘플 데이터 사용")
        provider.close()
        return None
    return provider


def build_trade_sink(provider: PriceHistoryProvider, save_trades: bool) -> TradeSink:
    if save_trades and isinstance(provider, ClickHousePriceProvider):
        initialize_schema(provider.client)
        return ClickHouseTradeSink(provider.client)
    return InMemoryTradeSink()


async def run_single(
    config: Config,
    provider: PriceHistoryProvider,
    trade_sink: TradeSink,
    policy: str,
) -> Optional[BacktestResult]:
    """단일 정책 백테스트 실행. 실패하면 None."""
    strategy_config = dataclasses.replace(config.strategy, signal_policy=policy)
    backtest_id = f"{strategy_config.name}-{policy}-{datetime.now():%Y%m%d%H%M%S}"

    simulator = BacktestSimulator(provider, trade_sink=trade_sink)
    try:
        await simulator.run_backtest(backtest_id, config.backtest, strategy_config)
    except BacktestError as e:
        print(f"\n오류: {e}")
        return None
    return simulator.generate_report()


def print_single_result(policy: str, result: BacktestResult):
    """단일 실행 결과 출력."""
    trades = result.trades
    buy_count = sum(1 for t in trades if t.side == "buy")
    sell_trades = [t for t in trades if t.side == "sell"]

    print(f"\n[백테스트: {result.backtest_id} / 정책: {policy}]")
    print(result.performance.summary())
    print(f"\n  매수: {buy_count}회")
    print(f"  매도: {len(sell_trades)}회")

    if sell_trades:
        print("\n최근 매도 거래 (최대 5건):")
        for t in sell_trades[-5:]:
            print(f"  [{t.date}] {t.symbol} {t.quantity}주 @ {t.price:,.2f} -> {t.pnl:+,.2f}")


def print_comparison(results: dict[str, StrategyPerformance], config: Config):
    """여러 정책 비교 결과 출력."""
    symbols = config.strategy.symbols
    period = f"{config.backtest.start_date} ~ {config.backtest.end_date}"

    names = list(results.keys())
    col_width = max(14, max(len(n) for n in names) + 2)

    print(f"\n{'=' * (20 + col_width * len(names))}")
    print(f"정책 비교 결과 ({', '.join(symbols)}, {period})")
    print(f"{'=' * (20 + col_width * len(names))}")

    header = f"{'':>20}" + "".join(f"{n:>{col_width}}" for n in names)
    print(header)
    print("-" * len(header))

    rows = [
        ("총 수익률", lambda m: f"{m.total_return_percent:.2f}%"),
        ("연환산 수익률", lambda m: f"{m.annual_return:.2f}%"),
        ("샤프 비율", lambda m: f"{m.sharpe_ratio:.2f}"),
        ("최대 낙폭(MDD)", lambda m: f"{m.max_drawdown:.2f}%"),
        ("총 체결 횟수", lambda m: f"{m.total_trades}"),
        ("승률", lambda m: f"{m.win_rate:.1f}%"),
        ("수익 팩터", lambda m: f"{m.profit_factor:.2f}"),
        ("평균 수익", lambda m: f"{m.avg_profit:,.2f}"),
        ("평균 손실", lambda m: f"{m.avg_loss:,.2f}"),
        ("최대 연속 수익", lambda m: f"{m.max_consecutive_wins}"),
        ("최대 연속 손실", lambda m: f"{m.max_consecutive_losses}"),
    ]

    for label, fmt in rows:
        row = f"{label:>20}" + "".join(f"{fmt(results[n]):>{col_width}}" for n in names)
        print(row)

    print(f"{'=' * (20 + col_width * len(names))}")


async def run(args: argparse.Namespace, config: Config) -> None:
    provider = build_provider(config, args.source)
    if provider is None:
        return
    trade_sink = build_trade_sink(provider, args.save_trades)

    try:
        # ─── 비교 모드 ───────────────────────────────────────────────────
        if args.compare:
            print(f"\n{len(args.compare)}개 정책 비교 실행...")
            results = {}
            for policy in args.compare:
                print(f"\n--- {policy} 실행 중 ---")
                result = await run_single(config, provider, trade_sink, policy)
                if result:
                    results[policy] = result.performance
            if results:
                print_comparison(results, config)
            return

        # ─── 단일 실행 모드 ─────────────────────────────────────────────
        policy = args.policy or config.strategy.signal_policy
        print(f"\n전략: {config.strategy.name} (정책: {policy})")
        result = await run_single(config, provider, trade_sink, policy)
        if result:
            print_single_result(policy, result)
    finally:
        if isinstance(provider, ClickHousePriceProvider):
            provider.close()


def main():
    parser = argparse.ArgumentParser(description="팩터 전략 백테스트 실행")
    parser.add_argument("--config", type=str, default="config.yaml", help="설정 파일 경로")
    parser.add_argument("--policy", type=str, default=None, help="시그널 정책 이름 (config.yaml 대신 지정)")
    parser.add_argument("-p", "--param", action="append", default=[],
                        help="백테스트 파라미터 오버라이드 (예: -p initial_cash=50000)")
    parser.add_argument("--source", type=str, default="sample", choices=["sample", "clickhouse"], help="데이터 소스")
    parser.add_argument("--save-trades", action="store_true", help="체결 기록을 ClickHouse에 저장 (--source clickhouse)")
    parser.add_argument("--compare", nargs="+", metavar="POLICY", help="여러 정책 비교 (예: --compare default momentum)")
    parser.add_argument("--list", action="store_true", help="등록된 팩터/정책 목록 출력")
    args = parser.parse_args()

    # 목록 출력
    if args.list:
        print("등록된 팩터:")
        for name in list_factors():
            print(f"  - {name}")
        print("등록된 시그널 정책:")
        for name in list_policies():
            print(f"  - {name}")
        return

    # 설정 로드
    config_path = Path(args.config)
    if config_path.exists():
        config = Config.from_yaml(config_path)
    else:
        print(f"설정 파일 없음: {config_path}, 기본값 사용")
        config = Config()

    setup_logger(level=config.log_level, log_dir=config.log_dir)

    if not config.strategy.symbols:
        config.strategy.symbols = list(DEFAULT_SYMBOLS)
    if not config.strategy.factors:
        config.strategy.factors = list(DEFAULT_FACTORS)

    # CLI 파라미터 오버라이드
    overrides = dict(parse_param(p) for p in args.param)
    unknown = [k for k in overrides if k not in config.backtest.__dataclass_fields__]
    if unknown:
        parser.error(f"알 수 없는 백테스트 파라미터: {unknown}")
    if overrides:
        config.backtest = dataclasses.replace(config.backtest, **overrides)
        print(f"파라미터 오버라이드: {overrides}")

    asyncio.run(run(args, config))


if __name__ == "__main__":
    main()
