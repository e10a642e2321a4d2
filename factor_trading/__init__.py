"""
=============================================================================
팩터 기반 전략 평가 / 백테스트 시스템 (Factor Trading)
=============================================================================

[ 시스템 전체 구조 ]

    run_backtest.py (진입점)
         │
         ├── utils/config.py        ← config.yaml 설정 로드
         ├── utils/logger.py        ← 로깅
         │
         ├── strategies/            ← 팩터 결합 전략 (시그널 생성)
         │     ├── engine.py            StrategyEngine
         │     └── policies.py          BUY/SELL/HOLD 분류 정책
         │
         ├── factors/               ← 팩터 구현체 (@register로 등록)
         │     ├── ma_crossover.py
         │     ├── rsi.py
         │     └── macd.py
         │
         └── backtest/engine.py     ← 백테스트 실행 엔진
               │
               ├── backtest/sizing.py   ← 주문 수량 정책
               ├── data/portfolio.py    ← 포지션/거래기록 관리
               ├── data/trade_sink.py   ← 체결 기록 저장
               └── backtest/metrics.py  ← 성과 지표 계산


[ 핵심 추상 클래스 (core/) - 모든 구현체의 부모 ]

    core/data_provider.py    → data/market_data.py::DataFrameProvider (메모리)
                             → data/clickhouse_provider.py::ClickHousePriceProvider

    core/factor.py           → factors/*.py (BaseFactor 구현)

    data/trade_sink.py       → InMemoryTradeSink
                             → data/clickhouse_provider.py::ClickHouseTradeSink


[ 데이터 흐름 ]

    1. config.yaml에서 전략(팩터/가중치/리스크) 및 백테스트 설정 로드
    2. PriceHistoryProvider가 일봉(PriceBar) 이력 제공
    3. 각 팩터가 지표(indicators/technical.py)로 점수 [-1, 1]와 신뢰도 [0, 1] 계산
    4. StrategyEngine이 점수 × 신뢰도를 가중 평균 → 정책으로 BUY/SELL/HOLD 분류
    5. BacktestSimulator가 시그널에 따라 BacktestPortfolioState에 매수/매도 실행
    6. metrics.py가 일별 스냅샷과 체결 기록으로 성과 지표 계산
"""
