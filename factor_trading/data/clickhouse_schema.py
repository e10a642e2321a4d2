"""
ClickHouse 데이터베이스 스키마 정의 및 연결 관리
"""
import logging

import clickhouse_connect
from clickhouse_connect.driver import Client

logger = logging.getLogger("factor_trading.data")


def get_client(
    host: str = "localhost",
    port: int = 8123,
    database: str = "default",
    user: str = "default",
    password: str = "password",
) -> Client:
    """
    ClickHouse 클라이언트 연결 생성

    Args:
        host: ClickHouse 호스트
        port: HTTP 포트 (기본값: 8123)
        database: 데이터베이스 이름
        user: 사용자 이름
        password: 비밀번호

    Returns:
        ClickHouse 클라이언트 객체
    """
    return clickhouse_connect.get_client(
        host=host,
        port=port,
        database=database,
        username=user,
        password=password,
    )


def initialize_schema(client: Client) -> None:
    """
    필요한 테이블 생성 (이미 존재하면 무시)

    Args:
        client: ClickHouse 클라이언트
    """
    # stock_ohlcv 테이블 (가격 이력, 외부 수집기가 적재)
    create_ohlcv_table = """
    CREATE TABLE IF NOT EXISTS stock_ohlcv (
        ticker String,
        date Date,
        open Float64,
        high Float64,
        low Float64,
        close Float64,
        adjusted_close Float64,
        volume UInt64,
        source String DEFAULT 'yahoo',
        ingestion_time DateTime DEFAULT now()
    )
    ENGINE = MergeTree()
    PARTITION BY toYYYYMM(date)
    ORDER BY (ticker, date)
    SETTINGS index_granularity = 8192
    """

    # backtest_trades 테이블 (백테스트 체결 기록, append-only)
    create_trades_table = """
    CREATE TABLE IF NOT EXISTS backtest_trades (
        backtest_id String,
        date Date,
        symbol String,
        side LowCardinality(String),
        quantity UInt64,
        price Float64,
        amount Float64,
        commission Float64,
        signal String,
        pnl Nullable(Float64),
        created_at DateTime DEFAULT now()
    )
    ENGINE = MergeTree()
    ORDER BY (backtest_id, date, symbol)
    """

    client.command(create_ohlcv_table)
    client.command(create_trades_table)
    logger.info("ClickHouse 테이블 생성 완료 (또는 이미 존재)")
