"""SQL DDL 상수: SQLite 스키마 정의.

5개 테이블: indexes, accounts, rebalances, trades, webhooks.
조회 키만 컬럼으로 두고 모델 전체는 payload(JSON)에 저장합니다.
모두 IF NOT EXISTS로 멱등하게 생성됩니다.
SCHEMA_VERSION은 PRAGMA user_version에 기록되어 연결 시 검증됩니다.
"""

# 스키마 변경 시 증가
SCHEMA_VERSION = 1

SCHEMA_SQL = """
-- Index (soft delete: status='DELETED')
CREATE TABLE IF NOT EXISTS indexes (
    index_id        TEXT PRIMARY KEY,
    account_id      TEXT NOT NULL,
    status          TEXT NOT NULL,
    payload         TEXT NOT NULL,
    updated_at      TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_indexes_status ON indexes(status);

-- 자금 계정 (외부 관리, 참조용 사본)
CREATE TABLE IF NOT EXISTS accounts (
    account_id      TEXT PRIMARY KEY,
    owner_id        TEXT NOT NULL,
    payload         TEXT NOT NULL
);

-- 리밸런싱 감사 기록
CREATE TABLE IF NOT EXISTS rebalances (
    rebalance_id    TEXT PRIMARY KEY,
    index_id        TEXT NOT NULL,
    status          TEXT NOT NULL,
    payload         TEXT NOT NULL,
    created_at      TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_rebalances_index ON rebalances(index_id);

-- 거래 기록
CREATE TABLE IF NOT EXISTS trades (
    trade_id        TEXT PRIMARY KEY,
    index_id        TEXT NOT NULL,
    rebalance_id    TEXT,
    status          TEXT NOT NULL,
    payload         TEXT NOT NULL,
    created_at      TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_trades_index ON trades(index_id);
CREATE INDEX IF NOT EXISTS idx_trades_rebalance ON trades(rebalance_id);

-- 웹훅 구독
CREATE TABLE IF NOT EXISTS webhooks (
    webhook_id      TEXT PRIMARY KEY,
    owner_id        TEXT NOT NULL,
    enabled         INTEGER NOT NULL DEFAULT 1,
    payload         TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_webhooks_owner ON webhooks(owner_id);
"""
