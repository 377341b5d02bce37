"""SqliteRepository — aiosqlite 기반 Repository 구현.

모델은 pydantic JSON으로 payload 컬럼에 저장하고, 조회 조건에 쓰이는
키(status, owner_id 등)만 별도 컬럼으로 유지합니다. 모든 쓰기는 UPSERT이며
Database.write()를 거쳐 직렬화됩니다.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from rebalancer.models.index import Account, Index
from rebalancer.models.records import Rebalance, Trade
from rebalancer.models.webhook import WebhookSubscription

if TYPE_CHECKING:
    from rebalancer.models.types import IndexStatus
    from rebalancer.storage.database import Database


class SqliteRepository:
    """SQLite Repository.

    Args:
        database: Database 인스턴스 (연결 완료 상태)
    """

    def __init__(self, database: Database) -> None:
        self._db = database

    # ── Index ─────────────────────────────────────────────────────

    async def get_index(self, index_id: str) -> Index | None:
        payloads = await self._db.fetch_payloads(
            "SELECT payload FROM indexes WHERE index_id = ?", (index_id,)
        )
        return Index.model_validate_json(payloads[0]) if payloads else None

    async def list_indexes(self, status: IndexStatus | None = None) -> list[Index]:
        if status is None:
            payloads = await self._db.fetch_payloads(
                "SELECT payload FROM indexes ORDER BY index_id"
            )
        else:
            payloads = await self._db.fetch_payloads(
                "SELECT payload FROM indexes WHERE status = ? ORDER BY index_id", (str(status),)
            )
        return [Index.model_validate_json(p) for p in payloads]

    async def save_index(self, index: Index) -> None:
        await self._db.write(
            """INSERT INTO indexes (index_id, account_id, status, payload, updated_at)
               VALUES (?, ?, ?, ?, ?)
               ON CONFLICT(index_id) DO UPDATE SET
                   account_id = excluded.account_id,
                   status = excluded.status,
                   payload = excluded.payload,
                   updated_at = excluded.updated_at""",
            (
                index.index_id,
                index.account_id,
                str(index.status),
                index.model_dump_json(),
                index.updated_at.isoformat(),
            ),
        )

    # ── Account ───────────────────────────────────────────────────

    async def get_account(self, account_id: str) -> Account | None:
        payloads = await self._db.fetch_payloads(
            "SELECT payload FROM accounts WHERE account_id = ?", (account_id,)
        )
        return Account.model_validate_json(payloads[0]) if payloads else None

    async def save_account(self, account: Account) -> None:
        await self._db.write(
            """INSERT OR REPLACE INTO accounts (account_id, owner_id, payload)
               VALUES (?, ?, ?)""",
            (account.account_id, account.owner_id, account.model_dump_json()),
        )

    # ── Rebalance ─────────────────────────────────────────────────

    async def get_rebalance(self, rebalance_id: str) -> Rebalance | None:
        payloads = await self._db.fetch_payloads(
            "SELECT payload FROM rebalances WHERE rebalance_id = ?", (rebalance_id,)
        )
        return Rebalance.model_validate_json(payloads[0]) if payloads else None

    async def list_rebalances(self, index_id: str) -> list[Rebalance]:
        payloads = await self._db.fetch_payloads(
            "SELECT payload FROM rebalances WHERE index_id = ? ORDER BY created_at", (index_id,)
        )
        return [Rebalance.model_validate_json(p) for p in payloads]

    async def save_rebalance(self, rebalance: Rebalance) -> None:
        await self._db.write(
            """INSERT INTO rebalances (rebalance_id, index_id, status, payload, created_at)
               VALUES (?, ?, ?, ?, ?)
               ON CONFLICT(rebalance_id) DO UPDATE SET
                   status = excluded.status,
                   payload = excluded.payload""",
            (
                rebalance.rebalance_id,
                rebalance.index_id,
                str(rebalance.status),
                rebalance.model_dump_json(),
                rebalance.created_at.isoformat(),
            ),
        )

    # ── Trade ─────────────────────────────────────────────────────

    async def get_trade(self, trade_id: str) -> Trade | None:
        payloads = await self._db.fetch_payloads(
            "SELECT payload FROM trades WHERE trade_id = ?", (trade_id,)
        )
        return Trade.model_validate_json(payloads[0]) if payloads else None

    async def list_trades(
        self, *, index_id: str | None = None, rebalance_id: str | None = None
    ) -> list[Trade]:
        clauses: list[str] = []
        params: list[object] = []
        if index_id is not None:
            clauses.append("index_id = ?")
            params.append(index_id)
        if rebalance_id is not None:
            clauses.append("rebalance_id = ?")
            params.append(rebalance_id)
        where = f" WHERE {' AND '.join(clauses)}" if clauses else ""
        payloads = await self._db.fetch_payloads(
            f"SELECT payload FROM trades{where} ORDER BY created_at", tuple(params)  # noqa: S608
        )
        return [Trade.model_validate_json(p) for p in payloads]

    async def save_trade(self, trade: Trade) -> None:
        await self._db.write(
            """INSERT INTO trades (trade_id, index_id, rebalance_id, status, payload, created_at)
               VALUES (?, ?, ?, ?, ?, ?)
               ON CONFLICT(trade_id) DO UPDATE SET
                   status = excluded.status,
                   payload = excluded.payload""",
            (
                trade.trade_id,
                trade.index_id,
                trade.rebalance_id,
                str(trade.status),
                trade.model_dump_json(),
                trade.created_at.isoformat(),
            ),
        )

    # ── Webhook ───────────────────────────────────────────────────

    async def get_webhook(self, webhook_id: str) -> WebhookSubscription | None:
        payloads = await self._db.fetch_payloads(
            "SELECT payload FROM webhooks WHERE webhook_id = ?", (webhook_id,)
        )
        return WebhookSubscription.model_validate_json(payloads[0]) if payloads else None

    async def list_webhooks(self, owner_id: str) -> list[WebhookSubscription]:
        payloads = await self._db.fetch_payloads(
            "SELECT payload FROM webhooks WHERE owner_id = ? ORDER BY webhook_id", (owner_id,)
        )
        return [WebhookSubscription.model_validate_json(p) for p in payloads]

    async def save_webhook(self, webhook: WebhookSubscription) -> None:
        await self._db.write(
            """INSERT OR REPLACE INTO webhooks (webhook_id, owner_id, enabled, payload)
               VALUES (?, ?, ?, ?)""",
            (
                webhook.webhook_id,
                webhook.owner_id,
                int(webhook.enabled),
                webhook.model_dump_json(),
            ),
        )
