"""Repository Port + 인메모리 구현.

코어 서비스는 저장소 스키마나 쿼리 방식을 모르고 이 Protocol만 사용합니다.
InMemoryRepository는 단일 프로세스 실행과 테스트용이며, 저장/조회 시
deep copy로 호출자와 상태를 공유하지 않습니다.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from rebalancer.models.index import Account, Index
    from rebalancer.models.records import Rebalance, Trade
    from rebalancer.models.types import IndexStatus
    from rebalancer.models.webhook import WebhookSubscription


@runtime_checkable
class Repository(Protocol):
    """Index/Account/Rebalance/Trade/Webhook 영속화 인터페이스."""

    async def get_index(self, index_id: str) -> Index | None: ...

    async def list_indexes(self, status: IndexStatus | None = None) -> list[Index]: ...

    async def save_index(self, index: Index) -> None: ...

    async def get_account(self, account_id: str) -> Account | None: ...

    async def save_account(self, account: Account) -> None: ...

    async def get_rebalance(self, rebalance_id: str) -> Rebalance | None: ...

    async def list_rebalances(self, index_id: str) -> list[Rebalance]: ...

    async def save_rebalance(self, rebalance: Rebalance) -> None: ...

    async def get_trade(self, trade_id: str) -> Trade | None: ...

    async def list_trades(
        self, *, index_id: str | None = None, rebalance_id: str | None = None
    ) -> list[Trade]: ...

    async def save_trade(self, trade: Trade) -> None: ...

    async def get_webhook(self, webhook_id: str) -> WebhookSubscription | None: ...

    async def list_webhooks(self, owner_id: str) -> list[WebhookSubscription]: ...

    async def save_webhook(self, webhook: WebhookSubscription) -> None: ...


class InMemoryRepository:
    """dict 기반 Repository 구현."""

    def __init__(self) -> None:
        self._indexes: dict[str, Index] = {}
        self._accounts: dict[str, Account] = {}
        self._rebalances: dict[str, Rebalance] = {}
        self._trades: dict[str, Trade] = {}
        self._webhooks: dict[str, WebhookSubscription] = {}

    # ── Index ─────────────────────────────────────────────────────

    async def get_index(self, index_id: str) -> Index | None:
        index = self._indexes.get(index_id)
        return index.model_copy(deep=True) if index is not None else None

    async def list_indexes(self, status: IndexStatus | None = None) -> list[Index]:
        return [
            i.model_copy(deep=True)
            for i in self._indexes.values()
            if status is None or i.status == status
        ]

    async def save_index(self, index: Index) -> None:
        self._indexes[index.index_id] = index.model_copy(deep=True)

    # ── Account ───────────────────────────────────────────────────

    async def get_account(self, account_id: str) -> Account | None:
        return self._accounts.get(account_id)

    async def save_account(self, account: Account) -> None:
        self._accounts[account.account_id] = account

    # ── Rebalance ─────────────────────────────────────────────────

    async def get_rebalance(self, rebalance_id: str) -> Rebalance | None:
        rebalance = self._rebalances.get(rebalance_id)
        return rebalance.model_copy(deep=True) if rebalance is not None else None

    async def list_rebalances(self, index_id: str) -> list[Rebalance]:
        return [
            r.model_copy(deep=True) for r in self._rebalances.values() if r.index_id == index_id
        ]

    async def save_rebalance(self, rebalance: Rebalance) -> None:
        self._rebalances[rebalance.rebalance_id] = rebalance.model_copy(deep=True)

    # ── Trade ─────────────────────────────────────────────────────

    async def get_trade(self, trade_id: str) -> Trade | None:
        trade = self._trades.get(trade_id)
        return trade.model_copy(deep=True) if trade is not None else None

    async def list_trades(
        self, *, index_id: str | None = None, rebalance_id: str | None = None
    ) -> list[Trade]:
        return [
            t.model_copy(deep=True)
            for t in self._trades.values()
            if (index_id is None or t.index_id == index_id)
            and (rebalance_id is None or t.rebalance_id == rebalance_id)
        ]

    async def save_trade(self, trade: Trade) -> None:
        self._trades[trade.trade_id] = trade.model_copy(deep=True)

    # ── Webhook ───────────────────────────────────────────────────

    async def get_webhook(self, webhook_id: str) -> WebhookSubscription | None:
        webhook = self._webhooks.get(webhook_id)
        return webhook.model_copy(deep=True) if webhook is not None else None

    async def list_webhooks(self, owner_id: str) -> list[WebhookSubscription]:
        return [w.model_copy(deep=True) for w in self._webhooks.values() if w.owner_id == owner_id]

    async def save_webhook(self, webhook: WebhookSubscription) -> None:
        self._webhooks[webhook.webhook_id] = webhook.model_copy(deep=True)
