"""IntentsBalanceReader — intents.near 컨트랙트 보유 수량 조회.

NEP-245 Multi-Token 표준의 mt_batch_balance_of view 호출을 NEAR JSON-RPC로
실행합니다. 서명이 필요 없는 읽기 전용 호출입니다.
BalanceProvider Port를 구현합니다.
"""

from __future__ import annotations

import base64
import json
from decimal import Decimal
from typing import TYPE_CHECKING, Any

import httpx
from loguru import logger

from rebalancer.core.exceptions import ExternalServiceError, NetworkError

if TYPE_CHECKING:
    from rebalancer.market.price_service import PriceService
    from rebalancer.models.index import Account

DEFAULT_RPC_URL = "https://rpc.mainnet.near.org"
DEFAULT_CONTRACT_ID = "intents.near"
DEFAULT_TIMEOUT = 30.0


def format_balance(raw: str | int, decimals: int) -> float:
    """최소 단위 정수 문자열 → 사람 단위 수량."""
    return float(Decimal(int(raw or 0)) / (Decimal(10) ** decimals))


class IntentsBalanceReader:
    """intents.near 잔고 리더.

    지원 자산 목록(PriceService)의 asset_id 전체를 한 번에 조회하고
    심볼별로 합산합니다 (여러 체인의 USDC는 하나의 USDC로 합산).

    Args:
        prices: 지원 자산 목록 제공자
        rpc_url: NEAR JSON-RPC URL
        contract_id: Multi-Token 컨트랙트
        timeout: 요청 타임아웃 (초)
        client: 외부 주입 httpx 클라이언트
    """

    def __init__(
        self,
        prices: PriceService,
        rpc_url: str = DEFAULT_RPC_URL,
        *,
        contract_id: str = DEFAULT_CONTRACT_ID,
        timeout: float = DEFAULT_TIMEOUT,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._prices = prices
        self._rpc_url = rpc_url
        self._contract_id = contract_id
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(timeout))

    async def aclose(self) -> None:
        """자체 생성한 httpx 클라이언트 종료."""
        if self._owns_client:
            await self._client.aclose()

    async def get_holdings(self, account: Account) -> dict[str, float]:
        """계정의 심볼별 보유 수량 (0 잔고 제외)."""
        assets = {a.asset_id: a for a in await self._prices.get_supported_assets()}
        if not assets:
            return {}

        account_id = account.wallet_address.lower()
        token_ids = list(assets)
        raw_balances = await self._view_call(
            "mt_batch_balance_of", {"account_id": account_id, "token_ids": token_ids}
        )
        if len(raw_balances) != len(token_ids):
            msg = "mt_batch_balance_of returned unexpected number of balances"
            raise ExternalServiceError(
                msg, context={"expected": len(token_ids), "got": len(raw_balances)}
            )

        holdings: dict[str, float] = {}
        for token_id, raw in zip(token_ids, raw_balances, strict=True):
            if int(raw or 0) <= 0:
                continue
            asset = assets[token_id]
            holdings[asset.symbol] = holdings.get(asset.symbol, 0.0) + format_balance(
                raw, asset.decimals
            )

        logger.info(
            "Intents balances for {}: {}",
            account_id,
            ", ".join(f"{s}={q:.6f}" for s, q in sorted(holdings.items())) or "empty",
        )
        return holdings

    async def _view_call(self, method_name: str, args: dict[str, Any]) -> list[str]:
        payload = {
            "jsonrpc": "2.0",
            "id": "rebalancer",
            "method": "query",
            "params": {
                "request_type": "call_function",
                "finality": "final",
                "account_id": self._contract_id,
                "method_name": method_name,
                "args_base64": base64.b64encode(json.dumps(args).encode()).decode(),
            },
        }
        try:
            response = await self._client.post(self._rpc_url, json=payload)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            msg = f"NEAR RPC returned {e.response.status_code}"
            raise ExternalServiceError(msg, context={"method": method_name}) from e
        except httpx.HTTPError as e:
            msg = "NEAR RPC unreachable"
            raise NetworkError(msg, context={"error": str(e)}) from e

        body = response.json()
        if "error" in body:
            msg = "NEAR RPC error"
            raise ExternalServiceError(msg, context={"error": json.dumps(body["error"])})
        result = body.get("result", {})
        if "error" in result:
            msg = f"View call {method_name} failed"
            raise ExternalServiceError(msg, context={"error": str(result["error"])})
        return json.loads(bytes(result.get("result", [])).decode() or "[]")
