"""Tests for OneClickClient (httpx.MockTransport)."""

from __future__ import annotations

import json
from collections.abc import Callable
from typing import TypeAlias

import httpx
import pytest

from rebalancer.core.exceptions import (
    ExternalServiceError,
    InsufficientBalanceError,
    NetworkError,
    RateLimitError,
    ValidationError,
)
from rebalancer.execution.ports import PriceOracle, SwapExecutionService
from rebalancer.integrations.one_click import OneClickClient
from rebalancer.models.types import SwapStatus
from tests.conftest import FakeSigner

TOKENS = [
    {
        "assetId": "nep141:btc.omft.near",
        "symbol": "BTC",
        "blockchain": "btc",
        "decimals": 8,
        "price": 50000.0,
    },
    {
        "assetId": "nep141:usdc.omft.near",
        "symbol": "usdc",
        "blockchain": "eth",
        "decimals": 6,
        "price": 1.0,
    },
    {"assetId": "nep141:dead.near", "symbol": "DEAD", "blockchain": "near", "decimals": 0},
    {"symbol": "NOID", "decimals": 6},
]

QUOTE = {
    "quote": {
        "depositAddress": "0xdeposit",
        "amountOut": "79000",
        "amountInFormatted": "39.6",
        "amountOutFormatted": "0.00079",
    }
}

Handler: TypeAlias = Callable[[httpx.Request], httpx.Response]


def _client(handler: Handler, signer: FakeSigner | None = None, **kwargs: object) -> OneClickClient:
    http = httpx.AsyncClient(base_url="https://api.test", transport=httpx.MockTransport(handler))
    return OneClickClient(client=http, signer=signer, **kwargs)  # type: ignore[arg-type]


def _tokens_handler(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, json=TOKENS)


class TestPriceOracle:
    async def test_supported_assets(self) -> None:
        assets = await _client(_tokens_handler).get_supported_assets()

        assert [a.symbol for a in assets] == ["BTC", "USDC", "DEAD"]
        assert assets[1].asset_id == "nep141:usdc.omft.near"
        assert assets[1].decimals == 6
        assert assets[2].price == 0.0

    async def test_price(self) -> None:
        client = _client(_tokens_handler)
        assert await client.get_price("btc") == 50000.0
        assert await client.get_price("DEAD") is None
        assert await client.get_price("XYZ") is None

    async def test_authorization_header(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=[])

        await _client(handler, jwt_token="jwt-123").get_supported_assets()
        assert seen[0].headers["Authorization"] == "Bearer jwt-123"

    def test_satisfies_ports(self) -> None:
        client = _client(_tokens_handler)
        assert isinstance(client, PriceOracle)
        assert isinstance(client, SwapExecutionService)


class TestSwap:
    async def test_requires_signer(self) -> None:
        with pytest.raises(ValidationError, match="signing provider"):
            await _client(_tokens_handler).request_swap("a", "b", 1, "0xR", "acc_1")

    async def test_quote_transfer_submit(self) -> None:
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            if request.url.path == "/v0/quote":
                return httpx.Response(200, json=QUOTE)
            return httpx.Response(200, json={})

        signer = FakeSigner()
        submission = await _client(handler, signer=signer, slippage_bps=50).request_swap(
            "nep141:usdc.omft.near", "nep141:btc.omft.near", 39_600_000, "0xABC", "acc_1"
        )

        assert submission.settlement_reference == "0xdeposit"
        assert submission.status is SwapStatus.KNOWN_DEPOSIT_TX
        assert submission.expected_output == "79000"
        assert submission.tx_hash == "tx-1"
        assert signer.transfers == [("acc_1", "nep141:usdc.omft.near", 39_600_000, "0xdeposit")]

        quote_body = json.loads(requests[0].content)
        assert quote_body["swapType"] == "EXACT_INPUT"
        assert quote_body["amount"] == "39600000"
        assert quote_body["slippageTolerance"] == 50
        assert quote_body["recipient"] == "0xabc"
        assert quote_body["depositType"] == "INTENTS"
        assert quote_body["deadline"].endswith("Z")
        assert requests[1].url.path == "/v0/deposit/submit"
        assert json.loads(requests[1].content) == {"depositAddress": "0xdeposit", "txHash": "tx-1"}

    async def test_submit_failure_tolerated(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/v0/quote":
                return httpx.Response(200, json=QUOTE)
            return httpx.Response(500, json={"message": "submit broken"})

        submission = await _client(handler, signer=FakeSigner()).request_swap(
            "a", "b", 1, "0xR", "acc_1"
        )
        assert submission.settlement_reference == "0xdeposit"

    async def test_quote_without_deposit_address(self) -> None:
        client = _client(lambda _: httpx.Response(200, json={"quote": {}}), signer=FakeSigner())
        with pytest.raises(ExternalServiceError, match="deposit address"):
            await client.request_swap("a", "b", 1, "0xR", "acc_1")


class TestStatus:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("SUCCESS", SwapStatus.SUCCESS),
            ("REFUNDED", SwapStatus.REFUNDED),
            ("PENDING_DEPOSIT", SwapStatus.PENDING_DEPOSIT),
            ("SOMETHING_NEW", SwapStatus.PROCESSING),
        ],
    )
    async def test_poll_status(self, raw: str, expected: SwapStatus) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"status": raw})

        assert await _client(handler).poll_status("0xdeposit") is expected
        assert seen[0].url.params["depositAddress"] == "0xdeposit"


class TestErrorMapping:
    async def test_rate_limit(self) -> None:
        client = _client(
            lambda _: httpx.Response(429, json={"message": "slow"}, headers={"Retry-After": "3"})
        )
        with pytest.raises(RateLimitError) as exc_info:
            await client.get_supported_assets()
        assert exc_info.value.retry_after == 3.0

    async def test_insufficient_balance(self) -> None:
        client = _client(
            lambda _: httpx.Response(400, json={"message": "Insufficient balance for swap"}),
            signer=FakeSigner(),
        )
        with pytest.raises(InsufficientBalanceError):
            await client.request_swap("a", "b", 1, "0xR", "acc_1")

    async def test_bad_request(self) -> None:
        client = _client(lambda _: httpx.Response(422, json={"error": "unknown asset"}))
        with pytest.raises(ValidationError, match="unknown asset"):
            await client.request_quote("a", "b", 1, "0xR")

    async def test_server_error(self) -> None:
        client = _client(lambda _: httpx.Response(503, text="unavailable"))
        with pytest.raises(ExternalServiceError):
            await client.poll_status("0xdeposit")

    async def test_network_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(NetworkError):
            await _client(handler).get_supported_assets()

    async def test_health_check(self) -> None:
        assert await _client(_tokens_handler).health_check()
        assert not await _client(lambda _: httpx.Response(500)).health_check()
