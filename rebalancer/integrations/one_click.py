"""OneClickClient — NEAR Intents 1-Click REST API 어댑터.

PriceOracle과 SwapExecutionService Port를 구현합니다.

Endpoints:
    - GET  /v0/tokens          지원 토큰 + USD 가격
    - POST /v0/quote           견적 (dry=false면 deposit address 발급)
    - POST /v0/deposit/submit  입금 트랜잭션 통지 (처리 가속, 선택)
    - GET  /v0/status          정산 상태

Swap Flow (INTENTS → INTENTS):
    1. 견적 요청으로 deposit address 획득
    2. SigningProvider로 deposit address에 원천 자산 전송
    3. 입금 트랜잭션 해시 통지
    4. deposit address를 정산 폴링 키로 반환

Rules Applied:
    - #23 Exception Handling: HTTP 오류 → 도메인 예외 매핑
    - #19 Git Security: JWT는 SecretStr에서 주입, 로그 금지
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any

import httpx
from loguru import logger

from rebalancer.core.exceptions import (
    ExternalServiceError,
    InsufficientBalanceError,
    NetworkError,
    RateLimitError,
    ValidationError,
)
from rebalancer.execution.ports import SwapSubmission
from rebalancer.models.index import SupportedAsset
from rebalancer.models.types import SwapStatus

if TYPE_CHECKING:
    from rebalancer.execution.ports import SigningProvider

DEFAULT_BASE_URL = "https://1click.chaindefuser.com"
DEFAULT_TIMEOUT = 30.0
DEFAULT_SLIPPAGE_BPS = 100
QUOTE_DEADLINE = timedelta(hours=1)

HTTP_BAD_REQUEST = 400
HTTP_UNPROCESSABLE = 422
HTTP_TOO_MANY_REQUESTS = 429
_INSUFFICIENT_MARKERS = ("insufficient", "not enough", "balance")


class OneClickClient:
    """1-Click API 클라이언트.

    Example:
        >>> async with OneClickClient(signer=signer) as client:
        ...     assets = await client.get_supported_assets()
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        *,
        jwt_token: str | None = None,
        slippage_bps: int = DEFAULT_SLIPPAGE_BPS,
        timeout: float = DEFAULT_TIMEOUT,
        signer: SigningProvider | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        headers = {"Content-Type": "application/json"}
        if jwt_token:
            headers["Authorization"] = f"Bearer {jwt_token}"
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=base_url,
            timeout=httpx.Timeout(timeout),
            headers=headers,
        )
        if client is not None:
            self._client.headers.update(headers)
        self._slippage_bps = slippage_bps
        self._signer = signer
        logger.info("1-Click client initialized (base={}, jwt={})", base_url, bool(jwt_token))

    async def __aenter__(self) -> OneClickClient:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """자체 생성한 httpx 클라이언트 종료."""
        if self._owns_client:
            await self._client.aclose()

    # ─── PriceOracle ─────────────────────────────────────────

    async def get_supported_assets(self) -> list[SupportedAsset]:
        """GET /v0/tokens → SupportedAsset 목록."""
        tokens = await self._request("GET", "/v0/tokens")
        assets = [
            SupportedAsset(
                symbol=str(t["symbol"]).upper(),
                chain=t.get("blockchain", ""),
                asset_id=t["assetId"],
                decimals=int(t["decimals"]),
                price=float(t.get("price") or 0.0),
            )
            for t in tokens
            if t.get("assetId") and t.get("symbol")
        ]
        logger.info("Fetched {} supported tokens", len(assets))
        return assets

    async def get_price(self, symbol: str) -> float | None:
        """심볼의 USD 가격 (첫 번째 일치 토큰 기준, 없으면 None)."""
        symbol = symbol.upper()
        for asset in await self.get_supported_assets():
            if asset.symbol == symbol:
                return asset.price if asset.price > 0 else None
        logger.warning("Token not found: {}", symbol)
        return None

    # ─── SwapExecutionService ────────────────────────────────

    async def request_quote(
        self,
        origin_asset: str,
        destination_asset: str,
        amount: int,
        recipient: str,
        *,
        dry: bool = False,
    ) -> dict[str, Any]:
        """POST /v0/quote (INTENTS → INTENTS, EXACT_INPUT)."""
        recipient = recipient.lower()
        body = {
            "dry": dry,
            "swapType": "EXACT_INPUT",
            "slippageTolerance": self._slippage_bps,
            "originAsset": origin_asset,
            "destinationAsset": destination_asset,
            "amount": str(amount),
            "depositType": "INTENTS",
            "refundType": "INTENTS",
            "recipientType": "INTENTS",
            "recipient": recipient,
            "refundTo": recipient,
            "connectedWallets": [recipient],
            "deadline": (datetime.now(UTC) + QUOTE_DEADLINE).isoformat().replace("+00:00", "Z"),
        }
        data = await self._request("POST", "/v0/quote", json=body)
        quote = data.get("quote", {})
        logger.info(
            "Quote received: {} in -> {} out (deposit {})",
            quote.get("amountInFormatted"),
            quote.get("amountOutFormatted"),
            quote.get("depositAddress"),
        )
        return data

    async def request_swap(
        self,
        origin_asset: str,
        destination_asset: str,
        amount: int,
        recipient: str,
        account_id: str,
    ) -> SwapSubmission:
        """견적 → 입금 전송 → 입금 통지."""
        if self._signer is None:
            msg = "No signing provider configured for swap execution"
            raise ValidationError(msg)

        data = await self.request_quote(origin_asset, destination_asset, amount, recipient)
        quote = data.get("quote") or {}
        deposit_address = quote.get("depositAddress")
        if not deposit_address:
            msg = "Quote response has no deposit address"
            raise ExternalServiceError(msg, context={"origin": origin_asset})

        tx_hash = await self._signer.transfer_to_deposit(
            account_id, origin_asset, amount, deposit_address
        )
        logger.info("Deposit transferred to {} (tx={})", deposit_address, tx_hash)

        try:
            await self._request(
                "POST",
                "/v0/deposit/submit",
                json={"depositAddress": deposit_address, "txHash": tx_hash},
            )
        except ExternalServiceError as e:
            logger.warning("Deposit submit failed (settlement continues): {}", e)

        return SwapSubmission(
            settlement_reference=deposit_address,
            expected_output=quote.get("amountOut"),
            status=SwapStatus.KNOWN_DEPOSIT_TX,
            tx_hash=tx_hash,
        )

    async def poll_status(self, settlement_reference: str) -> SwapStatus:
        """GET /v0/status → SwapStatus (알 수 없는 값은 PROCESSING)."""
        data = await self._request(
            "GET", "/v0/status", params={"depositAddress": settlement_reference}
        )
        raw = str(data.get("status", ""))
        try:
            status = SwapStatus(raw)
        except ValueError:
            logger.warning("Unknown swap status {!r} for {}", raw, settlement_reference)
            status = SwapStatus.PROCESSING
        logger.debug("Swap status for {}: {}", settlement_reference, status)
        return status

    async def health_check(self) -> bool:
        """API 도달 가능 여부."""
        try:
            await self._request("GET", "/v0/tokens")
        except ExternalServiceError as e:
            logger.error("1-Click health check failed: {}", e)
            return False
        return True

    # ─── HTTP ────────────────────────────────────────────────

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            msg = f"1-Click API timeout: {method} {path}"
            raise NetworkError(msg) from e
        except httpx.HTTPError as e:
            msg = f"1-Click API unreachable: {method} {path}"
            raise NetworkError(msg, context={"error": str(e)}) from e

        if response.is_success:
            return response.json()
        raise _map_error(response, method, path)


def _map_error(response: httpx.Response, method: str, path: str) -> Exception:
    """HTTP 오류 응답 → 도메인 예외."""
    status = response.status_code
    try:
        body = response.json()
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}
    message = str(body.get("message") or body.get("error") or response.reason_phrase)
    context: dict[str, object] = {"status": status, "endpoint": f"{method} {path}"}
    logger.error("1-Click API error {} on {} {}: {}", status, method, path, message)

    if status == HTTP_TOO_MANY_REQUESTS:
        retry_after = response.headers.get("Retry-After")
        return RateLimitError(
            f"1-Click rate limit: {message}",
            retry_after=float(retry_after) if retry_after and retry_after.isdigit() else None,
            context=context,
        )
    if status in (HTTP_BAD_REQUEST, HTTP_UNPROCESSABLE):
        if any(marker in message.lower() for marker in _INSUFFICIENT_MARKERS):
            return InsufficientBalanceError(message, context=context)
        return ValidationError(f"1-Click rejected request: {message}", context=context)
    return ExternalServiceError(f"1-Click API error: {message}", context=context)
