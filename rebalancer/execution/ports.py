"""외부 협력자 Port Protocol 정의.

코어가 소비하는 인터페이스만 정의합니다. 구현체는 rebalancer.integrations
(1-Click API, NEAR RPC) 또는 테스트 fake가 제공하며, structural subtyping으로
자동으로 만족합니다.

Ports:
    - PriceOracle: 심볼 → USD 가격, 지원 자산 목록
    - SwapExecutionService: 스왑 요청 + 정산 상태 폴링
    - SigningProvider: 계정별 서명/입금 전송 (키는 코어 밖에 존재)
    - BalanceProvider: 계정 보유 수량 조회
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict

from rebalancer.models.types import SwapStatus

if TYPE_CHECKING:
    from rebalancer.models.index import Account, SupportedAsset


class SwapSubmission(BaseModel):
    """request_swap() 결과.

    Attributes:
        settlement_reference: 정산 폴링 키 (deposit address)
        expected_output: 예상 수령량 (최소 단위 문자열)
        status: 제출 직후 상태
        tx_hash: 입금 트랜잭션 해시 (있으면)
    """

    model_config = ConfigDict(frozen=True)

    settlement_reference: str
    expected_output: str | None = None
    status: SwapStatus = SwapStatus.PENDING_DEPOSIT
    tx_hash: str | None = None


@runtime_checkable
class PriceOracle(Protocol):
    """가격/견적 오라클 인터페이스."""

    async def get_price(self, symbol: str) -> float | None:
        """USD 가격 (제공 불가 시 None)."""
        ...

    async def get_supported_assets(self) -> list[SupportedAsset]:
        """지원 자산 목록."""
        ...


@runtime_checkable
class SwapExecutionService(Protocol):
    """스왑 실행 서비스 인터페이스."""

    async def request_swap(
        self,
        origin_asset: str,
        destination_asset: str,
        amount: int,
        recipient: str,
        account_id: str,
    ) -> SwapSubmission:
        """스왑 제출.

        Args:
            origin_asset: 원천 자산 ID
            destination_asset: 목적 자산 ID
            amount: 최소 단위 정수 수량
            recipient: 수령 주소
            account_id: 서명 계정 ID

        Raises:
            InsufficientBalanceError: 잔고 부족 (재시도 안 함)
            ExternalServiceError: 서비스 오류 (재시도 대상)
        """
        ...

    async def poll_status(self, settlement_reference: str) -> SwapStatus:
        """현재 정산 상태."""
        ...


@runtime_checkable
class SigningProvider(Protocol):
    """계정별 서명 능력. 코어는 키를 저장하거나 로깅하지 않습니다."""

    async def transfer_to_deposit(
        self,
        account_id: str,
        asset_id: str,
        amount: int,
        deposit_address: str,
    ) -> str:
        """입금 주소로 자산 전송 후 트랜잭션 해시 반환."""
        ...


@runtime_checkable
class BalanceProvider(Protocol):
    """계정 보유 수량 조회 인터페이스."""

    async def get_holdings(self, account: Account) -> dict[str, float]:
        """심볼 → 보유 수량."""
        ...
