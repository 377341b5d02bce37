"""Index 도메인 모델.

Index(목표 비중 포트폴리오)와 그 설정, 소유 계정, 지원 자산 정보를 정의합니다.

Rules Applied:
    - #11 Pydantic Modeling: BaseModel, field_validator
    - #12 Data Engineering: UTC datetime
"""

from __future__ import annotations

import re
from datetime import UTC, datetime, timedelta

from pydantic import BaseModel, ConfigDict, Field, field_validator

from rebalancer.models.drift import CurrentAllocation
from rebalancer.models.types import IndexStatus, RebalancingMethod

_INTERVAL_PATTERN = re.compile(r"^(\d+)([mhd])$")
_INTERVAL_UNITS = {"m": "minutes", "h": "hours", "d": "days"}


def parse_interval(value: str) -> timedelta:
    """'24h', '7d', '30m' 형식의 간격 문자열을 timedelta로 변환.

    Args:
        value: 간격 문자열

    Returns:
        timedelta

    Raises:
        ValueError: 형식이 잘못된 경우
    """
    match = _INTERVAL_PATTERN.match(value.strip())
    if match is None:
        msg = f"Invalid interval format: {value!r} (e.g. '24h', '7d')"
        raise ValueError(msg)
    amount, unit = match.groups()
    return timedelta(**{_INTERVAL_UNITS[unit]: int(amount)})


def _utcnow() -> datetime:
    return datetime.now(UTC)


class AssetAllocation(BaseModel):
    """목표 비중 항목.

    Attributes:
        symbol: 자산 심볼 (대문자 정규화)
        chain: 선택적 체인 이름
        percentage: 목표 비중 (0~100)
    """

    model_config = ConfigDict(frozen=True)

    symbol: str = Field(min_length=1)
    chain: str | None = None
    percentage: float = Field(ge=0, le=100)

    @field_validator("symbol", mode="before")
    @classmethod
    def upper_symbol(cls, v: str) -> str:
        """심볼 대문자 정규화."""
        return v.strip().upper() if isinstance(v, str) else v


class RebalancingConfig(BaseModel):
    """리밸런싱 정책 설정.

    Attributes:
        method: 리밸런싱 방식
        drift_threshold: 드리프트 임계값 (percentage points)
        min_rebalance_interval: DAILY/HYBRID 평가 최소 간격
        max_rebalance_interval: 선택적 최대 간격 (정보용)
    """

    method: RebalancingMethod = RebalancingMethod.DRIFT
    drift_threshold: float = Field(default=5.0, gt=0, le=100)
    min_rebalance_interval: timedelta = timedelta(hours=24)
    max_rebalance_interval: timedelta | None = None

    @field_validator("min_rebalance_interval", "max_rebalance_interval", mode="before")
    @classmethod
    def parse_interval_string(cls, v: object) -> object:
        """'24h' 같은 문자열 간격 허용."""
        if isinstance(v, str) and _INTERVAL_PATTERN.match(v.strip()):
            return parse_interval(v)
        return v


class RiskConfig(BaseModel):
    """거래 리스크 한도.

    Attributes:
        max_slippage: 최대 슬리피지 (%)
        max_trade_size: 단일 거래 최대 USD (0이면 무제한)
    """

    max_slippage: float = Field(default=1.0, ge=0, le=100)
    max_trade_size: float = Field(default=0.0, ge=0)


class Account(BaseModel):
    """Index 자금 계정 (외부 협력자 데이터, 참조 전용).

    Attributes:
        account_id: 계정 ID
        owner_id: 소유 사용자 ID (웹훅 구독 조회 키)
        wallet_address: 스왑 수신/환불 주소
    """

    model_config = ConfigDict(frozen=True)

    account_id: str
    owner_id: str
    wallet_address: str


class SupportedAsset(BaseModel):
    """오라클이 제공하는 지원 자산 정보."""

    model_config = ConfigDict(frozen=True)

    symbol: str
    chain: str
    asset_id: str
    decimals: int = Field(ge=0)
    price: float = Field(default=0.0, ge=0)


class Index(BaseModel):
    """목표 비중 포트폴리오.

    Lifecycle Service와 관리 작업만 변경하며, 물리적으로 삭제하지 않습니다
    (status=DELETED로 soft delete).
    """

    index_id: str
    account_id: str
    name: str
    description: str | None = None
    status: IndexStatus = IndexStatus.PENDING
    target_allocation: list[AssetAllocation]
    current_allocation: list[CurrentAllocation] | None = None
    total_value: float = 0.0
    total_drift: float = 0.0
    rebalancing_config: RebalancingConfig = Field(default_factory=RebalancingConfig)
    risk_config: RiskConfig = Field(default_factory=RiskConfig)
    last_rebalance: datetime | None = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    def touch(self) -> None:
        """updated_at 갱신."""
        self.updated_at = _utcnow()
