"""Pydantic Settings for configuration management.

All settings are loaded from environment variables (REBALANCER_ prefix)
and/or a .env file with type validation.

Features:
    - SecretStr for the swap API token (auto-masking in logs)
    - Trade retry / settlement polling parameters
    - Drift monitor schedule and notification delivery parameters

Rules Applied:
    - #11 Pydantic Modeling: BaseSettings, SecretStr
    - #19 Git Security: No secrets in code
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class RebalancerSettings(BaseSettings):
    """리밸런싱 엔진 설정.

    환경 변수 또는 .env 파일에서 설정을 로드합니다.
    API 토큰은 SecretStr로 보호되어 로그에 노출되지 않습니다.

    Environment Variables:
        - REBALANCER_DATABASE_PATH: SQLite 파일 경로 (기본: data/rebalancer.db)
        - REBALANCER_INTENTS_API_URL: 1-Click API 기본 URL
        - REBALANCER_INTENTS_JWT_TOKEN: 1-Click API JWT (선택, 수수료 면제)
        - REBALANCER_DRIFT_MONITOR_INTERVAL: 드리프트 모니터 주기 (초)

    Example:
        >>> settings = get_settings()
        >>> settings.drift_monitor_interval
        300.0
    """

    model_config = SettingsConfigDict(
        env_prefix="REBALANCER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ==========================================================================
    # Storage
    # ==========================================================================
    database_path: Path = Field(
        default=Path("data/rebalancer.db"),
        description="SQLite 데이터베이스 경로 (':memory:' 가능)",
    )

    # ==========================================================================
    # External Services
    # ==========================================================================
    intents_api_url: str = Field(
        default="https://1click.chaindefuser.com",
        description="1-Click 스왑 API 기본 URL",
    )
    intents_jwt_token: SecretStr = Field(
        default=SecretStr(""),
        description="1-Click API JWT 토큰",
    )
    near_rpc_url: str = Field(
        default="https://rpc.mainnet.near.org",
        description="NEAR JSON-RPC URL (잔고 조회)",
    )
    intents_contract_id: str = Field(
        default="intents.near",
        description="NEP-245 multi-token 컨트랙트",
    )
    request_timeout: float = Field(
        default=30.0,
        gt=0,
        description="외부 API 요청 타임아웃 (초)",
    )
    signer_factory: str | None = Field(
        default=None,
        description="SigningProvider 팩토리 import 경로 ('package.module:callable')",
    )

    # ==========================================================================
    # Pricing
    # ==========================================================================
    price_cache_ttl: float = Field(
        default=60.0,
        ge=0,
        description="가격 캐시 TTL (초)",
    )

    # ==========================================================================
    # Trade Execution
    # ==========================================================================
    base_currency: str = Field(
        default="USDC",
        description="기준 통화 심볼",
    )
    construction_buffer: float = Field(
        default=0.01,
        ge=0,
        lt=1,
        description="초기 구성 시 수수료 대비 예약 비율",
    )
    trade_max_retries: int = Field(
        default=2,
        ge=0,
        le=10,
        description="거래당 최대 재시도 횟수 (총 시도 = +1)",
    )
    trade_retry_delay: float = Field(
        default=5.0,
        ge=0,
        description="재시도 기본 지연 (초, × 시도 번호)",
    )
    settlement_poll_interval: float = Field(
        default=10.0,
        gt=0,
        description="정산 상태 폴링 간격 (초)",
    )
    settlement_timeout: float = Field(
        default=600.0,
        gt=0,
        description="정산 폴링 제한 시간 (초)",
    )
    slippage_tolerance_bps: int = Field(
        default=100,
        ge=0,
        le=10000,
        description="견적 슬리피지 허용치 (basis points)",
    )

    # ==========================================================================
    # Drift Monitor
    # ==========================================================================
    drift_monitor_enabled: bool = Field(
        default=True,
        description="드리프트 모니터 활성화",
    )
    drift_monitor_interval: float = Field(
        default=300.0,
        gt=0,
        description="드리프트 모니터 실행 주기 (초)",
    )
    default_drift_threshold: float = Field(
        default=5.0,
        gt=0,
        le=100,
        description="Index 설정이 없을 때의 드리프트 임계값 (pp)",
    )

    # ==========================================================================
    # Webhook Delivery
    # ==========================================================================
    webhook_timeout: float = Field(
        default=10.0,
        gt=0,
        description="웹훅 전송 타임아웃 (초)",
    )
    webhook_max_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="이벤트당 웹훅 최대 전송 시도",
    )
    webhook_backoff_base: float = Field(
        default=2.0,
        ge=0,
        description="웹훅 재시도 백오프 밑 (base ** attempt 초)",
    )
    webhook_disable_threshold: int = Field(
        default=10,
        ge=1,
        description="연속 실패 시 자동 비활성화 임계값",
    )

    @field_validator("base_currency", mode="before")
    @classmethod
    def upper_symbol(cls, v: str) -> str:
        """심볼을 대문자로 정규화."""
        return v.upper() if isinstance(v, str) else v

    def has_api_token(self) -> bool:
        """1-Click JWT 토큰 설정 여부."""
        return bool(self.intents_jwt_token.get_secret_value())


@lru_cache
def get_settings() -> RebalancerSettings:
    """설정 싱글톤 인스턴스 반환.

    Returns:
        RebalancerSettings 인스턴스
    """
    return RebalancerSettings()


def clear_settings_cache() -> None:
    """설정 캐시 초기화 (테스트용)."""
    get_settings.cache_clear()
