"""PriceService — TTL 캐시가 있는 가격 오라클 어댑터.

외부 오라클 호출량을 제한하기 위해 심볼별 가격과 지원 자산 목록을
짧은 TTL(기본 60초)로 캐싱합니다. 프로세스 시작 시 한 번 생성되어
소비자에게 주입됩니다.

Rules Applied:
    - #10 Python Standards: asyncio.gather, type hints
    - #23 Exception Handling: 가격 누락은 경고 후 0.0 (hard failure 아님)
"""

from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING

from loguru import logger

from rebalancer.core.exceptions import (
    ExternalServiceError,
    PriceUnavailableError,
    UnsupportedAssetError,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from rebalancer.execution.ports import PriceOracle
    from rebalancer.models.index import SupportedAsset

_DEFAULT_TTL = 60.0


class PriceService:
    """캐시 기반 가격 조회 서비스.

    Args:
        oracle: PriceOracle 구현체
        ttl_seconds: 캐시 유효 시간 (초)
        clock: 단조 시계 (테스트 주입용)
    """

    def __init__(
        self,
        oracle: PriceOracle,
        ttl_seconds: float = _DEFAULT_TTL,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._oracle = oracle
        self._ttl = ttl_seconds
        self._clock = clock
        self._price_cache: dict[str, tuple[float, float]] = {}
        self._assets_cache: tuple[list[SupportedAsset], float] | None = None

    async def get_price(self, symbol: str) -> float:
        """심볼의 USD 가격.

        Args:
            symbol: 자산 심볼

        Returns:
            USD 가격

        Raises:
            PriceUnavailableError: 오라클이 가격을 제공하지 않거나 실패한 경우
        """
        symbol = symbol.upper()
        cached = self._price_cache.get(symbol)
        now = self._clock()
        if cached is not None and now - cached[1] < self._ttl:
            logger.debug("Price cache hit for {}: ${}", symbol, cached[0])
            return cached[0]

        try:
            price = await self._oracle.get_price(symbol)
        except Exception as e:
            msg = f"Unable to fetch price for {symbol}"
            raise PriceUnavailableError(msg, context={"error": str(e)}) from e

        if price is None:
            msg = f"Price not available for {symbol}"
            raise PriceUnavailableError(msg)

        self._price_cache[symbol] = (price, now)
        logger.debug("Fetched price for {}: ${}", symbol, price)
        return price

    async def get_prices(self, symbols: Iterable[str]) -> dict[str, float]:
        """여러 심볼 가격을 동시에 조회. 실패한 심볼은 0.0으로 표기.

        Args:
            symbols: 심볼 목록

        Returns:
            심볼 → 가격 (실패 시 0.0)
        """
        unique = list(dict.fromkeys(s.upper() for s in symbols))
        results = await asyncio.gather(
            *(self.get_price(s) for s in unique), return_exceptions=True
        )

        prices: dict[str, float] = {}
        for symbol, result in zip(unique, results, strict=True):
            if isinstance(result, BaseException):
                logger.warning("Price unavailable for {}: {}", symbol, result)
                prices[symbol] = 0.0
            else:
                prices[symbol] = result
        return prices

    async def get_supported_assets(self) -> list[SupportedAsset]:
        """지원 자산 목록 (TTL 캐시).

        Raises:
            ExternalServiceError: 오라클 조회 실패 또는 응답 해석 실패
        """
        now = self._clock()
        if self._assets_cache is not None and now - self._assets_cache[1] < self._ttl:
            return self._assets_cache[0]

        try:
            assets = await self._oracle.get_supported_assets()
        except ExternalServiceError:
            raise
        except Exception as e:
            msg = "Unable to load supported assets"
            raise ExternalServiceError(msg, context={"error": str(e)}) from e

        self._assets_cache = (assets, now)
        logger.debug("Loaded {} supported assets", len(assets))
        return assets

    async def find_asset(self, symbol: str, chain: str | None = None) -> SupportedAsset:
        """심볼(선택적으로 체인)로 지원 자산 조회.

        여러 체인에 같은 심볼이 있으면 첫 번째를 반환합니다.

        Raises:
            UnsupportedAssetError: 일치하는 자산이 없을 때
        """
        symbol = symbol.upper()
        matches = [
            a
            for a in await self.get_supported_assets()
            if a.symbol.upper() == symbol and (chain is None or a.chain == chain)
        ]
        if not matches:
            msg = f"Unsupported asset: {symbol}"
            raise UnsupportedAssetError(msg, context={"chain": chain or "any"})
        if len(matches) > 1:
            logger.debug(
                "Multiple assets for {}, using {} on {}",
                symbol,
                matches[0].asset_id,
                matches[0].chain,
            )
        return matches[0]

    async def calculate_usd_value(self, symbol: str, amount: float) -> float:
        """수량의 USD 평가액."""
        return amount * await self.get_price(symbol)

    async def calculate_token_amount(self, symbol: str, usd_value: float) -> float:
        """USD 금액에 해당하는 수량.

        Raises:
            PriceUnavailableError: 가격이 0인 경우
        """
        price = await self.get_price(symbol)
        if price == 0:
            msg = f"Cannot calculate amount for {symbol}: price is 0"
            raise PriceUnavailableError(msg)
        return usd_value / price

    def clear_cache(self) -> None:
        """가격/자산 캐시 초기화."""
        self._price_cache.clear()
        self._assets_cache = None
        logger.info("Price cache cleared")
