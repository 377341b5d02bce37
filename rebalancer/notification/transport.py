"""웹훅 HTTP 전송 계층.

NotificationTransport Protocol은 POST 후 HTTP 상태 코드를 반환합니다.
네트워크 오류는 NetworkError로 변환되어 Dispatcher가 실패로 집계합니다.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

import httpx

from rebalancer.core.exceptions import NetworkError

DEFAULT_TIMEOUT = 10.0


@runtime_checkable
class NotificationTransport(Protocol):
    """웹훅 전송 인터페이스."""

    async def post(self, url: str, payload: dict[str, Any], headers: dict[str, str]) -> int:
        """JSON POST 후 HTTP 상태 코드 반환.

        Raises:
            NetworkError: 연결 실패, 타임아웃
        """
        ...


class HttpxTransport:
    """httpx.AsyncClient 기반 전송.

    Args:
        timeout: 요청 타임아웃 (초)
        client: 외부 주입 클라이언트 (테스트용 MockTransport 등)
    """

    def __init__(
        self, timeout: float = DEFAULT_TIMEOUT, client: httpx.AsyncClient | None = None
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            follow_redirects=True,
        )

    async def post(self, url: str, payload: dict[str, Any], headers: dict[str, str]) -> int:
        try:
            response = await self._client.post(url, json=payload, headers=headers)
        except httpx.HTTPError as e:
            msg = f"Webhook POST failed: {type(e).__name__}"
            raise NetworkError(msg, context={"url": url, "error": str(e)}) from e
        return response.status_code

    async def aclose(self) -> None:
        """자체 생성한 클라이언트 종료."""
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> HttpxTransport:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()
