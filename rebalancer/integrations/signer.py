"""SigningProvider 로딩.

키 생성/암호화는 외부 시스템의 책임이므로, 코어는 설정된 import 경로
('package.module:factory')의 팩토리를 호출해 SigningProvider를 얻습니다.
"""

from __future__ import annotations

import importlib

from loguru import logger

from rebalancer.core.exceptions import ValidationError
from rebalancer.execution.ports import SigningProvider


def load_signer(path: str) -> SigningProvider:
    """import 경로의 팩토리로 SigningProvider 생성.

    Args:
        path: 'package.module:callable' 형식

    Raises:
        ValidationError: 경로 형식 오류, import 실패, Port 불일치
    """
    module_name, sep, attr = path.partition(":")
    if not sep or not module_name or not attr:
        msg = "Signer factory must be 'package.module:callable'"
        raise ValidationError(msg, context={"path": path})

    try:
        factory = getattr(importlib.import_module(module_name), attr)
    except (ImportError, AttributeError) as e:
        msg = f"Cannot load signer factory {path}"
        raise ValidationError(msg, context={"error": str(e)}) from e

    signer = factory()
    if not isinstance(signer, SigningProvider):
        msg = f"{path} did not return a SigningProvider"
        raise ValidationError(msg, context={"type": type(signer).__name__})
    logger.info("Signing provider loaded from {}", path)
    return signer
