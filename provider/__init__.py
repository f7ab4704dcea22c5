"""VidGuard 接入模块（Provider）：对视频托管方 HTTP API 的薄封装。

说明：
- 这里只做请求/响应转换，不含业务逻辑；业务编排见 `core.catalog_service`。
- 上游失败统一抛 `ProviderError`，消息里带上游原文。
"""

from __future__ import annotations

from .utils import build_embed_code
from .vidguard_api import ProviderError, VidGuardAPI

__all__ = [
    "ProviderError",
    "VidGuardAPI",
    "build_embed_code",
]
