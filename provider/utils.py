from html import escape
from typing import Any

# VidGuard 官方嵌入代码里的加载脚本（base64 内容原样保留）
EMBED_LOADER_SCRIPT = (
    "data:text/javascript;base64,"
    "dmFyIHA9ZG9jdW1lbnQuZ2V0RWxlbWVudHNCeVRhZ05hbWUoInNjcmlwdCIpWzBdLGU9ZG9jdW1lbnQuY3JlYXRlRWxlbWVudCgic2NyaXB0IiksZD1k"
    "b2N1bWVudC5xdWVyeVNlbGVjdG9yKCJkaXZbZG9tYWluXSIpLmdldEF0dHJpYnV0ZSgiZG9tYWluIik7ZS5zcmM9Ii8vIitkKyIvYXNzZXRzL2pzL2xv"
    "YWQuanMiLHAuYWZ0ZXIoZSk7"
)
DEFAULT_EMBED_DOMAIN = "listeamed.net"
EMBED_WIDTH = 800
EMBED_HEIGHT = 600


def build_embed_code(asset_id: str, domain: str = DEFAULT_EMBED_DOMAIN) -> str:
    """根据最终视频 ID 生成嵌入代码（div 占位 + 加载脚本）。"""
    if not asset_id:
        return ""
    return (
        f'<div id="{escape(str(asset_id))}" domain="{escape(domain or DEFAULT_EMBED_DOMAIN)}" '
        f'width="{EMBED_WIDTH}" height="{EMBED_HEIGHT}"></div>'
        f'<script src="{EMBED_LOADER_SCRIPT}"></script>'
    )


def upstream_message(payload: Any) -> str:
    """从上游 JSON 里尽量取出错误描述；取不到就返回空串。"""
    if not isinstance(payload, dict):
        return ""
    for key in ("msg", "message", "error"):
        value = payload.get(key)
        if value:
            return str(value)
    return ""


def drop_empty(params: dict) -> dict:
    """去掉值为 None/空串的参数（可选的 folder 等）。"""
    return {k: v for k, v in params.items() if v is not None and v != ""}
