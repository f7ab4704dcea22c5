"""VidGuard API 客户端：上传、远程拉取、状态轮询、视频/文件夹管理。"""

from __future__ import annotations

import logging
import os
from typing import Any, Dict, Optional

import requests
from requests.adapters import HTTPAdapter
from requests_toolbelt import MultipartEncoder
from urllib3.util.retry import Retry

from provider.utils import drop_empty, upstream_message

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.vidguard.to"
REQUEST_TIMEOUT = 30


class ProviderError(Exception):
    """VidGuard 调用失败；str(exc) 即带上游原文的错误消息。"""


def build_session() -> requests.Session:
    """GET 在 5xx 时自动重试；POST 不在 urllib3 默认重试方法里，远程上传不会被重复提交。"""
    session = requests.Session()
    retries = Retry(total=3, backoff_factor=1, status_forcelist=[500, 502, 503, 504])
    adapter = HTTPAdapter(max_retries=retries)
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    return session


class VidGuardAPI:
    """VidGuard HTTP API 的一对一封装，每个方法对应一个上游能力。"""

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_BASE_URL,
        *,
        timeout: int = REQUEST_TIMEOUT,
        session: Optional[requests.Session] = None,
    ):
        self.api_key = api_key or ""
        self.base_url = (base_url or DEFAULT_BASE_URL).rstrip("/")
        self.timeout = timeout
        self.session = session or build_session()

    @classmethod
    def from_config(cls, config) -> "VidGuardAPI":
        return cls(
            config.get("VIDGUARD_API_KEY", ""),
            config.get("VIDGUARD_BASE_URL", DEFAULT_BASE_URL),
            timeout=config.get("VIDGUARD_TIMEOUT", REQUEST_TIMEOUT),
        )

    # ------------------------------------------------------------
    # 底层请求
    # ------------------------------------------------------------

    def _parse(self, resp: requests.Response, action: str) -> Any:
        try:
            payload = resp.json()
        except ValueError:
            payload = None

        if resp.status_code >= 400:
            detail = upstream_message(payload) or (resp.text or "").strip()[:200] or resp.reason
            raise ProviderError(f"Failed to {action}: HTTP {resp.status_code} {detail}".rstrip())
        if payload is None:
            raise ProviderError(f"Failed to {action}: invalid JSON response")
        return payload

    def _get(self, path: str, action: str, **params) -> Any:
        query = self._form(**params)
        try:
            resp = self.session.get(f"{self.base_url}{path}", params=query, timeout=self.timeout)
        except requests.RequestException as exc:
            raise ProviderError(f"Failed to {action}: {exc}") from exc
        return self._parse(resp, action)

    def _form(self, **fields) -> Dict[str, Any]:
        return drop_empty({"key": self.api_key, **fields})

    def _post(self, url: str, action: str, data: Any, *, headers=None, timeout=None) -> Any:
        try:
            resp = self.session.post(
                url,
                data=data,
                headers=headers,
                timeout=timeout if timeout is not None else self.timeout,
            )
        except requests.RequestException as exc:
            raise ProviderError(f"Failed to {action}: {exc}") from exc
        return self._parse(resp, action)

    # ------------------------------------------------------------
    # 上传
    # ------------------------------------------------------------

    def request_upload_server(self) -> Dict[str, Any]:
        """获取上传服务器地址：{"url": ...}"""
        return self._get("/v1/upload/server", "get upload server")

    def upload_local_file(self, path: str, folder_id: Optional[str] = None) -> Dict[str, Any]:
        """把本地文件以 multipart 形式上传到 VidGuard，返回上游的视频描述（含 id）。

        请求体由 MultipartEncoder 边读边发，文件不会整体读入内存，因此不设客户端体积上限；
        读超时放开，只限制连接超时。
        """
        server = self.request_upload_server()
        upload_url = server.get("url") if isinstance(server, dict) else None
        if not upload_url:
            raise ProviderError("Failed to upload video: upload server response has no url")

        logger.info("Uploading %s to %s", os.path.basename(path), upload_url)
        with open(path, "rb") as fh:
            encoder = MultipartEncoder(
                fields={
                    **self._form(folder=folder_id),
                    "file": (os.path.basename(path), fh, "application/octet-stream"),
                }
            )
            return self._post(
                upload_url,
                "upload video",
                encoder,
                headers={"Content-Type": encoder.content_type},
                timeout=(self.timeout, None),
            )

    def submit_remote_fetch(self, source_url: str, folder_id: Optional[str] = None) -> Dict[str, Any]:
        """提交远程拉取任务，返回 {"id": 任务ID}。重复调用会在上游生成重复任务。"""
        return self._post(
            f"{self.base_url}/v1/remote/upload",
            "remote upload",
            self._form(url=source_url, folder=folder_id),
        )

    def poll_remote_fetch(self, job_id: str) -> Dict[str, Any]:
        """查询远程拉取任务：{"status": pending|finished|failed, "video_id": ...}"""
        return self._get("/v1/remote/get", "get remote upload status", id=job_id)

    # ------------------------------------------------------------
    # 视频管理
    # ------------------------------------------------------------

    def fetch_asset_info(self, asset_id: str) -> Dict[str, Any]:
        return self._get("/v1/video/info", "get video info", id=asset_id)

    def delete_asset(self, asset_id: str) -> Dict[str, Any]:
        return self._get("/v1/video/delete", "delete video", id=asset_id)

    def rename_asset(self, asset_id: str, name: str) -> Dict[str, Any]:
        return self._get("/v1/video/rename", "rename video", id=asset_id, name=name)

    def list_assets(self, folder_id: Optional[str] = None, offset: int = 0, limit: int = 50) -> Dict[str, Any]:
        return self._get("/v1/video/list", "get video list", folder=folder_id, offset=offset, limit=limit)

    # ------------------------------------------------------------
    # 文件夹
    # ------------------------------------------------------------

    def create_folder(self, name: str, parent_id: Optional[str] = None) -> Dict[str, Any]:
        return self._get("/v1/folder/new", "create folder", name=name, folder=parent_id)

    def list_folders(self, parent_id: Optional[str] = None) -> Dict[str, Any]:
        return self._get("/v1/folder/list", "get folder list", folder=parent_id)
