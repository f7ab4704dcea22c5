"""业务/工具函数集合（路由层复用的部分集中在一个模块里）。

阅读提示（可读性优先）：
1) 这个文件只放“可复用”的函数：参数清洗、序列化、管理员校验、上传暂存、访问日志等。
2) 路由层（`app_routes.py`）只做 request/response/权限控制，业务编排在 `core/` 里。
3) 本文件从上到下按“通用 -> 业务”的顺序排：
   - 常量与约定
   - API 错误响应 / 依赖获取
   - 参数清洗
   - 管理员账号
   - 视频序列化
   - 上传暂存
   - 访问日志
"""

from __future__ import annotations

import hmac
import os
import time
import uuid
from dataclasses import dataclass
from urllib.parse import urlsplit
from typing import Any, Iterable

from flask import current_app, jsonify
from flask_login import UserMixin
from werkzeug.security import check_password_hash
from werkzeug.utils import secure_filename

from core import ActionLogger, CatalogService, StagedFile, VideoStore
from core.catalog_service import remove_staged_file
from models import split_tags

# ============================================================
# 1) 常量与约定（尽量集中，便于改动）
# ============================================================

PUBLIC_PAGE_SIZE = 12
ADMIN_PAGE_SIZE = 20
SEARCH_LIMIT = 10
ALLOWED_VIDEO_EXTENSIONS = {"mp4", "avi", "mov", "mkv", "wmv", "flv", "webm"}

# 前台访问日志的行为类型
ACTION_HOME = "home_page_view"
ACTION_VIDEO_LIST = "video_list_view"
ACTION_VIDEO = "video_view"
ACTION_MODEL = "model_view"
ACTION_TAG = "tag_view"


@dataclass
class Catalog:
    """应用入口组装好的依赖，挂在 app.extensions["catalog"] 上。"""

    store: VideoStore
    service: CatalogService
    actions: ActionLogger


# ============================================================
# 2) 通用：API 错误响应 / 依赖获取
# ============================================================


def api_error(msg: str, *, code: int = 400, http_status: int = 400, **extra):
    """统一失败返回结构：({code,msg,...}, http_status)"""
    return jsonify({"code": code, "msg": msg, **extra}), http_status


def get_catalog() -> Catalog:
    return current_app.extensions["catalog"]


# ============================================================
# 3) 通用：参数清洗
# ============================================================


def parse_page(value: Any) -> int:
    """页码：非数字或小于 1 一律当作第 1 页。"""
    try:
        page = int(value)
    except (TypeError, ValueError):
        return 1
    return max(1, page)


def parse_tags_input(value: str | Iterable[str] | None) -> list[str]:
    """表单里的 "a, b, c" -> ["a", "b", "c"]（去空、去重、保序）。"""
    return split_tags(value)


def parse_bool(value: Any, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    s = str(value).strip().lower()
    if s in {"1", "true", "yes", "y", "on"}:
        return True
    if s in {"0", "false", "no", "n", "off"}:
        return False
    return default


# ============================================================
# 4) 管理员账号（单一共享账号，没有用户表）
# ============================================================


class AdminUser(UserMixin):
    """Flask-Login 需要的用户对象；id 就是配置里的管理员用户名。"""

    def __init__(self, username: str):
        self.id = username


def is_hashed_password(value: str) -> bool:
    """粗略判断字符串看起来是否像 Werkzeug 的密码哈希。"""
    return isinstance(value, str) and value.count("$") >= 2


def verify_password(stored: str, candidate: str) -> bool:
    """校验密码：配置里可以是 Werkzeug 哈希，也可以是明文；坏数据返回 False。"""
    if not stored or not candidate:
        return False
    if is_hashed_password(stored):
        try:
            return check_password_hash(stored, candidate)
        except ValueError:
            return False
    return hmac.compare_digest(stored.encode("utf-8"), candidate.encode("utf-8"))


def check_admin_credentials(username: str, password: str, config) -> bool:
    expected_user = config.get("ADMIN_USERNAME") or ""
    if not expected_user or not hmac.compare_digest(expected_user.encode("utf-8"), (username or "").encode("utf-8")):
        return False
    return verify_password(config.get("ADMIN_PASSWORD") or "", password or "")


def safe_next_path(value: str | None) -> str | None:
    """登录后的跳转目标只接受本站路径（"/admin/..."），拒绝 "//host" 和带协议的地址。"""
    if not value or not value.startswith("/") or value.startswith("//") or "\\" in value:
        return None
    parts = urlsplit(value)
    if parts.scheme or parts.netloc:
        return None
    return value


def load_admin(user_id: str, config) -> AdminUser | None:
    expected_user = config.get("ADMIN_USERNAME") or ""
    if expected_user and user_id == expected_user:
        return AdminUser(expected_user)
    return None


# ============================================================
# 5) 视频：序列化
# ============================================================


def serialize_video(v) -> dict:
    """统一前端视频结构（JSON 接口复用）。"""
    return {
        "id": v.id,
        "title": v.title,
        "description": v.description or "",
        "model_name": v.model_name or "",
        "tags": v.tag_list,
        "embed_code": v.embed_code or "",
        "video_id": v.video_id,
        "thumbnail_url": v.thumbnail_url or "",
        "views": v.views or 0,
        "finished": bool(v.finished),
        "created_at": v.created_at.isoformat() if v.created_at else None,
        "updated_at": v.updated_at.isoformat() if v.updated_at else None,
    }


def video_form_fields(form, existing: dict) -> dict:
    """编辑页表单 -> 可写字段；表单里没有的字段沿用原值。"""
    fields = dict(existing)
    fields.update(
        title=(form.get("title") or "").strip() or existing.get("title") or "",
        description=form.get("description") or "",
        model_name=(form.get("model_name") or "").strip(),
        tags=parse_tags_input(form.get("tags")),
        finished=parse_bool(form.get("finished"), False),
    )
    return fields


# ============================================================
# 6) 上传暂存：校验 / 落盘
# ============================================================


def allowed_video(filename: str, allowed_extensions: Iterable[str] = ALLOWED_VIDEO_EXTENSIONS) -> bool:
    """视频后缀白名单校验。"""
    return bool(filename) and "." in filename and filename.rsplit(".", 1)[1].lower() in set(allowed_extensions)


def stage_upload(file_storage, upload_dir: str, max_size: int | None = None) -> StagedFile:
    """把上传文件写到 upload_dir，文件名用时间戳 + 随机串，原始文件名只用来当标题。

    max_size 是单个文件的上限（字节），超出时删掉已写入的文件。

    异常：
    - ValueError：后缀不对 / 文件过大（消息可直接返回给前端）
    - OSError：写盘失败（半截文件已清理）
    """
    original = getattr(file_storage, "filename", "") or ""
    if not allowed_video(original):
        raise ValueError("Only video files are allowed")

    os.makedirs(upload_dir, exist_ok=True)
    ext = original.rsplit(".", 1)[1].lower()
    safe_name = secure_filename(f"{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}.{ext}")
    path = os.path.join(upload_dir, safe_name)
    try:
        file_storage.save(path)
        size = os.path.getsize(path)
    except OSError:
        remove_staged_file(path)
        raise

    if max_size and size > max_size:
        remove_staged_file(path)
        raise ValueError(f"File exceeds the maximum size of {max_size} bytes")
    return StagedFile(path=path, original_name=original)


# ============================================================
# 7) 访问日志：从请求里取 UA/来源
# ============================================================


def client_context(req) -> dict:
    return {
        "user_agent": req.headers.get("User-Agent", "") or "",
        "referrer": req.headers.get("Referer", "") or "",
    }


def log_action(req, action_type: str, video_id: int | None = None) -> bool:
    """记录一次访问行为；返回值只用于测试，路由层忽略它。"""
    return get_catalog().actions.record_action(action_type, video_id, **client_context(req))


def log_view(req, video_id: int) -> bool:
    return get_catalog().actions.record_view(video_id, **client_context(req))
