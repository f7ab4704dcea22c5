"""数据模型定义：封装所有与数据库表对应的 SQLAlchemy ORM 类。"""

from __future__ import annotations

import re
from datetime import datetime
from typing import Iterable

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()

TAG_SEPARATOR = ","


def split_tags(value: str | Iterable[str] | None) -> list[str]:
    """把 "a, b ,c" 或 ["a", "b"] 统一成去重后的有序列表（保留首次出现的顺序）。"""
    if value is None:
        return []
    if isinstance(value, str):
        parts = re.split(r"[,，]", value)
    else:
        parts = list(value)

    out: list[str] = []
    seen: set[str] = set()
    for part in parts:
        tag = str(part or "").replace(TAG_SEPARATOR, " ").strip()
        if not tag or tag in seen:
            continue
        seen.add(tag)
        out.append(tag)
    return out


def join_tags(value: str | Iterable[str] | None) -> str:
    return TAG_SEPARATOR.join(split_tags(value))


class Video(db.Model):
    """目录中的一条视频：finished=False 表示待处理/未发布，前台一律不可见。"""

    __tablename__ = "videos"

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, default="")
    model_name = db.Column(db.String(255), index=True)

    # 标签按输入顺序以逗号拼接存储；成员判断见 VideoStore.list_by_tag
    tags = db.Column(db.String(1000), default="")

    embed_code = db.Column(db.Text, default="")
    # VidGuard 编号：远程上传期间是任务 ID，完成后替换为最终视频 ID
    video_id = db.Column(db.String(255), index=True)
    thumbnail_url = db.Column(db.String(500), default="")

    views = db.Column(db.Integer, nullable=False, default=0)
    finished = db.Column(db.Boolean, nullable=False, default=False, index=True)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.now, index=True)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.now, onupdate=datetime.now)

    @property
    def tag_list(self) -> list[str]:
        return split_tags(self.tags)

    def __repr__(self) -> str:
        return f"<Video {self.id} {self.title!r} finished={self.finished}>"


class UserAction(db.Model):
    """访问行为表：只追加，不更新不删除。"""

    __tablename__ = "user_actions"

    id = db.Column(db.Integer, primary_key=True)
    action_type = db.Column(db.String(100), nullable=False, index=True)
    video_id = db.Column(db.Integer, db.ForeignKey("videos.id"), nullable=True)
    user_agent = db.Column(db.String(255))
    referrer = db.Column(db.String(500))
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.now, index=True)


class VideoView(db.Model):
    """播放明细表：每插入一行，对应视频的 views 同步 +1。"""

    __tablename__ = "video_views"

    id = db.Column(db.Integer, primary_key=True)
    video_id = db.Column(db.Integer, db.ForeignKey("videos.id"), nullable=False, index=True)
    user_agent = db.Column(db.String(255))
    referrer = db.Column(db.String(500))
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.now, index=True)
