"""视频目录的查询层：分页、检索、排序、计数都集中在这里。

约定：
- 所有查询都走 SQLAlchemy 表达式（参数化），不拼接 SQL 字符串。
- finished=False 的视频只会出现在 list_unfinished / list_all / get_by_id 中。
- 排序字段与方向只能取 SortField / SortOrder 枚举值，非法输入回退到默认值。
"""

from __future__ import annotations

from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import and_, false, func, literal, or_

from models import TAG_SEPARATOR, UserAction, Video, VideoView, join_tags, split_tags

DEFAULT_PAGE_SIZE = 12
RECENT_DAYS = 7

# 允许整体替换的字段（id/views/时间戳不在其中）
MUTABLE_FIELDS = (
    "title",
    "description",
    "model_name",
    "tags",
    "embed_code",
    "video_id",
    "thumbnail_url",
    "finished",
)


class SortField(Enum):
    """列表页允许的排序列"""
    CREATED_AT = "created_at"
    UPDATED_AT = "updated_at"
    TITLE = "title"
    VIEWS = "views"
    MODEL_NAME = "model_name"

    @classmethod
    def parse(cls, value: Any, default: "SortField" = None) -> "SortField":
        if isinstance(value, cls):
            return value
        raw = str(value or "").strip().lower()
        for member in cls:
            if member.value == raw:
                return member
        return default or cls.CREATED_AT

    @property
    def column(self):
        return getattr(Video, self.value)


class SortOrder(Enum):
    ASC = "ASC"
    DESC = "DESC"

    @classmethod
    def parse(cls, value: Any, default: "SortOrder" = None) -> "SortOrder":
        if isinstance(value, cls):
            return value
        raw = str(value or "").strip().upper()
        for member in cls:
            if member.value == raw:
                return member
        return default or cls.DESC

    def apply(self, column):
        return column.asc() if self is SortOrder.ASC else column.desc()


def page_offset(page: int, page_size: int) -> int:
    return (page - 1) * page_size


def total_pages(total: int, page_size: int) -> int:
    """ceil(total / page_size)，total 为 0 时返回 0。"""
    if total <= 0 or page_size <= 0:
        return 0
    return (total + page_size - 1) // page_size


def _coerce_fields(fields: Mapping[str, Any]) -> Dict[str, Any]:
    """把外部传入的字段补齐为完整的可写字段字典。"""
    return {
        "title": (fields.get("title") or "").strip(),
        "description": fields.get("description") or "",
        "model_name": (fields.get("model_name") or "").strip(),
        "tags": join_tags(fields.get("tags")),
        "embed_code": fields.get("embed_code") or "",
        "video_id": fields.get("video_id") or None,
        "thumbnail_url": fields.get("thumbnail_url") or "",
        "finished": bool(fields.get("finished", False)),
    }


class VideoStore:
    """videos / user_actions / video_views 三张表的读写入口。"""

    def __init__(self, db: SQLAlchemy):
        """
        Args:
            db: 由应用入口创建并注入的 SQLAlchemy 实例
        """
        self.db = db

    # ------------------------------------------------------------
    # 内部工具
    # ------------------------------------------------------------

    def _published(self):
        return self.db.session.query(Video).filter(Video.finished.is_(True))

    def _paginate(self, query, page: int, page_size: int) -> Dict[str, Any]:
        page = max(1, int(page or 1))
        page_size = max(1, int(page_size or DEFAULT_PAGE_SIZE))
        offset = page_offset(page, page_size)

        total = query.order_by(None).count()
        items = query.offset(offset).limit(page_size).all()
        return {
            "items": items,
            "total": total,
            "page": page,
            "page_size": page_size,
            "pages": total_pages(total, page_size),
            "offset": offset,
        }

    @staticmethod
    def _since(days: int) -> datetime:
        return datetime.now() - timedelta(days=days)

    @staticmethod
    def as_fields(video: Video) -> Dict[str, Any]:
        """把一行视频转回可写字段字典（用于“读出 -> 改几个字段 -> 整体写回”）。"""
        fields = {name: getattr(video, name) for name in MUTABLE_FIELDS}
        fields["tags"] = video.tag_list
        return fields

    # ------------------------------------------------------------
    # 前台列表（只含已发布）
    # ------------------------------------------------------------

    def list_published(
        self,
        page: int = 1,
        page_size: int = DEFAULT_PAGE_SIZE,
        search_term: str = "",
        sort_field: Any = SortField.CREATED_AT,
        sort_dir: Any = SortOrder.DESC,
    ) -> Dict[str, Any]:
        """已发布视频分页；search_term 对标题/模特名/标签做不区分大小写的子串匹配。"""
        query = self._published()

        term = (search_term or "").strip().lower()
        if term:
            query = query.filter(
                or_(
                    func.lower(Video.title).contains(term, autoescape=True),
                    func.lower(Video.model_name).contains(term, autoescape=True),
                    func.lower(Video.tags).contains(term, autoescape=True),
                )
            )

        field = SortField.parse(sort_field)
        order = SortOrder.parse(sort_dir)
        query = query.order_by(order.apply(field.column), Video.id.desc())
        return self._paginate(query, page, page_size)

    def list_by_model(self, model_name: str, page: int = 1, page_size: int = DEFAULT_PAGE_SIZE) -> Dict[str, Any]:
        name = (model_name or "").strip().lower()
        query = (
            self._published()
            .filter(func.lower(Video.model_name) == name)
            .order_by(Video.created_at.desc(), Video.id.desc())
        )
        return self._paginate(query, page, page_size)

    def list_by_tag(self, tag: str, page: int = 1, page_size: int = DEFAULT_PAGE_SIZE) -> Dict[str, Any]:
        """标签精确匹配：两端补分隔符后查找 ",tag,"，避免 "art" 命中 "party"。"""
        wanted = split_tags([tag])
        if not wanted:
            return self._paginate(self._published().filter(false()), page, page_size)

        wrapped = literal(TAG_SEPARATOR) + Video.tags + literal(TAG_SEPARATOR)
        needle = f"{TAG_SEPARATOR}{wanted[0].lower()}{TAG_SEPARATOR}"
        query = (
            self._published()
            .filter(func.lower(wrapped).contains(needle, autoescape=True))
            .order_by(Video.created_at.desc(), Video.id.desc())
        )
        return self._paginate(query, page, page_size)

    def list_new(self, limit: int = 8) -> List[Video]:
        """最近 7 天发布的新视频，按创建时间倒序。"""
        return (
            self._published()
            .filter(Video.created_at >= self._since(RECENT_DAYS))
            .order_by(Video.created_at.desc(), Video.id.desc())
            .limit(limit)
            .all()
        )

    def list_most_viewed_this_week(self, limit: int = 8) -> List[Video]:
        """按近 7 天播放明细条数排序，相同时按总播放量。"""
        weekly_views = func.count(VideoView.id).label("weekly_views")
        rows = (
            self.db.session.query(Video, weekly_views)
            .outerjoin(
                VideoView,
                and_(VideoView.video_id == Video.id, VideoView.created_at >= self._since(RECENT_DAYS)),
            )
            .filter(Video.finished.is_(True))
            .group_by(Video.id)
            .order_by(weekly_views.desc(), Video.views.desc(), Video.id.desc())
            .limit(limit)
            .all()
        )
        return [video for video, _ in rows]

    # ------------------------------------------------------------
    # 后台
    # ------------------------------------------------------------

    def get_by_id(self, video_id: int) -> Optional[Video]:
        return self.db.session.get(Video, video_id)

    def list_unfinished(self) -> List[Video]:
        return (
            self.db.session.query(Video)
            .filter(Video.finished.is_(False))
            .order_by(Video.created_at.desc(), Video.id.desc())
            .all()
        )

    def list_all(self, page: int = 1, page_size: int = 20) -> Dict[str, Any]:
        query = self.db.session.query(Video).order_by(Video.created_at.desc(), Video.id.desc())
        return self._paginate(query, page, page_size)

    def insert(self, fields: Mapping[str, Any]) -> Video:
        video = Video(**_coerce_fields(fields))
        self.db.session.add(video)
        self.db.session.commit()
        return video

    def update(self, video_id: int, fields: Mapping[str, Any]) -> Optional[Video]:
        """整体替换可写字段并刷新 updated_at；不存在时返回 None。"""
        video = self.get_by_id(video_id)
        if video is None:
            return None
        for name, value in _coerce_fields(fields).items():
            setattr(video, name, value)
        video.updated_at = datetime.now()
        self.db.session.commit()
        return video

    def delete(self, video_id: int) -> Optional[Video]:
        """删除视频；播放明细随之删除，行为记录只解除关联（保留日志）。"""
        video = self.get_by_id(video_id)
        if video is None:
            return None
        self.db.session.query(VideoView).filter(VideoView.video_id == video_id).delete(synchronize_session=False)
        self.db.session.query(UserAction).filter(UserAction.video_id == video_id).update(
            {UserAction.video_id: None}, synchronize_session=False
        )
        self.db.session.delete(video)
        self.db.session.commit()
        return video

    # ------------------------------------------------------------
    # 计数 / 聚合
    # ------------------------------------------------------------

    def count_published(self) -> int:
        return self._published().count()

    def count_unfinished(self) -> int:
        return self.db.session.query(Video).filter(Video.finished.is_(False)).count()

    def distinct_models(self) -> List[str]:
        rows = (
            self.db.session.query(Video.model_name)
            .filter(Video.finished.is_(True), Video.model_name.isnot(None), Video.model_name != "")
            .distinct()
            .order_by(Video.model_name)
            .all()
        )
        return [row[0] for row in rows]

    def distinct_tags(self) -> List[str]:
        rows = (
            self.db.session.query(Video.tags)
            .filter(Video.finished.is_(True), Video.tags.isnot(None), Video.tags != "")
            .all()
        )
        tags: set[str] = set()
        for (raw,) in rows:
            tags.update(split_tags(raw))
        return sorted(tags)

    def total_views(self) -> int:
        total = (
            self.db.session.query(func.coalesce(func.sum(Video.views), 0))
            .filter(Video.finished.is_(True))
            .scalar()
        )
        return int(total or 0)

    def action_counts_since(self, days: int = 30) -> List[Dict[str, Any]]:
        count = func.count(UserAction.id).label("count")
        rows = (
            self.db.session.query(UserAction.action_type, count)
            .filter(UserAction.created_at >= self._since(days))
            .group_by(UserAction.action_type)
            .order_by(count.desc(), UserAction.action_type)
            .all()
        )
        return [{"action_type": action_type, "count": int(n)} for action_type, n in rows]

    def daily_views_since(self, days: int = 30) -> List[Dict[str, Any]]:
        day = func.date(VideoView.created_at).label("day")
        rows = (
            self.db.session.query(day, func.count(VideoView.id))
            .filter(VideoView.created_at >= self._since(days))
            .group_by(day)
            .order_by(day.desc())
            .all()
        )
        return [{"date": str(d), "views": int(n)} for d, n in rows]

    def top_viewed(self, limit: int = 10) -> List[Video]:
        return self._published().order_by(Video.views.desc(), Video.id.desc()).limit(limit).all()
