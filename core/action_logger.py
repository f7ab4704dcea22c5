"""访问日志：记录用户行为与播放明细。

这里的每个方法都“只尝试、不抛错”：写库失败会回滚并写进应用日志，
调用方拿到 False 即可，不影响原请求的响应。
"""

from __future__ import annotations

import logging
from typing import Optional

from flask_sqlalchemy import SQLAlchemy
from sqlalchemy.exc import SQLAlchemyError

from models import UserAction, Video, VideoView

logger = logging.getLogger(__name__)

USER_AGENT_MAX = 255  # 与字段长度一致
REFERRER_MAX = 500
LOG_PREVIEW_LENGTH = 100  # 写进日志时只保留前 100 个字符


def _clip(value: Optional[str], limit: int) -> str:
    return (value or "")[:limit]


class ActionLogger:
    def __init__(self, db: SQLAlchemy):
        self.db = db

    def record_action(
        self,
        action_type: str,
        video_id: Optional[int] = None,
        *,
        user_agent: str = "",
        referrer: str = "",
    ) -> bool:
        try:
            self.db.session.add(
                UserAction(
                    action_type=action_type,
                    video_id=video_id,
                    user_agent=_clip(user_agent, USER_AGENT_MAX),
                    referrer=_clip(referrer, REFERRER_MAX),
                )
            )
            self.db.session.commit()
        except SQLAlchemyError:
            self.db.session.rollback()
            logger.exception("Error logging user action %s (video_id=%s)", action_type, video_id)
            return False

        logger.info(
            "User action logged: type=%s video_id=%s ua=%r ref=%r",
            action_type,
            video_id,
            _clip(user_agent, LOG_PREVIEW_LENGTH),
            _clip(referrer, LOG_PREVIEW_LENGTH),
        )
        return True

    def record_view(self, video_id: int, *, user_agent: str = "", referrer: str = "") -> bool:
        """插入一条播放明细并把 videos.views +1，两次写入在同一个事务里提交。"""
        try:
            self.db.session.add(
                VideoView(
                    video_id=video_id,
                    user_agent=_clip(user_agent, USER_AGENT_MAX),
                    referrer=_clip(referrer, REFERRER_MAX),
                )
            )
            updated = (
                self.db.session.query(Video)
                .filter(Video.id == video_id)
                .update({Video.views: Video.views + 1}, synchronize_session=False)
            )
            if updated != 1:
                # 计数没加上就不要单独留下一条明细
                self.db.session.rollback()
                logger.warning("Video view not logged: video %s does not exist", video_id)
                return False
            self.db.session.commit()
        except SQLAlchemyError:
            self.db.session.rollback()
            logger.exception("Error logging video view (video_id=%s)", video_id)
            return False

        logger.info(
            "Video view logged: video_id=%s ua=%r ref=%r",
            video_id,
            _clip(user_agent, LOG_PREVIEW_LENGTH),
            _clip(referrer, LOG_PREVIEW_LENGTH),
        )
        return True
