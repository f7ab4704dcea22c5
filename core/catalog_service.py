"""目录业务编排：在 VideoStore 与 VidGuard 之间驱动上传生命周期。

远程上传流程：
1) submit_remote_upload：向 VidGuard 提交拉取任务，建一条 finished=False 的记录，video_id=任务ID
2) reconcile_remote_upload：管理员轮询；任务完成后写入嵌入代码/封面，并把 video_id 换成最终视频ID
3) 是否发布（finished=True）始终由管理员在编辑页手动决定，这里不自动发布
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional

from sqlalchemy.exc import SQLAlchemyError

from core.errors import NotFound, UploadSubmissionFailed, ValidationError
from core.video_store import VideoStore
from models import Video
from provider import ProviderError, build_embed_code

logger = logging.getLogger(__name__)

PLACEHOLDER_TITLE = "Uploading..."
STATUS_FINISHED = "finished"


@dataclass
class StagedFile:
    """已落盘、等待转发给 VidGuard 的上传文件。"""

    path: str
    original_name: str

    @property
    def title(self) -> str:
        return os.path.splitext(os.path.basename(self.original_name))[0] or self.original_name


@dataclass
class MassUploadResult:
    uploaded: List[Video] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def uploaded_count(self) -> int:
        return len(self.uploaded)

    @property
    def error_count(self) -> int:
        return len(self.errors)


def remove_staged_file(path: str) -> None:
    try:
        if path and os.path.exists(path):
            os.remove(path)
    except OSError:
        logger.warning("Failed to remove staged upload: %s", path)


class CatalogService:
    def __init__(self, store: VideoStore, provider, *, embed_domain: Optional[str] = None):
        """
        Args:
            store: 目录查询层
            provider: VidGuardAPI（测试里可换成假对象）
            embed_domain: 嵌入代码里的播放域名
        """
        self.store = store
        self.provider = provider
        self.embed_domain = embed_domain

    # ------------------------------------------------------------
    # 增删改
    # ------------------------------------------------------------

    def create_video(self, fields: Mapping[str, Any]) -> Video:
        return self.store.insert(fields)

    def get_video(self, video_id: int) -> Video:
        video = self.store.get_by_id(video_id)
        if video is None:
            raise NotFound("Video not found")
        return video

    def update_video(self, video_id: int, fields: Mapping[str, Any]) -> Video:
        video = self.store.update(video_id, fields)
        if video is None:
            raise NotFound("Video not found")
        return video

    def delete_video(self, video_id: int) -> Video:
        """先尽力删除 VidGuard 上的视频（失败只记日志），再删除目录记录。"""
        video = self.get_video(video_id)
        if video.video_id:
            try:
                self.provider.delete_asset(video.video_id)
            except ProviderError as exc:
                logger.warning("Failed to delete from VidGuard (video %s, asset %s): %s", video_id, video.video_id, exc)

        deleted = self.store.delete(video_id)
        if deleted is None:
            raise NotFound("Video not found")
        return deleted

    # ------------------------------------------------------------
    # 远程上传
    # ------------------------------------------------------------

    def submit_remote_upload(
        self,
        url: str,
        title: str = "",
        description: str = "",
        model_name: str = "",
        tags: Iterable[str] | str | None = None,
    ) -> Video:
        url = (url or "").strip()
        if not url:
            raise ValidationError("Video URL is required")

        try:
            job = self.provider.submit_remote_fetch(url)
        except ProviderError as exc:
            raise UploadSubmissionFailed(f"Failed to process remote upload: {exc}") from exc

        job_id = job.get("id") if isinstance(job, dict) else None
        if not job_id:
            raise UploadSubmissionFailed("Failed to process remote upload: provider returned no job id")

        return self.store.insert(
            {
                "title": (title or "").strip() or PLACEHOLDER_TITLE,
                "description": description or "",
                "model_name": model_name or "",
                "tags": tags or [],
                "embed_code": "",
                "video_id": str(job_id),
                "thumbnail_url": "",
                "finished": False,
            }
        )

    def reconcile_remote_upload(self, video_id: int) -> Dict[str, Any]:
        """轮询远程上传状态；只有 finished 时才写库，返回值是上游状态原文。

        嵌入代码已经写好时 video_id 已是最终视频 ID（不再是任务 ID），不再轮询，直接返回 finished。
        """
        video = self.store.get_by_id(video_id)
        if video is None or not video.video_id:
            raise NotFound("Video not found or no remote upload ID")
        if video.embed_code:
            return {"status": STATUS_FINISHED, "video_id": video.video_id}

        status = self.provider.poll_remote_fetch(video.video_id)
        if str(status.get("status", "")).lower() != STATUS_FINISHED:
            return status

        asset_id = str(status.get("video_id") or video.video_id)
        info = self.provider.fetch_asset_info(asset_id) or {}

        fields = self.store.as_fields(video)
        fields.update(
            embed_code=build_embed_code(asset_id, self.embed_domain),
            thumbnail_url=info.get("thumbnail") or "",
            video_id=asset_id,
        )
        self.store.update(video_id, fields)
        logger.info("Remote upload finished for video %s (asset %s)", video_id, asset_id)
        return status

    def process_mass_upload(self, files: Iterable[StagedFile]) -> MassUploadResult:
        """逐个上传：单个失败只记录错误，不影响其余文件；暂存文件无论成败都会删除。"""
        result = MassUploadResult()
        for staged in files:
            try:
                uploaded = self.provider.upload_local_file(staged.path)
                asset_id = uploaded.get("id") if isinstance(uploaded, dict) else None
                if not asset_id:
                    raise ProviderError("Failed to upload video: provider returned no id")
                video = self.store.insert(
                    {
                        "title": staged.title,
                        "video_id": str(asset_id),
                        "tags": [],
                        "finished": False,
                    }
                )
                result.uploaded.append(video)
            except SQLAlchemyError as exc:
                self.store.db.session.rollback()
                logger.exception("Mass upload could not save %s", staged.original_name)
                result.errors.append(f"{staged.original_name}: {exc.__class__.__name__}")
            except (ProviderError, OSError) as exc:
                logger.warning("Mass upload failed for %s: %s", staged.original_name, exc)
                result.errors.append(f"{staged.original_name}: {exc}")
            finally:
                remove_staged_file(staged.path)
        return result

    # ------------------------------------------------------------
    # 聚合视图
    # ------------------------------------------------------------

    def get_statistics(self) -> Dict[str, Any]:
        return {
            "total_videos": self.store.count_published(),
            "total_views": self.store.total_views(),
            "new_videos": self.store.list_new(5),
            "most_viewed": self.store.list_most_viewed_this_week(5),
        }

    def get_home_page(self) -> Dict[str, Any]:
        return {
            "new_videos": self.store.list_new(8),
            "most_viewed": self.store.list_most_viewed_this_week(8),
            "statistics": self.get_statistics(),
        }

    def get_admin_statistics(self) -> Dict[str, Any]:
        return {
            "action_stats": self.store.action_counts_since(30),
            "daily_views": self.store.daily_views_since(30),
            "top_videos": self.store.top_viewed(10),
            "unfinished_count": self.store.count_unfinished(),
        }
