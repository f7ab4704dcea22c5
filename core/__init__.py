"""核心业务模块

包含：
- VideoStore: 视频目录查询层（分页/检索/排序/计数）
- CatalogService: 目录业务编排（增删改、远程上传对账、批量上传、统计）
- ActionLogger: 访问行为与播放明细记录（失败不影响请求）
- errors: 业务异常
"""

from .action_logger import ActionLogger
from .catalog_service import CatalogService, MassUploadResult, StagedFile
from .errors import CatalogError, NotFound, UploadSubmissionFailed, ValidationError
from .video_store import SortField, SortOrder, VideoStore, total_pages

__all__ = [
    "ActionLogger",
    "CatalogService",
    "MassUploadResult",
    "StagedFile",
    "CatalogError",
    "NotFound",
    "UploadSubmissionFailed",
    "ValidationError",
    "SortField",
    "SortOrder",
    "VideoStore",
    "total_pages",
]
