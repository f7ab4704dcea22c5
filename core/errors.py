"""业务异常：路由层据此映射为 4xx/5xx。"""

from provider import ProviderError


class CatalogError(Exception):
    """目录业务异常基类。"""


class NotFound(CatalogError):
    """按 id 找不到视频（或视频缺少 VidGuard 编号）。"""


class ValidationError(CatalogError):
    """缺少必填字段等输入问题，消息可以直接展示给用户。"""


class UploadSubmissionFailed(ProviderError):
    """提交远程拉取任务失败；原始 ProviderError 保存在 __cause__。"""
