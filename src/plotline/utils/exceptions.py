"""Plotline 异常层级。"""

from __future__ import annotations


class PlotlineError(Exception):
    """所有 Plotline 自定义异常的基类。"""


class ResponseParseError(PlotlineError):
    """模型响应经清洗后仍无法解析为 JSON。

    Attributes:
        position: 解析失败处在清洗后文本中的字符偏移。
        excerpt: 失败位置前后各若干字符的文本窗口，仅供排查。
        payload_preview: 清洗后文本的开头部分。
    """

    def __init__(
        self,
        message: str,
        position: int | None = None,
        excerpt: str = "",
        payload_preview: str = "",
    ):
        super().__init__(message)
        self.position = position
        self.excerpt = excerpt
        self.payload_preview = payload_preview
