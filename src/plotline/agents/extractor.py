"""时间线抽取 Agent：调用 LLM，把叙事文本变成原始 JSON 文本。

失败以类型化结果返回而不是抛异常，调用方可按类型分别处理：
未配置 key、请求过于频繁、文本过长、配额耗尽、其他 API 错误。
限流器是最小请求间隔节流，不排队：被拒绝的请求不会自动重试。
"""

from __future__ import annotations

import logging
import math
import time
from collections.abc import Callable
from enum import Enum

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import HumanMessage, SystemMessage
from pydantic import BaseModel, Field

from plotline.agents.utils import extract_response_text, invoke_with_retry
from plotline.config.settings import TimelineConfig
from plotline.prompts import build_extraction_prompts

logger = logging.getLogger(__name__)

# 错误信息中出现这些标记时视为配额耗尽
_QUOTA_MARKERS = ("resource_exhausted", "quota", "429", "rate limit")


class ExtractionErrorType(str, Enum):
    """抽取失败类型。"""

    NO_API_KEY = "NO_API_KEY"
    RATE_LIMITED = "RATE_LIMITED"
    TEXT_TOO_LONG = "TEXT_TOO_LONG"
    QUOTA_EXCEEDED = "QUOTA_EXCEEDED"
    API_ERROR = "API_ERROR"


class ExtractionError(BaseModel):
    """类型化的抽取失败。"""

    type: ExtractionErrorType = Field(description="失败类型")
    message: str = Field(default="", description="可读的错误信息")
    wait_time: int | None = Field(default=None, description="RATE_LIMITED 时需等待的秒数")


class ExtractResult(BaseModel):
    """一次抽取请求的结果：成功时带原始响应文本，失败时带类型化错误。"""

    success: bool = Field(description="是否成功")
    text: str = Field(default="", description="模型原始响应文本")
    error: ExtractionError | None = Field(default=None, description="失败信息")

    @classmethod
    def failure(
        cls,
        error_type: ExtractionErrorType,
        message: str,
        wait_time: int | None = None,
    ) -> ExtractResult:
        return cls(
            success=False,
            error=ExtractionError(type=error_type, message=message, wait_time=wait_time),
        )


class RequestThrottle:
    """最小请求间隔节流。只记录上一次请求的时间戳。"""

    def __init__(
        self,
        min_interval: float = 5.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.min_interval = min_interval
        self._clock = clock
        self._last_request: float | None = None

    def remaining(self) -> float:
        """距离允许下一次请求还需等待的秒数，0 表示可以立即请求。"""
        if self._last_request is None:
            return 0.0
        elapsed = self._clock() - self._last_request
        return max(0.0, self.min_interval - elapsed)

    def mark(self) -> None:
        self._last_request = self._clock()


def is_quota_error(message: str) -> bool:
    lowered = message.lower()
    return any(marker in lowered for marker in _QUOTA_MARKERS)


class TimelineExtractor:
    """把叙事文本交给 LLM 抽取时间线。

    model 为 None 表示未配置 API key。
    """

    def __init__(
        self,
        model: BaseChatModel | None,
        *,
        throttle: RequestThrottle | None = None,
        max_length: int = 10_000,
        max_retries: int = 2,
        retry_delay: float = 2.0,
    ):
        self.model = model
        self.throttle = throttle or RequestThrottle()
        self.max_length = max_length
        self.max_retries = max_retries
        self.retry_delay = retry_delay

    @classmethod
    def from_config(cls, config: TimelineConfig, model: BaseChatModel | None) -> TimelineExtractor:
        return cls(
            model,
            throttle=RequestThrottle(config.min_request_interval),
            max_length=config.max_narrative_length,
        )

    def extract(self, text: str, language: str = "ja") -> ExtractResult:
        """执行一次抽取。请求在发出前被拒绝时不会占用节流时间窗。"""
        if self.model is None:
            return ExtractResult.failure(
                ExtractionErrorType.NO_API_KEY,
                "API key not configured. Please set your API key in settings.",
            )

        remaining = self.throttle.remaining()
        if remaining > 0:
            wait_time = math.ceil(remaining)
            logger.info("抽取请求过于频繁，需等待 %d 秒", wait_time)
            return ExtractResult.failure(
                ExtractionErrorType.RATE_LIMITED,
                f"Please wait {wait_time} seconds before trying again.",
                wait_time=wait_time,
            )

        if len(text) > self.max_length:
            return ExtractResult.failure(
                ExtractionErrorType.TEXT_TOO_LONG,
                f"Text too long. Please limit to {self.max_length:,} characters.",
            )

        self.throttle.mark()
        system_prompt, user_prompt = build_extraction_prompts(text, language)

        try:
            response = invoke_with_retry(
                self.model,
                [SystemMessage(content=system_prompt), HumanMessage(content=user_prompt)],
                max_retries=self.max_retries,
                base_delay=self.retry_delay,
                operation_name="timeline_extraction",
            )
        except Exception as e:
            message = str(e) or type(e).__name__
            if is_quota_error(message):
                logger.warning("抽取失败：配额耗尽 (%s)", message)
                return ExtractResult.failure(
                    ExtractionErrorType.QUOTA_EXCEEDED,
                    "API quota exceeded. Please try a lighter model or wait a few minutes.",
                )
            logger.error("抽取失败: %s", message)
            return ExtractResult.failure(ExtractionErrorType.API_ERROR, message)

        response_text = extract_response_text(response)
        logger.info("抽取完成，响应长度 %d 字符", len(response_text))
        return ExtractResult(success=True, text=response_text)
