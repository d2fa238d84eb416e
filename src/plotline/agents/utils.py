"""抽取 Agent 的模型调用辅助。"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence
from typing import Any

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import BaseMessage

logger = logging.getLogger(__name__)

# 网络抖动类的临时故障才重试；配额、鉴权等错误交给调用方分类
TRANSIENT_ERRORS: tuple[type[Exception], ...] = (ConnectionError, TimeoutError)


def backoff_delays(base_delay: float, retries: int) -> list[float]:
    """指数退避间隔：base, base*2, base*4 ..."""
    return [base_delay * (2**n) for n in range(retries)]


def invoke_with_retry(
    model: BaseChatModel,
    messages: Sequence[BaseMessage],
    max_retries: int = 2,
    base_delay: float = 2.0,
    operation_name: str = "invoke",
    sleep: Callable[[float], None] = time.sleep,
) -> Any:
    """调用模型，临时故障按指数退避重试，最多 max_retries 次。

    非临时故障原样抛出；重试用尽后抛出最后一次的异常。
    """
    delays = backoff_delays(base_delay, max_retries)
    attempt = 0
    while True:
        try:
            return model.invoke(list(messages))
        except TRANSIENT_ERRORS as e:
            if attempt >= len(delays):
                logger.error("%s 重试 %d 次后仍失败: %s", operation_name, attempt, e)
                raise
            logger.warning(
                "%s 第 %d 次调用失败 (%s)，%.1f 秒后重试",
                operation_name,
                attempt + 1,
                type(e).__name__,
                delays[attempt],
            )
            sleep(delays[attempt])
            attempt += 1


def extract_text(content: str | list | Any) -> str:
    """把消息 content 统一成字符串。

    Gemini 会返回 [{'type': 'text', 'text': ...}, ...] 形式的分段内容，
    这里按顺序拼接其中的文本段。
    """
    if isinstance(content, str):
        return content
    if not isinstance(content, list):
        return str(content)
    chunks = []
    for part in content:
        if isinstance(part, str):
            chunks.append(part)
        elif isinstance(part, dict) and isinstance(part.get("text"), str):
            chunks.append(part["text"])
    return "".join(chunks)


def extract_response_text(response: BaseMessage) -> str:
    return extract_text(response.content)
