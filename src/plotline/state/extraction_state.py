"""叙事 → 时间线生成流程的 LangGraph 状态定义。"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field
from typing_extensions import TypedDict

from plotline.extraction.normalizer import NormalizationReport
from plotline.models.story import Story

# 流程自身产生的错误类型（抽取 Agent 的错误类型见 ExtractionErrorType）
EMPTY_NARRATIVE = "EMPTY_NARRATIVE"
PARSE_ERROR = "PARSE_ERROR"


class GenerationError(BaseModel):
    """生成流程中止的原因。"""

    type: str = Field(description="错误类型")
    message: str = Field(default="", description="可读的错误信息")
    wait_time: int | None = Field(default=None, description="限流时需等待的秒数")


class ExtractionState(TypedDict, total=False):
    """生成流程的全局状态。

    使用 total=False 使所有字段可选，便于在节点中做部分更新。
    """

    # ── 输入 ──
    narrative_text: str
    language: str
    existing_story: Story

    # ── 中间产物 ──
    response_text: str
    payload: Any

    # ── 输出 ──
    story: Story | None
    report: NormalizationReport | None
    published: bool

    # ── 控制流 ──
    error: GenerationError | None
