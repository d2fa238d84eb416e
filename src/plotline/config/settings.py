"""全局配置。"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class ModelConfig(BaseModel):
    """LLM 模型配置。"""

    provider: str = Field(
        default="google",
        description="模型提供商: 'google', 'openai' 等",
    )
    model_name: str = Field(default="gemini-2.5-flash", description="模型名称")
    temperature: float = Field(default=0.2, description="生成温度（抽取任务宜低）")
    max_tokens: int = Field(default=8192, description="最大 token 数")
    api_key: str = Field(
        default="",
        description="模型 API key（可选，优先使用环境变量）",
    )


class TimelineConfig(BaseModel):
    """时间线引擎全局配置。"""

    # ── 模型配置 ──
    extraction_model: ModelConfig = Field(
        default_factory=ModelConfig,
        description="时间线抽取使用的模型",
    )

    # ── 时间线 ──
    default_timeline_length: int = Field(
        default=20, description="空故事的默认时间槽数量"
    )
    history_limit: int = Field(
        default=50, description="撤销历史最多保留的快照数"
    )

    # ── 抽取 ──
    min_request_interval: float = Field(
        default=5.0, description="两次抽取请求之间的最小间隔（秒）"
    )
    max_narrative_length: int = Field(
        default=10_000, description="单次抽取允许的最大叙事文本长度（字符）"
    )
    ref_confidence: float = Field(
        default=0.8, description="由原文摘录生成的 narrative_ref 置信度"
    )
    language: Literal["ja", "en"] = Field(default="ja", description="抽取输出语言")

    # ── 持久化 ──
    storage_dir: str = Field(default=".plotline", description="本地存储目录")
    story_key: str = Field(default="plotline-storage", description="故事存储键")
    onboarding_key: str = Field(
        default="plotline_tutorial_completed", description="新手引导完成标记键"
    )


def load_config(path: str | Path | None = None) -> TimelineConfig:
    """从 YAML 文件加载配置，文件中的键覆盖默认值。

    文件不存在或未指定时返回默认配置。
    """
    if path is None:
        return TimelineConfig()
    config_path = Path(path)
    if not config_path.exists():
        logger.warning("配置文件不存在，使用默认配置: %s", config_path)
        return TimelineConfig()

    with open(config_path, encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    return TimelineConfig.model_validate(data)
