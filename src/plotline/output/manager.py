"""StorageManager：本地键值持久化。

目录结构：
<storage_dir>/
├── plotline-storage.json              # 当前故事（序列化 Story）
└── plotline_tutorial_completed.json   # 新手引导完成标记
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from plotline.config.settings import TimelineConfig
from plotline.models.story import Story

logger = logging.getLogger(__name__)


class StorageManager:
    """按固定键把故事与引导标记写入 JSON 文件。"""

    def __init__(
        self,
        root: str | Path,
        story_key: str = "plotline-storage",
        onboarding_key: str = "plotline_tutorial_completed",
    ):
        self.root = Path(root)
        self.story_key = story_key
        self.onboarding_key = onboarding_key
        self.root.mkdir(parents=True, exist_ok=True)

    @classmethod
    def from_config(cls, config: TimelineConfig) -> StorageManager:
        return cls(config.storage_dir, config.story_key, config.onboarding_key)

    def _path(self, key: str) -> Path:
        return self.root / f"{key}.json"

    # ────────────────────────────────────────────
    # 故事
    # ────────────────────────────────────────────

    def save_story(self, story: Story) -> Path:
        """保存故事，立即写入磁盘。"""
        filepath = self._path(self.story_key)
        filepath.write_text(story.to_json(), encoding="utf-8")
        logger.debug("故事已写入: %s", filepath)
        return filepath

    def load_story(self) -> Story | None:
        """读取已保存的故事；不存在或内容不合法时返回 None。"""
        filepath = self._path(self.story_key)
        if not filepath.exists():
            return None
        try:
            return Story.from_json(filepath.read_text(encoding="utf-8"))
        except ValidationError as e:
            logger.error("已保存的故事无法解析，忽略: %s", e)
            return None

    def clear_story(self) -> None:
        self._path(self.story_key).unlink(missing_ok=True)

    # ────────────────────────────────────────────
    # 新手引导标记
    # ────────────────────────────────────────────

    def is_onboarding_completed(self) -> bool:
        filepath = self._path(self.onboarding_key)
        if not filepath.exists():
            return False
        try:
            data = json.loads(filepath.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            return False
        return bool(data.get("completed")) if isinstance(data, dict) else False

    def mark_onboarding_completed(self) -> None:
        self._write_json(
            self._path(self.onboarding_key),
            {"completed": True, "updated_at": datetime.now().isoformat()},
        )

    def reset_onboarding(self) -> None:
        self._path(self.onboarding_key).unlink(missing_ok=True)

    # ────────────────────────────────────────────
    # 内部工具
    # ────────────────────────────────────────────

    def _write_json(self, filepath: Path, data: Any) -> None:
        """写入 JSON 文件。"""
        filepath.write_text(
            json.dumps(data, ensure_ascii=False, indent=2, default=str),
            encoding="utf-8",
        )
