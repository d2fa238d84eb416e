"""TimelineStore：故事聚合的唯一写入者。

所有结构性修改都遵循同一流程：
复制受影响的列表 → 应用修改 → 对全部角色/事件重新计算累积状态 → 原子替换 Story。
外部观察者只会看到累积字段与结构一致的 Story。
已发布的 Story 视为只读快照，撤销历史直接持有这些快照。
"""

from __future__ import annotations

import logging
import uuid
from collections import deque
from collections.abc import Callable
from typing import TYPE_CHECKING, Any, TypeVar

from pydantic import BaseModel, ValidationError

from plotline.config.settings import TimelineConfig
from plotline.models.story import (
    DERIVED_EVENT_FIELDS,
    Character,
    Connection,
    Event,
    Narrative,
    Story,
    UNKNOWN_CHARACTER_ID,
    create_empty_story,
)
from plotline.state.cumulative import calculate_cumulative_state
from plotline.state.palette import ColorAllocator

if TYPE_CHECKING:
    from plotline.output.manager import StorageManager

logger = logging.getLogger(__name__)

StoryListener = Callable[[Story], None]
ModelT = TypeVar("ModelT", bound=BaseModel)


def _new_id() -> str:
    return str(uuid.uuid4())


def derive_story(story: Story) -> Story:
    """返回累积字段已重新计算的 Story 副本。"""
    events = calculate_cumulative_state(story.characters, story.events)
    return story.model_copy(update={"events": events})


def merge_fields(
    model_cls: type[ModelT],
    base: dict[str, Any],
    updates: dict[str, Any],
) -> tuple[ModelT, list[str]]:
    """逐字段把 updates 浅合并到 base 上。

    base 必须本身合法。某个字段的值无法通过校验时只丢弃该字段，
    其余字段照常生效。返回 (合并结果, 被丢弃的字段名)。
    """
    merged = dict(base)
    rejected: list[str] = []
    for key, value in updates.items():
        candidate = {**merged, key: value}
        try:
            model_cls.model_validate(candidate)
        except ValidationError:
            rejected.append(key)
            continue
        merged = candidate
    return model_cls.model_validate(merged), rejected


class TimelineStore:
    """持有当前 Story、选中事件游标与有界撤销历史。"""

    def __init__(
        self,
        story: Story | None = None,
        *,
        history_limit: int = 50,
        timeline_length: int = 20,
        allocator: ColorAllocator | None = None,
        storage: StorageManager | None = None,
        id_factory: Callable[[], str] = _new_id,
    ):
        self._timeline_length = timeline_length
        self._allocator = allocator or ColorAllocator()
        self._storage = storage
        self._new_id = id_factory
        self._listeners: list[StoryListener] = []

        # 有界环形缓冲：超过容量时最旧的快照被丢弃
        self._past: deque[Story] = deque(maxlen=history_limit)
        self._future: deque[Story] = deque(maxlen=history_limit)

        self.selected_event_id: str | None = None

        if story is None and storage is not None:
            story = storage.load_story()
        if story is None:
            story = create_empty_story(timeline_length)
        self._story = derive_story(story)

    @classmethod
    def from_config(
        cls,
        config: TimelineConfig,
        storage: StorageManager | None = None,
    ) -> TimelineStore:
        return cls(
            history_limit=config.history_limit,
            timeline_length=config.default_timeline_length,
            storage=storage,
        )

    # ────────────────────────────────────────────
    # 读取与订阅
    # ────────────────────────────────────────────

    @property
    def story(self) -> Story:
        return self._story

    @property
    def history_limit(self) -> int:
        return self._past.maxlen or 0

    @property
    def can_undo(self) -> bool:
        return bool(self._past)

    @property
    def can_redo(self) -> bool:
        return bool(self._future)

    def subscribe(self, listener: StoryListener) -> Callable[[], None]:
        """注册 Story 变更监听器，返回取消订阅函数。"""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ────────────────────────────────────────────
    # 内部：发布
    # ────────────────────────────────────────────

    def _publish(self, story: Story, *, record: bool = True) -> None:
        """原子替换当前 Story。调用方必须传入已重新计算的 Story。"""
        if record:
            self._past.append(self._story)
            self._future.clear()
        self._story = story
        self._after_change()

    def _after_change(self) -> None:
        if self.selected_event_id and self._story.get_event(self.selected_event_id) is None:
            self.selected_event_id = None

        if self._storage is not None:
            try:
                self._storage.save_story(self._story)
            except OSError:
                logger.exception("Story 持久化失败，内存中的修改仍然有效")

        for listener in list(self._listeners):
            try:
                listener(self._story)
            except Exception:
                logger.exception("Story 监听器执行失败")

    def _commit(self, story: Story) -> None:
        self._publish(derive_story(story))

    # ────────────────────────────────────────────
    # 整体替换
    # ────────────────────────────────────────────

    def set_story(self, story: Story) -> None:
        """整体替换故事（导入或 AI 重新生成），发布前重新计算累积状态。"""
        self.selected_event_id = None
        self._commit(story)
        logger.debug(
            "Story 已替换: %d 个角色, %d 个事件",
            len(self._story.characters),
            len(self._story.events),
        )

    def set_selected_event_id(self, event_id: str | None) -> None:
        """选中事件（纯 UI 游标，不进入撤销历史）。"""
        self.selected_event_id = event_id

    def update_narrative(self, text: str) -> None:
        """替换叙事原文，保留已有段落。"""
        sections = self._story.narrative.sections if self._story.narrative else []
        narrative = Narrative(text=text, sections=list(sections))
        self._publish(self._story.model_copy(update={"narrative": narrative}))

    # ────────────────────────────────────────────
    # 角色
    # ────────────────────────────────────────────

    def add_character(self, name: str) -> Character:
        """追加角色，按调色板循环分配颜色。"""
        character = Character(
            id=self._new_id(),
            name=name,
            color=self._allocator.next_color(),
        )
        characters = [*self._story.characters, character]
        self._commit(self._story.model_copy(update={"characters": characters}))
        logger.debug("新增角色: %s (%s)", name, character.color)
        return character

    def update_character(self, character_id: str, updates: dict[str, Any]) -> bool:
        """浅合并更新角色。初始状态变化会回溯影响该角色所有事件的累积快照。"""
        target = self._story.get_character(character_id)
        if target is None:
            logger.warning("更新角色失败：角色不存在 %s", character_id)
            return False

        fields = {k: v for k, v in updates.items() if k != "id"}
        updated, rejected = merge_fields(Character, target.model_dump(), fields)
        if rejected:
            logger.warning("角色 %s 的字段值不合法，已忽略: %s", character_id, rejected)

        characters = [updated if c.id == character_id else c for c in self._story.characters]
        self._commit(self._story.model_copy(update={"characters": characters}))
        return True

    def delete_character(self, character_id: str) -> bool:
        """删除角色，级联删除其全部事件及与这些事件相连的连接。"""
        if self._story.get_character(character_id) is None:
            return False

        removed_ids = {e.id for e in self._story.events if e.character_id == character_id}
        characters = [c for c in self._story.characters if c.id != character_id]
        events = [e for e in self._story.events if e.character_id != character_id]
        connections = [
            c
            for c in self._story.connections
            if c.source_event_id not in removed_ids and c.target_event_id not in removed_ids
        ]
        self._commit(
            self._story.model_copy(
                update={"characters": characters, "events": events, "connections": connections}
            )
        )
        logger.debug("删除角色 %s，级联删除 %d 个事件", character_id, len(removed_ids))
        return True

    # ────────────────────────────────────────────
    # 事件
    # ────────────────────────────────────────────

    def _next_time_step(self) -> int:
        return max((e.time_step for e in self._story.events), default=-1) + 1

    def add_event(
        self,
        event_data: dict[str, Any],
        source_event_id: str | None = None,
    ) -> Event:
        """新增事件并分配 id，总会成功。

        缺少 character_id 时归入 'unknown'，缺少 time_step 时放到当前最后一步之后；
        不合法的字段值逐个丢弃。
        给出 source_event_id（参数或 event_data 中的同名键）时，
        同时创建一条从来源事件指向新事件的 influence 连接。
        """
        fields = {
            k: v
            for k, v in event_data.items()
            if k not in DERIVED_EVENT_FIELDS and k not in {"id", "source_event_id"}
        }
        source_event_id = source_event_id or event_data.get("source_event_id")
        base = {
            "id": self._new_id(),
            "character_id": UNKNOWN_CHARACTER_ID,
            "time_step": self._next_time_step(),
        }
        event, rejected = merge_fields(Event, base, fields)
        if rejected:
            logger.warning("新事件的字段值不合法，已忽略: %s", rejected)

        connections = list(self._story.connections)
        if source_event_id:
            if self._story.get_event(source_event_id) is None:
                logger.warning("来源事件不存在，不创建连接: %s", source_event_id)
            else:
                connections.append(
                    Connection(
                        id=self._new_id(),
                        source_event_id=source_event_id,
                        target_event_id=event.id,
                        type="influence",
                    )
                )

        events = [*self._story.events, event]
        self._commit(self._story.model_copy(update={"events": events, "connections": connections}))
        return self._story.get_event(event.id)

    def update_event(self, event_id: str, updates: dict[str, Any]) -> bool:
        """浅合并更新事件；派生的 cumulative_* 字段不接受外部写入。"""
        target = self._story.get_event(event_id)
        if target is None:
            logger.warning("更新事件失败：事件不存在 %s", event_id)
            return False

        fields = {
            k: v for k, v in updates.items() if k not in DERIVED_EVENT_FIELDS and k != "id"
        }
        updated, rejected = merge_fields(Event, target.model_dump(), fields)
        if rejected:
            logger.warning("事件 %s 的字段值不合法，已忽略: %s", event_id, rejected)

        events = [updated if e.id == event_id else e for e in self._story.events]
        self._commit(self._story.model_copy(update={"events": events}))
        return True

    def delete_event(self, event_id: str) -> bool:
        """删除事件及所有与之相连的连接。"""
        if self._story.get_event(event_id) is None:
            return False

        events = [e for e in self._story.events if e.id != event_id]
        connections = [
            c
            for c in self._story.connections
            if c.source_event_id != event_id and c.target_event_id != event_id
        ]
        self._commit(
            self._story.model_copy(update={"events": events, "connections": connections})
        )
        return True

    # ────────────────────────────────────────────
    # 撤销 / 重做
    # ────────────────────────────────────────────

    def undo(self) -> bool:
        if not self._past:
            return False
        self._future.append(self._story)
        self._story = self._past.pop()
        self._after_change()
        return True

    def redo(self) -> bool:
        if not self._future:
            return False
        self._past.append(self._story)
        self._story = self._future.pop()
        self._after_change()
        return True

    def clear_history(self) -> None:
        self._past.clear()
        self._future.clear()

    # ────────────────────────────────────────────
    # 导入 / 导出 / 重置
    # ────────────────────────────────────────────

    def load_story(self, text: str) -> bool:
        """导入序列化的 Story。数据不合法时记录错误并保持当前 Story 不变。"""
        try:
            story = Story.from_json(text)
        except ValidationError as e:
            logger.error("导入故事失败: %s", e)
            return False
        self.set_story(story)
        return True

    def export_story(self) -> str:
        return self._story.to_json()

    def reset(self) -> None:
        """恢复为空故事，清空历史与配色游标。"""
        self.clear_history()
        self._allocator.reset()
        self.selected_event_id = None
        self._story = derive_story(create_empty_story(self._timeline_length))
        self._after_change()
