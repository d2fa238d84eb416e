"""故事时间线数据模型。

Story 聚合根：角色、事件、事件间连接、时间槽、叙事原文与段落。
事件上的 cumulative_* 字段为派生值，只由累积状态计算器写入。
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

TimeType = Literal["present", "flashback", "flash_forward", "memory"]


def coerce_str_list(value: Any) -> list[str]:
    """把 add/remove 之类的字段规范为字符串列表。

    上游生成的数据常把单个元素写成裸标量，这里统一包装成单元素列表。
    """
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [str(v) for v in value if v is not None]
    if isinstance(value, dict):
        return []
    return [str(value)]


class ChangeSet(BaseModel):
    """集合式增量：先 add（允许重复）后 remove（删除全部匹配项）。"""

    add: list[str] = Field(default_factory=list, description="新增的条目")
    remove: list[str] = Field(default_factory=list, description="移除的条目")

    @field_validator("add", "remove", mode="before")
    @classmethod
    def _normalize_items(cls, value: Any) -> list[str]:
        return coerce_str_list(value)


class Character(BaseModel):
    """角色及其初始状态。"""

    id: str = Field(description="角色唯一标识")
    name: str = Field(description="角色名称")
    color: str = Field(default="", description="轨道显示颜色")
    initial_location: str = Field(default="", description="初始所在位置")
    initial_state: dict[str, Any] = Field(
        default_factory=dict, description="初始状态，如 {'mood': 'calm'}"
    )
    inventory: list[str] = Field(default_factory=list, description="初始持有物品（允许重复）")
    knowledge: list[str] = Field(default_factory=list, description="初始已知信息")


class NarrativeRef(BaseModel):
    """事件指向叙事原文段落的链接。"""

    section_id: str = Field(description="Narrative.sections 中的段落 id")
    confidence: float = Field(default=0.0, description="链接置信度 0-1")
    extracted_text: str = Field(default="", description="抽取时给出的原文摘录")


class Event(BaseModel):
    """角色轨道上的一个事件。"""

    id: str = Field(description="事件唯一标识")
    character_id: str = Field(description="所属角色 id")
    time_step: int = Field(description="故事时间中的位置（非叙述顺序）")
    type: str = Field(default="action", description="事件类型")
    description: str = Field(default="", description="事件描述")
    state_change: dict[str, Any] | None = Field(
        default=None, description="状态浅合并覆盖，如 {'mood': 'tense'}"
    )
    location: str | None = Field(default=None, description="位置变化")
    item_changes: ChangeSet | None = Field(default=None, description="物品增减")
    knowledge_changes: ChangeSet | None = Field(default=None, description="认知增减")
    dialogue: str | None = Field(default=None, description="台词")

    # ── 时间线重建 ──
    time_type: TimeType | None = Field(
        default=None, description="显示提示：present/flashback/flash_forward/memory"
    )
    narrative_position: int | None = Field(
        default=None, description="该事件在原文中被讲述的次序（从 1 开始）"
    )
    estimated_time: str | None = Field(default=None, description="人类可读的时间标签，如 '5年前'")

    # ── 原文链接 ──
    narrative_refs: list[NarrativeRef] | None = Field(default=None, description="原文段落链接")

    # ── 派生字段（由计算器写入）──
    cumulative_state: dict[str, Any] = Field(
        default_factory=dict, description="截至并包含本事件的角色状态"
    )
    cumulative_inventory: list[str] = Field(
        default_factory=list, description="截至并包含本事件的持有物品"
    )
    cumulative_knowledge: list[str] = Field(
        default_factory=list, description="截至并包含本事件的已知信息"
    )


# 派生字段，任何外部更新都不得直接写入
DERIVED_EVENT_FIELDS = frozenset(
    {"cumulative_state", "cumulative_inventory", "cumulative_knowledge"}
)

# 无法归属到任何角色的事件使用的角色 id
UNKNOWN_CHARACTER_ID = "unknown"


class Connection(BaseModel):
    """两个事件之间的有向因果/影响边。"""

    id: str = Field(description="连接唯一标识")
    source_event_id: str = Field(description="起点事件 id")
    target_event_id: str = Field(description="终点事件 id")
    type: str = Field(
        default="causes",
        description="连接类型: causes / enables / triggers / leads_to / influence",
    )


class TimeStep(BaseModel):
    """时间轴上的一个时间槽。"""

    step: int = Field(description="时间槽序号")
    label: str = Field(default="", description="显示标签")
    timestamp: str | None = Field(default=None, description="可选时间戳")


class NarrativeSection(BaseModel):
    """叙事原文中的一个偏移区间 [start_offset, end_offset)。"""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(description="段落 id")
    text: str = Field(description="区间内的原文")
    start_offset: int = Field(alias="startOffset", description="起始偏移（含）")
    end_offset: int = Field(alias="endOffset", description="结束偏移（不含）")


class Narrative(BaseModel):
    """叙事原文及按发现顺序排列的段落。"""

    text: str = Field(default="", description="完整原文")
    sections: list[NarrativeSection] = Field(default_factory=list, description="段落列表")

    def find_section(self, section_id: str) -> NarrativeSection | None:
        """按 id 查找段落；找不到时返回 None（引用视为失效，而非错误）。"""
        for section in self.sections:
            if section.id == section_id:
                return section
        return None


class Story(BaseModel):
    """故事聚合根。"""

    id: str = Field(default="new-story", description="故事 id")
    title: str = Field(default="Untitled Story", description="故事标题")
    characters: list[Character] = Field(default_factory=list, description="角色列表")
    events: list[Event] = Field(default_factory=list, description="事件列表")
    connections: list[Connection] = Field(default_factory=list, description="事件连接")
    timeline: list[TimeStep] = Field(default_factory=list, description="时间槽")
    narrative: Narrative | None = Field(default=None, description="叙事原文")

    def get_character(self, character_id: str) -> Character | None:
        for character in self.characters:
            if character.id == character_id:
                return character
        return None

    def get_event(self, event_id: str) -> Event | None:
        for event in self.events:
            if event.id == event_id:
                return event
        return None

    def to_json(self) -> str:
        """序列化为导入/导出格式。"""
        return self.model_dump_json(by_alias=True, indent=2)

    @classmethod
    def from_json(cls, text: str) -> Story:
        """从导入/导出格式反序列化；格式不合法时抛出 pydantic.ValidationError。"""
        return cls.model_validate_json(text)


def create_default_timeline(length: int = 20) -> list[TimeStep]:
    """默认时间轴：每 5 格一个 'Day N'，其余为整点时刻。"""
    return [
        TimeStep(
            step=i,
            label=f"Day {i // 5 + 1}" if i % 5 == 0 else f"{10 + i % 5}:00",
        )
        for i in range(length)
    ]


def create_empty_story(timeline_length: int = 20) -> Story:
    """空故事：用户从零开始。"""
    return Story(timeline=create_default_timeline(timeline_length))
