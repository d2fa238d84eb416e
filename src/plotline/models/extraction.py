"""AI 抽取结果的数据模型。

模型返回的是弱类型 JSON：字段可能缺失、类型可能不对。
from_payload() 系列方法逐项做防御式转换，畸形的可选字段退化为空默认值，
不会因为单个坏字段让整个抽取结果作废。
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from plotline.models.story import ChangeSet, coerce_str_list


def _as_str(value: Any, default: str = "") -> str:
    if value is None:
        return default
    if isinstance(value, (dict, list)):
        return default
    return str(value)


def _as_optional_str(value: Any) -> str | None:
    text = _as_str(value)
    return text or None


def _as_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


def _as_dict(value: Any) -> dict[str, Any]:
    if not isinstance(value, dict):
        return {}
    return {str(k): v for k, v in value.items()}


def _as_list(value: Any) -> list[Any]:
    return value if isinstance(value, list) else []


def _as_change_set(value: Any) -> ChangeSet | None:
    if not isinstance(value, dict):
        return None
    return ChangeSet(add=value.get("add"), remove=value.get("remove"))


class ExtractedCharacter(BaseModel):
    """抽取出的角色。"""

    name: str = Field(default="", description="角色名称")
    initial_location: str = Field(default="", description="最初所在位置")
    initial_state: dict[str, Any] = Field(default_factory=dict, description="初始状态")
    inventory: list[str] = Field(default_factory=list, description="初始持有物品")

    @classmethod
    def from_payload(cls, data: Any) -> ExtractedCharacter:
        if not isinstance(data, dict):
            return cls()
        return cls(
            name=_as_str(data.get("name")),
            initial_location=_as_str(data.get("initial_location")),
            initial_state=_as_dict(data.get("initial_state")),
            inventory=coerce_str_list(data.get("inventory")),
        )


class ExtractedEvent(BaseModel):
    """抽取出的事件；数组顺序即时间顺序。"""

    who: str = Field(default="", description="行动者名称")
    what: str = Field(default="", description="行动内容")
    where: str | None = Field(default=None, description="地点")
    dialogue: str | None = Field(default=None, description="台词")
    state_change: dict[str, Any] | None = Field(default=None, description="状态变化")
    item_changes: ChangeSet | None = Field(default=None, description="物品增减")
    knowledge_changes: ChangeSet | None = Field(default=None, description="认知增减")
    narrative_position: int | None = Field(default=None, description="讲述次序（从 1 开始）")
    estimated_time: str | None = Field(default=None, description="时间估计，如 '翌日'")
    source_text: str | None = Field(default=None, description="原文摘录")

    @classmethod
    def from_payload(cls, data: Any) -> ExtractedEvent:
        if not isinstance(data, dict):
            return cls()
        state_change = data.get("state_change")
        return cls(
            who=_as_str(data.get("who")),
            what=_as_str(data.get("what")),
            where=_as_optional_str(data.get("where")),
            dialogue=_as_optional_str(data.get("dialogue")),
            state_change=_as_dict(state_change) if isinstance(state_change, dict) else None,
            item_changes=_as_change_set(data.get("item_changes")),
            knowledge_changes=_as_change_set(data.get("knowledge_changes")),
            narrative_position=_as_int(data.get("narrative_position")),
            estimated_time=_as_optional_str(data.get("estimated_time")),
            source_text=_as_optional_str(data.get("source_text")),
        )


class ExtractedConnection(BaseModel):
    """抽取出的因果连接；from/to 指向 narrative_position。"""

    from_event: int | None = Field(default=None, description="起点事件的讲述次序")
    to_event: int | None = Field(default=None, description="终点事件的讲述次序")
    type: str = Field(default="", description="causes / enables / triggers / leads_to")
    description: str = Field(default="", description="关系说明")

    @classmethod
    def from_payload(cls, data: Any) -> ExtractedConnection:
        if not isinstance(data, dict):
            return cls()
        return cls(
            from_event=_as_int(data.get("from_event")),
            to_event=_as_int(data.get("to_event")),
            type=_as_str(data.get("type")),
            description=_as_str(data.get("description")),
        )


class ExtractionResult(BaseModel):
    """一次抽取的完整结果。"""

    characters: list[ExtractedCharacter] = Field(default_factory=list)
    events: list[ExtractedEvent] = Field(default_factory=list)
    connections: list[ExtractedConnection] = Field(default_factory=list)

    @classmethod
    def from_payload(cls, data: Any) -> ExtractionResult:
        """从已解析的 JSON 对象构建抽取结果。"""
        if isinstance(data, ExtractionResult):
            return data
        if not isinstance(data, dict):
            return cls()
        return cls(
            characters=[ExtractedCharacter.from_payload(c) for c in _as_list(data.get("characters"))],
            events=[ExtractedEvent.from_payload(e) for e in _as_list(data.get("events"))],
            connections=[
                ExtractedConnection.from_payload(c) for c in _as_list(data.get("connections"))
            ],
        )
