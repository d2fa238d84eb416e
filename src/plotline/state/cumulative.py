"""角色累积状态计算。

给定角色初始状态与事件列表，按 time_step 升序折叠每个事件的增量，
为每个事件打上"截至并包含该事件"的状态快照。纯函数：不修改入参。
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from pydantic import BaseModel, Field

from plotline.models.story import ChangeSet, Character, Event

logger = logging.getLogger(__name__)


class CharacterSnapshot(BaseModel):
    """某一时刻角色的完整状态。"""

    state: dict[str, Any] = Field(default_factory=dict, description="状态键值")
    inventory: list[str] = Field(default_factory=list, description="持有物品")
    knowledge: list[str] = Field(default_factory=list, description="已知信息")

    @classmethod
    def from_character(cls, character: Character) -> CharacterSnapshot:
        return cls(
            state=dict(character.initial_state or {}),
            inventory=list(character.inventory or []),
            knowledge=list(character.knowledge or []),
        )


def apply_changes(items: list[str], changes: ChangeSet | None) -> list[str]:
    """集合式增量：先追加 add，再删除 remove 中的全部匹配项。"""
    if changes is None:
        return list(items)
    updated = [*items, *changes.add]
    if changes.remove:
        removed = set(changes.remove)
        updated = [item for item in updated if item not in removed]
    return updated


def apply_event_to_snapshot(snapshot: CharacterSnapshot, event: Event) -> CharacterSnapshot:
    """将一个事件的增量应用到角色快照上，返回新快照。"""
    updated = snapshot.model_copy(deep=True)

    # 状态浅合并，后写覆盖
    if event.state_change:
        updated.state = {**updated.state, **event.state_change}

    updated.inventory = apply_changes(updated.inventory, event.item_changes)
    updated.knowledge = apply_changes(updated.knowledge, event.knowledge_changes)
    return updated


def _initial_snapshots(characters: Iterable[Character]) -> dict[str, CharacterSnapshot]:
    return {c.id: CharacterSnapshot.from_character(c) for c in characters}


def _chronological_order(events: list[Event]) -> list[int]:
    # sorted() 稳定：同一 time_step 保持原数组顺序
    return sorted(range(len(events)), key=lambda i: events[i].time_step)


def calculate_cumulative_state(
    characters: Iterable[Character],
    events: list[Event],
) -> list[Event]:
    """计算每个事件的累积状态/物品/认知。

    返回新的事件列表，顺序与输入一致；输入中的事件对象不会被修改。
    未知角色 id 不报错，按空初始状态处理。
    """
    snapshots = _initial_snapshots(characters)
    stamped: list[Event] = list(events)

    for idx in _chronological_order(events):
        event = events[idx]
        current = snapshots.get(event.character_id)
        if current is None:
            logger.debug("事件 %s 引用了未知角色 %s，按空状态处理", event.id, event.character_id)
            current = CharacterSnapshot()

        current = apply_event_to_snapshot(current, event)
        snapshots[event.character_id] = current

        # 深拷贝打点，之后的累加不会回溯改动已打点的事件
        frozen = current.model_copy(deep=True)
        stamped[idx] = event.model_copy(
            deep=True,
            update={
                "cumulative_state": frozen.state,
                "cumulative_inventory": frozen.inventory,
                "cumulative_knowledge": frozen.knowledge,
            },
        )

    return stamped


def character_snapshots(
    characters: Iterable[Character],
    events: list[Event],
) -> dict[str, CharacterSnapshot]:
    """折叠全部事件后，每个角色的最终状态。"""
    snapshots = _initial_snapshots(characters)
    for idx in _chronological_order(events):
        event = events[idx]
        current = snapshots.get(event.character_id, CharacterSnapshot())
        snapshots[event.character_id] = apply_event_to_snapshot(current, event)
    return snapshots


def snapshot_at(
    characters: Iterable[Character],
    events: list[Event],
    character_id: str,
    time_step: int,
) -> CharacterSnapshot:
    """某角色在故事时间 time_step（含）时的状态。

    该时刻之前没有事件时返回初始状态。
    """
    initial = _initial_snapshots(characters).get(character_id, CharacterSnapshot())
    relevant = [
        e for e in events if e.character_id == character_id and e.time_step <= time_step
    ]
    current = initial
    for idx in _chronological_order(relevant):
        current = apply_event_to_snapshot(current, relevant[idx])
    return current
