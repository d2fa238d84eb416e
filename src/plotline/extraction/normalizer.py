"""把 AI 抽取结果规范化为严格的 Story。

1. 角色：生成新 id，按数组下标从调色板取色，建立 名称→id 映射。
2. 事件：time_step 等于在抽取数组中的下标（数组顺序即时间顺序），
   narrative_position 记录讲述顺序；行动者无法解析时回退到第一个角色。
3. 有原文摘录的事件附带一条 narrative_ref。
4. 计算累积状态。
5. 生成时间轴：每个 time_step 一个槽，标签取该步的时间估计，否则 'Scene N'。
6. 连接：通过 narrative_position 解析两端，无法解析的连接直接丢弃。
7. 在原文中定位摘录（区分大小写、取最左匹配），定位失败则不生成段落。
8. 组装 Story，保留原故事的 id/标题。
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from typing import Any

from pydantic import BaseModel, Field

from plotline.models.extraction import ExtractionResult
from plotline.models.story import (
    Character,
    Connection,
    Event,
    Narrative,
    NarrativeRef,
    NarrativeSection,
    Story,
    TimeStep,
    UNKNOWN_CHARACTER_ID,
)
from plotline.state.cumulative import calculate_cumulative_state
from plotline.state.palette import color_at

logger = logging.getLogger(__name__)

DEFAULT_REF_CONFIDENCE = 0.8
DEFAULT_CONNECTION_TYPE = "causes"
DEFAULT_STORY_TITLE = "Generated Story"


class NormalizationReport(BaseModel):
    """规范化过程中被丢弃或降级的条目统计。"""

    characters: int = Field(default=0, description="生成的角色数")
    events: int = Field(default=0, description="生成的事件数")
    connections: int = Field(default=0, description="保留的连接数")
    dropped_connections: int = Field(default=0, description="两端无法解析而丢弃的连接数")
    unresolved_actors: list[str] = Field(
        default_factory=list, description="无法匹配到角色的行动者名称"
    )
    unlocated_excerpts: list[str] = Field(
        default_factory=list, description="在原文中找不到的摘录所属段落 id"
    )

    @property
    def has_losses(self) -> bool:
        return bool(self.dropped_connections or self.unresolved_actors or self.unlocated_excerpts)


def _section_id(index: int) -> str:
    return f"s{index}"


def _build_timeline(events: list[Event]) -> list[TimeStep]:
    max_step = max([e.time_step for e in events] + [0])
    timeline: list[TimeStep] = []
    for step in range(max_step + 1):
        event_at_step = next((e for e in events if e.time_step == step), None)
        label = (event_at_step.estimated_time if event_at_step else None) or f"Scene {step + 1}"
        timeline.append(TimeStep(step=step, label=label))
    return timeline


def _locate_sections(events: list[Event], narrative_text: str) -> tuple[list[NarrativeSection], list[str]]:
    sections: list[NarrativeSection] = []
    unlocated: list[str] = []
    for event in events:
        if not event.narrative_refs:
            continue
        ref = event.narrative_refs[0]
        if not ref.extracted_text:
            continue
        start = narrative_text.find(ref.extracted_text)
        if start == -1:
            unlocated.append(ref.section_id)
            continue
        sections.append(
            NarrativeSection(
                id=ref.section_id,
                text=ref.extracted_text,
                start_offset=start,
                end_offset=start + len(ref.extracted_text),
            )
        )
    return sections, unlocated


def normalize_extraction(
    data: ExtractionResult | dict[str, Any],
    narrative_text: str,
    existing_story: Story,
    *,
    ref_confidence: float = DEFAULT_REF_CONFIDENCE,
    id_factory: Callable[[], str] = lambda: str(uuid.uuid4()),
) -> tuple[Story, NormalizationReport]:
    """将抽取结果转换为完整 Story，并返回丢弃条目的统计。"""
    result = ExtractionResult.from_payload(data)
    report = NormalizationReport()

    # ── 角色 ──
    characters = [
        Character(
            id=id_factory(),
            name=c.name,
            color=color_at(idx),
            initial_location=c.initial_location,
            initial_state=dict(c.initial_state),
            inventory=list(c.inventory),
            knowledge=[],
        )
        for idx, c in enumerate(result.characters)
    ]
    name_to_id = {c.name: c.id for c in characters}
    fallback_id = characters[0].id if characters else UNKNOWN_CHARACTER_ID

    # ── 事件 ──
    events: list[Event] = []
    for idx, item in enumerate(result.events):
        character_id = name_to_id.get(item.who)
        if character_id is None:
            report.unresolved_actors.append(item.who)
            character_id = fallback_id

        refs = None
        if item.source_text:
            refs = [
                NarrativeRef(
                    section_id=_section_id(idx),
                    confidence=ref_confidence,
                    extracted_text=item.source_text,
                )
            ]

        events.append(
            Event(
                id=id_factory(),
                character_id=character_id,
                time_step=idx,
                type="action",
                description=item.what,
                location=item.where,
                dialogue=item.dialogue,
                state_change=item.state_change,
                item_changes=item.item_changes,
                knowledge_changes=item.knowledge_changes,
                narrative_position=item.narrative_position,
                estimated_time=item.estimated_time,
                narrative_refs=refs,
            )
        )

    events = calculate_cumulative_state(characters, events)
    timeline = _build_timeline(events)

    # ── 连接 ──
    position_to_id = {
        e.narrative_position: e.id for e in events if e.narrative_position is not None
    }
    connections: list[Connection] = []
    for conn in result.connections:
        source_id = position_to_id.get(conn.from_event)
        target_id = position_to_id.get(conn.to_event)
        if source_id is None or target_id is None:
            report.dropped_connections += 1
            continue
        connections.append(
            Connection(
                id=id_factory(),
                source_event_id=source_id,
                target_event_id=target_id,
                type=conn.type or DEFAULT_CONNECTION_TYPE,
            )
        )

    # ── 原文段落 ──
    sections, report.unlocated_excerpts = _locate_sections(events, narrative_text)

    report.characters = len(characters)
    report.events = len(events)
    report.connections = len(connections)

    story = existing_story.model_copy(
        update={
            "id": existing_story.id or id_factory(),
            "title": existing_story.title or DEFAULT_STORY_TITLE,
            "characters": characters,
            "events": events,
            "connections": connections,
            "timeline": timeline,
            "narrative": Narrative(text=narrative_text, sections=sections),
        }
    )
    return story, report


def convert_extraction_to_story(
    data: ExtractionResult | dict[str, Any],
    narrative_text: str,
    existing_story: Story,
    *,
    ref_confidence: float = DEFAULT_REF_CONFIDENCE,
) -> Story:
    """将抽取结果转换为完整 Story，丢弃情况只写入日志。"""
    story, report = normalize_extraction(
        data, narrative_text, existing_story, ref_confidence=ref_confidence
    )
    logger.info(
        "抽取结果规范化完成: %d 个角色, %d 个事件, %d 条连接",
        report.characters,
        report.events,
        report.connections,
    )
    if report.has_losses:
        logger.warning(
            "规范化丢弃: 连接 %d 条, 未匹配行动者 %s, 原文中未找到的摘录 %s",
            report.dropped_connections,
            report.unresolved_actors,
            report.unlocated_excerpts,
        )
    return story
