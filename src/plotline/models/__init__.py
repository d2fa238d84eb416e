"""Pydantic 数据模型。"""

from plotline.models.extraction import (
    ExtractedCharacter,
    ExtractedConnection,
    ExtractedEvent,
    ExtractionResult,
)
from plotline.models.story import (
    DERIVED_EVENT_FIELDS,
    ChangeSet,
    Character,
    Connection,
    Event,
    Narrative,
    NarrativeRef,
    NarrativeSection,
    Story,
    TimeStep,
    TimeType,
    UNKNOWN_CHARACTER_ID,
    coerce_str_list,
    create_default_timeline,
    create_empty_story,
)

__all__ = [
    "DERIVED_EVENT_FIELDS",
    "UNKNOWN_CHARACTER_ID",
    "ChangeSet",
    "Character",
    "Connection",
    "Event",
    "ExtractedCharacter",
    "ExtractedConnection",
    "ExtractedEvent",
    "ExtractionResult",
    "Narrative",
    "NarrativeRef",
    "NarrativeSection",
    "Story",
    "TimeStep",
    "TimeType",
    "coerce_str_list",
    "create_default_timeline",
    "create_empty_story",
]
