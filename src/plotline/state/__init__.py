"""状态定义与管理。"""

from plotline.state.cumulative import (
    CharacterSnapshot,
    apply_changes,
    apply_event_to_snapshot,
    calculate_cumulative_state,
    character_snapshots,
    snapshot_at,
)
from plotline.state.palette import CHARACTER_COLORS, ColorAllocator, color_at
from plotline.state.store import TimelineStore, derive_story

__all__ = [
    "CHARACTER_COLORS",
    "CharacterSnapshot",
    "ColorAllocator",
    "TimelineStore",
    "apply_changes",
    "apply_event_to_snapshot",
    "calculate_cumulative_state",
    "character_snapshots",
    "color_at",
    "derive_story",
    "snapshot_at",
]
