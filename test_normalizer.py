"""抽取结果规范化测试。"""

import itertools

from plotline.extraction.normalizer import (
    DEFAULT_CONNECTION_TYPE,
    DEFAULT_REF_CONFIDENCE,
    UNKNOWN_CHARACTER_ID,
    convert_extraction_to_story,
    normalize_extraction,
)
from plotline.models.story import Story
from plotline.state.palette import CHARACTER_COLORS

NARRATIVE = (
    "Ren woke before dawn. The letter lay on the table. "
    "Years ago, Mika had hidden the key. Ren read the letter and took the key."
)

PAYLOAD = {
    "characters": [
        {"name": "Ren", "initial_location": "house", "initial_state": {"mood": "sleepy"}, "inventory": []},
        {"name": "Mika", "initial_state": {}, "inventory": ["key"]},
    ],
    "events": [
        {
            "who": "Mika",
            "what": "hides the key",
            "item_changes": {"remove": ["key"]},
            "narrative_position": 3,
            "estimated_time": "Years ago",
            "source_text": "Mika had hidden the key",
        },
        {
            "who": "Ren",
            "what": "wakes up",
            "state_change": {"mood": "alert"},
            "narrative_position": 1,
            "source_text": "Ren woke before dawn",
        },
        {
            "who": "Ren",
            "what": "reads the letter and takes the key",
            "item_changes": {"add": "key"},
            "knowledge_changes": {"add": ["letter contents"]},
            "narrative_position": 4,
            "estimated_time": "Dawn",
            "source_text": "Ren read the letter",
        },
    ],
    "connections": [
        {"from_event": 3, "to_event": 4, "type": "enables", "description": "the key is there"},
        {"from_event": 1, "to_event": 4},
        {"from_event": 99, "to_event": 4, "type": "causes"},
    ],
}


def _normalize(payload=PAYLOAD, narrative=NARRATIVE, story=None):
    counter = itertools.count(1)
    return normalize_extraction(
        payload,
        narrative,
        story or Story(),
        id_factory=lambda: f"gen-{next(counter)}",
    )


def test_characters_get_fresh_ids_and_palette_colors():
    story, report = _normalize()

    assert [c.name for c in story.characters] == ["Ren", "Mika"]
    assert [c.color for c in story.characters] == list(CHARACTER_COLORS[:2])
    assert story.characters[0].id != story.characters[1].id
    assert story.characters[0].initial_location == "house"
    assert story.characters[1].inventory == ["key"]
    assert report.characters == 2


def test_time_step_follows_array_order_and_keeps_narrative_position():
    story, _ = _normalize()

    assert [e.time_step for e in story.events] == [0, 1, 2]
    assert [e.narrative_position for e in story.events] == [3, 1, 4]
    assert [e.description for e in story.events] == [
        "hides the key",
        "wakes up",
        "reads the letter and takes the key",
    ]


def test_events_are_attached_by_actor_name():
    story, report = _normalize()
    ren, mika = story.characters

    assert [e.character_id for e in story.events] == [mika.id, ren.id, ren.id]
    assert report.unresolved_actors == []


def test_unknown_actor_falls_back_to_first_character():
    payload = {
        "characters": [{"name": "Ren"}],
        "events": [{"who": "Stranger", "what": "knocks"}],
    }

    story, report = _normalize(payload)

    assert story.events[0].character_id == story.characters[0].id
    assert report.unresolved_actors == ["Stranger"]


def test_events_without_characters_use_unknown_id():
    payload = {"characters": [], "events": [{"who": "Ghost", "what": "whispers"}]}

    story, _ = _normalize(payload)

    assert story.events[0].character_id == UNKNOWN_CHARACTER_ID
    assert story.events[0].cumulative_state == {}


def test_cumulative_state_is_computed():
    story, _ = _normalize()
    hide, wake, read = story.events

    assert hide.cumulative_inventory == []
    assert wake.cumulative_state == {"mood": "alert"}
    assert read.cumulative_inventory == ["key"]
    assert read.cumulative_knowledge == ["letter contents"]


def test_source_text_becomes_narrative_ref():
    story, _ = _normalize()

    for idx, event in enumerate(story.events):
        assert len(event.narrative_refs) == 1
        ref = event.narrative_refs[0]
        assert ref.section_id == f"s{idx}"
        assert ref.confidence == DEFAULT_REF_CONFIDENCE


def test_event_without_source_text_has_no_refs():
    payload = {"characters": [{"name": "Ren"}], "events": [{"who": "Ren", "what": "sleeps"}]}

    story, _ = _normalize(payload)

    assert story.events[0].narrative_refs is None
    assert story.narrative.sections == []


def test_timeline_labels_use_estimated_time_or_scene_number():
    story, _ = _normalize()

    assert [(t.step, t.label) for t in story.timeline] == [
        (0, "Years ago"),
        (1, "Scene 2"),
        (2, "Dawn"),
    ]


def test_empty_extraction_has_single_slot_timeline():
    story, report = _normalize({})

    assert story.events == []
    assert [(t.step, t.label) for t in story.timeline] == [(0, "Scene 1")]
    assert report.events == 0


def test_connections_resolve_through_narrative_position():
    story, report = _normalize()
    hide, wake, read = story.events

    pairs = [(c.source_event_id, c.target_event_id, c.type) for c in story.connections]
    assert pairs == [
        (hide.id, read.id, "enables"),
        (wake.id, read.id, DEFAULT_CONNECTION_TYPE),
    ]
    assert report.connections == 2
    assert report.dropped_connections == 1
    assert report.has_losses


def test_sections_locate_excerpts_in_narrative():
    story, report = _normalize()

    assert story.narrative.text == NARRATIVE
    for section in story.narrative.sections:
        assert NARRATIVE[section.start_offset : section.end_offset] == section.text
    assert [s.id for s in story.narrative.sections] == ["s0", "s1", "s2"]
    assert story.narrative.find_section("s1").start_offset == 0
    assert report.unlocated_excerpts == []


def test_section_uses_leftmost_match():
    narrative = "the key. the key."
    payload = {
        "characters": [{"name": "A"}],
        "events": [{"who": "A", "what": "x", "source_text": "the key"}],
    }

    story, _ = _normalize(payload, narrative)

    assert story.narrative.sections[0].start_offset == 0
    assert story.narrative.sections[0].end_offset == len("the key")


def test_unlocated_excerpt_produces_no_section():
    payload = {
        "characters": [{"name": "A"}],
        "events": [{"who": "A", "what": "x", "source_text": "ren woke"}],
    }

    story, report = _normalize(payload, NARRATIVE)

    assert story.narrative.sections == []
    assert story.events[0].narrative_refs[0].section_id == "s0"
    assert report.unlocated_excerpts == ["s0"]


def test_story_id_and_title_are_preserved():
    story, _ = _normalize(story=Story(id="story-7", title="Dawn Letter"))

    assert story.id == "story-7"
    assert story.title == "Dawn Letter"


def test_malformed_payload_fields_are_tolerated():
    payload = {
        "characters": [{"name": "A", "initial_state": "angry", "inventory": "sword"}, "junk"],
        "events": [
            {"who": "A", "what": "swings", "item_changes": "sword", "narrative_position": "2"},
            None,
        ],
        "connections": "none",
    }

    story, _ = _normalize(payload)

    assert story.characters[0].initial_state == {}
    assert story.characters[0].inventory == ["sword"]
    assert story.events[0].item_changes is None
    assert story.events[0].narrative_position == 2
    assert len(story.events) == 2
    assert story.connections == []


def test_convert_extraction_to_story_logs_losses(caplog):
    with caplog.at_level("WARNING", logger="plotline.extraction.normalizer"):
        story = convert_extraction_to_story(PAYLOAD, NARRATIVE, Story())

    assert len(story.events) == 3
    assert "规范化丢弃" in caplog.text
