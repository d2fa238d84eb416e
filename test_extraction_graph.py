"""叙事 → 时间线生成流程测试。"""

import json

from langchain_core.language_models.fake_chat_models import FakeListChatModel

from plotline.agents.extractor import RequestThrottle, TimelineExtractor
from plotline.state.extraction_state import EMPTY_NARRATIVE, PARSE_ERROR
from plotline.state.store import TimelineStore
from plotline.graph.extraction_graph import generate_story

NARRATIVE = "Aoi found the lantern. Later, Aoi lit it."

RESPONSE = "```json\n" + json.dumps(
    {
        "characters": [{"name": "Aoi", "initial_state": {"mood": "curious"}, "inventory": []}],
        "events": [
            {
                "who": "Aoi",
                "what": "finds a lantern",
                "item_changes": {"add": ["lantern"]},
                "narrative_position": 1,
                "source_text": "Aoi found the lantern",
            },
            {
                "who": "Aoi",
                "what": "lights the lantern",
                "state_change": {"mood": "hopeful"},
                "narrative_position": 2,
                "estimated_time": "Later",
                "source_text": "Aoi lit it",
            },
        ],
        "connections": [{"from_event": 1, "to_event": 2, "type": "enables"}],
    },
    indent=2,
) + "\n```"


def _extractor(*responses) -> TimelineExtractor:
    return TimelineExtractor(FakeListChatModel(responses=list(responses)), retry_delay=0)


def test_generate_story_publishes_normalized_story():
    store = TimelineStore()

    outcome = generate_story(store, _extractor(RESPONSE), narrative_text=NARRATIVE, language="en")

    assert outcome.success
    assert outcome.error is None
    assert store.story == outcome.story
    assert store.story.narrative.text == NARRATIVE
    assert [e.description for e in store.story.events] == ["finds a lantern", "lights the lantern"]
    assert store.story.events[1].cumulative_inventory == ["lantern"]
    assert store.story.events[1].cumulative_state == {"mood": "hopeful"}
    assert store.story.connections[0].type == "enables"
    assert outcome.report.dropped_connections == 0
    assert store.can_undo


def test_generation_can_be_undone():
    store = TimelineStore()
    store.add_character("Draft")

    generate_story(store, _extractor(RESPONSE), narrative_text=NARRATIVE)
    store.undo()

    assert [c.name for c in store.story.characters] == ["Draft"]


def test_narrative_defaults_to_store_text():
    store = TimelineStore()
    store.update_narrative(NARRATIVE)

    outcome = generate_story(store, _extractor(RESPONSE))

    assert outcome.success
    assert len(store.story.narrative.sections) == 2


def test_empty_narrative_is_rejected():
    store = TimelineStore()
    before = store.story

    outcome = generate_story(store, _extractor(RESPONSE), narrative_text="   \n")

    assert not outcome.success
    assert outcome.error.type == EMPTY_NARRATIVE
    assert store.story is before


def test_unparseable_response_leaves_store_untouched():
    store = TimelineStore()
    before = store.story

    outcome = generate_story(store, _extractor("I cannot help with that {"), narrative_text=NARRATIVE)

    assert not outcome.success
    assert outcome.error.type == PARSE_ERROR
    assert store.story is before
    assert not store.can_undo


def test_recorded_response_is_replayed_without_model():
    store = TimelineStore()

    outcome = generate_story(store, None, narrative_text=NARRATIVE, response_text=RESPONSE)

    assert outcome.success
    assert len(store.story.events) == 2


def test_missing_extractor_reports_no_api_key():
    outcome = generate_story(TimelineStore(), None, narrative_text=NARRATIVE)

    assert outcome.error.type == "NO_API_KEY"


def test_extractor_errors_are_propagated_with_wait_time():
    store = TimelineStore()
    extractor = TimelineExtractor(
        FakeListChatModel(responses=[RESPONSE, RESPONSE]),
        throttle=RequestThrottle(60.0, clock=lambda: 0.0),
    )

    assert generate_story(store, extractor, narrative_text=NARRATIVE).success
    outcome = generate_story(store, extractor, narrative_text=NARRATIVE)

    assert outcome.error.type == "RATE_LIMITED"
    assert outcome.error.wait_time == 60
