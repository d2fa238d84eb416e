"""本地存储与配置加载测试。"""

from plotline.config.settings import TimelineConfig, load_config
from plotline.models.story import Event, Story
from plotline.output.manager import StorageManager


def test_missing_story_loads_as_none(tmp_path):
    assert StorageManager(tmp_path).load_story() is None


def test_story_round_trip_preserves_aliases(tmp_path):
    manager = StorageManager(tmp_path)
    story = Story(
        id="s-1",
        title="Lantern",
        events=[Event(id="e1", character_id="c1", time_step=0, state_change={"note": None})],
        narrative={"text": "abc", "sections": [{"id": "s0", "text": "ab", "startOffset": 0, "endOffset": 2}]},
    )

    path = manager.save_story(story)

    assert path == tmp_path / "plotline-storage.json"
    assert '"startOffset": 0' in path.read_text(encoding="utf-8")
    assert manager.load_story() == story


def test_corrupt_story_is_ignored(tmp_path):
    manager = StorageManager(tmp_path)
    (tmp_path / "plotline-storage.json").write_text('{"characters": "nope"}', encoding="utf-8")

    assert manager.load_story() is None


def test_clear_story(tmp_path):
    manager = StorageManager(tmp_path)
    manager.save_story(Story())

    manager.clear_story()
    manager.clear_story()

    assert manager.load_story() is None


def test_onboarding_flag(tmp_path):
    manager = StorageManager(tmp_path, onboarding_key="tour")

    assert not manager.is_onboarding_completed()
    manager.mark_onboarding_completed()
    assert manager.is_onboarding_completed()
    assert (tmp_path / "tour.json").exists()
    manager.reset_onboarding()
    assert not manager.is_onboarding_completed()


def test_from_config_uses_configured_keys(tmp_path):
    config = TimelineConfig(storage_dir=str(tmp_path / "store"), story_key="mine")

    manager = StorageManager.from_config(config)
    manager.save_story(Story())

    assert (tmp_path / "store" / "mine.json").exists()


def test_load_config_defaults_when_missing(tmp_path):
    config = load_config(tmp_path / "absent.yaml")

    assert config == TimelineConfig()
    assert load_config(None).history_limit == 50


def test_load_config_overrides_from_yaml(tmp_path):
    path = tmp_path / "plotline.yaml"
    path.write_text(
        "history_limit: 10\n"
        "language: en\n"
        "extraction_model:\n"
        "  provider: openai\n"
        "  model_name: gpt-4o-mini\n",
        encoding="utf-8",
    )

    config = load_config(path)

    assert config.history_limit == 10
    assert config.language == "en"
    assert config.extraction_model.provider == "openai"
    assert config.extraction_model.temperature == 0.2
    assert config.min_request_interval == 5.0
