import json

from battlebook.common.errors import ClientRequestError
from battlebook.common.settings import GenerationMode
from battlebook.pipeline.lifecycle import StoryLifecycleManager
from battlebook.pipeline.state import GenerationPhase
from battlebook.storage.story_cache import PLACEHOLDER_HASH, StoryCache, hash_input_text

from conftest import BATTLE_TEXT, FakeCompletion, no_sleep


def _manager(settings, completion, images):
    return StoryLifecycleManager.from_settings(
        settings,
        completion_fn=completion,
        image_service=images,
        sleep=no_sleep,
    )


def test_full_run_produces_and_caches_story(settings, fake_images, tmp_path):
    completion = FakeCompletion()
    manager = _manager(settings, completion, fake_images)
    events = []

    story = manager.generate(BATTLE_TEXT, progress_callback=lambda stage, payload: events.append(stage))

    story_hash = hash_input_text(BATTLE_TEXT)
    assert story.id == story_hash
    assert story.name == "Battle of Testfield"
    assert set(story.assets) == {"tactical_map", "token_blue", "token_gray"}
    assert [len(chain) for chain in story.frames] == [3, 0]
    assert story.page_image(1) == story.assets["tactical_map"]

    snapshot = manager.session.snapshot()
    assert snapshot.phase is GenerationPhase.COMPLETE
    assert snapshot.is_loading is False
    assert snapshot.progress == 1.0
    assert snapshot.progress_text == "Finished"
    assert snapshot.current_story == story

    cached = json.loads((tmp_path / f"{story_hash}.json").read_text(encoding="utf-8"))
    assert cached["id"] == story_hash
    assert events == ["run:started", "plan:ready", "assets:ready", "frames:ready", "run:complete"]

    messages = [entry.message for entry in snapshot.log]
    assert f"[Cache] Miss for story hash: {story_hash}. Generating new plan." in messages
    assert "[Lifecycle] Completed: Cache story" in messages


def test_second_run_is_served_from_cache(settings, fake_images):
    completion = FakeCompletion()
    manager = _manager(settings, completion, fake_images)

    first = manager.generate(BATTLE_TEXT)
    calls_after_first = (len(completion.calls), len(fake_images.calls))
    second = manager.generate(BATTLE_TEXT.replace("\n", "\r\n") + "\n")

    assert second == first
    assert (len(completion.calls), len(fake_images.calls)) == calls_after_first
    snapshot = manager.session.snapshot()
    assert snapshot.phase is GenerationPhase.COMPLETE
    assert snapshot.progress == 1.0
    assert " -> Found cached story. Skipping generation." in [entry.message for entry in snapshot.log]


def test_progress_never_decreases(settings, fake_images):
    manager = _manager(settings, FakeCompletion(), fake_images)
    seen = []
    manager.session.subscribe(lambda snapshot: seen.append(snapshot.progress))

    manager.generate(BATTLE_TEXT)

    after_reset = seen[seen.index(0.0):]
    assert after_reset == sorted(after_reset)
    assert after_reset[-1] == 1.0
    # 7 steps: plan, two tokens, two map layers, two frames.
    assert round(1 / 7, 6) in {round(value, 6) for value in after_reset}


def test_failed_run_is_not_cached(settings, fake_images, tmp_path):
    fake_images.failures["Beta Token (Base Asset)"] = [ClientRequestError("prompt rejected", status_code=400)]
    manager = _manager(settings, FakeCompletion(), fake_images)
    events = []

    story = manager.generate(BATTLE_TEXT, progress_callback=lambda stage, payload: events.append(stage))

    assert story is None
    snapshot = manager.session.snapshot()
    assert snapshot.phase is GenerationPhase.FAILED
    assert snapshot.error == "prompt rejected"
    assert snapshot.is_loading is False
    # Partial results stay visible.
    assert "tactical_map" in snapshot.realtime_assets
    messages = [entry.message for entry in snapshot.log]
    assert '[Lifecycle] ERROR in step "Base asset generation": prompt rejected' in messages
    assert StoryCache(tmp_path).lookup(hash_input_text(BATTLE_TEXT)) is None
    assert events[-1] == "run:failed"


def test_plan_failure_ends_in_failed_phase(settings, fake_images):
    completion = FakeCompletion()
    completion.responses["battle_plan_base"] = ClientRequestError("invalid api key", status_code=401)
    manager = _manager(settings, completion, fake_images)

    assert manager.generate(BATTLE_TEXT) is None
    assert manager.session.phase is GenerationPhase.FAILED
    assert fake_images.calls == []


def test_placeholder_run_uses_placeholder_hash(settings, fake_images, tmp_path):
    manager = _manager(settings, FakeCompletion(), fake_images)

    story = manager.generate(use_placeholder=True)

    assert story.id == PLACEHOLDER_HASH
    assert (tmp_path / f"{PLACEHOLDER_HASH}.json").is_file()


def test_missing_input_fails_the_run(settings, fake_images):
    manager = _manager(settings, FakeCompletion(), fake_images)
    assert manager.generate("   ") is None
    assert "Input text is required" in manager.session.snapshot().error


def test_plan_only_mode_returns_uncached_plan(settings, fake_images, tmp_path):
    manager = _manager(settings, FakeCompletion(), fake_images)

    story = manager.generate(BATTLE_TEXT, mode=GenerationMode.PLAN_ONLY)

    assert story.assets == {}
    assert story.frames == []
    assert fake_images.calls == []
    assert manager.session.phase is GenerationPhase.COMPLETE
    assert manager.session.progress == 1.0
    assert not list(tmp_path.glob("*.json"))


def test_assets_only_mode_stops_before_frames(settings, fake_images, tmp_path):
    manager = _manager(settings, FakeCompletion(), fake_images)

    story = manager.generate(BATTLE_TEXT, mode=GenerationMode.ASSETS_ONLY)

    assert set(story.assets) == {"tactical_map", "token_blue", "token_gray"}
    assert story.frames == []
    assert not any(caption.startswith("Page") for caption in fake_images.captions)
    assert not list(tmp_path.glob("*.json"))


def test_restart_discards_in_flight_results(settings, fake_images, tmp_path):
    manager = _manager(settings, FakeCompletion(), fake_images)

    def restart_on_first_token(caption):
        if caption == "Alpha Token (Base Asset)":
            manager.restart()

    fake_images.before_call = restart_on_first_token
    events = []

    story = manager.generate(BATTLE_TEXT, progress_callback=lambda stage, payload: events.append(stage))

    assert story is None
    snapshot = manager.session.snapshot()
    assert snapshot.phase is GenerationPhase.IDLE
    assert snapshot.is_loading is False
    assert "token_blue" not in snapshot.realtime_assets
    assert snapshot.error is None
    assert "Beta Token (Base Asset)" not in fake_images.captions
    assert events[-1] == "run:cancelled"
    assert not list(tmp_path.glob("*.json"))


def test_new_run_after_restart(settings, fake_images):
    manager = _manager(settings, FakeCompletion(), fake_images)
    manager.restart()
    story = manager.generate(BATTLE_TEXT)
    assert story is not None
    assert manager.session.phase is GenerationPhase.COMPLETE
