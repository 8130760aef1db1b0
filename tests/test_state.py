from datetime import datetime

import pytest

from battlebook.common.asset import GeneratedAsset
from battlebook.common.errors import GenerationCancelled, InvalidTransitionError
from battlebook.pipeline.state import (
    CancellationToken,
    GenerationPhase,
    GenerationSession,
    ProgressTracker,
)


def _clock():
    return datetime(2024, 7, 1, 14, 5, 9)


def _asset(name):
    return GeneratedAsset(url=f"/images/{name}.png", uri=f"/tmp/{name}.png", mime_type="image/png", caption=name)


def test_initial_snapshot():
    snapshot = GenerationSession(clock=_clock).snapshot()
    assert snapshot.phase is GenerationPhase.IDLE
    assert snapshot.is_loading is False
    assert snapshot.progress == 0.0
    assert snapshot.log == ()
    assert snapshot.log_filename == "debug-2024-07-01_14-05-09.log"


def test_happy_path_transitions():
    session = GenerationSession()
    for phase in (
        GenerationPhase.PLANNING,
        GenerationPhase.ASSET_GENERATION,
        GenerationPhase.FRAME_COMPOSITION,
        GenerationPhase.COMPLETE,
    ):
        session.transition(phase)
    assert session.phase is GenerationPhase.COMPLETE


def test_illegal_transitions_rejected():
    session = GenerationSession()
    with pytest.raises(InvalidTransitionError):
        session.transition(GenerationPhase.FRAME_COMPOSITION)

    session.transition(GenerationPhase.PLANNING)
    session.transition(GenerationPhase.COMPLETE)
    with pytest.raises(InvalidTransitionError):
        session.transition(GenerationPhase.PLANNING)


def test_fail_records_error_and_stops_loading():
    session = GenerationSession()
    session.reset(loading=True)
    session.transition(GenerationPhase.PLANNING)

    session.fail("boom")

    snapshot = session.snapshot()
    assert snapshot.phase is GenerationPhase.FAILED
    assert snapshot.error == "boom"
    assert snapshot.is_loading is False


def test_log_entries_and_log_content():
    session = GenerationSession(clock=_clock)
    session.add_log("first")
    session.add_log("second")

    snapshot = session.snapshot()
    assert [entry.message for entry in snapshot.log] == ["first", "second"]
    assert snapshot.log[0].format() == "[14:05:09] first"
    assert snapshot.log_content == "[14:05:09] first\n[14:05:09] second\n"


def test_progress_is_monotone_and_clamped():
    session = GenerationSession()
    session.set_progress(0.5, "half")
    with pytest.raises(ValueError):
        session.set_progress(0.25)
    session.set_progress(3.0)
    assert session.progress == 1.0
    assert session.snapshot().progress_text == "half"


def test_reset_clears_run_state():
    session = GenerationSession()
    session.transition(GenerationPhase.PLANNING)
    session.add_log("working")
    session.set_progress(0.4)
    session.add_realtime_asset("tactical_map", _asset("map"))

    session.reset(loading=False)

    snapshot = session.snapshot()
    assert snapshot.phase is GenerationPhase.IDLE
    assert snapshot.log == ()
    assert snapshot.progress == 0.0
    assert dict(snapshot.realtime_assets) == {}


def test_realtime_frames_are_padded_and_replaced():
    session = GenerationSession()
    session.update_realtime_frame(1, [_asset("b")])
    session.update_realtime_frame(1, [_asset("b"), _asset("c")])

    frames = session.snapshot().realtime_frames
    assert frames[0] == ()
    assert [asset.caption for asset in frames[1]] == ["b", "c"]


def test_subscribers_receive_snapshots_until_unsubscribed():
    session = GenerationSession()
    received = []
    unsubscribe = session.subscribe(received.append)

    session.add_log("one")
    unsubscribe()
    session.add_log("two")

    assert len(received) == 1
    assert received[0].log[-1].message == "one"


def test_snapshot_is_isolated_from_later_changes():
    session = GenerationSession()
    session.add_realtime_asset("a", _asset("a"))
    snapshot = session.snapshot()
    session.add_realtime_asset("b", _asset("b"))

    assert list(snapshot.realtime_assets) == ["a"]
    with pytest.raises(TypeError):
        snapshot.realtime_assets["c"] = _asset("c")


def test_progress_tracker_steps():
    session = GenerationSession()
    tracker = ProgressTracker(session)
    tracker.start(4, completed=1, text="Plan generated")
    assert session.progress == 0.25

    tracker.advance()
    tracker.advance("Generating frame 1 of 1")
    assert session.progress == 0.75
    assert tracker.completed_steps == 3

    tracker.finish()
    assert session.progress == 1.0
    assert session.snapshot().progress_text == "Finished"


def test_progress_tracker_requires_start():
    with pytest.raises(RuntimeError):
        ProgressTracker(GenerationSession()).advance()


def test_cancellation_token():
    token = CancellationToken()
    token.raise_if_cancelled()
    token.cancel()
    assert token.cancelled
    with pytest.raises(GenerationCancelled):
        token.raise_if_cancelled()
