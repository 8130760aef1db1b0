"""
Observable generation session: run log, partial results, progress and phase machine.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Callable, Mapping, Sequence

from battlebook.common.asset import GeneratedAsset
from battlebook.common.errors import GenerationCancelled, InvalidTransitionError
from battlebook.storage.story import StoredStory

logger = logging.getLogger(__name__)


class GenerationPhase(str, Enum):
    IDLE = "idle"
    PLANNING = "planning"
    ASSET_GENERATION = "asset_generation"
    FRAME_COMPOSITION = "frame_composition"
    COMPLETE = "complete"
    FAILED = "failed"


# Planning and asset generation may end early (cache hit, partial modes).
_ALLOWED_TRANSITIONS: dict[GenerationPhase, frozenset[GenerationPhase]] = {
    GenerationPhase.IDLE: frozenset({GenerationPhase.PLANNING}),
    GenerationPhase.PLANNING: frozenset(
        {GenerationPhase.ASSET_GENERATION, GenerationPhase.COMPLETE, GenerationPhase.FAILED}
    ),
    GenerationPhase.ASSET_GENERATION: frozenset(
        {GenerationPhase.FRAME_COMPOSITION, GenerationPhase.COMPLETE, GenerationPhase.FAILED}
    ),
    GenerationPhase.FRAME_COMPOSITION: frozenset({GenerationPhase.COMPLETE, GenerationPhase.FAILED}),
    GenerationPhase.COMPLETE: frozenset(),
    GenerationPhase.FAILED: frozenset(),
}


@dataclass(frozen=True)
class LogEntry:
    timestamp: datetime
    message: str

    def format(self) -> str:
        return f"[{self.timestamp.strftime('%H:%M:%S')}] {self.message}"


@dataclass(frozen=True)
class SessionSnapshot:
    """
    Immutable view of the session published to every subscriber on each change.
    """

    phase: GenerationPhase
    is_loading: bool
    current_story: StoredStory | None
    log: tuple[LogEntry, ...]
    realtime_assets: Mapping[str, GeneratedAsset]
    realtime_frames: tuple[tuple[GeneratedAsset, ...], ...]
    progress: float
    progress_text: str
    log_filename: str
    log_content: str
    error: str | None = None


Listener = Callable[[SessionSnapshot], None]


class CancellationToken:
    """Flag checked by the pipeline before and after every provider call."""

    def __init__(self) -> None:
        self._cancelled = threading.Event()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        self._cancelled.set()

    def raise_if_cancelled(self) -> None:
        if self._cancelled.is_set():
            raise GenerationCancelled("Generation was restarted; discarding in-flight results.")


def _log_filename(now: datetime) -> str:
    return f"debug-{now.strftime('%Y-%m-%d_%H-%M-%S')}.log"


@dataclass
class _SessionData:
    phase: GenerationPhase = GenerationPhase.IDLE
    is_loading: bool = False
    current_story: StoredStory | None = None
    log: list[LogEntry] = field(default_factory=list)
    realtime_assets: dict[str, GeneratedAsset] = field(default_factory=dict)
    realtime_frames: list[list[GeneratedAsset]] = field(default_factory=list)
    progress: float = 0.0
    progress_text: str = ""
    log_filename: str = ""
    log_lines: list[str] = field(default_factory=list)
    error: str | None = None


class GenerationSession:
    """
    Single-writer state store for one generation run at a time.

    Only the lifecycle manager and the stages it drives mutate the session.
    Observers register through :meth:`subscribe` and receive a fresh
    :class:`SessionSnapshot` after every change.
    """

    def __init__(self, *, clock: Callable[[], datetime] = datetime.now) -> None:
        self._clock = clock
        self._lock = threading.RLock()
        self._listeners: list[Listener] = []
        self._data = _SessionData(log_filename=_log_filename(clock()))

    # -- observers -------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener``; the returned callable unregisters it."""
        with self._lock:
            self._listeners.append(listener)
        return lambda: self.unsubscribe(listener)

    def unsubscribe(self, listener: Listener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def snapshot(self) -> SessionSnapshot:
        with self._lock:
            data = self._data
            return SessionSnapshot(
                phase=data.phase,
                is_loading=data.is_loading,
                current_story=data.current_story,
                log=tuple(data.log),
                realtime_assets=MappingProxyType(dict(data.realtime_assets)),
                realtime_frames=tuple(tuple(chain) for chain in data.realtime_frames),
                progress=data.progress,
                progress_text=data.progress_text,
                log_filename=data.log_filename,
                log_content="".join(data.log_lines),
                error=data.error,
            )

    @property
    def phase(self) -> GenerationPhase:
        with self._lock:
            return self._data.phase

    @property
    def progress(self) -> float:
        with self._lock:
            return self._data.progress

    # -- mutation --------------------------------------------------------

    def reset(self, *, loading: bool = True) -> None:
        """Clear all run state and return to the idle phase."""
        with self._lock:
            self._data = _SessionData(is_loading=loading, log_filename=_log_filename(self._clock()))
            self._publish()

    def transition(self, phase: GenerationPhase) -> None:
        with self._lock:
            current = self._data.phase
            if phase not in _ALLOWED_TRANSITIONS[current]:
                raise InvalidTransitionError(
                    f"Cannot move generation from '{current.value}' to '{phase.value}'."
                )
            self._data.phase = phase
            logger.debug("Generation phase %s -> %s", current.value, phase.value)
            self._publish()

    def fail(self, message: str) -> None:
        with self._lock:
            if GenerationPhase.FAILED in _ALLOWED_TRANSITIONS[self._data.phase]:
                self._data.phase = GenerationPhase.FAILED
            self._data.error = message
            self._data.is_loading = False
            self._publish()

    def add_log(self, message: str) -> None:
        with self._lock:
            entry = LogEntry(timestamp=self._clock(), message=message)
            self._data.log.append(entry)
            self._data.log_lines.append(entry.format() + "\n")
            logger.info(message)
            self._publish()

    def set_progress(self, fraction: float, text: str | None = None) -> None:
        with self._lock:
            bounded = min(max(fraction, 0.0), 1.0)
            if bounded < self._data.progress:
                raise ValueError(
                    f"Progress must not decrease (current {self._data.progress:.3f}, got {bounded:.3f})."
                )
            self._data.progress = bounded
            if text is not None:
                self._data.progress_text = text
            self._publish()

    def set_progress_text(self, text: str) -> None:
        with self._lock:
            self._data.progress_text = text
            self._publish()

    def add_realtime_asset(self, name: str, asset: GeneratedAsset) -> None:
        with self._lock:
            self._data.realtime_assets[name] = asset
            self._publish()

    def update_realtime_frame(self, index: int, chain: Sequence[GeneratedAsset]) -> None:
        with self._lock:
            frames = self._data.realtime_frames
            while len(frames) <= index:
                frames.append([])
            frames[index] = list(chain)
            self._publish()

    def set_final_story(self, story: StoredStory) -> None:
        with self._lock:
            self._data.current_story = story
            self._publish()

    def set_loading(self, is_loading: bool) -> None:
        with self._lock:
            self._data.is_loading = is_loading
            self._publish()

    def _publish(self) -> None:
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            listener(snapshot)


class ProgressTracker:
    """
    Step counter feeding the session's progress fraction.

    ``total_steps`` is fixed once the plan is known; each completed sub-step
    advances the fraction by ``1 / total_steps``.
    """

    def __init__(self, session: GenerationSession) -> None:
        self._session = session
        self._completed = 0
        self._total = 0

    @property
    def completed_steps(self) -> int:
        return self._completed

    @property
    def total_steps(self) -> int:
        return self._total

    def start(self, total_steps: int, *, completed: int = 0, text: str | None = None) -> None:
        if total_steps < 1:
            raise ValueError("total_steps must be at least 1.")
        self._total = total_steps
        self._completed = completed
        self._session.set_progress(completed / total_steps, text)

    def advance(self, text: str | None = None) -> None:
        if not self._total:
            raise RuntimeError("ProgressTracker.start() must be called before advance().")
        self._completed = min(self._completed + 1, self._total)
        self._session.set_progress(self._completed / self._total, text)

    def finish(self, text: str = "Finished") -> None:
        self._completed = self._total
        self._session.set_progress(1.0, text)


__all__ = [
    "CancellationToken",
    "GenerationPhase",
    "GenerationSession",
    "LogEntry",
    "ProgressTracker",
    "SessionSnapshot",
]
