"""
Cache-aware plan requests shared by the in-process pipeline and the HTTP server.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Protocol

from battlebook.common.errors import ClientRequestError
from battlebook.planning.placeholder import BATTLE_PLACEHOLDER
from battlebook.planning.plan import BattlePlan
from battlebook.planning.planner import PlanGenerator
from battlebook.storage.story import StoredStory
from battlebook.storage.story_cache import StoryCache, hash_input_text

LogCallback = Callable[[str], None]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PlanResult:
    """
    Outcome of a plan request: either a cached story or a freshly generated plan.
    """

    story_hash: str
    cached: bool
    plan: BattlePlan | None = None
    story: StoredStory | None = None

    def to_dict(self) -> dict[str, Any]:
        if self.cached and self.story is not None:
            return {"cached": True, "story_hash": self.story_hash, "story": self.story.to_dict()}
        return {
            "cached": False,
            "story_hash": self.story_hash,
            "plan": self.plan.to_dict() if self.plan is not None else None,
        }


class PlanService(Protocol):
    def request_plan(
        self,
        input_text: str | None = None,
        *,
        use_placeholder: bool = False,
        log: LogCallback | None = None,
        checkpoint: Callable[[], None] | None = None,
    ) -> PlanResult:
        ...


class StoryStore(Protocol):
    def store(self, story_hash: str, story: StoredStory) -> Any:
        ...


def resolve_input_text(input_text: str | None, *, use_placeholder: bool) -> str:
    if use_placeholder:
        return BATTLE_PLACEHOLDER
    if input_text is None or not input_text.strip():
        raise ClientRequestError("Input text is required unless use_placeholder is set.", status_code=400)
    return input_text


class LocalPlanService:
    """
    Checks the story cache by input hash and runs the planner only on a miss.
    """

    def __init__(self, planner: PlanGenerator, cache: StoryCache) -> None:
        self._planner = planner
        self._cache = cache

    def request_plan(
        self,
        input_text: str | None = None,
        *,
        use_placeholder: bool = False,
        log: LogCallback | None = None,
        checkpoint: Callable[[], None] | None = None,
    ) -> PlanResult:
        emit = log or (lambda message: None)
        text = resolve_input_text(input_text, use_placeholder=use_placeholder)
        story_hash = hash_input_text(text)

        cached = self._cache.lookup(story_hash)
        if cached is not None:
            emit(f"[Cache] Hit for story hash: {story_hash}")
            emit(" -> Found cached story. Skipping generation.")
            return PlanResult(story_hash=story_hash, cached=True, story=cached)

        emit(f"[Cache] Miss for story hash: {story_hash}. Generating new plan.")
        plan = self._planner.generate_plan(text, log=emit, checkpoint=checkpoint)
        return PlanResult(story_hash=story_hash, cached=False, plan=plan)


__all__ = [
    "LocalPlanService",
    "PlanResult",
    "PlanService",
    "StoryStore",
    "resolve_input_text",
]
