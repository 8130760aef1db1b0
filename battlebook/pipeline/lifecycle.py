"""
Orchestrates a full battlebook run from input text to a cached, illustrated story.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Any, Callable, TypeVar

from battlebook.ai_generation.replicate_service import ReplicateImageGenerator
from battlebook.common import CompletionCallable
from battlebook.common.errors import GenerationCancelled
from battlebook.common.settings import GenerationMode, GenerationSettings
from battlebook.planning.planner import PlanGenerator
from battlebook.storage.image_store import ImageStore
from battlebook.storage.story import StoredStory
from battlebook.storage.story_cache import StoryCache

from .assets import AssetGenerator
from .frames import FrameCompositor
from .plan_service import LocalPlanService, PlanResult, PlanService, StoryStore
from .state import CancellationToken, GenerationPhase, GenerationSession, ProgressTracker
from .steps import ImageService, ImageStepRunner

ProgressCallback = Callable[[str, dict[str, Any]], None]
T = TypeVar("T")

logger = logging.getLogger(__name__)


class StoryLifecycleManager:
    """
    High-level coordinator that chains planning, base assets and page composition.

    The run moves through ``Planning -> AssetGeneration -> FrameComposition ->
    Complete`` on the injected :class:`GenerationSession`. Any stage failure is
    logged to the session and ends the run in ``Failed``; nothing is cached in
    that case, while partial assets and frames stay visible in the session.
    """

    def __init__(
        self,
        *,
        session: GenerationSession,
        plan_service: PlanService,
        image_service: ImageService,
        story_store: StoryStore,
        settings: GenerationSettings | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._session = session
        self._plan_service = plan_service
        self._image_service = image_service
        self._story_store = story_store
        self._settings = settings or GenerationSettings()
        self._sleep = sleep
        self._token = CancellationToken()

    @classmethod
    def from_settings(
        cls,
        settings: GenerationSettings,
        *,
        session: GenerationSession | None = None,
        completion_fn: CompletionCallable | None = None,
        image_service: ImageService | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> "StoryLifecycleManager":
        """
        Wire the in-process pipeline: LiteLLM planner, Replicate images, file cache.
        """
        cache = StoryCache(settings.cache_dir)
        planner = PlanGenerator(
            model=settings.plan_model,
            api_key=settings.plan_api_key,
            completion_fn=completion_fn,
            retry_policy=settings.retry_policy(),
            stage_delay_seconds=settings.plan_stage_delay_seconds,
            maps_stage_context=settings.maps_stage_context,
            sleep=sleep,
        )
        images = image_service or ReplicateImageGenerator(
            image_store=ImageStore(settings.cache_dir / "images"),
            api_token=settings.replicate_api_token,
            model_identifier=settings.image_model,
            edit_model_identifier=settings.resolved_edit_model,
            request_timeout=settings.request_timeout,
        )
        return cls(
            session=session or GenerationSession(),
            plan_service=LocalPlanService(planner, cache),
            image_service=images,
            story_store=cache,
            settings=settings,
            sleep=sleep,
        )

    @property
    def session(self) -> GenerationSession:
        return self._session

    def generate(
        self,
        input_text: str | None = None,
        *,
        use_placeholder: bool = False,
        mode: GenerationMode | None = None,
        progress_callback: ProgressCallback | None = None,
    ) -> StoredStory | None:
        """
        Run the pipeline and return the resulting story.

        Returns ``None`` when the run failed or was restarted; the reason is in
        the session log and, for failures, in the snapshot's ``error``.
        """
        mode = mode or self._settings.generation_mode
        token = CancellationToken()
        self._token = token
        session = self._session

        session.reset(loading=True)
        session.transition(GenerationPhase.PLANNING)
        self._notify(progress_callback, "run:started", mode=mode.value)

        try:
            return self._run(
                token=token,
                input_text=input_text,
                use_placeholder=use_placeholder,
                mode=mode,
                progress_callback=progress_callback,
            )
        except GenerationCancelled:
            logger.info("Generation run cancelled; results discarded.")
            self._notify(progress_callback, "run:cancelled")
            return None
        except Exception as exc:
            if token.cancelled:
                logger.info("Generation run cancelled while failing: %s", exc)
                return None
            logger.exception("Generation run failed")
            session.add_log(f"Generation failed: {exc}")
            session.fail(str(exc))
            self._notify(progress_callback, "run:failed", error=str(exc))
            return None

    def restart(self) -> None:
        """
        Abandon the current run and return to the idle state.

        In-flight provider calls are not interrupted; their results are dropped
        at the next checkpoint.
        """
        self._token.cancel()
        self._session.reset(loading=False)
        logger.info("Generation session restarted.")

    def _run(
        self,
        *,
        token: CancellationToken,
        input_text: str | None,
        use_placeholder: bool,
        mode: GenerationMode,
        progress_callback: ProgressCallback | None,
    ) -> StoredStory:
        session = self._session
        checkpoint = token.raise_if_cancelled

        result: PlanResult = self._run_step(
            "Plan generation",
            lambda: self._plan_service.request_plan(
                input_text,
                use_placeholder=use_placeholder,
                log=session.add_log,
                checkpoint=checkpoint,
            ),
            token,
        )

        if result.cached and result.story is not None:
            checkpoint()
            session.set_final_story(result.story)
            session.set_progress(1.0, "Finished")
            session.transition(GenerationPhase.COMPLETE)
            session.set_loading(False)
            self._notify(progress_callback, "run:complete", cached=True, story_id=result.story.id)
            return result.story

        plan = result.plan
        if plan is None:
            raise ValueError("Plan service returned neither a plan nor a cached story.")
        checkpoint()

        tracker = ProgressTracker(session)
        tracker.start(
            plan.total_steps,
            completed=1,
            text=f"Plan generated ({len(plan.storyboard)} pages)",
        )
        self._notify(
            progress_callback,
            "plan:ready",
            name=plan.identification.name,
            pages=len(plan.storyboard),
            total_steps=plan.total_steps,
        )

        story = StoredStory(
            id=result.story_hash or datetime.now(timezone.utc).isoformat(),
            name=plan.identification.name,
            plan=plan,
        )

        if mode is GenerationMode.PLAN_ONLY:
            return self._finish_partial(story, tracker, progress_callback)

        runner = ImageStepRunner(
            session,
            retry_policy=self._settings.retry_policy(),
            delay_seconds=self._settings.image_call_delay_seconds,
            sleep=self._sleep,
            checkpoint=checkpoint,
        )

        session.transition(GenerationPhase.ASSET_GENERATION)
        asset_generator = AssetGenerator(
            self._image_service,
            session,
            runner,
            progress=tracker,
            style_guide_path=self._settings.style_guide_path,
        )
        story.assets = self._run_step(
            "Base asset generation",
            lambda: asset_generator.generate_base_assets(plan),
            token,
        )
        self._notify(progress_callback, "assets:ready", count=len(story.assets))

        if mode is GenerationMode.ASSETS_ONLY:
            return self._finish_partial(story, tracker, progress_callback)

        session.transition(GenerationPhase.FRAME_COMPOSITION)
        compositor = FrameCompositor(self._image_service, session, runner, progress=tracker)
        story.frames = self._run_step(
            "Storyboard composition",
            lambda: compositor.generate_frames(plan, story.assets),
            token,
        )
        self._notify(progress_callback, "frames:ready", pages=len(story.frames))

        checkpoint()
        if result.story_hash:
            self._run_step(
                "Cache story",
                lambda: self._story_store.store(result.story_hash, story),
                token,
            )

        session.set_final_story(story)
        tracker.finish()
        session.transition(GenerationPhase.COMPLETE)
        session.set_loading(False)
        self._notify(progress_callback, "run:complete", cached=False, story_id=story.id)
        return story

    def _finish_partial(
        self,
        story: StoredStory,
        tracker: ProgressTracker,
        progress_callback: ProgressCallback | None,
    ) -> StoredStory:
        # Partial stories are returned but never cached.
        self._session.add_log(f"Stopping after {self._session.phase.value}; story not cached.")
        self._session.set_final_story(story)
        tracker.finish()
        self._session.transition(GenerationPhase.COMPLETE)
        self._session.set_loading(False)
        self._notify(progress_callback, "run:complete", cached=False, partial=True, story_id=story.id)
        return story

    def _run_step(self, name: str, operation: Callable[[], T], token: CancellationToken) -> T:
        self._session.add_log(f"[Lifecycle] Starting: {name}...")
        try:
            value = operation()
        except GenerationCancelled:
            raise
        except Exception as exc:
            if not token.cancelled:
                self._session.add_log(f'[Lifecycle] ERROR in step "{name}": {exc}')
            raise
        token.raise_if_cancelled()
        self._session.add_log(f"[Lifecycle] Completed: {name}")
        return value

    @staticmethod
    def _notify(
        callback: ProgressCallback | None,
        stage: str,
        **payload: Any,
    ) -> None:
        if callback is not None:
            callback(stage, payload)


__all__ = ["ProgressCallback", "StoryLifecycleManager"]
