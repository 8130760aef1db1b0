"""
Three-stage battle plan generation via LiteLLM structured output.
"""

from __future__ import annotations

import logging
import os
import time
from typing import Any, Callable

from battlebook.common import CompletionCallable, RetryPolicy, generate_structured
from battlebook.common.errors import PlanValidationError
from battlebook.common.settings import DEFAULT_PLAN_MODEL, PLAN_GENERATION_DELAY_SECONDS

from .plan import BattlePlan, merge_plan_parts, parse_base_part, parse_maps_part
from .prompting import PLAN_STAGES, build_stage_prompt
from .schemas import PLAN_STAGE_SCHEMAS

LogCallback = Callable[[str], None]
Checkpoint = Callable[[], None]

logger = logging.getLogger(__name__)

_STAGE_MESSAGES = {
    "base": " -> Generating battle identification and factions...",
    "maps": " -> Generating map details...",
    "storyboard": " -> Generating storyboard frames...",
}


class PlanGenerator:
    """
    Turns raw battle text into a validated :class:`BattlePlan`.

    The plan is requested in three schema-scoped calls (identification and
    factions, maps, storyboard) separated by a fixed delay. Each stage is
    validated as soon as it returns, and any failing stage aborts the whole plan.
    """

    def __init__(
        self,
        *,
        model: str | None = None,
        api_key: str | None = None,
        completion_fn: CompletionCallable | None = None,
        retry_policy: RetryPolicy | None = None,
        stage_delay_seconds: float = PLAN_GENERATION_DELAY_SECONDS,
        maps_stage_context: bool = False,
        temperature: float | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._model = (
            model
            or os.getenv("BATTLEBOOK_PLAN_MODEL")
            or os.getenv("LITELLM_MODEL")
            or DEFAULT_PLAN_MODEL
        )
        self._api_key = api_key or os.getenv("GEMINI_API_KEY") or os.getenv("LITELLM_API_KEY")
        self._completion_fn = completion_fn
        self._retry_policy = retry_policy or RetryPolicy()
        self._stage_delay_seconds = stage_delay_seconds
        self._maps_stage_context = maps_stage_context
        self._temperature = temperature
        self._sleep = sleep

    @property
    def model(self) -> str:
        """Return the model identifier in use."""
        return self._model

    def generate_plan(
        self,
        input_text: str,
        *,
        log: LogCallback | None = None,
        checkpoint: Checkpoint | None = None,
    ) -> BattlePlan:
        """
        Run the three planning stages and return the validated plan.

        Parameters
        ----------
        input_text:
            Free-text battle description.
        log:
            Receives human-readable progress messages.
        checkpoint:
            Called before every network call; raising from it stops the run.
        """
        if not input_text or not input_text.strip():
            raise PlanValidationError("Input text must not be empty.")

        emit = log or (lambda message: None)
        parts: list[dict[str, Any]] = []
        battle_context: str | None = None

        for index, stage in enumerate(PLAN_STAGES):
            if index:
                self._sleep(self._stage_delay_seconds)
            if checkpoint is not None:
                checkpoint()

            emit(_STAGE_MESSAGES[stage])
            part = self._generate_stage(
                stage,
                input_text,
                battle_context=battle_context if stage == "maps" else None,
            )
            parts.append(part)

            if stage == "base":
                identification, _factions = parse_base_part(part)
                if self._maps_stage_context:
                    battle_context = f"{identification.name}: {identification.narrative_summary}"
            elif stage == "maps":
                parse_maps_part(part)

        plan = BattlePlan.from_mapping(merge_plan_parts(parts))
        emit(f" -> New plan received for '{plan.identification.name}'. Ready for asset generation.")
        return plan

    def _generate_stage(
        self,
        stage: str,
        input_text: str,
        *,
        battle_context: str | None,
    ) -> dict[str, Any]:
        prompt = build_stage_prompt(stage, input_text, battle_context=battle_context)
        logger.info("Requesting plan stage '%s' from %s", stage, self._model)

        def _call() -> dict[str, Any]:
            return generate_structured(
                model=self._model,
                content=prompt.user,
                system_instruction=prompt.system,
                schema=PLAN_STAGE_SCHEMAS[stage],
                schema_name=f"battle_plan_{stage}",
                api_key=self._api_key,
                temperature=self._temperature,
                completion_fn=self._completion_fn,
            )

        return self._retry_policy.run(
            _call,
            description=f"Plan stage '{stage}'",
            sleep=self._sleep,
        )


__all__ = ["PlanGenerator"]
