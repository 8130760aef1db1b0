"""
Storyboard page composition as a chain of image edits on top of a base map.
"""

from __future__ import annotations

import logging
from typing import Mapping

from battlebook.ai_generation.prompting import (
    ImagePrompt,
    build_label_prompt,
    build_movement_prompt,
    build_placement_prompt,
)
from battlebook.common.asset import GeneratedAsset
from battlebook.common.errors import AssetNotFoundError
from battlebook.planning.plan import BattlePlan, StoryboardFrame

from .state import GenerationSession, ProgressTracker
from .steps import ImageService, ImageStepRunner

logger = logging.getLogger(__name__)


class FrameCompositor:
    """
    Builds one composite chain per storyboard page.

    Edits are applied strictly in order (placements, then movements, then
    labels), each taking the previous chain element, or the base map for the
    first edit, as its input image.
    """

    def __init__(
        self,
        image_service: ImageService,
        session: GenerationSession,
        runner: ImageStepRunner,
        *,
        progress: ProgressTracker | None = None,
    ) -> None:
        self._images = image_service
        self._session = session
        self._runner = runner
        self._progress = progress

    def generate_frames(
        self,
        plan: BattlePlan,
        assets: Mapping[str, GeneratedAsset],
    ) -> list[list[GeneratedAsset]]:
        chains: list[list[GeneratedAsset]] = []
        total = len(plan.storyboard)
        for index, frame in enumerate(plan.storyboard):
            self._session.set_progress_text(f"Generating frame {index + 1} of {total}")
            self._session.add_log(f"Compositing page {index + 1} of {total}...")
            chains.append(self._compose(index, frame, assets))
            if self._progress is not None:
                self._progress.advance()
        return chains

    def _compose(
        self,
        index: int,
        frame: StoryboardFrame,
        assets: Mapping[str, GeneratedAsset],
    ) -> list[GeneratedAsset]:
        page = index + 1
        current = assets.get(frame.base_asset)
        if current is None:
            raise AssetNotFoundError(f'Base asset "{frame.base_asset}" not found for page {page}.')

        chain: list[GeneratedAsset] = []
        self._session.update_realtime_frame(index, chain)

        def _apply(caption: str, prompt: ImagePrompt, references: list[GeneratedAsset]) -> None:
            nonlocal current
            base = current
            current = self._runner.run(
                caption,
                lambda: self._images.edit_image(
                    base, prompt, caption=caption, reference_images=references
                ),
            )
            chain.append(current)
            self._session.update_realtime_frame(index, chain)
            self._runner.pause()

        for placement in frame.placements:
            token = assets.get(placement.token_asset_name)
            if token is None:
                raise AssetNotFoundError(
                    f'Token asset "{placement.token_asset_name}" not found for page {page}.'
                )
            self._session.add_log(
                f" -> Placing {placement.amount} {placement.token_asset_name} at {placement.location}"
            )
            _apply(
                f"Page {page} - Place {placement.token_asset_name}",
                build_placement_prompt(placement),
                [token],
            )

        for movement in frame.movements:
            mover = movement.token_asset_name or "movement"
            self._session.add_log(
                f" -> Adding movement arrow for {mover} from {movement.starting_point} to {movement.end_point}"
            )
            _apply(f"Page {page} - Move {mover}", build_movement_prompt(movement), [])

        for label in frame.labels:
            self._session.add_log(f' -> Adding label "{label.text}" at {label.location}')
            _apply(f"Page {page} - Label {label.text}", build_label_prompt(label), [])

        logger.info("Page %d composed with %d edit(s)", page, len(chain))
        return chain


__all__ = ["FrameCompositor"]
