"""
Base asset generation: background, style guide, layered maps and faction tokens.
"""

from __future__ import annotations

import logging
from pathlib import Path

from battlebook.ai_generation.prompting import (
    build_background_prompt,
    build_map_features_prompt,
    build_map_landmarks_prompt,
    build_style_guide_prompt,
    build_token_prompt,
)
from battlebook.common.asset import GeneratedAsset
from battlebook.common.errors import AssetNotFoundError
from battlebook.common.files import guess_mime_type
from battlebook.planning.plan import BattlePlan

from .state import GenerationSession, ProgressTracker
from .steps import ImageService, ImageStepRunner

BACKGROUND_ASSET_NAME = "neutral_background"
STYLE_GUIDE_ASSET_NAME = "style_guide"

logger = logging.getLogger(__name__)


class AssetGenerator:
    """
    Produces the named base assets a plan needs before any page can be composed.

    Maps are built in two edits on top of a shared neutral background, features
    first and landmarks second, both guided by the cartography style guide.
    Each faction token is generated directly from its prompt.
    """

    def __init__(
        self,
        image_service: ImageService,
        session: GenerationSession,
        runner: ImageStepRunner,
        *,
        progress: ProgressTracker | None = None,
        style_guide_path: Path | str | None = None,
    ) -> None:
        self._images = image_service
        self._session = session
        self._runner = runner
        self._progress = progress
        self._style_guide_path = Path(style_guide_path) if style_guide_path else None

    def generate_base_assets(self, plan: BattlePlan) -> dict[str, GeneratedAsset]:
        """
        Generate every map and token asset of ``plan``, keyed by asset name.
        """
        assets: dict[str, GeneratedAsset] = {}
        total = len(plan.factions) + 2 * len(plan.maps)
        counter = 0

        background = self._runner.run(
            "Neutral Background",
            lambda: self._images.generate_image(build_background_prompt(), caption="Neutral Background"),
        )
        self._session.add_realtime_asset(BACKGROUND_ASSET_NAME, background)
        self._runner.pause()

        style_guide = self._style_guide()
        self._session.add_realtime_asset(STYLE_GUIDE_ASSET_NAME, style_guide)

        for map_spec in plan.maps:
            title = map_spec.map_type.capitalize()
            self._session.add_log(f"Generating {map_spec.map_type} map...")

            counter += 1
            self._session.set_progress_text(f"Generating asset {counter} of {total}")
            features_caption = f"{title} Map - Features"
            features = self._runner.run(
                features_caption,
                lambda: self._images.edit_image(
                    background,
                    build_map_features_prompt(map_spec),
                    caption=features_caption,
                    reference_images=[style_guide],
                ),
            )
            self._session.add_realtime_asset(map_spec.features_asset_name, features)
            self._advance()
            self._runner.pause()

            counter += 1
            self._session.set_progress_text(f"Generating asset {counter} of {total}")
            landmarks_caption = f"{title} Map (Base Asset)"
            landmarks = self._runner.run(
                landmarks_caption,
                lambda: self._images.edit_image(
                    features,
                    build_map_landmarks_prompt(map_spec),
                    caption=landmarks_caption,
                    reference_images=[style_guide],
                ),
            )
            assets[map_spec.map_asset_name] = landmarks
            self._session.add_realtime_asset(map_spec.map_asset_name, landmarks)
            self._advance()
            self._runner.pause()

        for faction in plan.factions:
            counter += 1
            self._session.set_progress_text(f"Generating asset {counter} of {total}")
            self._session.add_log(f"Generating token for {faction.name} ({faction.token_color})...")
            caption = f"{faction.name} Token (Base Asset)"
            token = self._runner.run(
                caption,
                lambda: self._images.generate_image(build_token_prompt(faction), caption=caption),
            )
            assets[faction.token_asset_name] = token
            self._session.add_realtime_asset(faction.token_asset_name, token)
            self._advance()
            self._runner.pause()

        logger.info("Generated %d base assets for '%s'", len(assets), plan.identification.name)
        return assets

    def _style_guide(self) -> GeneratedAsset:
        if self._style_guide_path is not None:
            path = self._style_guide_path
            if not path.is_file():
                raise AssetNotFoundError(f"Style guide image '{path}' not found.")
            self._session.add_log(f"Loading style guide from {path.name}...")
            return self._runner.run(
                "Cartography Style Guide",
                lambda: self._images.upload_file(
                    path.read_bytes(),
                    guess_mime_type(path, default="image/jpeg"),
                    display_name="cartography_style_guide",
                ),
            )

        style_guide = self._runner.run(
            "Cartography Style Guide",
            lambda: self._images.generate_image(
                build_style_guide_prompt(), caption="Cartography Style Guide"
            ),
        )
        self._runner.pause()
        return style_guide

    def _advance(self) -> None:
        if self._progress is not None:
            self._progress.advance()


__all__ = ["AssetGenerator", "BACKGROUND_ASSET_NAME", "STYLE_GUIDE_ASSET_NAME"]
