"""
Runtime settings for battlebook generation runs.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields, replace
from enum import Enum
from pathlib import Path
from typing import Any, Mapping

import yaml

from .retry import RetryPolicy

DEFAULT_PLAN_MODEL = "gemini/gemini-2.0-flash-lite"
DEFAULT_IMAGE_MODEL = "google/nano-banana"
DEFAULT_SERVER_URL = "http://localhost:3001"

# Provider ceilings observed for the planning and image models.
PLAN_GENERATION_DELAY_SECONDS = 5.0
IMAGE_GENERATION_DELAY_SECONDS = 15.0


class GenerationMode(str, Enum):
    """
    How far a run goes before returning.
    """

    FULL = "full"
    PLAN_ONLY = "plan-only"
    ASSETS_ONLY = "assets-only"


@dataclass(frozen=True)
class GenerationSettings:
    """
    Configuration knobs shared by the planner, the asset/frame stages, the cache and the HTTP layer.

    Attributes
    ----------
    plan_model:
        LiteLLM model identifier used for the three structured planning calls.
    plan_api_key:
        API key forwarded to LiteLLM. ``None`` lets LiteLLM read its own environment.
    image_model:
        Replicate model used for text-to-image generation.
    edit_model:
        Replicate model used for image edits. Defaults to ``image_model``.
    replicate_api_token:
        Replicate API token.
    cache_dir:
        Directory holding cached stories, stored images and debug logs.
    generation_mode:
        Whether to stop after the plan, after the base assets, or run to completion.
    plan_stage_delay_seconds:
        Pause between the planning stages.
    image_call_delay_seconds:
        Pause after every image generation or edit call.
    retry_attempts / retry_delay_seconds:
        Parameters of the retry policy applied to network calls.
    maps_stage_context:
        When True, the maps stage also receives the battle name and summary from the first stage.
    style_guide_path:
        Optional static cartography style guide. When absent, one is generated.
    server_url:
        Base URL used by the HTTP client.
    request_timeout:
        Timeout in seconds for HTTP requests and image downloads.
    """

    plan_model: str = DEFAULT_PLAN_MODEL
    plan_api_key: str | None = None
    image_model: str = DEFAULT_IMAGE_MODEL
    edit_model: str | None = None
    replicate_api_token: str | None = None
    cache_dir: Path = Path("tmp")
    generation_mode: GenerationMode = GenerationMode.FULL
    plan_stage_delay_seconds: float = PLAN_GENERATION_DELAY_SECONDS
    image_call_delay_seconds: float = IMAGE_GENERATION_DELAY_SECONDS
    retry_attempts: int = 3
    retry_delay_seconds: float = 5.0
    maps_stage_context: bool = False
    style_guide_path: Path | None = None
    server_url: str = DEFAULT_SERVER_URL
    request_timeout: float = 120.0

    @property
    def resolved_edit_model(self) -> str:
        return self.edit_model or self.image_model

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.retry_attempts,
            delay_seconds=self.retry_delay_seconds,
        )

    @classmethod
    def from_env(cls) -> "GenerationSettings":
        """
        Resolve settings from environment variables, falling back to defaults.
        """
        style_guide = os.getenv("BATTLEBOOK_STYLE_GUIDE")
        return cls(
            plan_model=(
                os.getenv("BATTLEBOOK_PLAN_MODEL")
                or os.getenv("LITELLM_MODEL")
                or DEFAULT_PLAN_MODEL
            ),
            plan_api_key=(
                os.getenv("BATTLEBOOK_PLAN_API_KEY")
                or os.getenv("GEMINI_API_KEY")
                or os.getenv("LITELLM_API_KEY")
            ),
            image_model=os.getenv("BATTLEBOOK_IMAGE_MODEL") or os.getenv("REPLICATE_MODEL") or DEFAULT_IMAGE_MODEL,
            edit_model=os.getenv("BATTLEBOOK_EDIT_MODEL") or None,
            replicate_api_token=os.getenv("REPLICATE_API_TOKEN"),
            cache_dir=Path(os.getenv("BATTLEBOOK_CACHE_DIR", "tmp")),
            generation_mode=GenerationMode(os.getenv("BATTLEBOOK_GENERATION_MODE", "full")),
            maps_stage_context=_env_flag("BATTLEBOOK_MAPS_STAGE_CONTEXT"),
            style_guide_path=Path(style_guide) if style_guide else None,
            server_url=os.getenv("BATTLEBOOK_SERVER_URL") or DEFAULT_SERVER_URL,
        )

    @classmethod
    def from_mapping(
        cls,
        data: Mapping[str, Any],
        *,
        base: "GenerationSettings | None" = None,
    ) -> "GenerationSettings":
        """
        Apply a mapping of overrides (e.g., parsed YAML) on top of ``base``.
        """
        known = {field.name for field in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown settings keys: {', '.join(unknown)}.")

        overrides: dict[str, Any] = dict(data)
        if "cache_dir" in overrides:
            overrides["cache_dir"] = Path(overrides["cache_dir"])
        if overrides.get("style_guide_path") is not None:
            overrides["style_guide_path"] = Path(overrides["style_guide_path"])
        if "generation_mode" in overrides:
            overrides["generation_mode"] = GenerationMode(overrides["generation_mode"])

        return replace(base or cls(), **overrides)

    @classmethod
    def from_yaml(cls, path: Path | str) -> "GenerationSettings":
        """
        Load overrides from a YAML file on top of the environment-derived settings.
        """
        data = yaml.safe_load(Path(path).read_text(encoding="utf-8")) or {}
        if not isinstance(data, Mapping):
            raise ValueError("Settings YAML must deserialize to a mapping.")
        return cls.from_mapping(data, base=cls.from_env())


def _env_flag(name: str) -> bool:
    return os.getenv(name, "").strip().lower() in {"1", "true", "yes", "on"}


__all__ = [
    "GenerationMode",
    "GenerationSettings",
    "IMAGE_GENERATION_DELAY_SECONDS",
    "PLAN_GENERATION_DELAY_SECONDS",
]
