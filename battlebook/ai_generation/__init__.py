"""
Image generation for battle maps, faction tokens and storyboard edits.
"""

from battlebook.common.asset import GeneratedAsset

from .prompting import PROMPT_TEMPLATES, ImagePrompt, fill_prompt_template
from .replicate_service import ReplicateImageGenerator, normalize_image_outputs

__all__ = [
    "GeneratedAsset",
    "ImagePrompt",
    "PROMPT_TEMPLATES",
    "ReplicateImageGenerator",
    "fill_prompt_template",
    "normalize_image_outputs",
]
