"""
Named image-instruction templates and the builders that fill them from plan entities.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Mapping

from battlebook.planning.plan import (
    Faction,
    Label,
    MapSpec,
    Movement,
    Placement,
    color_from_token_asset_name,
)

DEFAULT_ARROW_COLOR = "black"

_STYLE_STEP = (
    "Step 1: Analyze the provided style reference image to understand the cartographic style{extra}. "
    "The style is for a children's history book, so it must be simple, clear, and not overly detailed."
)

PROMPT_TEMPLATES: dict[str, str] = {
    "base.neutral_background": (
        "A top-down, flat-lay view of a simple, neutral, light-colored textured background. The texture "
        "should resemble clean, plain parchment or canvas, suitable for a children's history book "
        "illustration. The image must be a flat texture only, with no defined edges, borders, or map-like "
        "features. It must be very simple and uncluttered."
    ),
    "base.style_guide": (
        "A cartography style reference sheet for a children's history book. Show small, simple, "
        "hand-drawn color pencil samples of a forest, a river, a hill, a ridge, a road, a farm field, "
        "a town, and a stone wall, arranged in a loose grid on plain parchment. Soft muted colors, "
        "gentle dark gray outlines, generalized almost iconic shapes. No text, labels, or legends."
    ),
    "map.features": "\n".join(
        (
            _STYLE_STEP.format(extra=" for features like forests, rivers, and hills"),
            'Step 2: Using the provided base image as a canvas, draw only the topographical features '
            'described: "{{description}}". The features should be drawn in a generalized, almost iconic '
            "way, not a realistic or tactical military map style.",
            "The final image must only contain the newly drawn features on the original background. All "
            "other elements must remain unchanged. The drawing must be free of any text, labels, or icons. "
            "The result should be clean and uncluttered.",
        )
    ),
    "map.landmarks": "\n".join(
        (
            _STYLE_STEP.format(extra=""),
            'Step 2: Using the provided map as a canvas, add only the key landmarks described: '
            '"{{description}}". The landmarks should be simple icons or shapes, not detailed drawings.',
            "The final image must only contain the newly added landmarks, with all other map elements "
            "preserved. The drawing must be free of any text, labels, or icons. The result should be "
            "clean and uncluttered.",
        )
    ),
    "storyboard.placement": (
        "Using the current map, add {{amount}} instances of the {{assetName}} asset at the location of "
        "{{location}}, arranged as {{density}}. The placement should be clear and not overcrowd the map. "
        "The goal is to show a general location, not precise military formation. Keep all other "
        "elements unchanged."
    ),
    "storyboard.movement": (
        "Using the current map, draw a simple, clean, low-opacity (around 20%) {{color}} arrow starting "
        "from the area of {{start}}, representing a {{type}}, and pointing towards the area of {{end}}. "
        "The arrow should clearly indicate direction without cluttering the map. Keep all other elements "
        "unchanged."
    ),
    "storyboard.label": (
        'Using the current map, add the text "{{text}}" to the feature known as {{location}}. Use a '
        "clean, bold, black sans-serif font. The label must be legible, placed thoughtfully to not obscure "
        "important details, and help in understanding the map, not cluttering it. Keep all other elements "
        "unchanged."
    ),
}

_PLACEHOLDER = re.compile(r"\{\{(\w+)\}\}")


@dataclass(frozen=True)
class ImagePrompt:
    """An instruction sent to the image model, tagged with the template it came from."""

    instruction_key: str
    text: str


def fill_prompt_template(template: str, values: Mapping[str, object]) -> str:
    """
    Substitute ``{{key}}`` placeholders in ``template``.

    Every placeholder present in the template must have a value.
    """
    missing = sorted({name for name in _PLACEHOLDER.findall(template) if name not in values})
    if missing:
        raise ValueError(f"Missing values for template placeholders: {', '.join(missing)}.")
    return _PLACEHOLDER.sub(lambda match: str(values[match.group(1)]), template)


def _render(instruction_key: str, **values: object) -> ImagePrompt:
    return ImagePrompt(
        instruction_key=instruction_key,
        text=fill_prompt_template(PROMPT_TEMPLATES[instruction_key], values),
    )


def build_background_prompt() -> ImagePrompt:
    return _render("base.neutral_background")


def build_style_guide_prompt() -> ImagePrompt:
    return _render("base.style_guide")


def build_token_prompt(faction: Faction) -> ImagePrompt:
    # The planner already returns a complete prompt for each token.
    return ImagePrompt(instruction_key="faction.token", text=faction.token_description)


def build_map_features_prompt(map_spec: MapSpec) -> ImagePrompt:
    return _render("map.features", description=map_spec.defining_features_description)


def build_map_landmarks_prompt(map_spec: MapSpec) -> ImagePrompt:
    return _render("map.landmarks", description=map_spec.key_landmarks_description)


def build_placement_prompt(placement: Placement) -> ImagePrompt:
    return _render(
        "storyboard.placement",
        amount=placement.amount,
        assetName=placement.token_asset_name,
        location=placement.location,
        density=placement.density,
    )


def build_movement_prompt(movement: Movement) -> ImagePrompt:
    """
    Arrow color follows the moving faction's token color, or black when no faction is named.
    """
    color = (
        color_from_token_asset_name(movement.token_asset_name)
        if movement.token_asset_name
        else DEFAULT_ARROW_COLOR
    )
    return _render(
        "storyboard.movement",
        color=color,
        start=movement.starting_point,
        type=movement.movement_type,
        end=movement.end_point,
    )


def build_label_prompt(label: Label) -> ImagePrompt:
    return _render("storyboard.label", text=label.text, location=label.location)


__all__ = [
    "DEFAULT_ARROW_COLOR",
    "ImagePrompt",
    "PROMPT_TEMPLATES",
    "build_background_prompt",
    "build_label_prompt",
    "build_map_features_prompt",
    "build_map_landmarks_prompt",
    "build_movement_prompt",
    "build_placement_prompt",
    "build_style_guide_prompt",
    "build_token_prompt",
    "fill_prompt_template",
]
