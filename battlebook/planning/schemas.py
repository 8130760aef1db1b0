"""
JSON schemas constraining the three planning stages.
"""

from __future__ import annotations

from typing import Any

TOKEN_DESCRIPTION_TEMPLATE = (
    "An illustration of a simple, faceless, wooden peg-like figure in an A-pose, suitable for a "
    "board game. The figure has a [token_feature]. The style MUST be suitable for a children's "
    "history textbook and sketched completely in a solid [token_color] color pencil with a dark "
    "gray outline around the figure. It stands on a plain white background."
)

BASE_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "battle_identification": {
            "type": "object",
            "description": "Core details identifying the battle.",
            "properties": {
                "name": {
                    "type": "string",
                    "description": "MUST be the official or common name of the battle.",
                },
                "context": {
                    "type": "string",
                    "description": (
                        "MUST be a single sentence describing the important context of the battle "
                        "in history suitable for a children's history book."
                    ),
                },
                "narrative_summary": {
                    "type": "string",
                    "description": (
                        "MUST be a 1-3 sentence summary of the battle answering WHO was involved, "
                        "WHERE the battle was, and the final RESULT suitable for a children's history book."
                    ),
                },
            },
            "required": ["name", "context", "narrative_summary"],
        },
        "factions": {
            "type": "array",
            "description": "MUST be an array of the factions involved in the battle.",
            "items": {
                "type": "object",
                "properties": {
                    "name": {"type": "string", "description": "The name of the faction."},
                    "token_color": {
                        "type": "string",
                        "description": (
                            "MUST be the representative color of the faction's pieces as a single "
                            "lowercase word (e.g., 'red', 'blue')."
                        ),
                    },
                    "token_asset_name": {
                        "type": "string",
                        "description": (
                            "MUST be the asset name for this faction's game piece, in the format "
                            "'token_[color]' where [color] is the value of token_color (e.g., 'token_red')."
                        ),
                        "pattern": "^token_[a-z]+$",
                    },
                    "token_feature": {
                        "type": "string",
                        "description": (
                            "MUST be a single distinctive feature that can be integrated into the token's "
                            "silhouette to represent the faction (e.g., 'Hardee hat' for Union, "
                            "'slouch hat' for Confederate)."
                        ),
                    },
                    "token_description": {
                        "type": "string",
                        "description": (
                            "MUST be a detailed prompt for generating the token image. It MUST be the "
                            "following string, with [token_feature] and [token_color] replaced with the "
                            f'values you have determined for this faction: "{TOKEN_DESCRIPTION_TEMPLATE}"'
                        ),
                    },
                },
                "required": [
                    "name",
                    "token_color",
                    "token_asset_name",
                    "token_feature",
                    "token_description",
                ],
            },
        },
    },
    "required": ["battle_identification", "factions"],
}

MAPS_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "maps": {
            "type": "array",
            "description": (
                "MUST be an array of maps for the battle. A 'tactical' map is required. "
                "A 'regional' map is optional but recommended for context."
            ),
            "items": {
                "type": "object",
                "properties": {
                    "map_type": {
                        "type": "string",
                        "enum": ["tactical", "regional"],
                        "description": "The type of map ('tactical' or 'regional').",
                    },
                    "defining_features_description": {
                        "type": "string",
                        "description": (
                            "A description of the main topographical features. MUST describe placement "
                            "using simple directional terms relative to the canvas (e.g., 'a long ridge "
                            "running from the top to the bottom in the center of the image'). MUST NOT "
                            "contain any text, labels, or names intended to be drawn on the map itself."
                        ),
                    },
                    "key_landmarks_description": {
                        "type": "string",
                        "description": (
                            "A description of specific landmarks. MUST only describe WHAT to draw and "
                            "WHERE to draw it on the canvas (e.g., 'a small orchard of peach trees in the "
                            "center of the image'). MUST NOT include historical context or any text, "
                            "labels, or names intended to be drawn on the map itself."
                        ),
                    },
                    "map_asset_name": {
                        "type": "string",
                        "description": (
                            "MUST be the asset name for this map, in the format '[map_type]_map' where "
                            "[map_type] is the value of map_type (e.g., 'tactical_map')."
                        ),
                        "pattern": "^(tactical|regional)_map$",
                    },
                },
                "required": [
                    "map_type",
                    "map_asset_name",
                    "defining_features_description",
                    "key_landmarks_description",
                ],
            },
        },
    },
    "required": ["maps"],
}

_PLACEMENT_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "token_asset_name": {
            "type": "string",
            "description": "The asset name of the faction to place (e.g., 'token_blue').",
        },
        "location": {
            "type": "string",
            "description": (
                "The location on the image canvas to place the tokens. MUST use image-relative terms "
                "(e.g., 'left side of the image', 'near the bottom center'). MUST NOT use geopolitical names."
            ),
        },
        "amount": {
            "type": "integer",
            "minimum": 3,
            "maximum": 10,
            "description": (
                "A small, representative number of tokens to place (between 3 and 10), reflecting "
                "the scale of the force described in the text."
            ),
        },
        "density": {
            "type": "string",
            "description": (
                "A brief description of the token arrangement and posture, like 'densely packed in "
                "an attacking formation' or 'scattered in a defensive line'."
            ),
        },
    },
    "required": ["token_asset_name", "location", "amount", "density"],
}

_MOVEMENT_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "token_asset_name": {
            "type": "string",
            "description": "The asset name of the faction that is moving (e.g., 'token_blue').",
        },
        "starting_point": {
            "type": "string",
            "description": "The starting location of the movement. MUST originate from under the tokens being moved.",
        },
        "end_point": {"type": "string", "description": "The ending location of the movement."},
        "movement_type": {
            "type": "string",
            "description": (
                "A description of the movement's path and intent, e.g., 'a direct charge' or "
                "'a curved flanking maneuver'."
            ),
        },
    },
    "required": ["token_asset_name", "starting_point", "end_point", "movement_type"],
}

_LABEL_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "text": {"type": "string", "description": "The text of the label (e.g., 'Culp's Hill')."},
        "location": {"type": "string", "description": "The location on the map to place the text."},
        "context": {
            "type": "string",
            "description": (
                "Why this text is important for understanding this frame's intent. "
                "If not essential, do not include the label."
            ),
        },
    },
    "required": ["text", "location", "context"],
}

STORYBOARD_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "storyboard": {
            "type": "array",
            "description": (
                "MUST be a sequence of events that make up the battle's narrative, told as a visual "
                "story. Each frame should represent a key event as it begins to unfold, focusing on "
                "action and its outcome."
            ),
            "items": {
                "type": "object",
                "properties": {
                    "frame": {
                        "type": "integer",
                        "description": "The sequential order number for this storyboard frame.",
                    },
                    "description": {
                        "type": "string",
                        "description": "MUST be a description of the action occurring in this frame.",
                    },
                    "base_asset": {
                        "type": "string",
                        "description": "MUST be the base map asset for this frame, either 'tactical_map' or 'regional_map'.",
                    },
                    "placements": {
                        "type": "array",
                        "description": "MUST be an array of token placements for this frame.",
                        "items": _PLACEMENT_SCHEMA,
                    },
                    "movements": {
                        "type": "array",
                        "description": "MUST be an array of token movements for this frame.",
                        "items": _MOVEMENT_SCHEMA,
                    },
                    "labels": {
                        "type": "array",
                        "description": (
                            "MUST be an array of text labels to add to the map for this frame. Only add "
                            "labels that are essential for understanding the frame's intent."
                        ),
                        "items": _LABEL_SCHEMA,
                    },
                    "source_text": {
                        "type": "string",
                        "description": "MUST be the original text or source material this frame is based on.",
                    },
                },
                "required": ["frame", "description", "base_asset", "source_text"],
            },
        },
    },
    "required": ["storyboard"],
}

PLAN_STAGE_SCHEMAS: dict[str, dict[str, Any]] = {
    "base": BASE_SCHEMA,
    "maps": MAPS_SCHEMA,
    "storyboard": STORYBOARD_SCHEMA,
}

__all__ = [
    "BASE_SCHEMA",
    "MAPS_SCHEMA",
    "PLAN_STAGE_SCHEMAS",
    "STORYBOARD_SCHEMA",
    "TOKEN_DESCRIPTION_TEMPLATE",
]
