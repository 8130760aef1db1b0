"""
Structured representation of a battle plan: identification, factions, maps and storyboard.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Sequence

from battlebook.common.errors import PlanValidationError

MAP_TYPES: tuple[str, ...] = ("tactical", "regional")
MIN_PLACEMENT_AMOUNT = 3
MAX_PLACEMENT_AMOUNT = 10

_COLOR_PATTERN = re.compile(r"^[a-z]+$")


def derive_token_asset_name(color: str) -> str:
    """Return the asset name of a faction token for ``color``."""
    return f"token_{color}"


def derive_map_asset_name(map_type: str) -> str:
    """Return the asset name of a base map for ``map_type``."""
    return f"{map_type}_map"


def color_from_token_asset_name(asset_name: str) -> str:
    prefix = "token_"
    if not asset_name.startswith(prefix) or len(asset_name) == len(prefix):
        raise PlanValidationError(f"'{asset_name}' is not a token asset name.")
    return asset_name[len(prefix):]


def _require_str(data: Mapping[str, Any], key: str, where: str, *, allow_empty: bool = False) -> str:
    if key not in data or data[key] is None:
        raise PlanValidationError(f"{where} is missing required field '{key}'.")
    value = data[key]
    if not isinstance(value, str):
        raise PlanValidationError(f"{where} field '{key}' must be a string.")
    text = value.strip()
    if not text and not allow_empty:
        raise PlanValidationError(f"{where} field '{key}' must not be empty.")
    return text


def _require_int(data: Mapping[str, Any], key: str, where: str) -> int:
    if key not in data or data[key] is None:
        raise PlanValidationError(f"{where} is missing required field '{key}'.")
    value = data[key]
    if isinstance(value, bool):
        raise PlanValidationError(f"{where} field '{key}' must be a number.")
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if not isinstance(value, int):
        raise PlanValidationError(f"{where} field '{key}' must be a whole number, got {value!r}.")
    return value


def _optional_list(data: Mapping[str, Any], key: str, where: str) -> Sequence[Any]:
    value = data.get(key)
    if value is None:
        return ()
    if isinstance(value, (str, bytes)) or not isinstance(value, Sequence):
        raise PlanValidationError(f"{where} field '{key}' must be a list.")
    return value


def _require_mapping(value: Any, where: str) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise PlanValidationError(f"{where} must be an object.")
    return value


@dataclass(frozen=True)
class BattleIdentification:
    name: str
    context: str
    narrative_summary: str

    @classmethod
    def from_mapping(cls, data: Any) -> "BattleIdentification":
        where = "battle_identification"
        data = _require_mapping(data, where)
        return cls(
            name=_require_str(data, "name", where),
            context=_require_str(data, "context", where),
            narrative_summary=_require_str(data, "narrative_summary", where),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "context": self.context,
            "narrative_summary": self.narrative_summary,
        }


@dataclass(frozen=True)
class Faction:
    """
    One side of the battle and the token that stands in for it on the maps.

    Attributes
    ----------
    name:
        Faction name as it appears in the source text.
    token_color:
        Single lowercase color word, unique across the plan.
    token_feature:
        Distinctive silhouette feature (e.g., a hat) drawn on the token.
    token_description:
        Complete image-generation prompt for the token.
    """

    name: str
    token_color: str
    token_feature: str
    token_description: str

    @property
    def token_asset_name(self) -> str:
        return derive_token_asset_name(self.token_color)

    @classmethod
    def from_mapping(cls, data: Any, *, index: int = 0) -> "Faction":
        where = f"factions[{index}]"
        data = _require_mapping(data, where)
        color = _require_str(data, "token_color", where).lower()
        if not _COLOR_PATTERN.match(color):
            raise PlanValidationError(
                f"{where} token_color must be a single lowercase word, got '{color}'."
            )

        declared = data.get("token_asset_name")
        expected = derive_token_asset_name(color)
        if declared is not None and str(declared).strip() != expected:
            raise PlanValidationError(
                f"{where} token_asset_name '{declared}' does not match its color (expected '{expected}')."
            )

        return cls(
            name=_require_str(data, "name", where),
            token_color=color,
            token_feature=_require_str(data, "token_feature", where),
            token_description=_require_str(data, "token_description", where),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "token_color": self.token_color,
            "token_asset_name": self.token_asset_name,
            "token_feature": self.token_feature,
            "token_description": self.token_description,
        }


@dataclass(frozen=True)
class MapSpec:
    map_type: str
    defining_features_description: str
    key_landmarks_description: str

    @property
    def map_asset_name(self) -> str:
        return derive_map_asset_name(self.map_type)

    @property
    def features_asset_name(self) -> str:
        return f"{self.map_asset_name}_features"

    @classmethod
    def from_mapping(cls, data: Any, *, index: int = 0) -> "MapSpec":
        where = f"maps[{index}]"
        data = _require_mapping(data, where)
        map_type = _require_str(data, "map_type", where).lower()
        if map_type not in MAP_TYPES:
            raise PlanValidationError(
                f"{where} map_type must be one of {', '.join(MAP_TYPES)}, got '{map_type}'."
            )

        declared = data.get("map_asset_name")
        expected = derive_map_asset_name(map_type)
        if declared is not None and str(declared).strip() != expected:
            raise PlanValidationError(
                f"{where} map_asset_name '{declared}' does not match its type (expected '{expected}')."
            )

        return cls(
            map_type=map_type,
            defining_features_description=_require_str(data, "defining_features_description", where),
            key_landmarks_description=_require_str(data, "key_landmarks_description", where),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "map_type": self.map_type,
            "defining_features_description": self.defining_features_description,
            "key_landmarks_description": self.key_landmarks_description,
            "map_asset_name": self.map_asset_name,
        }


@dataclass(frozen=True)
class Placement:
    token_asset_name: str
    location: str
    amount: int
    density: str

    @classmethod
    def from_mapping(cls, data: Any, *, where: str) -> "Placement":
        data = _require_mapping(data, where)
        amount = _require_int(data, "amount", where)
        if not MIN_PLACEMENT_AMOUNT <= amount <= MAX_PLACEMENT_AMOUNT:
            raise PlanValidationError(
                f"{where} amount must be between {MIN_PLACEMENT_AMOUNT} and {MAX_PLACEMENT_AMOUNT}, got {amount}."
            )
        return cls(
            token_asset_name=_require_str(data, "token_asset_name", where),
            location=_require_str(data, "location", where),
            amount=amount,
            density=_require_str(data, "density", where),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "token_asset_name": self.token_asset_name,
            "location": self.location,
            "amount": self.amount,
            "density": self.density,
        }


@dataclass(frozen=True)
class Movement:
    starting_point: str
    end_point: str
    movement_type: str
    token_asset_name: str | None = None

    @classmethod
    def from_mapping(cls, data: Any, *, where: str) -> "Movement":
        data = _require_mapping(data, where)
        token = data.get("token_asset_name")
        return cls(
            starting_point=_require_str(data, "starting_point", where),
            end_point=_require_str(data, "end_point", where),
            movement_type=_require_str(data, "movement_type", where),
            token_asset_name=(str(token).strip() or None) if token is not None else None,
        )

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "starting_point": self.starting_point,
            "end_point": self.end_point,
            "movement_type": self.movement_type,
        }
        if self.token_asset_name is not None:
            payload["token_asset_name"] = self.token_asset_name
        return payload


@dataclass(frozen=True)
class Label:
    text: str
    location: str
    context: str

    @classmethod
    def from_mapping(cls, data: Any, *, where: str) -> "Label":
        data = _require_mapping(data, where)
        return cls(
            text=_require_str(data, "text", where).strip('"'),
            location=_require_str(data, "location", where),
            context=_require_str(data, "context", where),
        )

    def to_dict(self) -> dict[str, Any]:
        return {"text": self.text, "location": self.location, "context": self.context}


@dataclass(frozen=True)
class StoryboardFrame:
    """
    One storyboard page: a base map plus the edits that tell its part of the story.
    """

    frame: int
    description: str
    base_asset: str
    source_text: str
    placements: tuple[Placement, ...] = ()
    movements: tuple[Movement, ...] = ()
    labels: tuple[Label, ...] = ()

    @property
    def edit_count(self) -> int:
        return len(self.placements) + len(self.movements) + len(self.labels)

    @classmethod
    def from_mapping(cls, data: Any, *, index: int = 0) -> "StoryboardFrame":
        where = f"storyboard[{index}]"
        data = _require_mapping(data, where)
        return cls(
            frame=_require_int(data, "frame", where),
            description=_require_str(data, "description", where),
            base_asset=_require_str(data, "base_asset", where),
            source_text=_require_str(data, "source_text", where, allow_empty=True),
            placements=tuple(
                Placement.from_mapping(item, where=f"{where}.placements[{i}]")
                for i, item in enumerate(_optional_list(data, "placements", where))
            ),
            movements=tuple(
                Movement.from_mapping(item, where=f"{where}.movements[{i}]")
                for i, item in enumerate(_optional_list(data, "movements", where))
            ),
            labels=tuple(
                Label.from_mapping(item, where=f"{where}.labels[{i}]")
                for i, item in enumerate(_optional_list(data, "labels", where))
            ),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "frame": self.frame,
            "description": self.description,
            "base_asset": self.base_asset,
            "placements": [placement.to_dict() for placement in self.placements],
            "movements": [movement.to_dict() for movement in self.movements],
            "labels": [label.to_dict() for label in self.labels],
            "source_text": self.source_text,
        }


@dataclass(frozen=True)
class BattlePlan:
    """
    Root planning artifact produced by the three planning stages.

    Construction through :meth:`from_mapping` checks the cross-references:
    token colors are unique, exactly one tactical map exists, every frame's
    ``base_asset`` names a planned map and every placement names a faction token.
    """

    identification: BattleIdentification
    factions: tuple[Faction, ...]
    maps: tuple[MapSpec, ...]
    storyboard: tuple[StoryboardFrame, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        self._validate()

    @property
    def token_asset_names(self) -> tuple[str, ...]:
        return tuple(faction.token_asset_name for faction in self.factions)

    @property
    def map_asset_names(self) -> tuple[str, ...]:
        return tuple(map_spec.map_asset_name for map_spec in self.maps)

    @property
    def total_steps(self) -> int:
        """Progress steps for a full run: the plan, each token, two layers per map, each frame."""
        return 1 + len(self.factions) + 2 * len(self.maps) + len(self.storyboard)

    def faction_for_token(self, asset_name: str) -> Faction | None:
        for faction in self.factions:
            if faction.token_asset_name == asset_name:
                return faction
        return None

    def _validate(self) -> None:
        _check_token_colors(self.factions)
        _check_map_types(self.maps)

        map_names = set(self.map_asset_names)
        token_names = set(self.token_asset_names)
        for index, frame in enumerate(self.storyboard):
            if frame.base_asset not in map_names:
                raise PlanValidationError(
                    f"storyboard[{index}] base_asset '{frame.base_asset}' does not match any planned map."
                )
            for placement in frame.placements:
                if placement.token_asset_name not in token_names:
                    raise PlanValidationError(
                        f"storyboard[{index}] places unknown token '{placement.token_asset_name}'."
                    )
            for movement in frame.movements:
                if movement.token_asset_name is not None and movement.token_asset_name not in token_names:
                    raise PlanValidationError(
                        f"storyboard[{index}] moves unknown token '{movement.token_asset_name}'."
                    )

    @classmethod
    def from_mapping(cls, data: Any) -> "BattlePlan":
        """
        Build a plan from the merged JSON of the planning stages.
        """
        data = _require_mapping(data, "plan")
        if "battle_identification" not in data:
            raise PlanValidationError("plan is missing required field 'battle_identification'.")
        for key in ("factions", "maps", "storyboard"):
            if key not in data:
                raise PlanValidationError(f"plan is missing required field '{key}'.")

        return cls(
            identification=BattleIdentification.from_mapping(data["battle_identification"]),
            factions=_parse_factions(data, "plan"),
            maps=_parse_maps(data, "plan"),
            storyboard=tuple(
                StoryboardFrame.from_mapping(item, index=i)
                for i, item in enumerate(_optional_list(data, "storyboard", "plan"))
            ),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "battle_identification": self.identification.to_dict(),
            "factions": [faction.to_dict() for faction in self.factions],
            "maps": [map_spec.to_dict() for map_spec in self.maps],
            "storyboard": [frame.to_dict() for frame in self.storyboard],
        }


def _parse_factions(data: Mapping[str, Any], where: str) -> tuple[Faction, ...]:
    return tuple(
        Faction.from_mapping(item, index=i)
        for i, item in enumerate(_optional_list(data, "factions", where))
    )


def _parse_maps(data: Mapping[str, Any], where: str) -> tuple[MapSpec, ...]:
    return tuple(
        MapSpec.from_mapping(item, index=i)
        for i, item in enumerate(_optional_list(data, "maps", where))
    )


def _check_token_colors(factions: Sequence[Faction]) -> None:
    colors = [faction.token_color for faction in factions]
    duplicates = sorted({color for color in colors if colors.count(color) > 1})
    if duplicates:
        raise PlanValidationError(
            f"Faction token colors must be unique; repeated: {', '.join(duplicates)}."
        )


def _check_map_types(maps: Sequence[MapSpec]) -> None:
    map_types = [map_spec.map_type for map_spec in maps]
    if map_types.count("tactical") != 1:
        raise PlanValidationError(
            f"Plan must contain exactly one tactical map, found {map_types.count('tactical')}."
        )
    if len(set(map_types)) != len(map_types):
        raise PlanValidationError("Plan must not contain two maps of the same type.")


def parse_base_part(data: Any) -> tuple[BattleIdentification, tuple[Faction, ...]]:
    """Validate the identification-and-factions stage on its own."""
    data = _require_mapping(data, "base stage")
    for key in ("battle_identification", "factions"):
        if key not in data:
            raise PlanValidationError(f"base stage is missing required field '{key}'.")
    factions = _parse_factions(data, "base stage")
    _check_token_colors(factions)
    return BattleIdentification.from_mapping(data["battle_identification"]), factions


def parse_maps_part(data: Any) -> tuple[MapSpec, ...]:
    """Validate the maps stage on its own."""
    data = _require_mapping(data, "maps stage")
    if "maps" not in data:
        raise PlanValidationError("maps stage is missing required field 'maps'.")
    maps = _parse_maps(data, "maps stage")
    _check_map_types(maps)
    return maps


def merge_plan_parts(parts: Iterable[Mapping[str, Any]]) -> dict[str, Any]:
    """Shallow-merge the JSON objects returned by the planning stages."""
    merged: dict[str, Any] = {}
    for part in parts:
        merged.update(part)
    return merged


__all__ = [
    "BattleIdentification",
    "BattlePlan",
    "Faction",
    "Label",
    "MAP_TYPES",
    "MapSpec",
    "Movement",
    "Placement",
    "StoryboardFrame",
    "color_from_token_asset_name",
    "derive_map_asset_name",
    "derive_token_asset_name",
    "merge_plan_parts",
    "parse_base_part",
    "parse_maps_part",
]
