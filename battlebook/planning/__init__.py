"""
Battle plan data model and the three-stage plan generator.
"""

from .placeholder import BATTLE_PLACEHOLDER
from .plan import (
    BattleIdentification,
    BattlePlan,
    Faction,
    Label,
    MapSpec,
    Movement,
    Placement,
    StoryboardFrame,
    derive_map_asset_name,
    derive_token_asset_name,
)
from .planner import PlanGenerator

__all__ = [
    "BATTLE_PLACEHOLDER",
    "BattleIdentification",
    "BattlePlan",
    "Faction",
    "Label",
    "MapSpec",
    "Movement",
    "PlanGenerator",
    "Placement",
    "StoryboardFrame",
    "derive_map_asset_name",
    "derive_token_asset_name",
]
