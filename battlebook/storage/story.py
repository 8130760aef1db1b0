"""
The assembled story: plan, base assets and per-page composite chains.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

import yaml

from battlebook.common.asset import GeneratedAsset
from battlebook.planning.plan import BattlePlan


@dataclass
class StoredStory:
    """
    Aggregated output of a generation run.

    ``frames`` holds one composite chain per storyboard page; the last element
    of a chain is the page's rendered image.
    """

    id: str
    name: str
    plan: BattlePlan
    assets: dict[str, GeneratedAsset] = field(default_factory=dict)
    frames: list[list[GeneratedAsset]] = field(default_factory=list)

    @property
    def page_count(self) -> int:
        return len(self.plan.storyboard)

    def page_image(self, index: int) -> GeneratedAsset | None:
        """
        Return the displayable image for storyboard page ``index``.

        A page without edits shows its base map.
        """
        if index < len(self.frames) and self.frames[index]:
            return self.frames[index][-1]
        if index >= len(self.plan.storyboard):
            return None
        return self.assets.get(self.plan.storyboard[index].base_asset)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "plan": self.plan.to_dict(),
            "assets": {name: asset.to_dict() for name, asset in self.assets.items()},
            "frames": [[asset.to_dict() for asset in chain] for chain in self.frames],
        }

    def to_yaml(self) -> str:
        return yaml.safe_dump(self.to_dict(), sort_keys=False, allow_unicode=True)

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "StoredStory":
        for key in ("id", "plan"):
            if key not in payload:
                raise ValueError(f"Story payload must include '{key}'.")

        plan = BattlePlan.from_mapping(payload["plan"])
        raw_assets = payload.get("assets") or {}
        raw_frames = payload.get("frames") or []
        if not isinstance(raw_assets, Mapping):
            raise ValueError("Story payload 'assets' must be a mapping.")

        return cls(
            id=str(payload["id"]),
            name=str(payload.get("name") or plan.identification.name),
            plan=plan,
            assets={str(name): GeneratedAsset.from_mapping(asset) for name, asset in raw_assets.items()},
            frames=[[GeneratedAsset.from_mapping(asset) for asset in chain] for chain in raw_frames],
        )

    @classmethod
    def from_yaml(cls, source: str | Path) -> "StoredStory":
        path = Path(source)
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
        if not isinstance(data, Mapping):
            raise ValueError("Story YAML must deserialize to a mapping.")
        return cls.from_dict(data)


__all__ = ["StoredStory"]
