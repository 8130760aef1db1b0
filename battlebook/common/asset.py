"""
Immutable record of a generated or uploaded image.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping


@dataclass(frozen=True)
class GeneratedAsset:
    """
    A single image produced by the image service.

    Attributes
    ----------
    url:
        Locator for displaying the image (a served path or an absolute URL).
    uri:
        Locator the image service accepts when the image is reused as an edit input.
    mime_type:
        MIME type of the stored bytes.
    caption:
        Human-readable description of what the image shows.
    """

    url: str
    uri: str
    mime_type: str
    caption: str = ""

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "GeneratedAsset":
        try:
            url = str(data["url"])
            mime_type = str(data.get("mime_type") or data["mimeType"])
        except KeyError as exc:
            raise ValueError(f"Generated asset payload is missing '{exc.args[0]}'.") from exc
        return cls(
            url=url,
            uri=str(data.get("uri") or url),
            mime_type=mime_type,
            caption=str(data.get("caption", "")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "uri": self.uri,
            "mime_type": self.mime_type,
            "caption": self.caption,
        }


__all__ = ["GeneratedAsset"]
