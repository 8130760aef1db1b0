"""
Content-addressed image storage on the local filesystem.
"""

from __future__ import annotations

import logging
from pathlib import Path

from battlebook.common.asset import GeneratedAsset
from battlebook.common.errors import AssetNotFoundError
from battlebook.common.files import guess_mime_type, resolve_within, save_content_addressed

DEFAULT_URL_PREFIX = "/images"

logger = logging.getLogger(__name__)


class ImageStore:
    """
    Persists image bytes under ``root`` using their SHA-256 digest as file name.

    Stored images are exposed through ``url_prefix`` (the HTTP layer serves
    ``<url_prefix>/<file name>``) and through their local path, which the
    image service opens when an image is reused as an edit input.
    """

    def __init__(self, root: Path | str, *, url_prefix: str = DEFAULT_URL_PREFIX) -> None:
        self._root = Path(root)
        self._url_prefix = url_prefix.rstrip("/")

    @property
    def root(self) -> Path:
        return self._root

    def save(self, data: bytes, mime_type: str, *, caption: str = "") -> GeneratedAsset:
        path = save_content_addressed(self._root, data, mime_type)
        logger.debug("Stored %d bytes for '%s' at %s", len(data), caption, path)
        return GeneratedAsset(
            url=f"{self._url_prefix}/{path.name}",
            uri=str(path),
            mime_type=mime_type,
            caption=caption,
        )

    def path_for(self, name: str) -> Path:
        """
        Return the path of a stored image by file name, refusing names outside the store.
        """
        try:
            path = resolve_within(self._root, name)
        except ValueError as exc:
            raise AssetNotFoundError(f"Image '{name}' not found.") from exc
        if not path.is_file():
            raise AssetNotFoundError(f"Image '{name}' not found.")
        return path

    def local_path(self, locator: str) -> Path | None:
        """
        Map a served URL or a stored path back to the local file, if it belongs to this store.
        """
        if locator.startswith(f"{self._url_prefix}/"):
            return self.path_for(locator[len(self._url_prefix) + 1:])
        candidate = Path(locator)
        if candidate.is_file():
            return candidate
        return None

    def load(self, path: Path | str, *, caption: str = "") -> GeneratedAsset:
        """Copy an arbitrary local image into the store."""
        source = Path(path)
        if not source.is_file():
            raise AssetNotFoundError(f"Image file '{source}' not found.")
        return self.save(source.read_bytes(), guess_mime_type(source), caption=caption)


__all__ = ["DEFAULT_URL_PREFIX", "ImageStore"]
