"""
Flat, content-addressed story cache plus debug/request log persistence.
"""

from __future__ import annotations

import json
import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Any, Mapping

from battlebook.common.errors import AssetNotFoundError
from battlebook.common.files import resolve_within, save_content_addressed, sha256_hex
from battlebook.planning.placeholder import BATTLE_PLACEHOLDER

from .story import StoredStory

_KEY_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._:-]*$")

logger = logging.getLogger(__name__)


def canonicalize_input_text(text: str) -> str:
    """Normalize line endings and surrounding whitespace before hashing."""
    return text.replace("\r\n", "\n").replace("\r", "\n").strip()


def hash_input_text(text: str) -> str:
    """SHA-256 hex digest of the canonicalized input text."""
    return sha256_hex(canonicalize_input_text(text))


PLACEHOLDER_HASH = hash_input_text(BATTLE_PLACEHOLDER)


class StoryCache:
    """
    One JSON file per input hash under ``root``.

    There is no eviction; entries are removed only through :meth:`delete`.
    """

    def __init__(self, root: Path | str) -> None:
        self._root = Path(root)

    @property
    def root(self) -> Path:
        return self._root

    @property
    def logs_dir(self) -> Path:
        return self._root / "logs"

    def path_for(self, key: str) -> Path:
        if not _KEY_PATTERN.match(key):
            raise ValueError(f"Invalid story key '{key}'.")
        return resolve_within(self._root, f"{key}.json")

    def lookup(self, story_hash: str) -> StoredStory | None:
        path = self.path_for(story_hash)
        if not path.is_file():
            logger.info("[Cache] Miss for story hash: %s", story_hash)
            return None
        try:
            story = StoredStory.from_dict(json.loads(path.read_text(encoding="utf-8")))
        except (OSError, ValueError, TypeError, KeyError) as exc:
            logger.warning("[Cache] Ignoring unreadable story file %s: %s", path.name, exc)
            return None
        logger.info("[Cache] Hit for story hash: %s", story_hash)
        return story

    def store(self, story_hash: str, story: StoredStory | Mapping[str, Any]) -> Path:
        """
        Write ``story`` under ``story_hash``. Writing the same story again is harmless.
        """
        payload = story.to_dict() if isinstance(story, StoredStory) else dict(story)
        if not isinstance(story, StoredStory):
            # Reject payloads that could not be read back.
            StoredStory.from_dict(payload)

        path = self.path_for(story_hash)
        self._atomic_write(path, json.dumps(payload, indent=2, ensure_ascii=False))
        logger.info("[Cache] Stored story '%s' at %s", payload.get("name"), path)
        return path

    def list_stories(self) -> list[StoredStory]:
        """
        Return every readable cached story sorted by name. Unreadable files are skipped.
        """
        if not self._root.is_dir():
            return []

        stories: list[StoredStory] = []
        for path in sorted(self._root.glob("*.json")):
            try:
                stories.append(StoredStory.from_dict(json.loads(path.read_text(encoding="utf-8"))))
            except (OSError, ValueError, TypeError, KeyError) as exc:
                logger.warning("Skipping unreadable story file %s: %s", path.name, exc)
        return sorted(stories, key=lambda story: story.name.lower())

    def delete(self, story_id: str) -> Path:
        """
        Delete the cached story whose file key or ``id`` equals ``story_id``.
        """
        direct = self.path_for(story_id)
        if direct.is_file():
            direct.unlink()
            logger.info("[Cache] Deleted story %s", story_id)
            return direct

        if self._root.is_dir():
            for path in self._root.glob("*.json"):
                try:
                    payload = json.loads(path.read_text(encoding="utf-8"))
                except (OSError, ValueError) as exc:
                    logger.warning("Skipping unreadable story file %s: %s", path.name, exc)
                    continue
                if isinstance(payload, Mapping) and payload.get("id") == story_id:
                    path.unlink()
                    logger.info("[Cache] Deleted story %s (%s)", story_id, path.name)
                    return path

        raise AssetNotFoundError(f"Story '{story_id}' not found.")

    def save_log(self, filename: str, content: str) -> Path:
        """
        Persist a debug log in the ``logs`` subdirectory of the cache.

        Only bare file names are accepted.
        """
        if not filename or not filename.strip():
            raise ValueError("Log filename must not be empty.")
        if "/" in filename or "\\" in filename or filename.startswith("."):
            raise ValueError(f"Invalid log filename '{filename}'.")
        path = resolve_within(self.logs_dir, filename)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        logger.info("Saved log file %s", path)
        return path

    def save_request_log(self, payload: Mapping[str, Any]) -> Path:
        """Record a request/response payload as a content-hashed JSON file."""
        data = json.dumps(payload, indent=2, sort_keys=True, default=str).encode("utf-8")
        return save_content_addressed(self._root / "requests", data, "application/json")

    def _atomic_write(self, path: Path, text: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.stem}-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(text)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise


__all__ = [
    "PLACEHOLDER_HASH",
    "StoryCache",
    "canonicalize_input_text",
    "hash_input_text",
]
