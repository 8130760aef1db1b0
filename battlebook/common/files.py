"""
Content-hash helpers used by the story cache and the image store.
"""

from __future__ import annotations

import hashlib
import mimetypes
from pathlib import Path

_EXTENSION_OVERRIDES = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
    "application/json": ".json",
}


def sha256_hex(data: bytes | str) -> str:
    if isinstance(data, str):
        data = data.encode("utf-8")
    return hashlib.sha256(data).hexdigest()


def extension_for_mime(mime_type: str) -> str:
    return _EXTENSION_OVERRIDES.get(mime_type) or mimetypes.guess_extension(mime_type) or ".bin"


def guess_mime_type(path: Path | str, default: str = "image/png") -> str:
    guessed, _ = mimetypes.guess_type(str(path))
    return guessed or default


def save_content_addressed(directory: Path, data: bytes, mime_type: str) -> Path:
    """
    Write ``data`` under ``directory`` using its SHA-256 digest as the file name.

    Writing the same bytes twice returns the existing path without touching the file.
    """
    directory.mkdir(parents=True, exist_ok=True)
    target = directory / f"{sha256_hex(data)}{extension_for_mime(mime_type)}"
    if not target.exists():
        target.write_bytes(data)
    return target


def resolve_within(root: Path, name: str) -> Path:
    """
    Resolve ``name`` relative to ``root`` and refuse paths that escape it.
    """
    base = root.resolve()
    candidate = (base / name).resolve()
    if candidate != base and base not in candidate.parents:
        raise ValueError(f"Path '{name}' resolves outside of {root}.")
    return candidate


__all__ = [
    "extension_for_mime",
    "guess_mime_type",
    "resolve_within",
    "save_content_addressed",
    "sha256_hex",
]
