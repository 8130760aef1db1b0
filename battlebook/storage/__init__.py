"""
File-based persistence: stories keyed by input hash, images keyed by content hash.
"""

from .image_store import ImageStore
from .story import StoredStory
from .story_cache import PLACEHOLDER_HASH, StoryCache, hash_input_text

__all__ = [
    "ImageStore",
    "PLACEHOLDER_HASH",
    "StoredStory",
    "StoryCache",
    "hash_input_text",
]
