"""
HTTP boundary between the generation pipeline and its backend.
"""

from .app import create_app

__all__ = ["create_app"]
