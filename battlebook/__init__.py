"""
battlebook package: turns battle descriptions into illustrated children's storybooks.
"""

from .client import BackendClient
from .common import GenerationMode, GenerationSettings
from .pdf_generation import StorybookPDFBuilder
from .pipeline import (
    GenerationPhase,
    GenerationSession,
    SessionSnapshot,
    StoryLifecycleManager,
)
from .planning import BattlePlan, PlanGenerator
from .storage import ImageStore, StoredStory, StoryCache

__all__ = [
    "BackendClient",
    "BattlePlan",
    "GenerationMode",
    "GenerationPhase",
    "GenerationSession",
    "GenerationSettings",
    "ImageStore",
    "PlanGenerator",
    "SessionSnapshot",
    "StoryCache",
    "StoredStory",
    "StoryLifecycleManager",
    "StorybookPDFBuilder",
]
