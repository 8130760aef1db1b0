"""
End-to-end orchestration for battlebook plan, asset and page generation.
"""

from .assets import AssetGenerator
from .frames import FrameCompositor
from .lifecycle import StoryLifecycleManager
from .plan_service import LocalPlanService, PlanResult
from .state import (
    CancellationToken,
    GenerationPhase,
    GenerationSession,
    LogEntry,
    ProgressTracker,
    SessionSnapshot,
)
from .steps import ImageService, ImageStepRunner

__all__ = [
    "AssetGenerator",
    "CancellationToken",
    "FrameCompositor",
    "GenerationPhase",
    "GenerationSession",
    "ImageService",
    "ImageStepRunner",
    "LocalPlanService",
    "LogEntry",
    "PlanResult",
    "ProgressTracker",
    "SessionSnapshot",
    "StoryLifecycleManager",
]
