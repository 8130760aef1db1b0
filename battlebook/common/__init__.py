"""
Common utilities shared across battlebook modules.
"""

from .asset import GeneratedAsset
from .errors import (
    AssetNotFoundError,
    BattlebookError,
    ClientRequestError,
    GenerationCancelled,
    InvalidTransitionError,
    PlanValidationError,
    RetryExhaustedError,
    TransientProviderError,
)
from .llm import ChatResult, CompletionCallable, call_chat_completion, generate_structured
from .retry import RetryPolicy
from .settings import GenerationMode, GenerationSettings

__all__ = [
    "AssetNotFoundError",
    "BattlebookError",
    "ChatResult",
    "ClientRequestError",
    "CompletionCallable",
    "GeneratedAsset",
    "GenerationCancelled",
    "GenerationMode",
    "GenerationSettings",
    "InvalidTransitionError",
    "PlanValidationError",
    "RetryExhaustedError",
    "RetryPolicy",
    "TransientProviderError",
    "call_chat_completion",
    "generate_structured",
]
