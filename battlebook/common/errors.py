"""
Error taxonomy shared by every battlebook stage.
"""

from __future__ import annotations


class BattlebookError(RuntimeError):
    """
    Base class for all errors raised by the generation pipeline.
    """


class PlanValidationError(BattlebookError, ValueError):
    """
    A plan or request payload is missing a required field or references something
    that does not exist. Retrying cannot fix it.
    """


class ClientRequestError(BattlebookError):
    """
    The backend rejected a request as malformed (HTTP 4xx).
    """

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class TransientProviderError(BattlebookError):
    """
    A provider or server failure that may succeed on a later attempt
    (HTTP 5xx, connection failure, empty or blocked generation result).
    """

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class RetryExhaustedError(BattlebookError):
    """
    Raised once a retryable operation failed on every allowed attempt.
    """

    def __init__(self, message: str, *, attempts: int) -> None:
        super().__init__(message)
        self.attempts = attempts


class AssetNotFoundError(BattlebookError, KeyError):
    """
    A base map, faction token, or stored story referenced by name does not exist.
    """

    def __str__(self) -> str:
        # KeyError quotes its argument; keep the message readable in logs.
        return str(self.args[0]) if self.args else ""


class InvalidTransitionError(BattlebookError):
    """
    The generation session was asked to enter a phase it cannot reach from its current one.
    """


class GenerationCancelled(BattlebookError):
    """
    The run was restarted while a generation was still in progress.
    """


__all__ = [
    "AssetNotFoundError",
    "BattlebookError",
    "ClientRequestError",
    "GenerationCancelled",
    "InvalidTransitionError",
    "PlanValidationError",
    "RetryExhaustedError",
    "TransientProviderError",
]
