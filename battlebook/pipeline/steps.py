"""
Shared plumbing for rate-limited, retried image calls.
"""

from __future__ import annotations

import time
from typing import Callable, Protocol, Sequence

from battlebook.ai_generation.prompting import ImagePrompt
from battlebook.common.asset import GeneratedAsset
from battlebook.common.retry import RetryPolicy
from battlebook.common.settings import IMAGE_GENERATION_DELAY_SECONDS

from .state import GenerationSession


class ImageService(Protocol):
    """Image capability consumed by the asset and frame stages."""

    def generate_image(self, prompt: ImagePrompt | str, *, caption: str = "") -> GeneratedAsset:
        ...

    def edit_image(
        self,
        base_image: GeneratedAsset,
        prompt: ImagePrompt | str,
        *,
        caption: str = "",
        reference_images: Sequence[GeneratedAsset] = (),
    ) -> GeneratedAsset:
        ...

    def upload_file(
        self,
        data: bytes,
        mime_type: str,
        *,
        display_name: str | None = None,
    ) -> GeneratedAsset:
        ...


class ImageStepRunner:
    """
    Runs one image call at a time under the retry policy and the inter-call delay.

    ``checkpoint`` is invoked before and after every call so a restarted run
    stops at the next suspend point and never records a late result.
    """

    def __init__(
        self,
        session: GenerationSession,
        *,
        retry_policy: RetryPolicy | None = None,
        delay_seconds: float = IMAGE_GENERATION_DELAY_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
        checkpoint: Callable[[], None] | None = None,
    ) -> None:
        self._session = session
        self._retry_policy = retry_policy or RetryPolicy()
        self._delay_seconds = delay_seconds
        self._sleep = sleep
        self._checkpoint = checkpoint or (lambda: None)

    def run(self, caption: str, operation: Callable[[], GeneratedAsset]) -> GeneratedAsset:
        self._checkpoint()

        def _on_retry(attempt: int, error: BaseException) -> None:
            self._session.add_log(
                f' -> Attempt {attempt} failed for "{caption}": {error}. '
                f"Retrying in {self._retry_policy.delay_seconds:g}s..."
            )

        asset = self._retry_policy.run(
            operation,
            description=f'Image asset "{caption}"',
            on_retry=_on_retry,
            sleep=self._sleep,
        )
        self._checkpoint()
        return asset

    def pause(self) -> None:
        self._checkpoint()
        self._session.add_log(f"Waiting {self._delay_seconds:g}s before next step...")
        self._sleep(self._delay_seconds)
        self._checkpoint()


__all__ = ["ImageService", "ImageStepRunner"]
