"""
HTTP client for the battlebook backend.
"""

from __future__ import annotations

import base64
import logging
import os
import time
from typing import Any, Callable, Mapping, Sequence
from urllib.parse import quote

import requests

from battlebook.ai_generation.prompting import ImagePrompt
from battlebook.common.asset import GeneratedAsset
from battlebook.common.errors import ClientRequestError, TransientProviderError
from battlebook.common.retry import RetryPolicy
from battlebook.common.settings import DEFAULT_SERVER_URL
from battlebook.pipeline.plan_service import PlanResult
from battlebook.planning.plan import BattlePlan
from battlebook.storage.story import StoredStory

LogCallback = Callable[[str], None]

logger = logging.getLogger(__name__)


class BackendClient:
    """
    Talks to the FastAPI backend and exposes the same capabilities as the
    in-process services (plan requests, story storage, image generation).

    Non-image requests are retried with ``retry_policy``. Image requests are
    single attempts; the pipeline's image step runner retries them.

    Parameters
    ----------
    base_url:
        Backend root URL. Falls back to ``BATTLEBOOK_SERVER_URL``.
    retry_policy:
        Policy applied to plan, cache, story and log requests.
    session:
        Optional pre-configured :class:`requests.Session`. Mainly useful for testing.
    """

    def __init__(
        self,
        *,
        base_url: str | None = None,
        retry_policy: RetryPolicy | None = None,
        session: requests.Session | None = None,
        timeout: float = 120.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._base_url = (base_url or os.getenv("BATTLEBOOK_SERVER_URL") or DEFAULT_SERVER_URL).rstrip("/")
        self._retry_policy = retry_policy or RetryPolicy()
        self._session = session or requests.Session()
        self._timeout = timeout
        self._sleep = sleep

    @property
    def base_url(self) -> str:
        return self._base_url

    # -- plan and story cache ------------------------------------------

    def request_plan(
        self,
        input_text: str | None = None,
        *,
        use_placeholder: bool = False,
        log: LogCallback | None = None,
        checkpoint: Callable[[], None] | None = None,
    ) -> PlanResult:
        emit = log or (lambda message: None)
        if checkpoint is not None:
            checkpoint()
        emit(" -> Requesting battle plan from the backend...")
        payload = self._with_retry(
            "Plan request",
            lambda: self._request("POST", "/plan", json={"text": input_text, "use_placeholder": use_placeholder}),
        )

        story_hash = str(payload.get("story_hash", ""))
        if payload.get("cached"):
            emit(f"[Cache] Hit for story hash: {story_hash}")
            return PlanResult(
                story_hash=story_hash,
                cached=True,
                story=StoredStory.from_dict(payload["story"]),
            )
        return PlanResult(
            story_hash=story_hash,
            cached=False,
            plan=BattlePlan.from_mapping(payload.get("plan")),
        )

    def store(self, story_hash: str, story: StoredStory) -> None:
        self._with_retry(
            "Cache story",
            lambda: self._request(
                "POST", "/story-cache", json={"story_hash": story_hash, "story": story.to_dict()}
            ),
        )

    def list_stories(self) -> list[StoredStory]:
        payload = self._with_retry("List stories", lambda: self._request("GET", "/stories"))
        return [StoredStory.from_dict(item) for item in payload.get("stories", [])]

    def delete_story(self, story_id: str) -> None:
        self._with_retry(
            "Delete story",
            lambda: self._request("DELETE", f"/stories/{quote(story_id, safe='')}"),
        )

    def save_log(self, filename: str, content: str) -> None:
        self._with_retry(
            "Save log",
            lambda: self._request("POST", "/log", json={"filename": filename, "content": content}),
        )

    # -- images ----------------------------------------------------------

    def generate_image(self, prompt: ImagePrompt | str, *, caption: str = "") -> GeneratedAsset:
        text = prompt.text if isinstance(prompt, ImagePrompt) else prompt
        payload = self._request("POST", "/generate-image", json={"prompt": text, "caption": caption})
        return GeneratedAsset.from_mapping(payload)

    def edit_image(
        self,
        base_image: GeneratedAsset,
        prompt: ImagePrompt | str,
        *,
        caption: str = "",
        reference_images: Sequence[GeneratedAsset] = (),
    ) -> GeneratedAsset:
        text = prompt.text if isinstance(prompt, ImagePrompt) else prompt
        body = {
            "image": _reference(base_image),
            "prompt": text,
            "caption": caption,
            "reference_assets": [_reference(asset) for asset in reference_images],
        }
        return GeneratedAsset.from_mapping(self._request("POST", "/generate-frame", json=body))

    def upload_file(
        self,
        data: bytes,
        mime_type: str,
        *,
        display_name: str | None = None,
    ) -> GeneratedAsset:
        body = {
            "data_base64": base64.b64encode(data).decode("ascii"),
            "mime_type": mime_type,
            "display_name": display_name,
        }
        return GeneratedAsset.from_mapping(self._request("POST", "/upload", json=body))

    # -- transport -------------------------------------------------------

    def _with_retry(self, description: str, operation: Callable[[], dict[str, Any]]) -> dict[str, Any]:
        return self._retry_policy.run(operation, description=description, sleep=self._sleep)

    def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        url = f"{self._base_url}{path}"
        try:
            response = self._session.request(method, url, timeout=self._timeout, **kwargs)
        except (requests.ConnectionError, requests.Timeout) as exc:
            raise TransientProviderError(f"{method} {path} failed: {exc}") from exc

        if response.status_code >= 400:
            detail = _error_detail(response)
            if response.status_code < 500:
                raise ClientRequestError(
                    f"{method} {path} was rejected ({response.status_code}): {detail}",
                    status_code=response.status_code,
                )
            raise TransientProviderError(
                f"{method} {path} failed ({response.status_code}): {detail}",
                status_code=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise TransientProviderError(f"{method} {path} returned invalid JSON.") from exc
        if not isinstance(payload, Mapping):
            raise TransientProviderError(f"{method} {path} returned a non-object payload.")
        logger.debug("%s %s -> %d", method, path, response.status_code)
        return dict(payload)


def _reference(asset: GeneratedAsset) -> dict[str, str]:
    return {"url": asset.url, "mime_type": asset.mime_type, "caption": asset.caption}


def _error_detail(response: requests.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text.strip() or response.reason or "no details"
    if isinstance(body, Mapping) and "detail" in body:
        return str(body["detail"])
    return str(body)


__all__ = ["BackendClient"]
