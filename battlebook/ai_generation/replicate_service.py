"""
Integration with Replicate for map, token and storyboard image generation.
"""

from __future__ import annotations

import base64
import logging
import os
from collections.abc import Iterable as IterableABC
from contextlib import ExitStack
from pathlib import Path
from typing import Any, BinaryIO, Callable, Iterable, Sequence

import httpx
import replicate
import requests
from replicate.exceptions import ModelError, ReplicateError

from battlebook.common.asset import GeneratedAsset
from battlebook.common.errors import ClientRequestError, TransientProviderError
from battlebook.common.files import guess_mime_type, sha256_hex
from battlebook.common.settings import DEFAULT_IMAGE_MODEL
from battlebook.storage.image_store import ImageStore

from .prompting import ImagePrompt

ImageInput = str | BinaryIO
Downloader = Callable[[str], bytes]

NO_IMAGE_MESSAGE = "No image was generated. The prompt may have been blocked or invalid."

logger = logging.getLogger(__name__)


def _build_nano_banana_input(*, prompt: str, images: Sequence[ImageInput]) -> dict[str, Any]:
    payload: dict[str, Any] = {"prompt": prompt, "output_format": "png"}
    if images:
        payload["image_input"] = list(images)
    return payload


def _build_flux_kontext_input(*, prompt: str, images: Sequence[ImageInput]) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "prompt": prompt,
        "output_format": "png",
        "safety_tolerance": 2,
        "aspect_ratio": "match_input_image" if images else "1:1",
    }
    if images:
        # Single-image edit model: only the image being edited is sent.
        payload["input_image"] = images[0]
    return payload


def _build_flux_text_input(*, prompt: str, images: Sequence[ImageInput]) -> dict[str, Any]:
    if images:
        raise ValueError("This model only supports text-to-image generation; configure an edit model.")
    return {"prompt": prompt, "output_format": "png", "aspect_ratio": "1:1"}


_MODEL_INPUT_BUILDERS: dict[str, Callable[..., dict[str, Any]]] = {
    "google/nano-banana": _build_nano_banana_input,
    "black-forest-labs/flux-kontext-pro": _build_flux_kontext_input,
    "black-forest-labs/flux-kontext-max": _build_flux_kontext_input,
    "black-forest-labs/flux-schnell": _build_flux_text_input,
    "black-forest-labs/flux-1.1-pro": _build_flux_text_input,
}


def _build_replicate_input_payload(
    *,
    model_identifier: str,
    prompt: str,
    images: Sequence[ImageInput],
) -> dict[str, Any]:
    normalized_identifier = model_identifier.strip().lower()
    builder = _MODEL_INPUT_BUILDERS.get(normalized_identifier)
    if builder is None and ":" in normalized_identifier:
        base_identifier = normalized_identifier.split(":", maxsplit=1)[0]
        builder = _MODEL_INPUT_BUILDERS.get(base_identifier)
    if builder is None:
        supported_models = ", ".join(sorted(_MODEL_INPUT_BUILDERS))
        raise ValueError(
            "Model identifier "
            f"'{model_identifier}' is not configured with a default input payload. "
            f"Supported models: {supported_models}."
        )
    return builder(prompt=prompt, images=images)


class ReplicateImageGenerator:
    """
    Image service backed by Replicate models.

    Every produced image is downloaded and written to the :class:`ImageStore`
    so later edits can reuse it after the provider URL expires.

    Parameters
    ----------
    image_store:
        Where generated and uploaded images are persisted.
    api_token:
        Replicate API token. Falls back to ``REPLICATE_API_TOKEN`` environment variable.
    model_identifier:
        Text-to-image model. Falls back to ``BATTLEBOOK_IMAGE_MODEL`` then ``REPLICATE_MODEL``.
    edit_model_identifier:
        Image-editing model. Defaults to ``model_identifier``.
    client:
        Optional pre-configured :class:`replicate.Client`. Mainly useful for testing.
    downloader:
        Fetches provider URLs. Defaults to a ``requests`` GET.
    """

    def __init__(
        self,
        *,
        image_store: ImageStore,
        api_token: str | None = None,
        model_identifier: str | None = None,
        edit_model_identifier: str | None = None,
        client: replicate.Client | None = None,
        downloader: Downloader | None = None,
        request_timeout: float = 120.0,
    ) -> None:
        self._api_token = api_token or os.getenv("REPLICATE_API_TOKEN")
        if not self._api_token and not client:
            raise ValueError(
                "Replicate API token is required. Set REPLICATE_API_TOKEN or pass api_token."
            )

        self._model_identifier = (
            model_identifier
            or os.getenv("BATTLEBOOK_IMAGE_MODEL")
            or os.getenv("REPLICATE_MODEL")
            or DEFAULT_IMAGE_MODEL
        )
        self._edit_model_identifier = edit_model_identifier or self._model_identifier
        self._client = client or replicate.Client(api_token=self._api_token)
        self._image_store = image_store
        self._request_timeout = request_timeout
        self._downloader = downloader or self._download
        self._upload_cache: dict[str, GeneratedAsset] = {}

    @property
    def model_identifier(self) -> str:
        """Return the text-to-image model identifier."""
        return self._model_identifier

    @property
    def edit_model_identifier(self) -> str:
        return self._edit_model_identifier

    def generate_image(self, prompt: ImagePrompt | str, *, caption: str = "") -> GeneratedAsset:
        """
        Generate a standalone image from ``prompt``.
        """
        text = prompt.text if isinstance(prompt, ImagePrompt) else prompt
        return self._run(self._model_identifier, text, [], caption=caption)

    def edit_image(
        self,
        base_image: GeneratedAsset,
        prompt: ImagePrompt | str,
        *,
        caption: str = "",
        reference_images: Sequence[GeneratedAsset] = (),
    ) -> GeneratedAsset:
        """
        Edit ``base_image`` following ``prompt``.

        Parameters
        ----------
        base_image:
            The image being edited. It is always the first model input.
        prompt:
            Filled instruction template (or raw text).
        caption:
            Caption recorded on the resulting asset.
        reference_images:
            Additional images the model should take style or content cues from.
        """
        text = prompt.text if isinstance(prompt, ImagePrompt) else prompt
        images = [base_image, *reference_images]
        return self._run(self._edit_model_identifier, text, images, caption=caption)

    def upload_file(
        self,
        data: bytes,
        mime_type: str,
        *,
        display_name: str | None = None,
    ) -> GeneratedAsset:
        """
        Make local bytes addressable as an edit input.

        Uploads are deduplicated by content hash for the lifetime of the generator.
        """
        digest = sha256_hex(data)
        cached = self._upload_cache.get(digest)
        if cached is not None:
            logger.debug("Reusing upload %s for '%s'", cached.uri, display_name)
            return cached

        asset = self._image_store.save(data, mime_type, caption=display_name or "")
        self._upload_cache[digest] = asset
        logger.info("Uploaded '%s' (%s, %d bytes)", display_name or digest[:12], mime_type, len(data))
        return asset

    def _run(
        self,
        model_identifier: str,
        prompt: str,
        images: Sequence[GeneratedAsset],
        *,
        caption: str,
    ) -> GeneratedAsset:
        with ExitStack() as stack:
            image_inputs = [_prepare_image_input(self._image_store, asset.uri, stack=stack) for asset in images]
            replicate_input = _build_replicate_input_payload(
                model_identifier=model_identifier,
                prompt=prompt,
                images=image_inputs,
            )
            logger.info("Running %s for '%s' with %d input image(s)", model_identifier, caption, len(images))
            try:
                outputs = self._client.run(model_identifier, input=replicate_input)
            except ModelError as exc:
                raise TransientProviderError(f"{NO_IMAGE_MESSAGE} ({exc})") from exc
            except ReplicateError as exc:
                raise _classify_replicate_error(exc) from exc
            except httpx.TransportError as exc:
                raise TransientProviderError(f"Replicate request failed: {exc}") from exc

        data, mime_type = self._read_first_output(outputs)
        return self._image_store.save(data, mime_type, caption=caption)

    def _read_first_output(self, outputs: Any) -> tuple[bytes, str]:
        candidates = [outputs] if hasattr(outputs, "read") else list(_iterate_outputs(outputs))
        if not candidates:
            raise TransientProviderError(NO_IMAGE_MESSAGE)

        first = candidates[0]
        if hasattr(first, "read"):
            locator = str(getattr(first, "url", "") or "")
            data = first.read()
        else:
            locator = str(first)
            data = self._downloader(locator)
        if not data:
            raise TransientProviderError(NO_IMAGE_MESSAGE)
        return data, _mime_for_locator(locator)

    def _download(self, locator: str) -> bytes:
        if locator.startswith("data:"):
            _header, _, encoded = locator.partition(",")
            return base64.b64decode(encoded)
        try:
            response = requests.get(locator, timeout=self._request_timeout)
            response.raise_for_status()
        except requests.RequestException as exc:
            raise TransientProviderError(f"Failed to download generated image: {exc}") from exc
        return response.content


def normalize_image_outputs(raw: Any) -> list[str]:
    """
    Normalize the outputs returned by Replicate into a list of URL strings.
    """
    return [str(getattr(item, "url", None) or item) for item in _iterate_outputs(raw)]


def _iterate_outputs(raw: Any) -> Iterable[Any]:
    if raw is None:
        return []

    if isinstance(raw, (str, bytes)) or hasattr(raw, "url"):
        return [raw.decode("utf-8", errors="ignore") if isinstance(raw, bytes) else raw]

    if isinstance(raw, IterableABC):
        collected = list(raw)
        if collected and all(isinstance(item, str) and len(item) == 1 for item in collected):
            return ["".join(collected)]

        flattened: list[Any] = []
        for item in collected:
            if item is None:
                continue
            if isinstance(item, IterableABC) and not isinstance(item, (str, bytes)) and not hasattr(item, "url"):
                flattened.extend(_iterate_outputs(item))
            elif isinstance(item, bytes):
                flattened.append(item.decode("utf-8", errors="ignore"))
            else:
                flattened.append(item)
        return flattened

    return [str(raw)]


def _mime_for_locator(locator: str) -> str:
    if locator.startswith("data:"):
        return locator[5:].split(";", 1)[0] or "image/png"
    return guess_mime_type(locator.split("?", 1)[0])


def _classify_replicate_error(exc: ReplicateError) -> Exception:
    status = getattr(exc, "status", None)
    if isinstance(status, int) and 400 <= status < 500 and status != 429:
        return ClientRequestError(str(exc), status_code=status)
    return TransientProviderError(str(exc), status_code=status)


def _prepare_image_input(
    image_store: ImageStore,
    locator: str,
    *,
    stack: ExitStack,
) -> ImageInput:
    """
    Turn a stored asset locator into something Replicate can consume, keeping files open via ExitStack.
    """
    if locator.lower().startswith(("http://", "https://", "data:")):
        return locator

    input_path = image_store.local_path(locator) or Path(locator).expanduser()
    if not input_path.exists():
        raise FileNotFoundError(f"Input image not found at '{input_path}'.")

    return stack.enter_context(input_path.open("rb"))


__all__ = [
    "NO_IMAGE_MESSAGE",
    "ReplicateImageGenerator",
    "normalize_image_outputs",
]
