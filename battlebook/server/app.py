"""
FastAPI application exposing planning, image generation and story cache endpoints.
"""

from __future__ import annotations

import base64
import binascii
import logging
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from pydantic import BaseModel, Field

from battlebook.ai_generation.replicate_service import ReplicateImageGenerator
from battlebook.common import CompletionCallable
from battlebook.common.asset import GeneratedAsset
from battlebook.common.errors import (
    AssetNotFoundError,
    BattlebookError,
    ClientRequestError,
    PlanValidationError,
)
from battlebook.common.settings import GenerationSettings
from battlebook.pipeline.plan_service import LocalPlanService
from battlebook.pipeline.steps import ImageService
from battlebook.planning.planner import PlanGenerator
from battlebook.storage.image_store import DEFAULT_URL_PREFIX, ImageStore
from battlebook.storage.story_cache import StoryCache

logger = logging.getLogger(__name__)


class PlanRequest(BaseModel):
    text: Optional[str] = Field(default=None, description="Battle description to plan")
    use_placeholder: bool = Field(default=False, description="Plan the built-in sample battle instead")


class CacheStoryRequest(BaseModel):
    story_hash: str = Field(..., min_length=1)
    story: dict[str, Any]


class LogRequest(BaseModel):
    filename: str = Field(..., min_length=1)
    content: str


class AssetReference(BaseModel):
    url: str
    mime_type: str = "image/png"
    caption: str = ""


class GenerateImageRequest(BaseModel):
    prompt: str = Field(..., min_length=1)
    caption: str = ""


class GenerateFrameRequest(BaseModel):
    image: AssetReference
    prompt: str = Field(..., min_length=1)
    caption: str = ""
    reference_assets: list[AssetReference] = Field(default_factory=list)


class UploadRequest(BaseModel):
    data_base64: str = Field(..., min_length=1)
    mime_type: str = "image/png"
    display_name: Optional[str] = None


def create_app(
    settings: GenerationSettings | None = None,
    *,
    completion_fn: CompletionCallable | None = None,
    image_service: ImageService | None = None,
    planner: PlanGenerator | None = None,
) -> FastAPI:
    """
    Build the HTTP backend.

    Collaborators default to the LiteLLM planner and the Replicate image
    service configured from ``settings`` (or the environment).
    """
    settings = settings or GenerationSettings.from_env()
    cache = StoryCache(settings.cache_dir)
    image_store = ImageStore(settings.cache_dir / "images", url_prefix=DEFAULT_URL_PREFIX)
    planner = planner or PlanGenerator(
        model=settings.plan_model,
        api_key=settings.plan_api_key,
        completion_fn=completion_fn,
        retry_policy=settings.retry_policy(),
        stage_delay_seconds=settings.plan_stage_delay_seconds,
        maps_stage_context=settings.maps_stage_context,
    )
    plan_service = LocalPlanService(planner, cache)
    images: ImageService = image_service or ReplicateImageGenerator(
        image_store=image_store,
        api_token=settings.replicate_api_token,
        model_identifier=settings.image_model,
        edit_model_identifier=settings.resolved_edit_model,
        request_timeout=settings.request_timeout,
    )

    app = FastAPI(
        title="Battlebook API",
        description="Plan and illustrate children's storybooks of historical battles",
        version="0.1.0",
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    _register_error_handlers(app)

    def _stored(reference: AssetReference) -> GeneratedAsset:
        if not reference.url.startswith(f"{DEFAULT_URL_PREFIX}/"):
            raise ClientRequestError(
                f"Image '{reference.url}' is not a stored image.", status_code=400
            )
        path = image_store.path_for(reference.url[len(DEFAULT_URL_PREFIX) + 1:])
        return GeneratedAsset(
            url=reference.url,
            uri=str(path),
            mime_type=reference.mime_type,
            caption=reference.caption,
        )

    def _record(kind: str, request: BaseModel, asset: GeneratedAsset) -> None:
        cache.save_request_log({"kind": kind, "request": request.model_dump(), "response": asset.to_dict()})

    @app.get("/health")
    def health_check():
        """Health check endpoint."""
        return {"status": "healthy"}

    @app.post("/plan")
    def generate_plan(request: PlanRequest):
        """Return a cached story for known input, otherwise a freshly generated plan."""
        result = plan_service.request_plan(
            request.text,
            use_placeholder=request.use_placeholder,
            log=logger.info,
        )
        return result.to_dict()

    @app.post("/story-cache")
    def cache_story(request: CacheStoryRequest):
        """Store a completed story under its input hash."""
        try:
            cache.store(request.story_hash, request.story)
        except ValueError as exc:
            raise ClientRequestError(f"Invalid story payload: {exc}", status_code=400) from exc
        return {"ok": True}

    @app.get("/stories")
    def list_stories():
        """List cached stories sorted by name."""
        return {"stories": [story.to_dict() for story in cache.list_stories()]}

    @app.delete("/stories/{story_id}")
    def delete_story(story_id: str):
        try:
            cache.delete(story_id)
        except ValueError as exc:
            raise AssetNotFoundError(f"Story '{story_id}' not found.") from exc
        return {"ok": True}

    @app.post("/log")
    def save_log(request: LogRequest):
        """Persist a debug log file in the cache's logs directory."""
        try:
            path = cache.save_log(request.filename, request.content)
        except ValueError as exc:
            raise ClientRequestError(str(exc), status_code=400) from exc
        return {"ok": True, "filename": path.name}

    @app.post("/generate-image")
    def generate_image(request: GenerateImageRequest):
        asset = images.generate_image(request.prompt, caption=request.caption)
        _record("generate-image", request, asset)
        return asset.to_dict()

    @app.post("/generate-frame")
    def generate_frame(request: GenerateFrameRequest):
        asset = images.edit_image(
            _stored(request.image),
            request.prompt,
            caption=request.caption,
            reference_images=[_stored(reference) for reference in request.reference_assets],
        )
        _record("generate-frame", request, asset)
        return asset.to_dict()

    @app.post("/upload")
    def upload_file(request: UploadRequest):
        try:
            data = base64.b64decode(request.data_base64, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise ClientRequestError("data_base64 is not valid base64.", status_code=400) from exc
        asset = images.upload_file(data, request.mime_type, display_name=request.display_name)
        return asset.to_dict()

    @app.get(f"{DEFAULT_URL_PREFIX}/{{name}}")
    def get_image(name: str):
        return FileResponse(image_store.path_for(name))

    return app


def _register_error_handlers(app: FastAPI) -> None:
    def _respond(status_code: int, message: str) -> JSONResponse:
        return JSONResponse(status_code=status_code, content={"detail": message})

    @app.exception_handler(RequestValidationError)
    async def _invalid_request(request: Request, exc: RequestValidationError):
        return _respond(400, f"Invalid request: {exc.errors()}")

    @app.exception_handler(PlanValidationError)
    async def _invalid_plan(request: Request, exc: PlanValidationError):
        return _respond(400, str(exc))

    @app.exception_handler(ClientRequestError)
    async def _client_error(request: Request, exc: ClientRequestError):
        return _respond(exc.status_code or 400, str(exc))

    @app.exception_handler(AssetNotFoundError)
    async def _not_found(request: Request, exc: AssetNotFoundError):
        return _respond(404, str(exc))

    @app.exception_handler(BattlebookError)
    async def _server_error(request: Request, exc: BattlebookError):
        logger.error("Request to %s failed: %s", request.url.path, exc)
        return _respond(500, str(exc))


__all__ = ["create_app"]
