import base64
from unittest.mock import MagicMock

from battlebook.pdf_generation import builder as builder_module
from battlebook.pdf_generation.builder import StorybookPDFBuilder
from battlebook.common.asset import GeneratedAsset
from battlebook.planning.plan import BattlePlan
from battlebook.storage.image_store import ImageStore
from battlebook.storage.story import StoredStory

# 1x1 transparent PNG
PIXEL_PNG = base64.b64decode(
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNkYPhfDwAChwGA60e6kgAAAABJRU5ErkJggg=="
)


def _story(plan_data, assets, frames):
    plan = BattlePlan.from_mapping(plan_data)
    return StoredStory(id="abc", name=plan.identification.name, plan=plan, assets=assets, frames=frames)


def test_build_pdf_from_local_images(tmp_path, plan_data):
    store = ImageStore(tmp_path / "images")
    base = store.save(PIXEL_PNG, "image/png", caption="Tactical Map (Base Asset)")
    story = _story(plan_data, {"tactical_map": base}, [[base], []])
    output = tmp_path / "out" / "story.pdf"

    StorybookPDFBuilder(image_store=store).build(story, output)

    data = output.read_bytes()
    assert data.startswith(b"%PDF")
    assert output.stat().st_size > 1000


def test_build_from_yaml_downloads_remote_images(tmp_path, plan_data, monkeypatch):
    remote = GeneratedAsset(
        url="/images/remote.png",
        uri="/images/remote.png",
        mime_type="image/png",
        caption="Remote map",
    )
    story = _story(plan_data, {"tactical_map": remote}, [[remote], []])
    story_path = tmp_path / "story.yaml"
    story_path.write_text(story.to_yaml(), encoding="utf-8")

    response = MagicMock()
    response.content = PIXEL_PNG
    fake_get = MagicMock(return_value=response)
    monkeypatch.setattr(builder_module.requests, "get", fake_get)

    output = tmp_path / "story.pdf"
    StorybookPDFBuilder(base_url="http://backend:3001/").build_from_yaml(story_path, output)

    assert output.read_bytes().startswith(b"%PDF")
    fake_get.assert_called_with("http://backend:3001/images/remote.png", timeout=30.0)


def test_missing_images_do_not_stop_rendering(tmp_path, plan_data):
    missing = GeneratedAsset(url="/images/gone.png", uri="/nowhere/gone.png", mime_type="image/png")
    story = _story(plan_data, {"tactical_map": missing}, [[], []])
    output = tmp_path / "story.pdf"

    StorybookPDFBuilder(image_store=ImageStore(tmp_path / "images")).build(story, output)

    assert output.read_bytes().startswith(b"%PDF")
