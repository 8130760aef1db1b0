import base64

import pytest
from fastapi.testclient import TestClient

from battlebook.server.app import create_app
from battlebook.storage.story_cache import hash_input_text

from conftest import BATTLE_TEXT, FakeCompletion, FakeImageService, plan_payload


@pytest.fixture
def completion():
    return FakeCompletion()


@pytest.fixture
def images(image_store):
    return FakeImageService(image_store)


@pytest.fixture
def client(settings, completion, images):
    app = create_app(settings, completion_fn=completion, image_service=images)
    return TestClient(app)


def _story_payload(story_id):
    return {"id": story_id, "name": "Battle of Testfield", "plan": plan_payload(), "assets": {}, "frames": []}


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


def test_plan_then_cache_then_hit(client, completion):
    response = client.post("/plan", json={"text": BATTLE_TEXT})
    assert response.status_code == 200
    body = response.json()
    story_hash = hash_input_text(BATTLE_TEXT)
    assert body["cached"] is False
    assert body["story_hash"] == story_hash
    assert body["plan"]["battle_identification"]["name"] == "Battle of Testfield"
    assert len(completion.calls) == 3

    stored = client.post("/story-cache", json={"story_hash": story_hash, "story": _story_payload(story_hash)})
    assert stored.json() == {"ok": True}

    again = client.post("/plan", json={"text": BATTLE_TEXT})
    assert again.json()["cached"] is True
    assert again.json()["story"]["id"] == story_hash
    assert len(completion.calls) == 3


def test_plan_requires_text_or_placeholder(client):
    response = client.post("/plan", json={})
    assert response.status_code == 400
    assert "Input text is required" in response.json()["detail"]


def test_invalid_plan_is_a_client_error(client, completion):
    broken = plan_payload()
    broken["factions"][1]["token_color"] = "blue"
    broken["factions"][1].pop("token_asset_name")
    completion.responses["battle_plan_base"] = {
        "battle_identification": broken["battle_identification"],
        "factions": broken["factions"],
    }

    response = client.post("/plan", json={"text": BATTLE_TEXT})

    assert response.status_code == 400
    assert "unique" in response.json()["detail"]


def test_invalid_story_payload_rejected(client):
    response = client.post("/story-cache", json={"story_hash": "abc", "story": {"id": "abc"}})
    assert response.status_code == 400


def test_request_validation_errors_are_400(client):
    response = client.post("/story-cache", json={"story": {}})
    assert response.status_code == 400
    assert "detail" in response.json()


def test_list_and_delete_stories(client):
    client.post("/story-cache", json={"story_hash": "bbb", "story": {**_story_payload("bbb"), "name": "Zulu"}})
    client.post("/story-cache", json={"story_hash": "aaa", "story": _story_payload("aaa")})

    listed = client.get("/stories").json()["stories"]
    assert [story["name"] for story in listed] == ["Battle of Testfield", "Zulu"]

    assert client.delete("/stories/aaa").json() == {"ok": True}
    assert client.delete("/stories/aaa").status_code == 404
    assert client.delete("/stories/..hidden").status_code == 404
    assert [story["id"] for story in client.get("/stories").json()["stories"]] == ["bbb"]


def test_save_log(client, settings):
    response = client.post("/log", json={"filename": "debug-1.log", "content": "line\n"})
    assert response.json() == {"ok": True, "filename": "debug-1.log"}
    assert (settings.cache_dir / "logs" / "debug-1.log").read_text(encoding="utf-8") == "line\n"

    assert client.post("/log", json={"filename": "../escape.log", "content": "x"}).status_code == 400
    assert client.post("/log", json={"filename": "images/abc.png", "content": "x"}).status_code == 400


def test_log_cannot_overwrite_cached_story(client):
    story_hash = hash_input_text(BATTLE_TEXT)
    assert client.post(
        "/story-cache", json={"story_hash": story_hash, "story": _story_payload(story_hash)}
    ).status_code == 200

    assert client.post("/log", json={"filename": f"{story_hash}.json", "content": "oops"}).status_code == 200

    response = client.post("/plan", json={"text": BATTLE_TEXT})
    assert response.json()["cached"] is True
    assert response.json()["story"]["id"] == story_hash
    assert [story["id"] for story in client.get("/stories").json()["stories"]] == [story_hash]


def test_generate_image_and_serve_it(client, images, settings):
    response = client.post("/generate-image", json={"prompt": "a neutral background", "caption": "Neutral Background"})
    assert response.status_code == 200
    asset = response.json()
    assert asset["url"].startswith("/images/")
    assert asset["caption"] == "Neutral Background"

    served = client.get(asset["url"])
    assert served.status_code == 200
    assert served.content == b"generated:a neutral background"

    assert list((settings.cache_dir / "requests").glob("*.json"))


def test_generate_frame_uses_stored_images(client, images):
    base = client.post("/generate-image", json={"prompt": "map", "caption": "Map"}).json()
    token = client.post("/generate-image", json={"prompt": "token", "caption": "Token"}).json()

    response = client.post(
        "/generate-frame",
        json={
            "image": base,
            "prompt": "place tokens",
            "caption": "Page 1 - Place token_blue",
            "reference_assets": [token],
        },
    )

    assert response.status_code == 200
    assert response.json()["caption"] == "Page 1 - Place token_blue"
    assert images.calls[-1][3] == (base["url"], token["url"])


def test_generate_frame_rejects_foreign_or_missing_images(client):
    foreign = client.post(
        "/generate-frame",
        json={"image": {"url": "https://example.com/map.png"}, "prompt": "edit"},
    )
    assert foreign.status_code == 400

    missing = client.post(
        "/generate-frame",
        json={"image": {"url": "/images/missing.png"}, "prompt": "edit"},
    )
    assert missing.status_code == 404


def test_upload(client, images):
    data = base64.b64encode(b"style guide").decode("ascii")
    response = client.post("/upload", json={"data_base64": data, "mime_type": "image/jpeg", "display_name": "guide"})
    assert response.status_code == 200
    assert response.json()["mime_type"] == "image/jpeg"
    assert client.get(response.json()["url"]).content == b"style guide"

    assert client.post("/upload", json={"data_base64": "not base64!"}).status_code == 400


def test_unknown_image_is_404(client):
    assert client.get("/images/nothing.png").status_code == 404
