import copy
import json

import pytest

from battlebook.common.llm import ChatResult
from battlebook.common.settings import GenerationSettings
from battlebook.storage.image_store import ImageStore

BATTLE_TEXT = "Alpha held the ridge at Testfield while Beta marched up from the river."

BASE_PART = {
    "battle_identification": {
        "name": "Battle of Testfield",
        "context": "Testfield, summer 1863",
        "narrative_summary": "Alpha defends the ridge and Beta attacks from the river.",
    },
    "factions": [
        {
            "name": "Alpha",
            "token_color": "blue",
            "token_asset_name": "token_blue",
            "token_feature": "a kepi",
            "token_description": "A single blue wooden game token with a kepi, on a white background.",
        },
        {
            "name": "Beta",
            "token_color": "gray",
            "token_asset_name": "token_gray",
            "token_feature": "a slouch hat",
            "token_description": "A single gray wooden game token with a slouch hat, on a white background.",
        },
    ],
}

MAPS_PART = {
    "maps": [
        {
            "map_type": "tactical",
            "defining_features_description": "A long ridge with a river to the south.",
            "key_landmarks_description": "The town of Testfield at the center.",
            "map_asset_name": "tactical_map",
        }
    ]
}

STORYBOARD_PART = {
    "storyboard": [
        {
            "frame": 1,
            "description": "Alpha lines up on the ridge as Beta advances.",
            "base_asset": "tactical_map",
            "source_text": "Alpha held the ridge at Testfield",
            "placements": [
                {
                    "token_asset_name": "token_blue",
                    "location": "along the ridge",
                    "amount": 5,
                    "density": "a tight line",
                }
            ],
            "movements": [
                {
                    "starting_point": "the river",
                    "end_point": "the ridge",
                    "movement_type": "advance",
                    "token_asset_name": "token_gray",
                }
            ],
            "labels": [{"text": "Testfield", "location": "the town", "context": "the town"}],
        },
        {
            "frame": 2,
            "description": "The field is quiet again.",
            "base_asset": "tactical_map",
            "source_text": "",
            "placements": [],
            "movements": [],
            "labels": [],
        },
    ]
}


def plan_payload():
    merged = {}
    for part in (BASE_PART, MAPS_PART, STORYBOARD_PART):
        merged.update(copy.deepcopy(part))
    return merged


class FakeCompletion:
    """Answers each planning stage with a canned JSON object, selected by schema name."""

    def __init__(self, responses=None):
        self.responses = responses or {
            "battle_plan_base": BASE_PART,
            "battle_plan_maps": MAPS_PART,
            "battle_plan_storyboard": STORYBOARD_PART,
        }
        self.calls = []

    def __call__(self, **kwargs):
        self.calls.append(kwargs)
        name = kwargs["response_format"]["json_schema"]["name"]
        response = self.responses[name]
        if isinstance(response, list):
            response = response.pop(0)
        if isinstance(response, Exception):
            raise response
        text = response if isinstance(response, str) else json.dumps(response)
        return ChatResult(text=text, raw=None)

    @property
    def stages(self):
        return [call["response_format"]["json_schema"]["name"] for call in self.calls]


class FakeImageService:
    """Image service that writes deterministic bytes into a real ImageStore."""

    def __init__(self, store, *, failures=None):
        self.store = store
        self.calls = []
        # caption -> list of exceptions raised on successive calls
        self.failures = failures or {}
        self.before_call = None

    def _maybe_fail(self, caption):
        if self.before_call is not None:
            self.before_call(caption)
        pending = self.failures.get(caption)
        if pending:
            raise pending.pop(0)

    def generate_image(self, prompt, *, caption=""):
        text = getattr(prompt, "text", prompt)
        self.calls.append(("generate", caption, text, ()))
        self._maybe_fail(caption)
        return self.store.save(f"generated:{text}".encode("utf-8"), "image/png", caption=caption)

    def edit_image(self, base_image, prompt, *, caption="", reference_images=()):
        text = getattr(prompt, "text", prompt)
        refs = tuple(asset.url for asset in reference_images)
        self.calls.append(("edit", caption, text, (base_image.url,) + refs))
        self._maybe_fail(caption)
        data = f"edit:{base_image.url}:{text}".encode("utf-8")
        return self.store.save(data, "image/png", caption=caption)

    def upload_file(self, data, mime_type, *, display_name=None):
        self.calls.append(("upload", display_name or "", "", ()))
        return self.store.save(data, mime_type, caption=display_name or "")

    @property
    def captions(self):
        return [caption for _kind, caption, _text, _refs in self.calls]


def no_sleep(seconds):
    return None


@pytest.fixture
def plan_data():
    return plan_payload()


@pytest.fixture
def image_store(tmp_path):
    return ImageStore(tmp_path / "images")


@pytest.fixture
def fake_images(image_store):
    return FakeImageService(image_store)


@pytest.fixture
def settings(tmp_path):
    return GenerationSettings(
        cache_dir=tmp_path,
        plan_api_key="test-key",
        replicate_api_token="test-token",
        plan_stage_delay_seconds=0,
        image_call_delay_seconds=0,
        retry_delay_seconds=0,
    )
