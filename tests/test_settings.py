from pathlib import Path

import pytest

from battlebook.common.settings import (
    DEFAULT_IMAGE_MODEL,
    DEFAULT_PLAN_MODEL,
    GenerationMode,
    GenerationSettings,
)

_ENV_VARS = [
    "BATTLEBOOK_PLAN_MODEL",
    "LITELLM_MODEL",
    "BATTLEBOOK_PLAN_API_KEY",
    "GEMINI_API_KEY",
    "LITELLM_API_KEY",
    "BATTLEBOOK_IMAGE_MODEL",
    "REPLICATE_MODEL",
    "BATTLEBOOK_EDIT_MODEL",
    "REPLICATE_API_TOKEN",
    "BATTLEBOOK_CACHE_DIR",
    "BATTLEBOOK_GENERATION_MODE",
    "BATTLEBOOK_MAPS_STAGE_CONTEXT",
    "BATTLEBOOK_STYLE_GUIDE",
    "BATTLEBOOK_SERVER_URL",
]


@pytest.fixture
def clean_env(monkeypatch):
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def test_defaults(clean_env):
    settings = GenerationSettings.from_env()
    assert settings.plan_model == DEFAULT_PLAN_MODEL
    assert settings.image_model == DEFAULT_IMAGE_MODEL
    assert settings.resolved_edit_model == DEFAULT_IMAGE_MODEL
    assert settings.cache_dir == Path("tmp")
    assert settings.generation_mode is GenerationMode.FULL
    assert settings.plan_stage_delay_seconds == 5.0
    assert settings.image_call_delay_seconds == 15.0
    assert settings.maps_stage_context is False
    assert settings.style_guide_path is None


def test_env_overrides(clean_env, tmp_path):
    clean_env.setenv("LITELLM_MODEL", "openai/gpt-4o-mini")
    clean_env.setenv("GEMINI_API_KEY", "gemini-key")
    clean_env.setenv("BATTLEBOOK_EDIT_MODEL", "black-forest-labs/flux-kontext-pro")
    clean_env.setenv("BATTLEBOOK_CACHE_DIR", str(tmp_path))
    clean_env.setenv("BATTLEBOOK_GENERATION_MODE", "plan-only")
    clean_env.setenv("BATTLEBOOK_MAPS_STAGE_CONTEXT", "yes")

    settings = GenerationSettings.from_env()

    assert settings.plan_model == "openai/gpt-4o-mini"
    assert settings.plan_api_key == "gemini-key"
    assert settings.resolved_edit_model == "black-forest-labs/flux-kontext-pro"
    assert settings.cache_dir == tmp_path
    assert settings.generation_mode is GenerationMode.PLAN_ONLY
    assert settings.maps_stage_context is True


def test_from_yaml(clean_env, tmp_path):
    config_file = tmp_path / "settings.yaml"
    config_file.write_text(
        """
cache_dir: custom/cache
generation_mode: assets-only
retry_attempts: 5
style_guide_path: guides/map_style.jpg
"""
    )

    settings = GenerationSettings.from_yaml(config_file)

    assert settings.cache_dir == Path("custom/cache")
    assert settings.generation_mode is GenerationMode.ASSETS_ONLY
    assert settings.style_guide_path == Path("guides/map_style.jpg")
    policy = settings.retry_policy()
    assert policy.max_attempts == 5
    assert policy.delay_seconds == 5.0


def test_unknown_keys_rejected():
    with pytest.raises(ValueError, match="Unknown settings keys: colour"):
        GenerationSettings.from_mapping({"colour": "blue"})


def test_invalid_mode_rejected():
    with pytest.raises(ValueError):
        GenerationSettings.from_mapping({"generation_mode": "everything"})
