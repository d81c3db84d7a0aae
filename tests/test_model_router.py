"""Unit tests for `ModelRouter` provider selection and metadata."""

from __future__ import annotations

from typing import Dict

import pytest

from src.scout.services.model_router import ModelRouter, ProviderSelection


def _router(values: Dict[str, str]) -> ModelRouter:
    """Router over an explicit environment, independent of the process env."""

    return ModelRouter(env=dict(values))


def test_router_prefers_openai_for_conversation():
    router = _router({"OPENAI_API_KEY": "openai", "XAI_API_KEY": "xai"})
    selection = router.select_provider("conversation")
    assert isinstance(selection, ProviderSelection)
    assert selection.name == "openai"
    assert selection.model == "gpt-4o-mini"
    assert router.base_url_for(selection) == "https://api.openai.com/v1"
    assert router.api_key_for(selection) == "openai"


def test_router_falls_back_to_xai():
    selection = _router({"XAI_API_KEY": "xai"}).select_provider()
    assert selection.name == "xai"
    assert selection.api_key_env == "XAI_API_KEY"


def test_local_provider_needs_an_explicit_base_url():
    with pytest.raises(RuntimeError):
        _router({}).select_provider()

    router = _router({"LOCAL_BASE_URL": "http://127.0.0.1:8080/v1", "LOCAL_MODEL": "qwen2.5"})
    selection = router.select_provider()
    assert selection.name == "local"
    assert selection.requires_api_key is False
    assert selection.model == "qwen2.5"
    assert router.base_url_for(selection) == "http://127.0.0.1:8080/v1"
    assert router.api_key_for(selection) is None


def test_preferred_provider_moves_to_the_front():
    router = _router({"OPENAI_API_KEY": "openai", "XAI_API_KEY": "xai", "SCOUT_MODEL_PROVIDER": "xai"})
    assert router.select_provider().name == "xai"


def test_preferred_provider_without_credentials_is_skipped():
    router = _router({"OPENAI_API_KEY": "openai", "SCOUT_MODEL_PROVIDER": "xai"})
    assert router.select_provider().name == "openai"


def test_scout_model_overrides_provider_default():
    router = _router({"OPENAI_API_KEY": "openai", "SCOUT_MODEL": "gpt-4.1-mini"})
    assert router.select_provider().model == "gpt-4.1-mini"


def test_allowed_providers_filter():
    router = ModelRouter(env={"OPENAI_API_KEY": "openai", "XAI_API_KEY": "xai"}, allowed_providers=["xai"])
    assert router.select_provider().name == "xai"


def test_resolve_unknown_provider_raises():
    with pytest.raises(KeyError):
        _router({}).resolve_provider("gemini")
