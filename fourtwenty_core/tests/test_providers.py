import pytest

from fourtwenty_core.api import service
from fourtwenty_core.providers import create_provider
from fourtwenty_core.providers.openai_client import OpenAIClient
from fourtwenty_core.providers.registry import OPENAI_CONFIG, select_model


class DummySettings:
    openai_api_key = "sk-test-key"
    openai_base_url = "https://api.openai.com/v1"
    http_timeout = 1.0


def test_create_provider_default():
    provider = create_provider(cfg=DummySettings())
    assert isinstance(provider, OpenAIClient)


def test_create_provider_unknown():
    with pytest.raises(KeyError):
        create_provider("kimi")


def test_default_provider_is_built_once(monkeypatch):
    monkeypatch.setattr(service, "_provider", None)
    first = service.get_default_provider(DummySettings())
    assert service.get_default_provider(DummySettings()) is first


def test_select_model():
    assert select_model(OPENAI_CONFIG, has_images=False).provider_model == "gpt-3.5-turbo"
    assert select_model(OPENAI_CONFIG, has_images=True).provider_model == "gpt-4-vision-preview"
