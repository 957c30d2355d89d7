"""Tests for the generation service client.

These use respx to mock the edge function and test the client in isolation.
"""

import json
from uuid import uuid4

import httpx
import pytest
import respx

from mystery.config import get_settings
from mystery.errors import GenerationTriggerError
from mystery.services.generation_client import (
    FakeGenerationClient,
    GenerationClient,
    get_generation_client,
)

FUNCTION_URL = "https://project.supabase.test/functions/v1/mystery-webhook-trigger"


@pytest.fixture
def client() -> GenerationClient:
    return GenerationClient(function_url=FUNCTION_URL, service_key="service-key", timeout_s=5)


class TestGenerationClient:
    @respx.mock
    def test_trigger_posts_conversation_and_mode(self, client):
        route = respx.post(FUNCTION_URL).respond(200, json={"ok": True})
        conversation_id = uuid4()

        client.trigger(conversation_id, test_mode=True)

        assert route.called
        request = route.calls.last.request
        assert json.loads(request.content) == {
            "conversationId": str(conversation_id),
            "testMode": True,
        }
        assert request.headers["Authorization"] == "Bearer service-key"
        assert request.headers["apikey"] == "service-key"

    @respx.mock
    def test_error_status_raises(self, client):
        respx.post(FUNCTION_URL).respond(503, text="overloaded")

        with pytest.raises(GenerationTriggerError) as exc_info:
            client.trigger(uuid4(), test_mode=False)

        assert exc_info.value.status_code == 503
        assert "overloaded" in exc_info.value.message

    @respx.mock
    def test_transport_error_raises(self, client):
        respx.post(FUNCTION_URL).mock(side_effect=httpx.ConnectError("refused"))

        with pytest.raises(GenerationTriggerError, match="unreachable"):
            client.trigger(uuid4(), test_mode=False)


class TestFakeGenerationClient:
    def test_records_calls(self):
        fake = FakeGenerationClient()
        first, second = uuid4(), uuid4()

        fake.trigger(first, test_mode=False)
        fake.trigger(second, test_mode=True)
        fake.trigger(first, test_mode=False)

        assert fake.call_count() == 3
        assert fake.call_count(first) == 2

        fake.clear()
        assert fake.call_count() == 0

    def test_fail_with_raises_after_recording(self):
        fake = FakeGenerationClient(fail_with="down")

        with pytest.raises(GenerationTriggerError, match="down"):
            fake.trigger(uuid4(), test_mode=False)

        assert fake.call_count() == 1


class TestGetGenerationClient:
    def test_fake_without_supabase(self):
        assert isinstance(get_generation_client(), FakeGenerationClient)

    def test_real_client_when_configured(self, monkeypatch):
        monkeypatch.setenv("SUPABASE_URL", "https://project.supabase.test/")
        monkeypatch.setenv("SUPABASE_SERVICE_KEY", "service-key")
        get_settings.cache_clear()

        assert get_settings().generation_function_url == FUNCTION_URL
        assert isinstance(get_generation_client(), GenerationClient)
