"""Shared fixtures: settings, a counting stub provider, and an isolated app per test."""

import pytest
from fastapi.testclient import TestClient

from config import Settings
from exceptions import UpstreamError
from llm_provider import LLMProvider
from main import create_app
from models import ChatRequest, UpstreamReply


class StubProvider(LLMProvider):
    """Upstream stand-in that counts dispatches and can be told to fail."""

    def __init__(self, reply: str = "Hello from the stub", fail_with: UpstreamError | None = None):
        self.reply = reply
        self.fail_with = fail_with
        self.calls: list[ChatRequest] = []

    @property
    def call_count(self) -> int:
        return len(self.calls)

    async def complete(self, chat_request: ChatRequest) -> UpstreamReply:
        self.calls.append(chat_request)
        if self.fail_with is not None:
            raise self.fail_with
        return UpstreamReply(reply=self.reply, model=f"{chat_request.model}-2024-07-18")


@pytest.fixture
def settings() -> Settings:
    return Settings(openai_api_key="sk-test", max_history=3, max_tokens=600, cache_limit=2, rate_limit=1000)


@pytest.fixture
def provider() -> StubProvider:
    return StubProvider()


@pytest.fixture
def client(settings, provider):
    app = create_app(settings=settings, provider=provider)
    with TestClient(app) as test_client:
        yield test_client
