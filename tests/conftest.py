from __future__ import annotations

from collections.abc import AsyncIterator, Callable, Iterator

import pytest
from fastapi.testclient import TestClient
from langchain_core.messages import AIMessageChunk, BaseMessage

from app.main import app, get_relay_service
from app.services.relay_service import RelayService


class FakeChatModel:
    """Stands in for ChatGroq: records what it was asked and streams canned chunks."""

    def __init__(
        self,
        chunks: list[str],
        fail_on_start: bool = False,
        fail_after: int | None = None,
    ) -> None:
        self.chunks = chunks
        self.fail_on_start = fail_on_start
        self.fail_after = fail_after
        self.calls: list[list[BaseMessage]] = []

    async def astream(self, messages: list[BaseMessage]) -> AsyncIterator[AIMessageChunk]:
        self.calls.append(messages)
        if self.fail_on_start:
            raise RuntimeError("upstream unavailable")
        for index, text in enumerate(self.chunks):
            if self.fail_after is not None and index == self.fail_after:
                raise RuntimeError("connection reset by upstream")
            yield AIMessageChunk(content=text)


@pytest.fixture
def relay_client() -> Iterator[Callable[..., TestClient]]:
    def _make(relay_service: RelayService, raise_server_exceptions: bool = True) -> TestClient:
        app.dependency_overrides[get_relay_service] = lambda: relay_service
        return TestClient(app, raise_server_exceptions=raise_server_exceptions)

    yield _make
    app.dependency_overrides.clear()
