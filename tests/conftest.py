"""Shared fakes for the article studio tests."""

import json
from typing import Callable, Dict, List, Optional, Union

import httpx
import pytest

from shared.context import FlowContext
from shared.settings import Settings

D0 = "data:image/png;base64,ZDA="
D1 = "data:image/png;base64,ZDE="
D2 = "data:image/png;base64,ZDI="


class FakeImageGenerator:
    """
    Async image collaborator with scripted outcomes per prompt.

    An outcome is a data URI string, any other string (returned as-is), or
    an exception instance (raised).
    """

    def __init__(self, outcomes: Optional[Dict[str, Union[str, Exception]]] = None, default: str = D0) -> None:
        self.outcomes = outcomes or {}
        self.default = default
        self.prompts: List[str] = []

    async def __call__(self, prompt: str) -> str:
        self.prompts.append(prompt)
        outcome = self.outcomes.get(prompt, self.default)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def make_ctx(config: Optional[dict] = None, **settings) -> FlowContext:
    # model_validate skips the environment and .env sources
    return FlowContext(Settings.model_validate(settings), config=config, flow_name="test")


def json_response(payload: dict, status_code: int = 200) -> httpx.Response:
    return httpx.Response(status_code, content=json.dumps(payload).encode(), headers={"content-type": "application/json"})


def mock_client_factory(handler: Callable[[httpx.Request], httpx.Response]):
    """Replacement for a module's _http_client(timeout, ...) that routes to handler."""

    def factory(*args, **kwargs) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))

    return factory


@pytest.fixture
def ctx() -> FlowContext:
    return make_ctx()
