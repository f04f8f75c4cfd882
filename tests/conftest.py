import json
from typing import Any, Callable, Dict, List, Union

import httpx
import pytest
from dotenv import find_dotenv, load_dotenv

from atlas_mcp.config import Settings
from atlas_mcp.tools.client import AtlasClient, set_client

load_dotenv(find_dotenv())

Reply = Union[httpx.Response, Exception, Callable[[httpx.Request], httpx.Response]]


class StubAtlas:
    """Canned Azure Maps replies keyed by URL path.

    Replies queued for a path are served in order; the last one repeats.
    """

    def __init__(self) -> None:
        self.routes: Dict[str, List[Reply]] = {}
        self.requests: List[httpx.Request] = []

    def add(self, path: str, *replies: Reply) -> None:
        self.routes[path] = list(replies)

    def calls(self, path: str) -> List[httpx.Request]:
        return [request for request in self.requests if request.url.path == path]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        queue = self.routes.get(request.url.path)
        if not queue:
            return httpx.Response(404, json={"error": {"code": "NotFound", "message": "no stub"}})
        reply = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(reply, Exception):
            raise reply
        if callable(reply):
            return reply(request)
        return reply


@pytest.fixture
def settings() -> Settings:
    return Settings(subscription_key="test-key", backoff_seconds=0.0, max_retries=2)


@pytest.fixture
def atlas(settings: Settings):
    stub = StubAtlas()
    client = AtlasClient(settings, transport=httpx.MockTransport(stub))
    set_client(client)
    yield stub
    set_client(None)


def envelope(result: Dict[str, Any]) -> Dict[str, Any]:
    return json.loads(result["content"][0]["text"])
