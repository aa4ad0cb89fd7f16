"""Shared fixtures: an in-memory storefront gateway behind httpx.MockTransport."""

import json
from typing import Any, Callable, Optional, Union
from urllib.parse import parse_qs

import httpx
import pytest

from florist_server.florist_client import FloristClient
from florist_server.models import CardData, PaymentKey
from florist_server.session import SessionStore
from florist_server.storefront import Storefront

BASE_URL = "http://gateway.test/api"

TOTAL_RESPONSE = {
    "SUBTOTAL": 10.00,
    "TAXTOTAL": 1.00,
    "DELIVERYCHARGETOTAL": 5.00,
    "ORDERTOTAL": 16.00,
}

ROSES = {
    "CODE": "R1",
    "NAME": "Red Roses",
    "PRICE": 59.99,
    "DESCRIPTION": "A dozen red roses",
    "SMALL": "https://img.test/r1-small.jpg",
    "LARGE": "https://img.test/r1-large.jpg",
    "DIMENSION": "18in H x 12in W",
}

Handler = Callable[[httpx.Request], Union[httpx.Response, dict, list]]


class FakeGateway:
    """Routes requests by (method, path) and records what was sent."""

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], Handler] = {}
        self.calls: list[httpx.Request] = []

    def on(self, method: str, path: str, response: Any = None, status: int = 200) -> None:
        """Register a fixed JSON response, or a callable producing one."""
        if callable(response):
            self.routes[(method, path)] = response
        else:
            self.routes[(method, path)] = lambda request: httpx.Response(status, json=response)

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        path = request.url.path
        if path.startswith("/api"):
            path = path[len("/api"):]
        handler = self.routes.get((request.method, path))
        if handler is None:
            return httpx.Response(404, json={"error": "Not found", "message": f"No route {path}"})
        result = handler(request)
        if isinstance(result, httpx.Response):
            return result
        return httpx.Response(200, json=result)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def requests_to(self, method: str, path: str) -> list[httpx.Request]:
        return [
            r for r in self.calls if r.method == method and r.url.path == f"/api{path}"
        ]

    def count(self, method: str, path: str) -> int:
        return len(self.requests_to(method, path))


def query(request: httpx.Request) -> dict[str, str]:
    return {k: v[0] for k, v in parse_qs(request.url.query.decode()).items()}


def body(request: httpx.Request) -> Any:
    return json.loads(request.content)


class FakeTokenizer:
    def __init__(self, token: Optional[str] = "tok-123") -> None:
        self.token = token
        self.cards: list[CardData] = []

    async def tokenize(self, key: PaymentKey, card: CardData) -> str:
        self.cards.append(card)
        return self.token


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
async def client(gateway):
    florist = FloristClient(BASE_URL, transport=gateway.transport)
    yield florist
    await florist.close()


@pytest.fixture
def store(tmp_path) -> SessionStore:
    return SessionStore(str(tmp_path / "session.json"))


@pytest.fixture
def tokenizer() -> FakeTokenizer:
    return FakeTokenizer()


@pytest.fixture
async def shop(client, store, tokenizer):
    storefront = Storefront(client, store, tokenizer, debounce_seconds=0.01)
    yield storefront
    await storefront.totals.settle()
