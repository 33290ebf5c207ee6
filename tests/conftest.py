import asyncio

import pytest

from errors import DeliveryFailure
from models import PriceChange, TokenRecord

NOW = 1_700_000_000.0


class FakeResponse:
    def __init__(self, status=200, payload=None, json_error=None):
        self.status = status
        self.payload = payload
        self.json_error = json_error

    async def json(self, content_type="application/json"):
        if self.json_error is not None:
            raise self.json_error
        return self.payload

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


class FakeSession:
    """Minimal stand-in for aiohttp.ClientSession.get()."""

    def __init__(self, routes=None, default=None):
        # routes: {url: FakeResponse | Exception | callable(url, params) -> FakeResponse}
        self.routes = routes or {}
        self.default = default
        self.calls = []

    def get(self, url, params=None, headers=None, timeout=None):
        self.calls.append({"url": url, "params": params, "headers": headers, "timeout": timeout})
        route = self.routes.get(url, self.default)
        if route is None:
            route = FakeResponse(status=404)
        if isinstance(route, Exception):
            raise route
        if callable(route):
            route = route(url, params)
        return route


class FakeChannel:
    def __init__(self, fail=False, error=None):
        self.fail = fail
        self.error = error
        self.messages = []

    def send_markdown(self, text):
        if self.error is not None:
            raise self.error
        if self.fail:
            raise DeliveryFailure("channel down")
        self.messages.append(text)


class FakeSource:
    def __init__(self, name, batches=None, error=None):
        self.name = name
        self.batches = list(batches or [])
        self.error = error
        self.calls = 0

    async def fetch(self, session):
        self.calls += 1
        if self.error is not None:
            raise self.error
        if not self.batches:
            return []
        if len(self.batches) == 1:
            return list(self.batches[0])
        return list(self.batches.pop(0))


def make_record(address="Mint1111111111111111111111111111111111111", symbol="PEPE", name="Pepe",
                price=0.001, liquidity=10_000.0, volume=5_000.0, market_cap=50_000.0,
                age_seconds=3 * 3600, source="test", **extra):
    return TokenRecord(
        address=address,
        symbol=symbol,
        name=name,
        price_usd=price,
        liquidity_usd=liquidity,
        volume_24h_usd=volume,
        market_cap_usd=market_cap,
        created_at=None if age_seconds is None else NOW - age_seconds,
        price_change=extra.pop("price_change", PriceChange(m5=2.0, h1=5.0, h24=12.0)),
        source=source,
        **extra,
    )


@pytest.fixture
def record():
    return make_record()


@pytest.fixture
def run():
    return asyncio.run
