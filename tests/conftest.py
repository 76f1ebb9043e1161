import asyncio
import json
from pathlib import Path

import pytest

FIXTURES = Path(__file__).parent / "fixtures"

MODEM_IP = "10.0.0.1"
API = f"https://{MODEM_IP}/rest/v1/cablemodem"


def load_fixture(*parts: str) -> bytes:
    return FIXTURES.joinpath(*parts).read_bytes()


class FakeResponse:
    """Just enough of aiohttp.ClientResponse for the code under test."""

    def __init__(self, status: int = 200, body: bytes | str | dict | list = b""):
        self.status = status
        if isinstance(body, (dict, list)):
            body = json.dumps(body)
        if isinstance(body, str):
            body = body.encode()
        self.body = body

    async def read(self) -> bytes:
        return self.body

    async def text(self) -> str:
        return self.body.decode()


class _FakeRequest:
    def __init__(self, session: "FakeSession", method: str, url: str, kwargs: dict):
        self.session = session
        self.method = method
        self.url = url
        self.kwargs = kwargs

    async def __aenter__(self) -> FakeResponse:
        s = self.session
        s.calls.append({"method": self.method, "url": self.url, **self.kwargs})
        s.in_flight += 1
        s.max_in_flight = max(s.max_in_flight, s.in_flight)
        try:
            await asyncio.sleep(s.delays.get(self.url, 0))
            route = s.routes.get(self.url, FakeResponse(404, b"not found"))
            if callable(route):
                route = route(self.method, self.url, self.kwargs)
            if isinstance(route, BaseException):
                raise route
            return route
        except BaseException:
            s.in_flight -= 1
            raise

    async def __aexit__(self, *exc) -> None:
        self.session.in_flight -= 1


class FakeSession:
    """Stands in for aiohttp.ClientSession.

    `routes` maps a URL to a FakeResponse, an exception to raise, or a callable(method, url, kwargs) returning
    either. `delays` maps a URL to seconds to wait before answering.
    """

    def __init__(self, routes: dict | None = None, delays: dict | None = None):
        self.routes = dict(routes or {})
        self.delays = dict(delays or {})
        self.calls: list[dict] = []
        self.in_flight = 0
        self.max_in_flight = 0

    def get(self, url: str, **kwargs) -> _FakeRequest:
        return _FakeRequest(self, "GET", url, kwargs)

    def post(self, url: str, **kwargs) -> _FakeRequest:
        return _FakeRequest(self, "POST", url, kwargs)

    def calls_to(self, url: str) -> list[dict]:
        return [c for c in self.calls if c["url"] == url]


@pytest.fixture
def superhub5_routes():
    """A healthy hub."""
    return {
        f"{API}/downstream": FakeResponse(200, load_fixture("superhub5", "downstream.json")),
        f"{API}/upstream": FakeResponse(200, load_fixture("superhub5", "upstream.json")),
        f"{API}/serviceflows": FakeResponse(200, load_fixture("superhub5", "serviceflows.json")),
        f"{API}/eventlog": FakeResponse(200, load_fixture("superhub5", "eventlog.json")),
    }


@pytest.fixture
def full_document():
    """What the three stats endpoints merge into."""
    document = {}
    for name in ("downstream.json", "upstream.json", "serviceflows.json"):
        document.update(json.loads(load_fixture("superhub5", name)))
    return document
