"""Shared fixtures: a fake upstream standing in for the asset host and config API."""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

ASSETS_URL = "https://localhost/asset-url/"
API_URL = "https://localhost/api-url/"

MANIFEST = {
    "hash": "TESTHASH",
    "apps": ["test", "other-app"],
    "default": "test",
    "config": {
        "timestamp": 1234,
        "clientVersion": "1.0",
    },
}

CONFIG = {
    "cdn_prefix": "https://localhost/",
    "idle_timeout": 1800000,
}

INDEX = (
    "<html>"
    "<head>"
    '<link href="test/style.css" rel="stylesheet">'
    "</head>"
    "<body>"
    '<script src="/home/config.js"></script>'
    '<script type="text/javascript" src="//external-site/script.js"></script>'
    '<script type="text/javascript" src="test/app.js"></script>'
    "</body>"
    "</html>"
)


class FakeUpstream:
    """Serves canned bodies by URL; an Exception value is raised instead of returned."""

    def __init__(self, responses):
        self.responses = dict(responses)
        self.delay = 0.0
        self.mock = AsyncMock(side_effect=self._fetch)

    async def _fetch(self, url, **kwargs):
        if self.delay:
            await asyncio.sleep(self.delay)
        if url not in self.responses:
            raise RuntimeError(f"URL not matched: {url}")
        value = self.responses[url]
        if isinstance(value, Exception):
            raise value
        return value

    def calls(self, url: str) -> int:
        return sum(1 for call in self.mock.call_args_list if call.args[0] == url)


def default_responses():
    return {
        ASSETS_URL + "manifest.json": MANIFEST,
        API_URL + "config.json": CONFIG,
        ASSETS_URL + "test/index.html": INDEX,
        ASSETS_URL + "other-app/index.html": INDEX.replace("test/", "other-app/"),
    }


@pytest.fixture
def upstream():
    fake = FakeUpstream(default_responses())
    with patch("edge_router.services.cache.fetch_resource", new=fake.mock):
        yield fake
