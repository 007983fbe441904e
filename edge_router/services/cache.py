"""Per-instance memoisation of the three upstream resources.

Each slot holds the :class:`asyncio.Task` performing the download rather than
its result, so callers that arrive while a download is in flight await that
same task instead of starting a second one.  A task that ends in an exception
is dropped from its slot as soon as it completes; the next caller starts a
fresh download with its own attempt budget.
"""

import asyncio
import logging
from functools import partial
from typing import Any, Awaitable, Callable, Dict

from pydantic import ValidationError

from edge_router.models.manifest import Manifest
from edge_router.services.fetcher import DEFAULT_ATTEMPTS, TIMEOUT, fetch_resource

logger = logging.getLogger(__name__)

MANIFEST_KEY = "manifest"
CONFIG_KEY = "config"


class ManifestError(ValueError):
    """Raised when an upstream JSON document does not have the expected shape."""


def index_key(app_id: str) -> str:
    return f"index:{app_id}"


class ResourceCache:
    def __init__(
        self,
        assets_url: str,
        api_url: str,
        *,
        fetch_attempts: int = DEFAULT_ATTEMPTS,
        fetch_timeout: float = TIMEOUT,
        fetch_backoff: float = 0,
    ) -> None:
        self.assets_url = assets_url
        self.api_url = api_url
        self.fetch_attempts = fetch_attempts
        self.fetch_timeout = fetch_timeout
        self.fetch_backoff = fetch_backoff
        self._entries: Dict[str, asyncio.Task] = {}

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    # ------------------------------------------------------------------
    # Public accessors
    # ------------------------------------------------------------------

    async def get_manifest(self) -> Manifest:
        return await self._get(MANIFEST_KEY, self._load_manifest)

    async def get_global_config(self) -> Dict[str, Any]:
        return await self._get(CONFIG_KEY, self._load_config)

    async def get_app_index(self, app_id: str) -> str:
        return await self._get(index_key(app_id), partial(self._load_index, app_id))

    async def warm(self) -> None:
        """Start the manifest and config downloads without waiting on a request."""
        results = await asyncio.gather(
            self.get_manifest(), self.get_global_config(), return_exceptions=True
        )
        for result in results:
            if isinstance(result, Exception):
                logger.warning("Cache warm-up failed: %s", result)

    def clear(self) -> None:
        self._entries.clear()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _get(self, key: str, loader: Callable[[], Awaitable[Any]]) -> Any:
        task = self._entries.get(key)
        if task is None:
            task = asyncio.ensure_future(loader())
            self._entries[key] = task
            task.add_done_callback(partial(self._discard_failed, key))
        # shield: a cancelled caller must not cancel the download other callers share
        return await asyncio.shield(task)

    def _discard_failed(self, key: str, task: asyncio.Task) -> None:
        if not task.cancelled() and task.exception() is None:
            return
        if self._entries.get(key) is task:
            logger.info("Discarding failed cache entry %s", key)
            del self._entries[key]

    async def _fetch(self, url: str, parse_json: bool) -> Any:
        return await fetch_resource(
            url,
            parse_json=parse_json,
            max_attempts=self.fetch_attempts,
            timeout=self.fetch_timeout,
            backoff=self.fetch_backoff,
        )

    async def _load_manifest(self) -> Manifest:
        logger.info("Fetching manifest")
        data = await self._fetch(self.assets_url + "manifest.json", parse_json=True)
        try:
            return Manifest.model_validate(data)
        except ValidationError as exc:
            raise ManifestError(f"Invalid manifest: {exc}") from exc

    async def _load_config(self) -> Dict[str, Any]:
        logger.info("Downloading config")
        data = await self._fetch(self.api_url + "config.json", parse_json=True)
        if not isinstance(data, dict):
            raise ManifestError("Global config must be a JSON object.")
        return data

    async def _load_index(self, app_id: str) -> str:
        logger.info("Fetching site index for %s", app_id)
        return await self._fetch(self.assets_url + app_id + "/index.html", parse_json=False)
