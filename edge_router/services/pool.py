"""Reuse of router instances (and their warm caches) across invocations.

Routers are keyed by a fingerprint of their configuration.  Entries are never
evicted: a long-lived process that sees many distinct configurations keeps one
router per configuration.  A new router starts downloading its manifest and
global config straight away when created on a running event loop.
"""

import hashlib
import logging
from typing import Any, Dict

from edge_router.services.router import AppRouter

logger = logging.getLogger(__name__)


def fingerprint(assets_url: str, api_url: str, stage: str) -> str:
    digest = hashlib.md5()
    for part in (assets_url, api_url, stage):
        digest.update(part.encode("utf-8"))
    return digest.hexdigest()


class RouterPool:
    def __init__(self) -> None:
        self._routers: Dict[str, AppRouter] = {}

    def __len__(self) -> int:
        return len(self._routers)

    def get(self, assets_url: str, api_url: str, stage: str, **router_options: Any) -> AppRouter:
        """Return the router for this configuration, creating it on first use.

        *router_options* are passed to :class:`AppRouter` only when a new
        router is built.
        """
        key = fingerprint(assets_url, api_url, stage)

        router = self._routers.get(key)
        if router is not None:
            logger.debug("Retrieving router for %r (%s)", stage, key)
            return router

        logger.info(
            "Created router for %r (%s)",
            stage,
            key,
            extra={"assets_url": assets_url, "api_url": api_url},
        )
        router = AppRouter(assets_url, api_url, **router_options)
        self._routers[key] = router
        # Prefetch manifest and config when created from inside a running loop
        router.start_warmup()
        return router

    def clear(self) -> None:
        self._routers.clear()


default_pool = RouterPool()
