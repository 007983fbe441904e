"""Request-facing state machine mapping a path to a redirect, a 404 or an app page.

Decision order (after the manifest is available)
------------------------------------------------
1. ``/``                      301 to the default app
2. not ``/<app-id>[/...]``    404 "Invalid path"
3. unknown app id             404 "Application not found"
4. ``/<app-id>``              301 to ``/<app-id>/``
5. ``/<app-id>/x.appcache``   404 "Application cache not found"
6. ``/<app-id>/<sub>``        301 to ``/<app-id>/#<sub>``
7. ``/<app-id>/``             200 with the transformed index page
"""

import asyncio
import json
import logging
import re
from typing import Any, Dict, Mapping, Optional, Tuple
from urllib.parse import quote

from edge_router.models.manifest import Manifest
from edge_router.models.route import CacheOptions, RouteDecision, RouteResponse
from edge_router.services.cache import ResourceCache
from edge_router.services.fetcher import DEFAULT_ATTEMPTS, TIMEOUT
from edge_router.services.transformer import transform

logger = logging.getLogger(__name__)

_PATH_RE = re.compile(r"/([A-Za-z0-9]+)(/.*)?")
_EXTENDED_PATH_RE = re.compile(r"/([A-Za-z0-9_\-]+)(/.*)?")
_APPCACHE_RE = re.compile(r"\.appcache\Z", re.IGNORECASE)

# Characters left as-is in Location headers; everything else is percent-encoded
_LOCATION_SAFE = "/#?&=:@!$'()*+,;~%-._"

_NOT_FOUND_MESSAGES = {
    RouteDecision.INVALID_PATH: "Invalid path",
    RouteDecision.APP_NOT_FOUND: "Application not found",
    RouteDecision.APP_CACHE_BLOCKED: "Application cache not found",
}


def decide(
    path: str, manifest: Manifest, allow_extended_ids: bool = True
) -> Tuple[RouteDecision, Optional[str], str]:
    """Classify *path* against *manifest*.

    Returns:
        A tuple of *(decision, app_id, sub_path)* where *sub_path* is whatever
        follows ``/<app-id>/`` (empty for the app root).
    """
    if path == "/":
        return RouteDecision.ROOT_REDIRECT, None, ""

    pattern = _EXTENDED_PATH_RE if allow_extended_ids else _PATH_RE
    match = pattern.fullmatch(path)
    if not match:
        return RouteDecision.INVALID_PATH, None, ""

    app_id, rest = match.group(1), match.group(2)

    if app_id not in manifest.apps:
        return RouteDecision.APP_NOT_FOUND, app_id, ""

    if rest is None:
        return RouteDecision.APP_ROOT_REDIRECT, app_id, ""

    sub_path = rest[1:]
    if _APPCACHE_RE.search(sub_path):
        return RouteDecision.APP_CACHE_BLOCKED, app_id, sub_path

    if sub_path:
        return RouteDecision.SUB_PATH_REDIRECT, app_id, sub_path

    return RouteDecision.CONTENT, app_id, ""


def cache_control(client_seconds: int, shared_seconds: Optional[int] = None) -> str:
    directives = [f"max-age={client_seconds}"]
    if shared_seconds is not None:
        directives.append(f"s-maxage={shared_seconds}")
    return ", ".join(directives)


def build_effective_config(
    app_id: str,
    global_config: Mapping[str, Any],
    manifest_config: Mapping[str, Any],
    assets_url: str,
    api_url: str,
) -> Dict[str, Any]:
    """Merge the configuration injected into the page for *app_id*.

    Precedence, lowest first: ``target``, the global config, the manifest's
    config.  The router's own origins are written last.
    """
    config: Dict[str, Any] = {"target": ["/" + app_id + "/"]}
    config.update(global_config)
    config.update(manifest_config)
    config["assets_url"] = assets_url
    config["api_url"] = api_url
    return config


def _json_response(status_code: int, message: str, cache_header: str) -> RouteResponse:
    return RouteResponse(
        status_code=status_code,
        headers={"Content-Type": "application/json", "Cache-Control": cache_header},
        body=json.dumps({"error": message}),
    )


def _redirect(location: str, options: CacheOptions) -> RouteResponse:
    return RouteResponse(
        status_code=301,
        headers={
            "Location": quote(location, safe=_LOCATION_SAFE),
            "Cache-Control": cache_control(
                options.client_cache_seconds, options.shared_cache_seconds
            ),
        },
    )


def internal_error() -> RouteResponse:
    return _json_response(500, "Internal error", "no-store")


class AppRouter:
    """Serves the apps listed in the manifest found under *assets_url*."""

    def __init__(
        self,
        assets_url: str,
        api_url: str,
        *,
        fetch_attempts: int = DEFAULT_ATTEMPTS,
        fetch_timeout: float = TIMEOUT,
        fetch_backoff: float = 0,
        allow_extended_ids: bool = True,
    ) -> None:
        self.assets_url = assets_url
        self.api_url = api_url
        self.allow_extended_ids = allow_extended_ids
        self.cache = ResourceCache(
            assets_url,
            api_url,
            fetch_attempts=fetch_attempts,
            fetch_timeout=fetch_timeout,
            fetch_backoff=fetch_backoff,
        )
        self.warmup: Optional[asyncio.Task] = None

    def start_warmup(self) -> Optional[asyncio.Task]:
        """Prefetch the manifest and global config on the running loop, if any."""
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop, skipping cache warm-up")
            return None
        if self.warmup is None:
            self.warmup = asyncio.ensure_future(self.cache.warm())
        return self.warmup

    async def route(self, path: str, options: Optional[CacheOptions] = None) -> RouteResponse:
        """Build the response for *path*; never raises."""
        options = options or CacheOptions()
        try:
            return await self._route(path or "/", options)
        except Exception:
            logger.exception("Request failed for %s", path)
            return internal_error()

    async def _route(self, path: str, options: CacheOptions) -> RouteResponse:
        logger.info("Routing path %r", path)

        manifest = await self.cache.get_manifest()
        decision, app_id, sub_path = decide(path, manifest, self.allow_extended_ids)
        logger.debug("Decision for %r: %s", path, decision.value)

        if decision in _NOT_FOUND_MESSAGES:
            return _json_response(
                404,
                _NOT_FOUND_MESSAGES[decision],
                cache_control(options.client_cache_seconds),
            )

        if decision is RouteDecision.ROOT_REDIRECT:
            return _redirect("/" + manifest.default + "/", options)

        if decision is RouteDecision.APP_ROOT_REDIRECT:
            return _redirect("/" + app_id + "/", options)

        if decision is RouteDecision.SUB_PATH_REDIRECT:
            return _redirect("/" + app_id + "/#" + sub_path, options)

        html, global_config = await asyncio.gather(
            self.cache.get_app_index(app_id), self.cache.get_global_config()
        )
        config = build_effective_config(
            app_id, global_config, manifest.config, self.assets_url, self.api_url
        )
        body = transform(app_id, html, config, self.assets_url)

        logger.info("Returning body content for %s", app_id)
        return RouteResponse(
            status_code=200,
            headers={
                "Content-Type": "text/html",
                "Cache-Control": cache_control(
                    options.client_cache_seconds, options.shared_cache_seconds
                ),
            },
            body=body,
        )
