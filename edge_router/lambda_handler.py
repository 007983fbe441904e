"""Adapter for API-Gateway-style proxy events.

The event carries its own origins as stage variables, so a single deployed
function can front several stages; each stage gets its own pooled router.
"""

import asyncio
import logging
from typing import Any, Dict

from edge_router.models.route import RouteResponse
from edge_router.services.pool import RouterPool, default_pool
from edge_router.services.router import internal_error

logger = logging.getLogger(__name__)

# Kept across invocations so cached downloads outlive a single event
_loop = asyncio.new_event_loop()


async def _route(pool: RouterPool, assets_url: str, api_url: str, stage: str, path: str) -> RouteResponse:
    # Created on the loop so a new router can start its warm-up there
    router = pool.get(assets_url, api_url, stage)
    return await router.route(path)


def handle_event(event: Dict[str, Any], pool: RouterPool = default_pool) -> Dict[str, Any]:
    logger.debug("Event %s", event)

    try:
        stage_variables = event.get("stageVariables") or {}
        assets_url = stage_variables["ASSETS_URL"]
        api_url = stage_variables["API_URL"]
        stage = (event.get("requestContext") or {}).get("stage", "default")
    except (KeyError, TypeError, AttributeError) as exc:
        logger.error("Malformed event, missing stage configuration: %s", exc)
        response = internal_error()
    else:
        response = _loop.run_until_complete(
            _route(pool, assets_url, api_url, stage, event.get("path") or "/")
        )

    result: Dict[str, Any] = {
        "statusCode": response.status_code,
        "headers": response.headers,
    }
    if response.body is not None:
        result["body"] = response.body
    return result


def handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    logger.debug("Context %s", context)
    return handle_event(event)
