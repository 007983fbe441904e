from enum import Enum
from typing import Dict, Optional

from pydantic import BaseModel, Field


class RouteDecision(str, Enum):
    ROOT_REDIRECT = "root_redirect"
    INVALID_PATH = "invalid_path"
    APP_NOT_FOUND = "app_not_found"
    APP_ROOT_REDIRECT = "app_root_redirect"
    APP_CACHE_BLOCKED = "app_cache_blocked"
    SUB_PATH_REDIRECT = "sub_path_redirect"
    CONTENT = "content"


class CacheOptions(BaseModel):
    client_cache_seconds: int = Field(default=60, ge=0)
    shared_cache_seconds: Optional[int] = Field(
        default=300,
        ge=0,
        description="s-maxage for shared caches; None leaves the directive out.",
    )


class RouteResponse(BaseModel):
    status_code: int
    headers: Dict[str, str] = Field(default_factory=dict)
    body: Optional[str] = None
