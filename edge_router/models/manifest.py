from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Manifest(BaseModel):
    """Directory of registered apps published next to the assets."""

    model_config = ConfigDict(extra="allow")

    apps: List[str]
    default: str
    config: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("config", mode="before")
    @classmethod
    def null_config_is_empty(cls, value: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        return {} if value is None else value
