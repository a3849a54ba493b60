# src/ragcore/connectors/openai.py
"""OpenAI-compatible chat-completion connector."""

from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator

from ..config import resolve_env
from ..exceptions import ConfigError
from .base import BaseConnector, ConnectorType

DEFAULT_OPENAI_HOST = "https://api.openai.com"


class OpenAIOptions(BaseModel):
    """Options of an OpenAI-compatible endpoint. String values may be ``$ENV.NAME`` references."""

    host: str = Field(default=DEFAULT_OPENAI_HOST, description="Base URL of the API")
    key: str = Field(default="", description="Bearer token")
    model: str = Field(default="", description="Default model for requests")
    timeout: Optional[float] = Field(default=None, gt=0, description="Per-request timeout in seconds")

    @field_validator("host", "key", "model", mode="before")
    @classmethod
    def resolve_env_refs(cls, v: Any) -> Any:
        return resolve_env(v)


class OpenAIConnector(BaseConnector):
    """Connector for an OpenAI-compatible HTTP API."""

    connector_type = ConnectorType.OPENAI

    def __init__(self, connector_id: str, options: OpenAIOptions | Dict[str, Any], name: str = "") -> None:
        super().__init__(connector_id, name)
        self.options = options if isinstance(options, OpenAIOptions) else OpenAIOptions.model_validate(options)
        if not self.options.host:
            raise ConfigError(f"Connector {connector_id}: host is required")
        if not self.options.key:
            raise ConfigError(f"Connector {connector_id}: key is required")

    def setting(self) -> Dict[str, Any]:
        setting: Dict[str, Any] = {
            "host": self.options.host,
            "key": self.options.key,
            "model": self.options.model,
        }
        if self.options.timeout is not None:
            setting["timeout"] = self.options.timeout
        return setting
