# src/ragcore/connectors/redis.py
"""Redis connector backed by ``redis.asyncio``."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import redis.asyncio as aioredis
from pydantic import BaseModel, Field, field_validator

from ..config import resolve_env
from .base import BaseConnector, ConnectorType

logger = logging.getLogger(__name__)


class RedisOptions(BaseModel):
    """Connection options. String values may be ``$ENV.NAME`` references."""

    host: str = Field(default="127.0.0.1")
    port: int = Field(default=6379, ge=1, le=65535)
    db: int = Field(default=0, ge=0)
    user: str = Field(default="")
    password: str = Field(default="", alias="pass")
    timeout: float = Field(default=5.0, gt=0, description="Socket timeout in seconds")

    model_config = {"populate_by_name": True}

    @field_validator("host", "user", "password", "port", "db", mode="before")
    @classmethod
    def resolve_env_refs(cls, v: Any) -> Any:
        return resolve_env(v)


class RedisConnector(BaseConnector):
    """
    Connector holding one ``redis.asyncio.Redis`` client.

    Stores built on this connector prefix their keys with ``"<name>:"``.

    Args:
        connector_id: Registry id.
        options: RedisOptions or a dict of them.
        name: Key namespace; defaults to the id.
        client: Pre-built client (tests pass a fakeredis instance).
    """

    connector_type = ConnectorType.REDIS

    def __init__(
        self,
        connector_id: str,
        options: RedisOptions | Dict[str, Any] | None = None,
        name: str = "",
        client: Optional[aioredis.Redis] = None,
    ) -> None:
        super().__init__(connector_id, name)
        if options is None:
            options = RedisOptions()
        self.options = options if isinstance(options, RedisOptions) else RedisOptions.model_validate(options)
        self._client = client

    @property
    def client(self) -> aioredis.Redis:
        """The driver client, created on first use."""
        if self._client is None:
            self._client = aioredis.Redis(
                host=self.options.host,
                port=self.options.port,
                db=self.options.db,
                username=self.options.user or None,
                password=self.options.password or None,
                socket_timeout=self.options.timeout,
                socket_connect_timeout=self.options.timeout,
                decode_responses=True,
            )
            logger.debug(f"Created redis client for connector {self.id} ({self.options.host}:{self.options.port}/{self.options.db})")
        return self._client

    @property
    def prefix(self) -> str:
        return f"{self.name}:"

    def setting(self) -> Dict[str, Any]:
        return {
            "host": self.options.host,
            "port": self.options.port,
            "db": self.options.db,
            "user": self.options.user,
            "timeout": self.options.timeout,
        }

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            logger.info(f"Redis connector {self.id} closed")
