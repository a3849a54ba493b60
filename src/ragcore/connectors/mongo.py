# src/ragcore/connectors/mongo.py
"""MongoDB connector backed by pymongo's asyncio client."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote_plus, urlencode

from pydantic import BaseModel, Field, field_validator
from pymongo import AsyncMongoClient

from ..config import resolve_env
from ..exceptions import ConfigError
from .base import BaseConnector, ConnectorType

logger = logging.getLogger(__name__)


class MongoHost(BaseModel):
    """One member of the deployment."""

    host: str = Field(default="127.0.0.1")
    port: str = Field(default="27017")
    user: str = Field(default="")
    password: str = Field(default="", alias="pass")

    model_config = {"populate_by_name": True}

    @field_validator("host", "port", "user", "password", mode="before")
    @classmethod
    def resolve_env_refs(cls, v: Any) -> Any:
        return str(resolve_env(v))


class MongoOptions(BaseModel):
    """Connection options."""

    db: str = Field(default="")
    hosts: List[MongoHost] = Field(default_factory=list)
    params: Dict[str, Any] = Field(default_factory=dict, description="Extra URI query parameters")
    timeout: float = Field(default=5.0, gt=0, description="Server selection timeout in seconds")

    @field_validator("db", mode="before")
    @classmethod
    def resolve_env_refs(cls, v: Any) -> Any:
        return resolve_env(v)


def build_uri(options: MongoOptions) -> str:
    """Build a ``mongodb://`` URI from the host list and params."""
    if not options.hosts:
        raise ConfigError("Mongo connector requires at least one host")

    first = options.hosts[0]
    credentials = ""
    if first.user:
        credentials = f"{quote_plus(first.user)}:{quote_plus(first.password)}@"
    members = ",".join(f"{h.host}:{h.port}" if h.port else h.host for h in options.hosts)
    query = urlencode({k: str(v) for k, v in options.params.items()})
    return f"mongodb://{credentials}{members}/" + (f"?{query}" if query else "")


class MongoConnector(BaseConnector):
    """
    Connector holding one ``AsyncMongoClient``.

    Stores built on this connector use a collection named after the
    connector id inside ``options.db``.
    """

    connector_type = ConnectorType.MONGO

    def __init__(
        self,
        connector_id: str,
        options: MongoOptions | Dict[str, Any],
        name: str = "",
        client: Optional[Any] = None,
    ) -> None:
        super().__init__(connector_id, name)
        self.options = options if isinstance(options, MongoOptions) else MongoOptions.model_validate(options)
        if not self.options.db:
            raise ConfigError(f"Connector {connector_id}: db is required")
        if client is None:
            build_uri(self.options)
        self._client = client

    @property
    def client(self) -> Any:
        """The driver client, created on first use."""
        if self._client is None:
            self._client = AsyncMongoClient(
                build_uri(self.options),
                serverSelectionTimeoutMS=int(self.options.timeout * 1000),
            )
            logger.debug(f"Created mongo client for connector {self.id}")
        return self._client

    def database(self) -> Any:
        return self.client[self.options.db]

    def setting(self) -> Dict[str, Any]:
        return {
            "db": self.options.db,
            "hosts": [h.host for h in self.options.hosts],
            "timeout": self.options.timeout,
        }

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None
            logger.info(f"Mongo connector {self.id} closed")
