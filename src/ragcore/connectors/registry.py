# src/ragcore/connectors/registry.py
"""
Connector registry.

Connectors are declared with a small JSON DSL::

    {"type": "openai", "name": "gpt", "options": {"key": "$ENV.OPENAI_API_KEY"}}

and registered under an id. ``ConnectorRegistry`` is injectable; the
module-level functions operate on a process-wide default instance.
"""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Any, Callable, Dict, Union

from pydantic import BaseModel, Field, ValidationError

from ..exceptions import ConfigError
from .base import BaseConnector, ConnectorType
from .mongo import MongoConnector
from .openai import OpenAIConnector
from .redis import RedisConnector

logger = logging.getLogger(__name__)


class ConnectorDSL(BaseModel):
    """Declaration of one connector."""

    type: str = Field(description="openai, redis or mongo")
    name: str = Field(default="")
    label: str = Field(default="")
    options: Dict[str, Any] = Field(default_factory=dict)


_FACTORIES: Dict[ConnectorType, Callable[[str, Dict[str, Any], str], BaseConnector]] = {
    ConnectorType.OPENAI: OpenAIConnector,
    ConnectorType.REDIS: RedisConnector,
    ConnectorType.MONGO: MongoConnector,
}


def make_connector(dsl: ConnectorDSL, connector_id: str) -> BaseConnector:
    """Instantiate the connector a DSL declares."""
    try:
        connector_type = ConnectorType(dsl.type.strip().lower())
    except ValueError:
        raise ConfigError(f"Connector type {dsl.type} does not support") from None
    try:
        return _FACTORIES[connector_type](connector_id, dsl.options, dsl.name)
    except ValidationError as e:
        raise ConfigError(f"Invalid options for connector {connector_id}: {e}") from e


class ConnectorRegistry:
    """Thread-safe map from connector id to connector."""

    def __init__(self) -> None:
        self._connectors: Dict[str, BaseConnector] = {}
        self._lock = threading.RLock()

    def register(self, connector_id: str, connector: BaseConnector) -> BaseConnector:
        with self._lock:
            self._connectors[connector_id] = connector
        logger.debug(f"Connector {connector_id} registered ({type(connector).__name__})")
        return connector

    def load_source(self, source: Union[str, bytes, Dict[str, Any]], connector_id: str) -> BaseConnector:
        """
        Build and register a connector from DSL source.

        Raises:
            ConfigError: If the DSL is malformed or the type is unknown.
        """
        try:
            data = source if isinstance(source, dict) else json.loads(source)
            dsl = ConnectorDSL.model_validate(data)
        except (json.JSONDecodeError, ValidationError) as e:
            raise ConfigError(f"Invalid connector DSL for {connector_id}: {e}") from e
        connector = make_connector(dsl, connector_id)
        logger.info(f"Connector {connector_id} loaded (type={dsl.type})")
        return self.register(connector_id, connector)

    def load(self, file: Union[str, Path], connector_id: str) -> BaseConnector:
        """Read a DSL file and load it."""
        try:
            source = Path(file).read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigError(f"Cannot read connector file {file}: {e}") from e
        return self.load_source(source, connector_id)

    def select(self, connector_id: str) -> BaseConnector:
        with self._lock:
            connector = self._connectors.get(connector_id)
        if connector is None:
            raise ConfigError(f"connector {connector_id} not loaded")
        return connector

    def exists(self, connector_id: str) -> bool:
        with self._lock:
            return connector_id in self._connectors

    async def remove(self, connector_id: str) -> None:
        """Close and unregister a connector."""
        with self._lock:
            connector = self._connectors.pop(connector_id, None)
        if connector is None:
            raise ConfigError(f"connector {connector_id} not loaded")
        await connector.close()


_default_registry = ConnectorRegistry()


def get_registry() -> ConnectorRegistry:
    return _default_registry


def load_source(source: Union[str, bytes, Dict[str, Any]], connector_id: str) -> BaseConnector:
    return _default_registry.load_source(source, connector_id)


def load(file: Union[str, Path], connector_id: str) -> BaseConnector:
    return _default_registry.load(file, connector_id)


def register(connector_id: str, connector: BaseConnector) -> BaseConnector:
    return _default_registry.register(connector_id, connector)


def select(connector_id: str) -> BaseConnector:
    return _default_registry.select(connector_id)


async def remove(connector_id: str) -> None:
    await _default_registry.remove(connector_id)
