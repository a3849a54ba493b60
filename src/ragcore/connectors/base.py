# src/ragcore/connectors/base.py
"""
Connector contract.

A connector carries the connection settings of one external service (an
LLM endpoint, a Redis server, a MongoDB deployment) under a stable id.
The chunking core only reads ``host`` and ``key`` from ``setting()``; the
store backends ask a connector for its driver client.
"""

from __future__ import annotations

import abc
from enum import Enum
from typing import Any, Dict


class ConnectorType(str, Enum):
    """Kinds of connector."""

    OPENAI = "openai"
    REDIS = "redis"
    MONGO = "mongo"


class BaseConnector(abc.ABC):
    """
    Abstract base class for connectors.

    Args:
        connector_id: Registry id of the connector.
        name: Human-readable name; defaults to the id.
    """

    connector_type: ConnectorType

    def __init__(self, connector_id: str, name: str = "") -> None:
        self._id = connector_id
        self.name = name or connector_id

    @property
    def id(self) -> str:
        """Registry id."""
        return self._id

    @abc.abstractmethod
    def setting(self) -> Dict[str, Any]:
        """Resolved settings of the connector (``host``, ``key``, ``model``, ...)."""
        raise NotImplementedError

    def is_type(self, connector_type: ConnectorType | str) -> bool:
        """True if this connector is of ``connector_type``."""
        return self.connector_type == ConnectorType(connector_type)

    async def close(self) -> None:
        """Release driver resources. Connectors without a client have nothing to do."""
        return None

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id={self._id!r})"
