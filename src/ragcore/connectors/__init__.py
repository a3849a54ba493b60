# src/ragcore/connectors/__init__.py
"""
Connectors to external services (LLM endpoints, Redis, MongoDB).
"""

from .base import BaseConnector, ConnectorType
from .mongo import MongoConnector, MongoOptions
from .openai import DEFAULT_OPENAI_HOST, OpenAIConnector, OpenAIOptions
from .redis import RedisConnector, RedisOptions
from .registry import (
    ConnectorDSL,
    ConnectorRegistry,
    get_registry,
    load,
    load_source,
    register,
    remove,
    select,
)

__all__ = [
    "BaseConnector",
    "ConnectorType",
    "ConnectorDSL",
    "ConnectorRegistry",
    "DEFAULT_OPENAI_HOST",
    "MongoConnector",
    "MongoOptions",
    "OpenAIConnector",
    "OpenAIOptions",
    "RedisConnector",
    "RedisOptions",
    "get_registry",
    "load",
    "load_source",
    "register",
    "remove",
    "select",
]
