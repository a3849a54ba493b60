# src/ragcore/exceptions.py
"""
Custom exceptions for the ragcore library.

This module defines a hierarchy of custom exception classes so callers can
tell configuration problems apart from transport, parsing, chunking and
storage failures and handle each in a targeted way.
"""

from __future__ import annotations


class RagCoreError(Exception):
    """Base class for all ragcore specific errors."""
    def __init__(self, message: str = "An unspecified error occurred in ragcore."):
        super().__init__(message)


class ConfigError(RagCoreError):
    """Raised for errors related to configuration, DSL parsing or option validation."""
    def __init__(self, message: str = "Configuration error."):
        super().__init__(message)


class InvalidNameError(ConfigError):
    """Raised when a collection name contains characters outside [A-Za-z0-9_]."""
    def __init__(self, name: str, message: str = "Invalid collection name."):
        self.name = name
        super().__init__(f"{message} Name: '{name}' (only letters, digits and underscores are allowed)")


class ProviderError(RagCoreError):
    """Raised for errors originating from an LLM endpoint (API errors, connection issues)."""
    def __init__(self, provider_name: str = "Unknown", message: str = "Provider error."):
        self.provider_name = provider_name
        super().__init__(f"Error with provider '{provider_name}': {message}")


class TransportError(ProviderError):
    """
    Raised when the HTTP exchange itself fails (network, non-200 status, timeout).

    ``retryable`` is False for authentication failures and other 4xx payload
    errors, which a retry cannot fix.
    """
    def __init__(
        self,
        provider_name: str = "Unknown",
        message: str = "Transport error.",
        status: int | None = None,
        retryable: bool = True,
    ):
        self.status = status
        self.retryable = retryable
        super().__init__(provider_name, message)


class CallbackAbortError(ProviderError):
    """Raised when the per-frame callback of a stream fails and the stream is aborted."""
    def __init__(self, provider_name: str = "Unknown", message: str = "Stream callback failed."):
        super().__init__(provider_name, message)


class ParseError(RagCoreError):
    """Raised when a finished LLM response cannot be parsed into the expected schema."""
    def __init__(self, message: str = "Failed to parse LLM response."):
        super().__init__(message)


class ChunkingError(RagCoreError):
    """Raised for invalid chunking input or options."""
    def __init__(self, message: str = "Chunking error."):
        super().__init__(message)


class StorageError(RagCoreError):
    """Base class for errors related to store operations."""
    def __init__(self, message: str = "Storage error."):
        super().__init__(message)


class StoreNotLoadedError(StorageError):
    """Raised when selecting a store id that was never loaded."""
    def __init__(self, store_id: str, message: str = "Store does not load."):
        self.store_id = store_id
        super().__init__(f"{message} Store: '{store_id}'")


class StoreKeyError(StorageError):
    """Raised by list operations on a missing key, an empty list or an out-of-range index."""
    def __init__(self, key: str, message: str = "Key not found."):
        self.key = key
        super().__init__(f"{message} Key: '{key}'")


class StoreTypeError(StorageError):
    """Raised when an operation does not match the kind of value stored at a key."""
    def __init__(self, key: str, message: str = "Wrong value type for operation."):
        self.key = key
        super().__init__(f"{message} Key: '{key}'")


class StoreOperationError(StorageError):
    """Wraps a driver error with the failing operation name and key."""
    def __init__(self, operation: str, key: str = "", cause: object = None):
        self.operation = operation
        self.key = key
        self.cause = cause
        super().__init__(f"Store {operation} '{key}' failed: {cause}")


class DirectoryLockError(StorageError):
    """Raised when the embedded disk engine cannot be opened at a path."""
    def __init__(self, path: str, message: str = "Cannot acquire the store directory."):
        self.path = path
        super().__init__(f"{message} Path: '{path}'")
