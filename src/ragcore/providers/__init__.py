# src/ragcore/providers/__init__.py
"""
HTTP clients for LLM endpoints.
"""

from .streaming import build_url, is_retryable_status, post_llm, stream_llm

__all__ = ["build_url", "is_retryable_status", "post_llm", "stream_llm"]
