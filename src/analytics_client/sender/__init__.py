"""HTTP transport module for posting batches to the collector."""

from .http_sender import HTTPSender, SenderConfig, basic_auth_header

__all__ = ["HTTPSender", "SenderConfig", "basic_auth_header"]
