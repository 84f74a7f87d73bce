"""Convenience exports for application schemas."""

from __future__ import annotations

from .service_config import CacheConfigSchema, ReturnQuerySchema, ServiceConfigSchema

__all__ = ["CacheConfigSchema", "ReturnQuerySchema", "ServiceConfigSchema"]
