"""Vendor adapters and transports."""

from .vendor_base import AdapterContext, VendorAdapter
from .vendor_registry import AdapterRegistry, build_default_registry

__all__ = ["AdapterContext", "AdapterRegistry", "VendorAdapter", "build_default_registry"]
