"""Registry mapping job types to vendor adapters."""

from __future__ import annotations

from ..config import AppConfig
from ..exceptions import UnsupportedJobTypeError
from . import fal_adapters
from .fal_client import FalClient
from .gemini import DescribeMaskAdapter
from .topaz import TopazEnhanceAdapter
from .vendor_base import VendorAdapter


class AdapterRegistry:
    """Lookup table built once at startup."""

    def __init__(self) -> None:
        self._adapters: dict[str, VendorAdapter] = {}

    def register(self, adapter: VendorAdapter, *aliases: str) -> None:
        for name in (adapter.job_type, *aliases):
            if name in self._adapters:
                raise ValueError(f"Job type '{name}' is already registered")
            self._adapters[name] = adapter

    def get(self, job_type: str) -> VendorAdapter:
        try:
            return self._adapters[job_type]
        except KeyError:
            raise UnsupportedJobTypeError(job_type) from None

    def job_types(self) -> list[str]:
        return sorted(self._adapters)

    def __contains__(self, job_type: object) -> bool:
        return job_type in self._adapters


def build_default_registry(config: AppConfig) -> AdapterRegistry:
    """Instantiate every adapter with the configured credentials."""
    fal = FalClient(api_key=config.vendors.fal_key, timeout_seconds=config.vendor_timeout_seconds)
    registry = AdapterRegistry()
    registry.register(fal_adapters.UpscaleAdapter(client=fal))
    registry.register(fal_adapters.InpaintAdapter(client=fal))
    registry.register(fal_adapters.TextualEditAdapter(client=fal), *fal_adapters.TEXTUAL_EDIT_PRESETS)
    registry.register(fal_adapters.AiResizeAdapter(client=fal))
    registry.register(fal_adapters.ObjectRemovalAdapter(client=fal))
    registry.register(fal_adapters.SmartRetouchAdapter(client=fal))
    registry.register(fal_adapters.RemoveAndRegenerateAdapter(client=fal))
    registry.register(fal_adapters.GenericRestoreAdapter(client=fal))
    registry.register(fal_adapters.ColorizeAdapter(client=fal))
    registry.register(fal_adapters.TrendAdapter(client=fal), "ai_color_grade")
    registry.register(fal_adapters.AngleShiftAdapter(client=fal))
    registry.register(fal_adapters.VideoAdapter(client=fal))
    registry.register(fal_adapters.VideoUpscaleAdapter(client=fal))
    registry.register(fal_adapters.TrainLoraAdapter(client=fal))
    registry.register(TopazEnhanceAdapter(api_key=config.vendors.topaz_api_key))
    registry.register(DescribeMaskAdapter(api_key=config.vendors.gemini_api_key))
    return registry
