"""Canonical result shapes shared by every vendor adapter."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(slots=True)
class ResultAsset:
    """One produced asset; ``data`` holds decoded bytes for data-URI results."""

    url: str
    width: int | None = None
    height: int | None = None
    content_type: str | None = None
    data: bytes | None = field(default=None, repr=False)

    @property
    def is_inline(self) -> bool:
        return self.data is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "width": self.width,
            "height": self.height,
            "content_type": self.content_type,
        }


@dataclass(slots=True)
class NormalizedResult:
    """Vendor-agnostic result returned to clients and stored on jobs."""

    images: list[ResultAsset] = field(default_factory=list)
    timings: dict[str, Any] | None = None
    description: str | None = None
    seed: int | None = None

    @property
    def primary_url(self) -> str | None:
        return self.images[0].url if self.images else None

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            "images": [asset.to_dict() for asset in self.images],
            "timings": self.timings,
        }
        if self.description is not None:
            body["description"] = self.description
        if self.seed is not None:
            body["seed"] = self.seed
        return body

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "NormalizedResult":
        images = [
            ResultAsset(
                url=item["url"],
                width=item.get("width"),
                height=item.get("height"),
                content_type=item.get("content_type"),
            )
            for item in data.get("images") or []
        ]
        return cls(
            images=images,
            timings=data.get("timings"),
            description=data.get("description"),
            seed=data.get("seed"),
        )
