"""Abstract vendor adapter definition."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, ClassVar

from ..exceptions import BadRequestError
from ..media.artifact_store import ArtifactMaterializer
from ..results.result_models import NormalizedResult


@dataclass(slots=True)
class AdapterContext:
    """Per-invocation collaborators handed to adapters."""

    caller_id: str
    materializer: ArtifactMaterializer
    webhook_url: str | None = None

    @property
    def namespace(self) -> str:
        return f"processed/{self.caller_id}"


class VendorAdapter(ABC):
    """Map one logical job type onto vendor calls."""

    job_type: ClassVar[str]
    required_parameters: ClassVar[tuple[str, ...]] = ()
    list_parameters: ClassVar[tuple[str, ...]] = ()
    supports_webhook: ClassVar[bool] = False
    async_only: ClassVar[bool] = False
    persist_by_default: ClassVar[bool] = False

    def validate(self, parameters: dict[str, Any]) -> None:
        """Reject parameter sets the vendor would refuse."""
        missing = [name for name in self.required_parameters if not parameters.get(name)]
        if missing:
            raise BadRequestError(
                f"Missing required parameters for '{self.job_type}': {', '.join(missing)}"
            )
        for name in self.list_parameters:
            value = parameters.get(name)
            if not isinstance(value, list) or not value:
                raise BadRequestError(f"'{name}' must be a non-empty array")

    @abstractmethod
    async def execute(
        self, parameters: dict[str, Any], context: AdapterContext
    ) -> NormalizedResult:
        """Run the job to completion and return its normalized result."""

    async def submit(self, parameters: dict[str, Any], context: AdapterContext) -> str:
        """Queue the job with the vendor and return the vendor request id."""
        raise NotImplementedError(f"{self.job_type} does not support webhook submission")
