"""HTTP transport for fal.ai models."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from ..exceptions import MalformedVendorResponseError, VendorError

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class FalClient:
    """Call fal.ai either synchronously (``fal.run``) or through the queue."""

    api_key: str | None
    run_url_base: str = "https://fal.run"
    queue_url_base: str = "https://queue.fal.run"
    timeout_seconds: float = 300.0
    log: logging.Logger = field(default_factory=lambda: logger)

    async def run(self, model: str, body: dict[str, Any]) -> dict[str, Any]:
        """POST ``body`` to ``model`` and return the decoded JSON response."""
        url = f"{self.run_url_base}/{model}"
        self.log.info("vendor.fal.request.start", extra={"model": model})
        response = await self._post(url, body)
        data = _json_body(response, model)
        self.log.info("vendor.fal.request.success", extra={"model": model})
        return data

    async def enqueue(self, model: str, body: dict[str, Any], webhook_url: str) -> str:
        """Submit ``body`` to the fal queue and return its ``request_id``."""
        url = f"{self.queue_url_base}/{model}"
        self.log.info("vendor.fal.queue.submit", extra={"model": model})
        response = await self._post(url, body, params={"fal_webhook": webhook_url})
        data = _json_body(response, model)
        request_id = data.get("request_id")
        if not request_id:
            raise MalformedVendorResponseError(f"fal queue did not return request_id for {model}")
        self.log.info(
            "vendor.fal.queue.accepted",
            extra={"model": model, "vendor_request_id": request_id},
        )
        return str(request_id)

    def _headers(self) -> dict[str, str]:
        if not self.api_key:
            raise VendorError("FAL_KEY is not configured", status=500)
        return {
            "Authorization": f"Key {self.api_key}",
            "Content-Type": "application/json",
        }

    async def _post(
        self,
        url: str,
        body: dict[str, Any],
        params: dict[str, str] | None = None,
    ) -> httpx.Response:
        headers = self._headers()
        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                response = await client.post(url, headers=headers, json=body, params=params)
        except httpx.TimeoutException as exc:
            raise VendorError(f"fal request to {url} timed out", status=504) from exc
        except httpx.HTTPError as exc:
            raise VendorError(f"fal request to {url} failed: {exc}") from exc

        if not 200 <= response.status_code < 300:
            body_text = response.text[:2000]
            self.log.error(
                "vendor.fal.response.error",
                extra={"url": url, "status_code": response.status_code, "body_preview": body_text[:500]},
            )
            raise VendorError(
                f"fal call to {url} failed with status {response.status_code}",
                status=response.status_code,
                body=body_text,
            )
        return response


def _json_body(response: httpx.Response, model: str) -> dict[str, Any]:
    try:
        data = response.json()
    except ValueError as exc:
        raise MalformedVendorResponseError(f"fal returned non-JSON body for {model}") from exc
    if not isinstance(data, dict):
        raise MalformedVendorResponseError(f"fal returned unexpected body for {model}")
    return data
