"""Topaz Labs image API adapter (submit, poll, download)."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from ..exceptions import MalformedVendorResponseError, VendorError
from ..results.result_models import NormalizedResult, ResultAsset
from .vendor_base import AdapterContext, VendorAdapter

logger = logging.getLogger(__name__)

_DONE_STATUSES = {"completed", "complete", "succeeded", "success"}
_FAILED_STATUSES = {"failed", "error", "cancelled", "canceled"}
# Envelope keys that are never forwarded as Topaz form fields.
_RESERVED_PARAMETERS = {"endpoint", "source_url", "persist", "estimated_mp"}


@dataclass(slots=True)
class TopazEnhanceAdapter(VendorAdapter):
    """Call the Topaz image API using polling."""

    api_key: str | None
    base_url: str = "https://api.topazlabs.com/image/v1"
    timeout_seconds: float = 30.0
    poll_interval_seconds: float = 2.0
    max_attempts: int = 90
    log: logging.Logger = field(default_factory=lambda: logger)

    job_type = "topaz_enhance"
    required_parameters = ("source_url",)

    async def execute(
        self, parameters: dict[str, Any], context: AdapterContext
    ) -> NormalizedResult:
        if not self.api_key:
            raise VendorError("TOPAZ_API_KEY is not configured", status=500)
        headers = {"X-API-Key": self.api_key, "Accept": "application/json"}
        endpoint = str(parameters.get("endpoint") or "enhance").strip("/")

        process_id = await self._create_process(endpoint, headers=headers, form=_form_fields(parameters))
        self.log.info(
            "vendor.topaz.process.created",
            extra={"endpoint": endpoint, "vendor_request_id": process_id, "caller_id": context.caller_id},
        )

        attempt = 0
        while attempt < self.max_attempts:
            attempt += 1
            await asyncio.sleep(self.poll_interval_seconds)
            status = await self._poll_status(process_id, headers=headers)
            state = str(status.get("status") or "").lower()
            if state in _FAILED_STATUSES:
                message = status.get("error") or status.get("message") or state
                raise VendorError(f"Topaz reported failure: {message}", body=status)
            if state in _DONE_STATUSES:
                return await self._download(process_id, headers=headers)

        raise VendorError(f"Topaz polling exceeded {self.max_attempts} attempts", status=504)

    async def _create_process(
        self, endpoint: str, *, headers: dict[str, str], form: dict[str, str]
    ) -> str:
        files = {name: (None, value) for name, value in form.items()}
        response = await self._request("POST", f"{self.base_url}/{endpoint}", headers=headers, files=files)
        body = _json(response, "create")
        process_id = body.get("process_id") or body.get("processId")
        if not process_id:
            raise MalformedVendorResponseError("Topaz did not return process_id")
        return str(process_id)

    async def _poll_status(self, process_id: str, *, headers: dict[str, str]) -> dict[str, Any]:
        response = await self._request("GET", f"{self.base_url}/status/{process_id}", headers=headers)
        return _json(response, "status")

    async def _download(self, process_id: str, *, headers: dict[str, str]) -> NormalizedResult:
        url = f"{self.base_url}/download/{process_id}"
        response = await self._request("GET", url, headers=headers)
        content_type = response.headers.get("Content-Type", "")
        if content_type.startswith("image/"):
            mime = content_type.split(";")[0].strip()
            return NormalizedResult(
                images=[ResultAsset(url=url, content_type=mime, data=response.content)]
            )
        body = _json(response, "download")
        result_url = body.get("url") or body.get("download_url")
        if not result_url:
            raise MalformedVendorResponseError("Topaz download response has no url")
        return NormalizedResult(images=[ResultAsset(url=result_url)])

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                response = await client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            raise VendorError(f"Topaz request to {url} failed: {exc}") from exc
        if not 200 <= response.status_code < 300:
            self.log.error(
                "vendor.topaz.response.error",
                extra={"url": url, "status_code": response.status_code},
            )
            raise VendorError(
                f"Topaz call to {url} failed with status {response.status_code}",
                status=response.status_code,
                body=response.text[:2000],
            )
        return response


def _form_fields(parameters: dict[str, Any]) -> dict[str, str]:
    form = {"source_url": str(parameters["source_url"])}
    for key, value in parameters.items():
        if key in _RESERVED_PARAMETERS or value is None:
            continue
        if isinstance(value, bool):
            form[key] = "true" if value else "false"
        else:
            form[key] = str(value)
    return form


def _json(response: httpx.Response, stage: str) -> dict[str, Any]:
    try:
        body = response.json()
    except ValueError as exc:
        raise MalformedVendorResponseError(f"Topaz {stage} returned non-JSON body") from exc
    if not isinstance(body, dict):
        raise MalformedVendorResponseError(f"Topaz {stage} returned unexpected body")
    return body
