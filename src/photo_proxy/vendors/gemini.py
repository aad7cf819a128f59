"""Gemini adapter describing the object under a mask."""

from __future__ import annotations

import asyncio
import base64
import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from ..exceptions import ArtifactFetchFailedError, MalformedVendorResponseError, VendorError
from ..results.result_models import NormalizedResult
from .vendor_base import AdapterContext, VendorAdapter

logger = logging.getLogger(__name__)

DESCRIBE_MASK_PROMPT = (
    "You are an expert image analyst. You will receive two images: an original photo "
    "and a corresponding mask. Your task is to identify and describe the primary object "
    "or person in the original photo that is located within the white area of the mask. "
    "Provide a concise, simple description. Examples: 'a brown dog', "
    "'a man wearing a red hat', 'the blue car'."
)


@dataclass(slots=True)
class DescribeMaskAdapter(VendorAdapter):
    """Ask Gemini for a short description of the masked region."""

    api_key: str | None
    model: str = "gemini-2.5-flash"
    api_url_base: str = "https://generativelanguage.googleapis.com/v1beta"
    timeout_seconds: float = 30.0
    log: logging.Logger = field(default_factory=lambda: logger)

    job_type = "describe_mask"
    required_parameters = ("image_url", "mask_url")

    async def execute(
        self, parameters: dict[str, Any], context: AdapterContext
    ) -> NormalizedResult:
        if not self.api_key:
            raise VendorError("GEMINI_API_KEY is not configured", status=500)

        image_part, mask_part = await asyncio.gather(
            self._inline_part(parameters["image_url"], "image/jpeg"),
            self._inline_part(parameters["mask_url"], "image/png"),
        )
        body = {
            "contents": [
                {
                    "role": "user",
                    "parts": [{"text": DESCRIBE_MASK_PROMPT}, image_part, mask_part],
                }
            ]
        }
        url = f"{self.api_url_base}/models/{self.model}:generateContent"
        headers = {"x-goog-api-key": self.api_key, "Content-Type": "application/json"}

        self.log.info("vendor.gemini.request.start", extra={"model": self.model, "caller_id": context.caller_id})
        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                response = await client.post(url, headers=headers, json=body)
        except httpx.HTTPError as exc:
            raise VendorError(f"Gemini HTTP error: {exc}") from exc

        if response.status_code != 200:
            detail = _extract_error(response)
            self.log.error(
                "vendor.gemini.response.error",
                extra={"status_code": response.status_code, "error_detail": detail},
            )
            raise VendorError(
                f"Gemini error {response.status_code}: {detail}",
                status=response.status_code,
                body=detail,
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise MalformedVendorResponseError("Gemini returned non-JSON body") from exc
        description = _extract_text(data)
        self.log.info("vendor.gemini.request.success", extra={"model": self.model})
        return NormalizedResult(description=description)

    async def _inline_part(self, url: str, mime_type: str) -> dict[str, Any]:
        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds, follow_redirects=True) as client:
                response = await client.get(url)
        except httpx.HTTPError as exc:
            raise ArtifactFetchFailedError(f"Failed to fetch image from {url}: {exc}") from exc
        if response.status_code != 200:
            raise ArtifactFetchFailedError(
                f"Failed to fetch image from {url}. Status: {response.status_code}"
            )
        return {
            "inline_data": {
                "mime_type": mime_type,
                "data": base64.b64encode(response.content).decode("ascii"),
            }
        }


def _extract_text(data: Any) -> str:
    candidates = data.get("candidates") if isinstance(data, dict) else None
    if not candidates:
        raise MalformedVendorResponseError("Invalid response from Gemini API")
    parts = ((candidates[0] or {}).get("content") or {}).get("parts") or []
    text = "".join(part.get("text", "") for part in parts if isinstance(part, dict)).strip()
    text = text.strip("\"'")
    if not text:
        raise MalformedVendorResponseError("Gemini response has no text")
    return text


def _extract_error(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text[:500]
    error = payload.get("error") if isinstance(payload, dict) else None
    if isinstance(error, dict):
        return str(error.get("message") or error.get("status") or error)
    return str(payload)[:500]
