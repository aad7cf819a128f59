"""Extract produced assets from arbitrary vendor JSON.

Vendors disagree on where the result lives. The precedence below is applied
in order and the first location holding a usable URL wins:

1. ``image``: a single object (``{"url": ...}``) or a bare URL string;
2. ``images``: a list of such objects;
3. ``video``: a single object, used by the video models;
4. ``model_url`` / ``diffusers_lora_file``: trained LoRA weights.

Any URL may be a ``data:<mime>;base64,<payload>`` value instead of a fetchable
link. Those are decoded in memory and the bytes travel on
:attr:`ResultAsset.data`; nothing is fetched here.
"""

from __future__ import annotations

import base64
import binascii
from typing import Any, Mapping

from ..exceptions import MalformedVendorResponseError
from .result_models import NormalizedResult, ResultAsset

DATA_URI_PREFIX = "data:"


def is_data_uri(value: str) -> bool:
    return value.startswith(DATA_URI_PREFIX)


def parse_data_uri(value: str) -> tuple[bytes, str | None]:
    """Decode ``data:<mime>;base64,<payload>`` into bytes and its mime type."""
    if not is_data_uri(value):
        raise ValueError("value is not a data URI")
    header, sep, payload = value.partition(",")
    if not sep:
        raise ValueError("data URI has no payload separator")
    meta = header[len(DATA_URI_PREFIX):]
    parts = [part for part in meta.split(";") if part]
    mime = parts[0] if parts and "/" in parts[0] else None
    if "base64" not in parts:
        raise ValueError("only base64 data URIs are supported")
    try:
        data = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValueError("data URI payload is not valid base64") from exc
    return data, mime


def normalize(vendor_json: Any) -> NormalizedResult:
    """Return a :class:`NormalizedResult` or raise ``MalformedVendorResponseError``."""
    if not isinstance(vendor_json, Mapping):
        raise MalformedVendorResponseError("Vendor response is not a JSON object")

    images = _locate_assets(vendor_json)
    if not images:
        raise MalformedVendorResponseError(
            f"Could not find a result in the vendor response (keys={sorted(vendor_json)})"
        )

    timings = vendor_json.get("timings")
    seed = vendor_json.get("seed")
    return NormalizedResult(
        images=images,
        timings=timings if isinstance(timings, dict) else None,
        seed=seed if isinstance(seed, int) else None,
    )


def _locate_assets(body: Mapping[str, Any]) -> list[ResultAsset]:
    single = _asset_from(body.get("image"))
    if single is not None:
        return [single]

    listed = body.get("images")
    if isinstance(listed, list):
        assets = [asset for asset in (_asset_from(item) for item in listed) if asset]
        if assets:
            return assets

    video = _asset_from(body.get("video"))
    if video is not None:
        return [video]

    for key in ("model_url", "diffusers_lora_file"):
        weights = _asset_from(body.get(key))
        if weights is not None:
            return [weights]
    return []


def _asset_from(value: Any) -> ResultAsset | None:
    if isinstance(value, str):
        entry: Mapping[str, Any] = {"url": value}
    elif isinstance(value, Mapping):
        entry = value
    else:
        return None

    url = entry.get("url")
    if not isinstance(url, str) or not url:
        return None

    content_type = entry.get("content_type") or entry.get("contentType")
    asset = ResultAsset(
        url=url,
        width=_as_int(entry.get("width")),
        height=_as_int(entry.get("height")),
        content_type=content_type if isinstance(content_type, str) else None,
    )
    if is_data_uri(url):
        try:
            asset.data, mime = parse_data_uri(url)
        except ValueError as exc:
            raise MalformedVendorResponseError(str(exc)) from exc
        asset.content_type = asset.content_type or mime
    return asset


def _as_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    return None
