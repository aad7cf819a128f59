"""Adapters for job types served by fal.ai models."""

from __future__ import annotations

import asyncio
import logging
from abc import abstractmethod
from dataclasses import dataclass, field
from typing import Any, ClassVar

from ..exceptions import AggregateVendorError
from ..results.normalizer import normalize
from ..results.result_models import NormalizedResult, ResultAsset
from .fal_client import FalClient
from .vendor_base import AdapterContext, VendorAdapter

logger = logging.getLogger(__name__)

FLUX_FILL_MODEL = "fal-ai/flux-pro/v1/fill"
NANO_BANANA_EDIT_MODEL = "fal-ai/nano-banana/edit"
SEEDREAM_EDIT_MODEL = "fal-ai/bytedance/seedream/v4/edit"
BRIA_ERASER_MODEL = "fal-ai/bria/eraser"
FINEGRAIN_ERASER_MODEL = "fal-ai/finegrain-eraser/mask"
TOPAZ_IMAGE_UPSCALE_MODEL = "fal-ai/topaz/upscale/image"
TOPAZ_VIDEO_UPSCALE_MODEL = "fal-ai/topaz/upscale/video"
IP_ADAPTER_MODEL = "fal-ai/ip-adapter-sdxl"
VEO3_IMAGE_TO_VIDEO_MODEL = "fal-ai/veo3/image-to-video"
LORA_TRAINER_MODEL = "fal-ai/sd15-lora-trainer"

DEFAULT_FILL_PROMPT = "natural background, seamless fill, match surrounding environment"
DEFAULT_COLORIZE_PROMPT = "colorize this photo, add natural and realistic colors"
DEFAULT_RESTORE_PROMPT = "repair photo"
DEFAULT_REGENERATE_PROMPT = (
    "Regenerate the area where the object was removed so it blends naturally "
    "with the surrounding scene."
)
MASKED_EDIT_NEGATIVE_PROMPT = (
    "repetition, repeating patterns, collage, duplicated objects, duplicated subjects, "
    "frames, borders, incoherent, disjointed, tiling, artifacts, mirroring"
)
RESIZE_NEGATIVE_PROMPT = (
    "repetition, repeating patterns, collage, stacked images, duplicated objects, "
    "duplicated subjects, frames, borders, incoherent, disjointed, multiple people, "
    "tiling, artifacts, mirroring, unrelated scenery, random objects, unnatural transitions"
)

# Preset edits share the textual edit request shape.
TEXTUAL_EDIT_PRESETS = (
    "studio_glow",
    "smart_skin",
    "backlight_savior",
    "golden_hour",
    "vibrant_nature",
    "portrait_pop",
    "analog_film",
    "moody_cinema",
    "foodie_fix",
    "minimalist_white",
    "sharpen_details",
    "neon_noir",
    "subject_light",
)


def _compact(body: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in body.items() if value is not None}


def trigger_word(caller_id: str, character_id: str) -> str:
    """Token that identifies a trained character LoRA in prompts."""
    return f"ohwx_{caller_id[:5]}_{character_id[:5]}"


@dataclass(slots=True)
class FalAdapter(VendorAdapter):
    """Adapter backed by one or more fal.ai model calls."""

    client: FalClient
    log: logging.Logger = field(default_factory=lambda: logger)


@dataclass(slots=True)
class FalModelAdapter(FalAdapter):
    """Adapter issuing a single fal.ai model call."""

    model: ClassVar[str]

    def route(
        self, parameters: dict[str, Any], context: AdapterContext
    ) -> tuple[str, dict[str, Any]]:
        """Return the model id and request body for ``parameters``."""
        return self.model, self.build_body(parameters, context)

    @abstractmethod
    def build_body(self, parameters: dict[str, Any], context: AdapterContext) -> dict[str, Any]:
        """Request body sent to the model."""

    async def execute(
        self, parameters: dict[str, Any], context: AdapterContext
    ) -> NormalizedResult:
        model, body = self.route(parameters, context)
        data = await self.client.run(model, body)
        return normalize(data)

    async def submit(self, parameters: dict[str, Any], context: AdapterContext) -> str:
        if not self.supports_webhook or not context.webhook_url:
            return await VendorAdapter.submit(self, parameters, context)
        model, body = self.route(parameters, context)
        return await self.client.enqueue(model, body, context.webhook_url)


@dataclass(slots=True)
class UpscaleAdapter(FalModelAdapter):
    job_type = "upscale"
    model = TOPAZ_IMAGE_UPSCALE_MODEL
    required_parameters = ("image_url",)
    supports_webhook = True

    def build_body(self, parameters: dict[str, Any], context: AdapterContext) -> dict[str, Any]:
        return {
            "image_url": parameters["image_url"],
            "scale_factor": parameters.get("upscale_factor") or 2.0,
            "face_enhancement": True,
        }


@dataclass(slots=True)
class InpaintAdapter(FalModelAdapter):
    job_type = "inpaint"
    model = FLUX_FILL_MODEL
    required_parameters = ("image_url", "mask_url")

    def build_body(self, parameters: dict[str, Any], context: AdapterContext) -> dict[str, Any]:
        return _compact(
            {
                "image_url": parameters["image_url"],
                "mask_url": parameters["mask_url"],
                "prompt": parameters.get("prompt") or DEFAULT_FILL_PROMPT,
                "negative_prompt": parameters.get("negative_prompt"),
            }
        )


@dataclass(slots=True)
class TextualEditAdapter(FalModelAdapter):
    """Masked edits go to flux fill, global edits to nano-banana."""

    job_type = "textual_edit"
    model = NANO_BANANA_EDIT_MODEL
    required_parameters = ("image_url", "prompt")

    def route(
        self, parameters: dict[str, Any], context: AdapterContext
    ) -> tuple[str, dict[str, Any]]:
        model = FLUX_FILL_MODEL if parameters.get("mask_url") else NANO_BANANA_EDIT_MODEL
        return model, self.build_body(parameters, context)

    def build_body(self, parameters: dict[str, Any], context: AdapterContext) -> dict[str, Any]:
        if parameters.get("mask_url"):
            return {
                "image_url": parameters["image_url"],
                "mask_url": parameters["mask_url"],
                "prompt": parameters["prompt"],
                "negative_prompt": MASKED_EDIT_NEGATIVE_PROMPT,
            }
        return {"image_urls": [parameters["image_url"]], "prompt": parameters["prompt"]}


@dataclass(slots=True)
class AiResizeAdapter(FalModelAdapter):
    job_type = "ai_resize"
    model = FLUX_FILL_MODEL
    required_parameters = ("image_url", "mask_url")

    def build_body(self, parameters: dict[str, Any], context: AdapterContext) -> dict[str, Any]:
        return {
            "image_url": parameters["image_url"],
            "mask_url": parameters["mask_url"],
            "prompt": expansion_prompt(parameters.get("expansion_direction")),
            "negative_prompt": RESIZE_NEGATIVE_PROMPT,
        }


def expansion_prompt(direction: str | None) -> str:
    """Outpainting prompt for the requested canvas expansion."""
    parts = ["A high-quality, realistic photograph."]
    if direction == "vertical":
        parts.append(
            "Naturally extend the sky upward and the ground/floor downward. "
            "Maintain the horizon line and perspective. "
            "Continue existing patterns seamlessly (clouds, terrain, flooring)."
        )
    elif direction == "horizontal":
        parts.append(
            "Naturally extend the scene to the left and right sides. "
            "Maintain perspective and scale of existing elements. "
            "Continue architectural or environmental patterns seamlessly."
        )
    else:
        parts.append(
            "Extend the scene in all directions naturally. "
            "Maintain perspective, lighting, and existing scene elements."
        )
    parts.append(
        "Match the exact lighting, color palette, and style of the original photo. "
        "Fill masked areas with contextually appropriate content."
    )
    return " ".join(parts)


@dataclass(slots=True)
class ObjectRemovalAdapter(FalModelAdapter):
    job_type = "object_removal"
    model = FINEGRAIN_ERASER_MODEL
    required_parameters = ("image_url", "mask_url")
    persist_by_default = True

    def build_body(self, parameters: dict[str, Any], context: AdapterContext) -> dict[str, Any]:
        return {
            "image_url": parameters["image_url"],
            "mask_url": parameters["mask_url"],
            "sync_mode": True,
        }


@dataclass(slots=True)
class SmartRetouchAdapter(FalModelAdapter):
    job_type = "smart_retouch"
    model = BRIA_ERASER_MODEL
    required_parameters = ("image_url", "mask_url")

    def build_body(self, parameters: dict[str, Any], context: AdapterContext) -> dict[str, Any]:
        return {"image_url": parameters["image_url"], "mask_url": parameters["mask_url"]}


@dataclass(slots=True)
class RemoveAndRegenerateAdapter(FalAdapter):
    """Erase the masked object, then regenerate the scene from the erased image.

    The erased image is re-hosted so the second model can fetch it; the
    intermediate artifact is deleted once the second call returns or fails.
    """

    job_type = "remove_and_regenerate"
    required_parameters = ("image_url", "mask_url")

    async def execute(
        self, parameters: dict[str, Any], context: AdapterContext
    ) -> NormalizedResult:
        erased = normalize(
            await self.client.run(
                BRIA_ERASER_MODEL,
                {"image_url": parameters["image_url"], "mask_url": parameters["mask_url"]},
            )
        )
        intermediate = await context.materializer.persist_asset(
            erased.images[0], f"{context.namespace}/intermediate"
        )
        self.log.info(
            "vendor.fal.two_stage.intermediate",
            extra={"job_type": self.job_type, "bucket_key": intermediate.bucket_key},
        )
        try:
            data = await self.client.run(
                NANO_BANANA_EDIT_MODEL,
                {
                    "image_urls": [intermediate.permanent_url],
                    "prompt": parameters.get("prompt") or DEFAULT_REGENERATE_PROMPT,
                },
            )
            return normalize(data)
        finally:
            await context.materializer.delete(intermediate)


@dataclass(slots=True)
class GenericRestoreAdapter(FalAdapter):
    """Run two restoration models concurrently and merge their candidates."""

    job_type = "generic_restore"
    required_parameters = ("image_url",)

    def sub_calls(self, parameters: dict[str, Any]) -> list[tuple[str, dict[str, Any]]]:
        image_url = parameters["image_url"]
        seedream_body: dict[str, Any] = {
            "image_urls": [image_url],
            "prompt": parameters.get("seedream_prompt") or DEFAULT_RESTORE_PROMPT,
        }
        width, height = parameters.get("width"), parameters.get("height")
        if width and height:
            seedream_body["image_size"] = {"width": width, "height": height}
        return [
            (
                NANO_BANANA_EDIT_MODEL,
                {
                    "image_urls": [image_url],
                    "prompt": parameters.get("banana_prompt") or DEFAULT_RESTORE_PROMPT,
                },
            ),
            (SEEDREAM_EDIT_MODEL, seedream_body),
        ]

    async def execute(
        self, parameters: dict[str, Any], context: AdapterContext
    ) -> NormalizedResult:
        calls = self.sub_calls(parameters)
        outcomes = await asyncio.gather(
            *(self._call(model, body) for model, body in calls),
            return_exceptions=True,
        )

        images: list[ResultAsset] = []
        total_times: list[float] = []
        errors: list[Exception] = []
        for (model, _), outcome in zip(calls, outcomes):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                self.log.warning(
                    "vendor.fal.fanout.partial_failure",
                    extra={"job_type": self.job_type, "model": model, "error": str(outcome)},
                )
                errors.append(outcome)
                continue
            images.append(outcome.images[0])
            total_time = (outcome.timings or {}).get("totalTime")
            if isinstance(total_time, (int, float)):
                total_times.append(total_time)

        if not images:
            raise AggregateVendorError(errors)
        return NormalizedResult(
            images=images,
            timings={"totalTime": sum(total_times)} if total_times else None,
        )

    async def _call(self, model: str, body: dict[str, Any]) -> NormalizedResult:
        return normalize(await self.client.run(model, body))


@dataclass(slots=True)
class ColorizeAdapter(FalModelAdapter):
    job_type = "colorize"
    model = NANO_BANANA_EDIT_MODEL
    required_parameters = ("image_url",)

    def build_body(self, parameters: dict[str, Any], context: AdapterContext) -> dict[str, Any]:
        return {
            "image_urls": [parameters["image_url"]],
            "prompt": parameters.get("prompt") or DEFAULT_COLORIZE_PROMPT,
        }


@dataclass(slots=True)
class TrendAdapter(FalModelAdapter):
    job_type = "trend"
    model = NANO_BANANA_EDIT_MODEL
    required_parameters = ("image_urls", "prompt")
    list_parameters = ("image_urls",)

    def build_body(self, parameters: dict[str, Any], context: AdapterContext) -> dict[str, Any]:
        return {"image_urls": parameters["image_urls"], "prompt": parameters["prompt"]}


@dataclass(slots=True)
class AngleShiftAdapter(FalModelAdapter):
    """Re-pose a subject; ``user_lora_url`` carries the face reference image."""

    job_type = "angle_shift"
    model = IP_ADAPTER_MODEL
    required_parameters = ("image_urls", "user_lora_url")
    list_parameters = ("image_urls",)

    def build_body(self, parameters: dict[str, Any], context: AdapterContext) -> dict[str, Any]:
        return _compact(
            {
                "image_url": parameters["image_urls"][0],
                "ip_adapter_image_url": parameters["user_lora_url"],
                "prompt": parameters.get("prompt"),
                "negative_prompt": parameters.get("negative_prompt"),
                "width": parameters.get("width"),
                "height": parameters.get("height"),
                "ip_adapter_scale": 0.7,
            }
        )


@dataclass(slots=True)
class VideoAdapter(FalModelAdapter):
    job_type = "video"
    model = VEO3_IMAGE_TO_VIDEO_MODEL
    required_parameters = ("image_urls", "prompt")
    list_parameters = ("image_urls",)
    supports_webhook = True

    def build_body(self, parameters: dict[str, Any], context: AdapterContext) -> dict[str, Any]:
        generate_audio = parameters.get("generate_audio")
        return {
            "image_url": parameters["image_urls"][0],
            "prompt": parameters["prompt"],
            "duration": "8s",
            "aspect_ratio": parameters.get("aspect_ratio") or "auto",
            "resolution": parameters.get("resolution") or "720p",
            "generate_audio": False if generate_audio is None else bool(generate_audio),
        }


@dataclass(slots=True)
class VideoUpscaleAdapter(FalModelAdapter):
    job_type = "video_upscale"
    model = TOPAZ_VIDEO_UPSCALE_MODEL
    required_parameters = ("video_url",)
    supports_webhook = True
    async_only = True

    def build_body(self, parameters: dict[str, Any], context: AdapterContext) -> dict[str, Any]:
        return _compact(
            {
                "video_url": parameters["video_url"],
                "upscale_factor": parameters.get("upscale_factor") or 2,
                "target_fps": parameters.get("target_fps"),
            }
        )


@dataclass(slots=True)
class TrainLoraAdapter(FalModelAdapter):
    job_type = "train_lora"
    model = LORA_TRAINER_MODEL
    required_parameters = ("image_urls", "character_id")
    list_parameters = ("image_urls",)
    supports_webhook = True
    async_only = True

    def build_body(self, parameters: dict[str, Any], context: AdapterContext) -> dict[str, Any]:
        trigger = trigger_word(context.caller_id, str(parameters["character_id"]))
        return {
            "image_urls": parameters["image_urls"],
            "concept_prompt": f"a photo of {trigger} person",
            "class_prompt": "a photo of a person",
        }
