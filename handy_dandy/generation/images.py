"""Token and item art generation over the image request client."""

from __future__ import annotations

import base64
import binascii
import logging
import re
import time
from pathlib import Path
from typing import Any, List, Optional, Tuple, Union

from handy_dandy.openrouter.client import GeneratedImage, ReferenceImage

logger = logging.getLogger(__name__)

GENERATED_IMAGE_ROOT = "handy-dandy/generated-images"
IMAGE_CATEGORY_DIRECTORIES = {"actor": "actors", "item": "items"}
IMAGE_SIZE = "1024x1024"

ReferenceLike = Union[ReferenceImage, str, Path]

_UNSAFE_FILENAME = re.compile(r"[^a-z0-9]+")
_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def _detail_lines(label: str, description: Optional[str], custom_prompt: Optional[str]) -> List[str]:
    lines: List[str] = []
    if description and description.strip():
        lines.append(f"{label}: {description.strip()}")
    if custom_prompt and custom_prompt.strip():
        lines.append(f"Additional direction: {custom_prompt.strip()}")
    return lines


def build_transparent_token_prompt(
    name: str,
    *,
    description: Optional[str] = None,
    custom_prompt: Optional[str] = None,
) -> str:
    """Return the prompt for a transparent-background creature token."""

    lines = [
        f'Create a Pathfinder-style monster token portrait for "{name}".',
        "Transparent background only.",
        "Single creature subject, centered, fully visible, and facing camera or three-quarters.",
        "No text, no labels, no border, no frame, no watermark.",
        "Render as production-ready virtual tabletop token art with clean silhouette edges.",
    ]
    return "\n".join(lines + _detail_lines("Creature details", description, custom_prompt))


def build_item_image_prompt(
    name: str,
    *,
    description: Optional[str] = None,
    custom_prompt: Optional[str] = None,
) -> str:
    """Return the prompt for a transparent-background item icon."""

    lines = [
        f'Create Pathfinder-style item icon art for "{name}".',
        "Transparent background only.",
        "Single centered subject with crisp silhouette and no frame.",
        "No text, no labels, no logos, no watermark.",
        "Use clean high-contrast fantasy icon styling suitable for Foundry VTT item sheets.",
    ]
    return "\n".join(lines + _detail_lines("Item details", description, custom_prompt))


def _base36(number: int) -> str:
    digits = ""
    while True:
        number, remainder = divmod(number, 36)
        digits = _BASE36[remainder] + digits
        if not number:
            return digits


def image_filename(base: str, *, timestamp: Optional[float] = None) -> str:
    """Return a filesystem-safe file stem for *base* with a time-derived suffix.

    Stems never exceed 63 characters, and an empty *base* falls back to
    ``generated-token``.
    """

    safe = _UNSAFE_FILENAME.sub("-", base.strip().lower()).strip("-")[:64] or "generated-token"
    moment = time.time() if timestamp is None else timestamp
    suffix = _base36(int(moment * 1000))
    return f"{safe[: max(1, 62 - len(suffix))]}-{suffix}"


def data_url(image: GeneratedImage) -> str:
    return f"data:{image.mime_type};base64,{image.base64}"


def store_generated_image(
    image: GeneratedImage,
    base_name: str,
    category: str = "actor",
    *,
    output_dir: Optional[Union[str, Path]] = None,
) -> str:
    """Persist *image* and return the path a host document should reference.

    With an *output_dir* the image is written below
    ``handy-dandy/generated-images/<actors|items>/`` inside it and the
    returned path is relative to *output_dir*. Without one, or when the
    write fails, the image is returned inline as a data URL.
    """

    if output_dir is None:
        return data_url(image)

    directory = f"{GENERATED_IMAGE_ROOT}/{IMAGE_CATEGORY_DIRECTORIES.get(category, 'actors')}"
    extension = "webp" if image.mime_type == "image/webp" else "png"
    relative = f"{directory}/{image_filename(base_name)}.{extension}"
    try:
        payload = base64.b64decode(image.base64, validate=True)
        target = Path(output_dir) / relative
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(payload)
    except (OSError, binascii.Error) as exc:
        logger.warning("could not store generated image path=%s error=%s; using data URL", relative, exc)
        return data_url(image)
    logger.info("stored generated image path=%s bytes=%d", relative, len(payload))
    return relative


def _reference(value: Optional[ReferenceLike]) -> Tuple[ReferenceImage, ...]:
    if value is None:
        return ()
    if isinstance(value, ReferenceImage):
        return (value,)
    return (ReferenceImage.from_path(value),)


async def generate_transparent_token_image(
    client: Any,
    name: str,
    *,
    slug: Optional[str] = None,
    description: Optional[str] = None,
    custom_prompt: Optional[str] = None,
    prompt_override: Optional[str] = None,
    reference_image: Optional[ReferenceLike] = None,
    category: str = "actor",
    output_dir: Optional[Union[str, Path]] = None,
) -> str:
    """Generate token art for *name* and return its stored path or data URL.

    *client* is anything with an async ``generate_image`` matching
    :meth:`OpenRouterClient.generate_image`. A non-blank *prompt_override*
    replaces the built prompt. *reference_image* may be a
    :class:`ReferenceImage` or a path to an image file.
    """

    prompt = (prompt_override or "").strip() or build_transparent_token_prompt(
        name, description=description, custom_prompt=custom_prompt
    )
    image = await client.generate_image(
        prompt,
        size=IMAGE_SIZE,
        image_format="png",
        reference_images=_reference(reference_image),
    )
    return store_generated_image(image, f"{slug or name}-token", category, output_dir=output_dir)


async def generate_item_image(
    client: Any,
    name: str,
    *,
    slug: Optional[str] = None,
    description: Optional[str] = None,
    custom_prompt: Optional[str] = None,
    output_dir: Optional[Union[str, Path]] = None,
) -> str:
    """Generate icon art for the item *name* and return its stored path or data URL."""

    prompt = build_item_image_prompt(name, description=description, custom_prompt=custom_prompt)
    image = await client.generate_image(prompt, size=IMAGE_SIZE, image_format="png")
    return store_generated_image(image, f"{slug or name}-item", "item", output_dir=output_dir)


__all__ = [
    "GENERATED_IMAGE_ROOT",
    "IMAGE_CATEGORY_DIRECTORIES",
    "IMAGE_SIZE",
    "build_item_image_prompt",
    "build_transparent_token_prompt",
    "data_url",
    "generate_item_image",
    "generate_transparent_token_image",
    "image_filename",
    "store_generated_image",
]
