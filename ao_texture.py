"""Keep each target file's own ambient-occlusion image.

Every target file in a family shares the reference file's materials, textures
and samplers, except for one thing: the ambient-occlusion (AO) map is baked per
asset. preserve_ao() copies the reference's textures/images and then puts the
target's AO image into the image slot the reference's AO texture points at, so
the result keeps the reference's texture/sampler wiring with the target's own
AO pixels.

Naming Conventions:
    - AO image (target side): name contains ``_AO`` or ends with ``-AO``.
      The image ``uri`` (without extension) is checked when there is no name.
    - AO texture (reference side): name contains ``tex_AmbientOcclusion_A``.

These are project conventions, so every function takes them as keyword
overrides.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Any

from gltf_document import MissingAOError

logger = logging.getLogger(__name__)

AO_IMAGE_MARKERS = ("_AO",)
AO_IMAGE_SUFFIXES = ("-AO",)
AO_TEXTURE_MARKER = "tex_AmbientOcclusion_A"


@dataclass
class PreservedAssets:
    """Textures/images to install in the target after AO preservation.

    Attributes:
        textures: Copy of the reference ``textures`` array.
        images: Copy of the reference ``images`` array with the target's AO
            image at ``ao_image_index``.
        ao_image_index: Image slot that received the target's AO image.
    """

    textures: list[dict[str, Any]]
    images: list[dict[str, Any]]
    ao_image_index: int


def _image_label(image: dict[str, Any]) -> str:
    name = image.get("name")
    if name:
        return str(name)
    uri = image.get("uri")
    if uri and not str(uri).startswith("data:"):
        return PurePosixPath(str(uri)).stem
    return ""


def is_ao_image(
    image: Any,
    *,
    markers: tuple[str, ...] = AO_IMAGE_MARKERS,
    suffixes: tuple[str, ...] = AO_IMAGE_SUFFIXES,
) -> bool:
    """Check whether a glTF image entry is an ambient-occlusion map.

    Example:
        >>> is_ao_image({"name": "Chair_01_AO"})
        True
        >>> is_ao_image({"uri": "textures/Chair-AO.png"})
        True
        >>> is_ao_image({"name": "Chair_01_BaseColor"})
        False
    """
    if not isinstance(image, dict):
        return False
    label = _image_label(image)
    if not label:
        return False
    return any(marker in label for marker in markers) or label.endswith(suffixes)


def texture_uses_ao_image(
    document: dict[str, Any],
    texture_index: Any,
    **conventions: Any,
) -> bool:
    """True if the texture at ``texture_index`` samples an AO image.

    Unresolvable indices are not AO.
    """
    textures = document.get("textures") or []
    images = document.get("images") or []
    if not isinstance(texture_index, int) or not 0 <= texture_index < len(textures):
        return False
    texture = textures[texture_index]
    source = texture.get("source") if isinstance(texture, dict) else None
    if not isinstance(source, int) or not 0 <= source < len(images):
        return False
    return is_ao_image(images[source], **conventions)


def find_ao_image(document: dict[str, Any], **conventions: Any) -> tuple[int, dict[str, Any]] | None:
    """Return ``(index, image)`` of the first AO image, or None."""
    for index, image in enumerate(document.get("images") or []):
        if is_ao_image(image, **conventions):
            return index, image
    return None


def find_ao_texture(
    document: dict[str, Any], *, marker: str = AO_TEXTURE_MARKER
) -> tuple[int, dict[str, Any]] | None:
    """Return ``(index, texture)`` of the first texture whose name contains ``marker``."""
    for index, texture in enumerate(document.get("textures") or []):
        if isinstance(texture, dict) and marker in str(texture.get("name") or ""):
            return index, texture
    return None


def preserve_ao(
    target: dict[str, Any],
    reference: dict[str, Any],
    *,
    texture_marker: str = AO_TEXTURE_MARKER,
    **image_conventions: Any,
) -> PreservedAssets:
    """Build reference textures/images carrying the target's AO image.

    Args:
        target: Target document (source of the AO image). Not modified.
        reference: Reference document (source of everything else). Not modified.
        texture_marker: Substring identifying the reference AO texture.
        **image_conventions: ``markers`` / ``suffixes`` overrides for is_ao_image().

    Returns:
        PreservedAssets with fresh copies of the arrays.

    Raises:
        MissingAOError: If the target has no AO image, the reference has no AO
            texture, or that texture does not point at a valid image.
    """
    target_ao = find_ao_image(target, **image_conventions)
    if target_ao is None:
        raise MissingAOError("No ambient-occlusion image (name containing '_AO') in target file")

    reference_ao = find_ao_texture(reference, marker=texture_marker)
    if reference_ao is None:
        raise MissingAOError(
            f"No ambient-occlusion texture (name containing {texture_marker!r}) in reference file"
        )

    texture_index, texture = reference_ao
    images = copy.deepcopy(reference.get("images") or [])
    source = texture.get("source")
    if not isinstance(source, int) or not 0 <= source < len(images):
        raise MissingAOError(
            f"Reference AO texture {texture.get('name')!r} (index {texture_index}) "
            f"has no valid image source: {source!r}"
        )

    target_image_index, target_image = target_ao
    images[source] = copy.deepcopy(target_image)
    logger.debug(
        "Preserved target AO image %d (%s) into reference image slot %d",
        target_image_index,
        _image_label(target_image),
        source,
    )

    return PreservedAssets(
        textures=copy.deepcopy(reference.get("textures") or []),
        images=images,
        ao_image_index=source,
    )
