"""Texture rotation patch for mood-board ("MOO-") materials.

Mood materials share textures whose UV orientation depends on the model family:
the alternate family needs its textures turned by ~90 degrees. The patch sets
``KHR_texture_transform.rotation`` on three texture slots of every material
whose name starts with ``MOO-``:

    - normalTexture
    - pbrMetallicRoughness.baseColorTexture
    - extensions.KHR_materials_sheen.sheenColorTexture

A slot is only touched when it already carries a ``KHR_texture_transform``
block and its texture does not sample an ambient-occlusion image. AO maps are
baked in the model's own UV space and must never be rotated.
"""

from __future__ import annotations

import logging
from typing import Any

from ao_texture import texture_uses_ao_image
from gltf_document import KHR_TEXTURE_TRANSFORM
from material_config import MaterialConfig

logger = logging.getLogger(__name__)

MOOD_MATERIAL_PREFIX = "MOO-"
PRIMARY_ROTATION = 0
ALTERNATE_ROTATION = 1.56

# Catalog key in ``models`` naming the model family that uses the alternate branch.
ALTERNATE_MODEL_LABEL = "Blavalen"


def is_alternate_branch(
    config: MaterialConfig, model_label: str, *, catalog_key: str = ALTERNATE_MODEL_LABEL
) -> bool:
    """True if ``model_label`` is listed under ``config.models[catalog_key]``."""
    return model_label in config.models.get(catalog_key, [])


def _rotation_slots(material: dict[str, Any]) -> list[tuple[str, Any]]:
    pbr = material.get("pbrMetallicRoughness") or {}
    sheen = (material.get("extensions") or {}).get("KHR_materials_sheen") or {}
    return [
        ("normalTexture", material.get("normalTexture")),
        ("baseColorTexture", pbr.get("baseColorTexture")),
        ("sheenColorTexture", sheen.get("sheenColorTexture")),
    ]


def apply_mood_rotation(
    document: dict[str, Any],
    alternate_branch: bool,
    *,
    prefix: str = MOOD_MATERIAL_PREFIX,
    primary_rotation: float = PRIMARY_ROTATION,
    alternate_rotation: float = ALTERNATE_ROTATION,
) -> int:
    """Set the texture-transform rotation on mood materials.

    Args:
        document: Document to update in place.
        alternate_branch: Selects ``alternate_rotation`` (True) or
            ``primary_rotation`` (False).
        prefix: Material name prefix selecting mood materials.

    Returns:
        Number of texture slots whose rotation was written.
    """
    rotation = alternate_rotation if alternate_branch else primary_rotation
    patched = 0

    for material in document.get("materials") or []:
        if not isinstance(material, dict):
            continue
        name = material.get("name")
        if not isinstance(name, str) or not name.startswith(prefix):
            continue

        for slot_name, texture_info in _rotation_slots(material):
            if not isinstance(texture_info, dict):
                continue
            transform = (texture_info.get("extensions") or {}).get(KHR_TEXTURE_TRANSFORM)
            if not isinstance(transform, dict):
                continue
            if texture_uses_ao_image(document, texture_info.get("index")):
                logger.debug("Skipping AO texture in %s.%s", name, slot_name)
                continue
            transform["rotation"] = rotation
            patched += 1

    logger.debug("Mood rotation %s applied to %d texture slot(s)", rotation, patched)
    return patched
