"""Index remapping for glTF materials, textures and images.

glTF cross-references are plain array indices. Whenever one of the
materials/textures/images arrays is reordered, merged or pruned, every index
stored elsewhere that points into it has to be rewritten, or the document is
corrupt. This module builds those old-index -> new-index maps explicitly, once
per operation, and applies them.

Two modes are supported:

Append/merge mode (update pipeline):
    merge_material_order() orders the reference materials as "configured
    materials first, in configuration order, then every remaining reference
    material in reference order". It returns both a name -> new index map and
    an old reference index -> new index map. remap_primitive_materials() then
    rewrites every primitive ``material`` and every variant mapping.

Prune mode (export pipeline):
    collect_usage_closure() finds the materials reachable from the primitives,
    the textures reachable from those materials and the images reachable from
    those textures. prune_to_closure() keeps only those entries, numbering the
    survivors 0..k-1 in ascending original order, and rewrites every
    reference to them.

In both modes new arrays are built from copies of the kept entries, so shared
input objects are never modified and a dangling index is dropped (with a
warning) rather than left pointing past the end of an array.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable

from gltf_document import (
    KHR_MATERIALS_VARIANTS,
    iter_primitives,
    iter_texture_slots,
    strip_primitive_variants,
    texture_image_refs,
)

logger = logging.getLogger(__name__)


@dataclass
class MaterialMerge:
    """Result of merging configured and reference material order.

    Attributes:
        materials: New materials array (copies of the reference entries).
        name_to_index: Material name -> index in ``materials``. The first
            entry wins if the reference has duplicate names.
        old_to_new: Index in the reference materials array -> index in
            ``materials``. Every reference index appears exactly once.
        missing_names: Configured material names with no reference material.
    """

    materials: list[dict[str, Any]] = field(default_factory=list)
    name_to_index: dict[str, int] = field(default_factory=dict)
    old_to_new: dict[int, int] = field(default_factory=dict)
    missing_names: list[str] = field(default_factory=list)


@dataclass
class UsageClosure:
    """Sets of original indices still reachable from the kept primitives."""

    materials: set[int] = field(default_factory=set)
    textures: set[int] = field(default_factory=set)
    images: set[int] = field(default_factory=set)


def merge_material_order(
    reference_materials: list[dict[str, Any]],
    configured_names: Iterable[str],
) -> MaterialMerge:
    """Order reference materials with configured materials first.

    Args:
        reference_materials: The reference document's ``materials`` array.
        configured_names: Material names in configuration order.

    Returns:
        MaterialMerge with the new array and both lookup maps.

    Example:
        >>> merge = merge_material_order(
        ...     [{"name": "Metal"}, {"name": "Wood"}, {"name": "Glass"}],
        ...     ["Wood", "Missing"],
        ... )
        >>> [m["name"] for m in merge.materials]
        ['Wood', 'Metal', 'Glass']
        >>> merge.old_to_new
        {1: 0, 0: 1, 2: 2}
        >>> merge.missing_names
        ['Missing']
    """
    first_index_by_name: dict[str, int] = {}
    for index, material in enumerate(reference_materials):
        name = material.get("name") if isinstance(material, dict) else None
        if name is not None:
            first_index_by_name.setdefault(name, index)

    merge = MaterialMerge()
    order: list[int] = []
    included: set[int] = set()

    for name in configured_names:
        index = first_index_by_name.get(name)
        if index is None:
            merge.missing_names.append(name)
            continue
        if index not in included:
            order.append(index)
            included.add(index)

    for index in range(len(reference_materials)):
        if index not in included:
            order.append(index)
            included.add(index)

    for new_index, old_index in enumerate(order):
        material = copy.deepcopy(reference_materials[old_index])
        merge.materials.append(material)
        merge.old_to_new[old_index] = new_index
        name = material.get("name") if isinstance(material, dict) else None
        if name is not None:
            merge.name_to_index.setdefault(name, new_index)

    if merge.missing_names:
        logger.debug(
            "Configured materials not present in reference: %s", ", ".join(merge.missing_names)
        )
    return merge


def remap_primitive_materials(document: dict[str, Any], old_to_new: dict[int, int]) -> int:
    """Rewrite every primitive ``material`` and variant mapping ``material``.

    Indices missing from ``old_to_new`` cannot be kept without corrupting the
    document, so the primitive loses its ``material`` (or the mapping is
    dropped) and a warning is logged.

    Args:
        document: Document to update in place.
        old_to_new: Old material index -> new material index.

    Returns:
        Number of dangling references that were dropped.
    """
    dropped = 0

    for mesh, primitive in iter_primitives(document):
        material = primitive.get("material")
        if isinstance(material, int):
            if material in old_to_new:
                primitive["material"] = old_to_new[material]
            else:
                logger.warning(
                    "Mesh %r references unknown material index %d, removing it",
                    mesh.get("name"),
                    material,
                )
                del primitive["material"]
                dropped += 1

        block = (primitive.get("extensions") or {}).get(KHR_MATERIALS_VARIANTS)
        if not block:
            continue
        kept_mappings = []
        for mapping in block.get("mappings") or []:
            old = mapping.get("material")
            if isinstance(old, int) and old in old_to_new:
                remapped = dict(mapping)
                remapped["material"] = old_to_new[old]
                kept_mappings.append(remapped)
            else:
                logger.warning(
                    "Mesh %r variant mapping references unknown material index %r, dropping it",
                    mesh.get("name"),
                    old,
                )
                dropped += 1
        if kept_mappings:
            block["mappings"] = kept_mappings
        else:
            strip_primitive_variants(primitive)

    return dropped


def _in_range(index: Any, array: list[Any]) -> bool:
    return isinstance(index, int) and 0 <= index < len(array)


def collect_usage_closure(document: dict[str, Any]) -> UsageClosure:
    """Collect the materials, textures and images reachable from primitives.

    Only each primitive's current ``material`` counts, so variants must be
    baked in before calling this. Out-of-range indices are ignored.
    """
    materials = document.get("materials") or []
    textures = document.get("textures") or []
    images = document.get("images") or []
    closure = UsageClosure()

    for _, primitive in iter_primitives(document):
        index = primitive.get("material")
        if _in_range(index, materials):
            closure.materials.add(index)

    for material_index in closure.materials:
        for container, key in iter_texture_slots(materials[material_index]):
            texture_index = container[key]["index"]
            if _in_range(texture_index, textures):
                closure.textures.add(texture_index)

    for texture_index in closure.textures:
        texture = textures[texture_index]
        if not isinstance(texture, dict):
            continue
        for holder in texture_image_refs(texture):
            if _in_range(holder["source"], images):
                closure.images.add(holder["source"])

    return closure


def contiguous_remap(used: Iterable[int]) -> dict[int, int]:
    """Number the used indices 0..k-1 in ascending original order.

    Example:
        >>> contiguous_remap({7, 2, 4})
        {2: 0, 4: 1, 7: 2}
    """
    return {old: new for new, old in enumerate(sorted(set(used)))}


def prune_to_closure(document: dict[str, Any], closure: UsageClosure) -> None:
    """Drop unreferenced materials/textures/images and reindex the rest.

    Rewrites primitive ``material`` fields, texture-info ``index`` fields inside
    the kept materials and image ``source`` fields inside the kept textures,
    then replaces the three arrays with new, contiguous ones.

    Args:
        document: Document to update in place.
        closure: Result of collect_usage_closure() on the same document.
    """
    material_map = contiguous_remap(closure.materials)
    texture_map = contiguous_remap(closure.textures)
    image_map = contiguous_remap(closure.images)

    for mesh, primitive in iter_primitives(document):
        index = primitive.get("material")
        if index is None:
            continue
        if index in material_map:
            primitive["material"] = material_map[index]
        else:
            logger.warning(
                "Mesh %r references unknown material index %r, removing it", mesh.get("name"), index
            )
            del primitive["material"]

    old_materials = document.get("materials") or []
    new_materials = []
    for old_index in sorted(material_map):
        material = copy.deepcopy(old_materials[old_index])
        for container, key in iter_texture_slots(material):
            texture_index = container[key]["index"]
            if texture_index in texture_map:
                container[key]["index"] = texture_map[texture_index]
            else:
                logger.warning(
                    "Material %r slot %s references unknown texture %r, removing slot",
                    material.get("name"),
                    key,
                    texture_index,
                )
                del container[key]
        new_materials.append(material)

    old_textures = document.get("textures") or []
    new_textures = []
    for old_index in sorted(texture_map):
        texture = copy.deepcopy(old_textures[old_index])
        for holder in list(texture_image_refs(texture)):
            if holder["source"] in image_map:
                holder["source"] = image_map[holder["source"]]
            else:
                logger.warning(
                    "Texture %r references unknown image %r, removing source",
                    texture.get("name"),
                    holder["source"],
                )
                del holder["source"]
        new_textures.append(texture)

    old_images = document.get("images") or []
    new_images = [copy.deepcopy(old_images[old_index]) for old_index in sorted(image_map)]

    logger.debug(
        "Pruned to %d/%d materials, %d/%d textures, %d/%d images",
        len(new_materials),
        len(old_materials),
        len(new_textures),
        len(old_textures),
        len(new_images),
        len(old_images),
    )

    document["materials"] = new_materials
    document["textures"] = new_textures
    document["images"] = new_images
