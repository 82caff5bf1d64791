"""Write KHR_materials_variants data into a target document.

Given the resolved mesh assignments for one target file, the applicator:

    1. Collects every variant name in first-seen order (assignment order, then
       variant order inside each assignment). The order comes from the
       configuration, never from sorting, so repeated runs are identical.
    2. Declares those names as the document's variants. An empty list removes
       the extension and its ``extensionsUsed`` entry instead.
    3. Resets every primitive's variant mappings, sets the default material of
       assigned meshes and writes one mapping per resolvable variant.
    4. Removes the document-level extension again if no primitive ended up
       with a mapping.

Unresolvable material or variant names are skipped with a log record; they
never fail the file.
"""

from __future__ import annotations

import logging
from typing import Any

from filename_resolver import resolve_assignments
from gltf_document import (
    KHR_MATERIALS_VARIANTS,
    remove_variants_extension,
    strip_primitive_variants,
)
from material_config import (
    NOT_FOUND,
    MaterialConfig,
    MeshAssignment,
    find_material_index,
    find_variant_index,
)

logger = logging.getLogger(__name__)


def ordered_variant_names(assignments: dict[str, MeshAssignment]) -> list[str]:
    """Deduplicated variant names in first-seen order.

    Example:
        >>> ordered_variant_names({
        ...     "Seat": MeshAssignment("Wood", [Variant("Oak", "Wood"), Variant("Steel", "Metal")]),
        ...     "Legs": MeshAssignment("Metal", [Variant("Steel", "Metal"), Variant("Ash", "Wood")]),
        ... })
        ['Oak', 'Steel', 'Ash']
    """
    names: list[str] = []
    seen: set[str] = set()
    for assignment in assignments.values():
        for variant in assignment.variants:
            if variant.name not in seen:
                seen.add(variant.name)
                names.append(variant.name)
    return names


def apply_variants(
    document: dict[str, Any],
    config: MaterialConfig,
    target_file_name: str,
) -> list[str]:
    """Apply resolved mesh assignments and variant mappings to a document.

    Args:
        document: Target document to update in place. Its ``materials`` must
            already be final, since names are resolved against them.
        config: Parsed Configuration Document.
        target_file_name: Bare file name, used for mesh-group matching.

    Returns:
        The variant names declared on the document (empty if the extension
        was removed).
    """
    assignments = resolve_assignments(config, target_file_name)
    variant_names = ordered_variant_names(assignments)

    if variant_names:
        extensions = document.setdefault("extensions", {})
        extensions[KHR_MATERIALS_VARIANTS] = {"variants": [{"name": name} for name in variant_names]}
    else:
        remove_variants_extension(document)

    mapped_primitives = 0
    for mesh in document.get("meshes") or []:
        if not isinstance(mesh, dict):
            continue
        primitives = [p for p in mesh.get("primitives") or [] if isinstance(p, dict)]
        for primitive in primitives:
            strip_primitive_variants(primitive)

        mesh_name = mesh.get("name")
        assignment = assignments.get(mesh_name) if mesh_name else None
        if assignment is None:
            logger.debug("Mesh %r has no assignment, keeping its material", mesh_name)
            continue

        default_index = NOT_FOUND
        if assignment.default_material:
            default_index = find_material_index(document, assignment.default_material)
            if default_index == NOT_FOUND:
                logger.warning(
                    "%s: default material %r for mesh %r not found, keeping original",
                    target_file_name,
                    assignment.default_material,
                    mesh_name,
                )

        mappings: list[dict[str, Any]] = []
        for variant in assignment.variants:
            material_index = find_material_index(document, variant.material)
            variant_index = find_variant_index(document, variant.name)
            if material_index == NOT_FOUND or variant_index == NOT_FOUND:
                logger.debug(
                    "%s: skipping variant %r -> %r on mesh %r (unresolved)",
                    target_file_name,
                    variant.name,
                    variant.material,
                    mesh_name,
                )
                continue
            mappings.append({"material": material_index, "variants": [variant_index]})

        for primitive in primitives:
            if default_index != NOT_FOUND:
                primitive["material"] = default_index
            if mappings:
                primitive.setdefault("extensions", {})[KHR_MATERIALS_VARIANTS] = {
                    "mappings": [dict(m, variants=list(m["variants"])) for m in mappings]
                }
                mapped_primitives += 1

    if mapped_primitives == 0:
        if variant_names:
            logger.info("%s: no mesh received a variant mapping, removing variants", target_file_name)
        remove_variants_extension(document)
        return []

    logger.debug(
        "%s: %d variant(s) mapped onto %d primitive(s)",
        target_file_name,
        len(variant_names),
        mapped_primitives,
    )
    return variant_names
