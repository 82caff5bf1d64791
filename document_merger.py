"""Update pipeline: merge the reference material setup into one target file.

Pipeline Steps:
    1. Default-initialize missing top-level arrays on the target
    2. Declare KHR_texture_transform / KHR_materials_variants (plus the
       reference's own declarations)
    3. Preserve the target's AO image inside copies of the reference
       textures/images (fatal if AO assets are missing)
    4. Replace the target's ``extensions`` block with the reference's
    5. Order materials: configured materials first, then remaining reference
       materials
    6. Rewrite primitive material indices and variant mappings
    7. Install materials, textures, images and the reference samplers
    8. Mood rotation (optional)
    9. Variant assignment (optional)
    10. Re-check extension declarations
    11. Serialize

The order matters: later steps read array shapes produced by earlier ones.
Progress is reported through an optional callback at fixed checkpoints
between 0.0 and 1.0.
"""

from __future__ import annotations

import copy
import logging
from typing import Any, Callable

from ao_texture import preserve_ao
from gltf_document import (
    GltfDocumentError,
    ensure_extension_declarations,
    ensure_top_level_arrays,
    load_gltf_bytes,
    serialize_gltf,
    sync_extension_declarations,
)
from index_remap import merge_material_order, remap_primitive_materials
from material_config import MaterialConfig, MaterialConfigError
from mood_rotation import apply_mood_rotation, is_alternate_branch
from variant_applicator import apply_variants

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float], None]


def _report(progress_callback: ProgressCallback | None, value: float) -> None:
    if progress_callback is not None:
        progress_callback(value)


def update_document(
    reference: dict[str, Any],
    target: dict[str, Any],
    model_label: str,
    apply_variants_flag: bool,
    apply_mood_rotation_flag: bool,
    config: MaterialConfig,
    target_file_name: str,
    progress_callback: ProgressCallback | None = None,
) -> dict[str, Any]:
    """Produce the updated version of one target document.

    Neither input document is modified; the target is deep-copied first and
    every array taken from the reference is copied.

    Args:
        reference: Reference document, source of materials/textures/samplers.
        target: Target document, source of geometry and the AO image.
        model_label: Model family label, selects the mood-rotation branch.
        apply_variants_flag: Write KHR_materials_variants assignments.
        apply_mood_rotation_flag: Patch mood-material texture rotation.
        config: Parsed Configuration Document.
        target_file_name: Bare file name, used for mesh-group matching.
        progress_callback: Optional callable receiving 0.0..1.0.

    Returns:
        The updated document.

    Raises:
        MaterialConfigError: If ``config`` is None.
        GltfDocumentError: If either document is not a JSON object or has
            malformed top-level arrays.
        MissingAOError: If the AO image/texture cannot be located.
    """
    if config is None:
        raise MaterialConfigError("Material configuration is missing")
    if not isinstance(reference, dict):
        raise GltfDocumentError("Reference document must be a JSON object")
    if not isinstance(target, dict):
        raise GltfDocumentError(f"{target_file_name}: document must be a JSON object")

    document = copy.deepcopy(target)
    _report(progress_callback, 0.0)

    ensure_top_level_arrays(document)
    ensure_extension_declarations(document, include_variants=True, reference=reference)
    _report(progress_callback, 0.1)

    preserved = preserve_ao(document, reference)
    _report(progress_callback, 0.3)

    reference_extensions = reference.get("extensions")
    if reference_extensions is not None:
        document["extensions"] = copy.deepcopy(reference_extensions)
    else:
        document.pop("extensions", None)

    reference_materials = reference.get("materials") or []
    merge = merge_material_order(reference_materials, config.material_names)
    if merge.missing_names:
        logger.warning(
            "%s: %d configured material(s) missing from reference: %s",
            target_file_name,
            len(merge.missing_names),
            ", ".join(merge.missing_names),
        )
    _report(progress_callback, 0.4)

    dropped = remap_primitive_materials(document, merge.old_to_new)
    if dropped:
        logger.warning("%s: dropped %d dangling material reference(s)", target_file_name, dropped)

    document["materials"] = merge.materials
    document["textures"] = preserved.textures
    document["images"] = preserved.images
    document["samplers"] = copy.deepcopy(reference.get("samplers") or [])
    _report(progress_callback, 0.6)

    if apply_mood_rotation_flag:
        apply_mood_rotation(document, is_alternate_branch(config, model_label))
    _report(progress_callback, 0.8)

    if apply_variants_flag:
        apply_variants(document, config, target_file_name)
    _report(progress_callback, 0.9)

    sync_extension_declarations(document)
    _report(progress_callback, 1.0)

    logger.debug(
        "%s: updated with %d materials, %d textures, %d images",
        target_file_name,
        len(document["materials"]),
        len(document["textures"]),
        len(document["images"]),
    )
    return document


def update_document_bytes(
    reference: dict[str, Any],
    target_bytes: bytes,
    model_label: str,
    apply_variants_flag: bool,
    apply_mood_rotation_flag: bool,
    config: MaterialConfig,
    target_file_name: str,
    progress_callback: ProgressCallback | None = None,
) -> bytes:
    """Bytes-in/bytes-out wrapper around update_document().

    Raises:
        GltfDocumentError: If ``target_bytes`` is not a glTF JSON document.
    """
    target = load_gltf_bytes(target_bytes, target_file_name)
    document = update_document(
        reference,
        target,
        model_label,
        apply_variants_flag,
        apply_mood_rotation_flag,
        config,
        target_file_name,
        progress_callback,
    )
    return serialize_gltf(document)
