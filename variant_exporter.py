"""Export pipeline: split a multi-variant document into one file per variant.

For every variant of the target (in configuration order), a deep copy of the
document is made, the variant's mappings are baked in as the primitives'
default materials, everything the baked primitives no longer reference is
pruned, and the variants extension is stripped. Each result is a standalone
single-variant document named ``{base}{variant}.gltf``.

The file name concatenates base name and variant name with no separator.
Downstream tooling depends on this exact form.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass
from typing import Any, Callable

from filename_resolver import resolve_assignments, strip_model_extension
from gltf_document import (
    GltfDocumentError,
    KHR_MATERIALS_VARIANTS,
    ensure_top_level_arrays,
    iter_primitives,
    load_gltf_bytes,
    remove_variants_extension,
    serialize_gltf,
    strip_primitive_variants,
)
from index_remap import collect_usage_closure, prune_to_closure
from material_config import NOT_FOUND, MaterialConfig, MaterialConfigError, find_variant_index
from mood_rotation import apply_mood_rotation, is_alternate_branch
from variant_applicator import ordered_variant_names

logger = logging.getLogger(__name__)


@dataclass
class ExportedVariant:
    """One exported single-variant document."""

    file_name: str
    content: bytes
    variant_name: str = ""


def variant_file_name(target_file_name: str, variant_name: str) -> str:
    """Build the output name ``{base}{variant}.gltf``.

    Example:
        >>> variant_file_name("chair_01.gltf", "Oak")
        'chair_01Oak.gltf'
    """
    return f"{strip_model_extension(target_file_name)}{variant_name}.gltf"


def bake_variant(document: dict[str, Any], variant_index: int) -> int:
    """Make ``variant_index`` the default material on every mapped primitive.

    Returns:
        Number of primitives whose material was replaced.
    """
    baked = 0
    for _, primitive in iter_primitives(document):
        block = (primitive.get("extensions") or {}).get(KHR_MATERIALS_VARIANTS) or {}
        for mapping in block.get("mappings") or []:
            if variant_index in (mapping.get("variants") or []) and "material" in mapping:
                primitive["material"] = mapping["material"]
                baked += 1
                break
    return baked


def export_single_variant(
    document: dict[str, Any],
    variant_index: int,
    *,
    mood_rotation: bool | None = None,
) -> dict[str, Any]:
    """Produce the pruned, variant-free copy of ``document`` for one variant.

    Args:
        document: Multi-variant document. Not modified.
        variant_index: Index into the document's declared variants.
        mood_rotation: None to skip the mood-rotation patch, otherwise the
            branch to apply (True = alternate).

    Returns:
        New standalone document.
    """
    variant_document = copy.deepcopy(document)
    bake_variant(variant_document, variant_index)

    closure = collect_usage_closure(variant_document)
    prune_to_closure(variant_document, closure)

    remove_variants_extension(variant_document)
    for _, primitive in iter_primitives(variant_document):
        strip_primitive_variants(primitive)

    if mood_rotation is not None:
        apply_mood_rotation(variant_document, mood_rotation)
    return variant_document


def export_variants(
    document: dict[str, Any],
    target_file_name: str,
    model_label: str,
    apply_mood_rotation_flag: bool,
    config: MaterialConfig,
    progress_callback: Callable[[float], None] | None = None,
) -> list[ExportedVariant]:
    """Export one document per configured variant present in ``document``.

    Variants are visited in the order the configuration resolves them for
    this file. A configured variant the document does not declare is skipped
    with a log record; the rest are still exported.

    Args:
        document: Target document already carrying variant mappings.
        target_file_name: Bare file name, used for group matching and output names.
        model_label: Model family label, selects the mood-rotation branch.
        apply_mood_rotation_flag: Patch mood-material texture rotation.
        config: Parsed Configuration Document.
        progress_callback: Optional callable receiving 0.0..1.0.

    Returns:
        Exported variants in export order.

    Raises:
        MaterialConfigError: If ``config`` is None.
        GltfDocumentError: If the document has malformed top-level arrays.
    """
    if config is None:
        raise MaterialConfigError("Material configuration is missing")
    if not isinstance(document, dict):
        raise GltfDocumentError(f"{target_file_name}: document must be a JSON object")

    source = copy.deepcopy(document)
    ensure_top_level_arrays(source)

    variant_names = ordered_variant_names(resolve_assignments(config, target_file_name))
    mood_rotation = is_alternate_branch(config, model_label) if apply_mood_rotation_flag else None

    exported: list[ExportedVariant] = []
    total = len(variant_names)
    for position, variant_name in enumerate(variant_names, start=1):
        variant_index = find_variant_index(source, variant_name)
        if variant_index == NOT_FOUND:
            logger.warning(
                "%s: variant %r is not declared in the document, skipping",
                target_file_name,
                variant_name,
            )
        else:
            variant_document = export_single_variant(
                source, variant_index, mood_rotation=mood_rotation
            )
            exported.append(
                ExportedVariant(
                    file_name=variant_file_name(target_file_name, variant_name),
                    content=serialize_gltf(variant_document),
                    variant_name=variant_name,
                )
            )
            logger.debug("%s: exported variant %r", target_file_name, variant_name)

        if progress_callback is not None:
            progress_callback(position / total)

    if not exported:
        logger.warning("%s: no variants exported", target_file_name)
    return exported


def export_variants_bytes(
    target_bytes: bytes,
    target_file_name: str,
    model_label: str,
    apply_mood_rotation_flag: bool,
    config: MaterialConfig,
    progress_callback: Callable[[float], None] | None = None,
) -> list[ExportedVariant]:
    """Bytes-in wrapper around export_variants()."""
    document = load_gltf_bytes(target_bytes, target_file_name)
    return export_variants(
        document,
        target_file_name,
        model_label,
        apply_mood_rotation_flag,
        config,
        progress_callback,
    )
