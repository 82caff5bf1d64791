"""Resolve which mesh assignments apply to a given target file.

Top-level ``meshAssignments`` apply to every target file. Mesh groups add
filename-scoped overrides: when one of a group's ``filenames`` matches the
target file name, every mesh entry in the group replaces the top-level entry of
the same name.

Matching Rule:
    Both names have a trailing ``.gltf`` / ``.glb`` stripped (case-insensitive).
    They match when any of these holds:
        1. the stripped names are equal
        2. the original names are equal
        3. either stripped name contains the other

    So ``chair_01.gltf`` matches the patterns ``chair_01``, ``chair_01.glb``,
    ``chair`` and ``chair_01_LOD0``, but not ``table_01``.

Groups are visited in configuration order. Later matching groups overwrite
earlier ones mesh by mesh, so the order is part of the contract.
"""

from __future__ import annotations

import logging
import re

from material_config import MaterialConfig, MeshAssignment, MeshGroup

logger = logging.getLogger(__name__)

_MODEL_EXTENSION_PATTERN = re.compile(r"\.(gltf|glb)$", re.IGNORECASE)

# Model labels that mean "process every target file".
UNRESTRICTED_MODEL_LABELS = ("", "Regular")


def strip_model_extension(file_name: str) -> str:
    """Remove one trailing ``.gltf`` or ``.glb`` extension, any case.

    Example:
        >>> strip_model_extension("Chair_01.GLTF")
        'Chair_01'
    """
    return _MODEL_EXTENSION_PATTERN.sub("", file_name)


def filename_matches(target_file_name: str, pattern: str) -> bool:
    """Apply the symmetric substring/equality rule to one pattern.

    An empty pattern (after stripping) never matches, otherwise it would be
    contained in every file name.
    """
    target_stem = strip_model_extension(target_file_name)
    pattern_stem = strip_model_extension(pattern)

    if target_file_name == pattern:
        return True
    if not target_stem or not pattern_stem:
        return False
    return (
        target_stem == pattern_stem
        or pattern_stem in target_stem
        or target_stem in pattern_stem
    )


def group_matches(group: MeshGroup, target_file_name: str) -> bool:
    return any(filename_matches(target_file_name, pattern) for pattern in group.filenames)


def matching_groups(config: MaterialConfig, target_file_name: str) -> list[MeshGroup]:
    """Mesh groups whose filename patterns match the target, in configuration order."""
    return [
        group for group in config.mesh_groups.values() if group_matches(group, target_file_name)
    ]


def resolve_assignments(config: MaterialConfig, target_file_name: str) -> dict[str, MeshAssignment]:
    """Compute the effective mesh assignments for one target file.

    Args:
        config: Parsed Configuration Document.
        target_file_name: Bare file name of the target (no directory).

    Returns:
        New dict mesh name -> MeshAssignment. Iteration order is the direct
        assignments' order, with meshes introduced only by groups appended in
        the order the groups add them. The config itself is never modified.

    Example:
        >>> assignments = resolve_assignments(config, "office_chair_01.gltf")
        >>> assignments["Seat"].default_material
        'Metal'
    """
    result = dict(config.mesh_assignments)

    for group in matching_groups(config, target_file_name):
        logger.debug(
            "Mesh group %r matches %s, overriding %d mesh(es)",
            group.name or group.id,
            target_file_name,
            len(group.meshes),
        )
        for mesh_name, assignment in group.meshes.items():
            result[mesh_name] = assignment

    return result


def resolve_assignment_sources(
    config: MaterialConfig, target_file_name: str
) -> dict[str, MeshGroup | None]:
    """Record where each resolved assignment came from.

    Returns:
        Mesh name -> the MeshGroup that supplied its assignment, or None for a
        direct ``meshAssignments`` entry. Keys match resolve_assignments().
    """
    sources: dict[str, MeshGroup | None] = {name: None for name in config.mesh_assignments}
    for group in matching_groups(config, target_file_name):
        for mesh_name in group.meshes:
            sources[mesh_name] = group
    return sources


def model_label_allows(config: MaterialConfig, model_label: str, target_file_name: str) -> bool:
    """Decide whether a batch run for ``model_label`` should touch a file.

    An empty label or ``"Regular"`` means no restriction. Otherwise the file is
    processed when one of ``config.models[model_label]`` is a substring of its
    name. A label missing from ``models`` is logged and treated as no
    restriction.
    """
    if model_label in UNRESTRICTED_MODEL_LABELS:
        return True

    patterns = config.models.get(model_label)
    if patterns is None:
        logger.warning(
            "Model label %r not found in configuration models, processing %s unrestricted",
            model_label,
            target_file_name,
        )
        return True

    return any(pattern and pattern in target_file_name for pattern in patterns)
