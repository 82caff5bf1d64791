"""Configuration Document model for the material updater.

The Configuration Document (usually ``Materials.json``) is authored in an
external editor and describes which materials exist, which material every
mesh should show by default, and which named variants each mesh offers.

Configuration Document Format Example:
    {
      "materials": [{"name": "Wood", "tags": ["natural"]}],
      "meshAssignments": {
        "Seat": {
          "defaultMaterial": "Wood",
          "variants": [{"name": "Oak", "material": "Wood"}]
        }
      },
      "meshGroups": {
        "group-1": {
          "id": "group-1",
          "name": "Office chairs",
          "filenames": ["office_chair_01.gltf"],
          "meshes": {"Seat": {"defaultMaterial": "Metal", "variants": []}}
        }
      },
      "models": {"Regular": ["Standard"], "Blavalen": ["Special"]}
    }

Structure:
    - materials: Ordered material catalog (order drives the output material order)
    - meshAssignments: mesh name -> MeshAssignment, applies to every target file
    - meshGroups: group id -> MeshGroup, applies only to matching target files
    - models: model label -> list of filename substrings

The model is name-keyed while glTF is index-keyed. The two lookups at the
bottom of this module (find_material_index(), find_variant_index()) are the
only places a name is turned into an index, and both return -1 instead of
raising so callers can skip dangling references.

Usage Example:
    >>> from pathlib import Path
    >>> from material_config import load_material_config, find_material_index
    >>> config = load_material_config(Path("Materials.json"))
    >>> print(f"{len(config.materials)} materials, {len(config.mesh_assignments)} meshes")
    12 materials, 30 meshes
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

NOT_FOUND = -1


class MaterialConfigError(ValueError):
    """The Configuration Document is missing or unusable.

    This blocks a whole batch run, unlike per-file errors.
    """


@dataclass
class Material:
    """Catalog entry for one material.

    Attributes:
        name: Material name, unique within a document. Matched against the
            ``name`` of glTF materials.
        tags: Free-form labels used by the configuration editor. The updater
            never reads them but keeps them for round-tripping.
    """

    name: str
    tags: list[str] = field(default_factory=list)


@dataclass
class Variant:
    """A named alternative material for a mesh (e.g. "Oak" -> "Wood_Oak")."""

    name: str
    material: str


@dataclass
class AutoTag:
    """Editor-only state for tag-driven variant generation.

    Variants are already materialized by the editor when the updater runs, so
    this is only carried through for round-tripping.
    """

    enabled: bool = False
    tag: str = ""
    selected_materials: list[str] | None = None
    excluded_materials: list[str] | None = None


@dataclass
class MeshAssignment:
    """Material assignment for one mesh.

    Attributes:
        default_material: Material shown when no variant is selected. An empty
            string means "leave the mesh's original material alone".
        variants: Ordered variants offered for this mesh.
        auto_tag: Editor-only state, see AutoTag.
    """

    default_material: str = ""
    variants: list[Variant] = field(default_factory=list)
    auto_tag: AutoTag | None = None


@dataclass
class MeshGroup:
    """Mesh assignments that only apply to target files matching ``filenames``.

    Group entries override top-level ``meshAssignments`` entries of the same
    mesh name for matching files.
    """

    id: str
    name: str = ""
    filenames: list[str] = field(default_factory=list)
    meshes: dict[str, MeshAssignment] = field(default_factory=dict)
    is_expanded: bool | None = None


@dataclass
class MaterialConfig:
    """Parsed Configuration Document.

    Attributes:
        materials: Ordered material catalog.
        mesh_assignments: Direct per-mesh assignments, in document order.
        mesh_groups: Filename-scoped assignment groups, in document order.
            Later matching groups override earlier ones mesh by mesh.
        models: Model label -> filename substrings. Gates which target files a
            batch touches and selects the mood-rotation branch.
        sort_settings: Editor state, passed through untouched.
        extra: Any other top-level keys, passed through untouched.
    """

    materials: list[Material] = field(default_factory=list)
    mesh_assignments: dict[str, MeshAssignment] = field(default_factory=dict)
    mesh_groups: dict[str, MeshGroup] = field(default_factory=dict)
    models: dict[str, list[str]] = field(default_factory=dict)
    sort_settings: dict[str, Any] | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def material_names(self) -> list[str]:
        return [material.name for material in self.materials]


_KNOWN_KEYS = {"materials", "meshAssignments", "meshGroups", "models", "sortSettings"}


def _parse_assignment(mesh_name: str, raw: Any) -> MeshAssignment:
    if not isinstance(raw, dict):
        raise MaterialConfigError(f"Assignment for mesh {mesh_name!r} must be an object")

    variants: list[Variant] = []
    for raw_variant in raw.get("variants") or []:
        if not isinstance(raw_variant, dict) or "name" not in raw_variant:
            logger.warning("Ignoring malformed variant on mesh %r: %r", mesh_name, raw_variant)
            continue
        variants.append(
            Variant(name=str(raw_variant["name"]), material=str(raw_variant.get("material", "")))
        )

    auto_tag = None
    raw_auto_tag = raw.get("autoTag")
    if isinstance(raw_auto_tag, dict):
        auto_tag = AutoTag(
            enabled=bool(raw_auto_tag.get("enabled", False)),
            tag=str(raw_auto_tag.get("tag", "")),
            selected_materials=raw_auto_tag.get("selectedMaterials"),
            excluded_materials=raw_auto_tag.get("excludedMaterials"),
        )

    return MeshAssignment(
        default_material=str(raw.get("defaultMaterial") or ""),
        variants=variants,
        auto_tag=auto_tag,
    )


def _parse_assignments(raw: Any, where: str) -> dict[str, MeshAssignment]:
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise MaterialConfigError(f"{where} must be an object keyed by mesh name")
    return {mesh_name: _parse_assignment(mesh_name, value) for mesh_name, value in raw.items()}


def parse_material_config(data: Any) -> MaterialConfig:
    """Build a MaterialConfig from an already-decoded Configuration Document.

    Args:
        data: Decoded JSON value.

    Returns:
        MaterialConfig preserving the document's key order.

    Raises:
        MaterialConfigError: If ``data`` is not an object or one of the known
            sections has the wrong shape.
    """
    if data is None:
        raise MaterialConfigError("Material configuration is missing")
    if not isinstance(data, dict):
        raise MaterialConfigError(
            f"Material configuration must be a JSON object, got {type(data).__name__}"
        )

    materials: list[Material] = []
    for raw_material in data.get("materials") or []:
        if isinstance(raw_material, str):
            materials.append(Material(name=raw_material))
        elif isinstance(raw_material, dict) and "name" in raw_material:
            materials.append(
                Material(name=str(raw_material["name"]), tags=list(raw_material.get("tags") or []))
            )
        else:
            logger.warning("Ignoring malformed material entry: %r", raw_material)

    mesh_groups: dict[str, MeshGroup] = {}
    raw_groups = data.get("meshGroups") or {}
    if not isinstance(raw_groups, dict):
        raise MaterialConfigError("meshGroups must be an object keyed by group id")
    for group_id, raw_group in raw_groups.items():
        if not isinstance(raw_group, dict):
            raise MaterialConfigError(f"Mesh group {group_id!r} must be an object")
        mesh_groups[group_id] = MeshGroup(
            id=str(raw_group.get("id", group_id)),
            name=str(raw_group.get("name", "")),
            filenames=[str(name) for name in raw_group.get("filenames") or []],
            meshes=_parse_assignments(raw_group.get("meshes"), f"meshGroups[{group_id!r}].meshes"),
            is_expanded=raw_group.get("isExpanded"),
        )

    raw_models = data.get("models") or {}
    if not isinstance(raw_models, dict):
        raise MaterialConfigError("models must be an object keyed by model label")
    models = {label: [str(p) for p in patterns or []] for label, patterns in raw_models.items()}

    return MaterialConfig(
        materials=materials,
        mesh_assignments=_parse_assignments(data.get("meshAssignments"), "meshAssignments"),
        mesh_groups=mesh_groups,
        models=models,
        sort_settings=data.get("sortSettings"),
        extra={key: value for key, value in data.items() if key not in _KNOWN_KEYS},
    )


def load_material_config(path: Path) -> MaterialConfig:
    """Read and parse a Configuration Document from disk.

    Raises:
        MaterialConfigError: If the file is missing, is not valid JSON, or
            has the wrong shape.
    """
    if not path.exists():
        raise MaterialConfigError(f"Material configuration not found: {path}")

    try:
        with path.open("r", encoding="utf-8-sig") as f:
            data = json.load(f)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise MaterialConfigError(f"Material configuration is not valid JSON: {path} ({e})") from e

    config = parse_material_config(data)
    logger.debug(
        "Loaded material configuration: %d materials, %d mesh assignments, %d mesh groups",
        len(config.materials),
        len(config.mesh_assignments),
        len(config.mesh_groups),
    )
    return config


def _assignment_to_dict(assignment: MeshAssignment) -> dict[str, Any]:
    result: dict[str, Any] = {
        "defaultMaterial": assignment.default_material,
        "variants": [{"name": v.name, "material": v.material} for v in assignment.variants],
    }
    if assignment.auto_tag is not None:
        auto_tag: dict[str, Any] = {
            "enabled": assignment.auto_tag.enabled,
            "tag": assignment.auto_tag.tag,
        }
        if assignment.auto_tag.selected_materials is not None:
            auto_tag["selectedMaterials"] = assignment.auto_tag.selected_materials
        if assignment.auto_tag.excluded_materials is not None:
            auto_tag["excludedMaterials"] = assignment.auto_tag.excluded_materials
        result["autoTag"] = auto_tag
    return result


def material_config_to_dict(config: MaterialConfig) -> dict[str, Any]:
    """Convert a MaterialConfig back into Configuration Document form."""
    result: dict[str, Any] = {
        "materials": [{"name": m.name, "tags": list(m.tags)} for m in config.materials],
        "meshAssignments": {
            name: _assignment_to_dict(assignment)
            for name, assignment in config.mesh_assignments.items()
        },
    }
    if config.mesh_groups:
        groups: dict[str, Any] = {}
        for group_id, group in config.mesh_groups.items():
            raw_group: dict[str, Any] = {
                "id": group.id,
                "name": group.name,
                "filenames": list(group.filenames),
                "meshes": {name: _assignment_to_dict(a) for name, a in group.meshes.items()},
            }
            if group.is_expanded is not None:
                raw_group["isExpanded"] = group.is_expanded
            groups[group_id] = raw_group
        result["meshGroups"] = groups
    if config.models:
        result["models"] = {label: list(patterns) for label, patterns in config.models.items()}
    if config.sort_settings is not None:
        result["sortSettings"] = config.sort_settings
    result.update(config.extra)
    return result


def find_material_index(document: dict[str, Any], name: str) -> int:
    """Index of the first glTF material named ``name``, or -1.

    An empty name never matches.
    """
    if not name:
        return NOT_FOUND
    for index, material in enumerate(document.get("materials") or []):
        if isinstance(material, dict) and material.get("name") == name:
            return index
    return NOT_FOUND


def find_variant_index(document: dict[str, Any], name: str) -> int:
    """Index of the variant named ``name`` in the document's
    ``extensions.KHR_materials_variants.variants``, or -1."""
    block = (document.get("extensions") or {}).get("KHR_materials_variants") or {}
    for index, variant in enumerate(block.get("variants") or []):
        if isinstance(variant, dict) and variant.get("name") == name:
            return index
    return NOT_FOUND


def compare_materials(reference: dict[str, Any] | None, config: MaterialConfig | None) -> list[str]:
    """List material-name differences between a reference document and a configuration.

    Args:
        reference: Reference glTF document.
        config: Parsed Configuration Document.

    Returns:
        Human-readable difference messages, empty if both sides agree.

    Example:
        >>> compare_materials({"materials": [{"name": "Wood"}]}, MaterialConfig())
        ['Material "Wood" is in the reference glTF file but not in the configuration.']
    """
    if not reference or not reference.get("materials"):
        return ["Reference glTF file is missing or does not contain materials."]
    if config is None:
        return ["Material configuration is missing."]

    reference_names: list[str] = []
    for material in reference["materials"]:
        name = material.get("name") if isinstance(material, dict) else None
        if name and name not in reference_names:
            reference_names.append(name)
    config_names = config.material_names

    differences = [
        f'Material "{name}" is in the reference glTF file but not in the configuration.'
        for name in reference_names
        if name not in config_names
    ]
    differences.extend(
        f'Material "{name}" is in the configuration but not in the reference glTF file.'
        for name in config_names
        if name not in reference_names
    )
    return differences
