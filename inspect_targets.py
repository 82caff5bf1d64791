#!/usr/bin/env python3
"""
Inspect target glTF files against a material configuration.

Usage: python inspect_targets.py --config Materials.json chair_01.gltf chair_02.gltf

Outputs JSON with, for each target file, how every mesh will be assigned
(direct, through a mesh group, or not at all), which assigned materials the
configuration does not define, and which configured meshes the file lacks.
Nothing is written to disk.
"""

from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import Any

from filename_resolver import matching_groups, resolve_assignment_sources, resolve_assignments
from gltf_document import GltfDocumentError, load_gltf_bytes
from material_config import MaterialConfig, MaterialConfigError, load_material_config


def mesh_names(document: dict[str, Any]) -> list[str]:
    """Names of the document's meshes, in mesh order. Unnamed meshes are skipped."""
    names = []
    for mesh in document.get("meshes") or []:
        if isinstance(mesh, dict) and isinstance(mesh.get("name"), str):
            names.append(mesh["name"])
    return names


def inspect_document(document: dict[str, Any], file_name: str, config: MaterialConfig) -> dict:
    """
    Build the inspection entry for one parsed target document.

    Returns dict with file_name, meshes, missing_meshes, missing_materials
    and applied_groups.
    """
    assignments = resolve_assignments(config, file_name)
    sources = resolve_assignment_sources(config, file_name)
    known_materials = set(config.material_names)
    present = mesh_names(document)

    meshes = []
    missing_materials: list[str] = []
    for name in present:
        assignment = assignments.get(name)
        group = sources.get(name)
        if assignment is None:
            meshes.append({"name": name, "source": "none"})
            continue

        entry = {
            "name": name,
            "source": "group" if group is not None else "direct",
            "default_material": assignment.default_material,
            "variants": [{"name": v.name, "material": v.material} for v in assignment.variants],
        }
        if group is not None:
            entry["group"] = group.name or group.id
        meshes.append(entry)

        # Materials referenced by this mesh that the catalog lacks
        referenced = [assignment.default_material] + [v.material for v in assignment.variants]
        for material_name in referenced:
            if material_name and material_name not in known_materials and material_name not in missing_materials:
                missing_materials.append(material_name)

    present_set = set(present)
    missing_meshes = sorted(name for name in assignments if name not in present_set)

    return {
        "file_name": file_name,
        "meshes": meshes,
        "missing_meshes": missing_meshes,
        "missing_materials": missing_materials,
        "applied_groups": [group.name or group.id for group in matching_groups(config, file_name)],
    }


def inspect_file(path: Path, config: MaterialConfig) -> dict:
    """
    Read one target file and inspect it.

    Unreadable or invalid files produce an entry with an "error" key instead
    of raising.
    """
    try:
        document = load_gltf_bytes(path.read_bytes(), path.name)
    except (GltfDocumentError, OSError) as e:
        return {
            "file_name": path.name,
            "error": str(e),
            "meshes": [],
            "missing_meshes": [],
            "missing_materials": [],
            "applied_groups": [],
        }
    return inspect_document(document, path.name, config)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Report how a material configuration applies to target glTF files"
    )
    parser.add_argument(
        "files",
        type=Path,
        nargs="+",
        help="Target .gltf files"
    )
    parser.add_argument(
        "--config",
        type=Path,
        required=True,
        help="Material configuration JSON (Materials.json)"
    )
    parser.add_argument(
        "--pretty",
        action="store_true",
        help="Pretty-print JSON output"
    )

    args = parser.parse_args(argv)

    try:
        config = load_material_config(args.config)
    except MaterialConfigError as e:
        result = {"error": str(e), "files": []}
        exit_code = 1
    else:
        result = {
            "config": str(args.config),
            "files": [inspect_file(path, config) for path in args.files],
        }
        exit_code = 0

    if args.pretty:
        print(json.dumps(result, indent=2))
    else:
        print(json.dumps(result))
    return exit_code


if __name__ == "__main__":
    raise SystemExit(main())
