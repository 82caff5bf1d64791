"""Shared fixture documents for the updater tests."""

from __future__ import annotations

import copy
import json
from pathlib import Path

import pytest

from gltf_document import KHR_MATERIALS_VARIANTS, iter_primitives, iter_texture_infos
from material_config import parse_material_config

REFERENCE_DOCUMENT = {
    "asset": {"version": "2.0"},
    "extensionsUsed": ["KHR_materials_sheen"],
    "materials": [
        {
            "name": "Wood",
            "pbrMetallicRoughness": {"baseColorTexture": {"index": 0}},
            "occlusionTexture": {"index": 1},
        },
        {
            "name": "Metal",
            "pbrMetallicRoughness": {"baseColorTexture": {"index": 2}},
            "occlusionTexture": {"index": 1},
        },
    ],
    "textures": [
        {"name": "tex_Wood", "source": 0, "sampler": 0},
        {"name": "tex_AmbientOcclusion_A", "source": 1, "sampler": 0},
        {"name": "tex_Metal", "source": 2, "sampler": 0},
    ],
    "images": [
        {"name": "Wood_BaseColor", "uri": "wood.png"},
        {"name": "Reference_AO", "uri": "reference_ao.png"},
        {"name": "Metal_BaseColor", "uri": "metal.png"},
    ],
    "samplers": [{"magFilter": 9729, "minFilter": 9987}],
}

TARGET_DOCUMENT = {
    "asset": {"version": "2.0", "generator": "Blender"},
    "scene": 0,
    "scenes": [{"nodes": [0]}],
    "nodes": [{"name": "Seat", "mesh": 0}],
    "meshes": [
        {"name": "Seat", "primitives": [{"attributes": {"POSITION": 0}, "material": 0}]},
    ],
    "materials": [{"name": "Old"}],
    "textures": [{"source": 0}],
    "images": [{"name": "Chair_01_AO", "uri": "chair_01_ao.png"}],
    "accessors": [{"bufferView": 0, "componentType": 5126, "count": 3, "type": "VEC3"}],
}

CONFIG_DOCUMENT = {
    "materials": [{"name": "Wood", "tags": []}],
    "meshAssignments": {
        "Seat": {
            "defaultMaterial": "Wood",
            "variants": [
                {"name": "V1", "material": "Wood"},
                {"name": "V2", "material": "Metal"},
            ],
        }
    },
    "models": {"Regular": [], "Blavalen": ["Special"]},
}


@pytest.fixture
def reference_doc():
    return copy.deepcopy(REFERENCE_DOCUMENT)


@pytest.fixture
def target_doc():
    return copy.deepcopy(TARGET_DOCUMENT)


@pytest.fixture
def config_data():
    return copy.deepcopy(CONFIG_DOCUMENT)


@pytest.fixture
def material_config(config_data):
    return parse_material_config(config_data)


@pytest.fixture
def write_json(tmp_path):
    """Write a JSON value to ``tmp_path / relative`` and return the path."""

    def _write(relative: str, data) -> Path:
        path = tmp_path / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(data), encoding="utf-8")
        return path

    return _write


def _check_index_integrity(document):
    materials = document.get("materials") or []
    textures = document.get("textures") or []
    images = document.get("images") or []

    for _, primitive in iter_primitives(document):
        if "material" in primitive:
            assert 0 <= primitive["material"] < len(materials)
        block = (primitive.get("extensions") or {}).get(KHR_MATERIALS_VARIANTS) or {}
        for mapping in block.get("mappings") or []:
            assert 0 <= mapping["material"] < len(materials)

    for texture in textures:
        if "source" in texture:
            assert 0 <= texture["source"] < len(images)

    for material in materials:
        for texture_info in iter_texture_infos(material):
            assert 0 <= texture_info["index"] < len(textures)


@pytest.fixture
def assert_index_integrity():
    """Assert every material/texture/image index in a document is in range."""
    return _check_index_integrity
