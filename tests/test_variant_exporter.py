import copy
import json
import logging

import pytest

from document_merger import update_document
from gltf_document import KHR_MATERIALS_VARIANTS, KHR_TEXTURE_TRANSFORM
from material_config import MaterialConfigError, parse_material_config
from variant_exporter import (
    bake_variant,
    export_single_variant,
    export_variants,
    export_variants_bytes,
    variant_file_name,
)


@pytest.fixture
def variant_doc():
    """Materials [A, B, C]; variant V1 bakes B, variant V2 bakes C."""
    return {
        "asset": {"version": "2.0"},
        "extensionsUsed": [KHR_TEXTURE_TRANSFORM, KHR_MATERIALS_VARIANTS],
        "extensionsRequired": [KHR_TEXTURE_TRANSFORM],
        "extensions": {KHR_MATERIALS_VARIANTS: {"variants": [{"name": "V1"}, {"name": "V2"}]}},
        "meshes": [
            {
                "name": "Seat",
                "primitives": [
                    {
                        "material": 0,
                        "extensions": {
                            KHR_MATERIALS_VARIANTS: {
                                "mappings": [
                                    {"material": 1, "variants": [0]},
                                    {"material": 2, "variants": [1]},
                                ]
                            }
                        },
                    }
                ],
            }
        ],
        "materials": [
            {"name": "A", "pbrMetallicRoughness": {"baseColorTexture": {"index": 0}}},
            {
                "name": "B",
                "pbrMetallicRoughness": {
                    "baseColorTexture": {"index": 1, "extensions": {KHR_TEXTURE_TRANSFORM: {"rotation": 0.3}}}
                },
            },
            {"name": "MOO-C", "normalTexture": {"index": 2, "extensions": {KHR_TEXTURE_TRANSFORM: {"rotation": 0.3}}}},
        ],
        "textures": [{"source": 0}, {"source": 2}, {"source": 1}],
        "images": [{"uri": "a.png"}, {"uri": "c.png"}, {"uri": "b.png"}],
    }


@pytest.fixture
def variant_config():
    return parse_material_config(
        {
            "materials": ["A", "B", "MOO-C"],
            "meshAssignments": {
                "Seat": {
                    "defaultMaterial": "A",
                    "variants": [{"name": "V1", "material": "B"}, {"name": "V2", "material": "MOO-C"}],
                }
            },
            "models": {"Blavalen": ["Special"]},
        }
    )


def test_variant_file_name_has_no_separator():
    assert variant_file_name("chair_01.gltf", "Oak") == "chair_01Oak.gltf"
    assert variant_file_name("chair_01.GLB", "Oak") == "chair_01Oak.gltf"


def test_bake_variant(variant_doc):
    assert bake_variant(variant_doc, 1) == 1
    assert variant_doc["meshes"][0]["primitives"][0]["material"] == 2
    assert bake_variant(variant_doc, 7) == 0


def test_single_variant_is_pruned_to_its_closure(variant_doc, assert_index_integrity):
    exported = export_single_variant(variant_doc, 0)

    assert [m["name"] for m in exported["materials"]] == ["B"]
    assert exported["textures"] == [{"source": 0}]
    assert exported["images"] == [{"uri": "b.png"}]
    primitive = exported["meshes"][0]["primitives"][0]
    assert primitive == {"material": 0}
    assert exported["materials"][0]["pbrMetallicRoughness"]["baseColorTexture"]["index"] == 0
    assert_index_integrity(exported)


def test_single_variant_has_no_variants_left(variant_doc):
    exported = export_single_variant(variant_doc, 0)
    assert "extensions" not in exported
    assert exported["extensionsUsed"] == [KHR_TEXTURE_TRANSFORM]
    assert exported["extensionsRequired"] == [KHR_TEXTURE_TRANSFORM]


def test_source_document_is_not_modified(variant_doc):
    before = copy.deepcopy(variant_doc)
    export_single_variant(variant_doc, 1, mood_rotation=True)
    assert variant_doc == before


def test_export_variants_in_configuration_order(variant_doc, variant_config):
    exported = export_variants(variant_doc, "chair_01.gltf", "Regular", False, variant_config)

    assert [e.file_name for e in exported] == ["chair_01V1.gltf", "chair_01V2.gltf"]
    assert [e.variant_name for e in exported] == ["V1", "V2"]
    second = json.loads(exported[1].content)
    assert [m["name"] for m in second["materials"]] == ["MOO-C"]
    assert second["images"] == [{"uri": "c.png"}]


def test_export_applies_mood_rotation(variant_doc, variant_config):
    exported = export_variants(variant_doc, "chair_01.gltf", "Special", True, variant_config)
    moo = json.loads(exported[1].content)["materials"][0]
    plain = json.loads(exported[0].content)["materials"][0]
    assert moo["normalTexture"]["extensions"][KHR_TEXTURE_TRANSFORM]["rotation"] == 1.56
    assert plain["pbrMetallicRoughness"]["baseColorTexture"]["extensions"][KHR_TEXTURE_TRANSFORM]["rotation"] == 0.3


def test_undeclared_variant_is_skipped(variant_doc, variant_config, caplog):
    variant_doc["extensions"][KHR_MATERIALS_VARIANTS]["variants"] = [{"name": "V1"}]
    with caplog.at_level(logging.WARNING):
        exported = export_variants(variant_doc, "chair_01.gltf", "Regular", False, variant_config)
    assert [e.variant_name for e in exported] == ["V1"]
    assert "V2" in caplog.text


def test_progress_reaches_one(variant_doc, variant_config):
    values = []
    export_variants(variant_doc, "chair_01.gltf", "Regular", False, variant_config, values.append)
    assert values == [0.5, 1.0]


def test_missing_configuration_is_rejected(variant_doc):
    with pytest.raises(MaterialConfigError):
        export_variants(variant_doc, "chair_01.gltf", "Regular", False, None)


def test_export_after_update(reference_doc, target_doc, material_config, assert_index_integrity):
    updated = update_document(reference_doc, target_doc, "Regular", True, False, material_config, "chair_01.gltf")
    exported = export_variants_bytes(
        json.dumps(updated).encode("utf-8"), "chair_01.gltf", "Regular", False, material_config
    )

    assert [e.file_name for e in exported] == ["chair_01V1.gltf", "chair_01V2.gltf"]
    metal = json.loads(exported[1].content)
    assert [m["name"] for m in metal["materials"]] == ["Metal"]
    # Metal's base color and the shared AO texture survive, in original order
    assert [t["name"] for t in metal["textures"]] == ["tex_AmbientOcclusion_A", "tex_Metal"]
    assert metal["images"][0] == target_doc["images"][0]
    assert_index_integrity(metal)
