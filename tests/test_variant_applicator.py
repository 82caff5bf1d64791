import copy
import logging

from gltf_document import KHR_MATERIALS_VARIANTS
from material_config import MeshAssignment, Variant, parse_material_config
from variant_applicator import apply_variants, ordered_variant_names


def _document():
    return {
        "extensionsUsed": [KHR_MATERIALS_VARIANTS],
        "materials": [{"name": "Wood"}, {"name": "Metal"}, {"name": "Fabric"}],
        "meshes": [
            {
                "name": "Seat",
                "primitives": [
                    {
                        "material": 2,
                        "extensions": {
                            KHR_MATERIALS_VARIANTS: {"mappings": [{"material": 2, "variants": [5]}]}
                        },
                    },
                    {"material": 2},
                ],
            },
            {"name": "Legs", "primitives": [{"material": 1}]},
            {"name": "Frame", "primitives": [{"material": 2}]},
        ],
    }


def _config(**overrides):
    data = {
        "materials": ["Wood", "Metal", "Fabric"],
        "meshAssignments": {
            "Seat": {
                "defaultMaterial": "Wood",
                "variants": [
                    {"name": "Oak", "material": "Wood"},
                    {"name": "Steel", "material": "Metal"},
                ],
            },
            "Legs": {
                "defaultMaterial": "Metal",
                "variants": [
                    {"name": "Steel", "material": "Metal"},
                    {"name": "Ash", "material": "Wood"},
                ],
            },
        },
    }
    data.update(overrides)
    return parse_material_config(data)


def _mappings(primitive):
    return primitive["extensions"][KHR_MATERIALS_VARIANTS]["mappings"]


def test_ordered_variant_names_first_seen():
    assignments = {
        "Seat": MeshAssignment("Wood", [Variant("Oak", "Wood"), Variant("Steel", "Metal")]),
        "Legs": MeshAssignment("Metal", [Variant("Steel", "Metal"), Variant("Ash", "Wood")]),
    }
    assert ordered_variant_names(assignments) == ["Oak", "Steel", "Ash"]


def test_applies_defaults_and_mappings():
    document = _document()
    names = apply_variants(document, _config(), "chair_01.gltf")

    assert names == ["Oak", "Steel", "Ash"]
    assert document["extensions"][KHR_MATERIALS_VARIANTS]["variants"] == [
        {"name": "Oak"},
        {"name": "Steel"},
        {"name": "Ash"},
    ]
    seat, legs, frame = document["meshes"]
    for primitive in seat["primitives"]:
        assert primitive["material"] == 0
        assert _mappings(primitive) == [
            {"material": 0, "variants": [0]},
            {"material": 1, "variants": [1]},
        ]
    assert legs["primitives"][0]["material"] == 1
    assert _mappings(legs["primitives"][0]) == [
        {"material": 1, "variants": [1]},
        {"material": 0, "variants": [2]},
    ]
    # No assignment: original material and no mappings
    assert frame["primitives"][0] == {"material": 2}


def test_ordering_is_deterministic():
    first = _document()
    second = _document()
    apply_variants(first, _config(), "chair_01.gltf")
    apply_variants(second, _config(), "chair_01.gltf")
    assert first["extensions"] == second["extensions"]
    assert first["meshes"] == second["meshes"]


def test_reapplying_resets_previous_mappings():
    document = _document()
    apply_variants(document, _config(), "chair_01.gltf")
    once = copy.deepcopy(document)
    apply_variants(document, _config(), "chair_01.gltf")
    assert document == once


def test_unresolved_variants_are_skipped(caplog):
    config = _config(
        meshAssignments={
            "Seat": {
                "defaultMaterial": "Glass",
                "variants": [
                    {"name": "Oak", "material": "Wood"},
                    {"name": "Crystal", "material": "Glass"},
                ],
            }
        }
    )
    document = _document()
    with caplog.at_level(logging.WARNING):
        names = apply_variants(document, config, "chair_01.gltf")

    assert names == ["Oak", "Crystal"]
    primitive = document["meshes"][0]["primitives"][0]
    assert primitive["material"] == 2
    assert _mappings(primitive) == [{"material": 0, "variants": [0]}]
    assert "Glass" in caplog.text


def test_extension_removed_when_nothing_maps():
    config = _config(
        meshAssignments={
            "Seat": {"defaultMaterial": "Wood", "variants": [{"name": "Crystal", "material": "Glass"}]}
        }
    )
    document = _document()
    document["extensions"] = {"KHR_lights_punctual": {"lights": []}}

    assert apply_variants(document, config, "chair_01.gltf") == []
    assert KHR_MATERIALS_VARIANTS not in document["extensions"]
    assert KHR_MATERIALS_VARIANTS not in document.get("extensionsUsed", [])
    for mesh in document["meshes"]:
        for primitive in mesh["primitives"]:
            assert "extensions" not in primitive
    # The default material is still applied
    assert document["meshes"][0]["primitives"][0]["material"] == 0


def test_extension_removed_when_no_variants_configured():
    config = _config(meshAssignments={"Seat": {"defaultMaterial": "Metal", "variants": []}})
    document = _document()
    apply_variants(document, config, "chair_01.gltf")
    assert "extensions" not in document
    assert "extensionsUsed" not in document
