import json

from inspect_targets import inspect_document, inspect_file, main
from material_config import parse_material_config


def _config():
    return parse_material_config(
        {
            "materials": ["Wood", "Metal"],
            "meshAssignments": {
                "Seat": {"defaultMaterial": "Wood", "variants": [{"name": "Glass", "material": "Glass"}]},
                "Back": {"defaultMaterial": "Wood", "variants": []},
            },
            "meshGroups": {
                "office": {
                    "id": "office",
                    "name": "Office chairs",
                    "filenames": ["office_chair"],
                    "meshes": {"Legs": {"defaultMaterial": "Chrome", "variants": []}},
                }
            },
        }
    )


def _document():
    return {"meshes": [{"name": "Seat"}, {"name": "Legs"}, {"name": "Cushion"}, {}]}


def test_inspect_document_sources():
    report = inspect_document(_document(), "office_chair_01.gltf", _config())
    sources = {mesh["name"]: mesh["source"] for mesh in report["meshes"]}

    assert sources == {"Seat": "direct", "Legs": "group", "Cushion": "none"}
    legs = next(mesh for mesh in report["meshes"] if mesh["name"] == "Legs")
    assert legs["group"] == "Office chairs"
    assert report["applied_groups"] == ["Office chairs"]


def test_inspect_document_missing_items():
    report = inspect_document(_document(), "office_chair_01.gltf", _config())
    assert report["missing_materials"] == ["Glass", "Chrome"]
    assert report["missing_meshes"] == ["Back"]


def test_group_only_applies_to_matching_files():
    report = inspect_document(_document(), "stool_01.gltf", _config())
    sources = {mesh["name"]: mesh["source"] for mesh in report["meshes"]}
    assert sources["Legs"] == "none"
    assert report["applied_groups"] == []


def test_unreadable_file_reports_error(tmp_path):
    path = tmp_path / "broken.gltf"
    path.write_text("{", encoding="utf-8")
    report = inspect_file(path, _config())
    assert report["file_name"] == "broken.gltf"
    assert "malformed JSON" in report["error"]


def test_main_prints_json(tmp_path, write_json, target_doc, config_data, capsys):
    config_path = write_json("Materials.json", config_data)
    target_path = write_json("chair_01.gltf", target_doc)

    assert main(["--config", str(config_path), "--pretty", str(target_path)]) == 0
    result = json.loads(capsys.readouterr().out)
    assert result["files"][0]["meshes"][0]["name"] == "Seat"
    assert result["files"][0]["meshes"][0]["source"] == "direct"


def test_main_without_configuration(tmp_path, capsys):
    assert main(["--config", str(tmp_path / "Missing.json"), str(tmp_path / "chair.gltf")]) == 1
    assert "not found" in json.loads(capsys.readouterr().out)["error"]
