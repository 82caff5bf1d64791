import copy
import json
import threading

import pytest

from updater import (
    LOG_FILE_NAME,
    UpdaterConfig,
    collect_target_files,
    main,
    print_summary,
    run_batch,
    validate_target_file,
)


@pytest.fixture
def workspace(tmp_path, write_json, reference_doc, target_doc, config_data):
    """Reference, configuration and a targets directory with good and bad files."""
    write_json("Reference.gltf", reference_doc)
    write_json("Materials.json", config_data)
    write_json("targets/chair_01.gltf", target_doc)
    write_json("targets/chair_Special_02.gltf", target_doc)

    no_ao = copy.deepcopy(target_doc)
    no_ao["images"] = [{"name": "Chair_BaseColor"}]
    write_json("targets/chair_no_ao.gltf", no_ao)

    (tmp_path / "targets" / "chair_broken.gltf").write_text("{broken", encoding="utf-8")
    (tmp_path / "targets" / "chair_binary.glb").write_bytes(b"glTF\x02\x00\x00\x00")
    (tmp_path / "targets" / "notes.txt").write_text("not a model", encoding="utf-8")
    return tmp_path


def _config(workspace, **overrides):
    options = dict(
        reference=workspace / "Reference.gltf",
        targets=[workspace / "targets"],
        material_config=workspace / "Materials.json",
        output_dir=workspace / "out",
    )
    options.update(overrides)
    return UpdaterConfig(**options)


def test_collect_target_files_skips_duplicates(workspace, tmp_path, write_json, target_doc):
    write_json("other/chair_01.gltf", target_doc)
    files = collect_target_files([workspace / "targets", tmp_path / "other" / "chair_01.gltf"])
    assert [f.name for f in files] == [
        "chair_01.gltf",
        "chair_binary.glb",
        "chair_broken.gltf",
        "chair_no_ao.gltf",
        "chair_Special_02.gltf",
    ]


def test_validate_target_file(workspace):
    targets = workspace / "targets"
    assert validate_target_file(targets / "chair_01.gltf") is None
    assert "not supported" in validate_target_file(targets / "chair_binary.glb")
    assert "Only .gltf" in validate_target_file(targets / "notes.txt")
    assert "not found" in validate_target_file(targets / "missing.gltf")
    assert "exceeds" in validate_target_file(targets / "chair_01.gltf", max_file_size=10)


def test_update_batch_isolates_failures(workspace):
    stats = run_batch(_config(workspace))

    assert stats.files_found == 5
    assert stats.files_processed == 2
    assert sorted(f.file_name for f in stats.failures) == [
        "chair_binary.glb",
        "chair_broken.gltf",
        "chair_no_ao.gltf",
    ]
    assert stats.errors == []

    output = workspace / "out"
    updated = json.loads((output / "chair_01.gltf").read_text(encoding="utf-8"))
    assert [m["name"] for m in updated["materials"]] == ["Wood", "Metal"]
    assert (output / "chair_Special_02.gltf").exists()
    assert not (output / "chair_no_ao.gltf").exists()

    log = (output / LOG_FILE_NAME).read_text(encoding="utf-8")
    assert "Files Processed: 2" in log
    assert "chair_no_ao.gltf" in log


def test_material_differences_are_recorded_as_warnings(workspace):
    stats = run_batch(_config(workspace))
    assert 'Material "Metal" is in the reference glTF file but not in the configuration.' in stats.warnings


def test_progress_reaches_one(workspace):
    values = []
    run_batch(_config(workspace), progress_callback=values.append)
    assert values[-1] == 1.0
    assert values == sorted(values)


def test_model_label_gates_files(workspace):
    stats = run_batch(_config(workspace, model_label="Blavalen"))
    assert stats.files_skipped == 4
    assert stats.outputs == ["chair_Special_02.gltf"]


def test_parallel_batches_match_sequential(workspace):
    sequential = run_batch(_config(workspace, output_dir=workspace / "seq"))
    parallel = run_batch(_config(workspace, output_dir=workspace / "par", jobs=3))

    assert parallel.files_processed == sequential.files_processed
    assert sorted(parallel.outputs) == sorted(sequential.outputs)
    for name in sequential.outputs:
        assert (workspace / "seq" / name).read_bytes() == (workspace / "par" / name).read_bytes()


def test_dry_run_writes_nothing(workspace):
    stats = run_batch(_config(workspace, dry_run=True))
    assert stats.documents_written == 2
    assert not (workspace / "out").exists()


def test_missing_configuration_blocks_batch(workspace):
    stats = run_batch(_config(workspace, material_config=workspace / "Missing.json"))
    assert stats.errors
    assert stats.files_processed == 0
    assert not (workspace / "out").exists()


def test_unreadable_reference_blocks_batch(workspace):
    (workspace / "Reference.gltf").write_text("[]", encoding="utf-8")
    stats = run_batch(_config(workspace))
    assert stats.errors and "reference" in stats.errors[0]
    assert stats.files_processed == 0


def test_cancel_stops_before_next_batch(workspace):
    cancel = threading.Event()
    cancel.set()
    stats = run_batch(_config(workspace), cancel_event=cancel)
    assert stats.cancelled
    assert stats.files_processed == 0
    assert stats.failures == []


def test_export_batch(workspace):
    run_batch(_config(workspace, targets=[workspace / "targets" / "chair_01.gltf"]))
    stats = run_batch(
        _config(
            workspace,
            mode="export",
            reference=None,
            targets=[workspace / "out" / "chair_01.gltf"],
            output_dir=workspace / "variants",
        )
    )

    assert stats.failures == []
    assert stats.variants_exported == 2
    assert stats.outputs == ["chair_01V1.gltf", "chair_01V2.gltf"]
    exported = json.loads((workspace / "variants" / "chair_01V2.gltf").read_text(encoding="utf-8"))
    assert [m["name"] for m in exported["materials"]] == ["Metal"]


def test_print_summary(workspace, capsys):
    print_summary(run_batch(_config(workspace)))
    output = capsys.readouterr().out
    assert "Update Complete" in output
    assert "Failed Files: 3" in output


def test_main_exit_codes(workspace):
    base = [
        "--reference", str(workspace / "Reference.gltf"),
        "--config", str(workspace / "Materials.json"),
        "--output", str(workspace / "out"),
    ]
    assert main(base + ["--targets", str(workspace / "targets" / "chair_01.gltf")]) == 0
    assert main(base + ["--targets", str(workspace / "targets")]) == 1
    assert main(base + ["--targets", str(workspace / "targets" / "missing.gltf")]) == 1


def test_main_requires_reference_in_update_mode(workspace):
    args = [
        "--targets", str(workspace / "targets" / "chair_01.gltf"),
        "--config", str(workspace / "Materials.json"),
        "--output", str(workspace / "out"),
    ]
    assert main(args) == 1


def test_unknown_model_label_warns_once(workspace):
    stats = run_batch(_config(workspace, model_label="Premium"))
    assert stats.files_skipped == 0
    assert sum("Premium" in warning for warning in stats.warnings) == 1
