#!/usr/bin/env python3
"""
glTF Material Updater - Main CLI Entry Point.

This module runs the update or export pipeline over a batch of target glTF
files, using one reference glTF file and one material Configuration Document.

Usage:
    python updater.py \\
        --reference "path/to/Reference.gltf" \\
        --targets "path/to/targets" \\
        --config "path/to/Materials.json" \\
        --output "path/to/output" \\
        --mode update \\
        --model Regular \\
        --verbose

Pipeline Steps:
    1. Load the Configuration Document (missing/invalid blocks the batch)
    2. Load the reference document
    3. Compare reference and configured material names (warnings only)
    4. Collect and validate target files (.gltf only, size limit, duplicates)
    5. Apply the model-label gate
    6. Run the update or export pipeline per file, in fixed-size batches
    7. Write outputs (unless --dry-run)
    8. Write update_log.txt and print a summary

A failure in one target file is recorded and never stops the other files.
"""

from __future__ import annotations

import argparse
import logging
import sys
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Callable

from document_merger import update_document_bytes
from filename_resolver import UNRESTRICTED_MODEL_LABELS, model_label_allows
from gltf_document import GltfDocumentError, GltfUpdateError, load_gltf_bytes
from material_config import (
    MaterialConfig,
    MaterialConfigError,
    compare_materials,
    load_material_config,
)
from variant_exporter import export_variants_bytes

logger = logging.getLogger(__name__)

MODES = ("update", "export")

# Only the JSON flavour of glTF is handled; .glb targets are reported as failures.
TARGET_EXTENSIONS = (".gltf", ".glb")
DEFAULT_MAX_FILE_SIZE = 100 * 1024 * 1024

LOG_FILE_NAME = "update_log.txt"


@dataclass
class UpdaterConfig:
    """Configuration dataclass for a batch run.

    Populated from command-line arguments via parse_args(), or directly by the
    GUI.

    Attributes:
        reference: Reference .gltf file. Source of materials, textures, images,
            samplers and the document-level extensions block. Only read in
            update mode.
        targets: Target .gltf files or directories. Directories are scanned
            (non-recursively) for *.gltf and *.glb files.
        material_config: Configuration Document (Materials.json).
        output_dir: Directory receiving updated or exported files. Created if
            it does not exist.
        mode: "update" writes one updated file per target, "export" writes one
            file per variant of each target.
        model_label: Model family label. "Regular" or "" processes every file;
            any other label limits the batch to files matching
            ``models[label]`` and selects the mood-rotation branch.
        apply_variants: Write KHR_materials_variants assignments (update mode).
        apply_mood_rotation: Patch mood-material texture rotation.
        jobs: Number of files processed side by side per batch. 1 processes
            files strictly one at a time.
        dry_run: If True, run the pipelines but do not write any files.
        verbose: If True, enable DEBUG logging level.
        max_file_size: Target files larger than this (bytes) are rejected.

    Example:
        >>> config = UpdaterConfig(
        ...     reference=Path("assets/Reference.gltf"),
        ...     targets=[Path("assets/chairs")],
        ...     material_config=Path("assets/Materials.json"),
        ...     output_dir=Path("out"),
        ...     mode="export",
        ...     dry_run=True,
        ... )
    """

    reference: Path | None
    targets: list[Path]
    material_config: Path
    output_dir: Path
    mode: str = "update"
    model_label: str = "Regular"
    apply_variants: bool = True
    apply_mood_rotation: bool = True
    jobs: int = 1
    dry_run: bool = False
    verbose: bool = False
    max_file_size: int = DEFAULT_MAX_FILE_SIZE


@dataclass
class FileFailure:
    """A target file whose pipeline failed, with the reason."""

    file_name: str
    message: str


@dataclass
class UpdateStats:
    """Statistics collected during a batch run.

    Attributes:
        files_found: Target files collected from the --targets arguments.
        files_processed: Target files whose pipeline completed.
        files_skipped: Target files excluded by the model-label gate.
        documents_written: Output files written (or that would be written in
            a dry run).
        variants_exported: Variant documents produced in export mode.
        outputs: Output file names in the order they were produced.
        failures: Per-file fatal errors. The other files still ran.
        warnings: Soft issues (unresolved materials, reference/configuration
            mismatches, skipped variants, ...).
        errors: Batch-level errors that stopped the run before any file was
            processed (missing configuration, unreadable reference).
        cancelled: True if the run was cancelled between batches.
    """

    files_found: int = 0
    files_processed: int = 0
    files_skipped: int = 0
    documents_written: int = 0
    variants_exported: int = 0
    outputs: list[str] = field(default_factory=list)
    failures: list[FileFailure] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    cancelled: bool = False


@dataclass
class _FileResult:
    file_name: str
    outputs: list[tuple[str, bytes]] = field(default_factory=list)
    error: str | None = None


class _WarningCollector(logging.Handler):
    """Copies WARNING records emitted during a run into UpdateStats.warnings."""

    def __init__(self, warnings: list[str]):
        super().__init__(level=logging.WARNING)
        self.warnings = warnings

    def emit(self, record: logging.LogRecord) -> None:
        if record.levelno == logging.WARNING:
            self.warnings.append(record.getMessage())


def collect_target_files(targets: list[Path]) -> list[Path]:
    """Expand directories and drop duplicate file names.

    Two targets with the same file name would overwrite each other's output,
    so only the first is kept.

    Args:
        targets: Files and/or directories.

    Returns:
        Target file paths in argument order, directories expanded sorted by name.
    """
    files: list[Path] = []
    seen_names: set[str] = set()

    for target in targets:
        if target.is_dir():
            candidates = sorted(
                (p for p in target.iterdir() if p.is_file() and p.suffix.lower() in TARGET_EXTENSIONS),
                key=lambda p: p.name.lower(),
            )
            logger.debug("Found %d model files in %s", len(candidates), target)
        else:
            candidates = [target]

        for path in candidates:
            if path.name in seen_names:
                logger.warning("Duplicate target file name skipped: %s", path)
                continue
            seen_names.add(path.name)
            files.append(path)

    return files


def validate_target_file(path: Path, max_file_size: int = DEFAULT_MAX_FILE_SIZE) -> str | None:
    """Return a reason the file cannot be processed, or None if it is fine."""
    if not path.exists():
        return "File not found"
    if path.suffix.lower() not in TARGET_EXTENSIONS:
        return "Invalid file type. Only .gltf files are supported."
    if path.suffix.lower() == ".glb":
        return "Binary .glb containers are not supported. Export the model as .gltf."
    size = path.stat().st_size
    if size > max_file_size:
        return f"File size exceeds {max_file_size // (1024 * 1024)}MB limit ({size} bytes)"
    return None


def load_reference(path: Path | None) -> dict[str, Any]:
    """Read and parse the reference document.

    Raises:
        GltfDocumentError: If the file is missing, is a .glb container or is
            not a glTF JSON object.
    """
    if path is None:
        raise GltfDocumentError("No reference file given")
    if not path.exists():
        raise GltfDocumentError(f"Reference file not found: {path}")
    reference = load_gltf_bytes(path.read_bytes(), path.name)
    if not reference.get("materials"):
        logger.warning("Reference file %s has no materials", path.name)
    return reference


def process_target_file(
    path: Path,
    reference: dict[str, Any],
    material_config: MaterialConfig,
    config: UpdaterConfig,
    progress_callback: Callable[[float], None] | None = None,
) -> _FileResult:
    """Run the configured pipeline on one target file.

    Fatal per-file errors are returned in the result instead of raised.
    """
    result = _FileResult(file_name=path.name)

    reason = validate_target_file(path, config.max_file_size)
    if reason is not None:
        result.error = reason
        return result

    try:
        data = path.read_bytes()
        if config.mode == "export":
            exported = export_variants_bytes(
                data,
                path.name,
                config.model_label,
                config.apply_mood_rotation,
                material_config,
                progress_callback,
            )
            result.outputs = [(variant.file_name, variant.content) for variant in exported]
        else:
            content = update_document_bytes(
                reference,
                data,
                config.model_label,
                config.apply_variants,
                config.apply_mood_rotation,
                material_config,
                path.name,
                progress_callback,
            )
            result.outputs = [(path.name, content)]
    except (GltfUpdateError, OSError) as e:
        result.error = str(e)
    except Exception as e:
        logger.exception("Unexpected error while processing %s", path.name)
        result.error = f"Unexpected error: {e}"

    return result


def _write_outputs(result: _FileResult, config: UpdaterConfig, stats: UpdateStats) -> None:
    for file_name, content in result.outputs:
        output_path = config.output_dir / file_name
        if config.dry_run:
            logger.info("[DRY RUN] Would write: %s (%d bytes)", output_path, len(content))
        else:
            output_path.write_bytes(content)
            logger.debug("Wrote %s", output_path)
        stats.outputs.append(file_name)
        stats.documents_written += 1
        if config.mode == "export":
            stats.variants_exported += 1


def run_batch(
    config: UpdaterConfig,
    progress_callback: Callable[[float], None] | None = None,
    cancel_event: threading.Event | None = None,
) -> UpdateStats:
    """Run the update or export pipeline over every target file.

    Args:
        config: Batch configuration.
        progress_callback: Optional callable receiving overall progress 0.0..1.0.
        cancel_event: Optional event; when set, no further batch is started.

    Returns:
        UpdateStats for the run. Batch-level problems are in ``errors``,
        per-file problems in ``failures``.
    """
    stats = UpdateStats()
    collector = _WarningCollector(stats.warnings)
    logging.getLogger().addHandler(collector)

    try:
        if config.mode not in MODES:
            stats.errors.append(f"Unknown mode {config.mode!r}, expected one of {', '.join(MODES)}")
            return stats

        # Step 1: Configuration Document
        try:
            material_config = load_material_config(config.material_config)
        except MaterialConfigError as e:
            logger.error("%s", e)
            stats.errors.append(str(e))
            return stats

        # Step 2: Reference document
        reference: dict[str, Any] = {}
        if config.mode == "update":
            try:
                reference = load_reference(config.reference)
            except (GltfUpdateError, OSError) as e:
                error_msg = f"Failed to load reference file: {e}"
                logger.error(error_msg)
                stats.errors.append(error_msg)
                return stats

            # Step 3: Material name comparison
            for difference in compare_materials(reference, material_config):
                logger.warning(difference)

        logger.info("Starting %s run", config.mode)
        logger.info("  Reference: %s", config.reference)
        logger.info("  Configuration: %s", config.material_config)
        logger.info("  Output: %s", config.output_dir)
        logger.info("  Model: %s", config.model_label or "(none)")

        # Step 4-5: Collect targets and apply the model gate
        target_files = collect_target_files(config.targets)
        stats.files_found = len(target_files)

        gated = config.model_label not in UNRESTRICTED_MODEL_LABELS
        if gated and config.model_label not in material_config.models:
            logger.warning(
                "Model label %r not found in configuration models, processing all files",
                config.model_label,
            )
            gated = False

        selected: list[Path] = []
        for path in target_files:
            if not gated or model_label_allows(material_config, config.model_label, path.name):
                selected.append(path)
            else:
                logger.debug("Skipping %s: not part of model %r", path.name, config.model_label)
                stats.files_skipped += 1

        logger.info(
            "Processing %d of %d target file(s) (%d skipped by model filter)",
            len(selected),
            len(target_files),
            stats.files_skipped,
        )
        if not selected:
            logger.warning("No target files to process")
            return stats

        if not config.dry_run:
            config.output_dir.mkdir(parents=True, exist_ok=True)

        # Step 6-7: Process in fixed-size batches
        jobs = max(1, config.jobs)
        total = len(selected)
        completed = 0

        def file_progress(value: float) -> None:
            if progress_callback is not None:
                progress_callback(min(1.0, (completed + value) / total))

        batches = [selected[i:i + jobs] for i in range(0, total, jobs)]
        for batch_number, batch in enumerate(batches, start=1):
            if cancel_event is not None and cancel_event.is_set():
                logger.warning("Run cancelled before batch %d of %d", batch_number, len(batches))
                stats.cancelled = True
                break

            logger.debug("Batch %d/%d: %s", batch_number, len(batches), ", ".join(p.name for p in batch))
            if jobs == 1:
                results = [
                    process_target_file(batch[0], reference, material_config, config, file_progress)
                ]
            else:
                with ThreadPoolExecutor(max_workers=len(batch)) as executor:
                    results = list(
                        executor.map(
                            lambda p: process_target_file(p, reference, material_config, config),
                            batch,
                        )
                    )

            for result in results:
                if result.error is not None:
                    logger.error("%s: %s", result.file_name, result.error)
                    stats.failures.append(FileFailure(result.file_name, result.error))
                else:
                    try:
                        _write_outputs(result, config, stats)
                        stats.files_processed += 1
                        logger.info("Processed %s (%d output file(s))", result.file_name, len(result.outputs))
                    except OSError as e:
                        error_msg = f"Failed to write output: {e}"
                        logger.error("%s: %s", result.file_name, error_msg)
                        stats.failures.append(FileFailure(result.file_name, error_msg))
                completed += 1
                if progress_callback is not None:
                    progress_callback(completed / total)

        if not config.dry_run:
            write_update_log(config.output_dir, stats, config)

        return stats

    finally:
        logging.getLogger().removeHandler(collector)


def write_update_log(output_dir: Path, stats: UpdateStats, config: UpdaterConfig) -> None:
    """Write a summary log file with all warnings and failures.

    Args:
        output_dir: Directory where update_log.txt will be written.
        stats: Run statistics.
        config: Run configuration.
    """
    log_path = output_dir / LOG_FILE_NAME

    lines = [
        "=" * 60,
        "glTF Material Updater - Update Log",
        "=" * 60,
        f"Date: {datetime.now().isoformat()}",
        f"Mode: {config.mode}",
        f"Reference: {config.reference}",
        f"Configuration: {config.material_config}",
        f"Output Directory: {config.output_dir}",
        f"Model: {config.model_label}",
        f"Apply Variants: {config.apply_variants}",
        f"Apply Mood Rotation: {config.apply_mood_rotation}",
        "",
        "Statistics:",
        f"  Files Found: {stats.files_found}",
        f"  Files Processed: {stats.files_processed}",
        f"  Files Skipped: {stats.files_skipped}",
        f"  Files Failed: {len(stats.failures)}",
        f"  Documents Written: {stats.documents_written}",
        f"  Variants Exported: {stats.variants_exported}",
        f"  Cancelled: {stats.cancelled}",
        "",
    ]

    if stats.warnings:
        lines.append(f"Warnings ({len(stats.warnings)}):")
        for warning in stats.warnings:
            lines.append(f"  - {warning}")
        lines.append("")

    if stats.failures:
        lines.append(f"Failed Files ({len(stats.failures)}):")
        for failure in stats.failures:
            lines.append(f"  - {failure.file_name}: {failure.message}")
        lines.append("")

    lines.append("=" * 60)

    log_path.write_text("\n".join(lines), encoding="utf-8")
    logger.info("Wrote update log to: %s", log_path)


def print_summary(stats: UpdateStats) -> None:
    """Print run summary to console."""
    print("\n" + "=" * 60)
    print("Update Cancelled" if stats.cancelled else "Update Complete")
    print("=" * 60)
    print(f"  Files Found:         {stats.files_found}")
    print(f"  Files Processed:     {stats.files_processed}")
    if stats.files_skipped > 0:
        print(f"  Files Skipped:       {stats.files_skipped} (model filter)")
    print(f"  Documents Written:   {stats.documents_written}")
    if stats.variants_exported > 0:
        print(f"  Variants Exported:   {stats.variants_exported}")

    if stats.warnings:
        print(f"\n  Warnings: {len(stats.warnings)}")

    if stats.errors:
        print(f"\n  Errors: {len(stats.errors)}")
        for error in stats.errors:
            print(f"    - {error}")

    if stats.failures:
        print(f"\n  Failed Files: {len(stats.failures)}")
        for failure in stats.failures[:5]:
            print(f"    - {failure.file_name}: {failure.message}")
        if len(stats.failures) > 5:
            print(f"    ... and {len(stats.failures) - 5} more")

    print("=" * 60 + "\n")


def parse_args(argv: list[str] | None = None) -> UpdaterConfig:
    """Parse command-line arguments and validate inputs.

    Returns:
        UpdaterConfig with resolved paths.

    Raises:
        SystemExit: If required arguments are missing or invalid.
    """
    parser = argparse.ArgumentParser(
        description="Apply a reference material setup and KHR_materials_variants to glTF files.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    python updater.py \\
        --reference Reference.gltf \\
        --targets ./chairs \\
        --config Materials.json \\
        --output ./updated

    python updater.py --mode export \\
        --targets ./updated/chair_01.gltf \\
        --config Materials.json \\
        --output ./variants --model Blavalen
""",
    )

    parser.add_argument(
        "--reference",
        type=Path,
        default=None,
        help="Reference .gltf file providing materials, textures and samplers (required in update mode)",
    )
    parser.add_argument(
        "--targets",
        type=Path,
        nargs="+",
        required=True,
        help="Target .gltf files or directories containing them",
    )
    parser.add_argument(
        "--config",
        type=Path,
        required=True,
        help="Material configuration JSON (Materials.json)",
    )
    parser.add_argument(
        "--output",
        type=Path,
        required=True,
        help="Output directory",
    )
    parser.add_argument(
        "--mode",
        choices=MODES,
        default="update",
        help="'update' writes updated targets, 'export' writes one file per variant (default: update)",
    )
    parser.add_argument(
        "--model",
        default="Regular",
        help="Model label from the configuration's 'models' (default: Regular, no filtering)",
    )
    parser.add_argument(
        "--no-variants",
        action="store_true",
        help="Do not write KHR_materials_variants assignments",
    )
    parser.add_argument(
        "--no-mood-rotation",
        action="store_true",
        help="Do not patch texture rotation on MOO- materials",
    )
    parser.add_argument(
        "--jobs",
        type=int,
        default=1,
        help="Files processed side by side per batch (default: 1)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Run the pipelines without writing files",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )

    args = parser.parse_args(argv)

    if args.mode == "update":
        if args.reference is None:
            parser.error("--reference is required in update mode")
        if not args.reference.exists():
            parser.error(f"Reference file not found: {args.reference}")

    for target in args.targets:
        if not target.exists():
            parser.error(f"Target not found: {target}")

    if args.jobs < 1:
        parser.error("--jobs must be at least 1")

    return UpdaterConfig(
        reference=args.reference.resolve() if args.reference else None,
        targets=[target.resolve() for target in args.targets],
        material_config=args.config.resolve(),
        output_dir=args.output.resolve(),
        mode=args.mode,
        model_label=args.model,
        apply_variants=not args.no_variants,
        apply_mood_rotation=not args.no_mood_rotation,
        jobs=args.jobs,
        dry_run=args.dry_run,
        verbose=args.verbose,
    )


def main(argv: list[str] | None = None) -> int:
    """CLI entry point.

    Returns:
        Exit code (0 for success, 1 for errors or failed files).
    """
    try:
        config = parse_args(argv)
    except SystemExit:
        return 1

    log_level = logging.DEBUG if config.verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(levelname)s: %(message)s",
    )

    try:
        stats = run_batch(config)
    except KeyboardInterrupt:
        print("\nUpdate interrupted by user.")
        return 1
    except Exception as e:
        logger.exception("Unexpected error during update: %s", e)
        return 1

    print_summary(stats)

    if stats.errors or stats.failures:
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
