"""glTF JSON document helpers.

The updater treats a glTF document as an opaque JSON object and only touches
the handful of fields it needs: the materials/textures/images/samplers/meshes
arrays, the ``extensions`` block, and the ``extensionsUsed`` /
``extensionsRequired`` declarations. Everything else passes through verbatim.

All cross-references inside a glTF document are array indices, so every
helper here that walks references yields the *containers* holding an index
(texture-info dicts, primitives, textures) rather than copies. Callers rewrite
the index in place on a document they own.

Module Structure:
    - Error classes: GltfUpdateError, GltfDocumentError, MissingAOError
    - load_gltf_bytes(), serialize_gltf(): bytes <-> dict
    - ensure_top_level_arrays(): default-initialize missing arrays
    - ensure_extension_declarations(), sync_extension_declarations()
    - iter_primitives(), iter_texture_slots(), iter_texture_infos()
    - texture_image_refs(), texture_image_indices()
    - strip_primitive_variants(), remove_variants_extension()
"""

from __future__ import annotations

import json
import logging
from typing import Any, Iterator

logger = logging.getLogger(__name__)

KHR_TEXTURE_TRANSFORM = "KHR_texture_transform"
KHR_MATERIALS_VARIANTS = "KHR_materials_variants"

# Arrays the pipelines read or replace. Missing ones are created empty.
TOP_LEVEL_ARRAYS = ("materials", "textures", "images", "samplers", "meshes")

# Magic bytes of a binary glTF container ("glTF" little-endian).
GLB_MAGIC = b"glTF"


class GltfUpdateError(Exception):
    """Fatal error for a single target file.

    Raised by the update and export pipelines when a file cannot be processed.
    The batch driver catches it, records a failure for that file and moves on
    to the next one.
    """


class GltfDocumentError(GltfUpdateError):
    """The input is not a usable glTF JSON document."""


class MissingAOError(GltfUpdateError):
    """Ambient-occlusion image or texture could not be located."""


def load_gltf_bytes(data: bytes, source_name: str = "<bytes>") -> dict[str, Any]:
    """Parse raw file bytes into a glTF JSON document.

    Args:
        data: Raw bytes of a ``.gltf`` file.
        source_name: Name used in error messages (usually the file name).

    Returns:
        The parsed document as a dict.

    Raises:
        GltfDocumentError: If the bytes are a binary ``.glb`` container, are
            not valid UTF-8 JSON, or do not decode to a JSON object.
    """
    if data[:4] == GLB_MAGIC:
        raise GltfDocumentError(
            f"{source_name}: binary .glb containers are not supported, export as .gltf"
        )

    try:
        document = json.loads(data.decode("utf-8-sig"))
    except UnicodeDecodeError as e:
        raise GltfDocumentError(f"{source_name}: not UTF-8 text ({e})") from e
    except json.JSONDecodeError as e:
        raise GltfDocumentError(f"{source_name}: malformed JSON ({e})") from e

    if not isinstance(document, dict):
        raise GltfDocumentError(
            f"{source_name}: expected a JSON object, got {type(document).__name__}"
        )
    return document


def serialize_gltf(document: dict[str, Any], *, indent: int = 2) -> bytes:
    """Serialize a document to pretty-printed UTF-8 JSON bytes."""
    return json.dumps(document, indent=indent, ensure_ascii=False).encode("utf-8")


def ensure_top_level_arrays(document: dict[str, Any]) -> None:
    """Create any missing top-level arrays as empty lists.

    ``meshes`` absent is tolerated as "no meshes". A present value that is not
    a list cannot be defaulted sensibly and is fatal.

    Raises:
        GltfDocumentError: If one of the arrays exists but is not a list.
    """
    for key in TOP_LEVEL_ARRAYS:
        value = document.get(key)
        if value is None:
            document[key] = []
        elif not isinstance(value, list):
            raise GltfDocumentError(
                f"'{key}' must be an array, got {type(value).__name__}"
            )

    for mesh in document["meshes"]:
        if isinstance(mesh, dict) and mesh.get("primitives") is None:
            mesh["primitives"] = []


def _add_unique(document: dict[str, Any], key: str, names: list[str]) -> None:
    declared = list(document.get(key) or [])
    for name in names:
        if name not in declared:
            declared.append(name)
    document[key] = declared


def _discard(document: dict[str, Any], key: str, name: str) -> None:
    declared = document.get(key)
    if not declared or name not in declared:
        return
    remaining = [entry for entry in declared if entry != name]
    if remaining:
        document[key] = remaining
    else:
        del document[key]


def ensure_extension_declarations(
    document: dict[str, Any],
    *,
    include_variants: bool = True,
    reference: dict[str, Any] | None = None,
) -> None:
    """Make sure the extensions the pipeline writes are declared.

    ``KHR_texture_transform`` goes into both ``extensionsUsed`` and
    ``extensionsRequired``. ``KHR_materials_variants`` is only ever *used*.
    When a reference document is given, its own declarations are merged in as
    well, since its materials are about to be copied over.

    Args:
        document: Document to update in place.
        include_variants: Whether to declare ``KHR_materials_variants``.
        reference: Optional document whose declarations are unioned in.
    """
    used = [KHR_TEXTURE_TRANSFORM]
    if include_variants:
        used.append(KHR_MATERIALS_VARIANTS)
    required = [KHR_TEXTURE_TRANSFORM]

    if reference is not None:
        used = list(reference.get("extensionsUsed") or []) + used
        required = list(reference.get("extensionsRequired") or []) + required

    _add_unique(document, "extensionsUsed", used)
    _add_unique(document, "extensionsRequired", required)


def has_variant_content(document: dict[str, Any]) -> bool:
    """True if the document-level variants list or any primitive mapping is present."""
    top = (document.get("extensions") or {}).get(KHR_MATERIALS_VARIANTS)
    if top and top.get("variants"):
        return True
    return any(
        (primitive.get("extensions") or {}).get(KHR_MATERIALS_VARIANTS)
        for _, primitive in iter_primitives(document)
    )


def sync_extension_declarations(document: dict[str, Any]) -> None:
    """Re-check declarations after the pipeline has finished mutating.

    ``KHR_texture_transform`` is always declared. ``KHR_materials_variants`` is
    declared if and only if the document actually carries variant content, so a
    document never claims an extension it has no data for.
    """
    ensure_extension_declarations(document, include_variants=False)
    if has_variant_content(document):
        _add_unique(document, "extensionsUsed", [KHR_MATERIALS_VARIANTS])
    else:
        _discard(document, "extensionsUsed", KHR_MATERIALS_VARIANTS)
        _discard(document, "extensionsRequired", KHR_MATERIALS_VARIANTS)


def iter_primitives(document: dict[str, Any]) -> Iterator[tuple[dict[str, Any], dict[str, Any]]]:
    """Yield ``(mesh, primitive)`` pairs for every primitive in the document."""
    for mesh in document.get("meshes") or []:
        if not isinstance(mesh, dict):
            continue
        for primitive in mesh.get("primitives") or []:
            if isinstance(primitive, dict):
                yield mesh, primitive


def iter_texture_slots(node: Any) -> Iterator[tuple[dict[str, Any], str]]:
    """Yield ``(container, key)`` for every texture-info nested inside a material.

    A texture-info is any dict stored under a key ending in ``Texture`` that
    carries an integer ``index`` (``baseColorTexture``, ``normalTexture``,
    ``sheenColorTexture``, ``clearcoatTexture``, ...). Walking generically
    keeps extension textures from being orphaned when textures are reindexed.
    """
    if isinstance(node, dict):
        for key, value in list(node.items()):
            if (
                key.endswith("Texture")
                and isinstance(value, dict)
                and isinstance(value.get("index"), int)
            ):
                yield node, key
            yield from iter_texture_slots(value)
    elif isinstance(node, list):
        for item in node:
            yield from iter_texture_slots(item)


def iter_texture_infos(node: Any) -> Iterator[dict[str, Any]]:
    """Yield every texture-info dict nested anywhere inside a material."""
    for container, key in iter_texture_slots(node):
        yield container[key]


def texture_image_refs(texture: dict[str, Any]) -> Iterator[dict[str, Any]]:
    """Yield the dicts in a texture that hold an image ``source`` index.

    That is the texture itself plus any extension block with its own
    ``source`` (``KHR_texture_basisu``, ``EXT_texture_webp``, ...).
    """
    if isinstance(texture.get("source"), int):
        yield texture
    for extension in (texture.get("extensions") or {}).values():
        if isinstance(extension, dict) and isinstance(extension.get("source"), int):
            yield extension


def texture_image_indices(texture: dict[str, Any]) -> list[int]:
    return [holder["source"] for holder in texture_image_refs(texture)]


def strip_primitive_variants(primitive: dict[str, Any]) -> bool:
    """Remove ``KHR_materials_variants`` from a primitive.

    Drops the primitive's ``extensions`` object entirely if nothing else is
    left in it.

    Returns:
        True if the primitive carried the extension.
    """
    extensions = primitive.get("extensions")
    if not extensions or KHR_MATERIALS_VARIANTS not in extensions:
        return False
    del extensions[KHR_MATERIALS_VARIANTS]
    if not extensions:
        del primitive["extensions"]
    return True


def remove_variants_extension(document: dict[str, Any]) -> None:
    """Delete the document-level variants extension and its declaration."""
    extensions = document.get("extensions")
    if extensions and KHR_MATERIALS_VARIANTS in extensions:
        del extensions[KHR_MATERIALS_VARIANTS]
        if not extensions:
            del document["extensions"]
    _discard(document, "extensionsUsed", KHR_MATERIALS_VARIANTS)
    _discard(document, "extensionsRequired", KHR_MATERIALS_VARIANTS)


def document_variants(document: dict[str, Any]) -> list[dict[str, Any]]:
    """Return the document's declared variants list (empty if none)."""
    block = (document.get("extensions") or {}).get(KHR_MATERIALS_VARIANTS) or {}
    return list(block.get("variants") or [])
