import copy

import pytest

from ao_texture import find_ao_image, find_ao_texture, is_ao_image, preserve_ao, texture_uses_ao_image
from gltf_document import MissingAOError


@pytest.mark.parametrize(
    "image, expected",
    [
        ({"name": "Chair_01_AO"}, True),
        ({"name": "Chair_01_AO_2k"}, True),
        ({"name": "Chair-AO"}, True),
        ({"uri": "textures/Chair-AO.png"}, True),
        ({"name": "Chair_01_BaseColor"}, False),
        ({"name": "AOMap"}, False),
        ({"uri": "data:image/png;base64,X_AO"}, False),
        ({}, False),
        ("Chair_AO", False),
    ],
)
def test_is_ao_image(image, expected):
    assert is_ao_image(image) is expected


def test_conventions_can_be_overridden():
    assert is_ao_image({"name": "chair_occlusion"}, markers=("_occlusion",))
    assert not is_ao_image({"name": "Chair_AO"}, markers=("_occlusion",), suffixes=())


def test_find_ao_image_and_texture(target_doc, reference_doc):
    assert find_ao_image(target_doc) == (0, target_doc["images"][0])
    assert find_ao_texture(reference_doc)[0] == 1
    assert find_ao_texture({"textures": [{"name": "tex_Wood"}]}) is None


def test_texture_uses_ao_image(reference_doc):
    assert texture_uses_ao_image(reference_doc, 1)
    assert not texture_uses_ao_image(reference_doc, 0)
    assert not texture_uses_ao_image(reference_doc, 42)
    assert not texture_uses_ao_image(reference_doc, None)


class TestPreserveAO:
    def test_target_ao_image_replaces_reference_slot(self, target_doc, reference_doc):
        preserved = preserve_ao(target_doc, reference_doc)
        assert preserved.ao_image_index == 1
        assert preserved.images[1] == target_doc["images"][0]
        assert preserved.images[0] == reference_doc["images"][0]
        assert preserved.textures == reference_doc["textures"]

    def test_inputs_are_not_modified(self, target_doc, reference_doc):
        target_before = copy.deepcopy(target_doc)
        reference_before = copy.deepcopy(reference_doc)
        preserved = preserve_ao(target_doc, reference_doc)
        preserved.images[1]["name"] = "changed"
        preserved.textures[0]["name"] = "changed"
        assert target_doc == target_before
        assert reference_doc == reference_before

    def test_missing_target_image_is_fatal(self, target_doc, reference_doc):
        target_doc["images"] = [{"name": "Chair_BaseColor"}]
        with pytest.raises(MissingAOError, match="target"):
            preserve_ao(target_doc, reference_doc)

    def test_missing_reference_texture_is_fatal(self, target_doc, reference_doc):
        reference_doc["textures"][1]["name"] = "tex_Occlusion"
        with pytest.raises(MissingAOError, match="reference"):
            preserve_ao(target_doc, reference_doc)

    def test_reference_texture_without_valid_source_is_fatal(self, target_doc, reference_doc):
        reference_doc["textures"][1]["source"] = 10
        with pytest.raises(MissingAOError, match="image source"):
            preserve_ao(target_doc, reference_doc)
