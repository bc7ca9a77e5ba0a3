"""Tests for the file-backed artifact store."""

import json
import os

import numpy as np
from conftest import create_page_image
from PIL import Image

from scroll_stitch.desktop import FileArtifactStore


def test_persist_writes_image_thumbnail_and_metadata(tmp_path):
    pixels = np.full((900, 300, 4), 255, dtype=np.uint8)
    pixels[..., :3] = create_page_image(900, 300, "noise")
    store = FileArtifactStore(str(tmp_path / "captures"))

    artifact_id = store.persist(pixels, 300, 900, "Scroll Capture")

    assert artifact_id.startswith("capture-long-")
    with open(tmp_path / "captures" / f"{artifact_id}.json") as file:
        metadata = json.load(file)
    assert metadata["source_title"] == "Scroll Capture"
    assert (metadata["width"], metadata["height"]) == (300, 900)

    with Image.open(metadata["file_path"]) as image:
        assert image.mode == "RGBA"
        np.testing.assert_array_equal(np.asarray(image), pixels)
    with Image.open(metadata["thumb_path"]) as thumbnail:
        assert max(thumbnail.size) <= 400
        assert thumbnail.size[1] == 400


def test_persist_keeps_transparency(tmp_path):
    pixels = np.zeros((20, 10, 4), dtype=np.uint8)
    store = FileArtifactStore(str(tmp_path))

    artifact_id = store.persist(pixels, 10, 20, "Scroll Capture")

    with Image.open(os.path.join(tmp_path, f"{artifact_id}.png")) as image:
        assert np.all(np.asarray(image)[..., 3] == 0)
