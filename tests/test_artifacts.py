"""
Tests for artifact persistence.
"""

import pytest

from resale_studio.artifacts import ArtifactStore
from resale_studio.utils import ArtifactWriteError

IMAGE_ID = "3f2c9a1e-7b4d-4e21-9c3a-1d2e3f405060"


@pytest.fixture
def store(tmp_path):
    return ArtifactStore(tmp_path / "out")


class TestLayout:

    def test_creates_directories(self, store):
        assert store.masks_dir.is_dir()
        assert store.edited_dir.is_dir()
        assert store.logs_dir.is_dir()

    def test_names_carry_base_and_run_id(self, store):
        assert store.mask_path("jacket", IMAGE_ID).name == "jacket_3f2c9a1e_mask.png"
        assert store.edited_path("jacket", IMAGE_ID, ".png").name == "jacket_3f2c9a1e_edited.png"
        assert store.forensic_path("jacket", IMAGE_ID).name == "jacket_3f2c9a1e_forensic.json"


class TestWrites:

    def test_write_bytes(self, store):
        path = store.write_bytes(store.mask_path("jacket", IMAGE_ID), b"\x89PNG data")
        assert path.read_bytes() == b"\x89PNG data"

    def test_no_temporary_files_left(self, store):
        store.write_bytes(store.mask_path("jacket", IMAGE_ID), b"data")
        assert [p.name for p in store.masks_dir.iterdir()] == ["jacket_3f2c9a1e_mask.png"]

    def test_overwrite_replaces_content(self, store):
        path = store.forensic_path("jacket", IMAGE_ID)
        store.write_text(path, "first")
        store.write_text(path, "second")
        assert path.read_text() == "second"

    def test_unwritable_location_raises(self, store):
        blocker = store.root / "blocker"
        blocker.write_bytes(b"")
        with pytest.raises(ArtifactWriteError):
            store.write_bytes(blocker / "mask.png", b"data")
