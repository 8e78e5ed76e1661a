"""
Artifact Store

Write-once persistence for masks, edited images and forensic logs. Files are
written to a temporary name and renamed into place, so readers never observe a
partially written artifact.
"""

import os
import tempfile
from pathlib import Path
from typing import Union
import logging

from .utils import ArtifactWriteError, ensure_dir

logger = logging.getLogger(__name__)


class ArtifactStore:
    """
    Output directory layout::

        <root>/masks/<base>_<run>_mask.png
        <root>/edited/<base>_<run>_edited.<ext>
        <root>/logs/<base>_<run>_forensic.json
    """

    def __init__(self, root: Union[str, Path]):
        self.root = ensure_dir(root)
        self.masks_dir = ensure_dir(self.root / "masks")
        self.edited_dir = ensure_dir(self.root / "edited")
        self.logs_dir = ensure_dir(self.root / "logs")

    @staticmethod
    def stem(base: str, image_id: str) -> str:
        return f"{base}_{image_id.replace('-', '')[:8]}"

    def mask_path(self, base: str, image_id: str) -> Path:
        return self.masks_dir / f"{self.stem(base, image_id)}_mask.png"

    def edited_path(self, base: str, image_id: str, ext: str = ".jpg") -> Path:
        return self.edited_dir / f"{self.stem(base, image_id)}_edited{ext}"

    def forensic_path(self, base: str, image_id: str) -> Path:
        return self.logs_dir / f"{self.stem(base, image_id)}_forensic.json"

    def write_bytes(self, path: Path, data: bytes) -> Path:
        """
        Atomically write ``data`` to ``path``.

        Raises:
            ArtifactWriteError: if the file could not be written
        """
        path = Path(path)
        tmp_name = None
        try:
            ensure_dir(path.parent)
            fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
            with os.fdopen(fd, "wb") as handle:
                handle.write(data)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, path)
            tmp_name = None
        except OSError as e:
            raise ArtifactWriteError(f"Failed to write {path}: {e}") from e
        finally:
            if tmp_name is not None and os.path.exists(tmp_name):
                os.unlink(tmp_name)

        logger.debug(f"Wrote {path} ({len(data)} bytes)")
        return path

    def write_text(self, path: Path, text: str) -> Path:
        return self.write_bytes(path, text.encode("utf-8"))
