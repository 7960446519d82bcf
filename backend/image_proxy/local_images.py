"""
Local Image Store

Reads source images from a single directory on disk. Filenames are
validated before they get here; the resolved path is still checked to
stay inside the root.
"""

import logging
from pathlib import Path
from typing import Union

from .errors import ImageNotFound, InvalidSource

logger = logging.getLogger(__name__)


class LocalImageStore:
    """
    Serves raw bytes for files under `root`.

    Usage:
        store = LocalImageStore("./public/mvp-images")
        data = store.read("hero.jpg")
    """

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root)

    def read(self, filename: str) -> bytes:
        """
        Raises:
            InvalidSource: the path escapes the root directory.
            ImageNotFound: no regular file with that name.
        """
        root = self.root.resolve()
        path = (root / filename).resolve()
        if path.parent != root:
            raise InvalidSource("Invalid filename")

        if not path.is_file():
            logger.warning(f"[LocalImage] Not found: {filename}")
            raise ImageNotFound()

        try:
            return path.read_bytes()
        except OSError as e:
            logger.error(f"[LocalImage] Failed to read {filename}: {e}")
            raise ImageNotFound()
