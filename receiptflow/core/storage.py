"""
Attachment storage layout.

Stored files are named ``{yyyy-MM-dd}-{original filename}`` under the storage
root. When that name is taken, ``-1``, ``-2`` ... is inserted before the
extension. Candidate names are reserved with an exclusive create, so two
concurrent callers can never be handed the same path.
"""

import logging
import os
import shutil
from datetime import date, datetime
from pathlib import Path

from receiptflow.core.exceptions import StorageError

logger = logging.getLogger(__name__)


class StoragePathBuilder:
    """Builds collision-free destination paths inside the storage root."""

    def __init__(self, root: str | Path, max_collisions: int = 1000):
        self.root = Path(root)
        self.max_collisions = max_collisions

    def build_path(self, upload_date: date | datetime, original_filename: str) -> Path:
        """Reserve and return a free path for the given upload date and filename.

        The returned path exists as an empty placeholder file owned by the
        caller; move the real content onto it or call ``release``.

        Raises:
            StorageError: If the filename is unusable or more than
                ``max_collisions`` suffixed names are already taken.
        """
        name = Path(original_filename).name
        if not name or name in (".", ".."):
            raise StorageError(f"Invalid filename for storage: {original_filename!r}")

        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Cannot create storage directory {self.root}: {e}") from e

        prefix = upload_date.strftime("%Y-%m-%d")
        stem = Path(name).stem
        suffix = Path(name).suffix

        for attempt in range(self.max_collisions + 1):
            if attempt == 0:
                candidate = self.root / f"{prefix}-{name}"
            else:
                candidate = self.root / f"{prefix}-{stem}-{attempt}{suffix}"

            try:
                fd = os.open(candidate, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
            except FileExistsError:
                continue
            except OSError as e:
                raise StorageError(f"Cannot reserve storage path {candidate}: {e}") from e

            os.close(fd)
            if attempt:
                logger.debug(f"Resolved storage name collision for {name} with suffix -{attempt}")
            return candidate

        raise StorageError(
            f"Too many storage name collisions for {name} (more than {self.max_collisions})",
            {"filename": name, "max_collisions": self.max_collisions},
        )

    def move_into_storage(self, source: str | Path, destination: str | Path) -> Path:
        """Move an inbox file onto a path reserved by ``build_path``.

        The reservation is released if the move fails.
        """
        destination = Path(destination)
        try:
            shutil.move(str(source), str(destination))
        except OSError as e:
            self.release(destination)
            raise StorageError(f"Failed to move {source} into storage: {e}") from e

        logger.info(f"Stored {Path(source).name} as {destination.name}")
        return destination

    def release(self, path: str | Path) -> None:
        """Remove a reserved placeholder (or a stored file)."""
        try:
            Path(path).unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"Could not remove {path}: {e}")
