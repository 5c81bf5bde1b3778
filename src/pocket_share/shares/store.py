"""JSON file persistence for the share registry."""

import json
import os
import tempfile
from pathlib import Path

from pydantic import ValidationError

from ..common.exceptions import PersistenceError
from ..common.logging import get_logger
from .models import Share

logger = get_logger(__name__)


class ShareStore:
    """Reads and writes ``<data_dir>/shares.json`` as a JSON array."""

    FILENAME = "shares.json"

    def __init__(self, data_dir: Path | str) -> None:
        self.data_dir = Path(data_dir).expanduser()

    @property
    def path(self) -> Path:
        return self.data_dir / self.FILENAME

    def load(self) -> list[Share]:
        """Load persisted shares.

        Returns:
            Shares in file order; an empty list when no file exists yet

        Raises:
            PersistenceError: If the file cannot be read or is not a JSON array
        """
        if not self.path.exists():
            return []

        try:
            with open(self.path, encoding="utf-8") as f:
                records = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise PersistenceError(f"Failed to read {self.path}: {e}") from e

        if not isinstance(records, list):
            raise PersistenceError(f"Expected a JSON array in {self.path}")

        shares = []
        for index, record in enumerate(records):
            try:
                shares.append(Share.model_validate(record))
            except ValidationError as e:
                logger.warning(
                    "Skipping invalid share record",
                    index=index,
                    errors=e.error_count(),
                )

        logger.debug("Loaded shares", count=len(shares), path=str(self.path))
        return shares

    def save(self, shares: list[Share]) -> None:
        """Replace the file with ``shares``.

        Raises:
            PersistenceError: If the file cannot be written
        """
        content = json.dumps([share.to_record() for share in shares], indent=2)

        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            fd, temp_path = tempfile.mkstemp(
                dir=self.data_dir, prefix=".shares_", suffix=".json"
            )
        except OSError as e:
            raise PersistenceError(f"Failed to write {self.path}: {e}") from e

        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
            os.replace(temp_path, self.path)
        except OSError as e:
            try:
                os.unlink(temp_path)
            except OSError:
                pass
            raise PersistenceError(f"Failed to write {self.path}: {e}") from e

        logger.debug("Saved shares", count=len(shares), path=str(self.path))

    def clear(self) -> None:
        """Delete the registry file if present."""
        try:
            self.path.unlink(missing_ok=True)
        except OSError as e:
            raise PersistenceError(f"Failed to delete {self.path}: {e}") from e
        logger.info("Cleared persisted shares", path=str(self.path))
