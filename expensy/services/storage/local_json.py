"""
Local JSON File Storage

DESIGN DECISION: The state slot is a single JSON file named after the
state key, in a per-user data directory. This is the desktop equivalent
of a browser local-storage entry:
1. No database or server to set up
2. The user can open and back up the file directly
3. One writer (this process), so no locking

Writes go to a temporary file first and are then moved over the real one,
so a crash mid-write never leaves a half-written document behind.
"""

import os
import shutil
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import structlog

from expensy.config import StorageSettings
from expensy.services.storage.interface import (
    AccountStateStorage,
    CorruptStateError,
    StorageError,
)


logger = structlog.get_logger(__name__)


class LocalJsonAccountStorage(AccountStateStorage):
    """
    File-backed state slot.

    The document lives at <data_dir>/<state_key>.json.
    """

    def __init__(self, settings: StorageSettings):
        self._settings = settings
        self._data_dir = Path(settings.data_dir).expanduser()

    @property
    def key(self) -> str:
        return self._settings.state_key

    @property
    def path(self) -> Path:
        return self._data_dir / f"{self.key}.json"

    def read_document(self) -> Optional[str]:
        try:
            return self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except UnicodeDecodeError as e:
            raise CorruptStateError(f"{self.path} is not valid UTF-8: {e}") from e
        except OSError as e:
            raise StorageError(f"Failed to read {self.path}: {e}") from e

    def write_document(self, document: str) -> None:
        try:
            self._data_dir.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self._data_dir,
                prefix=f".{self.key}.",
                suffix=".tmp",
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as tmp:
                    tmp.write(document)
                    tmp.flush()
                    os.fsync(tmp.fileno())
                os.replace(tmp_name, self.path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise StorageError(f"Failed to write {self.path}: {e}") from e

        logger.debug("state_written", path=str(self.path), size=len(document))

    def preserve_corrupt_document(self, document: Optional[str]) -> Optional[str]:
        stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S")
        backup = self._data_dir / f"{self.key}.corrupt-{stamp}.json"
        try:
            if self.path.exists():
                shutil.copy2(self.path, backup)
            elif document is None:
                return None
            else:
                backup.write_text(document, encoding="utf-8")
        except OSError as e:
            logger.error(
                "corrupt_state_backup_failed",
                path=str(backup),
                error=str(e),
            )
            return None
        return str(backup)
