"""
JSON file storage for the AI articles snapshot.

Single writer (the batch). Writes go to a temporary file in the same
directory and are then renamed over the target, so a reader sees either the
previous snapshot or the new one.
"""

import json
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path

from loguru import logger
from pydantic import ValidationError

from portfolio_api.datasource.ai_articles.models import AIArticleSnapshot


class SnapshotStorage:
    def __init__(self, path: str | Path):
        self.path = Path(path)

    def _ensure_directory(self) -> None:
        directory = self.path.parent
        if not directory.exists():
            directory.mkdir(parents=True, exist_ok=True)
            logger.info(f"Created data directory: {directory}")

    def read(self) -> AIArticleSnapshot | None:
        """Load the snapshot. Missing or unreadable files yield None."""
        if not self.path.exists():
            logger.debug("AI articles data file does not exist")
            return None

        try:
            content = self.path.read_text(encoding="utf-8")
            snapshot = AIArticleSnapshot.model_validate(json.loads(content))
        except (OSError, ValueError, ValidationError) as e:
            logger.error(f"Failed to read AI articles data: {e}")
            return None

        logger.debug(f"Read {len(snapshot.articles)} AI articles from file")
        return snapshot

    def write(self, snapshot: AIArticleSnapshot) -> bool:
        """Replace the snapshot file. Returns False (and logs) on failure."""
        tmp_path: str | None = None
        try:
            self._ensure_directory()
            content = json.dumps(snapshot.to_json_dict(), ensure_ascii=False, indent=2)

            fd, tmp_path = tempfile.mkstemp(
                dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
            os.replace(tmp_path, self.path)
            tmp_path = None
        except OSError as e:
            logger.error(f"Failed to write AI articles data: {e}")
            return False
        finally:
            if tmp_path is not None and os.path.exists(tmp_path):
                os.unlink(tmp_path)

        logger.info(f"Saved {len(snapshot.articles)} AI articles to file")
        return True

    def exists(self) -> bool:
        return self.path.exists()

    def last_modified(self) -> datetime | None:
        try:
            return datetime.fromtimestamp(self.path.stat().st_mtime, tz=timezone.utc)
        except OSError:
            return None
