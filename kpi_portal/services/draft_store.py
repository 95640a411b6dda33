"""
Local drafts of in-progress self-ratings.

Drafts are advisory caches scoped by KPI id. They are never read by the
state machine and are cleared once a submission succeeds.
"""
import logging
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, ValidationError

from kpi_portal.core.config import settings
from kpi_portal.core.exceptions import StaleDraftError
from kpi_portal.services.accomplishments import AccomplishmentRecord

logger = logging.getLogger(__name__)


class SelfRatingDraft(BaseModel):
    ratings: Dict[int, float] = {}
    comments: Dict[int, str] = {}
    signature: str = ""
    review_date: Optional[date] = None
    reflections: Dict[str, str] = {}
    accomplishments: List[AccomplishmentRecord] = []
    saved_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class DraftBackend:
    """Scoped key-value storage for serialized drafts."""

    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set(self, key: str, value: str) -> None:
        raise NotImplementedError

    def remove(self, key: str) -> None:
        raise NotImplementedError


class MemoryDraftBackend(DraftBackend):
    def __init__(self):
        self._data: Dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)


class FileDraftBackend(DraftBackend):
    """One JSON file per key under ``directory``."""

    def __init__(self, directory: Optional[str] = None):
        self.directory = Path(directory or settings.draft_dir)

    def _path(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def get(self, key: str) -> Optional[str]:
        path = self._path(key)
        if not path.exists():
            return None
        try:
            return path.read_text(encoding="utf-8")
        except UnicodeDecodeError as e:
            raise StaleDraftError(f"{path.name} is not valid UTF-8") from e

    def set(self, key: str, value: str) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        self._path(key).write_text(value, encoding="utf-8")

    def remove(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)


class DraftStore:
    def __init__(self, backend: Optional[DraftBackend] = None, prefix: str = "kpi_draft_"):
        self.backend = backend or MemoryDraftBackend()
        self.prefix = prefix

    def key(self, kpi_id: int) -> str:
        return f"{self.prefix}{kpi_id}"

    def save(self, kpi_id: int, draft: SelfRatingDraft) -> None:
        self.backend.set(self.key(kpi_id), draft.model_dump_json())

    def _decode(self, raw: str) -> SelfRatingDraft:
        try:
            return SelfRatingDraft.model_validate_json(raw)
        except (ValidationError, ValueError) as e:
            raise StaleDraftError(str(e)) from e

    def load(self, kpi_id: int) -> Optional[SelfRatingDraft]:
        """The stored draft, or None when there is none or it cannot be read."""
        try:
            raw = self.backend.get(self.key(kpi_id))
        except OSError as e:
            logger.warning("Could not read draft for KPI %s: %s", kpi_id, e)
            return None
        except StaleDraftError as e:
            logger.info("Ignoring unreadable draft for KPI %s: %s", kpi_id, e)
            return None
        if raw is None:
            return None
        try:
            return self._decode(raw)
        except StaleDraftError as e:
            logger.info("Ignoring unreadable draft for KPI %s: %s", kpi_id, e)
            return None

    def clear(self, kpi_id: int) -> None:
        self.backend.remove(self.key(kpi_id))
