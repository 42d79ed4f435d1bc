from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
import threading
from typing import Any, Iterable, Protocol

from loguru import logger
from psycopg.types.json import Jsonb
from pydantic import ValidationError

from smart_fill.config import Settings
from smart_fill.db import Database
from smart_fill.errors import CacheIOError
from smart_fill.models import ANALYSIS_VERSION, PhotoAnalysis


class AnalysisStore(Protocol):
    def load(self, photo_id: str) -> dict[str, Any] | None: ...

    def save(self, photo_id: str, data: dict[str, Any]) -> None: ...


class MemoryAnalysisStore:
    def __init__(self) -> None:
        self._records: dict[str, dict[str, Any]] = {}
        self._lock = threading.Lock()

    def load(self, photo_id: str) -> dict[str, Any] | None:
        with self._lock:
            record = self._records.get(photo_id)
            return dict(record) if record is not None else None

    def save(self, photo_id: str, data: dict[str, Any]) -> None:
        with self._lock:
            self._records[photo_id] = dict(data)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


class PostgresAnalysisStore:
    def __init__(self, db: Database) -> None:
        self._db = db

    def load(self, photo_id: str) -> dict[str, Any] | None:
        try:
            row = self._db.fetchone(
                "SELECT analysis FROM photo_analyses WHERE photo_id = %s",
                (photo_id,),
            )
        except Exception as exc:  # noqa: BLE001
            raise CacheIOError(photo_id, "read", str(exc)) from exc
        return row[0] if row is not None else None

    def save(self, photo_id: str, data: dict[str, Any]) -> None:
        try:
            self._db.execute(
                """
                INSERT INTO photo_analyses (photo_id, analysis)
                VALUES (%s, %s)
                ON CONFLICT (photo_id) DO UPDATE SET
                    analysis = EXCLUDED.analysis,
                    updated_at = now()
                """,
                (photo_id, Jsonb(data)),
            )
        except Exception as exc:  # noqa: BLE001
            raise CacheIOError(photo_id, "write", str(exc)) from exc


def is_sufficient(analysis: PhotoAnalysis | None, detect_faces: bool = False) -> bool:
    if analysis is None:
        return False
    if analysis.version != ANALYSIS_VERSION:
        return False
    if detect_faces and analysis.face_detection is None:
        return False
    return True


class AnalysisCache:
    def __init__(self, store: AnalysisStore, max_workers: int = 8) -> None:
        self._store = store
        self._max_workers = max(1, max_workers)

    def get(self, photo_id: str) -> PhotoAnalysis | None:
        try:
            record = self._store.load(photo_id)
        except CacheIOError as exc:
            logger.warning("{error}", error=str(exc))
            return None
        if record is None:
            return None
        try:
            return PhotoAnalysis.model_validate({**record, "id": photo_id})
        except ValidationError as exc:
            logger.warning(
                "Discarding unreadable cached analysis for {photo_id}: {error}",
                photo_id=photo_id,
                error=str(exc),
            )
            return None

    def put(self, analysis: PhotoAnalysis) -> bool:
        try:
            self._store.save(analysis.id, analysis.model_dump(mode="json"))
        except CacheIOError as exc:
            logger.warning("{error}", error=str(exc))
            return False
        return True

    def get_many(self, photo_ids: Iterable[str]) -> dict[str, PhotoAnalysis]:
        ids = list(dict.fromkeys(photo_ids))
        if not ids:
            return {}
        workers = min(self._max_workers, len(ids))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="analysis-cache") as executor:
            results = list(executor.map(self.get, ids))
        return {photo_id: analysis for photo_id, analysis in zip(ids, results) if analysis is not None}

    def needs_analysis(self, photo_id: str, detect_faces: bool = False) -> bool:
        return not is_sufficient(self.get(photo_id), detect_faces)


def build_cache(settings: Settings) -> AnalysisCache:
    if settings.cache_backend == "memory":
        store: AnalysisStore = MemoryAnalysisStore()
    elif settings.cache_backend == "postgres":
        db = Database(settings.db_dsn, max_size=settings.cache_workers)
        db.check()
        db.ensure_schema()
        store = PostgresAnalysisStore(db)
    else:
        raise ValueError(f"Unknown cache backend: {settings.cache_backend}")
    return AnalysisCache(store, max_workers=settings.cache_workers)
