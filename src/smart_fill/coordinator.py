from __future__ import annotations

import uuid
from typing import Iterable

from loguru import logger

from smart_fill.analysis import handle_message
from smart_fill.cache import AnalysisCache, is_sufficient
from smart_fill.config import Settings
from smart_fill.faces import ModelHandle, default_face_model
from smart_fill.library import ImageSource
from smart_fill.models import (
    AnalysisResponse,
    AnalyzePayload,
    AnalyzeRequest,
    Frame,
    FrameSuggestion,
    OptimizationSolution,
    PhotoAnalysis,
    Project,
    ScoringOptions,
)
from smart_fill.optimizer import RandomSource, generate_solutions
from smart_fill.scoring import rank_photos_for_frame
from smart_fill.tracker import BatchTracker
from smart_fill.utils.blobs import create_object_url, revoke_object_url
from smart_fill.worker import AnalysisWorker


class SmartFillCoordinator:
    """Suggestion and solution requests score against what is cached now and
    queue analysis for the rest without waiting for it."""

    def __init__(
        self,
        source: ImageSource,
        cache: AnalysisCache,
        face_model: ModelHandle | None = None,
        settings: Settings | None = None,
        rng: RandomSource | None = None,
        project: Project | None = None,
    ) -> None:
        self.source = source
        self.cache = cache
        self.settings = settings or Settings()
        self.face_model = face_model if face_model is not None else default_face_model()
        self.rng = rng
        self.project = project
        self.tracker = BatchTracker()
        self._worker = AnalysisWorker(
            handler=lambda request: handle_message(request, self.face_model, self.settings),
            on_message=self._on_message,
        )

    def __enter__(self) -> "SmartFillCoordinator":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @property
    def is_analyzing(self) -> bool:
        return self.tracker.is_busy

    @property
    def pending_count(self) -> int:
        return self.tracker.pending_count

    @property
    def progress(self) -> float:
        return self.tracker.progress

    def _on_message(self, response: AnalysisResponse) -> None:
        current = self.tracker.finish(response.id)
        if not current:
            logger.debug("Dropping stale analysis response {id}", id=response.id)
            return

        if response.type == "ANALYSIS_COMPLETE" and isinstance(response.payload, PhotoAnalysis):
            self.cache.put(response.payload)
        else:
            logger.warning(
                "Photo analysis error for request {id}: {error}",
                id=response.id,
                error=response.payload,
            )

    def analyze_library(self, photo_ids: Iterable[str], detect_faces: bool = False) -> int:
        """Dispatch analysis for photos whose cached analysis is missing or too shallow.

        Returns the number of messages posted. Completion is not awaited.
        """
        ids = list(dict.fromkeys(photo_ids))
        cached = self.cache.get_many(ids)
        pending = [
            photo_id
            for photo_id in ids
            if not is_sufficient(cached.get(photo_id), detect_faces)
            and not self.tracker.in_flight(photo_id, detect_faces)
        ]
        if not pending:
            return 0

        metadata = self.source.get_metadata(pending)
        generation = self.tracker.generation
        dispatched = 0
        for photo_id in pending:
            try:
                data = self.source.get_image(photo_id, self.settings.preview_quality)
            except Exception as exc:  # noqa: BLE001
                logger.warning("Error reading photo {photo_id}: {error}", photo_id=photo_id, error=str(exc))
                continue
            meta = metadata.get(photo_id)
            if data is None or meta is None:
                logger.warning("No image data for photo {photo_id}, skipping analysis", photo_id=photo_id)
                continue

            url = create_object_url(data)
            request = AnalyzeRequest(
                id=f"{photo_id}:{uuid.uuid4().hex[:8]}",
                generation=generation,
                payload=AnalyzePayload(
                    image_id=photo_id,
                    image_url=url,
                    width=meta.width,
                    height=meta.height,
                    detect_faces=detect_faces,
                ),
            )
            self.tracker.start(request.id, photo_id, detect_faces, generation)
            try:
                self._worker.post_message(request)
            except RuntimeError as exc:
                self.tracker.finish(request.id)
                revoke_object_url(url)
                logger.warning(
                    "Could not dispatch analysis for {photo_id}: {error}",
                    photo_id=photo_id,
                    error=str(exc),
                )
                continue
            dispatched += 1

        logger.info(
            "Dispatched {dispatched} photo analyses (faces={faces})",
            dispatched=dispatched,
            faces=detect_faces,
        )
        return dispatched

    def check_analysis_status(self, photo_ids: Iterable[str], detect_faces: bool = False) -> bool:
        ids = list(dict.fromkeys(photo_ids))
        cached = self.cache.get_many(ids)
        return all(is_sufficient(cached.get(photo_id), detect_faces) for photo_id in ids)

    def get_suggestions_for_frame(
        self,
        frame: Frame,
        options: ScoringOptions | None = None,
    ) -> list[FrameSuggestion]:
        if self.project is None:
            return []
        options = options or ScoringOptions()

        photo_ids = self.project.images
        self.analyze_library(photo_ids, detect_faces=options.target_faces)

        metadata = self.source.get_metadata(photo_ids)
        analyses = self.cache.get_many(photo_ids)
        return rank_photos_for_frame(
            frame,
            photo_ids,
            metadata,
            analyses,
            options,
            limit=self.settings.suggestion_limit,
        )

    def generate_gallery_solutions(
        self,
        count: int | None = None,
        options: ScoringOptions | None = None,
    ) -> list[OptimizationSolution]:
        if self.project is None:
            return []
        options = options or ScoringOptions()

        photo_ids = self.project.images
        self.analyze_library(photo_ids, detect_faces=options.target_faces)

        metadata = self.source.get_metadata(photo_ids)
        analyses = self.cache.get_many(photo_ids)
        return generate_solutions(
            self.project,
            metadata,
            analyses,
            count=self.settings.solution_count if count is None else count,
            options=options,
            rng=self.rng,
            pool_size=self.settings.candidate_pool_size,
        )

    def cancel(self) -> int:
        """Forget everything in flight; late completions from earlier batches are dropped."""
        generation = self.tracker.next_generation()
        logger.info("Analysis cancelled, generation={generation}", generation=generation)
        return generation

    def wait_idle(self, timeout: float | None = None) -> bool:
        return self._worker.wait_idle(timeout)

    def close(self) -> None:
        self._worker.terminate()
