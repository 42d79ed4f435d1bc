from __future__ import annotations

from functools import lru_cache
from pathlib import Path
import threading
from typing import Protocol

import cv2
from loguru import logger
import numpy as np

from smart_fill.config import Settings
from smart_fill.errors import ModelLoadError
from smart_fill.models import FaceBox, FaceDetection


class ModelHandle(Protocol):
    def ready(self) -> bool: ...

    def detect(self, pixels: np.ndarray) -> FaceDetection: ...


class CascadeFaceModel:
    """On-device frontal face detector backed by an OpenCV Haar cascade.

    The classifier is loaded on the first ``detect`` call and reused after
    that. If loading fails the handle stays degraded: every later detection
    reports no faces and loading is not attempted again.
    """

    def __init__(
        self,
        cascade_path: str,
        scale_factor: float = 1.1,
        min_neighbors: int = 5,
        min_size: int = 20,
    ) -> None:
        self.cascade_path = cascade_path
        self.scale_factor = scale_factor
        self.min_neighbors = min_neighbors
        self.min_size = min_size
        self._classifier: cv2.CascadeClassifier | None = None
        self._failed = False
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: Settings) -> "CascadeFaceModel":
        return cls(
            cascade_path=settings.face_cascade_path,
            scale_factor=settings.face_scale_factor,
            min_neighbors=settings.face_min_neighbors,
            min_size=settings.face_min_size,
        )

    def ready(self) -> bool:
        return self._classifier is not None

    def _load(self) -> cv2.CascadeClassifier:
        if not Path(self.cascade_path).exists():
            raise ModelLoadError(f"Cascade file not found: {self.cascade_path}")
        classifier = cv2.CascadeClassifier(self.cascade_path)
        if classifier.empty():
            raise ModelLoadError(f"Cascade could not be loaded from {self.cascade_path}")
        return classifier

    def _ensure_loaded(self) -> cv2.CascadeClassifier | None:
        with self._lock:
            if self._classifier is None and not self._failed:
                try:
                    self._classifier = self._load()
                    logger.info("Face detection model loaded from {path}", path=self.cascade_path)
                except (ModelLoadError, cv2.error) as exc:
                    self._failed = True
                    logger.error("Failed to load face detection model: {error}", error=str(exc))
            return self._classifier

    def detect(self, pixels: np.ndarray) -> FaceDetection:
        classifier = self._ensure_loaded()
        if classifier is None:
            return FaceDetection.none()

        try:
            gray = cv2.cvtColor(pixels, cv2.COLOR_RGB2GRAY)
            found = classifier.detectMultiScale(
                gray,
                scaleFactor=self.scale_factor,
                minNeighbors=self.min_neighbors,
                minSize=(self.min_size, self.min_size),
            )
        except cv2.error as exc:
            logger.warning("Face detection error: {error}", error=str(exc))
            return FaceDetection.none()

        boxes = [
            FaceBox(x=float(x), y=float(y), width=float(w), height=float(h))
            for (x, y, w, h) in found
        ]
        return FaceDetection.from_boxes(boxes)


@lru_cache(maxsize=1)
def default_face_model() -> CascadeFaceModel:
    """Process-wide detector shared by coordinators that are not given one."""
    return CascadeFaceModel.from_settings(Settings())
