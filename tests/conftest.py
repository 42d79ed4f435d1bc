"""Shared test fixtures."""

from io import BytesIO
import threading

import numpy as np
from PIL import Image
import pytest

from smart_fill.cache import AnalysisCache, MemoryAnalysisStore
from smart_fill.config import Settings
from smart_fill.coordinator import SmartFillCoordinator
from smart_fill.models import (
    ColorProfile,
    CompositionProfile,
    FaceBox,
    FaceDetection,
    Frame,
    ImageMetadata,
    PhotoAnalysis,
    Project,
)


class FakeFaceModel:
    """Face model stand-in that reports a fixed number of faces."""

    def __init__(self, faces: int = 0) -> None:
        self.faces = faces
        self.calls = 0

    def ready(self) -> bool:
        return True

    def detect(self, pixels):
        self.calls += 1
        boxes = [FaceBox(x=10.0 * i, y=10.0, width=20.0, height=20.0) for i in range(self.faces)]
        return FaceDetection.from_boxes(boxes)


class GatedFaceModel(FakeFaceModel):
    """Fake face model that holds the worker inside ``detect`` until released."""

    def __init__(self, faces: int = 0) -> None:
        super().__init__(faces)
        self.gate = threading.Event()

    def release(self) -> None:
        self.gate.set()

    def detect(self, pixels):
        self.gate.wait(10)
        return super().detect(pixels)


class MemoryImageSource:
    """Image source serving encoded bytes kept in memory."""

    def __init__(self) -> None:
        self.images: dict[str, bytes] = {}
        self.metadata: dict[str, ImageMetadata] = {}
        self.reads: list[str] = []

    def add(self, photo_id: str, data: bytes, width: int, height: int) -> None:
        self.images[photo_id] = data
        self.metadata[photo_id] = ImageMetadata.from_size(width, height, name=f"{photo_id}.png")

    def get_metadata(self, photo_ids):
        return {pid: self.metadata[pid] for pid in photo_ids if pid in self.metadata}

    def get_image(self, photo_id, quality="preview"):
        self.reads.append(photo_id)
        return self.images.get(photo_id)


def encode_png(pixels: np.ndarray) -> bytes:
    buffer = BytesIO()
    Image.fromarray(pixels).save(buffer, format="PNG")
    return buffer.getvalue()


def solid_image(color: tuple[int, int, int], width: int = 60, height: int = 40) -> bytes:
    pixels = np.zeros((height, width, 3), dtype=np.uint8)
    pixels[:, :] = color
    return encode_png(pixels)


def make_metadata(width: int = 1200, height: int = 1800, name: str | None = None) -> ImageMetadata:
    return ImageMetadata.from_size(width, height, name=name)


def make_analysis(
    photo_id: str,
    saturation: float = 50.0,
    brightness: float = 60.0,
    greyscale: bool | None = None,
    faces: int | None = None,
    edge_complexity: float = 20.0,
) -> PhotoAnalysis:
    is_greyscale = saturation < 10 if greyscale is None else greyscale
    face_detection = None
    if faces is not None:
        face_detection = FaceDetection.from_boxes(
            [FaceBox(x=0.0, y=0.0, width=10.0, height=10.0) for _ in range(faces)]
        )
    return PhotoAnalysis(
        id=photo_id,
        timestamp=1_700_000_000_000,
        color_profile=ColorProfile(
            dominant_colors=["#806040"],
            saturation=saturation,
            brightness=brightness,
            is_greyscale=is_greyscale,
            harmony="neutral",
        ),
        composition_profile=CompositionProfile(orientation="portrait", edge_complexity=edge_complexity),
        face_detection=face_detection,
    )


def make_frame(frame_id: str = "f1", width: float = 4, height: float = 6, locked: bool = False) -> Frame:
    return Frame(id=frame_id, width=width, height=height, locked=locked)


def make_project(frames: list[Frame], images: list[str]) -> Project:
    return Project(id="p1", name="Test Wall", frames=frames, images=images)


@pytest.fixture
def settings() -> Settings:
    return Settings(cache_backend="memory", cache_workers=4)


@pytest.fixture
def cache() -> AnalysisCache:
    return AnalysisCache(MemoryAnalysisStore(), max_workers=4)


@pytest.fixture
def source() -> MemoryImageSource:
    return MemoryImageSource()


@pytest.fixture
def face_model() -> FakeFaceModel:
    return FakeFaceModel(faces=1)


@pytest.fixture
def coordinator(source, cache, face_model, settings):
    coord = SmartFillCoordinator(source, cache, face_model=face_model, settings=settings)
    yield coord
    coord.close()
