from __future__ import annotations

from pathlib import Path
import time
from urllib.parse import unquote, urlparse

from loguru import logger
import numpy as np

from smart_fill.config import Settings
from smart_fill.errors import ImageDecodeError
from smart_fill.faces import ModelHandle
from smart_fill.models import (
    AnalysisResponse,
    AnalyzeRequest,
    ColorProfile,
    CompositionProfile,
    FaceDetection,
    PhotoAnalysis,
)
from smart_fill.utils.blobs import BLOB_SCHEME, fetch_object_url, revoke_object_url
from smart_fill.utils.image import decode_rgba, downscale

COLOR_STEP = 32
ALPHA_CUTOFF = 128


def _harmony(saturation: float, brightness: float) -> str:
    if saturation > 60:
        return "vibrant"
    if saturation < 20:
        return "muted"
    if brightness > 70:
        return "warm"
    if brightness < 30:
        return "cool"
    return "neutral"


def _to_hex(key: int) -> str:
    return f"#{key:06x}"


def dominant_colors(rgba: np.ndarray, max_colors: int = 5, stride: int = 10) -> list[str]:
    pixels = rgba.reshape(-1, 4)[::stride]
    pixels = pixels[pixels[:, 3] > ALPHA_CUTOFF]
    if len(pixels) == 0:
        return []

    binned = (pixels[:, :3].astype(np.int64) // COLOR_STEP) * COLOR_STEP
    keys = (binned[:, 0] << 16) | (binned[:, 1] << 8) | binned[:, 2]
    unique, first_seen, counts = np.unique(keys, return_index=True, return_counts=True)
    # Most frequent first; ties keep the order the colors were first seen in.
    order = np.lexsort((first_seen, -counts))
    return [_to_hex(int(unique[i])) for i in order[:max_colors]]


def analyze_colors(rgba: np.ndarray, max_colors: int = 5, stride: int = 10) -> ColorProfile:
    rgb = rgba.reshape(-1, 4)[::stride, :3].astype(np.float64)
    high = rgb.max(axis=1)
    low = rgb.min(axis=1)
    sat = np.divide(high - low, high, out=np.zeros_like(high), where=high > 0)
    val = high / 255.0

    avg_sat = float(sat.mean() * 100) if len(sat) else 0.0
    avg_bri = float(val.mean() * 100) if len(val) else 0.0

    return ColorProfile(
        dominant_colors=dominant_colors(rgba, max_colors=max_colors, stride=stride),
        saturation=avg_sat,
        brightness=avg_bri,
        is_greyscale=avg_sat < 10,
        harmony=_harmony(avg_sat, avg_bri),
    )


def edge_complexity(rgba: np.ndarray, depth: int = 10) -> float:
    """Brightness standard deviation inside a ``depth`` pixel border band, capped at 100."""
    h, w = rgba.shape[:2]
    if h == 0 or w == 0 or depth <= 0:
        return 0.0

    mask = np.zeros((h, w), dtype=bool)
    mask[:depth, :] = True
    mask[max(h - depth, 0):, :] = True
    mask[:, :depth] = True
    mask[:, max(w - depth, 0):] = True

    brightness = rgba[..., :3].astype(np.float64).mean(axis=2)[mask]
    if brightness.size == 0:
        return 0.0
    return float(min(100.0, brightness.std()))


def orientation_for(width: int, height: int) -> str:
    if width > height:
        return "landscape"
    if width < height:
        return "portrait"
    return "square"


def create_composition_profile(
    width: int,
    height: int,
    rgba: np.ndarray | None = None,
    edge_depth: int = 10,
) -> CompositionProfile:
    return CompositionProfile(
        orientation=orientation_for(width, height),
        edge_complexity=edge_complexity(rgba, edge_depth) if rgba is not None else 50.0,
    )


def read_image_url(image_url: str) -> bytes:
    """Return the bytes behind an object URL, ``file://`` URL or plain path.

    Object URLs are revoked as soon as they have been read.
    """
    if image_url.startswith(BLOB_SCHEME):
        try:
            return fetch_object_url(image_url)
        finally:
            revoke_object_url(image_url)
    if image_url.startswith("file://"):
        return Path(unquote(urlparse(image_url).path)).read_bytes()
    return Path(image_url).read_bytes()


def analyze_photo(
    image_id: str,
    image_url: str,
    width: int,
    height: int,
    detect_faces: bool = False,
    *,
    face_model: ModelHandle | None = None,
    analysis_size: int = 300,
    edge_depth: int = 10,
    pixel_stride: int = 10,
    max_colors: int = 5,
) -> PhotoAnalysis:
    try:
        data = read_image_url(image_url)
    except (KeyError, OSError) as exc:
        raise ImageDecodeError(image_id, str(exc)) from exc

    try:
        pixels = decode_rgba(data)
    except OSError as exc:
        raise ImageDecodeError(image_id, str(exc)) from exc
    del data

    small = downscale(pixels, analysis_size)
    del pixels

    color_profile = analyze_colors(small, max_colors=max_colors, stride=pixel_stride)
    composition_profile = create_composition_profile(width, height, small, edge_depth)

    face_detection: FaceDetection | None = None
    if detect_faces:
        if face_model is None:
            face_detection = FaceDetection.none()
        else:
            face_detection = face_model.detect(np.ascontiguousarray(small[..., :3]))

    return PhotoAnalysis(
        id=image_id,
        timestamp=int(time.time() * 1000),
        color_profile=color_profile,
        composition_profile=composition_profile,
        face_detection=face_detection,
    )


def handle_message(
    request: AnalyzeRequest,
    face_model: ModelHandle | None,
    settings: Settings,
) -> AnalysisResponse:
    payload = request.payload
    try:
        analysis = analyze_photo(
            payload.image_id,
            payload.image_url,
            payload.width,
            payload.height,
            payload.detect_faces,
            face_model=face_model,
            analysis_size=settings.analysis_size,
            edge_depth=settings.edge_depth,
            pixel_stride=settings.pixel_stride,
            max_colors=settings.max_dominant_colors,
        )
    except Exception as exc:  # noqa: BLE001
        logger.warning(
            "Analysis failed for {image_id}: {error}",
            image_id=payload.image_id,
            error=str(exc),
        )
        return AnalysisResponse(
            id=request.id,
            type="ERROR",
            generation=request.generation,
            payload=str(exc),
        )

    return AnalysisResponse(
        id=request.id,
        type="ANALYSIS_COMPLETE",
        generation=request.generation,
        payload=analysis,
    )
