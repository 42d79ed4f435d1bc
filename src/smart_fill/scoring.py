from __future__ import annotations

from typing import Iterable, Mapping

from smart_fill.models import (
    Frame,
    FrameSuggestion,
    ImageMetadata,
    MatchScore,
    PhotoAnalysis,
    ScoreBreakdown,
    ScoringOptions,
)

ALTERNATIVES_PER_SUGGESTION = 3
BUSY_EDGE_THRESHOLD = 60


def _ratio_difference(frame_ratio: float, photo_ratio: float) -> float | None:
    if frame_ratio <= 0 or photo_ratio <= 0:
        return None
    return abs(frame_ratio - photo_ratio)


def _aspect_ratio_points(frame_ratio: float, photo_ratio: float) -> int:
    diff = _ratio_difference(frame_ratio, photo_ratio)
    if diff is None:
        return 0
    if diff < 0.05:
        return 25
    if diff < 0.15:
        return 20
    if diff < 0.3:
        return 15
    if diff < 0.5:
        return 5
    return 0


def _megapixels(metadata: ImageMetadata) -> float:
    return max(metadata.width, 0) * max(metadata.height, 0) / 1_000_000


def _resolution_points(megapixels: float) -> int:
    if megapixels > 12:
        return 25
    if megapixels > 8:
        return 20
    if megapixels > 4:
        return 15
    if megapixels > 2:
        return 5
    return 0


def _is_landscape(ratio: float) -> bool:
    return ratio >= 1


def _composition_points(frame_ratio: float, photo_ratio: float) -> int:
    if _is_landscape(frame_ratio) == _is_landscape(photo_ratio):
        return 20
    if abs(frame_ratio - 1) < 0.1:
        return 15
    return 5


def _color_points(analysis: PhotoAnalysis, options: ScoringOptions) -> int:
    profile = analysis.color_profile
    if profile is None:
        return 0

    if options.prefer_black_and_white:
        if profile.is_greyscale:
            return 15
        if profile.saturation < 20:
            return 5
        return 0

    if options.prefer_vibrant:
        if not profile.is_greyscale and profile.saturation > 40:
            return 15
        if not profile.is_greyscale and profile.saturation > 20:
            return 5
        return 0

    points = 0
    if not profile.is_greyscale:
        points += 10
    if profile.brightness > 20:
        points += 5
    return points


def _face_points(analysis: PhotoAnalysis, frame_ratio: float, options: ScoringOptions) -> int:
    if not options.target_faces:
        # Neutral so photos are not penalized when faces are not requested.
        return 5

    faces = analysis.face_detection
    if faces is None or not faces.has_faces:
        return 0

    points = 10
    if not _is_landscape(frame_ratio) and faces.is_portrait:
        points += 5
    elif _is_landscape(frame_ratio) and faces.is_group:
        points += 5
    return points


def score_photo_for_frame(
    photo_id: str,
    metadata: ImageMetadata,
    analysis: PhotoAnalysis,
    frame: Frame,
    options: ScoringOptions | None = None,
) -> MatchScore:
    """Score one photo against one frame. Pure: equal inputs always give equal scores."""
    options = options or ScoringOptions()
    frame_ratio = frame.aspect_ratio
    photo_ratio = metadata.aspect_ratio
    megapixels = _megapixels(metadata)

    breakdown = ScoreBreakdown(
        aspect_ratio=_aspect_ratio_points(frame_ratio, photo_ratio),
        resolution=_resolution_points(megapixels),
        composition=_composition_points(frame_ratio, photo_ratio),
        color_harmony=_color_points(analysis, options),
        face_handling=_face_points(analysis, frame_ratio, options),
    )

    warnings: list[str] = []
    if megapixels <= 2:
        warnings.append("low resolution")
    if breakdown.aspect_ratio == 0:
        warnings.append("aspect ratio mismatch")
    composition = analysis.composition_profile
    if (
        composition is not None
        and composition.edge_complexity > BUSY_EDGE_THRESHOLD
        and breakdown.aspect_ratio < 25
    ):
        warnings.append("busy edges")
    if options.target_faces and analysis.face_detection is None:
        warnings.append("faces not analyzed")

    return MatchScore(
        photo_id=photo_id,
        frame_id=frame.id,
        total_score=max(0, min(100, breakdown.total())),
        breakdown=breakdown,
        warnings=warnings,
    )


def rank_photos_for_frame(
    frame: Frame,
    photo_ids: Iterable[str],
    metadatas: Mapping[str, ImageMetadata],
    analyses: Mapping[str, PhotoAnalysis],
    options: ScoringOptions | None = None,
    limit: int = 10,
) -> list[FrameSuggestion]:
    scores: list[MatchScore] = []
    for photo_id in dict.fromkeys(photo_ids):
        metadata = metadatas.get(photo_id)
        analysis = analyses.get(photo_id)
        if metadata is None or analysis is None:
            continue
        scores.append(score_photo_for_frame(photo_id, metadata, analysis, frame, options))

    scores.sort(key=lambda score: score.total_score, reverse=True)
    ranked_ids = [score.photo_id for score in scores]

    return [
        FrameSuggestion(
            frame_id=frame.id,
            photo_id=score.photo_id,
            match_score=score,
            alternative_photo_ids=ranked_ids[rank + 1 : rank + 1 + ALTERNATIVES_PER_SUGGESTION],
        )
        for rank, score in enumerate(scores[:limit])
    ]
