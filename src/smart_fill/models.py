from __future__ import annotations

from typing import Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

# Bump when the derivation of any analysis field changes; cached records
# carrying another version are re-analyzed.
ANALYSIS_VERSION = 1

Harmony = Literal["vibrant", "muted", "warm", "cool", "neutral"]
Orientation = Literal["landscape", "portrait", "square"]


class ImageMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    width: int
    height: int
    aspect_ratio: float
    name: Optional[str] = None

    @classmethod
    def from_size(cls, width: int, height: int, name: str | None = None) -> "ImageMetadata":
        ratio = width / height if height else 0.0
        return cls(width=width, height=height, aspect_ratio=ratio, name=name)


class ColorProfile(BaseModel):
    dominant_colors: list[str] = Field(default_factory=list, max_length=5)
    saturation: float = Field(ge=0, le=100)
    brightness: float = Field(ge=0, le=100)
    is_greyscale: bool
    harmony: Harmony


class CompositionProfile(BaseModel):
    orientation: Orientation
    edge_complexity: float = Field(ge=0, le=100)


class FaceBox(BaseModel):
    x: float
    y: float
    width: float
    height: float


class FaceDetection(BaseModel):
    has_faces: bool
    face_count: int
    bounding_boxes: list[FaceBox] = Field(default_factory=list)
    is_portrait: bool
    is_group: bool

    @classmethod
    def from_boxes(cls, boxes: list[FaceBox]) -> "FaceDetection":
        count = len(boxes)
        return cls(
            has_faces=count > 0,
            face_count=count,
            bounding_boxes=list(boxes),
            is_portrait=count == 1,
            is_group=count > 2,
        )

    @classmethod
    def none(cls) -> "FaceDetection":
        return cls.from_boxes([])


class PhotoAnalysis(BaseModel):
    id: str
    timestamp: int
    version: int = ANALYSIS_VERSION
    color_profile: ColorProfile
    composition_profile: CompositionProfile
    face_detection: Optional[FaceDetection] = None


class ScoreBreakdown(BaseModel):
    aspect_ratio: int = Field(default=0, ge=0, le=25)
    resolution: int = Field(default=0, ge=0, le=25)
    composition: int = Field(default=0, ge=0, le=20)
    color_harmony: int = Field(default=0, ge=0, le=15)
    face_handling: int = Field(default=0, ge=0, le=15)

    def total(self) -> int:
        return (
            self.aspect_ratio
            + self.resolution
            + self.composition
            + self.color_harmony
            + self.face_handling
        )


class MatchScore(BaseModel):
    photo_id: str
    frame_id: str
    total_score: int = Field(ge=0, le=100)
    breakdown: ScoreBreakdown
    warnings: list[str] = Field(default_factory=list)


class ScoringOptions(BaseModel):
    target_faces: bool = False
    prefer_black_and_white: bool = False
    prefer_vibrant: bool = False


class Frame(BaseModel):
    id: str
    width: float
    height: float
    label: Optional[str] = None
    locked: bool = False

    @property
    def aspect_ratio(self) -> float:
        return self.width / self.height if self.height else 0.0


class Project(BaseModel):
    id: str
    name: str = "Untitled"
    frames: list[Frame] = Field(default_factory=list)
    images: list[str] = Field(default_factory=list)

    def unlocked_frames(self) -> list[Frame]:
        return [frame for frame in self.frames if not frame.locked]


class FrameSuggestion(BaseModel):
    frame_id: str
    photo_id: str
    match_score: MatchScore
    alternative_photo_ids: list[str] = Field(default_factory=list)


class OptimizationSolution(BaseModel):
    id: str
    assignments: dict[str, str] = Field(default_factory=dict)
    total_score: int = 0
    used_photo_ids: set[str] = Field(default_factory=set)


class AnalyzePayload(BaseModel):
    image_id: str
    image_url: str
    width: int
    height: int
    detect_faces: bool = False


class AnalyzeRequest(BaseModel):
    id: str
    type: Literal["ANALYZE_PHOTO"] = "ANALYZE_PHOTO"
    generation: int = 0
    payload: AnalyzePayload


class AnalysisResponse(BaseModel):
    id: str
    type: Literal["ANALYSIS_COMPLETE", "ERROR"]
    generation: int = 0
    payload: Union[PhotoAnalysis, str]
