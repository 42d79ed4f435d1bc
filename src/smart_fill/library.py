from __future__ import annotations

from pathlib import Path
import tomllib
from typing import Iterable, Protocol

from loguru import logger

from smart_fill.models import Frame, ImageMetadata, Project
from smart_fill.utils.hashing import photo_id_for
from smart_fill.utils.image import SUPPORTED_EXTENSIONS, read_size


class ImageSource(Protocol):
    def get_metadata(self, photo_ids: Iterable[str]) -> dict[str, ImageMetadata]: ...

    def get_image(self, photo_id: str, quality: str = "preview") -> bytes | None: ...


def _iter_files(paths: Iterable[Path]) -> Iterable[Path]:
    for path in paths:
        if path.is_dir():
            for child in sorted(path.rglob("*")):
                if child.is_file() and child.suffix.lower().lstrip(".") in SUPPORTED_EXTENSIONS:
                    yield child
        elif path.is_file():
            yield path


class FileImageSource:
    """Photos on the local disk, identified by a hash of their content."""

    def __init__(self, paths: Iterable[Path]) -> None:
        self._paths: dict[str, Path] = {}
        self._metadata: dict[str, ImageMetadata] = {}
        for path in _iter_files(paths):
            size = read_size(path)
            if size is None:
                continue
            photo_id = photo_id_for(path)
            if photo_id in self._paths:
                logger.debug("Skipping duplicate photo {path}", path=path)
                continue
            self._paths[photo_id] = path
            self._metadata[photo_id] = ImageMetadata.from_size(size[0], size[1], name=path.name)

    @property
    def photo_ids(self) -> list[str]:
        return list(self._paths)

    def path_for(self, photo_id: str) -> Path | None:
        return self._paths.get(photo_id)

    def get_metadata(self, photo_ids: Iterable[str]) -> dict[str, ImageMetadata]:
        return {pid: self._metadata[pid] for pid in photo_ids if pid in self._metadata}

    def get_image(self, photo_id: str, quality: str = "preview") -> bytes | None:
        # Local files are served at full quality for every tier.
        path = self._paths.get(photo_id)
        if path is None:
            return None
        try:
            return path.read_bytes()
        except OSError as exc:
            logger.warning("Failed to read photo {path}: {error}", path=path, error=str(exc))
            return None


def load_project(path: Path, photo_ids: Iterable[str]) -> Project:
    with path.open("rb") as handle:
        data = tomllib.load(handle)

    section = data.get("project", {})
    frames = [Frame.model_validate(frame) for frame in data.get("frames", [])]
    return Project(
        id=str(section.get("id", path.stem)),
        name=section.get("name", path.stem),
        frames=frames,
        images=list(photo_ids),
    )
