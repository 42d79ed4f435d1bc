from __future__ import annotations

import json
from pathlib import Path
import time
from typing import Optional

from loguru import logger
from tqdm import tqdm
import typer

from smart_fill.cache import build_cache
from smart_fill.config import Settings, ensure_dirs, load_settings
from smart_fill.coordinator import SmartFillCoordinator
from smart_fill.faces import CascadeFaceModel
from smart_fill.library import FileImageSource, load_project
from smart_fill.models import ScoringOptions
from smart_fill.utils.logging import configure_logging

app = typer.Typer(help="On-device photo to frame matching for gallery walls")


def _init(config_path: Optional[str], photos: list[Path]) -> tuple[SmartFillCoordinator, FileImageSource, Settings]:
    loaded = load_settings(config_path)
    settings = loaded.settings
    ensure_dirs(settings)
    configure_logging(settings.log_dir, settings.log_level)
    source = FileImageSource(photos)
    coordinator = SmartFillCoordinator(
        source,
        build_cache(settings),
        face_model=CascadeFaceModel.from_settings(settings),
        settings=settings,
    )
    return coordinator, source, settings


def _options(faces: bool, bw: bool, vibrant: bool) -> ScoringOptions:
    if bw and vibrant:
        raise typer.BadParameter("--bw and --vibrant cannot be combined")
    return ScoringOptions(target_faces=faces, prefer_black_and_white=bw, prefer_vibrant=vibrant)


def _wait_with_progress(coordinator: SmartFillCoordinator, total: int) -> None:
    with tqdm(total=total, desc="Analyzing") as bar:
        while not coordinator.wait_idle(timeout=0.2):
            bar.n = total - coordinator.pending_count
            bar.refresh()
        bar.n = total
        bar.refresh()


@app.command()
def analyze(
    photos: list[Path] = typer.Option(..., "--photos", help="Photo files or folders"),
    faces: bool = typer.Option(False, "--faces", help="Also detect faces"),
    config: Optional[str] = typer.Option(None, "--config"),
) -> None:
    coordinator, source, _settings = _init(config, photos)
    with coordinator:
        started = time.monotonic()
        dispatched = coordinator.analyze_library(source.photo_ids, detect_faces=faces)
        if dispatched:
            _wait_with_progress(coordinator, dispatched)
        ready = coordinator.check_analysis_status(source.photo_ids, detect_faces=faces)
    logger.info(
        "Analysis complete: photos={photos}, dispatched={dispatched}, ready={ready}, seconds={seconds:.1f}",
        photos=len(source.photo_ids),
        dispatched=dispatched,
        ready=ready,
        seconds=time.monotonic() - started,
    )


@app.command()
def status(
    photos: list[Path] = typer.Option(..., "--photos", help="Photo files or folders"),
    faces: bool = typer.Option(False, "--faces"),
    config: Optional[str] = typer.Option(None, "--config"),
) -> None:
    coordinator, source, _settings = _init(config, photos)
    with coordinator:
        ready = coordinator.check_analysis_status(source.photo_ids, detect_faces=faces)
    typer.echo("analyzed" if ready else "needs analysis")
    if not ready:
        raise typer.Exit(code=1)


@app.command()
def suggest(
    project: Path = typer.Option(..., "--project", exists=True, help="Project TOML file"),
    photos: list[Path] = typer.Option(..., "--photos", help="Photo files or folders"),
    frame_id: str = typer.Option(..., "--frame", help="Frame id to rank photos for"),
    faces: bool = typer.Option(False, "--faces"),
    bw: bool = typer.Option(False, "--bw", help="Prefer black and white photos"),
    vibrant: bool = typer.Option(False, "--vibrant", help="Prefer vibrant photos"),
    config: Optional[str] = typer.Option(None, "--config"),
) -> None:
    options = _options(faces, bw, vibrant)
    coordinator, source, _settings = _init(config, photos)
    coordinator.project = load_project(project, source.photo_ids)
    frame = next((f for f in coordinator.project.frames if f.id == frame_id), None)
    if frame is None:
        raise typer.BadParameter(f"Unknown frame: {frame_id}", param_hint="--frame")

    with coordinator:
        suggestions = coordinator.get_suggestions_for_frame(frame, options)
        coordinator.wait_idle()

    if not suggestions:
        typer.echo("No analyzed photos yet. Run `smart-fill analyze` first.")
        return
    for rank, suggestion in enumerate(suggestions, start=1):
        score = suggestion.match_score
        path = source.path_for(suggestion.photo_id)
        warnings = f" [{', '.join(score.warnings)}]" if score.warnings else ""
        typer.echo(f"{rank:2d}. {score.total_score:3d}  {path}{warnings}")


@app.command()
def fill(
    project: Path = typer.Option(..., "--project", exists=True, help="Project TOML file"),
    photos: list[Path] = typer.Option(..., "--photos", help="Photo files or folders"),
    count: Optional[int] = typer.Option(None, "--count", min=1),
    faces: bool = typer.Option(False, "--faces"),
    bw: bool = typer.Option(False, "--bw"),
    vibrant: bool = typer.Option(False, "--vibrant"),
    output: Optional[Path] = typer.Option(None, "--output", help="Write solutions as JSON"),
    config: Optional[str] = typer.Option(None, "--config"),
) -> None:
    options = _options(faces, bw, vibrant)
    coordinator, source, _settings = _init(config, photos)
    coordinator.project = load_project(project, source.photo_ids)

    with coordinator:
        solutions = coordinator.generate_gallery_solutions(count, options)
        coordinator.wait_idle()

    if not solutions:
        typer.echo("No solution: no analyzed photo fits any unlocked frame.")
        raise typer.Exit(code=1)

    for solution in solutions:
        typer.echo(f"{solution.id}  score={solution.total_score}  frames={len(solution.assignments)}")
        for frame_id, photo_id in solution.assignments.items():
            typer.echo(f"    {frame_id} <- {source.path_for(photo_id)}")

    if output:
        payload = [
            {
                "id": solution.id,
                "total_score": solution.total_score,
                "assignments": {
                    frame_id: str(source.path_for(photo_id)) for frame_id, photo_id in solution.assignments.items()
                },
            }
            for solution in solutions
        ]
        output.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        logger.info("Solutions written to {path}", path=output)
