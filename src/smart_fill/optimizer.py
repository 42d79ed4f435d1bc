from __future__ import annotations

import random
import time
from typing import Callable, Mapping, Sequence

from loguru import logger

from smart_fill.models import (
    Frame,
    ImageMetadata,
    OptimizationSolution,
    PhotoAnalysis,
    Project,
    ScoringOptions,
)
from smart_fill.scoring import score_photo_for_frame

RandomSource = Callable[[], float]
Candidates = list[tuple[str, int]]


def build_score_matrix(
    frames: Sequence[Frame],
    photo_ids: Sequence[str],
    metadatas: Mapping[str, ImageMetadata],
    analyses: Mapping[str, PhotoAnalysis],
    options: ScoringOptions | None = None,
) -> dict[str, Candidates]:
    matrix: dict[str, Candidates] = {}
    for frame in frames:
        candidates: Candidates = []
        for photo_id in photo_ids:
            metadata = metadatas.get(photo_id)
            analysis = analyses.get(photo_id)
            if metadata is None or analysis is None:
                continue
            score = score_photo_for_frame(photo_id, metadata, analysis, frame, options)
            candidates.append((photo_id, score.total_score))
        candidates.sort(key=lambda pair: pair[1], reverse=True)
        matrix[frame.id] = candidates
    return matrix


def _pick_index(value: float, size: int) -> int:
    return min(int(value * size), size - 1)


def shuffled(frames: Sequence[Frame], rng: RandomSource) -> list[Frame]:
    order = list(frames)
    for i in range(len(order) - 1, 0, -1):
        j = _pick_index(rng(), i + 1)
        order[i], order[j] = order[j], order[i]
    return order


def assign(
    order: Sequence[Frame],
    matrix: Mapping[str, Candidates],
    solution_id: str,
    rng: RandomSource | None = None,
    pool_size: int = 3,
) -> OptimizationSolution:
    """Greedy fill over ``order``. Without ``rng`` the best unused photo is taken."""
    solution = OptimizationSolution(id=solution_id)
    for frame in order:
        available = [pair for pair in matrix.get(frame.id, []) if pair[0] not in solution.used_photo_ids]
        if not available:
            continue

        index = 0
        if rng is not None:
            index = _pick_index(rng(), min(pool_size, len(available)))

        photo_id, score = available[index]
        solution.assignments[frame.id] = photo_id
        solution.used_photo_ids.add(photo_id)
        solution.total_score += score
    return solution


def generate_solutions(
    project: Project,
    metadatas: Mapping[str, ImageMetadata],
    analyses: Mapping[str, PhotoAnalysis],
    count: int = 10,
    options: ScoringOptions | None = None,
    rng: RandomSource | None = None,
    pool_size: int = 3,
) -> list[OptimizationSolution]:
    frames = project.unlocked_frames()
    photo_ids = list(dict.fromkeys(project.images))
    if not frames or not photo_ids:
        return []

    rng = rng or random.random
    matrix = build_score_matrix(frames, photo_ids, metadatas, analyses, options)
    stamp = int(time.time() * 1000)

    solutions: list[OptimizationSolution] = []
    for i in range(count):
        solution_id = f"sol-{stamp}-{i}"
        if i == 0:
            solution = assign(frames, matrix, solution_id)
        else:
            solution = assign(shuffled(frames, rng), matrix, solution_id, rng=rng, pool_size=pool_size)

        if solution.assignments:
            solutions.append(solution)

    logger.debug(
        "Generated {solutions}/{count} solutions over {frames} frames and {photos} photos",
        solutions=len(solutions),
        count=count,
        frames=len(frames),
        photos=len(photo_ids),
    )
    return solutions
