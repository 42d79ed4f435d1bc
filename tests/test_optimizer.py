"""Tests for the gallery assignment optimizer."""

import itertools
import random

from conftest import make_analysis, make_frame, make_metadata, make_project

from smart_fill.optimizer import assign, build_score_matrix, generate_solutions, shuffled


def _library(count: int, start: int = 0):
    photo_ids = [f"p{i}" for i in range(start, start + count)]
    metadatas = {pid: make_metadata(1200 + 500 * i, 1800 + 750 * i) for i, pid in enumerate(photo_ids)}
    analyses = {pid: make_analysis(pid) for pid in photo_ids}
    return photo_ids, metadatas, analyses


def _assert_no_duplicates(solution):
    photos = list(solution.assignments.values())
    assert len(photos) == len(set(photos))
    assert set(photos) == solution.used_photo_ids


def test_more_frames_than_photos_leaves_frames_empty():
    frames = [make_frame("f1"), make_frame("f2"), make_frame("f3")]
    photo_ids, metadatas, analyses = _library(2)
    solutions = generate_solutions(make_project(frames, photo_ids), metadatas, analyses, count=1)

    assert len(solutions) == 1
    assert len(solutions[0].assignments) == 2
    assert "f3" not in solutions[0].assignments
    _assert_no_duplicates(solutions[0])


def test_every_solution_uses_all_distinct_photos():
    frames = [make_frame(f"f{i}") for i in range(5)]
    photo_ids, metadatas, analyses = _library(5)
    solutions = generate_solutions(
        make_project(frames, photo_ids), metadatas, analyses, count=5, rng=random.Random(7).random
    )

    assert len(solutions) == 5
    for solution in solutions:
        assert len(solution.assignments) == 5
        assert solution.used_photo_ids == set(photo_ids)
        _assert_no_duplicates(solution)


def test_first_solution_is_reproducible():
    frames = [make_frame("f1", 4, 6), make_frame("f2", 6, 4), make_frame("f3", 8, 10)]
    photo_ids, metadatas, analyses = _library(6)
    project = make_project(frames, photo_ids)

    first = generate_solutions(project, metadatas, analyses, count=3, rng=random.Random(1).random)[0]
    second = generate_solutions(project, metadatas, analyses, count=3, rng=random.Random(99).random)[0]
    assert first.assignments == second.assignments
    assert first.total_score == second.total_score
    assert list(first.assignments) == ["f1", "f2", "f3"]


def test_seeded_random_source_reproduces_all_solutions():
    frames = [make_frame(f"f{i}") for i in range(4)]
    photo_ids, metadatas, analyses = _library(8)
    project = make_project(frames, photo_ids)

    run_a = generate_solutions(project, metadatas, analyses, count=6, rng=random.Random(3).random)
    run_b = generate_solutions(project, metadatas, analyses, count=6, rng=random.Random(3).random)
    assert [s.assignments for s in run_a] == [s.assignments for s in run_b]


def test_locked_frames_are_never_assigned():
    frames = [make_frame("f1"), make_frame("f2", locked=True), make_frame("f3")]
    photo_ids, metadatas, analyses = _library(4)
    solutions = generate_solutions(
        make_project(frames, photo_ids), metadatas, analyses, count=4, rng=random.Random(5).random
    )
    assert solutions
    for solution in solutions:
        assert "f2" not in solution.assignments


def test_empty_inputs_give_no_solutions():
    photo_ids, metadatas, analyses = _library(3)
    assert generate_solutions(make_project([], photo_ids), metadatas, analyses) == []
    assert generate_solutions(make_project([make_frame()], []), metadatas, analyses) == []
    all_locked = make_project([make_frame(locked=True)], photo_ids)
    assert generate_solutions(all_locked, metadatas, analyses) == []


def test_solutions_without_assignments_are_dropped():
    # No analyses means no candidates for any frame.
    photo_ids, metadatas, _ = _library(3)
    project = make_project([make_frame("f1"), make_frame("f2")], photo_ids)
    assert generate_solutions(project, metadatas, {}, count=4) == []


def test_score_matrix_sorted_descending():
    frames = [make_frame("f1", 4, 6), make_frame("f2", 6, 4)]
    photo_ids, metadatas, analyses = _library(5)
    matrix = build_score_matrix(frames, photo_ids, metadatas, analyses)
    for frame in frames:
        scores = [score for _, score in matrix[frame.id]]
        assert len(scores) == 5
        assert scores == sorted(scores, reverse=True)


def test_best_first_beats_any_greedy_order_when_frames_rank_alike():
    # Identical frames rank photos the same way, so taking the best first is optimal.
    frames = [make_frame(f"f{i}") for i in range(3)]
    photo_ids, metadatas, analyses = _library(5)
    matrix = build_score_matrix(frames, photo_ids, metadatas, analyses)

    best = assign(frames, matrix, "best")
    for order in itertools.permutations(frames):
        for seed in range(5):
            other = assign(order, matrix, "other", rng=random.Random(seed).random)
            assert best.total_score >= other.total_score


def test_shuffled_is_a_permutation():
    frames = [make_frame(f"f{i}") for i in range(6)]
    order = shuffled(frames, random.Random(11).random)
    assert sorted(f.id for f in order) == sorted(f.id for f in frames)


def test_random_picks_stay_within_top_pool():
    frames = [make_frame("f1")]
    photo_ids, metadatas, analyses = _library(6)
    matrix = build_score_matrix(frames, photo_ids, metadatas, analyses)
    top_three = {pid for pid, _ in matrix["f1"][:3]}

    for seed in range(20):
        solution = assign(frames, matrix, "s", rng=random.Random(seed).random, pool_size=3)
        assert solution.assignments["f1"] in top_three


def test_random_source_returning_near_one_stays_in_range():
    frames = [make_frame(f"f{i}") for i in range(3)]
    photo_ids, metadatas, analyses = _library(3)
    solutions = generate_solutions(
        make_project(frames, photo_ids), metadatas, analyses, count=3, rng=lambda: 0.999999
    )
    assert len(solutions) == 3
    for solution in solutions:
        _assert_no_duplicates(solution)
