from __future__ import annotations

import threading
from pathlib import Path

import pytest

from hull_ladder.collaborator import CollaboratorCancelled, EncodeError, ScoreError
from hull_ladder.hull import PointStatus
from hull_ladder.ladder import Resolution, ResolutionLadder
from hull_ladder.resolver import RatePointResolver, ResolveCancelled, ResolveError

P1080 = Resolution(1080, 1920)
P720 = Resolution(720, 1280)
P360 = Resolution(360, 640)


def _resolver(collaborator, ladder: ResolutionLadder, work_dir: Path, keep_temp: bool = False) -> RatePointResolver:
    return RatePointResolver(collaborator, ladder, work_dir=work_dir, keep_temp=keep_temp)


def test_keeps_candidate_when_it_scores_strictly_higher(
    tmp_path: Path, source_file: Path, stub_collaborator, four_rung_ladder: ResolutionLadder
) -> None:
    collaborator = stub_collaborator(lambda resolution, rate: float(resolution.height) / 20)
    resolver = _resolver(collaborator, four_rung_ladder, tmp_path / "work")

    point = resolver.resolve(source_file, P1080, 3000, P1080)

    assert point.resolution == P1080
    assert point.rate_kbps == 3000
    assert point.quality_score == pytest.approx(54.0)
    assert point.status is PointStatus.SCORED
    assert sorted(collaborator.encodes) == [(720, 3000), (1080, 3000)]


def test_descends_when_next_rung_scores_higher(
    tmp_path: Path, source_file: Path, stub_collaborator, four_rung_ladder: ResolutionLadder
) -> None:
    collaborator = stub_collaborator(lambda resolution, rate: 90.0 if resolution.height == 720 else 80.0)
    resolver = _resolver(collaborator, four_rung_ladder, tmp_path / "work")

    point = resolver.resolve(source_file, P1080, 1500, P1080)

    assert point.resolution == P720
    assert point.quality_score == 90.0


def test_equal_scores_pick_the_lower_resolution(
    tmp_path: Path, source_file: Path, stub_collaborator, four_rung_ladder: ResolutionLadder
) -> None:
    collaborator = stub_collaborator(lambda resolution, rate: 87.5)
    resolver = _resolver(collaborator, four_rung_ladder, tmp_path / "work")

    for _ in range(5):
        point = resolver.resolve(source_file, P1080, 2000, P1080)
        assert point.resolution == P720
        assert point.quality_score == 87.5


def test_ladder_floor_is_accepted_without_encoding(
    tmp_path: Path, source_file: Path, stub_collaborator, four_rung_ladder: ResolutionLadder
) -> None:
    collaborator = stub_collaborator(lambda resolution, rate: 50.0)
    resolver = _resolver(collaborator, four_rung_ladder, tmp_path / "work")

    point = resolver.resolve(source_file, P1080, 500, P360)

    assert point.resolution == P360
    assert point.quality_score is None
    assert point.status is PointStatus.LADDER_FLOOR
    assert collaborator.encodes == []


def test_encode_failure_fails_the_rate_point_and_cleans_up(
    tmp_path: Path, source_file: Path, stub_collaborator, four_rung_ladder: ResolutionLadder
) -> None:
    work_dir = tmp_path / "work"
    collaborator = stub_collaborator(
        lambda resolution, rate: 80.0,
        fail_encode=lambda resolution, rate: resolution.height == 720,
    )
    resolver = _resolver(collaborator, four_rung_ladder, work_dir)

    with pytest.raises(ResolveError) as excinfo:
        resolver.resolve(source_file, P1080, 2500, P1080)

    assert excinfo.value.rate_kbps == 2500
    assert isinstance(excinfo.value.__cause__, EncodeError)
    assert collaborator.scored == []
    assert list(work_dir.iterdir()) == []


def test_score_failure_fails_the_rate_point(
    tmp_path: Path, source_file: Path, stub_collaborator, four_rung_ladder: ResolutionLadder
) -> None:
    work_dir = tmp_path / "work"
    collaborator = stub_collaborator(
        lambda resolution, rate: 80.0,
        fail_score=lambda resolution, rate: resolution.height == 1080,
    )
    resolver = _resolver(collaborator, four_rung_ladder, work_dir)

    with pytest.raises(ResolveError) as excinfo:
        resolver.resolve(source_file, P1080, 2500, P1080)

    assert isinstance(excinfo.value.__cause__, ScoreError)
    assert list(work_dir.iterdir()) == []


@pytest.mark.parametrize("bad_score", [-1.0, 100.5, float("nan"), float("inf")])
def test_invalid_scores_fail_the_rate_point(
    tmp_path: Path, source_file: Path, stub_collaborator, four_rung_ladder: ResolutionLadder, bad_score: float
) -> None:
    collaborator = stub_collaborator(
        lambda resolution, rate: bad_score if resolution.height == 720 else 80.0
    )
    resolver = _resolver(collaborator, four_rung_ladder, tmp_path / "work")

    with pytest.raises(ResolveError) as excinfo:
        resolver.resolve(source_file, P1080, 2500, P1080)

    assert isinstance(excinfo.value.__cause__, ScoreError)


def test_scratch_files_are_removed_after_success(
    tmp_path: Path, source_file: Path, stub_collaborator, four_rung_ladder: ResolutionLadder
) -> None:
    work_dir = tmp_path / "work"
    collaborator = stub_collaborator(lambda resolution, rate: 80.0)
    resolver = _resolver(collaborator, four_rung_ladder, work_dir)

    resolver.resolve(source_file, P1080, 2500, P1080)

    assert len(collaborator.artifacts) == 2
    assert not any(path.exists() for path in collaborator.artifacts)
    assert list(work_dir.iterdir()) == []


def test_keep_temp_leaves_scratch_files(
    tmp_path: Path, source_file: Path, stub_collaborator, four_rung_ladder: ResolutionLadder
) -> None:
    collaborator = stub_collaborator(lambda resolution, rate: 80.0)
    resolver = _resolver(collaborator, four_rung_ladder, tmp_path / "work", keep_temp=True)

    resolver.resolve(source_file, P1080, 2500, P1080)

    assert all(path.exists() for path in collaborator.artifacts)
    assert {path.name for path in collaborator.artifacts} == {"1080p_2500k.mp4", "720p_2500k.mp4"}


def test_concurrent_calls_use_separate_scratch_directories(
    tmp_path: Path, source_file: Path, stub_collaborator, four_rung_ladder: ResolutionLadder
) -> None:
    collaborator = stub_collaborator(lambda resolution, rate: 80.0)
    resolver = _resolver(collaborator, four_rung_ladder, tmp_path / "work", keep_temp=True)

    resolver.resolve(source_file, P1080, 2500, P1080)
    resolver.resolve(source_file, P1080, 2500, P1080)

    assert len({path.parent for path in collaborator.artifacts}) == 2


def test_both_encodes_run_concurrently(
    tmp_path: Path, source_file: Path, four_rung_ladder: ResolutionLadder, stub_collaborator
) -> None:
    barrier = threading.Barrier(2, timeout=5)
    collaborator = stub_collaborator(lambda resolution, rate: 80.0)
    plain_encode = collaborator.encode

    def _encode_at_barrier(*args, **kwargs):
        # Deadlocks (and times out) unless the two encodes overlap.
        barrier.wait()
        return plain_encode(*args, **kwargs)

    collaborator.encode = _encode_at_barrier
    resolver = _resolver(collaborator, four_rung_ladder, tmp_path / "work")

    point = resolver.resolve(source_file, P1080, 2500, P1080)

    assert point.resolution == P720


def test_cancel_event_set_before_resolve(
    tmp_path: Path, source_file: Path, stub_collaborator, four_rung_ladder: ResolutionLadder
) -> None:
    collaborator = stub_collaborator(lambda resolution, rate: 80.0)
    resolver = _resolver(collaborator, four_rung_ladder, tmp_path / "work")
    cancel_event = threading.Event()
    cancel_event.set()

    with pytest.raises(ResolveCancelled):
        resolver.resolve(source_file, P1080, 2500, P1080, cancel_event=cancel_event)
    assert collaborator.encodes == []


def test_cancellation_inside_collaborator_cleans_up(
    tmp_path: Path, source_file: Path, stub_collaborator, four_rung_ladder: ResolutionLadder
) -> None:
    work_dir = tmp_path / "work"
    collaborator = stub_collaborator(lambda resolution, rate: 80.0)
    cancel_event = threading.Event()

    def _score_then_cancel(*args, **kwargs):
        cancel_event.set()
        raise CollaboratorCancelled("killed")

    collaborator.score = _score_then_cancel
    resolver = _resolver(collaborator, four_rung_ladder, work_dir)

    with pytest.raises(ResolveCancelled):
        resolver.resolve(source_file, P1080, 2500, P1080, cancel_event=cancel_event)
    assert list(work_dir.iterdir()) == []


@pytest.mark.parametrize("flag", [True, False])
def test_boolean_scores_fail_the_rate_point(
    tmp_path: Path, source_file: Path, stub_collaborator, four_rung_ladder: ResolutionLadder, flag: bool
) -> None:
    collaborator = stub_collaborator(lambda resolution, rate: flag if resolution.height == 720 else 80.0)
    resolver = _resolver(collaborator, four_rung_ladder, tmp_path / "work")

    with pytest.raises(ResolveError) as excinfo:
        resolver.resolve(source_file, P1080, 2500, P1080)

    assert isinstance(excinfo.value.__cause__, ScoreError)


def test_unexpected_error_is_wrapped_with_its_cause(
    tmp_path: Path, source_file: Path, stub_collaborator, four_rung_ladder: ResolutionLadder
) -> None:
    work_dir = tmp_path / "work"
    collaborator = stub_collaborator(lambda resolution, rate: 80.0)

    def _broken_score(*args, **kwargs):
        raise KeyError("pooled_metrics")

    collaborator.score = _broken_score
    resolver = _resolver(collaborator, four_rung_ladder, work_dir)

    with pytest.raises(ResolveError) as excinfo:
        resolver.resolve(source_file, P1080, 2500, P1080)

    assert not isinstance(excinfo.value, ResolveCancelled)
    assert isinstance(excinfo.value.__cause__, KeyError)
    assert list(work_dir.iterdir()) == []


def test_cancel_event_is_honoured_at_the_ladder_floor(
    tmp_path: Path, source_file: Path, stub_collaborator, four_rung_ladder: ResolutionLadder
) -> None:
    resolver = _resolver(stub_collaborator(lambda resolution, rate: 50.0), four_rung_ladder, tmp_path / "work")
    cancel_event = threading.Event()
    cancel_event.set()

    with pytest.raises(ResolveCancelled):
        resolver.resolve(source_file, P1080, 500, P360, cancel_event=cancel_event)
