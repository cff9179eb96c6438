from __future__ import annotations

import threading
from pathlib import Path
from typing import Callable

import pytest

from hull_ladder.collaborator import EncodeError, ScoreError
from hull_ladder.ladder import Resolution, ResolutionLadder

ScoreFn = Callable[[Resolution, int], float]
FailFn = Callable[[Resolution, int], bool]


class StubCollaborator:
    """In-memory encoder/scorer. Artifacts are tiny files named after their rendition."""

    artifact_extension = "mp4"

    def __init__(
        self,
        score_fn: ScoreFn,
        fail_encode: FailFn | None = None,
        fail_score: FailFn | None = None,
    ) -> None:
        self.score_fn = score_fn
        self.fail_encode = fail_encode
        self.fail_score = fail_score
        self.encodes: list[tuple[int, int]] = []
        self.scored: list[Path] = []
        self.artifacts: list[Path] = []
        self._renditions: dict[Path, tuple[Resolution, int]] = {}
        self._lock = threading.Lock()

    def encode(self, source_path, resolution, rate_kbps, destination, *, cancel_event=None):
        with self._lock:
            self.encodes.append((resolution.height, rate_kbps))
        if self.fail_encode is not None and self.fail_encode(resolution, rate_kbps):
            raise EncodeError(f"stub encode failure at {resolution} @{rate_kbps}kbps")
        destination.write_bytes(b"encoded")
        with self._lock:
            self.artifacts.append(destination)
            self._renditions[destination] = (resolution, rate_kbps)
        return destination

    def score(self, reference_path, reference_resolution, candidate_path, log_path, *, cancel_event=None):
        with self._lock:
            resolution, rate_kbps = self._renditions[candidate_path]
            self.scored.append(candidate_path)
        if self.fail_score is not None and self.fail_score(resolution, rate_kbps):
            raise ScoreError(f"stub score failure at {resolution} @{rate_kbps}kbps")
        log_path.write_text("{}", encoding="utf-8")
        return self.score_fn(resolution, rate_kbps)


@pytest.fixture
def stub_collaborator() -> Callable[..., StubCollaborator]:
    return StubCollaborator


@pytest.fixture
def four_rung_ladder() -> ResolutionLadder:
    return ResolutionLadder(
        [
            Resolution(1080, 1920),
            Resolution(720, 1280),
            Resolution(480, 854),
            Resolution(360, 640),
        ]
    )


@pytest.fixture
def source_file(tmp_path: Path) -> Path:
    source = tmp_path / "source.mp4"
    source.write_bytes(b"fake")
    return source
