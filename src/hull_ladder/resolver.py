from __future__ import annotations

import logging
import math
import shutil
import tempfile
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Sequence, TypeVar

from .collaborator import CollaboratorCancelled, EncodeError, EncodeScoreCollaborator, ScoreError
from .hull import HullPoint, PointStatus
from .ladder import Resolution, ResolutionLadder

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ResolveError(RuntimeError):
    """Raised when one rate point cannot be decided. The cause is chained."""

    def __init__(self, message: str, *, rate_kbps: int) -> None:
        super().__init__(message)
        self.rate_kbps = rate_kbps


class ResolveCancelled(ResolveError):
    """Raised when the cancel event is set while a rate point is in flight."""


class RatePointResolver:
    """Picks the better of a candidate resolution and the rung below it at one bitrate.

    Both renditions are encoded concurrently, then scored concurrently against
    the source at its reference resolution. The candidate is kept only if it
    scores strictly higher; on a tie the lower resolution wins. Every encode and
    log lives in a scratch directory unique to the call, removed on the way out
    unless ``keep_temp`` is set.
    """

    def __init__(
        self,
        collaborator: EncodeScoreCollaborator,
        ladder: ResolutionLadder,
        *,
        work_dir: Path,
        keep_temp: bool = False,
    ) -> None:
        self.collaborator = collaborator
        self.ladder = ladder
        self.work_dir = work_dir
        self.keep_temp = keep_temp

    def resolve(
        self,
        source_path: Path,
        reference_resolution: Resolution,
        rate_kbps: int,
        candidate: Resolution,
        *,
        cancel_event: threading.Event | None = None,
    ) -> HullPoint:
        _raise_if_cancelled(cancel_event, rate_kbps)
        next_resolution = self.ladder.next_lower(candidate)
        if next_resolution is None:
            logger.debug("%s @%dkbps: ladder floor reached at %s", source_path.name, rate_kbps, candidate)
            return HullPoint(candidate, rate_kbps, None, PointStatus.LADDER_FLOOR)

        pair = (candidate, next_resolution)
        extension = self.collaborator.artifact_extension
        with self._scratch_dir(source_path, rate_kbps) as scratch:
            artifacts = [scratch / f"{resolution.height}p_{rate_kbps}k.{extension}" for resolution in pair]
            with ThreadPoolExecutor(max_workers=2, thread_name_prefix="resolve") as pool:
                encode_futures = [
                    pool.submit(
                        self.collaborator.encode,
                        source_path,
                        resolution,
                        rate_kbps,
                        artifact,
                        cancel_event=cancel_event,
                    )
                    for resolution, artifact in zip(pair, artifacts)
                ]
                encoded = _join(encode_futures, rate_kbps, "encode")
                _raise_if_cancelled(cancel_event, rate_kbps)

                score_futures = [
                    pool.submit(
                        self.collaborator.score,
                        source_path,
                        reference_resolution,
                        path,
                        path.with_suffix(".vmaf.json"),
                        cancel_event=cancel_event,
                    )
                    for path in encoded
                ]
                scores = _join(score_futures, rate_kbps, "score")

        candidate_score, next_score = (_validated_score(score, rate_kbps) for score in scores)
        if candidate_score > next_score:
            winner, winning_score = candidate, candidate_score
        else:
            winner, winning_score = next_resolution, next_score
        logger.info(
            "%s @%dkbps: %s=%.2f vs %s=%.2f -> %s",
            source_path.name,
            rate_kbps,
            candidate,
            candidate_score,
            next_resolution,
            next_score,
            winner,
        )
        return HullPoint(winner, rate_kbps, winning_score, PointStatus.SCORED)

    @contextmanager
    def _scratch_dir(self, source_path: Path, rate_kbps: int) -> Iterator[Path]:
        self.work_dir.mkdir(parents=True, exist_ok=True)
        scratch = Path(tempfile.mkdtemp(prefix=f"{source_path.stem}_{rate_kbps}k_", dir=self.work_dir))
        try:
            yield scratch
        finally:
            if self.keep_temp:
                logger.debug("Keeping scratch files in %s", scratch)
            else:
                shutil.rmtree(scratch, ignore_errors=True)


def _join(futures: Sequence[Future[T]], rate_kbps: int, stage: str) -> list[T]:
    wait(futures)
    errors = [future.exception() for future in futures]
    for error in errors:
        if isinstance(error, CollaboratorCancelled):
            raise ResolveCancelled(f"{stage} cancelled at {rate_kbps}kbps", rate_kbps=rate_kbps) from error
    for error in errors:
        if error is None:
            continue
        if not isinstance(error, Exception):
            raise error
        if not isinstance(error, (EncodeError, ScoreError, OSError)):
            logger.error("Unexpected %s during %s at %dkbps", type(error).__name__, stage, rate_kbps, exc_info=error)
        raise ResolveError(f"{stage} failed at {rate_kbps}kbps: {error}", rate_kbps=rate_kbps) from error
    return [future.result() for future in futures]


def _validated_score(score: float, rate_kbps: int) -> float:
    if isinstance(score, bool) or not isinstance(score, (int, float)):
        raise ResolveError(
            f"invalid quality score at {rate_kbps}kbps", rate_kbps=rate_kbps
        ) from ScoreError(f"score {score!r} is not a number")
    if not math.isfinite(score) or not 0.0 <= score <= 100.0:
        raise ResolveError(
            f"invalid quality score at {rate_kbps}kbps", rate_kbps=rate_kbps
        ) from ScoreError(f"score {score!r} is outside [0, 100]")
    return float(score)


def _raise_if_cancelled(cancel_event: threading.Event | None, rate_kbps: int) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise ResolveCancelled(f"cancelled at {rate_kbps}kbps", rate_kbps=rate_kbps)
