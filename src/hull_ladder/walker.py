from __future__ import annotations

import logging
import threading
from pathlib import Path

from .hull import HullPoint, WalkResult
from .ladder import Resolution
from .rates import RatePlan, generate_target_rates
from .resolver import RatePointResolver, ResolveCancelled, ResolveError

logger = logging.getLogger(__name__)


class WalkError(RuntimeError):
    """A rate point failed mid-walk. The points before it are still valid."""

    def __init__(self, message: str, *, rate_kbps: int, step: int, cancelled: bool = False) -> None:
        super().__init__(message)
        self.rate_kbps = rate_kbps
        self.step = step
        self.cancelled = cancelled


class HullWalker:
    def __init__(self, resolver: RatePointResolver, rate_plan: RatePlan | None = None) -> None:
        self.resolver = resolver
        self.rate_plan = rate_plan or RatePlan()

    def target_rates(self, source_rate_kbps: int) -> list[int]:
        return generate_target_rates(source_rate_kbps, self.rate_plan)

    def walk(
        self,
        source_path: Path,
        reference_resolution: Resolution,
        source_rate_kbps: int,
        *,
        cancel_event: threading.Event | None = None,
    ) -> WalkResult:
        """Resolve every target rate from the highest down.

        Each step starts from the previous step's winning resolution, so the
        resolution can only stay or step down as the rate drops. The first
        failing step ends the walk; the points resolved before it are returned
        with the failure attached.
        """
        rates = tuple(self.target_rates(source_rate_kbps))
        logger.info(
            "Walking %s (%s @%dkbps) over %d target rates",
            source_path.name,
            reference_resolution,
            source_rate_kbps,
            len(rates),
        )

        points: list[HullPoint] = []
        current = reference_resolution
        for step, rate_kbps in enumerate(rates, start=1):
            try:
                point = self.resolver.resolve(
                    source_path,
                    reference_resolution,
                    rate_kbps,
                    current,
                    cancel_event=cancel_event,
                )
            except ResolveError as exc:
                logger.warning(
                    "Walk of %s stopped at %dkbps (step %d/%d): %s",
                    source_path.name,
                    rate_kbps,
                    step,
                    len(rates),
                    exc,
                )
                failure = WalkError(
                    f"rate point {rate_kbps}kbps failed: {exc}",
                    rate_kbps=rate_kbps,
                    step=step,
                    cancelled=isinstance(exc, ResolveCancelled),
                )
                failure.__cause__ = exc
                return WalkResult(points=tuple(points), target_rates=rates, failure=failure)

            points.append(point)
            current = point.resolution

        return WalkResult(points=tuple(points), target_rates=rates)
