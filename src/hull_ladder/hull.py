from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from .ladder import Resolution

if TYPE_CHECKING:
    from .walker import WalkError


class PointStatus(str, enum.Enum):
    SCORED = "scored"
    # Nothing below the candidate to compare with; taken without a score.
    LADDER_FLOOR = "ladder_floor"


@dataclass(frozen=True)
class HullPoint:
    resolution: Resolution
    rate_kbps: int
    quality_score: float | None = None
    status: PointStatus = PointStatus.SCORED

    def __post_init__(self) -> None:
        if self.status is PointStatus.SCORED and self.quality_score is None:
            raise ValueError("A scored hull point needs a quality score")
        if self.status is PointStatus.LADDER_FLOOR and self.quality_score is not None:
            raise ValueError("A ladder-floor hull point carries no quality score")


@dataclass(frozen=True)
class WalkResult:
    """Hull points in target-rate order, plus the failure that stopped the walk, if any."""

    points: tuple[HullPoint, ...]
    target_rates: tuple[int, ...] = field(default_factory=tuple)
    failure: WalkError | None = None

    @property
    def ok(self) -> bool:
        return self.failure is None

    @property
    def partial(self) -> bool:
        return self.failure is not None

    @property
    def resolutions(self) -> list[Resolution]:
        return [point.resolution for point in self.points]

    def __len__(self) -> int:
        return len(self.points)
