from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class RatePlan:
    step_kbps: int = 500
    floor_kbps: int = 500
    ceiling_kbps: int | None = None

    def __post_init__(self) -> None:
        if self.step_kbps <= 0:
            raise ValueError("step_kbps must be a positive integer")
        if self.floor_kbps <= 0:
            raise ValueError("floor_kbps must be a positive integer")
        if self.ceiling_kbps is not None and self.ceiling_kbps < self.floor_kbps:
            raise ValueError("ceiling_kbps must not be below floor_kbps")


def generate_target_rates(source_rate_kbps: int, plan: RatePlan) -> list[int]:
    """Return the rates to probe for a source, highest first.

    Every rate is a multiple of ``plan.step_kbps``, at least ``plan.floor_kbps``,
    strictly below the source's own bitrate and no higher than the ceiling.
    A source at or below the floor yields an empty list.
    """
    if source_rate_kbps <= 0:
        raise ValueError(f"Source bitrate must be positive, got {source_rate_kbps}")

    # Strictly below the source rate: re-encoding at the source bitrate is not probed.
    upper = source_rate_kbps - 1
    if plan.ceiling_kbps is not None:
        upper = min(upper, plan.ceiling_kbps)

    step = plan.step_kbps
    top = (upper // step) * step
    return [rate for rate in range(top, 0, -step) if rate >= plan.floor_kbps]
