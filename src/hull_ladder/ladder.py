from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator, Sequence


@dataclass(frozen=True)
class Resolution:
    height: int
    width: int

    @property
    def filter_string(self) -> str:
        return f"{self.width}x{self.height}"

    def __str__(self) -> str:
        return self.filter_string


class ResolutionLadder:
    """Fixed, height-descending list of candidate encoding resolutions."""

    def __init__(self, resolutions: Sequence[Resolution]) -> None:
        if not resolutions:
            raise ValueError("A resolution ladder needs at least one resolution")
        for upper, lower in zip(resolutions, resolutions[1:]):
            if lower.height >= upper.height:
                raise ValueError(
                    "Ladder heights must be strictly decreasing, got "
                    f"{upper.height} followed by {lower.height}"
                )
        self._resolutions = tuple(resolutions)

    @property
    def resolutions(self) -> tuple[Resolution, ...]:
        return self._resolutions

    @property
    def top(self) -> Resolution:
        return self._resolutions[0]

    @property
    def bottom(self) -> Resolution:
        return self._resolutions[-1]

    def next_lower(self, current: Resolution) -> Resolution | None:
        """Return the first rung strictly shorter than ``current``.

        ``current`` does not have to be a rung. ``None`` means the ladder is
        exhausted, which is a normal stop and not an error.
        """
        for resolution in self._resolutions:
            if resolution.height < current.height:
                return resolution
        return None

    def __iter__(self) -> Iterator[Resolution]:
        return iter(self._resolutions)

    def __len__(self) -> int:
        return len(self._resolutions)

    def __repr__(self) -> str:
        rungs = ", ".join(str(resolution) for resolution in self._resolutions)
        return f"ResolutionLadder([{rungs}])"


DEFAULT_LADDER = ResolutionLadder(
    [
        Resolution(1080, 1920),
        Resolution(720, 1280),
        Resolution(540, 960),
        Resolution(360, 640),
        Resolution(270, 480),
    ]
)
