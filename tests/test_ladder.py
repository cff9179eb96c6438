from __future__ import annotations

import pytest

from hull_ladder.ladder import DEFAULT_LADDER, Resolution, ResolutionLadder


def test_next_lower_visits_every_rung_once_then_stops() -> None:
    visited = [DEFAULT_LADDER.top]
    current = DEFAULT_LADDER.next_lower(DEFAULT_LADDER.top)
    while current is not None:
        visited.append(current)
        current = DEFAULT_LADDER.next_lower(current)

    assert visited == list(DEFAULT_LADDER)
    assert [resolution.height for resolution in visited] == [1080, 720, 540, 360, 270]


def test_next_lower_accepts_resolutions_off_the_ladder(four_rung_ladder: ResolutionLadder) -> None:
    assert four_rung_ladder.next_lower(Resolution(2160, 3840)) == Resolution(1080, 1920)
    assert four_rung_ladder.next_lower(Resolution(800, 1920)) == Resolution(720, 1280)
    assert four_rung_ladder.next_lower(Resolution(720, 960)) == Resolution(480, 854)


def test_next_lower_at_or_below_bottom_is_exhausted(four_rung_ladder: ResolutionLadder) -> None:
    assert four_rung_ladder.next_lower(Resolution(360, 640)) is None
    assert four_rung_ladder.next_lower(Resolution(240, 426)) is None


def test_single_rung_ladder() -> None:
    ladder = ResolutionLadder([Resolution(720, 1280)])
    assert ladder.top == ladder.bottom
    assert ladder.next_lower(ladder.top) is None


@pytest.mark.parametrize(
    "resolutions",
    [
        [],
        [Resolution(720, 1280), Resolution(720, 960)],
        [Resolution(480, 854), Resolution(720, 1280)],
    ],
)
def test_invalid_ladders_are_rejected(resolutions: list[Resolution]) -> None:
    with pytest.raises(ValueError):
        ResolutionLadder(resolutions)


def test_resolution_filter_string() -> None:
    assert Resolution(1080, 1920).filter_string == "1920x1080"
    assert str(Resolution(270, 480)) == "480x270"
