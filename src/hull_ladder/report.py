from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from .hull import HullPoint, PointStatus, WalkResult
from .ladder import Resolution
from .probe import SourceInfo


class ReportError(ValueError):
    """Raised when a stored hull report cannot be read back."""


def hull_report_path(source_path: Path, output_dir: Path | None = None) -> Path:
    directory = output_dir if output_dir is not None else source_path.parent
    return directory / f"{source_path.stem}_convex_hull.json"


def hull_point_payload(point: HullPoint) -> dict[str, Any]:
    return {
        "resolution": {
            "height": point.resolution.height,
            "width": point.resolution.width,
        },
        "rate": point.rate_kbps,
        "quality_score": point.quality_score,
        "status": point.status.value,
    }


def build_report(
    source_path: Path,
    source: SourceInfo,
    result: WalkResult,
    runtime: dict[str, Any],
) -> dict[str, Any]:
    # Hull order is the walk order (descending rate) and must not be re-sorted.
    return {
        "generated_at": datetime.now(timezone.utc).isoformat(),
        "source": {
            "path": str(source_path),
            "resolution": {
                "height": source.resolution.height,
                "width": source.resolution.width,
            },
            "bitrate_kbps": source.bitrate_kbps,
            "metadata": source.metadata,
        },
        "status": "complete" if result.ok else "partial",
        "error": str(result.failure) if result.failure is not None else None,
        "target_rates": list(result.target_rates),
        "hull": [hull_point_payload(point) for point in result.points],
        "runtime": runtime,
    }


def write_report(report: dict[str, Any], output_path: Path) -> None:
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(json.dumps(report, indent=2, sort_keys=False), encoding="utf-8")


def load_hull(path: Path) -> list[HullPoint]:
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ReportError(f"Unable to read hull report: {path}") from exc

    points_raw = payload.get("hull") if isinstance(payload, dict) else None
    if not isinstance(points_raw, list):
        raise ReportError(f"Report field 'hull' must be a list: {path}")

    points: list[HullPoint] = []
    for index, raw in enumerate(points_raw):
        try:
            resolution = raw["resolution"]
            score = raw.get("quality_score")
            points.append(
                HullPoint(
                    resolution=Resolution(height=int(resolution["height"]), width=int(resolution["width"])),
                    rate_kbps=int(raw["rate"]),
                    quality_score=float(score) if score is not None else None,
                    status=PointStatus(raw.get("status", PointStatus.SCORED.value)),
                )
            )
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            raise ReportError(f"hull[{index}] in {path} is malformed") from exc
    return points
