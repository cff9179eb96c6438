from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Literal, Sequence

from .plots import PlotError, generate_hull_plot
from .probe import SourceInfo, probe_source
from .report import build_report, hull_report_path, write_report
from .walker import HullWalker

logger = logging.getLogger(__name__)

AssetState = Literal["complete", "partial", "skipped", "failed"]
ProbeFn = Callable[[Path], SourceInfo]


@dataclass(frozen=True)
class AssetOutcome:
    source_path: Path
    state: AssetState
    report_path: Path | None = None
    hull_length: int = 0
    error: str | None = None


def read_source_list(path: Path) -> list[Path]:
    base_dir = path.parent
    sources: list[Path] = []
    for line in path.read_text(encoding="utf-8").splitlines():
        entry = line.strip()
        if not entry or entry.startswith("#"):
            continue
        source = Path(entry)
        sources.append(source if source.is_absolute() else (base_dir / source).resolve())
    return sources


def run_batch(
    sources: Sequence[Path],
    walker: HullWalker,
    *,
    probe: ProbeFn = probe_source,
    hull_dir: Path | None = None,
    workers: int = 2,
    skip_existing: bool = True,
    max_source_height: int | None = None,
    asset_timeout_seconds: float | None = None,
    plots_dir: Path | None = None,
    runtime_info: dict[str, Any] | None = None,
) -> list[AssetOutcome]:
    """Walk every source on a bounded pool; one asset's failure never touches another's.

    Outcomes come back in the order of ``sources``.
    """
    if workers <= 0:
        raise ValueError("workers must be a positive integer")

    def _job(source_path: Path) -> AssetOutcome:
        return process_asset(
            source_path,
            walker,
            probe=probe,
            hull_dir=hull_dir,
            skip_existing=skip_existing,
            max_source_height=max_source_height,
            asset_timeout_seconds=asset_timeout_seconds,
            plots_dir=plots_dir,
            runtime_info=runtime_info,
        )

    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="asset") as pool:
        return list(pool.map(_job, sources))


def process_asset(
    source_path: Path,
    walker: HullWalker,
    *,
    probe: ProbeFn = probe_source,
    hull_dir: Path | None = None,
    skip_existing: bool = True,
    max_source_height: int | None = None,
    asset_timeout_seconds: float | None = None,
    plots_dir: Path | None = None,
    runtime_info: dict[str, Any] | None = None,
) -> AssetOutcome:
    report_path = hull_report_path(source_path, hull_dir)
    if skip_existing and report_path.exists():
        logger.info("Hull report %s already exists, skipping", report_path)
        return AssetOutcome(source_path, "skipped", report_path=report_path)

    try:
        source = probe(source_path)
        if max_source_height is not None and source.resolution.height > max_source_height:
            logger.info(
                "%s is %s, above the %dp limit, skipping",
                source_path.name,
                source.resolution,
                max_source_height,
            )
            return AssetOutcome(
                source_path,
                "skipped",
                error=f"source height {source.resolution.height} exceeds {max_source_height}",
            )

        started_at = datetime.now(timezone.utc)
        start = time.monotonic()
        cancel_event = threading.Event()
        timer: threading.Timer | None = None
        if asset_timeout_seconds is not None:
            timer = threading.Timer(asset_timeout_seconds, cancel_event.set)
            timer.daemon = True
            timer.start()
        try:
            result = walker.walk(
                source_path,
                source.resolution,
                source.bitrate_kbps,
                cancel_event=cancel_event,
            )
        finally:
            if timer is not None:
                timer.cancel()

        runtime = {
            **(runtime_info or {}),
            "started_at": started_at.isoformat(),
            "finished_at": datetime.now(timezone.utc).isoformat(),
            "total_seconds": time.monotonic() - start,
        }
        report = build_report(source_path, source, result, runtime)
        write_report(report, report_path)
    except Exception as exc:
        logger.exception("Hull walk for %s failed", source_path.name)
        return AssetOutcome(source_path, "failed", error=str(exc))

    if plots_dir is not None and result.points:
        try:
            generate_hull_plot(report, plots_dir)
        except PlotError as exc:
            logger.warning("No plot for %s: %s", source_path.name, exc)

    state: AssetState = "complete" if result.ok else "partial"
    logger.info("%s: %s hull with %d points -> %s", source_path.name, state, len(result), report_path)
    return AssetOutcome(
        source_path,
        state,
        report_path=report_path,
        hull_length=len(result),
        error=str(result.failure) if result.failure is not None else None,
    )
