from __future__ import annotations

import logging
import threading
import time
from pathlib import Path

from .config import VmafConfig
from .ladder import Resolution
from .metrics import MetricsError, VmafMetrics, parse_vmaf_log
from .process import run_tool

logger = logging.getLogger(__name__)


class VmafError(RuntimeError):
    """Raised when libvmaf execution fails."""


def probe_video_fps(video_path: Path, ffprobe_bin: str = "ffprobe") -> str:
    command = [
        ffprobe_bin,
        "-v",
        "error",
        "-select_streams",
        "v:0",
        "-show_entries",
        "stream=avg_frame_rate,r_frame_rate",
        "-of",
        "default=noprint_wrappers=1:nokey=1",
        str(video_path),
    ]
    try:
        proc = run_tool(command)
    except FileNotFoundError as exc:
        raise VmafError(f"ffprobe binary not found: {ffprobe_bin}") from exc

    if proc.returncode != 0:
        raise VmafError(f"Unable to probe frame rate for {video_path.name}: {proc.stderr.strip()}")

    lines = [line.strip() for line in proc.stdout.splitlines() if line.strip()]
    for candidate in lines:
        if _is_valid_fps(candidate):
            return candidate
    raise VmafError(f"Could not determine frame rate for {video_path.name}")


def ensure_libvmaf_available(ffmpeg_bin: str = "ffmpeg") -> None:
    try:
        proc = run_tool([ffmpeg_bin, "-hide_banner", "-filters"])
    except FileNotFoundError as exc:
        raise VmafError(f"ffmpeg binary not found: {ffmpeg_bin}") from exc

    if proc.returncode != 0:
        raise VmafError(f"Unable to inspect ffmpeg filters: {proc.stderr.strip()}")
    if "libvmaf" not in proc.stdout + "\n" + proc.stderr:
        raise VmafError("ffmpeg does not report libvmaf support")


def build_vmaf_filter(
    reference_resolution: Resolution,
    evaluation_fps: str,
    config: VmafConfig,
    threads: int,
    log_path: Path,
) -> str:
    filter_options = [
        f"log_fmt={config.log_format}",
        f"log_path={_escape_filter_value(str(log_path))}",
        f"n_threads={max(1, threads)}",
    ]
    if config.model_path:
        filter_options.append(f"model=path={_escape_filter_value(str(config.model_path))}")
    filter_options.extend(config.extra_filter_options)

    width, height = reference_resolution.width, reference_resolution.height
    # The candidate is upscaled to the reference size; both share one CFR timeline.
    return (
        f"[0:v]fps={evaluation_fps},settb=AVTB,setpts=N/FRAME_RATE/TB[ref];"
        f"[1:v]fps={evaluation_fps},scale={width}:{height}:flags=bicubic,"
        f"settb=AVTB,setpts=N/FRAME_RATE/TB[dist];"
        f"[dist][ref]libvmaf={':'.join(filter_options)}"
    )


def compute_vmaf_metrics(
    reference_path: Path,
    reference_resolution: Resolution,
    distorted_path: Path,
    evaluation_fps: str,
    config: VmafConfig,
    threads: int,
    log_path: Path,
    ffmpeg_bin: str = "ffmpeg",
    cancel_event: threading.Event | None = None,
) -> tuple[VmafMetrics, float]:
    log_path.parent.mkdir(parents=True, exist_ok=True)
    filter_graph = build_vmaf_filter(
        reference_resolution,
        evaluation_fps,
        config,
        threads=threads,
        log_path=log_path,
    )
    command = [
        ffmpeg_bin,
        "-hide_banner",
        "-y",
        "-i",
        str(reference_path),
        "-i",
        str(distorted_path),
        "-lavfi",
        filter_graph,
        "-f",
        "null",
        "-",
    ]
    logger.debug("Scoring %s against %s", distorted_path.name, reference_path.name)

    started = time.monotonic()
    try:
        proc = run_tool(command, cancel_event=cancel_event)
    except FileNotFoundError as exc:
        raise VmafError(f"ffmpeg binary not found: {ffmpeg_bin}") from exc
    elapsed = time.monotonic() - started
    if proc.returncode != 0:
        raise VmafError(f"libvmaf failed for {distorted_path.name}: {proc.stderr.strip()}")

    try:
        return parse_vmaf_log(log_path), elapsed
    except MetricsError as exc:
        raise VmafError(f"Failed to parse VMAF output for {distorted_path.name}") from exc


def _escape_filter_value(value: str) -> str:
    return value.replace("\\", "\\\\").replace(":", "\\:").replace("'", "\\'")


def _is_valid_fps(value: str) -> bool:
    if "/" in value:
        parts = value.split("/")
        if len(parts) != 2:
            return False
        try:
            numerator = float(parts[0])
            denominator = float(parts[1])
        except ValueError:
            return False
        return numerator > 0 and denominator > 0
    try:
        return float(value) > 0
    except ValueError:
        return False
