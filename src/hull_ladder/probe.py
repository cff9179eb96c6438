from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .ladder import Resolution
from .process import run_tool


class ProbeError(RuntimeError):
    """Raised when a source's resolution or bitrate cannot be determined."""


@dataclass(frozen=True)
class SourceInfo:
    resolution: Resolution
    bitrate_kbps: int
    metadata: dict[str, Any] = field(default_factory=dict)


def probe_source(source_path: Path, ffprobe_bin: str = "ffprobe") -> SourceInfo:
    command = [
        ffprobe_bin,
        "-v",
        "error",
        "-print_format",
        "json",
        "-show_format",
        "-show_streams",
        str(source_path),
    ]
    try:
        proc = run_tool(command)
    except FileNotFoundError as exc:
        raise ProbeError(f"ffprobe binary not found: {ffprobe_bin}") from exc
    if proc.returncode != 0:
        raise ProbeError(f"ffprobe failed for {source_path.name}: {proc.stderr.strip()}")
    try:
        payload = json.loads(proc.stdout)
    except json.JSONDecodeError as exc:
        raise ProbeError(f"ffprobe returned invalid JSON for {source_path.name}") from exc
    return parse_probe_payload(payload, source_name=source_path.name)


def parse_probe_payload(payload: Any, source_name: str = "source") -> SourceInfo:
    if not isinstance(payload, dict):
        raise ProbeError(f"ffprobe output for {source_name} must be an object")

    streams = payload.get("streams")
    video_stream = None
    if isinstance(streams, list):
        video_stream = next(
            (stream for stream in streams if isinstance(stream, dict) and stream.get("codec_type") == "video"),
            None,
        )
    if video_stream is None:
        raise ProbeError(f"No video stream found in {source_name}")

    width = _as_int(video_stream.get("width"))
    height = _as_int(video_stream.get("height"))
    if not width or not height:
        raise ProbeError(f"Video stream of {source_name} has no usable dimensions")

    fmt = payload.get("format") if isinstance(payload.get("format"), dict) else {}
    # Stream bitrate is missing for many containers (mkv, webm); fall back to the container's.
    bit_rate = _as_int(video_stream.get("bit_rate")) or _as_int(fmt.get("bit_rate"))
    if not bit_rate or bit_rate < 1000:
        raise ProbeError(f"Could not determine the bitrate of {source_name}")

    metadata: dict[str, Any] = {}
    for key in ("codec_name", "pix_fmt", "r_frame_rate"):
        value = video_stream.get(key)
        if value is not None:
            metadata[key] = value
    duration = fmt.get("duration")
    if duration is not None:
        metadata["duration"] = duration

    return SourceInfo(
        resolution=Resolution(height=height, width=width),
        bitrate_kbps=bit_rate // 1000,
        metadata=metadata,
    )


def _as_int(value: object) -> int | None:
    # ffprobe reports bit_rate as a string.
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            return None
    return None
