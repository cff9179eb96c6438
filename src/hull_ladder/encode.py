from __future__ import annotations

import logging
import threading
import time
from pathlib import Path

from .config import Codec, EncodingConfig
from .ladder import Resolution
from .process import run_tool

logger = logging.getLogger(__name__)


class EncodeError(RuntimeError):
    """Raised when ffmpeg encoding fails."""


_CODEC_LIBRARY: dict[Codec, str] = {
    "h264": "libx264",
    "h265": "libx265",
    "av1": "libaom-av1",
}

_CONTAINER_EXTENSION: dict[Codec, str] = {
    "h264": "mp4",
    "h265": "mp4",
    "av1": "mkv",
}


def output_extension_for_codec(codec: Codec) -> str:
    return _CONTAINER_EXTENSION[codec]


def ensure_ffmpeg_available(ffmpeg_bin: str = "ffmpeg") -> str:
    try:
        proc = run_tool([ffmpeg_bin, "-version"])
    except FileNotFoundError as exc:
        raise EncodeError(f"ffmpeg binary not found: {ffmpeg_bin}") from exc

    if proc.returncode != 0:
        raise EncodeError(f"ffmpeg is not executable: {proc.stderr.strip()}")

    first_line = proc.stdout.splitlines()
    return first_line[0] if first_line else "ffmpeg (version unknown)"


def build_encode_command(
    source_path: Path,
    resolution: Resolution,
    rate_kbps: int,
    destination_path: Path,
    encoding: EncodingConfig,
    threads: int,
    ffmpeg_bin: str = "ffmpeg",
) -> list[str]:
    bitrate = f"{rate_kbps}k"
    command = [
        ffmpeg_bin,
        "-hide_banner",
        "-y",
        "-i",
        str(source_path),
        "-an",
        "-vf",
        f"scale={resolution.width}:{resolution.height}:flags=lanczos",
        "-c:v",
        _CODEC_LIBRARY[encoding.codec],
        "-b:v",
        bitrate,
        "-maxrate",
        bitrate,
        "-bufsize",
        f"{rate_kbps * 2}k",
        "-threads",
        str(max(1, threads)),
    ]

    if encoding.codec in {"h264", "h265"}:
        command.extend(["-preset", encoding.preset or "medium"])
    else:
        # libaom uses cpu-used instead of preset.
        command.extend(["-cpu-used", encoding.preset or "6", "-row-mt", "1"])

    if encoding.profile:
        command.extend(["-profile:v", encoding.profile])
    if encoding.pix_fmt:
        command.extend(["-pix_fmt", encoding.pix_fmt])
    if encoding.keyint:
        command.extend(["-g", str(encoding.keyint), "-keyint_min", str(encoding.keyint)])

    command.append(str(destination_path))
    return command


def encode_rendition(
    source_path: Path,
    resolution: Resolution,
    rate_kbps: int,
    destination_path: Path,
    encoding: EncodingConfig,
    threads: int,
    ffmpeg_bin: str = "ffmpeg",
    cancel_event: threading.Event | None = None,
) -> float:
    destination_path.parent.mkdir(parents=True, exist_ok=True)
    command = build_encode_command(
        source_path,
        resolution,
        rate_kbps,
        destination_path,
        encoding,
        threads=threads,
        ffmpeg_bin=ffmpeg_bin,
    )
    logger.debug("Encoding %s at %s @%dkbps", source_path.name, resolution, rate_kbps)

    started = time.monotonic()
    try:
        proc = run_tool(command, cancel_event=cancel_event)
    except FileNotFoundError as exc:
        raise EncodeError(f"ffmpeg binary not found: {ffmpeg_bin}") from exc
    elapsed = time.monotonic() - started
    if proc.returncode != 0:
        raise EncodeError(
            f"Encoding failed for {encoding.codec} {resolution} @{rate_kbps}kbps: {proc.stderr.strip()}"
        )
    return elapsed
