"""Encode and score operations the hull walk depends on.

The walk only needs two black-box operations: encode a source at a given
resolution and bitrate, and score an encode against the source. Both may be
slow and both may fail; failures are reported as ``EncodeError`` or
``ScoreError`` and are never retried by the caller.
"""

from __future__ import annotations

import logging
import threading
from collections import OrderedDict
from pathlib import Path
from typing import Protocol

from .config import EncodingConfig, VmafConfig
from .encode import EncodeError as FfmpegEncodeError
from .encode import encode_rendition, output_extension_for_codec
from .ladder import Resolution
from .process import ToolCancelled
from .vmaf import VmafError, compute_vmaf_metrics, probe_video_fps

logger = logging.getLogger(__name__)


class EncodeError(RuntimeError):
    """Raised by a collaborator when an encode cannot be produced."""


class ScoreError(RuntimeError):
    """Raised by a collaborator when a quality score cannot be computed."""


class CollaboratorCancelled(RuntimeError):
    """Raised when an in-flight encode or score is aborted by its cancel event."""


class EncodeScoreCollaborator(Protocol):
    artifact_extension: str

    def encode(
        self,
        source_path: Path,
        resolution: Resolution,
        rate_kbps: int,
        destination: Path,
        *,
        cancel_event: threading.Event | None = None,
    ) -> Path:
        ...

    def score(
        self,
        reference_path: Path,
        reference_resolution: Resolution,
        candidate_path: Path,
        log_path: Path,
        *,
        cancel_event: threading.Event | None = None,
    ) -> float:
        ...


class FfmpegCollaborator:
    """Encodes with ffmpeg and scores with libvmaf (pooled mean VMAF)."""

    # Sources whose frame rate is remembered; the oldest is dropped first.
    fps_cache_size = 32

    def __init__(
        self,
        encoding: EncodingConfig | None = None,
        vmaf: VmafConfig | None = None,
        *,
        threads: int = 1,
        ffmpeg_bin: str = "ffmpeg",
        ffprobe_bin: str = "ffprobe",
    ) -> None:
        self.encoding = encoding or EncodingConfig()
        self.vmaf = vmaf or VmafConfig()
        self.threads = max(1, threads)
        self.ffmpeg_bin = ffmpeg_bin
        self.ffprobe_bin = ffprobe_bin
        self.artifact_extension = output_extension_for_codec(self.encoding.codec)
        self._fps_cache: OrderedDict[Path, str] = OrderedDict()
        self._fps_lock = threading.Lock()

    def encode(
        self,
        source_path: Path,
        resolution: Resolution,
        rate_kbps: int,
        destination: Path,
        *,
        cancel_event: threading.Event | None = None,
    ) -> Path:
        try:
            seconds = encode_rendition(
                source_path,
                resolution,
                rate_kbps,
                destination,
                self.encoding,
                threads=self.threads,
                ffmpeg_bin=self.ffmpeg_bin,
                cancel_event=cancel_event,
            )
        except ToolCancelled as exc:
            raise CollaboratorCancelled(str(exc)) from exc
        except FfmpegEncodeError as exc:
            raise EncodeError(str(exc)) from exc
        logger.debug("Encoded %s in %.1fs", destination.name, seconds)
        return destination

    def score(
        self,
        reference_path: Path,
        reference_resolution: Resolution,
        candidate_path: Path,
        log_path: Path,
        *,
        cancel_event: threading.Event | None = None,
    ) -> float:
        try:
            fps = self._evaluation_fps(reference_path)
            metrics, seconds = compute_vmaf_metrics(
                reference_path,
                reference_resolution,
                candidate_path,
                evaluation_fps=fps,
                config=self.vmaf,
                threads=self.threads,
                log_path=log_path,
                ffmpeg_bin=self.ffmpeg_bin,
                cancel_event=cancel_event,
            )
        except ToolCancelled as exc:
            raise CollaboratorCancelled(str(exc)) from exc
        except VmafError as exc:
            raise ScoreError(str(exc)) from exc
        logger.debug("Scored %s: VMAF %.3f in %.1fs", candidate_path.name, metrics.mean, seconds)
        return metrics.mean

    def _evaluation_fps(self, reference_path: Path) -> str:
        with self._fps_lock:
            cached = self._fps_cache.get(reference_path)
            if cached is not None:
                self._fps_cache.move_to_end(reference_path)
                return cached
        fps = probe_video_fps(reference_path, ffprobe_bin=self.ffprobe_bin)
        with self._fps_lock:
            self._fps_cache[reference_path] = fps
            self._fps_cache.move_to_end(reference_path)
            while len(self._fps_cache) > self.fps_cache_size:
                self._fps_cache.popitem(last=False)
        return fps
