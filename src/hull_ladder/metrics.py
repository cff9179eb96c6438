from __future__ import annotations

import json
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Any


class MetricsError(ValueError):
    """Raised when VMAF logs cannot be parsed."""


@dataclass(frozen=True)
class VmafMetrics:
    mean: float
    harmonic_mean: float
    minimum: float
    maximum: float
    frame_count: int


def parse_vmaf_log(path: Path) -> VmafMetrics:
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise MetricsError(f"Could not read VMAF log: {path}") from exc
    except json.JSONDecodeError as exc:
        raise MetricsError(f"Invalid VMAF JSON log: {path}") from exc
    return parse_vmaf_payload(payload)


def parse_vmaf_payload(payload: Any) -> VmafMetrics:
    """Summarise a libvmaf JSON log.

    libvmaf's own ``pooled_metrics.vmaf`` block wins when it is complete;
    otherwise the per-frame ``metrics.vmaf`` values are pooled here.
    """
    if not isinstance(payload, dict):
        raise MetricsError("VMAF payload must be an object")

    frame_values = _frame_scores(payload.get("frames"))
    pooled = payload.get("pooled_metrics")
    vmaf_pooled = pooled.get("vmaf") if isinstance(pooled, dict) else None
    if isinstance(vmaf_pooled, dict):
        mean = _as_float(vmaf_pooled.get("mean"))
        minimum = _as_float(vmaf_pooled.get("min"))
        maximum = _as_float(vmaf_pooled.get("max"))
        if mean is not None and minimum is not None and maximum is not None:
            harmonic = _as_float(vmaf_pooled.get("harmonic_mean"))
            if harmonic is None:
                harmonic = _harmonic_mean(frame_values) if frame_values else mean
            return VmafMetrics(
                mean=mean,
                harmonic_mean=harmonic,
                minimum=minimum,
                maximum=maximum,
                frame_count=len(frame_values),
            )

    if not frame_values:
        raise MetricsError("No VMAF values found in payload")

    return VmafMetrics(
        mean=sum(frame_values) / len(frame_values),
        harmonic_mean=_harmonic_mean(frame_values),
        minimum=min(frame_values),
        maximum=max(frame_values),
        frame_count=len(frame_values),
    )


def _frame_scores(frames: Any) -> list[float]:
    if not isinstance(frames, list):
        return []
    values: list[float] = []
    for frame in frames:
        metrics = frame.get("metrics") if isinstance(frame, dict) else None
        if not isinstance(metrics, dict):
            continue
        value = _as_float(metrics.get("vmaf"))
        if value is not None:
            values.append(value)
    return values


def _harmonic_mean(values: list[float]) -> float:
    # Same +1 offset libvmaf uses so a zero frame does not divide by zero.
    return len(values) / sum(1.0 / (value + 1.0) for value in values) - 1.0


def _as_float(value: object) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    result = float(value)
    return result if math.isfinite(result) else None
