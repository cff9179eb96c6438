from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal, cast

from .ladder import DEFAULT_LADDER, Resolution, ResolutionLadder
from .rates import RatePlan

Codec = Literal["h264", "h265", "av1"]
VALID_CODECS = {"h264", "h265", "av1"}
VALID_LOG_LEVELS = {"debug", "info", "warning", "error"}


class ConfigError(ValueError):
    """Raised when the user config is missing or invalid."""


@dataclass(frozen=True)
class InputConfig:
    sources: list[Path] = field(default_factory=list)
    source_list: Path | None = None
    max_height: int | None = None


@dataclass(frozen=True)
class EncodingConfig:
    codec: Codec = "h264"
    preset: str | None = None
    profile: str | None = None
    pix_fmt: str | None = None
    keyint: int | None = None


@dataclass(frozen=True)
class VmafConfig:
    model_path: Path | None = None
    log_format: str = "json"
    extra_filter_options: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class OutputConfig:
    hull_dir: Path | None = None
    plots_dir: Path | None = None
    skip_existing: bool = True


@dataclass(frozen=True)
class RuntimeConfig:
    threads: int = max(1, os.cpu_count() or 1)
    workers: int = 2
    work_dir: Path = Path("out/work")
    keep_temp: bool = False
    asset_timeout_seconds: float | None = None


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "info"
    file: Path | None = None


@dataclass(frozen=True)
class AppConfig:
    input: InputConfig = field(default_factory=InputConfig)
    ladder: ResolutionLadder = DEFAULT_LADDER
    rates: RatePlan = field(default_factory=RatePlan)
    encoding: EncodingConfig = field(default_factory=EncodingConfig)
    vmaf: VmafConfig = field(default_factory=VmafConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
    runtime: RuntimeConfig = field(default_factory=RuntimeConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def load_config(path: str | Path) -> AppConfig:
    config_path = Path(path)
    if not config_path.exists():
        raise ConfigError(f"Config file does not exist: {config_path}")
    raw = _load_raw_config(config_path)
    return parse_config(raw, base_dir=config_path.parent)


def parse_config(raw: dict[str, Any], base_dir: Path | None = None) -> AppConfig:
    if not isinstance(raw, dict):
        raise ConfigError("Config root must be an object")

    base_dir = base_dir or Path.cwd()
    return AppConfig(
        input=_parse_input(raw.get("input"), base_dir=base_dir),
        ladder=_parse_ladder(raw.get("ladder")),
        rates=_parse_rates(raw.get("rates")),
        encoding=_parse_encoding(raw.get("encoding")),
        vmaf=_parse_vmaf(raw.get("vmaf"), base_dir=base_dir),
        output=_parse_output(raw.get("output"), base_dir=base_dir),
        runtime=_parse_runtime(raw.get("runtime"), base_dir=base_dir),
        logging=_parse_logging(raw.get("logging"), base_dir=base_dir),
    )


def _load_raw_config(path: Path) -> dict[str, Any]:
    suffix = path.suffix.lower()
    text = path.read_text(encoding="utf-8")

    if suffix == ".json":
        return _load_json(text, path=path)
    if suffix in {".yaml", ".yml"}:
        return _load_yaml(text, path=path)

    # Fallback for extensionless or non-standard names.
    try:
        return _load_json(text, path=path)
    except ConfigError:
        return _load_yaml(text, path=path)


def _load_json(text: str, path: Path) -> dict[str, Any]:
    try:
        value = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Invalid JSON in {path}: {exc}") from exc
    if not isinstance(value, dict):
        raise ConfigError(f"JSON config must be an object: {path}")
    return value


def _load_yaml(text: str, path: Path) -> dict[str, Any]:
    try:
        import yaml
    except ImportError as exc:
        raise ConfigError(
            "YAML support requires PyYAML. Install it and retry, or use JSON config."
        ) from exc

    try:
        value = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc
    if not isinstance(value, dict):
        raise ConfigError(f"YAML config must be an object: {path}")
    return value


def _parse_input(raw: Any, base_dir: Path) -> InputConfig:
    if raw is None:
        return InputConfig()
    if not isinstance(raw, dict):
        raise ConfigError("input must be an object")

    sources_raw = raw.get("sources", [])
    if not isinstance(sources_raw, list) or not all(
        isinstance(item, str) and item for item in sources_raw
    ):
        raise ConfigError("input.sources must be a list of non-empty strings")
    sources = [_resolve_path(base_dir, item) for item in sources_raw]

    source_list_raw = raw.get("source_list")
    source_list: Path | None = None
    if source_list_raw is not None:
        if not isinstance(source_list_raw, str) or not source_list_raw:
            raise ConfigError("input.source_list must be a non-empty string")
        source_list = _resolve_path(base_dir, source_list_raw)
        if not source_list.is_file():
            raise ConfigError(f"input.source_list is not a file: {source_list}")

    max_height = _optional_positive_int(raw, "max_height", "input")
    return InputConfig(sources=sources, source_list=source_list, max_height=max_height)


def _parse_ladder(raw: Any) -> ResolutionLadder:
    if raw is None:
        return DEFAULT_LADDER
    if not isinstance(raw, dict):
        raise ConfigError("ladder must be an object")

    resolutions_raw = raw.get("resolutions")
    if resolutions_raw is None:
        return DEFAULT_LADDER
    if not isinstance(resolutions_raw, list) or not resolutions_raw:
        raise ConfigError("ladder.resolutions must be a non-empty list")

    resolutions: list[Resolution] = []
    for index, item in enumerate(resolutions_raw):
        if not isinstance(item, str):
            raise ConfigError(f"ladder.resolutions[{index}] must be a string like '1280x720'")
        width, height = parse_resolution_string(item, field_name=f"ladder.resolutions[{index}]")
        resolutions.append(Resolution(height=height, width=width))

    try:
        return ResolutionLadder(resolutions)
    except ValueError as exc:
        raise ConfigError(f"ladder.resolutions is invalid: {exc}") from exc


def _parse_rates(raw: Any) -> RatePlan:
    if raw is None:
        return RatePlan()
    if not isinstance(raw, dict):
        raise ConfigError("rates must be an object")

    defaults = RatePlan()
    step = _optional_positive_int(raw, "step_kbps", "rates") or defaults.step_kbps
    floor = _optional_positive_int(raw, "floor_kbps", "rates") or defaults.floor_kbps
    ceiling = _optional_positive_int(raw, "ceiling_kbps", "rates")
    try:
        return RatePlan(step_kbps=step, floor_kbps=floor, ceiling_kbps=ceiling)
    except ValueError as exc:
        raise ConfigError(f"rates is invalid: {exc}") from exc


def _parse_encoding(raw: Any) -> EncodingConfig:
    if raw is None:
        return EncodingConfig()
    if not isinstance(raw, dict):
        raise ConfigError("encoding must be an object")

    codec = raw.get("codec", "h264")
    if codec not in VALID_CODECS:
        raise ConfigError(f"encoding.codec must be one of {sorted(VALID_CODECS)}, got '{codec}'")

    preset = raw.get("preset")
    profile = raw.get("profile")
    pix_fmt = raw.get("pix_fmt")
    if preset is not None and not isinstance(preset, str):
        raise ConfigError("encoding.preset must be a string")
    if profile is not None and not isinstance(profile, str):
        raise ConfigError("encoding.profile must be a string")
    if pix_fmt is not None and not isinstance(pix_fmt, str):
        raise ConfigError("encoding.pix_fmt must be a string")
    keyint = _optional_positive_int(raw, "keyint", "encoding")
    return EncodingConfig(
        codec=cast(Codec, codec),
        preset=preset,
        profile=profile,
        pix_fmt=pix_fmt,
        keyint=keyint,
    )


def _parse_vmaf(raw: Any, base_dir: Path) -> VmafConfig:
    if raw is None:
        return VmafConfig()
    if not isinstance(raw, dict):
        raise ConfigError("vmaf must be an object")

    model_path_raw = raw.get("model_path")
    model_path: Path | None = None
    if model_path_raw is not None:
        if not isinstance(model_path_raw, str):
            raise ConfigError("vmaf.model_path must be a string")
        model_path = _resolve_path(base_dir, model_path_raw)

    log_format = raw.get("log_format", raw.get("log_fmt", "json"))
    if log_format != "json":
        raise ConfigError("vmaf.log_format must be 'json'")

    extra_raw = raw.get("extra_filter_options", [])
    if not isinstance(extra_raw, list) or not all(isinstance(item, str) for item in extra_raw):
        raise ConfigError("vmaf.extra_filter_options must be a list of strings")

    return VmafConfig(
        model_path=model_path,
        log_format=log_format,
        extra_filter_options=list(extra_raw),
    )


def _parse_output(raw: Any, base_dir: Path) -> OutputConfig:
    if raw is None:
        return OutputConfig()
    if not isinstance(raw, dict):
        raise ConfigError("output must be an object")

    hull_dir = _optional_path(raw, "hull_dir", "output", base_dir)
    plots_dir = _optional_path(raw, "plots_dir", "output", base_dir)

    skip_existing = raw.get("skip_existing", True)
    if not isinstance(skip_existing, bool):
        raise ConfigError("output.skip_existing must be a boolean")

    return OutputConfig(hull_dir=hull_dir, plots_dir=plots_dir, skip_existing=skip_existing)


def _parse_runtime(raw: Any, base_dir: Path) -> RuntimeConfig:
    if raw is None:
        return RuntimeConfig()
    if not isinstance(raw, dict):
        raise ConfigError("runtime must be an object")

    defaults = RuntimeConfig()
    threads = _optional_positive_int(raw, "threads", "runtime") or defaults.threads
    workers = _optional_positive_int(raw, "workers", "runtime") or defaults.workers

    work_dir_raw = raw.get("work_dir", "out/work")
    if not isinstance(work_dir_raw, str):
        raise ConfigError("runtime.work_dir must be a string")
    work_dir = _resolve_path(base_dir, work_dir_raw)

    keep_temp_raw = raw.get("keep_temp", False)
    if not isinstance(keep_temp_raw, bool):
        raise ConfigError("runtime.keep_temp must be a boolean")

    timeout_raw = raw.get("asset_timeout_seconds")
    if timeout_raw is not None and (
        isinstance(timeout_raw, bool) or not isinstance(timeout_raw, (int, float)) or timeout_raw <= 0
    ):
        raise ConfigError("runtime.asset_timeout_seconds must be a positive number")

    return RuntimeConfig(
        threads=threads,
        workers=workers,
        work_dir=work_dir,
        keep_temp=keep_temp_raw,
        asset_timeout_seconds=float(timeout_raw) if timeout_raw is not None else None,
    )


def _parse_logging(raw: Any, base_dir: Path) -> LoggingConfig:
    if raw is None:
        return LoggingConfig()
    if not isinstance(raw, dict):
        raise ConfigError("logging must be an object")

    level = raw.get("level", "info")
    if not isinstance(level, str) or level.lower() not in VALID_LOG_LEVELS:
        raise ConfigError(f"logging.level must be one of {sorted(VALID_LOG_LEVELS)}")
    file = _optional_path(raw, "file", "logging", base_dir)
    return LoggingConfig(level=level.lower(), file=file)


def _optional_positive_int(raw: dict[str, Any], key: str, path: str) -> int | None:
    value = raw.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ConfigError(f"{path}.{key} must be a positive integer")
    return value


def _optional_path(raw: dict[str, Any], key: str, path: str, base_dir: Path) -> Path | None:
    value = raw.get(key)
    if value is None:
        return None
    if not isinstance(value, str) or not value:
        raise ConfigError(f"{path}.{key} must be a non-empty string")
    return _resolve_path(base_dir, value)


def _resolve_path(base_dir: Path, value: str) -> Path:
    path = Path(value)
    return path if path.is_absolute() else (base_dir / path).resolve()


def parse_resolution_string(value: str, field_name: str = "resolution") -> tuple[int, int]:
    cleaned = value.strip().lower()
    parts = cleaned.split("x")
    if len(parts) != 2:
        raise ConfigError(f"{field_name} must be in '<width>x<height>' format")

    width_raw, height_raw = parts
    try:
        width = int(width_raw)
        height = int(height_raw)
    except ValueError as exc:
        raise ConfigError(f"{field_name} must contain integer width and height") from exc

    if width <= 0 or height <= 0:
        raise ConfigError(f"{field_name} width and height must be positive")
    return (width, height)
