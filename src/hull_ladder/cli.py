from __future__ import annotations

import argparse
import sys
from dataclasses import replace
from pathlib import Path
from typing import Sequence

from .batch import AssetOutcome, read_source_list, run_batch
from .collaborator import FfmpegCollaborator
from .config import AppConfig, ConfigError, load_config
from .encode import EncodeError, ensure_ffmpeg_available
from .logs import configure_logging
from .probe import probe_source
from .resolver import RatePointResolver
from .vmaf import VmafError, ensure_libvmaf_available
from .walker import HullWalker


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="hull-ladder",
        description="Walk the VMAF convex hull of each source to build per-asset bitrate ladders.",
    )
    parser.add_argument("--config", required=True, help="Path to YAML/JSON config file")
    parser.add_argument(
        "--source",
        action="append",
        default=None,
        help="Source video to process (repeatable; overrides config input)",
    )
    parser.add_argument(
        "--hull-dir",
        default=None,
        help="Directory for <name>_convex_hull.json reports (default: next to each source)",
    )
    parser.add_argument(
        "--plots-dir",
        default=None,
        help="Directory to write PNG/SVG hull plots (optional)",
    )
    parser.add_argument(
        "--work-dir",
        default=None,
        help="Directory for temporary encodes and VMAF logs",
    )
    parser.add_argument(
        "--keep-temp",
        action="store_true",
        default=False,
        help="Keep intermediate encoded files and VMAF logs",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Number of sources walked concurrently (default: config runtime.workers)",
    )
    parser.add_argument(
        "--threads",
        type=int,
        default=None,
        help="Encoding/VMAF thread count per ffmpeg process",
    )
    parser.add_argument(
        "--no-skip-existing",
        action="store_true",
        default=False,
        help="Re-walk sources whose hull report already exists",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["debug", "info", "warning", "error"],
        help="Logging level (default: config logging.level)",
    )
    return parser


def collect_sources(config: AppConfig, overrides: Sequence[Path] | None = None) -> list[Path]:
    if overrides:
        sources = list(overrides)
    else:
        sources = list(config.input.sources)
        if config.input.source_list is not None:
            sources.extend(read_source_list(config.input.source_list))
    if not sources:
        raise ConfigError("No sources given. Set input.sources / input.source_list or pass --source.")
    missing = [path for path in sources if not path.is_file()]
    if missing:
        raise ConfigError(f"Source file does not exist: {missing[0]}")
    return sources


def run_pipeline(
    config: AppConfig,
    sources: Sequence[Path],
    *,
    ffmpeg_bin: str = "ffmpeg",
    ffprobe_bin: str = "ffprobe",
) -> list[AssetOutcome]:
    if config.runtime.threads <= 0:
        raise ConfigError("threads must be a positive integer")
    if config.runtime.workers <= 0:
        raise ConfigError("workers must be a positive integer")

    ffmpeg_version = ensure_ffmpeg_available(ffmpeg_bin=ffmpeg_bin)
    ensure_libvmaf_available(ffmpeg_bin=ffmpeg_bin)

    collaborator = FfmpegCollaborator(
        config.encoding,
        config.vmaf,
        threads=config.runtime.threads,
        ffmpeg_bin=ffmpeg_bin,
        ffprobe_bin=ffprobe_bin,
    )
    resolver = RatePointResolver(
        collaborator,
        config.ladder,
        work_dir=config.runtime.work_dir,
        keep_temp=config.runtime.keep_temp,
    )
    walker = HullWalker(resolver, config.rates)
    runtime_info = {
        "threads": config.runtime.threads,
        "work_dir": str(config.runtime.work_dir),
        "keep_temp": config.runtime.keep_temp,
        "codec": config.encoding.codec,
        "ladder": [str(resolution) for resolution in config.ladder],
        "rates": {
            "step_kbps": config.rates.step_kbps,
            "floor_kbps": config.rates.floor_kbps,
            "ceiling_kbps": config.rates.ceiling_kbps,
        },
        "ffmpeg_version": ffmpeg_version,
    }
    return run_batch(
        sources,
        walker,
        probe=lambda path: probe_source(path, ffprobe_bin=ffprobe_bin),
        hull_dir=config.output.hull_dir,
        workers=config.runtime.workers,
        skip_existing=config.output.skip_existing,
        max_source_height=config.input.max_height,
        asset_timeout_seconds=config.runtime.asset_timeout_seconds,
        plots_dir=config.output.plots_dir,
        runtime_info=runtime_info,
    )


def apply_overrides(config: AppConfig, args: argparse.Namespace) -> AppConfig:
    output = config.output
    if args.hull_dir or args.plots_dir or args.no_skip_existing:
        output = replace(
            output,
            hull_dir=Path(args.hull_dir).resolve() if args.hull_dir else output.hull_dir,
            plots_dir=Path(args.plots_dir).resolve() if args.plots_dir else output.plots_dir,
            skip_existing=False if args.no_skip_existing else output.skip_existing,
        )

    runtime = config.runtime
    if args.work_dir or args.keep_temp or args.workers is not None or args.threads is not None:
        runtime = replace(
            runtime,
            work_dir=Path(args.work_dir).resolve() if args.work_dir else runtime.work_dir,
            keep_temp=True if args.keep_temp else runtime.keep_temp,
            workers=args.workers if args.workers is not None else runtime.workers,
            threads=args.threads if args.threads is not None else runtime.threads,
        )

    logging_config = config.logging
    if args.log_level:
        logging_config = replace(logging_config, level=args.log_level)
    return replace(config, output=output, runtime=runtime, logging=logging_config)


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_arg_parser()
    args = parser.parse_args(argv)
    try:
        config = apply_overrides(load_config(args.config), args)
        configure_logging(config.logging.level, config.logging.file)
        overrides = [Path(item).resolve() for item in args.source] if args.source else None
        sources = collect_sources(config, overrides)
        outcomes = run_pipeline(config, sources)
    except (ConfigError, EncodeError, VmafError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1

    counts = {state: 0 for state in ("complete", "partial", "skipped", "failed")}
    for outcome in outcomes:
        counts[outcome.state] += 1
        line = f"{outcome.state:>8}  {outcome.source_path.name}"
        if outcome.report_path is not None and outcome.state != "skipped":
            line += f"  {outcome.hull_length} points -> {outcome.report_path}"
        if outcome.error:
            line += f"  ({outcome.error})"
        print(line)

    print(
        f"Processed {len(outcomes)} sources: {counts['complete']} complete, "
        f"{counts['partial']} partial, {counts['skipped']} skipped, {counts['failed']} failed"
    )
    return 0 if counts["partial"] == 0 and counts["failed"] == 0 else 1
