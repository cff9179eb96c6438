from __future__ import annotations

from pathlib import Path
from typing import Any


class PlotError(RuntimeError):
    """Raised when plot generation fails."""


def generate_hull_plot(report: dict[str, Any], plots_dir: Path) -> list[Path]:
    try:
        import matplotlib

        matplotlib.use("Agg")
        import matplotlib.pyplot as plt
    except ImportError as exc:
        raise PlotError(
            "Plot generation requires matplotlib. Install it and run again."
        ) from exc

    hull = report.get("hull", [])
    if not isinstance(hull, list) or not hull:
        raise PlotError("Report does not contain any hull points to plot")

    scored = [point for point in hull if point.get("quality_score") is not None]
    if not scored:
        raise PlotError("Report hull has no scored points to plot")

    source_path = Path(str(report.get("source", {}).get("path", "source")))
    plots_dir.mkdir(parents=True, exist_ok=True)

    by_resolution: dict[tuple[int, int], list[dict[str, Any]]] = {}
    for point in scored:
        resolution = point["resolution"]
        key = (int(resolution["width"]), int(resolution["height"]))
        by_resolution.setdefault(key, []).append(point)

    fig, ax = plt.subplots(figsize=(9, 6))
    ax.plot(
        [point["rate"] for point in scored],
        [point["quality_score"] for point in scored],
        linewidth=1.5,
        color="tab:gray",
        alpha=0.6,
        label="Hull",
    )
    cmap = plt.get_cmap("tab10")
    # Tallest first so the legend reads top of the ladder down.
    for idx, ((width, height), points) in enumerate(
        sorted(by_resolution.items(), key=lambda item: item[0][1], reverse=True)
    ):
        ax.scatter(
            [point["rate"] for point in points],
            [point["quality_score"] for point in points],
            marker="o",
            s=50,
            color=cmap(idx % 10),
            edgecolors="black",
            linewidths=0.5,
            zorder=3,
            label=f"{width}x{height}",
        )

    title = f"Convex Hull ({source_path.name})"
    if report.get("status") == "partial":
        title += " [partial]"
    ax.set_xlabel("Bitrate (kbps)")
    ax.set_ylabel("VMAF")
    ax.set_title(title)
    ax.grid(True, alpha=0.25)
    ax.legend(loc="lower right", title="Resolution")
    output_png = plots_dir / f"{source_path.stem}_hull.png"
    output_svg = plots_dir / f"{source_path.stem}_hull.svg"
    fig.tight_layout()
    fig.savefig(output_png, dpi=160)
    fig.savefig(output_svg)
    plt.close(fig)
    return [output_png, output_svg]
