"""Plotting helpers for survey projects."""
from __future__ import annotations

from pathlib import Path
from typing import Any

from .models import Project
from .reporting import project_dataframe


def generate_plots(project: Project, output_dir: Path) -> Path:
    df = project_dataframe(project)
    if df.empty:
        raise RuntimeError("project has no stations to plot")
    plt = _require_matplotlib()
    output_dir.mkdir(parents=True, exist_ok=True)
    fig, axes = plt.subplots(1, 2, figsize=(12, 6), sharey=True)

    for station, group in df.groupby("station"):
        label = f"{station} ({group['distance'].iloc[0]:g} m)"
        axes[0].plot(group["calculatedConductivity"], group["calculatedDepth"], marker="o", label=label)
        axes[1].plot(group["calculatedResistivity"], group["calculatedDepth"], marker="o", label=label)

    axes[0].set_xlabel("Conductivity")
    axes[0].set_ylabel("Depth [m]")
    axes[0].set_title("Conductivity sounding")
    axes[1].set_xlabel("Resistivity [Ω·m]")
    axes[1].set_xscale("log")
    axes[1].set_title("Resistivity sounding")
    for ax in axes:
        ax.grid(True, alpha=0.3)
    axes[1].legend(title="Station", fontsize="small")

    fig.suptitle(project.name)
    fig.tight_layout()
    out_path = output_dir / "soundings.png"
    fig.savefig(out_path, dpi=150)
    plt.close(fig)
    return out_path


def _require_matplotlib() -> Any:
    try:
        import matplotlib

        matplotlib.use("Agg", force=True)
        import matplotlib.pyplot as plt
    except ImportError as exc:  # pragma: no cover - optional dependency
        raise RuntimeError("matplotlib is required for plotting (pip install .[plot])") from exc
    return plt
