"""Report writers for survey projects."""
from __future__ import annotations

from pathlib import Path

import pandas as pd

from .models import FREQUENCIES_HZ, Project

COLUMNS = [
    "station",
    "distance",
    "frequency",
    "txCurrent",
    "rxVoltage",
    "latitude",
    "longitude",
    "calculatedDepth",
    "calculatedConductivity",
    "calculatedResistivity",
    "date",
    "time",
]


def project_dataframe(project: Project) -> pd.DataFrame:
    """Flatten *project* into one row per measurement, ordered by station."""

    rows = []
    for station in sorted(project.stations):
        for measurement in project.stations[station]:
            rows.append({"station": station, **measurement.to_dict()})
    df = pd.DataFrame(rows, columns=COLUMNS)
    if df.empty:
        return df
    order = {freq: idx for idx, freq in enumerate(FREQUENCIES_HZ)}
    df["_order"] = df["frequency"].map(order)
    df = df.sort_values(["station", "_order"], kind="mergesort").drop(columns="_order")
    df.reset_index(drop=True, inplace=True)
    return df


def export_project(
    project: Project,
    output_dir: Path,
    *,
    figure_path: Path | None = None,
) -> None:
    """Persist the measurement table and a markdown summary to *output_dir*."""

    output_dir.mkdir(parents=True, exist_ok=True)
    df = project_dataframe(project)
    df.to_csv(output_dir / "measurements.csv", index=False)
    _write_report_md(project, df, output_dir, figure_path=figure_path)


def _write_report_md(
    project: Project,
    df: pd.DataFrame,
    output_dir: Path,
    *,
    figure_path: Path | None,
) -> None:
    constants = project.constants
    lines: list[str] = []
    lines.append(f"# Survey Report: {project.name}")
    lines.append(f"*Transect:* {constants.transect}  ")
    lines.append(f"*Interstation:* {constants.inter_station:g} m  ")
    lines.append(f"*Average resistivity:* {constants.average_resistivity:g} Ω·m  ")
    lines.append(f"*Intercoil:* {constants.inter_coil:g} m  ")
    if project.gps is not None:
        lines.append(f"*Origin:* {project.gps.latitude:.6f}, {project.gps.longitude:.6f}  ")
    lines.append(f"*Stations:* {len(project.stations)}  ")
    lines.append("")

    lines.append("## Stations")
    lines.append("| Station | Distance (m) | Mean σ | Mean ρ (Ω·m) | Max depth (m) |")
    lines.append("| --- | ---: | ---: | ---: | ---: |")
    if not df.empty:
        summary = df.groupby("station").agg(
            distance=("distance", "first"),
            conductivity=("calculatedConductivity", "mean"),
            resistivity=("calculatedResistivity", "mean"),
            depth=("calculatedDepth", "min"),
        )
        for station, row in summary.iterrows():
            lines.append(
                f"| {station} | {row['distance']:.2f} | {row['conductivity']:.6g} | "
                f"{row['resistivity']:.6g} | {row['depth']:.2f} |"
            )
    lines.append("")

    if figure_path is not None:
        lines.append(f"![Sounding curves]({figure_path.name})")
        lines.append("")

    lines.append("### Notes")
    lines.append("- Depth is the skin-depth estimate from the average resistivity; negative values are below surface.")
    lines.append("- Max depth is the deepest (lowest frequency) estimate at each station.")

    (output_dir / "report.md").write_text("\n".join(lines), encoding="utf-8")
