"""Command line interface for the emsurvey package."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

import typer

from .errors import RepositoryError, SurveyError
from .field.acquisition import Phase
from .field.config import FieldConfig, load_config
from .field.feedback import SilentTonePlayer, SoundDeviceTonePlayer, StaticLocation, TonePlayer
from .field.link import LinkClient
from .field.repository import JsonFileStore, SurveyRepository
from .field.session import SurveySession
from .models import FREQUENCIES_HZ, GpsFix, SurveyConstants
from .plotting import generate_plots
from .reporting import export_project, project_dataframe

logger = logging.getLogger(__name__)

app = typer.Typer(context_settings={"help_option_names": ["-h", "--help"]}, help="EM survey field tools.")

ConfigOption = typer.Option(None, "--config", "-c", help="Path to field config JSON.")
OverrideOption = typer.Option(None, "--set", help="Override config keys, e.g. --set link.port=/dev/rfcomm0")


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging.")) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _load(config_path: Optional[Path], override: Optional[List[str]]) -> FieldConfig:
    try:
        return load_config(config_path, override or None)
    except (OSError, ValueError) as exc:
        raise typer.BadParameter(f"Failed to load config: {exc}", param_hint="--config") from exc


def _repository(cfg: FieldConfig) -> SurveyRepository:
    return SurveyRepository(JsonFileStore(cfg.storage.path), key=cfg.storage.key)


def _tone_player(cfg: FieldConfig) -> TonePlayer:
    if not (cfg.feedback.signal_generator or cfg.feedback.beep):
        return SilentTonePlayer()
    try:
        return SoundDeviceTonePlayer(sample_rate=cfg.feedback.sample_rate)
    except RuntimeError as exc:
        if cfg.feedback.signal_generator:
            raise typer.BadParameter(str(exc), param_hint="--signal-generator") from exc
        logger.debug("Audio cues disabled: %s", exc)
        return SilentTonePlayer()


def _status(session: SurveySession) -> str:
    state = session.state
    freq = state.frequency
    recorded = state.measurements.get(freq)
    values = f"I={recorded.tx_current} A V={recorded.rx_voltage} mV" if recorded else "I=-- V=--"
    link = "connected" if session.link.connected else "disconnected"
    return (
        f"Station {state.station_number} | {freq} Hz ({state.frequency_index + 1}/{len(FREQUENCIES_HZ)}) "
        f"| {values} | {len(state.measurements)}/{len(FREQUENCIES_HZ)} recorded | device {link}"
    )


def _run_loop(session: SurveySession) -> None:
    actions = "[f]etch [n]ext [p]revious [c]omplete [q]uit"
    while session.state.phase is Phase.ACQUIRING:
        typer.echo(_status(session))
        choice = typer.prompt(actions, default="f").strip().lower()[:1]
        try:
            if choice == "f":
                measurement = session.fetch()
                if measurement is None:
                    typer.echo("Device connected. Fetch again to acquire.")
            elif choice == "n":
                if session.state.is_last_frequency:
                    typer.echo("Last frequency reached; use [c]omplete to save the station.")
                else:
                    session.advance(1)
            elif choice == "p":
                session.advance(-1)
            elif choice == "c":
                saved = session.complete_station()
                typer.echo(f"Station {saved} saved successfully")
            elif choice == "q":
                if session.state.measurements and not typer.confirm("Discard unsaved readings?", default=False):
                    continue
                session.finish()
            else:
                typer.echo(f"Unknown action '{choice}'")
        except SurveyError as exc:
            typer.echo(f"[error] {exc}")


@app.command()
def survey(
    config_path: Optional[Path] = ConfigOption,
    override: Optional[List[str]] = OverrideOption,
    name: Optional[str] = typer.Option(None, "--name", help="Project name."),
    transect: Optional[str] = typer.Option(None, "--transect", help="Transect number."),
    interstation: Optional[str] = typer.Option(None, "--interstation", help="Station spacing (m)."),
    resistivity: Optional[str] = typer.Option(None, "--resistivity", help="Average resistivity (ohm-m)."),
    intercoil: Optional[str] = typer.Option(None, "--intercoil", help="Coil separation (m)."),
    project_index: Optional[int] = typer.Option(None, "--project-index", help="Edit a stored project."),
    station: Optional[int] = typer.Option(None, "--station", help="Station to re-acquire when editing."),
    signal_generator: bool = typer.Option(False, "--signal-generator", help="Play the excitation tone locally."),
    latitude: Optional[float] = typer.Option(None, "--lat", help="Fixed latitude for this session."),
    longitude: Optional[float] = typer.Option(None, "--lon", help="Fixed longitude for this session."),
) -> None:
    """Walk a transect interactively, station by station."""

    cfg = _load(config_path, override)
    if signal_generator:
        cfg.feedback.signal_generator = True
    fix = cfg.location
    if latitude is not None and longitude is not None:
        fix = GpsFix(latitude=latitude, longitude=longitude)
    repository = _repository(cfg)
    options = dict(
        location=StaticLocation(fix),
        tones=_tone_player(cfg),
        signal_generator=cfg.feedback.signal_generator,
        beep=cfg.feedback.beep,
    )
    link = LinkClient(cfg.link)

    if project_index is not None:
        if station is None:
            raise typer.BadParameter("--station is required with --project-index", param_hint="--station")
        try:
            session = SurveySession.resume(link, repository, project_index, station, **options)
        except RepositoryError as exc:
            typer.echo(f"[error] {exc}")
            raise typer.Exit(code=1) from exc
    else:
        session = SurveySession(link, repository, **options)
        while True:
            name = name or typer.prompt("Project name")
            raw = {
                "transect": transect or typer.prompt("Transect number"),
                "inter_station": interstation or typer.prompt("Interstation (m)"),
                "average_resistivity": resistivity or typer.prompt("Resistivity (ohm-m)"),
                "inter_coil": intercoil or typer.prompt("Intercoil (m)"),
            }
            try:
                session.start(name, SurveyConstants.from_mapping(raw))
                break
            except SurveyError as exc:
                typer.echo(f"[error] {exc}")
                name = transect = interstation = resistivity = intercoil = None

    with session:
        try:
            _run_loop(session)
        except (KeyboardInterrupt, typer.Abort):
            logger.info("Stopping survey (Ctrl+C)")


@app.command("list")
def list_projects(
    config_path: Optional[Path] = ConfigOption,
    override: Optional[List[str]] = OverrideOption,
) -> None:
    """List stored projects."""

    cfg = _load(config_path, override)
    try:
        projects = _repository(cfg).list()
    except RepositoryError as exc:
        typer.echo(f"[error] {exc}")
        raise typer.Exit(code=1) from exc
    if not projects:
        typer.echo("No stored projects")
        return
    for idx, project in enumerate(projects):
        stations = sorted(project.stations)
        span = f"{stations[0]}-{stations[-1]}" if stations else "none"
        typer.echo(
            f"{idx}: {project.name} (transect {project.constants.transect}, "
            f"{len(stations)} stations: {span})"
        )


@app.command()
def show(
    index: int = typer.Argument(..., help="Project index from 'list'."),
    config_path: Optional[Path] = ConfigOption,
    override: Optional[List[str]] = OverrideOption,
) -> None:
    """Print the measurement table of a stored project."""

    cfg = _load(config_path, override)
    try:
        project = _repository(cfg).get(index)
    except RepositoryError as exc:
        typer.echo(f"[error] {exc}")
        raise typer.Exit(code=1) from exc
    df = project_dataframe(project)
    typer.echo(project.name)
    typer.echo(df.to_string(index=False) if not df.empty else "No stations recorded")


@app.command()
def export(
    index: int = typer.Argument(..., help="Project index from 'list'."),
    out_dir: Path = typer.Option(..., "--out", help="Output directory for the report."),
    plot: bool = typer.Option(False, "--plot", help="Also draw sounding curves."),
    config_path: Optional[Path] = ConfigOption,
    override: Optional[List[str]] = OverrideOption,
) -> None:
    """Write a stored project as CSV plus a markdown report."""

    cfg = _load(config_path, override)
    try:
        project = _repository(cfg).get(index)
    except RepositoryError as exc:
        typer.echo(f"[error] {exc}")
        raise typer.Exit(code=1) from exc

    figure_path = None
    if plot:
        try:
            figure_path = generate_plots(project, out_dir)
        except RuntimeError as exc:
            typer.echo(f"[warning] plotting skipped: {exc}")

    export_project(project, out_dir, figure_path=figure_path)
    typer.echo(f"Report written to {out_dir}")


def run() -> None:
    app()


if __name__ == "__main__":  # pragma: no cover
    run()
