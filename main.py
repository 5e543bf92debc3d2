"""Main entry point for unitcalc"""

import asyncio
from pathlib import Path
from typing import Optional

import click

from config import settings
from core.enums import DisplayPreference, ExportFormat
from core.exceptions import UnitCalcError
from engine.workbook import Workbook
from formats import get_exporter, load_workbook, save_workbook, sheet_to_dataframe
from logging_config import configure_logging
from protocol.api import run_http
from protocol.server import RpcServer
from units.currency import CurrencyRateTable
from units.library import default_library
from units.parser import parse_unit


def _load(path: Path) -> Workbook:
    try:
        return load_workbook(path)
    except UnitCalcError as e:
        raise click.ClickException(str(e))


@click.group()
@click.option('--log-level', default=None, help='Logging level (defaults to LOG_LEVEL)')
@click.option('--json-logs/--console-logs', default=None, help='Render log events as JSON')
def cli(log_level: Optional[str], json_logs: Optional[bool]):
    """Unit-aware spreadsheet calculations"""
    configure_logging(
        log_level or settings.LOG_LEVEL,
        settings.LOG_JSON if json_logs is None else json_logs,
    )


@cli.command()
@click.argument('file', type=click.Path(dir_okay=False, path_type=Path))
@click.option('--name', default=None, help='Workbook name')
@click.option('--force', is_flag=True, help='Overwrite an existing file')
def new(file: Path, name: Optional[str], force: bool):
    """Create an empty workbook"""
    if file.exists() and not force:
        raise click.ClickException(f"{file} already exists (use --force to overwrite)")
    workbook = Workbook(name=name or file.stem)
    save_workbook(workbook, file)
    click.echo(f"✓ Created {file}")


@cli.command(name='set')
@click.argument('file', type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument('cell')
@click.argument('value')
@click.option('--sheet', default=None, help='Sheet name (defaults to the active sheet)')
def set_cell(file: Path, cell: str, value: str, sheet: Optional[str]):
    """Write raw input (number with unit, text or =formula) into CELL"""
    workbook = _load(file)
    try:
        sheet_name = workbook.sheet(sheet).name
        written = workbook.set_cell(sheet_name, cell, value)
        save_workbook(workbook, file)
    except UnitCalcError as e:
        raise click.ClickException(str(e))

    shown = workbook.display(sheet_name, cell) if written is not None else ""
    click.echo(f"{sheet_name}!{cell.upper()} = {shown}")
    if written is not None and written.warning:
        click.echo(f"  ⚠ {written.warning}", err=True)


@cli.command()
@click.argument('file', type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option('--sheet', default=None, help='Sheet name (defaults to the active sheet)')
@click.option(
    '--preference',
    type=click.Choice([p.value for p in DisplayPreference]),
    default=None,
    help='Display units as entered, metric or imperial',
)
def show(file: Path, sheet: Optional[str], preference: Optional[str]):
    """Print a sheet as a grid of displayed values"""
    workbook = _load(file)
    try:
        df = sheet_to_dataframe(
            workbook, sheet, DisplayPreference(preference) if preference else None
        )
    except UnitCalcError as e:
        raise click.ClickException(str(e))
    if df.empty:
        click.echo("(empty sheet)")
        return
    click.echo(df.to_string())


@cli.command()
@click.argument('value', type=float)
@click.argument('from_unit')
@click.argument('to_unit')
def convert(value: float, from_unit: str, to_unit: str):
    """Convert VALUE from one unit to another"""
    library = default_library()
    try:
        source = parse_unit(from_unit, library)
        target = parse_unit(to_unit, library)
        converted = library.convert(value, source, target, CurrencyRateTable.from_settings())
    except UnitCalcError as e:
        raise click.ClickException(str(e))
    click.echo(f"{value:g} {source.symbol} = {converted:.{settings.DISPLAY_PRECISION}f} {target.symbol}")


@cli.command()
@click.argument('file', type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument('out', type=click.Path(dir_okay=False, path_type=Path))
@click.option(
    '--format', 'export_format',
    type=click.Choice([f.value for f in ExportFormat]),
    default=None,
    help='Export format (defaults to the output file extension)',
)
@click.option('--sheet', default=None, help='Sheet to export (csv only)')
def export(file: Path, out: Path, export_format: Optional[str], sheet: Optional[str]):
    """Export a workbook to xlsx or csv"""
    if export_format is None:
        suffix = out.suffix.lstrip('.').lower()
        if suffix not in {f.value for f in ExportFormat}:
            raise click.ClickException(f"Cannot infer export format from {out.name}; use --format")
        export_format = suffix
    workbook = _load(file)
    fmt = ExportFormat(export_format)
    options = {"sheet_name": sheet} if fmt == ExportFormat.CSV else {}
    exporter = get_exporter(fmt, **options)
    try:
        exporter.export(workbook, out)
    except UnitCalcError as e:
        raise click.ClickException(str(e))
    click.echo(f"✓ Exported {file} to {out}")


@cli.command()
@click.argument('file', type=click.Path(dir_okay=False, path_type=Path))
@click.option('--http', is_flag=True, help='Serve JSON-RPC over HTTP instead of stdio')
@click.option('--host', default=None, help='HTTP host (defaults to RPC_HOST)')
@click.option('--port', type=int, default=None, help='HTTP port (defaults to RPC_PORT)')
def serve(file: Path, http: bool, host: Optional[str], port: Optional[int]):
    """Expose a workbook over JSON-RPC, saving after each change"""
    if file.exists():
        workbook = _load(file)
    else:
        workbook = Workbook(name=file.stem)
        save_workbook(workbook, file)
    server = RpcServer(workbook, path=file)
    if http:
        run_http(server, host, port)
    else:
        asyncio.run(server.serve_stdio())


if __name__ == "__main__":
    cli()
