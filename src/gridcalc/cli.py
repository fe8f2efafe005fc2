"""Command-line interface for gridcalc."""

from __future__ import annotations

import io
from pathlib import Path
from typing import Any

import click
import polars as pl

from gridcalc import __version__
from gridcalc.address import CellAddress, parse_range
from gridcalc.errors import SheetError
from gridcalc.sheet import Sheet


@click.group()
@click.version_option(version=__version__, prog_name="gridcalc")
@click.option(
    "--config-dir",
    default=".",
    type=click.Path(file_okay=False, path_type=Path),
    help="Directory holding gridcalc.yaml.",
)
@click.option("--log-dir", default=None, type=click.Path(file_okay=False, path_type=Path), help="Write structured events here.")
@click.pass_context
def main(ctx: click.Context, config_dir: Path, log_dir: Path | None) -> None:
    """gridcalc -- reactive in-memory spreadsheet.

    Sheets are read from record files: one ``<address> <length> <content>``
    record per line.
    """
    from gridcalc.config import load_config
    from gridcalc.logging import set_log_dir

    try:
        config = load_config(config_dir)
    except (OSError, ValueError) as e:
        raise click.ClickException(f"Bad configuration: {e}")
    if log_dir is not None:
        config["log_dir"] = log_dir
    set_log_dir(
        config.get("log_dir") or None,
        fsync=bool(config.get("logging_fsync", False)),
        tail_bytes=config.get("logging_tail_bytes"),
    )
    ctx.obj = config


# ---------------------------------------------------------------------------
# helpers
# ---------------------------------------------------------------------------


def _new_sheet(config: dict[str, Any]) -> Sheet:
    return Sheet(precision=config["display_precision"])


def _load_sheet(config: dict[str, Any], path: Path, skip_errors: bool) -> Sheet:
    from gridcalc.errors import InvalidAddressError
    from gridcalc.logging import EventType, emit_error, emit_info
    from gridcalc.logging.events import BAD_RECORD, INVALID_ADDRESS
    from gridcalc.protocol import ingest

    sheet = _new_sheet(config)
    try:
        with path.open("rb") as f:
            count = ingest(
                sheet,
                f,
                max_length=config["max_content_length"],
                skip_errors=skip_errors,
            )
    except SheetError as e:
        emit_error(
            EventType.sheet_load_failed,
            f"Failed to load {path.name}: {e}",
            {"path": str(path), "cells": len(sheet)},
            error_code=INVALID_ADDRESS if isinstance(e, InvalidAddressError) else BAD_RECORD,
        )
        raise click.ClickException(f"{path}: {e}")
    emit_info(
        EventType.sheet_loaded,
        f"Loaded {count} records from {path.name}",
        {"path": str(path), "records": count, "cells": len(sheet)},
    )
    return sheet


def _parse_range_opt(sheet: Sheet, text: str | None) -> tuple[CellAddress, CellAddress]:
    if text is None:
        return CellAddress("A", 1), sheet.bounds()
    try:
        return parse_range(text)
    except SheetError as e:
        raise click.BadParameter(str(e), param_hint="--range")


def _render(sheet: Sheet, start: CellAddress, end: CellAddress, edit: bool) -> str:
    df = sheet.to_frame(start, end, edit=edit)
    with pl.Config(
        tbl_rows=-1,
        tbl_cols=-1,
        tbl_width_chars=10_000,
        fmt_str_lengths=4096,
        tbl_hide_dataframe_shape=True,
        tbl_hide_column_data_types=True,
    ):
        return str(df)


def _export(sheet: Sheet, start: CellAddress, end: CellAddress) -> str:
    buf = io.BytesIO()
    sheet.write_range(start, end, buf)
    return buf.getvalue().decode("utf-8")


# ---------------------------------------------------------------------------
# Init
# ---------------------------------------------------------------------------


@main.command()
@click.argument("directory", default=".", type=click.Path(file_okay=False, path_type=Path))
def init(directory: Path) -> None:
    """Write a commented gridcalc.yaml into DIRECTORY."""
    from gridcalc.config import write_default_config

    directory.mkdir(parents=True, exist_ok=True)
    try:
        path = write_default_config(directory)
    except FileExistsError as e:
        raise click.ClickException(str(e))
    click.echo(f"Created {path}")


# ---------------------------------------------------------------------------
# Show / export / csv
# ---------------------------------------------------------------------------


@main.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--range", "cell_range", default=None, help="Range to show, e.g. A1:C3.")
@click.option("--edit", is_flag=True, help="Show formulas instead of values.")
@click.option("--skip-errors", is_flag=True, help="Skip malformed records.")
@click.pass_obj
def show(config: dict[str, Any], file: Path, cell_range: str | None, edit: bool, skip_errors: bool) -> None:
    """Load FILE and print the sheet as a table."""
    sheet = _load_sheet(config, file, skip_errors)
    start, end = _parse_range_opt(sheet, cell_range)
    click.echo(_render(sheet, start, end, edit))


@main.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--range", "cell_range", default=None, help="Range to export, e.g. A1:C3.")
@click.option("--skip-errors", is_flag=True, help="Skip malformed records.")
@click.pass_obj
def export(config: dict[str, Any], file: Path, cell_range: str | None, skip_errors: bool) -> None:
    """Load FILE and write its records back out in canonical order."""
    from gridcalc.logging import EventType, emit_info

    sheet = _load_sheet(config, file, skip_errors)
    start, end = _parse_range_opt(sheet, cell_range)
    out = _export(sheet, start, end)
    click.echo(out, nl=False)
    emit_info(
        EventType.sheet_exported,
        f"Exported {start}:{end} from {file.name}",
        {"path": str(file), "range": f"{start}:{end}"},
    )


@main.command("csv")
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("output", type=click.Path(dir_okay=False, path_type=Path))
@click.option("--edit", is_flag=True, help="Write formulas instead of values.")
@click.option("--skip-errors", is_flag=True, help="Skip malformed records.")
@click.pass_obj
def csv_cmd(config: dict[str, Any], file: Path, output: Path, edit: bool, skip_errors: bool) -> None:
    """Load FILE and write it to OUTPUT as CSV."""
    from gridcalc.logging import EventType, emit_info

    sheet = _load_sheet(config, file, skip_errors)
    sheet.write_csv(output, edit=edit)
    click.echo(f"Wrote {output}")
    emit_info(
        EventType.sheet_exported,
        f"Wrote CSV {output.name}",
        {"path": str(output), "bounds": str(sheet.bounds())},
    )


# ---------------------------------------------------------------------------
# Interactive loop
# ---------------------------------------------------------------------------

REPL_HELP = """\
Commands:
  SET <address> <content>   set a cell (formulas start with '=')
  CLEAR <address>           empty a cell
  EDIT                      toggle showing formulas instead of values
  SHOW [A1:C3]              print the sheet
  EXPORT [A1:C3]            print records for the sheet
  HELP                      this text
  QUIT                      leave"""


def _run_command(sheet: Sheet, state: dict[str, bool], line: str) -> str | None:
    """Execute one loop command.  Returns text to print, or ``None`` to quit."""
    parts = line.split(" ", 2)
    cmd = parts[0].upper()

    if cmd == "SET":
        if len(parts) < 3:
            raise click.UsageError("SET expects 2 arguments - SET <address> <content>")
        sheet.set_content(parts[1], parts[2])
        return "OK"
    if cmd == "CLEAR":
        if len(parts) < 2:
            raise click.UsageError("CLEAR expects an address")
        sheet.set_content(parts[1], "")
        return "OK"
    if cmd == "EDIT":
        state["edit"] = not state["edit"]
        return f"EDITMODE = {state['edit']}"
    if cmd == "SHOW":
        start, end = _parse_range_opt(sheet, parts[1] if len(parts) > 1 else None)
        return _render(sheet, start, end, state["edit"])
    if cmd == "EXPORT":
        start, end = _parse_range_opt(sheet, parts[1] if len(parts) > 1 else None)
        return _export(sheet, start, end).rstrip("\n")
    if cmd == "HELP":
        return REPL_HELP
    if cmd in ("QUIT", "EXIT"):
        return None
    raise click.UsageError(f"Unknown command {parts[0]}")


@main.command()
@click.option("--load", "load_file", default=None, type=click.Path(exists=True, dir_okay=False, path_type=Path), help="Start from a record file.")
@click.option("--watch", is_flag=True, help="Print a record for every recalculated cell.")
@click.pass_obj
def repl(config: dict[str, Any], load_file: Path | None, watch: bool) -> None:
    """Edit a sheet interactively, one command per line on stdin."""
    from gridcalc.logging import EventType, emit_warning
    from gridcalc.protocol import format_record

    sheet = _load_sheet(config, load_file, False) if load_file else _new_sheet(config)
    if watch:
        sheet.on_cell_updated = lambda addr, cell: click.echo(
            format_record(addr, cell.display_content()).decode("utf-8"), nl=False
        )

    state = {"edit": False}
    stdin = click.get_text_stream("stdin")
    while True:
        click.echo("gridcalc> ", nl=False)
        line = stdin.readline()
        if not line:
            click.echo()
            return
        line = line.rstrip("\r\n")
        if not line.strip():
            continue
        try:
            out = _run_command(sheet, state, line)
        except (SheetError, click.UsageError, click.BadParameter) as e:
            msg = e.format_message() if isinstance(e, click.ClickException) else str(e)
            click.echo(f"Error: {msg}", err=True)
            emit_warning(EventType.command_failed, msg, {"command": line})
            continue
        if out is None:
            return
        click.echo(out)


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


@main.command("events")
@click.argument("log_dir", required=False, type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.option("--level", default=None, type=click.Choice(["info", "warning", "error"]), help="Filter by level.")
@click.option("--type", "event_type", default=None, help="Filter by event type.")
@click.option("--limit", default=100, type=int, help="Maximum events to show.")
@click.pass_obj
def events_cmd(
    config: dict[str, Any],
    log_dir: Path | None,
    level: str | None,
    event_type: str | None,
    limit: int,
) -> None:
    """Show the structured event log in LOG_DIR (default: configured log_dir)."""
    from gridcalc.logging import EventSink

    log_dir = log_dir or config.get("log_dir")
    if not log_dir:
        raise click.ClickException("No log directory given and none configured.")
    sink = EventSink(Path(log_dir))
    events = sink.read_events(level=level, event_type=event_type, limit=limit)

    if not events:
        click.echo("No events found.")
        return

    for evt in events:
        ts = evt.get("ts", "")
        lvl = evt.get("level", "").upper()
        etype = evt.get("event_type", "")
        msg = evt.get("message", "")
        err = evt.get("error_code")
        line = f"[{ts}] {lvl:7s} {etype}: {msg}"
        if err:
            line += f"  ({err})"
        click.echo(line)
