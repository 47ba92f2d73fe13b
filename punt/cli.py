"""Typer CLI entrypoint."""

from __future__ import annotations

import logging
from pathlib import Path

import typer

from punt.core.context import Context
from punt.core.errors import PuntError
from punt.core.operation import Operation
from punt.core.target import Target

app = typer.Typer(help="Flash microcontrollers running the punt USB bootloader")


def _serial_option() -> typer.models.OptionInfo:
    return typer.Option(None, "--serial", "-s", help="Serial number of the target")


def _build_context() -> Context:
    context = Context()
    for warning in getattr(context, "load_warnings", ()):
        typer.echo(f"Warning: {warning}", err=True)
    return context


def _open_target(serial: str | None) -> Target:
    context = _build_context()
    return context.open(context.pick_target(serial))


def _parse_int(value: str | None, name: str) -> int | None:
    if value is None:
        return None
    try:
        return int(value, 0)
    except ValueError:
        raise typer.BadParameter(f"'{value}' is not a number", param_hint=name) from None


def _run(operation: Operation, label: str) -> None:
    if operation.total == 0:
        return
    with typer.progressbar(length=operation.total, label=label) as progress:
        last = 0
        for done in operation:
            progress.update(done - last)
            last = done


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log every USB transaction"),
) -> None:
    if verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(name)s: %(message)s")


@app.command("list")
def list_targets() -> None:
    """List connected targets in bootloader mode."""
    try:
        context = _build_context()
        targets = context.find_targets()
        if not targets:
            typer.echo("No targets found")
            return
        for target in targets:
            typer.echo(str(target))
    except PuntError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("info")
def info(serial: str | None = _serial_option()) -> None:
    """Show information about the target's bootloader."""
    try:
        with _open_target(serial) as target:
            typer.echo(f"Target: {target.info}")
            for line in target.bootloader_info.describe():
                typer.echo(line)
    except PuntError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("erase")
def erase(
    serial: str | None = _serial_option(),
    start: str | None = typer.Option(None, "--start", help="First address (default: application base)"),
    length: str | None = typer.Option(None, "--length", help="Bytes to erase (default: to end of flash)"),
) -> None:
    """Erase the pages covering an area of application flash."""
    start_address = _parse_int(start, "--start")
    length_bytes = _parse_int(length, "--length")
    try:
        with _open_target(serial) as target:
            bootloader_info = target.bootloader_info
            if start_address is None:
                start_address = bootloader_info.application_base
            if length_bytes is None:
                length_bytes = bootloader_info.application_end - start_address
            operation = target.erase_area(start_address, length_bytes)
            _run(operation, "Erasing")
            typer.echo(f"Erased {operation.total} page(s)")
    except PuntError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("flash")
def flash(
    file: Path = typer.Argument(..., exists=True, dir_okay=False, help="Raw binary image"),
    serial: str | None = _serial_option(),
    address: str | None = typer.Option(None, "--address", help="Start address (default: application base)"),
    verify: bool = typer.Option(True, "--verify/--no-verify", help="Compare CRCs after programming"),
    exit_bootloader: bool = typer.Option(False, "--exit", help="Start the application when done"),
) -> None:
    """Erase, program, and verify a binary image."""
    start_address = _parse_int(address, "--address")
    image = file.read_bytes()
    try:
        with _open_target(serial) as target:
            if start_address is None:
                start_address = target.bootloader_info.application_base
            _run(target.erase_area(start_address, len(image)), "Erasing")
            _run(target.program_at(image, start_address), "Programming")
            if verify:
                target.verify(image, start_address)
                typer.echo("Verified")
            typer.echo(f"Flashed {len(image)} bytes at 0x{start_address:08x}")
            if exit_bootloader:
                target.exit_bootloader()
                typer.echo("Started application")
    except PuntError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("read")
def read(
    file: Path = typer.Argument(..., dir_okay=False, help="Output file"),
    length: str = typer.Option(..., "--length", help="Bytes to read"),
    serial: str | None = _serial_option(),
    address: str | None = typer.Option(None, "--address", help="Start address (default: application base)"),
) -> None:
    """Read target memory into a file."""
    start_address = _parse_int(address, "--address")
    length_bytes = _parse_int(length, "--length")
    if length_bytes < 0:
        raise typer.BadParameter("must not be negative", param_hint="--length")
    try:
        with _open_target(serial) as target:
            if start_address is None:
                start_address = target.bootloader_info.application_base
            buffer = bytearray(length_bytes)
            _run(target.read_at(buffer, start_address), "Reading")
        file.write_bytes(buffer)
        typer.echo(f"Read {len(buffer)} bytes from 0x{start_address:08x} into {file}")
    except PuntError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("verify")
def verify_image(
    file: Path = typer.Argument(..., exists=True, dir_okay=False, help="Raw binary image"),
    serial: str | None = _serial_option(),
    address: str | None = typer.Option(None, "--address", help="Start address (default: application base)"),
) -> None:
    """Compare a binary image against target memory by CRC."""
    start_address = _parse_int(address, "--address")
    image = file.read_bytes()
    try:
        with _open_target(serial) as target:
            if start_address is None:
                start_address = target.bootloader_info.application_base
            target.verify(image, start_address)
        typer.echo("Verified")
    except PuntError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("exit")
def exit_bootloader(serial: str | None = _serial_option()) -> None:
    """Leave the bootloader and start the application."""
    try:
        with _open_target(serial) as target:
            target.exit_bootloader()
        typer.echo("Started application")
    except PuntError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


def run() -> None:
    app()


if __name__ == "__main__":
    run()
