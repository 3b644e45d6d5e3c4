"""
quadboot CLI

Command-line firmware updater for the quadcontrol serial bootloader.
"""

import dataclasses
import json
import logging
import signal
import sys
from pathlib import Path
from typing import Optional

import serial.tools.list_ports
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.progress import BarColumn, Progress, TextColumn
from rich.table import Table

from quadboot.core.actions import flash_image, flash_serial, inspect_image
from quadboot.core.messages import remediation_for
from quadboot.core.progress import ProgressReporter
from quadboot.core.results import Outcome, UpdateResult
from quadboot.core.safety import (
    CONFIRMATION_TOKEN,
    WritePermissionError,
    create_cli_safety_context,
    require_write_permission,
)
from quadboot.protocol.config import (
    DEFAULT_BAUDRATE,
    DEFAULT_TARGET,
    TARGETS,
    BootConfig,
    get_target,
)

# Setup logging (stderr, so --json output stays parseable)
logging.basicConfig(
    level=logging.INFO,
    format="%(message)s",
    handlers=[RichHandler(rich_tracebacks=True, console=Console(stderr=True))],
)
logger = logging.getLogger("quadboot")

# Setup Rich console
console = Console()

app = typer.Typer(help="quadboot - firmware updater for the quadcontrol bootloader")


def print_header(text: str) -> None:
    """Print fancy header."""
    console.print(Panel(text, expand=False, style="bold blue"))


def print_success(text: str) -> None:
    console.print(f"✓ {text}", style="green")


def print_warning(text: str) -> None:
    console.print(f"⚠️  {text}", style="yellow")


def print_error(text: str) -> None:
    console.print(f"❌ {text}", style="red")


def parse_int(value: Optional[str], label: str) -> Optional[int]:
    """Parse an integer from string (supports decimal and hex)."""
    if value is None:
        return None
    try:
        return int(value, 0)
    except ValueError:
        raise typer.BadParameter(f"Invalid {label}: {value}")


def resolve_target(name: str, soft_reset: bool = True) -> BootConfig:
    try:
        config = get_target(name)
    except KeyError as e:
        raise typer.BadParameter(e.args[0])
    if not soft_reset:
        config = dataclasses.replace(config, soft_reset=False)
    return config


def print_result(result: UpdateResult, verbose: bool = False) -> None:
    """Render an UpdateResult for humans."""
    if result.outcome == Outcome.DONE:
        if result.operation == "flash":
            print_success(
                f"Flashed {result.bytes_len:,} bytes to {result.region} "
                f"(CRC-32 0x{result.image_crc:08X})"
            )
    elif result.outcome == Outcome.DRY_RUN:
        print_success(f"Dry run: {result.bytes_len:,} bytes at {result.region}")
        console.print("Re-run with [cyan]--write[/cyan] to flash the device.")
    elif result.cancelled:
        print_warning("Update cancelled")
    else:
        for err in result.errors:
            print_error(err)
        hint = remediation_for(result.error_kind)
        if hint:
            console.print(f"   → {hint}", style="cyan")

    for warn in result.warnings:
        print_warning(warn)

    if result.timings:
        table = Table(title="Timings")
        table.add_column("Phase", style="cyan")
        table.add_column("ms", style="green", justify="right")
        for name, ms in result.timings.items():
            table.add_row(name, f"{ms:.0f}")
        console.print(table)

    if verbose and result.logs:
        console.print()
        for line in result.logs:
            console.print(line, style="dim", markup=False)


def emit_json(result: UpdateResult) -> None:
    typer.echo(json.dumps(result.to_dict(), indent=2))


def confirm_flash(
    write_flag: bool,
    port: str,
    target_region: str,
    bytes_length: int,
    confirm_token: Optional[str] = None,
) -> None:
    """
    Require --write AND a typed (or --confirm) token before flashing.

    Raises:
        WritePermissionError: If the flash is not permitted
    """
    ctx = create_cli_safety_context(write_flag, port=port, confirmation_token=confirm_token)

    def show_details(details: dict) -> None:
        console.print()
        console.print(Panel(
            f"[bold yellow]⚠️  FLASH CONFIRMATION REQUIRED[/bold yellow]\n\n"
            f"Port:          {details.get('port', '-')}\n"
            f"Target:        {details.get('target_region', 'Unknown')}\n"
            f"Bytes:         {details.get('bytes_length', 0):,}\n"
            f"\nThe current application will be erased.",
            title="Firmware Update",
            expand=False,
        ))

    def prompt_confirmation(prompt_text: str) -> str:
        return typer.prompt(prompt_text)

    ctx.show_details = show_details
    ctx.prompt_confirmation = prompt_confirmation
    require_write_permission(ctx, target_region=target_region, bytes_length=bytes_length)


@app.command()
def ports() -> None:
    """List available serial ports."""
    print_header("Available Serial Ports")

    ports_list = list(serial.tools.list_ports.comports())
    if not ports_list:
        print_warning("No serial ports found")
        return

    table = Table(title="Serial Ports")
    table.add_column("Port", style="cyan")
    table.add_column("Device", style="magenta")
    table.add_column("Description", style="green")

    for port in ports_list:
        table.add_row(port.device, port.name or "-", port.description or "-")

    console.print(table)


@app.command()
def targets() -> None:
    """List known bootloader targets."""
    print_header("Bootloader Targets")

    table = Table(title="Targets")
    table.add_column("Target", style="cyan")
    table.add_column("App Base", style="yellow")
    table.add_column("Sectors", style="magenta")
    table.add_column("Description", style="green")

    for name, cfg in sorted(TARGETS.items()):
        sectors = f"{cfg.sectors.start}-{cfg.sectors.stop - 1}"
        table.add_row(name, f"0x{cfg.app_base:08X}", sectors, cfg.description or "-")

    console.print(table)
    console.print(f"Default target: [cyan]{DEFAULT_TARGET}[/cyan]")


@app.command()
def inspect(
    image: str = typer.Argument(..., help="Intel HEX image (or .bin with --base)"),
    base: Optional[str] = typer.Option(None, "--base", help="Load address for raw binaries"),
    json_output: bool = typer.Option(False, "--json", help="Print the result as JSON"),
) -> None:
    """Show the memory sections of a firmware image."""
    result = inspect_image(image, parse_int(base, "base"))

    if json_output:
        emit_json(result)
        sys.exit(0 if result.ok else 1)

    print_header(f"Image: {Path(image).name}")
    if result.ok:
        table = Table(title="Sections")
        table.add_column("#", style="dim")
        table.add_column("Start", style="cyan")
        table.add_column("End", style="cyan")
        table.add_column("Size", style="green", justify="right")
        table.add_column("CRC-32", style="magenta")
        for i, section in enumerate(result.metadata.get("sections", [])):
            table.add_row(
                str(i), section["start"], section["end"],
                f"{section['size']:,}", section["crc32"],
            )
        console.print(table)
    print_result(result)
    sys.exit(0 if result.ok else 1)


@app.command()
def flash(
    image: str = typer.Argument(..., help="Intel HEX image (or .bin with --base)"),
    port: str = typer.Option(..., "--port", "-p", help="Serial port"),
    baud: int = typer.Option(DEFAULT_BAUDRATE, "--baud", "-b", help="Baud rate"),
    target: str = typer.Option(DEFAULT_TARGET, "--target", "-t", help="Target profile"),
    base: Optional[str] = typer.Option(None, "--base", help="Load address for raw binaries"),
    write: bool = typer.Option(
        False,
        "--write",
        help="Required flag to actually flash the device (otherwise dry run)",
    ),
    confirm: Optional[str] = typer.Option(
        None,
        "--confirm",
        help=f"Non-interactive confirmation token (must be '{CONFIRMATION_TOKEN}')",
    ),
    no_soft_reset: bool = typer.Option(
        False, "--no-soft-reset", help="Don't send the shell reset before entry"
    ),
    json_output: bool = typer.Option(False, "--json", help="Print the result as JSON"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    """Flash a firmware image through the bootloader."""
    if verbose:
        logger.setLevel(logging.DEBUG)

    config = resolve_target(target, soft_reset=not no_soft_reset)
    base_val = parse_int(base, "base")

    # Load and validate first, never touching the port
    plan = flash_image(None, image, config, base_address=base_val, dry_run=True)
    if not write or not plan.ok:
        plan.metadata["port"] = port
        if json_output:
            emit_json(plan)
        else:
            print_header("Flash (dry run)")
            print_result(plan, verbose)
        sys.exit(0 if plan.ok else 1)

    if not json_output:
        print_header(f"Flash {Path(image).name} via {port}")

    try:
        confirm_flash(write, port, plan.region, plan.bytes_len, confirm)
    except WritePermissionError as e:
        if json_output:
            emit_json(UpdateResult(
                outcome=Outcome.FAILED, operation="flash", image=image, errors=[e.reason],
            ))
        else:
            print_error(e.reason)
            if confirm is None:
                console.print(f"For scripted use pass: --write --confirm {CONFIRMATION_TOKEN}")
        sys.exit(1)

    reporter = ProgressReporter()
    previous_handler = signal.signal(signal.SIGINT, lambda signum, frame: reporter.cancel())
    try:
        if json_output:
            result = flash_serial(port, image, baud, config, reporter, base_val)
        else:
            with Progress(
                TextColumn("[{task.description}]"),
                BarColumn(),
                TextColumn("[{task.percentage:.0f}%]"),
                console=console,
            ) as progress:
                task = progress.add_task("Starting", total=100)
                reporter.callback = lambda pct, text: progress.update(
                    task, completed=pct, description=text
                )
                result = flash_serial(port, image, baud, config, reporter, base_val)
    finally:
        signal.signal(signal.SIGINT, previous_handler)

    if json_output:
        emit_json(result)
    else:
        print_result(result, verbose)
    sys.exit(0 if result.ok else 1)


def main() -> None:
    """Main entry point."""
    try:
        app()
    except KeyboardInterrupt:
        console.print("\n[yellow]Operation cancelled by user[/yellow]")
        sys.exit(0)
    except Exception as e:
        console.print(f"\n[red bold]Fatal error:[/red bold] {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
