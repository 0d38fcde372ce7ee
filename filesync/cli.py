#!/usr/bin/env python3
"""
File Sync CLI

Command-line interface for the single-file TCP transfer tool.

Usage:
    filesync run -configFile cfg.json                     # Role from config
    filesync run -configFile cfg.json -fileName a.txt -filePath sub
    filesync serve --save-path ./received                 # Start a server
    filesync send FILE DEST --server 10.0.0.2             # Upload a file
    filesync checksum FILE                                # Digest of a local file
    filesync config                                       # Example config
"""

import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.progress import Progress, BarColumn, TextColumn, DownloadColumn
from rich.panel import Panel
from rich.logging import RichHandler

from .config import Config, ConfigError, load_config, EXAMPLE_CONFIG
from .file import compute_checksum
from .node import run_server, run_client

console = Console()


def setup_logging(verbose: bool = False):
    """Configure logging with rich output."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_time=False, show_path=False)]
    )


def _load(config_file: Optional[str]) -> Config:
    """Load config or exit before any role is started."""
    try:
        config = load_config(Path(config_file) if config_file else None)
    except ConfigError as e:
        console.print(f"[red]Config error: {e}[/red]")
        sys.exit(1)

    # -v wins over the configured level
    root = logging.getLogger()
    if root.level != logging.DEBUG:
        root.setLevel(config.log_level.upper())

    return config


def _serve(config: Config):
    console.print(Panel.fit(
        f"[bold green]File Sync Server[/bold green]\n\n"
        f"Listen: [yellow]{config.listen_host}:{config.port_number}[/yellow]\n"
        f"Save root: [blue]{config.save_path}[/blue]\n"
        f"Checksum: [cyan]{config.checksum_algorithm}[/cyan] "
        f"after {config.verify_delay:g}s",
        title="Server Info"
    ))
    console.print("\n[dim]Press Ctrl+C to stop[/dim]\n")

    try:
        asyncio.run(run_server(config))
    except KeyboardInterrupt:
        console.print("\n[yellow]Shutting down...[/yellow]")
    except OSError as e:
        console.print(f"[red]✗ Server error: {e}[/red]")
        sys.exit(1)


def _send(config: Config, file_name: str, file_path: str):
    with Progress(
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        DownloadColumn(),
        console=console,
    ) as progress:
        task = progress.add_task(f"Uploading {Path(file_name).name}...", total=None)

        def update_progress(sent: int, total: int):
            progress.update(task, completed=sent, total=total)

        try:
            sent = asyncio.run(run_client(config, file_name, file_path, update_progress))
        except OSError as e:
            console.print(f"[red]✗ Upload failed: {e}[/red]")
            sys.exit(1)

    console.print(f"[green]✓ Sent {sent:,} bytes to {config.server}[/green]")


@click.group()
@click.option('-v', '--verbose', is_flag=True, help='Enable verbose output')
def cli(verbose):
    """File Sync - upload one file per connection to a file sync server."""
    setup_logging(verbose)


@cli.command()
@click.option('-configFile', '--config-file', 'config_file', required=True,
              help='JSON config file')
@click.option('-fileName', '--file-name', 'file_name', default='',
              help='Local file to upload (client role)')
@click.option('-filePath', '--file-path', 'file_path', default='',
              help='Destination directory on the server (client role)')
def run(config_file, file_name, file_path):
    """Serve or upload, depending on the config's "server" setting."""
    config = _load(config_file)

    if config.is_server:
        _serve(config)
        return

    if not file_name:
        console.print("[red]Client role needs -fileName[/red]")
        sys.exit(2)

    _send(config, file_name, file_path)


@cli.command()
@click.option('--config-file', type=click.Path(), help='JSON config file')
@click.option('--port', help='Listen port, e.g. ":8469"')
@click.option('--save-path', type=click.Path(), help='Save root directory')
@click.option('--create-dirs', is_flag=True, help='Create missing destination directories')
def serve(config_file, port, save_path, create_dirs):
    """Start a server."""
    config = _load(config_file)
    config.server = ''

    if port:
        config.port = port
    if save_path:
        config.save_path = Path(save_path)
    if create_dirs:
        config.create_dirs = True

    try:
        config.validate()
    except ConfigError as e:
        console.print(f"[red]Config error: {e}[/red]")
        sys.exit(1)

    _serve(config)


@cli.command()
@click.argument('file_name', type=click.Path(exists=True, dir_okay=False))
@click.argument('file_path', default='')
@click.option('--config-file', type=click.Path(), help='JSON config file')
@click.option('--server', help='Server host')
@click.option('--port', help='Server port, e.g. ":8469"')
def send(file_name, file_path, config_file, server, port):
    """Upload FILE_NAME into FILE_PATH on the server."""
    config = _load(config_file)

    if server:
        config.server = server
    if port:
        config.port = port

    if config.is_server:
        console.print("[red]No server given (use --server or a config file)[/red]")
        sys.exit(2)

    try:
        config.validate()
    except ConfigError as e:
        console.print(f"[red]Config error: {e}[/red]")
        sys.exit(1)

    _send(config, file_name, file_path)


@cli.command()
@click.argument('file_name', type=click.Path(exists=True, dir_okay=False))
@click.option('--algorithm', '-a', default='sha256', help='hashlib algorithm name')
def checksum(file_name, algorithm):
    """Print the digest of a local file."""
    try:
        digest = asyncio.run(compute_checksum(Path(file_name), algorithm))
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(2)

    click.echo(f"{digest}  {file_name}")


@cli.command()
@click.option('--output', '-o', type=click.Path(), help='Write a default config here')
def config(output):
    """Show an example configuration file."""
    if output:
        Config().save(Path(output))
        console.print(f"[green]✓ Wrote {output}[/green]")
        return

    click.echo(EXAMPLE_CONFIG)


if __name__ == '__main__':
    cli()
