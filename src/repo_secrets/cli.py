"""CLI for repo-secrets - passphrase-encrypted secrets in a git repository."""

import argparse
import getpass
import logging
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, TextIO

from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from . import __version__
from . import config
from . import secrets
from .errors import ConfigError, FilesystemError, SecretsError
from .git import Git, clone_dir, prepare, redact_url


@dataclass
class Context:
    """Everything a command talks to: git and the output streams.

    ``stdout`` receives raw values and keys; the consoles carry rich
    formatted status output.
    """

    git: Git = field(default_factory=Git)
    stdout: TextIO = field(default_factory=lambda: sys.stdout)
    console: Console = field(default_factory=Console)
    err_console: Console = field(default_factory=lambda: Console(stderr=True))
    environ: Mapping[str, str] = field(default_factory=lambda: os.environ)


def setup_logging(verbose: bool, console: Console) -> None:
    logger = logging.getLogger("repo_secrets")
    logger.handlers.clear()
    logger.addHandler(RichHandler(console=console, show_time=False, show_path=False))
    logger.setLevel(logging.DEBUG if verbose else logging.WARNING)


def print_error(ctx: Context, error: Exception) -> None:
    problems = error.problems if isinstance(error, ConfigError) else [str(error)]
    for problem in problems:
        ctx.err_console.print(f"[red]Error:[/red] {escape(problem)}")


def open_store(ctx: Context):
    """Validate configuration and bring the local clone up to date."""
    settings = config.load_settings(ctx.environ, ctx.git)
    store_dir = prepare(settings.repo_url, settings.cache_dir, ctx.git)
    return settings, store_dir


def cmd_list(args, ctx: Context) -> int:
    """List all secret keys (values are never decrypted)."""
    try:
        _, store_dir = open_store(ctx)
        for key in secrets.list_keys(store_dir):
            ctx.stdout.write(key + "\n")
        return 0

    except SecretsError as e:
        print_error(ctx, e)
        return 1


def cmd_get(args, ctx: Context) -> int:
    """Print the full secret value."""
    try:
        settings, store_dir = open_store(ctx)
        value = secrets.get_secret(store_dir, args.key, settings.passphrase)
        # Output raw value; rich would rewrite tabs and control characters
        ctx.stdout.write(value + "\n")
        return 0

    except SecretsError as e:
        print_error(ctx, e)
        return 1


def read_value(args, ctx: Context):
    """
    Work out the value for `set`.

    The value is read from:
    1. the VALUE argument (visible in shell history)
    2. --from-file (optionally deleting the file afterwards)
    3. Interactive hidden prompt
    Returns None if no usable value was given; raises FilesystemError if
    the source file cannot be read or deleted.
    """
    if args.value is not None:
        return args.value

    if args.from_file:
        file_path = Path(args.from_file).expanduser()
        try:
            value = file_path.read_text(encoding="utf-8").rstrip("\n")
        except (OSError, UnicodeDecodeError) as e:
            raise FilesystemError(f"failed to read value from {str(file_path)!r}: {e}") from e

        if args.delete_file:
            try:
                file_path.unlink()
            except OSError as e:
                raise FilesystemError(f"failed to delete source file {str(file_path)!r}: {e}") from e
            ctx.err_console.print(f"[dim]Deleted source file: {escape(str(file_path))}[/dim]")
        return value

    ctx.err_console.print(f"[cyan]Setting secret:[/cyan] {escape(args.key)}")
    value = getpass.getpass("Enter value (hidden): ")
    if not value:
        ctx.err_console.print("[red]Error:[/red] Empty value not allowed")
        return None

    confirm = getpass.getpass("Confirm value (hidden): ")
    if value != confirm:
        ctx.err_console.print("[red]Error:[/red] Values don't match")
        return None

    return value


def cmd_set(args, ctx: Context) -> int:
    """Encrypt a secret and publish it."""
    try:
        settings, store_dir = open_store(ctx)

        value = read_value(args, ctx)
        if value is None:
            return 1

        if secrets.set_secret(store_dir, args.key, value, settings.passphrase, ctx.git):
            ctx.err_console.print(f"[green]Set:[/green] {escape(args.key)}")
        else:
            ctx.err_console.print(f"[dim]Unchanged:[/dim] {escape(args.key)}")
        return 0

    except SecretsError as e:
        print_error(ctx, e)
        return 1


def cmd_delete(args, ctx: Context) -> int:
    """Delete a secret and publish the removal."""
    try:
        _, store_dir = open_store(ctx)
        secrets.delete_secret(store_dir, args.key, ctx.git)
        ctx.err_console.print(f"[green]Deleted:[/green] {escape(args.key)}")
        return 0

    except SecretsError as e:
        print_error(ctx, e)
        return 1


def cmd_status(args, ctx: Context) -> int:
    """Show status and configuration."""
    ctx.console.print("[bold]repo-secrets status[/bold]\n")

    git_ok = config.check_git_installed(ctx.git)
    values = config.describe(ctx.environ)

    table = Table(show_header=True)
    table.add_column("Component", style="cyan")
    table.add_column("Status")
    table.add_column("Path/Info", style="dim")

    table.add_row(
        "git",
        "[green]installed[/green]" if git_ok else "[red]not found[/red]",
        "" if git_ok else "install git and put it on PATH"
    )

    repo = values["repo"]
    table.add_row(
        "remote",
        "[green]configured[/green]" if repo else "[red]not set[/red]",
        escape(redact_url(repo)) if repo else config.REPO_ENV
    )

    table.add_row(
        "passphrase",
        "[green]set[/green]" if values["passphrase"] else "[red]not set[/red]",
        config.PASS_ENV
    )

    config_file = Path(values["config_file"])
    table.add_row(
        "config file",
        "[green]exists[/green]" if config_file.exists() else "[yellow]not found[/yellow]",
        escape(str(config_file))
    )

    if repo:
        clone = clone_dir(Path(values["cache_dir"]), repo)
        table.add_row(
            "local clone",
            "[green]exists[/green]" if (clone / ".git").exists() else "[yellow]not cloned[/yellow]",
            escape(str(clone))
        )

    ctx.console.print(table)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="repo-secrets",
        description="Passphrase-encrypted secrets stored in a git repository",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=f"""
Examples:
  repo-secrets status                 # Check setup
  repo-secrets list                   # List keys
  repo-secrets get db/password        # Print a secret
  repo-secrets set db/password        # Set via hidden input
  repo-secrets set api_key s3cr3t     # Set from argument
  repo-secrets del api_key            # Delete a secret

Environment:
  {config.REPO_ENV}     URL of the git secret store
  {config.PASS_ENV}     Passphrase for encrypting and decrypting secrets
  {config.CACHE_ENV}    Override cache directory for the local clone
  {config.CONFIG_ENV}   Override config file location
        """
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log git activity")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # status
    subparsers.add_parser("status", help="Show status and configuration")

    # list
    subparsers.add_parser("list", aliases=["ls"], help="List keys")

    # get
    get_parser = subparsers.add_parser("get", help="Print the value of a key")
    get_parser.add_argument("key", help="Secret key")

    # set
    set_parser = subparsers.add_parser("set", help="Set a key (hidden input if no value given)")
    set_parser.add_argument("key", help="Secret key")
    set_parser.add_argument("value", nargs="?", help="Value (visible in shell history)")
    set_parser.add_argument("--from-file", help="Read value from file")
    set_parser.add_argument("--delete-file", action="store_true", help="Delete source file after reading")

    # del
    delete_parser = subparsers.add_parser("del", aliases=["delete"], help="Delete a key")
    delete_parser.add_argument("key", help="Secret key")

    return parser


COMMANDS = {
    "status": cmd_status,
    "list": cmd_list,
    "ls": cmd_list,
    "get": cmd_get,
    "set": cmd_set,
    "del": cmd_delete,
    "delete": cmd_delete,
}


def main(argv=None, ctx: Context = None) -> int:
    """Main entry point."""
    ctx = ctx or Context()
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(args.verbose, ctx.err_console)

    if not args.command:
        parser.print_help()
        return 0

    return COMMANDS[args.command](args, ctx)


if __name__ == "__main__":
    sys.exit(main())
