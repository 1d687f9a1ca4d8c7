#!/usr/bin/env python3
"""
ark-cli: command-line tool for ARK resource roots

Usage:
    ark-cli list --entry-path --tags       # List indexed resources
    ark-cli backup                         # Snapshot every root's storages
    ark-cli collisions                     # Report ids shared by several files
    ark-cli file read ROOT tags ID         # Read one attribute value
    ark-cli storage list tags              # Dump an attribute storage
"""

from __future__ import annotations

import difflib
import sys
from collections.abc import Sequence
from pathlib import Path
from typing import Any, NoReturn

import click
from click.exceptions import ClickException, UsageError

from . import __version__ as ARK_VERSION
from .errors import ArkError


# ─────────────────────────────────────────────────────────────────────────────
# Error Handling
# ─────────────────────────────────────────────────────────────────────────────


def _handle_error(
    ctx: click.Context,
    error: Exception,
    fallback_message: str | None = None,
    exit_code: int = 1,
) -> NoReturn:
    """Report an error (as JSON with --json-errors) and exit."""
    from .errors import format_error_json

    json_errors = ctx.obj.get("json_errors", False) if ctx.obj else False

    if isinstance(error, ArkError):
        if json_errors:
            click.echo(error.to_json(), err=True)
        else:
            click.echo(f"Error: {error.message}", err=True)
    else:
        message = fallback_message or str(error)
        if json_errors:
            click.echo(format_error_json("INTERNAL_ERROR", message), err=True)
        else:
            click.echo(f"Error: {message}", err=True)

    sys.exit(exit_code)


def get_error_code_for_exception(exc: Exception) -> str:
    """Map Click exceptions to error codes."""
    if isinstance(exc, click.BadParameter):
        return "INVALID_ARGUMENT"
    elif isinstance(exc, click.MissingParameter):
        return "MISSING_ARGUMENT"
    elif isinstance(exc, click.NoSuchOption):
        return "UNKNOWN_OPTION"
    elif isinstance(exc, UsageError):
        return "USAGE_ERROR"
    elif isinstance(exc, ClickException):
        return "CLI_ERROR"
    return "UNKNOWN_ERROR"


class JsonErrorGroup(click.Group):
    """Click group that formats errors as JSON when --json-errors is set.

    Also suggests the closest command name for typos.
    """

    def resolve_command(self, ctx, args):
        try:
            return super().resolve_command(ctx, args)
        except UsageError as e:
            cmd_name = args[0] if args else ""
            if cmd_name and "No such command" in str(e):
                matches = difflib.get_close_matches(
                    cmd_name, self.list_commands(ctx), n=1, cutoff=0.6
                )
                if matches:
                    raise UsageError(f"No such command '{cmd_name}'. Did you mean '{matches[0]}'?")
            raise

    def main(
        self,
        args: Sequence[str] | None = None,
        prog_name: str | None = None,
        complete_var: str | None = None,
        standalone_mode: bool = True,
        **extra: Any,
    ) -> Any:
        """Catch argument parsing errors and render them as JSON on request."""
        from .errors import format_error_json

        argv = list(args) if args is not None else list(sys.argv[1:])

        if "--json-errors" not in argv:
            return super().main(args, prog_name, complete_var, standalone_mode, **extra)

        # --json-errors is a global flag; accept it anywhere on the command line
        argv = [a for a in argv if a != "--json-errors"]
        argv.insert(0, "--json-errors")

        try:
            return super().main(
                argv,
                prog_name,
                complete_var,
                standalone_mode=False,
                **extra,
            )
        except ClickException as e:
            code = get_error_code_for_exception(e)
            click.echo(format_error_json(code, e.format_message()), err=True)
            raise SystemExit(1)
        except SystemExit:
            raise
        except Exception as e:
            click.echo(format_error_json("INTERNAL_ERROR", str(e)), err=True)
            raise SystemExit(1)


def _load_app(ctx: click.Context) -> None:
    """Make sure the per-user application directory and id exist."""
    from .config import load_app_id

    try:
        load_app_id()
    except (ArkError, OSError) as e:
        _handle_error(ctx, e)


# ─────────────────────────────────────────────────────────────────────────────
# Main CLI Group
# ─────────────────────────────────────────────────────────────────────────────


@click.group(cls=JsonErrorGroup)
@click.version_option(version=ARK_VERSION, prog_name="ark-cli")
@click.option(
    "--json-errors",
    "json_errors",
    is_flag=True,
    help="Output errors as JSON (for programmatic use)",
)
@click.option(
    "--quiet",
    "-q",
    is_flag=True,
    envvar="ARK_QUIET",
    help="Suppress warnings, show only errors and essential output",
)
@click.pass_context
def cli(ctx: click.Context, json_errors: bool, quiet: bool):
    """ark-cli: manage ARK resource roots.

    \b
    Quick start:
      ark-cli list                        # Contents of every indexed file
      ark-cli list --entry-path --tags    # Paths with their tags
      ark-cli backup                      # Back up all configured roots
    """
    from ._logging import configure_logging, set_quiet_mode

    configure_logging()

    ctx.ensure_object(dict)
    ctx.obj["json_errors"] = json_errors
    ctx.obj["quiet"] = quiet

    if quiet:
        set_quiet_mode(True)


@cli.command("help")
@click.argument("command", required=False)
@click.pass_context
def help_cmd(ctx: click.Context, command: str | None):
    """Show help for a command (alias: ark-cli --help)."""
    parent = ctx.parent
    if parent is None:
        click.echo(ctx.get_help())
        return

    if not command:
        click.echo(parent.get_help())
        return

    cmd = cli.get_command(parent, command)
    if cmd is None:
        raise UsageError(f"No such command '{command}'.")
    click.echo(cmd.get_help(click.Context(cmd, info_name=command, parent=parent)))


# ─────────────────────────────────────────────────────────────────────────────
# List Command
# ─────────────────────────────────────────────────────────────────────────────


@cli.command("list")
@click.option(
    "--entry",
    type=click.Choice(["path", "id", "both", "link"]),
    help="What identifies each resource (default: link, the file contents)",
)
@click.option("--entry-id", is_flag=True, help="Show resource ids")
@click.option("--entry-path", is_flag=True, help="Show resource paths")
@click.option("--root-dir", type=click.Path(path_type=Path), help="Root to list (default: cwd)")
@click.option("--modified", is_flag=True, help="Show last modification time")
@click.option("--tags", is_flag=True, help="Show tags")
@click.option("--scores", is_flag=True, help="Show scores")
@click.option("--sort", type=click.Choice(["asc", "desc"]), help="Sort by modification time")
@click.option("--filter", "filter_tag", help="Only show resources with this tag")
@click.pass_context
def list_cmd(
    ctx: click.Context,
    entry: str | None,
    entry_id: bool,
    entry_path: bool,
    root_dir: Path | None,
    modified: bool,
    tags: bool,
    scores: bool,
    sort: str | None,
    filter_tag: str | None,
):
    """List the resources of a root.

    Sorting compares the rendered modification time as text, so combine
    --sort with --modified.

    \b
    Examples:
      ark-cli list --entry-id --entry-path
      ark-cli list --entry=path --tags --filter=work
      ark-cli list --entry-path --modified --sort=desc
    """
    from .config import provide_root
    from .listing import list_resources, resolve_entry_output
    from .models import ListOptions, SortOrder

    try:
        options = ListOptions(
            entry=resolve_entry_output(entry, entry_id, entry_path),
            tags=tags,
            scores=scores,
            modified=modified,
            sort=SortOrder(sort) if sort else None,
            filter=filter_tag,
        )
        _load_app(ctx)
        root = provide_root(root_dir)
        lines = list_resources(root, options)
    except (ArkError, OSError) as e:
        _handle_error(ctx, e)

    for line in lines:
        click.echo(line)


# ─────────────────────────────────────────────────────────────────────────────
# Backup Command
# ─────────────────────────────────────────────────────────────────────────────


@cli.command()
@click.option(
    "--roots-cfg",
    type=click.Path(path_type=Path),
    help="Roots config (default: ~/.config/ark/roots)",
)
@click.pass_context
def backup(ctx: click.Context, roots_cfg: Path | None):
    """Back up the storages of every configured root.

    Creates ~/.ark-backups/<timestamp>/ holding a `roots` manifest and one
    numbered copy per root. Roots without storages are reported and skipped;
    a failed copy is reported and the remaining roots are still copied.
    """
    from .backup import perform_backup

    _load_app(ctx)
    try:
        perform_backup(roots_cfg=roots_cfg, echo=click.echo)
    except (ArkError, OSError) as e:
        _handle_error(ctx, e)


# ─────────────────────────────────────────────────────────────────────────────
# Collisions Command
# ─────────────────────────────────────────────────────────────────────────────


@cli.command()
@click.option("--root-dir", type=click.Path(path_type=Path), help="Root to scan (default: cwd)")
@click.pass_context
def collisions(ctx: click.Context, root_dir: Path | None):
    """Report resource ids shared by more than one file."""
    from .config import provide_root
    from .index import provide_index

    _load_app(ctx)
    try:
        index = provide_index(provide_root(root_dir))
    except (ArkError, OSError) as e:
        _handle_error(ctx, e)

    found = index.collisions()
    click.echo(f"Indexed {len(index)} resources")
    if not found:
        click.echo("No collisions found.")
        return

    click.echo(f"{len(found)} collisions:")
    for resource_id, paths in found.items():
        click.echo(f"  {resource_id}")
        for path in paths:
            click.echo(f"    {path}")


# ─────────────────────────────────────────────────────────────────────────────
# File Commands
# ─────────────────────────────────────────────────────────────────────────────

STORAGE_TYPES = click.Choice(["file", "folder"])
FORMATS = click.Choice(["raw", "json"])


@cli.group("file")
def file_group():
    """Read and write attribute values of single resources."""


def _write_value(
    ctx: click.Context,
    mode: str,
    root_dir: Path,
    storage: str,
    resource_id: str,
    content: str,
    fmt: str | None,
    type_: str | None,
) -> None:
    from .config import provide_root
    from .index import parse_resource_id
    from .storage import Format, StorageType, open_storage

    _load_app(ctx)
    try:
        opened = open_storage(
            provide_root(root_dir), storage, StorageType(type_) if type_ else None
        )
        opened.load()
        rid = parse_resource_id(resource_id)
        write = opened.append if mode == "append" else opened.insert
        write(rid, content, Format(fmt) if fmt else Format.RAW)
    except (ArkError, OSError) as e:
        _handle_error(ctx, e)


@file_group.command("append")
@click.argument("root_dir", type=click.Path(path_type=Path))
@click.argument("storage")
@click.argument("resource_id", metavar="ID")
@click.argument("content")
@click.option("--format", "fmt", type=FORMATS, help="Content format (default: raw)")
@click.option("--type", "type_", type=STORAGE_TYPES, help="Storage type if not well-known")
@click.pass_context
def file_append(ctx, root_dir, storage, resource_id, content, fmt, type_):
    """Append CONTENT to the value stored for ID.

    Raw values are joined with a comma; JSON objects are merged and JSON
    arrays extended.
    """
    _write_value(ctx, "append", root_dir, storage, resource_id, content, fmt, type_)


@file_group.command("insert")
@click.argument("root_dir", type=click.Path(path_type=Path))
@click.argument("storage")
@click.argument("resource_id", metavar="ID")
@click.argument("content")
@click.option("--format", "fmt", type=FORMATS, help="Content format (default: raw)")
@click.option("--type", "type_", type=STORAGE_TYPES, help="Storage type if not well-known")
@click.pass_context
def file_insert(ctx, root_dir, storage, resource_id, content, fmt, type_):
    """Store CONTENT for ID, replacing the current value."""
    _write_value(ctx, "insert", root_dir, storage, resource_id, content, fmt, type_)


@file_group.command("read")
@click.argument("root_dir", type=click.Path(path_type=Path))
@click.argument("storage")
@click.argument("resource_id", metavar="ID")
@click.option("--type", "type_", type=STORAGE_TYPES, help="Storage type if not well-known")
@click.option("--version", "version", type=click.IntRange(min=1), help="Version to read")
@click.pass_context
def file_read(ctx, root_dir, storage, resource_id, type_, version):
    """Print the value stored for ID."""
    from .config import provide_root
    from .errors import StorageError
    from .index import parse_resource_id
    from .storage import StorageType, open_storage

    _load_app(ctx)
    try:
        opened = open_storage(
            provide_root(root_dir), storage, StorageType(type_) if type_ else None
        )
        value = opened.read(parse_resource_id(resource_id), version)
        if value is None:
            raise StorageError(
                "Could not read content from storage", {"id": resource_id}
            )
    except (ArkError, OSError) as e:
        _handle_error(ctx, e)

    click.echo(value)


# ─────────────────────────────────────────────────────────────────────────────
# Storage Commands
# ─────────────────────────────────────────────────────────────────────────────


@cli.group("storage")
def storage_group():
    """Inspect whole attribute storages."""


@storage_group.command("list")
@click.argument("storage", required=False)
@click.option("--root-dir", type=click.Path(path_type=Path), help="Root (default: cwd)")
@click.option("--type", "type_", type=STORAGE_TYPES, help="Storage type if not well-known")
@click.option("--versions", is_flag=True, help="Show every version (folder storages)")
@click.pass_context
def storage_list(ctx, storage, root_dir, type_, versions):
    """List the contents of STORAGE (tags, scores, properties, ... or a path)."""
    from .config import provide_root
    from .errors import ConfigurationError, ErrorCode
    from .storage import StorageType, open_storage

    try:
        if not storage:
            raise ConfigurationError(ErrorCode.MISSING_ARGUMENT, "Storage was not provided")
        _load_app(ctx)
        opened = open_storage(
            provide_root(root_dir), storage, StorageType(type_) if type_ else None
        )
        opened.load()
        text = opened.list(versions)
    except (ArkError, OSError) as e:
        _handle_error(ctx, e)

    if text:
        click.echo(text)


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
