"""Command line interface for hhx."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, NoReturn, Optional

import click
import yaml
from click.core import ParameterSource
from rich.console import Console
from rich.markup import escape
from rich.syntax import Syntax
from rich.table import Table

from hhx.cli_support import (
    absolute_argument,
    find_repo_root,
    format_size,
    group_by_directory,
    load_schema_file,
    parse_columns,
)
from hhx.config import ConfigError, ConfigManager, HhxConfig
from hhx.index import (
    Collection,
    CollectionType,
    FileRecord,
    HhxError,
    Index,
    IndexStore,
    Schema,
)

console = Console()
LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class CLIState:
    """Options captured by the top-level group and shared with subcommands."""

    repo: Optional[Path]
    verbose: bool
    quiet: bool
    quiet_explicit: bool


@dataclass(slots=True)
class Repository:
    """An opened repository: effective config, root, and loaded index."""

    config: HhxConfig
    root: Path
    store: IndexStore
    index: Index

    def save(self) -> None:
        self.store.save(self.root, self.index)


def _error_code(exc: Exception) -> str:
    name = type(exc).__name__
    if name.endswith("Error"):
        name = name[: -len("Error")]
    return re.sub(r"(?<!^)(?=[A-Z])", "_", name).lower()


def _handle_cli_error(
    message: str,
    *,
    code: str,
    json_output: bool,
    details: Any | None = None,
    original: Exception | None = None,
) -> NoReturn:
    """Emit a standardized error and terminate the command.

    Args:
        message: Human-readable error message.
        code: Machine-readable error identifier.
        json_output: Indicates whether JSON mode is active.
        details: Optional structured details to include in the payload.
        original: Original exception for chaining when not using JSON.

    Raises:
        SystemExit: When emitting JSON output.
        click.ClickException: For non-JSON flows.
    """
    if json_output:
        payload: dict[str, Any] = {"error": {"code": code, "message": message}}
        if details is not None:
            payload["error"]["details"] = details
        console.print_json(data=payload)
        raise SystemExit(1)

    if isinstance(original, click.ClickException):
        raise original

    raise click.ClickException(message) from original


def _fail(exc: HhxError, *, json_output: bool = False) -> NoReturn:
    _handle_cli_error(str(exc), code=_error_code(exc), json_output=json_output, original=exc)


def _state(ctx: click.Context) -> CLIState:
    return ctx.find_object(CLIState) or CLIState(
        repo=None, verbose=False, quiet=False, quiet_explicit=False
    )


def _emit(state: CLIState, message: Any, *, mode: str = "detail") -> None:
    """Print unless quiet mode suppresses it; errors always print."""
    if state.quiet and mode != "error":
        return
    console.print(message)


def _configure_logging(config: HhxConfig, verbose: bool) -> None:
    level = logging.DEBUG if verbose else getattr(logging, config.logging.level)
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")
    logging.getLogger("hhx").setLevel(level)


def _load_config(state: CLIState) -> HhxConfig:
    """Load the effective configuration and apply its logging and quiet defaults."""
    try:
        config = ConfigManager().load()
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc
    _configure_logging(config, state.verbose)
    if not state.quiet_explicit:
        state.quiet = config.cli.quiet_default
    return config


def _open_repository(state: CLIState) -> Repository:
    config = _load_config(state)
    store = IndexStore()
    root = find_repo_root(state.repo or Path.cwd(), store.base_dirname)
    index = store.load(root, excluded_dirs=config.scan.excluded_dirs)
    LOGGER.debug("Opened repository at %s", root)
    return Repository(config=config, root=root, store=store, index=index)


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(package_name="hhx")
@click.option(
    "--repo",
    type=click.Path(file_okay=False, path_type=Path),
    help="Start repository discovery here instead of the current directory.",
)
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
@click.option("--quiet", is_flag=True, help="Suppress non-error output.")
@click.pass_context
def cli(ctx: click.Context, repo: Optional[Path], verbose: bool, quiet: bool) -> None:
    """hhx tracks local file changes and stages them for upload to remote collections."""
    ctx.obj = CLIState(
        repo=repo,
        verbose=verbose,
        quiet=quiet,
        quiet_explicit=ctx.get_parameter_source("quiet") == ParameterSource.COMMANDLINE,
    )


@cli.command()
@click.argument(
    "path", default=".", type=click.Path(file_okay=False, path_type=Path), required=False
)
@click.option("--collection", "collection_name", help="Name of the default bucket collection.")
@click.pass_context
def init(ctx: click.Context, path: Path, collection_name: Optional[str]) -> None:
    """Initialize a repository at PATH with a default bucket collection."""
    state = _state(ctx)
    config = _load_config(state)
    root = path.expanduser().absolute()
    store = IndexStore()
    if (root / store.base_dirname).exists():
        raise click.ClickException(f"Repository already initialized at {root}.")

    name = collection_name or config.cli.default_collection
    index = Index(root, excluded_dirs=config.scan.excluded_dirs)
    try:
        index.add_collection(Collection(name=name, type=CollectionType.BUCKET, path=name))
        store.save(root, index)
    except HhxError as exc:
        _fail(exc)

    _emit(state, f"[green]Initialized empty hhx repository in {root / store.base_dirname}[/green]")
    _emit(state, f"Created default collection '{escape(name)}' for storing files.")


@cli.command()
@click.argument("paths", nargs=-1, required=True)
@click.option(
    "--collection", "collection_name", help="Associate the staged files with this collection."
)
@click.pass_context
def stage(ctx: click.Context, paths: tuple[str, ...], collection_name: Optional[str]) -> None:
    """Stage files or directories for the next upload."""
    state = _state(ctx)
    try:
        repo = _open_repository(state)
        if collection_name:
            repo.index.get_collection(collection_name)
        staged: list[str] = []
        for argument in paths:
            target = absolute_argument(argument)
            if not target.exists():
                raise click.ClickException(f"Cannot stage {argument}: no such file or directory.")
            if target.is_dir():
                _emit(state, f"Staging files in directory {escape(argument)}...")
                result = repo.index.stage_directory(
                    target, strict=repo.config.scan.strict_staging
                )
                staged.extend(result.staged)
                for diagnostic in result.diagnostics:
                    _emit(
                        state,
                        f"[yellow]Skipped {escape(diagnostic.path)}: "
                        f"{escape(diagnostic.message)}[/yellow]",
                        mode="warning",
                    )
            else:
                record = repo.index.stage_file(target)
                if record is not None:
                    staged.append(record.path)
        if collection_name:
            for path in staged:
                repo.index.assign_collection(path, collection_name)
        repo.save()
    except HhxError as exc:
        _fail(exc)

    summary = f"Staged {len(staged)} file(s)."
    if collection_name:
        summary = f"Staged {len(staged)} file(s) for collection '{escape(collection_name)}'."
    _emit(state, f"[green]{summary}[/green]", mode="summary")


@cli.command()
@click.argument("paths", nargs=-1, required=True)
@click.pass_context
def unstage(ctx: click.Context, paths: tuple[str, ...]) -> None:
    """Remove files or directories from the staging area."""
    state = _state(ctx)
    try:
        repo = _open_repository(state)
        removed: list[str] = []
        for argument in paths:
            target = absolute_argument(argument)
            if target.is_file():
                if repo.index.unstage_file(target):
                    removed.append(repo.index.relative_path(target))
            else:
                removed.extend(repo.index.unstage_directory(target))
        repo.save()
    except HhxError as exc:
        _fail(exc)

    for path in removed:
        _emit(state, f"Unstaged {escape(path)}")
    _emit(state, f"[green]Unstaged {len(removed)} file(s).[/green]", mode="summary")


def _status_sections(
    staged: list[FileRecord],
    modified: list[FileRecord],
    deleted: list[FileRecord],
    untracked: list[FileRecord],
) -> dict[str, Any]:
    return {
        "staged": [
            {
                "path": record.path,
                "change": "modified" if record.remote_url else "new",
                "size": record.size,
                "collection": record.collection,
            }
            for record in staged
        ],
        "modified": [record.path for record in modified],
        "deleted": [record.path for record in deleted],
        "untracked": [record.path for record in untracked],
    }


@cli.command()
@click.option("--json", "json_output", is_flag=True, help="Emit status information as JSON.")
@click.pass_context
def status(ctx: click.Context, json_output: bool) -> None:
    """Show staged changes, unstaged changes, and untracked files."""
    state = _state(ctx)
    try:
        repo = _open_repository(state)
        scan = repo.index.scan_working_directory()
        if scan.deleted_files:
            repo.save()
    except HhxError as exc:
        _fail(exc, json_output=json_output)

    staged = repo.index.get_staged_files()
    staged_hashes = {record.path: record.hash for record in staged}
    modified = [r for r in scan.modified_files if staged_hashes.get(r.path) != r.hash]
    untracked = [r for r in scan.new_files if staged_hashes.get(r.path) != r.hash]
    deleted = [r for r in repo.index.get_deleted_files() if r.path not in staged_hashes]
    modified.sort(key=lambda record: record.path)

    if json_output:
        payload = {
            "context": {
                "repo_root": repo.root.as_posix(),
                "remote": repo.config.remote.remote_name,
                "server_url": repo.config.remote.server_url,
                "default_collection": repo.index.default_collection or None,
            },
            **_status_sections(staged, modified, deleted, untracked),
            "counts": {
                "staged": len(staged),
                "not_staged": len(modified) + len(deleted),
                "untracked": len(untracked),
                "unchanged": scan.unchanged_count,
            },
            "diagnostics": [
                {"path": item.path, "message": item.message} for item in scan.diagnostics
            ],
        }
        console.print_json(data=payload)
        return

    remote = repo.config.remote
    _emit(state, f"On remote: {escape(remote.remote_name)} ({escape(remote.server_url)})\n")

    if staged:
        _emit(state, "Changes to be uploaded:")
        _emit(state, '  (use "hhx unstage <file>..." to unstage)\n')
        for record in staged:
            if record.remote_url:
                _emit(state, f"[yellow]\tmodified:   {escape(record.path)}[/yellow]")
            else:
                _emit(state, f"[green]\tnew file:   {escape(record.path)}[/green]")
        _emit(state, "")

    if modified or deleted:
        _emit(state, "Changes not staged for upload:")
        _emit(state, '  (use "hhx stage <file>..." to update what will be uploaded)\n')
        for record in modified:
            _emit(state, f"[yellow]\tmodified:   {escape(record.path)}[/yellow]")
        for record in deleted:
            _emit(state, f"[red]\tdeleted:    {escape(record.path)}[/red]")
        _emit(state, "")

    if untracked:
        _emit(state, "Untracked files:")
        _emit(state, '  (use "hhx stage <file>..." to include in what will be uploaded)\n')
        for files in group_by_directory(untracked).values():
            for path in files:
                _emit(state, f"[red]\t{escape(path)}[/red]")
        _emit(state, "")

    for diagnostic in scan.diagnostics:
        _emit(
            state,
            f"[yellow]Skipped {escape(diagnostic.path)}: {escape(diagnostic.message)}[/yellow]",
            mode="warning",
        )

    parts = []
    if staged:
        total = format_size(sum(record.size for record in staged))
        parts.append(f"{len(staged)} to be uploaded ({total})")
    if modified or deleted:
        parts.append(f"{len(modified) + len(deleted)} not staged")
    if untracked:
        parts.append(f"{len(untracked)} untracked")
    summary = ", ".join(parts) if parts else "No changes (working directory clean)"
    _emit(state, summary, mode="summary")


@cli.group()
def collection() -> None:
    """Manage collections (buckets and tables)."""


def _describe_schema(schema: Optional[Schema]) -> str:
    if schema is None:
        return "-"
    rendered = []
    for column in schema.columns:
        flags = [label for label, on in (("PK", column.primary_key), ("NULL", column.nullable)) if on]
        suffix = f" [{', '.join(flags)}]" if flags else ""
        rendered.append(f"{column.name} {column.type}{suffix}")
    return "\n".join(rendered)


@collection.command("list")
@click.option("--json", "json_output", is_flag=True, help="Emit collections as JSON.")
@click.pass_context
def collection_list(ctx: click.Context, json_output: bool) -> None:
    """List collections registered in the repository."""
    state = _state(ctx)
    try:
        repo = _open_repository(state)
    except HhxError as exc:
        _fail(exc, json_output=json_output)

    collections = repo.index.get_collections()
    default_name = repo.index.default_collection

    if json_output:
        console.print_json(
            data={
                "default_collection": default_name or None,
                "collections": [
                    {
                        **item.model_dump(mode="json", by_alias=True, exclude_none=True),
                        "files": len(repo.index.get_files_by_collection(item.name)),
                    }
                    for item in collections
                ],
            }
        )
        return

    if not collections:
        _emit(state, "No collections found.")
        _emit(state, "Use `hhx collection create <name> --type bucket` to create one.")
        return

    table = Table(title=f"Collections in {repo.root}")
    table.add_column("Name")
    table.add_column("Type")
    table.add_column("Path", overflow="fold")
    table.add_column("Schema")
    table.add_column("Files", justify="right")
    for item in collections:
        files = repo.index.get_files_by_collection(item.name)
        synced = sum(1 for record in files if record.remote_url)
        marker = " (default)" if item.name == default_name else ""
        table.add_row(
            escape(item.name) + marker,
            item.type.value,
            escape(item.path),
            escape(_describe_schema(item.schema_)),
            f"{synced}/{len(files)}",
        )
    _emit(state, table)


@collection.command("create")
@click.argument("name")
@click.option(
    "--type",
    "collection_type",
    type=click.Choice([kind.value for kind in CollectionType]),
    default=CollectionType.BUCKET.value,
    show_default=True,
    help="Kind of collection.",
)
@click.option("--path", "remote_path", help="Remote path or table name (defaults to NAME).")
@click.option("--columns", help='Table columns as "name:type[:pk][:null],...".')
@click.option(
    "--schema-file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="JSON file holding a table schema.",
)
@click.option("--default", "make_default", is_flag=True, help="Make this the default collection.")
@click.pass_context
def collection_create(
    ctx: click.Context,
    name: str,
    collection_type: str,
    remote_path: Optional[str],
    columns: Optional[str],
    schema_file: Optional[Path],
    make_default: bool,
) -> None:
    """Create a bucket or table collection named NAME."""
    state = _state(ctx)
    if columns and schema_file:
        raise click.UsageError("--columns and --schema-file are mutually exclusive.")

    schema: Optional[Schema] = None
    if schema_file is not None:
        schema = load_schema_file(schema_file)
    elif columns:
        schema = parse_columns(columns)

    try:
        repo = _open_repository(state)
        repo.index.add_collection(
            Collection(
                name=name,
                type=CollectionType(collection_type),
                path=remote_path or name,
                schema_=schema,
            )
        )
        if make_default:
            repo.index.set_default_collection(name)
        repo.save()
    except HhxError as exc:
        _fail(exc)

    _emit(state, f"[green]Created {collection_type} collection '{escape(name)}'.[/green]")
    if repo.index.default_collection == name:
        _emit(state, f"'{escape(name)}' is the default collection.")


@collection.command("remove")
@click.argument("name")
@click.pass_context
def collection_remove(ctx: click.Context, name: str) -> None:
    """Remove the collection NAME."""
    state = _state(ctx)
    try:
        repo = _open_repository(state)
        repo.index.remove_collection(name)
        repo.save()
    except HhxError as exc:
        _fail(exc)

    _emit(state, f"[green]Removed collection '{escape(name)}'.[/green]")
    new_default = repo.index.default_collection
    if new_default:
        _emit(state, f"Default collection: '{escape(new_default)}'.")
    else:
        _emit(state, "[yellow]No default collection is set.[/yellow]", mode="warning")


@collection.command("set-default")
@click.argument("name")
@click.pass_context
def collection_set_default(ctx: click.Context, name: str) -> None:
    """Make NAME the default collection."""
    state = _state(ctx)
    try:
        repo = _open_repository(state)
        repo.index.set_default_collection(name)
        repo.save()
    except HhxError as exc:
        _fail(exc)

    _emit(state, f"[green]Default collection set to '{escape(name)}'.[/green]")


@cli.group()
def config() -> None:
    """Inspect and update the hhx configuration file."""


@config.command("view")
@click.option("--no-env", is_flag=True, help="Ignore environment overrides.")
def config_view(no_env: bool) -> None:
    """Display the effective configuration after applying precedence rules."""
    manager = ConfigManager()
    try:
        effective = manager.load(include_env=not no_env)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc

    yaml_text = yaml.safe_dump(effective.model_dump(mode="python"), sort_keys=False)
    console.print(Syntax(yaml_text, "yaml", word_wrap=True))


@config.command("set")
@click.argument("key")
@click.option("--value", required=True, help="YAML literal to assign to KEY.")
def config_set(key: str, value: str) -> None:
    """Persist a configuration value addressed by a dotted KEY."""
    try:
        parsed = yaml.safe_load(value)
    except yaml.YAMLError as exc:
        raise click.ClickException(f"Unable to parse value: {exc}") from exc

    manager = ConfigManager()
    try:
        manager.set_value(key, parsed)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc
    console.print(f"[green]Updated {escape(key)}.[/green]")


@config.command("path")
def config_path() -> None:
    """Print the location of the configuration file."""
    click.echo(str(ConfigManager().config_path))


def main() -> None:
    """Invoke the Click CLI as the console script entry point."""
    cli()


if __name__ == "__main__":
    main()
