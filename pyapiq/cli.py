"""Defines the command-line interface for the apiq application.

This module uses the `click` library to expose one command group per web API
(PyPI, npm, GitHub, Wayback Machine, Gravatar, JSON Schema) plus cache and
configuration management. Every network call goes through the shared
cache-and-retry layer; `--no-cache` on any lookup forces a fresh request.
"""
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Awaitable, Dict, Optional, Tuple, Type

import click
from halo import Halo
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .clients import GitHubClient, GravatarClient, JsonSchemaClient, NpmClient, PyPIClient, WaybackClient
from .clients import gravatar as gravatar_api
from .clients import json_schema as schema_api
from .clients import pypi as pypi_api
from .clients.github import format_reset_time, parse_repository
from .clients.npm import latest_version, parse_repository_url
from .clients.wayback import build_archive_url, format_timestamp
from .core.base_client import BaseClient
from .core.config import Config
from .core.exceptions import ApiqError, ConfigError, FetchExhausted, NotFoundError
from .utils.formatting import format_bytes, format_number

console = Console(emoji=True)

logger = logging.getLogger(__name__)

CLIENTS: Dict[str, Type[BaseClient]] = {
    cls.name: cls for cls in (PyPIClient, NpmClient, GitHubClient, WaybackClient, GravatarClient, JsonSchemaClient)
}


class AliasedGroup(click.Group):
    """A custom click Group that supports command aliases and case-insensitivity."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._aliases: Dict[str, str] = {}

    def get_command(self, ctx: click.Context, cmd_name: str) -> Optional[click.Command]:
        """Gets a command by name, checking for aliases and prefixes.

        Args:
            ctx: The click context.
            cmd_name: The command name entered by the user.

        Returns:
            The matched click command, or None.
        """
        cmd_name = cmd_name.lower()
        rv = super().get_command(ctx, cmd_name)
        if rv is not None:
            return rv
        if cmd_name in self._aliases:
            return super().get_command(ctx, self._aliases[cmd_name])
        matches = [x for x in self.list_commands(ctx) if x.startswith(cmd_name)]
        if not matches:
            return None
        if len(matches) == 1:
            return super().get_command(ctx, matches[0])
        ctx.fail(f"Ambiguous command: '{cmd_name}'. Matches: {', '.join(sorted(matches))}")
        return None

    def add_alias(self, alias: str, command_name: str) -> None:
        self._aliases[alias.lower()] = command_name.lower()


def _spinner(text: str) -> Halo:
    # stderr keeps stdout clean for --json output.
    return Halo(text=text, spinner="dots", stream=sys.stderr)


def _run(coro: Awaitable[Any], subject: str) -> Any:
    """Runs a coroutine, turning apiq errors into a message and exit code 1."""
    try:
        return asyncio.run(coro)
    except NotFoundError:
        console.print(f"[red]Error: '{subject}' not found.[/red]")
    except FetchExhausted as e:
        console.print(f"[red]Error: Network error ({e}). Check your connection or try again later.[/red]")
    except ApiqError as e:
        console.print(f"[red]Error: {e}[/red]")
    sys.exit(1)


def _echo_json(data: Any) -> None:
    click.echo(json.dumps(data, indent=2, default=str))


no_cache_option = click.option("--no-cache", "no_cache", is_flag=True, help="Bypass the cache and fetch fresh data.")
json_option = click.option("--json", "json_output", is_flag=True, help="Output raw JSON.")


@click.group(cls=AliasedGroup, context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(package_name="apiq")
@click.option("--verbose", is_flag=True, help="Enable verbose output.")
@click.option("--debug", is_flag=True, help="Enable debug logging.")
@click.option("--config", "config_path", type=click.Path(exists=True, dir_okay=False), help="Path to a custom config file.")
@click.pass_context
def main(ctx: click.Context, verbose: bool, debug: bool, config_path: Optional[str]) -> None:
    """Query public package registries and web archives from the terminal.

    Responses are cached on disk per API, with a freshness window chosen by
    each command, and transient failures are retried with backoff.
    """
    config = Config(config_path=config_path)
    verbose = verbose or config.get("verbose", False)
    log_level = logging.DEBUG if debug else logging.INFO if verbose else logging.WARNING
    logging.basicConfig(level=log_level, format='%(asctime)s - %(levelname)s - %(message)s')
    logger.debug("Debug mode enabled.")
    console.no_color = not config.get("colors", True)
    ctx.obj = config


# ---------------------------------------------------------------------------
# PyPI
# ---------------------------------------------------------------------------

@main.group(cls=AliasedGroup)
def pypi() -> None:
    """Query the PyPI JSON API."""


@pypi.command(name="info")
@click.argument("package")
@click.option("--version", "version", help="Show a specific release instead of the latest.")
@click.option("--releases", is_flag=True, help="Show the release history.")
@click.option("--files", is_flag=True, help="Show distribution files of the release.")
@json_option
@no_cache_option
@click.pass_obj
def pypi_info(config: Config, package: str, version: Optional[str], releases: bool, files: bool, json_output: bool, no_cache: bool) -> None:
    """Display metadata for a PyPI package."""

    async def fetch() -> Dict[str, Any]:
        async with PyPIClient(config) as client:
            with _spinner(f"Fetching {package}..."):
                return await client.get_metadata(package, version=version, bypass_cache=no_cache)

    metadata = _run(fetch(), package)
    if json_output:
        _echo_json(metadata)
        return

    info = pypi_api.get_package_info(metadata)
    lines = [f"[bold]Version[/bold]: {info['version']}"]
    for label, key in (("License", "license"), ("Author", "author"), ("Maintainer", "maintainer")):
        if info[key]:
            lines.append(f"[bold]{label}[/bold]: {info[key]}")
    lines.append(f"[bold]Python[/bold]: {pypi_api.format_python_requirement(info['requires_python'])}")
    if info["summary"]:
        lines.append(f"\n{info['summary']}")
    console.print(Panel("\n".join(lines), title=str(info["name"]), expand=False))

    if info["project_urls"]:
        console.print("\n[bold]Project URLs[/bold]")
        for label, url in info["project_urls"].items():
            console.print(f"  {label}: {url}")

    classifiers = pypi_api.get_main_classifiers(info["classifiers"])
    if classifiers:
        console.print("\n[bold]Classifiers[/bold]")
        for classifier in classifiers:
            console.print(f"  - {pypi_api.format_classifier(classifier)}")

    if files and metadata.get("urls"):
        table = Table(title=f"Files for {info['name']} {info['version']}")
        table.add_column("File", style="cyan")
        table.add_column("Type")
        table.add_column("Size", justify="right")
        for dist in metadata["urls"]:
            size = format_bytes(dist["size"]) if dist.get("size") else "unknown"
            name = f"{dist.get('filename')} [red](yanked)[/red]" if dist.get("yanked") else dist.get("filename")
            table.add_row(name, pypi_api.get_distribution_type(dist.get("filename", "")), size)
        console.print(table)

    if releases:
        release_info = pypi_api.get_release_info(metadata)
        table = Table(title=f"Release History ({release_info['total_releases']} releases)")
        table.add_column("Version", style="magenta")
        table.add_column("Uploaded")
        table.add_column("Distributions")
        for entry in release_info["history"][:15]:
            kinds = ", ".join(k for k, present in (("wheel", entry["has_wheel"]), ("source", entry["has_source"])) if present)
            version_label = f"{entry['version']} [red](yanked)[/red]" if entry["yanked"] else entry["version"]
            table.add_row(version_label, (entry["upload_time"] or "")[:10], kinds or "-")
        console.print(table)


# ---------------------------------------------------------------------------
# npm
# ---------------------------------------------------------------------------

@main.group(cls=AliasedGroup)
def npm() -> None:
    """Query the npm registry."""


@npm.command(name="search")
@click.argument("query")
@click.option("--size", type=click.IntRange(1, 250), default=20, show_default=True, help="Number of results.")
@click.option("--from", "offset", type=click.IntRange(0), default=0, help="Result offset.")
@json_option
@no_cache_option
@click.pass_obj
def npm_search(config: Config, query: str, size: int, offset: int, json_output: bool, no_cache: bool) -> None:
    """Search npm packages."""

    async def fetch():
        async with NpmClient(config) as client:
            with _spinner(f"Searching for '{query}'..."):
                return await client.search(query, size=size, offset=offset, bypass_cache=no_cache)

    results = _run(fetch(), query)
    if json_output:
        _echo_json(results)
        return
    if not results:
        console.print(f"[yellow]No packages found for '{query}'.[/yellow]")
        return

    table = Table(title=f"npm Search Results for '{query}'")
    table.add_column("Package", style="cyan")
    table.add_column("Version", style="magenta")
    table.add_column("Description")
    for item in results:
        table.add_row(item["name"], item["version"], item["description"])
    console.print(table)


@npm.command(name="info")
@click.argument("package")
@json_option
@no_cache_option
@click.pass_obj
def npm_info(config: Config, package: str, json_output: bool, no_cache: bool) -> None:
    """Display metadata for an npm package."""

    async def fetch():
        async with NpmClient(config) as client:
            with _spinner(f"Fetching {package}..."):
                return await client.get_package(package, bypass_cache=no_cache)

    data = _run(fetch(), package)
    if json_output:
        _echo_json(data)
        return

    latest = latest_version(data)
    manifest = (data.get("versions") or {}).get(latest, {}) if latest else {}
    lines = [f"[bold]Latest[/bold]: {latest or 'unknown'}"]
    if data.get("license") or manifest.get("license"):
        lines.append(f"[bold]License[/bold]: {data.get('license') or manifest.get('license')}")
    repository = parse_repository_url(data.get("repository"))
    if repository:
        lines.append(f"[bold]Repository[/bold]: {repository}")
    if data.get("homepage"):
        lines.append(f"[bold]Homepage[/bold]: {data['homepage']}")
    dependencies = manifest.get("dependencies") or {}
    lines.append(f"[bold]Dependencies[/bold]: {len(dependencies)}")
    if data.get("description"):
        lines.append(f"\n{data['description']}")
    console.print(Panel("\n".join(lines), title=str(data.get("name", package)), expand=False))


@npm.command(name="exists")
@click.argument("package")
@no_cache_option
@click.pass_obj
def npm_exists(config: Config, package: str, no_cache: bool) -> None:
    """Check whether an npm package name is taken."""

    async def check() -> bool:
        async with NpmClient(config) as client:
            return await client.exists(package, bypass_cache=no_cache)

    if _run(check(), package):
        console.print(f"[green]✓ Package \"{package}\" exists[/green]")
        console.print(f"  URL: https://www.npmjs.com/package/{package}")
    else:
        console.print(f"[yellow]✗ Package \"{package}\" does not exist[/yellow]")
        console.print("  The name is available for use")


@npm.command(name="downloads")
@click.argument("package")
@click.option("--period", default="last-month", show_default=True, help="last-day, last-week, last-month, last-year or START:END.")
@json_option
@no_cache_option
@click.pass_obj
def npm_downloads(config: Config, package: str, period: str, json_output: bool, no_cache: bool) -> None:
    """Show download counts for an npm package."""

    async def fetch():
        async with NpmClient(config) as client:
            with _spinner(f"Fetching downloads for {package}..."):
                return await client.downloads(package, period=period, bypass_cache=no_cache)

    data = _run(fetch(), package)
    if json_output:
        _echo_json(data)
        return
    days = data.get("downloads") or []
    average = data["total"] / len(days) if days else 0
    console.print(f"[bold]{package}[/bold] ({data.get('start')} to {data.get('end')})")
    console.print(f"  Total downloads: {format_number(data['total'])} ({data['total']:,})")
    console.print(f"  Daily average:   {format_number(round(average))}")


# ---------------------------------------------------------------------------
# Wayback Machine
# ---------------------------------------------------------------------------

@main.group(cls=AliasedGroup)
def wayback() -> None:
    """Query the Internet Archive Wayback Machine."""


@wayback.command(name="check")
@click.argument("url")
@click.option("--timestamp", help="Find the snapshot closest to YYYYMMDDhhmmss.")
@json_option
@no_cache_option
@click.pass_obj
def wayback_check(config: Config, url: str, timestamp: Optional[str], json_output: bool, no_cache: bool) -> None:
    """Check whether a URL has been archived."""

    async def fetch():
        async with WaybackClient(config) as client:
            with _spinner(f"Checking {url}..."):
                return await client.availability(url, timestamp=timestamp, bypass_cache=no_cache)

    snapshot = _run(fetch(), url)
    if json_output:
        _echo_json(snapshot)
        return
    if snapshot is None:
        console.print(f"[yellow]✗ No archived snapshot of {url}[/yellow]")
        return
    console.print(f"[green]✓ Archived[/green] {format_timestamp(snapshot['timestamp'])}")
    console.print(f"  Snapshot: {snapshot['url']}")
    console.print(f"  Raw:      {build_archive_url(snapshot['timestamp'], url)}")


@wayback.command(name="list")
@click.argument("url")
@click.option("--limit", type=int, default=10, show_default=True, help="Number of captures; negative for the most recent.")
@click.option("--from", "from_date", help="Earliest timestamp prefix (e.g. 2020).")
@click.option("--to", "to_date", help="Latest timestamp prefix.")
@json_option
@no_cache_option
@click.pass_obj
def wayback_list(config: Config, url: str, limit: int, from_date: Optional[str], to_date: Optional[str], json_output: bool, no_cache: bool) -> None:
    """List archived captures of a URL."""

    async def fetch():
        async with WaybackClient(config) as client:
            with _spinner(f"Listing captures of {url}..."):
                return await client.list_captures(url, limit=limit, from_date=from_date, to_date=to_date, bypass_cache=no_cache)

    captures = _run(fetch(), url)
    if json_output:
        _echo_json(captures)
        return
    if not captures:
        console.print(f"[yellow]No captures found for {url}.[/yellow]")
        return
    table = Table(title=f"Captures of {url}")
    table.add_column("Captured", style="cyan")
    table.add_column("Status")
    table.add_column("Type")
    table.add_column("Archive URL")
    for capture in captures:
        ts = capture.get("timestamp", "")
        table.add_row(format_timestamp(ts), capture.get("statuscode", ""), capture.get("mimetype", ""), build_archive_url(ts, capture.get("original", url), modifier=""))
    console.print(table)


# ---------------------------------------------------------------------------
# Gravatar
# ---------------------------------------------------------------------------

@main.group(cls=AliasedGroup)
def gravatar() -> None:
    """Build Gravatar URLs and check avatars."""


@gravatar.command(name="url")
@click.argument("email")
@click.option("--size", type=click.IntRange(1, 2048), help="Image size in pixels.")
@click.option("--default", "default", type=click.Choice(gravatar_api.DEFAULT_IMAGES), help="Fallback image.")
@click.option("--rating", type=click.Choice(gravatar_api.RATINGS), help="Maximum rating.")
@click.option("--force-default", is_flag=True, help="Always show the fallback image.")
def gravatar_url(email: str, size: Optional[int], default: Optional[str], rating: Optional[str], force_default: bool) -> None:
    """Print the avatar and profile URLs for an email address."""
    click.echo(gravatar_api.avatar_url(email, size=size, default=default, rating=rating, force_default=force_default))
    click.echo(gravatar_api.profile_url(email))


@gravatar.command(name="check")
@click.argument("email")
@no_cache_option
@click.pass_obj
def gravatar_check(config: Config, email: str, no_cache: bool) -> None:
    """Check whether an email address has a Gravatar."""

    async def check() -> bool:
        async with GravatarClient(config) as client:
            return await client.exists(email, bypass_cache=no_cache)

    digest = gravatar_api.email_hash(email)
    if _run(check(), email):
        console.print("[green]✓ Gravatar exists[/green]")
        console.print(f"  Hash: {digest}")
        console.print(f"  URL: {gravatar_api.avatar_url(email)}")
    else:
        console.print("[yellow]✗ No Gravatar found[/yellow]")
        console.print(f"  Hash: {digest}")


# ---------------------------------------------------------------------------
# GitHub
# ---------------------------------------------------------------------------

def _repository_argument(value: str) -> Tuple[str, str]:
    parsed = parse_repository(value)
    if parsed is None:
        raise click.BadParameter(f"'{value}' is not a GitHub repository (expected OWNER/REPO or a GitHub URL).")
    return parsed


@main.group(cls=AliasedGroup)
@click.option("--token", help="GitHub token. Defaults to the github_token setting, then GITHUB_TOKEN.")
@click.pass_obj
def github(config: Config, token: Optional[str]) -> None:
    """Query the GitHub REST API."""
    if token:
        config.set("github_token", token)


@github.command(name="repo")
@click.argument("repository")
@json_option
@no_cache_option
@click.pass_obj
def github_repo(config: Config, repository: str, json_output: bool, no_cache: bool) -> None:
    """Show a repository. REPOSITORY is OWNER/REPO or any GitHub URL."""
    owner, name = _repository_argument(repository)

    async def fetch():
        async with GitHubClient(config) as client:
            with _spinner(f"Fetching {owner}/{name}..."):
                return await client.repo(owner, name, bypass_cache=no_cache)

    data = _run(fetch(), f"{owner}/{name}")
    if json_output:
        _echo_json(data)
        return

    lines = []
    if data.get("description"):
        lines.append(f"{data['description']}\n")
    lines.append(f"[bold]Stars[/bold]: {format_number(data.get('stargazers_count', 0))}   "
                 f"[bold]Forks[/bold]: {format_number(data.get('forks_count', 0))}   "
                 f"[bold]Open issues[/bold]: {format_number(data.get('open_issues_count', 0))}")
    if data.get("language"):
        lines.append(f"[bold]Language[/bold]: {data['language']}")
    if (data.get("license") or {}).get("name"):
        lines.append(f"[bold]License[/bold]: {data['license']['name']}")
    lines.append(f"[bold]Default branch[/bold]: {data.get('default_branch', 'unknown')}")
    for label, key in (("Created", "created_at"), ("Updated", "updated_at"), ("Pushed", "pushed_at")):
        if data.get(key):
            lines.append(f"[bold]{label}[/bold]: {data[key][:10]}")
    flags = [label for label, key in (("private", "private"), ("fork", "fork"), ("archived", "archived")) if data.get(key)]
    if flags:
        lines.append(f"[bold]Flags[/bold]: {', '.join(flags)}")
    if data.get("topics"):
        lines.append(f"[bold]Topics[/bold]: {', '.join(data['topics'][:10])}")
    if data.get("homepage"):
        lines.append(f"[bold]Homepage[/bold]: {data['homepage']}")
    console.print(Panel("\n".join(lines), title=str(data.get("full_name", f"{owner}/{name}")), expand=False))


@github.command(name="readme")
@click.argument("repository")
@json_option
@no_cache_option
@click.pass_obj
def github_readme(config: Config, repository: str, json_output: bool, no_cache: bool) -> None:
    """Print a repository's README."""
    owner, name = _repository_argument(repository)

    async def fetch():
        async with GitHubClient(config) as client:
            with _spinner(f"Fetching README of {owner}/{name}..."):
                return await client.readme(owner, name, bypass_cache=no_cache)

    data = _run(fetch(), f"{owner}/{name}")
    if json_output:
        _echo_json(data)
        return
    click.echo(data.get("text", ""))


@github.command(name="user")
@click.argument("username")
@json_option
@no_cache_option
@click.pass_obj
def github_user(config: Config, username: str, json_output: bool, no_cache: bool) -> None:
    """Show a GitHub user or organization."""

    async def fetch():
        async with GitHubClient(config) as client:
            with _spinner(f"Fetching {username}..."):
                return await client.user(username, bypass_cache=no_cache)

    data = _run(fetch(), username)
    if json_output:
        _echo_json(data)
        return

    lines = []
    if data.get("bio"):
        lines.append(f"{data['bio']}\n")
    for label, key in (("Company", "company"), ("Location", "location"), ("Blog", "blog")):
        if data.get(key):
            lines.append(f"[bold]{label}[/bold]: {data[key]}")
    lines.append(f"[bold]Public repos[/bold]: {format_number(data.get('public_repos', 0))}   "
                 f"[bold]Followers[/bold]: {format_number(data.get('followers', 0))}   "
                 f"[bold]Following[/bold]: {format_number(data.get('following', 0))}")
    if data.get("created_at"):
        lines.append(f"[bold]Joined[/bold]: {data['created_at'][:10]}")
    title = f"{data.get('login', username)} ({data['name']})" if data.get("name") else str(data.get("login", username))
    console.print(Panel("\n".join(lines), title=title, expand=False))


@github.command(name="rate-limit")
@json_option
@no_cache_option
@click.pass_obj
def github_rate_limit(config: Config, json_output: bool, no_cache: bool) -> None:
    """Show the remaining API quota."""

    async def fetch():
        async with GitHubClient(config) as client:
            return await client.rate_limit(bypass_cache=no_cache)

    buckets = _run(fetch(), "rate limit")
    if json_output:
        _echo_json(buckets)
        return

    table = Table(title="GitHub API Rate Limit")
    table.add_column("API", style="cyan")
    table.add_column("Limit", justify="right")
    table.add_column("Used", justify="right")
    table.add_column("Remaining", justify="right")
    table.add_column("Resets in")
    for bucket, quota in buckets.items():
        table.add_row(bucket, f"{quota['limit']:,}", f"{quota['used']:,}", f"{quota['remaining']:,}", format_reset_time(quota["reset"]))
    console.print(table)

    if config.get("github_token"):
        console.print("Authentication: token")
    else:
        console.print("Authentication: none. A token raises the core limit from 60 to 5,000 requests/hour.")
    for bucket, quota in buckets.items():
        used = quota["used"] / quota["limit"] if quota.get("limit") else 0
        if used > 0.9:
            console.print(f"[red]Warning: {bucket} quota nearly exhausted.[/red]")
        elif used > 0.75:
            console.print(f"[yellow]Notice: {bucket} quota below 25%.[/yellow]")


# ---------------------------------------------------------------------------
# JSON Schema
# ---------------------------------------------------------------------------

@main.group(cls=AliasedGroup)
def schema() -> None:
    """Validate JSON documents against JSON Schema."""


def _report_validation(result: Dict[str, Any], json_output: bool, verbose_errors: bool) -> None:
    if json_output:
        _echo_json(result)
    else:
        click.echo(schema_api.format_validation_result(result, verbose=verbose_errors))
    if not result["valid"]:
        sys.exit(1)


all_errors_option = click.option("--all-errors", is_flag=True, help="Report every error, not just the first.")
verbose_errors_option = click.option("--verbose-errors", is_flag=True, help="Show the schema value behind each error.")


@schema.command(name="check")
@click.argument("file", type=click.Path(dir_okay=False))
@all_errors_option
@verbose_errors_option
@json_option
@no_cache_option
@click.pass_obj
def schema_check(config: Config, file: str, all_errors: bool, verbose_errors: bool, json_output: bool, no_cache: bool) -> None:
    """Validate FILE against the schema named by its own $schema."""

    async def check():
        async with JsonSchemaClient(config) as client:
            return await client.check(file, all_errors=all_errors, bypass_cache=no_cache)

    _report_validation(_run(check(), file), json_output, verbose_errors)


@schema.command(name="validate")
@click.argument("file", type=click.Path(dir_okay=False))
@click.option("--schema", "schema_ref", required=True, help="Schema file path or URL.")
@all_errors_option
@verbose_errors_option
@json_option
@no_cache_option
@click.pass_obj
def schema_validate(config: Config, file: str, schema_ref: str, all_errors: bool, verbose_errors: bool, json_output: bool, no_cache: bool) -> None:
    """Validate FILE against the schema given with --schema."""

    async def check():
        async with JsonSchemaClient(config) as client:
            return await client.validate_file(file, schema_ref, all_errors=all_errors, bypass_cache=no_cache)

    _report_validation(_run(check(), file), json_output, verbose_errors)


@schema.command(name="meta-validate")
@click.argument("file", type=click.Path(dir_okay=False))
@verbose_errors_option
@json_option
def schema_meta_validate(file: str, verbose_errors: bool, json_output: bool) -> None:
    """Check that FILE is a well-formed schema for its draft."""
    document = _run(schema_api.load_json(Path(file)), file)
    if not isinstance(document, dict):
        console.print(f"[red]Error: Schema must be a JSON object: {file}[/red]")
        sys.exit(1)
    draft = schema_api.detect_draft_version(document.get("$schema"))
    errors = schema_api.meta_validate(document, draft=draft)
    result = {"valid": not errors, "errors": errors, "schema": schema_api.META_SCHEMAS[draft], "file": file, "draft": draft}
    _report_validation(result, json_output, verbose_errors)


# ---------------------------------------------------------------------------
# Cache and configuration
# ---------------------------------------------------------------------------

@main.group(cls=AliasedGroup)
def cache() -> None:
    """Inspect and clear the on-disk response caches."""


def _client_for(namespace: str, config: Config) -> BaseClient:
    try:
        return CLIENTS[namespace](config)
    except ConfigError as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)


@cache.command(name="list")
@click.pass_obj
def cache_list(config: Config) -> None:
    """List the cache namespaces and where they live."""
    table = Table(title="Caches")
    table.add_column("Namespace", style="cyan", no_wrap=True)
    table.add_column("API")
    table.add_column("Directory")
    for namespace in sorted(CLIENTS):
        client = _client_for(namespace, config)
        table.add_row(namespace, client.description, str(client.cache.cache_dir))
    console.print(table)


@cache.command(name="clear")
@click.argument("namespaces", nargs=-1, type=click.Choice(sorted(CLIENTS)))
@click.pass_obj
def cache_clear(config: Config, namespaces: Tuple[str, ...]) -> None:
    """Delete cached responses. Clears every cache if no NAMESPACES are given."""

    async def clear() -> Dict[str, int]:
        removed = {}
        for namespace in namespaces or sorted(CLIENTS):
            async with CLIENTS[namespace](config) as client:
                removed[namespace] = await client.clear_cache()
        return removed

    for namespace, count in _run(clear(), "cache").items():
        console.print(f"Cleared {count} cache file(s) from [cyan]{namespace}[/cyan]")


@cache.command(name="path")
@click.argument("namespace", type=click.Choice(sorted(CLIENTS)))
@click.pass_obj
def cache_path(config: Config, namespace: str) -> None:
    """Print the cache directory of a namespace."""
    click.echo(str(_client_for(namespace, config).cache.cache_dir))


@main.command()
@click.argument("action", type=click.Choice(['get', 'set', 'list']), required=True)
@click.argument("key", type=str, required=False)
@click.argument("value", type=str, required=False)
@click.pass_obj
def config(config_obj: Config, action: str, key: Optional[str], value: Optional[str]) -> None:
    """Manage the apiq configuration.

    \b
    ACTION:
        get <key>         Get a configuration value.
        set <key> <value> Set a configuration value in the user config file.
        list              List all current configuration values.
    """
    if action == "list":
        shown = dict(config_obj.config)
        if shown.get("github_token"):
            shown["github_token"] = "***"
        console.print(Panel(json.dumps(shown, indent=2), title="Current Configuration"))
    elif action == "get":
        if not key:
            raise click.UsageError("'get' requires a key.")
        click.echo(json.dumps(config_obj.get(key)))
    elif action == "set":
        if not key or value is None:
            raise click.UsageError("'set' requires a key and a value.")
        processed_value: Any
        if value.lower() in ('true', 'false'):
            processed_value = value.lower() == 'true'
        elif value.isdigit():
            processed_value = int(value)
        else:
            try:
                processed_value = float(value)
            except ValueError:
                processed_value = value
        config_obj.set(key, processed_value)
        try:
            config_obj.save_user_config()
        except IOError as e:
            console.print(f"[red]Error saving configuration: {e}[/red]")
            sys.exit(1)
        console.print(f"[green]'{key}' set to '{processed_value}' and saved to user config.[/green]")


main.add_alias('pip', 'pypi')
main.add_alias('wb', 'wayback')
main.add_alias('gr', 'gravatar')
main.add_alias('gh', 'github')

if __name__ == "__main__":
    main()
