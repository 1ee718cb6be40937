"""
mcprouter CLI - inspect and call tools across configured MCP servers.

Servers are declared in .mcprouter/config.yaml (or ~/.mcprouter/config.yaml).
Every command that needs tools starts all enabled servers, does its work and
stops them again.
"""

import json
import logging
import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table

from mcprouter import __version__
from mcprouter.routing.errors import ToolNotFoundError, ToolRouterError
from mcprouter.routing.manager import ToolManager
from mcprouter.validation.config import Config, ConfigError

console = Console()


def _load_config(ctx: click.Context) -> Config:
    try:
        return Config.load(ctx.obj.get("config_path"))
    except ConfigError as e:
        console.print(f"[red]Config error: {escape(str(e))}[/red]")
        sys.exit(1)


def _open_manager(config: Config) -> ToolManager:
    """Start every enabled server, exiting with an error if any fails."""
    try:
        specs = config.launch_specs()
        if not specs:
            console.print("[yellow]No servers configured. Add one with: mcprouter add <name> <command>[/yellow]")
        with console.status(f"[bold blue]Starting {len(specs)} server(s)...[/bold blue]", spinner="dots"):
            return ToolManager.initialize(
                specs,
                policy=config.collision_policy,
                separator=config.namespace_separator,
            )
    except ConfigError as e:
        console.print(f"[red]Config error: {escape(str(e))}[/red]")
    except ToolRouterError as e:
        console.print(f"[red]Startup failed: {escape(str(e))}[/red]")
    sys.exit(1)


def _print_json(data) -> None:
    text = json.dumps(data, indent=2, ensure_ascii=False)
    if console.is_terminal:
        console.print(Syntax(text, "json", word_wrap=True))
    else:
        click.echo(text)


@click.group()
@click.version_option(__version__, prog_name="mcprouter")
@click.option(
    "--config", "-c", "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Config file to use instead of the global/local pair",
)
@click.option("--verbose", "-v", count=True, help="Log more (-vv for protocol traffic)")
@click.pass_context
def cli(ctx: click.Context, config_path: Optional[Path], verbose: int) -> None:
    """
    mcprouter - call tools from many MCP servers through one name space.

    \b
    Examples:
        mcprouter add fs npx -y @modelcontextprotocol/server-filesystem .
        mcprouter tools
        mcprouter call read_file --args '{"path": "README.md"}'
    """
    level = logging.WARNING
    if verbose == 1:
        level = logging.INFO
    elif verbose > 1:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")

    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path


@cli.command()
@click.pass_context
def servers(ctx: click.Context) -> None:
    """List configured servers."""
    config = _load_config(ctx)
    try:
        configured = config.merged.servers
    except ConfigError as e:
        console.print(f"[red]Config error: {escape(str(e))}[/red]")
        sys.exit(1)

    if not configured:
        console.print("[dim]No servers configured. Declare them in .mcprouter/config.yaml:[/dim]")
        console.print("[dim]  servers:[/dim]")
        console.print("[dim]    fs:[/dim]")
        console.print('[dim]      command: "npx"[/dim]')
        console.print('[dim]      args: ["-y", "@modelcontextprotocol/server-filesystem", "."][/dim]')
        return

    table = Table(title="Servers", show_header=True, header_style="bold")
    table.add_column("Name", style="bold cyan")
    table.add_column("Command", style="white")
    table.add_column("Env", style="dim")
    table.add_column("", width=3)
    for name, server in configured.items():
        command = " ".join([server.command] + server.args)
        env = ", ".join(server.env)
        table.add_row(name, command, env, "[green]✓[/green]" if server.enabled else "[dim]-[/dim]")
    console.print(table)


@cli.command()
@click.argument("name")
@click.argument("command")
@click.argument("args", nargs=-1, type=click.UNPROCESSED)
@click.option("--env", "-e", "env_pairs", multiple=True, help="KEY=VALUE passed to the server")
@click.option("--global", "global_", is_flag=True, help="Write to ~/.mcprouter/config.yaml")
@click.pass_context
def add(ctx: click.Context, name: str, command: str, args: tuple, env_pairs: tuple, global_: bool) -> None:
    """Declare a server NAME started as COMMAND [ARGS]..."""
    env = {}
    for pair in env_pairs:
        key, sep, value = pair.partition("=")
        if not sep:
            raise click.BadParameter(f"expected KEY=VALUE, got {pair!r}", param_hint="--env")
        env[key] = value

    server = {"command": command, "args": list(args)}
    if env:
        server["env"] = env

    path = ctx.obj.get("config_path")
    config = Config() if path is not None and not path.exists() else _load_config(ctx)
    config.add_server(name, server, global_=global_)
    try:
        config.merged
    except ConfigError as e:
        console.print(f"[red]Config error: {escape(str(e))}[/red]")
        sys.exit(1)

    config.save(path)
    console.print(f"[green]Added server {name}[/green]")


@cli.command()
@click.option("--json", "as_json", is_flag=True, help="Print function-calling JSON")
@click.option("--server", "-s", help="Only tools advertised by this server")
@click.pass_context
def tools(ctx: click.Context, as_json: bool, server: Optional[str]) -> None:
    """List tools available across all servers."""
    with _open_manager(_load_config(ctx)) as manager:
        found = manager.catalog_of(server) if server else manager.list_available_tools()

        if as_json:
            _print_json([tool.as_function() for tool in found])
            return

        if not found:
            console.print("[dim]No tools available.[/dim]")
            return

        table = Table(title=f"Available tools ({len(found)})", show_header=True, header_style="bold")
        table.add_column("Tool", style="bold cyan")
        table.add_column("Server", style="dim")
        table.add_column("Description", style="white")
        for tool in found:
            if server:
                owner = server
            else:
                route = manager.resolve(tool.name)
                owner = route.provider if route else ""
            table.add_row(tool.name, owner, tool.description.split("\n")[0])
        console.print(table)


@cli.command()
@click.argument("tool")
@click.pass_context
def info(ctx: click.Context, tool: str) -> None:
    """Show the parameter schema of TOOL."""
    with _open_manager(_load_config(ctx)) as manager:
        route = manager.resolve(tool)
        match = next((t for t in manager.list_available_tools() if t.name == tool), None)
        if route is None or match is None:
            console.print(f"[red]Tool not found: {tool}[/red]")
            sys.exit(1)

        console.print(Panel(
            match.description or "(no description)",
            title=f"{tool} [dim]({route.provider}:{route.tool_id})[/dim]",
            border_style="blue",
        ))
        _print_json(match.parameters)


@cli.command()
@click.argument("tool")
@click.option("--args", "-a", "raw_args", default="{}", help="Tool arguments as a JSON object")
@click.pass_context
def call(ctx: click.Context, tool: str, raw_args: str) -> None:
    """Call TOOL and print its result."""
    try:
        arguments = json.loads(raw_args)
    except json.JSONDecodeError as e:
        raise click.BadParameter(f"not valid JSON: {e}", param_hint="--args")
    if not isinstance(arguments, dict):
        raise click.BadParameter("must be a JSON object", param_hint="--args")

    with _open_manager(_load_config(ctx)) as manager:
        try:
            result = manager.call_tool(tool, arguments)
        except ToolNotFoundError as e:
            console.print(f"[red]{escape(str(e))}[/red]")
            sys.exit(2)
        except ToolRouterError as e:
            console.print(f"[red]Error: {escape(str(e))}[/red]")
            sys.exit(1)
        _print_json(result)


def main() -> None:
    """Entry point."""
    cli(obj={})


if __name__ == "__main__":
    main()
