from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any, Coroutine, Optional, TypeVar

import typer
from rich.console import Console
from rich.table import Table

from routeseq.graph.builder import format_tree
from routeseq.graph.model import CallGraph
from routeseq.orchestrator.pipeline import list_endpoints, run_caller_search, run_pipeline
from routeseq.providers.base import LanguageAssistant
from routeseq.providers.llm import OpenAICompatibleAssistant
from routeseq.providers.sink import ConsoleSink
from routeseq.shared.config import RouteseqConfig, load_config
from routeseq.shared.errors import RouteseqError
from routeseq.shared.logging import setup_logging

app = typer.Typer(no_args_is_help=True, add_completion=False)

endpoints_app = typer.Typer(no_args_is_help=True)
app.add_typer(endpoints_app, name="endpoints")

console = Console()
err_console = Console(stderr=True)

T = TypeVar("T")


def _repo_path(repo: str) -> Path:
    repo_path = Path(repo).expanduser().resolve()
    if not repo_path.exists():
        raise typer.BadParameter(f"Repo path does not exist: {repo_path}")
    if not repo_path.is_dir():
        raise typer.BadParameter(f"Repo path is not a directory: {repo_path}")
    return repo_path


def _config(log_level: Optional[str], max_depth: Optional[int] = None) -> RouteseqConfig:
    config = load_config(log_level=log_level, max_call_depth=max_depth)
    setup_logging(config.log_level)
    return config


def _assistant(config: RouteseqConfig, no_llm: bool) -> Optional[LanguageAssistant]:
    if no_llm:
        return None
    if not config.llm_api_key and "api.openai.com" in config.llm_base_url:
        # hosted endpoint without a key would only fail; go straight to clarification
        err_console.print("[yellow]ROUTESEQ_LLM_API_KEY not set, skipping AI disambiguation[/yellow]")
        return None
    return OpenAICompatibleAssistant.from_config(config)


def _run(coro: Coroutine[Any, Any, T]) -> T:
    try:
        return asyncio.run(coro)
    except RouteseqError as exc:
        err_console.print(f"[bold red]error:[/bold red] {exc.detail}")
        raise typer.Exit(code=2)


@endpoints_app.command("list")
def endpoints_list(
    repo: str = typer.Argument(..., help="Path to the repo"),
    method: Optional[str] = typer.Option(None, help="Filter by HTTP method (GET/POST/...)"),
    path_contains: Optional[str] = typer.Option(None, help="Substring match on HTTP path"),
    handler_contains: Optional[str] = typer.Option(None, help="Substring match on handler name"),
    format: str = typer.Option("table", help="Output format: table|json"),
    log_level: Optional[str] = typer.Option(None, help="Log level (default from ROUTESEQ_LOG_LEVEL)"),
) -> None:
    repo_path = _repo_path(repo)
    fmt = format.lower().strip()
    if fmt not in ("table", "json"):
        raise typer.BadParameter("format must be one of: table, json")
    config = _config(log_level)

    rows = _run(list_endpoints(repo_path, config))
    if method:
        rows = [r for r in rows if r.http_method == method.upper()]
    if path_contains:
        rows = [r for r in rows if path_contains in r.path]
    if handler_contains:
        rows = [r for r in rows if handler_contains.lower() in r.handler_name.lower()]

    def rel(file: str) -> str:
        try:
            return str(Path(file).relative_to(repo_path))
        except ValueError:
            return file

    if fmt == "json":
        payload = [
            {
                "method": r.http_method,
                "path": r.path,
                "handler": r.handler_name,
                "file": rel(r.location.file),
                "line": r.location.position.line + 1,
                "annotation_span": [r.annotation_span[0] + 1, r.annotation_span[1] + 1],
            }
            for r in rows
        ]
        typer.echo(json.dumps(payload, indent=2))
        return

    console.print(f"[bold]Repo:[/bold] {repo_path}")
    console.print(f"[bold]Endpoints:[/bold] {len(rows)}")

    table = Table(show_header=True, header_style="bold")
    table.add_column("METHOD", no_wrap=True)
    table.add_column("PATH")
    table.add_column("HANDLER")
    table.add_column("FILE:LINE", no_wrap=True)

    for r in rows:
        table.add_row(r.http_method, r.path, r.handler_name, f"{rel(r.location.file)}:{r.location.position.line + 1}")

    console.print(table)


@app.command()
def diagram(
    repo: str = typer.Argument(..., help="Path to the repo"),
    query: str = typer.Argument(..., help='Endpoint query, e.g. "GET /api/users/{id}" or "create order"'),
    out: Optional[str] = typer.Option(None, help="Write the Mermaid text to this file"),
    no_llm: bool = typer.Option(False, "--no-llm", help="Never ask the language model to pick an endpoint"),
    max_depth: Optional[int] = typer.Option(None, help="Max call depth (default from config)"),
    log_level: Optional[str] = typer.Option(None, help="Log level"),
) -> None:
    repo_path = _repo_path(repo)
    config = _config(log_level, max_depth)
    result = _run(
        run_pipeline(repo_path, query, config=config, assistant=_assistant(config, no_llm), sink=ConsoleSink(err_console))
    )
    if result.diagram is None:
        raise typer.Exit(code=1)

    if out:
        out_path = Path(out).expanduser()
        out_path.parent.mkdir(parents=True, exist_ok=True)
        out_path.write_text(result.diagram + "\n", encoding="utf-8")
        err_console.print(f"[bold green]Wrote[/bold green] diagram for {result.endpoint.label} to: {out_path}")
    else:
        typer.echo(f"```mermaid\n{result.diagram}\n```")


@app.command()
def tree(
    repo: str = typer.Argument(..., help="Path to the repo"),
    query: str = typer.Argument(..., help="Endpoint query"),
    format: str = typer.Option("text", help="Output format: text|json|dot"),
    no_llm: bool = typer.Option(False, "--no-llm", help="Never ask the language model to pick an endpoint"),
    max_depth: Optional[int] = typer.Option(None, help="Max call depth (default from config)"),
    log_level: Optional[str] = typer.Option(None, help="Log level"),
) -> None:
    repo_path = _repo_path(repo)
    fmt = format.lower().strip()
    if fmt not in ("text", "json", "dot"):
        raise typer.BadParameter("format must be one of: text, json, dot")
    config = _config(log_level, max_depth)

    result = _run(
        run_pipeline(repo_path, query, config=config, assistant=_assistant(config, no_llm), sink=ConsoleSink(err_console))
    )
    if result.tree is None:
        raise typer.Exit(code=1)

    if fmt == "text":
        text = format_tree(result.tree)
    elif fmt == "json":
        payload = {
            "endpoint": {
                "method": result.endpoint.http_method,
                "path": result.endpoint.path,
                "handler": result.endpoint.handler_name,
            },
            "max_depth": config.max_call_depth,
            "root": result.tree.to_dict(),
        }
        text = json.dumps(payload, indent=2)
    else:
        g = CallGraph.from_tree(result.tree)
        lines = ["digraph routeseq {", '  rankdir="LR";', '  node [shape="box"];']
        for key in sorted(g.nodes):
            ident = g.nodes[key]
            label = f"{ident.detail}.{ident.bare_name}" if ident.detail else ident.bare_name
            lines.append(f'  "{key}" [label="{label}"];')
        for e in g.edges:
            style = ' style="dashed"' if e.type == "CALLS_AGAIN" else ""
            lines.append(f'  "{e.src}" -> "{e.dst}" [label="{e.type}"{style}];')
        lines.append("}")
        text = "\n".join(lines)

    typer.echo(text)


@app.command()
def callers(
    repo: str = typer.Argument(..., help="Path to the repo"),
    query: str = typer.Argument(..., help="Endpoint query"),
    no_llm: bool = typer.Option(False, "--no-llm", help="Never ask the language model to pick an endpoint"),
    log_level: Optional[str] = typer.Option(None, help="Log level"),
) -> None:
    """List the places outside the endpoint's declaration that mention its handler."""
    repo_path = _repo_path(repo)
    config = _config(log_level)

    result = _run(
        run_caller_search(repo_path, query, config=config, assistant=_assistant(config, no_llm), sink=ConsoleSink(err_console))
    )
    if result.callers is None:
        raise typer.Exit(code=1)

    console.print(f"[bold]Callers of[/bold] {result.endpoint.label} ({result.endpoint.handler_name}): {len(result.callers.callers)}")
    table = Table(show_header=True, header_style="bold")
    table.add_column("FILE:LINE", no_wrap=True)
    table.add_column("IN")
    table.add_column("CODE")
    for c in result.callers.callers:
        try:
            where = str(Path(c.file).relative_to(repo_path))
        except ValueError:
            where = c.file
        table.add_row(f"{where}:{c.range.start.line + 1}", c.calling_function or "-", c.line_text)
    console.print(table)


@app.command()
def ping() -> None:
    console.print("pong")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
