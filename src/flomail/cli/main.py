"""FloMail CLI: talk to a running agent server, or inspect the local setup."""

from __future__ import annotations

import json
from collections.abc import Iterable, Iterator
from typing import Any

import httpx
import typer
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.table import Table

app = typer.Typer(
    name="flomail",
    help="FloMail agent server and client",
    no_args_is_help=True,
    add_completion=False,
)

console = Console()

DEFAULT_URL = "http://localhost:8000"


def _get_client(base_url: str) -> httpx.Client:
    return httpx.Client(base_url=base_url, timeout=120.0)


def iter_sse_events(lines: Iterable[str]) -> Iterator[dict[str, Any]]:
    """Decode ``data: <json>`` frames from an iterable of text lines."""
    data_lines: list[str] = []
    for line in lines:
        if line.startswith("data:"):
            data_lines.append(line[5:].lstrip())
        elif not line.strip() and data_lines:
            yield json.loads("\n".join(data_lines))
            data_lines = []
    if data_lines:
        yield json.loads("\n".join(data_lines))


def _render_event(event: dict[str, Any], *, verbose: bool) -> None:
    kind = event.get("type")
    data = event.get("data") or {}
    if kind == "text":
        console.print(data.get("content", ""), end="", markup=False, highlight=False)
    elif kind == "status":
        console.print(f"\n[dim]{data.get('message', '')}[/dim]")
    elif kind == "tool_start":
        console.print(f"\n[cyan]→ {data.get('name')}[/cyan]")
    elif kind == "tool_args" and verbose:
        console.print(f"[dim]  {json.dumps(data.get('partial', {}))}[/dim]")
    elif kind == "search_result":
        mark = "[green]✓[/green]" if data.get("success") else "[red]✗[/red]"
        console.print(f"{mark} {data.get('name')} ({len(data.get('result', ''))} chars)")
        if verbose:
            console.print(Panel(data.get("result", ""), border_style="dim"))
    elif kind == "error":
        console.print(f"\n[red]Error:[/red] {data.get('message')}")
    elif kind == "done":
        console.print()
        calls = data.get("clientToolCalls") or []
        for call in calls:
            console.print(f"[yellow]client action:[/yellow] {call['name']} {json.dumps(call['arguments'])}")
        console.print(f"[dim]iterations: {data.get('iterations')}  │  stop: {data.get('stopReason')}[/dim]")


@app.command()
def chat(
    message: str = typer.Argument(..., help="Message to send to the agent"),
    base_url: str = typer.Option(DEFAULT_URL, "--url", "-u", envvar="FLOMAIL_URL"),
    provider: str = typer.Option("", "--provider", "-p", help="openai or anthropic"),
    model: str = typer.Option("", "--model", "-m", help="Override model"),
    access_token: str = typer.Option("", "--access-token", envvar="FLOMAIL_ACCESS_TOKEN"),
    no_stream: bool = typer.Option(False, "--no-stream", help="Use the blocking endpoint"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show tool arguments and results"),
    raw: bool = typer.Option(False, "--raw", help="Print raw JSON events"),
) -> None:
    """Send one message to the agent and print what comes back."""
    payload: dict[str, Any] = {"messages": [{"role": "user", "content": message}]}
    if provider:
        payload["provider"] = provider
    if model:
        payload["model"] = model
    if access_token:
        payload["accessToken"] = access_token

    client = _get_client(base_url)
    try:
        if no_stream:
            resp = client.post("/api/ai/chat", json=payload)
            resp.raise_for_status()
            data = resp.json()
            if raw:
                console.print_json(json.dumps(data))
                return
            console.print(Markdown(data.get("content", "")))
            for call in data.get("toolCalls", []):
                console.print(f"[yellow]client action:[/yellow] {call['name']}")
            console.print(f"[dim]iterations: {data.get('iterations')}[/dim]")
            return

        with client.stream("POST", "/api/ai/chat/stream", json=payload) as resp:
            if resp.status_code >= 400:
                resp.read()
                console.print(f"[red]Error {resp.status_code}:[/red] {resp.text}")
                raise typer.Exit(1)
            for event in iter_sse_events(resp.iter_lines()):
                if raw:
                    console.print_json(json.dumps(event))
                else:
                    _render_event(event, verbose=verbose)
    except httpx.ConnectError:
        console.print(f"[red]Error:[/red] Cannot connect to FloMail at {base_url}")
        console.print("Is the server running? Start it with: flomail serve")
        raise typer.Exit(1)
    except httpx.HTTPStatusError as e:
        console.print(f"[red]Error {e.response.status_code}:[/red] {e.response.text}")
        raise typer.Exit(1)


@app.command()
def tools() -> None:
    """List the tools the agent offers the model, and who runs each."""
    from flomail.agent.catalog import build_registry
    from flomail.config import get_config
    from flomail.mail.gmail import GmailMailbox

    config = get_config()
    registry = build_registry(config, GmailMailbox(config.mailbox))

    table = Table(title="FloMail tools", border_style="blue")
    table.add_column("Tool", style="bold")
    table.add_column("Runs on")
    table.add_column("Description")
    for item in registry.list_tools():
        style = "green" if item["kind"] == "server" else "yellow"
        table.add_row(item["name"], f"[{style}]{item['kind']}[/{style}]", item["description"])
    console.print(table)


@app.command()
def models(
    base_url: str = typer.Option(DEFAULT_URL, "--url", "-u", envvar="FLOMAIL_URL"),
) -> None:
    """List the models the server accepts."""
    client = _get_client(base_url)
    try:
        resp = client.get("/api/ai/chat")
        resp.raise_for_status()
    except httpx.ConnectError:
        console.print(f"[red]✗[/red] FloMail is not running at {base_url}")
        raise typer.Exit(1)

    table = Table(title="Models", border_style="blue")
    table.add_column("Provider", style="bold")
    table.add_column("Model id")
    table.add_column("Name")
    for provider, entries in resp.json().items():
        for entry in entries:
            table.add_row(provider, entry["id"], entry["name"])
    console.print(table)


@app.command()
def status(
    base_url: str = typer.Option(DEFAULT_URL, "--url", "-u", envvar="FLOMAIL_URL"),
) -> None:
    """Check the server's status."""
    client = _get_client(base_url)
    try:
        resp = client.get("/health")
        resp.raise_for_status()
    except httpx.ConnectError:
        console.print(f"[red]✗[/red] FloMail is not running at {base_url}")
        raise typer.Exit(1)

    data = resp.json()

    table = Table(title="FloMail Status", show_header=False, border_style="blue")
    table.add_column("Key", style="bold")
    table.add_column("Value")

    table.add_row("Status", f"[green]{data['status']}[/green]")
    table.add_row("Version", data.get("version", "?"))
    table.add_row("Uptime", f"{data.get('uptime_seconds', '?')}s")
    table.add_row("Provider", data.get("default_provider", "?"))

    if "llm_stats" in data:
        stats = data["llm_stats"]
        table.add_row("Requests", str(stats.get("request_count", 0)))
        table.add_row("Fallbacks", str(stats.get("fallback_count", 0)))

    if "tools" in data:
        table.add_row("Server tools", str(data["tools"].get("server", 0)))
        table.add_row("Client tools", str(data["tools"].get("client", 0)))

    console.print(table)


@app.command()
def serve(
    host: str = typer.Option("0.0.0.0", "--host"),
    port: int = typer.Option(8000, "--port"),
    reload: bool = typer.Option(False, "--reload"),
) -> None:
    """Start the FloMail agent server."""
    import uvicorn

    console.print(Panel("Starting FloMail agent server...", border_style="blue"))
    uvicorn.run(
        "flomail.main:app",
        host=host,
        port=port,
        reload=reload,
    )


@app.command()
def version() -> None:
    """Show FloMail version."""
    from flomail import __version__

    console.print(f"FloMail v{__version__}")


def main() -> None:
    """Entrypoint."""
    app()


if __name__ == "__main__":
    main()
