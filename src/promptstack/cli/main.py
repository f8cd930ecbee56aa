"""CLI entry points for promptstack.

Implements a click-based CLI for inspecting persisted prompt state and the
instruction history of a session.
"""

import sys
from pathlib import Path

import click
from dotenv import load_dotenv
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from promptstack.core.config import PromptStackConfig, load_config
from promptstack.core.exceptions import PromptStackException, format_error_for_user
from promptstack.core.history import history_path, read_history
from promptstack.core.instructions import InstructionState
from promptstack.core.registry import PromptRegistry
from promptstack.core.session import PromptSession
from promptstack.core.state_store import PromptStateStore
from promptstack.core.tokens import TokenCounter

# Load .env file from current directory or parent directories
load_dotenv()

console = Console()

STATE_COLORS = {
    InstructionState.ACTIVE: "green",
    InstructionState.RETIRED: "dim",
    InstructionState.REJECTED: "red",
}


def _load_config(profile: str, project: str) -> PromptStackConfig:
    try:
        return load_config(profile, Path(project))
    except PromptStackException as e:
        console.print(f"[bold red]Error:[/bold red] {format_error_for_user(e)}")
        sys.exit(1)


def _preview(text: str, limit: int = 60) -> str:
    single_line = " ".join(text.split())
    return single_line[:limit] + ("..." if len(single_line) > limit else "")


@click.group()
@click.version_option(prog_name="promptstack")
def cli() -> None:
    """Inspect and render persisted system-prompt state."""
    pass


@cli.group()
def state() -> None:
    """Manage stored prompt-state snapshots."""
    pass


@state.command("show")
@click.argument("project")
@click.argument("session_id")
@click.option("--profile", "-p", default="default", help="Configuration profile")
@click.option("--all", "show_all", is_flag=True, help="Include retired instructions")
def state_show(project: str, session_id: str, profile: str, show_all: bool) -> None:
    """Show instructions stored for PROJECT and SESSION_ID."""
    config = _load_config(profile, project)
    store = PromptStateStore(config.config_root)

    try:
        snapshot = store.load(project, session_id)
    except PromptStackException as e:
        console.print(f"[bold red]Error:[/bold red] {format_error_for_user(e)}")
        sys.exit(1)

    if snapshot is None:
        console.print(f"[yellow]No prompt state stored for session {session_id}[/yellow]")
        return

    console.print(f"[bold]Session: {session_id}[/bold]")
    console.print(f"Snapshot: {store.snapshot_path(project, session_id)}")
    console.print(f"Date stamp: {snapshot.current_date_timestamp}")
    if snapshot.override_prompt is not None:
        console.print("[cyan]System prompt override is set[/cyan]")
    console.print()

    by_id = {instruction.id: instruction for instruction in snapshot.instructions}
    table = Table(show_header=True, header_style="bold")
    table.add_column("#", justify="right")
    table.add_column("State")
    table.add_column("Source")
    table.add_column("Scope")
    table.add_column("Content")

    for instruction_id in snapshot.applied_order:
        instruction = by_id.get(instruction_id)
        if instruction is None:
            continue
        if not show_all and instruction.state is not InstructionState.ACTIVE:
            continue
        color = STATE_COLORS[instruction.state]
        table.add_row(
            str(instruction.order),
            f"[{color}]{instruction.state.value}[/{color}]",
            escape(instruction.source.label()),
            instruction.scope.kind.value,
            escape(_preview(instruction.content)),
        )

    console.print(table)


@state.command("clear")
@click.argument("project")
@click.argument("session_id")
@click.option("--profile", "-p", default="default", help="Configuration profile")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation")
def state_clear(project: str, session_id: str, profile: str, yes: bool) -> None:
    """Remove the snapshot stored for PROJECT and SESSION_ID."""
    config = _load_config(profile, project)
    store = PromptStateStore(config.config_root)
    path = store.snapshot_path(project, session_id)

    if not path.exists():
        console.print(f"[yellow]No prompt state stored for session {session_id}[/yellow]")
        return

    if not yes:
        confirm = console.input(f"[yellow]Delete prompt state for {session_id}? (y/N):[/yellow] ")
        if confirm.lower() != "y":
            console.print("[dim]Cancelled[/dim]")
            return

    try:
        store.remove(project, session_id)
    except PromptStackException as e:
        console.print(f"[bold red]Error:[/bold red] {format_error_for_user(e)}")
        sys.exit(1)
    console.print(f"[green]✓ Removed prompt state: {session_id}[/green]")


@cli.command()
@click.argument("project")
@click.argument("session_id")
@click.option("--profile", "-p", default="default", help="Configuration profile")
@click.option(
    "--limit", "-n", type=click.IntRange(min=1), help="Show only the last N events"
)
def history(project: str, session_id: str, profile: str, limit: int | None) -> None:
    """Print the instruction history recorded for PROJECT and SESSION_ID."""
    config = _load_config(profile, project)
    path = history_path(config.config_root, project, session_id)

    try:
        events = read_history(path, limit=limit)
    except PromptStackException as e:
        console.print(f"[bold red]Error:[/bold red] {format_error_for_user(e)}")
        sys.exit(1)

    if not events:
        console.print(f"[yellow]No history recorded for session {session_id}[/yellow]")
        return

    for event in events:
        action = event.get("action", "?")
        color = "red" if action == "Retire" else "cyan"
        console.print(
            f"[{color}]▶ {action}[/{color}] [dim]{event.get('timestamp', '')}[/dim] "
            f"#{event.get('order', '?')} {escape(str(event.get('source_label', '')))}"
        )
        console.print(f"  {escape(str(event.get('preview', '')))}")


@cli.command()
@click.argument("project")
@click.argument("session_id")
@click.option("--profile", "-p", default="default", help="Configuration profile")
@click.option("--model", "-m", default="gpt-4o", help="Model the prompt is composed for")
@click.option("--router", is_flag=True, help="Advertise dynamic tool selection")
@click.option("--tokens", "show_tokens", is_flag=True, help="Report the prompt's token count")
def render(
    project: str, session_id: str, profile: str, model: str, router: bool, show_tokens: bool
) -> None:
    """Compose the system prompt from the state stored for PROJECT and SESSION_ID."""
    config = _load_config(profile, project)
    store = PromptStateStore(config.config_root)

    try:
        snapshot = store.load(project, session_id)
    except PromptStackException as e:
        console.print(f"[bold red]Error:[/bold red] {format_error_for_user(e)}")
        sys.exit(1)

    registry = PromptRegistry()
    if snapshot is not None:
        registry.restore(snapshot)

    # Read-only: a disabled session never writes back to disk
    session = PromptSession(
        project,
        session_id,
        PromptStackConfig.from_dict({**config.to_dict(), "refinement_mode": "disabled"}),
        registry=registry,
    )
    prompt = session.build_prompt(model, router_enabled=router)
    click.echo(prompt)

    if show_tokens:
        count = TokenCounter().count_text(prompt, model)
        console.print(f"\n[dim]{count} tokens ({model})[/dim]")


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
