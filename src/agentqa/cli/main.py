"""agentqa CLI entry point."""

import typer

from agentqa import __version__
from agentqa.cli.aggregate_cmd import aggregate

app = typer.Typer(
    name="agentqa",
    help="Oracle engine for testing conversational AI agents",
    no_args_is_help=True,
)

# Register subcommands
app.command()(aggregate)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"agentqa {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-v",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
) -> None:
    """Oracle engine for testing conversational AI agents."""
