from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

from template_lens.cli.workspace import open_workspace
from template_lens.errors import LensError

console = Console()


def transform(
    path: Annotated[Path, typer.Argument(help="Script or template file to transform.")],
    debug: Annotated[bool, typer.Option("--debug", help="Print the span and mapping tree instead of the code.")] = False,
) -> None:
    """Print the TypeScript module synthesized for a file."""
    try:
        manager = open_workspace(path)
    except LensError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(code=1) from exc

    resolved = str(path.absolute())
    module = manager.get_transformed_module(resolved)
    if module is None:
        console.print(f"[yellow]No transformation applies to {path}[/yellow]")
        return

    output = module.to_debug_string() if debug else module.transformed_contents
    console.print(output, markup=False, highlight=False, soft_wrap=True)
