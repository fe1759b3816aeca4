import logging
from typing import Annotated

import typer

from template_lens.cli.check import check
from template_lens.cli.transform import transform

app = typer.Typer(
    name="template-lens",
    help="template-lens CLI: type-check Handlebars templates through TypeScript.",
    no_args_is_help=True,
    context_settings={"help_option_names": ["-h", "--help"]},
)


@app.callback()
def configure(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Enable debug logging.")] = False,
) -> None:
    logging.basicConfig(level=logging.DEBUG if verbose else logging.WARNING)


app.command("transform")(transform)
app.command("check")(check)


def main() -> None:
    app()
