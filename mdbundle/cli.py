"""
CLI entry point: resolve and render Markdown from the shell.

    mdbundle scan docs/                      # list documents, images and warnings
    mdbundle scan docs/ --json
    mdbundle convert docs/                   # writes docs/markdown_export.pdf
    mdbundle convert a.md b.md --order b.md --order a.md --output-name book.pdf
"""

import json
import logging
from pathlib import Path

import typer

from mdbundle.api import JobContext, convert_to_pdf, process_input
from mdbundle.config import load_render_config
from mdbundle.errors import MdBundleError
from mdbundle.path_utils import canonical

app = typer.Typer(
    name="mdbundle",
    help="Bundle Markdown documents and their images into one paginated PDF.",
)


def _echo_warnings(warnings: list[str]) -> None:
    for w in warnings:
        typer.echo(f"Warning: {w}", err=True)


def _fail(message: str) -> None:
    typer.echo(f"Error: {message}", err=True)
    raise typer.Exit(1)


@app.command("scan")
def scan_cmd(
    paths: list[Path] = typer.Argument(..., help="Markdown files, folders or .zip archives", path_type=Path),
    as_json: bool = typer.Option(False, "--json", help="Print the result as JSON"),
    verbose: bool = typer.Option(False, "-v", "--verbose", help="Print diagnostic info"),
) -> None:
    """Resolve inputs and show what would be converted."""
    if verbose:
        logging.basicConfig(level=logging.INFO, format="%(message)s")
    try:
        with JobContext() as ctx:
            processed = process_input(paths, context=ctx)
    except MdBundleError as e:
        _fail(str(e))

    if as_json:
        typer.echo(json.dumps(processed.model_dump(), indent=2, ensure_ascii=False))
        return

    _echo_warnings(processed.warnings)
    typer.echo(f"Root: {processed.root}")
    typer.echo(f"Documents ({len(processed.markdown_files)}):")
    for md in processed.markdown_files:
        typer.echo(f"  {md}")
    typer.echo(f"Images ({len(processed.image_files)}):")
    for img in processed.image_files:
        typer.echo(f"  {img}")


@app.command("convert")
def convert_cmd(
    paths: list[Path] = typer.Argument(..., help="Markdown files, folders or .zip archives", path_type=Path),
    order: list[Path] | None = typer.Option(
        None,
        "--order",
        help="Manual document order; repeat once per document. Must list every resolved document.",
        path_type=Path,
    ),
    config_path: Path | None = typer.Option(
        None,
        "--config",
        "-c",
        help="JSON render config (default: $MDBUNDLE_CONFIG or ./.mdbundle.json)",
        path_type=Path,
    ),
    output_name: str | None = typer.Option(
        None,
        "--output-name",
        "-o",
        help="PDF file name, written under the resolved root",
    ),
    verbose: bool = typer.Option(False, "-v", "--verbose", help="Print diagnostic info"),
) -> None:
    """Convert Markdown inputs to a single PDF."""
    if verbose:
        logging.basicConfig(level=logging.INFO, format="%(message)s")
    try:
        config = load_render_config(config_path, output_name=output_name)
    except ValueError as e:
        _fail(str(e))

    try:
        with JobContext() as ctx:
            processed = process_input(paths, context=ctx, config=config)
            if order:
                processed.markdown_files = [str(canonical(p)) for p in order]
            result = convert_to_pdf(processed, context=ctx, config=config)
    except MdBundleError as e:
        _fail(f"{e.kind}: {e}")

    _echo_warnings(result.warnings)
    typer.echo(f"Wrote {result.output_path}")
    typer.echo(f"  Documents: {result.document_count}")
    typer.echo(f"  Pages:     {result.page_count}")
    typer.echo(f"  Images:    {result.image_count}")


def main() -> None:
    """Entry point for the mdbundle console script."""
    app()


if __name__ == "__main__":
    main()
