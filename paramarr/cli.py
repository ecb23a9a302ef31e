"""Command-line interface.

    paramarr preprocess --spec-dir specs --out-dir specs_resolved
    paramarr validate --spec-dir specs
    paramarr stats --spec-dir specs
    paramarr resolve "Hello <user:env#USER|world>"
    paramarr serve --port 8080

Logs go to stderr; command output goes to stdout.
"""

import json
from pathlib import Path

import typer

from paramarr import __version__
from paramarr.core.errors import ParamarrError
from paramarr.preprocessor import Preprocessor
from paramarr.resolver import ParamResolver
from paramarr.utilities.logging import setup_logging
from paramarr.utilities.masking import mask_secrets

EXIT_FAILURE = 1
EXIT_INTERRUPTED = 130

app = typer.Typer(
    name="paramarr",
    help="Resolve external parameter placeholders in test specs.",
    no_args_is_help=True,
)

ConfigOption = typer.Option(None, "--config", "-c", help="Config file (default ./paramarr.json)")


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"paramarr {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
    version: bool = typer.Option(
        False, "--version", "-V", help="Show version and exit.", callback=_version_callback, is_eager=True
    ),
) -> None:
    setup_logging("DEBUG" if verbose else "INFO")


def _fail(message: str, code: int = EXIT_FAILURE) -> typer.Exit:
    typer.echo(f"Error: {mask_secrets(message)}", err=True)
    return typer.Exit(code=code)


@app.command()
def preprocess(
    spec_dir: Path = typer.Option(Path("specs"), "--spec-dir", "-s", help="Input spec directory"),
    out_dir: Path = typer.Option(Path("specs_resolved"), "--out-dir", "-o", help="Output directory"),
    config: Path | None = ConfigOption,
) -> None:
    """Resolve every spec under --spec-dir into --out-dir.

    Exits 1 if any document failed (failed documents are copied through
    unresolved), 130 if interrupted.
    """
    preprocessor = Preprocessor(config)
    try:
        result = preprocessor.process_directory(spec_dir, out_dir)
    except KeyboardInterrupt:
        preprocessor.cancel()
        raise _fail("Interrupted", EXIT_INTERRUPTED) from None
    except ParamarrError as e:
        raise _fail(str(e)) from e

    typer.echo(
        f"Processed {len(result.processed)} spec(s), copied {len(result.copied)} file(s) to {out_dir}"
    )
    if result.failures:
        typer.echo(f"{len(result.failures)} document(s) could not be resolved:", err=True)
        # Already masked by ValidationError; the path is left readable
        for failure in result.failures:
            typer.echo(f"  {failure.error}", err=True)
        raise typer.Exit(code=EXIT_FAILURE)


@app.command()
def validate(
    spec_dir: Path = typer.Option(Path("specs"), "--spec-dir", "-s", help="Spec directory"),
    config: Path | None = ConfigOption,
) -> None:
    """Check that every placeholder in --spec-dir resolves. Writes nothing."""
    try:
        results = Preprocessor(config).validate_specs(spec_dir)
    except KeyboardInterrupt:
        raise _fail("Interrupted", EXIT_INTERRUPTED) from None
    except ParamarrError as e:
        raise _fail(str(e)) from e

    typer.echo(f"Validated {results.processed_files}/{results.total_files} spec(s)")
    if not results.success:
        # Already masked by ValidationError; the path is left readable
        for error in results.errors:
            typer.echo(f"  {error.error}", err=True)
        raise typer.Exit(code=EXIT_FAILURE)


@app.command()
def stats(
    spec_dir: Path = typer.Option(Path("specs"), "--spec-dir", "-s", help="Spec directory"),
) -> None:
    """Print placeholder usage statistics as JSON. Contacts no source."""
    statistics = Preprocessor().get_placeholder_statistics(spec_dir)
    typer.echo(json.dumps(statistics.to_dict(), indent=2))


@app.command()
def resolve(
    text: str = typer.Argument(..., help="Text containing placeholders"),
    config: Path | None = ConfigOption,
) -> None:
    """Resolve placeholders in TEXT and print the result."""
    try:
        with ParamResolver(config) as resolver:
            resolved = resolver.resolve_text(text)
    except ParamarrError as e:
        raise _fail(str(e)) from e
    typer.echo(resolved)


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host", help="Bind address"),
    port: int = typer.Option(8080, "--port", "-p", help="Bind port"),
    config: Path | None = ConfigOption,
    log_level: str = typer.Option("info", "--log-level"),
) -> None:
    """Run the HTTP API for test runners."""
    import uvicorn

    from paramarr.api import create_app

    typer.echo(f"Starting Paramarr API on {host}:{port}", err=True)
    uvicorn.run(create_app(config), host=host, port=port, log_level=log_level)


if __name__ == "__main__":
    app()
