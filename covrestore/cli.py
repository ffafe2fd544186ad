"""command line interface for covrestore"""

import json
from typing import List, Optional
from pathlib import Path

import typer

from .coverage import RestoreError
from .partition import analyze_source
from .ops import DEBUG_DUMP, PERCENT, DumpState, make_restorer_op
from .feed import load_dump, visit_pods, dump_from_analysis
from .analysis import (
    print_units_rich,
    print_units_json,
    summarize_restoration,
    print_restore_summary,
)


app = typer.Typer(
    help="restore go coverage counters from source structure",
    no_args_is_help=True,
    context_settings=dict(help_option_names=["-h", "--help"]),
    pretty_exceptions_short=True,
    pretty_exceptions_show_locals=False,
    add_completion=False,
)

# global state for verbose option
verbose_enabled = False


@app.callback()
def main_callback(
    verbose: bool = typer.Option(
        False, "-v", "--verbose", help="enable verbose output for all operations"
    ),
):
    """global options for covrestore"""
    global verbose_enabled
    verbose_enabled = verbose


def _fail(message: str, error: Exception):
    typer.echo(f"{message}: {error}", err=True)
    if verbose_enabled:
        import traceback

        traceback.print_exc()
    raise typer.Exit(1)


@app.command()
def units(
    source: Path = typer.Argument(..., help="go source file to partition"),
    json_output: bool = typer.Option(False, "--json", help="output units as JSON"),
):
    """show the coverable units and implication edges of a source file"""
    try:
        analysis = analyze_source(source)
    except RestoreError as e:
        _fail(f"error analyzing {source}", e)

    if json_output:
        print_units_json(analysis)
    else:
        print_units_rich(analysis)


@app.command()
def skeleton(
    source: Path = typer.Argument(..., help="go source file to partition"),
    package: str = typer.Option(..., "--package", "-p", help="import path of the package"),
    output: Optional[Path] = typer.Option(
        None, "--output", "-o", help="output file (default: stdout)"
    ),
    srcfile: Optional[str] = typer.Option(
        None, "--srcfile", help="source path to record instead of SOURCE"
    ),
):
    """write a coverage dump for a source file with every counter zero"""
    try:
        analysis = analyze_source(source)
    except RestoreError as e:
        _fail(f"error analyzing {source}", e)

    text = json.dumps(dump_from_analysis(analysis, package, srcfile), indent=2)
    if output is None:
        typer.echo(text)
        return

    output.write_text(text + "\n", encoding="utf-8")
    typer.echo(
        f"wrote {len(analysis.functions)} functions ({analysis.unit_count} units) to {output}"
    )


@app.command()
def restore(
    dump: Path = typer.Argument(..., help="json coverage dump"),
    sources: List[Path] = typer.Option(
        [], "--source", "-s", help="go source file referenced by the dump"
    ),
    root: Optional[Path] = typer.Option(
        None, "--root", "-r", help="directory that source paths are relative to"
    ),
    percent: bool = typer.Option(
        False, "--percent", help="report statement coverage instead of units"
    ),
    no_restore: bool = typer.Option(
        False, "--no-restore", help="dump counters as recorded, without restoring"
    ),
    summary: bool = typer.Option(
        False,
        "--summary",
        help="show how many units were inferred per function (needs restoration)",
    ),
):
    """dump coverage counters, completing them from source structure"""
    if no_restore and summary:
        typer.echo("--summary cannot be combined with --no-restore", err=True)
        raise typer.Exit(1)

    try:
        pods = load_dump(dump)
    except RestoreError as e:
        _fail(f"error loading {dump}", e)

    op = DumpState(mode=PERCENT if percent else DEBUG_DUMP)
    try:
        if no_restore:
            visit_pods(op, pods)
            return

        restorer = make_restorer_op(op, sources, root, verbose=verbose_enabled)
        visit_pods(restorer, pods)
    except RestoreError as e:
        _fail("error restoring counters", e)

    if summary:
        print_restore_summary(summarize_restoration(pods, restorer.restored))


def main():
    """entry point for console script"""
    app()


if __name__ == "__main__":
    main()
