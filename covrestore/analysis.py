"""rendering of partitioning and restoration results"""

import json
from typing import Any, Dict, List, Tuple

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .coverage import Pod
from .partition import FileAnalysis


def generate_units_data(analysis: FileAnalysis) -> Dict[str, Any]:
    """generate a json-ready description of a partitioned file"""
    graph = analysis.graph
    data = {
        "file": analysis.path,
        "summary": {
            "functions": len(analysis.functions),
            "blocks": len(analysis.block_units),
            "units": analysis.unit_count,
            "edges": graph.edge_count(),
        },
        "functions": [],
    }

    for fn in analysis.functions:
        units = []
        for i, unit in enumerate(fn.units):
            units.append(
                {
                    "index": i,
                    "unit": unit.to_list(),
                    "implies": [u.to_list() for u in graph.implied_by(unit)],
                }
            )
        data["functions"].append(
            {
                "name": fn.name,
                "literal": fn.lit,
                "start": list(fn.start),
                "units": units,
            }
        )

    return data


def print_units_rich(analysis: FileAnalysis, console: Console = None):
    """display the units and implication edges of a file using Rich"""
    console = console or Console()
    data = generate_units_data(analysis)

    console.print(
        Panel(
            f"[bold cyan]Coverable Units[/bold cyan]\n[dim]{analysis.path}[/dim]",
            expand=False,
        )
    )

    summary = data["summary"]
    summary_table = Table(title="[bold]Summary[/bold]", show_header=False, box=None)
    summary_table.add_column("Metric", style="bold")
    summary_table.add_column("Value", style="cyan")
    summary_table.add_row("Functions", f"{summary['functions']:,}")
    summary_table.add_row("Blocks", f"{summary['blocks']:,}")
    summary_table.add_row("Units", f"{summary['units']:,}")
    summary_table.add_row("Implication Edges", f"{summary['edges']:,}")
    console.print(summary_table)
    console.print()

    for fn in analysis.functions:
        kind = " (literal)" if fn.lit else ""
        table = Table(title=f"[bold]{fn.name}[/bold]{kind} line {fn.start[0]}")
        table.add_column("#", justify="right", style="dim")
        table.add_column("Start", style="cyan")
        table.add_column("End", style="cyan")
        table.add_column("NS", justify="right", style="yellow")
        table.add_column("Implies", style="green")

        for i, unit in enumerate(fn.units):
            implied = analysis.graph.implied_by(unit)
            table.add_row(
                str(i),
                f"L{unit.st_line}:C{unit.st_col}",
                f"L{unit.en_line}:C{unit.en_col}",
                str(unit.nx_stmts),
                ", ".join(f"L{u.st_line}:C{u.st_col}" for u in implied) or "-",
            )
        console.print(table)
    console.print()


def print_units_json(analysis: FileAnalysis):
    """output partitioning results as JSON"""
    print(json.dumps(generate_units_data(analysis), indent=2))


def summarize_restoration(
    pods: List[Pod],
    restored: Dict[Tuple[int, int, int], Tuple[List[int], List[int]]],
) -> List[Dict[str, Any]]:
    """per-function seed and restored counts, in meta-data order.
    restored is keyed by (pod_idx, pkg_idx, fn_idx)"""
    rows = []
    for pod_idx, pod in enumerate(pods):
        for pkg_idx, pkg in enumerate(pod.meta_file.packages):
            for fn_idx, fd in enumerate(pkg.funcs):
                entry = restored.get((pod_idx, pkg_idx, fn_idx))
                if entry is None:
                    continue
                before, after = entry
                rows.append(
                    {
                        "pod": pod.meta_file.path,
                        "package": pkg.path,
                        "function": fd.funcname,
                        "units": len(fd.units),
                        "seeded": sum(1 for c in before[: len(fd.units)] if c != 0),
                        "restored": sum(after),
                    }
                )
    return rows


def print_restore_summary(rows: List[Dict[str, Any]], console: Console = None):
    """display how many units restoration marked per function"""
    console = console or Console()
    if not rows:
        console.print("[yellow]no functions carried counter data[/yellow]")
        return

    table = Table(title="[bold]Restoration Summary[/bold]")
    table.add_column("Pod", style="dim")
    table.add_column("Package", style="cyan")
    table.add_column("Function", style="bold")
    table.add_column("Units", justify="right")
    table.add_column("Seeded", justify="right", style="yellow")
    table.add_column("Executed", justify="right", style="green")
    table.add_column("Inferred", justify="right", style="magenta")

    for row in rows:
        table.add_row(
            row["pod"],
            row["package"],
            row["function"],
            str(row["units"]),
            str(row["seeded"]),
            str(row["restored"]),
            str(row["restored"] - row["seeded"]),
        )
    console.print(table)
