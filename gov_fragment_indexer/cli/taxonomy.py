"""Taxonomy inspection commands."""

import click
from rich.console import Console
from rich.table import Table

from ..core.errors import TaxonomyError
from ..taxonomy import load_taxonomy


@click.group()
def taxonomy():
    """Inspect the classification taxonomy."""
    pass


@taxonomy.command()
@click.option("--path", help="Taxonomy JSON to load instead of the bundled one")
@click.option("--graph-path", help="Life-event graph JSON to load instead of the bundled one")
def validate(path, graph_path):
    """Check that taxonomy data loads and that the graph matches the life events."""
    try:
        reference = load_taxonomy(path, graph_path)
    except TaxonomyError as e:
        click.echo(f"❌ {e}")
        raise SystemExit(1)

    names = {event.name for event in reference.life_events}
    problems = []
    for node in reference.graph:
        if node.event_name not in names:
            problems.append(f"graph node '{node.event_name}' has no life event deck")
        for ref in (*node.prerequisites, *node.next_states, *node.concurrent_allowed):
            if ref not in names:
                problems.append(f"'{node.event_name}' references unknown event '{ref}'")

    if problems:
        for problem in problems:
            click.echo(f"⚠️  {problem}")
        raise SystemExit(1)
    click.echo(f"✅ Taxonomy valid: {reference.summary()}")


@taxonomy.command()
def show():
    """List life events with their stages and SRRS weights."""
    reference = load_taxonomy()
    table = Table(title="Life events")
    table.add_column("Life event")
    table.add_column("SRRS", no_wrap=True)
    table.add_column("Stages")
    for event in reference.life_events:
        table.add_row(
            event.name,
            str(event.srrs_score) if event.srrs_score is not None else "-",
            ", ".join(stage.name for stage in event.stages),
        )
    Console().print(table)
