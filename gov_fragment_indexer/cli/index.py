"""Index management CLI commands."""

from __future__ import annotations

import asyncio
import json as _json

import click
from rich.console import Console
from rich.table import Table


async def _num_docs(idx, index_name: str):
    raw_info = await idx._redis_client.execute_command("FT.INFO", index_name)
    # FT.INFO replies with a flat key/value list
    info_dict = {}
    for i in range(0, len(raw_info), 2):
        key = raw_info[i]
        if isinstance(key, bytes):
            key = key.decode()
        info_dict[key] = raw_info[i + 1]
    num_docs = info_dict.get("num_docs", 0)
    if isinstance(num_docs, bytes):
        num_docs = num_docs.decode()
    return int(num_docs)


@click.group()
def index():
    """RediSearch index management commands."""
    pass


@index.command("list")
@click.option("--json", "as_json", is_flag=True, help="Output JSON")
def index_list(as_json: bool):
    """List the fragment and page indices and their status."""

    async def _run():
        from gov_fragment_indexer.core.redis import INDEX_GETTERS

        results = []
        for name, (index_name, get_fn) in INDEX_GETTERS.items():
            try:
                idx = await get_fn()
                exists = await idx.exists()
                num_docs = 0
                if exists:
                    try:
                        num_docs = await _num_docs(idx, index_name)
                    except Exception:
                        num_docs = "?"
                results.append(
                    {"name": name, "index_name": index_name, "exists": exists, "num_docs": num_docs}
                )
            except Exception as e:
                results.append(
                    {"name": name, "index_name": index_name, "exists": False, "error": str(e)}
                )

        if as_json:
            print(_json.dumps(results, indent=2))
            return

        table = Table(title="RediSearch Indices")
        table.add_column("Name", no_wrap=True)
        table.add_column("Index Name", no_wrap=True)
        table.add_column("Exists", no_wrap=True)
        table.add_column("Documents", no_wrap=True)

        for r in results:
            exists_str = "✅" if r["exists"] else "❌"
            docs = str(r.get("num_docs", 0)) if r["exists"] else "-"
            if r.get("error"):
                docs = f"Error: {r['error']}"
            table.add_row(r["name"], r["index_name"], exists_str, docs)

        Console().print(table)

    asyncio.run(_run())


@index.command("create")
def index_create():
    """Create missing indices."""

    async def _run():
        from gov_fragment_indexer.core.redis import create_indices

        return await create_indices()

    if asyncio.run(_run()):
        click.echo("✅ Indices ready")
    else:
        click.echo("❌ Failed to create indices")
        raise SystemExit(1)


@index.command("recreate")
@click.option(
    "--index-name",
    type=click.Choice(["fragments", "pages", "all"]),
    default="all",
    help="Which index to recreate (default: all)",
)
@click.option("-y", "--yes", is_flag=True, help="Skip confirmation prompt")
@click.option("--json", "as_json", is_flag=True, help="Output JSON")
def index_recreate(index_name: str, yes: bool, as_json: bool):
    """Drop and recreate RediSearch indices.

    Use after a schema change. The stored hashes remain and are re-indexed
    by RediSearch in the background.
    """

    async def _run():
        from gov_fragment_indexer.core.redis import recreate_indices

        console = Console()

        if not yes and not as_json:
            console.print("[yellow]Warning:[/yellow] This will drop and recreate indices.")
            if not click.confirm("Continue?"):
                console.print("Aborted.")
                return

        result = await recreate_indices(index_name if index_name != "all" else None)

        if as_json:
            print(_json.dumps(result, indent=2))
            return

        if result.get("success"):
            console.print("[green]✅ Successfully recreated indices[/green]")
        else:
            console.print("[red]❌ Failed to recreate some indices[/red]")
        for idx_name, status in result.get("indices", {}).items():
            console.print(f"  - {idx_name}: {status}")

    asyncio.run(_run())
