"""CLI commands for running the crawl-to-index pipeline."""

import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Optional, Tuple

import click
from rich.console import Console
from rich.table import Table

from ..core.config import settings
from ..core.errors import RendererLaunchError
from ..pipelines.orchestrator import PipelineOrchestrator
from ..pipelines.scraper.crawler import CrawlConfig


def _configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else getattr(logging, settings.log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def _print_summary(results: dict) -> None:
    console = Console()
    crawl = results.get("crawl", {})
    sync = results.get("sync", {})

    table = Table(title=f"Crawl generation {results.get('generation')}")
    table.add_column("Metric", no_wrap=True)
    table.add_column("Value", no_wrap=True)
    table.add_row("Pages attempted", str(crawl.get("pages_attempted", 0)))
    table.add_row("Pages succeeded", str(crawl.get("pages_succeeded", 0)))
    table.add_row("Pages failed", str(crawl.get("pages_failed", 0)))
    table.add_row("Pages skipped", str(crawl.get("pages_skipped", 0)))
    table.add_row("Fragments", str(results.get("fragments", 0)))
    table.add_row("Page documents", str(results.get("pages", 0)))
    table.add_row("Fragments written", str(sync.get("fragments", {}).get("written", 0)))
    table.add_row("Pages written", str(sync.get("pages", {}).get("written", 0)))
    for prune in sync.get("prune", []):
        table.add_row(
            f"Pruned ({prune['host']})", f"{prune['fragments']} fragments, {prune['pages']} pages"
        )
    table.add_row("Avg seconds/page", str(crawl.get("avg_page_seconds", 0)))
    console.print(table)

    for warning in crawl.get("warnings", []):
        console.print(f"[yellow]⚠️  {warning}[/yellow]")
    for url in crawl.get("failed_urls", []):
        console.print(f"[red]❌ {url}[/red]")


@click.group()
def pipeline():
    """Crawl, extract, classify and index government content."""
    pass


@pipeline.command()
@click.option("--seed", "seeds", multiple=True, required=True, help="Seed URL (repeatable)")
@click.option("--max-pages", type=int, help="Maximum pages to crawl")
@click.option("--max-depth", type=int, help="Maximum link depth from a seed")
@click.option("--max-links", type=int, help="Links followed per page")
@click.option("--concurrency", type=int, help="Concurrent page renders")
@click.option("--no-sitemap", is_flag=True, help="Do not seed from sitemap.xml")
@click.option("--no-prune", is_flag=True, help="Write documents without retiring stale ones")
@click.option("--summary-path", type=click.Path(dir_okay=False), help="Write run summary JSON")
@click.option("--verbose", "-v", is_flag=True, help="Debug logging")
def crawl(
    seeds: Tuple[str, ...],
    max_pages: Optional[int],
    max_depth: Optional[int],
    max_links: Optional[int],
    concurrency: Optional[int],
    no_sitemap: bool,
    no_prune: bool,
    summary_path: Optional[str],
    verbose: bool,
):
    """Run a full crawl-to-index pass for the given seeds."""
    _configure_logging(verbose)
    click.echo(f"🚀 Starting crawl of {len(seeds)} seed(s)...")

    crawl_config = CrawlConfig.from_settings(
        settings,
        max_pages=max_pages,
        max_depth=max_depth,
        max_links_per_page=max_links,
        concurrency=concurrency,
        use_sitemap=False if no_sitemap else None,
    )

    async def run_crawl():
        orchestrator = PipelineOrchestrator(crawl_config=crawl_config)
        try:
            return await orchestrator.run_full_pipeline(list(seeds), prune=not no_prune)
        finally:
            await orchestrator.close()

    try:
        results = asyncio.run(run_crawl())
    except RendererLaunchError as e:
        click.echo(f"❌ Browser could not be started: {e}")
        sys.exit(2)
    except Exception as e:
        click.echo(f"❌ Pipeline failed: {e}")
        sys.exit(1)

    click.echo("✅ Crawl completed!")
    _print_summary(results)

    if summary_path:
        Path(summary_path).write_text(json.dumps(results, indent=2, default=str))
        click.echo(f"📄 Summary written to {summary_path}")


@pipeline.command()
@click.option("--host", required=True, help="Host whose stale documents are removed")
@click.option("--generation", type=int, required=True, help="Delete documents older than this")
@click.option("-y", "--yes", is_flag=True, help="Skip confirmation prompt")
def prune(host: str, generation: int, yes: bool):
    """Delete documents of HOST from generations older than GENERATION."""
    if not yes and not click.confirm(f"Delete documents of {host} older than {generation}?"):
        click.echo("Aborted.")
        return

    async def run_prune():
        orchestrator = PipelineOrchestrator()
        try:
            return await orchestrator.prune_host(host, generation)
        finally:
            await orchestrator.close()

    result = asyncio.run(run_prune())
    click.echo(f"🧹 Pruned {result['fragments']} fragments and {result['pages']} pages")
    for error in result["errors"]:
        click.echo(f"   ⚠️  {error}")


@pipeline.command()
@click.argument("url")
@click.option("--json", "as_json", is_flag=True, help="Output JSON")
def extract(url: str, as_json: bool):
    """Render one URL and show the fragments it yields (nothing is stored)."""
    from ..pipelines.enrichment.taxonomy_enricher import TaxonomyEnricher
    from ..pipelines.scraper.extractor import FragmentExtractor
    from ..pipelines.scraper.renderer import render_once
    from ..taxonomy import default_taxonomy

    async def run_extract():
        rendered = await render_once(
            url,
            executable_path=settings.browser_executable_path,
            headless=settings.browser_headless,
            user_agent=settings.user_agent,
            navigation_timeout=settings.navigation_timeout,
            content_wait_timeout=settings.content_wait_timeout,
        )
        extraction = FragmentExtractor().extract(rendered.html, url, rendered.computed_styles)
        return TaxonomyEnricher(default_taxonomy()).enrich_all(extraction.fragments)

    fragments = asyncio.run(run_extract())

    if as_json:
        print(
            json.dumps(
                [f.model_dump(mode="json", exclude={"content_html", "styles"}) for f in fragments],
                indent=2,
            )
        )
        return

    table = Table(title=f"Fragments for {url}")
    table.add_column("#", no_wrap=True)
    table.add_column("Title")
    table.add_column("Type", no_wrap=True)
    table.add_column("Life event")
    table.add_column("States", no_wrap=True)
    table.add_column("Grade", no_wrap=True)
    for fragment in fragments:
        table.add_row(
            str(fragment.position),
            fragment.title,
            fragment.component_type.value,
            ", ".join(fragment.life_events) or "-",
            ", ".join(fragment.states),
            str(fragment.reading_level),
        )
    Console().print(table)


@pipeline.command()
def status():
    """Show the last recorded run and the active crawl configuration."""

    async def get_status():
        orchestrator = PipelineOrchestrator()
        try:
            return await orchestrator.get_pipeline_status()
        finally:
            await orchestrator.close()

    async def check_redis():
        from ..core.redis import test_redis_connection

        return await test_redis_connection()

    redis_ok = asyncio.run(check_redis())
    click.echo("📊 Pipeline Status")
    click.echo(f"   Redis: {'✅ connected' if redis_ok else '❌ unreachable'}")
    if not redis_ok:
        sys.exit(1)

    status_info = asyncio.run(get_status())
    last_run = status_info.get("last_run")
    if last_run:
        click.echo(f"   Last generation: {last_run.get('generation')}")
        click.echo(f"   Started: {last_run.get('started_at')}")
        click.echo(f"   Success: {last_run.get('success')}")
        click.echo(f"   Fragments: {last_run.get('fragments', 0)}")
        click.echo(f"   Pages: {last_run.get('pages', 0)}")
    else:
        click.echo("   No runs recorded")
    if status_info.get("last_run_error"):
        click.echo(f"   ❌ {status_info['last_run_error']}")
    click.echo(f"   Taxonomy: {status_info['taxonomy']}")
