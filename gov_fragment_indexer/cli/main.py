"""CLI interface for the Gov Fragment Indexer."""

import importlib

import click

# Map command names to their module:attribute for lazy import
_COMMANDS = {
    "pipeline": "gov_fragment_indexer.cli.pipeline:pipeline",
    "index": "gov_fragment_indexer.cli.index:index",
    "taxonomy": "gov_fragment_indexer.cli.taxonomy:taxonomy",
}


class LazyGroup(click.Group):
    """
    Lazy loading of CLI commands to avoid hard dependencies at top level.

    Playwright and redisvl are only imported when a command that needs
    them is invoked.
    """

    def list_commands(self, ctx):
        # Keep stable ordering for help output
        return list(_COMMANDS.keys())

    def get_command(self, ctx, name):
        target = _COMMANDS.get(name)
        if not target:
            return None
        module_path, attr = target.split(":", 1)
        mod = importlib.import_module(module_path)
        return getattr(mod, attr)


@click.command(cls=LazyGroup)
def main():
    """Gov Fragment Indexer CLI."""
    pass


if __name__ == "__main__":
    main()
