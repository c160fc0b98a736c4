"""Entry point for ``python -m compaction_context``."""

from compaction_context.cli.commands import app

if __name__ == "__main__":
    app()
