"""Command-line interface for compaction-context."""
