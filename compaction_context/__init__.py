"""compaction-context - recover recent conversation turns across compaction."""

__version__ = "0.1.0"
__logo__ = "🧷"
