"""
kb services grouped by component.
"""

from kb.services import associations, embeddings, entries, suggestions, tags

__all__ = ["associations", "embeddings", "entries", "suggestions", "tags"]
