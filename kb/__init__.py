"""
kb - personal knowledge base with automatic tagging and similarity links.
"""

__version__ = "0.1.0"
