"""
External collaborators: classifier, embedder and URL fetcher.
"""

from kb.providers.classifier import AnthropicClassifier, Classifier, TagSuggestion
from kb.providers.embedder import Embedder, VoyageEmbedder

__all__ = [
    "AnthropicClassifier",
    "Classifier",
    "Embedder",
    "TagSuggestion",
    "VoyageEmbedder",
]
