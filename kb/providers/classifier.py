"""
Tag classification through the Anthropic Messages API.

The classifier proposes 2-5 tags for a piece of content, optionally
nesting each under a parent, and is told which tags already exist so it
can reuse them.
"""

from __future__ import annotations

import json
import threading
from dataclasses import dataclass
from typing import Iterator, Optional, Protocol, Sequence

import httpx

import kb.config as config
from kb.errors import ClassificationUnavailable
from kb.providers.http import build_client, new_circuit_breaker, post_json

logger = config.logger


@dataclass(frozen=True)
class TagSuggestion:
    """A proposed tag with optional parent name and confidence in [0, 1]."""

    name: str
    parent: Optional[str] = None
    confidence: float = 0.0


class Classifier(Protocol):
    def classify(self, content: str, known_tags: Sequence[str]) -> list[TagSuggestion]:
        ...


PROMPT_RULES = """Return a JSON object with this structure:
{
  "tags": [
    {"name": "tag-name", "parent": "parent-tag-or-empty", "confidence": 0.9}
  ]
}

Rules:
- Use lowercase, hyphenated tag names (e.g., "machine-learning" not "Machine Learning")
- Suggest 2-5 relevant tags
- Use "parent" to build hierarchy (e.g., {"name": "golang", "parent": "programming"})
- Confidence is 0.0-1.0 based on how certain the classification is
- Reuse existing tags when they fit; create new ones when needed
- Keep tags general enough to be reusable across entries

Return ONLY the JSON, no other text."""


def build_prompt(content: str, known_tags: Sequence[str]) -> str:
    parts = [
        "Classify this content and suggest tags. Return JSON only.\n\n",
        "Content:\n",
        content,
        "\n\n",
    ]
    if known_tags:
        parts.append("Existing tags in the system (prefer reusing these when appropriate):\n")
        parts.extend(f"- {name}\n" for name in known_tags)
        parts.append("\n")
    parts.append(PROMPT_RULES)
    return "".join(parts)


def _strip_code_fence(text: str) -> str:
    value = text.strip()
    for prefix in ("```json", "```"):
        if value.startswith(prefix):
            value = value[len(prefix):]
            break
    if value.endswith("```"):
        value = value[:-3]
    return value.strip()


def _iter_suggestions(items: list) -> Iterator[TagSuggestion]:
    for item in items:
        if not isinstance(item, dict):
            continue
        name = item.get("name")
        if not isinstance(name, str) or not name.strip():
            continue
        parent = item.get("parent")
        if not isinstance(parent, str) or not parent.strip():
            parent = None
        confidence = item.get("confidence", 0.0)
        if isinstance(confidence, bool) or not isinstance(confidence, (int, float)):
            confidence = 0.0
        confidence = min(1.0, max(0.0, float(confidence)))
        yield TagSuggestion(name=name.strip(), parent=parent.strip() if parent else None, confidence=confidence)


def parse_classification(text: str) -> list[TagSuggestion]:
    """Parse the model's JSON reply; malformed items are skipped, malformed JSON is an error."""
    cleaned = _strip_code_fence(text)
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        logger.warning(f"Failed to parse classification response as JSON: {exc}")
        logger.debug(f"Response text: {cleaned[:500]}")
        raise ClassificationUnavailable("classifier returned malformed JSON") from exc
    if not isinstance(data, dict) or not isinstance(data.get("tags"), list):
        raise ClassificationUnavailable("classifier response has no 'tags' list")
    return list(_iter_suggestions(data["tags"]))


class AnthropicClassifier:
    """Classifier backed by the Anthropic Messages API."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        client: Optional[httpx.Client] = None,
    ):
        self.api_key = api_key if api_key is not None else config.ANTHROPIC_API_KEY
        self.model = model or config.CLASSIFIER_MODEL
        self.timeout_seconds = timeout_seconds or config.CLASSIFIER_TIMEOUT_SECONDS
        self.breaker = new_circuit_breaker("classifier")
        self._client = client

    @property
    def available(self) -> bool:
        return bool(self.api_key)

    def _http(self) -> httpx.Client:
        if self._client is None:
            self._client = build_client(
                self.timeout_seconds,
                headers={
                    "Content-Type": "application/json",
                    "x-api-key": self.api_key or "",
                    "anthropic-version": config.ANTHROPIC_VERSION,
                },
            )
        return self._client

    def classify(self, content: str, known_tags: Sequence[str]) -> list[TagSuggestion]:
        if not self.api_key:
            raise ClassificationUnavailable("ANTHROPIC_API_KEY environment variable not set")

        payload = {
            "model": self.model,
            "max_tokens": config.CLASSIFIER_MAX_TOKENS,
            "messages": [{"role": "user", "content": build_prompt(content, known_tags)}],
        }
        data = post_json(self._http(), config.ANTHROPIC_API_URL, payload, self.breaker, ClassificationUnavailable)

        if isinstance(data, dict) and data.get("error"):
            message = data["error"].get("message") if isinstance(data["error"], dict) else data["error"]
            raise ClassificationUnavailable(f"classifier api error: {message}")
        blocks = data.get("content") if isinstance(data, dict) else None
        text = next(
            (
                block.get("text")
                for block in blocks or []
                if isinstance(block, dict) and block.get("type") == "text"
            ),
            None,
        )
        if not text:
            raise ClassificationUnavailable("classifier returned an empty response")
        return parse_classification(text)

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None


_classifier: Optional[AnthropicClassifier] = None
_classifier_lock = threading.Lock()


def get_classifier() -> AnthropicClassifier:
    """Get or create the process-wide classifier."""
    global _classifier
    with _classifier_lock:
        if _classifier is None:
            _classifier = AnthropicClassifier()
        return _classifier


def close_classifier() -> None:
    global _classifier
    with _classifier_lock:
        if _classifier is not None:
            _classifier.close()
            _classifier = None
